"""Timestamp sanitizing and causal window lookup."""

from typing import Iterator, Tuple
import numpy as np

from .errors import ConfigurationError


def sanitize_timestamps(t: np.ndarray) -> np.ndarray:
    """Clamp timestamp regressions forward so the sequence is non-decreasing.

    out[0] = t[0], out[i] = max(t[i], out[i-1]). Applying it to an already
    non-decreasing array returns an equal array.

    Args:
        t: Timestamps in stream order (may contain regressions)

    Returns:
        int64 array of the same length
    """
    t = np.asarray(t, dtype=np.int64)
    if t.size == 0:
        return t.copy()
    return np.maximum.accumulate(t)


def is_monotonic(t: np.ndarray) -> bool:
    """True if `t` is non-decreasing."""
    t = np.asarray(t)
    return bool(t.size < 2 or np.all(t[1:] >= t[:-1]))


def window_indices(
    t: np.ndarray,
    window_start: int,
    window_end: int,
) -> Tuple[int, int]:
    """Half-open index range of events with window_start <= t <= window_end.

    `t` must be non-decreasing (see sanitize_timestamps). Both bounds are
    binary searches. An empty window gives idx_start == idx_end.

    Args:
        t: Sanitized timestamps
        window_start: Window start (inclusive)
        window_end: Window end (inclusive)

    Returns:
        Tuple of (idx_start, idx_end)
    """
    if window_start > window_end:
        raise ValueError(
            f"window_start ({window_start}) must not exceed window_end ({window_end})"
        )

    idx_start = int(np.searchsorted(t, window_start, side="left"))
    idx_end = int(np.searchsorted(t, window_end, side="right"))

    # Only reachable with an unsorted index, which callers must not pass in
    assert idx_start <= idx_end, "timestamp index is not sorted"

    return idx_start, idx_end


def iter_windows(
    t_first: int,
    t_last: int,
    delta_t: int,
    duration_t: int,
) -> Iterator[Tuple[int, int]]:
    """Yield causal windows (window_start, window_end) stepping by delta_t.

    window_end runs from t_first to t_last inclusive; window_start is
    window_end - duration_t, clamped to t_first.
    """
    if delta_t <= 0:
        raise ConfigurationError(f"delta_t must be positive, got {delta_t}")
    if duration_t < 0:
        raise ConfigurationError(f"duration_t must be non-negative, got {duration_t}")

    current = t_first
    while current <= t_last:
        yield max(current - duration_t, t_first), current
        current += delta_t
