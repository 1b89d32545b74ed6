"""Frame loop: step a causal window across the stream and build frames."""

from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Deque, Iterator, Optional, Tuple

import numpy as np

from .errors import StoreError, StoreUnavailableError
from .events import EventWindow
from .providers import EventWindowProvider
from .representations import Representation
from .temporal import is_monotonic, iter_windows, window_indices

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    """One built representation, tagged with the window it came from."""

    index: int
    t_start: int
    t_end: int
    idx_start: int
    idx_end: int
    data: np.ndarray

    @property
    def num_events(self) -> int:
        return self.idx_end - self.idx_start


@dataclass
class FrameLoopStats:
    """Step counters for one run of the frame loop."""

    emitted: int = 0
    empty: int = 0
    failed: int = 0
    failed_steps: list = field(default_factory=list)

    @property
    def steps(self) -> int:
        return self.emitted + self.empty + self.failed


def _fetch_window(
    provider: EventWindowProvider,
    idx_start: int,
    idx_end: int,
    max_retries: int,
) -> EventWindow:
    """provider.slice with retries; a closed store is never retried."""
    attempt = 0
    while True:
        try:
            return provider.slice(idx_start, idx_end)
        except StoreUnavailableError:
            raise
        except StoreError as e:
            if attempt >= max_retries:
                raise
            attempt += 1
            logger.debug(
                "Retrying slice [%d, %d) after error (%d/%d): %s",
                idx_start, idx_end, attempt, max_retries, e,
            )


def _build(
    representation: Representation,
    window: EventWindow,
    num_workers: int = 1,
) -> np.ndarray:
    return representation.construct(*window.columns, num_workers=num_workers)


def generate_frames(
    provider: EventWindowProvider,
    representation: Representation,
    delta_t: int,
    duration_t: int,
    num_workers: int = 1,
    max_retries: int = 0,
    stats: Optional[FrameLoopStats] = None,
) -> Iterator[Frame]:
    """
    Yield one Frame per non-empty causal window, in time order.

    Each step advances window_end by delta_t and consumes a frame index,
    so skipped steps leave gaps in `Frame.index`.

    Args:
        provider: Event store
        representation: EventFrame or StackedHistogram
        delta_t: Window stride (timestamp units)
        duration_t: Window length (timestamp units)
        num_workers: >1 builds frames on a thread pool; slices are still
                     fetched in order on the calling thread
        max_retries: Retries for a failing slice before the step is skipped
        stats: Optional counters, updated in place

    Raises:
        StoreUnavailableError: The store was closed mid-run
        ConfigurationError: delta_t/duration_t out of range
    """
    if stats is None:
        stats = FrameLoopStats()

    t_all = provider.sanitized_timestamps()
    if t_all.size == 0:
        logger.warning("Stream has no events, nothing to build")
        return
    assert is_monotonic(t_all), "provider returned unsorted timestamps"

    steps = _iter_steps(t_all, delta_t, duration_t)

    if num_workers <= 1:
        for index, t_start, t_end, window in _iter_slices(
            provider, steps, max_retries, stats
        ):
            stats.emitted += 1
            yield Frame(
                index, t_start, t_end, window.idx_start, window.idx_end,
                _build(representation, window),
            )
        return

    # Bounded look-ahead keeps at most 2*num_workers windows in memory
    pending: Deque[Tuple[int, int, int, EventWindow, Future]] = deque()
    with ThreadPoolExecutor(max_workers=num_workers) as pool:
        for index, t_start, t_end, window in _iter_slices(
            provider, steps, max_retries, stats
        ):
            pending.append(
                (index, t_start, t_end, window, pool.submit(_build, representation, window))
            )
            if len(pending) >= 2 * num_workers:
                yield _collect(pending.popleft(), stats)
        while pending:
            yield _collect(pending.popleft(), stats)


def _collect(item, stats: FrameLoopStats) -> Frame:
    index, t_start, t_end, window, future = item
    data = future.result()
    stats.emitted += 1
    return Frame(index, t_start, t_end, window.idx_start, window.idx_end, data)


def _iter_steps(
    t_all: np.ndarray,
    delta_t: int,
    duration_t: int,
) -> Iterator[Tuple[int, int, int, int, int]]:
    windows = iter_windows(int(t_all[0]), int(t_all[-1]), delta_t, duration_t)
    for index, (t_start, t_end) in enumerate(windows):
        idx_start, idx_end = window_indices(t_all, t_start, t_end)
        yield index, t_start, t_end, idx_start, idx_end


def _iter_slices(
    provider: EventWindowProvider,
    steps: Iterator[Tuple[int, int, int, int, int]],
    max_retries: int,
    stats: FrameLoopStats,
) -> Iterator[Tuple[int, int, int, EventWindow]]:
    for index, t_start, t_end, idx_start, idx_end in steps:
        if idx_end <= idx_start:
            stats.empty += 1
            logger.debug(
                "Skipping frame %d: no events in window [%d, %d]",
                index, t_start, t_end,
            )
            continue
        try:
            window = _fetch_window(provider, idx_start, idx_end, max_retries)
        except StoreUnavailableError:
            raise
        except StoreError as e:
            stats.failed += 1
            stats.failed_steps.append(index)
            logger.warning(
                "Skipping frame %d: window [%d, %d] could not be read: %s",
                index, t_start, t_end, e,
            )
            continue
        yield index, t_start, t_end, window
