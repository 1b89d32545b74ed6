"""
Dense event representations.

Two variants turn one window of events into a fixed-shape uint8 array:
- EventFrame: ON/OFF difference image, 3 identical channels
- StackedHistogram: per-sub-bin, per-polarity counts (2*bins channels)

Both clamp out-of-range coordinates onto the sensor border instead of
dropping events. Counting is commutative, so `num_workers > 1` splits the
events across threads and adds the partial histograms.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, fields
from typing import Any, Mapping, Tuple, Union

import cv2
import numpy as np

from .errors import ConfigurationError

MAX_COUNT_CUTOFF = 255
NEUTRAL = 127


def count_events(
    flat_index: np.ndarray,
    size: int,
    num_workers: int = 1,
) -> np.ndarray:
    """
    Histogram of flat cell indices.

    With num_workers > 1 the events are split into contiguous chunks,
    each chunk is counted on its own thread and the partial counts are
    summed. Integer addition makes the result identical to one pass.

    Args:
        flat_index: Cell index per event, all in [0, size)
        size: Number of cells
        num_workers: Threads to spread the counting over

    Returns:
        int64 array of length `size`
    """
    if num_workers <= 1 or flat_index.size < 2 * num_workers:
        return np.bincount(flat_index, minlength=size)

    chunks = np.array_split(flat_index, num_workers)
    with ThreadPoolExecutor(max_workers=num_workers) as pool:
        partials = list(pool.map(lambda c: np.bincount(c, minlength=size), chunks))
    return np.sum(partials, axis=0)


def _clamped_pixels(
    x: np.ndarray,
    y: np.ndarray,
    height: int,
    width: int,
) -> Tuple[np.ndarray, np.ndarray]:
    xi = np.clip(np.asarray(x, dtype=np.int64), 0, width - 1)
    yi = np.clip(np.asarray(y, dtype=np.int64), 0, height - 1)
    return xi, yi


def _check_columns(x, y, p, t) -> None:
    lengths = {len(x), len(y), len(p), len(t)}
    if len(lengths) != 1:
        raise ValueError(
            f"Event columns differ in length: x={len(x)}, y={len(y)}, "
            f"p={len(p)}, t={len(t)}"
        )


def _check_geometry(height: int, width: int, downsample: bool) -> None:
    if height <= 0 or width <= 0:
        raise ConfigurationError(f"height and width must be positive, got {height}x{width}")
    if downsample and (height < 2 or width < 2):
        raise ConfigurationError(
            f"Cannot downsample a {height}x{width} sensor by a factor of 2"
        )


def _check_integer(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class EventFrameConfig:
    height: int
    width: int
    downsample: bool = False


@dataclass(frozen=True)
class StackedHistogramConfig:
    bins: int
    height: int
    width: int
    count_cutoff: int = MAX_COUNT_CUTOFF
    fastmode: bool = True
    downsample: bool = False


class EventFrame:
    """ON/OFF difference frame.

    A pixel is 255 if it saw more ON than OFF events, 0 if it saw more OFF
    than ON events and 127 otherwise. The gray image is replicated to three
    channels and, with `downsample`, halved with bilinear resampling.
    """

    variant = "event_frame"

    def __init__(self, height: int, width: int, downsample: bool = False) -> None:
        _check_geometry(height, width, downsample)
        self.height = height
        self.width = width
        self.downsample = downsample

    @classmethod
    def from_config(cls, config: EventFrameConfig) -> EventFrame:
        return cls(config.height, config.width, config.downsample)

    @property
    def shape(self) -> Tuple[int, int, int]:
        if self.downsample:
            return 3, self.height // 2, self.width // 2
        return 3, self.height, self.width

    def polarity_counts(
        self,
        x: np.ndarray,
        y: np.ndarray,
        p: np.ndarray,
        num_workers: int = 1,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Per-pixel (on, off) int32 counts at full resolution."""
        n_pixels = self.height * self.width
        xi, yi = _clamped_pixels(x, y, self.height, self.width)
        off = np.asarray(p) <= 0
        # ON events in cells [0, n_pixels), OFF events in [n_pixels, 2*n_pixels)
        flat = yi * self.width + xi + off * n_pixels
        counts = count_events(flat, 2 * n_pixels, num_workers).astype(np.int32)
        on_count = counts[:n_pixels].reshape(self.height, self.width)
        off_count = counts[n_pixels:].reshape(self.height, self.width)
        return on_count, off_count

    def construct(
        self,
        x: np.ndarray,
        y: np.ndarray,
        p: np.ndarray,
        t: np.ndarray,
        num_workers: int = 1,
    ) -> np.ndarray:
        """Build the (3, H, W) uint8 frame for one window."""
        _check_columns(x, y, p, t)
        on_count, off_count = self.polarity_counts(x, y, p, num_workers)
        diff = on_count - off_count

        frame = np.full((self.height, self.width), NEUTRAL, dtype=np.uint8)
        frame[diff > 0] = 255
        frame[diff < 0] = 0

        color = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        if self.downsample:
            color = cv2.resize(
                color,
                (self.width // 2, self.height // 2),
                interpolation=cv2.INTER_LINEAR,
            )
        return np.ascontiguousarray(color.transpose(2, 0, 1))


class StackedHistogram:
    """Temporally binned, polarity-separated event counts.

    The window's time span [t_min, t_max] is cut into `bins` equal sub-bins
    (the last one includes t_max). Output channels are
    [bin0_on, bin0_off, bin1_on, bin1_off, ...], each count clipped to
    `count_cutoff`.

    `fastmode` assigns sub-bins in one pass of integer arithmetic,
    `(t - t_min) * bins // span`, so events sitting exactly on a boundary
    land in the later sub-bin. Exact mode recomputes the integer boundaries
    and assigns events by binary search against them.
    """

    variant = "stacked_histogram"
    channels = 2

    def __init__(
        self,
        bins: int,
        height: int,
        width: int,
        count_cutoff: int = MAX_COUNT_CUTOFF,
        fastmode: bool = True,
        downsample: bool = False,
    ) -> None:
        _check_integer("bins", bins)
        if bins < 1:
            raise ConfigurationError(f"bins must be at least 1, got {bins}")
        if count_cutoff is None:
            count_cutoff = MAX_COUNT_CUTOFF
        _check_integer("count_cutoff", count_cutoff)
        if count_cutoff < 1:
            raise ConfigurationError(f"count_cutoff must be at least 1, got {count_cutoff}")
        _check_geometry(height, width, downsample)

        self.bins = bins
        self.height = height
        self.width = width
        self.count_cutoff = min(count_cutoff, MAX_COUNT_CUTOFF)
        self.fastmode = fastmode
        self.downsample = downsample

    @classmethod
    def from_config(cls, config: StackedHistogramConfig) -> StackedHistogram:
        return cls(
            bins=config.bins,
            height=config.height,
            width=config.width,
            count_cutoff=config.count_cutoff,
            fastmode=config.fastmode,
            downsample=config.downsample,
        )

    @property
    def shape(self) -> Tuple[int, int, int]:
        if self.downsample:
            return self.channels * self.bins, self.height // 2, self.width // 2
        return self.channels * self.bins, self.height, self.width

    def time_bins(self, t: np.ndarray) -> np.ndarray:
        """Sub-bin index in [0, bins) for every timestamp in the window."""
        t = np.asarray(t, dtype=np.int64)
        if t.size == 0:
            return np.zeros(0, dtype=np.int64)

        t_min = int(t.min())
        span = int(t.max()) - t_min
        if span == 0:
            return np.zeros(t.size, dtype=np.int64)

        if self.fastmode:
            idx = ((t - t_min) * self.bins) // span
            return np.minimum(idx, self.bins - 1)

        # Sub-bin k starts at t_min + k*span/bins; for integer timestamps
        # that is the same as t - t_min >= ceil(k*span/bins).
        k = np.arange(1, self.bins, dtype=np.int64)
        boundaries = t_min - (-(k * span) // self.bins)
        return np.searchsorted(boundaries, t, side="right").astype(np.int64)

    def construct(
        self,
        x: np.ndarray,
        y: np.ndarray,
        p: np.ndarray,
        t: np.ndarray,
        num_workers: int = 1,
    ) -> np.ndarray:
        """Build the (2*bins, H, W) uint8 histogram for one window."""
        _check_columns(x, y, p, t)
        n_channels, out_h, out_w = self.shape
        plane = out_h * out_w

        xi, yi = _clamped_pixels(x, y, self.height, self.width)
        if self.downsample:
            xi = np.minimum(xi // 2, out_w - 1)
            yi = np.minimum(yi // 2, out_h - 1)

        channel = 2 * self.time_bins(t) + (np.asarray(p) <= 0)
        flat = channel * plane + yi * out_w + xi
        counts = count_events(flat, n_channels * plane, num_workers)

        np.minimum(counts, self.count_cutoff, out=counts)
        return counts.astype(np.uint8).reshape(n_channels, out_h, out_w)


Representation = Union[EventFrame, StackedHistogram]

_VARIANTS = {
    EventFrame.variant: (EventFrame, EventFrameConfig),
    StackedHistogram.variant: (StackedHistogram, StackedHistogramConfig),
}


def representation_from_config(config: Mapping[str, Any]) -> Representation:
    """
    Construct a representation from a flat configuration mapping.

    Args:
        config: {variant, height, width, downsample, bins?, count_cutoff?,
                 fastmode?}; an OmegaConf DictConfig works too

    Raises:
        ConfigurationError: unknown variant, or keys the variant does not take
    """
    # Unset (None) options count as not given
    options = {key: value for key, value in dict(config).items() if value is not None}
    variant = options.pop("variant", None)
    if variant not in _VARIANTS:
        raise ConfigurationError(
            f"Unknown representation variant {variant!r}, "
            f"expected one of {sorted(_VARIANTS)}"
        )

    cls, config_cls = _VARIANTS[variant]
    allowed = {f.name for f in fields(config_cls)}
    unexpected = set(options) - allowed
    if unexpected:
        raise ConfigurationError(
            f"Options {sorted(unexpected)} are not valid for {variant}"
        )
    try:
        typed = config_cls(**options)
    except TypeError as e:
        raise ConfigurationError(f"Incomplete {variant} configuration: {e}") from e
    return cls.from_config(typed)
