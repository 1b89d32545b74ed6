"""Event window providers.

A provider owns one event stream and hands out column slices of it. The
full timestamp column is sanitized once, on first use, and every slice
takes its timestamps from that cached array so neighbouring windows see
the same corrected value for the same event.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional, Protocol, Tuple, runtime_checkable

import numpy as np
import polars as pl

from .errors import SliceRangeError, StoreUnavailableError
from .events import EventWindow, SensorGeometry, empty_window, timestamps_to_numpy
from .temporal import sanitize_timestamps

logger = logging.getLogger(__name__)


@runtime_checkable
class EventWindowProvider(Protocol):
    """What the frame loop needs from an event store."""

    def sanitized_timestamps(self) -> np.ndarray:
        ...

    def slice(self, idx_start: int, idx_end: int) -> EventWindow:
        ...

    def geometry(self) -> Optional[SensorGeometry]:
        ...

    def close(self) -> None:
        ...


class BaseEventProvider(ABC):
    """Shared caching and range checking for providers.

    Subclasses implement `_read_timestamps` (whole raw column) and
    `_read_columns` (x, y, p for an index range).
    """

    def __init__(self, geometry: Optional[SensorGeometry] = None) -> None:
        self._geometry = geometry
        self._timestamps: Optional[np.ndarray] = None
        self._timestamps_lock = threading.Lock()

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    def _read_timestamps(self) -> np.ndarray:
        ...

    @abstractmethod
    def _read_columns(
        self, idx_start: int, idx_end: int
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        ...

    def close(self) -> None:
        """Release the underlying store. Safe to call twice."""

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _check_open(self) -> None:
        if not self.is_open:
            raise StoreUnavailableError(f"{type(self).__name__} is closed")

    def geometry(self) -> Optional[SensorGeometry]:
        return self._geometry

    def sanitized_timestamps(self) -> np.ndarray:
        """Full timestamp column, made non-decreasing. Computed once."""
        self._check_open()
        if self._timestamps is None:
            with self._timestamps_lock:
                if self._timestamps is None:
                    raw = self._read_timestamps()
                    corrected = sanitize_timestamps(raw)
                    regressions = int(np.count_nonzero(corrected != raw))
                    if regressions:
                        logger.info(
                            "Clamped %d out-of-order timestamps forward", regressions
                        )
                    corrected.flags.writeable = False
                    self._timestamps = corrected
        return self._timestamps

    @property
    def num_events(self) -> int:
        return len(self.sanitized_timestamps())

    def slice(self, idx_start: int, idx_end: int) -> EventWindow:
        """Columns for events [idx_start, idx_end).

        Raises:
            StoreUnavailableError: Provider was closed
            SliceRangeError: Range is not within [0, num_events]
        """
        t_all = self.sanitized_timestamps()
        n = len(t_all)
        if not 0 <= idx_start <= idx_end <= n:
            raise SliceRangeError(
                f"Invalid slice [{idx_start}, {idx_end}) for stream of {n} events"
            )
        if idx_start == idx_end:
            return empty_window(idx_start)

        x, y, p = self._read_columns(idx_start, idx_end)
        return EventWindow(
            idx_start=idx_start,
            idx_end=idx_end,
            x=x,
            y=y,
            p=p,
            t=t_all[idx_start:idx_end],
        )


class PolarsEventProvider(BaseEventProvider):
    """In-memory provider over a Polars DataFrame.

    Expects columns ['t', 'x', 'y', 'polarity'] ('p' is accepted for
    polarity). Duration timestamps are converted to integer microseconds.
    """

    def __init__(
        self,
        events: pl.DataFrame | pl.LazyFrame,
        geometry: Optional[SensorGeometry] = None,
    ) -> None:
        super().__init__(geometry)
        if isinstance(events, pl.LazyFrame):
            events = events.collect()
        if "polarity" not in events.columns and "p" in events.columns:
            events = events.rename({"p": "polarity"})
        missing = {"t", "x", "y", "polarity"} - set(events.columns)
        if missing:
            raise ValueError(f"Event frame is missing columns: {sorted(missing)}")
        self._events: Optional[pl.DataFrame] = events

    @classmethod
    def from_arrays(
        cls,
        x: np.ndarray,
        y: np.ndarray,
        p: np.ndarray,
        t: np.ndarray,
        geometry: Optional[SensorGeometry] = None,
    ) -> PolarsEventProvider:
        """Build from parallel NumPy columns."""
        return cls(
            pl.DataFrame({'t': t, 'x': x, 'y': y, 'polarity': p}),
            geometry=geometry,
        )

    @property
    def is_open(self) -> bool:
        return self._events is not None

    def close(self) -> None:
        self._events = None

    def _read_timestamps(self) -> np.ndarray:
        return timestamps_to_numpy(self._events["t"])

    def _read_columns(self, idx_start, idx_end):
        self._check_open()
        window = self._events.slice(idx_start, idx_end - idx_start)
        return (
            window["x"].to_numpy(),
            window["y"].to_numpy(),
            window["polarity"].to_numpy(),
        )
