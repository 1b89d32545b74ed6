"""Event window and sensor geometry containers."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import polars as pl

from .errors import ConfigurationError


@dataclass(frozen=True)
class SensorGeometry:
    """Sensor resolution in pixels."""

    height: int
    width: int

    def __post_init__(self) -> None:
        if self.height <= 0 or self.width <= 0:
            raise ConfigurationError(
                f"Sensor geometry must be positive, got {self.height}x{self.width}"
            )


@dataclass(frozen=True)
class EventWindow:
    """
    Column slice [idx_start, idx_end) of an event stream.

    Attributes:
        idx_start: First event index (inclusive)
        idx_end: Last event index (exclusive)
        x: Pixel columns
        y: Pixel rows
        p: Polarities (>0 is ON)
        t: Timestamps, non-decreasing
    """

    idx_start: int
    idx_end: int
    x: np.ndarray
    y: np.ndarray
    p: np.ndarray
    t: np.ndarray

    def __post_init__(self) -> None:
        n = self.idx_end - self.idx_start
        for name in ("x", "y", "p", "t"):
            if len(getattr(self, name)) != n:
                raise ValueError(
                    f"Column '{name}' has {len(getattr(self, name))} entries, "
                    f"expected {n} for range [{self.idx_start}, {self.idx_end})"
                )

    def __len__(self) -> int:
        return self.idx_end - self.idx_start

    @property
    def is_empty(self) -> bool:
        return self.idx_end <= self.idx_start

    @property
    def columns(self) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """(x, y, p, t) in the order representations consume them."""
        return self.x, self.y, self.p, self.t

    @classmethod
    def from_polars(
        cls,
        events: pl.DataFrame,
        idx_start: int = 0,
    ) -> EventWindow:
        """Create from a Polars DataFrame with ['t', 'x', 'y', 'polarity']."""
        t = timestamps_to_numpy(events["t"])
        return cls(
            idx_start=idx_start,
            idx_end=idx_start + len(events),
            x=events["x"].to_numpy(),
            y=events["y"].to_numpy(),
            p=events["polarity"].to_numpy(),
            t=t,
        )

    def to_polars(self) -> pl.DataFrame:
        """Convert back to a Polars DataFrame (evlib column names)."""
        return pl.DataFrame({
            't': self.t,
            'x': self.x,
            'y': self.y,
            'polarity': self.p,
        })


def timestamps_to_numpy(column: pl.Series) -> np.ndarray:
    """
    Convert a timestamp column to int64 microseconds.

    evlib returns Duration timestamps for some formats and Int64 for others.
    """
    if isinstance(column.dtype, pl.Duration):
        column = column.dt.total_microseconds()
    return column.to_numpy().astype(np.int64, copy=False)


def empty_window(idx: int = 0) -> EventWindow:
    """Zero-length window positioned at `idx`."""
    return EventWindow(
        idx_start=idx,
        idx_end=idx,
        x=np.array([], dtype=np.int32),
        y=np.array([], dtype=np.int32),
        p=np.array([], dtype=np.int8),
        t=np.array([], dtype=np.int64),
    )
