"""evlib integration layer for evframe.

Loads any format evlib understands (.dat, .raw, .aedat, .h5, ...) into a
PolarsEventProvider, so the frame loop does not care where events came from.
"""

from typing import Optional
import polars as pl

from .events import SensorGeometry
from .providers import PolarsEventProvider


def load_events_with_evlib(path: str) -> pl.LazyFrame:
    """
    Load event camera data using evlib.

    Args:
        path: Path to event file (.dat, .h5, .aedat, etc.)

    Returns:
        Polars LazyFrame with columns: ['t', 'x', 'y', 'polarity']
        - t: timestamp in microseconds (i64)
        - x: x coordinate
        - y: y coordinate
        - polarity: event polarity

    Raises:
        ImportError: If evlib is not installed
    """
    try:
        import evlib
    except ImportError as e:
        raise ImportError(
            "evlib is required but not installed. "
            "Install with: pip install evlib"
        ) from e

    events = evlib.load_events(path)

    # Duration timestamps (some formats) are normalized to integer microseconds
    schema = events.collect_schema()
    if isinstance(schema["t"], pl.Duration):
        events = events.with_columns(
            pl.col("t").dt.total_microseconds().cast(pl.Int64)
        )
    return events


def load_evlib_provider(
    path: str,
    geometry: Optional[SensorGeometry] = None,
) -> PolarsEventProvider:
    """
    Load a whole event file into memory and wrap it as a provider.

    Geometry is only what the caller passes in; evlib does not report the
    sensor resolution.
    """
    events = load_events_with_evlib(path).collect()
    return PolarsEventProvider(events, geometry=geometry)
