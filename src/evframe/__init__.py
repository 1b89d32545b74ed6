"""Sliding-window event camera frame builder."""

__version__ = "0.1.0"

from .errors import (
    ConfigurationError,
    EvframeError,
    MissingGeometryError,
    SinkError,
    SliceRangeError,
    StoreError,
    StoreUnavailableError,
    UnsupportedLayoutError,
)
from .events import EventWindow, SensorGeometry
from .temporal import iter_windows, sanitize_timestamps, window_indices
from .providers import BaseEventProvider, EventWindowProvider, PolarsEventProvider
from .h5_reader import H5EventReader
from .evlib_loader import load_evlib_provider
from .representations import (
    EventFrame,
    EventFrameConfig,
    Representation,
    StackedHistogram,
    StackedHistogramConfig,
    representation_from_config,
)
from .scheduler import Frame, FrameLoopStats, generate_frames

__all__ = [
    # Errors
    "EvframeError",
    "ConfigurationError",
    "MissingGeometryError",
    "StoreError",
    "StoreUnavailableError",
    "SliceRangeError",
    "UnsupportedLayoutError",
    "SinkError",
    # Data
    "EventWindow",
    "SensorGeometry",
    # Temporal
    "sanitize_timestamps",
    "window_indices",
    "iter_windows",
    # Providers
    "EventWindowProvider",
    "BaseEventProvider",
    "PolarsEventProvider",
    "H5EventReader",
    "load_evlib_provider",
    # Representations
    "Representation",
    "EventFrame",
    "EventFrameConfig",
    "StackedHistogram",
    "StackedHistogramConfig",
    "representation_from_config",
    # Frame loop
    "Frame",
    "FrameLoopStats",
    "generate_frames",
]
