"""Exception hierarchy for evframe."""


class EvframeError(Exception):
    """Base class for all evframe errors."""


class ConfigurationError(EvframeError, ValueError):
    """Invalid representation, geometry or scheduler configuration."""


class MissingGeometryError(ConfigurationError):
    """Sensor height/width were neither given nor found in the store."""


class StoreError(EvframeError):
    """Failure at the event store boundary."""


class StoreUnavailableError(StoreError):
    """The store is closed or cannot be reached."""


class SliceRangeError(StoreError, IndexError):
    """Requested index range is outside the stream."""


class UnsupportedLayoutError(StoreError):
    """The container does not hold event columns where we look for them."""


class SinkError(EvframeError):
    """The frame sink could not be opened or written."""
