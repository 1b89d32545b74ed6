"""HDF5 event store reader.

Supports the two layouts seen in practice:

    /CD/events/{t,x,y,p}   or   /events/{t,x,y,p}     (one dataset per column)
    /CD/events                                        (compound dataset, Prophesee)

Sensor size comes from the constructor or from `width`/`height` attributes
on the file or the event group.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import h5py
import hdf5plugin  # noqa: F401  registers blosc/zstd filters used by DSEC files
import numpy as np

from .errors import ConfigurationError, StoreError, UnsupportedLayoutError
from .events import SensorGeometry
from .providers import BaseEventProvider

logger = logging.getLogger(__name__)

H5_SUFFIXES = (".h5", ".hdf5")
EVENT_PATHS = ("CD/events", "events")
COLUMNS = ("t", "x", "y", "p")


class H5EventReader(BaseEventProvider):
    """Read event columns from an HDF5 container.

    Args:
        path: Path to .h5/.hdf5 file
        width: Sensor width, overrides file metadata
        height: Sensor height, overrides file metadata

    Raises:
        FileNotFoundError: path does not exist
        ConfigurationError: path is not an HDF5 file
        UnsupportedLayoutError: no event group, or one of t/x/y/p is missing
    """

    def __init__(
        self,
        path: Union[str, Path],
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"{path} does not exist")
        if path.suffix.lower() not in H5_SUFFIXES:
            raise ConfigurationError(f"{path} must be HDF5 format (.h5 or .hdf5)")

        self.path = path
        self._file: Optional[h5py.File] = h5py.File(path, "r")
        try:
            self._event_path = self._find_event_path(self._file)
            self._check_layout()
        except UnsupportedLayoutError:
            self.close()
            raise

        super().__init__(self._resolve_geometry(width, height))
        logger.debug("Opened %s (events at /%s)", path, self._event_path)

    @staticmethod
    def _find_event_path(f: h5py.File) -> str:
        for candidate in EVENT_PATHS:
            if candidate in f:
                return candidate
        raise UnsupportedLayoutError(
            "Unsupported H5 file structure. Cannot find events data."
        )

    def _check_layout(self) -> None:
        missing = [key for key in COLUMNS if not self._has_column(key)]
        if missing:
            raise UnsupportedLayoutError(
                f"Event data at /{self._event_path} is missing columns {missing}"
            )

    def _resolve_geometry(
        self, width: Optional[int], height: Optional[int]
    ) -> Optional[SensorGeometry]:
        if width is None or height is None:
            node = self._file[self._event_path]
            for attrs in (self._file.attrs, node.attrs):
                if width is None and "width" in attrs:
                    width = int(attrs["width"])
                if height is None and "height" in attrs:
                    height = int(attrs["height"])
        if width is None or height is None:
            return None
        return SensorGeometry(height=int(height), width=int(width))

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def _column(self, name: str, sel: slice = slice(None)) -> np.ndarray:
        self._check_open()
        try:
            node = self._file[self._event_path]
            if isinstance(node, h5py.Dataset):
                return node.fields(name)[sel]
            return node[name][sel]
        except (KeyError, OSError) as err:
            raise StoreError(
                f"Failed to read column '{name}' from {self.path}: {err}"
            ) from err

    def _has_column(self, name: str) -> bool:
        node = self._file[self._event_path]
        if isinstance(node, h5py.Dataset):
            return node.dtype.names is not None and name in node.dtype.names
        return name in node

    def _read_timestamps(self) -> np.ndarray:
        return self._column("t").astype(np.int64, copy=False)

    def _read_columns(
        self, idx_start: int, idx_end: int
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        sel = slice(idx_start, idx_end)
        return self._column("x", sel), self._column("y", sel), self._column("p", sel)

    def original_dtypes(self) -> Dict[str, str]:
        """Stored dtype name per column."""
        self._check_open()
        node = self._file[self._event_path]
        dtypes = {}
        for key in COLUMNS:
            if isinstance(node, h5py.Dataset):
                dtypes[key] = str(node.dtype[key])
            else:
                dtypes[key] = str(node[key].dtype)
        return dtypes

    def event_summary(self) -> Dict[str, int]:
        """Aggregate statistics over the whole stream."""
        t = self.sanitized_timestamps()
        summary: Dict[str, int] = {}
        if t.size:
            summary["t_min"] = int(t[0])
            summary["t_max"] = int(t[-1])
        for key in ("x", "y"):
            values = self._column(key)
            if values.size:
                summary[f"{key}_min"] = int(values.min())
                summary[f"{key}_max"] = int(values.max())
        p = self._column("p")
        summary["p_on_count"] = int(np.count_nonzero(p > 0))
        summary["p_off_count"] = int(np.count_nonzero(p <= 0))
        summary["total_count"] = int(p.size)
        return summary
