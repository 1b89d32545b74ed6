"""Shared fixtures: small HDF5 event files written with h5py."""

from pathlib import Path

import h5py
import numpy as np
import pytest


def write_events_h5(
    path: Path,
    t,
    x,
    y,
    p,
    group: str = "events",
    width=None,
    height=None,
) -> Path:
    """Write one dataset per column under `group` (evlib-compatible schema)."""
    with h5py.File(path, "w") as f:
        f.create_dataset(f"{group}/t", data=np.asarray(t, dtype=np.int64))
        f.create_dataset(f"{group}/x", data=np.asarray(x, dtype=np.uint16))
        f.create_dataset(f"{group}/y", data=np.asarray(y, dtype=np.uint16))
        f.create_dataset(f"{group}/p", data=np.asarray(p, dtype=np.int8))
        if width is not None:
            f.attrs["width"] = width
        if height is not None:
            f.attrs["height"] = height
    return path


@pytest.fixture
def scenario_events():
    """Four events: neutral pixel (10, 10) and ON pixel (5, 5)."""
    return {
        "x": [10, 10, 5, 5],
        "y": [10, 10, 5, 5],
        "p": [1, 0, 1, 1],
        "t": [100, 150, 300, 350],
    }


@pytest.fixture
def scenario_h5(tmp_path, scenario_events):
    return write_events_h5(
        tmp_path / "scenario.h5", width=20, height=20, **scenario_events
    )


@pytest.fixture
def disordered_h5(tmp_path):
    """Timestamps with regressions at index 2 and 5."""
    return write_events_h5(
        tmp_path / "disordered.h5",
        t=[0, 10, 5, 20, 30, 25, 40],
        x=[0, 1, 2, 3, 4, 5, 6],
        y=[0, 0, 0, 1, 1, 1, 2],
        p=[1, 0, 1, 0, 1, 0, 1],
        group="CD/events",
    )


@pytest.fixture
def make_h5(tmp_path):
    """Factory: make_h5(name, t=..., x=..., y=..., p=..., **kwargs) -> path."""

    def _make(name: str = "events.h5", **kwargs) -> Path:
        return write_events_h5(tmp_path / name, **kwargs)

    return _make


@pytest.fixture
def missing_polarity_h5(tmp_path):
    """events/{t,x,y} with no polarity column."""
    path = tmp_path / "no_p.h5"
    with h5py.File(path, "w") as f:
        f.create_dataset("events/t", data=np.array([1, 2, 3], dtype=np.int64))
        f.create_dataset("events/x", data=np.array([1, 2, 3], dtype=np.uint16))
        f.create_dataset("events/y", data=np.array([1, 2, 3], dtype=np.uint16))
        f.attrs["width"] = 4
        f.attrs["height"] = 4
    return path


@pytest.fixture
def failing_h5_reads(monkeypatch):
    """Factory: failing_h5_reads(column, start) makes reads of `column`
    beginning at index `start` raise OSError, like a corrupt chunk."""
    original = h5py.Dataset.__getitem__

    def _install(column: str, start: int) -> None:
        def _getitem(self, args, *rest, **kwargs):
            if (
                self.name.endswith(f"/{column}")
                and isinstance(args, slice)
                and args.start == start
            ):
                raise OSError("Can't read data (filter returned failure)")
            return original(self, args, *rest, **kwargs)

        monkeypatch.setattr(h5py.Dataset, "__getitem__", _getitem)

    return _install
