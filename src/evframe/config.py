"""Run configuration (OmegaConf).

A run is described by three nodes:

    stream:          sensor geometry overrides (null = read from the file)
    schedule:        window stride/length in ms, worker and retry counts
    representation:  variant options passed to representation_from_config

YAML files and command-line overrides are merged over the defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional, Union

from omegaconf import DictConfig, OmegaConf

from .errors import ConfigurationError, MissingGeometryError
from .events import SensorGeometry

DEFAULTS = {
    "stream": {"width": None, "height": None},
    "schedule": {
        "delta_t_ms": 100,
        "duration_t_ms": 100,
        "workers": 1,
        "max_retries": 0,
    },
    "representation": {"variant": "event_frame", "downsample": False},
    "output": "event_video.mp4",
}

US_PER_MS = 1000


def load_config(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> DictConfig:
    """Defaults, then the YAML file at `path`, then `overrides`."""
    cfg = OmegaConf.create(DEFAULTS)
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file {path} does not exist")
        cfg = OmegaConf.merge(cfg, OmegaConf.load(path))
    if overrides:
        cfg = OmegaConf.merge(cfg, OmegaConf.create(dict(overrides)))
    return cfg


def resolve_geometry(
    cfg: DictConfig,
    discovered: Optional[SensorGeometry],
) -> SensorGeometry:
    """Explicit stream.width/height win over what the store reports.

    Raises:
        MissingGeometryError: neither source gives both dimensions
    """
    width = cfg.stream.width
    height = cfg.stream.height
    if discovered is not None:
        width = discovered.width if width is None else width
        height = discovered.height if height is None else height
    if width is None or height is None:
        raise MissingGeometryError(
            "Sensor size unknown: pass --width/--height or use a file "
            "with width/height metadata"
        )
    return SensorGeometry(height=int(height), width=int(width))


def representation_options(
    cfg: DictConfig,
    geometry: SensorGeometry,
) -> dict:
    """Flat options for representation_from_config, geometry filled in."""
    options = OmegaConf.to_container(cfg.representation, resolve=True)
    options["height"] = geometry.height
    options["width"] = geometry.width
    return options


def schedule_us(cfg: DictConfig) -> tuple[int, int]:
    """(delta_t, duration_t) in microseconds."""
    delta_t = int(cfg.schedule.delta_t_ms * US_PER_MS)
    duration_t = int(cfg.schedule.duration_t_ms * US_PER_MS)
    if delta_t <= 0:
        raise ConfigurationError(f"delta_t_ms must be positive, got {cfg.schedule.delta_t_ms}")
    if duration_t < 0:
        raise ConfigurationError(
            f"duration_t_ms must be non-negative, got {cfg.schedule.duration_t_ms}"
        )
    return delta_t, duration_t
