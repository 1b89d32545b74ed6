"""Video output for built frames."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from .errors import SinkError
from .representations import NEUTRAL
from .scheduler import Frame

logger = logging.getLogger(__name__)


def preview_frame(data: np.ndarray) -> np.ndarray:
    """Render a (C, H, W) representation as an (H, W, 3) uint8 image.

    3-channel frames are passed through (RGB -> BGR). Stacked histograms
    are summed over sub-bins and shown like a difference frame: white
    where ON dominates, black where OFF dominates, gray otherwise.
    """
    if data.ndim != 3:
        raise ValueError(f"Expected (C, H, W) array, got shape {data.shape}")

    channels = data.shape[0]
    if channels == 3:
        return cv2.cvtColor(np.ascontiguousarray(data.transpose(1, 2, 0)), cv2.COLOR_RGB2BGR)
    if channels % 2:
        raise ValueError(f"Cannot preview a {channels}-channel representation")

    counts = data.astype(np.int32)
    diff = counts[0::2].sum(axis=0) - counts[1::2].sum(axis=0)
    gray = np.full(diff.shape, NEUTRAL, dtype=np.uint8)
    gray[diff > 0] = 255
    gray[diff < 0] = 0
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


class VideoSink:
    """Write frames to a video file with OpenCV.

    Args:
        path: Output video path (.mp4)
        frame_size: (height, width) of the frames that will be written
        fps: Frames per second
        codec: FourCC code
    """

    def __init__(
        self,
        path: Union[str, Path],
        frame_size: Tuple[int, int],
        fps: float,
        codec: str = "mp4v",
    ) -> None:
        if fps <= 0:
            raise SinkError(f"fps must be positive, got {fps}")
        self.path = Path(path)
        self.frame_size = frame_size
        self.fps = fps
        self.frames_written = 0

        height, width = frame_size
        fourcc = cv2.VideoWriter_fourcc(*codec)
        self._writer: Optional[cv2.VideoWriter] = cv2.VideoWriter(
            str(self.path), fourcc, fps, (width, height)
        )
        if not self._writer.isOpened():
            self._writer = None
            raise SinkError(f"Unable to open video writer for {self.path}")

    @staticmethod
    def fps_for_stride(delta_t_us: int) -> float:
        """Playback rate for frames spaced delta_t_us microseconds apart."""
        return 1e6 / delta_t_us

    def write(self, frame: Frame) -> None:
        if self._writer is None:
            raise SinkError(f"{self.path} is already closed")
        image = preview_frame(frame.data)
        if image.shape[:2] != self.frame_size:
            raise SinkError(
                f"Frame {frame.index} has size {image.shape[:2]}, "
                f"expected {self.frame_size}"
            )
        self._writer.write(image)
        self.frames_written += 1

    def close(self) -> None:
        if self._writer is not None:
            self._writer.release()
            self._writer = None
            logger.info("Wrote %d frames to %s", self.frames_written, self.path)

    def __enter__(self) -> VideoSink:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
