"""Sequential frame reader for video files used alongside replays."""

from __future__ import annotations

import logging
from typing import Iterator

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class VideoFrames:
    """Iterates BGR frames from a video file or capture URL.

    Also usable as a context manager so the capture is always released.
    """

    def __init__(self, source: str):
        self._source = source
        self._cap: cv2.VideoCapture | None = None
        self._fps: float = 30.0

    @property
    def fps(self) -> float:
        return self._fps

    def open(self) -> None:
        self._cap = cv2.VideoCapture(self._source)
        if not self._cap.isOpened():
            self._cap = None
            raise IOError(f"Failed to open video source: {self._source}")

        fps = self._cap.get(cv2.CAP_PROP_FPS)
        if fps and fps > 0:
            self._fps = fps
        logger.info("Opened video source: %s (%.1f FPS)", self._source, self._fps)

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def __enter__(self) -> "VideoFrames":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __iter__(self) -> Iterator[np.ndarray]:
        if self._cap is None:
            raise RuntimeError("VideoFrames is not open")
        while True:
            ret, frame = self._cap.read()
            if not ret or frame is None:
                return
            yield frame
