"""Frame sinks consuming the output of :func:`moticam.capture.capture`.

A sink receives either raw Bayer bytes or a BGRA colour frame per accepted
frame.  Sinks that drive a user interface also report cancellation, which the
capture loop checks between reads.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, List, Optional, Union

import numpy as np
from PIL import Image

LOG = logging.getLogger(__name__)

_QUIT_KEYS = {ord("q"), 27}


class FrameSink(ABC):
    """Common interface implemented by every frame consumer."""

    @abstractmethod
    def write_raw(self, data: np.ndarray, width: int, height: int) -> None:
        """Consume one raw frame of ``width*height`` bytes."""

    @abstractmethod
    def write_color(self, frame: np.ndarray, width: int, height: int) -> None:
        """Consume one ``(height, width, 4)`` BGRA frame.

        The frame buffer is reused by the caller; copy it to keep it.
        """

    def poll(self) -> None:
        """Drain pending user interface events."""

    @property
    def cancelled(self) -> bool:
        return False

    def close(self) -> None:
        """Release resources held by the sink."""

    def __enter__(self) -> "FrameSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def bgra_to_rgb(frame: np.ndarray) -> np.ndarray:
    """Return a contiguous RGB copy of a BGRA frame (for Pillow)."""

    return np.ascontiguousarray(frame[..., 2::-1])


class RawFileSink(FrameSink):
    """Append every raw frame to a single file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._handle: Optional[BinaryIO] = self.path.open("wb")

    def write_raw(self, data: np.ndarray, width: int, height: int) -> None:
        assert self._handle is not None, "sink is closed"
        self._handle.write(memoryview(data))

    def write_color(self, frame: np.ndarray, width: int, height: int) -> None:
        assert self._handle is not None, "sink is closed"
        self._handle.write(memoryview(np.ascontiguousarray(frame)))

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class ImageSequenceSink(FrameSink):
    """Write each frame to its own sequentially numbered image file."""

    def __init__(self, prefix: Union[str, Path], *, suffix: str = ".png", digits: int = 4) -> None:
        self.prefix = Path(prefix)
        self.suffix = suffix
        self.digits = digits
        self.paths: List[Path] = []

    def next_path(self) -> Path:
        index = len(self.paths)
        return self.prefix.with_name(f"{self.prefix.name}-{index:0{self.digits}d}{self.suffix}")

    def write_raw(self, data: np.ndarray, width: int, height: int) -> None:
        raise TypeError("ImageSequenceSink needs colour frames; use RawFileSink for raw output")

    def write_color(self, frame: np.ndarray, width: int, height: int) -> None:
        path = self.next_path()
        Image.fromarray(bgra_to_rgb(frame)).save(path)
        self.paths.append(path)
        LOG.debug("Saved %sx%s frame to %s", width, height, path)


class CollectingSink(FrameSink):
    """Keep copies of the frames in memory."""

    def __init__(self, limit: Optional[int] = None) -> None:
        self.frames: List[np.ndarray] = []
        self.limit = limit

    def write_raw(self, data: np.ndarray, width: int, height: int) -> None:
        self.frames.append(np.array(data, copy=True))

    def write_color(self, frame: np.ndarray, width: int, height: int) -> None:
        self.frames.append(np.array(frame, copy=True))

    @property
    def cancelled(self) -> bool:
        return self.limit is not None and len(self.frames) >= self.limit


class PreviewSink(FrameSink):
    """Live OpenCV preview window.

    ``q``, Esc or closing the window requests cancellation.
    """

    def __init__(self, window: str = "Moticam") -> None:
        try:
            import cv2
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("OpenCV is required for the live preview") from exc

        self._cv2 = cv2
        self.window = window
        self._cancelled = False
        self._shown = False
        cv2.namedWindow(window, cv2.WINDOW_NORMAL)

    def write_raw(self, data: np.ndarray, width: int, height: int) -> None:
        # Not demosaiced; shown as grey levels.
        self._show(np.asarray(data).reshape(height, width))

    def write_color(self, frame: np.ndarray, width: int, height: int) -> None:
        self._show(frame)

    def _show(self, image: np.ndarray) -> None:
        self._cv2.imshow(self.window, image)
        self._shown = True

    def poll(self) -> None:
        key = self._cv2.waitKey(1) & 0xFF
        if key in _QUIT_KEYS:
            self._cancelled = True
            return
        if self._shown:
            visible = self._cv2.getWindowProperty(self.window, self._cv2.WND_PROP_VISIBLE)
            if visible < 1:
                self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def close(self) -> None:
        try:
            self._cv2.destroyWindow(self.window)
        except self._cv2.error:
            LOG.debug("Preview window already destroyed")


__all__ = [
    "CollectingSink",
    "FrameSink",
    "ImageSequenceSink",
    "PreviewSink",
    "RawFileSink",
    "bgra_to_rgb",
]
