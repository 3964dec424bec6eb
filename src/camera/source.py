"""Frame sources: a live OpenCV capture device or a single still image.

Sources hand out ``Frame`` objects in two flavours: ``read_frame()`` for the
low-latency polling path (optionally downscaled) and ``read_still()`` for the
final full-resolution capture.

Usage::

    source = CameraFrameSource(index=0, preview_width=640)
    source.open()          # raises CameraUnavailableError if no camera
    frame = source.read_frame()
    still = source.read_still()
    source.close()
"""

import logging
from pathlib import Path
from typing import Protocol

import cv2
import numpy as np

from src.config import Settings
from src.scan.frame import Frame, InvalidFrameError

logger = logging.getLogger(__name__)


class CameraUnavailableError(RuntimeError):
    """Raised when a frame source cannot be opened or read."""


class FrameSource(Protocol):
    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def open(self) -> None: ...

    def read_frame(self) -> Frame: ...

    def read_still(self) -> Frame: ...

    def close(self) -> None: ...


class CameraFrameSource:
    """Live feed from an OpenCV ``VideoCapture`` device or stream URL."""

    def __init__(
        self,
        index: int | str = 0,
        preview_width: int | None = None,
        width: int | None = None,
        height: int | None = None,
    ) -> None:
        self._index = index
        self._preview_width = preview_width
        self._requested_size = (width, height)
        self._cap: cv2.VideoCapture | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CameraFrameSource":
        return cls(
            index=settings.camera_index,
            preview_width=settings.preview_width,
        )

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    @property
    def width(self) -> int:
        if self._cap is None:
            return 0
        return int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))

    @property
    def height(self) -> int:
        if self._cap is None:
            return 0
        return int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))

    def open(self) -> None:
        if self._cap is not None:
            return
        cap = cv2.VideoCapture(self._index)
        if not cap.isOpened():
            cap.release()
            raise CameraUnavailableError(f"Cannot open camera {self._index!r}")

        width, height = self._requested_size
        if width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        if height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

        self._cap = cap
        logger.info(
            "Camera %r opened (%dx%d)", self._index, self.width, self.height
        )

    def read_frame(self) -> Frame:
        image = self._read()
        if self._preview_width and image.shape[1] > self._preview_width:
            h, w = image.shape[:2]
            preview_height = max(3, round(h * self._preview_width / w))
            image = cv2.resize(
                image,
                (self._preview_width, preview_height),
                interpolation=cv2.INTER_AREA,
            )
        return Frame.from_bgr(image)

    def read_still(self) -> Frame:
        return Frame.from_bgr(self._read())

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Camera %r released", self._index)

    def _read(self) -> np.ndarray:
        if self._cap is None:
            raise CameraUnavailableError(f"Camera {self._index!r} is not open")
        ok, image = self._cap.read()
        if not ok or image is None:
            raise CameraUnavailableError(
                f"Camera {self._index!r} returned no frame"
            )
        return image


class ImageFrameSource:
    """Serves the same decoded image for every read.

    Stands in for a camera when the user uploads a photo instead.
    """

    def __init__(self, image: np.ndarray | Frame) -> None:
        self._frame = image if isinstance(image, Frame) else Frame.from_bgr(image)
        self._open = False

    @classmethod
    def from_file(cls, path: str | Path) -> "ImageFrameSource":
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None:
            raise CameraUnavailableError(f"Cannot read image file {path}")
        return cls(image)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ImageFrameSource":
        try:
            frame = Frame.decode(data)
        except InvalidFrameError as exc:
            raise CameraUnavailableError(f"Cannot decode image data: {exc}") from exc
        return cls(frame)

    @property
    def width(self) -> int:
        return self._frame.width

    @property
    def height(self) -> int:
        return self._frame.height

    def open(self) -> None:
        self._open = True

    def read_frame(self) -> Frame:
        if not self._open:
            raise CameraUnavailableError("Image source is not open")
        return self._frame

    def read_still(self) -> Frame:
        return self.read_frame()

    def close(self) -> None:
        self._open = False
