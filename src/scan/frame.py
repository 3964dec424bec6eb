"""Raster frame container and grayscale reduction.

Frames are RGBA (the layout a browser canvas hands back), while OpenCV works
in BGR, so conversion helpers live here next to the type they produce.
"""

from dataclasses import dataclass

import cv2
import numpy as np

MIN_DIMENSION = 3  # the 3×3 Laplacian needs at least one interior pixel

# ITU-R BT.601 luma weights for R, G, B
_LUMA_R = 0.299
_LUMA_G = 0.587
_LUMA_B = 0.114


class InvalidFrameError(ValueError):
    """Raised when a frame is malformed or too small to analyse."""


@dataclass(frozen=True, eq=False)
class Frame:
    """Immutable H×W×4 RGBA raster, 8 bits per channel, row-major."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        pixels = self.pixels
        if not isinstance(pixels, np.ndarray):
            raise InvalidFrameError(
                f"Frame pixels must be a numpy array, got {type(pixels).__name__}"
            )
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise InvalidFrameError(
                f"Frame must have shape (H, W, 4), got {pixels.shape}"
            )
        if pixels.dtype != np.uint8:
            raise InvalidFrameError(f"Frame must be uint8, got {pixels.dtype}")
        h, w = pixels.shape[:2]
        if w < MIN_DIMENSION or h < MIN_DIMENSION:
            raise InvalidFrameError(
                f"Frame is {w}×{h}; both sides must be at least {MIN_DIMENSION} px"
            )

        frozen = np.array(pixels, copy=True, order="C")
        frozen.flags.writeable = False
        object.__setattr__(self, "pixels", frozen)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def from_bgr(cls, image: np.ndarray) -> "Frame":
        """Build a Frame from an OpenCV gray, BGR or BGRA image."""
        if not isinstance(image, np.ndarray) or image.size == 0:
            raise InvalidFrameError("Cannot build a frame from an empty image")
        if image.dtype != np.uint8:
            raise InvalidFrameError(f"Image must be uint8, got {image.dtype}")

        if image.ndim == 2:
            rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
        elif image.ndim == 3 and image.shape[2] == 3:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
        elif image.ndim == 3 and image.shape[2] == 4:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
        else:
            raise InvalidFrameError(f"Unsupported image shape {image.shape}")
        return cls(rgba)

    @classmethod
    def decode(cls, data: bytes) -> "Frame":
        """Decode an encoded image (JPEG, PNG, ...) into a Frame."""
        arr = np.frombuffer(data, dtype=np.uint8)
        image = cv2.imdecode(arr, cv2.IMREAD_COLOR) if arr.size else None
        if image is None:
            raise InvalidFrameError("Could not decode image data")
        return cls.from_bgr(image)

    def to_bgr(self) -> np.ndarray:
        return cv2.cvtColor(self.pixels, cv2.COLOR_RGBA2BGR)


def to_luminance(frame: Frame, out: np.ndarray | None = None) -> np.ndarray:
    """Return the H×W float64 luma field of ``frame``.

    Alpha is ignored and nothing is clipped; 8-bit input keeps the result in
    [0, 255].  When ``out`` is given it must be a float64 array of shape
    (H, W) and is filled in place.
    """
    px = frame.pixels
    shape = (frame.height, frame.width)
    if out is None:
        out = np.empty(shape, dtype=np.float64)
    elif out.shape != shape or out.dtype != np.float64:
        raise ValueError(
            f"Luminance buffer must be float64 {shape}, got {out.dtype} {out.shape}"
        )

    np.multiply(px[..., 0], _LUMA_R, out=out, dtype=np.float64)
    out += np.multiply(px[..., 1], _LUMA_G, dtype=np.float64)
    out += np.multiply(px[..., 2], _LUMA_B, dtype=np.float64)
    return out
