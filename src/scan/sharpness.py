"""Frame sharpness scoring via the mean squared 8-neighbour Laplacian."""

import cv2
import numpy as np

from src.scan.frame import MIN_DIMENSION, InvalidFrameError

DEFAULT_SHARPNESS_THRESHOLD = 100.0

_LAPLACIAN_8 = np.array(
    [
        [-1.0, -1.0, -1.0],
        [-1.0, 8.0, -1.0],
        [-1.0, -1.0, -1.0],
    ],
    dtype=np.float64,
)


def compute_blur_score(luma: np.ndarray, out: np.ndarray | None = None) -> float:
    """Return the mean squared Laplacian response over the interior pixels.

    Higher values mean more high-frequency energy, i.e. a sharper frame.  A
    flat field scores zero.  The one-pixel border is excluded, so the mean
    is taken over ``(W - 2) * (H - 2)`` responses.

    ``out`` may be a float64 (H, W) scratch array for the filter response.
    """
    if luma.ndim != 2:
        raise InvalidFrameError(f"Luminance field must be 2-D, got {luma.shape}")
    h, w = luma.shape
    if w < MIN_DIMENSION or h < MIN_DIMENSION:
        raise InvalidFrameError(
            f"Luminance field is {w}×{h}; both sides must be at least "
            f"{MIN_DIMENSION} px"
        )

    if out is None:
        response = cv2.filter2D(luma, cv2.CV_64F, _LAPLACIAN_8)
    else:
        response = cv2.filter2D(luma, cv2.CV_64F, _LAPLACIAN_8, dst=out)

    interior = response[1:-1, 1:-1]
    return float(np.square(interior).sum() / ((w - 2) * (h - 2)))


def is_sharp(blur_score: float, threshold: float = DEFAULT_SHARPNESS_THRESHOLD) -> bool:
    """True if ``blur_score`` strictly exceeds ``threshold``."""
    return blur_score > threshold
