"""Axis-aligned document boundary estimation on a binarized luma field.

Pixels at or below the binarization threshold are foreground, so the
detector looks for a *dark* object on a lighter background.  The field is
sampled on a sparse grid and the bounding box of all foreground samples is
accepted as the document when it is large enough and well populated.
"""

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

DEFAULT_BINARIZE_THRESHOLD = 128
DEFAULT_STRIDE = 4
DEFAULT_MIN_AREA_RATIO = 0.25
DEFAULT_MIN_FOREGROUND_SAMPLES = 100


class Point(NamedTuple):
    x: int
    y: int


@dataclass(frozen=True)
class BoundaryEstimate:
    """Detected document rectangle and how much of the frame it covers."""

    # Top-left, top-right, bottom-right, bottom-left; None if nothing qualified.
    corners: tuple[Point, Point, Point, Point] | None
    fill_percentage: float  # 0–100

    @property
    def found(self) -> bool:
        return self.corners is not None


def binarize(luma: np.ndarray, threshold: int = DEFAULT_BINARIZE_THRESHOLD) -> np.ndarray:
    """Return a uint8 mask: 0 for foreground (luma <= threshold), 255 otherwise."""
    return np.where(luma > threshold, 255, 0).astype(np.uint8)


def detect_boundary(
    luma: np.ndarray,
    *,
    binarize_threshold: int = DEFAULT_BINARIZE_THRESHOLD,
    stride: int = DEFAULT_STRIDE,
    min_area_ratio: float = DEFAULT_MIN_AREA_RATIO,
    min_foreground_samples: int = DEFAULT_MIN_FOREGROUND_SAMPLES,
) -> BoundaryEstimate:
    """Estimate the document bounding rectangle in ``luma``.

    Args:
        luma: H×W luminance field.
        binarize_threshold: Luma at or below this is foreground.
        stride: Sample every ``stride``-th pixel along both axes.
        min_area_ratio: Box area must exceed this fraction of the frame.
        min_foreground_samples: Sampled foreground count must exceed this.

    Returns:
        BoundaryEstimate with four corners and the box's share of the frame
        in percent, or no corners and 0 fill if the candidate was rejected.
    """
    if stride < 1:
        raise ValueError(f"stride must be >= 1, got {stride}")

    h, w = luma.shape
    frame_area = w * h

    mask = binarize(luma[::stride, ::stride], binarize_threshold)
    rows, cols = np.nonzero(mask == 0)
    foreground_count = int(rows.size)

    if foreground_count <= min_foreground_samples:
        return BoundaryEstimate(corners=None, fill_percentage=0.0)

    x1 = int(cols.min()) * stride
    y1 = int(rows.min()) * stride
    x2 = int(cols.max()) * stride
    y2 = int(rows.max()) * stride
    area = (x2 - x1) * (y2 - y1)

    if area <= frame_area * min_area_ratio:
        return BoundaryEstimate(corners=None, fill_percentage=0.0)

    corners = (Point(x1, y1), Point(x2, y1), Point(x2, y2), Point(x1, y2))
    return BoundaryEstimate(
        corners=corners,
        fill_percentage=100.0 * area / frame_area,
    )
