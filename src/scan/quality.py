"""Combine sharpness and boundary results into a capture verdict."""

from dataclasses import dataclass
from typing import Any

from src.config import Settings
from src.scan.boundary import (
    DEFAULT_BINARIZE_THRESHOLD,
    DEFAULT_MIN_AREA_RATIO,
    DEFAULT_MIN_FOREGROUND_SAMPLES,
    DEFAULT_STRIDE,
    BoundaryEstimate,
    Point,
)
from src.scan.sharpness import DEFAULT_SHARPNESS_THRESHOLD, is_sharp

MSG_POSITION_DOCUMENT = "Position document in frame"
MSG_MOVE_CLOSER = "Move closer"
MSG_HOLD_STEADY = "Hold steady - image is blurry"
MSG_READY = "Ready to capture"


@dataclass(frozen=True)
class ScanThresholds:
    """Tunable constants for one scanning deployment."""

    sharpness_threshold: float = DEFAULT_SHARPNESS_THRESHOLD
    binarize_threshold: int = DEFAULT_BINARIZE_THRESHOLD
    sample_stride: int = DEFAULT_STRIDE
    min_area_ratio: float = DEFAULT_MIN_AREA_RATIO
    min_foreground_samples: int = DEFAULT_MIN_FOREGROUND_SAMPLES
    min_fill_percentage: float = 40.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScanThresholds":
        return cls(
            sharpness_threshold=settings.sharpness_threshold,
            binarize_threshold=settings.binarize_threshold,
            sample_stride=settings.sample_stride,
            min_area_ratio=settings.min_area_ratio,
            min_foreground_samples=settings.min_foreground_samples,
            min_fill_percentage=settings.min_fill_percentage,
        )


@dataclass(frozen=True)
class ScanQuality:
    """Outcome of evaluating one frame.  Superseded, never mutated."""

    is_sharp: bool
    blur_score: float
    has_document_edges: bool
    document_corners: tuple[Point, ...] | None
    quality_message: str
    fill_percentage: float

    @property
    def can_capture(self) -> bool:
        """Gating decision: both sharp and framed."""
        return self.is_sharp and self.has_document_edges

    def to_dict(self) -> dict[str, Any]:
        corners = (
            [{"x": p.x, "y": p.y} for p in self.document_corners]
            if self.document_corners is not None
            else None
        )
        return {
            "is_sharp": self.is_sharp,
            "blur_score": self.blur_score,
            "has_document_edges": self.has_document_edges,
            "document_corners": corners,
            "quality_message": self.quality_message,
            "fill_percentage": self.fill_percentage,
            "can_capture": self.can_capture,
        }


def guidance_message(
    has_document_edges: bool,
    fill_percentage: float,
    sharp: bool,
    min_fill_percentage: float = 40.0,
) -> str:
    """Pick the guidance line; the first matching rule wins."""
    if not has_document_edges:
        return MSG_POSITION_DOCUMENT
    # Edges already imply fill > min_fill_percentage, so this never fires
    # with the default thresholds.
    if fill_percentage < min_fill_percentage:
        return MSG_MOVE_CLOSER
    if not sharp:
        return MSG_HOLD_STEADY
    return MSG_READY


def classify(
    blur_score: float,
    boundary: BoundaryEstimate,
    thresholds: ScanThresholds | None = None,
) -> ScanQuality:
    t = thresholds or ScanThresholds()
    sharp = is_sharp(blur_score, t.sharpness_threshold)
    has_edges = boundary.found and boundary.fill_percentage > t.min_fill_percentage

    return ScanQuality(
        is_sharp=sharp,
        blur_score=blur_score,
        has_document_edges=has_edges,
        document_corners=boundary.corners,
        quality_message=guidance_message(
            has_edges, boundary.fill_percentage, sharp, t.min_fill_percentage
        ),
        fill_percentage=boundary.fill_percentage,
    )
