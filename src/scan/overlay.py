"""Preview overlay: boundary polygon plus guidance text."""

import cv2
import numpy as np

from src.scan.quality import ScanQuality

# BGR equivalents of #22c55e and #eab308
GREEN = (94, 197, 34)
AMBER = (8, 179, 234)


def overlay_color(quality: ScanQuality | None) -> tuple[int, int, int]:
    if quality is not None and quality.can_capture:
        return GREEN
    return AMBER


def status_line(quality: ScanQuality) -> str:
    return f"Fill: {round(quality.fill_percentage)}% | Blur: {round(quality.blur_score)}"


def render_overlay(image: np.ndarray, quality: ScanQuality) -> np.ndarray:
    """Return a copy of a BGR ``image`` annotated with ``quality``."""
    out = image.copy()
    color = overlay_color(quality)

    if quality.document_corners is not None:
        pts = np.array([[p.x, p.y] for p in quality.document_corners], dtype=np.int32)
        cv2.polylines(out, [pts], isClosed=True, color=color, thickness=3)

    cv2.putText(
        out, quality.quality_message, (16, 32),
        cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2, cv2.LINE_AA,
    )
    cv2.putText(
        out, status_line(quality), (16, 60),
        cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 1, cv2.LINE_AA,
    )
    return out
