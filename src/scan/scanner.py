"""Frame evaluation and still encoding for one scanning session.

Usage::

    scanner = DocumentScanner(ScanThresholds.from_settings(settings))
    quality = scanner.evaluate(frame)
    if quality.can_capture:
        still = scanner.capture(frame)
    scanner.release()
"""

import base64
import logging
from dataclasses import dataclass

import cv2
import numpy as np

from src.scan.boundary import detect_boundary
from src.scan.frame import Frame, to_luminance
from src.scan.quality import ScanQuality, ScanThresholds, classify
from src.scan.sharpness import compute_blur_score

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 95


@dataclass(frozen=True)
class CapturedImage:
    """An encoded still, independent of the live frame stream."""

    data: bytes
    width: int
    height: int
    content_type: str = "image/jpeg"

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


class _ScratchBuffers:
    """Luminance and filter-response arrays reused across evaluations."""

    def __init__(self, height: int, width: int) -> None:
        self.shape = (height, width)
        self.luma = np.empty(self.shape, dtype=np.float64)
        self.response = np.empty(self.shape, dtype=np.float64)


class DocumentScanner:
    """Evaluates frames and encodes stills.

    Owns scratch buffers sized to the most recent frame.  They only save
    allocations; results never depend on them.  Not safe for concurrent use:
    one scanner belongs to one session, which evaluates serially.
    """

    def __init__(
        self,
        thresholds: ScanThresholds | None = None,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
    ) -> None:
        self._thresholds = thresholds or ScanThresholds()
        self._jpeg_quality = jpeg_quality
        self._scratch: _ScratchBuffers | None = None

    @property
    def thresholds(self) -> ScanThresholds:
        return self._thresholds

    def evaluate(self, frame: Frame) -> ScanQuality:
        scratch = self._buffers_for(frame)
        t = self._thresholds

        luma = to_luminance(frame, out=scratch.luma)
        blur_score = compute_blur_score(luma, out=scratch.response)
        boundary = detect_boundary(
            luma,
            binarize_threshold=t.binarize_threshold,
            stride=t.sample_stride,
            min_area_ratio=t.min_area_ratio,
            min_foreground_samples=t.min_foreground_samples,
        )
        quality = classify(blur_score, boundary, t)
        logger.debug(
            "Evaluated %dx%d frame: blur=%.1f fill=%.1f%% capture=%s",
            frame.width,
            frame.height,
            quality.blur_score,
            quality.fill_percentage,
            quality.can_capture,
        )
        return quality

    def capture(self, frame: Frame) -> CapturedImage:
        """Encode ``frame`` at full resolution as a JPEG still."""
        ok, buf = cv2.imencode(
            ".jpg",
            frame.to_bgr(),
            [cv2.IMWRITE_JPEG_QUALITY, self._jpeg_quality],
        )
        if not ok:
            raise RuntimeError("Failed to encode captured frame as JPEG")
        return CapturedImage(
            data=buf.tobytes(), width=frame.width, height=frame.height
        )

    def release(self) -> None:
        """Drop the scratch buffers."""
        self._scratch = None

    def _buffers_for(self, frame: Frame) -> _ScratchBuffers:
        shape = (frame.height, frame.width)
        if self._scratch is None or self._scratch.shape != shape:
            self._scratch = _ScratchBuffers(*shape)
        return self._scratch
