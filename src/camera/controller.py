"""Capture controller: polls a frame source and gates the still capture.

One ``CaptureController`` drives one capture session:

1. ``start()`` opens the frame source and begins polling it every
   ``poll_interval_ms``.
2. Each tick samples a frame, evaluates it with a ``DocumentScanner`` and
   publishes the ``ScanQuality`` (``latest_quality`` and the optional
   ``on_quality`` callback).
3. ``capture()`` grabs a full-resolution still when the latest verdict
   permits it and stops polling; ``retake()`` discards it and resumes;
   ``confirm()`` hands it over and ends the session.

Evaluations never overlap: a tick that falls due while the previous one is
still being evaluated or published is skipped.

Usage::

    async with CaptureController(CameraFrameSource(0)) as controller:
        ...
        still = await controller.capture()
        if still is not None:
            image = await controller.confirm()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from src.camera.source import CameraUnavailableError, FrameSource
from src.config import Settings
from src.scan.overlay import overlay_color
from src.scan.quality import ScanQuality, ScanThresholds
from src.scan.scanner import DEFAULT_JPEG_QUALITY, CapturedImage, DocumentScanner

logger = logging.getLogger(__name__)

QualityCallback = Callable[[ScanQuality], Awaitable[None]]

_DEFAULT_POLL_INTERVAL_MS = 500
_DEFAULT_MAX_READ_FAILURES = 5


class SessionState(str, Enum):
    SCANNING = "scanning"
    CAPTURED = "captured"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CONFIRMED, SessionState.CANCELLED)


class SessionStateError(RuntimeError):
    """Raised when an action is not valid in the session's current state."""


class CaptureController:
    def __init__(
        self,
        source: FrameSource,
        thresholds: ScanThresholds | None = None,
        *,
        poll_interval_ms: int = _DEFAULT_POLL_INTERVAL_MS,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        max_read_failures: int = _DEFAULT_MAX_READ_FAILURES,
        on_quality: QualityCallback | None = None,
    ) -> None:
        self._source = source
        self._thresholds = thresholds or ScanThresholds()
        self._poll_interval = poll_interval_ms / 1000
        self._jpeg_quality = jpeg_quality
        self._max_read_failures = max_read_failures
        self._on_quality = on_quality

        self._state = SessionState.SCANNING
        self._scanner: DocumentScanner | None = None
        self._poll_task: asyncio.Task | None = None
        # Bumped whenever polling starts or stops; a loop that sees a newer
        # generation than its own exits.
        self._generation = 0
        self._in_flight = False
        self._read_failures = 0

        self._latest: ScanQuality | None = None
        self._captured: CapturedImage | None = None
        self._error: Exception | None = None

    @classmethod
    def from_settings(
        cls,
        source: FrameSource,
        settings: Settings,
        on_quality: QualityCallback | None = None,
    ) -> "CaptureController":
        return cls(
            source,
            ScanThresholds.from_settings(settings),
            poll_interval_ms=settings.poll_interval_ms,
            jpeg_quality=settings.jpeg_quality,
            max_read_failures=settings.max_read_failures,
            on_quality=on_quality,
        )

    async def __aenter__(self) -> "CaptureController":
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def latest_quality(self) -> ScanQuality | None:
        return self._latest

    @property
    def captured_image(self) -> CapturedImage | None:
        return self._captured

    @property
    def error(self) -> Exception | None:
        """Resource failure that stopped polling, if any."""
        return self._error

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def can_capture(self) -> bool:
        return (
            self._state is SessionState.SCANNING
            and self._latest is not None
            and self._latest.can_capture
        )

    @property
    def overlay_color(self) -> tuple[int, int, int]:
        return overlay_color(self._latest)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open the frame source and begin polling.

        Raises:
            CameraUnavailableError: If the source cannot be opened.
            SessionStateError: If the session already ended.
        """
        if self._state.is_terminal:
            raise SessionStateError(f"Cannot start a {self._state.value} session")
        if self._scanner is not None:
            return

        self._source.open()
        self._scanner = DocumentScanner(self._thresholds, self._jpeg_quality)
        self._error = None
        self._read_failures = 0
        logger.info("Capture session started (state=%s)", self._state.value)

        if self._state is SessionState.SCANNING:
            self._start_polling()

    async def stop(self) -> None:
        """Halt polling and release the source and scratch buffers.  Idempotent."""
        try:
            await self._stop_polling()
        finally:
            if self._scanner is not None:
                self._scanner.release()
                self._scanner = None
                self._source.close()
                logger.info("Capture session stopped (state=%s)", self._state.value)

    async def tick(self) -> ScanQuality | None:
        """Run one evaluation cycle against the current frame.

        Returns the published ScanQuality, or None if the tick was skipped
        because a previous cycle is still in flight or the frame could not
        be read.

        Raises:
            SessionStateError: If the session is not started and scanning.
            CameraUnavailableError: After ``max_read_failures`` consecutive
                failed reads.
        """
        if self._scanner is None:
            raise SessionStateError("Session is not started")
        if self._state is not SessionState.SCANNING:
            raise SessionStateError(f"Cannot evaluate frames while {self._state.value}")
        if self._in_flight:
            logger.debug("Evaluation still in flight, skipping tick")
            return None

        self._in_flight = True
        try:
            try:
                frame = self._source.read_frame()
            except CameraUnavailableError as exc:
                self._read_failures += 1
                logger.warning(
                    "Frame read failed (%d/%d): %s",
                    self._read_failures,
                    self._max_read_failures,
                    exc,
                )
                if self._read_failures >= self._max_read_failures:
                    self._error = exc
                    raise
                return None

            self._read_failures = 0
            quality = self._scanner.evaluate(frame)
            self._latest = quality
            if self._on_quality is not None:
                await self._on_quality(quality)
            return quality
        finally:
            self._in_flight = False

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def capture(self) -> CapturedImage | None:
        """Grab a full-resolution still if the latest verdict permits it.

        Returns None, with no state change, when capture is not permitted.

        Raises:
            SessionStateError: If the session is not started and scanning.
            CameraUnavailableError: If the still cannot be read.
        """
        if self._scanner is None:
            raise SessionStateError("Session is not started")
        if self._state is not SessionState.SCANNING:
            raise SessionStateError(f"Cannot capture while {self._state.value}")

        if not self.can_capture:
            logger.info(
                "Capture rejected: %s",
                self._latest.quality_message if self._latest else "no frame evaluated yet",
            )
            return None

        frame = self._source.read_still()
        still = self._scanner.capture(frame)
        await self._stop_polling()
        self._captured = still
        self._state = SessionState.CAPTURED
        logger.info(
            "Captured %dx%d still (%d bytes)", still.width, still.height, len(still.data)
        )
        return still

    async def retake(self) -> None:
        """Discard the captured still and resume scanning."""
        if self._state is not SessionState.CAPTURED:
            raise SessionStateError(f"Cannot retake while {self._state.value}")

        self._captured = None
        self._latest = None
        self._state = SessionState.SCANNING
        logger.info("Still discarded, resuming scanning")
        if self._scanner is not None:
            self._start_polling()

    async def confirm(self) -> CapturedImage:
        """Hand over the captured still and end the session."""
        if self._state is not SessionState.CAPTURED or self._captured is None:
            raise SessionStateError(f"Cannot confirm while {self._state.value}")

        still = self._captured
        self._state = SessionState.CONFIRMED
        await self.stop()
        return still

    async def cancel(self) -> None:
        """End the session without producing a document."""
        if self._state.is_terminal:
            raise SessionStateError(f"Cannot cancel a {self._state.value} session")

        self._captured = None
        self._state = SessionState.CANCELLED
        await self.stop()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _start_polling(self) -> None:
        self._generation += 1
        self._poll_task = asyncio.create_task(
            self._poll_loop(self._generation),
            name=f"scan-poll-{self._generation}",
        )

    async def _stop_polling(self) -> None:
        self._generation += 1
        task, self._poll_task = self._poll_task, None
        if task is None or task is asyncio.current_task():
            # Called from inside the loop (e.g. an on_quality callback);
            # the generation bump makes it exit on its own.
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _poll_loop(self, generation: int) -> None:
        loop = asyncio.get_running_loop()
        interval = self._poll_interval
        next_tick = loop.time() + interval

        try:
            while True:
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
                if generation != self._generation:
                    return

                await self.tick()
                if generation != self._generation:
                    return

                next_tick += interval
                now = loop.time()
                if now > next_tick:
                    skipped = int((now - next_tick) // interval) + 1
                    next_tick += skipped * interval
                    logger.debug("Evaluation overran, skipped %d tick(s)", skipped)
        except asyncio.CancelledError:
            raise
        except CameraUnavailableError as exc:
            logger.error("Stopping scan polling, frame source unavailable: %s", exc)
        except Exception as exc:
            logger.exception("Unexpected error in scan polling: %s", exc)
            self._error = exc
