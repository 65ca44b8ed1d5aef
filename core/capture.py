"""
PixelPulse — Frame Capture Bridge
Drives the animation engine at a fixed logical step, independent of display
timing, and feeds every Nth rendered tick to a GIF encoder.

Per scheduled step:  advance clock → render → maybe capture → schedule next

Progress runs in two phases:
    0-50    capturing   floor(captured / total * 50)
    50-100  encoding    50 + floor(encoder_progress * 50)

The engine is taken over with begin_export() before the first step and
handed back with end_export() once capture stops, whether it finished, failed
or was cancelled.
"""

import logging
import math

from core.animation import PlaybackModeError
from core.encoder import EncoderUnavailable, EncodingFailure, GifEncoder
from core.export_models import ExportRequest
from core.scheduler import ManualScheduler

log = logging.getLogger(__name__)

CAPTURE_SHARE = 50  # percent of the progress bar spent capturing


class FrameCaptureBridge:
    """Captures an animated export from an AnimationEngine.

    encoder_factory: callable(width, height, quality=, scheduler=) returning an
        object with on/add_frame/render/abort. Raising EncoderUnavailable (or
        being None) aborts the export before anything is captured.
    scheduler: where capture steps run. Defaults to the engine's scheduler.
    """

    def __init__(self, encoder_factory=GifEncoder, scheduler=None):
        self.encoder_factory = encoder_factory
        self.scheduler = scheduler
        self.encoder = None
        self.is_exporting = False
        self.frames_captured = 0
        self.total_frames = 30
        self.frame_delay = 50

        self.on_progress = None
        self.on_complete = None
        self.on_error = None
        self.on_cancel = None

        self._engine = None
        self._lease = None
        self._active_scheduler = None
        self._interval = 2
        self._ticks = 0

    def set_progress_callback(self, callback):
        """callback(percent: int, message: str)"""
        self.on_progress = callback

    def set_complete_callback(self, callback):
        """callback(gif_bytes: bytes)"""
        self.on_complete = callback

    def set_error_callback(self, callback):
        """callback(error: Exception)"""
        self.on_error = callback

    def set_cancel_callback(self, callback):
        self.on_cancel = callback

    # --- Lifecycle ---

    def start_export(self, engine, request=None) -> bool:
        """Begin capturing. Returns True if the capture loop was started.

        Returns False without touching the engine when no image is loaded or
        when the encoder cannot be created (reported as EncoderUnavailable).
        """
        if self.is_exporting:
            raise PlaybackModeError("An export is already running")
        if request is None:
            request = ExportRequest()
        elif isinstance(request, dict):
            request = ExportRequest(**request)

        if not engine.has_image:
            return False
        if engine.grid_is_stale:
            engine.prepare()

        scheduler = self.scheduler or engine.scheduler
        width, height = engine.surface.size
        try:
            if self.encoder_factory is None:
                raise EncoderUnavailable("No GIF encoder is configured")
            encoder = self.encoder_factory(width, height, quality=request.quality, scheduler=scheduler)
        except EncoderUnavailable as e:
            log.warning("Export aborted: %s", e)
            self._notify_error(e)
            return False

        encoder.on("progress", self._on_encoder_progress)
        encoder.on("finished", self._on_encoder_finished)
        encoder.on("error", self._on_encoder_error)

        self.encoder = encoder
        self.total_frames = request.frames
        self.frame_delay = request.resolve_delay(engine.state.speed)
        self.frames_captured = 0
        self._interval = request.capture_interval
        self._ticks = 0
        self._engine = engine
        self._active_scheduler = scheduler

        self._lease = engine.begin_export()
        self.is_exporting = True
        log.debug("Export started: %d frames every %d ticks, %dms delay",
                  self.total_frames, self._interval, self.frame_delay)
        self._report(0, "Preparing export...")
        scheduler.schedule(self._capture_step)
        return True

    def cancel(self):
        """Abort the encoder. The capture loop stops at its next step; nothing is delivered."""
        if not self.is_exporting:
            return
        self.is_exporting = False
        if self.encoder is not None:
            self.encoder.abort()
            self.encoder = None
        log.debug("Export cancelled after %d frames", self.frames_captured)
        # Still capturing: the pending step hands the engine back and reports
        if self._lease is None:
            self._notify_cancel()

    # --- Capture loop ---

    def _capture_step(self):
        if not self.is_exporting:
            self._release()
            self._notify_cancel()
            return

        try:
            if self.frames_captured >= self.total_frames:
                self._release()
                self._report(CAPTURE_SHARE, "Encoding GIF...")
                self.encoder.render()
                return

            engine = self._engine
            engine.advance()
            engine.render()
            self._ticks += 1
            if self._ticks % self._interval == 0:
                self._add_frame(engine)
        except Exception as e:
            log.exception("Export failed at frame %d", self.frames_captured + 1)
            failure = e if isinstance(e, EncodingFailure) else EncodingFailure(
                f"Export failed at frame {self.frames_captured + 1}/{self.total_frames}: {e}"
            )
            self._abort(failure)
            return

        self._active_scheduler.schedule(self._capture_step)

    def _add_frame(self, engine):
        self.encoder.add_frame(engine.surface.snapshot(), self.frame_delay)
        self.frames_captured += 1
        percent = math.floor(self.frames_captured / self.total_frames * CAPTURE_SHARE)
        self._report(percent, f"Capturing frame {self.frames_captured}/{self.total_frames}...")

    def _release(self):
        if self._lease is not None:
            self._engine.end_export(self._lease)
            self._lease = None

    def _abort(self, error: Exception):
        self.is_exporting = False
        if self.encoder is not None:
            self.encoder.abort()
            self.encoder = None
        self._release()
        self._notify_error(error)

    # --- Encoder events ---

    def _on_encoder_progress(self, fraction: float):
        if self.is_exporting:
            self._report(CAPTURE_SHARE + math.floor(fraction * (100 - CAPTURE_SHARE)), "Encoding GIF...")

    def _on_encoder_finished(self, data: bytes):
        if not self.is_exporting:
            return
        self.is_exporting = False
        self.encoder = None
        log.debug("Export finished: %d bytes", len(data))
        if self.on_complete:
            self.on_complete(data)

    def _on_encoder_error(self, error: Exception):
        if not self.is_exporting:
            return
        self._abort(error)

    # --- Notifications ---

    def _report(self, percent: int, message: str):
        if self.on_progress:
            self.on_progress(percent, message)

    def _notify_error(self, error: Exception):
        if self.on_error:
            self.on_error(error)

    def _notify_cancel(self):
        if self.on_cancel:
            self.on_cancel()


def export_gif(engine, request=None, on_progress=None, encoder_factory=GifEncoder) -> bytes:
    """Run a whole export to completion on a private ManualScheduler.

    Returns:
        GIF file contents.

    Raises:
        ValueError: No image is loaded.
        EncoderUnavailable / EncodingFailure: As reported by the bridge.
    """
    scheduler = ManualScheduler()
    bridge = FrameCaptureBridge(encoder_factory=encoder_factory, scheduler=scheduler)
    result = {}
    bridge.set_progress_callback(on_progress)
    bridge.set_complete_callback(lambda data: result.update(data=data))
    bridge.set_error_callback(lambda error: result.update(error=error))

    started = bridge.start_export(engine, request)
    if "error" in result:
        raise result["error"]
    if not started:
        raise ValueError("No image loaded")

    scheduler.run_until_idle()
    if "error" in result:
        raise result["error"]
    return result["data"]
