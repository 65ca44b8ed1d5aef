#!/usr/bin/env python3
"""
PixelPulse — FastAPI Backend
Upload an image, tune the pixelation and effect controls, fetch rendered
frames and run still/GIF exports over HTTP.

GIF exports run on the server's event loop: the capture bridge schedules one
step per loop iteration, so requests (progress polling, cancel) interleave
with capture and encoding.
"""

import sys
import os
import logging
import threading

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fastapi import FastAPI, UploadFile, File, HTTPException, Query
from fastapi.responses import Response

from core.animation import AnimationEngine, PlaybackModeError
from core.capture import FrameCaptureBridge
from core.export_models import ExportFormat, ExportRequest, SettingsUpdate, generate_filename
from core.image_io import image_to_png_bytes, save_animation, save_still, surface_to_png_bytes
from core.resampler import ImageLoadError
from core.safety import MAX_FILE_MB, SafetyError, check_extension
from core.scheduler import AsyncioScheduler
from core.surface import Surface
from effects import Effect, list_effects as _list_effects

log = logging.getLogger(__name__)

app = FastAPI(title="PixelPulse")

MAX_UPLOAD_SIZE = MAX_FILE_MB * 1024 * 1024
EXPORT_TICK_SEC = 0.0  # capture steps yield to the loop but don't wait for the display rate

# Structured error recovery hints for user-facing errors
ERROR_RECOVERY = {
    "no_image": {"code": "NO_IMAGE", "hint": "Upload an image first.", "action": "load_file"},
    "invalid_image": {"code": "INVALID_IMAGE", "hint": "Check the file is a PNG, JPEG, GIF, BMP or WebP image.", "action": "load_file"},
    "file_too_large": {"code": "FILE_TOO_LARGE", "hint": f"Images must be under {MAX_FILE_MB}MB.", "action": None},
    "upload_failed": {"code": "UPLOAD_FAILED", "hint": "Check the file format and try again.", "action": "retry"},
    "export_running": {"code": "EXPORT_RUNNING", "hint": "Wait for the export to finish or cancel it.", "action": "cancel"},
    "encoder_unavailable": {"code": "ENCODER_UNAVAILABLE", "hint": "This Pillow build cannot write GIF files.", "action": None},
    "render_failed": {"code": "RENDER_FAILED", "hint": "Try fewer frames or a larger block size.", "action": "retry"},
    "no_result": {"code": "NO_RESULT", "hint": "Run a GIF export first.", "action": None},
}


def _error_detail(key: str, message: str) -> dict:
    """Build structured error detail dict for API clients."""
    recovery = ERROR_RECOVERY.get(key, {})
    return {
        "detail": message,
        "code": recovery.get("code", "UNKNOWN"),
        "hint": recovery.get("hint", ""),
        "action": recovery.get("action"),
    }


# In-memory state for current session
_state = {
    "engine": AnimationEngine(scheduler=AsyncioScheduler()),
    "bridge": None,
    "result": None,  # (filename, gif bytes) of the last finished export
}

# Export progress (polled by clients during export)
_export_progress = {
    "active": False,
    "phase": "idle",  # "capturing", "encoding", "done", "cancelled", "error", "idle"
    "percent": 0,
    "message": "",
    "filename": "",
    "error": "",
}
_export_progress_lock = threading.Lock()


def _set_progress(**kwargs):
    """Thread-safe update of export progress dict."""
    with _export_progress_lock:
        _export_progress.update(kwargs)


def _get_progress():
    """Thread-safe snapshot of export progress dict."""
    with _export_progress_lock:
        return dict(_export_progress)


def _engine() -> AnimationEngine:
    return _state["engine"]


def _require_image() -> AnimationEngine:
    engine = _engine()
    if not engine.has_image:
        raise HTTPException(status_code=400, detail=_error_detail("no_image", "No image loaded"))
    return engine


def _require_no_export():
    bridge = _state["bridge"]
    if bridge is not None and bridge.is_exporting:
        raise HTTPException(status_code=409, detail=_error_detail("export_running", "An export is in progress"))


def _settings() -> dict:
    engine = _engine()
    state = engine.state
    resampler = engine.resampler
    result = {
        "block_size": resampler.block_size,
        "effect": state.effect.value,
        "intensity": state.intensity,
        "speed": state.speed,
        "seed": state.seed,
        "has_image": engine.has_image,
    }
    if engine.has_image:
        if engine.grid_is_stale:
            engine.prepare()
        src = resampler.source
        geometry = engine.geometry
        result.update(
            width=src.width,
            height=src.height,
            output_width=geometry.width,
            output_height=geometry.height,
            grid_width=geometry.grid_width,
            grid_height=geometry.grid_height,
        )
    return result


def _png(data: bytes) -> Response:
    return Response(content=data, media_type="image/png")


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}


@app.get("/api/effects")
async def list_effects():
    """List all animation effects and the current selection."""
    return {"effects": _list_effects(), "current": _engine().state.effect.value}


@app.post("/api/upload")
async def upload_image(file: UploadFile = File(...)):
    """Upload an image. The previous image stays loaded if this one can't be decoded."""
    _require_no_export()
    if not file.filename:
        raise HTTPException(status_code=400, detail=_error_detail("upload_failed", "No filename provided"))
    try:
        check_extension(file.filename)
    except SafetyError as e:
        raise HTTPException(status_code=400, detail=_error_detail("invalid_image", str(e)))

    chunks = []
    total_size = 0
    while chunk := await file.read(1024 * 1024):  # 1MB chunks
        total_size += len(chunk)
        if total_size > MAX_UPLOAD_SIZE:
            raise HTTPException(status_code=413, detail=_error_detail(
                "file_too_large", f"File too large. Maximum size: {MAX_FILE_MB}MB"))
        chunks.append(chunk)

    engine = _engine()
    try:
        engine.resampler.load_image(b"".join(chunks))
    except ImageLoadError as e:
        raise HTTPException(status_code=400, detail=_error_detail("invalid_image", str(e)))
    engine.prepare()
    _state["result"] = None
    log.debug("Uploaded %s (%d bytes)", file.filename, total_size)
    return _settings()


@app.post("/api/settings")
async def update_settings(req: SettingsUpdate):
    """Change any of block size, effect, intensity, speed or glitch seed. Values are clamped."""
    _require_no_export()
    engine = _engine()
    if req.block_size is not None:
        engine.set_block_size(req.block_size)
    if req.effect is not None:
        engine.set_effect(req.effect)
    if req.intensity is not None:
        engine.set_intensity(req.intensity)
    if req.speed is not None:
        engine.set_speed(req.speed)
    if "seed" in req.model_fields_set:
        engine.set_seed(req.seed)
    return _settings()


@app.get("/api/settings")
async def get_settings():
    return _settings()


@app.get("/api/original")
async def get_original():
    """Smoothly scaled copy of the uploaded image (fits 300x300)."""
    engine = _require_image()
    return _png(image_to_png_bytes(engine.resampler.render_original()))


@app.get("/api/pixelated")
async def get_pixelated():
    """The pixelated image without any effect."""
    engine = _require_image()
    _require_no_export()
    if engine.grid_is_stale:
        engine.prepare()
    surface = engine.resampler.render_pixelated(Surface())
    return _png(surface_to_png_bytes(surface))


@app.get("/api/frame")
async def get_frame(t: float = Query(0.0, ge=0.0)):
    """Render the current effect at animation time t (seconds)."""
    engine = _require_image()
    _require_no_export()
    engine.seek(t)
    engine.render()
    return _png(surface_to_png_bytes(engine.surface))


@app.post("/api/export/still")
async def export_still(t: float | None = Query(None, ge=0.0)):
    """Download the current frame (or the frame at t) as PNG. A copy is kept in the export directory."""
    engine = _require_image()
    _require_no_export()
    if t is not None:
        engine.seek(t)
    engine.render()
    try:
        path = save_still(engine.surface, engine.state.effect)
    except OSError as e:
        logging.exception("Still export failed")
        raise HTTPException(status_code=500, detail=_error_detail("render_failed", f"Could not save PNG: {e}"))
    return Response(
        content=surface_to_png_bytes(engine.surface),
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{path.name}"'},
    )


def _on_export_progress(percent: int, message: str):
    phase = "capturing" if percent < 50 else "encoding"
    _set_progress(percent=percent, message=message, phase=phase)


def _on_export_complete(data: bytes):
    effect = _engine().state.effect
    try:
        path = save_animation(data, effect)
        filename = path.name
    except OSError:
        logging.exception("Could not write GIF to the export directory")
        filename = generate_filename(effect, ExportFormat.GIF)
    _state["result"] = (filename, data)
    _set_progress(active=False, phase="done", percent=100, message="Done", filename=filename)


def _on_export_error(error: Exception):
    _set_progress(active=False, phase="error", error=str(error), message="Export failed")


def _on_export_cancel():
    _set_progress(active=False, phase="cancelled", message="Export cancelled")


@app.post("/api/export/gif")
async def export_gif(req: ExportRequest | None = None):
    """Start an animated GIF export. Poll /api/export/progress, then fetch /api/export/result."""
    engine = _require_image()
    _require_no_export()
    req = req or ExportRequest()

    bridge = FrameCaptureBridge(scheduler=AsyncioScheduler(interval=EXPORT_TICK_SEC))
    bridge.set_progress_callback(_on_export_progress)
    bridge.set_complete_callback(_on_export_complete)
    bridge.set_error_callback(_on_export_error)
    bridge.set_cancel_callback(_on_export_cancel)

    _state["result"] = None
    _set_progress(active=True, phase="capturing", percent=0, message="", filename="", error="")
    try:
        started = bridge.start_export(engine, req)
    except PlaybackModeError as e:
        _set_progress(active=False, phase="idle")
        raise HTTPException(status_code=409, detail=_error_detail("export_running", str(e)))

    if not started:
        progress = _get_progress()
        _set_progress(active=False, phase="error")
        raise HTTPException(status_code=503, detail=_error_detail(
            "encoder_unavailable", progress["error"] or "GIF encoder unavailable"))

    _state["bridge"] = bridge
    return {
        "status": "started",
        "frames": req.frames,
        "delay": req.resolve_delay(engine.state.speed),
        "width": engine.surface.width,
        "height": engine.surface.height,
    }


@app.get("/api/export/progress")
async def export_progress():
    """Poll export progress: percent 0-100, message and phase."""
    return _get_progress()


@app.get("/api/export/result")
async def export_result():
    """The last finished GIF."""
    result = _state["result"]
    if result is None:
        raise HTTPException(status_code=404, detail=_error_detail("no_result", "No finished export"))
    filename, data = result
    return Response(
        content=data,
        media_type="image/gif",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/export/cancel")
async def cancel_export():
    """Cancel a running export. Nothing is saved."""
    bridge = _state["bridge"]
    if bridge is None or not bridge.is_exporting:
        return {"status": "no_export_running"}
    bridge.cancel()
    return {"status": "cancel_requested"}


@app.post("/api/reset")
async def reset():
    """Drop the image and restore default controls."""
    bridge = _state["bridge"]
    if bridge is not None:
        bridge.cancel()
    engine = _engine()
    engine.dispose()
    engine.set_block_size(8)
    engine.set_effect(Effect.GLITCH)
    engine.set_intensity(5)
    engine.set_speed(5)
    engine.set_seed(None)
    _state["bridge"] = None
    _state["result"] = None
    _set_progress(active=False, phase="idle", percent=0, message="", filename="", error="")
    return _settings()


def start(host: str = "127.0.0.1", port: int = 7860):
    import uvicorn
    print(f"PixelPulse — launching at http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="warning")


if __name__ == "__main__":
    start()
