"""
PixelPulse — Image I/O
Writes exports to disk and turns surfaces into encoded image bytes.
"""

import io
import os
from pathlib import Path

import numpy as np
from PIL import Image

from core.export_models import ExportFormat, generate_filename

EXPORT_DIR_ENV = "PIXELPULSE_EXPORT_DIR"


def get_export_dir(output_dir=None) -> Path:
    """Resolve where exports go: explicit dir > $PIXELPULSE_EXPORT_DIR > ~/Pictures/PixelPulse.

    The directory is created if missing.
    """
    if output_dir is None:
        output_dir = os.environ.get(EXPORT_DIR_ENV) or Path.home() / "Pictures" / "PixelPulse"
    path = Path(output_dir).expanduser()
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_frame(array: np.ndarray, output_path: str):
    """Save a numpy array (H, W, 3) as PNG."""
    img = Image.fromarray(np.clip(array, 0, 255).astype(np.uint8))
    img.save(str(output_path))


def surface_to_png_bytes(surface) -> bytes:
    """Encode the surface's current frame as PNG."""
    buf = io.BytesIO()
    surface.to_image().save(buf, format="PNG")
    return buf.getvalue()


def image_to_png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def save_still(surface, effect, output_dir=None) -> Path:
    """Write the surface as pixelpulse-<effect>-<timestamp>.png and return the path."""
    path = get_export_dir(output_dir) / generate_filename(effect, ExportFormat.PNG)
    save_frame(surface.snapshot(), path)
    return path


def save_animation(data: bytes, effect, output_dir=None) -> Path:
    """Write encoded GIF bytes as pixelpulse-<effect>-<timestamp>.gif and return the path."""
    path = get_export_dir(output_dir) / generate_filename(effect, ExportFormat.GIF)
    path.write_bytes(data)
    return path
