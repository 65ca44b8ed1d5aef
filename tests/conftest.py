"""
Conftest: shared fixtures for all PixelPulse test modules.

1. Synthetic images (solid, gradient, transparent) as PIL images and PNG bytes
2. Engines wired to a ManualScheduler so tests drive ticks explicitly
3. Export directory redirected into tmp_path
"""

import io
import os
import sys

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.animation import AnimationEngine
from core.resampler import Resampler
from core.scheduler import ManualScheduler


def _solid(width=64, height=64, color=(255, 0, 0, 255)):
    return Image.new("RGBA", (width, height), color)


def _gradient(width=120, height=80):
    """Horizontal red ramp, vertical blue ramp, constant green (not blank)."""
    frame = np.zeros((height, width, 4), dtype=np.uint8)
    frame[:, :, 0] = np.linspace(0, 255, width, dtype=np.uint8)[None, :]
    frame[:, :, 1] = 128
    frame[:, :, 2] = np.linspace(255, 0, height, dtype=np.uint8)[:, None]
    frame[:, :, 3] = 255
    return Image.fromarray(frame)


def _png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def red_image():
    """64x64 solid opaque red."""
    return _solid()


@pytest.fixture
def red_png():
    return _png_bytes(_solid())


@pytest.fixture
def gradient_image():
    return _gradient()


@pytest.fixture
def gradient_png():
    return _png_bytes(_gradient())


@pytest.fixture
def half_transparent_image():
    """64x64: left half opaque green, right half fully transparent."""
    frame = np.zeros((64, 64, 4), dtype=np.uint8)
    frame[:, :32] = (0, 200, 0, 255)
    return Image.fromarray(frame)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def engine(red_image, scheduler):
    """Engine with the 64x64 red image loaded at block size 8."""
    eng = AnimationEngine(resampler=Resampler(block_size=8), scheduler=scheduler)
    eng.resampler.load_image(red_image)
    eng.prepare()
    return eng


@pytest.fixture
def gradient_engine(gradient_image, scheduler):
    eng = AnimationEngine(resampler=Resampler(block_size=8), scheduler=scheduler)
    eng.resampler.load_image(gradient_image)
    eng.prepare()
    return eng


@pytest.fixture(autouse=True)
def _export_dir(tmp_path, monkeypatch):
    """Keep every export inside the test's tmp dir."""
    out = tmp_path / "exports"
    monkeypatch.setenv("PIXELPULSE_EXPORT_DIR", str(out))
    return out
