"""
PixelPulse -- Export Settings Models

Pydantic models for animated and still exports, plus the control settings the
HTTP API accepts. Field limits mirror the engine's clamps.
"""

from __future__ import annotations

import math
import time as _time
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from effects import Effect, parse_effect

MAX_EXPORT_FRAMES = 300
FILENAME_PREFIX = "pixelpulse"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ExportFormat(str, Enum):
    """Output file type."""
    GIF = "gif"  # Looping animation
    PNG = "png"  # Single still frame


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class ExportRequest(BaseModel):
    """Animated export options.

    Defaults produce a 30-frame loop, capturing every 2nd tick, with a frame
    delay derived from the animation speed (faster speed, shorter delay).
    """
    frames: int = Field(
        default=30,
        gt=0,
        le=MAX_EXPORT_FRAMES,
        description="Number of frames in the exported loop.",
    )
    delay: int | None = Field(
        default=None,
        ge=1,
        description="Per-frame delay in ms. None = floor(100 / speed).",
    )
    quality: int = Field(
        default=10,
        ge=1,
        le=30,
        description="Palette quality. Lower = better colors, slower encode.",
    )
    capture_interval: int = Field(
        default=2,
        ge=1,
        description="Capture one frame every N rendered ticks.",
    )

    def resolve_delay(self, speed: int) -> int:
        """Delay in ms, deriving it from the animation speed when not set."""
        if self.delay is not None:
            return self.delay
        return math.floor(100 / max(1, speed))


class SettingsUpdate(BaseModel):
    """Partial update of the pixelation/effect controls. Out-of-range numbers are clamped by the engine."""
    block_size: int | None = None
    effect: Effect | None = None
    intensity: int | None = None
    speed: int | None = None
    seed: int | None = None

    @field_validator("effect", mode="before")
    @classmethod
    def _parse_effect(cls, value):
        if value is None:
            return None
        return parse_effect(value)


# ---------------------------------------------------------------------------
# Filenames
# ---------------------------------------------------------------------------

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    """Non-negative integer in lowercase base 36."""
    value = int(value)
    if value < 0:
        raise ValueError("to_base36 expects a non-negative integer")
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if value == 0:
            break
    return "".join(reversed(digits))


def generate_filename(effect, fmt: ExportFormat | str = ExportFormat.GIF, now_ms: int | None = None) -> str:
    """pixelpulse-<effect>-<base36 millisecond timestamp>.<ext>"""
    effect = parse_effect(effect)
    fmt = ExportFormat(fmt)
    if now_ms is None:
        now_ms = int(_time.time() * 1000)
    return f"{FILENAME_PREFIX}-{effect.value}-{to_base36(now_ms)}.{fmt.value}"
