"""
PixelPulse — Effects Registry
One entry per animation effect, keyed by the Effect enum.
Every effect is a function: (grid, block_size, intensity, time, rng) -> list[Rect]
"""

from enum import Enum

import numpy as np

from effects.static import static
from effects.glitch import glitch
from effects.motion import floating, wave
from effects.sparkle import sparkle
from effects.color import rainbow

MIN_INTENSITY = 1
MAX_INTENSITY = 10


class Effect(str, Enum):
    """The fixed set of animation effects."""
    NONE = "none"
    GLITCH = "glitch"
    FLOAT = "float"
    SPARKLE = "sparkle"
    WAVE = "wave"
    RAINBOW = "rainbow"


# Master registry: effect -> (function, description)
EFFECTS = {
    Effect.NONE: {
        "fn": static,
        "description": "Plain pixel art, no animation",
    },
    Effect.GLITCH: {
        "fn": glitch,
        "description": "Random row tearing with a pulsing red/cyan channel split",
    },
    Effect.FLOAT: {
        "fn": floating,
        "description": "Whole picture bobs over a soft shadow and breathes in brightness",
    },
    Effect.SPARKLE: {
        "fn": sparkle,
        "description": "White glints pulse on random cells, hopping every third of a second",
    },
    Effect.WAVE: {
        "fn": wave,
        "description": "Rows sway and columns ripple on two sine frequencies",
    },
    Effect.RAINBOW: {
        "fn": rainbow,
        "description": "Hue flows diagonally across the grid with a saturation boost",
    },
}

_missing = set(Effect) - set(EFFECTS)
if _missing:
    raise RuntimeError(f"Effects without a renderer: {sorted(e.value for e in _missing)}")


def parse_effect(name) -> Effect:
    """Resolve an Effect from an enum member or its name ('static' is accepted for none)."""
    if isinstance(name, Effect):
        return name
    key = str(name).strip().lower()
    if key == "static":
        return Effect.NONE
    try:
        return Effect(key)
    except ValueError:
        valid = ", ".join(e.value for e in Effect)
        raise ValueError(f"Unknown effect: {name}. Available: {valid}") from None


def clamp_intensity(value) -> int:
    return max(MIN_INTENSITY, min(MAX_INTENSITY, int(value)))


def get_effect(name):
    """Look up an effect's render function."""
    return EFFECTS[parse_effect(name)]["fn"]


def list_effects() -> list[dict]:
    return [{"name": e.value, "description": entry["description"]} for e, entry in EFFECTS.items()]


def render_effect(effect, grid: np.ndarray, geometry, intensity: int = 5, time: float = 0.0, rng=None):
    """Produce the draw commands for one frame.

    Args:
        effect: Effect member or name.
        grid: (grid_h, grid_w, 4) uint8 RGBA color grid. Never modified.
        geometry: OutputGeometry the grid was derived for (supplies block size).
        intensity: 1-10 amplitude.
        time: Animation clock in seconds.
        rng: numpy Generator for effects with per-frame randomness (glitch).

    Returns:
        List of Rect commands in paint order.
    """
    if grid is None or geometry is None:
        return []
    fn = get_effect(effect)
    return fn(grid, geometry.block_size, intensity=clamp_intensity(intensity), time=float(time), rng=rng)
