"""
PixelPulse — Motion Effects
float: the whole picture bobs as one piece over a soft shadow and breathes.
wave: rows and columns ripple on two sine frequencies.
"""

import math

from core.surface import Rect
from effects.static import visible_cells

SHADOW_OFFSET = 4  # pixels, down-right
SHADOW_ALPHA = 0.3


def float_offset(intensity: int, time: float) -> tuple[float, float]:
    """(dx, dy) of the rigid bob at a given time."""
    return math.cos(time * 1.5) * intensity * 0.5, math.sin(time * 2) * intensity * 2


def breathe_factor(intensity: int, time: float) -> float:
    return 0.9 + math.sin(time * 3) * 0.1 * (intensity / 10)


def floating(grid, block_size, intensity=5, time=0.0, rng=None):
    """Rigid-body float with a flat black shadow and brightness breathing."""
    dx, dy = float_offset(intensity, time)
    breathe = breathe_factor(intensity, time)
    cells = list(visible_cells(grid))

    commands = [
        Rect(x * block_size + dx + SHADOW_OFFSET, y * block_size + dy + SHADOW_OFFSET,
             block_size, block_size, (0, 0, 0), SHADOW_ALPHA)
        for x, y, _, _, _, _ in cells
    ]
    for x, y, r, g, b, a in cells:
        color = (
            min(255, math.floor(r * breathe)),
            min(255, math.floor(g * breathe)),
            min(255, math.floor(b * breathe)),
        )
        commands.append(Rect(x * block_size + dx, y * block_size + dy,
                             block_size, block_size, color, a / 255))
    return commands


def wave_offsets(x: int, y: int, intensity: int, time: float) -> tuple[float, float]:
    """(dx, dy) in pixels for a cell: row-level sway plus a per-column ripple."""
    dx = math.sin(y * 0.3 + time * 3) * intensity * 0.8
    dy = math.sin(y * 0.2 + time * 2) * intensity * 0.3
    dy += math.sin(x * 0.4 + time * 4) * intensity * 0.2
    return dx, dy


def wave(grid, block_size, intensity=5, time=0.0, rng=None):
    """Two-frequency sinusoidal distortion."""
    commands = []
    for x, y, r, g, b, a in visible_cells(grid):
        dx, dy = wave_offsets(x, y, intensity, time)
        commands.append(Rect(x * block_size + dx, y * block_size + dy,
                             block_size, block_size, (r, g, b), a / 255))
    return commands
