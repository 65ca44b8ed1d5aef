"""
PixelPulse — Sparkle Effect
White glints that pulse over the static picture.

Glint positions come from a seeded formula keyed on floor(time * 3), so each
glint holds its cell for about a third of a second before jumping, instead of
flickering to a new place every frame.
"""

import math

from core.surface import Rect
from effects.static import ALPHA_SKIP, static

WHITE = (255, 255, 255)
SPARKLES_PER_INTENSITY = 5
DRAW_THRESHOLD = 0.3
HALO_THRESHOLD = 0.6


def seeded_random(seed: int) -> float:
    """Deterministic pseudo-random value in [0, 1) for an integer seed."""
    x = math.sin(seed) * 10000
    return x - math.floor(x)


def sparkle_position(index: int, time: float, grid_width: int, grid_height: int) -> tuple[int, int]:
    """Grid cell (x, y) of sparkle number `index` at `time`."""
    seed = index * 1000 + math.floor(time * 3)
    x = math.floor(seeded_random(seed) * grid_width)
    y = math.floor(seeded_random(seed + 1) * grid_height)
    return x, y


def sparkle_brightness(index: int, time: float) -> float:
    phase = (time * 5 + index * 0.5) % (math.pi * 2)
    return math.sin(phase) ** 2


def sparkle(grid, block_size, intensity=5, time=0.0, rng=None):
    """Static base plus intensity*5 pulsing highlights with halos when bright."""
    commands = static(grid, block_size)
    grid_h, grid_w = grid.shape[:2]

    for i in range(intensity * SPARKLES_PER_INTENSITY):
        x, y = sparkle_position(i, time, grid_w, grid_h)
        if not (0 <= x < grid_w and 0 <= y < grid_h) or grid[y, x, 3] < ALPHA_SKIP:
            continue

        brightness = sparkle_brightness(i, time)
        if brightness <= DRAW_THRESHOLD:
            continue

        glow = block_size * (1 + brightness * 0.5)
        gx = x * block_size + (block_size - glow) / 2
        gy = y * block_size + (block_size - glow) / 2
        commands.append(Rect(gx, gy, glow, glow, WHITE, brightness * 0.8))

        if brightness > HALO_THRESHOLD:
            commands.append(Rect(gx - block_size, gy - block_size,
                                 glow + block_size * 2, glow + block_size * 2,
                                 WHITE, brightness * 0.3))
    return commands
