"""
PixelPulse — Glitch Effect
Random horizontal tearing plus an RGB split whose phase swings with time.

Per frame:
  1. Roll a few "glitch lines" (1-3 rows tall) that shift sideways.
  2. Give any row a small chance of extra micro-jitter.
  3. Draw each cell three times: red-only pushed one way, cyan (G+B)
     pushed the other way, and the true color at low alpha on top.
"""

import math

import numpy as np

from core.surface import Rect
from effects.static import visible_mask


def glitch_lines(rng: np.random.Generator, intensity: int, grid_height: int) -> list[dict]:
    """Sample this frame's active glitch lines.

    Up to floor(intensity/2)+1 candidates, each active with probability
    0.1*intensity. Offsets are in blocks.
    """
    lines = []
    for _ in range(intensity // 2 + 1):
        if rng.random() < 0.1 * intensity:
            lines.append({
                "y": math.floor(rng.random() * grid_height),
                "offset": (rng.random() - 0.5) * intensity * 2,
                "height": math.floor(rng.random() * 3) + 1,
            })
    return lines


def row_offset(rng: np.random.Generator, y: int, lines: list[dict], intensity: int, block_size: int) -> float:
    """Horizontal pixel offset for one row: its glitch line (first match) plus micro-jitter."""
    offset = 0.0
    for line in lines:
        if line["y"] <= y < line["y"] + line["height"]:
            offset = line["offset"] * block_size
            break
    if rng.random() < 0.02 * intensity:
        offset += (rng.random() - 0.5) * intensity * block_size * 0.5
    return offset


def glitch(grid, block_size, intensity=5, time=0.0, rng=None):
    """Chromatic-aberration glitch with per-frame random row tearing."""
    if rng is None:
        rng = np.random.default_rng()
    grid_h, grid_w = grid.shape[:2]
    lines = glitch_lines(rng, intensity, grid_h)
    split = math.sin(time * 10) * intensity * 0.3
    mask = visible_mask(grid)

    commands = []
    for y in range(grid_h):
        x_offset = row_offset(rng, y, lines, intensity, block_size)
        py = y * block_size
        for x in np.flatnonzero(mask[y]).tolist():
            r, g, b, a = grid[y, x].tolist()
            alpha = a / 255
            px = x * block_size + x_offset
            commands.append(Rect(px - split, py, block_size, block_size, (r, 0, 0), alpha * 0.8))
            commands.append(Rect(px + split, py, block_size, block_size, (0, g, b), alpha * 0.8))
            commands.append(Rect(px, py, block_size, block_size, (r, g, b), alpha * 0.4))
    return commands
