"""
PixelPulse — Static Effect
Draws every grid cell at its own color. Also home of the alpha cutoff
shared by all effects.
"""

import numpy as np

from core.surface import Rect

# Cells with alpha below this (~4% of 255) are treated as transparent and never drawn
ALPHA_SKIP = 10


def visible_mask(grid: np.ndarray) -> np.ndarray:
    """(H, W) bool mask of cells that effects are allowed to draw."""
    return grid[:, :, 3] >= ALPHA_SKIP


def visible_cells(grid: np.ndarray):
    """Yield (x, y, r, g, b, a) for each drawable cell, row by row."""
    ys, xs = np.nonzero(visible_mask(grid))
    for x, y, (r, g, b, a) in zip(xs.tolist(), ys.tolist(), grid[ys, xs].tolist()):
        yield x, y, r, g, b, a


def static(grid, block_size, intensity=5, time=0.0, rng=None):
    """No animation: one opaque-as-the-source square per cell."""
    return [
        Rect(x * block_size, y * block_size, block_size, block_size, (r, g, b), a / 255)
        for x, y, r, g, b, a in visible_cells(grid)
    ]
