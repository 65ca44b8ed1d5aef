"""
PixelPulse — Color Effects
Rainbow: every cell's hue rotates with its diagonal position and with time,
and saturation gets a lift so grey-ish cells pick up color too.
"""

import cv2
import numpy as np

from core.surface import Rect
from effects.static import visible_mask


def rgb_to_hsl(rgb: np.ndarray) -> np.ndarray:
    """Convert (..., 3) RGB 0-255 to (..., 3) HSL: hue in degrees, s and l in 0-1.

    Achromatic colors get hue 0 and saturation 0.
    """
    rgb = np.asarray(rgb, dtype=np.float32)
    shape = rgb.shape
    flat = np.ascontiguousarray(rgb.reshape(-1, 1, 3) / 255.0)
    # OpenCV float HLS: H in [0, 360), L and S in [0, 1]
    hls = cv2.cvtColor(flat, cv2.COLOR_RGB2HLS).reshape(shape)
    return np.stack([hls[..., 0], hls[..., 2], hls[..., 1]], axis=-1)


def hsl_to_rgb(hsl: np.ndarray) -> np.ndarray:
    """Convert (..., 3) HSL (degrees, 0-1, 0-1) back to rounded (..., 3) uint8 RGB."""
    hsl = np.asarray(hsl, dtype=np.float32)
    shape = hsl.shape
    hls = np.stack([np.mod(hsl[..., 0], 360.0), hsl[..., 2], hsl[..., 1]], axis=-1)
    flat = np.ascontiguousarray(hls.reshape(-1, 1, 3), dtype=np.float32)
    rgb = cv2.cvtColor(flat, cv2.COLOR_HLS2RGB).reshape(shape)
    return np.clip(np.round(rgb * 255.0), 0, 255).astype(np.uint8)


def rainbow_hsl(grid: np.ndarray, intensity: int, time: float) -> np.ndarray:
    """Shifted (H, W, 3) HSL for every cell of the grid."""
    grid_h, grid_w = grid.shape[:2]
    ys, xs = np.mgrid[0:grid_h, 0:grid_w]
    hsl = rgb_to_hsl(grid[:, :, :3]).astype(np.float64)

    hue_shift = np.mod(xs + ys + time * 50 * (intensity / 5), 360)
    hsl[..., 0] = np.mod(hsl[..., 0] + hue_shift * (intensity / 10), 360)
    hsl[..., 1] = np.minimum(1.0, hsl[..., 1] + 0.2 * (intensity / 10))
    return hsl


def rainbow(grid, block_size, intensity=5, time=0.0, rng=None):
    """Flowing hue rotation across the grid."""
    mask = visible_mask(grid)
    if not mask.any():
        return []
    colors = hsl_to_rgb(rainbow_hsl(grid, intensity, time))

    commands = []
    ys, xs = np.nonzero(mask)
    for x, y in zip(xs.tolist(), ys.tolist()):
        r, g, b = colors[y, x].tolist()
        commands.append(Rect(x * block_size, y * block_size, block_size, block_size,
                             (r, g, b), int(grid[y, x, 3]) / 255))
    return commands


def hue_degrees(rgb) -> float:
    """Hue of a single RGB triple, in degrees."""
    return float(rgb_to_hsl(np.asarray(rgb, dtype=np.float32).reshape(1, 3))[0, 0])
