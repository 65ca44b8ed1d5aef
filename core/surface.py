"""
PixelPulse — Drawing Surface
A numpy RGB canvas that effects draw onto with filled, alpha-blended rectangles.
Every frame the engine clears it and replays one list of draw commands.
"""

from typing import NamedTuple

import numpy as np
from PIL import Image

# Canvas clear color (#0f0f23)
BACKGROUND = (15, 15, 35)


class Rect(NamedTuple):
    """One fill command: a rectangle in output pixels with an RGB color and 0-1 alpha.

    Coordinates may be fractional (effects offset cells by sine waves); the
    surface snaps each edge to the nearest pixel when drawing.
    """
    x: float
    y: float
    width: float
    height: float
    color: tuple
    alpha: float = 1.0


def _snap(v: float) -> int:
    """Round half up, matching how the browser canvas picks pixel centers."""
    return int(np.floor(v + 0.5))


class Surface:
    """Fixed-size RGB canvas with source-over compositing.

    The canvas itself is always opaque (it is cleared to a background color
    before every frame), so only the incoming alpha matters when blending.
    """

    def __init__(self, width: int = 1, height: int = 1):
        self.pixels = np.zeros((max(1, height), max(1, width), 3), dtype=np.uint8)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self) -> tuple:
        return self.width, self.height

    def resize(self, width: int, height: int):
        """Reallocate the canvas. Contents are discarded, like resizing a canvas element."""
        if (width, height) != self.size:
            self.pixels = np.zeros((max(1, height), max(1, width), 3), dtype=np.uint8)

    def clear(self, color=BACKGROUND):
        self.pixels[:, :] = np.asarray(color[:3], dtype=np.uint8)

    def fill_rect(self, rect: Rect):
        """Blend a single rectangle onto the canvas, clipped to its bounds."""
        if rect.alpha <= 0:
            return
        x0 = max(0, _snap(rect.x))
        y0 = max(0, _snap(rect.y))
        x1 = min(self.width, _snap(rect.x + rect.width))
        y1 = min(self.height, _snap(rect.y + rect.height))
        if x0 >= x1 or y0 >= y1:
            return

        color = np.asarray(rect.color[:3], dtype=np.float32)
        region = self.pixels[y0:y1, x0:x1]
        if rect.alpha >= 1.0:
            region[:, :] = color.astype(np.uint8)
            return
        alpha = float(rect.alpha)
        blended = region.astype(np.float32) * (1.0 - alpha) + color * alpha
        region[:, :] = np.clip(np.round(blended), 0, 255).astype(np.uint8)

    def draw(self, commands):
        """Replay a list of Rect commands in order."""
        for rect in commands:
            self.fill_rect(rect)

    def blit(self, array: np.ndarray):
        """Replace the canvas with an (H, W, 3|4) uint8 array, resizing to fit it."""
        h, w = array.shape[:2]
        self.resize(w, h)
        if array.ndim == 3 and array.shape[2] == 4:
            array = array[:, :, :3]
        self.pixels[:, :] = array

    def snapshot(self) -> np.ndarray:
        """Independent copy of the current canvas contents."""
        return self.pixels.copy()

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)
