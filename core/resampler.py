"""
PixelPulse — Resampler
Turns a source image into pixel art: a fit-to-box, block-aligned output size
and a low-resolution color grid (one averaged RGBA cell per block).

Data flow:
    load_image(source) → compute_output_geometry() → derive_color_grid()
    → render_pixelated(surface) / effect rendering
"""

import io
import logging
import math
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import requests
from PIL import Image, UnidentifiedImageError

from core.surface import BACKGROUND, Surface

log = logging.getLogger(__name__)

# --- Pixelation limits ---
MIN_BLOCK_SIZE = 4
MAX_BLOCK_SIZE = 64
DEFAULT_BLOCK_SIZE = 8
DEFAULT_MAX_SIZE = (400, 400)      # Bounding box for the animated output
ORIGINAL_PREVIEW_SIZE = (300, 300)  # Bounding box for the side-by-side original
URL_TIMEOUT_SEC = 15


class ImageLoadError(Exception):
    """Raised when a source cannot be fetched or decoded."""
    pass


@dataclass(frozen=True)
class SourceImage:
    """Decoded RGBA bitmap. pixels is (H, W, 4) uint8 and read-only."""
    width: int
    height: int
    pixels: np.ndarray


@dataclass(frozen=True)
class OutputGeometry:
    """Output canvas size. width and height are always multiples of block_size."""
    width: int
    height: int
    block_size: int

    @property
    def grid_width(self) -> int:
        return math.ceil(self.width / self.block_size)

    @property
    def grid_height(self) -> int:
        return math.ceil(self.height / self.block_size)


def clamp_block_size(size) -> int:
    return max(MIN_BLOCK_SIZE, min(MAX_BLOCK_SIZE, int(size)))


def is_url(source) -> bool:
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))


def _fetch_url(url: str) -> bytes:
    try:
        resp = requests.get(url, timeout=URL_TIMEOUT_SEC)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise ImageLoadError(f"Could not fetch image from {url}: {e}") from e
    return resp.content


def _open(source) -> Image.Image:
    """Decode any supported source into a fully loaded RGBA PIL image."""
    if isinstance(source, Image.Image):
        img = source.copy()
    else:
        if is_url(source):
            source = _fetch_url(source)
        if isinstance(source, (bytes, bytearray, memoryview)):
            source = io.BytesIO(bytes(source))
        elif isinstance(source, (str, Path)):
            source = str(source)
        elif not hasattr(source, "read"):
            raise ImageLoadError(f"Unsupported image source: {type(source).__name__}")
        try:
            img = Image.open(source)
            img.load()
        except FileNotFoundError as e:
            raise ImageLoadError(f"Image not found: {source}") from e
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise ImageLoadError(f"Could not decode image: {e}") from e

    if img.width < 1 or img.height < 1:
        raise ImageLoadError("Image has no pixels")
    rgba = img.convert("RGBA")
    if rgba is not img:
        img.close()
    return rgba


class Resampler:
    """Owns the current source image and the block size used to pixelate it.

    Nothing here raises when no image is loaded: every derived value is None
    until load_image() succeeds, so callers can treat "no image" as a normal state.
    """

    def __init__(self, block_size: int = DEFAULT_BLOCK_SIZE):
        self.block_size = clamp_block_size(block_size)
        self._image = None
        self._source = None
        self._bounds = DEFAULT_MAX_SIZE
        self.geometry = None
        # Incremented on every successful load so caches can tell images apart
        self.generation = 0

    @property
    def has_image(self) -> bool:
        return self._image is not None

    @property
    def source(self):
        return self._source

    def load_image(self, source) -> SourceImage:
        """Decode a source (bytes, path, URL, file object or PIL image) and cache it.

        Raises:
            ImageLoadError: The source could not be read or decoded. The
                previously loaded image, if any, stays in place.
        """
        img = _open(source)
        pixels = np.array(img, dtype=np.uint8)
        pixels.setflags(write=False)

        self.dispose()
        self._image = img
        self._source = SourceImage(width=img.width, height=img.height, pixels=pixels)
        self.generation += 1
        log.debug("Loaded %dx%d image (generation %d)", img.width, img.height, self.generation)
        return self._source

    def set_block_size(self, size: int) -> int:
        """Clamp and store the block size. Grids must be re-derived afterwards."""
        self.block_size = clamp_block_size(size)
        return self.block_size

    def compute_output_geometry(self, max_width: int = None, max_height: int = None):
        """Fit the source into the bounding box (never upscaling), then snap up to the grid."""
        if self._image is None:
            return None
        if max_width is not None and max_height is not None:
            self._bounds = (max(1, int(max_width)), max(1, int(max_height)))
        max_w, max_h = self._bounds

        src_w, src_h = self._image.size
        scale = min(max_w / src_w, max_h / src_h, 1.0)
        scaled_w = max(1, math.floor(src_w * scale))
        scaled_h = max(1, math.floor(src_h * scale))

        block = self.block_size
        grid_w = math.ceil(scaled_w / block)
        grid_h = math.ceil(scaled_h / block)
        self.geometry = OutputGeometry(width=grid_w * block, height=grid_h * block, block_size=block)
        return self.geometry

    def _current_geometry(self):
        if self.geometry is None or self.geometry.block_size != self.block_size:
            return self.compute_output_geometry()
        return self.geometry

    def derive_color_grid(self):
        """Area-average the source straight down to one pixel per grid cell.

        Returns:
            (grid_h, grid_w, 4) uint8 RGBA array, or None with no image.
        """
        if self._image is None:
            return None
        geometry = self._current_geometry()
        # BOX is Pillow's area-averaging filter; RGBA is premultiplied during the resize
        small = self._image.resize((geometry.grid_width, geometry.grid_height), Image.BOX)
        return np.array(small, dtype=np.uint8)

    def render_pixelated(self, surface: Surface, background=BACKGROUND):
        """Draw the grid magnified with nearest-neighbour sampling (hard pixel edges)."""
        grid = self.derive_color_grid()
        if grid is None:
            return None
        geometry = self.geometry
        big = Image.fromarray(grid).resize((geometry.width, geometry.height), Image.NEAREST)
        rgba = np.array(big, dtype=np.float32)

        alpha = rgba[:, :, 3:4] / 255.0
        base = np.array(background[:3], dtype=np.float32)
        composed = rgba[:, :, :3] * alpha + base * (1.0 - alpha)
        surface.blit(np.clip(np.round(composed), 0, 255).astype(np.uint8))
        return surface

    def render_original(self, max_width: int = ORIGINAL_PREVIEW_SIZE[0],
                        max_height: int = ORIGINAL_PREVIEW_SIZE[1]):
        """Smoothly scaled copy of the source that fits the box, for side-by-side display."""
        if self._image is None:
            return None
        src_w, src_h = self._image.size
        scale = min(max_width / src_w, max_height / src_h, 1.0)
        size = (max(1, math.floor(src_w * scale)), max(1, math.floor(src_h * scale)))
        return self._image.resize(size, Image.LANCZOS)

    @property
    def output_size(self):
        if self._image is None or self.geometry is None:
            return None
        return self.geometry.width, self.geometry.height

    @property
    def grid_size(self):
        if self._image is None or self.geometry is None:
            return None
        return self.geometry.grid_width, self.geometry.grid_height

    def dispose(self):
        """Release the current image and everything derived from it."""
        if self._image is not None:
            self._image.close()
        self._image = None
        self._source = None
        self.geometry = None
