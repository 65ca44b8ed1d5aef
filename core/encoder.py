"""
PixelPulse — GIF Encoder
Collects captured frames and writes a looping animated GIF with Pillow.

Event contract (what the capture bridge relies on):
    on("progress", fn(fraction))   fraction in 0-1 while finalizing
    on("finished", fn(gif_bytes))
    on("error",    fn(EncodingFailure))

render() is asynchronous: it palettizes one frame per scheduler tick and fires
"finished" when the file is written. abort() stops it silently.
"""

import io
import logging

import numpy as np
from PIL import Image

from core.scheduler import ManualScheduler

log = logging.getLogger(__name__)

DEFAULT_QUALITY = 10
MAX_COLORS = 256
EVENTS = ("progress", "finished", "error")


class EncoderUnavailable(RuntimeError):
    """Raised when no GIF encoder can be created."""
    pass


class EncodingFailure(RuntimeError):
    """Raised (or emitted) when the encoder fails after frames were submitted."""
    pass


def gif_writer_available() -> bool:
    """True if this Pillow build can write GIF files."""
    Image.init()
    return "GIF" in Image.SAVE


class GifEncoder:
    """Frame sink for one animated GIF.

    quality follows the usual GIF-encoder convention: lower is better.
    1-10 uses median-cut palettes, anything above uses the faster octree.
    """

    def __init__(self, width: int, height: int, quality: int = DEFAULT_QUALITY,
                 scheduler=None, loop: int = 0):
        if not gif_writer_available():
            raise EncoderUnavailable("This Pillow build has no GIF writer")
        self.width = int(width)
        self.height = int(height)
        self.quality = max(1, int(quality))
        self.loop = loop
        self.scheduler = scheduler or ManualScheduler()

        self._frames = []
        self._palettized = []
        self._handlers = {event: [] for event in EVENTS}
        self._handle = None
        self.running = False
        self.aborted = False

    def on(self, event: str, handler):
        if event not in self._handlers:
            raise ValueError(f"Unknown encoder event: {event}. Events: {', '.join(EVENTS)}")
        self._handlers[event].append(handler)

    def _emit(self, event: str, *args):
        for handler in list(self._handlers[event]):
            handler(*args)

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    def add_frame(self, frame, delay: int):
        """Queue a copy of a frame ((H, W, 3|4) uint8 array or PIL image) shown for `delay` ms."""
        if self.aborted or self.running:
            raise EncodingFailure("Encoder is not accepting frames")
        if isinstance(frame, np.ndarray):
            img = Image.fromarray(np.ascontiguousarray(frame[:, :, :3]))
        else:
            img = frame.copy()
        if img.size != (self.width, self.height):
            raise EncodingFailure(
                f"Frame is {img.width}x{img.height}, encoder expects {self.width}x{self.height}"
            )
        self._frames.append((img.convert("RGB"), max(1, int(delay))))

    def render(self):
        """Start finalizing. Progress, then "finished" or "error", arrive on later ticks."""
        if self.running or self.aborted:
            return
        if not self._frames:
            self._emit("error", EncodingFailure("No frames were captured"))
            return
        self.running = True
        self._palettized = []
        self._handle = self.scheduler.schedule(self._encode_step)

    def _quantize(self, img: Image.Image) -> Image.Image:
        method = Image.Quantize.MEDIANCUT if self.quality <= 10 else Image.Quantize.FASTOCTREE
        return img.quantize(colors=MAX_COLORS, method=method, dither=Image.Dither.FLOYDSTEINBERG)

    def _write(self) -> bytes:
        buf = io.BytesIO()
        first, *rest = self._palettized
        first.save(
            buf,
            format="GIF",
            save_all=True,
            append_images=rest,
            duration=[delay for _, delay in self._frames],
            loop=self.loop,
            disposal=1,
        )
        return buf.getvalue()

    def _encode_step(self):
        self._handle = None
        if self.aborted:
            return
        try:
            img, _ = self._frames[len(self._palettized)]
            self._palettized.append(self._quantize(img))
            self._emit("progress", len(self._palettized) / len(self._frames))
            if len(self._palettized) < len(self._frames):
                self._handle = self.scheduler.schedule(self._encode_step)
                return
            data = self._write()
        except (OSError, ValueError) as e:
            log.exception("GIF encoding failed")
            self._discard()
            failure = EncodingFailure(f"GIF encoding failed: {e}")
            failure.__cause__ = e
            self._emit("error", failure)
            return

        self._discard()
        log.debug("Encoded GIF: %d bytes", len(data))
        self._emit("finished", data)

    def _discard(self):
        self.running = False
        self._frames = []
        self._palettized = []

    def abort(self):
        """Stop encoding and drop every frame. No further events fire."""
        self.aborted = True
        self.scheduler.cancel(self._handle)
        self._handle = None
        self._discard()
