"""
PixelPulse — GIF Encoder Tests
"""

import io
import os
import sys
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.encoder import EncoderUnavailable, EncodingFailure, GifEncoder
from core.scheduler import ManualScheduler


def _frame(color, w=16, h=8):
    arr = np.zeros((h, w, 3), dtype=np.uint8)
    arr[:, :] = color
    return arr


def _collect(encoder):
    events = {"progress": [], "finished": [], "error": []}
    for name in events:
        encoder.on(name, lambda *args, name=name: events[name].append(args[0] if args else None))
    return events


class TestGifEncoder:

    def test_encodes_looping_gif(self):
        s = ManualScheduler()
        enc = GifEncoder(16, 8, scheduler=s)
        events = _collect(enc)
        for color in [(255, 0, 0), (0, 255, 0), (0, 0, 255)]:
            enc.add_frame(_frame(color), 50)
        enc.render()
        s.run_until_idle()

        assert events["error"] == []
        assert events["progress"] == pytest.approx([1 / 3, 2 / 3, 1.0])
        data = events["finished"][0]
        img = Image.open(io.BytesIO(data))
        assert img.format == "GIF"
        assert img.size == (16, 8)
        assert img.n_frames == 3
        assert img.info.get("loop") == 0
        assert img.info.get("duration") == 50

    def test_one_frame_per_tick(self):
        s = ManualScheduler()
        enc = GifEncoder(16, 8, scheduler=s)
        events = _collect(enc)
        for _ in range(4):
            enc.add_frame(_frame((9, 9, 9)), 20)
        enc.render()
        s.run_pending()
        assert len(events["progress"]) == 1
        assert events["finished"] == []

    def test_frames_are_copied(self):
        s = ManualScheduler()
        enc = GifEncoder(16, 8, scheduler=s)
        events = _collect(enc)
        frame = _frame((255, 0, 0))
        enc.add_frame(frame, 10)
        frame[:, :] = (0, 0, 255)
        enc.render()
        s.run_until_idle()
        img = Image.open(io.BytesIO(events["finished"][0])).convert("RGB")
        assert img.getpixel((0, 0)) == (255, 0, 0)

    def test_size_mismatch(self):
        enc = GifEncoder(16, 8)
        with pytest.raises(EncodingFailure):
            enc.add_frame(_frame((0, 0, 0), w=8, h=8), 10)

    def test_render_without_frames_emits_error(self):
        enc = GifEncoder(16, 8)
        events = _collect(enc)
        enc.render()
        assert isinstance(events["error"][0], EncodingFailure)

    def test_abort_is_silent(self):
        s = ManualScheduler()
        enc = GifEncoder(16, 8, scheduler=s)
        events = _collect(enc)
        enc.add_frame(_frame((1, 2, 3)), 10)
        enc.add_frame(_frame((3, 2, 1)), 10)
        enc.render()
        s.run_pending()
        enc.abort()
        s.run_until_idle()
        assert events["finished"] == []
        assert events["error"] == []
        assert enc.frame_count == 0
        with pytest.raises(EncodingFailure):
            enc.add_frame(_frame((1, 2, 3)), 10)

    def test_write_failure_becomes_encoding_failure(self):
        s = ManualScheduler()
        enc = GifEncoder(16, 8, scheduler=s)
        events = _collect(enc)
        enc.add_frame(_frame((1, 2, 3)), 10)
        with patch.object(GifEncoder, "_write", side_effect=OSError("disk full")):
            enc.render()
            s.run_until_idle()
        assert isinstance(events["error"][0], EncodingFailure)
        assert enc.frame_count == 0

    def test_unknown_event(self):
        with pytest.raises(ValueError):
            GifEncoder(4, 4).on("done", print)

    def test_unavailable_without_gif_writer(self):
        with patch("core.encoder.gif_writer_available", return_value=False):
            with pytest.raises(EncoderUnavailable):
                GifEncoder(4, 4)
