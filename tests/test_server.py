#!/usr/bin/env python3
"""
PixelPulse -- HTTP API Tests

Categories:
1. Upload (valid, corrupt, wrong type) and failed-load retention
2. Settings (partial updates, clamping, invalid effect)
3. Rendered images (original, pixelated, frame at t)
4. Exports (still, GIF with progress polling, cancel, conflicts)

Run with: pytest tests/test_server.py -v
"""

import io
import os
import sys
import time
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from starlette.testclient import TestClient
from server import app, _state


@pytest.fixture
def client():
    with TestClient(app) as c:
        c.post("/api/reset")
        yield c
        c.post("/api/reset")


@pytest.fixture
def loaded(client, red_png):
    resp = client.post("/api/upload", files={"file": ("red.png", red_png, "image/png")})
    assert resp.status_code == 200
    return client


def _wait_for_export(client, timeout=15.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        progress = client.get("/api/export/progress").json()
        if progress["phase"] in ("done", "error", "cancelled"):
            return progress
        time.sleep(0.01)
    raise AssertionError(f"Export did not finish: {progress}")


def _image(resp) -> Image.Image:
    return Image.open(io.BytesIO(resp.content))


class TestUpload:

    def test_upload_reports_geometry(self, loaded):
        settings = loaded.get("/api/settings").json()
        assert settings["has_image"]
        assert (settings["width"], settings["height"]) == (64, 64)
        assert (settings["output_width"], settings["grid_width"]) == (64, 8)

    def test_corrupt_image(self, client):
        resp = client.post("/api/upload", files={"file": ("bad.png", b"not a png", "image/png")})
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_IMAGE"

    def test_oversized_image_is_rejected(self, client, red_png):
        with patch.object(Image, "MAX_IMAGE_PIXELS", 0):
            resp = client.post("/api/upload", files={"file": ("red.png", red_png, "image/png")})
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_IMAGE"

    def test_wrong_extension(self, client, red_png):
        resp = client.post("/api/upload", files={"file": ("red.exe", red_png, "application/octet-stream")})
        assert resp.status_code == 400

    def test_failed_upload_keeps_previous_image(self, loaded):
        resp = loaded.post("/api/upload", files={"file": ("bad.png", b"garbage", "image/png")})
        assert resp.status_code == 400
        assert loaded.get("/api/settings").json()["width"] == 64

    def test_no_image_errors_are_structured(self, client):
        resp = client.get("/api/frame")
        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert detail["code"] == "NO_IMAGE"
        assert detail["hint"]


class TestSettings:

    def test_effects_listing(self, client):
        data = client.get("/api/effects").json()
        assert [e["name"] for e in data["effects"]] == ["none", "glitch", "float", "sparkle", "wave", "rainbow"]
        assert data["current"] == "glitch"

    def test_partial_update_and_clamping(self, loaded):
        data = loaded.post("/api/settings", json={"block_size": 100, "intensity": 0}).json()
        assert data["block_size"] == 64
        assert data["intensity"] == 1
        assert data["speed"] == 5
        assert data["grid_width"] == 1

    def test_invalid_effect(self, client):
        resp = client.post("/api/settings", json={"effect": "datamosh"})
        assert resp.status_code == 422

    def test_seed_can_be_cleared(self, client):
        assert client.post("/api/settings", json={"seed": 3}).json()["seed"] == 3
        assert client.post("/api/settings", json={"seed": None}).json()["seed"] is None


class TestRenderedImages:

    def test_pixelated_solid_red(self, loaded):
        resp = loaded.get("/api/pixelated")
        assert resp.headers["content-type"] == "image/png"
        img = _image(resp).convert("RGB")
        assert img.size == (64, 64)
        assert np.all(np.array(img) == np.array([255, 0, 0], dtype=np.uint8))

    def test_original(self, loaded):
        assert _image(loaded.get("/api/original")).size == (64, 64)

    def test_frame_none_effect(self, loaded):
        loaded.post("/api/settings", json={"effect": "none"})
        img = _image(loaded.get("/api/frame", params={"t": 1.5})).convert("RGB")
        assert img.getpixel((10, 10)) == (255, 0, 0)

    def test_frame_negative_time_rejected(self, loaded):
        assert loaded.get("/api/frame", params={"t": -1}).status_code == 422


class TestExports:

    def test_still_is_a_png_download(self, loaded, _export_dir):
        loaded.post("/api/settings", json={"effect": "none"})
        resp = loaded.post("/api/export/still", params={"t": 0.5})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/png"
        disposition = resp.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="pixelpulse-none-')
        filename = disposition.split('filename="')[1].rstrip('"')
        assert (_export_dir / filename).is_file()
        assert _image(resp).convert("RGB").getpixel((10, 10)) == (255, 0, 0)

    def test_gif_export(self, loaded, _export_dir):
        loaded.post("/api/settings", json={"effect": "wave", "speed": 10})
        resp = loaded.post("/api/export/gif", json={"frames": 4, "capture_interval": 1})
        assert resp.status_code == 200
        assert resp.json()["delay"] == 10

        progress = _wait_for_export(loaded)
        assert progress["phase"] == "done"
        assert progress["percent"] == 100
        assert (_export_dir / progress["filename"]).is_file()

        result = loaded.get("/api/export/result")
        assert result.headers["content-type"] == "image/gif"
        assert _image(result).size == (64, 64)

    def test_gif_export_default_request(self, loaded):
        assert loaded.post("/api/export/gif").json()["frames"] == 30
        assert _wait_for_export(loaded)["phase"] == "done"

    def test_gif_without_image(self, client):
        assert client.post("/api/export/gif").status_code == 400

    def test_gif_invalid_request(self, loaded):
        assert loaded.post("/api/export/gif", json={"frames": 0}).status_code == 422

    def test_encoder_unavailable(self, loaded):
        with patch("core.encoder.gif_writer_available", return_value=False):
            resp = loaded.post("/api/export/gif")
        assert resp.status_code == 503
        assert resp.json()["detail"]["code"] == "ENCODER_UNAVAILABLE"

    def test_cancel(self, loaded):
        loaded.post("/api/export/gif", json={"frames": 300, "capture_interval": 5})
        assert loaded.post("/api/export/cancel").json()["status"] == "cancel_requested"
        progress = _wait_for_export(loaded)
        assert progress["phase"] == "cancelled"
        assert loaded.get("/api/export/result").status_code == 404

    def test_cancel_without_export(self, client):
        assert client.post("/api/export/cancel").json()["status"] == "no_export_running"

    def test_conflicts_while_exporting(self, loaded, red_png):
        loaded.post("/api/export/gif", json={"frames": 300, "capture_interval": 5})
        assert loaded.post("/api/export/gif").status_code == 409
        assert loaded.post("/api/settings", json={"block_size": 16}).status_code == 409
        resp = loaded.post("/api/upload", files={"file": ("red.png", red_png, "image/png")})
        assert resp.status_code == 409
        loaded.post("/api/export/cancel")
        _wait_for_export(loaded)

    def test_reset(self, loaded):
        data = loaded.post("/api/reset").json()
        assert not data["has_image"]
        assert data["effect"] == "glitch"
        assert _state["result"] is None
