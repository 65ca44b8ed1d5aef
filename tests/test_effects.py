"""
PixelPulse — Effect Renderer Tests
Registry, dispatch and the per-effect math for none/glitch/float/sparkle/wave.
Rainbow and the HSL conversions live in test_color.py.

Run with: pytest tests/test_effects.py -v
"""

import math
import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.resampler import OutputGeometry
from core.surface import Rect, Surface
from effects import (
    EFFECTS, Effect, get_effect, list_effects, parse_effect, render_effect,
)
from effects.glitch import glitch, glitch_lines
from effects.motion import SHADOW_ALPHA, SHADOW_OFFSET, breathe_factor, float_offset, floating, wave, wave_offsets
from effects.sparkle import seeded_random, sparkle, sparkle_position
from effects.static import ALPHA_SKIP, static


def _grid(h=4, w=4, color=(255, 0, 0, 255)):
    grid = np.zeros((h, w, 4), dtype=np.uint8)
    grid[:, :] = color
    return grid


def _geometry(grid, block=8):
    h, w = grid.shape[:2]
    return OutputGeometry(width=w * block, height=h * block, block_size=block)


class TestRegistry:

    def test_every_effect_registered(self):
        assert set(EFFECTS) == set(Effect)

    def test_list_effects(self):
        names = [e["name"] for e in list_effects()]
        assert names == ["none", "glitch", "float", "sparkle", "wave", "rainbow"]

    def test_parse_effect(self):
        assert parse_effect("GLITCH") is Effect.GLITCH
        assert parse_effect("static") is Effect.NONE
        assert parse_effect(Effect.WAVE) is Effect.WAVE
        with pytest.raises(ValueError):
            parse_effect("datamosh")

    def test_get_effect(self):
        assert get_effect("none") is static

    def test_no_grid_renders_nothing(self):
        assert render_effect(Effect.GLITCH, None, None) == []

    def test_intensity_is_clamped(self):
        grid = _grid(1, 1)
        t = 0.3
        cmds = render_effect(Effect.FLOAT, grid, _geometry(grid), intensity=0, time=t)
        # clamped to 1: the bob still moves
        assert cmds[1].y == pytest.approx(math.sin(2 * t) * 2)


class TestAlphaSkip:

    @pytest.mark.parametrize("effect", list(Effect))
    def test_no_effect_draws_transparent_cells(self, effect):
        grid = _grid(color=(255, 255, 255, ALPHA_SKIP - 1))
        cmds = render_effect(effect, grid, _geometry(grid), intensity=10, time=1.23,
                             rng=np.random.default_rng(0))
        assert cmds == []

    @pytest.mark.parametrize("effect", list(Effect))
    def test_grid_is_never_modified(self, effect):
        grid = _grid()
        grid[0, 0] = (10, 200, 30, 5)
        before = grid.copy()
        render_effect(effect, grid, _geometry(grid), intensity=7, time=0.5,
                      rng=np.random.default_rng(1))
        assert np.array_equal(grid, before)


class TestNone:

    def test_one_rect_per_cell_at_source_alpha(self):
        grid = _grid(2, 3, (10, 20, 30, 51))
        cmds = static(grid, 8)
        assert len(cmds) == 6
        assert cmds[0] == Rect(0, 0, 8, 8, (10, 20, 30), 0.2)
        assert cmds[-1].x == 16 and cmds[-1].y == 8

    def test_idempotent(self):
        grid = _grid()
        geometry = _geometry(grid)
        a = render_effect(Effect.NONE, grid, geometry, time=0.0)
        b = render_effect(Effect.NONE, grid, geometry, time=5.0)
        assert a == b
        s1, s2 = Surface(32, 32), Surface(32, 32)
        s1.draw(a)
        s2.draw(a)
        s2.draw(a)
        assert np.array_equal(s1.pixels, s2.pixels)


class TestGlitch:

    def test_three_passes_per_cell(self):
        grid = _grid(2, 2, (200, 100, 50, 255))
        cmds = glitch(grid, 8, intensity=5, time=0.0, rng=np.random.default_rng(0))
        assert len(cmds) == 12
        red, cyan, main = cmds[:3]
        assert red.color == (200, 0, 0) and red.alpha == pytest.approx(0.8)
        assert cyan.color == (0, 100, 50) and cyan.alpha == pytest.approx(0.8)
        assert main.color == (200, 100, 50) and main.alpha == pytest.approx(0.4)

    def test_channel_split(self):
        grid = _grid(1, 1)
        t = 0.1
        split = math.sin(t * 10) * 5 * 0.3
        rng = np.random.default_rng(0)
        cmds = glitch(grid, 8, intensity=5, time=t, rng=rng)
        red, cyan, main = cmds
        assert main.x - red.x == pytest.approx(split)
        assert cyan.x - main.x == pytest.approx(split)
        assert red.y == cyan.y == main.y == 0

    def test_seeded_generator_is_repeatable(self):
        grid = _grid(8, 8)
        a = glitch(grid, 4, intensity=9, time=0.3, rng=np.random.default_rng(42))
        b = glitch(grid, 4, intensity=9, time=0.3, rng=np.random.default_rng(42))
        assert a == b

    def test_glitch_lines(self):
        rng = np.random.default_rng(3)
        for _ in range(50):
            lines = glitch_lines(rng, 10, 20)
            assert len(lines) <= 10 // 2 + 1
            for line in lines:
                assert 0 <= line["y"] < 20
                assert 1 <= line["height"] <= 3
                assert -10 <= line["offset"] <= 10

    def test_rows_shift_together(self):
        grid = _grid(3, 6)
        cmds = glitch(grid, 8, intensity=10, time=0.0, rng=np.random.default_rng(7))
        mains = cmds[2::3]
        for row in range(3):
            row_offsets = {round(c.x - (i % 6) * 8, 9) for i, c in enumerate(mains) if c.y == row * 8}
            assert len(row_offsets) == 1


class TestFloat:

    def test_shadow_then_main(self):
        grid = _grid(2, 2, (100, 100, 100, 255))
        t = 0.7
        cmds = floating(grid, 8, intensity=5, time=t)
        assert len(cmds) == 8
        dx, dy = float_offset(5, t)
        shadow, main = cmds[0], cmds[4]
        assert shadow.color == (0, 0, 0) and shadow.alpha == SHADOW_ALPHA
        assert shadow.x == pytest.approx(dx + SHADOW_OFFSET)
        assert shadow.y == pytest.approx(dy + SHADOW_OFFSET)
        assert (main.x, main.y) == pytest.approx((dx, dy))
        expected = math.floor(100 * breathe_factor(5, t))
        assert main.color == (expected, expected, expected)

    def test_offsets(self):
        dx, dy = float_offset(10, math.pi / 4)
        assert dy == pytest.approx(math.sin(math.pi / 2) * 20)
        assert dx == pytest.approx(math.cos(1.5 * math.pi / 4) * 5)

    def test_brightness_capped(self):
        grid = _grid(1, 1, (255, 255, 255, 255))
        t = math.pi / 6  # sin(3t) = 1, breathe = 1.0 at intensity 10
        cmds = floating(grid, 8, intensity=10, time=t)
        assert max(cmds[1].color) <= 255


class TestSparkle:

    def test_seeded_random_range_and_determinism(self):
        for seed in range(200):
            v = seeded_random(seed)
            assert 0 <= v < 1
            assert v == seeded_random(seed)

    def test_positions_stable_within_window(self):
        for i in range(25):
            assert sparkle_position(i, 1.0, 30, 20) == sparkle_position(i, 1.3, 30, 20)

    def test_positions_change_between_windows(self):
        moved = sum(sparkle_position(i, 1.0, 30, 20) != sparkle_position(i, 1.4, 30, 20) for i in range(25))
        assert moved > 0

    def test_base_is_static(self):
        grid = _grid(6, 6)
        cmds = sparkle(grid, 8, intensity=3, time=0.2)
        assert cmds[:36] == static(grid, 8)
        extra = cmds[36:]
        assert all(c.color == (255, 255, 255) for c in extra)
        assert len(extra) <= 3 * 5 * 2

    def test_glow_is_centered(self):
        grid = _grid(10, 10)
        cmds = sparkle(grid, 8, intensity=10, time=0.3)
        glows = [c for c in cmds[100:] if c.alpha <= 0.8 and c.width < 16]
        for g in glows:
            cx, cy = g.x + g.width / 2, g.y + g.height / 2
            assert cx - 4 == pytest.approx(round((cx - 4) / 8) * 8)
            assert cy - 4 == pytest.approx(round((cy - 4) / 8) * 8)


class TestWave:

    def test_offsets_formula(self):
        dx, dy = wave_offsets(3, 2, 5, 0.4)
        assert dx == pytest.approx(math.sin(0.6 + 1.2) * 4)
        assert dy == pytest.approx(math.sin(0.4 + 0.8) * 1.5 + math.sin(1.2 + 1.6) * 1.0)

    def test_one_rect_per_cell(self):
        grid = _grid(3, 5)
        cmds = wave(grid, 8, intensity=4, time=0.9)
        assert len(cmds) == 15
        first = cmds[0]
        dx, dy = wave_offsets(0, 0, 4, 0.9)
        assert (first.x, first.y) == pytest.approx((dx, dy))
        assert first.color == (255, 0, 0)
