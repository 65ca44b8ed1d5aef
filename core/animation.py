"""
PixelPulse — Animation Engine
Owns the rendering context: resampler, color grid, drawing surface, effect
state and the animation clock.

The surface has exactly one writer at a time, tracked by PlaybackMode:
    idle     : nothing is ticking; frames are rendered only on request
    playing  : live ticks render, advance the clock and reschedule themselves
    exporting: the capture bridge drives the clock; live playback is suspended

begin_export()/end_export() is the only way into and out of exporting, and
puts the live state (running or not, clock, frame count) back as it was.
"""

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from core.resampler import DEFAULT_MAX_SIZE, Resampler
from core.scheduler import ManualScheduler
from core.surface import BACKGROUND, Surface
from effects import Effect, clamp_intensity, parse_effect, render_effect

log = logging.getLogger(__name__)

TIME_STEP = 0.016  # seconds of animation per tick at speed 5
MIN_SPEED = 1
MAX_SPEED = 10


class PlaybackModeError(RuntimeError):
    """Raised on a mode change that would give the surface two writers."""
    pass


class PlaybackMode(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    EXPORTING = "exporting"


_TRANSITIONS = {
    PlaybackMode.IDLE: {PlaybackMode.PLAYING, PlaybackMode.EXPORTING},
    PlaybackMode.PLAYING: {PlaybackMode.IDLE, PlaybackMode.EXPORTING},
    PlaybackMode.EXPORTING: {PlaybackMode.IDLE, PlaybackMode.PLAYING},
}


def clamp_speed(value) -> int:
    return max(MIN_SPEED, min(MAX_SPEED, int(value)))


@dataclass
class EffectState:
    """User controls plus the animation clock.

    seed: when set, glitch randomness is drawn from a generator seeded with it,
        and re-seeded at the start of every export so exports replay exactly.
    """
    effect: Effect = Effect.GLITCH
    intensity: int = 5
    speed: int = 5
    time: float = 0.0
    frame_count: int = 0
    seed: int | None = None

    @property
    def time_step(self) -> float:
        return TIME_STEP * (self.speed / 5)


@dataclass(frozen=True)
class ExportLease:
    """Live state captured when an export takes over the engine."""
    was_running: bool
    time: float
    frame_count: int


class AnimationEngine:
    """Renders the current effect onto the surface once per tick."""

    def __init__(self, resampler: Resampler | None = None, surface: Surface | None = None,
                 scheduler=None, max_size: tuple = DEFAULT_MAX_SIZE):
        self.resampler = resampler or Resampler()
        self.surface = surface or Surface()
        self.scheduler = scheduler or ManualScheduler()
        self.max_size = tuple(max_size)
        self.state = EffectState()
        self.mode = PlaybackMode.IDLE

        self.grid = None
        self.geometry = None
        self._grid_key = None
        self._rng = np.random.default_rng()
        self._tick_handle = None

        # Live frame hook: fn(surface, frame_count) after every playing tick
        self.on_frame_capture = None

    # --- Controls ---

    @property
    def is_running(self) -> bool:
        return self.mode is PlaybackMode.PLAYING

    @property
    def has_image(self) -> bool:
        return self.resampler.has_image

    def _require_controls(self):
        if self.mode is PlaybackMode.EXPORTING:
            raise PlaybackModeError("Export in progress; controls unlock when it finishes")

    def set_effect(self, effect):
        self._require_controls()
        self.state.effect = parse_effect(effect)

    def set_intensity(self, intensity: int):
        self._require_controls()
        self.state.intensity = clamp_intensity(intensity)

    def set_speed(self, speed: int):
        self._require_controls()
        self.state.speed = clamp_speed(speed)

    def set_block_size(self, size: int) -> int:
        """Change the block size. The grid is re-derived before the next render."""
        self._require_controls()
        return self.resampler.set_block_size(size)

    def set_seed(self, seed: int | None):
        self._require_controls()
        self.state.seed = seed
        self._rng = np.random.default_rng(seed)

    def set_frame_capture_callback(self, callback):
        self.on_frame_capture = callback

    def clear_frame_capture_callback(self):
        self.on_frame_capture = None

    # --- Grid cache ---

    def _cache_key(self):
        return self.resampler.generation, self.resampler.block_size, self.max_size

    @property
    def grid_is_stale(self) -> bool:
        return self.grid is None or self._grid_key != self._cache_key()

    def prepare(self) -> bool:
        """Derive geometry and color grid for the current image and block size."""
        if not self.resampler.has_image:
            self.grid = None
            self.geometry = None
            self._grid_key = None
            return False
        self.geometry = self.resampler.compute_output_geometry(*self.max_size)
        self.grid = self.resampler.derive_color_grid()
        self._grid_key = self._cache_key()
        self.surface.resize(self.geometry.width, self.geometry.height)
        self.surface.clear(BACKGROUND)
        return True

    # --- Mode machine ---

    def _set_mode(self, mode: PlaybackMode):
        if mode is self.mode:
            return
        if mode not in _TRANSITIONS[self.mode]:
            raise PlaybackModeError(f"Cannot go from {self.mode.value} to {mode.value}")
        log.debug("Playback mode %s -> %s", self.mode.value, mode.value)
        self.mode = mode

    def start(self):
        """Begin live playback from time 0. No-op if already playing."""
        if self.mode is PlaybackMode.PLAYING:
            return
        if self.mode is PlaybackMode.EXPORTING:
            raise PlaybackModeError("Export in progress; playback resumes when it finishes")
        self.prepare()
        self._set_mode(PlaybackMode.PLAYING)
        self.reset()
        self._schedule_tick()

    def stop(self):
        """Pause live playback. The clock keeps its current value."""
        if self.mode is not PlaybackMode.PLAYING:
            return
        self.scheduler.cancel(self._tick_handle)
        self._tick_handle = None
        self._set_mode(PlaybackMode.IDLE)

    def toggle(self):
        if self.is_running:
            self.stop()
        else:
            self.start()

    def _schedule_tick(self):
        self._tick_handle = self.scheduler.schedule(self.tick)

    def tick(self):
        """One live step: render, advance clock, notify, reschedule."""
        self._tick_handle = None
        if self.mode is not PlaybackMode.PLAYING:
            return
        self.render()
        self.advance()
        self.state.frame_count += 1

        if self.on_frame_capture:
            self.on_frame_capture(self.surface, self.state.frame_count)

        # The hook may have stopped playback
        if self.mode is PlaybackMode.PLAYING:
            self._schedule_tick()

    # --- Clock ---

    def advance(self) -> float:
        """Add one logical time step. The clock only moves while playing or exporting."""
        if self.mode is not PlaybackMode.IDLE:
            self.state.time += self.state.time_step
        return self.state.time

    def seek(self, time: float):
        self.state.time = max(0.0, float(time))

    def reset(self):
        self.state.time = 0.0
        self.state.frame_count = 0

    # --- Rendering ---

    def render(self) -> bool:
        """Draw the current frame. Returns False (drawing nothing) without an image."""
        if not self.resampler.has_image:
            return False
        if self.grid_is_stale:
            self.prepare()
        self.surface.clear(BACKGROUND)
        commands = render_effect(
            self.state.effect, self.grid, self.geometry,
            intensity=self.state.intensity, time=self.state.time, rng=self._rng,
        )
        self.surface.draw(commands)
        return True

    # --- Export take-over ---

    def begin_export(self) -> ExportLease:
        """Suspend live playback and hand the clock to an exporter, starting at 0."""
        if self.mode is PlaybackMode.EXPORTING:
            raise PlaybackModeError("Another export already holds the surface")
        lease = ExportLease(
            was_running=self.is_running,
            time=self.state.time,
            frame_count=self.state.frame_count,
        )
        self.stop()
        self._set_mode(PlaybackMode.EXPORTING)
        self.reset()
        if self.state.seed is not None:
            self._rng = np.random.default_rng(self.state.seed)
        return lease

    def end_export(self, lease: ExportLease):
        """Give the surface back and restore the live state captured by begin_export()."""
        if self.mode is not PlaybackMode.EXPORTING:
            return
        self.state.time = lease.time
        self.state.frame_count = lease.frame_count
        if lease.was_running:
            self._set_mode(PlaybackMode.PLAYING)
            self._schedule_tick()
        else:
            self._set_mode(PlaybackMode.IDLE)

    def dispose(self):
        """Stop playback and drop the image and everything derived from it.

        An export that still holds the engine loses it; its later end_export() is a no-op.
        """
        self.stop()
        if self.mode is PlaybackMode.EXPORTING:
            self._set_mode(PlaybackMode.IDLE)
        self.resampler.dispose()
        self.grid = None
        self.geometry = None
        self._grid_key = None
        self.reset()
