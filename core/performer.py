"""
PixelPulse — Live Preview Window

Real-time preview of the animated pixel art in a pygame window. The engine
runs on a ManualScheduler that the window drains once per display frame, so
live ticks, export capture steps and encoder steps all share one loop.

Hotkeys:
  Space      = play/pause
  1-6        = effect (none, glitch, float, sparkle, wave, rainbow)
  Up/Down    = intensity +/- 1
  Right/Left = speed +/- 1
  [ / ]      = block size -/+ 2
  G          = export GIF (playback pauses while capturing, then resumes)
  S          = export still PNG
  Esc        = exit
"""

import logging

try:
    import pygame
except ImportError:
    pygame = None

from core.animation import AnimationEngine
from core.capture import FrameCaptureBridge
from core.encoder import GifEncoder
from core.image_io import save_animation, save_still
from core.scheduler import ManualScheduler
from effects import Effect

log = logging.getLogger(__name__)

EFFECT_KEYS = list(Effect)  # 1-6 in this order
BLOCK_STEP = 2
HUD_COLOR = (200, 200, 200)
HUD_HEIGHT = 24


class LivePreview:
    """pygame window around an AnimationEngine."""

    def __init__(self, engine: AnimationEngine, output_dir=None, fps=60,
                 encoder_factory=GifEncoder):
        if pygame is None:
            raise RuntimeError("pygame required for live preview. Install: pip install pygame")
        if not isinstance(engine.scheduler, ManualScheduler):
            raise ValueError("LivePreview drives the engine itself; give it a ManualScheduler")

        self.engine = engine
        self.scheduler = engine.scheduler
        self.output_dir = output_dir
        self.fps = fps
        self.running = True
        self.status = ""

        self.bridge = FrameCaptureBridge(encoder_factory=encoder_factory, scheduler=self.scheduler)
        self.bridge.set_progress_callback(self._on_export_progress)
        self.bridge.set_complete_callback(self._on_export_complete)
        self.bridge.set_error_callback(self._on_export_error)
        self.bridge.set_cancel_callback(lambda: self._set_status("Export cancelled"))

        self._screen = None
        self._clock = None
        self._font = None

    # --- Display ---

    def init_display(self):
        """Initialize pygame window sized to the output geometry plus a status line."""
        pygame.init()
        self.engine.prepare()
        w, h = self.engine.surface.size
        self._screen = pygame.display.set_mode((max(w, 320), h + HUD_HEIGHT))
        pygame.display.set_caption("PixelPulse Live Preview")
        self._clock = pygame.time.Clock()
        self._font = pygame.font.SysFont("monospace", 14)

    def _render_to_screen(self):
        frame = self.engine.surface.pixels
        surface = pygame.surfarray.make_surface(frame.swapaxes(0, 1))
        self._screen.fill((0, 0, 0))
        self._screen.blit(surface, (0, 0))
        self._draw_hud()
        pygame.display.flip()

    def _draw_hud(self):
        state = self.engine.state
        label = (f"{state.effect.value}  i:{state.intensity}  s:{state.speed}  "
                 f"b:{self.engine.resampler.block_size}  {self.status}")
        surf = self._font.render(label, True, HUD_COLOR)
        self._screen.blit(surf, (6, self.engine.surface.height + 4))

    # --- Input ---

    def _set_status(self, message: str):
        self.status = message
        print(f"  {message}")

    @staticmethod
    def _is_control_key(key) -> bool:
        return (pygame.K_1 <= key < pygame.K_1 + len(EFFECT_KEYS)
                or key in (pygame.K_UP, pygame.K_DOWN, pygame.K_LEFT, pygame.K_RIGHT,
                           pygame.K_LEFTBRACKET, pygame.K_RIGHTBRACKET))

    def handle_key(self, key):
        """Apply one hotkey. Returns True if the key was bound."""
        engine = self.engine
        state = engine.state

        if key == pygame.K_ESCAPE:
            if self.bridge.is_exporting:
                self.bridge.cancel()
            self.running = False
        elif key == pygame.K_SPACE:
            if self.bridge.is_exporting:
                self._set_status("Exporting; playback resumes when it finishes")
            else:
                engine.toggle()
                self._set_status("PLAYING" if engine.is_running else "PAUSED")
        elif self.bridge.is_exporting and self._is_control_key(key):
            self._set_status("Exporting; controls unlock when it finishes")
        elif pygame.K_1 <= key < pygame.K_1 + len(EFFECT_KEYS):
            engine.set_effect(EFFECT_KEYS[key - pygame.K_1])
            self._set_status(f"Effect: {state.effect.value}")
        elif key == pygame.K_UP:
            engine.set_intensity(state.intensity + 1)
        elif key == pygame.K_DOWN:
            engine.set_intensity(state.intensity - 1)
        elif key == pygame.K_RIGHT:
            engine.set_speed(state.speed + 1)
        elif key == pygame.K_LEFT:
            engine.set_speed(state.speed - 1)
        elif key == pygame.K_LEFTBRACKET:
            engine.set_block_size(engine.resampler.block_size - BLOCK_STEP)
        elif key == pygame.K_RIGHTBRACKET:
            engine.set_block_size(engine.resampler.block_size + BLOCK_STEP)
        elif key == pygame.K_g:
            self.export_gif()
        elif key == pygame.K_s:
            self.export_still()
        else:
            return False
        return True

    def _handle_pygame_events(self):
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.running = False
            elif event.type == pygame.KEYDOWN:
                self.handle_key(event.key)

    # --- Export ---

    def export_gif(self):
        if self.bridge.is_exporting:
            self._set_status("Export already running")
            return
        if not self.bridge.start_export(self.engine):
            if not self.engine.has_image:
                self._set_status("No image loaded")

    def export_still(self):
        if not self.engine.has_image:
            self._set_status("No image loaded")
            return
        if not self.engine.is_running and not self.bridge.is_exporting:
            self.engine.render()
        path = save_still(self.engine.surface, self.engine.state.effect, self.output_dir)
        self._set_status(f"Saved {path.name}")

    def _on_export_progress(self, percent, message):
        self.status = f"{percent}% {message}"

    def _on_export_complete(self, data: bytes):
        path = save_animation(data, self.engine.state.effect, self.output_dir)
        self._set_status(f"Saved {path.name} ({len(data) / 1024:.0f}KB)")

    def _on_export_error(self, error: Exception):
        log.error("GIF export failed: %s", error)
        self._set_status(f"Export failed: {error}")

    # --- Loop ---

    def step(self):
        """One display frame: drain this round of ticks, redraw a paused frame if needed."""
        self.scheduler.run_pending()
        if not self.engine.is_running and not self.bridge.is_exporting:
            # Controls may have changed while paused; the clock stays put
            self.engine.render()

    def run(self):
        """Main preview loop. Starts playback immediately."""
        self.init_display()

        print("\n  PixelPulse Live Preview")
        print("  " + "─" * 40)
        print("  Space=Play/Pause  1-6=Effect  Arrows=Intensity/Speed  [ ]=Block  G=GIF  S=Still  Esc=Exit")
        print()

        self.engine.start()
        try:
            while self.running:
                self._handle_pygame_events()
                self.step()
                if self._screen.get_width() < self.engine.surface.width or \
                        self._screen.get_height() != self.engine.surface.height + HUD_HEIGHT:
                    w, h = self.engine.surface.size
                    self._screen = pygame.display.set_mode((max(w, 320), h + HUD_HEIGHT))
                self._render_to_screen()
                self._clock.tick(self.fps)
        except KeyboardInterrupt:
            print("\n  [INTERRUPTED]")
        finally:
            self._cleanup()

    def _cleanup(self):
        self.bridge.cancel()
        self.engine.stop()
        if pygame and pygame.get_init():
            pygame.quit()
