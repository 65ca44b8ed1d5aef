#!/usr/bin/env python3
"""
PixelPulse — Animated Pixel Art Generator
CLI entry point. Also importable as a library.

Usage:
    python pixelpulse.py pixelate photo.jpg --block-size 12
    python pixelpulse.py still photo.jpg --effect rainbow --intensity 8 --time 1.5
    python pixelpulse.py gif photo.jpg --effect glitch --speed 7 --frames 45
    python pixelpulse.py gif https://example.com/cat.png --effect sparkle --seed 42
    python pixelpulse.py info photo.jpg
    python pixelpulse.py list-effects
    python pixelpulse.py preview photo.jpg
    python pixelpulse.py serve
"""

import sys
import os
import argparse

# Add project root to path so imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.animation import AnimationEngine
from core.capture import export_gif
from core.export_models import ExportFormat, ExportRequest, MAX_EXPORT_FRAMES, generate_filename
from core.image_io import get_export_dir, save_animation, save_frame, save_still
from core.resampler import DEFAULT_BLOCK_SIZE, DEFAULT_MAX_SIZE, Resampler, is_url
from core.safety import preflight
from core.scheduler import ManualScheduler
from core.surface import Surface
from effects import Effect, list_effects

__version__ = "0.1.0"


def _parse_max_size(value: str) -> tuple:
    """'400' → (400, 400); '640x480' → (640, 480)."""
    parts = value.lower().split("x")
    if len(parts) == 1:
        parts = parts * 2
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"Expected WIDTH or WIDTHxHEIGHT, got: {value}")
    try:
        width, height = int(parts[0]), int(parts[1])
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected WIDTH or WIDTHxHEIGHT, got: {value}")
    if width < 1 or height < 1:
        raise argparse.ArgumentTypeError(f"Max size must be positive: {value}")
    return width, height


def _build_engine(args, scheduler=None) -> AnimationEngine:
    """Preflight, load the source and apply the shared options."""
    if not is_url(args.source):
        info = preflight(args.source)
        print(f"Source validated: {info['size_mb']:.1f}MB {info['extension']}")

    engine = AnimationEngine(
        resampler=Resampler(block_size=args.block_size),
        scheduler=scheduler or ManualScheduler(),
        max_size=args.max_size,
    )
    engine.resampler.load_image(args.source)
    engine.set_effect(getattr(args, "effect", Effect.GLITCH))
    engine.set_intensity(getattr(args, "intensity", 5))
    engine.set_speed(getattr(args, "speed", 5))
    if getattr(args, "seed", None) is not None:
        engine.set_seed(args.seed)
    engine.prepare()
    return engine


def cmd_pixelate(args):
    """Save the plain pixelated image (no effect)."""
    engine = _build_engine(args)
    surface = engine.resampler.render_pixelated(Surface())
    path = get_export_dir(args.out) / generate_filename(Effect.NONE, ExportFormat.PNG)
    save_frame(surface.snapshot(), path)
    w, h = engine.resampler.output_size
    print(f"Pixelated {w}x{h} (block {engine.resampler.block_size})")
    print(f"  Saved: {path}")


def cmd_still(args):
    """Render one frame of the animation and save it as PNG."""
    engine = _build_engine(args)
    engine.seek(args.time)
    engine.render()
    path = save_still(engine.surface, engine.state.effect, args.out)
    print(f"Still frame: {engine.state.effect.value} at t={engine.state.time:.3f}")
    print(f"  Saved: {path}")


def cmd_gif(args):
    """Capture the animation and save a looping GIF."""
    engine = _build_engine(args)
    request = ExportRequest(
        frames=args.frames,
        delay=args.delay,
        quality=args.quality,
        capture_interval=args.interval,
    )

    def on_progress(percent, message):
        print(f"\r  [{percent:3d}%] {message:30s}", end="", flush=True)

    data = export_gif(engine, request, on_progress=on_progress)
    print()
    path = save_animation(data, engine.state.effect, args.out)
    w, h = engine.surface.size
    print(f"GIF: {request.frames} frames, {w}x{h}, {request.resolve_delay(engine.state.speed)}ms/frame")
    print(f"  Saved: {path} ({len(data) / 1024:.0f}KB)")


def cmd_info(args):
    """Show source, output and grid dimensions for an image."""
    engine = _build_engine(args)
    resampler = engine.resampler
    src = resampler.source
    out_w, out_h = resampler.output_size
    grid_w, grid_h = resampler.grid_size
    print(f"\n  {args.source}")
    print(f"  {'—' * 40}")
    print(f"  Source:     {src.width}x{src.height}")
    print(f"  Block size: {resampler.block_size}")
    print(f"  Output:     {out_w}x{out_h}")
    print(f"  Grid:       {grid_w}x{grid_h} ({grid_w * grid_h} cells)")
    print()


def cmd_list_effects(args):
    """List all animation effects."""
    effects = list_effects()
    print(f"\n  Effects ({len(effects)})")
    print(f"  {'—' * 50}")
    for e in effects:
        print(f"    {e['name']:10s} — {e['description']}")
    print(f"\n  Use --effect <name> with still, gif or preview.\n")


def cmd_preview(args):
    """Open the live preview window."""
    from core.performer import LivePreview
    engine = _build_engine(args)
    LivePreview(engine, output_dir=args.out).run()


def cmd_serve(args):
    """Launch the HTTP API."""
    from server import start
    start(host=args.host, port=args.port)


def main():
    parser = argparse.ArgumentParser(
        prog="pixelpulse",
        description="PixelPulse — Animated Pixel Art Generator",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    # Options shared by every command that loads an image
    source = argparse.ArgumentParser(add_help=False)
    source.add_argument("source", help="Image path or http(s) URL")
    source.add_argument("--block-size", type=int, default=DEFAULT_BLOCK_SIZE,
                        help="Pixel block size, 4-64 (default: %(default)s)")
    source.add_argument("--max-size", type=_parse_max_size, default=DEFAULT_MAX_SIZE,
                        help="Output bounding box, WIDTH or WIDTHxHEIGHT (default: 400)")
    source.add_argument("--out", help="Export directory (default: $PIXELPULSE_EXPORT_DIR or ~/Pictures/PixelPulse)")

    animated = argparse.ArgumentParser(add_help=False)
    animated.add_argument("--effect", default=Effect.GLITCH.value,
                          choices=[e.value for e in Effect], help="Animation effect (default: %(default)s)")
    animated.add_argument("--intensity", type=int, default=5, help="Effect intensity, 1-10 (default: %(default)s)")
    animated.add_argument("--speed", type=int, default=5, help="Animation speed, 1-10 (default: %(default)s)")
    animated.add_argument("--seed", type=int, help="Seed for glitch randomness (repeatable output)")

    # pixelate
    sub.add_parser("pixelate", parents=[source], help="Save the pixelated image")

    # still
    p = sub.add_parser("still", parents=[source, animated], help="Save one animation frame as PNG")
    p.add_argument("--time", type=float, default=0.0, help="Animation time in seconds (default: 0)")

    # gif
    p = sub.add_parser("gif", parents=[source, animated], help="Export a looping animated GIF")
    p.add_argument("--frames", type=int, default=30, help=f"Frame count, 1-{MAX_EXPORT_FRAMES} (default: %(default)s)")
    p.add_argument("--delay", type=int, help="Frame delay in ms (default: 100 / speed)")
    p.add_argument("--quality", type=int, default=10, help="Palette quality 1-30, lower is better (default: %(default)s)")
    p.add_argument("--interval", type=int, default=2, help="Capture every Nth tick (default: %(default)s)")

    # info
    sub.add_parser("info", parents=[source], help="Show output and grid size for an image")

    # list-effects
    sub.add_parser("list-effects", help="List all animation effects")

    # preview
    sub.add_parser("preview", parents=[source, animated], help="Open the live preview window (pygame)")

    # serve
    p = sub.add_parser("serve", help="Launch the HTTP API")
    p.add_argument("--host", default="127.0.0.1", help="Bind address (default: %(default)s)")
    p.add_argument("--port", type=int, default=7860, help="Port (default: %(default)s)")

    args = parser.parse_args()

    commands = {
        "pixelate": cmd_pixelate,
        "still": cmd_still,
        "gif": cmd_gif,
        "info": cmd_info,
        "list-effects": cmd_list_effects,
        "preview": cmd_preview,
        "serve": cmd_serve,
    }

    if args.command in commands:
        try:
            commands[args.command](args)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
