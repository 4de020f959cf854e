import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from core.config import FORMAT_PRESETS, MAX_ANIMATION_FRAMES, ConversionConfig
from core.gif_generator import GifGenerator
from core.models import ScaleMode
from core.pipeline import convert_file, convert_text
from utils.app_settings import LOG_FILE, get_conversion_defaults
from utils.file_handler import save_payload

logger = logging.getLogger("pixelframe")


def configure_logging(verbose: bool = False) -> None:
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    )
    root = logging.getLogger()
    # Check if logging is already configured
    if root.handlers:
        return

    file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8", mode="a")
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if verbose:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.DEBUG)
        console.setFormatter(formatter)
        root.addHandler(console)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pixelframe",
        description="Convert an image, animated GIF/WebP or emoji into palette-indexed pixel art JSON.",
    )
    parser.add_argument("source", nargs="?", help="Image file path or http(s) URL")
    parser.add_argument("--text", help="Render this text or emoji instead of reading a source")
    parser.add_argument("--text-color", default="#ffffff", help="Color for monochrome glyphs (--text)")
    parser.add_argument("--font", help="TrueType/OpenType font file for --text")
    parser.add_argument("-o", "--output", help="Write the JSON payload here (default: stdout)")
    parser.add_argument("--format", choices=sorted(FORMAT_PRESETS), help="Grid size preset; --width/--height override it")
    parser.add_argument("--width", type=int, help="Target width in pixels")
    parser.add_argument("--height", type=int, help="Target height in pixels")
    parser.add_argument("--colors", type=int, help="Maximum palette size (1-256)")
    parser.add_argument("--dither", action="store_true", default=None, help="Floyd-Steinberg dithering (static images)")
    parser.add_argument("--mode", choices=[m.value for m in ScaleMode], help="Scale mode")
    parser.add_argument("--max-frames", type=int, help=f"Frames kept from animations (1-{MAX_ANIMATION_FRAMES})")
    parser.add_argument("--delay", type=int, help="Nominal frame delay in ms")
    parser.add_argument("--loop", type=int, help="Loop count (0 = forever; default: from source)")
    parser.add_argument("--background", help="Background color as #rrggbb")
    parser.add_argument("--smooth", action="store_true", default=None, help="Box-blur the source before scaling")
    parser.add_argument("--palette", choices=["union", "global"], help="Animation palette strategy")
    parser.add_argument("--title", help="Title stored in the payload")
    parser.add_argument("--preview", help="Also write an upscaled preview GIF here")
    parser.add_argument("--scale", type=int, default=8, help="Preview upscale factor")
    parser.add_argument("--colors-resolved", action="store_true", help="Emit hex colors per pixel instead of indices")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log to stderr")
    return parser


def config_from_args(args: argparse.Namespace, base: Optional[ConversionConfig] = None) -> ConversionConfig:
    data = (base or ConversionConfig()).to_dict()
    if args.format:
        data["target_width"], data["target_height"] = FORMAT_PRESETS[args.format]
    overrides = {
        "target_width": args.width,
        "target_height": args.height,
        "max_colors": args.colors,
        "dither": args.dither,
        "scale_mode": args.mode,
        "max_frames": args.max_frames,
        "frame_delay": args.delay,
        "loop_count": args.loop,
        "background": args.background,
        "smoothing": args.smooth,
        "palette_strategy": args.palette,
    }
    data.update({k: v for k, v in overrides.items() if v is not None})
    return ConversionConfig.from_dict(data)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    if not args.source and not args.text:
        print("Nothing to convert: give a source or --text", file=sys.stderr)
        return 2

    try:
        config = config_from_args(args, get_conversion_defaults()).validate()
    except ValueError as e:
        print(f"Invalid options: {e}", file=sys.stderr)
        return 2

    if args.text:
        result = convert_text(args.text, config, title=args.title, color=args.text_color, font_path=args.font)
    else:
        result = convert_file(args.source, config, title=args.title)
    if not result.success:
        print(f"Conversion failed ({result.error.kind.value}): {result.error.message}", file=sys.stderr)
        return 1

    art = result.animation or result.art
    payload = result.to_json()
    if args.colors_resolved:
        key = "frames" if result.animation is not None else "pixels"
        matrices = art.to_color_matrix()
        if result.animation is not None:
            for frame, matrix in zip(payload[key], matrices):
                frame["pixels"] = matrix
        else:
            payload[key] = matrices

    if args.output:
        save_payload(payload, args.output)
    else:
        json.dump(payload, sys.stdout, indent=2)
        sys.stdout.write("\n")

    if args.preview:
        GifGenerator(scale=args.scale).generate_gif(art, Path(args.preview), config.frame_delay)
        logger.info("Preview written to %s", args.preview)

    return 0


if __name__ == "__main__":
    sys.exit(main())
