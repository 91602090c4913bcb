"""Command-line interface for pixelgen."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .pipeline import PixelArtPipeline
from .render import save_result
from .types import PixelArtConfig, PixelArtError


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="pixelgen",
        description="Turn a photograph into content-adaptive pixel art",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pixelgen -i photo.jpg -o sprite.png --max-side 64 --superpixels 1024 --colors 12
  pixelgen -i photo.jpg -o sprite.png --max-side 48 --scale 8
  pixelgen -i photo.jpg -o pattern.svg --max-side 80 --colors 24
        """,
    )

    parser.add_argument("-i", "--input", required=True, help="Input image file path")

    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output path, .png or .svg (default: input name with _pixel.png)",
    )

    parser.add_argument(
        "-m",
        "--max-side",
        type=int,
        default=128,
        help="Cells along the longer side of the output grid (default: 128)",
    )

    parser.add_argument(
        "-s",
        "--superpixels",
        type=int,
        default=1024,
        help="Number of superpixels (default: 1024)",
    )

    parser.add_argument(
        "-c",
        "--colors",
        type=int,
        default=16,
        help="Palette size (default: 16)",
    )

    parser.add_argument(
        "--scale",
        type=int,
        default=1,
        help="Output pixels per cell (default: 1)",
    )

    parser.add_argument(
        "--iterations",
        type=int,
        default=60,
        help="Maximum number of relaxation passes (default: 60)",
    )

    parser.add_argument(
        "--threshold",
        type=float,
        default=0.002,
        help="Stop when fewer than this fraction of cells change owner (default: 0.002)",
    )

    parser.add_argument(
        "--decay",
        choices=["linear", "exponential"],
        default="exponential",
        help="Decay law for the shape weight and search radius (default: exponential)",
    )

    parser.add_argument(
        "--seeding",
        choices=["farthest", "variance"],
        default="farthest",
        help="Palette seeding strategy (default: farthest)",
    )

    parser.add_argument("--seed", type=int, default=0, help="Reproducibility seed (default: 0)")

    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads (default: CPU count)",
    )

    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log every relaxation pass"
    )

    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Only log warnings and errors"
    )

    return parser


def configure_logging(verbose: bool, quiet: bool) -> None:
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(args: Optional[list] = None) -> int:
    """Main entry point for CLI.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = create_parser()
    parsed = parser.parse_args(args)
    configure_logging(parsed.verbose, parsed.quiet)

    input_path = Path(parsed.input)
    if parsed.output:
        output_path = Path(parsed.output)
    else:
        output_path = input_path.with_name(f"{input_path.stem}_pixel.png")

    try:
        config = PixelArtConfig(
            n_superpixels=parsed.superpixels,
            n_colors=parsed.colors,
            max_side=parsed.max_side,
            max_iterations=parsed.iterations,
            convergence_threshold=parsed.threshold,
            decay=parsed.decay,
            palette_seeding=parsed.seeding,
            seed=parsed.seed,
            workers=parsed.workers,
        )

        print(f"Processing: {input_path}")
        print(f"  Superpixels: {config.n_superpixels}")
        print(f"  Colors: {config.n_colors}")

        pipeline = PixelArtPipeline(config)
        result = pipeline.process(input_path)
        save_result(result, output_path, scale=parsed.scale)

        width, height = result.size
        print(f"  Grid: {width}x{height}, passes: {result.iterations}, "
              f"converged: {result.converged}")
        print(f"  Output saved: {output_path}")
        return 0

    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except PixelArtError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
