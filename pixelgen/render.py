"""Raster and SVG output for pixel art results."""
from pathlib import Path
from typing import List, Tuple, Union

import numpy as np
from PIL import Image

from pixelgen.types import PixelArtResult


def format_color(rgb: np.ndarray) -> str:
    """
    Format a uint8 RGB color as hex string.

    Uses #RGB shorthand when possible.
    """
    r, g, b = [int(c) for c in rgb]

    if (r % 17 == 0) and (g % 17 == 0) and (b % 17 == 0):
        return f"#{r//17:x}{g//17:x}{b//17:x}"
    else:
        return f"#{r:02x}{g:02x}{b:02x}"


def render_image(result: PixelArtResult, scale: int = 1) -> Image.Image:
    """
    Rasterize a result, each cell as a ``scale`` x ``scale`` block.

    Args:
        result: Pipeline result
        scale: Output pixels per cell

    Returns:
        RGB PIL image
    """
    if scale < 1:
        raise ValueError(f"scale must be >= 1, got {scale}")
    image = Image.fromarray(result.to_image())
    if scale > 1:
        width, height = result.size
        image = image.resize((width * scale, height * scale), Image.NEAREST)
    return image


def save_png(result: PixelArtResult, output_path: Union[str, Path], scale: int = 1) -> None:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    render_image(result, scale).save(output_path)


def row_runs(indices: np.ndarray) -> List[Tuple[int, int, int, int]]:
    """
    Horizontal runs of equal palette index.

    Returns:
        List of (palette_index, row, start_col, length)
    """
    runs = []
    for y, row in enumerate(indices):
        start = 0
        for x in range(1, len(row) + 1):
            if x == len(row) or row[x] != row[start]:
                runs.append((int(row[start]), y, start, x - start))
                start = x
    return runs


def result_to_svg(result: PixelArtResult, cell_size: int = 10) -> str:
    """
    Build an SVG document with one rect per horizontal run of equal cells,
    grouped by palette color.

    Args:
        result: Pipeline result
        cell_size: SVG units per cell

    Returns:
        SVG string
    """
    width, height = result.size
    by_color = {}
    for index, y, x, length in row_runs(result.indices):
        by_color.setdefault(index, []).append(
            f'<rect x="{x * cell_size}" y="{y * cell_size}" '
            f'width="{length * cell_size}" height="{cell_size}"/>'
        )

    lines = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width * cell_size}" '
        f'height="{height * cell_size}" viewBox="0 0 {width * cell_size} {height * cell_size}" '
        'shape-rendering="crispEdges">'
    ]
    for index in sorted(by_color):
        fill = format_color(result.palette_rgb[index])
        lines.append(f'<g id="color-{index}" fill="{fill}">')
        lines.extend(by_color[index])
        lines.append('</g>')
    lines.append('</svg>')
    return '\n'.join(lines)


def save_svg(result: PixelArtResult, output_path: Union[str, Path], cell_size: int = 10) -> None:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w') as f:
        f.write(result_to_svg(result, cell_size))


def save_result(result: PixelArtResult, output_path: Union[str, Path], scale: int = 1) -> None:
    """Save as SVG when the path ends in .svg, otherwise as a raster image."""
    if Path(output_path).suffix.lower() == ".svg":
        save_svg(result, output_path, cell_size=max(1, scale))
    else:
        save_png(result, output_path, scale)
