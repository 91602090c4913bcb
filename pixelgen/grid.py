"""Output grid cells and their color samples from the source image."""
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from pixelgen.color_metric import to_perceptual


def output_size(width: int, height: int, max_side: Optional[int] = None) -> Tuple[int, int]:
    """
    Size of the output grid.

    The longer side becomes ``max_side`` and the other side keeps the
    aspect ratio (rounded up). ``None`` keeps the native resolution.
    """
    if max_side is None:
        return width, height
    if width >= height:
        return max_side, max(1, math.ceil(max_side / width * height))
    return max(1, math.ceil(max_side / height * width)), max_side


@dataclass
class OutputGrid:
    """
    The W x H output cells, flattened row-major.

    positions are cell centers in grid space, colors are Lab samples of the
    source region each cell covers.
    """
    width: int
    height: int
    source_width: int
    source_height: int
    positions: np.ndarray  # (N, 2) x, y
    colors: np.ndarray     # (N, 3) Lab

    @property
    def n_cells(self) -> int:
        return self.width * self.height

    @property
    def extent(self) -> float:
        """Diagonal of the grid, the largest useful search radius."""
        return math.hypot(self.width, self.height)

    def to_source(self, positions: np.ndarray) -> np.ndarray:
        """Map grid-space positions back into source-image space."""
        scale = np.array(
            [self.source_width / self.width, self.source_height / self.height]
        )
        return np.asarray(positions, dtype=np.float64) * scale

    def reshape(self, values: np.ndarray) -> np.ndarray:
        """Reshape a per-cell vector to (H, W, ...)."""
        return values.reshape((self.height, self.width) + values.shape[1:])


def _footprints(n_out: int, n_in: int) -> Tuple[np.ndarray, np.ndarray]:
    """Source index ranges [lo, hi) covered by each output cell along one axis."""
    edges = np.floor(np.arange(n_out + 1) * n_in / n_out).astype(np.int64)
    lo = np.minimum(edges[:-1], n_in - 1)
    hi = np.maximum(edges[1:], lo + 1)
    return lo, np.minimum(hi, n_in)


def build_output_grid(image_srgb: np.ndarray, width: int, height: int) -> OutputGrid:
    """
    Build output cells for a source image.

    Each cell's color is the mean Lab color of the source pixels under its
    footprint (a single pixel at native resolution, the nearest pixel when
    upsampling).

    Args:
        image_srgb: Source image (H, W, 3), uint8 or float in [0, 1]
        width: Output grid width
        height: Output grid height

    Returns:
        OutputGrid
    """
    src_h, src_w = image_srgb.shape[:2]
    lab = to_perceptual(image_srgb)

    # Integral image for box sums
    integral = np.zeros((src_h + 1, src_w + 1, 3), dtype=np.float64)
    integral[1:, 1:] = lab.cumsum(axis=0).cumsum(axis=1)

    x_lo, x_hi = _footprints(width, src_w)
    y_lo, y_hi = _footprints(height, src_h)
    y0, x0 = np.meshgrid(y_lo, x_lo, indexing="ij")
    y1, x1 = np.meshgrid(y_hi, x_hi, indexing="ij")

    sums = integral[y1, x1] - integral[y0, x1] - integral[y1, x0] + integral[y0, x0]
    area = ((y1 - y0) * (x1 - x0))[..., None].astype(np.float64)
    colors = sums / area

    # Single-pixel footprints take the pixel value directly
    single = (area[..., 0] == 1)
    colors[single] = lab[y0[single], x0[single]]

    ys, xs = np.mgrid[0:height, 0:width]
    positions = np.stack([xs.ravel() + 0.5, ys.ravel() + 0.5], axis=1).astype(np.float64)

    return OutputGrid(
        width=width,
        height=height,
        source_width=src_w,
        source_height=src_h,
        positions=positions,
        colors=colors.reshape(-1, 3),
    )
