"""Lattice update: scatter-reduce of cell statistics into superpixels."""
import math
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from pixelgen.grid import OutputGrid
from pixelgen.lattice import ISOTROPIC, SuperpixelLattice
from pixelgen.workers import WorkerPool, split_rows

logger = logging.getLogger(__name__)

# Rows of the accumulation buffer
_COUNT, _SX, _SY, _SXX, _SXY, _SYY, _SL, _SA, _SB = range(9)
_N_FIELDS = 9

SINGULAR_RTOL = 1e-6


@dataclass
class UpdateStats:
    """Bookkeeping from one update pass."""
    total: int       # sum of member counts, always W * H
    empty: int       # superpixels with no members
    degenerate: int  # superpixels whose covariance was singular


def accumulate_chunk(positions: np.ndarray, colors: np.ndarray,
                     owners: np.ndarray, n_superpixels: int) -> np.ndarray:
    """
    Partial sums for one chunk of cells.

    Returns:
        (9, M) array: count, sum x, sum y, sum xx, sum xy, sum yy, sum L, sum a, sum b
    """
    x = positions[:, 0]
    y = positions[:, 1]
    acc = np.empty((_N_FIELDS, n_superpixels), dtype=np.float64)
    weights = (None, x, y, x * x, x * y, y * y, colors[:, 0], colors[:, 1], colors[:, 2])
    for row, w in enumerate(weights):
        acc[row] = np.bincount(owners, weights=w, minlength=n_superpixels)
    return acc


def merge_partials(parts: List[np.ndarray]) -> np.ndarray:
    """Sum partial accumulators in chunk order."""
    total = parts[0].copy()
    for part in parts[1:]:
        total += part
    return total


def shape_tensors(cov: np.ndarray, max_elongation: float = 4.0,
                  snap_orientation: bool = True) -> Tuple[np.ndarray, np.ndarray]:
    """
    Unit-determinant shape tensors from member covariances.

    Singular or near-singular covariances (a single cell, colinear cells)
    get the isotropic tensor.

    Args:
        cov: (M, 2, 2) covariance matrices
        max_elongation: Upper bound on the ratio of principal axes variances
        snap_orientation: Snap the principal axis to a multiple of 45 degrees

    Returns:
        Tuple of (shapes, singular) where singular is a boolean mask
    """
    m = len(cov)
    shapes = np.repeat(ISOTROPIC[None], m, axis=0)

    det = cov[:, 0, 0] * cov[:, 1, 1] - cov[:, 0, 1] * cov[:, 1, 0]
    half_trace = (cov[:, 0, 0] + cov[:, 1, 1]) / 2.0
    singular = ~(det > SINGULAR_RTOL * half_trace * half_trace) | ~(half_trace > 0)
    ok = ~singular
    if not np.any(ok):
        return shapes, singular

    evals, evecs = np.linalg.eigh(cov[ok])
    major = evals[:, 1]
    minor = np.maximum(evals[:, 0], major / max_elongation)

    axis = evecs[:, :, 1]
    angle = np.arctan2(axis[:, 1], axis[:, 0])
    if snap_orientation:
        angle = np.round(angle / (math.pi / 4.0)) * (math.pi / 4.0)
    cos, sin = np.cos(angle), np.sin(angle)

    # R diag(major, minor) R^T, scaled to unit determinant
    scale = np.sqrt(major * minor)
    a = (major * cos * cos + minor * sin * sin) / scale
    b = ((major - minor) * cos * sin) / scale
    c = (major * sin * sin + minor * cos * cos) / scale
    out = np.empty((len(a), 2, 2))
    out[:, 0, 0] = a
    out[:, 0, 1] = b
    out[:, 1, 0] = b
    out[:, 1, 1] = c
    shapes[ok] = out
    return shapes, singular


def smooth_positions(lattice: SuperpixelLattice, strength: float,
                     active: Optional[np.ndarray] = None) -> None:
    """
    Laplacian smoothing of centroids over the 4-neighborhood of the lattice
    topology: c = (1 - strength) * c + strength * mean(neighbors).

    Only ``active`` superpixels move, and only active neighbors pull on
    them.
    """
    if strength <= 0.0:
        return
    m = len(lattice)
    if active is None:
        active = np.ones(m, dtype=bool)
    table = lattice.neighbor_table(4)
    valid = (table >= 0) & active[np.maximum(table, 0)]

    neighbors = lattice.centroids[np.maximum(table, 0)]
    counts = valid.sum(axis=1)
    sums = (neighbors * valid[..., None]).sum(axis=1)

    moving = active & (counts > 0)
    smoothed = lattice.centroids.copy()
    smoothed[moving] = (
        (1.0 - strength) * lattice.centroids[moving]
        + strength * sums[moving] / counts[moving, None]
    )
    lattice.centroids = smoothed


def smooth_colors(lattice: SuperpixelLattice, strength: float,
                  active: Optional[np.ndarray] = None) -> None:
    """
    Bilateral color smoothing over the 8-neighborhood (self included),
    weighting each neighbor by exp(-|delta L|). Inactive superpixels
    neither change nor contribute.
    """
    if strength <= 0.0:
        return
    m = len(lattice)
    if active is None:
        active = np.ones(m, dtype=bool)
    table = lattice.neighbor_table(8)
    valid = (table >= 0) & active[np.maximum(table, 0)]

    colors = lattice.colors
    neighbors = colors[np.maximum(table, 0)]
    w = np.exp(-np.abs(colors[:, None, 0] - neighbors[..., 0])) * valid
    weighted = colors + (neighbors * w[..., None]).sum(axis=1)
    total = 1.0 + w.sum(axis=1)

    smoothed = colors.copy()
    smoothed[active] = (
        (1.0 - strength) * colors[active]
        + strength * weighted[active] / total[active, None]
    )
    lattice.colors = smoothed


def update_lattice(
    grid: OutputGrid,
    owners: np.ndarray,
    lattice: SuperpixelLattice,
    pool: WorkerPool,
    max_elongation: float = 4.0,
    snap_orientation: bool = True,
    position_smoothing: float = 0.0,
    color_smoothing: float = 0.0,
    chunk_rows: int = 16,
) -> UpdateStats:
    """
    Recompute centroid, mean color and shape tensor of every superpixel
    from the cells it currently owns.

    Each chunk of cells builds its own partial accumulator; the partials
    are merged in chunk order once all chunks are done, so the result does
    not depend on the number of workers.

    Args:
        grid: Output grid
        owners: (N,) owner of each cell
        lattice: Lattice to update in place
        pool: Worker pool
        max_elongation: Shape tensor elongation bound
        snap_orientation: Snap principal axes to multiples of 45 degrees
        position_smoothing: Laplacian smoothing strength for centroids
        color_smoothing: Bilateral smoothing strength for colors
        chunk_rows: Grid rows per work chunk

    Returns:
        UpdateStats
    """
    m = len(lattice)
    chunks = split_rows(grid.height, grid.width, chunk_rows)

    def work(chunk: Tuple[int, int]) -> np.ndarray:
        start, end = chunk
        return accumulate_chunk(
            grid.positions[start:end], grid.colors[start:end], owners[start:end], m
        )

    acc = merge_partials(pool.map(work, chunks))

    counts = acc[_COUNT]
    filled = counts > 0
    n = counts[filled]

    centroids = lattice.centroids.copy()
    colors = lattice.colors.copy()
    cx = acc[_SX, filled] / n
    cy = acc[_SY, filled] / n
    centroids[filled, 0] = cx
    centroids[filled, 1] = cy
    colors[filled, 0] = acc[_SL, filled] / n
    colors[filled, 1] = acc[_SA, filled] / n
    colors[filled, 2] = acc[_SB, filled] / n

    cov = np.zeros((m, 2, 2))
    cov[filled, 0, 0] = np.maximum(acc[_SXX, filled] / n - cx * cx, 0.0)
    cov[filled, 1, 1] = np.maximum(acc[_SYY, filled] / n - cy * cy, 0.0)
    cov[filled, 0, 1] = acc[_SXY, filled] / n - cx * cy
    cov[filled, 1, 0] = cov[filled, 0, 1]

    shapes, singular = shape_tensors(cov, max_elongation, snap_orientation)

    lattice.centroids = centroids
    lattice.colors = colors
    lattice.shapes = shapes
    lattice.counts = np.rint(counts).astype(np.int64)

    smooth_positions(lattice, position_smoothing, active=filled)
    smooth_colors(lattice, color_smoothing, active=filled)
    lattice.rebuild_index()

    empty = int(np.count_nonzero(~filled))
    degenerate = int(np.count_nonzero(singular & filled))
    if empty or degenerate:
        logger.debug(
            f"Update: {empty} empty superpixel(s), {degenerate} singular shape(s) "
            "replaced by the isotropic tensor"
        )
    return UpdateStats(total=int(lattice.counts.sum()), empty=empty, degenerate=degenerate)
