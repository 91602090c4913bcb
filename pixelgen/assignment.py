"""Cell-to-superpixel assignment under the joint color and shape cost."""
import logging
from typing import Optional, Tuple

import numpy as np

from pixelgen.color_metric import distance_matrix
from pixelgen.grid import OutputGrid
from pixelgen.lattice import LatticeSnapshot, SuperpixelLattice
from pixelgen.workers import WorkerPool, split_rows

logger = logging.getLogger(__name__)

CANDIDATE_BLOCK = 512
CELL_BLOCK = 2048


def _mahalanobis(dx: np.ndarray, dy: np.ndarray, inv_shapes: np.ndarray,
                 spacing: float) -> np.ndarray:
    a = inv_shapes[None, :, 0, 0]
    b = inv_shapes[None, :, 0, 1]
    c = inv_shapes[None, :, 1, 1]
    return (a * dx * dx + 2.0 * b * dx * dy + c * dy * dy) / (spacing * spacing)


def spatial_term(positions: np.ndarray, centroids: np.ndarray,
                 inv_shapes: np.ndarray, spacing: float) -> np.ndarray:
    """
    Squared Mahalanobis distance in units of the grid spacing.

    Args:
        positions: (N, 2) cell positions
        centroids: (K, 2) superpixel centroids
        inv_shapes: (K, 2, 2) inverse unit-determinant shape tensors
        spacing: Lattice spacing S

    Returns:
        (N, K) array
    """
    dx = positions[:, None, 0] - centroids[None, :, 0]
    dy = positions[:, None, 1] - centroids[None, :, 1]
    return _mahalanobis(dx, dy, inv_shapes, spacing)


def _assign_block(
    positions: np.ndarray,
    colors: np.ndarray,
    snapshot: LatticeSnapshot,
    lam: float,
    radius: float,
) -> np.ndarray:
    x0, y0 = positions.min(axis=0)
    x1, y1 = positions.max(axis=0)
    candidates = snapshot.candidates_for_box(x0, y0, x1, y1, radius)
    if len(candidates) == 0:
        return snapshot.nearest(positions)

    n = len(positions)
    best_cost = np.full(n, np.inf)
    owners = np.full(n, -1, dtype=np.int64)

    # Candidates are scanned in ascending blocks; a strict comparison keeps
    # the lowest index on ties.
    for start in range(0, len(candidates), CANDIDATE_BLOCK):
        block = candidates[start:start + CANDIDATE_BLOCK]
        centroids = snapshot.centroids[block]
        dx = positions[:, None, 0] - centroids[None, :, 0]
        dy = positions[:, None, 1] - centroids[None, :, 1]
        out_of_range = dx * dx + dy * dy > radius * radius

        cost = distance_matrix(colors, snapshot.colors[block])
        if lam != 0.0:
            cost += lam * _mahalanobis(dx, dy, snapshot.inv_shapes[block], snapshot.spacing)
        del dx, dy
        cost[out_of_range] = np.inf

        local = np.argmin(cost, axis=1)
        local_cost = cost[np.arange(n), local]
        better = local_cost < best_cost
        best_cost[better] = local_cost[better]
        owners[better] = block[local[better]]

    orphans = owners < 0
    if np.any(orphans):
        owners[orphans] = snapshot.nearest(positions[orphans])
    return owners


def assign_chunk(
    positions: np.ndarray,
    colors: np.ndarray,
    snapshot: LatticeSnapshot,
    lam: float,
    radius: float,
) -> np.ndarray:
    """
    Owner of each cell in one chunk.

    Only superpixels whose centroid is within ``radius`` of a cell compete
    for it; ties go to the lowest superpixel index. Cells with no candidate
    in range fall back to the nearest centroid.

    The chunk is scanned in blocks of at most ``CELL_BLOCK`` cells against
    ``CANDIDATE_BLOCK`` candidates, which bounds the temporaries whatever
    the grid width. Each cell's owner depends only on its own costs, so the
    blocking does not change the result.
    """
    owners = np.empty(len(positions), dtype=np.int64)
    for start in range(0, len(positions), CELL_BLOCK):
        end = start + CELL_BLOCK
        owners[start:end] = _assign_block(
            positions[start:end], colors[start:end], snapshot, lam, radius
        )
    return owners


def assign_cells(
    grid: OutputGrid,
    lattice: SuperpixelLattice,
    lam: float,
    radius: float,
    pool: WorkerPool,
    previous: Optional[np.ndarray] = None,
    chunk_rows: int = 16,
) -> Tuple[np.ndarray, int]:
    """
    Assign every output cell to exactly one superpixel.

    Each chunk of cell rows reads the same lattice snapshot and writes a
    disjoint slice of the owner array, so chunks run in parallel without
    synchronization; ``pool.map`` returns once every chunk is done.

    Args:
        grid: Output grid
        lattice: Current lattice (not modified)
        lam: Weight of the spatial term
        radius: Candidate search radius in grid units
        pool: Worker pool
        previous: Owners from the previous pass, or None
        chunk_rows: Grid rows per work chunk

    Returns:
        Tuple of (owners, changed) where owners is an (N,) int array and
        changed is the number of cells whose owner differs from ``previous``
    """
    snapshot = lattice.snapshot()
    chunks = split_rows(grid.height, grid.width, chunk_rows)

    def work(chunk: Tuple[int, int]) -> np.ndarray:
        start, end = chunk
        return assign_chunk(
            grid.positions[start:end], grid.colors[start:end], snapshot, lam, radius
        )

    parts = pool.map(work, chunks)
    owners = np.concatenate(parts).astype(np.int64, copy=False)

    if previous is None:
        changed = grid.n_cells
    else:
        changed = int(np.count_nonzero(owners != previous))
    logger.debug(f"Assignment: lambda={lam:.3f} radius={radius:.2f} changed={changed}")
    return owners, changed
