"""Superpixel lattice state and neighbor queries."""
import math
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
from scipy.spatial import cKDTree

from pixelgen.grid import OutputGrid

logger = logging.getLogger(__name__)

ISOTROPIC = np.eye(2, dtype=np.float64)

# log of the largest site aspect ratio accepted for an exact factorization
MAX_SITE_ASPECT = math.log(2.0)


def lattice_shape(n_superpixels: int, width: int, height: int) -> Tuple[int, int]:
    """
    Arrange M sites in rows x cols, as close to square as the grid allows.

    An exact factorization rows * cols == M is used when its sites are at
    most 2:1. Otherwise (M prime, or no divisor pair that fits the grid)
    the layout is near square with a partial last row, so that
    (rows - 1) * cols < M <= rows * cols.
    """
    best = (1, n_superpixels)
    best_score = math.inf
    for rows in range(1, n_superpixels + 1):
        if n_superpixels % rows:
            continue
        cols = n_superpixels // rows
        if rows > height or cols > width:
            continue
        # log ratio of site width to site height
        score = abs(math.log((width / cols) / (height / rows)))
        if score < best_score:
            best, best_score = (rows, cols), score
    if best_score <= MAX_SITE_ASPECT:
        return best

    rows = int(round(math.sqrt(n_superpixels * height / width)))
    rows = min(max(rows, 1), n_superpixels, height)
    cols = min(math.ceil(n_superpixels / rows), width)
    return math.ceil(n_superpixels / cols), cols


@dataclass(frozen=True)
class LatticeSnapshot:
    """Read-only view of the lattice used during an assignment pass."""
    centroids: np.ndarray     # (M, 2)
    colors: np.ndarray        # (M, 3)
    inv_shapes: np.ndarray    # (M, 2, 2) inverse of the unit-determinant shape tensors
    spacing: float
    tree: cKDTree

    def candidates_for_box(self, x0: float, y0: float, x1: float, y1: float,
                           radius: float) -> np.ndarray:
        """
        Sites that can lie within ``radius`` of any point of a rectangle.

        Returns sorted indices; a superset of every per-point candidate set.
        """
        center = ((x0 + x1) / 2.0, (y0 + y1) / 2.0)
        half_diag = math.hypot(x1 - x0, y1 - y0) / 2.0
        found = self.tree.query_ball_point(center, radius + half_diag)
        return np.array(sorted(found), dtype=np.int64)

    def nearest(self, points: np.ndarray) -> np.ndarray:
        """Index of the nearest site centroid for each point."""
        _, idx = self.tree.query(points)
        return np.asarray(idx, dtype=np.int64)


class SuperpixelLattice:
    """
    Mutable state of the M superpixels.

    Each superpixel is a plain record stored column-wise: centroid, mean Lab
    color, unit-determinant shape tensor and member count. Slots are never
    removed; a superpixel with zero members keeps its last centroid and
    color.
    """

    def __init__(
        self,
        centroids: np.ndarray,
        colors: np.ndarray,
        rows: int,
        cols: int,
        spacing: float,
        shapes: Optional[np.ndarray] = None,
    ):
        self.centroids = np.asarray(centroids, dtype=np.float64)
        self.colors = np.asarray(colors, dtype=np.float64)
        self.rows = rows
        self.cols = cols
        self.spacing = float(spacing)
        m = len(self.centroids)
        if shapes is None:
            shapes = np.repeat(ISOTROPIC[None], m, axis=0)
        self.shapes = np.asarray(shapes, dtype=np.float64)
        self.counts = np.zeros(m, dtype=np.int64)
        self._tree: Optional[cKDTree] = None
        self._neighbor_tables: Dict[int, np.ndarray] = {}

    @classmethod
    def initialize(cls, grid: OutputGrid, n_superpixels: int) -> "SuperpixelLattice":
        """
        Place M sites on a regular grid over the output space. A partial
        last row spreads its sites evenly across the full width.

        Args:
            grid: Output grid
            n_superpixels: Number of superpixels M

        Returns:
            SuperpixelLattice with colors seeded from the nearest cell
        """
        rows, cols = lattice_shape(n_superpixels, grid.width, grid.height)
        spacing = math.sqrt(grid.width * grid.height / n_superpixels)

        rows_xy = []
        for r in range(rows):
            n = min(cols, n_superpixels - r * cols)
            xs = (np.arange(n) + 0.5) * grid.width / n
            ys = np.full(n, (r + 0.5) * grid.height / rows)
            rows_xy.append(np.stack([xs, ys], axis=1))
        centroids = np.concatenate(rows_xy)

        cell_x = np.clip(np.floor(centroids[:, 0]).astype(np.int64), 0, grid.width - 1)
        cell_y = np.clip(np.floor(centroids[:, 1]).astype(np.int64), 0, grid.height - 1)
        colors = grid.colors[cell_y * grid.width + cell_x].copy()

        logger.info(
            f"Lattice: {n_superpixels} superpixels as {rows}x{cols}, spacing {spacing:.2f}"
        )
        return cls(centroids, colors, rows, cols, spacing)

    def __len__(self) -> int:
        return len(self.centroids)

    def rebuild_index(self) -> None:
        """Rebuild the spatial index after centroids moved."""
        self._tree = cKDTree(self.centroids)

    @property
    def tree(self) -> cKDTree:
        if self._tree is None:
            self.rebuild_index()
        return self._tree

    def neighbors_within(self, site: Union[int, np.ndarray, Tuple[float, float]],
                         radius: float) -> np.ndarray:
        """
        Superpixels whose centroid lies within ``radius``.

        Args:
            site: Superpixel index or a (x, y) point
            radius: Search radius in grid units

        Returns:
            Sorted array of superpixel indices
        """
        if isinstance(site, (int, np.integer)):
            point = self.centroids[int(site)]
        else:
            point = np.asarray(site, dtype=np.float64)
        found = self.tree.query_ball_point(point, radius)
        return np.array(sorted(found), dtype=np.int64)

    def _row_length(self, row: int) -> int:
        return min(self.cols, len(self) - row * self.cols)

    def grid_neighbors(self, index: int, connectivity: int = 4) -> List[int]:
        """
        Neighbors of a site in the initial rows x cols topology.

        Sites of a partial last row link to the columns of the adjacent row
        nearest to them in x, and the other way round.
        """
        r, c = divmod(index, self.cols)
        n = self._row_length(r)
        result = []
        for dr in (-1, 0, 1):
            rr = r + dr
            if not 0 <= rr < self.rows:
                continue
            n_other = self._row_length(rr)
            if dr == 0:
                center, offsets = c, (-1, 1)
            else:
                center = int((c + 0.5) * n_other / n)
                offsets = (0,) if connectivity == 4 else (-1, 0, 1)
            for dc in offsets:
                cc = center + dc
                if 0 <= cc < n_other:
                    result.append(rr * self.cols + cc)
        return result

    def neighbor_table(self, connectivity: int = 4) -> np.ndarray:
        """
        (M, k) array of grid neighbors, padded with -1.

        The topology never changes, so the table is built once per
        connectivity.
        """
        if connectivity not in self._neighbor_tables:
            width = 4 if connectivity == 4 else 8
            table = np.full((len(self), width), -1, dtype=np.int64)
            for i in range(len(self)):
                nbrs = self.grid_neighbors(i, connectivity)
                table[i, :len(nbrs)] = nbrs
            self._neighbor_tables[connectivity] = table
        return self._neighbor_tables[connectivity]

    def inverse_shapes(self) -> np.ndarray:
        """Inverse of each unit-determinant shape tensor (adjugate)."""
        s = self.shapes
        inv = np.empty_like(s)
        inv[:, 0, 0] = s[:, 1, 1]
        inv[:, 1, 1] = s[:, 0, 0]
        inv[:, 0, 1] = -s[:, 0, 1]
        inv[:, 1, 0] = -s[:, 1, 0]
        return inv

    def snapshot(self) -> LatticeSnapshot:
        """Copy the current state for a read-only assignment pass."""
        self.rebuild_index()
        centroids = self.centroids.copy()
        colors = self.colors.copy()
        inv_shapes = self.inverse_shapes()
        for arr in (centroids, colors, inv_shapes):
            arr.setflags(write=False)
        return LatticeSnapshot(
            centroids=centroids,
            colors=colors,
            inv_shapes=inv_shapes,
            spacing=self.spacing,
            tree=self._tree,
        )
