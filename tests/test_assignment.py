"""Tests for cell assignment."""
import numpy as np

from pixelgen import assignment
from pixelgen.assignment import assign_cells, spatial_term
from pixelgen.grid import build_output_grid
from pixelgen.lattice import SuperpixelLattice
from pixelgen.workers import WorkerPool


def checker_partition(size=64, square=8):
    ys, xs = np.mgrid[0:size, 0:size]
    return ((ys // square) * (size // square) + xs // square).ravel()


class TestSpatialTerm:
    """Test the shape-aware spatial cost."""

    def test_isotropic_is_scaled_squared_distance(self):
        positions = np.array([[3.0, 4.0], [0.0, 0.0]])
        centroids = np.array([[0.0, 0.0]])
        inv = np.eye(2)[None]

        term = spatial_term(positions, centroids, inv, spacing=5.0)

        np.testing.assert_allclose(term[:, 0], [1.0, 0.0])

    def test_elongated_shape_favors_major_axis(self):
        # shape tensor stretched along x: its inverse shrinks x distances
        inv = np.array([[[0.25, 0.0], [0.0, 4.0]]])
        centroids = np.zeros((1, 2))

        along = spatial_term(np.array([[4.0, 0.0]]), centroids, inv, 1.0)[0, 0]
        across = spatial_term(np.array([[0.0, 4.0]]), centroids, inv, 1.0)[0, 0]

        assert along < across


class TestAssignCells:
    """Test assign_cells."""

    def test_checkerboard_partition(self, checkerboard_image):
        grid = build_output_grid(checkerboard_image, 64, 64)
        lattice = SuperpixelLattice.initialize(grid, 64)

        with WorkerPool(1) as pool:
            owners, changed = assign_cells(grid, lattice, 40.0, grid.extent, pool)

        np.testing.assert_array_equal(owners, checker_partition())
        assert changed == grid.n_cells

    def test_every_cell_has_one_owner(self, gradient_image):
        grid = build_output_grid(gradient_image, 48, 40)
        lattice = SuperpixelLattice.initialize(grid, 30)

        with WorkerPool(2) as pool:
            owners, _ = assign_cells(grid, lattice, 10.0, 12.0, pool, chunk_rows=7)

        assert owners.shape == (grid.n_cells,)
        assert owners.min() >= 0 and owners.max() < 30

    def test_changed_count(self, gradient_image):
        grid = build_output_grid(gradient_image, 48, 40)
        lattice = SuperpixelLattice.initialize(grid, 30)

        with WorkerPool(1) as pool:
            owners, _ = assign_cells(grid, lattice, 10.0, 20.0, pool)
            again, changed = assign_cells(grid, lattice, 10.0, 20.0, pool, previous=owners)
            previous = owners.copy()
            previous[:5] = (previous[:5] + 1) % 30
            _, changed_some = assign_cells(grid, lattice, 10.0, 20.0, pool, previous=previous)

        np.testing.assert_array_equal(owners, again)
        assert changed == 0
        assert changed_some == 5

    def test_ties_go_to_lowest_index(self):
        image = np.full((4, 4, 3), 128, dtype=np.uint8)
        grid = build_output_grid(image, 4, 4)
        lattice = SuperpixelLattice(
            centroids=np.array([[2.0, 2.0], [2.0, 2.0]]),
            colors=np.repeat(grid.colors[:1], 2, axis=0),
            rows=1, cols=2, spacing=2.0,
        )

        with WorkerPool(1) as pool:
            owners, _ = assign_cells(grid, lattice, 5.0, 10.0, pool)

        assert np.all(owners == 0)

    def test_no_candidate_falls_back_to_nearest(self, gradient_image):
        grid = build_output_grid(gradient_image, 48, 40)
        lattice = SuperpixelLattice.initialize(grid, 4)

        with WorkerPool(1) as pool:
            owners, _ = assign_cells(grid, lattice, 10.0, 0.1, pool)

        nearest = lattice.snapshot().nearest(grid.positions)
        np.testing.assert_array_equal(owners, nearest)

    def test_independent_of_workers_and_chunks(self, gradient_image):
        grid = build_output_grid(gradient_image, 48, 40)
        lattice = SuperpixelLattice.initialize(grid, 24)

        with WorkerPool(1) as pool:
            serial, _ = assign_cells(grid, lattice, 15.0, 25.0, pool, chunk_rows=40)
        with WorkerPool(4) as pool:
            parallel, _ = assign_cells(grid, lattice, 15.0, 25.0, pool, chunk_rows=3)

        np.testing.assert_array_equal(serial, parallel)

    def test_independent_of_cell_blocks(self, gradient_image, monkeypatch):
        grid = build_output_grid(gradient_image, 48, 40)
        lattice = SuperpixelLattice.initialize(grid, 24)

        with WorkerPool(1) as pool:
            whole, _ = assign_cells(grid, lattice, 15.0, 25.0, pool, chunk_rows=40)
            monkeypatch.setattr(assignment, "CELL_BLOCK", 7)
            monkeypatch.setattr(assignment, "CANDIDATE_BLOCK", 5)
            blocked, _ = assign_cells(grid, lattice, 15.0, 25.0, pool, chunk_rows=40)

        np.testing.assert_array_equal(whole, blocked)

    def test_wide_grid_bounded_blocks(self, monkeypatch):
        # one chunk row of a wide grid is split into several cell blocks
        image = np.zeros((2, 600, 3), dtype=np.uint8)
        image[:, 300:] = 255
        grid = build_output_grid(image, 600, 2)
        lattice = SuperpixelLattice.initialize(grid, 4)
        sizes = []
        block = assignment._assign_block

        def recording(positions, *args):
            sizes.append(len(positions))
            return block(positions, *args)

        monkeypatch.setattr(assignment, "CELL_BLOCK", 256)
        monkeypatch.setattr(assignment, "_assign_block", recording)
        with WorkerPool(1) as pool:
            owners, _ = assign_cells(grid, lattice, 10.0, grid.extent, pool, chunk_rows=2)

        assert max(sizes) <= 256
        assert sum(sizes) == grid.n_cells
        assert owners.min() >= 0 and owners.max() < 4

    def test_color_beats_distance_at_low_lambda(self):
        # left half dark, right half light; a dark site placed on the light side
        image = np.zeros((8, 8, 3), dtype=np.uint8)
        image[:, 4:] = 255
        grid = build_output_grid(image, 8, 8)
        lattice = SuperpixelLattice(
            centroids=np.array([[6.0, 4.0], [7.0, 4.0]]),
            colors=np.array([grid.colors[0], grid.colors[7]]),
            rows=1, cols=2, spacing=4.0,
        )

        with WorkerPool(1) as pool:
            owners, _ = assign_cells(grid, lattice, 0.5, 20.0, pool)

        owners = owners.reshape(8, 8)
        assert np.all(owners[:, :4] == 0)
        assert np.all(owners[:, 4:] == 1)
