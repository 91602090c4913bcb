"""Tests for the superpixel lattice."""
import numpy as np
import pytest

from pixelgen.grid import build_output_grid
from pixelgen.lattice import SuperpixelLattice, lattice_shape


class TestLatticeShape:
    """Test factoring M into rows x cols."""

    def test_square(self):
        assert lattice_shape(64, 64, 64) == (8, 8)

    def test_follows_aspect(self):
        assert lattice_shape(12, 40, 30) == (3, 4)
        assert lattice_shape(18, 20, 80) == (9, 2)

    def test_prime_exact_when_square(self):
        assert lattice_shape(7, 70, 10) == (1, 7)

    def test_prime_uses_partial_last_row(self):
        assert lattice_shape(97, 64, 64) == (10, 10)

    def test_product_covers_m(self):
        for m in (1, 6, 15, 36, 97, 100, 101):
            rows, cols = lattice_shape(m, 50, 30)
            assert (rows - 1) * cols < m <= rows * cols
            assert rows <= 30 and cols <= 50


class TestSuperpixelLattice:
    """Test lattice initialization and queries."""

    @pytest.fixture
    def lattice(self, checkerboard_image):
        grid = build_output_grid(checkerboard_image, 64, 64)
        return SuperpixelLattice.initialize(grid, 64), grid

    def test_initialize_grid(self, lattice):
        lattice, grid = lattice

        assert len(lattice) == 64
        assert (lattice.rows, lattice.cols) == (8, 8)
        assert lattice.spacing == pytest.approx(8.0)
        np.testing.assert_array_equal(lattice.centroids[0], [4.0, 4.0])
        np.testing.assert_array_equal(lattice.centroids[9], [12.0, 12.0])
        np.testing.assert_array_equal(lattice.shapes[5], np.eye(2))
        assert np.all(lattice.counts == 0)

    def test_colors_seeded_from_nearest_cell(self, lattice):
        lattice, grid = lattice

        # square (0, 0) is dark, square (1, 0) is light
        assert lattice.colors[0, 0] == pytest.approx(0.0, abs=1e-6)
        assert lattice.colors[1, 0] == pytest.approx(100.0, abs=1e-3)

    def test_neighbors_within(self, lattice):
        lattice, _ = lattice

        np.testing.assert_array_equal(lattice.neighbors_within(0, 8.5), [0, 1, 8])
        np.testing.assert_array_equal(lattice.neighbors_within((8.0, 8.0), 6.0), [0, 1, 8, 9])
        assert len(lattice.neighbors_within(0, 200.0)) == 64

    def test_grid_neighbors(self, lattice):
        lattice, _ = lattice

        assert sorted(lattice.grid_neighbors(0)) == [1, 8]
        assert sorted(lattice.grid_neighbors(9)) == [1, 8, 10, 17]
        assert len(lattice.grid_neighbors(9, connectivity=8)) == 8

    def test_snapshot_is_read_only(self, lattice):
        lattice, _ = lattice
        snapshot = lattice.snapshot()

        with pytest.raises(ValueError):
            snapshot.centroids[0, 0] = 1.0

        lattice.centroids[0, 0] = 99.0
        assert snapshot.centroids[0, 0] == 4.0

    def test_candidates_for_box_superset(self, lattice):
        lattice, _ = lattice
        snapshot = lattice.snapshot()

        box = snapshot.candidates_for_box(0.5, 0.5, 7.5, 7.5, 5.0)
        for point in [(0.5, 0.5), (7.5, 0.5), (7.5, 7.5)]:
            assert set(lattice.neighbors_within(point, 5.0)) <= set(box)

    def test_inverse_shapes(self):
        lattice = SuperpixelLattice(
            centroids=np.zeros((1, 2)), colors=np.zeros((1, 3)), rows=1, cols=1,
            spacing=1.0, shapes=np.array([[[2.0, 0.0], [0.0, 0.5]]]),
        )

        np.testing.assert_allclose(lattice.inverse_shapes()[0], [[0.5, 0.0], [0.0, 2.0]])


class TestPartialLattice:
    """Test a lattice whose last row is partial."""

    @pytest.fixture
    def lattice(self):
        image = np.zeros((64, 64, 3), dtype=np.uint8)
        grid = build_output_grid(image, 64, 64)
        return SuperpixelLattice.initialize(grid, 97)

    def test_sites_cover_the_grid(self, lattice):
        assert len(lattice) == 97
        assert (lattice.rows, lattice.cols) == (10, 10)
        assert len(np.unique(lattice.centroids[:, 1])) == 10
        # the 7 sites of the last row spread across the full width
        last = lattice.centroids[90:]
        np.testing.assert_allclose(last[:, 0], (np.arange(7) + 0.5) * 64 / 7)
        np.testing.assert_allclose(last[:, 1], 9.5 * 6.4)

    def test_last_row_neighbors(self, lattice):
        assert sorted(lattice.grid_neighbors(90)) == [80, 91]
        assert sorted(lattice.grid_neighbors(96)) == [89, 95]
        # sites of the row above link down to the nearest last-row site
        assert 96 in lattice.grid_neighbors(89)
        assert all(n < 97 for i in range(97) for n in lattice.grid_neighbors(i, 8))

    def test_neighbor_table(self, lattice):
        table = lattice.neighbor_table(4)

        assert table.shape == (97, 4)
        assert sorted(table[90][table[90] >= 0]) == [80, 91]
        assert lattice.neighbor_table(4) is table
