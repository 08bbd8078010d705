"""
Unit tests for grid specifications (UniformGrid, NonuniformGrid).

Tests verify:
- Grid construction with different methods
- Primary and dual spacing arrays
- Coordinate lookups
- Validation of invalid meshes
"""

import numpy as np
import pytest

from maxwell_fdtd import ConfigurationError, NonuniformGrid, UniformGrid
from maxwell_fdtd.core.grid import axis_index

# =============================================================================
# UniformGrid Tests
# =============================================================================


class TestUniformGrid:
    def test_basic_construction(self):
        """Test basic uniform grid construction."""
        grid = UniformGrid(shape=(100, 100, 100), resolution=1e-3)

        assert grid.shape == (100, 100, 100)
        assert grid.resolution == 1e-3
        assert grid.min_spacing == 1e-3
        assert grid.max_spacing == 1e-3
        assert grid.is_uniform is True
        assert grid.num_cells == 1_000_000

    def test_spacing_arrays(self):
        """Test that spacing arrays are uniform."""
        grid = UniformGrid(shape=(50, 40, 30), resolution=2e-3)

        assert len(grid.dx) == 50
        assert len(grid.dy) == 40
        assert len(grid.dz) == 30
        np.testing.assert_allclose(grid.dx, 2e-3)
        np.testing.assert_allclose(grid.dz, 2e-3)

    def test_spacing_is_exact_resolution(self):
        """Spacing equals the resolution exactly, not a difference of edges."""
        grid = UniformGrid(shape=(100, 7, 3), resolution=1e-3)

        assert np.all(grid.spacing("x") == 1e-3)
        assert grid.min_spacing == grid.max_spacing == 1e-3
        np.testing.assert_array_equal(grid.dual_spacing("y")[1:-1], 1e-3)

    def test_edges_and_centers(self):
        grid = UniformGrid(shape=(10, 10, 10), resolution=1e-3)

        assert len(grid.x_edges) == 11
        np.testing.assert_allclose(grid.centers("x"), np.arange(10) * 1e-3 + 0.5e-3)

    def test_origin_offsets_edges(self):
        grid = UniformGrid(shape=(4, 4, 4), resolution=1e-3, origin=(0.01, 0.0, -0.002))

        assert grid.x_edges[0] == pytest.approx(0.01)
        assert grid.z_edges[-1] == pytest.approx(0.002)

    def test_physical_extent(self):
        """Test physical domain size computation."""
        grid = UniformGrid(shape=(100, 80, 60), resolution=1e-3)

        Lx, Ly, Lz = grid.physical_extent()
        assert Lx == pytest.approx(0.1)
        assert Ly == pytest.approx(0.08)
        assert Lz == pytest.approx(0.06)

    @pytest.mark.parametrize("shape", [(0, 10, 10), (10, -1, 10), (10, 10)])
    def test_invalid_shape_rejected(self, shape):
        with pytest.raises(ConfigurationError):
            UniformGrid(shape=shape, resolution=1e-3)

    def test_non_positive_resolution_rejected(self):
        with pytest.raises(ConfigurationError, match="Resolution"):
            UniformGrid(shape=(10, 10, 10), resolution=0.0)


# =============================================================================
# Dual Spacing Tests
# =============================================================================


class TestDualSpacing:
    def test_uniform_dual_spacing(self):
        """Interior dual cells equal the primary spacing, ends are half cells."""
        grid = UniformGrid(shape=(5, 5, 5), resolution=1e-3)
        dual = grid.dual_spacing("x")

        assert len(dual) == 6
        np.testing.assert_allclose(dual[1:-1], 1e-3)
        assert dual[0] == pytest.approx(0.5e-3)
        assert dual[-1] == pytest.approx(0.5e-3)

    def test_periodic_dual_spacing_wraps(self):
        grid = NonuniformGrid(
            x_edges=np.array([0.0, 1.0, 3.0, 6.0]),
            y_edges=np.linspace(0, 1, 3),
            z_edges=np.linspace(0, 1, 3),
        )
        dual = grid.dual_spacing(0, periodic=True)

        # Wrapped distance between first and last cell centres
        assert dual[0] == pytest.approx(0.5 * (1.0 + 3.0))
        assert dual[-1] == dual[0]
        np.testing.assert_allclose(dual[1:-1], [1.5, 2.5])

    def test_nonuniform_dual_is_center_distance(self):
        grid = NonuniformGrid(
            x_edges=np.array([0.0, 1.0, 2.0, 4.0]),
            y_edges=np.linspace(0, 1, 3),
            z_edges=np.linspace(0, 1, 3),
        )
        centers = grid.centers("x")
        np.testing.assert_allclose(grid.dual_spacing("x")[1:-1], np.diff(centers))


# =============================================================================
# NonuniformGrid Tests
# =============================================================================


class TestNonuniformGrid:
    def test_from_edges(self):
        grid = NonuniformGrid(
            x_edges=np.linspace(0, 0.01, 11),
            y_edges=np.linspace(0, 0.02, 11),
            z_edges=np.concatenate([[0.0], np.geomspace(1e-3, 0.02, 9)]),
        )

        assert grid.shape == (10, 10, 9)
        assert grid.is_uniform is False
        # Second z cell of the geometric series is the smallest on any axis
        assert grid.min_spacing == pytest.approx(1e-3 * (20 ** (1 / 8) - 1))
        assert grid.max_spacing == pytest.approx(0.02 * (1 - 20 ** (-1 / 8)))

    def test_from_stretch_center_fine(self):
        """Finest cells sit at the domain center when center_fine=True."""
        grid = NonuniformGrid.from_stretch(
            shape=(20, 20, 20), base_resolution=1e-3, stretch_z=1.1
        )

        dz = grid.dz
        assert grid.shape == (20, 20, 20)
        assert dz[10] == pytest.approx(1e-3)
        assert dz[0] > dz[10]
        np.testing.assert_allclose(grid.dx, 1e-3)
        assert grid.stretch_ratio[2] > 1.0

    def test_from_stretch_rejects_shrinking(self):
        with pytest.raises(ConfigurationError, match="Stretch"):
            NonuniformGrid.from_stretch(shape=(10, 10, 10), base_resolution=1e-3, stretch_x=0.9)

    def test_from_regions(self):
        """Region boundaries fall on mesh lines."""
        grid = NonuniformGrid.from_regions(
            x_regions=[(0, 0.01, 1e-3)],
            y_regions=[(0, 0.01, 1e-3)],
            z_regions=[(0, 1.6e-3, 0.4e-3), (1.6e-3, 0.01, 1e-3)],
        )

        assert grid.shape[0] == 10
        assert np.any(np.isclose(grid.z_edges, 1.6e-3))
        assert grid.dz[0] == pytest.approx(0.4e-3)

    def test_from_regions_requires_contiguity(self):
        with pytest.raises(ConfigurationError, match="contiguous"):
            NonuniformGrid.from_regions(
                x_regions=[(0, 0.01, 1e-3), (0.02, 0.03, 1e-3)],
            )

    def test_non_monotonic_edges_rejected(self):
        with pytest.raises(ConfigurationError, match="increasing"):
            NonuniformGrid(
                x_edges=np.array([0.0, 2.0, 1.0]),
                y_edges=np.linspace(0, 1, 3),
                z_edges=np.linspace(0, 1, 3),
            )

    def test_too_few_edges_rejected(self):
        with pytest.raises(ConfigurationError, match="at least 2"):
            NonuniformGrid(
                x_edges=np.array([0.0]),
                y_edges=np.linspace(0, 1, 3),
                z_edges=np.linspace(0, 1, 3),
            )


# =============================================================================
# Coordinate Lookup Tests
# =============================================================================


class TestCoordinateLookup:
    def test_position_to_index(self):
        grid = UniformGrid(shape=(10, 10, 10), resolution=1e-3)

        assert grid.position_to_index((0.0005, 0.0042, 0.0099)) == (0, 4, 9)
        # Points outside the domain clip to the edge cells
        assert grid.position_to_index((-1.0, 1.0, 0.0)) == (0, 9, 0)

    def test_position_to_node(self):
        grid = UniformGrid(shape=(10, 10, 10), resolution=1e-3)

        assert grid.position_to_node((0.0031, 0.0049, 0.0)) == (3, 5, 0)

    def test_cell_volumes(self):
        grid = NonuniformGrid(
            x_edges=np.array([0.0, 1.0, 3.0]),
            y_edges=np.array([0.0, 2.0]),
            z_edges=np.array([0.0, 1.0]),
        )
        np.testing.assert_allclose(grid.cell_volumes()[:, 0, 0], [2.0, 4.0])

    def test_axis_index(self):
        assert axis_index("y") == 1
        assert axis_index(2) == 2
        with pytest.raises(ConfigurationError):
            axis_index("w")
        with pytest.raises(ConfigurationError):
            axis_index(3)
