"""
Unit tests for the Yee field grid.

Tests verify:
- Staggered component shapes and memory estimates
- Stability bound and timestep selection
- Field updates (zero stays zero, finite propagation speed)
- PEC walls and energy bookkeeping
- Plane sampling used by ports and near-field boxes
"""

import numpy as np
import pytest
from scipy.constants import c as C0
from scipy.constants import epsilon_0

from maxwell_fdtd import ConfigurationError, Material, NonuniformGrid, ResourceExhaustionError, UniformGrid
from maxwell_fdtd.core.fields import (
    COMPONENTS,
    FieldGrid,
    check_memory,
    component_shape,
    estimate_memory_bytes,
)
from maxwell_fdtd.materials import PEC, VACUUM


def make_fields(shape=(10, 10, 10), resolution=1e-3, materials=None, ids=None, **kwargs):
    grid = UniformGrid(shape=shape, resolution=resolution)
    if ids is None:
        ids = np.zeros(shape, dtype=np.int32)
    return FieldGrid.initialize(grid, ids, materials or {0: VACUUM}, **kwargs)


# =============================================================================
# Layout Tests
# =============================================================================


class TestYeeLayout:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Ex", (4, 6, 7)),
            ("Ey", (5, 5, 7)),
            ("Ez", (5, 6, 6)),
            ("Hx", (5, 5, 6)),
            ("Hy", (4, 6, 6)),
            ("Hz", (4, 5, 7)),
        ],
    )
    def test_component_shapes(self, name, expected):
        assert component_shape(name, (4, 5, 6)) == expected

    def test_unknown_component(self):
        with pytest.raises(ConfigurationError):
            component_shape("Bz", (4, 4, 4))

    def test_arrays_allocated_with_layout(self):
        fields = make_fields(shape=(4, 5, 6))
        for name in COMPONENTS:
            arr = fields.component(name)
            assert arr.shape == component_shape(name, (4, 5, 6))
            assert arr.dtype == np.float64
            assert not arr.any()


# =============================================================================
# Memory Tests
# =============================================================================


class TestMemory:
    def test_estimate_grows_with_grid(self):
        assert estimate_memory_bytes((20, 20, 20)) > 5 * estimate_memory_bytes((10, 10, 10))

    def test_check_memory_raises(self):
        with pytest.raises(ResourceExhaustionError) as exc_info:
            check_memory(10_000, memory_limit_bytes=1_000)

        assert exc_info.value.required_bytes == 10_000
        assert exc_info.value.available_bytes == 1_000

    def test_initialize_respects_memory_limit(self):
        with pytest.raises(ResourceExhaustionError):
            make_fields(shape=(50, 50, 50), memory_limit_bytes=1024)


# =============================================================================
# Stability Tests
# =============================================================================


class TestStability:
    def test_uniform_vacuum_bound(self):
        """Δt_max = Δx / (c √3) for cubic vacuum cells."""
        fields = make_fields(resolution=1e-3)

        assert fields.dt_max == pytest.approx(1e-3 / (C0 * np.sqrt(3)))
        assert fields.dt == pytest.approx(0.99 * fields.dt_max)

    def test_dielectric_relaxes_bound(self):
        """Slower media allow a longer timestep."""
        glass = Material(name="glass", eps_r=4.0)
        fields = make_fields(materials={0: glass})

        assert fields.dt_max == pytest.approx(2e-3 / (C0 * np.sqrt(3)))

    def test_nonuniform_bound_uses_finest_cells(self):
        grid = NonuniformGrid(
            x_edges=np.concatenate([np.linspace(0, 5e-3, 6), [5.25e-3]]),
            y_edges=np.linspace(0, 5e-3, 6),
            z_edges=np.linspace(0, 5e-3, 6),
        )
        fields = FieldGrid.initialize(grid, np.zeros(grid.shape, dtype=np.int32), {0: VACUUM})
        expected = 1.0 / (C0 * np.sqrt(1 / 0.25e-3**2 + 2 / 1e-3**2))

        assert fields.dt_max == pytest.approx(expected)

    def test_courant_above_one_rejected(self):
        with pytest.raises(ConfigurationError, match="allow_unstable"):
            make_fields(courant=1.2)

    def test_explicit_dt_above_bound_rejected(self):
        with pytest.raises(ConfigurationError, match="stability bound"):
            make_fields(dt=1e-11)

    def test_allow_unstable(self):
        fields = make_fields(courant=1.5, allow_unstable=True)
        assert fields.dt == pytest.approx(1.5 * fields.dt_max)

    def test_non_positive_courant_rejected(self):
        with pytest.raises(ConfigurationError):
            make_fields(courant=0.0)

    def test_periodic_needs_three_flags(self):
        with pytest.raises(ConfigurationError, match="periodic"):
            make_fields(periodic=(True, False))


# =============================================================================
# Update Tests
# =============================================================================


class TestUpdates:
    def test_zero_fields_stay_zero(self):
        fields = make_fields()
        for _ in range(20):
            fields.update_h()
            fields.update_e()

        assert fields.max_abs(None) == 0.0

    def test_disturbance_spreads_one_cell_per_step(self):
        """The Yee stencil couples only nearest neighbours each step."""
        fields = make_fields(shape=(21, 21, 21))
        fields.Ez[10, 10, 10] = 1.0

        for _ in range(3):
            fields.update_h()
            fields.update_e()

        nonzero = np.argwhere(fields.Ez != 0.0)
        assert np.max(np.abs(nonzero - np.array([10, 10, 10]))) <= 3
        assert fields.Ez[10, 10, 0] == 0.0

    def test_pec_walls_pin_tangential_e(self):
        fields = make_fields()
        fields.Ez[5, 5, 5] = 1.0
        for _ in range(30):
            fields.update_h()
            fields.update_e()

        # Ez is tangential on the x and y walls
        assert not fields.Ez[0].any()
        assert not fields.Ez[-1].any()
        assert not fields.Ez[:, 0].any()
        assert not fields.Ez[:, -1].any()

    def test_pec_cells_carry_no_field(self):
        ids = np.zeros((10, 10, 10), dtype=np.int32)
        ids[6:, :, :] = 1
        fields = make_fields(materials={0: VACUUM, 1: PEC}, ids=ids)
        fields.Ez[3, 5, 5] = 1.0

        for _ in range(40):
            fields.update_h()
            fields.update_e()

        assert not fields.Ez[7:].any()
        assert fields.is_finite()

    def test_energy_conserved_in_closed_cavity(self):
        """A lossless PEC cavity keeps its energy at a stable timestep."""
        fields = make_fields(shape=(16, 16, 16))
        i, j, k = np.meshgrid(*(np.arange(n) for n in fields.Ez.shape), indexing="ij")
        r2 = (i - 8) ** 2 + (j - 8) ** 2 + (k - 7.5) ** 2
        fields.Ez[...] = np.exp(-r2 / (2 * 2.5**2))
        fields.Ez[[0, -1]] = 0.0
        fields.Ez[:, [0, -1]] = 0.0
        fields.update_h()
        fields.update_e()

        energies = []
        for _ in range(200):
            fields.update_h()
            fields.update_e()
            energies.append(fields.compute_energy())

        energies = np.asarray(energies)
        # Leapfrog energy oscillates around a constant but does not drift
        assert np.std(energies) / np.mean(energies) < 0.05
        assert abs(energies[-50:].mean() - energies[:50].mean()) / energies.mean() < 0.02

    def test_lossy_medium_decays(self):
        lossy = Material(name="lossy", eps_r=2.0, sigma=0.5)
        fields = make_fields(materials={0: lossy})
        fields.Ez[3:7, 3:7, 3:7] = 1.0
        initial = fields.compute_energy()

        for _ in range(200):
            fields.update_h()
            fields.update_e()

        assert fields.compute_energy() < 0.5 * initial

    def test_single_edge_energy(self):
        """½ ε E² ΔV for one interior E edge."""
        fields = make_fields(resolution=1e-3)
        fields.Ex[4, 4, 4] = 2.0

        assert fields.compute_energy() == pytest.approx(0.5 * epsilon_0 * 4.0 * 1e-9)

    def test_reset(self):
        fields = make_fields()
        fields.Hz[1, 1, 1] = 3.0
        fields.reset()
        assert fields.max_abs(None) == 0.0


# =============================================================================
# Plane Sampling Tests
# =============================================================================


class TestSamplePlane:
    def test_tangential_components_on_face_centres(self):
        fields = make_fields(shape=(6, 7, 8))
        samples = fields.sample_plane(2, 4)

        assert set(samples) == {"Ex", "Ey", "Hx", "Hy"}
        for value in samples.values():
            assert value.shape == (6, 7)

    def test_uniform_field_sampled_exactly(self):
        fields = make_fields(shape=(6, 6, 6))
        fields.Ex.fill(2.0)
        fields.Hy.fill(-1.0)
        samples = fields.sample_plane(2, 3)

        np.testing.assert_allclose(samples["Ex"], 2.0)
        np.testing.assert_allclose(samples["Hy"], -1.0)

    def test_plane_on_boundary_rejected(self):
        fields = make_fields(shape=(6, 6, 6))
        with pytest.raises(ConfigurationError):
            fields.sample_plane(0, 0)
        with pytest.raises(ConfigurationError):
            fields.sample_plane(0, 6)


# =============================================================================
# State Tests
# =============================================================================


class TestStateArrays:
    def test_round_trip(self):
        fields = make_fields(shape=(4, 4, 4))
        fields.Ey[1, 1, 1] = 5.0
        saved = {k: v.copy() for k, v in fields.state_arrays().items()}

        other = make_fields(shape=(4, 4, 4))
        other.load_state_arrays(saved)
        assert other.Ey[1, 1, 1] == 5.0

    def test_shape_mismatch(self):
        fields = make_fields(shape=(4, 4, 4))
        arrays = {k: v.copy() for k, v in fields.state_arrays().items()}
        arrays["Ez"] = np.zeros((2, 2, 2))

        with pytest.raises(ConfigurationError, match="Ez"):
            fields.load_state_arrays(arrays)
