"""
Unit tests for electromagnetic materials and the material mapper.

Tests verify:
- Material and pole validation
- Frequency-dependent permittivity models
- Material library lookup
- Edge averaging, PEC detection and coefficient building in the mapper
"""

import numpy as np
import pytest
from scipy.constants import epsilon_0, mu_0

from maxwell_fdtd import ConfigurationError, Material, Pole, PoleType, UniformGrid, get_material
from maxwell_fdtd.materials import (
    AIR,
    COPPER,
    FR4,
    PEC,
    VACUUM,
    WATER_20C,
    MaterialMapper,
    list_categories,
    list_materials,
)

# =============================================================================
# Material Tests
# =============================================================================


class TestMaterial:
    def test_defaults_are_vacuum(self):
        mat = Material(name="empty")

        assert mat.eps_r == 1.0
        assert mat.mu_r == 1.0
        assert mat.sigma == 0.0
        assert not mat.is_dispersive
        assert not mat.treated_as_pec()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"eps_r": 0.5},
            {"mu_r": 0.9},
            {"sigma": -1.0},
            {"eps_r": float("nan")},
        ],
    )
    def test_invalid_properties_rejected(self, kwargs):
        """Relative constants below 1 and negative conductivity are rejected."""
        with pytest.raises(ConfigurationError):
            Material(name="bad", **kwargs)

    def test_pec_constructor(self):
        mat = Material.pec("ground")

        assert mat.is_pec
        assert mat.treated_as_pec()

    def test_high_conductivity_treated_as_pec(self):
        assert COPPER.treated_as_pec()
        assert not COPPER.treated_as_pec(pec_conductivity=1e8)

    def test_loss_tangent_conversion(self):
        """σ = ω ε0 εr tan δ at the reference frequency."""
        mat = Material.from_loss_tangent("sub", eps_r=4.0, tan_delta=0.01, frequency=1e9)
        eps = mat.permittivity(1e9)

        assert eps.real == pytest.approx(4.0)
        assert -eps.imag / eps.real == pytest.approx(0.01, rel=1e-9)

    def test_wave_speed(self):
        mat = Material(name="glass", eps_r=4.0)
        assert mat.wave_speed == pytest.approx(1.0 / np.sqrt(mu_0 * epsilon_0) / 2.0)

    def test_poles_must_be_pole_instances(self):
        with pytest.raises(ConfigurationError, match="Pole"):
            Material(name="bad", poles=("debye",))

    def test_summary_mentions_name(self):
        assert "FR4" in FR4.summary()


# =============================================================================
# Dispersion Pole Tests
# =============================================================================


class TestPoles:
    def test_debye_static_and_high_frequency_limits(self):
        pole = Pole(PoleType.DEBYE, delta_eps=10.0, tau=1e-11)

        assert pole.susceptibility(0.0) == pytest.approx(10.0)
        assert abs(pole.susceptibility(1e15)) < 1e-2

    def test_lorentz_static_limit(self):
        pole = Pole(PoleType.LORENTZ, delta_eps=2.0, omega_0=2 * np.pi * 5e9, gamma=1e8)
        assert pole.susceptibility(0.0) == pytest.approx(2.0)

    def test_drude_negative_below_plasma_frequency(self):
        wp = 2 * np.pi * 5e9
        pole = Pole(PoleType.DRUDE, omega_p=wp, gamma=1e6)

        assert pole.susceptibility(0.5 * wp).real < -1.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"pole_type": PoleType.DEBYE},
            {"pole_type": PoleType.DEBYE, "tau": -1.0},
            {"pole_type": PoleType.DEBYE, "tau": 1e-12, "delta_eps": -1.0},
            {"pole_type": PoleType.LORENTZ, "omega_0": 1e9},
            {"pole_type": PoleType.LORENTZ, "omega_0": -1e9, "gamma": 0.0},
            {"pole_type": PoleType.DRUDE, "omega_p": 1e9, "gamma": -1.0},
            {"pole_type": "debye", "tau": 1e-12},
        ],
    )
    def test_invalid_poles_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            Pole(**kwargs)

    def test_debye_coefficients(self):
        """α = (τ/Δt)/(1 + τ/Δt), β = Δε/(1 + τ/Δt)."""
        pole = Pole(PoleType.DEBYE, delta_eps=4.0, tau=3e-12)
        alpha, beta = pole.fdtd_coefficients(dt=1e-12)

        assert alpha == pytest.approx(0.75)
        assert beta == pytest.approx(1.0)
        assert not pole.is_second_order

    def test_second_order_coefficients(self):
        pole = Pole(PoleType.DRUDE, omega_p=1e10, gamma=0.0)
        a, b, d = pole.fdtd_coefficients(dt=1e-12)

        assert a == pytest.approx(2.0)
        assert b == pytest.approx(-1.0)
        assert d == pytest.approx(1e20 * 1e-24)
        assert pole.is_second_order

    def test_water_permittivity(self):
        """Debye water: static εr near 80, optical limit 4.9."""
        assert WATER_20C.permittivity(1e3).real == pytest.approx(80.2, rel=1e-3)
        assert WATER_20C.permittivity(1e14).real == pytest.approx(4.9, rel=1e-2)
        assert WATER_20C.permittivity(10e9).imag < 0


# =============================================================================
# Library Tests
# =============================================================================


class TestLibrary:
    def test_lookup_is_case_insensitive(self):
        assert get_material("fr4") is FR4
        assert get_material("Vacuum") is VACUUM

    def test_unknown_material_raises_key_error(self):
        with pytest.raises(KeyError, match="unobtainium"):
            get_material("unobtainium")

    def test_list_materials(self):
        names = list_materials()

        for expected in ("vacuum", "air", "FR4", "RO4003C", "PEC", "copper", "water_20C"):
            assert expected in names
        assert list_materials("conductor") == ["PEC", "copper", "aluminum", "gold"]

    def test_unknown_category(self):
        with pytest.raises(KeyError):
            list_materials("liquids")

    def test_categories(self):
        assert set(list_categories()) == {"background", "substrate", "conductor", "dispersive"}


# =============================================================================
# Mapper Tests
# =============================================================================


class TestMaterialMapper:
    def test_rejects_empty_mapping(self):
        with pytest.raises(ConfigurationError):
            MaterialMapper({})

    def test_rejects_non_material_values(self):
        with pytest.raises(ConfigurationError, match="expected Material"):
            MaterialMapper({0: "vacuum"})

    def test_unknown_ids_rejected(self):
        mapper = MaterialMapper({0: VACUUM})
        ids = np.zeros((4, 4, 4), dtype=np.int32)
        ids[1, 1, 1] = 7

        with pytest.raises(ConfigurationError, match=r"\[7\]"):
            mapper.validate_ids(ids, (4, 4, 4))

    def test_shape_mismatch_rejected(self):
        mapper = MaterialMapper({0: VACUUM})
        with pytest.raises(ConfigurationError, match="shape"):
            mapper.validate_ids(np.zeros((4, 4, 3), dtype=np.int32), (4, 4, 4))

    def test_float_ids_rejected(self):
        mapper = MaterialMapper({0: VACUUM})
        with pytest.raises(ConfigurationError, match="integer"):
            mapper.validate_ids(np.zeros((4, 4, 4)), (4, 4, 4))

    def test_vacuum_coefficients(self):
        grid = UniformGrid(shape=(4, 4, 4), resolution=1e-3)
        dt = 1e-12
        coeffs = MaterialMapper({0: VACUUM}).map(grid, np.zeros((4, 4, 4), dtype=np.int32), dt)

        np.testing.assert_allclose(coeffs.ca["Ex"], 1.0)
        np.testing.assert_allclose(coeffs.cb["Ez"], dt / epsilon_0)
        np.testing.assert_allclose(coeffs.db["Hy"], dt / mu_0)
        assert coeffs.ca["Ey"].shape == (5, 4, 5)
        assert coeffs.db["Hx"].shape == (5, 4, 4)
        assert coeffs.dispersive is None

    def test_edge_average_across_interface(self):
        """An E edge on a dielectric interface sees the mean of its four cells."""
        grid = UniformGrid(shape=(4, 4, 4), resolution=1e-3)
        ids = np.zeros((4, 4, 4), dtype=np.int32)
        ids[:, :, :2] = 1
        sub = Material(name="sub", eps_r=5.0)
        coeffs = MaterialMapper({0: VACUUM, 1: sub}).map(grid, ids, 1e-12)

        # Ex edges on the z = 2 mesh plane touch two substrate and two vacuum cells
        eps_interface = coeffs.eps["Ex"][1, 2, 2] / epsilon_0
        assert eps_interface == pytest.approx(3.0)
        assert coeffs.eps["Ex"][1, 2, 1] / epsilon_0 == pytest.approx(5.0)
        assert coeffs.eps["Ex"][1, 2, 3] / epsilon_0 == pytest.approx(1.0)

    def test_pec_edges_zeroed(self):
        """Any edge touching a PEC cell is pinned to zero."""
        grid = UniformGrid(shape=(4, 4, 4), resolution=1e-3)
        ids = np.zeros((4, 4, 4), dtype=np.int32)
        ids[2, 2, 2] = 1
        coeffs = MaterialMapper({0: VACUUM, 1: PEC}).map(grid, ids, 1e-12)

        assert coeffs.pec["Ez"][2, 2, 2]
        assert coeffs.pec["Ez"][3, 3, 2]
        assert coeffs.ca["Ez"][3, 3, 2] == 0.0
        assert coeffs.cb["Ez"][3, 3, 2] == 0.0
        assert not coeffs.pec["Ez"][1, 1, 2]

    def test_lossy_dielectric_ca(self):
        """Ca = (1 − σΔt/2ε)/(1 + σΔt/2ε) inside a uniformly lossy region."""
        grid = UniformGrid(shape=(4, 4, 4), resolution=1e-3)
        lossy = Material(name="lossy", eps_r=2.0, sigma=1.0)
        dt = 1e-12
        coeffs = MaterialMapper({0: lossy}).map(grid, np.zeros((4, 4, 4), dtype=np.int32), dt)

        loss = 1.0 * dt / (2 * 2.0 * epsilon_0)
        assert coeffs.ca["Ex"][1, 1, 1] == pytest.approx((1 - loss) / (1 + loss))

    def test_dispersive_state_created(self):
        grid = UniformGrid(shape=(4, 4, 4), resolution=1e-3)
        ids = np.zeros((4, 4, 4), dtype=np.int32)
        ids[1:3, 1:3, 1:3] = 1
        coeffs = MaterialMapper({0: VACUUM, 1: WATER_20C}).map(grid, ids, 1e-12)

        assert coeffs.dispersive is not None
        # One Debye pole on each of the three E components
        assert len(coeffs.dispersive) == 3
        for term in coeffs.dispersive.terms:
            assert np.all((term.weight > 0) & (term.weight <= 1))

    def test_air_cell_properties(self):
        mapper = MaterialMapper({0: AIR})
        cells = mapper.cell_properties(np.zeros((2, 2, 2), dtype=np.int32))

        np.testing.assert_allclose(cells.eps_r, 1.0006)
        assert not cells.pec.any()
