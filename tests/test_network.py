"""
Tests for scattering parameters and network helpers.

Tests verify:
- dB, VSWR and impedance conversions
- Resonance and bandwidth extraction from reflection curves
- SParameters construction, indexing and merging
- Reciprocity and passivity checks
"""

import numpy as np
import pytest

from maxwell_fdtd import PortWaves, SParameters, bandwidth, find_resonance, input_impedance, to_db, vswr


def lorentzian_dip(freqs, f0, depth=0.05, width=0.1e9):
    """Reflection curve with a single dip of |Γ| = depth at f0."""
    x = (freqs - f0) / width
    return 1.0 - (1.0 - depth) / (1.0 + x**2)


def make_waves(a, b, excited, z=50.0):
    a = np.asarray(a, dtype=np.complex128)
    b = np.asarray(b, dtype=np.complex128)
    return PortWaves(
        a=a,
        b=b,
        voltage=np.zeros_like(a),
        current=np.zeros_like(a),
        reference_impedance=np.full(len(a), z, dtype=np.complex128),
        excited=excited,
    )


# =============================================================================
# Conversion Helpers
# =============================================================================


class TestConversions:
    def test_to_db(self):
        np.testing.assert_allclose(to_db(np.array([1.0, 0.1, 0.01j])), [0.0, -20.0, -40.0])
        assert to_db(np.array([0.0]))[0] == -np.inf

    def test_vswr(self):
        np.testing.assert_allclose(vswr(np.array([0.0, 0.5, -0.5j])), [1.0, 3.0, 3.0])
        assert vswr(np.array([1.0]))[0] == np.inf

    def test_input_impedance(self):
        gamma = np.array([0.0, 1.0 / 3.0, -1.0 / 3.0])
        np.testing.assert_allclose(input_impedance(gamma, 50.0), [50.0, 100.0, 25.0])

    def test_input_impedance_reactive(self):
        """|Γ| = 1 with Γ = j maps to Z = j Z0."""
        z = input_impedance(np.array([1j]), 50.0)
        np.testing.assert_allclose(z, [50j], atol=1e-12)


# =============================================================================
# Resonance Tests
# =============================================================================


class TestResonance:
    def test_finds_dip_between_samples(self):
        freqs = np.linspace(2e9, 3e9, 51)
        f0 = 2.4567e9
        gamma = lorentzian_dip(freqs, f0)

        found = find_resonance(freqs, gamma)

        assert found == pytest.approx(f0, abs=0.2 * (freqs[1] - freqs[0]))

    def test_no_dip(self):
        freqs = np.linspace(1e9, 2e9, 21)
        assert find_resonance(freqs, np.full(21, 0.9)) is None

    def test_too_few_samples(self):
        assert find_resonance(np.array([1e9, 2e9]), np.array([0.5, 0.1])) is None

    def test_picks_most_prominent_dip(self):
        freqs = np.linspace(1e9, 3e9, 201)
        gamma = lorentzian_dip(freqs, 1.5e9, depth=0.5) * lorentzian_dip(freqs, 2.5e9, depth=0.05)

        assert find_resonance(freqs, gamma) == pytest.approx(2.5e9, rel=1e-3)

    def test_bandwidth_symmetric_dip(self):
        """|Γ| crosses −10 dB where the Lorentzian reaches 1/√10."""
        freqs = np.linspace(2e9, 3e9, 2001)
        f0, width, depth = 2.5e9, 0.1e9, 0.05
        gamma = lorentzian_dip(freqs, f0, depth=depth, width=width)

        lo, hi = bandwidth(freqs, gamma, threshold_db=-10.0)

        target = 10 ** (-10 / 20)
        half = width * np.sqrt((1 - depth) / (1 - target) - 1)
        assert lo == pytest.approx(f0 - half, rel=1e-4)
        assert hi == pytest.approx(f0 + half, rel=1e-4)

    def test_bandwidth_none_when_never_matched(self):
        freqs = np.linspace(1e9, 2e9, 11)
        assert bandwidth(freqs, np.full(11, 0.9)) is None

    def test_bandwidth_touching_band_edge(self):
        freqs = np.linspace(1e9, 2e9, 11)
        gamma = np.linspace(0.01, 0.9, 11)
        lo, hi = bandwidth(freqs, gamma, threshold_db=-10.0)

        assert lo == freqs[0]
        assert freqs[3] < hi < freqs[4]


# =============================================================================
# SParameters Tests
# =============================================================================


class TestSParameters:
    def test_shape_checked(self):
        with pytest.raises(ValueError, match="does not match"):
            SParameters(np.array([1e9, 2e9]), np.zeros((2, 2, 1)), ("a", "b"), 50.0)

    def test_from_port_waves_fills_excited_column(self):
        freqs = np.array([1e9, 2e9])
        waves = {
            "p1": make_waves([2.0, 2.0], [0.2, 0.4j], excited=True),
            "p2": make_waves([0.0, 0.0], [1.8, -1.6], excited=False),
        }
        s = SParameters.from_port_waves(freqs, waves)

        assert s.port_names == ("p1", "p2")
        assert s.num_ports == 2
        np.testing.assert_allclose(s["p1", "p1"], [0.1, 0.2j])
        np.testing.assert_allclose(s[1, 0], [0.9, -0.8])
        assert np.all(np.isnan(s["p2", "p2"]))
        assert s.reference_impedance.shape == (2, 2)

    def test_from_port_waves_requires_one_excited_port(self):
        waves = {
            "p1": make_waves([1.0], [0.1], excited=True),
            "p2": make_waves([1.0], [0.1], excited=True),
        }
        with pytest.raises(ValueError, match="Exactly one"):
            SParameters.from_port_waves(np.array([1e9]), waves)

    def test_unknown_port_name(self):
        s = SParameters(np.array([1e9]), np.zeros((1, 1, 1)), ("p1",), 50.0)
        with pytest.raises(KeyError, match="p9"):
            s["p9", "p1"]

    def test_db_and_vswr(self):
        s = SParameters(np.array([1e9]), np.full((1, 1, 1), 0.1 + 0j), ("p1",), 50.0)

        np.testing.assert_allclose(s.db(0, 0), [-20.0])
        np.testing.assert_allclose(s.vswr(), [1.1 / 0.9])
        np.testing.assert_allclose(s.input_impedance("p1"), [50.0 * 1.1 / 0.9])

    def test_merge_columns(self):
        freqs = np.array([1e9, 2e9])
        col1 = SParameters.from_port_waves(
            freqs,
            {
                "p1": make_waves([1.0, 1.0], [0.1, 0.1], excited=True),
                "p2": make_waves([0.0, 0.0], [0.9, 0.9], excited=False),
            },
        )
        col2 = SParameters.from_port_waves(
            freqs,
            {
                "p1": make_waves([0.0, 0.0], [0.9, 0.9], excited=False),
                "p2": make_waves([1.0, 1.0], [0.2, 0.2], excited=True),
            },
        )
        full = col1.merge(col2)

        assert np.all(np.isfinite(full.matrix))
        np.testing.assert_allclose(full["p2", "p2"], 0.2)
        np.testing.assert_allclose(full["p1", "p1"], 0.1)
        assert full.is_reciprocal()

    def test_merge_rejects_different_ports(self):
        a = SParameters(np.array([1e9]), np.zeros((1, 1, 1)), ("p1",), 50.0)
        b = SParameters(np.array([1e9]), np.zeros((1, 1, 1)), ("p2",), 50.0)
        with pytest.raises(ValueError, match="Port mismatch"):
            a.merge(b)

    def test_merge_rejects_different_frequencies(self):
        a = SParameters(np.array([1e9]), np.zeros((1, 1, 1)), ("p1",), 50.0)
        b = SParameters(np.array([2e9]), np.zeros((1, 1, 1)), ("p1",), 50.0)
        with pytest.raises(ValueError, match="Frequency"):
            a.merge(b)

    def test_non_reciprocal(self):
        matrix = np.array([[[0.1, 0.5], [0.9, 0.1]]], dtype=np.complex128)
        s = SParameters(np.array([1e9]), matrix, ("p1", "p2"), 50.0)
        assert not s.is_reciprocal(tol=0.05)

    def test_passivity_margin(self):
        lossless = np.array([[[0.6, 0.8], [0.8, -0.6]]], dtype=np.complex128)
        active = np.array([[[0.1, 1.2], [1.2, 0.1]]], dtype=np.complex128)
        ports = ("p1", "p2")

        assert SParameters(np.array([1e9]), lossless, ports, 50.0).passivity_margin() == pytest.approx(
            0.0, abs=1e-12
        )
        assert SParameters(np.array([1e9]), active, ports, 50.0).passivity_margin() < 0

    def test_passivity_margin_single_column(self):
        """With one known column the margin comes from that column's norm."""
        matrix = np.full((1, 2, 2), np.nan, dtype=np.complex128)
        matrix[0, :, 0] = [0.6, 0.8]
        s = SParameters(np.array([1e9]), matrix, ("p1", "p2"), 50.0)

        assert s.passivity_margin() == pytest.approx(0.0, abs=1e-12)

    def test_passivity_margin_nothing_known(self):
        matrix = np.full((1, 1, 1), np.nan, dtype=np.complex128)
        assert np.isnan(SParameters(np.array([1e9]), matrix, ("p1",), 50.0).passivity_margin())

    def test_subset(self):
        matrix = np.arange(9, dtype=np.complex128).reshape(1, 3, 3)
        s = SParameters(np.array([1e9]), matrix, ("a", "b", "c"), 50.0)
        sub = s.subset(["c", "a"])

        assert sub.port_names == ("c", "a")
        np.testing.assert_array_equal(sub.matrix[0], [[8, 6], [2, 0]])

    def test_read_only(self):
        s = SParameters(np.array([1e9]), np.zeros((1, 1, 1)), ("p1",), 50.0)
        with pytest.raises(ValueError):
            s.matrix[0, 0, 0] = 1.0

    def test_repr(self):
        s = SParameters(np.array([1e9, 3e9]), np.zeros((2, 1, 1)), ("p1",), 50.0)
        assert "p1" in repr(s)
        assert "GHz" in repr(s)
