"""
End-to-end antenna runs of the shipped example scripts.

Each script is loaded the way ``fdtd-compute`` loads it and run for its
own duration. These take minutes, so they are marked ``slow``.
"""

import warnings
from pathlib import Path

import numpy as np
import pytest

from maxwell_fdtd import bandwidth, find_resonance
from maxwell_fdtd.cli.executor import load_simulation

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


def run_example(name):
    loaded = load_simulation(EXAMPLES / name)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        return loaded.solver.run(steps=loaded.num_steps)


# =============================================================================
# Half-Wave Dipole
# =============================================================================


@pytest.mark.slow
class TestHalfWaveDipole:
    @pytest.fixture(scope="class")
    def result(self):
        return run_example("half_wave_dipole.py")

    @pytest.fixture(scope="class")
    def zin(self, result):
        return result.frequency.s_parameters.input_impedance("feed")

    def test_input_impedance_at_design_frequency(self, result, zin):
        freqs = result.frequency.frequencies
        z = zin[np.argmin(np.abs(freqs - 1e9))]

        assert z.real == pytest.approx(73.0, abs=5.0)
        assert z.imag == pytest.approx(42.5, abs=5.0)

    def test_half_wave_resonance(self, result, zin):
        """Radiation resistance reaches the half-wave 73 Ω at 1 GHz."""
        freqs = result.frequency.frequencies
        assert np.all(np.diff(zin.real) > 0)

        assert np.interp(73.0, zin.real, freqs) == pytest.approx(1e9, abs=0.02e9)

    def test_matched_dip_below_half_wave(self, result):
        """The inductive half-wave dipole matches 50 Ω slightly lower."""
        s = result.frequency.s_parameters
        f_match = find_resonance(s.frequencies, s["feed", "feed"])

        assert f_match is not None
        assert 0.9e9 < f_match < 1.0e9

    def test_peak_gain(self, result):
        (pattern,) = result.far_field["antenna"]

        assert pattern.frequency == pytest.approx(1e9)
        assert pattern.peak_gain_db == pytest.approx(2.15, abs=0.3)
        assert pattern.peak_direction[0] == pytest.approx(np.pi / 2, abs=np.radians(6))


# =============================================================================
# Microstrip Patch
# =============================================================================


@pytest.mark.slow
class TestMicrostripPatch:
    @pytest.fixture(scope="class")
    def s(self):
        return run_example("microstrip_patch.py").frequency.s_parameters

    def test_resonance(self, s):
        f_res = find_resonance(s.frequencies, s["feed", "feed"])

        assert f_res == pytest.approx(2.40e9, abs=0.05e9)

    def test_matched_at_resonance(self, s):
        f_res = find_resonance(s.frequencies, s["feed", "feed"])

        assert np.interp(f_res, s.frequencies, s.db("feed", "feed")) < -20.0

    def test_bandwidth(self, s):
        band = bandwidth(s.frequencies, s["feed", "feed"])

        assert band is not None
        f_lo, f_hi = band
        assert 80e6 <= f_hi - f_lo <= 100e6
