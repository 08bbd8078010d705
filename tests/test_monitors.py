"""
Tests for probes and running-DFT frequency monitors.

Tests verify:
- Frequency validation
- DFT accumulation against a closed-form transform
- Probe placement and recording
- Monitor regions, spectra keys and time offsets
- Immutability of frequency-domain results
"""

import numpy as np
import pytest

from maxwell_fdtd import (
    ConfigurationError,
    FrequencyMonitor,
    FrequencyResult,
    PointSource,
    PortWaves,
)
from maxwell_fdtd.core.monitors import (
    E_TIME_OFFSET,
    H_TIME_OFFSET,
    DFTAccumulator,
    default_time_offset,
    validate_frequencies,
)

# =============================================================================
# Frequency Validation
# =============================================================================


class TestValidateFrequencies:
    def test_accepts_scalar_and_list(self):
        np.testing.assert_array_equal(validate_frequencies(1e9), [1e9])
        assert validate_frequencies([1e9, 2e9]).dtype == np.float64

    @pytest.mark.parametrize(
        "freqs",
        [[], [0.0, 1e9], [-1e9], [np.nan], [np.inf], [[1e9, 2e9]]],
    )
    def test_rejects_invalid(self, freqs):
        with pytest.raises(ConfigurationError):
            validate_frequencies(freqs)


# =============================================================================
# DFT Accumulator
# =============================================================================


class TestDFTAccumulator:
    def test_sinusoid_peaks_at_its_frequency(self):
        """A whole number of cycles transforms to A·T/2 at the signal frequency."""
        dt = 1e-12
        f0 = 10e9
        n_steps = 1000  # ten full periods
        acc = DFTAccumulator(np.array([f0, 2 * f0]), (), time_offset=0.0)

        for n in range(n_steps):
            acc.accumulate(n, np.cos(2 * np.pi * f0 * n * dt), dt)

        total_time = n_steps * dt
        assert acc.data[0] == pytest.approx(total_time / 2, rel=1e-9)
        assert abs(acc.data[1]) < 1e-9 * total_time
        assert acc.samples == n_steps

    def test_time_offset_shifts_phase(self):
        dt = 1e-12
        freqs = np.array([5e9])
        plain = DFTAccumulator(freqs, (), time_offset=0.0)
        shifted = DFTAccumulator(freqs, (), time_offset=0.5)

        plain.accumulate(3, 1.0, dt)
        shifted.accumulate(3, 1.0, dt)

        expected = np.exp(-2j * np.pi * 5e9 * 0.5 * dt)
        assert shifted.data[0] / plain.data[0] == pytest.approx(expected)

    def test_array_values(self):
        acc = DFTAccumulator(np.array([1e9, 2e9, 3e9]), (4, 2))
        acc.accumulate(0, np.ones((4, 2)), 1e-12)

        assert acc.data.shape == (3, 4, 2)
        np.testing.assert_allclose(acc.data, 1e-12)

    def test_reset(self):
        acc = DFTAccumulator(np.array([1e9]))
        acc.accumulate(0, 2.0, 1e-12)
        acc.reset()

        assert acc.samples == 0
        assert not acc.data.any()

    def test_default_offsets(self):
        assert default_time_offset("Ez") == E_TIME_OFFSET == 1.0
        assert default_time_offset("Hx") == H_TIME_OFFSET == 0.5


# =============================================================================
# Probe Tests
# =============================================================================


class TestProbe:
    def test_records_every_step(self, small_solver, pulse):
        small_solver.add_source(PointSource((6, 6, 6), "Ez", pulse))
        small_solver.add_probe("centre", position=(6, 6, 6))

        small_solver.run(steps=25)
        data = small_solver.get_probe_data("centre")["centre"]

        assert data.shape == (25,)
        assert data[-1] == small_solver.fields.Ez[6, 6, 6]

    def test_unknown_component(self, small_solver):
        with pytest.raises(ConfigurationError, match="unknown component"):
            small_solver.add_probe("p", position=(1, 1, 1), component="Dz")

    def test_position_outside_component_array(self, small_solver):
        """Hx has nx + 1 entries along x but only ny along y."""
        small_solver.add_probe("edge", position=(12, 0, 0), component="Hx")
        with pytest.raises(ConfigurationError, match="outside"):
            small_solver.add_probe("beyond", position=(0, 12, 0), component="Hx")

    def test_duplicate_name(self, small_solver):
        small_solver.add_probe("p", position=(1, 1, 1))
        with pytest.raises(ConfigurationError, match="already exists"):
            small_solver.add_probe("p", position=(2, 2, 2))

    def test_unknown_probe_lookup(self, small_solver):
        with pytest.raises(KeyError):
            small_solver.get_probe_data("missing")


# =============================================================================
# Frequency Monitor Tests
# =============================================================================


class TestFrequencyMonitor:
    def test_invalid_components(self, band):
        with pytest.raises(ConfigurationError):
            FrequencyMonitor("m", band, region=(1, 1, 1), components=())
        with pytest.raises(ConfigurationError, match="unknown component"):
            FrequencyMonitor("m", band, region=(1, 1, 1), components=("Bz",))

    def test_invalid_region(self, band):
        with pytest.raises(ConfigurationError, match="three entries"):
            FrequencyMonitor("m", band, region=(1, 1))
        with pytest.raises(ConfigurationError, match="start, stop"):
            FrequencyMonitor("m", band, region=(1, 1, (1, 2, 3)))

    def test_region_outside_grid(self, small_solver, band):
        monitor = FrequencyMonitor("m", band, region=(1, 1, (5, 20)), components=("Ez",))
        with pytest.raises(ConfigurationError, match="outside"):
            small_solver.add_monitor(monitor)

    def test_spectra_keys_and_shapes(self, small_solver, pulse, band):
        small_solver.add_source(PointSource((6, 6, 6), "Ez", pulse))
        small_solver.add_monitor(
            FrequencyMonitor("line", band, region=(6, 6, (2, 10)), components=("Ez", "Hx"))
        )

        result = small_solver.run(steps=50)
        spectra = result.frequency.spectra

        assert set(spectra) == {"line.Ez", "line.Hx"}
        assert spectra["line.Ez"].shape == (11, 8)
        assert spectra["line.Hx"].shape == (11, 8)
        np.testing.assert_array_equal(result.frequency.frequencies, band)
        assert np.abs(spectra["line.Ez"]).max() > 0

    def test_matches_probe_transform(self, small_solver, pulse, band):
        """The running DFT equals a direct transform of the probe trace."""
        small_solver.add_source(PointSource((6, 6, 6), "Ez", pulse))
        small_solver.add_probe("p", position=(6, 6, 4), component="Ez")
        small_solver.add_monitor(FrequencyMonitor("m", band, region=(6, 6, 4), components=("Ez",)))

        result = small_solver.run(steps=80)
        trace = result.probes["p"]
        t = (np.arange(len(trace)) + E_TIME_OFFSET) * small_solver.dt
        direct = np.exp(-2j * np.pi * np.outer(band, t)) @ trace * small_solver.dt

        np.testing.assert_allclose(
            result.frequency.spectra["m.Ez"], direct, rtol=1e-7, atol=1e-9 * np.abs(direct).max()
        )

    def test_custom_time_offset(self, band):
        monitor = FrequencyMonitor("m", band, region=(1, 1, 1), components=("Ez",), time_offset=0.0)
        assert monitor.time_offset == 0.0

    def test_monitor_only_frequencies(self, small_solver, pulse):
        """Without solver frequencies the result uses the monitor's own."""
        freqs = [8e9, 9e9]
        small_solver.add_source(PointSource((6, 6, 6), "Ez", pulse))
        small_solver.add_monitor(FrequencyMonitor("m", freqs, region=(6, 6, 6), components=("Ez",)))

        result = small_solver.run(steps=5)

        np.testing.assert_array_equal(result.frequency.frequencies, freqs)
        assert result.frequency.s_parameters is None
        assert not result.frequency.port_waves


# =============================================================================
# Result Immutability
# =============================================================================


class TestImmutableResults:
    def test_port_waves_copy_and_freeze(self):
        a = np.array([1.0 + 0j, 2.0])
        waves = PortWaves(a=a, b=a, voltage=a, current=a, reference_impedance=a, excited=True)
        a[0] = 100.0

        assert waves.a[0] == 1.0
        assert not waves.b.flags.writeable

    def test_frequency_result_frozen(self):
        spectrum = np.ones(3, dtype=np.complex128)
        result = FrequencyResult(frequencies=np.array([1e9, 2e9, 3e9]), spectra={"m.Ez": spectrum})

        with pytest.raises(TypeError):
            result.spectra["other"] = spectrum
        with pytest.raises(ValueError):
            result.spectra["m.Ez"][0] = 0.0
        with pytest.raises(ValueError):
            result.frequencies[0] = 0.0
        with pytest.raises(AttributeError):
            result.s_parameters = None

