"""
Unit tests for excitation waveforms.

Tests verify:
- GaussianPulse defaults and validation
- Baseband and modulated pulse shapes
- ContinuousWave ramp behaviour
- Step sampling with half-step offsets
- Sampled spectra against the analytic transform
"""

import numpy as np
import pytest

from maxwell_fdtd import ConfigurationError, ContinuousWave, GaussianPulse


class TestGaussianPulse:
    """Tests for GaussianPulse construction and shape."""

    def test_defaults(self):
        """Bandwidth defaults to twice the centre frequency, delay to 4σ."""
        pulse = GaussianPulse(frequency=5e9)

        assert pulse.bandwidth == pytest.approx(10e9)
        assert pulse.sigma == pytest.approx(1.0 / (np.pi * 10e9))
        assert pulse.delay == pytest.approx(4.0 * pulse.sigma)
        assert pulse.end_time == pytest.approx(8.0 * pulse.sigma)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"frequency": -1e9},
            {"frequency": 0.0},
            {"frequency": 1e9, "bandwidth": 0.0},
            {"frequency": 1e9, "bandwidth": -2e9},
        ],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ConfigurationError):
            GaussianPulse(**kwargs)

    def test_baseband_peak_at_delay(self):
        pulse = GaussianPulse(frequency=0.0, bandwidth=1e9, amplitude=3.0)

        assert pulse.waveform(pulse.delay) == pytest.approx(3.0)
        assert pulse.waveform(0.0) == pytest.approx(3.0 * np.exp(-8.0))

    def test_modulated_pulse_starts_and_ends_quietly(self):
        pulse = GaussianPulse(frequency=10e9)
        t = np.linspace(0, pulse.end_time, 2001)
        values = pulse.waveform(t)

        assert abs(values[0]) < 1e-3
        assert abs(values[-1]) < 1e-3
        assert np.max(np.abs(values)) <= 1.0

    def test_modulated_pulse_zero_at_delay(self):
        """The sine carrier crosses zero at the envelope peak."""
        pulse = GaussianPulse(frequency=10e9)
        assert pulse.waveform(pulse.delay) == pytest.approx(0.0, abs=1e-12)


class TestContinuousWave:
    """Tests for ContinuousWave."""

    @pytest.mark.parametrize(
        "kwargs",
        [{"frequency": 0.0}, {"frequency": -5e9}, {"frequency": 1e9, "ramp_cycles": -1}],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ConfigurationError):
            ContinuousWave(**kwargs)

    def test_ramp_starts_at_zero(self):
        cw = ContinuousWave(frequency=1e9, ramp_cycles=4)
        t = np.linspace(0, 0.1e-9, 11)

        assert cw.ramp_time == pytest.approx(4e-9)
        assert np.all(np.abs(cw.waveform(t)) < 0.01)

    def test_steady_state_after_ramp(self):
        cw = ContinuousWave(frequency=1e9, amplitude=2.0, ramp_cycles=2)
        t = np.linspace(3e-9, 6e-9, 301)

        np.testing.assert_allclose(cw.waveform(t), 2.0 * np.sin(2 * np.pi * 1e9 * t), atol=1e-12)

    def test_no_ramp(self):
        cw = ContinuousWave(frequency=1e9, ramp_cycles=0)
        t = np.array([0.25e-9])
        assert cw.waveform(t)[0] == pytest.approx(1.0)


class TestSampling:
    """Tests for step-based sampling shared by all waveforms."""

    def test_at_step_uses_offset(self):
        pulse = GaussianPulse(frequency=10e9)
        dt = 1e-12

        assert pulse.at_step(40, dt) == pytest.approx(float(pulse.waveform(40e-12)))
        assert pulse.at_step(40, dt, offset=0.5) == pytest.approx(float(pulse.waveform(40.5e-12)))

    def test_sample_matches_at_step(self):
        cw = ContinuousWave(frequency=2e9)
        dt = 5e-12
        samples = cw.sample(50, dt, offset=0.5)

        assert samples.shape == (50,)
        assert samples[17] == pytest.approx(cw.at_step(17, dt, offset=0.5))

    def test_baseband_spectrum_matches_analytic(self):
        """A sampled Gaussian transforms to A σ √(2π) exp(−2π²f²σ²) e^{−j2πf t0}."""
        pulse = GaussianPulse(frequency=0.0, bandwidth=2e9)
        sigma = pulse.sigma
        dt = sigma / 20
        n_steps = int(np.ceil(12 * sigma / dt))
        freqs = np.array([0.0, 0.5e9, 1e9])

        spectrum = pulse.spectrum(freqs, dt, n_steps)
        expected = (
            sigma
            * np.sqrt(2 * np.pi)
            * np.exp(-2 * np.pi**2 * freqs**2 * sigma**2)
            * np.exp(-2j * np.pi * freqs * pulse.delay)
        )

        np.testing.assert_allclose(spectrum, expected, rtol=1e-3, atol=1e-6 * abs(expected[0]))

    def test_modulated_spectrum_peaks_near_carrier(self):
        pulse = GaussianPulse(frequency=10e9, bandwidth=4e9)
        dt = 1e-12
        freqs = np.linspace(1e9, 20e9, 191)
        magnitude = np.abs(pulse.spectrum(freqs, dt, int(pulse.end_time / dt) + 1))

        assert freqs[np.argmax(magnitude)] == pytest.approx(10e9, rel=0.02)
