"""Excitation waveforms for FDTD simulation.

Waveforms are deterministic functions of time only. They carry no grid
state, so the same waveform object can drive several sources and be
re-evaluated after a checkpoint restore.

Classes:
    GaussianPulse: Broadband Gaussian-modulated sine (or baseband Gaussian)
    ContinuousWave: Single-frequency sine with a smooth turn-on ramp

Example:
    >>> from maxwell_fdtd import GaussianPulse, PointSource
    >>> pulse = GaussianPulse(frequency=2.4e9, bandwidth=2e9)
    >>> source = PointSource(position=(20, 20, 20), component="Ez", waveform=pulse)
    >>> pulse.at_step(100, dt=1e-12, offset=0.5)
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from maxwell_fdtd.errors import ConfigurationError


class _Waveform:
    """Sampling helpers shared by all waveforms."""

    amplitude: float
    frequency: float

    def waveform(self, t: NDArray[np.floating]) -> NDArray[np.floating]:
        raise NotImplementedError

    def at_step(self, step: int, dt: float, offset: float = 0.0) -> float:
        """Waveform value at time (step + offset)·Δt."""
        return float(self.waveform(np.asarray((step + offset) * dt)))

    def sample(self, n_steps: int, dt: float, offset: float = 0.0) -> NDArray[np.float64]:
        """Waveform values for steps 0..n_steps-1."""
        return self.waveform((np.arange(n_steps) + offset) * dt)

    def spectrum(
        self,
        frequencies: NDArray[np.floating],
        dt: float,
        n_steps: int,
        offset: float = 0.0,
    ) -> NDArray[np.complex128]:
        """Discrete Fourier transform of the sampled waveform.

        Uses the same kernel as the frequency monitors,
        Σ w((n + offset)Δt)·exp(−j2πf(n + offset)Δt)·Δt, so it can serve
        as the incident reference for measured spectra.
        """
        frequencies = np.atleast_1d(np.asarray(frequencies, dtype=np.float64))
        t = (np.arange(n_steps) + offset) * dt
        values = self.waveform(t)
        kernel = np.exp(-2j * np.pi * np.outer(frequencies, t))
        return kernel @ values * dt


@dataclass
class GaussianPulse(_Waveform):
    """Gaussian-modulated sinusoidal pulse.

    Creates a broadband excitation with energy concentrated around the
    specified center frequency. With ``frequency=0`` the pulse is a plain
    Gaussian (baseband) whose width is set by ``bandwidth``.

    Args:
        frequency: Center frequency in Hz
        bandwidth: Frequency bandwidth in Hz (default: 2 * frequency)
        amplitude: Peak amplitude (default: 1.0)
        delay: Envelope peak time in seconds (default: 4σ)

    Example:
        >>> pulse = GaussianPulse(frequency=1e9)
        >>> t = np.arange(2000) * 1e-12
        >>> values = pulse.waveform(t)
    """

    frequency: float
    bandwidth: float | None = None
    amplitude: float = 1.0
    delay: float | None = None

    def __post_init__(self):
        if self.frequency < 0:
            raise ConfigurationError(f"frequency must be non-negative, got {self.frequency}")
        if self.bandwidth is None:
            if self.frequency == 0:
                raise ConfigurationError("A baseband pulse (frequency=0) needs an explicit bandwidth")
            self.bandwidth = 2.0 * self.frequency
        if self.bandwidth <= 0:
            raise ConfigurationError(f"bandwidth must be positive, got {self.bandwidth}")
        if self.delay is None:
            self.delay = 4.0 * self.sigma

    @property
    def sigma(self) -> float:
        """Envelope standard deviation in seconds."""
        return 1.0 / (np.pi * self.bandwidth)

    @property
    def end_time(self) -> float:
        """Time after which the pulse is negligible."""
        return self.delay + 4.0 * self.sigma

    def waveform(self, t: NDArray[np.floating]) -> NDArray[np.floating]:
        """Generate the waveform at given times.

        Args:
            t: Array of time values in seconds

        Returns:
            Array of waveform values at each time
        """
        t = np.asarray(t, dtype=np.float64)
        envelope = np.exp(-((t - self.delay) ** 2) / (2 * self.sigma**2))
        if self.frequency == 0:
            return self.amplitude * envelope
        carrier = np.sin(2 * np.pi * self.frequency * (t - self.delay))
        return self.amplitude * envelope * carrier


@dataclass
class ContinuousWave(_Waveform):
    """Sinusoidal excitation with a raised-cosine turn-on.

    Args:
        frequency: Frequency in Hz
        amplitude: Steady-state amplitude (default: 1.0)
        ramp_cycles: Number of periods over which the amplitude ramps up

    Example:
        >>> cw = ContinuousWave(frequency=5e9, ramp_cycles=5)
    """

    frequency: float
    amplitude: float = 1.0
    ramp_cycles: float = 3.0

    def __post_init__(self):
        if self.frequency <= 0:
            raise ConfigurationError(f"frequency must be positive, got {self.frequency}")
        if self.ramp_cycles < 0:
            raise ConfigurationError("ramp_cycles must be non-negative")

    @property
    def ramp_time(self) -> float:
        return self.ramp_cycles / self.frequency

    def waveform(self, t: NDArray[np.floating]) -> NDArray[np.floating]:
        t = np.asarray(t, dtype=np.float64)
        carrier = np.sin(2 * np.pi * self.frequency * t)
        if self.ramp_time == 0:
            ramp = np.where(t >= 0, 1.0, 0.0)
        else:
            ramp = np.clip(t / self.ramp_time, 0.0, 1.0)
            ramp = 0.5 * (1.0 - np.cos(np.pi * ramp))
        return self.amplitude * ramp * carrier


Waveform = GaussianPulse | ContinuousWave
