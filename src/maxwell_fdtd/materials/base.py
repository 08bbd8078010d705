"""Base classes for frequency-dependent electromagnetic materials.

This module provides the foundation for the ADE (Auxiliary Differential
Equation) material system, enabling frequency-dependent permittivity in
FDTD simulations.

The relative permittivity is decomposed into an instantaneous part and a
sum of poles (Debye for relaxation, Lorentz for resonances, Drude for free
carriers), each of which adds a polarisation equation to the E-update:

    ε(ω) = ε∞ + Σᵢ χᵢ(ω) − jσ/(ωε₀)

A time dependence of e^{jωt} is used throughout the package.

Example:
    >>> from maxwell_fdtd.materials import Material, Pole, PoleType
    >>> water = Material(
    ...     name="water",
    ...     eps_r=4.9,
    ...     poles=(Pole(PoleType.DEBYE, delta_eps=74.1, tau=8.3e-12),),
    ... )
    >>> coeffs = water.poles[0].fdtd_coefficients(dt=1e-12)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from numpy.typing import NDArray
from scipy.constants import c as C0
from scipy.constants import epsilon_0

from maxwell_fdtd.errors import ConfigurationError

PEC_CONDUCTIVITY = 1e6
"""Conductivity (S/m) at or above which a material is meshed as a perfect conductor."""


class PoleType(Enum):
    """Type of dispersion pole.

    DEBYE: First-order relaxation pole (polar liquids, lossy dielectrics).
        χ(ω) = Δε / (1 + jωτ)
        Time domain: τ ∂P/∂t + P = Δε·ε₀·E

    LORENTZ: Second-order resonant pole.
        χ(ω) = Δε·ω₀² / (ω₀² − ω² + jγω)
        Time domain: ∂²P/∂t² + γ∂P/∂t + ω₀²P = Δε·ω₀²·ε₀·E

    DRUDE: Free-carrier pole (metals, plasmas).
        χ(ω) = −ωp² / (ω² − jγω)
        Time domain: ∂²P/∂t² + γ∂P/∂t = ωp²·ε₀·E
    """

    DEBYE = "debye"
    LORENTZ = "lorentz"
    DRUDE = "drude"


@dataclass(frozen=True)
class Pole:
    """A single dispersion pole for ADE material modeling.

    For Debye poles:
        P^{n+1} = α·P^n + β·ε₀·E^n
        α = (τ/Δt) / (1 + τ/Δt),  β = Δε / (1 + τ/Δt)

    For Lorentz and Drude poles (central differences):
        P^{n+1} = a·P^n + b·P^{n−1} + d·ε₀·E^n
        c = 1 + γΔt/2, a = (2 − ω₀²Δt²)/c, b = −(1 − γΔt/2)/c

    with d = Δε·ω₀²·Δt²/c (Lorentz) or d = ωp²·Δt²/c (Drude).

    Args:
        pole_type: Type of pole
        delta_eps: Permittivity increment Δε (Debye, Lorentz)
        tau: Relaxation time in seconds (Debye)
        omega_0: Resonance angular frequency in rad/s (Lorentz)
        omega_p: Plasma angular frequency in rad/s (Drude)
        gamma: Damping rate in rad/s (Lorentz, Drude)

    Example:
        >>> lorentz = Pole(
        ...     PoleType.LORENTZ,
        ...     delta_eps=2.0,
        ...     omega_0=2 * np.pi * 5e9,
        ...     gamma=1e8,
        ... )
        >>> a, b, d = lorentz.fdtd_coefficients(dt=1e-12)
    """

    pole_type: PoleType
    delta_eps: float = 0.0
    tau: float | None = None
    omega_0: float | None = None
    omega_p: float | None = None
    gamma: float | None = None

    def __post_init__(self):
        """Validate pole parameters."""
        if not isinstance(self.pole_type, PoleType):
            raise ConfigurationError(f"Unknown pole type: {self.pole_type!r}")

        if self.pole_type == PoleType.DEBYE:
            if self.tau is None:
                raise ConfigurationError("Debye poles require tau parameter")
            if self.tau <= 0:
                raise ConfigurationError("tau must be positive")
            if self.delta_eps < 0:
                raise ConfigurationError("delta_eps must be non-negative")
        elif self.pole_type == PoleType.LORENTZ:
            if self.omega_0 is None or self.gamma is None:
                raise ConfigurationError("Lorentz poles require omega_0 and gamma parameters")
            if self.omega_0 <= 0:
                raise ConfigurationError("omega_0 must be positive")
            if self.gamma < 0:
                raise ConfigurationError("gamma must be non-negative")
        else:
            if self.omega_p is None or self.gamma is None:
                raise ConfigurationError("Drude poles require omega_p and gamma parameters")
            if self.omega_p <= 0:
                raise ConfigurationError("omega_p must be positive")
            if self.gamma < 0:
                raise ConfigurationError("gamma must be non-negative")

    def susceptibility(self, omega: float | NDArray[np.floating]) -> complex | NDArray[np.complexfloating]:
        """Compute complex susceptibility at given angular frequency.

        Args:
            omega: Angular frequency in rad/s (can be array)

        Returns:
            Complex susceptibility χ(ω)
        """
        omega = np.asarray(omega, dtype=np.float64)

        if self.pole_type == PoleType.DEBYE:
            return self.delta_eps / (1 + 1j * omega * self.tau)
        if self.pole_type == PoleType.LORENTZ:
            return (
                self.delta_eps * self.omega_0**2
                / (self.omega_0**2 - omega**2 + 1j * self.gamma * omega)
            )
        return -self.omega_p**2 / (omega**2 - 1j * self.gamma * omega)

    def fdtd_coefficients(self, dt: float) -> tuple[float, ...]:
        """Compute FDTD update coefficients for this pole.

        Args:
            dt: Timestep in seconds

        Returns:
            For Debye: (alpha, beta)
            For Lorentz and Drude: (a, b, d)
        """
        if self.pole_type == PoleType.DEBYE:
            tau_dt = self.tau / dt
            denom = 1 + tau_dt
            return (tau_dt / denom, self.delta_eps / denom)

        g = self.gamma
        dt2 = dt * dt
        w0 = self.omega_0 if self.pole_type == PoleType.LORENTZ else 0.0
        strength = self.delta_eps * w0**2 if self.pole_type == PoleType.LORENTZ else self.omega_p**2

        c = 1 + g * dt / 2
        a = (2 - w0**2 * dt2) / c
        b = -(1 - g * dt / 2) / c
        d = strength * dt2 / c
        return (a, b, d)

    @property
    def is_second_order(self) -> bool:
        """Whether the pole needs the previous-step polarisation."""
        return self.pole_type != PoleType.DEBYE

    def __repr__(self) -> str:
        if self.pole_type == PoleType.DEBYE:
            return f"Pole(DEBYE, Δε={self.delta_eps:.3g}, τ={self.tau:.2e}s)"
        if self.pole_type == PoleType.LORENTZ:
            f0 = self.omega_0 / (2 * np.pi)
            return f"Pole(LORENTZ, Δε={self.delta_eps:.3g}, f₀={f0:.3e}Hz, γ={self.gamma:.2e})"
        fp = self.omega_p / (2 * np.pi)
        return f"Pole(DRUDE, fp={fp:.3e}Hz, γ={self.gamma:.2e})"


@dataclass(frozen=True)
class Material:
    """Linear, isotropic electromagnetic material.

    Args:
        name: Human-readable material name
        eps_r: Relative permittivity (ε∞ for dispersive materials)
        mu_r: Relative permeability
        sigma: Electric conductivity in S/m
        poles: Dispersion poles added to eps_r
        is_pec: Mesh as a perfect electric conductor

    Example:
        >>> fr4 = Material(name="FR4", eps_r=4.4, sigma=0.012)
        >>> fr4.permittivity(2.4e9)
        (4.4-0.0898...j)
    """

    name: str
    eps_r: float = 1.0
    mu_r: float = 1.0
    sigma: float = 0.0
    poles: tuple[Pole, ...] = field(default_factory=tuple)
    is_pec: bool = False

    def __post_init__(self):
        if not np.isfinite(self.eps_r) or self.eps_r < 1.0:
            raise ConfigurationError(f"Material '{self.name}': eps_r must be >= 1, got {self.eps_r}")
        if not np.isfinite(self.mu_r) or self.mu_r < 1.0:
            raise ConfigurationError(f"Material '{self.name}': mu_r must be >= 1, got {self.mu_r}")
        if not self.sigma >= 0.0:
            raise ConfigurationError(f"Material '{self.name}': sigma must be >= 0, got {self.sigma}")
        object.__setattr__(self, "poles", tuple(self.poles))
        for pole in self.poles:
            if not isinstance(pole, Pole):
                raise ConfigurationError(f"Material '{self.name}': poles must be Pole instances")

    @classmethod
    def pec(cls, name: str = "pec") -> Material:
        """Create a perfect electric conductor."""
        return cls(name=name, is_pec=True)

    @classmethod
    def from_loss_tangent(
        cls,
        name: str,
        eps_r: float,
        tan_delta: float,
        frequency: float,
        mu_r: float = 1.0,
    ) -> Material:
        """Create a lossy dielectric whose conductivity matches a loss tangent.

        σ = ω·ε₀·εr·tan δ, exact at the given frequency.
        """
        sigma = 2 * np.pi * frequency * epsilon_0 * eps_r * tan_delta
        return cls(name=name, eps_r=eps_r, mu_r=mu_r, sigma=float(sigma))

    @property
    def is_dispersive(self) -> bool:
        """Whether the material has any dispersion poles."""
        return len(self.poles) > 0

    def treated_as_pec(self, pec_conductivity: float = PEC_CONDUCTIVITY) -> bool:
        """Whether the mapper meshes this material as a perfect conductor."""
        return self.is_pec or self.sigma >= pec_conductivity

    @property
    def wave_speed(self) -> float:
        """High-frequency phase velocity in m/s."""
        return C0 / np.sqrt(self.eps_r * self.mu_r)

    def permittivity(self, frequency: float | NDArray[np.floating]) -> complex | NDArray[np.complexfloating]:
        """Complex relative permittivity at a frequency in Hz.

        Includes dispersion poles and conductivity loss.
        """
        frequency = np.asarray(frequency, dtype=np.float64)
        omega = 2 * np.pi * frequency
        result = np.full(omega.shape, self.eps_r, dtype=complex)
        for pole in self.poles:
            result = result + pole.susceptibility(omega)
        if self.sigma > 0:
            with np.errstate(divide="ignore"):
                result = result - 1j * self.sigma / (omega * epsilon_0)
        return result[()] if result.ndim == 0 else result

    def summary(self) -> str:
        """Generate a text summary of material properties."""
        lines = [
            f"Material: {self.name}",
            f"  εr = {self.eps_r:.4g}",
            f"  μr = {self.mu_r:.4g}",
            f"  σ  = {self.sigma:.4g} S/m",
        ]
        if self.is_pec:
            lines.append("  perfect electric conductor")
        for i, pole in enumerate(self.poles):
            lines.append(f"    [{i}] {pole}")
        return "\n".join(lines)
