"""
Absorbing boundary conditions for FDTD electromagnetic simulation.

This module provides the convolutional perfectly matched layer (CPML)
used to terminate open-region simulations, and a post-run diagnostic
that estimates how much energy the layer reflected.

The outer domain faces are perfect electric conductors; a CPML placed
against them absorbs outgoing waves before they reach the wall.

Profile Grading
---------------
Inside a layer of physical thickness D the parameters grow polynomially
with the normalized depth ρ = d/D (0 at the interface, 1 at the wall):

    σ(ρ) = σ_max ρ^m
    κ(ρ) = 1 + (κ_max − 1) ρ^m
    α(ρ) = α_max (1 − ρ)

with σ_max = −(m + 1) ln R / (2 η₀ D) and R = 10^(target_reflection_db / 20).

Recursive Convolution
---------------------
Each stretched derivative ∂/∂u → (1/κ) ∂/∂u + ψ is advanced with

    ψ^{n+1} = b ψ^n + c ∂u
    b = exp(−(σ/κ + α) Δt/ε₀)
    c = σ (b − 1) / (κ (σ + κα))

Auxiliary ψ arrays are allocated only inside the layer slabs. The 1/κ
factor is folded into the field grid's inverse-spacing arrays when the
layer is attached.

Example:
    >>> solver = FDTDSolver(shape=(80, 80, 80), resolution=1e-3, ...)
    >>> solver.add_boundary(CPML(layers=10, axes="all"))
    >>> result = solver.run(steps=2000)
    >>> result.diagnostics.get("pml_reflection_db")
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import numpy as np
from numpy.typing import NDArray
from scipy.constants import epsilon_0
from scipy.constants import physical_constants

from maxwell_fdtd.errors import ConfigurationError

if TYPE_CHECKING:
    from maxwell_fdtd.core.fields import FieldGrid

logger = logging.getLogger(__name__)

ETA_0 = physical_constants["characteristic impedance of vacuum"][0]

# (target, source, derivative axis, sign in the curl)
_H_TERMS = (
    ("Hx", "Ez", 1, +1.0),
    ("Hx", "Ey", 2, -1.0),
    ("Hy", "Ex", 2, +1.0),
    ("Hy", "Ez", 0, -1.0),
    ("Hz", "Ey", 0, +1.0),
    ("Hz", "Ex", 1, -1.0),
)
_E_TERMS = (
    ("Ex", "Hz", 1, +1.0),
    ("Ex", "Hy", 2, -1.0),
    ("Ey", "Hx", 2, +1.0),
    ("Ey", "Hz", 0, -1.0),
    ("Ez", "Hy", 0, +1.0),
    ("Ez", "Hx", 1, -1.0),
)


@dataclass
class _Slab:
    """Convolution state of one curl term on one side of one axis."""

    target: str
    source: str
    axis: int
    sign: float
    index: slice
    b: NDArray[np.float64]
    c: NDArray[np.float64]
    inv_spacing: NDArray[np.float64]
    psi: NDArray[np.float64]


def _broadcast(values: NDArray, axis: int) -> NDArray:
    shape = [1, 1, 1]
    shape[axis] = -1
    return values.reshape(shape)


def _take(array: NDArray, axis: int, index: slice) -> NDArray:
    idx = [slice(None)] * 3
    idx[axis] = index
    return array[tuple(idx)]


class CPML:
    """Convolutional perfectly matched layer on the outer domain faces.

    Args:
        layers: Layer thickness in cells on each face (default: 10)
        grading_exponent: Polynomial grading order m (default: 3)
        target_reflection_db: Theoretical normal-incidence reflection
            used to size σ_max (default: -120 dB)
        kappa_max: Maximum coordinate stretching (default: 1, no stretching)
        alpha_max: Maximum complex-frequency shift in S/m (default: 0)
        axes: Which axes to terminate ('all', 'x', 'y', 'z', or tuple)
        diagnostic_threshold_db: Reflection level above which the
            post-run diagnostic warns (default: -40 dB)

    Raises:
        ConfigurationError: If layers < 1 or grading_exponent <= 0

    Example:
        >>> solver.add_boundary(CPML(layers=12, axes=("x", "y")))
    """

    def __init__(
        self,
        layers: int = 10,
        grading_exponent: float = 3.0,
        target_reflection_db: float = -120.0,
        kappa_max: float = 1.0,
        alpha_max: float = 0.0,
        axes: Literal["all", "x", "y", "z"] | tuple[str, ...] = "all",
        diagnostic_threshold_db: float = -40.0,
    ):
        if int(layers) != layers or layers < 1:
            raise ConfigurationError(f"CPML layers must be a positive integer, got {layers}")
        if not grading_exponent > 0:
            raise ConfigurationError(f"grading_exponent must be positive, got {grading_exponent}")
        if not target_reflection_db < 0:
            raise ConfigurationError("target_reflection_db must be negative")
        if kappa_max < 1.0:
            raise ConfigurationError("kappa_max must be >= 1")
        if alpha_max < 0.0:
            raise ConfigurationError("alpha_max must be non-negative")

        self.layers = int(layers)
        self.grading_exponent = float(grading_exponent)
        self.target_reflection_db = float(target_reflection_db)
        self.kappa_max = float(kappa_max)
        self.alpha_max = float(alpha_max)
        self.diagnostic_threshold_db = float(diagnostic_threshold_db)

        if axes == "all":
            self.axes = ("x", "y", "z")
        elif isinstance(axes, str):
            self.axes = (axes,)
        else:
            self.axes = tuple(axes)
        for axis in self.axes:
            if axis not in ("x", "y", "z"):
                raise ConfigurationError(f"Unknown CPML axis '{axis}'")

        self._fields: FieldGrid | None = None
        self._h_slabs: list[_Slab] = []
        self._e_slabs: list[_Slab] = []
        self.sigma_max: dict[str, tuple[float, float]] = {}

    @property
    def axis_indices(self) -> tuple[int, ...]:
        return tuple("xyz".index(a) for a in self.axes)

    @property
    def is_attached(self) -> bool:
        """Check if the layer has been attached to a field grid."""
        return self._fields is not None

    def attach(self, fields: FieldGrid) -> None:
        """Build profiles, fold κ into the stencil and allocate ψ arrays.

        Raises:
            ConfigurationError: If an axis is periodic or too short for
                the requested layer thickness
        """
        if self._fields is not None:
            raise ConfigurationError("CPML is already attached to a field grid")

        grid = fields.grid
        d = self.layers
        for axis in self.axis_indices:
            n = grid.shape[axis]
            name = "xyz"[axis]
            if fields.periodic[axis]:
                raise ConfigurationError(f"Axis '{name}' is periodic and cannot carry a CPML")
            if 3 * d > n:
                raise ConfigurationError(
                    f"CPML with {d} layers needs at least {3 * d} cells along '{name}', "
                    f"grid has {n}"
                )

        self._fields = fields
        for axis in self.axis_indices:
            self._attach_axis(fields, axis)

        logger.debug(
            "CPML attached: %d layers on axes %s, %d auxiliary arrays",
            d,
            "".join(self.axes),
            len(self._h_slabs) + len(self._e_slabs),
        )

    def _profile(self, positions: NDArray, interface: float, thickness: float, sigma_max: float):
        """σ, κ, α at the given positions measured from the interface."""
        rho = np.clip(np.abs(positions - interface) / thickness, 0.0, 1.0)
        graded = rho**self.grading_exponent
        sigma = sigma_max * graded
        kappa = 1.0 + (self.kappa_max - 1.0) * graded
        alpha = self.alpha_max * (1.0 - rho)
        return sigma, kappa, alpha

    def _coefficients(self, sigma, kappa, alpha, dt):
        b = np.exp(-(sigma / kappa + alpha) * dt / epsilon_0)
        denom = kappa * (sigma + kappa * alpha)
        with np.errstate(divide="ignore", invalid="ignore"):
            c = np.where(sigma > 0, sigma * (b - 1.0) / denom, 0.0)
        return b, c

    def _attach_axis(self, fields: FieldGrid, axis: int) -> None:
        grid = fields.grid
        dt = fields.dt
        d = self.layers
        n = grid.shape[axis]
        edges = grid.edges(axis)
        centers = grid.centers(axis)
        reflection = 10.0 ** (self.target_reflection_db / 20.0)

        raw_primary = 1.0 / grid.spacing(axis)
        raw_dual = 1.0 / grid.dual_spacing(axis)

        sides = (
            ("low", edges[d], edges[d] - edges[0], slice(0, d), slice(1, d + 1)),
            ("high", edges[n - d], edges[n] - edges[n - d], slice(n - d, n), slice(n - d, n)),
        )
        sigma_max_pair = []
        for _side, interface, thickness, cells, nodes in sides:
            sigma_max = -(self.grading_exponent + 1) * np.log(reflection) / (2 * ETA_0 * thickness)
            sigma_max_pair.append(float(sigma_max))

            # H derivatives are taken at cell centres, E derivatives on mesh lines
            s_h, k_h, a_h = self._profile(centers[cells], interface, thickness, sigma_max)
            s_e, k_e, a_e = self._profile(edges[nodes], interface, thickness, sigma_max)
            b_h, c_h = self._coefficients(s_h, k_h, a_h, dt)
            b_e, c_e = self._coefficients(s_e, k_e, a_e, dt)

            fields.inv_primary[axis][cells] /= k_h
            fields.inv_dual[axis][nodes] /= k_e

            for target, source, term_axis, sign in _H_TERMS:
                if term_axis != axis:
                    continue
                shape = list(fields.component(target).shape)
                shape[axis] = len(k_h)
                self._h_slabs.append(
                    _Slab(
                        target=target,
                        source=source,
                        axis=axis,
                        sign=sign,
                        index=cells,
                        b=_broadcast(b_h, axis),
                        c=_broadcast(c_h, axis),
                        inv_spacing=_broadcast(raw_primary[cells], axis),
                        psi=np.zeros(shape, dtype=np.float64),
                    )
                )
            for target, source, term_axis, sign in _E_TERMS:
                if term_axis != axis:
                    continue
                shape = list(fields.component(target).shape)
                shape[axis] = len(k_e)
                self._e_slabs.append(
                    _Slab(
                        target=target,
                        source=source,
                        axis=axis,
                        sign=sign,
                        index=nodes,
                        b=_broadcast(b_e, axis),
                        c=_broadcast(c_e, axis),
                        inv_spacing=_broadcast(raw_dual[nodes], axis),
                        psi=np.zeros(shape, dtype=np.float64),
                    )
                )
        self.sigma_max["xyz"[axis]] = tuple(sigma_max_pair)

    def update_h(self) -> None:
        """Advance ψ for the H-update and apply its correction.

        Must run right after the field grid's H-update, before E changes.
        """
        fields = self._fields
        if fields is None:
            return
        for slab in self._h_slabs:
            source = fields.component(slab.source)
            # H cell k sees E nodes k and k+1
            start, stop = slab.index.start, slab.index.stop
            deriv = (
                _take(source, slab.axis, slice(start + 1, stop + 1))
                - _take(source, slab.axis, slice(start, stop))
            ) * slab.inv_spacing
            slab.psi *= slab.b
            slab.psi += slab.c * deriv
            target = _take(fields.component(slab.target), slab.axis, slab.index)
            target -= _take(fields.db[slab.target], slab.axis, slab.index) * slab.sign * slab.psi

    def update_e(self) -> None:
        """Advance ψ for the E-update and apply its correction.

        Must run right after the field grid's E-update.
        """
        fields = self._fields
        if fields is None:
            return
        for slab in self._e_slabs:
            source = fields.component(slab.source)
            # E node k sees H cells k-1 and k
            start, stop = slab.index.start, slab.index.stop
            deriv = (
                _take(source, slab.axis, slice(start, stop))
                - _take(source, slab.axis, slice(start - 1, stop - 1))
            ) * slab.inv_spacing
            slab.psi *= slab.b
            slab.psi += slab.c * deriv
            target = _take(fields.component(slab.target), slab.axis, slab.index)
            target += _take(fields.cb[slab.target], slab.axis, slab.index) * slab.sign * slab.psi

    def reset(self) -> None:
        """Reset auxiliary arrays to zero."""
        for slab in self._h_slabs + self._e_slabs:
            slab.psi.fill(0.0)

    def state_arrays(self) -> dict[str, NDArray[np.float64]]:
        """ψ arrays keyed for checkpoint storage."""
        arrays = {}
        for kind, slabs in (("h", self._h_slabs), ("e", self._e_slabs)):
            for n, slab in enumerate(slabs):
                arrays[f"{kind}{n}_{slab.target}_{slab.source}"] = slab.psi
        return arrays

    def load_state_arrays(self, arrays: Mapping[str, NDArray[np.float64]]) -> None:
        """Restore ψ arrays written by :meth:`state_arrays`."""
        for key, psi in self.state_arrays().items():
            if key not in arrays:
                raise ConfigurationError(f"Checkpoint is missing CPML state '{key}'")
            value = np.asarray(arrays[key])
            if value.shape != psi.shape:
                raise ConfigurationError(
                    f"CPML state '{key}' has shape {value.shape}, expected {psi.shape}"
                )
            np.copyto(psi, value)

    def get_interior_slice(self) -> tuple[slice, slice, slice]:
        """Get cell slices for the region outside the layers.

        Useful for placing sources and monitors without overlapping the CPML.

        Returns:
            Tuple of slices (x_slice, y_slice, z_slice)
        """
        if self._fields is None:
            raise RuntimeError("CPML not attached")

        d = self.layers
        slices = []
        for axis, n in enumerate(self._fields.shape):
            slices.append(slice(d, n - d) if "xyz"[axis] in self.axes else slice(None))
        return tuple(slices)

    def contains_cell(self, index: tuple[int, int, int]) -> bool:
        """True if a cell index lies inside any layer."""
        interior = self.get_interior_slice()
        for i, s in zip(index, interior):
            start = s.start if s.start is not None else -np.inf
            stop = s.stop if s.stop is not None else np.inf
            if not start <= i < stop:
                return True
        return False

    def __repr__(self) -> str:
        return (
            f"CPML(layers={self.layers}, m={self.grading_exponent:g}, "
            f"R={self.target_reflection_db:g} dB, axes={''.join(self.axes)})"
        )


def estimate_reflection_db(trace: NDArray[np.floating], gate_step: int) -> float:
    """Estimate boundary reflection from a calibration trace.

    The trace is split at ``gate_step``: samples before it hold the
    incident pulse, samples from it onward hold whatever came back.

    Args:
        trace: Field time series at a calibration point
        gate_step: First sample attributed to the reflected wave

    Returns:
        10·log10(reflected energy / incident energy) in dB, or -inf when
        nothing came back

    Raises:
        ConfigurationError: If the gate is outside the trace or the
            incident part carries no energy
    """
    trace = np.asarray(trace, dtype=np.float64)
    if not 0 < gate_step < len(trace):
        raise ConfigurationError(
            f"gate_step {gate_step} must lie inside the trace (length {len(trace)})"
        )
    incident = float(np.sum(trace[:gate_step] ** 2))
    reflected = float(np.sum(trace[gate_step:] ** 2))
    if incident == 0.0:
        raise ConfigurationError("Calibration trace has no incident energy before the gate")
    if reflected == 0.0:
        return float("-inf")
    return 10.0 * np.log10(reflected / incident)
