"""Near-to-far-field transformation.

A closed box of six node planes records tangential E and H by running
DFT. Equivalent surface currents on the box,

    J = n̂ × H,    M = −n̂ × E,

radiate the same far field as the enclosed sources. With the radiation
vectors

    N(r̂) = Σ J e^{jk r'·r̂} dA,    L(r̂) = Σ M e^{jk r'·r̂} dA

the far-zone fields (with the e^{−jkr}/r factor removed) are

    E_θ = −jk/(4π) (L_φ + η N_θ)
    E_φ =  jk/(4π) (L_θ − η N_φ)

and the radiation intensity is U = k²/(32π²η)(|L_φ + ηN_θ|² + |L_θ − ηN_φ|²).

The transform is a pure post-processing step. It never touches the
time loop.

Example:
    >>> box = NearFieldBox("nf2ff", lower=(15, 15, 15), upper=(65, 65, 85))
    >>> solver.add_near_field_box(box)
    >>> result = solver.run(steps=6000)
    >>> pattern = result.far_field["nf2ff"][0]
    >>> print(f"Peak gain {pattern.peak_gain_db:.2f} dBi")
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy.constants import epsilon_0, mu_0

from maxwell_fdtd.core.monitors import (
    E_TIME_OFFSET,
    H_TIME_OFFSET,
    DFTAccumulator,
    validate_frequencies,
)
from maxwell_fdtd.errors import ConfigurationError

if TYPE_CHECKING:
    from maxwell_fdtd.core.solver import SimulationContext

_E_NAMES = ("Ex", "Ey", "Ez")
_H_NAMES = ("Hx", "Hy", "Hz")


def _frozen(array: NDArray) -> NDArray:
    array = np.array(array, copy=True)
    array.flags.writeable = False
    return array


@dataclass(frozen=True)
class SurfaceCurrents:
    """Equivalent currents on a closed surface at one frequency.

    Attributes:
        positions: Patch centres, shape (P, 3) in meters
        normals: Outward unit normals, shape (P, 3)
        areas: Patch areas, shape (P,) in m²
        J: Electric surface current n̂ × H, shape (P, 3)
        M: Magnetic surface current −n̂ × E, shape (P, 3)
        frequency: Frequency in Hz
        eta: Wave impedance of the surrounding medium in Ω
        k: Wavenumber of the surrounding medium in rad/m
    """

    positions: NDArray[np.float64]
    normals: NDArray[np.float64]
    areas: NDArray[np.float64]
    J: NDArray[np.complex128]
    M: NDArray[np.complex128]
    frequency: float
    eta: float
    k: float

    @classmethod
    def from_fields(
        cls,
        positions: NDArray[np.floating],
        normals: NDArray[np.floating],
        areas: NDArray[np.floating],
        e_field: NDArray[np.complexfloating],
        h_field: NDArray[np.complexfloating],
        frequency: float,
        eps_r: float = 1.0,
        mu_r: float = 1.0,
    ) -> SurfaceCurrents:
        """Build currents from E and H phasors sampled on the surface."""
        normals = np.asarray(normals, dtype=np.float64)
        eps = epsilon_0 * eps_r
        mu = mu_0 * mu_r
        return cls(
            positions=np.asarray(positions, dtype=np.float64),
            normals=normals,
            areas=np.asarray(areas, dtype=np.float64),
            J=np.cross(normals, h_field),
            M=-np.cross(normals, e_field),
            frequency=float(frequency),
            eta=float(np.sqrt(mu / eps)),
            k=float(2 * np.pi * frequency * np.sqrt(mu * eps)),
        )

    def poynting_flux(self) -> float:
        """Time-averaged power ½ Re ∮ (E × H*)·n̂ dA leaving the surface."""
        e_t = np.cross(self.normals, self.M)
        h_t = -np.cross(self.normals, self.J)
        s = np.cross(e_t, np.conj(h_t))
        return float(0.5 * np.real(np.sum(np.sum(s * self.normals, axis=1) * self.areas)))

    def centroid(self) -> NDArray[np.float64]:
        """Area-weighted centre of the surface."""
        return np.sum(self.positions * self.areas[:, None], axis=0) / np.sum(self.areas)


@dataclass(frozen=True)
class FarFieldResult:
    """Radiation pattern at one frequency. Immutable.

    Attributes:
        theta: Polar angles in radians, shape (nθ,)
        phi: Azimuth angles in radians, shape (nφ,)
        frequency: Frequency in Hz
        e_theta: r·E_θ (phase reference e^{−jkr} removed), shape (nθ, nφ)
        e_phi: r·E_φ, shape (nθ, nφ)
        directivity: 4πU/P_rad, shape (nθ, nφ)
        gain: 4πU/P_in, or the directivity if P_in is unknown
        radiated_power: Power through the box in W (spectral units)
        input_power: Accepted port power, if known
    """

    theta: NDArray[np.float64]
    phi: NDArray[np.float64]
    frequency: float
    e_theta: NDArray[np.complex128]
    e_phi: NDArray[np.complex128]
    directivity: NDArray[np.float64]
    gain: NDArray[np.float64]
    radiated_power: float
    input_power: float | None = None

    def __post_init__(self):
        for name in ("theta", "phi", "e_theta", "e_phi", "directivity", "gain"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    @property
    def gain_db(self) -> NDArray[np.float64]:
        with np.errstate(divide="ignore"):
            return 10.0 * np.log10(self.gain)

    @property
    def directivity_db(self) -> NDArray[np.float64]:
        with np.errstate(divide="ignore"):
            return 10.0 * np.log10(self.directivity)

    @property
    def peak_gain_db(self) -> float:
        return float(np.max(self.gain_db))

    @property
    def peak_directivity_db(self) -> float:
        return float(np.max(self.directivity_db))

    @property
    def peak_direction(self) -> tuple[float, float]:
        """(θ, φ) in radians of maximum gain."""
        i, j = np.unravel_index(np.argmax(self.gain), self.gain.shape)
        return float(self.theta[i]), float(self.phi[j])

    @property
    def radiation_efficiency(self) -> float | None:
        if self.input_power is None:
            return None
        return self.radiated_power / self.input_power


def compute_far_field(
    currents: SurfaceCurrents,
    theta: Sequence[float] | NDArray,
    phi: Sequence[float] | NDArray,
    input_power: float | None = None,
    origin: Sequence[float] | None = None,
    max_batch: int = 2_000_000,
) -> FarFieldResult:
    """Far-field pattern of a set of surface currents.

    Args:
        currents: Equivalent currents on a closed surface
        theta: Polar angles in radians
        phi: Azimuth angles in radians
        input_power: Accepted power for gain (default: gain = directivity)
        origin: Phase reference point (default: area-weighted centroid)
        max_batch: Upper bound on patches × directions per batch

    Returns:
        FarFieldResult on the (theta, phi) grid

    Raises:
        ValueError: If no power leaves the surface or input_power <= 0
    """
    theta = np.atleast_1d(np.asarray(theta, dtype=np.float64))
    phi = np.atleast_1d(np.asarray(phi, dtype=np.float64))
    if input_power is not None and not input_power > 0:
        raise ValueError(f"input_power must be positive, got {input_power}")

    radiated = currents.poynting_flux()
    if not radiated > 0:
        raise ValueError(f"No net power leaves the surface (P = {radiated:.3e} W)")

    ref = currents.centroid() if origin is None else np.asarray(origin, dtype=np.float64)
    r_prime = currents.positions - ref
    j_da = currents.J * currents.areas[:, None]
    m_da = currents.M * currents.areas[:, None]
    k, eta = currents.k, currents.eta

    e_theta = np.empty((len(theta), len(phi)), dtype=np.complex128)
    e_phi = np.empty_like(e_theta)
    cos_p, sin_p = np.cos(phi), np.sin(phi)
    chunk_size = max(1, max_batch // (len(r_prime) * len(phi)))

    for start in range(0, len(theta), chunk_size):
        th = theta[start : start + chunk_size]
        ct, st = np.cos(th)[:, None], np.sin(th)[:, None]
        r_hat = np.stack(
            [st * cos_p, st * sin_p, np.broadcast_to(ct, (len(th), len(phi)))], axis=-1
        ).reshape(-1, 3)
        theta_hat = np.stack(
            [ct * cos_p, ct * sin_p, np.broadcast_to(-st, (len(th), len(phi)))], axis=-1
        ).reshape(-1, 3)
        phi_hat = np.stack(
            [np.broadcast_to(-sin_p, (len(th), len(phi))),
             np.broadcast_to(cos_p, (len(th), len(phi))),
             np.zeros((len(th), len(phi)))],
            axis=-1,
        ).reshape(-1, 3)

        phase = np.exp(1j * k * (r_prime @ r_hat.T))
        n_vec = j_da.T @ phase
        l_vec = m_da.T @ phase
        n_theta = np.einsum("id,di->i", theta_hat, n_vec)
        n_phi = np.einsum("id,di->i", phi_hat, n_vec)
        l_theta = np.einsum("id,di->i", theta_hat, l_vec)
        l_phi = np.einsum("id,di->i", phi_hat, l_vec)

        rows = slice(start, start + len(th))
        e_theta[rows] = (-1j * k / (4 * np.pi) * (l_phi + eta * n_theta)).reshape(len(th), len(phi))
        e_phi[rows] = (1j * k / (4 * np.pi) * (l_theta - eta * n_phi)).reshape(len(th), len(phi))

    # U = (|rE_θ|² + |rE_φ|²) / (2η), equal to k²/(32π²η)(...)
    intensity = (np.abs(e_theta) ** 2 + np.abs(e_phi) ** 2) / (2 * eta)
    directivity = 4 * np.pi * intensity / radiated
    gain = directivity if input_power is None else 4 * np.pi * intensity / input_power

    return FarFieldResult(
        theta=theta,
        phi=phi,
        frequency=currents.frequency,
        e_theta=e_theta,
        e_phi=e_phi,
        directivity=directivity,
        gain=gain,
        radiated_power=radiated,
        input_power=input_power,
    )


class NearFieldBox:
    """Closed box of DFT planes for the far-field transform.

    Faces lie on node planes ``lower[a]`` and ``upper[a]`` of each axis
    and span the cells between them. The box must enclose every source
    and stay clear of absorbing layers.

    Args:
        name: Identifier for this box
        lower: Lower node corner (i, j, k)
        upper: Upper node corner (i, j, k)
        frequencies: Frequencies in Hz (default: the solver's)
        theta: Polar angles of the pattern (default: 0-180° in 2° steps)
        phi: Azimuth angles of the pattern (default: 0-360° in 5° steps)
    """

    def __init__(
        self,
        name: str,
        lower: Sequence[int],
        upper: Sequence[int],
        frequencies: Sequence[float] | NDArray | None = None,
        theta: Sequence[float] | NDArray | None = None,
        phi: Sequence[float] | NDArray | None = None,
    ):
        self.name = name
        self.lower = tuple(int(i) for i in lower)
        self.upper = tuple(int(i) for i in upper)
        if len(self.lower) != 3 or len(self.upper) != 3:
            raise ConfigurationError(f"Near-field box '{name}': corners must be (i, j, k)")
        if any(hi <= lo for lo, hi in zip(self.lower, self.upper)):
            raise ConfigurationError(f"Near-field box '{name}': upper must exceed lower on every axis")
        self.frequencies = None if frequencies is None else validate_frequencies(frequencies)
        self.theta = np.linspace(0.0, np.pi, 91) if theta is None else np.asarray(theta, dtype=np.float64)
        self.phi = np.linspace(0.0, 2 * np.pi, 73) if phi is None else np.asarray(phi, dtype=np.float64)

        self.eps_r = 1.0
        self.mu_r = 1.0
        # (axis, side) -> {component: accumulator}; side is -1 (lower) or +1 (upper)
        self._faces: dict[tuple[int, int], dict[str, DFTAccumulator]] = {}
        self._geometry: dict[tuple[int, int], tuple[NDArray, NDArray]] = {}

    def validate(self, ctx: SimulationContext) -> None:
        shape = ctx.grid.shape
        for a in range(3):
            if not (1 <= self.lower[a] and self.upper[a] <= shape[a] - 1):
                raise ConfigurationError(
                    f"Near-field box '{self.name}' must lie inside the domain "
                    f"(axis {a}: nodes {self.lower[a]}..{self.upper[a]}, grid {shape[a]})"
                )
        for boundary in ctx.fields.boundaries:
            for a in boundary.axis_indices:
                d = boundary.layers
                if self.lower[a] <= d or self.upper[a] >= shape[a] - d:
                    raise ConfigurationError(
                        f"Near-field box '{self.name}' overlaps the absorbing layer on axis {a}"
                    )

    def _window(self, axis: int) -> tuple[slice, slice]:
        b, c = (a for a in range(3) if a != axis)
        return slice(self.lower[b], self.upper[b]), slice(self.lower[c], self.upper[c])

    def prepare(self, ctx: SimulationContext) -> None:
        """Allocate per-face accumulators and patch geometry."""
        self.validate(ctx)
        if self.frequencies is None:
            if ctx.frequencies is None:
                raise ConfigurationError(
                    f"Near-field box '{self.name}' needs frequencies (on the box or the solver)"
                )
            self.frequencies = np.asarray(ctx.frequencies, dtype=np.float64)

        grid = ctx.grid
        corner = tuple(min(i, n - 1) for i, n in zip(self.lower, grid.shape))
        self.eps_r = float(ctx.fields.coefficients.eps["Ex"][corner]) / epsilon_0
        self.mu_r = float(ctx.fields.coefficients.mu["Hx"][corner]) / mu_0

        self._faces = {}
        self._geometry = {}
        for axis in range(3):
            b, c = (a for a in range(3) if a != axis)
            wb, wc = self._window(axis)
            cb = grid.centers(b)[wb]
            cc = grid.centers(c)[wc]
            area = np.outer(grid.spacing(b)[wb], grid.spacing(c)[wc])
            for side, index in ((-1, self.lower[axis]), (1, self.upper[axis])):
                pos = np.zeros(area.shape + (3,))
                pos[..., axis] = grid.edges(axis)[index]
                pos[..., b] = cb[:, None]
                pos[..., c] = cc[None, :]
                self._geometry[(axis, side)] = (pos.reshape(-1, 3), area.ravel())
                self._faces[(axis, side)] = {
                    name: DFTAccumulator(
                        self.frequencies,
                        area.shape,
                        E_TIME_OFFSET if name[0] == "E" else H_TIME_OFFSET,
                    )
                    for name in (_E_NAMES[b], _E_NAMES[c], _H_NAMES[b], _H_NAMES[c])
                }

    def record(self, ctx: SimulationContext, step: int) -> None:
        for axis in range(3):
            window = self._window(axis)
            for side, index in ((-1, self.lower[axis]), (1, self.upper[axis])):
                samples = ctx.fields.sample_plane(axis, index)
                for name, acc in self._faces[(axis, side)].items():
                    acc.accumulate(step, samples[name][window], ctx.dt)

    def surface_currents(self) -> list[SurfaceCurrents]:
        """Equivalent currents, one SurfaceCurrents per frequency."""
        if not self._faces:
            raise ConfigurationError(f"Near-field box '{self.name}' was never attached to a solver")
        positions, normals, areas = [], [], []
        for (axis, side), (pos, area) in self._geometry.items():
            normal = np.zeros((len(area), 3))
            normal[:, axis] = side
            positions.append(pos)
            normals.append(normal)
            areas.append(area)
        positions = np.concatenate(positions)
        normals = np.concatenate(normals)
        areas = np.concatenate(areas)

        results = []
        for fi, freq in enumerate(self.frequencies):
            e_parts, h_parts = [], []
            for key, accumulators in self._faces.items():
                n_patch = len(self._geometry[key][1])
                e = np.zeros((n_patch, 3), dtype=np.complex128)
                h = np.zeros((n_patch, 3), dtype=np.complex128)
                for name, acc in accumulators.items():
                    comp = "xyz".index(name[1])
                    target = e if name[0] == "E" else h
                    target[:, comp] = acc.data[fi].ravel()
                e_parts.append(e)
                h_parts.append(h)
            results.append(
                SurfaceCurrents.from_fields(
                    positions,
                    normals,
                    areas,
                    np.concatenate(e_parts),
                    np.concatenate(h_parts),
                    freq,
                    eps_r=self.eps_r,
                    mu_r=self.mu_r,
                )
            )
        return results

    def state_arrays(self) -> dict[str, NDArray]:
        arrays = {}
        for (axis, side), accumulators in self._faces.items():
            for name, acc in accumulators.items():
                arrays[f"{'xyz'[axis]}{'-' if side < 0 else '+'}/{name}"] = acc.data
        return arrays

    def load_state_arrays(self, arrays: Mapping[str, NDArray], samples: int) -> None:
        for key, data in self.state_arrays().items():
            if key not in arrays:
                raise ConfigurationError(f"Checkpoint is missing near-field state '{key}'")
            np.copyto(data, np.asarray(arrays[key]))
        for accumulators in self._faces.values():
            for acc in accumulators.values():
                acc.samples = samples

    def reset(self) -> None:
        for accumulators in self._faces.values():
            for acc in accumulators.values():
                acc.reset()

    def __repr__(self) -> str:
        return f"NearFieldBox('{self.name}', lower={self.lower}, upper={self.upper})"
