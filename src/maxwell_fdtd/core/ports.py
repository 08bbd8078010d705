"""Guided-wave ports: lumped resistive ports and rectangular waveguide ports.

A port both excites the structure (when it has a waveform) and measures
the voltage and current needed to split the field into incident and
reflected power waves:

    a = (V + Z·I) / (2√Re Z)
    b = (V − Z·I) / (2√Re Z)

Scattering parameters follow as S_ji = b_j / a_i with port i excited.

Example:
    >>> feed = LumpedPort("feed", start=(40, 40, 30), stop=(40, 40, 32), axis="z",
    ...                   impedance=50.0, waveform=GaussianPulse(frequency=2.4e9))
    >>> solver.add_port(feed)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy.constants import c as C0
from scipy.constants import epsilon_0, mu_0

from maxwell_fdtd.errors import ConfigurationError

from .grid import axis_index
from .monitors import E_TIME_OFFSET, H_TIME_OFFSET, DFTAccumulator, PortWaves
from .sources import ExcitationKind
from .waveforms import ContinuousWave, GaussianPulse

if TYPE_CHECKING:
    from .solver import SimulationContext

logger = logging.getLogger(__name__)

_E_NAMES = ("Ex", "Ey", "Ez")
_H_NAMES = ("Hx", "Hy", "Hz")


class Port:
    """Shared measurement and wave-splitting machinery."""

    kind = ExcitationKind.GUIDED_PORT

    def __init__(self, name: str, waveform: GaussianPulse | ContinuousWave | None):
        self.name = name
        self.waveform = waveform
        self.frequencies: NDArray[np.float64] | None = None
        self.voltage_dft: DFTAccumulator | None = None
        self.current_dft: DFTAccumulator | None = None
        self.voltage_trace: list[float] = []
        self.current_trace: list[float] = []

    @property
    def excited(self) -> bool:
        return self.waveform is not None

    def prepare(self, ctx: SimulationContext) -> None:
        if ctx.frequencies is None:
            raise ConfigurationError(
                f"Port '{self.name}' needs analysis frequencies; pass frequencies= to the solver"
            )
        self.frequencies = np.asarray(ctx.frequencies, dtype=np.float64)
        self.voltage_dft = DFTAccumulator(self.frequencies, (), E_TIME_OFFSET)
        self.current_dft = DFTAccumulator(self.frequencies, (), H_TIME_OFFSET)

    def measure(self, ctx: SimulationContext) -> tuple[float, float]:
        raise NotImplementedError

    def record(self, ctx: SimulationContext, step: int) -> None:
        """Accumulate voltage (integer step) and current (half step)."""
        voltage, current = self.measure(ctx)
        self.voltage_trace.append(voltage)
        self.current_trace.append(current)
        self.voltage_dft.accumulate(step, voltage, ctx.dt)
        self.current_dft.accumulate(step, current, ctx.dt)

    def reference_impedance(self) -> NDArray[np.complex128]:
        raise NotImplementedError

    def incident_reference(self, dt: float, n_steps: int) -> NDArray[np.complex128] | None:
        """Known incident wave spectrum, or None to use the measured one."""
        return None

    def waves(self, dt: float, n_steps: int) -> PortWaves:
        """Split the accumulated spectra into power waves."""
        z = self.reference_impedance()
        v = self.voltage_dft.data.copy()
        i = self.current_dft.data.copy()
        with np.errstate(divide="ignore", invalid="ignore"):
            norm = 2.0 * np.sqrt(np.real(z))
            a = (v + z * i) / norm
            b = (v - z * i) / norm
        reference = self.incident_reference(dt, n_steps) if self.excited else None
        if reference is not None:
            a = reference
        # No propagating wave to split (e.g. waveguide below cutoff)
        evanescent = ~(np.real(z) > 0)
        a = np.where(evanescent, np.nan, a)
        b = np.where(evanescent, np.nan, b)
        return PortWaves(a=a, b=b, voltage=v, current=i, reference_impedance=z, excited=self.excited)

    def state_arrays(self) -> dict[str, NDArray]:
        return {
            "voltage_dft": self.voltage_dft.data,
            "current_dft": self.current_dft.data,
            "voltage_trace": np.asarray(self.voltage_trace, dtype=np.float64),
            "current_trace": np.asarray(self.current_trace, dtype=np.float64),
        }

    def load_state_arrays(self, arrays: Mapping[str, NDArray]) -> None:
        np.copyto(self.voltage_dft.data, np.asarray(arrays["voltage_dft"]))
        np.copyto(self.current_dft.data, np.asarray(arrays["current_dft"]))
        self.voltage_trace = [float(x) for x in np.asarray(arrays["voltage_trace"])]
        self.current_trace = [float(x) for x in np.asarray(arrays["current_trace"])]
        self.voltage_dft.samples = self.current_dft.samples = len(self.voltage_trace)

    def reset(self) -> None:
        self.voltage_trace.clear()
        self.current_trace.clear()
        if self.voltage_dft is not None:
            self.voltage_dft.reset()
            self.current_dft.reset()


class LumpedPort(Port):
    """Resistive voltage source on a column of E edges.

    The port spans mesh nodes ``start`` to ``stop`` along ``axis``; both
    ends share the same transverse node indices. The internal resistance
    is folded into the update coefficients of the port edges, so a
    passive port (no waveform) is a matched termination.

    Sign convention: V = Σ E·Δl along +axis is the potential of the
    ``start`` end relative to ``stop``, and I is the current delivered
    out of the ``start`` terminal into the structure.

    Args:
        name: Port identifier
        start: Mesh node (i, j, k) of one terminal
        stop: Mesh node (i, j, k) of the other terminal
        axis: Port direction ('x', 'y', 'z' or 0-2)
        impedance: Internal resistance and reference impedance in Ω
        waveform: Source voltage waveform, or None for a passive port
    """

    def __init__(
        self,
        name: str,
        start: Sequence[int],
        stop: Sequence[int],
        axis: int | str,
        impedance: float = 50.0,
        waveform: GaussianPulse | ContinuousWave | None = None,
    ):
        super().__init__(name, waveform)
        self.start = tuple(int(i) for i in start)
        self.stop = tuple(int(i) for i in stop)
        self.axis = axis_index(axis)
        self.impedance = float(impedance)

        if len(self.start) != 3 or len(self.stop) != 3:
            raise ConfigurationError(f"Port '{name}': start and stop must be (i, j, k)")
        if not self.impedance > 0:
            raise ConfigurationError(f"Port '{name}': impedance must be positive")
        for a in range(3):
            if a != self.axis and self.start[a] != self.stop[a]:
                raise ConfigurationError(
                    f"Port '{name}': start and stop may differ only along the port axis"
                )
        if self.stop[self.axis] <= self.start[self.axis]:
            raise ConfigurationError(f"Port '{name}': stop must lie after start along the port axis")

        self.component = _E_NAMES[self.axis]
        self._source_coeff: NDArray[np.float64] | None = None
        self._lengths: NDArray[np.float64] | None = None

    @property
    def edges(self) -> list[tuple[int, int, int]]:
        """Component-array indices of the port edges."""
        result = []
        for k in range(self.start[self.axis], self.stop[self.axis]):
            idx = list(self.start)
            idx[self.axis] = k
            result.append(tuple(idx))
        return result

    @property
    def num_edges(self) -> int:
        return self.stop[self.axis] - self.start[self.axis]

    def validate(self, ctx: SimulationContext) -> None:
        shape = ctx.grid.shape
        for a in range(3):
            n = shape[a]
            if a == self.axis:
                if self.start[a] < 0 or self.stop[a] > n:
                    raise ConfigurationError(f"Port '{self.name}' extends outside the domain")
            elif not 1 <= self.start[a] <= n - 1:
                raise ConfigurationError(
                    f"Port '{self.name}': transverse node {self.start[a]} on axis {a} "
                    f"must lie in [1, {n - 1}]"
                )
        pec = ctx.fields.coefficients.pec[self.component]
        for edge in self.edges:
            if pec[edge]:
                raise ConfigurationError(f"Port '{self.name}': edge {edge} lies on a PEC edge")
        for boundary in ctx.fields.boundaries:
            for edge in self.edges:
                if boundary.contains_cell(tuple(min(i, n - 1) for i, n in zip(edge, shape))):
                    raise ConfigurationError(f"Port '{self.name}' overlaps the absorbing boundary")

    def prepare(self, ctx: SimulationContext) -> None:
        """Fold the port resistance into the edge coefficients."""
        super().prepare(ctx)
        fields = ctx.fields
        grid = ctx.grid
        dt = ctx.dt
        n_edges = self.num_edges
        r_edge = self.impedance / n_edges

        primary = grid.spacing(self.axis)
        lengths = []
        coeffs = []
        for edge in self.edges:
            length = float(primary[edge[self.axis]])
            area = 1.0
            for a in range(3):
                if a != self.axis:
                    area *= float(grid.dual_spacing(a, fields.periodic[a])[edge[a]])
            eps = float(fields.coefficients.eps[self.component][edge])
            sigma = float(fields.coefficients.sigma[self.component][edge])

            loss = sigma * dt / (2 * eps)
            beta = dt * length / (2 * r_edge * eps * area)
            fields.ca[self.component][edge] = (1 - loss - beta) / (1 + loss + beta)
            cb = (dt / eps) / (1 + loss + beta)
            fields.cb[self.component][edge] = cb
            lengths.append(length)
            coeffs.append(cb / (r_edge * area))

        self._lengths = np.asarray(lengths)
        self._source_coeff = np.asarray(coeffs) / n_edges
        logger.debug("Port '%s': %d edges, R=%.1f Ω", self.name, n_edges, self.impedance)

    def apply(self, ctx: SimulationContext, step: int) -> None:
        """Add the source voltage term after the E-update."""
        v_source = self.waveform.at_step(step, ctx.dt, offset=0.5)
        field = ctx.fields.component(self.component)
        for edge, coeff in zip(self.edges, self._source_coeff):
            field[edge] += coeff * v_source

    def _loop_current(self, ctx: SimulationContext) -> float:
        """Ampère loop of H around the middle port edge."""
        a = self.axis
        b = (a + 1) % 3
        c = (a + 2) % 3
        edge = list(self.edges[self.num_edges // 2])
        fields = ctx.fields
        h_b = fields.component(_H_NAMES[b])
        h_c = fields.component(_H_NAMES[c])
        dual_b = ctx.grid.dual_spacing(b, fields.periodic[b])[edge[b]]
        dual_c = ctx.grid.dual_spacing(c, fields.periodic[c])[edge[c]]

        minus_b = list(edge)
        minus_b[b] -= 1
        minus_c = list(edge)
        minus_c[c] -= 1
        loop = (h_c[tuple(edge)] - h_c[tuple(minus_b)]) * dual_c - (
            h_b[tuple(edge)] - h_b[tuple(minus_c)]
        ) * dual_b
        return float(loop)

    def measure(self, ctx: SimulationContext) -> tuple[float, float]:
        field = ctx.fields.component(self.component)
        voltage = float(sum(field[edge] * length for edge, length in zip(self.edges, self._lengths)))
        current = -self._loop_current(ctx)
        return voltage, current

    def reference_impedance(self) -> NDArray[np.complex128]:
        return np.full(len(self.frequencies), self.impedance, dtype=np.complex128)

    def incident_reference(self, dt: float, n_steps: int) -> NDArray[np.complex128] | None:
        """Spectrum of the injected source voltage, Vs/(2√Z)."""
        vs = self.waveform.spectrum(self.frequencies, dt, n_steps, offset=0.5)
        return vs / (2.0 * np.sqrt(self.impedance))

    def __repr__(self) -> str:
        return (
            f"LumpedPort('{self.name}', start={self.start}, stop={self.stop}, "
            f"axis={'xyz'[self.axis]}, Z={self.impedance:g})"
        )


class RectangularWaveguidePort(Port):
    """TE_mn mode port on a mesh plane of a rectangular waveguide.

    The guide cross-section is the node-index box ``bounds`` on the two
    transverse axes (in increasing axis order). The mode profile is
    injected as a soft current sheet on mesh line ``index``; modal
    voltage and current are measured ``measure_offset`` cells downstream
    (along ``direction``) by overlap with the normalized profile.

    Below cutoff the TE wave impedance is imaginary and the wave split
    is undefined (NaN).

    Args:
        name: Port identifier
        axis: Guide axis ('x', 'y', 'z' or 0-2)
        index: Mesh line of the excitation plane
        bounds: ((b_lo, b_hi), (c_lo, c_hi)) node indices of the guide walls
        mode: (m, n) TE mode indices
        direction: +1 or -1, direction of the incident wave
        waveform: Modal field waveform, or None for a passive port
        measure_offset: Cells between excitation and measurement planes
    """

    def __init__(
        self,
        name: str,
        axis: int | str,
        index: int,
        bounds: Sequence[Sequence[int]],
        mode: tuple[int, int] = (1, 0),
        direction: int = 1,
        waveform: GaussianPulse | ContinuousWave | None = None,
        measure_offset: int = 2,
    ):
        super().__init__(name, waveform)
        self.axis = axis_index(axis)
        self.index = int(index)
        self.bounds = tuple((int(lo), int(hi)) for lo, hi in bounds)
        self.mode = (int(mode[0]), int(mode[1]))
        self.direction = int(direction)
        self.measure_offset = int(measure_offset)

        if len(self.bounds) != 2 or any(hi <= lo for lo, hi in self.bounds):
            raise ConfigurationError(f"Port '{name}': bounds must be two (lo, hi) ranges with hi > lo")
        if min(self.mode) < 0 or self.mode == (0, 0):
            raise ConfigurationError(f"Port '{name}': TE mode {self.mode} is not valid")
        if self.direction not in (1, -1):
            raise ConfigurationError(f"Port '{name}': direction must be +1 or -1")
        if self.measure_offset < 0:
            raise ConfigurationError(f"Port '{name}': measure_offset must be non-negative")

        self.transverse = tuple(a for a in range(3) if a != self.axis)
        self.eps_r = 1.0
        self.mu_r = 1.0
        self._size: tuple[float, float] = (1.0, 1.0)
        self._source_terms: list[tuple[str, tuple, NDArray[np.float64]]] = []
        self._profile_e: dict[str, NDArray[np.float64]] = {}
        self._profile_h: dict[str, NDArray[np.float64]] = {}
        self._dual_area: NDArray[np.float64] | None = None

    @property
    def measure_index(self) -> int:
        return self.index + self.direction * self.measure_offset

    def _dimensions(self, grid) -> tuple[float, float]:
        (b_lo, b_hi), (c_lo, c_hi) = self.bounds
        b, c = self.transverse
        width = float(grid.edges(b)[b_hi] - grid.edges(b)[b_lo])
        height = float(grid.edges(c)[c_hi] - grid.edges(c)[c_lo])
        return width, height

    @property
    def cutoff_frequency(self) -> float:
        """TE_mn cutoff frequency in Hz (requires validation first)."""
        m, n = self.mode
        width, height = self._size
        speed = C0 / np.sqrt(self.eps_r * self.mu_r)
        return 0.5 * speed * np.sqrt((m / width) ** 2 + (n / height) ** 2)

    def wave_impedance(self, frequencies: NDArray[np.floating]) -> NDArray[np.complex128]:
        """TE wave impedance ωμ/β, imaginary below cutoff."""
        f = np.asarray(frequencies, dtype=np.float64)
        omega = 2 * np.pi * f
        mu = mu_0 * self.mu_r
        k = omega * np.sqrt(mu * epsilon_0 * self.eps_r)
        kc = 2 * np.pi * self.cutoff_frequency * np.sqrt(mu * epsilon_0 * self.eps_r)
        beta = np.conj(np.sqrt((k**2 - kc**2).astype(np.complex128)))
        with np.errstate(divide="ignore", invalid="ignore"):
            return omega * mu / beta

    def _mode_field(self, u: NDArray, v: NDArray) -> tuple[NDArray, NDArray]:
        """Unnormalized TE_mn transverse E (along b, along c)."""
        m, n = self.mode
        width, height = self._size
        e_b = (n / height) * np.cos(m * np.pi * u / width) * np.sin(n * np.pi * v / height)
        e_c = -(m / width) * np.sin(m * np.pi * u / width) * np.cos(n * np.pi * v / height)
        return e_b, e_c

    def validate(self, ctx: SimulationContext) -> None:
        grid = ctx.grid
        n_axis = grid.shape[self.axis]
        for plane in (self.index, self.measure_index):
            if not 1 <= plane <= n_axis - 1:
                raise ConfigurationError(
                    f"Port '{self.name}': plane {plane} must lie in [1, {n_axis - 1}]"
                )
        for (lo, hi), a in zip(self.bounds, self.transverse):
            if lo < 0 or hi > grid.shape[a]:
                raise ConfigurationError(f"Port '{self.name}': bounds exceed the domain on axis {a}")
        self._size = self._dimensions(grid)

        # Medium at the guide centre
        b, c = self.transverse
        centre = [0, 0, 0]
        centre[self.axis] = min(self.index, n_axis - 1)
        centre[b] = (self.bounds[0][0] + self.bounds[0][1]) // 2
        centre[c] = (self.bounds[1][0] + self.bounds[1][1]) // 2
        e_name = _E_NAMES[c]
        idx = list(centre)
        idx[b] = min(idx[b], grid.shape[b] - 1)
        eps = float(ctx.fields.coefficients.eps[e_name][tuple(idx)])
        h_name = _H_NAMES[self.axis]
        h_idx = list(centre)
        h_idx[b] = min(h_idx[b], grid.shape[b] - 1)
        h_idx[c] = min(h_idx[c], grid.shape[c] - 1)
        mu = float(ctx.fields.coefficients.mu[h_name][tuple(h_idx)])
        self.eps_r = eps / epsilon_0
        self.mu_r = mu / mu_0

    def prepare(self, ctx: SimulationContext) -> None:
        super().prepare(ctx)
        grid = ctx.grid
        fields = ctx.fields
        b, c = self.transverse
        (b_lo, b_hi), (c_lo, c_hi) = self.bounds
        eb0 = grid.edges(b)[b_lo]
        ec0 = grid.edges(c)[c_lo]

        # Measurement profile at face centres of the guide cross-section
        u = grid.centers(b)[b_lo:b_hi] - eb0
        v = grid.centers(c)[c_lo:c_hi] - ec0
        uu, vv = np.meshgrid(u, v, indexing="ij")
        e_b, e_c = self._mode_field(uu, vv)
        area = np.outer(grid.spacing(b)[b_lo:b_hi], grid.spacing(c)[c_lo:c_hi])
        norm = np.sqrt(np.sum((e_b**2 + e_c**2) * area))
        e_b, e_c = e_b / norm, e_c / norm
        self._dual_area = area

        # h = d × e with d the incident direction
        d_vec = np.zeros(3)
        d_vec[self.axis] = self.direction
        e_vec = np.zeros(e_b.shape + (3,))
        e_vec[..., b] = e_b
        e_vec[..., c] = e_c
        h_vec = np.cross(d_vec, e_vec)
        self._profile_e = {_E_NAMES[b]: e_b, _E_NAMES[c]: e_c}
        self._profile_h = {_H_NAMES[b]: h_vec[..., b], _H_NAMES[c]: h_vec[..., c]}

        # Excitation profile on the native Yee positions of the source plane
        self._source_terms = []
        if self.waveform is None:
            return
        f_ref = max(getattr(self.waveform, "frequency", 0.0), 1.5 * self.cutoff_frequency)
        z_ref = float(np.real(self.wave_impedance(np.array([f_ref]))[0]))
        spacing = grid.dual_spacing(self.axis, fields.periodic[self.axis])[self.index]
        scale = 2.0 / (z_ref * spacing * norm)
        for comp_axis in (b, c):
            name = _E_NAMES[comp_axis]
            if comp_axis == b:
                pos_b = grid.centers(b)[b_lo:b_hi] - eb0
                pos_c = grid.edges(c)[c_lo:c_hi + 1] - ec0
                sl_b, sl_c = slice(b_lo, b_hi), slice(c_lo, c_hi + 1)
            else:
                pos_b = grid.edges(b)[b_lo:b_hi + 1] - eb0
                pos_c = grid.centers(c)[c_lo:c_hi] - ec0
                sl_b, sl_c = slice(b_lo, b_hi + 1), slice(c_lo, c_hi)
            pb, pc = np.meshgrid(pos_b, pos_c, indexing="ij")
            profile = self._mode_field(pb, pc)[0 if comp_axis == b else 1]
            idx = [None, None, None]
            idx[self.axis] = self.index
            idx[b] = sl_b
            idx[c] = sl_c
            idx = tuple(idx)
            weight = fields.cb[name][idx] * scale * profile
            self._source_terms.append((name, idx, weight))

    def apply(self, ctx: SimulationContext, step: int) -> None:
        value = self.waveform.at_step(step, ctx.dt, offset=0.5)
        for name, idx, weight in self._source_terms:
            ctx.fields.component(name)[idx] += weight * value

    def measure(self, ctx: SimulationContext) -> tuple[float, float]:
        samples = ctx.fields.sample_plane(self.axis, self.measure_index)
        (b_lo, b_hi), (c_lo, c_hi) = self.bounds
        window = (slice(b_lo, b_hi), slice(c_lo, c_hi))
        voltage = sum(
            float(np.sum(samples[name][window] * prof * self._dual_area))
            for name, prof in self._profile_e.items()
        )
        current = sum(
            float(np.sum(samples[name][window] * prof * self._dual_area))
            for name, prof in self._profile_h.items()
        )
        return voltage, current

    def reference_impedance(self) -> NDArray[np.complex128]:
        return self.wave_impedance(self.frequencies)

    def __repr__(self) -> str:
        m, n = self.mode
        return (
            f"RectangularWaveguidePort('{self.name}', axis={'xyz'[self.axis]}, "
            f"index={self.index}, TE{m}{n})"
        )
