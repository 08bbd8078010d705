"""Excitation sources for FDTD electromagnetic simulation.

Every excitation belongs to one of a closed set of kinds
(:class:`ExcitationKind`). The solver injects each registered excitation
once per step, after the E-update, through :data:`EXCITATION_DISPATCH`.

Soft sources act as impressed electric currents, E ← E − Cb·J, so they
are transparent to scattered fields and automatically vanish on PEC
edges (where Cb = 0). Hard sources overwrite the field value.

Example:
    >>> from maxwell_fdtd import GaussianPulse, PointSource, PlaneWaveSource
    >>> pulse = GaussianPulse(frequency=3e9)
    >>> solver.add_source(PointSource((40, 40, 40), "Ez", pulse))
    >>> solver.add_source(PlaneWaveSource(axis="x", index=20, polarization="Ez",
    ...                                   waveform=pulse))
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np
from scipy.constants import mu_0

from maxwell_fdtd.errors import ConfigurationError

from .fields import E_COMPONENTS, component_axis
from .grid import axis_index
from .waveforms import ContinuousWave, GaussianPulse

if TYPE_CHECKING:
    from .solver import SimulationContext


class ExcitationKind(Enum):
    """Closed set of excitation types."""

    PULSE = "pulse"
    CONTINUOUS_WAVE = "continuous_wave"
    PLANE_WAVE = "plane_wave"
    GUIDED_PORT = "guided_port"


def waveform_kind(waveform: GaussianPulse | ContinuousWave) -> ExcitationKind:
    """Excitation kind implied by a waveform."""
    if isinstance(waveform, ContinuousWave):
        return ExcitationKind.CONTINUOUS_WAVE
    if isinstance(waveform, GaussianPulse):
        return ExcitationKind.PULSE
    raise ConfigurationError(f"Unsupported waveform type {type(waveform).__name__}")


def _edge_area(ctx: SimulationContext, component: str, index: tuple[int, int, int]) -> float:
    """Dual-face area threaded by an E edge."""
    axis = component_axis(component)
    area = 1.0
    for a in range(3):
        if a != axis:
            area *= float(ctx.grid.dual_spacing(a, ctx.fields.periodic[a])[index[a]])
    return area


@dataclass
class PointSource:
    """Source on a single E edge.

    A soft source impresses a current element of ``waveform(t)`` amperes
    flowing along the edge; a hard source forces the field to
    ``waveform(t)`` volts per meter.

    Args:
        position: Index (i, j, k) into the component array
        component: E component ('Ex', 'Ey' or 'Ez')
        waveform: GaussianPulse or ContinuousWave
        soft: Current injection (True) or field overwrite (False)
    """

    position: tuple[int, int, int]
    component: str
    waveform: GaussianPulse | ContinuousWave
    soft: bool = True

    def __post_init__(self):
        if self.component not in E_COMPONENTS:
            raise ConfigurationError(
                f"Point sources drive E components {E_COMPONENTS}, got '{self.component}'"
            )
        self.position = tuple(int(i) for i in self.position)
        self._area = 1.0

    @property
    def kind(self) -> ExcitationKind:
        return waveform_kind(self.waveform)

    def validate(self, ctx: SimulationContext) -> None:
        shape = ctx.fields.component(self.component).shape
        if len(self.position) != 3 or any(not 0 <= i < n for i, n in zip(self.position, shape)):
            raise ConfigurationError(
                f"Source position {self.position} outside {self.component} array {shape}"
            )
        if ctx.fields.coefficients.pec[self.component][self.position]:
            raise ConfigurationError(
                f"Source at {self.position} ({self.component}) lies on a PEC edge"
            )
        self._area = _edge_area(ctx, self.component, self.position)

    def apply(self, ctx: SimulationContext, step: int) -> None:
        field = ctx.fields.component(self.component)
        if self.soft:
            current = self.waveform.at_step(step, ctx.dt, offset=0.5)
            cb = ctx.fields.cb[self.component][self.position]
            field[self.position] -= cb * current / self._area
        else:
            field[self.position] = self.waveform.at_step(step, ctx.dt, offset=1.0)


@dataclass
class PlaneWaveSource:
    """Bidirectional plane-wave sheet across a whole mesh plane.

    A uniform current sheet on mesh line ``index`` of ``axis`` launches
    plane waves of amplitude ``waveform(t)`` (V/m) toward both ends of
    the axis. Transverse axes are usually periodic.

    Args:
        axis: Propagation axis ('x', 'y', 'z' or 0-2)
        index: Mesh line index of the sheet along ``axis``
        polarization: Transverse E component carrying the wave
        waveform: GaussianPulse or ContinuousWave
    """

    axis: int | str
    index: int
    polarization: str
    waveform: GaussianPulse | ContinuousWave

    def __post_init__(self):
        self.axis = axis_index(self.axis)
        if self.polarization not in E_COMPONENTS:
            raise ConfigurationError(f"Polarization must be one of {E_COMPONENTS}")
        if component_axis(self.polarization) == self.axis:
            raise ConfigurationError("Plane-wave polarization must be transverse to the propagation axis")
        self._scale = None

    @property
    def kind(self) -> ExcitationKind:
        return ExcitationKind.PLANE_WAVE

    def _plane(self) -> tuple:
        idx = [slice(None)] * 3
        idx[self.axis] = self.index
        return tuple(idx)

    def validate(self, ctx: SimulationContext) -> None:
        n = ctx.grid.shape[self.axis]
        if not 1 <= self.index <= n - 1:
            raise ConfigurationError(
                f"Plane-wave sheet index {self.index} must lie in [1, {n - 1}]"
            )
        plane = self._plane()
        eps = ctx.fields.coefficients.eps[self.polarization][plane]
        eta = np.sqrt(mu_0 / eps)
        spacing = ctx.grid.dual_spacing(self.axis, ctx.fields.periodic[self.axis])[self.index]
        self._scale = 2.0 / (eta * spacing)

    def apply(self, ctx: SimulationContext, step: int) -> None:
        plane = self._plane()
        value = self.waveform.at_step(step, ctx.dt, offset=0.5)
        field = ctx.fields.component(self.polarization)
        field[plane] += ctx.fields.cb[self.polarization][plane] * self._scale * value


def _inject_current(excitation, ctx: SimulationContext, step: int) -> None:
    excitation.apply(ctx, step)


def _drive_port(port, ctx: SimulationContext, step: int) -> None:
    if port.waveform is not None:
        port.apply(ctx, step)


EXCITATION_DISPATCH: dict[ExcitationKind, Callable[[object, SimulationContext, int], None]] = {
    ExcitationKind.PULSE: _inject_current,
    ExcitationKind.CONTINUOUS_WAVE: _inject_current,
    ExcitationKind.PLANE_WAVE: _inject_current,
    ExcitationKind.GUIDED_PORT: _drive_port,
}
