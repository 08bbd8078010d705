"""Time-domain probes and running-DFT frequency monitors.

Frequency-domain quantities are accumulated on the fly with a discrete
Fourier transform, so no field history is stored:

    X(f) += x^n · exp(−j2πf(n + offset)Δt) · Δt

The offset accounts for the leapfrog staggering: after step n the solver
holds E at (n + 1)Δt and H at (n + ½)Δt.

Example:
    >>> monitor = FrequencyMonitor(
    ...     "gap",
    ...     frequencies=np.linspace(1e9, 3e9, 41),
    ...     region=(30, 30, (10, 20)),
    ...     components=("Ez",),
    ... )
    >>> solver.add_monitor(monitor)
    >>> result = solver.run(steps=4000)
    >>> result.frequency.spectra["gap.Ez"].shape
    (41, 10)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import NDArray

from maxwell_fdtd.errors import ConfigurationError

from .fields import COMPONENTS

if TYPE_CHECKING:
    from maxwell_fdtd.analysis.network import SParameters

    from .solver import SimulationContext

# Sampling time of each field kind relative to the step index just completed
E_TIME_OFFSET = 1.0
H_TIME_OFFSET = 0.5


def default_time_offset(component: str) -> float:
    """Time offset (in steps) of a component sampled after a step."""
    return E_TIME_OFFSET if component.startswith("E") else H_TIME_OFFSET


def validate_frequencies(frequencies: Sequence[float] | NDArray) -> NDArray[np.float64]:
    """Convert to a 1D float array and check every entry is positive and finite."""
    freqs = np.atleast_1d(np.asarray(frequencies, dtype=np.float64))
    if freqs.ndim != 1 or len(freqs) == 0:
        raise ConfigurationError("frequencies must be a non-empty 1D sequence")
    if not np.all(np.isfinite(freqs)) or np.any(freqs <= 0):
        raise ConfigurationError("frequencies must be positive and finite")
    return freqs


class DFTAccumulator:
    """Running DFT of a fixed-shape value at a set of frequencies.

    Args:
        frequencies: Frequencies in Hz
        shape: Shape of each accumulated sample (() for scalars)
        time_offset: Sample time offset in steps
    """

    def __init__(
        self,
        frequencies: NDArray[np.floating],
        shape: tuple[int, ...] = (),
        time_offset: float = 0.0,
    ):
        self.frequencies = np.asarray(frequencies, dtype=np.float64)
        self.shape = tuple(shape)
        self.time_offset = float(time_offset)
        self.data = np.zeros((len(self.frequencies),) + self.shape, dtype=np.complex128)
        self.samples = 0

    def accumulate(self, step: int, values: NDArray[np.floating] | float, dt: float) -> None:
        """Add one sample taken at (step + time_offset)·Δt."""
        t = (step + self.time_offset) * dt
        phasor = np.exp(-2j * np.pi * self.frequencies * t) * dt
        values = np.asarray(values, dtype=np.float64)
        self.data += phasor.reshape((-1,) + (1,) * values.ndim) * values
        self.samples += 1

    def reset(self) -> None:
        self.data.fill(0.0)
        self.samples = 0


def _normalize_region(region: Sequence[Any]) -> tuple[slice | int, ...]:
    if len(region) != 3:
        raise ConfigurationError(f"Region must have three entries, got {region!r}")
    index = []
    for entry in region:
        if isinstance(entry, slice):
            index.append(entry)
        elif isinstance(entry, (tuple, list)):
            if len(entry) != 2:
                raise ConfigurationError(f"Region range must be (start, stop), got {entry!r}")
            index.append(slice(int(entry[0]), int(entry[1])))
        else:
            index.append(int(entry))
    return tuple(index)


def _check_index(index: tuple[slice | int, ...], shape: tuple[int, ...], what: str) -> None:
    for axis, (entry, n) in enumerate(zip(index, shape)):
        if isinstance(entry, slice):
            start, stop, step = entry.indices(n)
            if step != 1 or stop <= start:
                raise ConfigurationError(f"{what}: empty or strided range on axis {axis}")
            if (entry.start is not None and not 0 <= entry.start < n) or (
                entry.stop is not None and not 0 < entry.stop <= n
            ):
                raise ConfigurationError(f"{what}: range {entry} outside [0, {n}) on axis {axis}")
        elif not 0 <= entry < n:
            raise ConfigurationError(f"{what}: index {entry} outside [0, {n}) on axis {axis}")


@dataclass
class Probe:
    """Field recording probe at a specific Yee location.

    Args:
        name: Identifier for this probe
        position: Index (i, j, k) into the component array
        component: Field component to record (default: 'Ez')
        reflection_gate: If set, the trace is used as a boundary
            calibration signal split at this step
    """

    name: str
    position: tuple[int, int, int]
    component: str = "Ez"
    reflection_gate: int | None = None
    data: list[float] = field(default_factory=list, repr=False)

    def validate(self, ctx: SimulationContext) -> None:
        if self.component not in COMPONENTS:
            raise ConfigurationError(f"Probe '{self.name}': unknown component '{self.component}'")
        _check_index(tuple(self.position), ctx.fields.component(self.component).shape, f"Probe '{self.name}'")

    @property
    def time_offset(self) -> float:
        return default_time_offset(self.component)

    def record(self, ctx: SimulationContext, step: int) -> None:
        """Record a sample."""
        self.data.append(float(ctx.fields.component(self.component)[tuple(self.position)]))

    def get_data(self) -> NDArray[np.floating]:
        """Get recorded data as numpy array."""
        return np.array(self.data, dtype=np.float64)

    def clear(self) -> None:
        """Clear recorded data."""
        self.data.clear()


class FrequencyMonitor:
    """Running-DFT monitor over a point, line or box of Yee locations.

    Args:
        name: Identifier for this monitor
        frequencies: Frequencies in Hz
        region: Three entries, each an index or a (start, stop) range,
            applied to every component array
        components: Field components to transform
        time_offset: Sample time offset in steps; by default E components
            use 1.0 and H components 0.5

    Raises:
        ConfigurationError: Invalid frequencies, region or components
    """

    def __init__(
        self,
        name: str,
        frequencies: Sequence[float] | NDArray,
        region: Sequence[Any],
        components: Sequence[str] = ("Ex", "Ey", "Ez"),
        time_offset: float | None = None,
    ):
        self.name = name
        self.frequencies = validate_frequencies(frequencies)
        self.region = _normalize_region(region)
        self.components = tuple(components)
        if not self.components:
            raise ConfigurationError(f"Monitor '{name}' needs at least one component")
        for comp in self.components:
            if comp not in COMPONENTS:
                raise ConfigurationError(f"Monitor '{name}': unknown component '{comp}'")
        self.time_offset = time_offset
        self.accumulators: dict[str, DFTAccumulator] = {}

    def validate(self, ctx: SimulationContext) -> None:
        """Check the region against every component array."""
        for comp in self.components:
            _check_index(self.region, ctx.fields.component(comp).shape, f"Monitor '{self.name}' ({comp})")

    def prepare(self, ctx: SimulationContext) -> None:
        """Allocate accumulators sized for the region."""
        self.validate(ctx)
        for comp in self.components:
            shape = ctx.fields.component(comp)[self.region].shape
            offset = default_time_offset(comp) if self.time_offset is None else self.time_offset
            self.accumulators[comp] = DFTAccumulator(self.frequencies, shape, offset)

    def accumulate(self, step: int, values: Mapping[str, NDArray[np.floating]], dt: float) -> None:
        """Add one sample per component."""
        for comp, value in values.items():
            self.accumulators[comp].accumulate(step, value, dt)

    def record(self, ctx: SimulationContext, step: int) -> None:
        self.accumulate(
            step,
            {comp: ctx.fields.component(comp)[self.region] for comp in self.components},
            ctx.dt,
        )

    def finalize(self) -> dict[str, NDArray[np.complex128]]:
        """Spectra keyed '<monitor>.<component>', frequency first."""
        return {f"{self.name}.{comp}": acc.data.copy() for comp, acc in self.accumulators.items()}

    def state_arrays(self) -> dict[str, NDArray]:
        return {comp: acc.data for comp, acc in self.accumulators.items()}

    def load_state_arrays(self, arrays: Mapping[str, NDArray], samples: int) -> None:
        for comp, acc in self.accumulators.items():
            np.copyto(acc.data, np.asarray(arrays[comp]))
            acc.samples = samples

    def reset(self) -> None:
        for acc in self.accumulators.values():
            acc.reset()

    def __repr__(self) -> str:
        return (
            f"FrequencyMonitor('{self.name}', {len(self.frequencies)} frequencies, "
            f"components={self.components})"
        )


def _freeze(array: NDArray) -> NDArray:
    array = np.array(array, copy=True)
    array.flags.writeable = False
    return array


@dataclass(frozen=True)
class PortWaves:
    """Frequency-domain port quantities.

    Attributes:
        a: Incident power wave (V/√Ω)
        b: Reflected power wave (V/√Ω)
        voltage: Port voltage spectrum (V·s)
        current: Port current spectrum (A·s)
        reference_impedance: Impedance used for the wave split (Ω)
        excited: Whether this port carried the excitation
    """

    a: NDArray[np.complex128]
    b: NDArray[np.complex128]
    voltage: NDArray[np.complex128]
    current: NDArray[np.complex128]
    reference_impedance: NDArray[np.complex128]
    excited: bool

    def __post_init__(self):
        for name in ("a", "b", "voltage", "current", "reference_impedance"):
            object.__setattr__(self, name, _freeze(getattr(self, name)))

    @property
    def impedance(self) -> NDArray[np.complex128]:
        """Impedance V/I seen looking into the structure."""
        with np.errstate(divide="ignore", invalid="ignore"):
            return self.voltage / self.current

    @property
    def accepted_power(self) -> NDArray[np.float64]:
        """Power |a|² − |b|² delivered to the structure (per unit spectrum)."""
        return np.abs(self.a) ** 2 - np.abs(self.b) ** 2


@dataclass(frozen=True)
class FrequencyResult:
    """Frequency-domain output of a run. Immutable after creation.

    Attributes:
        frequencies: Frequencies in Hz
        spectra: Monitor spectra keyed '<monitor>.<component>'
        port_waves: Wave quantities per port name
        s_parameters: Scattering column(s) produced by this run, if any
        impedance: Port impedance V/I per port name
    """

    frequencies: NDArray[np.float64]
    spectra: Mapping[str, NDArray[np.complex128]] = field(default_factory=dict)
    port_waves: Mapping[str, PortWaves] = field(default_factory=dict)
    s_parameters: SParameters | None = None
    impedance: Mapping[str, NDArray[np.complex128]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "frequencies", _freeze(self.frequencies))
        object.__setattr__(
            self, "spectra", MappingProxyType({k: _freeze(v) for k, v in self.spectra.items()})
        )
        object.__setattr__(self, "port_waves", MappingProxyType(dict(self.port_waves)))
        object.__setattr__(
            self, "impedance", MappingProxyType({k: _freeze(v) for k, v in self.impedance.items()})
        )
