"""3D Finite-Difference Time-Domain (FDTD) electromagnetic simulator.

This module drives Maxwell's curl equations on a staggered Yee grid:

Physics:
    ∂H/∂t = −(1/μ) ∇×E
    ∂E/∂t = (1/ε)(∇×H − σE − Jp)

Stability: Δt ≤ 1 / (c·√(1/Δx² + 1/Δy² + 1/Δz²)) per cell

One timestep runs H-update → CPML(H) → E-update → CPML(E) →
excitations → monitors. The solver moves through the states
INITIALIZED → RUNNING → {COMPLETED, FAILED, CANCELLED}; terminal states
are final until a checkpoint is restored.

Example:
    >>> from maxwell_fdtd import FDTDSolver, CPML, GaussianPulse, PointSource
    >>> solver = FDTDSolver(shape=(60, 60, 60), resolution=1e-3,
    ...                     frequencies=np.linspace(5e9, 15e9, 21))
    >>> solver.add_boundary(CPML(layers=10))
    >>> solver.add_source(PointSource((30, 30, 30), "Ez", GaussianPulse(frequency=1e10)))
    >>> solver.add_probe("centre", position=(35, 30, 30))
    >>> result = solver.run(steps=1000)
    >>> result.state
    <SolverState.COMPLETED: 'completed'>

Nonuniform Grids:
    >>> from maxwell_fdtd import NonuniformGrid
    >>> grid = NonuniformGrid.from_stretch(
    ...     shape=(80, 80, 120),
    ...     base_resolution=0.5e-3,
    ...     stretch_z=1.04,
    ... )
    >>> solver = FDTDSolver(grid=grid)
"""

from __future__ import annotations

import logging
import time as time_module
import warnings
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import NDArray

from maxwell_fdtd.boundaries import CPML, estimate_reflection_db
from maxwell_fdtd.errors import CancellationToken, ConfigurationError, DivergenceError
from maxwell_fdtd.materials import VACUUM, Material

from .fields import COMPONENTS, FieldGrid
from .grid import NonuniformGrid, UniformGrid
from .monitors import FrequencyMonitor, FrequencyResult, Probe, validate_frequencies
from .ports import LumpedPort, Port, RectangularWaveguidePort
from .sources import EXCITATION_DISPATCH, PlaneWaveSource, PointSource

if TYPE_CHECKING:
    from maxwell_fdtd.analysis.farfield import FarFieldResult, NearFieldBox
    from maxwell_fdtd.config import SimulationConfig

logger = logging.getLogger(__name__)


class SolverState(Enum):
    """Lifecycle of a solver."""

    INITIALIZED = "initialized"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SolverState.COMPLETED, SolverState.FAILED, SolverState.CANCELLED)


class StepStatus(Enum):
    """Outcome of a single timestep."""

    OK = "ok"
    DIVERGED = "diverged"


@dataclass
class SimulationContext:
    """Everything an excitation or monitor may touch during a step.

    Owned by exactly one solver and handed explicitly to every update.
    """

    grid: UniformGrid | NonuniformGrid
    fields: FieldGrid
    dt: float
    frequencies: NDArray[np.float64] | None = None
    step: int = 0

    @property
    def boundaries(self) -> list[CPML]:
        return self.fields.boundaries


@dataclass(frozen=True)
class ProgressRecord:
    """Progress report delivered to run callbacks.

    Attributes:
        timestep: Steps completed so far
        total_timesteps: Steps this run will reach when it completes
        max_field_magnitude: Largest |E| component value
    """

    timestep: int
    total_timesteps: int
    max_field_magnitude: float

    @property
    def fraction(self) -> float:
        if self.total_timesteps == 0:
            return 1.0
        return self.timestep / self.total_timesteps


@dataclass
class SimulationResult:
    """Outcome of :meth:`FDTDSolver.run`.

    Attributes:
        state: Final solver state
        steps_completed: Total steps the solver has executed
        frequency: Monitor spectra, port waves and S-parameters
        far_field: Far-field patterns per near-field box, one per frequency
        snapshots: (time, {component: array}) field snapshots
        probes: Time series per probe
        diagnostics: Stability, boundary-quality and energy diagnostics;
            a cancelled run adds ``cancellation`` with the reason and
            the last stable step
        partial: True if the run stopped before the requested step count
        checkpoint_path: Checkpoint written by this run, if any
    """

    state: SolverState
    steps_completed: int
    frequency: FrequencyResult | None = None
    far_field: dict[str, tuple[FarFieldResult, ...]] = field(default_factory=dict)
    snapshots: list[tuple[float, dict[str, NDArray[np.float64]]]] = field(default_factory=list)
    probes: dict[str, NDArray[np.float64]] = field(default_factory=dict)
    diagnostics: dict[str, Any] = field(default_factory=dict)
    partial: bool = False
    checkpoint_path: Path | None = None


class FDTDSolver:
    """3D electromagnetic FDTD solver on a staggered Yee grid.

    Args:
        shape: Grid dimensions (nx, ny, nz) in cells. Required if grid
            is not provided.
        resolution: Grid spacing in meters (same for all axes). Required
            if grid is not provided.
        grid: Grid specification (UniformGrid or NonuniformGrid). If
            provided, shape and resolution are ignored.
        material_ids: Integer material id per cell (default: all zeros)
        materials: Mapping from material id to Material (default: {0: VACUUM})
        courant: Fraction of the stability bound used for dt (default: 0.99)
        dt: Explicit timestep in seconds, overrides ``courant``
        periodic: Per-axis periodic flags (default: all PEC-walled)
        allow_unstable: Accept a timestep above the stability bound
        check_interval: Check for non-finite fields every N steps
        memory_limit_bytes: Memory budget (default: available RAM)
        frequencies: Analysis frequencies in Hz for ports and near-field boxes
        progress_interval: Deliver a ProgressRecord every N steps
        warn_energy_drift: If True, emit warning when energy changes
            significantly during a tracked run (default: False)
        energy_drift_threshold: Fractional threshold for energy drift
            warning (default: 0.01 = 1%)

    Raises:
        ConfigurationError: Invalid mesh, materials or timestep
        ResourceExhaustionError: Grid does not fit in memory

    Example:
        >>> ids = np.zeros((40, 40, 40), dtype=np.int32)
        >>> ids[:, :, :8] = 1
        >>> solver = FDTDSolver(shape=(40, 40, 40), resolution=1e-3,
        ...                     material_ids=ids, materials={0: AIR, 1: FR4})
    """

    def __init__(
        self,
        shape: tuple[int, int, int] | None = None,
        resolution: float | None = None,
        grid: UniformGrid | NonuniformGrid | None = None,
        material_ids: NDArray[np.integer] | None = None,
        materials: Mapping[int, Material] | None = None,
        courant: float = 0.99,
        dt: float | None = None,
        periodic: Sequence[bool] = (False, False, False),
        allow_unstable: bool = False,
        check_interval: int = 1,
        memory_limit_bytes: int | None = None,
        frequencies: Sequence[float] | NDArray | None = None,
        progress_interval: int = 100,
        warn_energy_drift: bool = False,
        energy_drift_threshold: float = 0.01,
    ):
        # Grid setup: either from grid parameter or shape/resolution
        if grid is not None:
            self._grid = grid
        elif shape is not None and resolution is not None:
            self._grid = UniformGrid(shape=tuple(shape), resolution=resolution)
        else:
            raise ConfigurationError(
                "Must provide either 'grid' or both 'shape' and 'resolution'"
            )
        self.shape = self._grid.shape

        if int(check_interval) < 1:
            raise ConfigurationError(f"check_interval must be >= 1, got {check_interval}")
        if int(progress_interval) < 1:
            raise ConfigurationError(f"progress_interval must be >= 1, got {progress_interval}")
        self.check_interval = int(check_interval)
        self.progress_interval = int(progress_interval)

        if material_ids is None:
            material_ids = np.zeros(self.shape, dtype=np.int32)
        if materials is None:
            materials = {0: VACUUM}
        self.material_ids = np.asarray(material_ids)
        self.materials = dict(materials)

        self.fields = FieldGrid.initialize(
            self._grid,
            self.material_ids,
            self.materials,
            dt=dt,
            courant=courant,
            periodic=tuple(periodic),
            allow_unstable=allow_unstable,
            memory_limit_bytes=memory_limit_bytes,
        )
        self.dt = self.fields.dt
        self.courant = self.dt / self.fields.dt_max

        self.frequencies = None if frequencies is None else validate_frequencies(frequencies)
        self._ctx = SimulationContext(
            grid=self._grid, fields=self.fields, dt=self.dt, frequencies=self.frequencies
        )

        # Sources and ports share one ordered excitation list
        self._excitations: list[PointSource | PlaneWaveSource | Port] = []
        self._ports: dict[str, Port] = {}
        self._monitors: dict[str, FrequencyMonitor] = {}
        self._probes: dict[str, Probe] = {}
        self._near_field_boxes: dict[str, NearFieldBox] = {}

        # Simulation state
        self.state = SolverState.INITIALIZED
        self._step_count = 0
        self._last_stable_step = 0

        # Snapshot storage
        self._snapshots: list[tuple[float, dict[str, NDArray[np.float64]]]] = []
        self._snapshot_interval: int | None = None
        self._snapshot_components: tuple[str, ...] = ("Ez",)

        # Energy tracking state
        self._warn_energy_drift = warn_energy_drift
        self._energy_drift_threshold = energy_drift_threshold
        self._energy_history: list[tuple[int, float, float]] = []
        self._track_energy = False
        self._energy_sample_interval = 1

        logger.info(
            "Solver initialized: grid %s, %d cells, dt=%.4e s (courant %.3f)",
            self.shape,
            self._grid.num_cells,
            self.dt,
            self.courant,
        )

    @classmethod
    def from_config(cls, config: SimulationConfig) -> FDTDSolver:
        """Build a fully registered solver from a configuration tree."""
        from maxwell_fdtd.config import build_solver

        return build_solver(config)

    @property
    def time(self) -> float:
        """Current simulation time in seconds (time of the E field)."""
        return self._step_count * self.dt

    @property
    def step_count(self) -> int:
        """Number of timesteps executed."""
        return self._step_count

    def steps_for_duration(self, duration: float) -> int:
        """Number of timesteps needed to cover ``duration`` seconds."""
        if not duration >= 0:
            raise ConfigurationError(f"duration must be non-negative, got {duration}")
        return int(np.ceil(duration / self.dt))

    @property
    def grid(self) -> UniformGrid | NonuniformGrid:
        """Grid specification."""
        return self._grid

    @property
    def context(self) -> SimulationContext:
        return self._ctx

    @property
    def boundaries(self) -> list[CPML]:
        return self.fields.boundaries

    @property
    def ports(self) -> dict[str, Port]:
        return dict(self._ports)

    @property
    def monitors(self) -> dict[str, FrequencyMonitor]:
        return dict(self._monitors)

    @property
    def probes(self) -> dict[str, Probe]:
        return dict(self._probes)

    @property
    def near_field_boxes(self) -> dict[str, NearFieldBox]:
        return dict(self._near_field_boxes)

    @property
    def excitations(self) -> list[PointSource | PlaneWaveSource | Port]:
        return list(self._excitations)

    @property
    def snapshot_components(self) -> tuple[str, ...]:
        return self._snapshot_components

    # =========================================================================
    # Registration
    # =========================================================================

    def _check_registration(self, what: str) -> None:
        if self.state is not SolverState.INITIALIZED or self._step_count > 0:
            raise ConfigurationError(f"Cannot add {what} after stepping has started")

    def _check_name(self, name: str, registry: Mapping[str, Any], what: str) -> None:
        if name in registry:
            raise ConfigurationError(f"{what} '{name}' already exists")

    def add_boundary(self, boundary: CPML) -> None:
        """Attach an absorbing boundary.

        Args:
            boundary: CPML instance
        """
        self._check_registration("a boundary")
        if not isinstance(boundary, CPML):
            raise ConfigurationError(f"Unsupported boundary type {type(boundary).__name__}")
        self.fields.add_boundary(boundary)

    def add_source(self, source: PointSource | PlaneWaveSource) -> None:
        """Add a point or plane-wave source."""
        self._check_registration("a source")
        if not isinstance(source, (PointSource, PlaneWaveSource)):
            raise ConfigurationError(
                f"add_source expects PointSource or PlaneWaveSource, got {type(source).__name__}; "
                "use add_port for ports"
            )
        source.validate(self._ctx)
        self._excitations.append(source)

    def add_port(self, port: LumpedPort | RectangularWaveguidePort) -> Port:
        """Add a lumped or waveguide port.

        Ports need analysis frequencies, given as ``frequencies=`` to the
        solver.
        """
        self._check_registration("a port")
        if not isinstance(port, Port):
            raise ConfigurationError(f"add_port expects a port, got {type(port).__name__}")
        self._check_name(port.name, self._ports, "Port")
        port.validate(self._ctx)
        port.prepare(self._ctx)
        self._ports[port.name] = port
        self._excitations.append(port)
        return port

    def add_monitor(self, monitor: FrequencyMonitor) -> FrequencyMonitor:
        """Add a running-DFT frequency monitor."""
        self._check_registration("a monitor")
        self._check_name(monitor.name, self._monitors, "Monitor")
        monitor.prepare(self._ctx)
        self._monitors[monitor.name] = monitor
        return monitor

    def add_probe(
        self,
        name: str,
        position: tuple[int, int, int],
        component: str = "Ez",
        reflection_gate: int | None = None,
    ) -> Probe:
        """Add a field recording probe.

        Args:
            name: Unique identifier for this probe
            position: Index (i, j, k) into the component array
            component: Field component to record
            reflection_gate: Step splitting the trace into incident and
                reflected parts for the boundary-quality diagnostic
        """
        self._check_registration("a probe")
        self._check_name(name, self._probes, "Probe")
        probe = Probe(
            name=name,
            position=tuple(position),
            component=component,
            reflection_gate=reflection_gate,
        )
        probe.validate(self._ctx)
        self._probes[name] = probe
        return probe

    def add_near_field_box(self, box: NearFieldBox) -> NearFieldBox:
        """Add a closed surface for the near-to-far-field transform."""
        self._check_registration("a near-field box")
        self._check_name(box.name, self._near_field_boxes, "Near-field box")
        box.prepare(self._ctx)
        self._near_field_boxes[box.name] = box
        return box

    def enable_snapshots(self, interval: int, components: Sequence[str] = ("Ez",)) -> None:
        """Enable field snapshots at regular intervals.

        Args:
            interval: Save snapshot every N timesteps
            components: Field components to capture
        """
        if int(interval) < 1:
            raise ConfigurationError(f"Snapshot interval must be >= 1, got {interval}")
        for comp in components:
            if comp not in COMPONENTS:
                raise ConfigurationError(f"Unknown snapshot component '{comp}'")
        self._snapshot_interval = int(interval)
        self._snapshot_components = tuple(components)

    def _validate_placement(self) -> None:
        """Re-check excitations against boundaries attached after them."""
        for excitation in self._excitations:
            excitation.validate(self._ctx)
        for box in self._near_field_boxes.values():
            box.validate(self._ctx)

    # =========================================================================
    # Stepping
    # =========================================================================

    def step(self) -> StepStatus:
        """Advance the simulation by one timestep.

        E is held at integer steps and H at half steps. After step n the
        solver holds E at (n + 1)Δt and H at (n + ½)Δt.

        Returns:
            StepStatus.DIVERGED if a non-finite value was found at a
            health check, StepStatus.OK otherwise
        """
        if self.state.is_terminal:
            raise ConfigurationError(
                f"Solver is {self.state.value}; create a new solver or restore a checkpoint"
            )
        n = self._step_count
        ctx = self._ctx
        fields = self.fields

        fields.update_h()
        for boundary in fields.boundaries:
            boundary.update_h()
        fields.update_e()
        for boundary in fields.boundaries:
            boundary.update_e()

        for excitation in self._excitations:
            EXCITATION_DISPATCH[excitation.kind](excitation, ctx, n)

        for probe in self._probes.values():
            probe.record(ctx, n)
        for monitor in self._monitors.values():
            monitor.record(ctx, n)
        for port in self._ports.values():
            port.record(ctx, n)
        for box in self._near_field_boxes.values():
            box.record(ctx, n)

        self._step_count += 1
        ctx.step = self._step_count

        if self._snapshot_interval and self._step_count % self._snapshot_interval == 0:
            self._snapshots.append(
                (self.time, {c: fields.component(c).copy() for c in self._snapshot_components})
            )

        if self._step_count % self.check_interval == 0:
            if not fields.is_finite():
                self.state = SolverState.FAILED
                logger.error(
                    "Non-finite field at step %d (last stable step %d)",
                    self._step_count,
                    self._last_stable_step,
                )
                return StepStatus.DIVERGED
            self._last_stable_step = self._step_count

        if self._track_energy and self._step_count % self._energy_sample_interval == 0:
            self._energy_history.append((self._step_count, self.time, fields.compute_energy()))

        return StepStatus.OK

    def run(
        self,
        steps: int | None = None,
        duration: float | None = None,
        progress: bool = False,
        callback: Callable[[ProgressRecord], None] | None = None,
        cancel_token: CancellationToken | None = None,
        checkpoint_path: str | Path | None = None,
        checkpoint_interval: int | None = None,
        output_file: str | Path | None = None,
        snapshot_interval: int | None = None,
        track_energy: bool = False,
        energy_sample_interval: int = 1,
        script_content: str | None = None,
    ) -> SimulationResult:
        """Run the simulation for a number of steps or a duration.

        Args:
            steps: Number of timesteps to execute
            duration: Simulation time in seconds (alternative to steps)
            progress: If True, show a tqdm progress bar
            callback: Called with a ProgressRecord every progress_interval steps
            cancel_token: Polled once per step; cancels cooperatively
            checkpoint_path: Checkpoint file written periodically and on cancel
            checkpoint_interval: Write a checkpoint every N steps
            output_file: Path to HDF5 output file (optional)
            snapshot_interval: Capture field snapshots every N steps
            track_energy: If True, record total energy every
                energy_sample_interval steps
            energy_sample_interval: Record energy every N steps (default: 1)
            script_content: Source script stored in the HDF5 file

        Returns:
            SimulationResult with the final state and extracted results

        Raises:
            ConfigurationError: Invalid run length or terminal solver state
            DivergenceError: A non-finite field value was detected
        """
        if self.state.is_terminal:
            raise ConfigurationError(
                f"Solver is {self.state.value}; create a new solver or restore a checkpoint"
            )
        if (steps is None) == (duration is None):
            raise ConfigurationError("Specify exactly one of 'steps' or 'duration'")
        if steps is not None:
            if int(steps) != steps or steps < 0:
                raise ConfigurationError(f"steps must be a non-negative integer, got {steps}")
            n_steps = int(steps)
        else:
            n_steps = self.steps_for_duration(duration)
        if checkpoint_interval is not None and checkpoint_path is None:
            raise ConfigurationError("checkpoint_interval requires checkpoint_path")
        if snapshot_interval is not None and self._snapshot_interval is None:
            self.enable_snapshots(snapshot_interval)

        self._validate_placement()
        total_steps = self._step_count + n_steps
        start_time = time_module.time()

        self._track_energy = track_energy
        self._energy_sample_interval = energy_sample_interval
        if track_energy and not self._energy_history:
            self._energy_history.append((self._step_count, self.time, self.fields.compute_energy()))

        hdf5_writer = None
        if output_file:
            from maxwell_fdtd.io import HDF5ResultWriter

            hdf5_writer = HDF5ResultWriter(output_file, self, script_content)

        self.state = SolverState.RUNNING
        logger.info("Run started: %d steps (%d -> %d)", n_steps, self._step_count, total_steps)

        written_checkpoint: Path | None = None
        cancel_reason: str | None = None
        result: SimulationResult | None = None
        try:
            if progress:
                from tqdm import tqdm

                iterator = tqdm(range(n_steps), desc="FDTD simulation")
            else:
                iterator = range(n_steps)

            for _ in iterator:
                if cancel_token is not None and cancel_token.cancelled:
                    self.state = SolverState.CANCELLED
                    cancel_reason = cancel_token.reason
                    logger.info("Run cancelled at step %d: %s", self._step_count, cancel_reason)
                    break

                status = self.step()
                if status is StepStatus.DIVERGED:
                    snapshot = {name: self.fields.component(name).copy() for name in COMPONENTS}
                    raise DivergenceError(
                        f"Fields diverged at step {self._step_count} "
                        f"(last stable step {self._last_stable_step}); "
                        f"dt={self.dt:.4e}s, courant={self.courant:.3f}",
                        step=self._step_count,
                        last_stable_step=self._last_stable_step,
                        snapshot=snapshot,
                    )

                if hdf5_writer:
                    save_snapshot = (
                        self._snapshot_interval is not None
                        and self._step_count % self._snapshot_interval == 0
                    )
                    hdf5_writer.write_timestep(self._step_count - 1, save_snapshot)

                if callback and (
                    self._step_count % self.progress_interval == 0 or self._step_count == total_steps
                ):
                    callback(
                        ProgressRecord(
                            timestep=self._step_count,
                            total_timesteps=total_steps,
                            max_field_magnitude=self.fields.max_abs("E"),
                        )
                    )

                if checkpoint_interval and self._step_count % checkpoint_interval == 0:
                    written_checkpoint = self.save_checkpoint(checkpoint_path)

            if self.state is SolverState.CANCELLED:
                if checkpoint_path is not None:
                    written_checkpoint = self.save_checkpoint(checkpoint_path)
            else:
                self.state = SolverState.COMPLETED
                logger.info("Run completed at step %d", self._step_count)

            result = self._build_result(
                partial=self.state is SolverState.CANCELLED,
                checkpoint_path=written_checkpoint,
                cancel_reason=cancel_reason,
            )
            if hdf5_writer:
                hdf5_writer.write_results(result)

        except DivergenceError:
            self.state = SolverState.FAILED
            raise
        except Exception:
            self.state = SolverState.FAILED
            logger.exception("Run failed at step %d", self._step_count)
            raise

        finally:
            if hdf5_writer:
                runtime = time_module.time() - start_time
                hdf5_writer.finalize(runtime=runtime, state=self.state.value)

        return result

    # =========================================================================
    # Results
    # =========================================================================

    def _frequency_result(self) -> FrequencyResult | None:
        if not (self._monitors or self._ports):
            return None
        from maxwell_fdtd.analysis.network import SParameters

        spectra: dict[str, NDArray[np.complex128]] = {}
        for monitor in self._monitors.values():
            spectra.update(monitor.finalize())

        port_waves = {
            name: port.waves(self.dt, self._step_count) for name, port in self._ports.items()
        }
        s_parameters = None
        if port_waves:
            excited = [name for name, waves in port_waves.items() if waves.excited]
            if len(excited) == 1:
                s_parameters = SParameters.from_port_waves(self.frequencies, port_waves)
                margin = s_parameters.passivity_margin()
                if np.isfinite(margin) and margin < -1e-2:
                    warnings.warn(
                        f"S-parameters violate passivity by {-margin:.3g}; "
                        "the run may be too short for the response to decay",
                        UserWarning,
                        stacklevel=3,
                    )
            elif len(excited) > 1:
                logger.info("%d excited ports; S-parameters need exactly one", len(excited))

        if self.frequencies is not None:
            frequencies = self.frequencies
        else:
            frequencies = next(iter(self._monitors.values())).frequencies

        return FrequencyResult(
            frequencies=frequencies,
            spectra=spectra,
            port_waves=port_waves,
            s_parameters=s_parameters,
            impedance={name: waves.impedance for name, waves in port_waves.items()},
        )

    def _far_field(self, frequency: FrequencyResult | None) -> dict[str, tuple[FarFieldResult, ...]]:
        if not self._near_field_boxes:
            return {}
        from maxwell_fdtd.analysis.farfield import compute_far_field

        accepted = None
        if frequency is not None:
            excited = [w for w in frequency.port_waves.values() if w.excited]
            if len(excited) == 1:
                accepted = 0.5 * excited[0].accepted_power

        patterns = {}
        for name, box in self._near_field_boxes.items():
            results = []
            for currents in box.surface_currents():
                input_power = None
                if accepted is not None:
                    match = np.flatnonzero(np.isclose(self.frequencies, currents.frequency))
                    if match.size and accepted[match[0]] > 0:
                        input_power = float(accepted[match[0]])
                try:
                    results.append(
                        compute_far_field(currents, box.theta, box.phi, input_power=input_power)
                    )
                except ValueError as exc:
                    warnings.warn(
                        f"No far field for box '{name}' at {currents.frequency:.4g} Hz: {exc}",
                        UserWarning,
                        stacklevel=3,
                    )
            patterns[name] = tuple(results)
        return patterns

    def _diagnostics(self) -> dict[str, Any]:
        diagnostics: dict[str, Any] = {
            "dt": self.dt,
            "dt_max": self.fields.dt_max,
            "courant": self.courant,
            "steps": self._step_count,
        }

        threshold = min(
            (b.diagnostic_threshold_db for b in self.fields.boundaries), default=-40.0
        )
        reflections = {}
        for name, probe in self._probes.items():
            if probe.reflection_gate is None:
                continue
            trace = probe.get_data()
            if len(trace) <= probe.reflection_gate:
                logger.info("Probe '%s' stopped before its reflection gate", name)
                continue
            try:
                level = estimate_reflection_db(trace, probe.reflection_gate)
            except ConfigurationError as exc:
                warnings.warn(
                    f"No boundary reflection estimate at probe '{name}': {exc}",
                    UserWarning,
                    stacklevel=3,
                )
                reflections[name] = float("nan")
                continue
            reflections[name] = level
            if level > threshold:
                warnings.warn(
                    f"Boundary reflection at probe '{name}' is {level:.1f} dB "
                    f"(threshold {threshold:.1f} dB); consider more CPML layers",
                    UserWarning,
                    stacklevel=3,
                )
        if reflections:
            diagnostics["pml_reflection_db"] = reflections

        if len(self._energy_history) >= 2:
            report = self.energy_report()
            diagnostics["energy"] = report
            if (
                self._warn_energy_drift
                and abs(report["energy_change_percent"]) > self._energy_drift_threshold * 100
            ):
                warnings.warn(
                    f"Energy drift detected: {report['energy_change_percent']:.2f}% change "
                    f"(threshold: {self._energy_drift_threshold * 100:.1f}%). "
                    f"Status: {report['conservation_status']}",
                    UserWarning,
                    stacklevel=3,
                )
        return diagnostics

    def _build_result(
        self, partial: bool, checkpoint_path: Path | None, cancel_reason: str | None = None
    ) -> SimulationResult:
        frequency = self._frequency_result()
        diagnostics = self._diagnostics()
        if self.state is SolverState.CANCELLED:
            diagnostics["cancellation"] = {
                "reason": cancel_reason,
                "last_stable_step": self._last_stable_step,
            }
        return SimulationResult(
            state=self.state,
            steps_completed=self._step_count,
            frequency=frequency,
            far_field=self._far_field(frequency),
            snapshots=list(self._snapshots),
            probes=self.get_probe_data(),
            diagnostics=diagnostics,
            partial=partial,
            checkpoint_path=checkpoint_path,
        )

    def get_probe_data(self, name: str | None = None) -> dict[str, NDArray[np.floating]]:
        """Get recorded probe data.

        Args:
            name: Specific probe name, or None for all probes

        Returns:
            Dict mapping probe names to field time series
        """
        if name is not None:
            if name not in self._probes:
                raise KeyError(f"Probe '{name}' not found")
            return {name: self._probes[name].get_data()}
        return {name: probe.get_data() for name, probe in self._probes.items()}

    def get_snapshots(self) -> list[tuple[float, dict[str, NDArray[np.float64]]]]:
        """Get saved field snapshots as (time, {component: array}) pairs."""
        return self._snapshots.copy()

    # =========================================================================
    # Energy
    # =========================================================================

    def compute_energy(self) -> float:
        """Total electromagnetic energy in the domain in joules."""
        return self.fields.compute_energy()

    def get_energy_history(self) -> list[tuple[int, float, float]]:
        """Get energy history recorded during simulation.

        Returns:
            List of (step, time, total_energy) tuples. Empty if tracking
            was not enabled during run().
        """
        return self._energy_history.copy()

    def energy_report(self) -> dict:
        """Generate energy conservation diagnostic report.

        Returns:
            Dict with keys:
            - initial_energy: Energy at first recorded step
            - final_energy: Energy at last recorded step
            - max_energy: Maximum energy observed
            - min_energy: Minimum energy observed
            - energy_change_percent: (final - initial) / initial * 100
            - conservation_status: "stable" | "growing" | "decaying"
            - n_samples: Number of energy samples recorded

        Raises:
            ValueError: If no energy history has been recorded
        """
        if not self._energy_history:
            raise ValueError(
                "No energy history recorded. Call run() with track_energy=True first."
            )

        energies = np.array([e for _, _, e in self._energy_history])
        initial_energy = energies[0]
        final_energy = energies[-1]

        # Sources inject energy mid-run, so an empty start compares against the peak
        reference = initial_energy if initial_energy > 0 else float(np.max(energies))
        if reference == 0:
            energy_change_percent = 0.0
        else:
            energy_change_percent = (final_energy - reference) / reference * 100

        if abs(energy_change_percent) <= 1.0:
            status = "stable"
        elif energy_change_percent > 0:
            status = "growing"
        else:
            status = "decaying"

        return {
            "initial_energy": float(initial_energy),
            "final_energy": float(final_energy),
            "max_energy": float(np.max(energies)),
            "min_energy": float(np.min(energies)),
            "energy_change_percent": float(energy_change_percent),
            "conservation_status": status,
            "n_samples": len(self._energy_history),
        }

    # =========================================================================
    # State
    # =========================================================================

    def save_checkpoint(self, path: str | Path) -> Path:
        """Write the complete time-stepping state to an HDF5 checkpoint."""
        from maxwell_fdtd.io.checkpoint import save_checkpoint

        return save_checkpoint(self, path)

    def load_checkpoint(self, path: str | Path) -> None:
        """Restore state written by :meth:`save_checkpoint`.

        The solver must have been built with the same mesh, materials,
        timestep and registrations. Restoring returns it to INITIALIZED
        so the run can continue.
        """
        from maxwell_fdtd.io.checkpoint import load_checkpoint

        load_checkpoint(self, path)

    def _restore_step(self, step: int) -> None:
        self._step_count = int(step)
        self._last_stable_step = int(step)
        self._ctx.step = int(step)
        self.state = SolverState.INITIALIZED

    def reset(self) -> None:
        """Reset simulation to initial state."""
        self.fields.reset()
        self._step_count = 0
        self._last_stable_step = 0
        self._ctx.step = 0
        self.state = SolverState.INITIALIZED
        self._snapshots.clear()
        self._energy_history.clear()
        self._track_energy = False
        for probe in self._probes.values():
            probe.clear()
        for monitor in self._monitors.values():
            monitor.reset()
        for port in self._ports.values():
            port.reset()
        for box in self._near_field_boxes.values():
            box.reset()

    def __repr__(self) -> str:
        return (
            f"FDTDSolver(shape={self.shape}, dt={self.dt:.4e}, "
            f"state={self.state.value}, step={self._step_count})"
        )
