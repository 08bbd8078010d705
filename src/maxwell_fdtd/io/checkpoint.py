"""HDF5 checkpoints of the complete time-stepping state.

A checkpoint holds everything that evolves during a run: the six field
arrays, dispersive polarisation history, CPML auxiliary arrays, DFT
accumulators of monitors, ports and near-field boxes, probe traces and
the step index. Restoring into a solver built with the same mesh,
materials, timestep and registrations continues the run bit-identically.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import h5py
import numpy as np
from numpy.typing import NDArray

from maxwell_fdtd.errors import ConfigurationError

if TYPE_CHECKING:
    from maxwell_fdtd.core.solver import FDTDSolver

logger = logging.getLogger(__name__)

CHECKPOINT_FORMAT = "maxwell-fdtd-checkpoint"
CHECKPOINT_VERSION = 1


def _write_group(group: h5py.Group, arrays: dict[str, NDArray]) -> None:
    for key, value in arrays.items():
        group.create_dataset(key, data=np.asarray(value))


def _read_group(group: h5py.Group) -> dict[str, NDArray]:
    arrays: dict[str, NDArray] = {}

    def visit(name: str, obj) -> None:
        if isinstance(obj, h5py.Dataset):
            arrays[name] = obj[()]

    group.visititems(visit)
    return arrays


def _check_names(kind: str, stored: h5py.Group | None, expected) -> None:
    names = set(stored.keys()) if stored is not None else set()
    if names != set(expected):
        raise ConfigurationError(
            f"Checkpoint {kind} {sorted(names)} do not match the solver's {sorted(expected)}"
        )


def save_checkpoint(solver: FDTDSolver, path: str | Path) -> Path:
    """Write the solver's time-stepping state.

    The file is written to a temporary name and moved into place, so an
    interrupted write never replaces a good checkpoint.

    Returns:
        Path of the written checkpoint
    """
    from maxwell_fdtd import __version__

    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    with h5py.File(tmp, "w") as f:
        f.attrs["format"] = CHECKPOINT_FORMAT
        f.attrs["version"] = CHECKPOINT_VERSION
        f.attrs["solver_version"] = __version__
        f.attrs["created_at"] = datetime.now(timezone.utc).isoformat()
        f.attrs["step"] = solver.step_count
        f.attrs["dt"] = solver.dt
        f.attrs["shape"] = list(solver.shape)

        _write_group(f.create_group("fields"), solver.fields.state_arrays())

        boundaries = f.create_group("boundaries")
        for i, boundary in enumerate(solver.boundaries):
            _write_group(boundaries.create_group(str(i)), boundary.state_arrays())

        monitors = f.create_group("monitors")
        for name, monitor in solver.monitors.items():
            _write_group(monitors.create_group(name), monitor.state_arrays())

        ports = f.create_group("ports")
        for name, port in solver.ports.items():
            _write_group(ports.create_group(name), port.state_arrays())

        boxes = f.create_group("near_field")
        for name, box in solver.near_field_boxes.items():
            _write_group(boxes.create_group(name), box.state_arrays())

        probes = f.create_group("probes")
        for name, probe in solver.probes.items():
            probes.create_dataset(name, data=probe.get_data())

        history = solver.get_energy_history()
        f.create_dataset(
            "energy_history", data=np.asarray(history, dtype=np.float64).reshape(-1, 3)
        )

    tmp.replace(path)
    logger.info("Checkpoint written at step %d: %s", solver.step_count, path)
    return path


def load_checkpoint(solver: FDTDSolver, path: str | Path) -> int:
    """Restore state written by :func:`save_checkpoint`.

    Returns:
        The restored step index

    Raises:
        ConfigurationError: If the file is not a checkpoint or does not
            match the solver's mesh, timestep or registrations
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Checkpoint not found: {path}")

    with h5py.File(path, "r") as f:
        if f.attrs.get("format") != CHECKPOINT_FORMAT:
            raise ConfigurationError(f"{path} is not a solver checkpoint")
        if int(f.attrs["version"]) != CHECKPOINT_VERSION:
            raise ConfigurationError(
                f"Unsupported checkpoint version {f.attrs['version']} (expected {CHECKPOINT_VERSION})"
            )
        if tuple(int(n) for n in f.attrs["shape"]) != tuple(solver.shape):
            raise ConfigurationError(
                f"Checkpoint grid {tuple(f.attrs['shape'])} does not match solver grid {solver.shape}"
            )
        if float(f.attrs["dt"]) != solver.dt:
            raise ConfigurationError(
                f"Checkpoint timestep {float(f.attrs['dt']):.6e}s differs from solver dt {solver.dt:.6e}s"
            )
        if len(f["boundaries"]) != len(solver.boundaries):
            raise ConfigurationError(
                f"Checkpoint has {len(f['boundaries'])} boundaries, solver has {len(solver.boundaries)}"
            )
        _check_names("monitors", f["monitors"], solver.monitors)
        _check_names("ports", f["ports"], solver.ports)
        _check_names("near-field boxes", f["near_field"], solver.near_field_boxes)
        _check_names("probes", f["probes"], solver.probes)

        step = int(f.attrs["step"])

        solver.fields.load_state_arrays(_read_group(f["fields"]))
        for i, boundary in enumerate(solver.boundaries):
            boundary.load_state_arrays(_read_group(f["boundaries"][str(i)]))
        for name, monitor in solver.monitors.items():
            monitor.load_state_arrays(_read_group(f["monitors"][name]), samples=step)
        for name, port in solver.ports.items():
            port.load_state_arrays(_read_group(f["ports"][name]))
        for name, box in solver.near_field_boxes.items():
            box.load_state_arrays(_read_group(f["near_field"][name]), samples=step)
        for name, probe in solver.probes.items():
            probe.data = [float(x) for x in f["probes"][name][()]]

        history = f["energy_history"][()]

    solver._energy_history = [(int(s), float(t), float(e)) for s, t, e in history]
    solver._restore_step(step)
    logger.info("Checkpoint restored at step %d: %s", step, path)
    return step
