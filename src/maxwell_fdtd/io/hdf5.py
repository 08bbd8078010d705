"""HDF5 output format for FDTD simulation results.

This module provides streaming writers and readers for FDTD results in a
standardized HDF5 format optimized for:
- Efficient storage with compression
- Streaming probe traces and field snapshots during computation
- Frequency-domain results (spectra, port waves, S-parameters, far field)
- Complete reproducibility metadata

Layout::

    /metadata        attrs: created_at, solver_version, script_hash, ...
    /grid            attrs: shape, is_uniform, extent; x/y/z_edges datasets
    /simulation      attrs: timestep, dt_max, courant, num_steps, state
    /materials       ids dataset; one subgroup per material
    /sources         one subgroup per excitation
    /probes          one resizable dataset per probe
    /fields          one (n_snapshots, ...) dataset per snapshot component
    /frequency       frequencies, spectra/, ports/, s_parameters/
    /far_field       <box>/<index>/ datasets per frequency
    /diagnostics     attrs
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import h5py
import numpy as np
from numpy.typing import NDArray

from maxwell_fdtd.analysis.network import SParameters

if TYPE_CHECKING:
    from maxwell_fdtd.core.solver import FDTDSolver, SimulationResult


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (np.floating, np.integer)):
        return value.item()
    return value


class HDF5ResultWriter:
    """Streaming writer for FDTD simulation results.

    Creates an HDF5 file with a standardized schema including:
    - Simulation metadata (grid, materials, timestep, etc.)
    - Source script for reproducibility
    - Field snapshots with compression
    - Probe time series
    - Frequency-domain results once the run ends

    Example:
        >>> writer = HDF5ResultWriter("results.h5", solver, script_content)
        >>> for step in range(num_steps):
        ...     solver.step()
        ...     writer.write_timestep(step)
        >>> writer.finalize(runtime=123.4)
    """

    def __init__(
        self,
        filename: str | Path,
        solver: FDTDSolver,
        script_content: str | None = None,
        compression: str | None = "gzip",
        compression_level: int = 4,
    ):
        """Initialize HDF5 writer.

        Args:
            filename: Output file path
            solver: FDTD solver instance
            script_content: Source script for reproducibility
            compression: Compression algorithm ('gzip', 'lzf', None)
            compression_level: Compression level (0-9 for gzip)
        """
        self.filename = Path(filename)
        self.solver = solver
        self.file = h5py.File(filename, "w")
        self.compression = compression
        self.compression_opts = compression_level if compression == "gzip" else None
        self._closed = False

        self._write_metadata(script_content)
        self._create_datasets()

    def _write_metadata(self, script_content: str | None):
        """Write simulation metadata to HDF5 attributes."""
        from maxwell_fdtd import __version__

        solver = self.solver

        meta = self.file.create_group("metadata")
        if script_content:
            meta.attrs["script_hash"] = hashlib.sha256(script_content.encode()).hexdigest()
            meta.attrs["script_content"] = script_content
        meta.attrs["created_at"] = datetime.now(timezone.utc).isoformat()
        meta.attrs["solver_version"] = __version__

        grid = solver.grid
        grid_group = self.file.create_group("grid")
        grid_group.attrs["shape"] = list(solver.shape)
        grid_group.attrs["is_uniform"] = bool(grid.is_uniform)
        grid_group.attrs["extent"] = list(grid.physical_extent())
        grid_group.attrs["periodic"] = [bool(p) for p in solver.fields.periodic]
        if grid.is_uniform:
            grid_group.attrs["resolution"] = grid.min_spacing
        grid_group.create_dataset("x_edges", data=grid.x_edges)
        grid_group.create_dataset("y_edges", data=grid.y_edges)
        grid_group.create_dataset("z_edges", data=grid.z_edges)

        sim_group = self.file.create_group("simulation")
        sim_group.attrs["timestep"] = solver.dt
        sim_group.attrs["dt_max"] = solver.fields.dt_max
        sim_group.attrs["courant"] = solver.courant
        sim_group.attrs["start_step"] = solver.step_count
        if solver.frequencies is not None:
            sim_group.create_dataset("frequencies", data=solver.frequencies)
        for i, boundary in enumerate(solver.boundaries):
            sim_group.attrs[f"boundary_{i}"] = repr(boundary)

        materials_group = self.file.create_group("materials")
        materials_group.create_dataset(
            "ids",
            data=solver.material_ids,
            compression=self.compression,
            compression_opts=self.compression_opts,
        )
        for mat_id, material in solver.materials.items():
            mat = materials_group.create_group(str(mat_id))
            mat.attrs["name"] = material.name
            mat.attrs["eps_r"] = material.eps_r
            mat.attrs["mu_r"] = material.mu_r
            mat.attrs["sigma"] = material.sigma
            mat.attrs["is_pec"] = material.is_pec
            mat.attrs["num_poles"] = len(material.poles)

        sources_group = self.file.create_group("sources")
        for i, excitation in enumerate(solver.excitations):
            src = sources_group.create_group(f"source_{i}")
            src.attrs["type"] = type(excitation).__name__
            src.attrs["kind"] = excitation.kind.value
            src.attrs["description"] = repr(excitation)
            waveform = getattr(excitation, "waveform", None)
            if waveform is not None:
                src.attrs["waveform"] = type(waveform).__name__
                src.attrs["frequency"] = waveform.frequency
                if getattr(waveform, "bandwidth", None) is not None:
                    src.attrs["bandwidth"] = waveform.bandwidth

    def _create_datasets(self):
        """Create HDF5 datasets for field snapshots and probes."""
        solver = self.solver

        self.file.create_group("fields")
        self._snapshot_datasets: dict[str, h5py.Dataset] = {}
        self._next_snapshot_idx = 0

        probes_group = self.file.create_group("probes")
        for name, probe in solver.probes.items():
            dataset = probes_group.create_dataset(
                name,
                shape=(0,),
                maxshape=(None,),
                dtype=np.float64,
                chunks=True,
                compression=self.compression,
                compression_opts=self.compression_opts,
            )
            dataset.attrs["position"] = list(probe.position)
            dataset.attrs["component"] = probe.component
            dataset.attrs["units"] = "V/m" if probe.component.startswith("E") else "A/m"

    def write_timestep(self, step: int, save_snapshot: bool = False):
        """Write data for current timestep.

        Args:
            step: Current timestep number
            save_snapshot: If True, save the solver's snapshot components
        """
        solver = self.solver

        probes_group = self.file["probes"]
        for name, probe in solver.probes.items():
            dataset = probes_group[name]
            n = len(probe.data)
            if n > dataset.shape[0]:
                start = dataset.shape[0]
                dataset.resize((n,))
                dataset[start:n] = probe.data[start:n]

        if save_snapshot:
            idx = self._next_snapshot_idx
            fields_group = self.file["fields"]
            if "steps" not in fields_group:
                fields_group.create_dataset(
                    "steps", shape=(0,), maxshape=(None,), dtype=np.int64, chunks=True
                )
            for comp in solver.snapshot_components:
                field = solver.fields.component(comp)
                dataset = self._snapshot_datasets.get(comp)
                if dataset is None:
                    dataset = fields_group.create_dataset(
                        comp,
                        shape=(0,) + field.shape,
                        maxshape=(None,) + field.shape,
                        dtype=np.float32,
                        chunks=(1,) + field.shape,
                        compression=self.compression,
                        compression_opts=self.compression_opts,
                    )
                    dataset.attrs["units"] = "V/m" if comp.startswith("E") else "A/m"
                    self._snapshot_datasets[comp] = dataset
                dataset.resize((idx + 1,) + field.shape)
                dataset[idx] = field
            steps = fields_group["steps"]
            steps.resize((idx + 1,))
            steps[idx] = step + 1
            self._next_snapshot_idx += 1

    def write_results(self, result: SimulationResult):
        """Write frequency-domain results, far fields and diagnostics."""
        if result.frequency is not None:
            freq = result.frequency
            group = self.file.create_group("frequency")
            group.create_dataset("frequencies", data=np.asarray(freq.frequencies))
            spectra = group.create_group("spectra")
            for key, data in freq.spectra.items():
                spectra.create_dataset(
                    key,
                    data=data,
                    compression=self.compression,
                    compression_opts=self.compression_opts,
                )
            ports = group.create_group("ports")
            for name, waves in freq.port_waves.items():
                port = ports.create_group(name)
                for attr in ("a", "b", "voltage", "current", "reference_impedance"):
                    port.create_dataset(attr, data=getattr(waves, attr))
                port.attrs["excited"] = waves.excited
            if freq.s_parameters is not None:
                sp = group.create_group("s_parameters")
                sp.create_dataset("matrix", data=freq.s_parameters.matrix)
                sp.create_dataset("reference_impedance", data=freq.s_parameters.reference_impedance)
                sp.attrs["port_names"] = list(freq.s_parameters.port_names)

        if result.far_field:
            ff_group = self.file.create_group("far_field")
            for box_name, patterns in result.far_field.items():
                box = ff_group.create_group(box_name)
                for i, pattern in enumerate(patterns):
                    entry = box.create_group(str(i))
                    entry.attrs["frequency"] = pattern.frequency
                    entry.attrs["radiated_power"] = pattern.radiated_power
                    if pattern.input_power is not None:
                        entry.attrs["input_power"] = pattern.input_power
                    for attr in ("theta", "phi", "e_theta", "e_phi", "directivity", "gain"):
                        entry.create_dataset(attr, data=getattr(pattern, attr))

        diag = self.file.create_group("diagnostics")
        diag.attrs["json"] = json.dumps(_jsonable(result.diagnostics), default=str)
        diag.attrs["partial"] = result.partial

    def finalize(self, runtime: float | None = None, **extra_metadata):
        """Write final metadata and close file.

        Args:
            runtime: Total simulation runtime in seconds
            **extra_metadata: Additional metadata to store
        """
        if self._closed:
            return
        solver = self.solver

        sim_group = self.file["simulation"]
        sim_group.attrs["num_steps"] = solver.step_count
        sim_group.attrs["total_time"] = solver.time

        if runtime is not None:
            self.file["metadata"].attrs["total_runtime_seconds"] = runtime

        for key, value in extra_metadata.items():
            self.file["metadata"].attrs[key] = value

        self.file.flush()
        self.file.close()
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finalize()


class HDF5ResultReader:
    """Reader for FDTD simulation results from HDF5 files.

    Example:
        >>> with HDF5ResultReader("results.h5") as reader:
        ...     metadata = reader.get_metadata()
        ...     trace = reader.load_probe("feed_gap")
        ...     s = reader.load_s_parameters()
    """

    def __init__(self, filename: str | Path):
        self.filename = Path(filename)
        self.file = h5py.File(filename, "r")

    def get_metadata(self) -> dict[str, Any]:
        """Extract all simulation metadata.

        Returns:
            Dict with metadata, grid, simulation parameters, etc.
        """
        metadata = {}

        if "metadata" in self.file:
            metadata["metadata"] = dict(self.file["metadata"].attrs)

        if "grid" in self.file:
            grid = dict(self.file["grid"].attrs)
            for axis in "xyz":
                grid[f"{axis}_edges"] = self.file[f"grid/{axis}_edges"][:]
            metadata["grid"] = grid

        if "simulation" in self.file:
            metadata["simulation"] = dict(self.file["simulation"].attrs)

        if "sources" in self.file:
            metadata["sources"] = [
                dict(self.file[f"sources/{name}"].attrs) for name in self.file["sources"]
            ]

        if "probes" in self.file:
            metadata["probes"] = {
                name: dict(self.file[f"probes/{name}"].attrs) for name in self.file["probes"]
            }

        if "diagnostics" in self.file:
            metadata["diagnostics"] = json.loads(self.file["diagnostics"].attrs["json"])

        return metadata

    def load_probe(self, probe_name: str) -> NDArray[np.floating]:
        """Load probe time series."""
        if f"probes/{probe_name}" not in self.file:
            available = list(self.file["probes"].keys()) if "probes" in self.file else []
            raise KeyError(f"Probe '{probe_name}' not found. Available: {available}")
        return self.file[f"probes/{probe_name}"][:]

    def get_probe_names(self) -> list[str]:
        """Get list of available probe names."""
        if "probes" not in self.file:
            return []
        return list(self.file["probes"].keys())

    def get_num_snapshots(self) -> int:
        """Get number of saved field snapshots."""
        if "fields/steps" not in self.file:
            return 0
        return self.file["fields/steps"].shape[0]

    def load_snapshot(self, index: int, component: str = "Ez") -> NDArray[np.floating]:
        """Load one stored snapshot of a field component."""
        if f"fields/{component}" not in self.file:
            raise ValueError(f"No {component} snapshots in file")
        return self.file[f"fields/{component}"][index]

    def load_material_ids(self) -> NDArray[np.integer] | None:
        if "materials/ids" not in self.file:
            return None
        return self.file["materials/ids"][:]

    def load_spectra(self) -> dict[str, NDArray[np.complex128]]:
        """Monitor spectra keyed '<monitor>.<component>'."""
        if "frequency/spectra" not in self.file:
            return {}
        group = self.file["frequency/spectra"]
        return {key: group[key][:] for key in group}

    def load_frequencies(self) -> NDArray[np.float64] | None:
        if "frequency/frequencies" not in self.file:
            return None
        return self.file["frequency/frequencies"][:]

    def load_s_parameters(self) -> SParameters | None:
        if "frequency/s_parameters" not in self.file:
            return None
        group = self.file["frequency/s_parameters"]
        names = [n.decode() if isinstance(n, bytes) else str(n) for n in group.attrs["port_names"]]
        return SParameters(
            frequencies=self.load_frequencies(),
            matrix=group["matrix"][:],
            port_names=tuple(names),
            reference_impedance=group["reference_impedance"][:],
        )

    def load_far_field(self, box_name: str) -> list[dict[str, Any]]:
        """Stored far-field patterns of a near-field box, one dict per frequency."""
        if f"far_field/{box_name}" not in self.file:
            raise KeyError(f"No far field stored for box '{box_name}'")
        box = self.file[f"far_field/{box_name}"]
        patterns = []
        for key in sorted(box, key=int):
            entry = box[key]
            pattern = {name: entry[name][:] for name in entry}
            pattern.update(dict(entry.attrs))
            patterns.append(pattern)
        return patterns

    def close(self):
        """Close the HDF5 file."""
        if self.file:
            self.file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
