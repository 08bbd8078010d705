"""Declarative simulation configuration.

A :class:`SimulationConfig` tree describes a complete run: mesh, materials
and their placement, boundary, analysis frequencies, excitations, ports
and monitors. Trees are built from plain dicts (for example parsed JSON)
with :meth:`SimulationConfig.from_dict` or :func:`load_config`, and turned
into a registered solver with :func:`build_solver`.

Required values raise :class:`ConfigurationError` when missing; only
documented optional values have defaults.

Example JSON::

    {
      "grid": {"shape": [60, 60, 60], "resolution": 1e-3},
      "materials": {"0": "vacuum", "1": {"name": "sub", "eps_r": 4.4}},
      "regions": [{"material": 1, "lower": [0, 0, 0], "upper": [60, 60, 8]}],
      "boundary": {"type": "cpml", "layers": 10},
      "frequencies": {"start": 1e9, "stop": 10e9, "points": 91},
      "ports": [{"name": "feed", "type": "lumped", "start": [30, 30, 8],
                 "stop": [30, 30, 10], "axis": "z", "excite": true,
                 "waveform": {"type": "gaussian", "frequency": 5e9}}],
      "run": {"steps": 4000}
    }
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import NDArray

from maxwell_fdtd.errors import ConfigurationError
from maxwell_fdtd.materials import Material, Pole, PoleType, get_material

if TYPE_CHECKING:
    from maxwell_fdtd.core.grid import NonuniformGrid, UniformGrid
    from maxwell_fdtd.core.solver import FDTDSolver
    from maxwell_fdtd.core.waveforms import ContinuousWave, GaussianPulse


_MISSING = object()


def _get(data: Mapping[str, Any], key: str, where: str, default: Any = _MISSING) -> Any:
    if key in data:
        return data[key]
    if default is _MISSING:
        raise ConfigurationError(f"{where}: missing required key '{key}'")
    return default


def _triple(value: Any, where: str, cast=int) -> tuple:
    try:
        items = tuple(cast(v) for v in value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{where}: expected three values, got {value!r}") from exc
    if len(items) != 3:
        raise ConfigurationError(f"{where}: expected three values, got {value!r}")
    return items


def _check_keys(data: Mapping[str, Any], allowed: set[str], where: str) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(f"{where}: unknown keys {sorted(unknown)}")


@dataclass
class WaveformConfig:
    """Gaussian pulse or continuous wave."""

    type: str = "gaussian"
    frequency: float = 0.0
    bandwidth: float | None = None
    amplitude: float = 1.0
    delay: float | None = None
    ramp_cycles: float = 3.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], where: str = "waveform") -> WaveformConfig:
        _check_keys(data, {"type", "frequency", "bandwidth", "amplitude", "delay", "ramp_cycles"}, where)
        kind = data.get("type", "gaussian")
        if kind not in ("gaussian", "cw"):
            raise ConfigurationError(f"{where}: type must be 'gaussian' or 'cw', got '{kind}'")
        return cls(
            type=kind,
            frequency=float(_get(data, "frequency", where)),
            bandwidth=data.get("bandwidth"),
            amplitude=float(data.get("amplitude", 1.0)),
            delay=data.get("delay"),
            ramp_cycles=float(data.get("ramp_cycles", 3.0)),
        )

    def build(self) -> GaussianPulse | ContinuousWave:
        from maxwell_fdtd.core.waveforms import ContinuousWave, GaussianPulse

        if self.type == "cw":
            return ContinuousWave(self.frequency, amplitude=self.amplitude, ramp_cycles=self.ramp_cycles)
        return GaussianPulse(
            self.frequency, bandwidth=self.bandwidth, amplitude=self.amplitude, delay=self.delay
        )


@dataclass
class GridConfig:
    """Uniform (shape + resolution) or nonuniform (edge arrays) mesh."""

    shape: tuple[int, int, int] | None = None
    resolution: float | None = None
    x_edges: list[float] | None = None
    y_edges: list[float] | None = None
    z_edges: list[float] | None = None
    periodic: tuple[bool, bool, bool] = (False, False, False)
    courant: float = 0.99
    dt: float | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GridConfig:
        where = "grid"
        _check_keys(
            data,
            {"shape", "resolution", "x_edges", "y_edges", "z_edges", "periodic", "courant", "dt"},
            where,
        )
        edges = [data.get(k) for k in ("x_edges", "y_edges", "z_edges")]
        has_edges = any(e is not None for e in edges)
        has_uniform = "shape" in data or "resolution" in data
        if has_edges == has_uniform:
            raise ConfigurationError(
                f"{where}: give either 'shape' and 'resolution' or all three edge arrays"
            )
        config = cls(
            periodic=_triple(data.get("periodic", (False, False, False)), f"{where}.periodic", bool),
            courant=float(data.get("courant", 0.99)),
            dt=data.get("dt"),
        )
        if has_uniform:
            config.shape = _triple(_get(data, "shape", where), f"{where}.shape")
            config.resolution = float(_get(data, "resolution", where))
        else:
            if any(e is None for e in edges):
                raise ConfigurationError(f"{where}: nonuniform grids need x_edges, y_edges and z_edges")
            config.x_edges, config.y_edges, config.z_edges = (list(map(float, e)) for e in edges)
        return config

    def build(self) -> UniformGrid | NonuniformGrid:
        from maxwell_fdtd.core.grid import NonuniformGrid, UniformGrid

        if self.shape is not None:
            return UniformGrid(shape=self.shape, resolution=self.resolution)
        return NonuniformGrid(
            x_edges=np.asarray(self.x_edges),
            y_edges=np.asarray(self.y_edges),
            z_edges=np.asarray(self.z_edges),
        )


@dataclass
class RegionConfig:
    """Box of cells [lower, upper) assigned one material id."""

    material: int
    lower: tuple[int, int, int]
    upper: tuple[int, int, int]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], where: str) -> RegionConfig:
        _check_keys(data, {"material", "lower", "upper"}, where)
        return cls(
            material=int(_get(data, "material", where)),
            lower=_triple(_get(data, "lower", where), f"{where}.lower"),
            upper=_triple(_get(data, "upper", where), f"{where}.upper"),
        )


@dataclass
class BoundaryConfig:
    """Outer boundary: 'cpml' (absorbing) or 'pec' (walls only)."""

    type: str = "cpml"
    layers: int = 10
    grading_exponent: float = 3.0
    target_reflection_db: float = -120.0
    kappa_max: float = 1.0
    alpha_max: float = 0.0
    axes: str | tuple[str, ...] = "all"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BoundaryConfig:
        where = "boundary"
        _check_keys(
            data,
            {"type", "layers", "grading_exponent", "target_reflection_db", "kappa_max", "alpha_max", "axes"},
            where,
        )
        kind = data.get("type", "cpml")
        if kind not in ("cpml", "pec"):
            raise ConfigurationError(f"{where}: type must be 'cpml' or 'pec', got '{kind}'")
        axes = data.get("axes", "all")
        return cls(
            type=kind,
            layers=int(data.get("layers", 10)),
            grading_exponent=float(data.get("grading_exponent", 3.0)),
            target_reflection_db=float(data.get("target_reflection_db", -120.0)),
            kappa_max=float(data.get("kappa_max", 1.0)),
            alpha_max=float(data.get("alpha_max", 0.0)),
            axes=axes if isinstance(axes, str) else tuple(axes),
        )


@dataclass
class FrequencyConfig:
    """Analysis frequencies: an explicit list or a linear sweep."""

    start: float | None = None
    stop: float | None = None
    points: int = 101
    values: list[float] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | Sequence[float]) -> FrequencyConfig:
        if not isinstance(data, Mapping):
            return cls(values=[float(f) for f in data])
        where = "frequencies"
        _check_keys(data, {"start", "stop", "points", "values"}, where)
        if "values" in data:
            return cls(values=[float(f) for f in data["values"]])
        return cls(
            start=float(_get(data, "start", where)),
            stop=float(_get(data, "stop", where)),
            points=int(data.get("points", 101)),
        )

    def build(self) -> NDArray[np.float64]:
        if self.values is not None:
            return np.asarray(self.values, dtype=np.float64)
        if self.points < 1 or not self.stop >= self.start:
            raise ConfigurationError("frequencies: need stop >= start and points >= 1")
        return np.linspace(self.start, self.stop, self.points)


@dataclass
class ExcitationConfig:
    """Point source ('point') or plane-wave sheet ('plane_wave')."""

    type: str
    waveform: WaveformConfig
    component: str = "Ez"
    position: tuple[int, int, int] | None = None
    soft: bool = True
    axis: str = "x"
    index: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], where: str) -> ExcitationConfig:
        _check_keys(data, {"type", "waveform", "component", "position", "soft", "axis", "index", "polarization"}, where)
        kind = _get(data, "type", where)
        waveform = WaveformConfig.from_dict(_get(data, "waveform", where), f"{where}.waveform")
        if kind == "point":
            return cls(
                type=kind,
                waveform=waveform,
                component=data.get("component", "Ez"),
                position=_triple(_get(data, "position", where), f"{where}.position"),
                soft=bool(data.get("soft", True)),
            )
        if kind == "plane_wave":
            return cls(
                type=kind,
                waveform=waveform,
                component=_get(data, "polarization", where),
                axis=_get(data, "axis", where),
                index=int(_get(data, "index", where)),
            )
        raise ConfigurationError(f"{where}: type must be 'point' or 'plane_wave', got '{kind}'")

    def build(self):
        from maxwell_fdtd.core.sources import PlaneWaveSource, PointSource

        if self.type == "point":
            return PointSource(self.position, self.component, self.waveform.build(), soft=self.soft)
        return PlaneWaveSource(self.axis, self.index, self.component, self.waveform.build())


@dataclass
class PortConfig:
    """Lumped ('lumped') or rectangular waveguide ('waveguide') port."""

    name: str
    type: str
    waveform: WaveformConfig | None = None
    start: tuple[int, int, int] | None = None
    stop: tuple[int, int, int] | None = None
    axis: str = "z"
    impedance: float = 50.0
    index: int | None = None
    bounds: tuple[tuple[int, int], tuple[int, int]] | None = None
    mode: tuple[int, int] = (1, 0)
    direction: int = 1

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], where: str) -> PortConfig:
        _check_keys(
            data,
            {"name", "type", "excite", "waveform", "start", "stop", "axis", "impedance",
             "index", "bounds", "mode", "direction"},
            where,
        )
        name = _get(data, "name", where)
        kind = _get(data, "type", where)
        waveform = None
        if data.get("excite", False):
            waveform = WaveformConfig.from_dict(_get(data, "waveform", where), f"{where}.waveform")
        if kind == "lumped":
            return cls(
                name=name,
                type=kind,
                waveform=waveform,
                start=_triple(_get(data, "start", where), f"{where}.start"),
                stop=_triple(_get(data, "stop", where), f"{where}.stop"),
                axis=_get(data, "axis", where),
                impedance=float(data.get("impedance", 50.0)),
            )
        if kind == "waveguide":
            bounds = _get(data, "bounds", where)
            try:
                (b0, b1), (c0, c1) = bounds
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"{where}.bounds: expected [[lo, hi], [lo, hi]]") from exc
            mode = tuple(int(m) for m in data.get("mode", (1, 0)))
            return cls(
                name=name,
                type=kind,
                waveform=waveform,
                axis=_get(data, "axis", where),
                index=int(_get(data, "index", where)),
                bounds=((int(b0), int(b1)), (int(c0), int(c1))),
                mode=mode,
                direction=int(data.get("direction", 1)),
            )
        raise ConfigurationError(f"{where}: type must be 'lumped' or 'waveguide', got '{kind}'")

    def build(self):
        from maxwell_fdtd.core.ports import LumpedPort, RectangularWaveguidePort

        waveform = self.waveform.build() if self.waveform is not None else None
        if self.type == "lumped":
            return LumpedPort(
                self.name, self.start, self.stop, self.axis, impedance=self.impedance, waveform=waveform
            )
        return RectangularWaveguidePort(
            self.name,
            self.axis,
            self.index,
            self.bounds,
            mode=self.mode,
            direction=self.direction,
            waveform=waveform,
        )


@dataclass
class MonitorConfig:
    """Frequency monitor ('frequency'), probe ('probe') or near-field box ('near_field')."""

    name: str
    type: str
    region: list[Any] | None = None
    components: tuple[str, ...] = ("Ex", "Ey", "Ez")
    position: tuple[int, int, int] | None = None
    component: str = "Ez"
    reflection_gate: int | None = None
    lower: tuple[int, int, int] | None = None
    upper: tuple[int, int, int] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], where: str) -> MonitorConfig:
        _check_keys(
            data,
            {"name", "type", "region", "components", "position", "component", "reflection_gate",
             "lower", "upper"},
            where,
        )
        name = _get(data, "name", where)
        kind = _get(data, "type", where)
        if kind == "frequency":
            region = _get(data, "region", where)
            if len(region) != 3:
                raise ConfigurationError(f"{where}.region: expected three entries")
            return cls(
                name=name,
                type=kind,
                region=[tuple(r) if isinstance(r, list) else r for r in region],
                components=tuple(data.get("components", ("Ex", "Ey", "Ez"))),
            )
        if kind == "probe":
            gate = data.get("reflection_gate")
            return cls(
                name=name,
                type=kind,
                position=_triple(_get(data, "position", where), f"{where}.position"),
                component=data.get("component", "Ez"),
                reflection_gate=None if gate is None else int(gate),
            )
        if kind == "near_field":
            return cls(
                name=name,
                type=kind,
                lower=_triple(_get(data, "lower", where), f"{where}.lower"),
                upper=_triple(_get(data, "upper", where), f"{where}.upper"),
            )
        raise ConfigurationError(
            f"{where}: type must be 'frequency', 'probe' or 'near_field', got '{kind}'"
        )


@dataclass
class RunConfig:
    """Run length and run-time options."""

    steps: int | None = None
    duration: float | None = None
    checkpoint_interval: int | None = None
    snapshot_interval: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RunConfig:
        where = "run"
        _check_keys(data, {"steps", "duration", "checkpoint_interval", "snapshot_interval"}, where)
        if ("steps" in data) == ("duration" in data):
            raise ConfigurationError(f"{where}: give exactly one of 'steps' or 'duration'")
        return cls(
            steps=None if "steps" not in data else int(data["steps"]),
            duration=None if "duration" not in data else float(data["duration"]),
            checkpoint_interval=data.get("checkpoint_interval"),
            snapshot_interval=data.get("snapshot_interval"),
        )


def _material_from_dict(value: str | Mapping[str, Any], where: str) -> Material:
    if isinstance(value, str):
        try:
            return get_material(value)
        except KeyError as exc:
            raise ConfigurationError(f"{where}: {exc.args[0]}") from exc
    _check_keys(value, {"name", "eps_r", "mu_r", "sigma", "is_pec", "poles"}, where)
    name = _get(value, "name", where)
    if value.get("is_pec", False):
        return Material.pec(name)
    poles = []
    for i, pole in enumerate(value.get("poles", ())):
        pole_where = f"{where}.poles[{i}]"
        pole = dict(pole)
        try:
            pole_type = PoleType(pole.pop("type"))
        except KeyError as exc:
            raise ConfigurationError(f"{pole_where}: missing required key 'type'") from exc
        except ValueError as exc:
            raise ConfigurationError(f"{pole_where}: {exc}") from exc
        try:
            poles.append(Pole(pole_type, **pole))
        except TypeError as exc:
            raise ConfigurationError(f"{pole_where}: {exc}") from exc
    return Material(
        name=name,
        eps_r=float(value.get("eps_r", 1.0)),
        mu_r=float(value.get("mu_r", 1.0)),
        sigma=float(value.get("sigma", 0.0)),
        poles=tuple(poles),
    )


@dataclass
class SimulationConfig:
    """Complete description of a simulation."""

    grid: GridConfig
    materials: dict[int, Material] = field(default_factory=dict)
    material_ids: NDArray[np.integer] | None = None
    regions: list[RegionConfig] = field(default_factory=list)
    boundary: BoundaryConfig | None = None
    frequencies: FrequencyConfig | None = None
    excitations: list[ExcitationConfig] = field(default_factory=list)
    ports: list[PortConfig] = field(default_factory=list)
    monitors: list[MonitorConfig] = field(default_factory=list)
    run: RunConfig = field(default_factory=lambda: RunConfig(steps=1000))
    allow_unstable: bool = False
    check_interval: int = 1

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base_dir: str | Path | None = None) -> SimulationConfig:
        """Build a configuration tree from plain data.

        Args:
            data: Parsed configuration (e.g. from JSON)
            base_dir: Directory against which a relative ``material_ids``
                path is resolved

        Raises:
            ConfigurationError: Missing, unknown or inconsistent keys
        """
        _check_keys(
            data,
            {"grid", "materials", "material_ids", "regions", "boundary", "frequencies",
             "excitations", "ports", "monitors", "run", "allow_unstable", "check_interval"},
            "config",
        )
        grid = GridConfig.from_dict(_get(data, "grid", "config"))

        materials_data = data.get("materials", {"0": "vacuum"})
        materials = {}
        for key, value in materials_data.items():
            try:
                mat_id = int(key)
            except ValueError as exc:
                raise ConfigurationError(f"materials: id '{key}' is not an integer") from exc
            materials[mat_id] = _material_from_dict(value, f"materials[{key}]")

        material_ids = None
        if "material_ids" in data:
            path = Path(data["material_ids"])
            if base_dir is not None and not path.is_absolute():
                path = Path(base_dir) / path
            if not path.exists():
                raise ConfigurationError(f"material_ids file not found: {path}")
            material_ids = np.load(path)

        run_data = data.get("run")
        if run_data is None:
            raise ConfigurationError("config: missing required key 'run'")

        return cls(
            grid=grid,
            materials=materials,
            material_ids=material_ids,
            regions=[RegionConfig.from_dict(r, f"regions[{i}]") for i, r in enumerate(data.get("regions", ()))],
            boundary=BoundaryConfig.from_dict(data["boundary"]) if "boundary" in data else None,
            frequencies=FrequencyConfig.from_dict(data["frequencies"]) if "frequencies" in data else None,
            excitations=[
                ExcitationConfig.from_dict(e, f"excitations[{i}]")
                for i, e in enumerate(data.get("excitations", ()))
            ],
            ports=[PortConfig.from_dict(p, f"ports[{i}]") for i, p in enumerate(data.get("ports", ()))],
            monitors=[
                MonitorConfig.from_dict(m, f"monitors[{i}]") for i, m in enumerate(data.get("monitors", ()))
            ],
            run=RunConfig.from_dict(run_data),
            allow_unstable=bool(data.get("allow_unstable", False)),
            check_interval=int(data.get("check_interval", 1)),
        )

    def build_material_ids(self, shape: tuple[int, int, int]) -> NDArray[np.int32]:
        """Material id array: the loaded array or background 0, then regions in order."""
        if self.material_ids is not None:
            ids = np.array(self.material_ids, dtype=np.int32)
            if ids.shape != tuple(shape):
                raise ConfigurationError(
                    f"material_ids shape {ids.shape} does not match grid {tuple(shape)}"
                )
        else:
            ids = np.zeros(shape, dtype=np.int32)
        for i, region in enumerate(self.regions):
            for a in range(3):
                if not 0 <= region.lower[a] < region.upper[a] <= shape[a]:
                    raise ConfigurationError(
                        f"regions[{i}]: [{region.lower}, {region.upper}) is empty or outside grid {shape}"
                    )
            box = tuple(slice(lo, hi) for lo, hi in zip(region.lower, region.upper))
            ids[box] = region.material
        return ids


def load_config(path: str | Path) -> SimulationConfig:
    """Load a JSON configuration file."""
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be an object")
    return SimulationConfig.from_dict(data, base_dir=path.parent)


def build_solver(config: SimulationConfig) -> FDTDSolver:
    """Create a solver and register everything the configuration names."""
    from maxwell_fdtd.analysis.farfield import NearFieldBox
    from maxwell_fdtd.boundaries import CPML
    from maxwell_fdtd.core.monitors import FrequencyMonitor
    from maxwell_fdtd.core.solver import FDTDSolver

    grid = config.grid.build()
    frequencies = config.frequencies.build() if config.frequencies is not None else None
    solver = FDTDSolver(
        grid=grid,
        material_ids=config.build_material_ids(grid.shape),
        materials=config.materials,
        courant=config.grid.courant,
        dt=config.grid.dt,
        periodic=config.grid.periodic,
        allow_unstable=config.allow_unstable,
        check_interval=config.check_interval,
        frequencies=frequencies,
    )

    if config.boundary is not None and config.boundary.type == "cpml":
        b = config.boundary
        solver.add_boundary(
            CPML(
                layers=b.layers,
                grading_exponent=b.grading_exponent,
                target_reflection_db=b.target_reflection_db,
                kappa_max=b.kappa_max,
                alpha_max=b.alpha_max,
                axes=b.axes,
            )
        )

    for excitation in config.excitations:
        solver.add_source(excitation.build())
    for port in config.ports:
        solver.add_port(port.build())

    for monitor in config.monitors:
        if monitor.type == "frequency":
            if frequencies is None:
                raise ConfigurationError(f"Monitor '{monitor.name}' needs top-level 'frequencies'")
            solver.add_monitor(
                FrequencyMonitor(monitor.name, frequencies, monitor.region, components=monitor.components)
            )
        elif monitor.type == "probe":
            solver.add_probe(
                monitor.name,
                monitor.position,
                component=monitor.component,
                reflection_gate=monitor.reflection_gate,
            )
        else:
            solver.add_near_field_box(NearFieldBox(monitor.name, monitor.lower, monitor.upper))

    return solver
