"""Yee-grid electromagnetic field storage and update stencils.

Field layout for a grid of (nx, ny, nz) cells:

    Ex[i,j,k] at (x_{i+1/2}, y_j, z_k)       shape (nx,   ny+1, nz+1)
    Ey[i,j,k] at (x_i, y_{j+1/2}, z_k)       shape (nx+1, ny,   nz+1)
    Ez[i,j,k] at (x_i, y_j, z_{k+1/2})       shape (nx+1, ny+1, nz)
    Hx[i,j,k] at (x_i, y_{j+1/2}, z_{k+1/2}) shape (nx+1, ny,   nz)
    Hy[i,j,k] at (x_{i+1/2}, y_j, z_{k+1/2}) shape (nx,   ny+1, nz)
    Hz[i,j,k] at (x_{i+1/2}, y_{j+1/2}, z_k) shape (nx,   ny,   nz+1)

where x_i are mesh lines and x_{i+1/2} cell centres. E lives at integer
timesteps and H at half steps (leapfrog):

    H^{n+1/2} = H^{n-1/2} − Db · ∇×E^n
    E^{n+1}   = Ca · E^n + Cb · (∇×H^{n+1/2} − Jp)

Derivatives use one inverse-spacing array per axis: primary spacing for
the H-update and dual (centre-to-centre) spacing for the E-update, so
uniform grids, nonuniform grids and CPML κ-stretching share one stencil.

Stability: Δt ≤ min over cells of 1 / (c_cell · √(1/Δx² + 1/Δy² + 1/Δz²))
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

import numpy as np
import psutil
from numpy.typing import NDArray
from scipy.constants import c as C0

from maxwell_fdtd.errors import ConfigurationError, ResourceExhaustionError
from maxwell_fdtd.materials.base import PEC_CONDUCTIVITY, Material
from maxwell_fdtd.materials.mapper import (
    E_COMPONENTS,
    H_COMPONENTS,
    CellProperties,
    MaterialMapper,
    UpdateCoefficients,
)

from .grid import NonuniformGrid, UniformGrid

if TYPE_CHECKING:
    from maxwell_fdtd.boundaries import CPML

logger = logging.getLogger(__name__)

COMPONENTS = E_COMPONENTS + H_COMPONENTS

# Bytes per E edge: field, Ca, Cb, ε, σ (float64) and the PEC mask
_E_BYTES_PER_ENTRY = 5 * 8 + 1
# Bytes per H face: field, Db, μ
_H_BYTES_PER_ENTRY = 3 * 8


def component_shape(name: str, shape: tuple[int, int, int]) -> tuple[int, int, int]:
    """Array shape of a Yee component for a grid of ``shape`` cells."""
    if name not in COMPONENTS:
        raise ConfigurationError(f"Unknown field component '{name}', expected one of {COMPONENTS}")
    axis = "xyz".index(name[1])
    if name[0] == "E":
        return tuple(n if a == axis else n + 1 for a, n in enumerate(shape))
    return tuple(n + 1 if a == axis else n for a, n in enumerate(shape))


def component_axis(name: str) -> int:
    """Axis (0, 1, 2) a field component points along."""
    return "xyz".index(name[1])


def estimate_memory_bytes(shape: tuple[int, int, int], dispersive_entries: int = 0) -> int:
    """Estimate the bytes needed for fields, coefficients and stencil temporaries.

    Args:
        shape: Grid dimensions in cells
        dispersive_entries: Number of stored polarisation entries (two
            float64 histories plus index and weight each)
    """
    e_entries = sum(int(np.prod(component_shape(c, shape))) for c in E_COMPONENTS)
    h_entries = sum(int(np.prod(component_shape(c, shape))) for c in H_COMPONENTS)
    largest = max(int(np.prod(component_shape(c, shape))) for c in COMPONENTS)
    work = 3 * largest * 8
    return (
        e_entries * _E_BYTES_PER_ENTRY
        + h_entries * _H_BYTES_PER_ENTRY
        + dispersive_entries * 4 * 8
        + work
    )


def check_memory(required: int, memory_limit_bytes: int | None = None) -> None:
    """Raise ResourceExhaustionError if ``required`` bytes are not available."""
    if memory_limit_bytes is not None:
        available = int(memory_limit_bytes)
    else:
        available = int(psutil.virtual_memory().available)
    if required > available:
        raise ResourceExhaustionError(
            f"Grid needs ~{required / 1e9:.2f} GB but only {available / 1e9:.2f} GB "
            "is available; use a coarser mesh or a smaller domain",
            required_bytes=required,
            available_bytes=available,
        )


def stable_timestep(grid: UniformGrid | NonuniformGrid, cells: CellProperties) -> float:
    """Largest stable timestep for the given mesh and cell materials.

    PEC cells carry no field and are excluded.
    """
    inv = np.sqrt(
        (1.0 / grid.dx**2)[:, None, None]
        + (1.0 / grid.dy**2)[None, :, None]
        + (1.0 / grid.dz**2)[None, None, :]
    )
    speed = np.where(cells.pec, 0.0, cells.wave_speed())
    rate = float(np.max(speed * inv))
    if rate == 0.0:
        # All-PEC domain: fall back to the vacuum bound
        rate = float(np.max(C0 * inv))
    return 1.0 / rate


def _along(values: NDArray, axis: int) -> NDArray:
    """Reshape a 1D array to broadcast along ``axis`` of a 3D array."""
    shape = [1, 1, 1]
    shape[axis] = -1
    return values.reshape(shape)


def _node_diff(a: NDArray, axis: int, periodic: bool) -> NDArray:
    """Difference of cell-centred values onto the mesh lines of ``axis``.

    Returns n + 1 entries for n input entries. End entries wrap when the
    axis is periodic; otherwise they belong to PEC wall edges whose
    coefficients are zero.
    """
    if periodic:
        first = np.take(a, [0], axis=axis)
        last = np.take(a, [-1], axis=axis)
        padded = np.concatenate([last, a, first], axis=axis)
    else:
        width = [(0, 0)] * 3
        width[axis] = (1, 1)
        padded = np.pad(a, width)
    return np.diff(padded, axis=axis)


class FieldGrid:
    """Electric and magnetic field arrays with their update coefficients.

    Use :meth:`initialize` to build a FieldGrid from a mesh and a material
    assignment; the constructor takes pre-computed coefficients.

    Attributes:
        grid: Mesh specification
        dt: Timestep in seconds
        periodic: Per-axis periodic flags
        Ex, Ey, Ez, Hx, Hy, Hz: Field arrays (float64)
        ca, cb, db: Update coefficients per component
        inv_primary: Inverse primary spacing per axis (H-update)
        inv_dual: Inverse dual spacing per axis (E-update)
        boundaries: Attached absorbing boundaries

    Example:
        >>> fields = FieldGrid.initialize(grid, ids, {0: AIR})
        >>> fields.Ez[10, 10, 10] = 1.0
        >>> fields.update_h()
        >>> fields.update_e()
    """

    def __init__(
        self,
        grid: UniformGrid | NonuniformGrid,
        coefficients: UpdateCoefficients,
        dt: float,
        periodic: tuple[bool, bool, bool] = (False, False, False),
    ):
        self.grid = grid
        self.dt = float(dt)
        self.dt_max: float | None = None
        self.periodic = tuple(bool(p) for p in periodic)
        self.coefficients = coefficients
        self.ca = coefficients.ca
        self.cb = coefficients.cb
        self.db = coefficients.db
        self.dispersive = coefficients.dispersive

        shape = grid.shape
        for name in COMPONENTS:
            setattr(self, name, np.zeros(component_shape(name, shape), dtype=np.float64))

        self.inv_primary = [1.0 / grid.spacing(a) for a in range(3)]
        self.inv_dual = [1.0 / grid.dual_spacing(a, self.periodic[a]) for a in range(3)]

        self.boundaries: list[CPML] = []
        self._volumes: dict[str, NDArray[np.float64]] | None = None
        self._apply_domain_walls()

    @classmethod
    def initialize(
        cls,
        grid: UniformGrid | NonuniformGrid,
        material_ids: NDArray[np.integer],
        materials: Mapping[int, Material],
        dt: float | None = None,
        courant: float = 0.99,
        periodic: tuple[bool, bool, bool] = (False, False, False),
        allow_unstable: bool = False,
        memory_limit_bytes: int | None = None,
        pec_conductivity: float = PEC_CONDUCTIVITY,
    ) -> FieldGrid:
        """Allocate fields and coefficients for a mesh and material assignment.

        Args:
            grid: Mesh specification
            material_ids: Integer material id per cell, shape = grid.shape
            materials: Mapping from material id to Material
            dt: Explicit timestep; derived from ``courant`` if omitted
            courant: Fraction of the stability bound used when dt is omitted
            periodic: Per-axis periodic flags
            allow_unstable: Accept a timestep above the stability bound
            memory_limit_bytes: Memory budget (defaults to available RAM)
            pec_conductivity: Conductivity treated as PEC

        Raises:
            ConfigurationError: Invalid materials, ids or timestep
            ResourceExhaustionError: Not enough memory for the grid
        """
        material_ids = np.asarray(material_ids)
        if len(periodic) != 3:
            raise ConfigurationError("periodic must have one flag per axis")
        mapper = MaterialMapper(materials, pec_conductivity=pec_conductivity)
        mapper.validate_ids(material_ids, grid.shape)

        check_memory(estimate_memory_bytes(grid.shape), memory_limit_bytes)

        cells = mapper.cell_properties(material_ids)
        dt_max = stable_timestep(grid, cells)

        if dt is None:
            if not courant > 0:
                raise ConfigurationError(f"courant must be positive, got {courant}")
            if courant > 1.0 and not allow_unstable:
                raise ConfigurationError(
                    f"courant={courant} exceeds the stability bound; "
                    "pass allow_unstable=True to run anyway"
                )
            dt = courant * dt_max
        else:
            if not dt > 0:
                raise ConfigurationError(f"dt must be positive, got {dt}")
            if dt > dt_max and not allow_unstable:
                raise ConfigurationError(
                    f"dt={dt:.4e}s exceeds the stability bound {dt_max:.4e}s "
                    f"(courant {dt / dt_max:.3f}); pass allow_unstable=True to run anyway"
                )

        if dt > dt_max:
            logger.warning("Timestep %.4e s is above the stability bound %.4e s", dt, dt_max)
        else:
            logger.debug("Timestep %.4e s (courant %.3f)", dt, dt / dt_max)

        try:
            coefficients = mapper.map(grid, material_ids, dt, tuple(periodic), cells=cells)
            fields = cls(grid, coefficients, dt, periodic)
        except MemoryError as exc:
            required = estimate_memory_bytes(grid.shape)
            raise ResourceExhaustionError(
                f"Allocation failed for grid {grid.shape}: {exc}",
                required_bytes=required,
                available_bytes=memory_limit_bytes,
            ) from exc

        fields.dt_max = dt_max
        return fields

    # =========================================================================
    # Updates
    # =========================================================================

    def update_h(self) -> None:
        """Advance H by one timestep using the current E."""
        ip = self.inv_primary
        ex, ey, ez = self.Ex, self.Ey, self.Ez

        curl_x = np.diff(ez, axis=1) * _along(ip[1], 1) - np.diff(ey, axis=2) * _along(ip[2], 2)
        curl_y = np.diff(ex, axis=2) * _along(ip[2], 2) - np.diff(ez, axis=0) * _along(ip[0], 0)
        curl_z = np.diff(ey, axis=0) * _along(ip[0], 0) - np.diff(ex, axis=1) * _along(ip[1], 1)

        self.Hx -= self.db["Hx"] * curl_x
        self.Hy -= self.db["Hy"] * curl_y
        self.Hz -= self.db["Hz"] * curl_z

    def update_e(self) -> None:
        """Advance E by one timestep using the current H and polarisation."""
        idl = self.inv_dual
        per = self.periodic
        hx, hy, hz = self.Hx, self.Hy, self.Hz

        curls = {
            "Ex": _node_diff(hz, 1, per[1]) * _along(idl[1], 1)
            - _node_diff(hy, 2, per[2]) * _along(idl[2], 2),
            "Ey": _node_diff(hx, 2, per[2]) * _along(idl[2], 2)
            - _node_diff(hz, 0, per[0]) * _along(idl[0], 0),
            "Ez": _node_diff(hy, 0, per[0]) * _along(idl[0], 0)
            - _node_diff(hx, 1, per[1]) * _along(idl[1], 1),
        }

        for name in E_COMPONENTS:
            e = getattr(self, name)
            cb = self.cb[name]
            currents = []
            if self.dispersive is not None:
                currents = list(self.dispersive.polarization_currents(name, e.reshape(-1)))

            e *= self.ca[name]
            e += cb * curls[name]

            if currents:
                e_flat = e.reshape(-1)
                cb_flat = cb.reshape(-1)
                for index, jp in currents:
                    e_flat[index] -= cb_flat[index] * jp

    def _apply_domain_walls(self) -> None:
        """Pin tangential E to zero on non-periodic outer faces."""
        for name in E_COMPONENTS:
            comp_axis = component_axis(name)
            for axis in range(3):
                if axis == comp_axis or self.periodic[axis]:
                    continue
                for end in (0, -1):
                    idx = [slice(None)] * 3
                    idx[axis] = end
                    idx = tuple(idx)
                    self.ca[name][idx] = 0.0
                    self.cb[name][idx] = 0.0
                    self.coefficients.pec[name][idx] = True

    # =========================================================================
    # Boundaries
    # =========================================================================

    def add_boundary(self, boundary: CPML) -> None:
        """Attach an absorbing boundary.

        The boundary folds its stretching into the inverse spacing arrays,
        so it must be attached before stepping.
        """
        boundary.attach(self)
        self.boundaries.append(boundary)

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def shape(self) -> tuple[int, int, int]:
        return self.grid.shape

    def component(self, name: str) -> NDArray[np.float64]:
        """Field array for a component name such as 'Ez'."""
        if name not in COMPONENTS:
            raise ConfigurationError(f"Unknown field component '{name}', expected one of {COMPONENTS}")
        return getattr(self, name)

    def max_abs(self, kind: str | None = "E") -> float:
        """Maximum field magnitude over E ('E'), H ('H') or all components (None)."""
        names = {"E": E_COMPONENTS, "H": H_COMPONENTS, None: COMPONENTS}[kind]
        return max(float(np.max(np.abs(getattr(self, n)))) for n in names)

    def is_finite(self) -> bool:
        """True if every field value is finite."""
        return all(bool(np.isfinite(getattr(self, n)).all()) for n in COMPONENTS)

    def _component_volumes(self) -> dict[str, NDArray[np.float64]]:
        if self._volumes is None:
            primary = [self.grid.spacing(a) for a in range(3)]
            dual = [self.grid.dual_spacing(a, self.periodic[a]) for a in range(3)]
            volumes = {}
            for name in COMPONENTS:
                axis = component_axis(name)
                # E lives on edges (primary along its axis), H on faces (dual along its axis)
                along_primary = name[0] == "E"
                lengths = []
                for a in range(3):
                    use_primary = (a == axis) == along_primary
                    lengths.append(primary[a] if use_primary else dual[a])
                volumes[name] = (
                    lengths[0][:, None, None] * lengths[1][None, :, None] * lengths[2][None, None, :]
                )
            self._volumes = volumes
        return self._volumes

    def compute_energy(self) -> float:
        """Total electromagnetic energy ½∑(εE² + μH²)ΔV in joules."""
        volumes = self._component_volumes()
        energy = 0.0
        for name in E_COMPONENTS:
            energy += float(np.sum(self.coefficients.eps[name] * getattr(self, name) ** 2 * volumes[name]))
        for name in H_COMPONENTS:
            energy += float(np.sum(self.coefficients.mu[name] * getattr(self, name) ** 2 * volumes[name]))
        return 0.5 * energy

    def sample_plane(self, axis: int, index: int) -> dict[str, NDArray[np.float64]]:
        """Tangential E and H collocated at the face centres of a mesh plane.

        Args:
            axis: Plane normal axis
            index: Mesh line index along ``axis`` (must be interior)

        Returns:
            Dict of the four tangential components, each of shape
            (n_b, n_c) where b < c are the two remaining axes
        """
        n = self.grid.shape[axis]
        if not 1 <= index <= n - 1:
            raise ConfigurationError(
                f"Plane index {index} on axis {axis} must lie in [1, {n - 1}]"
            )
        samples = {}
        for name in COMPONENTS:
            comp_axis = component_axis(name)
            if comp_axis == axis:
                continue
            arr = getattr(self, name)
            is_e = name[0] == "E"

            def on_node(a: int) -> bool:
                return (a != comp_axis) if is_e else (a == comp_axis)

            if on_node(axis):
                plane = np.take(arr, index, axis=axis)
            else:
                plane = 0.5 * (np.take(arr, index - 1, axis=axis) + np.take(arr, index, axis=axis))

            remaining = [a for a in range(3) if a != axis]
            for local, a in enumerate(remaining):
                if on_node(a):
                    lo = [slice(None), slice(None)]
                    hi = [slice(None), slice(None)]
                    lo[local] = slice(None, -1)
                    hi[local] = slice(1, None)
                    plane = 0.5 * (plane[tuple(lo)] + plane[tuple(hi)])
            samples[name] = plane
        return samples

    # =========================================================================
    # State
    # =========================================================================

    def state_arrays(self) -> dict[str, NDArray[np.float64]]:
        """All time-evolving arrays, keyed for checkpoint storage."""
        arrays = {name: getattr(self, name) for name in COMPONENTS}
        if self.dispersive is not None:
            for key, value in self.dispersive.state_arrays().items():
                arrays[f"dispersive/{key}"] = value
        return arrays

    def load_state_arrays(self, arrays: Mapping[str, NDArray[np.float64]]) -> None:
        """Restore arrays written by :meth:`state_arrays`."""
        for name in COMPONENTS:
            target = getattr(self, name)
            value = np.asarray(arrays[name])
            if value.shape != target.shape:
                raise ConfigurationError(
                    f"Stored {name} has shape {value.shape}, expected {target.shape}"
                )
            np.copyto(target, value)
        if self.dispersive is not None:
            prefix = "dispersive/"
            self.dispersive.load_state_arrays(
                {k[len(prefix):]: v for k, v in arrays.items() if k.startswith(prefix)}
            )

    def reset(self) -> None:
        """Zero all fields and polarisation state."""
        for name in COMPONENTS:
            getattr(self, name).fill(0.0)
        if self.dispersive is not None:
            self.dispersive.reset()
        for boundary in self.boundaries:
            boundary.reset()

    def __repr__(self) -> str:
        return f"FieldGrid(shape={self.shape}, dt={self.dt:.4e})"
