"""Map per-cell materials onto Yee-edge update coefficients.

Materials are assigned per cell by an integer id array. Electric field
components live on cell edges and magnetic components on cell faces, so
the cell properties are averaged onto those locations:

- ε and σ: arithmetic mean of the four cells sharing an E edge
- μ: harmonic mean of the two cells sharing an H face
- PEC: an E edge touching any PEC cell is PEC (Ca = Cb = 0)

Dispersive materials contribute polarisation terms weighted by the
fraction of the four cells around each edge that contain the material.

Example:
    >>> from maxwell_fdtd.materials import MaterialMapper, FR4, AIR
    >>> mapper = MaterialMapper({0: AIR, 1: FR4})
    >>> coeffs = mapper.map(grid, material_ids, dt=1e-12)
    >>> coeffs.ca["Ex"].shape == (nx, ny + 1, nz + 1)
    True
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray
from scipy.constants import c as C0
from scipy.constants import epsilon_0, mu_0

from maxwell_fdtd.errors import ConfigurationError

from .base import PEC_CONDUCTIVITY, Material, Pole, PoleType

E_COMPONENTS = ("Ex", "Ey", "Ez")
H_COMPONENTS = ("Hx", "Hy", "Hz")


@dataclass
class CellProperties:
    """Relative material properties per cell, shape (nx, ny, nz)."""

    eps_r: NDArray[np.float64]
    mu_r: NDArray[np.float64]
    sigma: NDArray[np.float64]
    pec: NDArray[np.bool_]

    def wave_speed(self) -> NDArray[np.float64]:
        """Phase velocity c0 / sqrt(εr μr) per cell."""
        return C0 / np.sqrt(self.eps_r * self.mu_r)


# =============================================================================
# Dispersion
# =============================================================================


@dataclass
class PolarizationTerm:
    """Polarisation history of one pole on one E component.

    Only edges with a non-zero fill fraction are stored; ``index`` holds
    their flat positions in the component array.
    """

    component: str
    pole: Pole
    coefficients: tuple[float, ...]
    index: NDArray[np.intp]
    weight: NDArray[np.float64]
    p: NDArray[np.float64] = field(init=False)
    p_prev: NDArray[np.float64] = field(init=False)

    def __post_init__(self):
        self.p = np.zeros(len(self.index), dtype=np.float64)
        self.p_prev = np.zeros(len(self.index), dtype=np.float64)


def _advance_debye(term: PolarizationTerm, e: NDArray[np.float64]) -> NDArray[np.float64]:
    alpha, beta = term.coefficients
    return alpha * term.p + beta * epsilon_0 * e


def _advance_second_order(term: PolarizationTerm, e: NDArray[np.float64]) -> NDArray[np.float64]:
    a, b, d = term.coefficients
    return a * term.p + b * term.p_prev + d * epsilon_0 * e


POLE_UPDATES: dict[PoleType, Callable[[PolarizationTerm, NDArray[np.float64]], NDArray[np.float64]]] = {
    PoleType.DEBYE: _advance_debye,
    PoleType.LORENTZ: _advance_second_order,
    PoleType.DRUDE: _advance_second_order,
}


class DispersiveState:
    """Polarisation state of every dispersive pole on the grid.

    Advanced once per E-update from the field values of the previous
    integer step; yields the polarisation current Jp = w·(P^{n+1} − P^n)/Δt
    for each term.
    """

    def __init__(self, terms: list[PolarizationTerm], dt: float):
        self.terms = terms
        self.dt = dt

    def __len__(self) -> int:
        return len(self.terms)

    def polarization_currents(
        self, component: str, e_flat: NDArray[np.float64]
    ) -> Iterator[tuple[NDArray[np.intp], NDArray[np.float64]]]:
        """Advance all terms on one component, yielding (index, Jp)."""
        for term in self.terms:
            if term.component != component:
                continue
            p_next = POLE_UPDATES[term.pole.pole_type](term, e_flat[term.index])
            jp = term.weight * (p_next - term.p) / self.dt
            term.p_prev = term.p
            term.p = p_next
            yield term.index, jp

    def reset(self) -> None:
        for term in self.terms:
            term.p.fill(0.0)
            term.p_prev.fill(0.0)

    def state_arrays(self) -> dict[str, NDArray[np.float64]]:
        """Polarisation arrays keyed for checkpoint storage."""
        arrays = {}
        for n, term in enumerate(self.terms):
            arrays[f"{n}/p"] = term.p
            arrays[f"{n}/p_prev"] = term.p_prev
        return arrays

    def load_state_arrays(self, arrays: Mapping[str, NDArray[np.float64]]) -> None:
        for n, term in enumerate(self.terms):
            p = np.asarray(arrays[f"{n}/p"], dtype=np.float64)
            if p.shape != term.p.shape:
                raise ConfigurationError(
                    f"Dispersive term {n}: stored shape {p.shape} does not match {term.p.shape}"
                )
            term.p = p.copy()
            term.p_prev = np.asarray(arrays[f"{n}/p_prev"], dtype=np.float64).copy()


# =============================================================================
# Coefficients
# =============================================================================


@dataclass
class UpdateCoefficients:
    """Per-component update coefficients produced by the mapper.

    Attributes:
        ca: E self-coefficient per component
        cb: E curl coefficient per component (dt/ε scaled by losses)
        db: H curl coefficient per component (dt/μ)
        eps: Absolute permittivity per E component (F/m)
        sigma: Conductivity per E component (S/m)
        mu: Absolute permeability per H component (H/m)
        pec: PEC mask per E component
        dispersive: Polarisation state, or None for non-dispersive grids
    """

    ca: dict[str, NDArray[np.float64]]
    cb: dict[str, NDArray[np.float64]]
    db: dict[str, NDArray[np.float64]]
    eps: dict[str, NDArray[np.float64]]
    sigma: dict[str, NDArray[np.float64]]
    mu: dict[str, NDArray[np.float64]]
    pec: dict[str, NDArray[np.bool_]]
    dispersive: DispersiveState | None = None


def _edge_average(values: NDArray, comp_axis: int, periodic: tuple[bool, bool, bool]) -> NDArray:
    """Mean of the four cells sharing each edge parallel to ``comp_axis``."""
    others = [a for a in range(3) if a != comp_axis]
    for a in others:
        mode = "wrap" if periodic[a] else "edge"
        width = [(0, 0)] * 3
        width[a] = (1, 1)
        values = np.pad(values, width, mode=mode)

    b, c = others
    result = None
    for sb in (slice(None, -1), slice(1, None)):
        for sc in (slice(None, -1), slice(1, None)):
            idx = [slice(None)] * 3
            idx[b] = sb
            idx[c] = sc
            term = values[tuple(idx)].astype(np.float64)
            result = term if result is None else result + term
    return 0.25 * result


def _edge_any(mask: NDArray[np.bool_], comp_axis: int, periodic: tuple[bool, bool, bool]) -> NDArray[np.bool_]:
    """True on edges where any of the four adjacent cells is set."""
    return _edge_average(mask.astype(np.float64), comp_axis, periodic) > 0.0


def _face_harmonic(values: NDArray, comp_axis: int, periodic: tuple[bool, bool, bool]) -> NDArray:
    """Harmonic mean of the two cells sharing each face normal to ``comp_axis``."""
    width = [(0, 0)] * 3
    width[comp_axis] = (1, 1)
    mode = "wrap" if periodic[comp_axis] else "edge"
    padded = np.pad(values, width, mode=mode)
    lo = [slice(None)] * 3
    hi = [slice(None)] * 3
    lo[comp_axis] = slice(None, -1)
    hi[comp_axis] = slice(1, None)
    return 2.0 / (1.0 / padded[tuple(lo)] + 1.0 / padded[tuple(hi)])


class MaterialMapper:
    """Convert a material id array into FDTD update coefficients.

    Args:
        materials: Mapping from integer material id to Material
        pec_conductivity: Conductivity at or above which a material is
            meshed as PEC

    Raises:
        ConfigurationError: If the mapping is empty or holds non-Material values
    """

    def __init__(
        self,
        materials: Mapping[int, Material],
        pec_conductivity: float = PEC_CONDUCTIVITY,
    ):
        if not materials:
            raise ConfigurationError("At least one material must be defined")
        for mat_id, material in materials.items():
            if not isinstance(material, Material):
                raise ConfigurationError(
                    f"Material id {mat_id} maps to {type(material).__name__}, expected Material"
                )
        self.materials = dict(materials)
        self.pec_conductivity = pec_conductivity

    def validate_ids(self, material_ids: NDArray[np.integer], shape: tuple[int, int, int]) -> None:
        """Check the id array shape and that every id is registered."""
        if material_ids.shape != tuple(shape):
            raise ConfigurationError(
                f"material_ids shape {material_ids.shape} does not match grid shape {tuple(shape)}"
            )
        if not np.issubdtype(material_ids.dtype, np.integer):
            raise ConfigurationError("material_ids must be an integer array")
        unknown = sorted(set(np.unique(material_ids).tolist()) - set(self.materials))
        if unknown:
            raise ConfigurationError(f"Unknown material ids in material_ids: {unknown}")

    def cell_properties(self, material_ids: NDArray[np.integer]) -> CellProperties:
        """Look up relative properties for every cell."""
        eps_r = np.ones(material_ids.shape, dtype=np.float64)
        mu_r = np.ones(material_ids.shape, dtype=np.float64)
        sigma = np.zeros(material_ids.shape, dtype=np.float64)
        pec = np.zeros(material_ids.shape, dtype=bool)

        for mat_id, material in self.materials.items():
            mask = material_ids == mat_id
            if not mask.any():
                continue
            eps_r[mask] = material.eps_r
            mu_r[mask] = material.mu_r
            if material.treated_as_pec(self.pec_conductivity):
                pec[mask] = True
            else:
                sigma[mask] = material.sigma

        return CellProperties(eps_r=eps_r, mu_r=mu_r, sigma=sigma, pec=pec)

    def map(
        self,
        grid,
        material_ids: NDArray[np.integer],
        dt: float,
        periodic: tuple[bool, bool, bool] = (False, False, False),
        cells: CellProperties | None = None,
    ) -> UpdateCoefficients:
        """Build update coefficients for every Yee component.

        Args:
            grid: UniformGrid or NonuniformGrid
            material_ids: Integer material id per cell
            dt: Timestep in seconds
            periodic: Per-axis periodic flags
            cells: Pre-computed cell properties (looked up if omitted)

        Returns:
            UpdateCoefficients for all six components
        """
        material_ids = np.asarray(material_ids)
        self.validate_ids(material_ids, grid.shape)
        if cells is None:
            cells = self.cell_properties(material_ids)

        ca, cb, db = {}, {}, {}
        eps_e, sigma_e, mu_h, pec_e = {}, {}, {}, {}

        for axis, name in enumerate(E_COMPONENTS):
            eps = _edge_average(cells.eps_r, axis, periodic) * epsilon_0
            sig = _edge_average(cells.sigma, axis, periodic)
            pec = _edge_any(cells.pec, axis, periodic)

            loss = sig * dt / (2.0 * eps)
            ca[name] = np.where(pec, 0.0, (1.0 - loss) / (1.0 + loss))
            cb[name] = np.where(pec, 0.0, (dt / eps) / (1.0 + loss))
            eps_e[name] = eps
            sigma_e[name] = sig
            pec_e[name] = pec

        for axis, name in enumerate(H_COMPONENTS):
            mu = _face_harmonic(cells.mu_r, axis, periodic) * mu_0
            db[name] = dt / mu
            mu_h[name] = mu

        dispersive = self._dispersive_state(material_ids, dt, periodic, pec_e)

        return UpdateCoefficients(
            ca=ca,
            cb=cb,
            db=db,
            eps=eps_e,
            sigma=sigma_e,
            mu=mu_h,
            pec=pec_e,
            dispersive=dispersive,
        )

    def _dispersive_state(
        self,
        material_ids: NDArray[np.integer],
        dt: float,
        periodic: tuple[bool, bool, bool],
        pec_edges: dict[str, NDArray[np.bool_]],
    ) -> DispersiveState | None:
        terms = []
        for mat_id, material in self.materials.items():
            if not material.is_dispersive or material.treated_as_pec(self.pec_conductivity):
                continue
            mask = material_ids == mat_id
            if not mask.any():
                continue
            for axis, name in enumerate(E_COMPONENTS):
                fill = _edge_average(mask.astype(np.float64), axis, periodic)
                fill[pec_edges[name]] = 0.0
                index = np.flatnonzero(fill)
                if len(index) == 0:
                    continue
                weight = fill.ravel()[index]
                for pole in material.poles:
                    terms.append(
                        PolarizationTerm(
                            component=name,
                            pole=pole,
                            coefficients=pole.fdtd_coefficients(dt),
                            index=index,
                            weight=weight,
                        )
                    )
        if not terms:
            return None
        return DispersiveState(terms, dt)
