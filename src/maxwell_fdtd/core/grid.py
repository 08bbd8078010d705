"""
Grid specifications for FDTD simulation.

This module provides grid classes for defining the structured Cartesian
mesh consumed by the solver. A grid is described by its cell-edge (mesh
line) coordinates along each axis, which is the form produced by external
mesh generators. Electric field components live on cell edges and
magnetic field components on cell faces (Yee staggering), so both the
primary spacing (edge to edge) and the dual spacing (center to center)
are exposed.

Classes:
    UniformGrid: Equal cell spacing along all axes
    NonuniformGrid: Variable cell spacing along any axis

Example:
    >>> from maxwell_fdtd import NonuniformGrid, FDTDSolver
    >>>
    >>> # Option 1: Geometric stretch ratio per axis
    >>> grid = NonuniformGrid.from_stretch(
    ...     shape=(60, 60, 80),
    ...     base_resolution=1e-3,
    ...     stretch_z=1.05,  # 5% geometric stretch in z
    ... )
    >>>
    >>> # Option 2: Explicit mesh lines
    >>> import numpy as np
    >>> grid = NonuniformGrid(
    ...     x_edges=np.linspace(0, 0.06, 61),
    ...     y_edges=np.linspace(0, 0.06, 61),
    ...     z_edges=np.geomspace(1e-3, 0.1, 81) - 1e-3,
    ... )
    >>>
    >>> # Option 3: Piecewise regions with different resolutions
    >>> grid = NonuniformGrid.from_regions(
    ...     x_regions=[(0, 0.02, 2e-3), (0.02, 0.04, 0.5e-3), (0.04, 0.06, 2e-3)],
    ...     y_regions=[(0, 0.06, 1e-3)],
    ...     z_regions=[(0, 0.06, 1e-3)],
    ... )
    >>>
    >>> solver = FDTDSolver(grid=grid)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from maxwell_fdtd.errors import ConfigurationError

AXES = ("x", "y", "z")


def axis_index(axis: int | str) -> int:
    """Normalize an axis given as 0/1/2 or 'x'/'y'/'z'."""
    if isinstance(axis, str):
        if axis not in AXES:
            raise ConfigurationError(f"Unknown axis '{axis}', expected one of {AXES}")
        return AXES.index(axis)
    if axis not in (0, 1, 2):
        raise ConfigurationError(f"Axis index must be 0, 1 or 2, got {axis}")
    return int(axis)


class _GridMixin:
    """Properties shared by uniform and nonuniform grids.

    Subclasses provide ``_edges``, a tuple of three 1D edge arrays.
    """

    _edges: tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]
    shape: tuple[int, int, int]

    @property
    def num_cells(self) -> int:
        """Total number of cells."""
        nx, ny, nz = self.shape
        return nx * ny * nz

    @property
    def x_edges(self) -> NDArray[np.float64]:
        """Mesh line x-coordinates (length nx + 1)."""
        return self._edges[0]

    @property
    def y_edges(self) -> NDArray[np.float64]:
        """Mesh line y-coordinates (length ny + 1)."""
        return self._edges[1]

    @property
    def z_edges(self) -> NDArray[np.float64]:
        """Mesh line z-coordinates (length nz + 1)."""
        return self._edges[2]

    def edges(self, axis: int | str) -> NDArray[np.float64]:
        """Mesh line coordinates along one axis."""
        return self._edges[axis_index(axis)]

    def spacing(self, axis: int | str) -> NDArray[np.float64]:
        """Primary cell spacing along one axis (length n)."""
        return np.diff(self._edges[axis_index(axis)])

    def centers(self, axis: int | str) -> NDArray[np.float64]:
        """Cell center coordinates along one axis (length n)."""
        e = self._edges[axis_index(axis)]
        return 0.5 * (e[1:] + e[:-1])

    def dual_spacing(self, axis: int | str, periodic: bool = False) -> NDArray[np.float64]:
        """Distance between adjacent cell centers, sampled at each mesh line.

        Returns an array of length n + 1. Interior entries are the
        center-to-center distance across mesh line i; the two end entries
        are half cells, or the wrapped center-to-center distance when the
        axis is periodic.
        """
        d = self.spacing(axis)
        dual = np.empty(len(d) + 1, dtype=np.float64)
        dual[1:-1] = 0.5 * (d[1:] + d[:-1])
        if periodic:
            dual[0] = dual[-1] = 0.5 * (d[0] + d[-1])
        else:
            dual[0] = 0.5 * d[0]
            dual[-1] = 0.5 * d[-1]
        return dual

    @property
    def dx(self) -> NDArray[np.float64]:
        """Cell spacing in x-direction for each cell."""
        return self.spacing(0)

    @property
    def dy(self) -> NDArray[np.float64]:
        """Cell spacing in y-direction for each cell."""
        return self.spacing(1)

    @property
    def dz(self) -> NDArray[np.float64]:
        """Cell spacing in z-direction for each cell."""
        return self.spacing(2)

    @property
    def x_centers(self) -> NDArray[np.float64]:
        """Cell center x-coordinates."""
        return self.centers(0)

    @property
    def y_centers(self) -> NDArray[np.float64]:
        """Cell center y-coordinates."""
        return self.centers(1)

    @property
    def z_centers(self) -> NDArray[np.float64]:
        """Cell center z-coordinates."""
        return self.centers(2)

    @property
    def min_spacing(self) -> float:
        """Minimum cell spacing across all axes."""
        return float(min(np.min(self.spacing(a)) for a in range(3)))

    @property
    def max_spacing(self) -> float:
        """Maximum cell spacing across all axes."""
        return float(max(np.max(self.spacing(a)) for a in range(3)))

    def min_spacing_per_axis(self) -> tuple[float, float, float]:
        """Finest spacing along each axis."""
        return tuple(float(np.min(self.spacing(a))) for a in range(3))

    def physical_extent(self) -> tuple[float, float, float]:
        """Get physical domain size in meters.

        Returns:
            Tuple (Lx, Ly, Lz) of domain dimensions
        """
        return tuple(float(e[-1] - e[0]) for e in self._edges)

    def node_index(self, axis: int | str, coordinate: float) -> int:
        """Index of the mesh line closest to a physical coordinate."""
        e = self._edges[axis_index(axis)]
        return int(np.argmin(np.abs(e - coordinate)))

    def cell_index(self, axis: int | str, coordinate: float) -> int:
        """Index of the cell containing a physical coordinate."""
        e = self._edges[axis_index(axis)]
        idx = int(np.searchsorted(e, coordinate, side="right")) - 1
        return int(np.clip(idx, 0, len(e) - 2))

    def position_to_node(self, position: Sequence[float]) -> tuple[int, int, int]:
        """Nearest mesh node (i, j, k) to a physical position (x, y, z)."""
        return tuple(self.node_index(a, position[a]) for a in range(3))

    def position_to_index(self, position: Sequence[float]) -> tuple[int, int, int]:
        """Index (i, j, k) of the cell containing a physical position."""
        return tuple(self.cell_index(a, position[a]) for a in range(3))

    def cell_volumes(self) -> NDArray[np.float64]:
        """Volume of every cell, shape (nx, ny, nz)."""
        dx, dy, dz = (self.spacing(a) for a in range(3))
        return dx[:, None, None] * dy[None, :, None] * dz[None, None, :]


@dataclass
class UniformGrid(_GridMixin):
    """Uniform grid specification with equal cell spacing.

    Args:
        shape: Grid dimensions (nx, ny, nz) in cells
        resolution: Cell spacing in meters (same for all axes)
        origin: Physical coordinates of the lower domain corner

    Example:
        >>> grid = UniformGrid(shape=(100, 100, 100), resolution=1e-3)
        >>> grid.min_spacing
        0.001
    """

    shape: tuple[int, int, int]
    resolution: float
    origin: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self):
        if len(self.shape) != 3 or any(int(n) < 1 for n in self.shape):
            raise ConfigurationError(f"Grid shape must be three positive integers, got {self.shape}")
        if not self.resolution > 0:
            raise ConfigurationError(f"Resolution must be positive, got {self.resolution}")
        self.shape = tuple(int(n) for n in self.shape)
        self._edges = tuple(
            self.origin[a] + np.arange(self.shape[a] + 1, dtype=np.float64) * self.resolution
            for a in range(3)
        )

    def spacing(self, axis: int | str) -> NDArray[np.float64]:
        """Cell spacing along one axis, exactly ``resolution`` everywhere."""
        return np.full(self.shape[axis_index(axis)], self.resolution, dtype=np.float64)

    @property
    def is_uniform(self) -> bool:
        """Whether the grid has uniform spacing."""
        return True


class NonuniformGrid(_GridMixin):
    """Nonuniform grid specification with variable cell spacing.

    Enables efficient simulations where high resolution is needed near
    thin conductors, substrates or feed gaps while using coarser cells
    in free space.

    Args:
        x_edges: Mesh line x-coordinates in meters (strictly increasing)
        y_edges: Mesh line y-coordinates in meters (strictly increasing)
        z_edges: Mesh line z-coordinates in meters (strictly increasing)

    Note:
        The stability bound depends on the finest spacing along every axis,
        so aggressive local refinement shortens the timestep globally.

    Example:
        >>> grid = NonuniformGrid(
        ...     x_edges=np.linspace(0, 0.1, 101),
        ...     y_edges=np.linspace(0, 0.1, 101),
        ...     z_edges=np.concatenate([[0.0], np.geomspace(1e-3, 0.2, 200)]),
        ... )
        >>> print(f"Min spacing: {grid.min_spacing:.4f} m")
    """

    def __init__(
        self,
        x_edges: NDArray[np.floating],
        y_edges: NDArray[np.floating],
        z_edges: NDArray[np.floating],
    ):
        edges = []
        for name, arr in zip(AXES, (x_edges, y_edges, z_edges)):
            e = np.asarray(arr, dtype=np.float64).ravel()
            if len(e) < 2:
                raise ConfigurationError(f"{name}_edges must have at least 2 points")
            if not np.all(np.diff(e) > 0):
                raise ConfigurationError(f"{name}_edges must be monotonically increasing")
            edges.append(e)
        self._edges = tuple(edges)

    @property
    def shape(self) -> tuple[int, int, int]:
        """Grid dimensions (nx, ny, nz) in cells."""
        return tuple(len(e) - 1 for e in self._edges)

    @property
    def is_uniform(self) -> bool:
        """Whether the grid has uniform spacing."""
        return False

    @property
    def stretch_ratio(self) -> tuple[float, float, float]:
        """Ratio of max/min spacing for each axis."""
        return tuple(
            float(np.max(self.spacing(a)) / np.min(self.spacing(a))) for a in range(3)
        )

    @classmethod
    def from_stretch(
        cls,
        shape: tuple[int, int, int],
        base_resolution: float,
        stretch_x: float = 1.0,
        stretch_y: float = 1.0,
        stretch_z: float = 1.0,
        center_fine: bool = True,
    ) -> NonuniformGrid:
        """Create grid with geometric stretch ratio per axis.

        Cells grow geometrically away from the domain center (if
        center_fine=True) or from the lower end of each axis.

        Args:
            shape: Grid dimensions (nx, ny, nz)
            base_resolution: Finest cell spacing in meters
            stretch_x: Geometric stretch ratio in x (1.0 = uniform)
            stretch_y: Geometric stretch ratio in y (1.0 = uniform)
            stretch_z: Geometric stretch ratio in z (1.0 = uniform)
            center_fine: If True, finest cells are at the center

        Returns:
            NonuniformGrid with specified stretch pattern
        """
        if base_resolution <= 0:
            raise ConfigurationError("base_resolution must be positive")
        edges = [
            cls._stretched_edges(n, base_resolution, s, center_fine)
            for n, s in zip(shape, (stretch_x, stretch_y, stretch_z))
        ]
        return cls(*edges)

    @staticmethod
    def _stretched_edges(
        n: int,
        base: float,
        stretch: float,
        center_fine: bool,
    ) -> NDArray[np.float64]:
        """Generate stretched mesh lines along one axis."""
        if n < 1:
            raise ConfigurationError("Each axis needs at least one cell")
        if stretch < 1.0:
            raise ConfigurationError("Stretch ratios must be >= 1.0")

        if center_fine:
            n_half = n // 2
            half = base * stretch ** np.arange(n_half, dtype=np.float64)
            if n % 2:
                sizes = np.concatenate([half[::-1], [base], half])
            else:
                sizes = np.concatenate([half[::-1], half])
        else:
            sizes = base * stretch ** np.arange(n, dtype=np.float64)

        return np.concatenate([[0.0], np.cumsum(sizes)])

    @classmethod
    def from_regions(
        cls,
        x_regions: Sequence[tuple[float, float, float]],
        y_regions: Sequence[tuple[float, float, float]] | None = None,
        z_regions: Sequence[tuple[float, float, float]] | None = None,
    ) -> NonuniformGrid:
        """Create grid from piecewise regions with different resolutions.

        Each region is specified as a (start, end, resolution) tuple.
        Regions must be contiguous (end of one equals start of next).
        The cell count in each region is rounded so the region boundaries
        fall exactly on mesh lines.

        Args:
            x_regions: List of (start, end, resolution) for x-axis
            y_regions: List for y-axis. If None, uses same as x_regions.
            z_regions: List for z-axis. If None, uses same as x_regions.

        Example:
            >>> # 0.2 mm cells across a 1.6 mm substrate, 1 mm above it
            >>> grid = NonuniformGrid.from_regions(
            ...     x_regions=[(0, 0.06, 1e-3)],
            ...     y_regions=[(0, 0.06, 1e-3)],
            ...     z_regions=[(0, 1.6e-3, 0.4e-3), (1.6e-3, 0.03, 1e-3)],
            ... )
        """
        if y_regions is None:
            y_regions = x_regions
        if z_regions is None:
            z_regions = x_regions

        return cls(
            cls._region_edges(x_regions),
            cls._region_edges(y_regions),
            cls._region_edges(z_regions),
        )

    @staticmethod
    def _region_edges(
        regions: Sequence[tuple[float, float, float]],
    ) -> NDArray[np.float64]:
        """Generate mesh lines from piecewise regions."""
        if not regions:
            raise ConfigurationError("At least one region must be specified")

        edges = [float(regions[0][0])]
        for i, (start, end, resolution) in enumerate(regions):
            if end <= start:
                raise ConfigurationError(f"Region {i}: end ({end}) must be > start ({start})")
            if resolution <= 0:
                raise ConfigurationError(f"Region {i}: resolution must be positive")
            if i > 0:
                prev_end = regions[i - 1][1]
                if abs(start - prev_end) > 1e-12:
                    raise ConfigurationError(
                        f"Regions must be contiguous: region {i-1} ends at {prev_end}, "
                        f"region {i} starts at {start}"
                    )

            n_cells = max(1, int(round((end - start) / resolution)))
            edges.extend(np.linspace(start, end, n_cells + 1)[1:].tolist())

        return np.array(edges, dtype=np.float64)

    def __repr__(self) -> str:
        return (
            f"NonuniformGrid(shape={self.shape}, "
            f"min_spacing={self.min_spacing:.4g}, "
            f"max_spacing={self.max_spacing:.4g}, "
            f"stretch_ratio={tuple(f'{r:.2f}' for r in self.stretch_ratio)})"
        )
