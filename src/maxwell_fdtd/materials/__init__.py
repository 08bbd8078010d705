"""Electromagnetic materials for FDTD simulation.

This module provides linear isotropic materials with optional
frequency-dependent permittivity (Debye, Lorentz and Drude poles) and
the mapper that converts a per-cell material id array into Yee-edge
update coefficients.

Example:
    >>> from maxwell_fdtd.materials import AIR, FR4, COPPER
    >>> from maxwell_fdtd import FDTDSolver
    >>>
    >>> solver = FDTDSolver(
    ...     shape=(80, 80, 40),
    ...     resolution=0.5e-3,
    ...     material_ids=ids,
    ...     materials={0: AIR, 1: FR4, 2: COPPER},
    ... )

Material Library:
    >>> from maxwell_fdtd.materials import list_materials, get_material
    >>> print(list_materials("conductor"))
    ['PEC', 'copper', 'aluminum', 'gold']
    >>> mat = get_material("RO4003C")
"""

from .base import (
    PEC_CONDUCTIVITY,
    Material,
    Pole,
    PoleType,
)
from .library import (
    AIR,
    ALUMINA,
    ALUMINUM,
    COLD_PLASMA,
    COPPER,
    FR4,
    GOLD,
    MATERIALS,
    PEC,
    PTFE,
    ROGERS_4003C,
    ROGERS_5880,
    VACUUM,
    WATER_20C,
    get_material,
    list_categories,
    list_materials,
)
from .mapper import (
    POLE_UPDATES,
    CellProperties,
    DispersiveState,
    MaterialMapper,
    PolarizationTerm,
    UpdateCoefficients,
)

__all__ = [
    # Base classes
    "Material",
    "Pole",
    "PoleType",
    "PEC_CONDUCTIVITY",
    # Mapping
    "MaterialMapper",
    "UpdateCoefficients",
    "CellProperties",
    "DispersiveState",
    "PolarizationTerm",
    "POLE_UPDATES",
    # Library
    "VACUUM",
    "AIR",
    "FR4",
    "ROGERS_4003C",
    "ROGERS_5880",
    "ALUMINA",
    "PTFE",
    "PEC",
    "COPPER",
    "ALUMINUM",
    "GOLD",
    "WATER_20C",
    "COLD_PLASMA",
    "MATERIALS",
    "get_material",
    "list_materials",
    "list_categories",
]
