"""Pre-defined electromagnetic material library.

This module provides common materials for antenna and RF circuit
simulation, organized by category:

- Background: Vacuum and air
- Substrates: PCB laminates with their datasheet loss tangents
- Conductors: Metals (meshed as PEC above 1e6 S/m) and an ideal PEC
- Dispersive: Debye and Drude examples

All materials are ready to use with the FDTD solver:

    >>> from maxwell_fdtd.materials import FR4, COPPER, AIR
    >>> solver = FDTDSolver(grid=grid, material_ids=ids,
    ...                     materials={0: AIR, 1: FR4, 2: COPPER})

Substrate conductivities are fitted from the loss tangent at the
manufacturer's characterization frequency, so loss is exact only there.
"""

import numpy as np

from .base import Material, Pole, PoleType

# =============================================================================
# Background
# =============================================================================

VACUUM = Material(name="vacuum")
"""Free space."""

AIR = Material(name="air", eps_r=1.0006)
"""Dry air at sea level."""

# =============================================================================
# Substrates
# =============================================================================

FR4 = Material.from_loss_tangent("FR4", eps_r=4.4, tan_delta=0.02, frequency=1e9)
"""Glass-epoxy laminate, εr 4.4, tan δ 0.02 at 1 GHz."""

ROGERS_4003C = Material.from_loss_tangent(
    "RO4003C", eps_r=3.55, tan_delta=0.0027, frequency=10e9
)
"""Rogers RO4003C hydrocarbon ceramic, εr 3.55, tan δ 0.0027 at 10 GHz."""

ROGERS_5880 = Material.from_loss_tangent(
    "RT5880", eps_r=2.2, tan_delta=0.0009, frequency=10e9
)
"""Rogers RT/duroid 5880 PTFE, εr 2.2, tan δ 0.0009 at 10 GHz."""

ALUMINA = Material.from_loss_tangent("alumina", eps_r=9.8, tan_delta=0.0001, frequency=10e9)
"""96% alumina ceramic."""

PTFE = Material(name="PTFE", eps_r=2.1)
"""Polytetrafluoroethylene, lossless approximation."""

# =============================================================================
# Conductors
# =============================================================================

PEC = Material.pec("PEC")
"""Ideal perfect electric conductor."""

COPPER = Material(name="copper", sigma=5.8e7)
"""Annealed copper (meshed as PEC)."""

ALUMINUM = Material(name="aluminum", sigma=3.5e7)
"""Aluminum (meshed as PEC)."""

GOLD = Material(name="gold", sigma=4.1e7)
"""Gold (meshed as PEC)."""

# =============================================================================
# Dispersive
# =============================================================================

WATER_20C = Material(
    name="water_20C",
    eps_r=4.9,
    poles=(Pole(PoleType.DEBYE, delta_eps=75.3, tau=9.4e-12),),
)
"""Distilled water at 20°C, single-pole Debye model."""

COLD_PLASMA = Material(
    name="cold_plasma",
    poles=(Pole(PoleType.DRUDE, omega_p=2 * np.pi * 5e9, gamma=2e9),),
)
"""Collisional plasma with a 5 GHz plasma frequency."""

# =============================================================================
# Material Registry
# =============================================================================

MATERIALS = {
    "background": {
        "vacuum": VACUUM,
        "air": AIR,
    },
    "substrate": {
        "FR4": FR4,
        "RO4003C": ROGERS_4003C,
        "RT5880": ROGERS_5880,
        "alumina": ALUMINA,
        "PTFE": PTFE,
    },
    "conductor": {
        "PEC": PEC,
        "copper": COPPER,
        "aluminum": ALUMINUM,
        "gold": GOLD,
    },
    "dispersive": {
        "water_20C": WATER_20C,
        "cold_plasma": COLD_PLASMA,
    },
}


def get_material(name: str) -> Material:
    """Look up a material by name.

    Args:
        name: Material name (case-insensitive)

    Returns:
        Material instance

    Raises:
        KeyError: If material not found
    """
    name_lower = name.lower()

    for category in MATERIALS.values():
        for mat_name, material in category.items():
            if mat_name.lower() == name_lower:
                return material

    raise KeyError(f"Material '{name}' not found. Use list_materials() to see available materials.")


def list_materials(category: str | None = None) -> list[str]:
    """List available materials.

    Args:
        category: Optional category filter (e.g., "substrate", "conductor")

    Returns:
        List of material names
    """
    if category is not None:
        if category not in MATERIALS:
            raise KeyError(f"Unknown category '{category}'. Available: {list(MATERIALS.keys())}")
        return list(MATERIALS[category].keys())

    all_materials = []
    for cat_materials in MATERIALS.values():
        all_materials.extend(cat_materials.keys())
    return all_materials


def list_categories() -> list[str]:
    """List available material categories."""
    return list(MATERIALS.keys())
