"""Absorbing boundary conditions for FDTD simulations."""

from maxwell_fdtd.boundaries._boundaries import (
    CPML,
    estimate_reflection_db,
)

__all__ = [
    "CPML",
    "estimate_reflection_db",
]
