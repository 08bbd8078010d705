"""Command-line interface for running FDTD simulations."""

from maxwell_fdtd.cli.executor import (
    LoadedSimulation,
    RestrictedImportError,
    execute_simulation_script,
    load_simulation,
    validate_solver_object,
)

__all__ = [
    "LoadedSimulation",
    "RestrictedImportError",
    "execute_simulation_script",
    "load_simulation",
    "validate_solver_object",
]
