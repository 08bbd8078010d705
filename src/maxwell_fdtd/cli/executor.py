"""Loading simulations for the command-line tool.

A simulation is either a Python script executed with restricted imports
that leaves an ``FDTDSolver`` in a ``solver`` variable, or a JSON
configuration file (see :mod:`maxwell_fdtd.config`).
"""

import builtins
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from maxwell_fdtd.config import build_solver, load_config

ALLOWED_MODULES = frozenset(
    {
        "maxwell_fdtd",
        "numpy",
        "scipy",
        "math",
        "cmath",
        "pathlib",
    }
)


class RestrictedImportError(ImportError):
    """Raised when a disallowed module import is attempted."""

    pass


def execute_simulation_script(
    script_path: Path, script_content: str, verbose: bool = False
) -> dict[str, Any]:
    """Execute simulation script in controlled namespace.

    Only ``maxwell_fdtd`` and a handful of numerical modules may be
    imported by the script itself; modules they pull in are unaffected.

    Args:
        script_path: Path to the script file (for __file__ and relative imports)
        script_content: Content of the script to execute
        verbose: If True, print debug information

    Returns:
        Namespace dict containing all variables defined by the script

    Raises:
        RestrictedImportError: If script attempts to import disallowed module
        SyntaxError: If script has syntax errors
        Exception: Any exception raised by the script during execution
    """
    original_import = builtins.__import__

    def restricted_import(name, globals=None, locals=None, fromlist=(), level=0):
        # Imports issued from inside allowed packages resolve normally
        caller = (globals or {}).get("__name__", "")
        if caller != "__main__" or level > 0:
            return original_import(name, globals, locals, fromlist, level)

        top_level = name.split(".")[0]
        if top_level not in ALLOWED_MODULES:
            raise RestrictedImportError(
                f"Import of '{name}' is not allowed in simulation scripts. "
                f"Allowed modules: {', '.join(sorted(ALLOWED_MODULES))}"
            )
        return original_import(name, globals, locals, fromlist, level)

    script_builtins = dict(vars(builtins))
    script_builtins["__import__"] = restricted_import
    namespace = {
        "__name__": "__main__",
        "__file__": str(script_path),
        "__builtins__": script_builtins,
    }

    script_dir = str(Path(script_path).parent)
    sys.path.insert(0, script_dir)
    try:
        if verbose:
            print(f"Executing script: {script_path}")
            print(f"Script directory added to path: {script_dir}")

        code = compile(script_content, str(script_path), "exec")
        exec(code, namespace)

        if verbose:
            defined_vars = [k for k in namespace.keys() if not k.startswith("__")]
            print(f"Script defined variables: {', '.join(defined_vars)}")
    finally:
        if script_dir in sys.path:
            sys.path.remove(script_dir)

    return namespace


def validate_solver_object(namespace: dict[str, Any]) -> Any:
    """Validate that namespace contains a valid solver object.

    Args:
        namespace: Namespace dict from script execution

    Returns:
        The solver object

    Raises:
        ValueError: If no solver found or solver is invalid
    """
    solver = namespace.get("solver")

    if solver is None:
        raise ValueError(
            "Script must define a 'solver' variable. "
            "Example: solver = FDTDSolver(shape=(60, 60, 60), resolution=1e-3)"
        )

    required_methods = ["run", "step", "save_checkpoint", "load_checkpoint"]
    missing_methods = [m for m in required_methods if not hasattr(solver, m)]

    if missing_methods:
        raise ValueError(
            f"'solver' object is missing required methods: {', '.join(missing_methods)}. "
            f"Make sure it's an FDTDSolver instance."
        )

    return solver


@dataclass
class LoadedSimulation:
    """A solver ready to run, with the run length its source asked for."""

    solver: Any
    num_steps: int
    source: str
    checkpoint_interval: int | None = None
    snapshot_interval: int | None = None


def load_simulation(path: Path, verbose: bool = False) -> LoadedSimulation:
    """Build a solver from a ``.py`` script or a ``.json`` configuration.

    Scripts may set ``num_steps`` or ``duration`` (default 1000 steps);
    configurations carry a ``run`` section.
    """
    path = Path(path)
    content = path.read_text()

    if path.suffix.lower() == ".json":
        config = load_config(path)
        solver = build_solver(config)
        if config.run.steps is not None:
            num_steps = config.run.steps
        else:
            num_steps = solver.steps_for_duration(config.run.duration)
        return LoadedSimulation(
            solver=solver,
            num_steps=num_steps,
            source=content,
            checkpoint_interval=config.run.checkpoint_interval,
            snapshot_interval=config.run.snapshot_interval,
        )

    namespace = execute_simulation_script(path, content, verbose=verbose)
    solver = validate_solver_object(namespace)

    duration = namespace.get("duration")
    if duration is None:
        num_steps = int(namespace.get("num_steps", 1000))
    else:
        num_steps = solver.steps_for_duration(duration)
    return LoadedSimulation(solver=solver, num_steps=num_steps, source=content)
