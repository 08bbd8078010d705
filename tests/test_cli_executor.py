"""Tests for CLI script executor and the fdtd-compute command."""

import json
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from maxwell_fdtd.cli.compute import EXIT_ERROR, EXIT_OK, main
from maxwell_fdtd.cli.executor import (
    RestrictedImportError,
    execute_simulation_script,
    load_simulation,
    validate_solver_object,
)

CONFIG = {
    "grid": {"shape": [16, 16, 16], "resolution": 1e-3},
    "frequencies": {"start": 5e9, "stop": 15e9, "points": 5},
    "excitations": [
        {"type": "point", "position": [8, 8, 8], "component": "Ez", "waveform": {"frequency": 10e9}}
    ],
    "monitors": [
        {"name": "p", "type": "probe", "position": [10, 8, 8]},
        {"name": "m", "type": "frequency", "region": [8, 8, [6, 10]], "components": ["Ez"]},
    ],
    "run": {"steps": 20},
}


def test_execute_valid_script():
    """Test executing a valid simulation script."""
    script_content = """
from maxwell_fdtd import FDTDSolver

solver = FDTDSolver(shape=(10, 10, 10), resolution=1e-3)
test_value = 42
"""

    with tempfile.NamedTemporaryFile(mode="w", suffix=".py", delete=False) as f:
        f.write(script_content)
        script_path = Path(f.name)

    try:
        namespace = execute_simulation_script(script_path, script_content)

        assert "solver" in namespace
        assert "test_value" in namespace
        assert namespace["test_value"] == 42
    finally:
        script_path.unlink()


def test_execute_script_with_numpy():
    """Test that numpy imports are allowed."""
    script_content = """
import numpy as np

arr = np.array([1, 2, 3])
result = arr.sum()
"""

    with tempfile.NamedTemporaryFile(mode="w", suffix=".py", delete=False) as f:
        f.write(script_content)
        script_path = Path(f.name)

    try:
        namespace = execute_simulation_script(script_path, script_content)

        assert "result" in namespace
        assert namespace["result"] == 6
    finally:
        script_path.unlink()


def test_execute_script_restricted_import():
    """Test that restricted imports are blocked."""
    script_content = """
import os  # Not allowed!

files = os.listdir('.')
"""

    with tempfile.NamedTemporaryFile(mode="w", suffix=".py", delete=False) as f:
        f.write(script_content)
        script_path = Path(f.name)

    try:
        with pytest.raises(RestrictedImportError) as exc_info:
            execute_simulation_script(script_path, script_content)

        assert "os" in str(exc_info.value)
    finally:
        script_path.unlink()


def test_execute_script_syntax_error():
    """Test that syntax errors are propagated."""
    script_content = """
this is not valid python syntax!
"""

    with tempfile.NamedTemporaryFile(mode="w", suffix=".py", delete=False) as f:
        f.write(script_content)
        script_path = Path(f.name)

    try:
        with pytest.raises(SyntaxError):
            execute_simulation_script(script_path, script_content)
    finally:
        script_path.unlink()


def test_validate_solver_valid():
    """Test validating a valid solver object."""
    from maxwell_fdtd import FDTDSolver

    solver = FDTDSolver(shape=(10, 10, 10), resolution=1e-3)
    namespace = {"solver": solver}

    result = validate_solver_object(namespace)
    assert result is solver


def test_validate_solver_missing():
    """Test validation when solver is missing."""
    namespace = {"other_var": 42}

    with pytest.raises(ValueError) as exc_info:
        validate_solver_object(namespace)

    assert "must define a 'solver'" in str(exc_info.value)


def test_validate_solver_invalid():
    """Test validation when solver is not a valid object."""
    namespace = {"solver": "not a solver"}

    with pytest.raises(ValueError) as exc_info:
        validate_solver_object(namespace)

    assert "missing required methods" in str(exc_info.value)


# =============================================================================
# load_simulation
# =============================================================================


def test_load_script_run_length(tmp_path):
    """Scripts set the run length with num_steps or duration."""
    script = tmp_path / "sim.py"
    script.write_text(
        "from maxwell_fdtd import FDTDSolver\n"
        "solver = FDTDSolver(shape=(8, 8, 8), resolution=1e-3)\n"
        "duration = 9.5 * solver.dt\n"
    )

    loaded = load_simulation(script)

    assert loaded.num_steps == 10
    assert loaded.source == script.read_text()


def test_load_script_default_steps(tmp_path):
    script = tmp_path / "sim.py"
    script.write_text(
        "from maxwell_fdtd import FDTDSolver\nsolver = FDTDSolver(shape=(8, 8, 8), resolution=1e-3)\n"
    )
    assert load_simulation(script).num_steps == 1000


def test_load_json_config(tmp_path):
    path = tmp_path / "sim.json"
    config = dict(CONFIG, run={"steps": 20, "checkpoint_interval": 10})
    path.write_text(json.dumps(config))

    loaded = load_simulation(path)

    assert loaded.num_steps == 20
    assert loaded.checkpoint_interval == 10
    assert set(loaded.solver.probes) == {"p"}


def test_load_json_duration(tmp_path):
    path = tmp_path / "sim.json"
    path.write_text(json.dumps(dict(CONFIG, run={"duration": 1e-11})))

    loaded = load_simulation(path)

    assert loaded.num_steps == loaded.solver.steps_for_duration(1e-11)


# =============================================================================
# fdtd-compute
# =============================================================================


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "sim.json"
    path.write_text(json.dumps(CONFIG))
    return path


def test_cli_dry_run(config_file, tmp_path):
    runner = CliRunner()
    output = tmp_path / "out.h5"

    result = runner.invoke(main, [str(config_file), "--dry-run", "-o", str(output)])

    assert result.exit_code == EXIT_OK, result.output
    assert "Dry run" in result.output
    assert not output.exists()


def test_cli_runs_config(config_file, tmp_path):
    runner = CliRunner()
    output = tmp_path / "out.h5"

    result = runner.invoke(main, [str(config_file), "-o", str(output), "--steps", "15"])

    assert result.exit_code == EXIT_OK, result.output
    assert "Simulation complete" in result.output
    assert output.exists()


def test_cli_checkpoint_and_resume(config_file, tmp_path):
    runner = CliRunner()
    checkpoint = tmp_path / "run.ckpt.h5"

    first = runner.invoke(
        main,
        [
            str(config_file),
            "-o", str(tmp_path / "first.h5"),
            "--checkpoint", str(checkpoint),
            "--checkpoint-interval", "10",
            "--steps", "10",
        ],
    )
    assert first.exit_code == EXIT_OK, first.output
    assert checkpoint.exists()

    second = runner.invoke(
        main,
        [str(config_file), "-o", str(tmp_path / "second.h5"), "--resume", str(checkpoint), "--steps", "20"],
    )
    assert second.exit_code == EXIT_OK, second.output
    assert "Resumed from checkpoint at step 10" in second.output


def test_cli_configuration_error(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"grid": {"shape": [8, 8, 8]}, "run": {"steps": 5}}))

    result = CliRunner().invoke(main, [str(path), "-o", str(tmp_path / "out.h5")])

    assert result.exit_code == EXIT_ERROR
    assert "Configuration Error" in result.output


def test_cli_restricted_script(tmp_path):
    script = tmp_path / "evil.py"
    script.write_text("import subprocess\n")

    result = CliRunner().invoke(main, [str(script), "-o", str(tmp_path / "out.h5")])

    assert result.exit_code == EXIT_ERROR
    assert "Security Error" in result.output


def test_cli_divergence(tmp_path):
    path = tmp_path / "unstable.json"
    config = dict(CONFIG, grid={"shape": [12, 12, 12], "resolution": 1e-3, "courant": 1.5})
    config["excitations"] = [
        {"type": "point", "position": [6, 6, 6], "component": "Ez", "waveform": {"frequency": 10e9}}
    ]
    config["monitors"] = []
    config["allow_unstable"] = True
    config["run"] = {"steps": 5000}
    path.write_text(json.dumps(config))

    result = CliRunner().invoke(main, [str(path), "-o", str(tmp_path / "out.h5")])

    assert result.exit_code == EXIT_ERROR
    assert "diverged" in result.output
