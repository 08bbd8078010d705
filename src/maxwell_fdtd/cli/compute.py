"""Command-line tool for running FDTD simulations.

The fdtd-compute CLI runs a simulation script or JSON configuration with
progress tracking, checkpointing and HDF5 output.
"""

import hashlib
import logging
import signal
import time
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from maxwell_fdtd.core.solver import SolverState
from maxwell_fdtd.errors import (
    CancellationToken,
    ConfigurationError,
    DivergenceError,
    ResourceExhaustionError,
)

from .executor import RestrictedImportError, load_simulation
from .progress import SimulationProgress, format_time, print_simulation_info

console = Console()

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


def _configure_logging(verbose: bool) -> None:
    level = logging.INFO if verbose else logging.WARNING
    root = logging.getLogger("maxwell_fdtd")
    root.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=console, show_path=verbose))


@click.command()
@click.argument("script", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output file path (default: results_{hash}.h5)",
)
@click.option("--steps", "-n", type=int, help="Override the number of timesteps")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output with debug info")
@click.option("--dry-run", is_flag=True, help="Validate the simulation without running it")
@click.option(
    "--checkpoint",
    type=click.Path(path_type=Path),
    help="Checkpoint file, written periodically and when interrupted",
)
@click.option("--checkpoint-interval", type=int, help="Write a checkpoint every N steps")
@click.option(
    "--resume",
    type=click.Path(exists=True, path_type=Path),
    help="Restore solver state from a checkpoint before running",
)
@click.option(
    "--snapshot-interval",
    type=int,
    help="Save E/H field snapshots every N steps to HDF5 (warning: increases file size)",
)
@click.version_option(version="0.1.0", prog_name="fdtd-compute")
@click.pass_context
def main(
    ctx: click.Context,
    script: Path,
    output: Path | None,
    steps: int | None,
    verbose: bool,
    dry_run: bool,
    checkpoint: Path | None,
    checkpoint_interval: int | None,
    resume: Path | None,
    snapshot_interval: int | None,
):
    """Run an FDTD simulation from a Python script or JSON configuration.

    SCRIPT is either a Python file that defines a 'solver' variable
    holding an FDTDSolver, or a .json configuration file. The run length
    comes from 'num_steps'/'duration' in the script or the 'run' section
    of the configuration, unless --steps is given.

    Example script:

    \b
        from maxwell_fdtd import FDTDSolver, CPML, GaussianPulse, PointSource
        solver = FDTDSolver(shape=(60, 60, 60), resolution=1e-3)
        solver.add_boundary(CPML(layers=10))
        solver.add_source(PointSource((30, 30, 30), "Ez", GaussianPulse(frequency=10e9)))
        solver.add_probe("center", (32, 30, 30))
        num_steps = 2000

    Pressing Ctrl-C stops the run at the next step; with --checkpoint the
    state is saved so the run can continue with --resume.

    Exit codes: 0 on success, 1 on error, 130 when interrupted.
    """
    ctx.exit(
        run_simulation(
            script,
            output=output,
            steps=steps,
            verbose=verbose,
            dry_run=dry_run,
            checkpoint=checkpoint,
            checkpoint_interval=checkpoint_interval,
            resume=resume,
            snapshot_interval=snapshot_interval,
        )
    )


def run_simulation(
    script: Path,
    output: Path | None = None,
    steps: int | None = None,
    verbose: bool = False,
    dry_run: bool = False,
    checkpoint: Path | None = None,
    checkpoint_interval: int | None = None,
    resume: Path | None = None,
    snapshot_interval: int | None = None,
) -> int:
    """Load and run a simulation, reporting to the console. Returns an exit code."""
    _configure_logging(verbose)
    try:
        console.print(f"\n[bold]FDTD Simulation:[/bold] {script.name}", style="blue")
        console.print("─" * 60)

        script_content = script.read_text()
        script_hash = hashlib.sha256(script_content.encode()).hexdigest()
        if verbose:
            console.print(f"Script hash: {script_hash}")

        if output is None:
            output = Path(f"results_{script_hash[:8]}.h5")

        console.print("Loading simulation...", style="dim")
        try:
            loaded = load_simulation(script, verbose=verbose)
        except RestrictedImportError as e:
            console.print(f"\n[bold red]Security Error:[/bold red] {e}")
            return EXIT_ERROR
        except SyntaxError as e:
            console.print("\n[bold red]Syntax Error in script:[/bold red]")
            console.print(f"  {e}")
            return EXIT_ERROR
        except (ConfigurationError, ValueError) as e:
            console.print(f"\n[bold red]Configuration Error:[/bold red] {e}")
            return EXIT_ERROR
        except ResourceExhaustionError as e:
            console.print(f"\n[bold red]Out of memory:[/bold red] {e}")
            return EXIT_ERROR

        solver = loaded.solver
        num_steps = steps if steps is not None else loaded.num_steps
        if checkpoint_interval is None:
            checkpoint_interval = loaded.checkpoint_interval
        if snapshot_interval is None:
            snapshot_interval = loaded.snapshot_interval
        if checkpoint_interval is not None and checkpoint is None:
            checkpoint = output.with_suffix(".ckpt.h5")

        if resume is not None:
            solver.load_checkpoint(resume)
            console.print(f"Resumed from checkpoint at step {solver.step_count}")
            num_steps = max(num_steps - solver.step_count, 0)

        print_simulation_info(console, solver, output, num_steps)

        if dry_run:
            console.print("[yellow]Dry run - simulation not executed[/yellow]")
            return EXIT_OK

        token = CancellationToken()

        def _on_sigint(signum, frame):
            token.cancel("interrupted by user")

        previous_handler = signal.signal(signal.SIGINT, _on_sigint)
        start_time = time.time()
        progress = SimulationProgress(console, solver, num_steps)
        try:
            result = solver.run(
                steps=num_steps,
                output_file=str(output),
                script_content=script_content,
                callback=progress.update,
                cancel_token=token,
                checkpoint_path=checkpoint,
                checkpoint_interval=checkpoint_interval,
                snapshot_interval=snapshot_interval,
            )
        except DivergenceError as e:
            progress.finish()
            console.print(f"\n[bold red]Simulation diverged:[/bold red] {e}")
            console.print(
                "[yellow]Reduce the Courant number or check material and source setup.[/yellow]"
            )
            return EXIT_ERROR
        except Exception as e:
            progress.finish()
            console.print(f"\n[bold red]Simulation Error:[/bold red] {e}")
            if verbose:
                console.print_exception()
            return EXIT_ERROR
        finally:
            progress.finish()
            signal.signal(signal.SIGINT, previous_handler)

        runtime = time.time() - start_time

        if result.state is SolverState.CANCELLED:
            console.print(f"\n[yellow]Interrupted at step {result.steps_completed}[/yellow]")
            if result.checkpoint_path is not None:
                console.print(f"  Checkpoint: {result.checkpoint_path} (continue with --resume)")
            return EXIT_INTERRUPTED

        console.print("─" * 60)
        console.print("✓ [bold green]Simulation complete![/bold green]")

        if output.exists():
            file_size = output.stat().st_size
            console.print(f"  Output: {output} ({file_size / 1e6:.1f} MB)")
        else:
            console.print(f"  Output: {output}")

        console.print(f"  Runtime: {format_time(runtime)}")
        if runtime > 0:
            throughput = num_steps * solver.grid.num_cells / runtime / 1e6
            console.print(f"  Average throughput: {throughput:.1f} Mcells/s")

        for probe_name, level in result.diagnostics.get("pml_reflection_db", {}).items():
            console.print(f"  Boundary reflection at '{probe_name}': {level:.1f} dB")
        if result.frequency is not None and result.frequency.s_parameters is not None:
            console.print(f"  {result.frequency.s_parameters!r}")
        for box, patterns in result.far_field.items():
            for pattern in patterns:
                console.print(
                    f"  Far field '{box}' @ {pattern.frequency / 1e9:.3f} GHz: "
                    f"D = {pattern.peak_directivity_db:.2f} dBi"
                )

        if verbose:
            console.print("\n[dim]Results can be analyzed with HDF5 tools (h5py, HDFView)[/dim]")

        return EXIT_OK

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            console.print_exception()
        return EXIT_ERROR


if __name__ == "__main__":
    main()
