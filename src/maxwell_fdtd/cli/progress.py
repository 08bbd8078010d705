"""Progress display for FDTD simulations.

Provides rich terminal UI for real-time simulation progress tracking including:
- Progress bar with percentage
- Elapsed time and ETA
- Computational throughput (Mcells/s)
- Peak field magnitude
- Memory usage
"""

import time
from typing import TYPE_CHECKING

import psutil
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from maxwell_fdtd.core.fields import estimate_memory_bytes

if TYPE_CHECKING:
    from maxwell_fdtd.core.solver import FDTDSolver, ProgressRecord


def format_time(seconds: float) -> str:
    """Format time duration for display.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string like "1m 23s" or "2h 15m"
    """
    if seconds < 60:
        return f"{seconds:.0f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs:02d}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes:02d}m"


def format_bytes(num_bytes: float) -> str:
    """Format byte count for display, e.g. "1.5 GB"."""
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if abs(num_bytes) < 1024.0:
            return f"{num_bytes:.1f} {unit}"
        num_bytes /= 1024.0
    return f"{num_bytes:.1f} PB"


def format_frequency(hz: float) -> str:
    for unit, scale in (("GHz", 1e9), ("MHz", 1e6), ("kHz", 1e3)):
        if abs(hz) >= scale:
            return f"{hz / scale:.3g} {unit}"
    return f"{hz:.3g} Hz"


class SimulationProgress:
    """Real-time progress display driven by solver progress records.

    Example:
        >>> progress = SimulationProgress(console, solver, num_steps)
        >>> solver.run(steps=num_steps, callback=progress.update)
        >>> progress.finish()
    """

    def __init__(
        self, console: Console, solver: "FDTDSolver", num_steps: int, update_interval: float = 0.1
    ):
        """Initialize progress display.

        Args:
            console: Rich console instance
            solver: FDTD solver instance
            num_steps: Number of timesteps in this run
            update_interval: Minimum time between updates (seconds)
        """
        self.console = console
        self.solver = solver
        self.num_steps = num_steps
        self.update_interval = update_interval

        self.start_time = time.time()
        self.start_step = solver.step_count
        self.last_update = 0.0
        self.peak_memory = 0
        self._finished = False

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            TextColumn("•"),
            TimeRemainingColumn(),
            TextColumn("{task.fields[stats]}", style="dim"),
            console=console,
        )
        self.task = self.progress.add_task("Computing", total=num_steps, stats="")
        self.progress.start()

    def update(self, record: "ProgressRecord") -> None:
        """Update the display from a solver progress record.

        Updates are rate-limited except for the final record of a run.
        """
        current_time = time.time()
        done = record.timestep - self.start_step
        final = record.timestep >= record.total_timesteps

        if not final and current_time - self.last_update < self.update_interval:
            return

        elapsed = current_time - self.start_time
        if elapsed > 0 and done > 0:
            throughput_mcells = done * self.solver.grid.num_cells / elapsed / 1e6
        else:
            throughput_mcells = 0.0

        current_memory = psutil.Process().memory_info().rss
        self.peak_memory = max(self.peak_memory, current_memory)

        stats = " | ".join(
            [
                f"{throughput_mcells:.1f} Mcells/s",
                f"|E|max {record.max_field_magnitude:.3g} V/m",
                f"mem {format_bytes(current_memory)}",
            ]
        )
        self.progress.update(self.task, completed=done, stats=stats)
        self.last_update = current_time

    def finish(self):
        """Stop the progress bar. Safe to call more than once."""
        if self._finished:
            return
        self._finished = True
        self.progress.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finish()


def print_simulation_info(console: Console, solver: "FDTDSolver", output_path, num_steps: int):
    """Print simulation parameters before running.

    Args:
        console: Rich console instance
        solver: FDTD solver instance
        output_path: Path to output file
        num_steps: Number of timesteps to run
    """
    grid = solver.grid
    num_cells = grid.num_cells

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", style="white")

    shape_str = f"{grid.shape[0]} × {grid.shape[1]} × {grid.shape[2]}"
    table.add_row("Grid", f"{shape_str} ({num_cells / 1e6:.2f}M cells)")

    if grid.is_uniform:
        res_str = f"{grid.resolution * 1e3:.3f} mm"
    else:
        res_str = f"{grid.min_spacing * 1e3:.3f}–{grid.max_spacing * 1e3:.3f} mm"
    table.add_row("Resolution", res_str)

    table.add_row("Timestep", f"{solver.dt:.3e} s (Courant {solver.courant:.3f})")
    table.add_row("Duration", f"{num_steps} steps ({solver.dt * num_steps:.3e} s)")
    if solver.step_count:
        table.add_row("Resume from", f"step {solver.step_count}")

    table.add_row("Boundaries", ", ".join(repr(b) for b in solver.boundaries) or "PEC walls")
    if solver.excitations:
        table.add_row("Excitations", str(len(solver.excitations)))
    if solver.ports:
        names = ", ".join(
            f"{p.name}{' (excited)' if p.excited else ''}" for p in solver.ports.values()
        )
        table.add_row("Ports", names)
    if solver.frequencies is not None and len(solver.frequencies):
        f = solver.frequencies
        table.add_row(
            "Frequencies",
            f"{format_frequency(f[0])} – {format_frequency(f[-1])} ({len(f)} points)",
        )

    table.add_row("Est. memory", format_bytes(estimate_memory_bytes(grid.shape)))
    table.add_row("Output", str(output_path))

    console.print(table)
    console.print()
