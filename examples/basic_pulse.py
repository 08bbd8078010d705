"""
Example: Basic Gaussian Pulse
==============================
A Gaussian-modulated pulse radiated by a short Ez current element in
free space, absorbed by CPML on every face. This demonstrates the
fundamental FDTD workflow: solver creation, boundary, source and probe
placement, and simulation execution.

Run with:
    fdtd-compute examples/basic_pulse.py -o basic_pulse.h5

Grid: 60 × 60 × 60 cells @ 1mm resolution
Domain: 60mm cube (2 wavelengths at 10 GHz)
Source: 10 GHz Gaussian pulse, soft current on the center Ez edge
Probes: Ez at 10mm and 20mm from the source
"""

from maxwell_fdtd import (
    CPML,
    FDTDSolver,
    GaussianPulse,
    PointSource,
)

# Create the FDTD solver
# - 60x60x60 cells
# - 1mm resolution (λ/30 at 10 GHz)
# - Timestep from the Courant limit (0.99 of the stable maximum)
solver = FDTDSolver(
    shape=(60, 60, 60),
    resolution=1e-3,
)

# Absorbing layer 10 cells thick on all six faces
solver.add_boundary(CPML(layers=10))

# Soft current source on the Ez edge at the domain center
solver.add_source(
    PointSource(
        position=(30, 30, 30),
        component="Ez",
        waveform=GaussianPulse(frequency=10e9),
    )
)

# Probes along x, broadside to the current element
solver.add_probe("near", position=(40, 30, 30), component="Ez")
solver.add_probe("far", position=(48, 30, 30), component="Ez", reflection_gate=400)

# Capture the Ez field every 20 steps for animation
solver.enable_snapshots(interval=20, components=("Ez",))

# Two nanoseconds covers the pulse and its passage through the CPML
duration = 2e-9

print("=" * 60)
print("FDTD Simulation: Basic Gaussian Pulse")
print("=" * 60)
print(f"Grid shape: {solver.grid.shape}")
print(f"Domain extent: {solver.grid.physical_extent()[0] * 1e3:.1f} mm cube")
print(f"Timestep: {solver.dt * 1e12:.3f} ps")
print(f"Steps: {solver.steps_for_duration(duration)}")
print("=" * 60)

# Analyze in Python:
#   >>> from maxwell_fdtd.io import HDF5ResultReader
#   >>> with HDF5ResultReader("basic_pulse.h5") as reader:
#   ...     ez = reader.load_probe("far")
#   ...     snapshot = reader.load_snapshot(10, "Ez")
