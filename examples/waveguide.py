"""
Example: WR-90 Waveguide with a Dielectric Slab
===============================================
Two-port S-parameters of a PTFE slab filling a section of WR-90
rectangular waveguide, driven in the TE10 mode. The guide walls are the
PEC outer faces of the domain; CPML terminates only the guide axis.

Run with:
    fdtd-compute examples/waveguide.py -o waveguide.h5

Grid: 240 × 45 × 20 cells @ 0.508mm resolution
Guide: a = 22.86mm, b = 10.16mm, TE10 cutoff 6.56 GHz
Slab: 10.16mm of PTFE (εr 2.1) at the guide midpoint
Ports: TE10 at x = 40 (excited, +x) and x = 200 (passive, -x)

Learning objectives:
- Waveguide mode ports and modal wave splitting
- Cutoff frequencies and evanescent modes
- S11/S21 of a two-port and its passivity
"""

import numpy as np

from maxwell_fdtd import (
    CPML,
    VACUUM,
    FDTDSolver,
    GaussianPulse,
    RectangularWaveguidePort,
)
from maxwell_fdtd.materials import PTFE

# =============================================================================
# Waveguide Theory
# =============================================================================
# For TE_mn modes of an a × b guide the cutoff frequency is
#
#   f_c(m,n) = (c/2) × sqrt((m/a)² + (n/b)²)
#
# The WR-90 band (8.2-12.4 GHz) sits between the TE10 cutoff and the
# TE20 cutoff at 13.1 GHz, so only the dominant mode propagates.

resolution = 0.508e-3
a_cells, b_cells = 45, 20
shape = (240, a_cells, b_cells)

c = 299792458.0
f_c10 = c / (2 * a_cells * resolution)
f_c20 = c / (a_cells * resolution)

material_ids = np.zeros(shape, dtype=np.int32)
material_ids[110:130, :, :] = 1

frequencies = np.linspace(8.2e9, 12.4e9, 85)

solver = FDTDSolver(
    shape=shape,
    resolution=resolution,
    material_ids=material_ids,
    materials={0: VACUUM, 1: PTFE},
    frequencies=frequencies,
)

# Only the guide axis is open; the transverse faces are the walls
solver.add_boundary(CPML(layers=12, axes="x"))

bounds = ((0, a_cells), (0, b_cells))

solver.add_port(
    RectangularWaveguidePort(
        "in",
        axis="x",
        index=40,
        bounds=bounds,
        mode=(1, 0),
        direction=1,
        waveform=GaussianPulse(frequency=10.3e9, bandwidth=6e9),
    )
)
solver.add_port(
    RectangularWaveguidePort(
        "out",
        axis="x",
        index=200,
        bounds=bounds,
        mode=(1, 0),
        direction=-1,
    )
)

# TE10 has Ey maximal at the guide center
solver.add_probe("center", position=(160, a_cells // 2, b_cells // 2), component="Ey")

# Group velocity collapses near cutoff, so run long enough for the
# low end of the band to clear the guide
duration = 10e-9

print("=" * 60)
print("FDTD Simulation: WR-90 Waveguide")
print("=" * 60)
print(f"TE10 cutoff: {f_c10 / 1e9:.2f} GHz")
print(f"TE20 cutoff: {f_c20 / 1e9:.2f} GHz")
print(f"Timestep: {solver.dt * 1e12:.3f} ps, {solver.steps_for_duration(duration)} steps")
print("=" * 60)

# Analyze in Python:
#   >>> from maxwell_fdtd.io import HDF5ResultReader
#   >>> with HDF5ResultReader("waveguide.h5") as reader:
#   ...     s = reader.load_s_parameters()
#   >>> s.db("in", "in"), s.db("out", "in"), s.passivity_margin()
