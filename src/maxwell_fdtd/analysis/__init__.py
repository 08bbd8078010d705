"""Post-processing: network parameters and far-field transforms."""

from maxwell_fdtd.analysis.farfield import (
    FarFieldResult,
    NearFieldBox,
    SurfaceCurrents,
    compute_far_field,
)
from maxwell_fdtd.analysis.network import (
    SParameters,
    bandwidth,
    find_resonance,
    input_impedance,
    to_db,
    vswr,
)

__all__ = [
    # Far field
    "NearFieldBox",
    "SurfaceCurrents",
    "FarFieldResult",
    "compute_far_field",
    # Network
    "SParameters",
    "to_db",
    "vswr",
    "input_impedance",
    "find_resonance",
    "bandwidth",
]
