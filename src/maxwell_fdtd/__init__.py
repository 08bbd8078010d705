"""
Maxwell FDTD - 3D electromagnetic FDTD simulation toolchain.

Main exports:
- FDTDSolver: Yee-grid time-domain solver with run-state machine
- UniformGrid, NonuniformGrid: Structured mesh specifications
- Material, Pole: Dielectric, conducting and dispersive media
- CPML: Convolutional perfectly matched layer
- GaussianPulse, ContinuousWave: Excitation waveforms
- PointSource, PlaneWaveSource, LumpedPort, RectangularWaveguidePort: Excitations
- FrequencyMonitor, Probe: Frequency- and time-domain recording
- NearFieldBox, compute_far_field: Near-to-far-field transform
- SParameters: Network parameters from port waves
"""

from maxwell_fdtd.analysis import (
    FarFieldResult,
    NearFieldBox,
    SParameters,
    SurfaceCurrents,
    bandwidth,
    compute_far_field,
    find_resonance,
    input_impedance,
    to_db,
    vswr,
)
from maxwell_fdtd.boundaries import CPML, estimate_reflection_db
from maxwell_fdtd.core import (
    ContinuousWave,
    ExcitationKind,
    FDTDSolver,
    FieldGrid,
    FrequencyMonitor,
    FrequencyResult,
    GaussianPulse,
    LumpedPort,
    NonuniformGrid,
    PlaneWaveSource,
    PointSource,
    PortWaves,
    Probe,
    ProgressRecord,
    RectangularWaveguidePort,
    SimulationContext,
    SimulationResult,
    SolverState,
    StepStatus,
    UniformGrid,
)
from maxwell_fdtd.errors import (
    CancellationToken,
    ConfigurationError,
    DivergenceError,
    MaxwellFDTDError,
    ResourceExhaustionError,
)
from maxwell_fdtd.materials import (
    AIR,
    COPPER,
    FR4,
    PEC,
    ROGERS_4003C,
    VACUUM,
    Material,
    Pole,
    PoleType,
    get_material,
)

# Submodules for more specific imports
from . import analysis, boundaries, io, materials

__version__ = "0.1.0"

__all__ = [
    # Core solver
    "FDTDSolver",
    "FieldGrid",
    "SimulationContext",
    "SimulationResult",
    "SolverState",
    "StepStatus",
    "ProgressRecord",
    # Grids
    "UniformGrid",
    "NonuniformGrid",
    # Materials
    "Material",
    "Pole",
    "PoleType",
    "get_material",
    "VACUUM",
    "AIR",
    "FR4",
    "ROGERS_4003C",
    "COPPER",
    "PEC",
    # Boundaries
    "CPML",
    "estimate_reflection_db",
    # Excitations
    "GaussianPulse",
    "ContinuousWave",
    "ExcitationKind",
    "PointSource",
    "PlaneWaveSource",
    "LumpedPort",
    "RectangularWaveguidePort",
    # Monitors and results
    "Probe",
    "FrequencyMonitor",
    "FrequencyResult",
    "PortWaves",
    "SParameters",
    "NearFieldBox",
    "SurfaceCurrents",
    "FarFieldResult",
    "compute_far_field",
    "to_db",
    "vswr",
    "input_impedance",
    "find_resonance",
    "bandwidth",
    # Errors
    "MaxwellFDTDError",
    "ConfigurationError",
    "DivergenceError",
    "ResourceExhaustionError",
    "CancellationToken",
    # Submodules
    "analysis",
    "boundaries",
    "io",
    "materials",
]
