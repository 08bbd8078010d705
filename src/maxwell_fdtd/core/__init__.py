"""Core FDTD solver components."""

from maxwell_fdtd.core.fields import FieldGrid
from maxwell_fdtd.core.grid import NonuniformGrid, UniformGrid
from maxwell_fdtd.core.monitors import (
    DFTAccumulator,
    FrequencyMonitor,
    FrequencyResult,
    PortWaves,
    Probe,
)
from maxwell_fdtd.core.ports import LumpedPort, Port, RectangularWaveguidePort
from maxwell_fdtd.core.solver import (
    FDTDSolver,
    ProgressRecord,
    SimulationContext,
    SimulationResult,
    SolverState,
    StepStatus,
)
from maxwell_fdtd.core.sources import (
    EXCITATION_DISPATCH,
    ExcitationKind,
    PlaneWaveSource,
    PointSource,
)
from maxwell_fdtd.core.waveforms import ContinuousWave, GaussianPulse

__all__ = [
    "FDTDSolver",
    "SimulationContext",
    "SimulationResult",
    "SolverState",
    "StepStatus",
    "ProgressRecord",
    "FieldGrid",
    "UniformGrid",
    "NonuniformGrid",
    "GaussianPulse",
    "ContinuousWave",
    "ExcitationKind",
    "EXCITATION_DISPATCH",
    "PointSource",
    "PlaneWaveSource",
    "Port",
    "LumpedPort",
    "RectangularWaveguidePort",
    "Probe",
    "FrequencyMonitor",
    "FrequencyResult",
    "PortWaves",
    "DFTAccumulator",
]
