"""I/O and data management for FDTD results."""

from maxwell_fdtd.io.checkpoint import (
    load_checkpoint,
    save_checkpoint,
)
from maxwell_fdtd.io.hdf5 import (
    HDF5ResultReader,
    HDF5ResultWriter,
)

__all__ = [
    "HDF5ResultWriter",
    "HDF5ResultReader",
    "save_checkpoint",
    "load_checkpoint",
]
