"""Pytest configuration for the maxwell-fdtd test suite.

Shared fixtures build small solvers that step in milliseconds; physics
validation runs that need larger domains are marked ``slow``.
"""

import logging

import numpy as np
import pytest

from maxwell_fdtd import FDTDSolver, GaussianPulse, UniformGrid


def pytest_configure(config):
    """Keep solver logging quiet unless a test asks for it."""
    logging.getLogger("maxwell_fdtd").setLevel(logging.WARNING)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def small_grid():
    """12-cell cube at 1 mm."""
    return UniformGrid(shape=(12, 12, 12), resolution=1e-3)


@pytest.fixture
def small_solver():
    """Small PEC-walled vacuum solver for fast tests."""
    return FDTDSolver(shape=(12, 12, 12), resolution=1e-3)


@pytest.fixture
def pulse():
    """10 GHz Gaussian pulse, matched to 1 mm cells."""
    return GaussianPulse(frequency=10e9)


@pytest.fixture
def band():
    """Analysis frequencies around 10 GHz."""
    return np.linspace(5e9, 15e9, 11)
