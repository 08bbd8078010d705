"""Exception taxonomy for the FDTD solver.

Configuration problems are detected before any stepping occurs and are
raised synchronously. Divergence is fatal to a run. Resource exhaustion
is reported at initialization so the caller can retry with a coarser
grid. Cancellation is not an error: it is requested through a
:class:`CancellationToken` and honoured at the next step boundary.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from numpy.typing import NDArray


class MaxwellFDTDError(Exception):
    """Base class for all solver errors."""


class ConfigurationError(MaxwellFDTDError, ValueError):
    """Invalid mesh, material, excitation, monitor or timestep."""


class DivergenceError(MaxwellFDTDError, RuntimeError):
    """A non-finite field value was detected during stepping.

    Attributes:
        step: Timestep at which the divergence was detected
        last_stable_step: Last timestep known to hold finite fields
        snapshot: Copy of the field arrays at detection, keyed by component
    """

    def __init__(
        self,
        message: str,
        step: int,
        last_stable_step: int,
        snapshot: dict[str, NDArray] | None = None,
    ):
        super().__init__(message)
        self.step = step
        self.last_stable_step = last_stable_step
        self.snapshot = snapshot or {}


class ResourceExhaustionError(MaxwellFDTDError, MemoryError):
    """Not enough memory to allocate the requested grid.

    Attributes:
        required_bytes: Estimated allocation size
        available_bytes: Memory available (or the configured limit)
    """

    def __init__(self, message: str, required_bytes: int, available_bytes: int | None):
        super().__init__(message)
        self.required_bytes = required_bytes
        self.available_bytes = available_bytes


class CancellationToken:
    """Cooperative cancellation signal shared with a running solver.

    The solver polls :attr:`cancelled` once per timestep, so cancelling
    from another thread (or a signal handler) stops the run cleanly at
    the next step boundary.

    Example:
        >>> token = CancellationToken()
        >>> threading.Timer(10.0, token.cancel).start()
        >>> result = solver.run(steps=100_000, cancel_token=token)
        >>> result.state
        <SolverState.CANCELLED: 'cancelled'>
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Request cancellation."""
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """True once :meth:`cancel` has been called."""
        return self._event.is_set()
