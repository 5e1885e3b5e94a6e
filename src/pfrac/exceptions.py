"""
Exceptions
==========

Error types raised by the pressurized phase-field solver.
"""

from typing import Optional, Sequence


class PhaseFieldError(Exception):
    """Base class for all solver errors."""


class NonConvergence(PhaseFieldError):
    """
    Newton iteration failed to converge within its iteration budget.

    Attributes:
        time: simulation time of the failed attempt
        time_step: step size of the failed attempt
        n_iterations: number of Newton iterations performed
    """

    def __init__(self, time: float, time_step: float,
                 n_iterations: Optional[int] = None,
                 message: Optional[str] = None):
        self.time = time
        self.time_step = time_step
        self.n_iterations = n_iterations
        if message is None:
            message = (f"Newton solver did not converge at t = {time:.6g} "
                       f"(dt = {time_step:.3e})")
        super().__init__(message)


class FatalNonConvergence(NonConvergence):
    """
    Non-convergence persisted down to the minimum time step.

    Attributes:
        minimum_time_step: smallest admissible step size
        attempted_time_steps: step sizes tried for the failing step, in order
    """

    def __init__(self, time: float, time_step: float,
                 minimum_time_step: float,
                 attempted_time_steps: Sequence[float] = ()):
        self.minimum_time_step = minimum_time_step
        self.attempted_time_steps = list(attempted_time_steps)
        message = (f"Time step dropped below the minimum {minimum_time_step:.3e} "
                   f"at t = {time:.6g} after {len(self.attempted_time_steps)} "
                   f"attempts (last dt = {time_step:.3e})")
        super().__init__(time, time_step, message=message)

    @property
    def n_cuts(self) -> int:
        """Number of step-size reductions performed before giving up."""
        return max(len(self.attempted_time_steps) - 1, 0)


class ConfigurationError(PhaseFieldError, ValueError):
    """Missing or malformed simulation parameter."""


class MeshIOError(PhaseFieldError, IOError):
    """Mesh file could not be read or contains no usable cells."""
