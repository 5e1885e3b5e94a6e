"""
Solvers Module
==============

Active set, linear and Newton solvers, time stepping, and mesh adaptivity
control.
"""

from .solution_history import SolutionHistory
from .active_set import ActiveSet, ActiveSetTracker
from .linear_solver import LinearSolver
from .newton_solver import (
    NewtonActiveSetSolver,
    NewtonConfig,
    NewtonResult,
    NewtonStatus,
    IterationRecord,
)
from .time_stepping import (
    TimeSteppingTable,
    TimeStepController,
    TimeState,
    StepOutcome,
    StepRecord,
)
from .mesh_refiner import AdaptiveMeshRefiner

__all__ = [
    "SolutionHistory",
    "ActiveSet",
    "ActiveSetTracker",
    "LinearSolver",
    "NewtonActiveSetSolver",
    "NewtonConfig",
    "NewtonResult",
    "NewtonStatus",
    "IterationRecord",
    "TimeSteppingTable",
    "TimeStepController",
    "TimeState",
    "StepOutcome",
    "StepRecord",
    "AdaptiveMeshRefiner",
]
