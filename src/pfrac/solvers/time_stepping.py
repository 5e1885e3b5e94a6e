"""
Time Stepping
=============

Step-size table and the retry loop around the Newton solver.

Each step is attempted until it is accepted:

    ACCEPTED            Newton converged and the mesh is fine enough
    RETRY_SMALLER_STEP  Newton diverged; redo the step with dt / 10
    RETRY_REFINED       Newton converged but the mesh was refined; redo
                        the step on the new mesh with the same dt
    FATAL               dt / 10 would drop below the minimum step size
"""

import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple, TYPE_CHECKING

from ..exceptions import FatalNonConvergence, NonConvergence

if TYPE_CHECKING:
    from .newton_solver import NewtonResult

# Relative slack for comparisons of accumulated times and step sizes
_RELATIVE_SLACK = 1e-12


class TimeSteppingTable:
    """
    Piecewise-constant step size as a function of time.

    The step size at time t is that of the last entry whose threshold
    does not exceed t (the first entry before any threshold).

    Attributes:
        thresholds: start time of each entry, increasing
        time_steps: step size of each entry
    """

    def __init__(self, table: Sequence[Tuple[float, float]]):
        """
        Args:
            table: list of (time_threshold, step_size) pairs
        """
        table = np.asarray(table, dtype=np.float64)
        if table.ndim != 2 or table.shape[1] != 2 or len(table) == 0:
            raise ValueError("time stepping table must be a non-empty list of (time, dt) pairs")
        if np.any(table[:, 1] <= 0):
            raise ValueError("time steps must be positive")

        order = np.argsort(table[:, 0], kind='stable')
        self.thresholds = table[order, 0]
        self.time_steps = table[order, 1]

    def get_time_step(self, time: float) -> float:
        """Step size to use for a step starting at `time`."""
        idx = np.searchsorted(self.thresholds, time * (1 + _RELATIVE_SLACK) + _RELATIVE_SLACK,
                              side='right') - 1
        return float(self.time_steps[max(idx, 0)])


class StepOutcome(Enum):
    ACCEPTED = 'accepted'
    RETRY_SMALLER_STEP = 'retry_smaller_step'
    RETRY_REFINED = 'retry_refined'
    FATAL = 'fatal'


@dataclass
class StepRecord:
    """One attempt of a time step."""
    step_number: int
    time: float
    time_step: float
    outcome: StepOutcome
    n_newton_iterations: int
    residual_norm: float


@dataclass
class TimeState:
    """Clock of the simulation."""
    time: float = 0.0
    time_step: float = 0.0
    old_time_step: float = 0.0
    step_number: int = 0
    attempts: List[StepRecord] = field(default_factory=list)

    @property
    def time_steps(self) -> Tuple[float, float]:
        return (self.time_step, self.old_time_step)


class TimeStepController:
    """
    Drives a problem through time with step cutting and mesh-redo.

    The problem object provides the hooks:
        begin_step()                      old_old <- old <- solution
        restore_step()                    solution <- old
        solve_step(time, time_steps)      -> NewtonResult
        needs_refinement()                -> bool
        refine()                          remesh and transfer the history
        accept_step(step_number, time, time_steps, result)

    Attributes:
        table: TimeSteppingTable
        t_max: end time
        minimum_time_step: smallest admissible step size
        cut_factor: step-size divisor on non-convergence
        verbose: print step banners
        state: TimeState
    """

    def __init__(self, table: TimeSteppingTable, t_max: float,
                 minimum_time_step: float, cut_factor: float = 10.0,
                 verbose: bool = True):
        if t_max <= 0:
            raise ValueError(f"t_max must be positive, got {t_max}")
        if minimum_time_step <= 0:
            raise ValueError(f"minimum_time_step must be positive, got {minimum_time_step}")
        if cut_factor <= 1:
            raise ValueError(f"cut_factor must exceed 1, got {cut_factor}")
        self.table = table
        self.t_max = t_max
        self.minimum_time_step = minimum_time_step
        self.cut_factor = cut_factor
        self.verbose = verbose
        self.state = TimeState()

    def _finished(self) -> bool:
        return self.state.time >= self.t_max * (1 - _RELATIVE_SLACK)

    def attempt(self, problem, time: float,
                time_steps: Tuple[float, float]) -> Tuple[StepOutcome, 'NewtonResult']:
        """
        Solve one attempt of a step and classify the result.

        Args:
            problem: object implementing the controller hooks
            time: end time of the step
            time_steps: (dt, dt_old)

        Returns:
            outcome, Newton result
        """
        result = problem.solve_step(time, time_steps)
        if not result.converged:
            next_step = time_steps[0] / self.cut_factor
            if next_step < self.minimum_time_step * (1 - _RELATIVE_SLACK):
                return StepOutcome.FATAL, result
            return StepOutcome.RETRY_SMALLER_STEP, result
        if problem.needs_refinement():
            return StepOutcome.RETRY_REFINED, result
        return StepOutcome.ACCEPTED, result

    def run(self, problem, max_steps: Optional[int] = None) -> List[StepRecord]:
        """
        Advance until t_max.

        Args:
            problem: object implementing the controller hooks
            max_steps: optional limit on the number of accepted steps

        Returns:
            records of all attempts

        Raises:
            FatalNonConvergence: if a step fails at the minimum step size
        """
        state = self.state
        accepted = 0

        while not self._finished():
            if max_steps is not None and accepted >= max_steps:
                break

            state.time_step = self.table.get_time_step(state.time)
            state.time += state.time_step
            state.step_number += 1
            problem.begin_step()
            tried = [state.time_step]

            if self.verbose:
                print(f"\n=== Time step {state.step_number}: t = {state.time:.6g}, "
                      f"dt = {state.time_step:.3e} ===")

            while True:
                outcome, result = self.attempt(problem, state.time, state.time_steps)
                state.attempts.append(StepRecord(state.step_number, state.time,
                                                 state.time_step, outcome,
                                                 result.n_iterations, result.residual_norm))

                if outcome is StepOutcome.ACCEPTED:
                    problem.accept_step(state.step_number, state.time,
                                        state.time_steps, result)
                    state.old_time_step = state.time_step
                    accepted += 1
                    break

                if outcome is StepOutcome.RETRY_REFINED:
                    if self.verbose:
                        print("  Mesh refined, repeating time step")
                    problem.refine()
                    continue

                failure = NonConvergence(state.time, state.time_step, result.n_iterations)
                if outcome is StepOutcome.FATAL:
                    raise FatalNonConvergence(state.time, state.time_step,
                                              self.minimum_time_step, tried) from failure

                state.time -= state.time_step
                state.time_step /= self.cut_factor
                state.time += state.time_step
                problem.restore_step()
                tried.append(state.time_step)
                if self.verbose:
                    print(f"  {failure}, reducing time step to {state.time_step:.3e}")

        return state.attempts
