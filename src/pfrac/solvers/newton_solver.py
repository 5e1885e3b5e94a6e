"""
Newton Active-Set Solver
========================

Newton iteration for the coupled displacement/phase-field system under a
given pressure, with irreversibility enforced by an active set.

Algorithm:
    For newton_step = 0, 1, ..., max_iterations - 1:
        If newton_step > 0:
            1. Evaluate the residual and grow the active set
            2. error = |R| with Dirichlet and active entries removed
            3. Converged if the active set did not change and error < tol
        4. Assemble the Jacobian, eliminate Dirichlet dofs (zero increment)
           and active dofs (increment towards their pinned value)
        5. Solve for the increment
        6. Backtracking line search on the constrained residual norm
    Budget exhausted: diverged
"""

import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, TYPE_CHECKING

from .active_set import ActiveSet, ActiveSetTracker
from .linear_solver import LinearSolver
from ..assembly.boundary_conditions import apply_dirichlet_bc, merge_bcs

if TYPE_CHECKING:
    from .solution_history import SolutionHistory
    from ..assembly.coupled_assembly import CoupledResidualAssembler


@dataclass
class NewtonConfig:
    """Configuration for the Newton solver."""
    tolerance: float = 1e-5          # Residual tolerance, also the activity threshold
    max_iterations: int = 50         # Newton iteration budget per solve
    max_line_search_steps: int = 5   # Backtracking steps per iteration
    line_search_damping: float = 0.6  # Step reduction per backtracking step
    verbose: bool = True             # Print the iteration table

    def __post_init__(self):
        if self.tolerance <= 0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {self.max_iterations}")
        if self.max_line_search_steps < 1:
            raise ValueError("max_line_search_steps must be at least 1")
        if not 0 < self.line_search_damping < 1:
            raise ValueError("line_search_damping must be in (0, 1)")


class NewtonStatus(Enum):
    CONVERGED = 'converged'
    DIVERGED = 'diverged'


@dataclass
class IterationRecord:
    """One row of the Newton iteration table."""
    iteration: int
    active_set_size: int
    error: float
    linear_iterations: Tuple[int, int] = (0, 0)
    line_search_steps: int = 0


@dataclass
class NewtonResult:
    """Outcome of one Newton solve."""
    status: NewtonStatus
    n_iterations: int
    residual_norm: float
    active_set: ActiveSet
    history: List[IterationRecord] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status is NewtonStatus.CONVERGED


class NewtonActiveSetSolver:
    """
    Newton solver with active-set irreversibility and line search.

    Attributes:
        assembler: CoupledResidualAssembler
        tracker: ActiveSetTracker
        linear_solver: LinearSolver
        config: NewtonConfig
    """

    def __init__(self, assembler: 'CoupledResidualAssembler',
                 tracker: ActiveSetTracker,
                 linear_solver: Optional[LinearSolver] = None,
                 config: Optional[NewtonConfig] = None):
        self.assembler = assembler
        self.tracker = tracker
        self.linear_solver = linear_solver or LinearSolver()
        self.config = config or NewtonConfig()

    def _residual(self, solution: np.ndarray, history: 'SolutionHistory',
                  pressure: np.ndarray, time_steps: Tuple[float, float]) -> np.ndarray:
        return self.assembler.assemble(solution, pressure, history.old_solution,
                                       history.old_old_solution, time_steps,
                                       include_pressure=True,
                                       assemble_matrix=False).residual

    @staticmethod
    def constrained_norm(residual: np.ndarray, dirichlet_dofs: np.ndarray,
                         active: ActiveSet) -> float:
        """Euclidean norm of the residual without constrained entries."""
        masked = ActiveSetTracker.mask_residual(residual, active)
        masked[np.asarray(dirichlet_dofs, dtype=np.int64)] = 0.0
        return float(np.linalg.norm(masked))

    def solve(self, history: 'SolutionHistory', pressure: np.ndarray,
              time_steps: Tuple[float, float],
              dirichlet_dofs: np.ndarray) -> NewtonResult:
        """
        Run the Newton iteration on history.solution.

        The Dirichlet values must already be written into history.solution.
        The iterate is updated in place; the active set starts empty.

        Args:
            history: solution history; old vectors are read only
            pressure: nodal pressure field
            time_steps: (dt, dt_old)
            dirichlet_dofs: constrained displacement dofs

        Returns:
            NewtonResult
        """
        config = self.config
        active = ActiveSet.empty()
        error = np.inf
        records: List[IterationRecord] = []
        residual = None
        last_counts, last_search = (0, 0), 0

        if config.verbose:
            print(f"  {'Iter':>4}  {'ASet':>6}  {'error':>10}  {'GMRES':>9}  {'Search':>6}")

        for newton_step in range(config.max_iterations):
            if newton_step > 0:
                if residual is None:
                    residual = self._residual(history.solution, history, pressure, time_steps)
                active, changed = self.tracker.update(history.solution, history.old_solution,
                                                      residual, active, config.tolerance)
                error = self.constrained_norm(residual, dirichlet_dofs, active)
                records.append(IterationRecord(newton_step, len(active), error,
                                               last_counts, last_search))

                if config.verbose:
                    print(f"  {newton_step:>4}  {len(active):>6}  {error:>10.3e}  "
                          f"{last_counts[0]:>4}/{last_counts[1]:<4}  {last_search:>6}")

                if not changed and error < config.tolerance:
                    return NewtonResult(NewtonStatus.CONVERGED, newton_step, error,
                                        active, records)

            last_counts, last_search, residual = self._newton_step(
                history, pressure, time_steps, dirichlet_dofs, active)

        if config.verbose:
            print(f"  Newton solver did not converge in {config.max_iterations} iterations")
        return NewtonResult(NewtonStatus.DIVERGED, config.max_iterations, error,
                            active, records)

    def _newton_step(self, history: 'SolutionHistory', pressure: np.ndarray,
                     time_steps: Tuple[float, float], dirichlet_dofs: np.ndarray,
                     active: ActiveSet) -> Tuple[Tuple[int, int], int, np.ndarray]:
        """
        One damped Newton update of history.solution.

        Returns:
            linear_iterations: (outer, inner) of the linear solve
            line_search_steps: number of step reductions
            residual: residual at the updated iterate
        """
        config = self.config
        solution = history.solution

        system = self.assembler.assemble(solution, pressure, history.old_solution,
                                         history.old_old_solution, time_steps,
                                         include_pressure=True, assemble_matrix=True)
        current_norm = self.constrained_norm(system.residual, dirichlet_dofs, active)

        dirichlet_dofs = np.asarray(dirichlet_dofs, dtype=np.int64)
        bc_dofs, bc_values = merge_bcs(
            (dirichlet_dofs, np.zeros(len(dirichlet_dofs))),
            (active.dofs, active.values - solution[active.dofs]),
        )
        K, F = apply_dirichlet_bc(system.matrix, -system.residual, bc_dofs, bc_values)
        increment, counts = self.linear_solver.solve(K, F)

        damping = 1.0
        for search_step in range(config.max_line_search_steps):
            trial = solution + damping * increment
            ActiveSetTracker.pin(trial, active)
            trial_residual = self._residual(trial, history, pressure, time_steps)
            if self.constrained_norm(trial_residual, dirichlet_dofs, active) <= current_norm:
                break
            damping *= config.line_search_damping

        history.solution = trial
        return counts, search_step, trial_residual
