"""
Tests for Solvers Module
========================

Active set, linear solver, Newton iteration and time-step control.
"""

import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from scipy.sparse import diags

from pfrac.exceptions import FatalNonConvergence, NonConvergence
from pfrac.mesh.mesh_generators import create_square_mesh, BOTTOM, TOP
from pfrac.mesh.dof_handler import DoFHandler
from pfrac.physics.material import PhaseFieldMaterial
from pfrac.physics.initial_values import defect_phase_field
from pfrac.assembly.coupled_assembly import CoupledResidualAssembler
from pfrac.assembly.boundary_conditions import BoundaryConditionManager, DisplacementBC
from pfrac.solvers.solution_history import SolutionHistory
from pfrac.solvers.active_set import ActiveSet, ActiveSetTracker
from pfrac.solvers.linear_solver import LinearSolver
from pfrac.solvers.newton_solver import (
    NewtonActiveSetSolver, NewtonConfig, NewtonResult, NewtonStatus
)
from pfrac.solvers.time_stepping import (
    TimeSteppingTable, TimeStepController, StepOutcome
)


class TestActiveSet:
    """Tests for immutable active-set snapshots."""

    def test_sorted_and_unique(self):
        active = ActiveSet([8, 2, 5, 2], [0.8, 0.2, 0.5, 0.3])
        assert np.array_equal(active.dofs, [2, 5, 8])
        assert np.allclose(active.values, [0.2, 0.5, 0.8])
        assert len(active) == 3

    def test_read_only(self):
        active = ActiveSet([2], [0.5])
        with pytest.raises(ValueError):
            active.dofs[0] = 5
        with pytest.raises(ValueError):
            active.values[0] = 1.0

    def test_membership_equality(self):
        assert ActiveSet([2, 5], [0.1, 0.2]) == ActiveSet([5, 2], [0.9, 0.9])
        assert ActiveSet([2, 5], [0.1, 0.2]) != ActiveSet([2], [0.1])
        assert ActiveSet.empty() == ActiveSet()
        assert 5 in ActiveSet([2, 5], [0.0, 0.0])
        assert 4 not in ActiveSet([2, 5], [0.0, 0.0])

    def test_union_keeps_pinned_values(self):
        active = ActiveSet([2], [0.5])
        grown = active.union(np.array([2, 8]), np.array([0.9, 0.7]))
        assert np.array_equal(grown.dofs, [2, 8])
        assert np.allclose(grown.values, [0.5, 0.7])
        # Original snapshot unchanged
        assert len(active) == 1

    def test_difference_and_mask(self):
        a = ActiveSet([2, 5, 8], [0, 0, 0])
        b = ActiveSet([5], [0])
        assert np.array_equal(a.difference(b), [2, 8])
        mask = a.mask(10)
        assert mask.sum() == 3
        assert mask[8]


class TestActiveSetTracker:
    """Tests for active-set detection."""

    @pytest.fixture
    def dof_handler(self):
        return DoFHandler(create_square_mesh(1.0, 2))

    def test_only_phase_field_dofs(self, dof_handler):
        dh = dof_handler
        tracker = ActiveSetTracker(dh, penalty=10.0)
        solution = np.ones(dh.n_dofs)
        residual = -np.ones(dh.n_dofs)
        active, changed = tracker.update(solution, solution, residual,
                                         ActiveSet.empty(), 1e-5)
        assert changed
        assert np.array_equal(active.dofs, dh.phase_field_dofs)
        assert np.all(dh.is_phase_field_dof(active.dofs))

    def test_criterion(self, dof_handler):
        dh = dof_handler
        tracker = ActiveSetTracker(dh, penalty=10.0)
        old = np.zeros(dh.n_dofs)
        old[dh.phase_field_dofs] = 0.5
        solution = old.copy()
        # Node 0 increased beyond its old value, node 1 decreased
        solution[dh.dof(0, 'phi')] = 0.6
        solution[dh.dof(1, 'phi')] = 0.4
        residual = np.zeros(dh.n_dofs)

        active, _ = tracker.update(solution, old, residual, ActiveSet.empty(), 1e-5)
        assert dh.dof(0, 'phi') in active
        assert dh.dof(1, 'phi') not in active
        # Pinned to the old value
        assert np.allclose(active.values, 0.5)

    def test_monotone_growth(self, dof_handler):
        dh = dof_handler
        tracker = ActiveSetTracker(dh, penalty=10.0)
        previous = ActiveSet([dh.dof(3, 'phi')], [0.2])
        solution = np.zeros(dh.n_dofs)
        active, changed = tracker.update(solution, solution, np.zeros(dh.n_dofs),
                                         previous, 1e-5)
        assert not changed
        assert active == previous

    def test_mask_and_pin(self):
        active = ActiveSet([1, 3], [0.25, 0.75])
        residual = np.ones(5)
        masked = ActiveSetTracker.mask_residual(residual, active)
        assert np.array_equal(masked, [1, 0, 1, 0, 1])
        assert np.all(residual == 1.0)

        solution = np.zeros(5)
        ActiveSetTracker.pin(solution, active)
        assert np.array_equal(solution, [0, 0.25, 0, 0.75, 0])


class TestLinearSolver:
    """Tests for direct and GMRES solves."""

    @pytest.fixture
    def system(self):
        n = 50
        A = diags([-np.ones(n - 1), 4 * np.ones(n), -np.ones(n - 1)], [-1, 0, 1]).tocsr()
        b = np.linspace(1.0, 2.0, n)
        return A, b

    def test_direct(self, system):
        A, b = system
        x, counts = LinearSolver('direct').solve(A, b)
        assert np.allclose(A @ x, b)
        assert counts == (1, 0)

    def test_gmres(self, system):
        A, b = system
        x, (outer, inner) = LinearSolver('gmres', tolerance=1e-12).solve(A, b)
        assert np.allclose(A @ x, b, atol=1e-8)
        assert outer >= 1

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            LinearSolver('cholesky')


class TestSolutionHistory:
    """Tests for the temporal solution copies."""

    def test_advance_and_restore(self):
        history = SolutionHistory.from_initial(np.zeros(3))
        history.solution[:] = 1.0
        history.advance()
        assert np.all(history.old_solution == 1.0)
        assert np.all(history.old_old_solution == 0.0)

        history.solution[:] = 5.0
        history.restore()
        assert np.all(history.solution == 1.0)
        history.solution[0] = 7.0
        assert history.old_solution[0] == 1.0

    def test_replace(self):
        history = SolutionHistory.from_initial(np.zeros(3))
        vectors = [np.ones(6), 2 * np.ones(6), 3 * np.ones(6)]
        history.replace(vectors)
        vectors[0][:] = 0.0
        assert np.all(history.solution == 1.0)
        assert np.all(history.old_old_solution == 3.0)


def _newton_problem(newton_config=None, top_displacement=1e-3):
    """Unit square with a horizontal defect, pulled at the top."""
    mesh = create_square_mesh(1.0, 8)
    dh = DoFHandler(mesh)
    material = PhaseFieldMaterial(E=1e3, nu=0.3, Gc=1.0, epsilon=0.1, kappa=1e-6,
                                  penalty=10.0)

    initial = dh.new_vector()
    initial[dh.phase_field_dofs] = defect_phase_field(
        mesh.nodes, [((0.0, 0.5), (0.5, 0.5))], 0.07)
    history = SolutionHistory.from_initial(initial)

    bcs = BoundaryConditionManager(dh, [DisplacementBC(BOTTOM, 'y', 0.0),
                                        DisplacementBC(TOP, 'y', top_displacement)])
    bcs.add_point_displacement((0.0, 0.0), 'x')

    assembler = CoupledResidualAssembler(dh, material)
    newton = NewtonActiveSetSolver(
        assembler, ActiveSetTracker(dh, material.penalty), LinearSolver('direct'),
        newton_config or NewtonConfig(tolerance=1e-5, max_iterations=100, verbose=False))
    return dh, history, bcs, newton


class TestNewtonActiveSetSolver:
    """End-to-end tests of the Newton iteration."""

    def test_config_validation(self):
        with pytest.raises(ValueError):
            NewtonConfig(tolerance=0.0)
        with pytest.raises(ValueError):
            NewtonConfig(max_iterations=0)
        with pytest.raises(ValueError):
            NewtonConfig(line_search_damping=1.0)

    def test_converges_on_square(self):
        dh, history, bcs, newton = _newton_problem()
        history.advance()
        bc_dofs = bcs.impose(history.solution, 1.0)
        pressure = np.zeros(dh.n_nodes)

        result = newton.solve(history, pressure, (0.1, 0.1), bc_dofs)

        assert result.converged
        assert result.status is NewtonStatus.CONVERGED
        assert result.residual_norm < 1e-5
        assert result.n_iterations <= 100

        # Boundary values kept
        top = dh.boundary_dofs(TOP, 'y')
        assert np.allclose(history.solution[top], 1e-3)
        bottom = dh.boundary_dofs(BOTTOM, 'y')
        assert np.allclose(history.solution[bottom], 0.0)

        # Active set: phase-field dofs only, pinned to the old values
        active = result.active_set
        assert np.all(dh.is_phase_field_dof(active.dofs))
        assert np.allclose(history.solution[active.dofs], history.old_solution[active.dofs])

        # Irreversibility up to the tolerance
        phi = dh.phase_field_values(history.solution)
        phi_old = dh.phase_field_values(history.old_solution)
        assert np.all(phi <= phi_old + newton.config.tolerance)

    def test_active_set_monotone_within_solve(self):
        dh, history, bcs, newton = _newton_problem()
        history.advance()
        bc_dofs = bcs.impose(history.solution, 1.0)
        result = newton.solve(history, np.zeros(dh.n_nodes), (0.1, 0.1), bc_dofs)

        sizes = [record.active_set_size for record in result.history]
        assert sizes == sorted(sizes)
        assert sizes[-1] == len(result.active_set)

    def test_reports_divergence(self):
        config = NewtonConfig(tolerance=1e-5, max_iterations=1, verbose=False)
        dh, history, bcs, newton = _newton_problem(config)
        history.advance()
        bc_dofs = bcs.impose(history.solution, 1.0)
        result = newton.solve(history, np.zeros(dh.n_nodes), (0.1, 0.1), bc_dofs)

        assert not result.converged
        assert result.status is NewtonStatus.DIVERGED
        assert result.n_iterations == 1

    def test_constrained_norm(self):
        residual = np.array([3.0, 4.0, 12.0, 1.0])
        norm = NewtonActiveSetSolver.constrained_norm(residual, np.array([3]),
                                                      ActiveSet([2], [0.0]))
        assert np.isclose(norm, 5.0)


def _result(converged):
    status = NewtonStatus.CONVERGED if converged else NewtonStatus.DIVERGED
    return NewtonResult(status, 3, 0.0 if converged else 1.0, ActiveSet.empty())


class StubProblem:
    """Problem hooks that converge for small enough steps."""

    def __init__(self, max_converging_step=np.inf, refinements=0):
        self.max_converging_step = max_converging_step
        self.refinements_left = refinements
        self.calls = []
        self.accepted = []

    def begin_step(self):
        self.calls.append('begin')

    def restore_step(self):
        self.calls.append('restore')

    def solve_step(self, time, time_steps):
        self.calls.append(('solve', time, time_steps[0]))
        return _result(time_steps[0] <= self.max_converging_step * (1 + 1e-9))

    def needs_refinement(self):
        return self.refinements_left > 0

    def refine(self):
        self.calls.append('refine')
        self.refinements_left -= 1

    def accept_step(self, step_number, time, time_steps, result):
        self.accepted.append((step_number, time, time_steps))


class TestTimeSteppingTable:
    """Tests for the step-size table."""

    def test_lookup(self):
        table = TimeSteppingTable([(0.0, 0.1), (1.0, 0.05), (2.0, 0.01)])
        assert table.get_time_step(0.0) == 0.1
        assert table.get_time_step(0.5) == 0.1
        assert table.get_time_step(1.0) == 0.05
        assert table.get_time_step(1.9) == 0.05
        assert table.get_time_step(10.0) == 0.01

    def test_accumulated_time_hits_threshold(self):
        table = TimeSteppingTable([(0.0, 0.1), (0.3, 0.05)])
        time = 0.1 + 0.1 + 0.1
        assert table.get_time_step(time) == 0.05

    def test_invalid(self):
        with pytest.raises(ValueError):
            TimeSteppingTable([])
        with pytest.raises(ValueError):
            TimeSteppingTable([(0.0, -0.1)])


class TestTimeStepController:
    """Tests for cutting, redo and acceptance."""

    def test_accepts_every_step(self):
        problem = StubProblem()
        controller = TimeStepController(TimeSteppingTable([(0.0, 0.25)]), 1.0, 1e-6,
                                        verbose=False)
        controller.run(problem)

        assert len(problem.accepted) == 4
        assert np.isclose(problem.accepted[-1][1], 1.0)
        # Old step of the first step is zero, then the previous step size
        assert problem.accepted[0][2] == (0.25, 0.0)
        assert problem.accepted[1][2] == (0.25, 0.25)
        assert all(r.outcome is StepOutcome.ACCEPTED for r in controller.state.attempts)

    def test_step_cut_by_ten(self):
        problem = StubProblem(max_converging_step=1e-3)
        controller = TimeStepController(TimeSteppingTable([(0.0, 1e-2)]), 1e-3, 1e-9,
                                        verbose=False)
        controller.run(problem)

        outcomes = [r.outcome for r in controller.state.attempts]
        assert outcomes == [StepOutcome.RETRY_SMALLER_STEP, StepOutcome.ACCEPTED]
        solves = [c for c in problem.calls if isinstance(c, tuple)]
        assert np.isclose(solves[0][2], 1e-2)
        assert np.isclose(solves[1][2], 1e-3)
        # Retried from the end of the previous step
        assert np.isclose(solves[1][1], 1e-3)
        assert problem.calls.count('restore') == 1
        assert problem.calls.count('begin') == 1

    def test_fatal_after_seven_cuts(self):
        problem = StubProblem(max_converging_step=0.0)
        controller = TimeStepController(TimeSteppingTable([(0.0, 1e-2)]), 1.0, 1e-9,
                                        verbose=False)
        with pytest.raises(FatalNonConvergence) as excinfo:
            controller.run(problem)

        error = excinfo.value
        assert len(error.attempted_time_steps) == 8
        assert error.n_cuts == 7
        assert np.isclose(error.attempted_time_steps[-1], 1e-9)
        assert error.minimum_time_step == 1e-9
        assert isinstance(error, NonConvergence)
        assert isinstance(error.__cause__, NonConvergence)
        assert error.__cause__.time_step == error.time_step
        assert not problem.accepted
        assert controller.state.attempts[-1].outcome is StepOutcome.FATAL

    def test_refinement_redoes_step(self):
        problem = StubProblem(refinements=2)
        controller = TimeStepController(TimeSteppingTable([(0.0, 0.5)]), 0.5, 1e-6,
                                        verbose=False)
        controller.run(problem)

        assert problem.calls.count('refine') == 2
        solves = [c for c in problem.calls if isinstance(c, tuple)]
        assert len(solves) == 3
        # Same time and step size on every redo
        assert all(np.isclose(s[1], 0.5) and np.isclose(s[2], 0.5) for s in solves)
        assert len(problem.accepted) == 1
        assert problem.calls.count('restore') == 0

    def test_max_steps(self):
        problem = StubProblem()
        controller = TimeStepController(TimeSteppingTable([(0.0, 0.1)]), 1.0, 1e-6,
                                        verbose=False)
        controller.run(problem, max_steps=3)
        assert len(problem.accepted) == 3

    def test_invalid_arguments(self):
        table = TimeSteppingTable([(0.0, 0.1)])
        with pytest.raises(ValueError):
            TimeStepController(table, 0.0, 1e-6)
        with pytest.raises(ValueError):
            TimeStepController(table, 1.0, 0.0)
