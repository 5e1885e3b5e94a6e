"""
Tests for Assembly Module
=========================
"""

import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from scipy.sparse import csr_matrix

from pfrac.mesh.mesh_generators import create_square_mesh, TOP, BOTTOM, LEFT
from pfrac.mesh.dof_handler import DoFHandler
from pfrac.elements.p1_element import P1Element
from pfrac.physics.material import PhaseFieldMaterial
from pfrac.assembly.coupled_assembly import CoupledResidualAssembler
from pfrac.assembly.boundary_conditions import (
    DisplacementBC, PointDisplacement, BoundaryConditionManager,
    apply_dirichlet_bc, merge_bcs
)


@pytest.fixture
def material():
    return PhaseFieldMaterial(E=100.0, nu=0.3, Gc=1.0, epsilon=0.5, kappa=1e-3, biot=0.5)


@pytest.fixture
def dof_handler():
    return DoFHandler(create_square_mesh(1.0, 2, pattern='alternating'))


def _state(dh, seed=0):
    """Affine strain plus a small perturbation, and a partially damaged field."""
    rng = np.random.default_rng(seed)
    x, y = dh.mesh.nodes[:, 0], dh.mesh.nodes[:, 1]
    grad = np.array([[0.01, 0.002], [0.002, -0.004]])

    nodal = np.zeros((dh.n_nodes, 3))
    nodal[:, 0] = grad[0, 0] * x + grad[0, 1] * y
    nodal[:, 1] = grad[1, 0] * x + grad[1, 1] * y
    nodal[:, :2] += 1e-4 * rng.uniform(-1, 1, size=(dh.n_nodes, 2))
    nodal[:, 2] = rng.uniform(0.4, 1.0, size=dh.n_nodes)
    solution = nodal.ravel()

    old = solution.copy()
    old[2::3] = np.minimum(1.0, nodal[:, 2] + 0.05)
    old_old = old.copy()
    old_old[2::3] = np.minimum(1.0, old[2::3] + 0.05)
    pressure = rng.uniform(0.5, 2.0, size=dh.n_nodes)
    return solution, old, old_old, pressure


class TestP1Element:
    """Tests for the linear triangle."""

    def test_gradients_reproduce_linear_field(self):
        elem = P1Element(np.array([[0.0, 0.0], [2.0, 0.0], [0.5, 1.5]]))
        values = 1.0 + 3.0 * elem.nodes[:, 0] - 2.0 * elem.nodes[:, 1]
        assert np.allclose(elem.gradient(values), [3.0, -2.0])

    def test_clockwise_element(self):
        elem = P1Element(np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0]]))
        assert np.isclose(elem.area, 0.5)
        values = 2.0 * elem.nodes[:, 0]
        assert np.allclose(elem.gradient(values), [2.0, 0.0])

    def test_strain(self):
        elem = P1Element(np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]]))
        grad = np.array([[0.01, 0.004], [0.0, -0.02]])
        u = elem.nodes @ grad.T
        assert np.allclose(elem.strain(u), 0.5 * (grad + grad.T))

    def test_quadrature(self):
        elem = P1Element(np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]]))
        assert np.isclose(elem.weights.sum(), elem.area)
        # Exact for quadratics: ∫ N_0² = A/6
        assert np.isclose(elem.weights @ elem.shape_values[:, 0] ** 2, elem.area / 6)
        assert np.allclose(elem.lumped_mass(), elem.area / 3)

    def test_degenerate(self):
        with pytest.raises(ValueError):
            P1Element(np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]]))


class TestCoupledAssembly:
    """Tests for the coupled residual and Jacobian."""

    def test_requires_resolved_epsilon(self, dof_handler):
        mat = PhaseFieldMaterial(E=1.0, nu=0.3, epsilon_factor=2.0)
        with pytest.raises(ValueError):
            CoupledResidualAssembler(dof_handler, mat)

    def test_intact_unloaded_state_has_zero_residual(self, dof_handler, material):
        dh = dof_handler
        solution = dh.new_vector()
        solution[dh.phase_field_dofs] = 1.0
        assembler = CoupledResidualAssembler(dh, material)
        result = assembler.assemble(solution, np.zeros(dh.n_nodes), solution, solution,
                                    (0.1, 0.1))
        assert np.allclose(result.residual, 0.0, atol=1e-14)
        assert result.matrix.shape == (dh.n_dofs, dh.n_dofs)

    def test_residual_only(self, dof_handler, material):
        dh = dof_handler
        solution, old, old_old, pressure = _state(dh)
        assembler = CoupledResidualAssembler(dh, material)
        full = assembler.assemble(solution, pressure, old, old_old, (0.1, 0.1))
        residual_only = assembler.assemble(solution, pressure, old, old_old, (0.1, 0.1),
                                           assemble_matrix=False)
        assert residual_only.matrix is None
        assert np.allclose(full.residual, residual_only.residual)

    @pytest.mark.parametrize("include_pressure", [True, False])
    def test_jacobian_matches_finite_differences(self, dof_handler, material,
                                                 include_pressure):
        dh = dof_handler
        solution, old, old_old, pressure = _state(dh)
        assembler = CoupledResidualAssembler(dh, material)
        time_steps = (0.1, 0.2)

        def residual(x):
            return assembler.assemble(x, pressure, old, old_old, time_steps,
                                      include_pressure=include_pressure,
                                      assemble_matrix=False).residual

        K = assembler.assemble(solution, pressure, old, old_old, time_steps,
                               include_pressure=include_pressure).matrix.toarray()

        h = 1e-7
        K_fd = np.zeros_like(K)
        for j in range(dh.n_dofs):
            step = np.zeros(dh.n_dofs)
            step[j] = h
            K_fd[:, j] = (residual(solution + step) - residual(solution - step)) / (2 * h)

        scale = np.abs(K).max()
        assert np.allclose(K, K_fd, rtol=1e-5, atol=1e-6 * scale)

    def test_displacement_rows_independent_of_phase_field(self, dof_handler, material):
        dh = dof_handler
        solution, old, old_old, pressure = _state(dh)
        assembler = CoupledResidualAssembler(dh, material)
        K = assembler.assemble(solution, pressure, old, old_old, (0.1, 0.1)).matrix
        K = K.toarray()
        u_dofs = dh.displacement_dofs
        phi_dofs = dh.phase_field_dofs
        assert np.all(K[np.ix_(u_dofs, phi_dofs)] == 0.0)

    def test_inputs_not_modified(self, dof_handler, material):
        dh = dof_handler
        solution, old, old_old, pressure = _state(dh)
        copies = [v.copy() for v in (solution, old, old_old, pressure)]
        assembler = CoupledResidualAssembler(dh, material)
        assembler.assemble(solution, pressure, old, old_old, (0.1, 0.1))
        for original, copy in zip((solution, old, old_old, pressure), copies):
            assert np.array_equal(original, copy)

    def test_shape_validation(self, dof_handler, material):
        dh = dof_handler
        assembler = CoupledResidualAssembler(dh, material)
        with pytest.raises(ValueError):
            assembler.assemble(np.zeros(5), np.zeros(dh.n_nodes), dh.new_vector(),
                               dh.new_vector(), (0.1, 0.1))
        with pytest.raises(ValueError):
            assembler.assemble(dh.new_vector(), np.zeros(3), dh.new_vector(),
                               dh.new_vector(), (0.1, 0.1))

    def test_reactions_balance(self, dof_handler, material):
        """Interior equilibrium: reactions sum to zero over the whole body."""
        dh = dof_handler
        solution, old, old_old, _ = _state(dh)
        assembler = CoupledResidualAssembler(dh, material)
        reactions = assembler.compute_reactions(solution, old, old_old, (0.1, 0.1))
        assert np.isclose(reactions[0::3].sum(), 0.0, atol=1e-12)
        assert np.isclose(reactions[1::3].sum(), 0.0, atol=1e-12)

    def test_cell_stresses_intact(self, dof_handler, material):
        dh = dof_handler
        grad = np.array([[0.01, 0.0], [0.0, 0.005]])
        solution = dh.new_vector()
        solution[0::3] = dh.mesh.nodes @ grad[0]
        solution[1::3] = dh.mesh.nodes @ grad[1]
        solution[2::3] = 1.0
        assembler = CoupledResidualAssembler(dh, material)
        stresses = assembler.compute_cell_stresses(solution, solution, solution, (0.1, 0.1))

        expected = material.elastic_stress(grad)
        assert stresses.shape == (dh.mesh.n_elements, 3)
        assert np.allclose(stresses[:, 0], expected[0, 0])
        assert np.allclose(stresses[:, 1], expected[1, 1])
        assert np.allclose(stresses[:, 2], 0.0)


class TestDirichletElimination:
    """Tests for apply_dirichlet_bc and helpers."""

    def test_prescribed_values_recovered(self):
        K = csr_matrix(np.array([[4.0, -1.0, 0.0],
                                 [-1.0, 4.0, -1.0],
                                 [0.0, -1.0, 4.0]]))
        F = np.array([1.0, 2.0, 3.0])
        K_bc, F_bc = apply_dirichlet_bc(K, F, np.array([0]), np.array([0.5]))
        x = np.linalg.solve(K_bc.toarray(), F_bc)

        assert np.isclose(x[0], 0.5)
        # Free equations are the original ones with x_0 known
        assert np.allclose((K.toarray() @ x)[1:], F[1:])
        # Symmetry is kept
        assert np.allclose(K_bc.toarray(), K_bc.toarray().T)

    def test_merge_bcs(self):
        dofs, values = merge_bcs(([3, 1], [1.0, 2.0]), ([3], [5.0]))
        assert np.array_equal(dofs, [1, 3])
        assert np.array_equal(values, [2.0, 5.0])


class TestBoundaryConditionManager:
    """Tests for labelled and point displacement constraints."""

    def test_value_at(self):
        assert np.isclose(DisplacementBC(TOP, 'y', value=0.1, velocity=2.0).value_at(0.5), 1.1)
        assert PointDisplacement((0.0, 0.0), 'x', velocity=3.0).value_at(2.0) == 6.0

    def test_constraints(self, dof_handler):
        dh = dof_handler
        bcs = BoundaryConditionManager(dh, [DisplacementBC(BOTTOM, 'y', 0.0),
                                            DisplacementBC(TOP, 'y', velocity=0.1)])
        bcs.add_point_displacement((0.0, 0.0), 'x', velocity=0.0)

        dofs, values = bcs.constraints(2.0)
        top = dh.boundary_dofs(TOP, 'y')
        assert np.allclose(values[np.isin(dofs, top)], 0.2)
        assert dh.dof(dh.mesh.find_closest_node((0.0, 0.0)), 'x') in dofs
        assert not np.any(dh.is_phase_field_dof(dofs))

    def test_impose(self, dof_handler):
        dh = dof_handler
        bcs = BoundaryConditionManager(dh)
        bcs.add_displacement(LEFT, 'x', value=0.3)
        solution = dh.new_vector()
        dofs = bcs.impose(solution, 1.0)
        assert np.allclose(solution[dofs], 0.3)
        assert np.count_nonzero(solution) == len(dofs)
        assert "boundary 0" in bcs.summary()

    def test_phase_field_constraint_rejected(self, dof_handler):
        with pytest.raises(ValueError):
            BoundaryConditionManager(dof_handler, [DisplacementBC(TOP, 'phi', 0.0)])
        with pytest.raises(ValueError):
            BoundaryConditionManager(dof_handler).add_displacement(TOP, 'phi')
