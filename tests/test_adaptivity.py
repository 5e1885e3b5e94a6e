"""
Tests for Mesh Adaptivity
=========================

Bisection, coarsening, solution transfer and the adaptive refiner.
"""

import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pfrac.mesh.mesh_generators import create_square_mesh, TOP, BOTTOM
from pfrac.mesh.adaptivity import (
    longest_edge_labeling, bisect, coarsen, refine_region, SolutionTransfer
)
from pfrac.mesh.dof_handler import DoFHandler
from pfrac.solvers.solution_history import SolutionHistory
from pfrac.solvers.mesh_refiner import AdaptiveMeshRefiner


def _perimeter(mesh):
    return mesh.edge_lengths[mesh.boundary_edges].sum()


def _is_conforming(mesh, perimeter):
    """No hanging nodes: the boundary is exactly the domain boundary."""
    return (np.isclose(_perimeter(mesh), perimeter) and
            all(len(elems) in (1, 2) for elems in mesh.edge_to_elements))


@pytest.fixture
def mesh():
    return longest_edge_labeling(create_square_mesh(1.0, 4))


class TestLongestEdgeLabeling:
    """Tests for the initial refinement edge choice."""

    def test_refinement_edge_is_longest(self, mesh):
        lengths = mesh.edge_lengths[mesh.element_to_edges]
        assert np.allclose(lengths[:, 0], lengths.max(axis=1))

    def test_geometry_unchanged(self, mesh):
        original = create_square_mesh(1.0, 4)
        assert np.allclose(np.sort(mesh.element_areas), np.sort(original.element_areas))
        assert mesh.boundary_id_map() == original.boundary_id_map()


class TestBisection:
    """Tests for newest-vertex bisection."""

    def test_single_element_marked(self, mesh):
        fine, parents = bisect(mesh, [5])
        assert fine.n_elements > mesh.n_elements
        assert len(parents) == fine.n_nodes - mesh.n_nodes
        assert np.isclose(fine.element_areas.sum(), 1.0)
        assert _is_conforming(fine, 4.0)

    def test_existing_nodes_preserved(self, mesh):
        fine, parents = bisect(mesh, np.arange(mesh.n_elements) % 3 == 0)
        assert np.array_equal(fine.nodes[:mesh.n_nodes], mesh.nodes)
        new_nodes = fine.nodes[mesh.n_nodes:]
        midpoints = 0.5 * (mesh.nodes[parents[:, 0]] + mesh.nodes[parents[:, 1]])
        assert np.allclose(new_nodes, midpoints)

    def test_repeated_bisection_conforming(self, mesh):
        rng = np.random.default_rng(3)
        for _ in range(4):
            marked = rng.random(mesh.n_elements) < 0.3
            mesh, _ = bisect(mesh, marked)
            assert _is_conforming(mesh, 4.0)
            assert np.isclose(mesh.element_areas.sum(), 1.0)

    def test_levels_and_lineage(self, mesh):
        fine, _ = bisect(mesh, np.ones(mesh.n_elements, dtype=bool))
        assert fine.n_elements == 2 * mesh.n_elements
        assert np.all(fine.levels == 1)
        assert set(fine.lineage) == {2, 3}

    def test_boundary_labels_follow_bisection(self, mesh):
        fine = mesh
        for _ in range(3):
            fine, _ = bisect(fine, np.ones(fine.n_elements, dtype=bool))
        assert np.isclose(fine.edge_lengths[fine.get_boundary_edges(TOP)].sum(), 1.0)
        assert np.allclose(fine.nodes[fine.get_boundary_nodes(BOTTOM), 1], 0.0)

    def test_nothing_marked(self, mesh):
        same, parents = bisect(mesh, [])
        assert same is mesh
        assert parents.shape == (0, 2)

    def test_refine_region(self, mesh):
        fine = refine_region(mesh, [[0.25, 0.75], [0.25, 0.75]], 2)
        centroids = fine.element_centroids()
        inside = np.all((centroids > 0.25) & (centroids < 0.75), axis=1)
        assert fine.element_areas[inside].max() < mesh.element_areas.max()
        assert _is_conforming(fine, 4.0)


class TestCoarsening:
    """Tests for sibling coarsening."""

    def test_coarsen_inverts_uniform_bisection(self, mesh):
        fine, _ = bisect(mesh, np.ones(mesh.n_elements, dtype=bool))
        coarse, kept_nodes, origin = coarsen(fine, np.ones(fine.n_elements, dtype=bool))

        assert coarse.n_elements == mesh.n_elements
        assert coarse.n_nodes == mesh.n_nodes
        assert np.array_equal(kept_nodes, np.arange(mesh.n_nodes))
        assert np.all(origin == -1)
        assert (sorted(map(tuple, coarse.elements.tolist())) ==
                sorted(map(tuple, mesh.elements.tolist())))
        assert np.all(coarse.levels == 0)
        assert np.all(coarse.lineage == 1)
        assert coarse.boundary_id_map() == mesh.boundary_id_map()

    def test_unmarked_children_kept(self, mesh):
        fine, _ = bisect(mesh, np.ones(mesh.n_elements, dtype=bool))
        coarse, kept_nodes, origin = coarsen(fine, np.zeros(fine.n_elements, dtype=bool))
        assert coarse is fine
        assert np.array_equal(origin, np.arange(fine.n_elements))

    def test_partial_coarsening_is_conforming(self, mesh):
        fine, _ = bisect(mesh, np.ones(mesh.n_elements, dtype=bool))
        fine, _ = bisect(fine, np.ones(fine.n_elements, dtype=bool))
        marked = fine.element_centroids()[:, 0] < 0.5
        coarse, kept_nodes, origin = coarsen(fine, marked)

        assert coarse.n_elements < fine.n_elements
        assert _is_conforming(coarse, 4.0)
        assert np.isclose(coarse.element_areas.sum(), 1.0)
        assert np.allclose(coarse.nodes, fine.nodes[kept_nodes])
        survivors = origin >= 0
        assert np.array_equal(coarse.levels[survivors], fine.levels[origin[survivors]])

    def test_unbisected_elements_never_coarsened(self, mesh):
        coarse, kept_nodes, origin = coarsen(mesh, np.ones(mesh.n_elements, dtype=bool))
        assert coarse is mesh


class TestSolutionTransfer:
    """Tests for nodal vector transfer."""

    def test_linear_field_is_exact(self, mesh):
        def linear(nodes):
            values = np.zeros((len(nodes), 3))
            values[:, 0] = 1 + 2 * nodes[:, 0]
            values[:, 1] = -nodes[:, 1]
            values[:, 2] = nodes[:, 0] - 3 * nodes[:, 1]
            return values.ravel()

        transfer = SolutionTransfer(3)
        transfer.prepare([linear(mesh.nodes)], mesh.n_nodes)
        fine, parents = bisect(mesh, np.arange(mesh.n_elements) < 10)
        transfer.refine(parents)
        (values,) = transfer.interpolate()

        assert np.allclose(values, linear(fine.nodes))

    def test_coarsen_restricts(self, mesh):
        fine, parents = bisect(mesh, np.ones(mesh.n_elements, dtype=bool))
        vector = np.arange(3 * fine.n_nodes, dtype=float)

        transfer = SolutionTransfer(3)
        transfer.prepare([vector], fine.n_nodes)
        coarse, kept_nodes, _ = coarsen(fine, np.ones(fine.n_elements, dtype=bool))
        transfer.coarsen(kept_nodes)
        (values,) = transfer.interpolate()

        assert len(values) == 3 * coarse.n_nodes
        assert np.array_equal(values, vector[:3 * mesh.n_nodes])

    def test_size_mismatch(self, mesh):
        with pytest.raises(ValueError):
            SolutionTransfer(3).prepare([np.zeros(5)], mesh.n_nodes)


class TestAdaptiveMeshRefiner:
    """Tests for phase-field driven refinement."""

    @pytest.fixture
    def setup(self, mesh):
        dh = DoFHandler(mesh)
        solution = dh.new_vector()
        phi = np.ones(dh.n_nodes)
        phi[dh.mesh.find_closest_node((0.5, 0.5))] = 0.0
        solution[dh.phase_field_dofs] = phi
        solution[0::3] = 0.01 * dh.mesh.nodes[:, 0]
        return dh, solution

    def test_flags(self, setup):
        dh, solution = setup
        refiner = AdaptiveMeshRefiner(dh, max_level=2, verbose=False)
        flags = refiner.refine_flags(solution)
        assert flags.any()
        center = dh.mesh.find_closest_node((0.5, 0.5))
        assert np.all(np.any(dh.mesh.elements[flags] == center, axis=1))
        assert refiner.prepare_refinement(solution)

    def test_max_level_stops_refinement(self, setup):
        dh, solution = setup
        refiner = AdaptiveMeshRefiner(dh, max_level=0, verbose=False)
        assert not refiner.prepare_refinement(solution)

    def test_intact_field_needs_no_refinement(self, mesh):
        dh = DoFHandler(mesh)
        solution = dh.new_vector()
        solution[dh.phase_field_dofs] = 1.0
        refiner = AdaptiveMeshRefiner(dh, max_level=3, verbose=False)
        assert not refiner.prepare_refinement(solution)

    def test_execute_preserves_history(self, setup):
        dh, solution = setup
        old = solution.copy()
        old[dh.phase_field_dofs] = 1.0
        history = SolutionHistory(solution.copy(), old, old.copy())
        n_nodes = dh.n_nodes
        revision = dh.revision

        refiner = AdaptiveMeshRefiner(dh, max_level=2, verbose=False)
        refiner.execute_refinement(history)

        assert dh.revision == revision + 1
        assert dh.n_nodes > n_nodes
        assert len(history.solution) == dh.n_dofs
        # Values at existing nodes are unchanged
        assert np.array_equal(history.solution[:3 * n_nodes], solution)
        assert np.array_equal(history.old_solution[:3 * n_nodes], old)
        assert np.array_equal(history.old_old_solution[:3 * n_nodes], old)

    def test_invalid_thresholds(self, mesh):
        dh = DoFHandler(mesh)
        with pytest.raises(ValueError):
            AdaptiveMeshRefiner(dh, max_level=1, phi_refinement_value=0.9,
                                coarsening_value=0.5)
