"""
Boundary Conditions
===================

Displacement constraints and their elimination from linear systems.
"""

import numpy as np
from scipy.sparse import csr_matrix, diags
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union, TYPE_CHECKING

from ..mesh.dof_handler import component_index

if TYPE_CHECKING:
    from ..mesh.dof_handler import DoFHandler


@dataclass(frozen=True)
class DisplacementBC:
    """
    Displacement prescribed on a labelled boundary.

    The prescribed value at time t is value + velocity * t.
    """
    boundary_id: int
    component: Union[str, int]
    value: float = 0.0
    velocity: float = 0.0

    def value_at(self, time: float) -> float:
        return self.value + self.velocity * time


@dataclass(frozen=True)
class PointDisplacement:
    """
    Displacement prescribed at the node nearest to a point.

    The prescribed value at time t is velocity * t.
    """
    point: Tuple[float, float]
    component: Union[str, int]
    velocity: float = 0.0

    def value_at(self, time: float) -> float:
        return self.velocity * time


def apply_dirichlet_bc(K: csr_matrix, F: np.ndarray,
                       dofs: np.ndarray, values: np.ndarray
                       ) -> Tuple[csr_matrix, np.ndarray]:
    """
    Eliminate prescribed dofs from a linear system, keeping symmetry.

    Constrained rows and columns are zeroed with a unit diagonal, the
    right-hand side carries the prescribed value, and the free equations
    are shifted by the known part K[:, dofs] @ values.

    Args:
        K: sparse matrix, shape (n, n)
        F: right-hand side, shape (n,)
        dofs: constrained indices
        values: prescribed value per constrained index

    Returns:
        K_bc, F_bc
    """
    dofs = np.asarray(dofs, dtype=np.int64)
    values = np.asarray(values, dtype=np.float64)
    if dofs.shape != values.shape:
        raise ValueError("dofs and values must have the same length")

    keep = np.ones(K.shape[0])
    keep[dofs] = 0.0
    known = np.zeros(K.shape[0])
    known[dofs] = values

    K = csr_matrix(K)
    F_bc = keep * (np.asarray(F, dtype=np.float64) - K @ known) + known
    K_bc = (diags(keep) @ K @ diags(keep) + diags(1.0 - keep)).tocsr()
    return K_bc, F_bc


def merge_bcs(*bc_pairs) -> Tuple[np.ndarray, np.ndarray]:
    """
    Combine (dofs, values) pairs; a later pair overrides an earlier one.

    Returns:
        dofs: sorted unique indices
        values: value of each index
    """
    merged = {}
    for dofs, values in bc_pairs:
        merged.update(zip(np.asarray(dofs, dtype=np.int64).tolist(),
                          np.asarray(values, dtype=np.float64).tolist()))

    dofs = np.array(sorted(merged), dtype=np.int64)
    return dofs, np.array([merged[d] for d in dofs.tolist()], dtype=np.float64)


class BoundaryConditionManager:
    """
    Displacement constraints of a simulation.

    Constraints are stored by boundary label and point, and resolved to dofs
    against the current mesh on every call, so they survive remeshing.
    """

    def __init__(self, dof_handler: 'DoFHandler',
                 displacement_bcs: Sequence[DisplacementBC] = (),
                 point_bcs: Sequence[PointDisplacement] = ()):
        """
        Initialize BC manager.

        Args:
            dof_handler: owner of the current mesh
            displacement_bcs: labelled boundary constraints
            point_bcs: point constraints
        """
        self.dof_handler = dof_handler
        self.displacement_bcs: List[DisplacementBC] = list(displacement_bcs)
        self.point_bcs: List[PointDisplacement] = list(point_bcs)
        for bc in self.displacement_bcs + self.point_bcs:
            if component_index(bc.component) == 2:
                raise ValueError("displacement constraints must act on 'x' or 'y'")

    def add_displacement(self, boundary_id: int, component: Union[str, int],
                         value: float = 0.0, velocity: float = 0.0) -> None:
        bc = DisplacementBC(boundary_id, component, value, velocity)
        if component_index(component) == 2:
            raise ValueError("displacement constraints must act on 'x' or 'y'")
        self.displacement_bcs.append(bc)

    def add_point_displacement(self, point: Tuple[float, float],
                               component: Union[str, int], velocity: float = 0.0) -> None:
        if component_index(component) == 2:
            raise ValueError("displacement constraints must act on 'x' or 'y'")
        self.point_bcs.append(PointDisplacement(tuple(point), component, velocity))

    def constraints(self, time: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Constrained dofs and their values at a given time.

        Args:
            time: simulation time

        Returns:
            bc_dofs, bc_values
        """
        dh = self.dof_handler
        pairs = []
        for bc in self.displacement_bcs:
            dofs = dh.boundary_dofs(bc.boundary_id, bc.component)
            pairs.append((dofs, np.full(len(dofs), bc.value_at(time))))
        for bc in self.point_bcs:
            node = dh.mesh.find_closest_node(bc.point)
            pairs.append(([dh.dof(node, bc.component)], [bc.value_at(time)]))
        return merge_bcs(*pairs)

    def impose(self, solution: np.ndarray, time: float) -> np.ndarray:
        """
        Write the prescribed values into a solution vector.

        Args:
            solution: vector to modify in place
            time: simulation time

        Returns:
            bc_dofs: the constrained dofs
        """
        bc_dofs, bc_values = self.constraints(time)
        solution[bc_dofs] = bc_values
        return bc_dofs

    def summary(self) -> str:
        """Return summary of boundary conditions."""
        lines = [f"Boundary Conditions Summary ({len(self.displacement_bcs)} boundary, "
                 f"{len(self.point_bcs)} point):"]
        for bc in self.displacement_bcs:
            lines.append(f"  - boundary {bc.boundary_id}, u_{bc.component} = "
                         f"{bc.value} + {bc.velocity} t")
        for bc in self.point_bcs:
            lines.append(f"  - point {bc.point}, u_{bc.component} = {bc.velocity} t")
        return "\n".join(lines)
