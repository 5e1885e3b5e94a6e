"""
Adaptive Mesh Refiner
=====================

Predictor-corrector refinement around the crack: after a converged Newton
solve, cells where the phase field dropped below a threshold are refined
and the time step is repeated on the new mesh.
"""

import numpy as np
from typing import TYPE_CHECKING

from ..mesh.adaptivity import SolutionTransfer, bisect, coarsen

if TYPE_CHECKING:
    from ..mesh.dof_handler import DoFHandler
    from .solution_history import SolutionHistory


class AdaptiveMeshRefiner:
    """
    Flags cells from the phase field and executes refinement with transfer.

    Attributes:
        dof_handler: owner of the current mesh, re-initialized on refinement
        max_level: cells at this level are never refined
        phi_refinement_value: cells whose smallest nodal φ is below this
            value are refined
        coarsening_value: bisected cells whose smallest nodal φ exceeds this
            value may be coarsened
        verbose: print refinement statistics
    """

    def __init__(self, dof_handler: 'DoFHandler', max_level: int,
                 phi_refinement_value: float = 0.5,
                 coarsening_value: float = 0.95,
                 verbose: bool = True):
        if not 0 < phi_refinement_value <= 1:
            raise ValueError(f"phi_refinement_value must be in (0, 1], got {phi_refinement_value}")
        if coarsening_value <= phi_refinement_value:
            raise ValueError("coarsening_value must exceed phi_refinement_value")
        self.dof_handler = dof_handler
        self.max_level = max_level
        self.phi_refinement_value = phi_refinement_value
        self.coarsening_value = coarsening_value
        self.verbose = verbose

    def _cell_minimum(self, solution: np.ndarray) -> np.ndarray:
        phi = self.dof_handler.phase_field_values(solution)
        return phi[self.dof_handler.mesh.elements].min(axis=1)

    def refine_flags(self, solution: np.ndarray) -> np.ndarray:
        """Cells to refine, shape (n_elements,)."""
        mesh = self.dof_handler.mesh
        return ((self._cell_minimum(solution) < self.phi_refinement_value) &
                (mesh.levels < self.max_level))

    def coarsen_flags(self, solution: np.ndarray) -> np.ndarray:
        """Bisected cells in intact material, shape (n_elements,)."""
        mesh = self.dof_handler.mesh
        return ((self._cell_minimum(solution) > self.coarsening_value) &
                (mesh.lineage > 1))

    def prepare_refinement(self, solution: np.ndarray) -> bool:
        """
        Decide whether the current mesh must be refined.

        Args:
            solution: converged solution of the current attempt

        Returns:
            True if any cell is flagged for refinement
        """
        return bool(self.refine_flags(solution).any())

    def execute_refinement(self, history: 'SolutionHistory') -> None:
        """
        Coarsen and refine the mesh and transfer all history vectors.

        Args:
            history: solution history, replaced by the transferred vectors
        """
        dh = self.dof_handler
        mesh = dh.mesh
        n_before = mesh.n_elements

        refine = self.refine_flags(history.solution)
        coarsen_mask = self.coarsen_flags(history.solution) & ~refine

        transfer = SolutionTransfer(dh.n_components)
        transfer.prepare(history.vectors(), mesh.n_nodes)

        mesh, kept_nodes, origin = coarsen(mesh, coarsen_mask)
        transfer.coarsen(kept_nodes)

        refine_after = np.zeros(mesh.n_elements, dtype=bool)
        survivors = origin >= 0
        refine_after[survivors] = refine[origin[survivors]]
        mesh, parents = bisect(mesh, refine_after)
        transfer.refine(parents)

        dh.reinit(mesh)
        history.replace(transfer.interpolate())

        if self.verbose:
            print(f"  Refinement: {n_before} -> {mesh.n_elements} cells, "
                  f"{mesh.n_nodes} nodes")
