"""
Active Set
==========

Irreversibility of the phase field via a primal-dual active set.

A phase-field dof i is active (pinned to its previous value) when

    -R_i / M_i + c (φ_i - φ_old_i) > tol

with R the residual, M the lumped mass and c the penalty constant. Within
one Newton solve the set only grows.
"""

import numpy as np
from typing import Iterable, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from ..mesh.dof_handler import DoFHandler


class ActiveSet:
    """
    Immutable snapshot of active dofs and their pinned values.

    Two snapshots compare equal when they contain the same dofs.

    Attributes:
        dofs: sorted dof indices (read-only)
        values: pinned value of each dof (read-only)
    """

    __slots__ = ('_dofs', '_values')

    def __init__(self, dofs: Iterable[int] = (), values: Iterable[float] = ()):
        dofs = np.asarray(list(dofs), dtype=np.int64)
        values = np.asarray(list(values), dtype=np.float64)
        if dofs.shape != values.shape:
            raise ValueError("dofs and values must have the same length")

        dofs, index = np.unique(dofs, return_index=True)
        values = values[index]
        dofs.flags.writeable = False
        values.flags.writeable = False
        self._dofs = dofs
        self._values = values

    @classmethod
    def empty(cls) -> 'ActiveSet':
        return cls()

    @property
    def dofs(self) -> np.ndarray:
        return self._dofs

    @property
    def values(self) -> np.ndarray:
        return self._values

    def __len__(self) -> int:
        return len(self._dofs)

    def __contains__(self, dof) -> bool:
        idx = np.searchsorted(self._dofs, dof)
        return bool(idx < len(self._dofs) and self._dofs[idx] == dof)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ActiveSet):
            return NotImplemented
        return np.array_equal(self._dofs, other._dofs)

    def __hash__(self) -> int:
        return hash(self._dofs.tobytes())

    def __repr__(self) -> str:
        return f"ActiveSet(n_active={len(self)})"

    def difference(self, other: 'ActiveSet') -> np.ndarray:
        """Dofs in this set but not in `other`."""
        return np.setdiff1d(self._dofs, other._dofs, assume_unique=True)

    def union(self, dofs: np.ndarray, values: np.ndarray) -> 'ActiveSet':
        """
        New snapshot with additional dofs.

        Dofs already present keep their pinned values.
        """
        dofs = np.asarray(dofs, dtype=np.int64)
        values = np.asarray(values, dtype=np.float64)
        new = ~np.isin(dofs, self._dofs)
        return ActiveSet(np.concatenate([self._dofs, dofs[new]]),
                         np.concatenate([self._values, values[new]]))

    def mask(self, n_dofs: int) -> np.ndarray:
        """Boolean indicator over all dofs."""
        mask = np.zeros(n_dofs, dtype=bool)
        mask[self._dofs] = True
        return mask


class ActiveSetTracker:
    """
    Computes and applies active-set snapshots.

    Attributes:
        dof_handler: owner of the current mesh
        penalty: constant c of the activity criterion
    """

    def __init__(self, dof_handler: 'DoFHandler', penalty: float):
        if penalty < 0:
            raise ValueError(f"penalty must be non-negative, got {penalty}")
        self.dof_handler = dof_handler
        self.penalty = penalty

    def indicator(self, solution: np.ndarray, old_solution: np.ndarray,
                  residual: np.ndarray) -> np.ndarray:
        """
        Activity indicator -R/M + c (φ - φ_old) at each phase-field dof.

        Returns:
            indicator: shape (n_nodes,)
        """
        phase_dofs = self.dof_handler.phase_field_dofs
        mass = self.dof_handler.lumped_mass()
        return (-np.asarray(residual)[phase_dofs] / mass +
                self.penalty * (np.asarray(solution)[phase_dofs] -
                                np.asarray(old_solution)[phase_dofs]))

    def update(self, solution: np.ndarray, old_solution: np.ndarray,
               residual: np.ndarray, previous: ActiveSet,
               tolerance: float) -> Tuple[ActiveSet, bool]:
        """
        Grow the active set from the current residual.

        Args:
            solution: current iterate
            old_solution: last accepted solution (defines the pinned values)
            residual: unconstrained residual at the current iterate
            previous: active set of the previous iteration
            tolerance: activity threshold

        Returns:
            active_set: new snapshot, a superset of `previous`
            changed: True if the membership differs from `previous`
        """
        phase_dofs = self.dof_handler.phase_field_dofs
        detected = phase_dofs[self.indicator(solution, old_solution, residual) > tolerance]
        active = previous.union(detected, np.asarray(old_solution)[detected])
        return active, active != previous

    @staticmethod
    def mask_residual(residual: np.ndarray, active: ActiveSet) -> np.ndarray:
        """Copy of the residual with active entries set to zero."""
        masked = np.array(residual, dtype=np.float64)
        masked[active.dofs] = 0.0
        return masked

    @staticmethod
    def pin(solution: np.ndarray, active: ActiveSet) -> None:
        """Set active dofs of a vector to their pinned values, in place."""
        solution[active.dofs] = active.values
