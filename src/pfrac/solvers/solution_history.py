"""
Solution History
================

The three temporal copies of the coupled solution.
"""

import numpy as np
from dataclasses import dataclass
from typing import List, Sequence


@dataclass
class SolutionHistory:
    """
    Current iterate and the two previous accepted solutions.

    Attributes:
        solution: current Newton iterate / last accepted solution
        old_solution: solution of the previous accepted step
        old_old_solution: solution accepted before old_solution
    """
    solution: np.ndarray
    old_solution: np.ndarray
    old_old_solution: np.ndarray

    @classmethod
    def from_initial(cls, initial: np.ndarray) -> 'SolutionHistory':
        """History in which all three copies equal the initial state."""
        initial = np.asarray(initial, dtype=np.float64)
        return cls(initial.copy(), initial.copy(), initial.copy())

    def advance(self) -> None:
        """Shift the history at the start of a new time step."""
        self.old_old_solution = self.old_solution.copy()
        self.old_solution = self.solution.copy()

    def restore(self) -> None:
        """Reset the iterate to the last accepted solution."""
        self.solution = self.old_solution.copy()

    def vectors(self) -> List[np.ndarray]:
        return [self.solution, self.old_solution, self.old_old_solution]

    def replace(self, vectors: Sequence[np.ndarray]) -> None:
        """Install vectors transferred to a new mesh."""
        self.solution, self.old_solution, self.old_old_solution = (
            np.asarray(v, dtype=np.float64).copy() for v in vectors)
