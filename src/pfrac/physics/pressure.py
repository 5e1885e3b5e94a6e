"""
Pressure Coupling
=================

Fluid pressure acting on the crack faces.

The scalar pressure follows a piecewise-linear time curve. It is mapped onto
a nodal P1 field on the current mesh: nodes of cells whose mean phase field
is below a threshold carry the full pressure, all other nodes carry zero.
"""

import numpy as np
from typing import Optional, Sequence, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from ..mesh.dof_handler import DoFHandler


class PressureFunction:
    """
    Piecewise-linear pressure curve p(t).

    Values are held constant outside the tabulated time range.

    Attributes:
        times: tabulated times, increasing
        values: pressure at each tabulated time
    """

    def __init__(self, table: Sequence[Tuple[float, float]]):
        """
        Args:
            table: list of (time, pressure) pairs
        """
        table = np.asarray(table, dtype=np.float64)
        if table.ndim != 2 or table.shape[1] != 2 or len(table) == 0:
            raise ValueError("pressure table must be a non-empty list of (time, value) pairs")

        order = np.argsort(table[:, 0], kind='stable')
        self.times = table[order, 0]
        self.values = table[order, 1]
        if np.any(np.diff(self.times) == 0):
            raise ValueError("pressure table contains duplicate times")

    @classmethod
    def constant(cls, value: float) -> 'PressureFunction':
        return cls([(0.0, value)])

    def value(self, time: float) -> float:
        """Pressure at the given time."""
        return float(np.interp(time, self.times, self.values))

    def __call__(self, time: float) -> float:
        return self.value(time)


class PressureCoupler:
    """
    Builds the nodal pressure field for each time step.

    Attributes:
        dof_handler: owner of the current mesh
        pressure_function: time curve of the pressure magnitude
        mode: 'crack' (pressure only in cracked cells) or 'uniform'
        threshold: mean phase-field value below which a cell is cracked
        pressure: nodal pressure of the last update, shape (n_nodes,)
    """

    MODES = ('crack', 'uniform')

    def __init__(self, dof_handler: 'DoFHandler',
                 pressure_function: Optional[PressureFunction] = None,
                 mode: str = 'crack', threshold: float = 0.9):
        if mode not in self.MODES:
            raise ValueError(f"Unknown pressure mode: {mode}")
        if not 0 < threshold <= 1:
            raise ValueError(f"threshold must be in (0, 1], got {threshold}")

        self.dof_handler = dof_handler
        self.pressure_function = pressure_function or PressureFunction.constant(0.0)
        self.mode = mode
        self.threshold = threshold
        self.pressure = np.zeros(dof_handler.mesh.n_nodes)

    def crack_cells(self, solution: np.ndarray) -> np.ndarray:
        """
        Cells whose mean phase field is below the threshold.

        Args:
            solution: coupled solution vector

        Returns:
            mask: shape (n_elements,)
        """
        phi = self.dof_handler.phase_field_values(solution)
        cell_mean = phi[self.dof_handler.mesh.elements].mean(axis=1)
        return cell_mean < self.threshold

    def pressure_field(self, solution: np.ndarray, value: float) -> np.ndarray:
        """
        Nodal pressure field for a given pressure magnitude.

        Args:
            solution: coupled solution vector
            value: pressure magnitude

        Returns:
            pressure: shape (n_nodes,)
        """
        mesh = self.dof_handler.mesh
        if self.mode == 'uniform':
            return np.full(mesh.n_nodes, value)

        pressure = np.zeros(mesh.n_nodes)
        cracked = mesh.elements[self.crack_cells(solution)]
        pressure[np.unique(cracked)] = value
        return pressure

    def update(self, solution: np.ndarray, time: float) -> np.ndarray:
        """
        Recompute the pressure field for the given time.

        Args:
            solution: current coupled solution (defines the crack region)
            time: simulation time

        Returns:
            pressure: shape (n_nodes,)
        """
        self.pressure = self.pressure_field(solution, self.pressure_function(time))
        return self.pressure
