"""
Postprocessing
==============

Derived quantities computed after each accepted step:

    boundary_load   resultant reaction force on a labelled boundary
    COD             crack opening displacement COD(x) = ∫ u · ∇φ dy
                    along lines crossing the crack
"""

import os
import numpy as np
from scipy.integrate import trapezoid
from matplotlib.tri import Triangulation, LinearTriInterpolator
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from ..mesh.dof_handler import DoFHandler
    from ..assembly.coupled_assembly import CoupledResidualAssembler
    from ..solvers.solution_history import SolutionHistory


def compute_boundary_load(assembler: 'CoupledResidualAssembler',
                          history: 'SolutionHistory',
                          time_steps: Tuple[float, float],
                          boundary_id: int) -> np.ndarray:
    """
    Resultant force on a boundary from the elastic residual.

    Args:
        assembler: CoupledResidualAssembler
        history: solution history of the accepted step
        time_steps: (dt, dt_old)
        boundary_id: boundary label

    Returns:
        load: shape (2,), [F_x, F_y]
    """
    dh = assembler.dof_handler
    reactions = assembler.compute_reactions(history.solution, history.old_solution,
                                            history.old_old_solution, time_steps)
    nodes = dh.mesh.get_boundary_nodes(boundary_id)
    if len(nodes) == 0:
        raise ValueError(f"Boundary {boundary_id} has no nodes")
    base = dh.n_components * nodes
    return np.array([reactions[base].sum(), reactions[base + 1].sum()])


def compute_cod(dof_handler: 'DoFHandler', solution: np.ndarray,
                start: float, end: float, n_lines: int,
                direction: str = 'x', n_samples: int = 400) -> np.ndarray:
    """
    Crack opening displacement along lines crossing a straight crack.

    For a crack along x, COD(x) = ∫ u(x, y) · ∇φ(x, y) dy over the domain.

    Args:
        dof_handler: owner of the current mesh
        solution: coupled solution vector
        start, end: range of the crack coordinate covered by the lines
        n_lines: number of sampling lines
        direction: crack direction, 'x' or 'y'
        n_samples: points per line

    Returns:
        cod: shape (n_lines, 2), columns [position, opening]
    """
    if direction not in ('x', 'y'):
        raise ValueError(f"Unknown crack direction: {direction}")
    if n_lines < 1:
        raise ValueError(f"n_lines must be positive, got {n_lines}")

    mesh = dof_handler.mesh
    tri = Triangulation(mesh.nodes[:, 0], mesh.nodes[:, 1], mesh.elements)
    displacement = dof_handler.displacement_values(solution)
    phi = dof_handler.phase_field_values(solution)

    u_x = LinearTriInterpolator(tri, displacement[:, 0])
    u_y = LinearTriInterpolator(tri, displacement[:, 1])
    grad_phi = LinearTriInterpolator(tri, phi)

    along = 0 if direction == 'x' else 1
    across = 1 - along
    lo, hi = mesh.nodes[:, across].min(), mesh.nodes[:, across].max()
    transverse = np.linspace(lo, hi, n_samples)

    result = np.zeros((n_lines, 2))
    for i, position in enumerate(np.linspace(start, end, n_lines)):
        points = np.empty((n_samples, 2))
        points[:, along] = position
        points[:, across] = transverse

        ux = u_x(points[:, 0], points[:, 1])
        uy = u_y(points[:, 0], points[:, 1])
        dphi_dx, dphi_dy = grad_phi.gradient(points[:, 0], points[:, 1])

        integrand = np.ma.filled(ux * dphi_dx + uy * dphi_dy, 0.0)
        result[i] = [position, trapezoid(integrand, transverse)]
    return result


POSTPROCESSORS = ('boundary_load', 'COD')

# Crack directions accepted by COD, by name or by axis index
CRACK_DIRECTIONS = {'x': 'x', 'y': 'y', 0: 'x', 1: 'y'}


@dataclass
class PostprocessingSpec:
    """
    A named postprocessing task and its arguments.

    boundary_load takes [boundary_id]. COD takes [start, end, n_lines] and
    an optional crack direction, 'x' / 'y' or the axis index 0 / 1.
    Arguments are checked and normalized on construction, so COD args are
    always [start, end, n_lines, 'x' or 'y'].
    """
    name: str
    args: List[Any] = field(default_factory=list)

    def __post_init__(self):
        if self.name not in POSTPROCESSORS:
            raise ValueError(f"Unknown postprocessing task: {self.name}")
        args = list(self.args)

        if self.name == 'boundary_load':
            if len(args) != 1:
                raise ValueError("boundary_load takes one argument: the boundary id")
            self.args = [int(args[0])]
            return

        if not 3 <= len(args) <= 4:
            raise ValueError("COD takes the arguments start, end, n_lines[, direction]")
        start, end = float(args[0]), float(args[1])
        n_lines = int(args[2])
        if n_lines < 1 or n_lines != float(args[2]):
            raise ValueError(f"COD n_lines must be a positive integer, got {args[2]}")
        direction = args[3] if len(args) == 4 else 'x'
        if (isinstance(direction, bool) or not isinstance(direction, (str, int))
                or direction not in CRACK_DIRECTIONS):
            raise ValueError(f"Unknown crack direction: {direction!r}")
        self.args = [start, end, n_lines, CRACK_DIRECTIONS[direction]]


class PostprocessingRunner:
    """
    Executes postprocessing tasks after each accepted step.

    Results are kept in memory and, when a directory is given, written to
    text files: boundary_load-<id>.txt (one line per step) and
    cod-<step>.txt (one file per step).

    Attributes:
        specs: list of PostprocessingSpec
        directory: output directory or None
        results: task key -> list of (time, value) entries
    """

    def __init__(self, specs: Sequence[PostprocessingSpec],
                 directory: Optional[str] = None):
        self.specs = list(specs)
        self.directory = directory
        self.results: Dict[str, List[Tuple[float, np.ndarray]]] = {}
        if directory is not None:
            os.makedirs(directory, exist_ok=True)

    def execute(self, step_number: int, time: float, time_steps: Tuple[float, float],
                assembler: 'CoupledResidualAssembler',
                history: 'SolutionHistory') -> Dict[str, np.ndarray]:
        """
        Run every task for an accepted step.

        Returns:
            task key -> value computed for this step
        """
        values = {}
        for spec in self.specs:
            if spec.name == 'boundary_load':
                boundary_id = spec.args[0]
                key = f"boundary_load-{boundary_id}"
                value = compute_boundary_load(assembler, history, time_steps, boundary_id)
                self._append(key, f"{time:.10e} {value[0]:.10e} {value[1]:.10e}\n")
            else:
                start, end, n_lines, direction = spec.args
                key = "COD"
                value = compute_cod(assembler.dof_handler, history.solution,
                                    start, end, n_lines, direction)
                if self.directory is not None:
                    np.savetxt(os.path.join(self.directory, f"cod-{step_number:03d}.txt"),
                               value, header=f"t = {time:.10e}\nposition COD")

            self.results.setdefault(key, []).append((time, value))
            values[key] = value
        return values

    def _append(self, key: str, line: str) -> None:
        if self.directory is None:
            return
        with open(os.path.join(self.directory, f"{key}.txt"), 'a') as f:
            f.write(line)
