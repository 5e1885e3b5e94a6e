"""
Visualization
=============

Matplotlib plots of step snapshots (mesh, phase field, displacement,
pressure) and of the postprocessed load and COD curves.

All functions draw into `ax` when given, otherwise into a new figure, and
return the axes.
"""

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.tri import Triangulation
from typing import List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from ..mesh.triangle_mesh import TriangleMesh
    from .output import StepSnapshot


def _axes(ax: Optional['plt.Axes'], figsize: Tuple[float, float]) -> 'plt.Axes':
    if ax is None:
        _, ax = plt.subplots(figsize=figsize)
    return ax


def _triangulation(mesh: 'TriangleMesh') -> Triangulation:
    return Triangulation(mesh.nodes[:, 0], mesh.nodes[:, 1], mesh.elements)


def plot_mesh(mesh: 'TriangleMesh',
              ax: Optional['plt.Axes'] = None,
              show_nodes: bool = False,
              show_boundary_ids: bool = False,
              **kwargs) -> 'plt.Axes':
    """
    Draw the cell edges of a mesh.

    Args:
        mesh: TriangleMesh
        ax: target axes
        show_nodes: mark the nodes
        show_boundary_ids: write the label next to every boundary edge
        **kwargs: forwarded to triplot
    """
    ax = _axes(ax, (8, 8))
    kwargs.setdefault('lw', 0.5)
    ax.triplot(_triangulation(mesh), 'k-', **kwargs)

    if show_nodes:
        ax.plot(*mesh.nodes.T, 'k.', ms=4)
    if show_boundary_ids:
        centers = mesh.nodes[mesh.edges[mesh.boundary_edges]].mean(axis=1)
        for label, center in zip(mesh.edge_boundary_ids[mesh.boundary_edges], centers):
            ax.annotate(str(label), center, fontsize=7, color='tab:blue')

    ax.set_aspect('equal')
    ax.set_xlabel('x')
    ax.set_ylabel('y')
    return ax


def plot_nodal_field(mesh: 'TriangleMesh',
                     values: np.ndarray,
                     ax: Optional['plt.Axes'] = None,
                     cmap: str = 'viridis',
                     label: str = '',
                     colorbar: bool = True,
                     **kwargs) -> 'plt.Axes':
    """
    Gouraud-shaded plot of a nodal scalar.

    Args:
        mesh: TriangleMesh
        values: shape (n_nodes,)
        ax: target axes
        cmap: colormap name
        label: colorbar label
        colorbar: add a colorbar
        **kwargs: forwarded to tripcolor (vmin, vmax, ...)
    """
    ax = _axes(ax, (10, 8))
    image = ax.tripcolor(_triangulation(mesh), np.asarray(values, dtype=np.float64),
                         shading='gouraud', cmap=cmap, **kwargs)
    if colorbar:
        ax.figure.colorbar(image, ax=ax, label=label)

    ax.set_aspect('equal')
    ax.set_xlabel('x')
    ax.set_ylabel('y')
    return ax


def plot_phase_field(snapshot: 'StepSnapshot',
                     ax: Optional['plt.Axes'] = None,
                     **kwargs) -> 'plt.Axes':
    """Phase field of a step on a fixed [0, 1] scale, 0 = broken."""
    ax = plot_nodal_field(snapshot.mesh, snapshot.phase_field, ax=ax, cmap='hot',
                          label='Phase field', vmin=0.0, vmax=1.0, **kwargs)
    ax.set_title(f't = {snapshot.time:.4g}')
    return ax


def plot_displacement_field(snapshot: 'StepSnapshot',
                            component: str = 'magnitude',
                            ax: Optional['plt.Axes'] = None,
                            **kwargs) -> 'plt.Axes':
    """
    Displacement of a step.

    Args:
        snapshot: StepSnapshot
        component: 'x', 'y' or 'magnitude'
        ax: target axes
    """
    u = snapshot.displacement
    fields = {
        'x': lambda: u[:, 0],
        'y': lambda: u[:, 1],
        'magnitude': lambda: np.hypot(u[:, 0], u[:, 1]),
    }
    if component not in fields:
        raise ValueError(f"Unknown component: {component}")

    return plot_nodal_field(snapshot.mesh, fields[component](), ax=ax,
                            label=f'Displacement {component}', **kwargs)


def plot_pressure_field(snapshot: 'StepSnapshot',
                        ax: Optional['plt.Axes'] = None,
                        **kwargs) -> 'plt.Axes':
    return plot_nodal_field(snapshot.mesh, snapshot.pressure, ax=ax,
                            cmap='Blues', label='Pressure', **kwargs)


def plot_boundary_load(history: List[Tuple[float, np.ndarray]],
                       component: int = 1,
                       ax: Optional['plt.Axes'] = None,
                       **kwargs) -> 'plt.Axes':
    """
    Boundary load over time.

    Args:
        history: (time, [F_x, F_y]) per step, as kept by PostprocessingRunner
        component: 0 for F_x, 1 for F_y
        ax: target axes
    """
    ax = _axes(ax, (8, 6))
    times = np.array([t for t, _ in history])
    loads = np.array([value[component] for _, value in history])
    ax.plot(times, loads, 'o-', **kwargs)
    ax.set_xlabel('Time')
    ax.set_ylabel(f"Boundary load F_{'xy'[component]}")
    ax.grid(True, alpha=0.3)
    return ax


def plot_cod(cod: np.ndarray,
             ax: Optional['plt.Axes'] = None,
             **kwargs) -> 'plt.Axes':
    """COD profile of one step, `cod` as returned by compute_cod."""
    ax = _axes(ax, (8, 6))
    ax.plot(cod[:, 0], cod[:, 1], 's-', **kwargs)
    ax.set_xlabel('Position along crack')
    ax.set_ylabel('COD')
    ax.grid(True, alpha=0.3)
    return ax
