"""
Mesh Generators
===============

Structured rectangle meshes with labelled sides, and uniform red refinement.

Side labels of generated rectangles:
    0: left (x = 0), 1: right (x = Lx), 2: bottom (y = 0), 3: top (y = Ly)
"""

import numpy as np
from typing import Dict, Optional
from .triangle_mesh import TriangleMesh, EdgeKey, edge_key

LEFT, RIGHT, BOTTOM, TOP = 0, 1, 2, 3

PATTERNS = ('right', 'left', 'alternating')


def create_rectangle_mesh(Lx: float, Ly: float, nx: int, ny: int,
                          pattern: str = 'right') -> TriangleMesh:
    """
    Structured triangulation of [0, Lx] × [0, Ly].

    Every grid cell is cut along one diagonal:
        'right'        lower-left to upper-right
        'left'         lower-right to upper-left
        'alternating'  checkerboard of both

    Args:
        Lx, Ly: side lengths
        nx, ny: grid cells per direction
        pattern: diagonal pattern

    Returns:
        TriangleMesh with sides labelled LEFT, RIGHT, BOTTOM, TOP
    """
    if Lx <= 0 or Ly <= 0:
        raise ValueError(f"domain dimensions must be positive, got ({Lx}, {Ly})")
    if nx < 1 or ny < 1:
        raise ValueError(f"number of divisions must be positive, got ({nx}, {ny})")
    if pattern not in PATTERNS:
        raise ValueError(f"Unknown pattern: {pattern}")

    xs, ys = np.meshgrid(np.linspace(0.0, Lx, nx + 1), np.linspace(0.0, Ly, ny + 1))
    nodes = np.column_stack([xs.ravel(), ys.ravel()])
    grid = np.arange((nx + 1) * (ny + 1)).reshape(ny + 1, nx + 1)

    # Corners of every grid cell, row by row
    sw = grid[:-1, :-1].ravel()
    se = grid[:-1, 1:].ravel()
    nw = grid[1:, :-1].ravel()
    ne = grid[1:, 1:].ravel()

    jj, ii = np.divmod(np.arange(nx * ny), nx)
    if pattern == 'right':
        rising = np.ones(nx * ny, dtype=bool)
    elif pattern == 'left':
        rising = np.zeros(nx * ny, dtype=bool)
    else:
        rising = (ii + jj) % 2 == 0

    first = np.where(rising[:, None], np.column_stack([sw, se, ne]),
                     np.column_stack([sw, se, nw]))
    second = np.where(rising[:, None], np.column_stack([sw, ne, nw]),
                      np.column_stack([se, ne, nw]))
    elements = np.stack([first, second], axis=1).reshape(-1, 3)

    boundary_ids: Dict[EdgeKey, int] = {}
    for side, line in ((BOTTOM, grid[0]), (TOP, grid[-1]),
                       (LEFT, grid[:, 0]), (RIGHT, grid[:, -1])):
        for a, b in zip(line[:-1], line[1:]):
            boundary_ids[edge_key(a, b)] = side

    return TriangleMesh(nodes, elements, boundary_ids=boundary_ids)


def create_square_mesh(L: float, n: int, pattern: str = 'right') -> TriangleMesh:
    """n × n structured mesh of the square [0, L]²."""
    return create_rectangle_mesh(L, L, n, n, pattern)


def create_single_element(node_coords: Optional[np.ndarray] = None) -> TriangleMesh:
    """One-cell mesh, by default the unit right triangle."""
    if node_coords is None:
        node_coords = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
    return TriangleMesh(node_coords, np.array([[0, 1, 2]]))


def refine_mesh(mesh: TriangleMesh) -> TriangleMesh:
    """
    Red refinement: split every cell into four through its edge midpoints.

    Both halves of a boundary edge keep its label. Cell diameters halve, so
    cell levels grow by two, the same as two bisections.

    Args:
        mesh: TriangleMesh

    Returns:
        refined TriangleMesh
    """
    midpoints = 0.5 * (mesh.nodes[mesh.edges[:, 0]] + mesh.nodes[mesh.edges[:, 1]])
    nodes = np.vstack([mesh.nodes, midpoints])

    n0, n1, n2 = mesh.elements.T
    m0, m1, m2 = (mesh.n_nodes + mesh.element_to_edges).T
    children = np.stack([
        np.column_stack([n0, m2, m1]),
        np.column_stack([n1, m0, m2]),
        np.column_stack([n2, m1, m0]),
        np.column_stack([m0, m1, m2]),
    ], axis=1).reshape(-1, 3)

    boundary_ids: Dict[EdgeKey, int] = {}
    for e in mesh.boundary_edges:
        a, b = mesh.edges[e]
        mid = mesh.n_nodes + e
        boundary_ids[edge_key(a, mid)] = int(mesh.edge_boundary_ids[e])
        boundary_ids[edge_key(mid, b)] = int(mesh.edge_boundary_ids[e])

    return TriangleMesh(nodes, children, boundary_ids=boundary_ids,
                        levels=np.repeat(mesh.levels + 2, 4))
