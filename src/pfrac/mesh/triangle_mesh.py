"""
Triangle Mesh
=============

Conforming triangle mesh with boundary labels and the per-cell bookkeeping
(refinement level, bisection lineage) needed by adaptive refinement.

Local edge k of a cell is the edge opposite to its local node k:

    edge 0 = (n1, n2),  edge 1 = (n2, n0),  edge 2 = (n0, n1)

Node 0 is the newest vertex for bisection, so edge 0 is the refinement edge.
"""

import numpy as np
from typing import Dict, List, Optional, Tuple

EdgeKey = Tuple[int, int]

_LOCAL_EDGES = np.array([[1, 2], [2, 0], [0, 1]])


def edge_key(n1: int, n2: int) -> EdgeKey:
    """Canonical (smaller index first) key of an edge."""
    n1, n2 = int(n1), int(n2)
    return (n1, n2) if n1 < n2 else (n2, n1)


class TriangleMesh:
    """
    Conforming triangle mesh with labelled boundary edges.

    Attributes:
        nodes: shape (n_nodes, 2), coordinates
        elements: shape (n_elements, 3), node indices per cell
        edges: shape (n_edges, 2), unique edges, smaller node index first
        element_to_edges: shape (n_elements, 3), local edge k -> edge index
        edge_to_elements: cells sharing each edge (one or two)
        boundary_edges: edges owned by a single cell
        boundary_nodes: nodes on boundary edges
        edge_boundary_ids: shape (n_edges,), label of each boundary edge,
            -1 in the interior
        levels: shape (n_elements,), refinement level counted in bisections;
            a red refinement counts as two
        lineage: shape (n_elements,), 1 for an unbisected cell, otherwise
            2 * parent lineage + (0 first child, 1 second child)
        element_areas: shape (n_elements,)
        edge_lengths: shape (n_edges,)
    """

    def __init__(self, nodes: np.ndarray, elements: np.ndarray,
                 boundary_ids: Optional[Dict[EdgeKey, int]] = None,
                 levels: Optional[np.ndarray] = None,
                 lineage: Optional[np.ndarray] = None):
        """
        Args:
            nodes: shape (n_nodes, 2)
            elements: shape (n_elements, 3)
            boundary_ids: label of boundary edges keyed by edge_key;
                unlabelled boundary edges get label 0
            levels: refinement level per cell (default 0)
            lineage: bisection lineage per cell (default 1)
        """
        self.nodes = np.asarray(nodes, dtype=np.float64)
        self.elements = np.asarray(elements, dtype=np.int64)

        if self.nodes.ndim != 2 or self.nodes.shape[1] != 2:
            raise ValueError(f"nodes must have shape (n, 2), got {self.nodes.shape}")
        if self.elements.ndim != 2 or self.elements.shape[1] != 3:
            raise ValueError(f"elements must have shape (m, 3), got {self.elements.shape}")
        if self.elements.size and (self.elements.min() < 0 or
                                   self.elements.max() >= len(self.nodes)):
            raise ValueError("elements reference nodes that do not exist")

        n_el = len(self.elements)
        self.levels = (np.zeros(n_el, dtype=np.int64) if levels is None
                       else np.array(levels, dtype=np.int64))
        self.lineage = (np.ones(n_el, dtype=np.int64) if lineage is None
                        else np.array(lineage, dtype=np.int64))
        if len(self.levels) != n_el or len(self.lineage) != n_el:
            raise ValueError("levels and lineage need one entry per element")

        self._connect()
        self._label_boundary(boundary_ids or {})

        X = self.nodes[self.elements]
        d1, d2 = X[:, 1] - X[:, 0], X[:, 2] - X[:, 0]
        self.element_areas = 0.5 * np.abs(d1[:, 0] * d2[:, 1] - d2[:, 0] * d1[:, 1])
        self.edge_lengths = np.linalg.norm(
            self.nodes[self.edges[:, 0]] - self.nodes[self.edges[:, 1]], axis=1)

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_elements(self) -> int:
        return len(self.elements)

    @property
    def n_edges(self) -> int:
        return len(self.edges)

    def _connect(self) -> None:
        local = np.sort(self.elements[:, _LOCAL_EDGES], axis=2).reshape(-1, 2)
        self.edges, inverse, counts = np.unique(local, axis=0, return_inverse=True,
                                                return_counts=True)
        inverse = np.asarray(inverse).ravel()
        if np.any(counts > 2):
            raise ValueError("mesh is not a manifold: an edge has more than two elements")

        self.element_to_edges = inverse.reshape(-1, 3)
        self.edge_to_elements: List[List[int]] = [[] for _ in range(len(self.edges))]
        for flat, edge in enumerate(inverse):
            self.edge_to_elements[edge].append(flat // 3)
        self._edge_counts = counts

    def _label_boundary(self, boundary_ids: Dict[EdgeKey, int]) -> None:
        self.boundary_edges = np.flatnonzero(self._edge_counts == 1)
        self.boundary_nodes = np.unique(self.edges[self.boundary_edges])

        self.edge_boundary_ids = np.full(self.n_edges, -1, dtype=np.int64)
        for e in self.boundary_edges:
            self.edge_boundary_ids[e] = boundary_ids.get(
                (int(self.edges[e, 0]), int(self.edges[e, 1])), 0)

    def cell_diameters(self) -> np.ndarray:
        """Longest edge of each cell."""
        return self.edge_lengths[self.element_to_edges].max(axis=1)

    def minimum_cell_diameter(self) -> float:
        return float(self.cell_diameters().min())

    def boundary_id_map(self) -> Dict[EdgeKey, int]:
        """Labels of all boundary edges keyed by edge_key."""
        return {(int(self.edges[e, 0]), int(self.edges[e, 1])): int(self.edge_boundary_ids[e])
                for e in self.boundary_edges}

    def boundary_ids(self) -> List[int]:
        """Sorted labels present on the boundary."""
        return sorted({int(b) for b in self.edge_boundary_ids[self.boundary_edges]})

    def get_boundary_edges(self, boundary_id: int) -> np.ndarray:
        return self.boundary_edges[self.edge_boundary_ids[self.boundary_edges] == boundary_id]

    def get_boundary_nodes(self, boundary_id: int) -> np.ndarray:
        """Sorted nodes on the edges carrying a label."""
        return np.unique(self.edges[self.get_boundary_edges(boundary_id)])

    def element_centroids(self) -> np.ndarray:
        return self.nodes[self.elements].mean(axis=1)

    def find_closest_node(self, point) -> int:
        """Index of the node nearest to a point."""
        offset = self.nodes - np.asarray(point, dtype=np.float64)
        return int(np.argmin(np.einsum('ij,ij->i', offset, offset)))
