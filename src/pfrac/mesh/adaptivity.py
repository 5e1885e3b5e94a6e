"""
Local Mesh Adaptivity
=====================

Newest-vertex bisection with conforming closure, sibling coarsening, and
transfer of nodal solution vectors between meshes.

Each element [p1, p2, p3] has p1 as its newest vertex and (p2, p3) as its
refinement edge. Bisecting it at the midpoint p4 of the refinement edge
gives the children [p4, p1, p2] and [p4, p3, p1]. Coarsening is the exact
inverse and only removes a node whose whole patch consists of such children.
"""

import numpy as np
from typing import List, Sequence, Tuple
from .triangle_mesh import TriangleMesh, edge_key


def _element_mask(mesh: TriangleMesh, marked) -> np.ndarray:
    marked = np.asarray(marked)
    if marked.dtype == bool:
        if marked.shape != (mesh.n_elements,):
            raise ValueError("element mask must have one entry per element")
        return marked.copy()
    mask = np.zeros(mesh.n_elements, dtype=bool)
    mask[marked.astype(np.int64)] = True
    return mask


def longest_edge_labeling(mesh: TriangleMesh) -> TriangleMesh:
    """
    Rotate every element so that its refinement edge is its longest edge.

    Rotation keeps the orientation of each element.

    Args:
        mesh: input mesh

    Returns:
        TriangleMesh with relabelled elements
    """
    lengths = mesh.edge_lengths[mesh.element_to_edges]
    newest = np.argmax(lengths, axis=1)
    order = (newest[:, None] + np.arange(3)[None, :]) % 3
    elements = np.take_along_axis(mesh.elements, order, axis=1)
    return TriangleMesh(mesh.nodes, elements, boundary_ids=mesh.boundary_id_map(),
                        levels=mesh.levels, lineage=mesh.lineage)


def _closure(mesh: TriangleMesh, marked: np.ndarray) -> np.ndarray:
    """Mark refinement edges until every element with a marked edge has its own marked."""
    base_edges = mesh.element_to_edges[:, 0]
    edge_marked = np.zeros(mesh.n_edges, dtype=bool)
    edge_marked[base_edges[marked]] = True

    while True:
        has_marked = edge_marked[mesh.element_to_edges].any(axis=1)
        pending = has_marked & ~edge_marked[base_edges]
        if not pending.any():
            return edge_marked
        edge_marked[base_edges[pending]] = True


def bisect(mesh: TriangleMesh, marked) -> Tuple[TriangleMesh, np.ndarray]:
    """
    Refine marked elements by newest-vertex bisection.

    Additional elements are bisected as needed to keep the mesh conforming.
    Existing nodes keep their indices; new nodes are appended.

    Args:
        mesh: input mesh
        marked: boolean mask or index array of elements to refine

    Returns:
        new_mesh: refined TriangleMesh
        parents: shape (n_new_nodes, 2), end points of the edge each new
            node bisects
    """
    mask = _element_mask(mesh, marked)
    if not mask.any():
        return mesh, np.zeros((0, 2), dtype=np.int64)

    edge_marked = _closure(mesh, mask)
    marked_edges = np.where(edge_marked)[0]
    parents = mesh.edges[marked_edges]

    midpoint_of = {(int(a), int(b)): mesh.n_nodes + i for i, (a, b) in enumerate(parents)}
    new_nodes = np.vstack([mesh.nodes,
                           0.5 * (mesh.nodes[parents[:, 0]] + mesh.nodes[parents[:, 1]])])

    elements: List[Tuple[int, int, int]] = []
    levels: List[int] = []
    lineage: List[int] = []
    for elem_idx, elem in enumerate(mesh.elements):
        stack = [(tuple(int(n) for n in elem),
                  int(mesh.levels[elem_idx]), int(mesh.lineage[elem_idx]))]
        while stack:
            (p1, p2, p3), level, lin = stack.pop()
            p4 = midpoint_of.get(edge_key(p2, p3))
            if p4 is None:
                elements.append((p1, p2, p3))
                levels.append(level)
                lineage.append(lin)
                continue
            # Second child pushed first so that the first child is emitted first
            stack.append(((p4, p3, p1), level + 1, 2 * lin + 1))
            stack.append(((p4, p1, p2), level + 1, 2 * lin))

    boundary_ids = mesh.boundary_id_map()
    for (a, b), mid in midpoint_of.items():
        label = boundary_ids.pop((a, b), None)
        if label is not None:
            boundary_ids[edge_key(a, mid)] = label
            boundary_ids[edge_key(mid, b)] = label

    new_mesh = TriangleMesh(new_nodes, np.array(elements, dtype=np.int64),
                            boundary_ids=boundary_ids,
                            levels=np.array(levels), lineage=np.array(lineage))
    return new_mesh, parents


def coarsen(mesh: TriangleMesh, marked) -> Tuple[TriangleMesh, np.ndarray, np.ndarray]:
    """
    Undo bisections whose children are all marked for coarsening.

    A node is removed when it is the newest vertex of every element around
    it, all of these elements are marked bisection children, and they form
    complete sibling pairs (4 elements inside the domain, 2 on the boundary).

    Args:
        mesh: input mesh
        marked: boolean mask or index array of elements to coarsen

    Returns:
        new_mesh: coarsened TriangleMesh
        kept_nodes: old index of each node of the new mesh
        origin: old element index of each new element, -1 for merged parents
    """
    mask = _element_mask(mesh, marked)

    elems = mesh.elements
    n_nodes = mesh.n_nodes
    newest = elems[:, 0]
    child = mask & (mesh.lineage > 1)

    valence = np.bincount(elems.ravel(), minlength=n_nodes)
    newest_count = np.bincount(newest, minlength=n_nodes)
    marked_count = np.bincount(newest[child], minlength=n_nodes)
    on_boundary = np.zeros(n_nodes, dtype=bool)
    on_boundary[mesh.boundary_nodes] = True

    good = ((valence == newest_count) & (marked_count == valence) &
            np.where(on_boundary, valence == 2, valence == 4))
    candidates = np.where(good)[0]

    if len(candidates) == 0:
        return mesh, np.arange(n_nodes), np.arange(mesh.n_elements)

    patch = {int(p): [] for p in candidates}
    for elem_idx in np.where(np.isin(newest, candidates))[0]:
        patch[int(newest[elem_idx])].append(int(elem_idx))

    consumed = np.zeros(mesh.n_elements, dtype=bool)
    removed = []
    merged = []
    boundary_ids = mesh.boundary_id_map()
    for p, around in patch.items():
        firsts = [e for e in around if mesh.lineage[e] % 2 == 0]
        seconds = [e for e in around if mesh.lineage[e] % 2 == 1]
        pairs = []
        for a in firsts:
            for b in seconds:
                if (elems[b, 2] == elems[a, 1] and
                        mesh.lineage[b] // 2 == mesh.lineage[a] // 2):
                    pairs.append((a, b))
                    break
        if 2 * len(pairs) != len(around):
            continue

        removed.append(p)
        for a, b in pairs:
            consumed[a] = consumed[b] = True
            parent = (int(elems[a, 1]), int(elems[a, 2]), int(elems[b, 1]))
            merged.append((parent, mesh.levels[a] - 1, mesh.lineage[a] // 2))
            label = boundary_ids.pop(edge_key(p, parent[1]), None)
            boundary_ids.pop(edge_key(p, parent[2]), None)
            if label is not None:
                boundary_ids[edge_key(parent[1], parent[2])] = label

    if not removed:
        return mesh, np.arange(n_nodes), np.arange(mesh.n_elements)

    kept_nodes = np.setdiff1d(np.arange(n_nodes), removed)
    renumber = np.full(n_nodes, -1, dtype=np.int64)
    renumber[kept_nodes] = np.arange(len(kept_nodes))

    kept_elems = np.where(~consumed)[0]
    elements = [tuple(e) for e in elems[kept_elems]] + [m[0] for m in merged]
    levels = list(mesh.levels[kept_elems]) + [m[1] for m in merged]
    lineage = list(mesh.lineage[kept_elems]) + [m[2] for m in merged]
    origin = np.concatenate([kept_elems, -np.ones(len(merged), dtype=np.int64)])

    boundary_ids = {edge_key(renumber[a], renumber[b]): label
                    for (a, b), label in boundary_ids.items()
                    if renumber[a] >= 0 and renumber[b] >= 0}

    new_mesh = TriangleMesh(mesh.nodes[kept_nodes], renumber[np.array(elements)],
                            boundary_ids=boundary_ids,
                            levels=np.array(levels), lineage=np.array(lineage))
    return new_mesh, kept_nodes, origin


def refine_region(mesh: TriangleMesh, box: Sequence[Sequence[float]],
                  n_steps: int) -> TriangleMesh:
    """
    Bisect elements whose centroid lies in an axis-aligned box.

    Args:
        mesh: input mesh
        box: [[x_min, x_max], [y_min, y_max]]
        n_steps: number of bisection sweeps

    Returns:
        refined TriangleMesh
    """
    (x_min, x_max), (y_min, y_max) = box
    for _ in range(n_steps):
        centroids = mesh.element_centroids()
        inside = ((centroids[:, 0] >= x_min) & (centroids[:, 0] <= x_max) &
                  (centroids[:, 1] >= y_min) & (centroids[:, 1] <= y_max))
        mesh, _ = bisect(mesh, inside)
    return mesh


class SolutionTransfer:
    """
    Carry nodal vectors through coarsening and bisection.

    Values of surviving nodes are kept unchanged. A node created by
    bisection receives the mean of the two end points of its edge, which is
    the exact P1 interpolant of the old field.

    Usage:
        transfer = SolutionTransfer(n_components=3)
        transfer.prepare([solution, old_solution], n_nodes)
        transfer.coarsen(kept_nodes)
        transfer.refine(parents)
        solution, old_solution = transfer.interpolate()
    """

    def __init__(self, n_components: int = 3):
        self.n_components = n_components
        self._values: List[np.ndarray] = []

    def prepare(self, vectors: Sequence[np.ndarray], n_nodes: int) -> None:
        """
        Snapshot vectors defined on the current mesh.

        Args:
            vectors: node-interleaved vectors of length n_nodes * n_components
            n_nodes: number of nodes of the current mesh
        """
        self._values = []
        for vector in vectors:
            vector = np.asarray(vector, dtype=np.float64)
            if vector.size != n_nodes * self.n_components:
                raise ValueError(f"vector has {vector.size} entries, expected "
                                 f"{n_nodes * self.n_components}")
            self._values.append(vector.reshape(n_nodes, self.n_components).copy())

    def coarsen(self, kept_nodes: np.ndarray) -> None:
        """Restrict the snapshot to the surviving nodes."""
        self._values = [values[kept_nodes] for values in self._values]

    def refine(self, parents: np.ndarray) -> None:
        """Append values for nodes created on the given edges."""
        if len(parents) == 0:
            return
        self._values = [np.vstack([values,
                                   0.5 * (values[parents[:, 0]] + values[parents[:, 1]])])
                        for values in self._values]

    def interpolate(self) -> List[np.ndarray]:
        """Flat vectors on the new mesh."""
        return [values.ravel().copy() for values in self._values]
