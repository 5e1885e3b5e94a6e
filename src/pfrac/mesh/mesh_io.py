"""
Mesh I/O Functions
==================

Read Gmsh meshes and write VTU output through meshio.
"""

import numpy as np
import meshio
from typing import Dict, Optional
from .triangle_mesh import TriangleMesh, edge_key
from ..exceptions import MeshIOError


def read_gmsh(filename: str) -> TriangleMesh:
    """
    Read Gmsh .msh file and return TriangleMesh.

    Triangle cells become elements. Line cells tagged with a physical group
    label the boundary edges they cover. Nodes not referenced by any
    triangle are dropped.

    Args:
        filename: path to .msh file

    Returns:
        TriangleMesh instance

    Raises:
        MeshIOError: if the file cannot be read or holds no triangles
    """
    try:
        mesh_data = meshio.read(filename)
    except (OSError, ValueError, KeyError, meshio.ReadError) as err:
        raise MeshIOError(f"Cannot read mesh file '{filename}': {err}") from err

    physical = mesh_data.cell_data.get("gmsh:physical")

    triangles = []
    lines = []
    for block_idx, cell_block in enumerate(mesh_data.cells):
        if cell_block.type == "triangle":
            triangles.append(cell_block.data)
        elif cell_block.type == "line":
            if physical is not None:
                tags = np.asarray(physical[block_idx], dtype=np.int64)
            else:
                tags = np.zeros(len(cell_block.data), dtype=np.int64)
            lines.append((cell_block.data, tags))

    if not triangles:
        raise MeshIOError(f"No triangle elements found in mesh file '{filename}'")

    elements = np.vstack(triangles).astype(np.int64)

    # Renumber to the nodes actually used by triangles
    used = np.unique(elements)
    renumber = np.full(len(mesh_data.points), -1, dtype=np.int64)
    renumber[used] = np.arange(len(used))
    nodes = mesh_data.points[used, :2]
    elements = renumber[elements]

    boundary_ids = {}
    for data, tags in lines:
        for (n1, n2), tag in zip(data, tags):
            a, b = renumber[n1], renumber[n2]
            if a >= 0 and b >= 0:
                boundary_ids[edge_key(a, b)] = int(tag)

    return TriangleMesh(nodes, elements, boundary_ids=boundary_ids)


def write_vtu(mesh: TriangleMesh, filename: str,
              point_data: Optional[Dict[str, np.ndarray]] = None,
              cell_data: Optional[Dict[str, np.ndarray]] = None) -> None:
    """
    Write VTU file for ParaView visualization.

    Args:
        mesh: TriangleMesh instance
        filename: output filename
        point_data: dict of node-based scalar/vector fields
        cell_data: dict of element-based scalar fields
    """
    points = np.column_stack([mesh.nodes, np.zeros(mesh.n_nodes)])
    cells = [("triangle", mesh.elements)]

    cell_data_dict = {}
    if cell_data:
        for name, data in cell_data.items():
            cell_data_dict[name] = [np.asarray(data)]

    meshio_mesh = meshio.Mesh(
        points=points,
        cells=cells,
        point_data=point_data or {},
        cell_data=cell_data_dict,
    )
    meshio.write(filename, meshio_mesh, file_format="vtu")
