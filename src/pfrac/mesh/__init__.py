"""
Mesh Module
===========

Triangle meshes with boundary labels, generators, Gmsh/VTU I/O, local
adaptivity, and dof numbering.
"""

from .triangle_mesh import TriangleMesh, edge_key
from .mesh_io import read_gmsh, write_vtu
from .mesh_generators import (
    create_rectangle_mesh,
    create_square_mesh,
    create_single_element,
    refine_mesh,
)
from .adaptivity import (
    longest_edge_labeling,
    bisect,
    coarsen,
    refine_region,
    SolutionTransfer,
)
from .dof_handler import DoFHandler, component_index

__all__ = [
    "TriangleMesh",
    "edge_key",
    "read_gmsh",
    "write_vtu",
    "create_rectangle_mesh",
    "create_square_mesh",
    "create_single_element",
    "refine_mesh",
    "longest_edge_labeling",
    "bisect",
    "coarsen",
    "refine_region",
    "SolutionTransfer",
    "DoFHandler",
    "component_index",
]
