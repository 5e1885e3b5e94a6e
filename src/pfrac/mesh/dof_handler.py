"""
Degree-of-Freedom Handler
=========================

Owner of the current mesh and the numbering of the coupled unknowns.

Every node carries three unknowns [u_x, u_y, φ], interleaved so that the
dof of node n and component c is 3n + c. After the mesh changes the handler
is re-initialized in place, so every component holding a reference to it
sees the new topology.
"""

import numpy as np
from typing import List, Union

from .triangle_mesh import TriangleMesh
from ..elements.p1_element import P1Element

COMPONENTS = {'x': 0, 'y': 1, 'phi': 2}


def component_index(component: Union[str, int]) -> int:
    """
    Map a component name ('x', 'y', 'phi') or index to its index.
    """
    if isinstance(component, str):
        if component not in COMPONENTS:
            raise ValueError(f"Unknown component: {component}")
        return COMPONENTS[component]
    if int(component) not in (0, 1, 2):
        raise ValueError(f"Unknown component: {component}")
    return int(component)


class DoFHandler:
    """
    Node-based dof numbering for the coupled field.

    Attributes:
        mesh: current TriangleMesh
        elements: P1Element for every mesh element
        cell_dofs: shape (n_elements, 9), global dofs of each element in
            local order [u_x0, u_y0, φ0, u_x1, ...]
        revision: incremented on every re-initialization
    """

    n_components = 3

    def __init__(self, mesh: TriangleMesh):
        self.revision = 0
        self.reinit(mesh)

    def reinit(self, mesh: TriangleMesh) -> None:
        """
        Attach a new mesh and rebuild all dof maps.

        Args:
            mesh: new TriangleMesh
        """
        self.mesh = mesh
        self.elements: List[P1Element] = [P1Element(mesh.nodes[e]) for e in mesh.elements]
        self.cell_dofs = (self.n_components * mesh.elements[:, :, None] +
                          np.arange(self.n_components)).reshape(mesh.n_elements, -1)
        self._lumped_mass = np.bincount(
            mesh.elements.ravel(),
            weights=np.repeat(mesh.element_areas / 3, 3),
            minlength=mesh.n_nodes,
        )
        self.revision += 1

    @property
    def n_nodes(self) -> int:
        return self.mesh.n_nodes

    @property
    def n_dofs(self) -> int:
        """Total number of unknowns."""
        return self.n_components * self.mesh.n_nodes

    def dof(self, node: int, component: Union[str, int]) -> int:
        return self.n_components * node + component_index(component)

    def component_dofs(self, component: Union[str, int]) -> np.ndarray:
        """All dofs of one component, ordered by node."""
        return np.arange(component_index(component), self.n_dofs, self.n_components)

    @property
    def phase_field_dofs(self) -> np.ndarray:
        return self.component_dofs('phi')

    @property
    def displacement_dofs(self) -> np.ndarray:
        return np.setdiff1d(np.arange(self.n_dofs), self.phase_field_dofs)

    def is_phase_field_dof(self, dofs) -> np.ndarray:
        return np.asarray(dofs) % self.n_components == COMPONENTS['phi']

    def phase_field_values(self, vector: np.ndarray) -> np.ndarray:
        """Nodal φ of a coupled vector, shape (n_nodes,)."""
        return self._nodal(vector)[:, COMPONENTS['phi']]

    def displacement_values(self, vector: np.ndarray) -> np.ndarray:
        """Nodal displacements of a coupled vector, shape (n_nodes, 2)."""
        return self._nodal(vector)[:, :2]

    def _nodal(self, vector: np.ndarray) -> np.ndarray:
        vector = np.asarray(vector)
        if vector.size != self.n_dofs:
            raise ValueError(f"vector has {vector.size} entries, expected {self.n_dofs}")
        return vector.reshape(self.n_nodes, self.n_components)

    def lumped_mass(self) -> np.ndarray:
        """
        Lumped scalar mass per node.

        Returns:
            mass: shape (n_nodes,), sums to the domain area
        """
        return self._lumped_mass

    def boundary_dofs(self, boundary_id: int, component: Union[str, int]) -> np.ndarray:
        """
        Dofs of one component on a labelled boundary.

        Args:
            boundary_id: boundary label
            component: 'x', 'y', 'phi' or index

        Returns:
            dof indices, sorted
        """
        nodes = self.mesh.get_boundary_nodes(boundary_id)
        return self.n_components * nodes + component_index(component)

    def new_vector(self) -> np.ndarray:
        return np.zeros(self.n_dofs)
