"""
Solution Output
===============

Per-step snapshots and their VTU/PVD files.
"""

import os
import numpy as np
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Tuple, TYPE_CHECKING

from ..mesh.mesh_io import write_vtu

if TYPE_CHECKING:
    from ..mesh.triangle_mesh import TriangleMesh


@dataclass(frozen=True)
class StepSnapshot:
    """
    Immutable record of an accepted time step.

    Attributes:
        step_number: index of the accepted step
        time: simulation time
        mesh: mesh the fields live on
        solution: coupled solution [u_x, u_y, φ] per node
        active_set: boolean mask over dofs
        pressure: nodal pressure
        cell_stresses: shape (n_elements, 3), [σ_xx, σ_yy, σ_xy]
    """
    step_number: int
    time: float
    mesh: 'TriangleMesh'
    solution: np.ndarray
    active_set: np.ndarray
    pressure: np.ndarray
    cell_stresses: np.ndarray

    def __post_init__(self):
        for name in ('solution', 'active_set', 'pressure', 'cell_stresses'):
            array = np.array(getattr(self, name))
            array.flags.writeable = False
            object.__setattr__(self, name, array)

    @property
    def nodal(self) -> np.ndarray:
        return self.solution.reshape(self.mesh.n_nodes, -1)

    @property
    def displacement(self) -> np.ndarray:
        """Nodal displacements, shape (n_nodes, 2)."""
        return self.nodal[:, :2]

    @property
    def phase_field(self) -> np.ndarray:
        """Nodal phase field, shape (n_nodes,)."""
        return self.nodal[:, 2]

    @property
    def active_phase_field(self) -> np.ndarray:
        """Active-set indicator per node (1 where φ is pinned)."""
        return self.active_set.reshape(self.mesh.n_nodes, -1)[:, 2].astype(np.float64)


class SolutionWriter:
    """
    Writes one VTU file per accepted step and a PVD time index.

    Attributes:
        directory: output directory
        basename: file name prefix
        records: (time, file name) of every written step
    """

    def __init__(self, directory: str, basename: str = 'solution'):
        self.directory = directory
        self.basename = basename
        self.records: List[Tuple[float, str]] = []
        os.makedirs(directory, exist_ok=True)

    def write(self, snapshot: StepSnapshot) -> str:
        """
        Write the fields of a snapshot.

        Args:
            snapshot: StepSnapshot

        Returns:
            path of the written VTU file
        """
        filename = f"{self.basename}-{snapshot.step_number:03d}.vtu"
        path = os.path.join(self.directory, filename)

        displacement = np.column_stack([snapshot.displacement,
                                        np.zeros(snapshot.mesh.n_nodes)])
        point_data = {
            'displacement': displacement,
            'phase_field': np.asarray(snapshot.phase_field),
            'active_set': snapshot.active_phase_field,
            'pressure': np.asarray(snapshot.pressure),
        }
        cell_data = {
            'sigma_xx': snapshot.cell_stresses[:, 0],
            'sigma_yy': snapshot.cell_stresses[:, 1],
            'sigma_xy': snapshot.cell_stresses[:, 2],
        }
        write_vtu(snapshot.mesh, path, point_data=point_data, cell_data=cell_data)

        self.records.append((snapshot.time, filename))
        self.write_pvd()
        return path

    def write_pvd(self) -> str:
        """Write the ParaView collection file listing all steps."""
        root = ET.Element('VTKFile', type='Collection', version='0.1')
        collection = ET.SubElement(root, 'Collection')
        for time, filename in self.records:
            ET.SubElement(collection, 'DataSet', timestep=f"{time:.12g}",
                          group='', part='0', file=filename)

        path = os.path.join(self.directory, f"{self.basename}.pvd")
        ET.ElementTree(root).write(path, xml_declaration=True, encoding='utf-8')
        return path
