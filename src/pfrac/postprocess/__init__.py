"""
Postprocess Module
==================

Step snapshots, VTU/PVD output, boundary load and COD, and plotting.
"""

from .output import StepSnapshot, SolutionWriter
from .postprocessing import (
    compute_boundary_load,
    compute_cod,
    PostprocessingSpec,
    PostprocessingRunner,
)
from .visualization import (
    plot_mesh,
    plot_nodal_field,
    plot_phase_field,
    plot_displacement_field,
    plot_pressure_field,
    plot_boundary_load,
    plot_cod,
)

__all__ = [
    "StepSnapshot",
    "SolutionWriter",
    "compute_boundary_load",
    "compute_cod",
    "PostprocessingSpec",
    "PostprocessingRunner",
    "plot_mesh",
    "plot_nodal_field",
    "plot_phase_field",
    "plot_displacement_field",
    "plot_pressure_field",
    "plot_boundary_load",
    "plot_cod",
]
