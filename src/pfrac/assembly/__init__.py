"""
Assembly Module
===============

Coupled residual/Jacobian assembly and boundary conditions.
"""

from .coupled_assembly import CoupledResidualAssembler, AssemblyResult
from .boundary_conditions import (
    DisplacementBC,
    PointDisplacement,
    BoundaryConditionManager,
    apply_dirichlet_bc,
    merge_bcs,
)

__all__ = [
    "CoupledResidualAssembler",
    "AssemblyResult",
    "DisplacementBC",
    "PointDisplacement",
    "BoundaryConditionManager",
    "apply_dirichlet_bc",
    "merge_bcs",
]
