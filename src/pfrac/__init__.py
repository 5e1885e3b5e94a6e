"""
Pressurized Phase-Field Fracture
================================

Quasi-static brittle fracture of a pressurized 2-D solid: a regularized
phase-field model coupled to linear elasticity and a crack pressure, solved
by a Newton iteration with an active set for irreversibility, time-step
cutting and adaptive bisection refinement.

Modules:
    mesh: triangle mesh, generators, Gmsh/VTU I/O, dof handler, adaptivity
    elements: linear triangle element
    physics: material, stress split, degradation, defects, pressure
    assembly: coupled residual/Jacobian and displacement constraints
    solvers: active set, linear and Newton solvers, time stepping, refiner
    postprocess: snapshots, output files, boundary load, COD, plots
    config: JSON input file
    simulation: the complete driver
"""

__version__ = "0.1.0"

from . import mesh
from . import elements
from . import physics
from . import assembly
from . import solvers
from . import postprocess
from .exceptions import (
    PhaseFieldError,
    NonConvergence,
    FatalNonConvergence,
    ConfigurationError,
    MeshIOError,
)
from .config import SimulationConfig, load_config
from .simulation import PressurizedFractureSimulation
