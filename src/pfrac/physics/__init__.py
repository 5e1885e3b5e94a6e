"""
Physics Module
==============

Material model, tension-compression split, degradation, initial defects,
and pressure coupling.
"""

from .material import PhaseFieldMaterial
from .tension_split import (
    strain_plus,
    stress_decomposition,
    stress_decomposition_derivative,
    elastic_stress,
    tensile_energy_density,
    verify_stress_partition,
)
from .degradation import (
    degradation_function,
    degradation_derivative,
    extrapolate_phase_field,
)
from .initial_values import defect_phase_field, distance_to_segment
from .pressure import PressureFunction, PressureCoupler

__all__ = [
    "PhaseFieldMaterial",
    "strain_plus",
    "stress_decomposition",
    "stress_decomposition_derivative",
    "elastic_stress",
    "tensile_energy_density",
    "verify_stress_partition",
    "degradation_function",
    "degradation_derivative",
    "extrapolate_phase_field",
    "defect_phase_field",
    "distance_to_segment",
    "PressureFunction",
    "PressureCoupler",
]
