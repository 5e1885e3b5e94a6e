"""
Degradation and Extrapolation
=============================

Stiffness degradation of the phase-field model.

Convention: φ = 1 is intact material and φ = 0 is fully broken.

    g(φ) = (1 - κ) φ² + κ

κ is a small residual stiffness that keeps the elastic problem well posed
inside the crack.
"""

import numpy as np
from typing import Tuple, Union

ArrayLike = Union[float, np.ndarray]


def degradation_function(phi: ArrayLike, kappa: float = 1e-10) -> ArrayLike:
    """
    Quadratic degradation function.

    Args:
        phi: phase-field value(s), 1 = intact
        kappa: residual stiffness

    Returns:
        g(φ) in [κ, 1] for φ in [0, 1]
    """
    return (1.0 - kappa) * np.asarray(phi) ** 2 + kappa


def degradation_derivative(phi: ArrayLike, kappa: float = 1e-10) -> ArrayLike:
    """
    Derivative g'(φ) = 2(1 - κ) φ.
    """
    return 2.0 * (1.0 - kappa) * np.asarray(phi)


def extrapolate_phase_field(phi_old: np.ndarray, phi_old_old: np.ndarray,
                            time_steps: Tuple[float, float]) -> np.ndarray:
    """
    Linear-in-time extrapolation of the phase field.

    The elastic equations are evaluated with φ_e instead of the unknown φ,
    which removes the φ-dependence of the displacement rows:

        φ_e = φ_old + (dt / dt_old) (φ_old - φ_old_old)

    For a constant step size this is φ_old + (φ_old - φ_old_old).
    The result is clipped to [0, 1].

    Args:
        phi_old: phase field at the previous accepted step
        phi_old_old: phase field two accepted steps back
        time_steps: (dt, dt_old)

    Returns:
        extrapolated phase field
    """
    time_step, old_time_step = time_steps
    phi_old = np.asarray(phi_old, dtype=np.float64)
    phi_old_old = np.asarray(phi_old_old, dtype=np.float64)
    if old_time_step > 0:
        ratio = time_step / old_time_step
    else:
        ratio = 0.0
    return np.clip(phi_old + ratio * (phi_old - phi_old_old), 0.0, 1.0)
