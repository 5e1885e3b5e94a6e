"""
Tension-Compression Split
=========================

Spectral decomposition of the stress into a tensile part, which is degraded
by the phase field, and a compressive part, which is not (Miehe et al. 2010).

    ε⁺ = Σ <ε_a>₊ n_a ⊗ n_a
    σ⁺ = 2μ ε⁺ + λ <tr ε>₊ I
    σ⁻ = 2μ (ε - ε⁺) + λ (tr ε - <tr ε>₊) I

so that σ⁺ + σ⁻ = 2μ ε + λ tr(ε) I for every strain.
"""

import numpy as np
from typing import Tuple

# Relative gap below which two eigenvalues are treated as equal
_EIGENVALUE_TOL = 1e-12


def _heaviside(value: float) -> float:
    return 1.0 if value > 0 else 0.0


def _check_strain(strain: np.ndarray) -> np.ndarray:
    strain = np.asarray(strain, dtype=np.float64)
    if strain.ndim != 2 or strain.shape[0] != strain.shape[1] or strain.shape[0] not in (2, 3):
        raise ValueError(f"strain must be a 2x2 or 3x3 tensor, got shape {strain.shape}")
    # Only the symmetric part carries strain
    return 0.5 * (strain + strain.T)


def strain_plus(strain: np.ndarray) -> np.ndarray:
    """
    Positive (tensile) part of a strain tensor.

    Args:
        strain: symmetric tensor, shape (d, d)

    Returns:
        ε⁺: shape (d, d)
    """
    strain = _check_strain(strain)
    eigenvalues, eigenvectors = np.linalg.eigh(strain)
    lam_plus = np.maximum(eigenvalues, 0.0)
    return (eigenvectors * lam_plus) @ eigenvectors.T


def stress_decomposition(strain: np.ndarray, lame_mu: float,
                         lame_lambda: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split the elastic stress into tensile and compressive parts.

    Args:
        strain: symmetric strain tensor, shape (2, 2) or (3, 3)
        lame_mu: shear modulus μ
        lame_lambda: first Lamé parameter λ

    Returns:
        stress_plus: σ⁺, shape (d, d)
        stress_minus: σ⁻, shape (d, d)
    """
    strain = _check_strain(strain)
    identity = np.eye(strain.shape[0])

    eps_plus = strain_plus(strain)
    trace = np.trace(strain)
    trace_plus = max(trace, 0.0)

    stress_plus = 2 * lame_mu * eps_plus + lame_lambda * trace_plus * identity
    stress_minus = (2 * lame_mu * (strain - eps_plus) +
                    lame_lambda * (trace - trace_plus) * identity)
    return stress_plus, stress_minus


def strain_plus_derivative(strain: np.ndarray, d_strain: np.ndarray) -> np.ndarray:
    """
    Directional derivative of ε⁺ in direction dε.

    In the eigenbasis of ε the derivative has components

        (dε⁺)_ab = θ_ab (dε)_ab,  θ_ab = (<λ_a>₊ - <λ_b>₊) / (λ_a - λ_b)

    with θ_aa = H(λ_a), also used when two eigenvalues coincide.

    Args:
        strain: symmetric tensor ε, shape (d, d)
        d_strain: symmetric direction dε, shape (d, d)

    Returns:
        dε⁺: shape (d, d)
    """
    strain = _check_strain(strain)
    d_strain = _check_strain(d_strain)
    eigenvalues, eigenvectors = np.linalg.eigh(strain)
    dim = len(eigenvalues)

    theta = np.empty((dim, dim))
    for a in range(dim):
        for b in range(dim):
            la, lb = eigenvalues[a], eigenvalues[b]
            scale = max(abs(la), abs(lb))
            if a != b and abs(la - lb) > _EIGENVALUE_TOL * scale:
                theta[a, b] = (max(la, 0.0) - max(lb, 0.0)) / (la - lb)
            else:
                theta[a, b] = _heaviside(0.5 * (la + lb))

    d_local = eigenvectors.T @ d_strain @ eigenvectors
    return eigenvectors @ (theta * d_local) @ eigenvectors.T


def stress_decomposition_derivative(strain: np.ndarray, d_strain: np.ndarray,
                                    lame_mu: float, lame_lambda: float
                                    ) -> Tuple[np.ndarray, np.ndarray]:
    """
    Directional derivatives of σ⁺ and σ⁻ with respect to the strain.

    Args:
        strain: strain tensor ε at which to linearize
        d_strain: strain direction dε
        lame_mu: shear modulus μ
        lame_lambda: first Lamé parameter λ

    Returns:
        d_stress_plus: dσ⁺, shape (d, d)
        d_stress_minus: dσ⁻, shape (d, d)
    """
    strain = _check_strain(strain)
    d_strain = _check_strain(d_strain)
    identity = np.eye(strain.shape[0])

    d_eps_plus = strain_plus_derivative(strain, d_strain)
    h_trace = _heaviside(np.trace(strain))
    d_trace = np.trace(d_strain)

    d_stress_plus = 2 * lame_mu * d_eps_plus + lame_lambda * h_trace * d_trace * identity
    d_stress_minus = (2 * lame_mu * (d_strain - d_eps_plus) +
                      lame_lambda * (1.0 - h_trace) * d_trace * identity)
    return d_stress_plus, d_stress_minus


def elastic_stress(strain: np.ndarray, lame_mu: float, lame_lambda: float) -> np.ndarray:
    """Undamaged isotropic stress 2μ ε + λ tr(ε) I."""
    strain = _check_strain(strain)
    return 2 * lame_mu * strain + lame_lambda * np.trace(strain) * np.eye(strain.shape[0])


def tensile_energy_density(strain: np.ndarray, lame_mu: float,
                           lame_lambda: float) -> float:
    """
    Tensile strain energy density ψ⁺ = ½λ<tr ε>₊² + μ tr((ε⁺)²).

    Equals ½ σ⁺:ε.
    """
    strain = _check_strain(strain)
    eps_plus = strain_plus(strain)
    trace_plus = max(np.trace(strain), 0.0)
    return 0.5 * lame_lambda * trace_plus ** 2 + lame_mu * np.sum(eps_plus * eps_plus)


def verify_stress_partition(strain: np.ndarray, lame_mu: float, lame_lambda: float,
                            tol: float = 1e-10) -> bool:
    """
    Check that σ⁺ + σ⁻ reproduces the undamaged stress.

    Args:
        strain: strain tensor
        lame_mu: shear modulus μ
        lame_lambda: first Lamé parameter λ
        tol: relative tolerance

    Returns:
        True if the partition holds
    """
    stress_plus, stress_minus = stress_decomposition(strain, lame_mu, lame_lambda)
    stress = elastic_stress(strain, lame_mu, lame_lambda)
    scale = max(np.max(np.abs(stress)), 1e-15)
    return np.max(np.abs(stress_plus + stress_minus - stress)) <= tol * scale
