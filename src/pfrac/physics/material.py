"""
Material Models
===============

Material parameters for the pressurized phase-field fracture model.
"""

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from ..exceptions import ConfigurationError


@dataclass(frozen=True)
class PhaseFieldMaterial:
    """
    Isotropic linear elastic solid with phase-field fracture parameters.

    Attributes:
        E: Young's modulus [Pa]
        nu: Poisson's ratio [-]
        Gc: critical energy release rate [J/m²]
        epsilon: phase-field regularization length [m]
        kappa: residual stiffness of fully broken material [-]
        biot: Biot coefficient α of the pore pressure coupling [-]
        penalty: active-set penalty constant c
        epsilon_factor: if set, epsilon is derived as factor × mesh size
    """
    E: float
    nu: float
    Gc: float = 1.0
    epsilon: Optional[float] = None
    kappa: float = 1e-10
    biot: float = 1.0
    penalty: float = 10.0
    epsilon_factor: Optional[float] = None

    def __post_init__(self):
        """Validate material parameters."""
        if self.E <= 0:
            raise ConfigurationError(f"Young's modulus must be positive, got {self.E}")
        if not -1 < self.nu < 0.5:
            raise ConfigurationError(f"Poisson's ratio must be in (-1, 0.5), got {self.nu}")
        if self.Gc <= 0:
            raise ConfigurationError(f"Gc must be positive, got {self.Gc}")
        if self.epsilon is None and self.epsilon_factor is None:
            raise ConfigurationError("Either epsilon or epsilon_factor must be given")
        if self.epsilon is not None and self.epsilon <= 0:
            raise ConfigurationError(f"epsilon must be positive, got {self.epsilon}")
        if self.epsilon_factor is not None and self.epsilon_factor <= 0:
            raise ConfigurationError(
                f"epsilon_factor must be positive, got {self.epsilon_factor}")
        if not 0 <= self.kappa < 1:
            raise ConfigurationError(f"kappa must be in [0, 1), got {self.kappa}")
        if self.penalty < 0:
            raise ConfigurationError(f"penalty must be non-negative, got {self.penalty}")

    @property
    def lame_lambda(self) -> float:
        """
        First Lamé parameter λ.

        λ = E·ν / ((1+ν)(1-2ν))
        """
        return self.E * self.nu / ((1 + self.nu) * (1 - 2 * self.nu))

    @property
    def lame_mu(self) -> float:
        """
        Second Lamé parameter μ (shear modulus).

        μ = E / (2(1+ν))
        """
        return self.E / (2 * (1 + self.nu))

    @property
    def is_resolved(self) -> bool:
        """True once the regularization length is known."""
        return self.epsilon is not None

    def with_mesh_size(self, mesh_size: float) -> 'PhaseFieldMaterial':
        """
        Resolve a mesh-dependent regularization length.

        Args:
            mesh_size: minimum cell diameter of the finest admissible mesh

        Returns:
            PhaseFieldMaterial with epsilon set
        """
        if self.epsilon_factor is None:
            return self
        return replace(self, epsilon=self.epsilon_factor * mesh_size)

    def elastic_stress(self, strain: np.ndarray) -> np.ndarray:
        """
        Undamaged stress tensor σ = 2μ ε + λ tr(ε) I.

        Args:
            strain: symmetric strain tensor, shape (d, d)

        Returns:
            stress tensor, shape (d, d)
        """
        strain = np.asarray(strain, dtype=np.float64)
        return (2 * self.lame_mu * strain +
                self.lame_lambda * np.trace(strain) * np.eye(strain.shape[0]))
