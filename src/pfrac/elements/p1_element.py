"""
Linear Triangle Element
=======================

P1 element shared by the displacement components and the phase field.
"""

import numpy as np


class P1Element:
    """
    Linear triangle with constant gradients.

    Integration uses the 3-point edge-midpoint rule, which is exact for
    quadratic integrands on a triangle.

    Attributes:
        nodes: shape (3, 2), node coordinates
        area: element area
        b, c: shape function derivative coefficients
        gradients: shape (3, 2), ∇N_i for each node i
        shape_values: shape (3, 3), N_i at quadrature point q as [q, i]
        weights: shape (3,), quadrature weights
    """

    # N_i at the midpoint of the edge opposite node q: 0 for i == q, 1/2 otherwise
    SHAPE_VALUES = 0.5 * (np.ones((3, 3)) - np.eye(3))

    def __init__(self, nodes: np.ndarray):
        self.nodes = np.array(nodes, dtype=np.float64)
        if self.nodes.shape != (3, 2):
            raise ValueError(f"expected (3, 2) node coordinates, got {self.nodes.shape}")
        self._compute_geometry()

    def _compute_geometry(self):
        x, y = self.nodes[:, 0], self.nodes[:, 1]

        # Signed so that clockwise elements still get the right gradients
        two_area = (x[1] - x[0]) * (y[2] - y[0]) - (x[2] - x[0]) * (y[1] - y[0])
        self.area = 0.5 * abs(two_area)
        if self.area < 1e-15:
            raise ValueError("Element has zero area (degenerate triangle)")

        # ∂N_i/∂x = (y_j - y_k) / 2A, ∂N_i/∂y = (x_k - x_j) / 2A for (i, j, k) cyclic
        self.b = np.roll(y, -1) - np.roll(y, -2)
        self.c = np.roll(x, -2) - np.roll(x, -1)

        self.gradients = np.column_stack([self.b, self.c]) / two_area
        self.shape_values = self.SHAPE_VALUES
        self.weights = np.full(3, self.area / 3)

    def gradient(self, values: np.ndarray) -> np.ndarray:
        """
        Gradient of a scalar P1 field.

        Args:
            values: shape (3,), nodal values

        Returns:
            gradient: shape (2,)
        """
        return self.gradients.T @ np.asarray(values, dtype=np.float64)

    def strain(self, u: np.ndarray) -> np.ndarray:
        """
        Small strain tensor from nodal displacements.

        Args:
            u: shape (3, 2), nodal displacements

        Returns:
            ε: shape (2, 2), symmetric
        """
        grad_u = np.asarray(u, dtype=np.float64).T @ self.gradients
        return 0.5 * (grad_u + grad_u.T)

    def basis_strain(self, node: int, component: int) -> np.ndarray:
        """
        Strain of the vector basis function of a node and component.

        Args:
            node: local node index
            component: 0 for x, 1 for y

        Returns:
            ε(N_i e_c): shape (2, 2)
        """
        grad_u = np.zeros((2, 2))
        grad_u[component] = self.gradients[node]
        return 0.5 * (grad_u + grad_u.T)

    def lumped_mass(self) -> np.ndarray:
        """Row-sum lumped mass of the scalar P1 mass matrix, shape (3,)."""
        return np.full(3, self.area / 3)
