"""
Coupled Assembly
================

Residual and Jacobian of the pressurized phase-field system.

For test functions (w, ξ) the residual reads, per cell,

    R_u = (g(φ_e) σ⁺ + σ⁻) : e(w)
          - (α - 1) φ_e² p div w + φ_e² ∇p · w
    R_φ = (1 - κ) φ (σ⁺ : ε) ξ
          - 2 (α - 1) φ p div u ξ + 2 φ (∇p · u) ξ
          + G_c ( -(1/ε)(1 - φ) ξ + ε ∇φ · ∇ξ )

where φ_e is the phase field extrapolated from the two previous accepted
steps. The pressure terms are only present when requested. The Jacobian is
the exact derivative with respect to (u, φ); since the elastic rows only see
φ_e, their φ-derivative vanishes.
"""

import numpy as np
from scipy.sparse import coo_matrix, csr_matrix
from dataclasses import dataclass
from typing import Optional, Tuple, TYPE_CHECKING

from ..physics.tension_split import stress_decomposition, stress_decomposition_derivative
from ..physics.degradation import degradation_function, extrapolate_phase_field

if TYPE_CHECKING:
    from ..mesh.dof_handler import DoFHandler
    from ..physics.material import PhaseFieldMaterial
    from ..elements.p1_element import P1Element


@dataclass
class AssemblyResult:
    """Output of one assembly pass."""
    residual: np.ndarray
    matrix: Optional[csr_matrix] = None


class CoupledResidualAssembler:
    """
    Assembles the coupled displacement/phase-field system on P1 triangles.

    Assembly never modifies the vectors it is given.

    Attributes:
        dof_handler: owner of mesh and dof numbering
        material: PhaseFieldMaterial with a resolved epsilon
    """

    def __init__(self, dof_handler: 'DoFHandler', material: 'PhaseFieldMaterial'):
        if not material.is_resolved:
            raise ValueError("material epsilon must be resolved before assembly")
        self.dof_handler = dof_handler
        self.material = material

    def _check(self, name: str, vector: np.ndarray, size: int) -> np.ndarray:
        vector = np.asarray(vector, dtype=np.float64)
        if vector.shape != (size,):
            raise ValueError(f"{name} has shape {vector.shape}, expected ({size},)")
        return vector

    def assemble(self, solution: np.ndarray, pressure: np.ndarray,
                 old_solution: np.ndarray, old_old_solution: np.ndarray,
                 time_steps: Tuple[float, float],
                 include_pressure: bool = True,
                 assemble_matrix: bool = True) -> AssemblyResult:
        """
        Assemble the residual and optionally the Jacobian.

        Args:
            solution: current iterate, shape (n_dofs,)
            pressure: nodal pressure, shape (n_nodes,)
            old_solution: last accepted solution
            old_old_solution: solution accepted before that
            time_steps: (dt, dt_old)
            include_pressure: add the pressure terms
            assemble_matrix: also build the Jacobian

        Returns:
            AssemblyResult with residual and (optionally) CSR Jacobian
        """
        dh = self.dof_handler
        n_dofs = dh.n_dofs
        solution = self._check("solution", solution, n_dofs)
        old_solution = self._check("old_solution", old_solution, n_dofs)
        old_old_solution = self._check("old_old_solution", old_old_solution, n_dofs)
        pressure = self._check("pressure", pressure, dh.n_nodes)

        phi_e = extrapolate_phase_field(dh.phase_field_values(old_solution),
                                        dh.phase_field_values(old_old_solution),
                                        time_steps)
        nodal = solution.reshape(dh.n_nodes, dh.n_components)

        residual = np.zeros(n_dofs)
        rows, cols, vals = [], [], []

        for elem_idx, elem in enumerate(dh.elements):
            nodes = dh.mesh.elements[elem_idx]
            dofs = dh.cell_dofs[elem_idx]
            local = nodal[nodes]
            p_local = pressure[nodes] if include_pressure else None

            cell_residual, cell_matrix = self._cell_system(
                elem, local[:, :2], local[:, 2], phi_e[nodes], p_local, assemble_matrix)

            residual[dofs] += cell_residual
            if assemble_matrix:
                rows.append(np.repeat(dofs, len(dofs)))
                cols.append(np.tile(dofs, len(dofs)))
                vals.append(cell_matrix.ravel())

        matrix = None
        if assemble_matrix:
            matrix = coo_matrix((np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
                                shape=(n_dofs, n_dofs)).tocsr()
        return AssemblyResult(residual=residual, matrix=matrix)

    def _cell_system(self, elem: 'P1Element', u: np.ndarray, phi: np.ndarray,
                     phi_e: np.ndarray, pressure: Optional[np.ndarray],
                     assemble_matrix: bool) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """
        Local residual and Jacobian in local dof order [u_x0, u_y0, φ0, ...].

        Args:
            elem: P1Element
            u: shape (3, 2), nodal displacements
            phi: shape (3,), nodal phase field
            phi_e: shape (3,), extrapolated nodal phase field
            pressure: shape (3,) nodal pressure, or None to skip pressure terms
            assemble_matrix: also compute the local Jacobian

        Returns:
            residual: shape (9,)
            matrix: shape (9, 9) or None
        """
        mat = self.material
        mu, lam = mat.lame_mu, mat.lame_lambda
        kappa, gc, eps_reg = mat.kappa, mat.Gc, mat.epsilon
        alpha = mat.biot

        N = elem.shape_values
        G = elem.gradients
        w = elem.weights
        area = elem.area

        strain = elem.strain(u)
        stress_plus, stress_minus = stress_decomposition(strain, mu, lam)
        energy_plus = np.sum(stress_plus * strain)

        phi_q = N @ phi
        phi_e_q = N @ phi_e
        g_integral = w @ degradation_function(phi_e_q, kappa)
        grad_phi = G.T @ phi

        R = np.zeros((3, 3))
        R[:, :2] = G @ (g_integral * stress_plus + area * stress_minus)
        R[:, 2] = (N.T @ (w * ((1 - kappa) * phi_q * energy_plus -
                               gc / eps_reg * (1 - phi_q))) +
                   gc * eps_reg * area * (G @ grad_phi))

        phase_coeff = (1 - kappa) * energy_plus + gc / eps_reg
        if pressure is not None:
            p_q = N @ pressure
            grad_p = G.T @ pressure
            u_q = N @ u
            div_u = np.trace(strain)
            phi_e_sq = phi_e_q ** 2

            R[:, :2] += (-(alpha - 1) * (w @ (phi_e_sq * p_q)) * G +
                         np.outer(N.T @ (w * phi_e_sq), grad_p))
            R[:, 2] += N.T @ (w * phi_q * (-2 * (alpha - 1) * p_q * div_u +
                                           2 * (u_q @ grad_p)))
            phase_coeff = phase_coeff + (-2 * (alpha - 1) * p_q * div_u +
                                         2 * (u_q @ grad_p))

        if not assemble_matrix:
            return R.ravel(), None

        K = np.zeros((3, 3, 3, 3))  # [node_i, comp_c, node_j, comp_d]
        phase_weight = N.T @ (w * (1 - kappa) * phi_q)
        if pressure is not None:
            pressure_weight = N.T @ (w * phi_q * p_q)
            mixed_mass = N.T @ ((w * phi_q)[:, None] * N)

        for j in range(3):
            for d in range(2):
                basis_strain = elem.basis_strain(j, d)
                d_plus, d_minus = stress_decomposition_derivative(strain, basis_strain, mu, lam)

                K[:, :2, j, d] = G @ (g_integral * d_plus + area * d_minus)

                d_energy = np.sum(d_plus * strain) + np.sum(stress_plus * basis_strain)
                K[:, 2, j, d] = phase_weight * d_energy
                if pressure is not None:
                    K[:, 2, j, d] += (-2 * (alpha - 1) * pressure_weight * G[j, d] +
                                      2 * grad_p[d] * mixed_mass[:, j])

        K[:, 2, :, 2] = (N.T @ ((w * phase_coeff)[:, None] * N) +
                         gc * eps_reg * area * (G @ G.T))

        return R.ravel(), K.reshape(9, 9)

    def compute_reactions(self, solution: np.ndarray, old_solution: np.ndarray,
                          old_old_solution: np.ndarray,
                          time_steps: Tuple[float, float]) -> np.ndarray:
        """
        Pressure-free residual, i.e. the nodal reaction forces.

        Returns:
            residual: shape (n_dofs,)
        """
        pressure = np.zeros(self.dof_handler.n_nodes)
        return self.assemble(solution, pressure, old_solution, old_old_solution,
                             time_steps, include_pressure=False,
                             assemble_matrix=False).residual

    def compute_cell_stresses(self, solution: np.ndarray, old_solution: np.ndarray,
                              old_old_solution: np.ndarray,
                              time_steps: Tuple[float, float]) -> np.ndarray:
        """
        Degraded stress g(φ_e) σ⁺ + σ⁻ averaged over each cell.

        Returns:
            stresses: shape (n_elements, 3), columns [σ_xx, σ_yy, σ_xy]
        """
        dh = self.dof_handler
        mat = self.material
        phi_e = extrapolate_phase_field(dh.phase_field_values(old_solution),
                                        dh.phase_field_values(old_old_solution),
                                        time_steps)
        displacement = dh.displacement_values(solution)

        stresses = np.zeros((dh.mesh.n_elements, 3))
        for elem_idx, elem in enumerate(dh.elements):
            nodes = dh.mesh.elements[elem_idx]
            strain = elem.strain(displacement[nodes])
            stress_plus, stress_minus = stress_decomposition(strain, mat.lame_mu, mat.lame_lambda)
            g_mean = np.mean(degradation_function(elem.shape_values @ phi_e[nodes], mat.kappa))
            stress = g_mean * stress_plus + stress_minus
            stresses[elem_idx] = [stress[0, 0], stress[1, 1], stress[0, 1]]
        return stresses
