"""
Linear Solver
=============

Sparse linear solves for the Newton corrections.
"""

import numpy as np
from scipy.sparse import csc_matrix
from scipy.sparse.linalg import spsolve, gmres, spilu, LinearOperator
from typing import Tuple

METHODS = ('direct', 'gmres')


class LinearSolver:
    """
    Solve J x = b with a direct factorization or preconditioned GMRES.

    Every solve returns the iteration counts (outer, inner): restart cycles
    and Krylov iterations for GMRES, (1, 0) for the direct solver.

    Attributes:
        method: 'direct' or 'gmres'
        tolerance: relative residual tolerance for GMRES
        max_iterations: maximum GMRES restart cycles
        restart: Krylov subspace size per cycle
        verbose: report GMRES failures
    """

    def __init__(self, method: str = 'direct', tolerance: float = 1e-10,
                 max_iterations: int = 200, restart: int = 100,
                 verbose: bool = False):
        if method not in METHODS:
            raise ValueError(f"Unknown linear solver: {method}")
        self.method = method
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.restart = restart
        self.verbose = verbose

    def solve(self, matrix, rhs: np.ndarray) -> Tuple[np.ndarray, Tuple[int, int]]:
        """
        Solve the linear system.

        Args:
            matrix: sparse system matrix
            rhs: right-hand side

        Returns:
            x: solution vector
            (outer, inner): iteration counts
        """
        if self.method == 'direct':
            return np.atleast_1d(spsolve(csc_matrix(matrix), rhs)), (1, 0)
        return self._solve_gmres(matrix, rhs)

    def _solve_gmres(self, matrix, rhs: np.ndarray) -> Tuple[np.ndarray, Tuple[int, int]]:
        A = csc_matrix(matrix)
        ilu = spilu(A, drop_tol=1e-6, fill_factor=20)
        preconditioner = LinearOperator(A.shape, ilu.solve)

        counter = {'inner': 0}

        def count(_residual_norm):
            counter['inner'] += 1

        x, info = gmres(A, rhs, rtol=self.tolerance, atol=0.0,
                        restart=self.restart, maxiter=self.max_iterations,
                        M=preconditioner, callback=count, callback_type='pr_norm')

        if info > 0 and self.verbose:
            print(f"  GMRES did not reach tolerance after {counter['inner']} iterations")
        elif info < 0:
            raise ValueError(f"GMRES received illegal input (info = {info})")

        inner = counter['inner']
        outer = max(1, -(-inner // self.restart))
        return x, (outer, inner)
