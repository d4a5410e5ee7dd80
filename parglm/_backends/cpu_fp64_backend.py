"""
CPU backend using NumPy + SciPy.

This is the reference implementation: every kernel is a LAPACK/BLAS call.
"""

import numpy as np
import scipy
from scipy.linalg import qr, solve_triangular, LinAlgError
from typing import Tuple

from ..exceptions import NumericKernelError
from .base import CPUBackend, check_finite_result


class CPUBackendFP64(CPUBackend):
    """
    CPU backend using NumPy + SciPy.

    Always uses FP64 precision. LAPACK releases the GIL, so the kernels
    run concurrently when called from worker threads.
    """

    def __init__(self):
        self.name = "cpu_fp64"
        self.precision = "fp64"

    def matvec(self, A: np.ndarray, x: np.ndarray) -> np.ndarray:
        return A @ x

    def block_qr(self, A: np.ndarray) -> np.ndarray:
        """Unpivoted Householder QR (dgeqrf), R factor only."""
        m, k = A.shape
        try:
            # mode='r' keeps all m rows for tall input; only the first k matter
            R = qr(A, mode='r', check_finite=False)[0]
        except (LinAlgError, ValueError) as e:
            raise NumericKernelError(f"block QR failed: {e}") from e
        return check_finite_result(R[:min(m, k), :], "block QR")

    def pivoted_qr(
        self,
        A: np.ndarray,
        B: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Householder QR with column pivoting (dgeqp3), then Q'B."""
        try:
            Q, R, P = qr(A, mode='economic', pivoting=True, check_finite=False)
        except (LinAlgError, ValueError) as e:
            raise NumericKernelError(f"pivoted QR failed: {e}") from e

        QtB = Q.T @ B
        check_finite_result(R, "pivoted QR")
        check_finite_result(QtB, "orthogonal factor application")
        return R, P.astype(np.int64), QtB

    def solve_triangular(
        self,
        R: np.ndarray,
        b: np.ndarray,
        trans: bool = False
    ) -> np.ndarray:
        """Back-substitution (dtrtrs); a zero pivot is a kernel failure."""
        try:
            x = solve_triangular(
                R, b,
                trans='T' if trans else 'N',
                lower=False,
                check_finite=False
            )
        except (LinAlgError, ValueError) as e:
            raise NumericKernelError(f"triangular solve failed: {e}") from e
        return check_finite_result(x, "triangular solve")

    def syrk(self, A: np.ndarray) -> np.ndarray:
        return A.T @ A

    def get_device_info(self) -> dict:
        """Get backend information."""
        return {
            'backend': 'cpu',
            'precision': 'fp64',
            'library': f'NumPy {np.__version__}, SciPy {scipy.__version__}',
        }
