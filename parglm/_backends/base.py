"""
Abstract base classes for backends.

Defines the dense numeric kernels every backend must provide. The IRLS
driver and the QR aggregator only ever talk to these methods.
"""

from abc import ABC, abstractmethod
import numpy as np
from typing import Tuple

from ..exceptions import NumericKernelError


class BackendBase(ABC):
    """Abstract base class for all backends."""

    name = "base"
    precision = "fp64"

    @abstractmethod
    def matvec(self, A: np.ndarray, x: np.ndarray) -> np.ndarray:
        """Dense matrix-vector product ``A @ x``."""
        pass

    @abstractmethod
    def block_qr(self, A: np.ndarray) -> np.ndarray:
        """
        Compact triangular factor of a tall block.

        Parameters
        ----------
        A : ndarray, shape (m, k)
            Block to factor (not modified)

        Returns
        -------
        R : ndarray, shape (min(m, k), k)
            Upper trapezoidal factor with ``A'A == R'R``
        """
        pass

    @abstractmethod
    def pivoted_qr(
        self,
        A: np.ndarray,
        B: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Pivoted QR of ``A`` and application of ``Q'`` to ``B``.

        Parameters
        ----------
        A : ndarray, shape (m, p)
            Matrix to decompose
        B : ndarray, shape (m, q)
            Right-hand sides

        Returns
        -------
        R : ndarray, shape (min(m, p), p)
            Upper triangular factor of ``A[:, pivot]``
        pivot : ndarray of int64, shape (p,)
            Zero-based column permutation
        QtB : ndarray, shape (min(m, p), q)
            ``Q' B``
        """
        pass

    @abstractmethod
    def solve_triangular(
        self,
        R: np.ndarray,
        b: np.ndarray,
        trans: bool = False
    ) -> np.ndarray:
        """Solve ``R x = b`` (or ``R' x = b``) with R upper triangular."""
        pass

    @abstractmethod
    def syrk(self, A: np.ndarray) -> np.ndarray:
        """Symmetric rank-k update ``A' A``."""
        pass

    @abstractmethod
    def get_device_info(self) -> dict:
        """Get backend information."""
        pass

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r})"


def check_finite_result(out: np.ndarray, kernel: str) -> np.ndarray:
    """Raise NumericKernelError if a kernel produced NaN or Inf."""
    if not np.all(np.isfinite(out)):
        raise NumericKernelError(f"{kernel} produced non-finite values")
    return out


class CPUBackend(BackendBase):
    """CPU backend base class (always FP64)."""
    pass


class GPUBackendFP64(BackendBase):
    """GPU backend base class for FP64."""
    pass
