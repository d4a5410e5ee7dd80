"""
GPU backend using PyTorch with FP64 precision.

For data center GPUs: A100, H100, V100.
"""

import numpy as np
import warnings
from typing import Optional, Tuple

from ..exceptions import NumericKernelError
from .base import GPUBackendFP64, check_finite_result
from .cpu_fp64_backend import CPUBackendFP64


class PyTorchBackendFP64(GPUBackendFP64):
    """
    PyTorch GPU backend with FP64 precision.

    The per-block work (products and the block QR) runs on the device.
    The pivoted merge is a (numBlocks * p) x p problem and the
    triangular solves are p x p, so both stay on the CPU backend:
    PyTorch has no column-pivoted QR.
    """

    def __init__(self, device: Optional[str] = None):
        """Initialize PyTorch FP64 backend."""
        self.name = "pytorch_fp64"
        self.precision = "fp64"

        try:
            import torch
            self.torch = torch
        except ImportError:
            raise ImportError(
                "PyTorch required for GPU backend. "
                "Install: pip install torch"
            )

        # Device selection (no Metal for FP64)
        if device == 'mps':
            raise RuntimeError(
                "FP64 not supported on Apple Metal. "
                "Use the CPU backend."
            )

        if device is None:
            if torch.cuda.is_available():
                device = 'cuda'
            else:
                warnings.warn("No CUDA GPU available, using CPU")
                device = 'cpu'

        self.device = torch.device(device)
        self._host = CPUBackendFP64()

        # Warn if using FP64 on gimped hardware
        if device == 'cuda':
            from .precision_detector import detect_gpu_capabilities
            caps = detect_gpu_capabilities()
            if caps.fp64_support.value == 'gimped_fp64':
                warnings.warn(
                    f"Using FP64 on {caps.gpu_name} with gimped FP64 support. "
                    f"This will be ~{int(1/caps.fp64_throughput_ratio)}x slower than FP32.",
                    UserWarning
                )

    def _to_device(self, A: np.ndarray):
        return self.torch.from_numpy(np.ascontiguousarray(A)).double().to(self.device)

    def matvec(self, A: np.ndarray, x: np.ndarray) -> np.ndarray:
        out = self._to_device(A) @ self._to_device(x)
        return out.cpu().numpy()

    def block_qr(self, A: np.ndarray) -> np.ndarray:
        """Reduced R from torch.linalg.qr (no Q is formed)."""
        torch = self.torch
        try:
            _, R = torch.linalg.qr(self._to_device(A), mode='r')
        except RuntimeError as e:
            raise NumericKernelError(f"block QR failed on {self.device}: {e}") from e
        return check_finite_result(R.cpu().numpy(), "block QR")

    def pivoted_qr(
        self,
        A: np.ndarray,
        B: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return self._host.pivoted_qr(A, B)

    def solve_triangular(
        self,
        R: np.ndarray,
        b: np.ndarray,
        trans: bool = False
    ) -> np.ndarray:
        return self._host.solve_triangular(R, b, trans=trans)

    def syrk(self, A: np.ndarray) -> np.ndarray:
        A_gpu = self._to_device(A)
        return (A_gpu.T @ A_gpu).cpu().numpy()

    def get_device_info(self) -> dict:
        """Get backend information."""
        return {
            'backend': 'gpu',
            'precision': 'fp64',
            'device': str(self.device),
            'library': f'PyTorch {self.torch.__version__}',
        }
