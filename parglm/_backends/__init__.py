"""
Backend selection and management.

Provides the dense numeric kernels (QR, triangular solve, products) on
CPU (NumPy/SciPy LAPACK) or NVIDIA GPU (PyTorch FP64).
"""

from typing import Optional, Union
import warnings

from .base import BackendBase
from .precision_detector import detect_gpu_capabilities, GPUCapabilities

# Try importing CPU backend (always available)
try:
    from .cpu_fp64_backend import CPUBackendFP64
    CPU_AVAILABLE = True
except ImportError:
    CPU_AVAILABLE = False
    warnings.warn("CPU backend unavailable - installation error!")

# PyTorch is an optional dependency
try:
    import torch  # noqa: F401
    from .gpu_fp64_backend import PyTorchBackendFP64
    PYTORCH_AVAILABLE = True
except ImportError:
    PYTORCH_AVAILABLE = False


def get_backend(backend: Union[str, BackendBase, None] = None) -> BackendBase:
    """
    Get computational backend.

    Parameters
    ----------
    backend : str, BackendBase or None
        Backend selection:
        - None: use the configured default (see ``parglm.set_backend``)
        - 'auto': PyTorch on a CUDA GPU with full-rate FP64, else CPU
        - 'cpu': CPU with NumPy/SciPy (FP64)
        - 'pytorch': Force PyTorch (CUDA if present)
        A BackendBase instance is returned unchanged.

    Returns
    -------
    BackendBase
        Backend instance

    Examples
    --------
    >>> backend = get_backend('auto')
    >>> backend = get_backend('cpu')
    """
    if isinstance(backend, BackendBase):
        return backend

    if backend is None:
        from .._config import get_backend_name
        backend = get_backend_name()

    if backend == 'auto':
        caps = detect_gpu_capabilities()
        if caps.gpu_type == 'cuda' and caps.recommended_fp64 and PYTORCH_AVAILABLE:
            return PyTorchBackendFP64()
        if not CPU_AVAILABLE:
            raise RuntimeError("No backends available!")
        return CPUBackendFP64()

    elif backend == 'cpu':
        if not CPU_AVAILABLE:
            raise RuntimeError("CPU backend unavailable!")
        return CPUBackendFP64()

    elif backend == 'pytorch':
        if not PYTORCH_AVAILABLE:
            raise RuntimeError(
                "PyTorch backend unavailable.\n"
                "Install: pip install torch"
            )
        return PyTorchBackendFP64()

    else:
        raise ValueError(
            f"Unknown backend: '{backend}'\n"
            f"Valid options: 'auto', 'cpu', 'pytorch'"
        )


def list_available_backends() -> list:
    """List names of available backends."""
    backends = []
    if CPU_AVAILABLE:
        backends.append('cpu')
    if PYTORCH_AVAILABLE:
        backends.append('pytorch')
    return backends


def print_backend_info():
    """Print detailed backend information (diagnostic)."""
    caps = detect_gpu_capabilities()

    print("parglm Backend Status")
    print("=" * 50)
    print(f"\nAvailable Backends:")
    print(f"  CPU (FP64):          {'✓' if CPU_AVAILABLE else '✗'} - SciPy LAPACK")
    print(f"  PyTorch (FP64):      {'✓' if PYTORCH_AVAILABLE else '✗'} - block QR on device")

    print(f"\nHardware Detection:")
    if caps.has_gpu:
        print(f"  GPU Type: {caps.gpu_type}")
        print(f"  GPU Name: {caps.gpu_name}")
        print(f"  FP64 Support: {caps.fp64_support.value}")
    else:
        print(f"  No GPU detected")

    print(f"\nRecommended Backend:")
    try:
        backend = get_backend('auto')
        print(f"  {backend.name}")
    except Exception as e:
        print(f"  Error: {e}")


__all__ = [
    'get_backend',
    'list_available_backends',
    'print_backend_info',
    'BackendBase',
    'GPUCapabilities',
    'detect_gpu_capabilities',
    'CPU_AVAILABLE',
    'PYTORCH_AVAILABLE',
]


if __name__ == "__main__":
    print_backend_info()
