"""
Hardware FP64 capability detection.

IRLS needs double precision throughout, so a GPU is only worth using when
it runs FP64 at full rate.
"""

import warnings
from dataclasses import dataclass
from typing import Optional
from enum import Enum


class PrecisionSupport(Enum):
    """FP64 support level for hardware."""
    NO_GPU = "no_gpu"           # No GPU available
    NO_FP64 = "no_fp64"          # GPU exists but no FP64 (Apple Metal)
    GIMPED_FP64 = "gimped_fp64"  # FP64 exists but slow (consumer NVIDIA)
    FULL_FP64 = "full_fp64"      # Full-speed FP64 (A100, H100)


@dataclass
class GPUCapabilities:
    """
    GPU capability information.

    Attributes
    ----------
    has_gpu : bool
        Whether any GPU is available
    gpu_name : str
        Human-readable GPU name
    gpu_type : str
        'cuda', 'metal', or 'none'
    fp64_support : PrecisionSupport
        Level of FP64 support
    fp64_throughput_ratio : float
        Ratio of FP64 to FP32 throughput
    recommended_fp64 : bool
        Whether FP64 on this GPU is fast enough for IRLS
    """
    has_gpu: bool
    gpu_name: str
    gpu_type: str
    fp64_support: PrecisionSupport
    fp64_throughput_ratio: float
    recommended_fp64: bool


_FULL_FP64_MODELS = ('A100', 'A800', 'H100', 'H800', 'V100', 'P100')


def detect_gpu_capabilities() -> GPUCapabilities:
    """
    Detect GPU hardware and FP64 capabilities.

    Returns
    -------
    GPUCapabilities
        Detected hardware capabilities
    """
    cuda_caps = _detect_cuda_capabilities()
    if cuda_caps is not None:
        return cuda_caps

    metal_caps = _detect_metal_capabilities()
    if metal_caps is not None:
        return metal_caps

    return GPUCapabilities(
        has_gpu=False,
        gpu_name="CPU only",
        gpu_type="none",
        fp64_support=PrecisionSupport.NO_GPU,
        fp64_throughput_ratio=1.0,
        recommended_fp64=False
    )


def _detect_cuda_capabilities() -> Optional[GPUCapabilities]:
    """Detect NVIDIA CUDA GPU capabilities."""
    try:
        import torch
    except ImportError:
        return None

    if not torch.cuda.is_available():
        return None

    gpu_name = torch.cuda.get_device_name(0)
    support, ratio = _classify_nvidia_gpu(gpu_name)

    return GPUCapabilities(
        has_gpu=True,
        gpu_name=gpu_name,
        gpu_type="cuda",
        fp64_support=support,
        fp64_throughput_ratio=ratio,
        recommended_fp64=support == PrecisionSupport.FULL_FP64
    )


def _detect_metal_capabilities() -> Optional[GPUCapabilities]:
    """Detect Apple Metal GPU (never usable here: no FP64)."""
    try:
        import torch
    except ImportError:
        return None

    if not (hasattr(torch.backends, 'mps') and torch.backends.mps.is_available()):
        return None

    return GPUCapabilities(
        has_gpu=True,
        gpu_name="Apple Metal GPU",
        gpu_type="metal",
        fp64_support=PrecisionSupport.NO_FP64,
        fp64_throughput_ratio=0.0,
        recommended_fp64=False
    )


def _classify_nvidia_gpu(gpu_name: str) -> tuple[PrecisionSupport, float]:
    """
    Classify NVIDIA GPU FP64 capabilities.

    Returns
    -------
    (support_level, throughput_ratio)
    """
    gpu_upper = gpu_name.upper()

    for model in _FULL_FP64_MODELS:
        if model in gpu_upper:
            return PrecisionSupport.FULL_FP64, 0.5

    # Turing and GTX parts run FP64 at 1/32, Ampere and later at 1/64
    if 'RTX 20' in gpu_upper or 'GTX' in gpu_upper:
        return PrecisionSupport.GIMPED_FP64, 1/32
    if any(s in gpu_upper for s in ('RTX 30', 'RTX 40', 'RTX 50')):
        return PrecisionSupport.GIMPED_FP64, 1/64

    warnings.warn(
        f"Unknown NVIDIA GPU '{gpu_name}'. Assuming gimped FP64."
    )
    return PrecisionSupport.GIMPED_FP64, 1/32
