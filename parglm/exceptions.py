"""
Exception hierarchy for parglm.

Every error raised on purpose by the package derives from ParGLMError, and
also from the built-in exception a caller would naturally catch.
"""


class ParGLMError(Exception):
    """Base class for all parglm errors."""
    pass


class DimensionError(ParGLMError, ValueError):
    """Input arrays have inconsistent shapes."""
    pass


class NumericKernelError(ParGLMError, RuntimeError):
    """
    A dense numeric kernel (QR, triangular solve, product) failed.

    Raised instead of returning a partial result: the fit is aborted.
    """
    pass


__all__ = ["ParGLMError", "DimensionError", "NumericKernelError"]
