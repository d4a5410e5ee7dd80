"""
parglm: parallel IRLS for generalized linear models on large row counts.

Each IRLS step is solved by a blockwise, memory-bounded QR decomposition
whose blocks are factored concurrently and merged with column pivoting.
"""

__version__ = "1.0.0"

# Import main user-facing API
from .glm import GLM, GLMResult, glm
from ._core import FitResult, fit_parallel_glm, get_family, list_families
from .exceptions import ParGLMError, DimensionError, NumericKernelError
from ._config import (
    get_block_size,
    set_block_size,
    get_max_threads,
    set_max_threads,
    set_backend,
)

# Import backend utilities (for advanced users)
from ._backends import get_backend, list_available_backends

__all__ = [
    'GLM',
    'GLMResult',
    'glm',
    'FitResult',
    'fit_parallel_glm',
    'get_family',
    'list_families',
    'ParGLMError',
    'DimensionError',
    'NumericKernelError',
    'get_block_size',
    'set_block_size',
    'get_max_threads',
    'set_max_threads',
    'set_backend',
    'get_backend',
    'list_available_backends',
]
