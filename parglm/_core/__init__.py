"""
Core algorithms (backend-agnostic).
"""

from .families import Family, get_family, list_families
from .executor import TaskExecutor
from .blocks import BlockWorkUnit, block_ranges, make_block
from .qr import GlobalFactorization, aggregate, merge_factors, solve_coefficients
from .irls import FitResult, fit_parallel_glm

__all__ = [
    "Family",
    "get_family",
    "list_families",
    "TaskExecutor",
    "BlockWorkUnit",
    "block_ranges",
    "make_block",
    "GlobalFactorization",
    "aggregate",
    "merge_factors",
    "solve_coefficients",
    "FitResult",
    "fit_parallel_glm",
]
