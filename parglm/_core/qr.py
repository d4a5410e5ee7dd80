"""
Blockwise QR with column pivoting.

Two-level "tall and skinny" reduction of the weighted least-squares
problem ``min ||w*z - w*X beta||``:

    level 0: each block [X_b | z_b] is reduced to its triangular factor
             (at most p + 1 rows), in parallel
    level 1: the stacked factors are decomposed once more with column
             pivoting, giving the global R, pivot and F = Q'z

Peak memory is O(p² · numBlocks) instead of O(n · p), and X'X is never
formed.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import List, Optional

from ..exceptions import NumericKernelError
from .blocks import BlockWorkUnit, FitData, make_block

logger = logging.getLogger(__name__)

# Relative tolerance on |diag(R)| for rank determination
DEFAULT_RANK_TOL = 1e-7


@dataclass(frozen=True)
class GlobalFactorization:
    """Result of the merged QR decomposition with pivoting."""
    R: np.ndarray            # Upper triangular (p, p), zero rows past the stacked row count
    pivot: np.ndarray        # Pivot indices (0-indexed): column j of R is predictor pivot[j]
    F: np.ndarray            # Projected response Q'z (p, 1)
    rank: int                # Determined rank


def factor_block(unit: BlockWorkUnit, backend) -> Optional[np.ndarray]:
    """
    Level-0 factor of one block.

    Returns the triangular factor of ``[X_w | z_w]``: its first p columns
    are the block's R, its last column the block's projected response.
    ``None`` when every row of the block was dropped.
    """
    if unit.n_good == 0:
        return None
    return backend.block_qr(np.column_stack([unit.X, unit.z]))


def merge_factors(
    factors: List[np.ndarray],
    p: int,
    backend,
    rank_tol: float = DEFAULT_RANK_TOL,
) -> GlobalFactorization:
    """
    Level-1 merge: pivoted QR of the stacked block factors.

    Parameters
    ----------
    factors : list of ndarray, each shape (k_i, p + 1)
        Block factors of the augmented matrix [X | z]
    p : int
        Number of predictors
    backend : BackendBase
        Numeric kernels
    rank_tol : float
        Columns with |R_jj| <= rank_tol * |R_00| are aliased

    Returns
    -------
    GlobalFactorization
    """
    if not factors:
        raise NumericKernelError(
            "No observations with positive weight and non-degenerate "
            "link derivative; nothing to factor"
        )

    stacked = np.vstack(factors)
    R_k, pivot, F_k = backend.pivoted_qr(stacked[:, :p], stacked[:, p:])

    # fewer stacked rows than predictors: pad to a square R
    k = R_k.shape[0]
    R = np.zeros((p, p), dtype=np.float64)
    R[:k] = R_k
    F = np.zeros((p, 1), dtype=np.float64)
    F[:k] = F_k

    R_diag = np.abs(np.diag(R))
    if R_diag[0] == 0:
        rank = 0
    else:
        rank = int(np.sum(R_diag > rank_tol * R_diag[0]))

    logger.debug("merged %d block factors (%d rows): rank %d of %d",
                 len(factors), stacked.shape[0], rank, p)

    return GlobalFactorization(R=R, pivot=pivot, F=F, rank=rank)


def aggregate(
    data: FitData,
    executor,
    backend,
    rank_tol: float = DEFAULT_RANK_TOL,
    merge_fanin: Optional[int] = None,
) -> GlobalFactorization:
    """
    Generate, factor and merge every block at the current eta/mu.

    Parameters
    ----------
    data : FitData
        Shared fit state
    executor : TaskExecutor
        Worker pool; one task per block
    backend : BackendBase
        Numeric kernels
    rank_tol : float
        Rank determination tolerance
    merge_fanin : int, optional
        If given, reduce the block factors in groups of this size (in
        parallel) until at most ``merge_fanin`` remain before the final
        pivoted merge. None merges everything in a single level.

    Returns
    -------
    GlobalFactorization
    """
    def factor(start, stop):
        return factor_block(make_block(start, stop, data), backend)

    factors = [f for f in executor.map_blocks(factor, data.ranges())
               if f is not None]

    if merge_fanin is not None:
        if merge_fanin < 2:
            raise ValueError(f"merge_fanin must be >= 2, got {merge_fanin}")

        level = 1
        while len(factors) > merge_fanin:
            groups = [(i, min(i + merge_fanin, len(factors)))
                      for i in range(0, len(factors), merge_fanin)]
            current = factors
            factors = executor.map_blocks(
                lambda s, e: backend.block_qr(np.vstack(current[s:e])),
                groups
            )
            logger.debug("reduction level %d: %d factors", level, len(factors))
            level += 1

    return merge_factors(factors, data.p, backend, rank_tol=rank_tol)


def solve_coefficients(fact: GlobalFactorization, backend) -> np.ndarray:
    """
    Coefficients from the merged factorization.

    Two triangular solves on the leading rank x rank block R11, first
    against R11' and then against R11:

        R11' u = R11' f,   R11 b = u,   beta[pivot[:rank]] = b

    Aliased coefficients (pivoted past the rank) are NaN.
    """
    p = len(fact.pivot)
    rank = fact.rank
    beta = np.full(p, np.nan, dtype=np.float64)

    if rank > 0:
        R11 = fact.R[:rank, :rank]
        f = fact.F[:rank, 0]
        u = backend.solve_triangular(R11, R11.T @ f, trans=True)
        beta[fact.pivot[:rank]] = backend.solve_triangular(R11, u)

    return beta
