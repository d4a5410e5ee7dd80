"""
Row blocks and the block data generator.

Builds, for one contiguous range of observations, the weighted and
transformed rows that the QR aggregator factors.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple

from .families import Family

# |dμ/dη| below this marks a row as degenerate for the current iteration
ZERO_EPS = 1e-100


@dataclass
class FitData:
    """
    Shared state of one fit.

    ``X``, ``y``, ``weight`` and ``offset`` are read-only for the whole
    fit. ``eta`` and ``mu`` are written by block tasks, each task owning
    the slice ``[start, stop)`` it was given. ``beta`` is rebound only by
    the driver, between dispatch rounds.
    """
    X: np.ndarray             # Design matrix, predictor-major (p, n)
    y: np.ndarray             # Response (n,)
    weight: np.ndarray        # Prior weights (n,)
    offset: np.ndarray        # Offset (n,)
    family: Family
    block_size: int
    beta: Optional[np.ndarray] = None
    eta: np.ndarray = field(init=False)
    mu: np.ndarray = field(init=False)

    def __post_init__(self):
        n = self.n
        self.eta = np.empty(n, dtype=np.float64)
        self.mu = np.empty(n, dtype=np.float64)

    @property
    def p(self) -> int:
        return self.X.shape[0]

    @property
    def n(self) -> int:
        return self.X.shape[1]

    def ranges(self):
        return list(block_ranges(self.n, self.block_size))


@dataclass
class BlockWorkUnit:
    """Weighted least-squares rows of one block."""
    start: int
    stop: int
    X: np.ndarray             # Weighted design rows, observation-major (n_good, p)
    z: np.ndarray             # Weighted working response (n_good,)
    deviance: float = 0.0     # Placeholder; deviance is summed separately

    @property
    def n_good(self) -> int:
        return self.X.shape[0]


def block_ranges(n: int, block_size: int) -> Iterator[Tuple[int, int]]:
    """
    Half-open ranges ``[start, stop)`` of at most ``block_size`` rows.

    >>> list(block_ranges(7, 3))
    [(0, 3), (3, 6), (6, 7)]
    """
    if block_size < 1:
        raise ValueError(f"block_size must be >= 1, got {block_size}")
    for start in range(0, n, block_size):
        yield start, min(n, start + block_size)


def make_block(start: int, stop: int, data: FitData) -> BlockWorkUnit:
    """
    Build the weighted rows of observations ``[start, stop)``.

    Rows with zero weight or a vanishing link derivative are left out of
    this iteration.

    Notes
    -----
    With dμ/dη and V(μ) evaluated at the current fit:
        z = (η - offset) + (y - μ) / (dμ/dη)
        w = sqrt(weight * (dμ/dη)² / V(μ))
    and the block is ``(w * X_rows, w * z)``.
    """
    family = data.family
    eta = data.eta[start:stop]
    mu = data.mu[start:stop]
    weight = data.weight[start:stop]

    mu_eta_val = family.mu_eta(eta)
    good = (weight > 0) & (np.abs(mu_eta_val) >= ZERO_EPS)

    mu = mu[good]
    mu_eta_val = mu_eta_val[good]
    var = family.variance(mu)

    z = (eta[good] - data.offset[start:stop][good]) \
        + (data.y[start:stop][good] - mu) / mu_eta_val
    w = np.sqrt(weight[good] * mu_eta_val ** 2 / var)

    # transpose the (p, m) column block to observation-major rows
    X = data.X[:, start:stop][:, good].T * w[:, np.newaxis]

    return BlockWorkUnit(start=start, stop=stop, X=X, z=z * w)
