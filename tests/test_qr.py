"""
Test the blockwise QR aggregator against whole-data least squares.
"""

import pytest
import numpy as np

from parglm import NumericKernelError
from parglm._backends import get_backend
from parglm._core.blocks import FitData
from parglm._core.executor import TaskExecutor
from parglm._core.families import Gaussian
from parglm._core.qr import aggregate, factor_block, merge_factors, solve_coefficients
from parglm._core.blocks import make_block


BACKEND = get_backend('cpu')


def _weighted_problem(n=200, p=4, seed=42, block_size=30):
    """Gaussian state at eta = y: the working problem is plain WLS."""
    rng = np.random.RandomState(seed)
    X = rng.randn(p, n)
    y = X.T @ rng.randn(p) + rng.randn(n)
    weight = rng.uniform(0.5, 2.0, n)

    data = FitData(X=X, y=y, weight=weight, offset=np.zeros(n),
                   family=Gaussian(), block_size=block_size)
    data.eta[:] = y
    data.mu[:] = y
    return data


def _wls(data):
    w = np.sqrt(data.weight)
    return np.linalg.lstsq(data.X.T * w[:, np.newaxis], data.y * w, rcond=None)[0]


def _solve(data, **kwargs):
    with TaskExecutor(4) as pool:
        fact = aggregate(data, pool, BACKEND, **kwargs)
    return fact, solve_coefficients(fact, BACKEND)


class TestAggregate:

    def test_matches_whole_data_wls(self):
        data = _weighted_problem()
        fact, beta = _solve(data)

        assert fact.rank == 4
        assert fact.R.shape == (4, 4)
        assert fact.F.shape == (4, 1)
        np.testing.assert_allclose(beta, _wls(data), rtol=1e-10, atol=1e-12)

    @pytest.mark.parametrize("block_size", [1, 7, 50, 200, 10000])
    def test_block_size_does_not_change_coefficients(self, block_size):
        reference = _solve(_weighted_problem(block_size=10000))[1]
        beta = _solve(_weighted_problem(block_size=block_size))[1]
        np.testing.assert_allclose(beta, reference, rtol=1e-10, atol=1e-12)

    def test_r_is_factor_of_weighted_gram(self):
        """R'R equals the pivoted X'WX."""
        data = _weighted_problem()
        fact, _ = _solve(data)

        Xw = data.X.T * np.sqrt(data.weight)[:, np.newaxis]
        gram = Xw.T @ Xw
        P = fact.pivot
        np.testing.assert_allclose(fact.R.T @ fact.R, gram[np.ix_(P, P)], rtol=1e-10)
        assert np.allclose(np.tril(fact.R, -1), 0)

    @pytest.mark.parametrize("fanin", [2, 3, 8])
    def test_multi_level_reduction(self, fanin):
        single = _solve(_weighted_problem(block_size=7))[1]
        multi = _solve(_weighted_problem(block_size=7), merge_fanin=fanin)[1]
        np.testing.assert_allclose(multi, single, rtol=1e-10, atol=1e-12)

    def test_invalid_fanin(self):
        with pytest.raises(ValueError):
            _solve(_weighted_problem(), merge_fanin=1)

    def test_rank_deficient(self):
        """A duplicated column is aliased: one NaN coefficient."""
        data = _weighted_problem(p=3)
        data.X = np.vstack([data.X, 2.0 * data.X[0]])
        data.eta[:] = data.y

        fact, beta = _solve(data)

        assert fact.rank == 3
        assert np.sum(np.isnan(beta)) == 1
        assert fact.pivot[3] in (0, 3)

        # fitted values are those of the full-rank design
        fitted = data.X.T[:, ~np.isnan(beta)] @ beta[~np.isnan(beta)]
        w = np.sqrt(data.weight)
        expected = data.X[:3].T @ np.linalg.lstsq(
            data.X[:3].T * w[:, np.newaxis], data.y * w, rcond=None)[0]
        np.testing.assert_allclose(fitted, expected, rtol=1e-8, atol=1e-10)

    def test_more_predictors_than_rows(self):
        """Few rows: R is padded, rank limited by the row count."""
        data = _weighted_problem(n=3, p=5, block_size=2)
        fact, beta = _solve(data)

        assert fact.R.shape == (5, 5)
        assert fact.rank == 3
        assert np.sum(~np.isnan(beta)) == 3

    def test_no_usable_rows(self):
        data = _weighted_problem(n=20)
        data.weight[:] = 0.0
        with pytest.raises(NumericKernelError, match="nothing to factor"):
            _solve(data)


class TestBlockFactor:

    def test_factor_is_augmented_triangle(self):
        data = _weighted_problem(n=40, p=3, block_size=40)
        unit = make_block(0, 40, data)

        factor = factor_block(unit, BACKEND)

        A = np.column_stack([unit.X, unit.z])
        assert factor.shape == (4, 4)
        np.testing.assert_allclose(factor.T @ factor, A.T @ A, rtol=1e-10)

    def test_empty_block_contributes_nothing(self):
        data = _weighted_problem(n=10, p=2)
        data.weight[:5] = 0.0
        assert factor_block(make_block(0, 5, data), BACKEND) is None

    def test_merge_of_single_factor(self):
        data = _weighted_problem(n=40, p=3, block_size=40)
        factor = factor_block(make_block(0, 40, data), BACKEND)

        fact = merge_factors([factor], 3, BACKEND)
        beta = solve_coefficients(fact, BACKEND)
        np.testing.assert_allclose(beta, _wls(data), rtol=1e-10)
