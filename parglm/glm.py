"""
Generalized linear model API.

Main user-facing interface: accepts arrays or a pandas DataFrame, adds
the intercept, runs the parallel IRLS fit and computes the statistics
statisticians expect from R's summary.glm().
"""

import numpy as np
import pandas as pd
from typing import List, Optional, Union
from dataclasses import dataclass, field
from scipy import stats

from ._backends import get_backend
from ._utils import check_array, check_vector
from ._core.families import Family, get_family
from ._core.irls import FitResult, fit_parallel_glm
from ._core.qr import DEFAULT_RANK_TOL


@dataclass
class GLMResult:
    """Results from GLM fitting."""
    fit: FitResult            # Raw IRLS output
    family: Family
    var_names: List[str]      # Coefficient names
    y: np.ndarray             # Response
    weights: np.ndarray       # Prior weights
    backend: object = field(repr=False)

    _std_errors: Optional[np.ndarray] = field(default=None, repr=False)
    _cov_unscaled: Optional[np.ndarray] = field(default=None, repr=False)

    # --- IRLS output ------------------------------------------------------

    @property
    def coefficients(self) -> np.ndarray:
        return self.fit.coefficients

    @property
    def coef(self) -> pd.Series:
        """Named coefficients (pandas Series)."""
        return pd.Series(self.fit.coefficients, index=self.var_names)

    @property
    def deviance(self) -> float:
        return self.fit.deviance

    @property
    def converged(self) -> bool:
        return self.fit.converged

    @property
    def iterations(self) -> int:
        return self.fit.iteration_count

    @property
    def rank(self) -> int:
        return self.fit.rank

    @property
    def fitted_values(self) -> np.ndarray:
        """Fitted values (μ)."""
        return self.fit.fitted_values

    @property
    def linear_predictors(self) -> np.ndarray:
        """Linear predictors (η)."""
        return self.fit.linear_predictors

    @property
    def residuals(self) -> np.ndarray:
        """Residuals on the response scale."""
        return self.y - self.fitted_values

    # --- inference --------------------------------------------------------

    @property
    def n_obs(self) -> int:
        """Observations with positive weight."""
        return int(np.sum(self.weights > 0))

    @property
    def df_residual(self) -> int:
        return self.n_obs - self.rank

    @property
    def dispersion(self) -> float:
        """
        Dispersion: 1 for binomial and poisson, otherwise the Pearson
        statistic divided by the residual degrees of freedom.
        """
        if self.family.dispersion_is_fixed:
            return 1.0
        if self.df_residual <= 0:
            return np.nan
        good = self.weights > 0
        mu = self.fitted_values[good]
        pearson = self.weights[good] * (self.y[good] - mu) ** 2 \
            / self.family.variance(mu)
        return float(np.sum(pearson) / self.df_residual)

    @property
    def cov_unscaled(self) -> np.ndarray:
        """(X'WX)⁻¹ from the last R, NaN rows/columns for aliased terms."""
        if self._cov_unscaled is None:
            self._cov_unscaled = self._compute_cov_unscaled()
        return self._cov_unscaled

    @property
    def vcov(self) -> np.ndarray:
        """Variance-covariance matrix of the coefficients."""
        return self.dispersion * self.cov_unscaled

    @property
    def std_errors(self) -> np.ndarray:
        """Standard errors of coefficients."""
        if self._std_errors is None:
            self._std_errors = np.sqrt(np.diag(self.vcov))
        return self._std_errors

    @property
    def statistics(self) -> np.ndarray:
        """z values (fixed dispersion) or t values."""
        return self.coefficients / self.std_errors

    @property
    def pvalues(self) -> np.ndarray:
        """Two-sided p-values."""
        stat = np.abs(self.statistics)
        if self.family.dispersion_is_fixed:
            return 2 * stats.norm.sf(stat)
        return 2 * stats.t.sf(stat, self.df_residual)

    def _compute_cov_unscaled(self) -> np.ndarray:
        p = len(self.var_names)
        rank = self.rank
        cov = np.full((p, p), np.nan)
        if rank == 0:
            return cov

        R11 = self.fit.R[:rank, :rank]
        R_inv = self.backend.solve_triangular(R11, np.eye(rank))
        # R⁻¹ R⁻ᵀ as the rank-k update of R⁻ᵀ
        active = self.backend.syrk(R_inv.T)

        pivot = self.fit.pivot[:rank]
        cov[np.ix_(pivot, pivot)] = active
        return cov

    def conf_int(self, alpha: float = 0.05) -> pd.DataFrame:
        """
        Wald confidence intervals for coefficients.

        Parameters
        ----------
        alpha : float
            Significance level (default: 0.05 for 95% CI)

        Returns
        -------
        DataFrame
            Confidence intervals with columns 'lower' and 'upper'
        """
        if self.family.dispersion_is_fixed:
            crit = stats.norm.ppf(1 - alpha / 2)
        else:
            crit = stats.t.ppf(1 - alpha / 2, self.df_residual)
        return pd.DataFrame({
            'lower': self.coefficients - crit * self.std_errors,
            'upper': self.coefficients + crit * self.std_errors,
        }, index=self.var_names)

    def predict(
        self,
        newdata: Union[pd.DataFrame, np.ndarray],
        type: str = 'link'
    ) -> np.ndarray:
        """
        Predict for new data.

        Parameters
        ----------
        newdata : DataFrame or array
            New predictor values, same columns as the fitted design
            (without the intercept column, which is added here if fitted)
        type : {'link', 'response'}
            Linear predictor or mean

        Returns
        -------
        array
            Predicted values
        """
        if type not in ('link', 'response'):
            raise ValueError(f"type must be 'link' or 'response', got '{type}'")

        names = [v for v in self.var_names if v != 'Intercept']
        if isinstance(newdata, pd.DataFrame):
            X_new = newdata[names].values
        else:
            X_new = np.asarray(newdata, dtype=np.float64)
        if 'Intercept' in self.var_names:
            X_new = np.column_stack([np.ones(len(X_new)), X_new])

        valid = ~np.isnan(self.coefficients)
        eta = X_new[:, valid] @ self.coefficients[valid]
        if type == 'response':
            return self.family.linkinv(eta)
        return eta

    def summary(self):
        """Print summary of GLM results (like R's summary.glm)."""
        fixed = self.family.dispersion_is_fixed
        stat_name = 'z value' if fixed else 't value'
        p_name = 'Pr(>|z|)' if fixed else 'Pr(>|t|)'

        print()
        print("=" * 80)
        print("GENERALIZED LINEAR MODEL RESULTS")
        print("=" * 80)
        print()
        print(f"Family: {self.family.family_name} (link: {self.family.link.name})")
        print(f"Number of observations: {self.n_obs}")
        print()

        print("Coefficients:")
        print("-" * 80)
        print(f"{'Variable':<20} {'Estimate':>12} {'Std. Error':>12} "
              f"{stat_name:>10} {p_name:>12}")
        print("-" * 80)

        pvalues = self.pvalues
        for i, name in enumerate(self.var_names):
            p = pvalues[i]
            if np.isnan(p):
                print(f"{name:<20} {'NA':>12} {'NA':>12} {'NA':>10} {'NA':>12} (aliased)")
                continue
            if p < 0.001:
                sig = ' ***'
            elif p < 0.01:
                sig = ' **'
            elif p < 0.05:
                sig = ' *'
            elif p < 0.1:
                sig = ' .'
            else:
                sig = ''
            p_str = f"{p:.4f}" if p >= 0.0001 else "<.0001"
            print(f"{name:<20} {self.coefficients[i]:>12.4f} {self.std_errors[i]:>12.4f} "
                  f"{self.statistics[i]:>10.3f} {p_str:>12}{sig}")

        print("-" * 80)
        print("Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1")
        print()
        print(f"Dispersion parameter: {self.dispersion:.6g}")
        print(f"Residual deviance: {self.deviance:.4f} on {self.df_residual} degrees of freedom")
        status = "converged" if self.converged else "did NOT converge"
        print(f"IRLS iterations: {self.iterations} ({status})")
        print()
        print(f"Backend: {self.backend.name}")
        print("=" * 80)
        print()

    def __repr__(self):
        return (f"GLMResult(family={self.family.name!r}, n={self.n_obs}, "
                f"rank={self.rank}, deviance={self.deviance:.4f}, "
                f"converged={self.converged})")


class GLM:
    """
    Generalized linear model via parallel IRLS.

    Examples
    --------
    >>> model = GLM(family='binomial_logit', block_size=5000, max_threads=8)
    >>> result = model.fit(X, y)
    >>> result.coef
    """

    def __init__(
        self,
        family: Union[str, Family] = 'gaussian',
        backend=None,
        tol: float = 1e-8,
        max_iterations: int = 25,
        block_size: Optional[int] = None,
        max_threads: Optional[int] = None,
        trace: bool = False,
        intercept: bool = True,
        rank_tol: float = DEFAULT_RANK_TOL,
        merge_fanin: Optional[int] = None,
    ):
        """
        Parameters
        ----------
        family : str or Family, default='gaussian'
            GLM family, e.g. 'binomial', 'poisson_log', 'Gamma_log'
        backend : str, optional
            Backend: 'auto', 'cpu', 'pytorch' (default from configuration)
        tol : float, default=1e-8
            Convergence tolerance
        max_iterations : int, default=25
            Maximum IRLS iterations
        block_size : int, optional
            Observations per parallel block
        max_threads : int, optional
            Worker threads
        trace : bool, default=False
            Print progress after each iteration
        intercept : bool, default=True
            Prepend a column of ones
        rank_tol : float, default=1e-7
            Rank determination tolerance
        merge_fanin : int, optional
            Group size for multi-level reduction of block factors
        """
        self.family = get_family(family)
        self.backend = get_backend(backend)
        self.tol = tol
        self.max_iterations = max_iterations
        self.block_size = block_size
        self.max_threads = max_threads
        self.trace = trace
        self.intercept = intercept
        self.rank_tol = rank_tol
        self.merge_fanin = merge_fanin

    def fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        weights: Optional[np.ndarray] = None,
        offset: Optional[np.ndarray] = None,
        var_names: Optional[List[str]] = None,
    ) -> GLMResult:
        """
        Fit generalized linear model.

        Parameters
        ----------
        X : ndarray, shape (n, p)
            Design matrix (without intercept if ``intercept=True``)
        y : ndarray, shape (n,)
            Response vector
        weights : ndarray, shape (n,), optional
            Prior weights
        offset : ndarray, shape (n,), optional
            Offset term
        var_names : list of str, optional
            Names of the columns of X

        Returns
        -------
        result : GLMResult
            Fitted model results
        """
        X = check_array(X, name='X')
        y = check_vector(y, name='y')
        n = X.shape[0]

        if var_names is None:
            var_names = [f'x{i}' for i in range(X.shape[1])]
        if self.intercept:
            X = np.column_stack([np.ones(n), X])
            var_names = ['Intercept'] + list(var_names)

        weights = np.ones(len(y)) if weights is None else check_vector(weights, name='weights')
        offset = np.zeros(len(y)) if offset is None else check_vector(offset, name='offset')

        fit = fit_parallel_glm(
            np.ascontiguousarray(X.T), y, self.family,
            beta0=np.zeros(X.shape[1]),
            weight=weights,
            offset=offset,
            tol=self.tol,
            max_threads=self.max_threads,
            max_iterations=self.max_iterations,
            trace=self.trace,
            block_size=self.block_size,
            backend=self.backend,
            rank_tol=self.rank_tol,
            merge_fanin=self.merge_fanin,
        )

        return GLMResult(
            fit=fit,
            family=self.family,
            var_names=var_names,
            y=y,
            weights=weights,
            backend=self.backend,
        )


def _column(value, data, what):
    if isinstance(value, str):
        if data is None:
            raise ValueError(f"Must provide data when {what} is a string")
        return data[value].values
    return np.asarray(value)


def glm(y, X, data=None, family='gaussian', weights=None, offset=None, **kwargs):
    """
    Fit a generalized linear model (convenience function).

    Parameters
    ----------
    y : str or array
        Response variable (column name in data, or values)
    X : list of str or array
        Predictor variables (column names in data, or an n x p matrix)
    data : DataFrame, optional
        Dataset
    family : str or Family
        GLM family
    weights, offset : str or array, optional
        Prior weights and offset (column names or values)
    **kwargs
        Additional arguments passed to GLM

    Returns
    -------
    GLMResult
        Fitted model results

    Examples
    --------
    >>> fit = glm(y='admit', X=['gre', 'gpa'], data=df, family='binomial')
    >>> fit.summary()
    """
    y_values = _column(y, data, 'y')

    if isinstance(X, list) and all(isinstance(x, str) for x in X):
        if data is None:
            raise ValueError("Must provide data when X is list of strings")
        X_values = data[X].values
        X_names = list(X)
    else:
        X_values = np.asarray(X)
        X_names = None

    w = None if weights is None else _column(weights, data, 'weights')
    o = None if offset is None else _column(offset, data, 'offset')

    return GLM(family=family, **kwargs).fit(
        X_values, y_values, weights=w, offset=o, var_names=X_names
    )


__all__ = ["GLM", "GLMResult", "glm"]
