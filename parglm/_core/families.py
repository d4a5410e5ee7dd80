"""
GLM family definitions.

A family is a link function plus a mean-variance relationship. Formulas,
thresholds and starting values follow R's family objects (family.c).
"""

import numpy as np
from abc import ABC, abstractmethod
from scipy import stats

EPS = np.finfo(np.float64).eps


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------

class Link(ABC):
    """Base class for link functions."""

    name = "link"

    @abstractmethod
    def linkfun(self, mu: np.ndarray) -> np.ndarray:
        """Link function: η = g(μ)"""
        pass

    @abstractmethod
    def linkinv(self, eta: np.ndarray) -> np.ndarray:
        """Inverse link: μ = g⁻¹(η)"""
        pass

    @abstractmethod
    def mu_eta(self, eta: np.ndarray) -> np.ndarray:
        """Derivative: dμ/dη"""
        pass


class IdentityLink(Link):
    name = "identity"

    def linkfun(self, mu):
        return mu

    def linkinv(self, eta):
        return eta

    def mu_eta(self, eta):
        return np.ones_like(eta)


class LogLink(Link):
    name = "log"

    def linkfun(self, mu):
        return np.log(mu)

    def linkinv(self, eta):
        return np.maximum(np.exp(eta), EPS)

    def mu_eta(self, eta):
        return np.maximum(np.exp(eta), EPS)


class InverseLink(Link):
    name = "inverse"

    def linkfun(self, mu):
        return 1.0 / mu

    def linkinv(self, eta):
        return 1.0 / eta

    def mu_eta(self, eta):
        return -1.0 / (eta * eta)


class SqrtLink(Link):
    name = "sqrt"

    def linkfun(self, mu):
        return np.sqrt(mu)

    def linkinv(self, eta):
        return eta * eta

    def mu_eta(self, eta):
        return 2.0 * eta


class InverseSquareLink(Link):
    name = "1/mu^2"

    def linkfun(self, mu):
        return 1.0 / (mu * mu)

    def linkinv(self, eta):
        return 1.0 / np.sqrt(eta)

    def mu_eta(self, eta):
        return -1.0 / (2.0 * eta ** 1.5)


class LogitLink(Link):
    """
    Logit link with R's thresholding at ±30 to prevent overflow.
    """

    name = "logit"

    THRESH = 30.0
    MTHRESH = -30.0
    INVEPS = 1.0 / EPS

    def linkfun(self, mu):
        return np.log(mu / (1 - mu))

    def linkinv(self, eta):
        tmp = np.exp(np.clip(eta, self.MTHRESH, self.THRESH))
        tmp = np.where(eta < self.MTHRESH, EPS, tmp)
        tmp = np.where(eta > self.THRESH, self.INVEPS, tmp)
        return tmp / (1.0 + tmp)

    def mu_eta(self, eta):
        outside = (eta < self.MTHRESH) | (eta > self.THRESH)
        exp_eta = np.exp(np.clip(eta, self.MTHRESH, self.THRESH))
        return np.where(outside, EPS, exp_eta / (1.0 + exp_eta) ** 2)


class ProbitLink(Link):
    name = "probit"

    THRESH = -stats.norm.ppf(EPS)

    def linkfun(self, mu):
        return stats.norm.ppf(mu)

    def linkinv(self, eta):
        return stats.norm.cdf(np.clip(eta, -self.THRESH, self.THRESH))

    def mu_eta(self, eta):
        return np.maximum(stats.norm.pdf(eta), EPS)


class CauchitLink(Link):
    name = "cauchit"

    THRESH = -stats.cauchy.ppf(EPS)

    def linkfun(self, mu):
        return stats.cauchy.ppf(mu)

    def linkinv(self, eta):
        return stats.cauchy.cdf(np.clip(eta, -self.THRESH, self.THRESH))

    def mu_eta(self, eta):
        return np.maximum(stats.cauchy.pdf(eta), EPS)


class CloglogLink(Link):
    name = "cloglog"

    def linkfun(self, mu):
        return np.log(-np.log(1 - mu))

    def linkinv(self, eta):
        return np.clip(-np.expm1(-np.exp(eta)), EPS, 1 - EPS)

    def mu_eta(self, eta):
        eta = np.minimum(eta, 700.0)
        return np.maximum(np.exp(eta) * np.exp(-np.exp(eta)), EPS)


_LINKS = {
    cls.name: cls
    for cls in (IdentityLink, LogLink, InverseLink, SqrtLink,
                InverseSquareLink, LogitLink, ProbitLink, CauchitLink,
                CloglogLink)
}


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------

class Family(ABC):
    """
    Base class for GLM families.

    The IRLS driver only uses ``initialize``, ``linkinv``, ``mu_eta``,
    ``variance`` and ``dev_resids``. All are vectorised and elementwise.
    """

    family_name = "family"
    links = ()

    def __init__(self, link=None):
        if link is None:
            link = self.links[0]
        if isinstance(link, str):
            if link not in self.links:
                raise ValueError(
                    f"Link '{link}' not available for the {self.family_name} "
                    f"family. Valid links: {list(self.links)}"
                )
            link = _LINKS[link]()
        self.link = link

    @property
    def name(self) -> str:
        """Family name in '<family>_<link>' form."""
        return f"{self.family_name}_{self.link.name}"

    def linkfun(self, mu: np.ndarray) -> np.ndarray:
        return self.link.linkfun(mu)

    def linkinv(self, eta: np.ndarray) -> np.ndarray:
        return self.link.linkinv(eta)

    def mu_eta(self, eta: np.ndarray) -> np.ndarray:
        return self.link.mu_eta(eta)

    def initialize(self, y: np.ndarray, weight: np.ndarray) -> np.ndarray:
        """Starting linear predictor, before any coefficients exist."""
        return self.linkfun(self.mustart(y, weight))

    @abstractmethod
    def mustart(self, y: np.ndarray, weight: np.ndarray) -> np.ndarray:
        """Starting mean."""
        pass

    @abstractmethod
    def variance(self, mu: np.ndarray) -> np.ndarray:
        """Variance function: V(μ)"""
        pass

    @abstractmethod
    def dev_resids(
        self,
        y: np.ndarray,
        mu: np.ndarray,
        wt: np.ndarray
    ) -> np.ndarray:
        """Per-observation deviance contributions."""
        pass

    @property
    def dispersion_is_fixed(self) -> bool:
        """True if the dispersion parameter is 1 by definition."""
        return False

    def __repr__(self):
        return f"{type(self).__name__}(link={self.link.name!r})"


class Gaussian(Family):
    family_name = "gaussian"
    links = ("identity", "log", "inverse")

    def mustart(self, y, weight):
        return y

    def variance(self, mu):
        return np.ones_like(mu)

    def dev_resids(self, y, mu, wt):
        return wt * (y - mu) ** 2


def _y_log_y(y, mu):
    """y * log(y / mu), with 0 * log(0) = 0."""
    with np.errstate(divide='ignore', invalid='ignore'):
        out = y * np.log(y / mu)
    return np.where(y > 0, out, 0.0)


class Binomial(Family):
    family_name = "binomial"
    links = ("logit", "probit", "cauchit", "log", "cloglog")

    def mustart(self, y, weight):
        return (weight * y + 0.5) / (weight + 1.0)

    def variance(self, mu):
        return mu * (1 - mu)

    def dev_resids(self, y, mu, wt):
        return 2.0 * wt * (_y_log_y(y, mu) + _y_log_y(1 - y, 1 - mu))

    @property
    def dispersion_is_fixed(self):
        return True


class Poisson(Family):
    family_name = "poisson"
    links = ("log", "identity", "sqrt")

    def mustart(self, y, weight):
        return y + 0.1

    def variance(self, mu):
        return mu

    def dev_resids(self, y, mu, wt):
        r = mu * wt
        with np.errstate(divide='ignore', invalid='ignore'):
            pos = wt * (y * np.log(y / mu) - (y - mu))
        return 2.0 * np.where(y > 0, pos, r)

    @property
    def dispersion_is_fixed(self):
        return True


class Gamma(Family):
    family_name = "Gamma"
    links = ("inverse", "identity", "log")

    def mustart(self, y, weight):
        return y

    def variance(self, mu):
        return mu * mu

    def dev_resids(self, y, mu, wt):
        with np.errstate(divide='ignore', invalid='ignore'):
            ratio = np.where(y == 0, 1.0, y / mu)
        return -2.0 * wt * (np.log(ratio) - (y - mu) / mu)


class InverseGaussian(Family):
    family_name = "inverse.gaussian"
    links = ("1/mu^2", "inverse", "identity", "log")

    def mustart(self, y, weight):
        return y

    def variance(self, mu):
        return mu ** 3

    def dev_resids(self, y, mu, wt):
        return wt * ((y - mu) ** 2) / (y * mu * mu)


_FAMILIES = {
    cls.family_name: cls
    for cls in (Gaussian, Binomial, Poisson, Gamma, InverseGaussian)
}


def get_family(name) -> Family:
    """
    Resolve a family by name.

    Parameters
    ----------
    name : str or Family
        '<family>_<link>' (e.g. 'binomial_logit', 'inverse.gaussian_1/mu^2')
        or a bare family name for its canonical link. A Family instance
        is returned unchanged.

    Returns
    -------
    Family
    """
    if isinstance(name, Family):
        return name
    if not isinstance(name, str):
        raise TypeError(f"family must be a string or Family, got {type(name).__name__}")

    family_name, _, link = name.partition("_")
    if family_name not in _FAMILIES:
        raise ValueError(
            f"Unknown family: '{name}'\n"
            f"Valid families: {sorted(_FAMILIES)}"
        )
    return _FAMILIES[family_name](link or None)


def list_families() -> list:
    """All valid '<family>_<link>' names."""
    return [
        f"{fam}_{link}"
        for fam, cls in _FAMILIES.items()
        for link in cls.links
    ]


__all__ = [
    "Link", "Family", "Gaussian", "Binomial", "Poisson", "Gamma",
    "InverseGaussian", "get_family", "list_families",
]
