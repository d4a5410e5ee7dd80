"""
Test GLM family formulas.
"""

import pytest
import numpy as np

from parglm import get_family, list_families
from parglm._core.families import (
    Binomial,
    Gamma,
    Gaussian,
    InverseGaussian,
    Poisson,
)


# mean values valid for every family (0 < mu < 1)
MU = np.array([0.1, 0.25, 0.5, 0.8, 0.95])


class TestGetFamily:

    def test_bare_name_gives_canonical_link(self):
        assert get_family('gaussian').name == 'gaussian_identity'
        assert get_family('binomial').name == 'binomial_logit'
        assert get_family('poisson').name == 'poisson_log'
        assert get_family('Gamma').name == 'Gamma_inverse'
        assert get_family('inverse.gaussian').name == 'inverse.gaussian_1/mu^2'

    def test_family_with_link(self):
        fam = get_family('binomial_probit')
        assert isinstance(fam, Binomial)
        assert fam.link.name == 'probit'

        fam = get_family('inverse.gaussian_log')
        assert isinstance(fam, InverseGaussian)

    def test_instance_passthrough(self):
        fam = Poisson('sqrt')
        assert get_family(fam) is fam

    def test_unknown_family(self):
        with pytest.raises(ValueError, match="Unknown family"):
            get_family('weibull')

    def test_invalid_link(self):
        with pytest.raises(ValueError, match="not available"):
            get_family('poisson_logit')

    def test_list_families_round_trip(self):
        names = list_families()
        assert 'binomial_cloglog' in names
        for name in names:
            assert get_family(name).name == name


@pytest.mark.parametrize("name", list_families())
class TestLinks:
    """Every link is invertible and mu_eta is its derivative."""

    def test_linkinv_inverts_linkfun(self, name):
        fam = get_family(name)
        np.testing.assert_allclose(fam.linkinv(fam.linkfun(MU)), MU, rtol=1e-10)

    def test_mu_eta_is_derivative(self, name):
        fam = get_family(name)
        eta = fam.linkfun(MU)
        h = 1e-6
        numeric = (fam.linkinv(eta + h) - fam.linkinv(eta - h)) / (2 * h)
        np.testing.assert_allclose(fam.mu_eta(eta), numeric, rtol=1e-5)


class TestLogitThresholds:
    """R's ±30 thresholding keeps mu inside (0, 1)."""

    def test_extreme_eta(self):
        fam = Binomial()
        eta = np.array([-100.0, -31.0, 0.0, 31.0, 100.0])
        mu = fam.linkinv(eta)

        assert np.all(mu > 0) and np.all(mu < 1)
        assert mu[2] == 0.5
        eps = np.finfo(np.float64).eps
        assert fam.mu_eta(eta)[0] == eps
        assert fam.mu_eta(eta)[4] == eps


class TestVarianceAndDeviance:

    def test_variances(self):
        np.testing.assert_allclose(Gaussian().variance(MU), 1.0)
        np.testing.assert_allclose(Binomial().variance(MU), MU * (1 - MU))
        np.testing.assert_allclose(Poisson().variance(MU), MU)
        np.testing.assert_allclose(Gamma().variance(MU), MU ** 2)
        np.testing.assert_allclose(InverseGaussian().variance(MU), MU ** 3)

    @pytest.mark.parametrize("fam", [Gaussian(), Binomial(), Poisson(),
                                     Gamma(), InverseGaussian()],
                             ids=lambda f: f.family_name)
    def test_deviance_zero_at_saturation(self, fam):
        """dev_resids(y, y, w) is zero."""
        np.testing.assert_allclose(fam.dev_resids(MU, MU, np.ones(5)), 0.0, atol=1e-14)

    def test_gaussian_deviance(self):
        y = np.array([1.0, 2.0, 3.0])
        mu = np.array([1.5, 2.0, 2.0])
        wt = np.array([1.0, 2.0, 3.0])
        np.testing.assert_allclose(Gaussian().dev_resids(y, mu, wt), [0.25, 0.0, 3.0])

    def test_binomial_deviance_boundary(self):
        """0 log 0 is taken as 0."""
        y = np.array([0.0, 1.0])
        mu = np.array([0.2, 0.2])
        expected = [-2 * np.log(0.8), -2 * np.log(0.2)]
        np.testing.assert_allclose(Binomial().dev_resids(y, mu, np.ones(2)), expected)

    def test_poisson_deviance_zero_count(self):
        y = np.array([0.0, 3.0])
        mu = np.array([2.0, 2.0])
        expected = [4.0, 2 * (3 * np.log(1.5) - 1)]
        np.testing.assert_allclose(Poisson().dev_resids(y, mu, np.ones(2)), expected)

    def test_zero_weight_contributes_nothing(self):
        y = np.array([2.0, 5.0])
        mu = np.array([1.0, 1.0])
        dev = Poisson().dev_resids(y, mu, np.array([0.0, 1.0]))
        assert dev[0] == 0.0


class TestInitialize:

    def test_gaussian_initialize_is_y(self):
        y = np.array([1.0, -2.0, 3.5])
        np.testing.assert_array_equal(Gaussian().initialize(y, np.ones(3)), y)

    def test_binomial_initialize(self):
        y = np.array([0.0, 1.0, 1.0])
        w = np.array([1.0, 1.0, 0.0])
        mustart = (w * y + 0.5) / (w + 1)
        np.testing.assert_allclose(Binomial().initialize(y, w),
                                   np.log(mustart / (1 - mustart)))

    def test_poisson_initialize(self):
        y = np.array([0.0, 4.0])
        np.testing.assert_allclose(Poisson().initialize(y, np.ones(2)), np.log(y + 0.1))
