"""
Tests for fit_frailty(): Cox model with a shared gamma frailty.

R reference code:
    library(survival)
    coxph(Surv(time, status) ~ x + frailty(cluster, distribution="gamma"))
"""

import warnings

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pystatsurv.core.exceptions import InvalidModelSpecError
from pystatsurv.survival import (
    Cluster,
    Frailty,
    FrailtySolution,
    SurvivalDataset,
    coxph,
    fit_frailty,
)


@pytest.fixture
def frailty_fit(clustered_dataset):
    return fit_frailty(clustered_dataset, ["x"], "cluster")


class TestFrailtyFit:
    """Shared gamma frailty on simulated clustered data (true theta = 1)."""

    def test_structure(self, frailty_fit):
        assert isinstance(frailty_fit, FrailtySolution)
        assert frailty_fit.names == ("x",)
        assert frailty_fit.n_clusters == 30
        assert len(frailty_fit.cluster_labels) == 30
        assert frailty_fit.log_frailty.shape == (30,)
        assert frailty_fit.log_frailty_se.shape == (30,)
        assert frailty_fit.converged

    def test_detects_cluster_effect(self, frailty_fit):
        assert frailty_fit.theta > 0.1
        assert frailty_fit.theta_test.p_value < 0.05

    def test_coefficient(self, frailty_fit):
        assert_allclose(frailty_fit.coefficients, [0.5], atol=0.25)

    def test_integrated_loglik_not_below_cox(self, frailty_fit):
        assert frailty_fit.loglik_integrated >= frailty_fit.loglik_cox - 1e-2

    def test_loglik_cox_matches_plain_fit(self, clustered_dataset, frailty_fit):
        cox = coxph(clustered_dataset, ["x"])
        assert_allclose(frailty_fit.loglik_cox, cox.loglik[1], rtol=1e-10)

    def test_frailties(self, frailty_fit):
        frailties = frailty_fit.frailties
        assert len(frailties) == 30
        assert all(v > 0 for v in frailties.values())
        assert_allclose(
            [frailties[c] for c in frailty_fit.cluster_labels],
            np.exp(frailty_fit.log_frailty),
        )

    def test_boundary_corrected_test(self, frailty_fit):
        t = frailty_fit.theta_test
        assert t.df == 1
        assert 0.0 <= t.p_value <= 0.5

    def test_outer_iterations(self, frailty_fit):
        assert frailty_fit.n_outer_iter >= 1
        assert frailty_fit.info["theta"] == frailty_fit.theta


class TestNoClusterEffect:
    """Independent data: theta shrinks toward zero, beta toward Cox."""

    def test_small_theta(self, cox_dataset, rng):
        ds = SurvivalDataset.from_arrays(
            cox_dataset.time, cox_dataset.event, cox_dataset.X,
            names=["x1", "x2"], cluster=rng.integers(0, 25, cox_dataset.n),
        )
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            fit = fit_frailty(ds, ["x1", "x2"], "cluster")
            cox = coxph(ds, ["x1", "x2"])
        assert fit.theta < 0.5
        assert_allclose(fit.coefficients, cox.coefficients, atol=0.1)


class TestSpecification:
    """Model-specification errors."""

    def test_frailty_in_terms(self, clustered_dataset, frailty_fit):
        via_terms = fit_frailty(clustered_dataset, ["x", Frailty("cluster")])
        assert_allclose(via_terms.theta, frailty_fit.theta)

    def test_no_frailty_term(self, clustered_dataset):
        with pytest.raises(InvalidModelSpecError, match="frailty"):
            fit_frailty(clustered_dataset, ["x"])

    def test_cluster_and_frailty_exclusive(self, clustered_dataset):
        with pytest.raises(InvalidModelSpecError, match="cannot be combined"):
            fit_frailty(clustered_dataset, ["x", Cluster("cluster")], "cluster")

    def test_robust_and_frailty_exclusive(self, clustered_dataset):
        with pytest.raises(InvalidModelSpecError, match="cannot be combined"):
            fit_frailty(clustered_dataset, ["x"], "cluster", robust=True)

    def test_coxph_rejects_frailty(self, clustered_dataset):
        with pytest.raises(InvalidModelSpecError, match="fit_frailty"):
            coxph(clustered_dataset, ["x", Frailty("cluster")])


class TestOutput:
    """summary() and repr."""

    def test_summary(self, frailty_fit):
        text = frailty_fit.summary()
        assert "Call: fit_frailty()" in text
        assert "Variance of random effect" in text
        assert "clusters= 30" in text

    def test_repr(self, frailty_fit):
        assert repr(frailty_fit).startswith("FrailtySolution(n=300, clusters=30")

    def test_backend(self, frailty_fit):
        assert frailty_fit.backend_name == "cpu_frailty"
