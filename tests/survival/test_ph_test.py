"""
Tests for test_proportional_hazards() matching R survival::cox.zph().

R reference code:
    library(survival)
    fit <- coxph(Surv(time, event) ~ x1 + x2, data=...)
    cox.zph(fit, transform="km")
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy import stats

from pystatsurv.core.exceptions import ValidationError
from pystatsurv.survival import (
    PHTestSolution,
    Stratum,
    SurvivalDataset,
    coxph,
    test_proportional_hazards as ph_test,
)


@pytest.fixture
def crossing_dataset(rng):
    """Weibull hazards that cross: decreasing for x=0, increasing for x=1."""
    n = 400
    x = np.repeat([0.0, 1.0], n // 2)
    t0 = rng.weibull(0.5, n // 2)
    t1 = rng.weibull(3.0, n // 2)
    time = np.concatenate([t0, t1])
    cens = rng.uniform(0.5, 3.0, n)
    event = (time <= cens).astype(np.float64)
    return SurvivalDataset.from_arrays(np.minimum(time, cens), event, x, names=["x"])


class TestPHTest:
    """Grambsch-Therneau test of proportional hazards."""

    def test_structure(self, cox_dataset):
        fit = coxph(cox_dataset, ["x1", "x2"])
        result = ph_test(fit)
        assert isinstance(result, PHTestSolution)
        assert result.names == ("x1", "x2")
        assert result.transform == "km"
        assert_allclose(result.df, [1, 1])
        assert result.global_test.df == 2
        assert len(result.event_times) == fit.n_events
        assert result.scaled_residuals.shape == (fit.n_events, 2)

    def test_p_values_are_chi2(self, cox_dataset):
        result = ph_test(coxph(cox_dataset, ["x1", "x2"]))
        assert_allclose(result.p_values, stats.chi2.sf(result.statistics, 1))
        g = result.global_test
        assert_allclose(g.p_value, stats.chi2.sf(g.statistic, 2))

    def test_ph_data_not_rejected(self, cox_dataset):
        result = ph_test(coxph(cox_dataset, ["x1", "x2"]))
        assert result.global_test.p_value > 0.001

    def test_crossing_hazards_rejected(self, crossing_dataset):
        result = ph_test(coxph(crossing_dataset, ["x"]))
        assert result.p_values[0] < 0.001
        assert result.violations() == ("x",)

    def test_single_covariate_global_equals_term(self, crossing_dataset):
        result = ph_test(coxph(crossing_dataset, ["x"]))
        assert_allclose(result.global_test.statistic, result.statistics[0], rtol=1e-10)

    def test_scaled_residuals_center_on_beta(self, cox_dataset):
        fit = coxph(cox_dataset, ["x1", "x2"])
        result = ph_test(fit)
        assert_allclose(result.scaled_residuals.mean(axis=0), fit.coefficients, atol=1e-4)

    def test_stratified_fit(self):
        ds = SurvivalDataset.from_arrays(
            [4, 3, 1, 1, 2, 2, 3, 5, 6, 7],
            [1, 1, 1, 0, 1, 1, 0, 1, 1, 0],
            [0, 2, 1, 1, 1, 0, 0, 1, 2, 0],
            names=["x"],
            strata=[0, 0, 0, 0, 1, 1, 1, 1, 1, 1],
        )
        result = ph_test(coxph(ds, ["x", Stratum("stratum")]))
        assert len(result.event_times) == 7


class TestTransforms:
    """Time transforms."""

    def test_identity(self, cox_dataset):
        result = ph_test(coxph(cox_dataset, ["x1"]), transform="identity")
        assert_allclose(result.transformed_times, result.event_times)

    def test_rank(self, cox_dataset):
        result = ph_test(coxph(cox_dataset, ["x1"]), transform="rank")
        assert_allclose(result.transformed_times, stats.rankdata(result.event_times))

    def test_log(self, cox_dataset):
        result = ph_test(coxph(cox_dataset, ["x1"]), transform="log")
        assert_allclose(result.transformed_times, np.log(result.event_times))

    def test_km(self, cox_dataset):
        result = ph_test(coxph(cox_dataset, ["x1"]), transform="km")
        g = result.transformed_times
        # 1 - S(t-) starts at 0 and never decreases
        assert g[0] == 0.0
        assert np.all(np.diff(g) >= 0)
        assert np.all(g < 1.0)

    def test_transforms_differ(self, cox_dataset):
        fit = coxph(cox_dataset, ["x1"])
        km = ph_test(fit, transform="km")
        ident = ph_test(fit, transform="identity")
        assert not np.allclose(km.statistics, ident.statistics)


class TestErrors:
    """Input validation."""

    def test_unknown_transform(self, cox_dataset):
        with pytest.raises(ValidationError, match="transform"):
            ph_test(coxph(cox_dataset, ["x1"]), transform="sqrt")

    def test_requires_cox(self):
        with pytest.raises(ValidationError, match="CoxSolution"):
            ph_test("not a fit")


class TestOutput:
    """summary() and repr."""

    def test_summary(self, cox_dataset):
        text = ph_test(coxph(cox_dataset, ["x1", "x2"])).summary()
        assert "GLOBAL" in text
        assert "x1" in text
        assert "transform='km'" in text

    def test_repr(self, cox_dataset):
        assert repr(ph_test(coxph(cox_dataset, ["x1"]))).startswith(
            "PHTestSolution(transform='km'"
        )

    def test_backend(self, cox_dataset):
        assert ph_test(coxph(cox_dataset, ["x1"])).backend_name == "cpu_zph"
