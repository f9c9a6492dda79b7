"""
Tests for kaplan_meier() matching R survival::survfit(Surv(time, event) ~ 1).

R reference code:
    library(survival)
    fit <- survfit(Surv(time, event) ~ 1, conf.type="log-log")
    summary(fit)

Greenwood standard errors and log-log limits below were worked by hand
from the product-limit formulas and agree with survfit() to the digits
shown.
"""

import warnings
from pathlib import Path

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pystatsurv.core.exceptions import (
    InvalidDataError,
    UndefinedStatisticWarning,
    ValidationError,
)
from pystatsurv.survival import (
    KMSolution,
    LogRankSolution,
    StratifiedKMSolution,
    SurvivalDataset,
    is_not_reached,
    kaplan_meier,
)


# Classic textbook: 6 subjects, 2 censored
# R:
#   time <- c(1, 2, 3, 4, 5, 6)
#   event <- c(1, 0, 1, 0, 1, 1)
BASIC_TIME = np.array([1, 2, 3, 4, 5, 6], dtype=np.float64)
BASIC_EVENT = np.array([1, 0, 1, 0, 1, 1], dtype=np.float64)

# survfit(..., conf.type="log-log") at t = 1
R_BASIC_SE_T1 = 0.15215
R_BASIC_LOWER_T1 = 0.2732
R_BASIC_UPPER_T1 = 0.9747

# Lung-like dataset (larger, with tied times)
LUNG_TIME = np.array([6, 7, 10, 15, 16, 22, 23, 6, 9, 10, 11, 17, 19, 20, 25, 32, 35],
                     dtype=np.float64)
LUNG_EVENT = np.array([1, 1, 1, 1, 0, 1, 1, 0, 1, 0, 1, 1, 1, 1, 0, 1, 0],
                      dtype=np.float64)


def _km(time, event, **kwargs):
    ds = SurvivalDataset.from_arrays(time, event)
    return kaplan_meier(ds, **kwargs)


@pytest.fixture
def basic():
    return _km(BASIC_TIME, BASIC_EVENT)


class TestKaplanMeierBasic:
    """Basic Kaplan-Meier survival curve estimation."""

    def test_basic_survival_curve(self, basic):
        """Simple 6-subject example with censoring.

        R:
            summary(survfit(Surv(time, event) ~ 1))
            # time n.risk n.event survival
            #    1      6       1    0.833
            #    3      4       1    0.625
            #    5      2       1    0.312
            #    6      1       1    0.000
        """
        assert isinstance(basic, KMSolution)
        assert basic.n_observations == 6
        assert basic.n_events_total == 4

        assert_allclose(basic.time, [1, 3, 5, 6])
        assert_allclose(basic.n_events, [1, 1, 1, 1])
        assert_allclose(basic.n_risk, [6, 4, 2, 1])
        assert_allclose(basic.n_censored, [1, 1, 0, 0])

        # S(1) = 5/6, S(3) = 5/6 * 3/4, S(5) = 5/8 * 1/2, S(6) = 0
        assert_allclose(basic.survival, [5/6, 5/8, 5/16, 0.0], rtol=1e-10)

    def test_all_events_no_censoring(self):
        result = _km([1, 2, 3, 4, 5], [1, 1, 1, 1, 1])
        assert result.n_events_total == 5
        assert_allclose(result.survival, [4/5, 3/5, 2/5, 1/5, 0.0], rtol=1e-10)

    def test_all_censored(self):
        """No events: S(t) = 1 everywhere (empty curve)."""
        with pytest.warns(UndefinedStatisticWarning, match="not reached"):
            result = _km([1, 2, 3, 4, 5], [0, 0, 0, 0, 0])
        assert result.n_events_total == 0
        assert len(result.time) == 0
        assert is_not_reached(result.median_survival)
        est = result.survival_at(3.0)
        assert est.survival == 1.0

    def test_single_event(self):
        """Single event at time=3; two subjects censored before it."""
        with pytest.warns(UndefinedStatisticWarning):
            result = _km([1, 2, 3, 4, 5], [0, 0, 1, 0, 0])
        assert_allclose(result.time, [3.0])
        assert_allclose(result.n_risk, [3.0])
        assert_allclose(result.survival, [2/3], rtol=1e-10)

    def test_tied_event_times(self):
        """Ties: all events at a time are removed together."""
        result = _km([2, 2, 2, 4], [1, 1, 0, 1])
        assert_allclose(result.time, [2, 4])
        assert_allclose(result.n_events, [2, 1])
        assert_allclose(result.n_risk, [4, 1])
        assert_allclose(result.n_censored, [1, 0])
        assert_allclose(result.survival, [0.5, 0.0])
        assert result.median_survival == 2.0

    def test_survival_monotone(self):
        result = _km(LUNG_TIME, LUNG_EVENT)
        assert np.all(np.diff(result.survival) <= 0)
        assert np.all(result.ci_lower <= result.survival + 1e-12)
        assert np.all(result.ci_upper >= result.survival - 1e-12)
        assert result.max_time == 35.0

    def test_event_times_only(self):
        result = _km(LUNG_TIME, LUNG_EVENT)
        expected = np.unique(LUNG_TIME[LUNG_EVENT == 1])
        assert_allclose(result.time, expected)
        assert result.n_events.sum() == LUNG_EVENT.sum()


class TestGreenwoodAndCI:
    """Greenwood variance and CI transformations."""

    def test_greenwood_se(self, basic):
        # Var(S) = S^2 * sum d / (n (n - d))
        expected_var = np.array([
            (5/6) ** 2 * (1/30),
            (5/8) ** 2 * (1/30 + 1/12),
            (5/16) ** 2 * (1/30 + 1/12 + 1/2),
            0.0,
        ])
        assert_allclose(basic.variance, expected_var, rtol=1e-10)
        assert_allclose(basic.se[0], R_BASIC_SE_T1, atol=1e-5)

    def test_log_log_ci(self, basic):
        assert basic.conf_type == "log-log"
        assert_allclose(basic.ci_lower[0], R_BASIC_LOWER_T1, atol=1e-4)
        assert_allclose(basic.ci_upper[0], R_BASIC_UPPER_T1, atol=1e-4)

    def test_ci_collapses_at_zero(self, basic):
        assert basic.ci_lower[-1] == 0.0
        assert basic.ci_upper[-1] == 0.0

    def test_log_ci(self):
        result = _km(BASIC_TIME, BASIC_EVENT, conf_type="log")
        # exp(log S +/- z * se / S), upper clipped to 1
        assert_allclose(result.ci_lower[0], 0.58265, atol=1e-4)
        assert result.ci_upper[0] == 1.0

    def test_plain_ci(self):
        result = _km(BASIC_TIME, BASIC_EVENT, conf_type="plain")
        z = 1.959963984540054
        # S +/- z * se, clipped to [0, 1]; the upper limit at t=3 exceeds 1
        assert_allclose(result.ci_lower[1], 0.625 - z * result.se[1], rtol=1e-10)
        assert_allclose(result.ci_upper[1], min(1.0, 0.625 + z * result.se[1]),
                        rtol=1e-10)
        assert result.ci_upper[1] == 1.0
        assert np.all(result.ci_upper <= 1.0)
        assert np.all(result.ci_lower >= 0.0)

    def test_narrower_at_lower_level(self):
        r95 = _km(LUNG_TIME, LUNG_EVENT)
        r80 = _km(LUNG_TIME, LUNG_EVENT, conf_level=0.80)
        w95 = r95.ci_upper - r95.ci_lower
        w80 = r80.ci_upper - r80.ci_lower
        assert np.all(w80 <= w95 + 1e-12)

    def test_invalid_conf_type(self):
        with pytest.raises(ValidationError, match="conf_type"):
            _km(BASIC_TIME, BASIC_EVENT, conf_type="arcsin")

    def test_invalid_conf_level(self):
        with pytest.raises(ValidationError, match="conf_level"):
            _km(BASIC_TIME, BASIC_EVENT, conf_level=1.5)


class TestMedianAndQuantiles:
    """Median survival and quantiles."""

    def test_median(self, basic):
        # S(3) = 0.625 > 0.5, S(5) = 0.3125 <= 0.5
        assert basic.median_survival == 5.0

    def test_median_ci(self, basic):
        # Lower CI curve is below 0.5 from t = 1; upper only reaches it at t = 6
        lower, upper = basic.median_ci
        assert lower == 1.0
        assert upper == 6.0

    def test_median_not_reached(self):
        with pytest.warns(UndefinedStatisticWarning, match="median survival not reached"):
            result = _km([1, 2, 3, 4], [1, 0, 0, 0])
        assert is_not_reached(result.median_survival)
        assert np.isnan(result.median_survival)
        assert "median survival not reached" in result.warnings[0]

    def test_not_reached_warning_points_at_caller(self):
        ds = SurvivalDataset.from_arrays([1, 2, 3, 4], [1, 0, 0, 0])
        with pytest.warns(UndefinedStatisticWarning) as record:
            kaplan_meier(ds)
        ours = [w for w in record if w.category is UndefinedStatisticWarning]
        assert [w.filename for w in ours] == [__file__]

    def test_stratified_warning_points_at_caller(self):
        ds = SurvivalDataset.from_arrays(
            [1, 2, 3, 4, 1, 2, 3, 4], [1, 0, 0, 0, 1, 1, 1, 1],
            factors={"arm": ["a"] * 4 + ["b"] * 4},
        )
        with pytest.warns(UndefinedStatisticWarning, match="arm=a") as record:
            kaplan_meier(ds, "arm")
        ours = [w for w in record if w.category is UndefinedStatisticWarning]
        assert [w.filename for w in ours] == [__file__]

    def test_median_exactly_half(self):
        """S hits exactly 0.5: median is the first time it does."""
        result = _km([1, 2, 3, 4], [1, 1, 0, 0])
        assert result.median_survival == 2.0

    def test_quantile(self, basic):
        est, lower, upper = basic.quantile(0.25)
        # S(1) = 0.833 > 0.75, S(3) = 0.625 <= 0.75
        assert est == 3.0

    def test_quantile_bounds(self, basic):
        with pytest.raises(ValidationError):
            basic.quantile(0.0)
        with pytest.raises(ValidationError):
            basic.quantile(1.0)


class TestSurvivalAt:
    """Step-function lookup."""

    def test_step_lookup(self, basic):
        est = basic.survival_at([0.5, 1.0, 2.5, 5.0, 6.0])
        assert_allclose(est.survival, [1.0, 5/6, 5/6, 5/16, 0.0])
        assert_allclose(est.se[0], 0.0)
        assert est.ci_lower[0] == 1.0

    def test_scalar(self, basic):
        est = basic.survival_at(3.0)
        assert isinstance(est.survival, float)
        assert_allclose(est.survival, 0.625)
        assert est.time == 3.0

    def test_beyond_max_time(self, basic):
        with pytest.warns(UndefinedStatisticWarning, match="undefined"):
            est = basic.survival_at([3.0, 10.0])
        assert_allclose(est.survival[0], 0.625)
        assert np.isnan(est.survival[1])

    def test_negative_time(self, basic):
        with pytest.raises(ValidationError):
            basic.survival_at(-1.0)


class TestInputs:
    """Dataset requirements."""

    def test_rejects_competing_domain(self):
        ds = SurvivalDataset.from_arrays([1, 2, 3], [1, 2, 0], event_domain="competing")
        with pytest.raises(InvalidDataError, match="with_event_of_interest"):
            kaplan_meier(ds)

    def test_cause_specific_view(self):
        ds = SurvivalDataset.from_arrays([1, 2, 3], [1, 2, 1], event_domain="competing")
        result = kaplan_meier(ds.with_event_of_interest(1))
        assert result.n_events_total == 2

    def test_rejects_raw_arrays(self):
        with pytest.raises(ValidationError, match="SurvivalDataset"):
            kaplan_meier(BASIC_TIME)


class TestStratified:
    """One curve per level with a log-rank comparison."""

    def setup_method(self):
        self.ds = SurvivalDataset.from_arrays(
            LUNG_TIME, LUNG_EVENT,
            factors={"arm": ["a"] * 8 + ["b"] * 9},
        )

    def test_curves(self):
        result = kaplan_meier(self.ds, "arm")
        assert isinstance(result, StratifiedKMSolution)
        assert result.labels == ("arm=a", "arm=b")
        assert len(result) == 2
        assert result["arm=a"].n_observations == 8
        assert result["arm=b"].n_observations == 9
        assert result["arm=a"].label == "arm=a"

    def test_curves_match_subsets(self):
        result = kaplan_meier(self.ds, "arm")
        alone = _km(LUNG_TIME[:8], LUNG_EVENT[:8])
        assert_allclose(result["arm=a"].survival, alone.survival)

    def test_logrank_attached(self):
        result = kaplan_meier(self.ds, "arm")
        assert isinstance(result.logrank, LogRankSolution)
        assert result.logrank.df == 1

    def test_array_strata(self):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UndefinedStatisticWarning)
            result = kaplan_meier(self.ds, np.array([0] * 8 + [1] * 9))
        assert result.labels == ("strata=0", "strata=1")

    def test_unknown_level(self):
        result = kaplan_meier(self.ds, "arm")
        with pytest.raises(KeyError):
            result["arm=c"]

    def test_summary(self):
        text = kaplan_meier(self.ds, "arm").summary()
        assert "arm=a" in text
        assert "Log-rank" in text


class TestOutput:
    """summary(), repr and records."""

    def test_summary(self, basic):
        text = basic.summary()
        assert "Call: kaplan_meier()" in text
        assert "n=6, events=4" in text
        assert "median survival = 5" in text
        assert "n.risk" in text

    def test_summary_truncates(self):
        t = np.arange(1, 31, dtype=np.float64)
        result = _km(t, np.ones(30))
        assert "(10 more rows)" in result.summary()

    def test_repr(self, basic):
        assert repr(basic) == "KMSolution(n=6, events=4, median=5)"

    def test_to_records(self, basic):
        records = basic.to_records()
        assert len(records) == 4
        assert records[0]["time"] == 1.0
        assert_allclose(records[2]["survival"], 5/16)

    def test_backend(self, basic):
        assert basic.backend_name == "cpu_km"
        assert basic.timing is not None


MELANOMA_CSV = Path(__file__).resolve().parent.parent / "fixtures" / "melanoma.csv"


@pytest.mark.skipif(not MELANOMA_CSV.exists(),
                    reason="run tests/fixtures/run_r_survival_validation.R first")
class TestMelanomaReference:
    """MASS::Melanoma: 205 patients, status 2 = alive (censored).

    R:
        fit <- survfit(Surv(time, status != 2) ~ 1, data=MASS::Melanoma)
        summary(fit, times=5 * 365.25)
    """

    @pytest.fixture
    def melanoma(self):
        data = np.genfromtxt(MELANOMA_CSV, delimiter=",", names=True)
        event = (data["status"] != 2).astype(np.float64)
        return SurvivalDataset.from_arrays(data["time"], event)

    def test_counts(self, melanoma):
        assert melanoma.n == 205
        assert melanoma.n_events == 71

    def test_five_year_survival(self, melanoma):
        est = kaplan_meier(melanoma).survival_at(5 * 365.25)
        assert est.survival == pytest.approx(0.73, abs=0.01)
        assert est.ci_lower < est.survival < est.ci_upper

    def test_curve_invariants(self, melanoma):
        km = kaplan_meier(melanoma)
        assert np.all(np.diff(km.survival) <= 0)
        assert np.all((km.survival >= 0) & (km.survival <= 1))
        assert np.all(km.ci_lower >= 0) and np.all(km.ci_upper <= 1)
