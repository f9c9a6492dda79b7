"""
Parametrised R validation tests for the survival estimators.

Compares pystatsurv results against R reference values for each surv_*
fixture. Tests are auto-discovered from fixture files; nothing runs until
the R results exist.

Run R validation:
    python tests/fixtures/generate_survival_fixtures.py
    Rscript tests/fixtures/run_r_survival_validation.R
    pytest tests/survival/test_r_validation.py -v
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pystatsurv.survival import (
    Cluster,
    Stratum,
    SurvivalDataset,
    coxph,
    cumulative_incidence,
    fit_competing_risks,
    kaplan_meier,
    survdiff,
    test_proportional_hazards as ph_test,
)

FIXTURES_DIR = Path(__file__).resolve().parent.parent / "fixtures"

RTOL = 1e-6
ATOL = 1e-8


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@lru_cache(maxsize=32)
def _load_meta(name: str) -> dict:
    with open(FIXTURES_DIR / f"{name}_meta.json") as f:
        return json.load(f)


@lru_cache(maxsize=32)
def _load_r_results(name: str) -> dict:
    with open(FIXTURES_DIR / f"{name}_r_results.json") as f:
        return json.load(f)


def _discover(estimator: str) -> list[str]:
    """Fixtures for one R estimator that have both meta and R results."""
    names = []
    for f in sorted(FIXTURES_DIR.glob("surv_*_r_results.json")):
        name = f.stem.replace("_r_results", "")
        meta = FIXTURES_DIR / f"{name}_meta.json"
        if meta.exists() and _load_meta(name)["estimator"] == estimator:
            names.append(name)
    return names


def _cox_dataset(data: dict) -> tuple[SurvivalDataset, list]:
    ds = SurvivalDataset.from_arrays(
        data["time"], data["event"],
        np.column_stack([data["x1"], data["x2"]]),
        names=["x1", "x2"],
        strata=data.get("strata"),
        cluster=data.get("cluster"),
    )
    terms = ["x1", "x2"]
    if "strata" in data:
        terms.append(Stratum("stratum"))
    if "cluster" in data:
        terms.append(Cluster("cluster"))
    return ds, terms


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("fixture_name", _discover("survfit"))
class TestKaplanMeierR:

    def test_curve(self, fixture_name):
        meta, r = _load_meta(fixture_name), _load_r_results(fixture_name)
        ds = SurvivalDataset.from_arrays(meta["data"]["time"], meta["data"]["event"])
        km = kaplan_meier(
            ds,
            conf_type=meta["params"]["conf.type"],
            conf_level=meta["params"]["conf.level"],
        )
        assert_allclose(km.time, r["time"], rtol=RTOL)
        assert_allclose(km.survival, r["surv"], rtol=RTOL, atol=ATOL)
        assert_allclose(km.se, r["se"], rtol=RTOL, atol=ATOL)
        # R reports NA bounds where S = 0
        lower = np.array([np.nan if v is None else v for v in r["lower"]])
        ok = ~np.isnan(lower)
        assert_allclose(km.ci_lower[ok], lower[ok], rtol=1e-5, atol=1e-8)

    def test_median(self, fixture_name):
        meta, r = _load_meta(fixture_name), _load_r_results(fixture_name)
        if r["median"] is None:
            pytest.skip("median not reached in R")
        if r["median"] not in r["time"]:
            pytest.skip("R interpolated across a flat S = 0.5 segment")
        ds = SurvivalDataset.from_arrays(meta["data"]["time"], meta["data"]["event"])
        assert kaplan_meier(ds).median_survival == pytest.approx(r["median"])


@pytest.mark.parametrize("fixture_name", _discover("survdiff"))
class TestLogRankR:

    def test_statistic(self, fixture_name):
        meta, r = _load_meta(fixture_name), _load_r_results(fixture_name)
        d = meta["data"]
        ds = SurvivalDataset.from_arrays(
            d["time"], d["event"], factors={"group": d["group"]},
            strata=d.get("strata"),
        )
        result = survdiff(
            ds, "group", rho=meta["params"]["rho"],
            strata="stratum" if "strata" in d else None,
        )
        assert result.statistic == pytest.approx(r["chisq"], rel=RTOL)
        assert result.p_value == pytest.approx(r["p_value"], rel=RTOL, abs=1e-12)
        assert_allclose(result.observed, r["observed"], rtol=RTOL)
        assert_allclose(result.expected, r["expected"], rtol=RTOL)


@pytest.mark.parametrize("fixture_name", _discover("coxph"))
class TestCoxR:

    def _fit(self, fixture_name):
        meta = _load_meta(fixture_name)
        ds, terms = _cox_dataset(meta["data"])
        return coxph(ds, terms, ties=meta["params"]["ties"])

    def test_coefficients(self, fixture_name):
        r = _load_r_results(fixture_name)
        fit = self._fit(fixture_name)
        assert_allclose(fit.coefficients, r["coef"], rtol=RTOL)
        assert_allclose(fit.standard_errors, r["se"], rtol=1e-5)
        if "naive_se" in r:
            assert_allclose(fit.naive_standard_errors, r["naive_se"], rtol=1e-5)

    def test_loglik_and_tests(self, fixture_name):
        r = _load_r_results(fixture_name)
        fit = self._fit(fixture_name)
        assert_allclose(fit.loglik, r["loglik"], rtol=RTOL)
        assert fit.score_test.statistic == pytest.approx(r["score"], rel=1e-5)
        if "naive_se" not in r:
            # R's robust Wald test uses the sandwich; only compare model-based
            assert fit.wald_test.statistic == pytest.approx(r["wald"], rel=1e-5)

    def test_concordance(self, fixture_name):
        r = _load_r_results(fixture_name)
        if "strata" in _load_meta(fixture_name)["data"]:
            pytest.skip("R computes concordance within strata")
        assert self._fit(fixture_name).concordance == pytest.approx(
            r["concordance"], abs=1e-3
        )


@pytest.mark.parametrize("fixture_name", _discover("cox.zph"))
class TestPHTestR:

    def test_statistics(self, fixture_name):
        meta, r = _load_meta(fixture_name), _load_r_results(fixture_name)
        ds, terms = _cox_dataset(meta["data"])
        result = ph_test(
            coxph(ds, terms, ties=meta["params"]["ties"]),
            transform=meta["params"]["transform"],
        )
        assert_allclose(result.statistics, r["chisq"], rtol=1e-4)
        assert result.global_test.statistic == pytest.approx(r["global_chisq"], rel=1e-4)


@pytest.mark.parametrize("fixture_name", _discover("cuminc"))
class TestCumIncR:

    def test_incidence(self, fixture_name):
        meta, r = _load_meta(fixture_name), _load_r_results(fixture_name)
        d = meta["data"]
        ds = SurvivalDataset.from_arrays(d["time"], d["status"], event_domain="competing")
        result = cumulative_incidence(ds)
        t = r["timepoints"]
        assert_allclose(result.incidence_at(t, cause=1), r["cause1"], rtol=RTOL, atol=ATOL)
        assert_allclose(result.incidence_at(t, cause=2), r["cause2"], rtol=RTOL, atol=ATOL)

    def test_variance(self, fixture_name):
        meta, r = _load_meta(fixture_name), _load_r_results(fixture_name)
        d = meta["data"]
        ds = SurvivalDataset.from_arrays(d["time"], d["status"], event_domain="competing")
        c = cumulative_incidence(ds).curve(1)
        idx = np.searchsorted(c.time, r["timepoints"], side="right") - 1
        assert_allclose(c.variance[idx], r["var1"], rtol=1e-4, atol=1e-10)


@pytest.mark.parametrize("fixture_name", _discover("crr"))
class TestFineGrayR:

    def test_coefficients(self, fixture_name):
        meta, r = _load_meta(fixture_name), _load_r_results(fixture_name)
        d = meta["data"]
        ds = SurvivalDataset.from_arrays(
            d["time"], d["status"], d["x"], names=["x"], event_domain="competing"
        )
        # crr's partial likelihood handles ties the Breslow way
        fit = fit_competing_risks(ds, ["x"], ties="breslow")
        assert_allclose(fit.coefficients, r["coef"], rtol=1e-5)
        assert_allclose(fit.standard_errors, r["se"], rtol=1e-3)
