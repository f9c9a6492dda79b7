#!/usr/bin/env python3
"""
Generate survival fixtures for R validation.

Each fixture is a JSON file defining a scenario (estimator, data, params).
The R script fills in the matching ``*_r_results.json`` file.

Usage:
    python tests/fixtures/generate_survival_fixtures.py
    Rscript tests/fixtures/run_r_survival_validation.R
    pytest tests/survival/test_r_validation.py -v
"""

from __future__ import annotations

import json
from pathlib import Path
import numpy as np

FIXTURES_DIR = Path(__file__).resolve().parent
RNG = np.random.default_rng(42)


def _save(name: str, scenario: dict) -> None:
    """Save a survival scenario to JSON."""
    path = FIXTURES_DIR / f"{name}_meta.json"
    with open(path, "w") as f:
        json.dump(scenario, f, indent=2)
    print(f"  Saved {path.name}")


def _exponential_ph(n: int, beta: np.ndarray, censor_rate: float):
    """Exponential PH times with exponential censoring, rounded to create ties."""
    X = np.column_stack([
        RNG.standard_normal(n),
        RNG.binomial(1, 0.5, n).astype(float),
    ])[:, :len(beta)]
    t_event = RNG.exponential(1.0 / np.exp(X @ beta))
    t_cens = RNG.exponential(1.0 / censor_rate, n)
    time = np.round(np.minimum(t_event, t_cens), 2) + 0.01
    event = (t_event <= t_cens).astype(int)
    return time, event, X


def make_small_fixtures():
    """Small scenarios whose reference values can be checked by hand.

    Their R results are committed alongside, so test_r_validation.py
    runs without an R installation.
    """
    _save("surv_km_small", {
        "estimator": "survfit",
        "data": {"time": [1.0, 2.0, 3.0, 4.0, 5.0, 6.0],
                 "event": [1, 0, 1, 0, 1, 0]},
        "params": {"conf.type": "plain", "conf.level": 0.95},
        "description": "Six-subject Kaplan-Meier with plain CI, last time censored",
    })
    _save("surv_logrank_small", {
        "estimator": "survdiff",
        "data": {"time": [1.0, 3.0, 2.0, 4.0], "event": [1, 1, 1, 1],
                 "group": ["A", "A", "B", "B"]},
        "params": {"rho": 0.0},
        "description": "Four-subject two-group log-rank test, chisq = 8/13",
    })


def make_km_fixtures():
    """Kaplan-Meier scenarios."""
    time, event, _ = _exponential_ph(80, np.array([0.0]), 0.4)
    for conf_type in ("log-log", "log", "plain"):
        _save(f"surv_km_{conf_type.replace('-', '')}", {
            "estimator": "survfit",
            "data": {"time": time.tolist(), "event": event.tolist()},
            "params": {"conf.type": conf_type, "conf.level": 0.95},
            "description": f"Kaplan-Meier with {conf_type} CI, tied times",
        })


def make_logrank_fixtures():
    """Log-rank and G-rho scenarios."""
    time, event, X = _exponential_ph(120, np.array([0.0, 0.6]), 0.3)
    group = np.where(X[:, 1] > 0, "B", "A").tolist()
    for rho in (0.0, 1.0):
        _save(f"surv_logrank_rho{int(rho)}", {
            "estimator": "survdiff",
            "data": {"time": time.tolist(), "event": event.tolist(), "group": group},
            "params": {"rho": rho},
            "description": f"Two-group G-rho test, rho={rho}",
        })

    strata = RNG.integers(0, 3, len(time)).tolist()
    _save("surv_logrank_strata", {
        "estimator": "survdiff",
        "data": {"time": time.tolist(), "event": event.tolist(), "group": group,
                 "strata": strata},
        "params": {"rho": 0.0},
        "description": "Stratified log-rank test, 3 strata",
    })


def make_cox_fixtures():
    """Cox PH scenarios."""
    time, event, X = _exponential_ph(150, np.array([0.7, -0.5]), 0.3)
    base = {"time": time.tolist(), "event": event.tolist(),
            "x1": X[:, 0].tolist(), "x2": X[:, 1].tolist()}
    for ties in ("efron", "breslow"):
        _save(f"surv_cox_{ties}", {
            "estimator": "coxph",
            "data": base,
            "params": {"ties": ties},
            "description": f"Two-covariate Cox model, {ties} ties",
        })

    _save("surv_cox_strata", {
        "estimator": "coxph",
        "data": {**base, "strata": RNG.integers(0, 2, len(time)).tolist()},
        "params": {"ties": "efron"},
        "description": "Cox model stratified on a two-level variable",
    })

    _save("surv_cox_cluster", {
        "estimator": "coxph",
        "data": {**base, "cluster": np.repeat(np.arange(50), 3).tolist()},
        "params": {"ties": "efron"},
        "description": "Cox model with cluster-robust variance, 50 clusters",
    })

    _save("surv_zph_km", {
        "estimator": "cox.zph",
        "data": base,
        "params": {"ties": "efron", "transform": "km"},
        "description": "Grambsch-Therneau test, KM time transform",
    })


def make_competing_fixtures():
    """Cumulative incidence and Fine-Gray scenarios."""
    n = 200
    x = RNG.standard_normal(n)
    t1 = RNG.exponential(1.0 / (0.5 * np.exp(0.6 * x)))
    t2 = RNG.exponential(1.0 / (0.3 * np.exp(-0.4 * x)))
    tc = RNG.uniform(0.5, 4.0, n)
    time = np.minimum(np.minimum(t1, t2), tc)
    status = np.where(time == t1, 1, np.where(time == t2, 2, 0))
    data = {"time": time.tolist(), "status": status.tolist(), "x": x.tolist()}

    _save("surv_cuminc", {
        "estimator": "cuminc",
        "data": data,
        "params": {"timepoints": [0.25, 0.5, 1.0, 2.0, 3.0]},
        "description": "Aalen-Johansen cumulative incidence, two causes",
    })

    _save("surv_crr", {
        "estimator": "crr",
        "data": data,
        "params": {"failcode": 1},
        "description": "Fine-Gray regression for cause 1",
    })


def main() -> None:
    print("Generating survival fixtures...")
    make_small_fixtures()
    make_km_fixtures()
    make_logrank_fixtures()
    make_cox_fixtures()
    make_competing_fixtures()
    print("Done.")


if __name__ == "__main__":
    main()
