"""
Test of the proportional-hazards assumption from Schoenfeld residuals.

Follows Grambsch & Therneau (1994) in the form used by R's classic
survival::cox.zph (survival < 3.0). With Schoenfeld residuals r_k (one
row per event, sorted by time), d events, naive variance V and a centered
time transform g_k = g(t_k) - mean(g):

    scaled residuals    r*_k = β̂ + d · V r_k
    per covariate j     T_j = (d · Σ_k g_k (r_k V)_j)² / (V_jj · d · Σ_k g_k²)
    global              T = (Σ_k g_k r_k)ᵀ V (Σ_k g_k r_k) · d / Σ_k g_k²

T_j ~ χ²(1) and T ~ χ²(p) under proportional hazards.

References:
    Grambsch, P. M. & Therneau, T. M. (1994). Proportional hazards tests
        and diagnostics based on weighted residuals. Biometrika, 81(3),
        515-526.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pystatsurv.core.exceptions import ValidationError
from pystatsurv.survival._common import PHTestParams, TestStatistic
from pystatsurv.survival._km import kaplan_meier_fit
from pystatsurv.survival._riskset import build_risk_sets, schoenfeld_residuals
from pystatsurv.survival.terms import ModelDesign

TRANSFORMS = ("km", "identity", "log", "rank")


def transform_times(
    event_times: NDArray,
    transform: str,
    time: NDArray,
    event: NDArray,
) -> NDArray:
    """Apply a time transform to the (sorted) event times.

    "km" uses 1 - S(t-), the left-continuous Kaplan-Meier estimate from
    all observations.
    """
    if transform == "identity":
        return event_times.astype(np.float64)
    if transform == "log":
        if np.any(event_times <= 0):
            raise ValidationError(
                "transform='log' requires strictly positive event times"
            )
        return np.log(event_times)
    if transform == "rank":
        return stats.rankdata(event_times)
    if transform == "km":
        km = kaplan_meier_fit(time, event, conf_level=0.95, conf_type="log-log")
        idx = np.searchsorted(km.time, event_times, side="left") - 1
        s_before = np.where(idx >= 0, km.survival[np.maximum(idx, 0)], 1.0)
        return 1.0 - s_before
    raise ValidationError(
        f"transform must be one of {TRANSFORMS}, got {transform!r}"
    )


def ph_test(
    design: ModelDesign,
    beta: NDArray,
    naive_var: NDArray,
    ties: str,
    transform: str = "km",
) -> PHTestParams:
    """Per-covariate and global proportional-hazards tests.

    Parameters
    ----------
    design : ModelDesign
        Design the Cox model was fitted on.
    beta : NDArray
        (p,) fitted coefficients.
    naive_var : NDArray
        (p, p) inverse information at beta.
    ties : str
        Tie method of the fit.
    transform : str
        "km" (default), "identity", "log" or "rank".
    """
    if transform not in TRANSFORMS:
        raise ValidationError(
            f"transform must be one of {TRANSFORMS}, got {transform!r}"
        )

    blocks = build_risk_sets(design.time, design.event, design.strata)
    times, _, resid = schoenfeld_residuals(beta, design.X, blocks, ties)

    order = np.argsort(times, kind="stable")
    times = times[order]
    resid = resid[order]
    d = len(times)
    p = len(beta)

    g = transform_times(times, transform, design.time, design.event)
    xx = g - np.mean(g)
    sxx = float(np.sum(xx ** 2))
    if d < 2 or sxx <= 0:
        raise ValidationError(
            "proportional-hazards test needs at least two distinct event times"
        )

    scaled = resid @ naive_var * d
    test = xx @ scaled
    statistics = test ** 2 / (np.diag(naive_var) * d * sxx)
    p_values = stats.chi2.sf(statistics, 1)

    u = xx @ resid
    global_stat = float(u @ naive_var @ u) * d / sxx

    return PHTestParams(
        names=design.names,
        statistics=statistics,
        df=np.ones(p, dtype=np.int64),
        p_values=p_values,
        global_test=TestStatistic(
            statistic=global_stat,
            df=p,
            p_value=float(stats.chi2.sf(global_stat, p)),
        ),
        transform=transform,
        event_times=times,
        transformed_times=g,
        scaled_residuals=scaled + beta[np.newaxis, :],
        n_events=d,
    )
