"""
Kaplan-Meier product-limit estimator.

Matches R's survival::survfit(Surv(time, event) ~ 1, conf.type="log-log"):
- Product-limit survival estimate: S(t) = ∏(1 - d_j / n_j)
- Greenwood variance: Var(S(t)) = S(t)^2 * Σ(d_j / (n_j * (n_j - d_j)))
- Confidence intervals via log-log (default), log, or plain transformation

References:
    Kaplan, E. L., & Meier, P. (1958). Nonparametric estimation from
        incomplete observations. JASA, 53(282), 457-481.
    Brookmeyer, R. & Crowley, J. (1982). A confidence interval for the
        median survival time. Biometrics, 38(1), 29-41.
    R Core Team. survival::survfit.formula
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pystatsurv.core.exceptions import ValidationError
from pystatsurv.survival._common import KMParams, NOT_REACHED

CONF_TYPES = ("log-log", "log", "plain")


def kaplan_meier_fit(
    time: NDArray,
    event: NDArray,
    conf_level: float,
    conf_type: str,
    label: str | None = None,
) -> KMParams:
    """Compute Kaplan-Meier survival curve.

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) event indicator (1=event, 0=censored).
    conf_level : float
        Confidence level for CI (e.g. 0.95).
    conf_type : str
        CI type: "log-log" (default), "log", "plain".
    label : str or None
        Stratum label carried into the payload.

    Returns
    -------
    KMParams
    """
    n_total = len(time)
    is_event = event == 1
    n_events_total = int(np.sum(is_event))

    t_sorted = np.sort(time)
    event_times = np.sort(time[is_event])
    cens_times = np.sort(time[~is_event])
    unique_event_times = np.unique(event_times)

    if len(unique_event_times) == 0:
        # No events: survival is 1 everywhere
        empty = np.array([], dtype=np.float64)
        return KMParams(
            time=empty,
            survival=empty,
            n_risk=empty,
            n_events=empty,
            n_censored=empty,
            variance=empty,
            se=empty,
            ci_lower=empty,
            ci_upper=empty,
            conf_level=conf_level,
            conf_type=conf_type,
            n_observations=n_total,
            n_events_total=0,
            n_censored_before=len(cens_times),
            max_time=float(np.max(time)),
            label=label,
        )

    ut = unique_event_times

    # n_risk: number with time >= t_j
    n_risk = (n_total - np.searchsorted(t_sorted, ut, side="left")).astype(np.float64)

    # d_j: events at exactly t_j
    n_events = (
        np.searchsorted(event_times, ut, side="right")
        - np.searchsorted(event_times, ut, side="left")
    ).astype(np.float64)

    # Censored in [t_j, t_{j+1}); the last interval is open-ended
    cens_at = np.searchsorted(cens_times, ut, side="left")
    boundaries = np.append(cens_at, len(cens_times))
    n_censored = np.diff(boundaries).astype(np.float64)

    # Product-limit estimate: S(t) = ∏_{j: t_j <= t} (1 - d_j / n_j)
    survival = np.cumprod(1.0 - n_events / n_risk)

    # Greenwood variance: Var(S(t)) = S(t)^2 * Σ(d_j / (n_j * (n_j - d_j)))
    # Avoid division by zero when n_j == d_j (all at risk die)
    denom = n_risk * (n_risk - n_events)
    denom = np.where(denom > 0, denom, np.inf)
    greenwood_sum = np.cumsum(n_events / denom)
    variance = survival ** 2 * greenwood_sum
    se = np.sqrt(variance)

    z = stats.norm.ppf((1.0 + conf_level) / 2.0)
    ci_lower, ci_upper = _compute_ci(survival, se, z, conf_type)

    return KMParams(
        time=ut.astype(np.float64),
        survival=survival,
        n_risk=n_risk,
        n_events=n_events,
        n_censored=n_censored,
        variance=variance,
        se=se,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        conf_level=conf_level,
        conf_type=conf_type,
        n_observations=n_total,
        n_events_total=n_events_total,
        n_censored_before=int(cens_at[0]),
        max_time=float(np.max(time)),
        label=label,
    )


def _compute_ci(
    survival: NDArray,
    se: NDArray,
    z: float,
    conf_type: str,
) -> tuple[NDArray, NDArray]:
    """Compute CI for survival function.

    Parameters
    ----------
    survival : S(t) values
    se : Greenwood standard errors
    z : normal quantile (e.g. 1.96 for 95%)
    conf_type : "log-log", "log", or "plain"

    Returns
    -------
    (ci_lower, ci_upper) clipped to [0, 1]
    """
    if conf_type == "plain":
        # Plain: S(t) ± z * se
        ci_lower = survival - z * se
        ci_upper = survival + z * se

    elif conf_type == "log":
        # Log transformation: exp(log(S) ± z * se / S)
        with np.errstate(divide='ignore', invalid='ignore'):
            log_s = np.log(survival)
            se_log = se / survival
            ci_lower = np.exp(log_s - z * se_log)
            ci_upper = np.exp(log_s + z * se_log)

    elif conf_type == "log-log":
        # Log-log transformation: exp(-exp(log(-log(S)) ± z * se / (S * |log(S)|)))
        with np.errstate(divide='ignore', invalid='ignore'):
            log_s = np.log(survival)
            log_neg_log_s = np.log(-log_s)
            se_loglog = se / (survival * np.abs(log_s))
            ci_lower = np.exp(-np.exp(log_neg_log_s + z * se_loglog))
            ci_upper = np.exp(-np.exp(log_neg_log_s - z * se_loglog))
    else:
        raise ValidationError(
            f"Unknown conf_type '{conf_type}'. "
            f"Choose from {', '.join(repr(c) for c in CONF_TYPES)}."
        )

    ci_lower = np.clip(ci_lower, 0.0, 1.0)
    ci_upper = np.clip(ci_upper, 0.0, 1.0)

    # S = 0 collapses both bounds; S = 1 with zero variance keeps [1, 1]
    ci_lower = np.where(np.isnan(ci_lower), np.where(survival <= 0, 0.0, survival), ci_lower)
    ci_upper = np.where(np.isnan(ci_upper), np.where(survival <= 0, 0.0, 1.0), ci_upper)

    return ci_lower, ci_upper


def first_crossing(time: NDArray, curve: NDArray, level: float) -> float:
    """Smallest time at which a step curve drops to ``level`` or below.

    Returns NOT_REACHED when the curve never gets there.
    """
    hit = np.flatnonzero(curve <= level + 1e-12)
    if len(hit) == 0:
        return NOT_REACHED
    return float(time[hit[0]])


def km_quantile(km: KMParams, q: float) -> tuple[float, float, float]:
    """Survival-time quantile with Brookmeyer-Crowley style CI.

    The q-quantile is the smallest t with S(t) <= 1 - q; its confidence
    limits are where the lower and upper CI curves cross the same level.

    Returns
    -------
    (estimate, lower, upper), any of which may be NOT_REACHED.
    """
    level = 1.0 - q
    return (
        first_crossing(km.time, km.survival, level),
        first_crossing(km.time, km.ci_lower, level),
        first_crossing(km.time, km.ci_upper, level),
    )


def step_lookup(
    km: KMParams,
    times: NDArray,
) -> tuple[NDArray, NDArray, NDArray, NDArray]:
    """Evaluate the right-continuous step curve at ``times``.

    Before the first event time S = 1 with zero variance. Times past the
    largest observed time are undefined and returned as NaN.

    Returns
    -------
    (survival, se, ci_lower, ci_upper)
    """
    times = np.asarray(times, dtype=np.float64)
    idx = np.searchsorted(km.time, times, side="right") - 1

    def pick(values: NDArray, before: float) -> NDArray:
        out = np.full(times.shape, before, dtype=np.float64)
        ok = idx >= 0
        out[ok] = values[idx[ok]]
        out[times > km.max_time] = np.nan
        return out

    return (
        pick(km.survival, 1.0),
        pick(km.se, 0.0),
        pick(km.ci_lower, 1.0),
        pick(km.ci_upper, 1.0),
    )
