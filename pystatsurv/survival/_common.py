"""
Parameter payloads for survival analysis results.

Each dataclass is a frozen payload carried inside a Result[P] envelope.
Payloads are pure data containers, no computation.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

# Sentinel for statistics that are not defined for the data at hand
# (e.g. median survival when S(t) never drops to 0.5).
NOT_REACHED = float("nan")


def is_not_reached(value: float) -> bool:
    """True if ``value`` is the NOT_REACHED sentinel."""
    return bool(np.isnan(value))


@dataclass(frozen=True)
class TestStatistic:
    """A chi-squared test result."""

    __test__ = False  # not a pytest test class

    statistic: float
    df: int
    p_value: float


@dataclass(frozen=True)
class KMParams:
    """Kaplan-Meier survival curve parameters.

    Matches the output of R's survival::survfit(). Rows are the distinct
    event times in ascending order; S(0) = 1 is implicit.
    """

    time: NDArray                # (m,) unique event times
    survival: NDArray            # (m,) S(t) at each event time
    n_risk: NDArray              # (m,) number at risk just before each time
    n_events: NDArray            # (m,) events at each time
    n_censored: NDArray          # (m,) censored in [t_j, t_{j+1})
    variance: NDArray            # (m,) Greenwood variance of S(t)
    se: NDArray                  # (m,) sqrt(variance)
    ci_lower: NDArray            # (m,) lower CI for S(t)
    ci_upper: NDArray            # (m,) upper CI for S(t)
    conf_level: float            # confidence level (e.g. 0.95)
    conf_type: str               # CI type: "log-log" (default), "log", "plain"
    n_observations: int          # total n
    n_events_total: int          # total events
    n_censored_before: int       # censored before the first event time
    max_time: float              # largest observed time (events or censoring)
    label: str | None = None     # stratum label for stratified curves


@dataclass(frozen=True)
class LogRankParams:
    """Log-rank test parameters.

    Matches the output of R's survival::survdiff().
    """

    statistic: float             # chi-squared statistic
    df: int                      # rank of variance (n_groups - 1 unless degenerate)
    p_value: float
    n_groups: int
    observed: NDArray            # (n_groups,) observed events per group
    expected: NDArray            # (n_groups,) expected events per group
    variance: NDArray            # (n_groups, n_groups var of O - E
    n_per_group: NDArray         # (n_groups,) subjects per group
    rho: float                   # weight parameter (0=log-rank, 1=Peto-Peto)
    group_labels: NDArray        # unique group labels
    n_strata: int = 1            # >1 for a stratified log-rank test


@dataclass(frozen=True)
class CumIncCurve:
    """Aalen-Johansen cumulative incidence for one cause (and group)."""

    cause: int
    group: str | None
    time: NDArray                # (m,) distinct times with any event
    incidence: NDArray           # (m,) F_k(t)
    variance: NDArray            # (m,) delta-method variance
    ci_lower: NDArray
    ci_upper: NDArray


@dataclass(frozen=True)
class CumIncParams:
    """Nonparametric cumulative incidence functions for competing risks."""

    curves: tuple[CumIncCurve, ...]
    causes: tuple[int, ...]
    groups: tuple[str, ...]
    conf_level: float
    n_observations: int


@dataclass(frozen=True)
class BaselineHazard:
    """Breslow/Efron baseline cumulative hazard for one stratum.

    Evaluated at covariate vector zero.
    """

    stratum: str | None
    time: NDArray                # (m,) event times in the stratum
    cumulative_hazard: NDArray   # (m,) Λ0(t)


@dataclass(frozen=True)
class CoxParams:
    """Cox proportional hazards model parameters.

    Matches the output of R's survival::coxph().
    """

    names: tuple[str, ...]
    column_terms: tuple[tuple[str, str | None], ...]
    coefficients: NDArray        # (p,) log hazard ratios
    hazard_ratios: NDArray       # (p,) exp(coef)
    standard_errors: NDArray     # (p,) from the reported variance
    naive_standard_errors: NDArray   # (p,) from the inverse information
    robust_standard_errors: NDArray | None
    var_matrix: NDArray          # (p, p reported variance
    naive_var_matrix: NDArray    # (p, p H(β)^{-1}
    information: NDArray         # (p, p observed information at β̂
    z_statistics: NDArray        # (p,) coef / se
    p_values: NDArray            # (p,) two-sided Wald test
    ci_lower: NDArray            # (p,) lower CI for exp(coef)
    ci_upper: NDArray            # (p,) upper CI for exp(coef)
    conf_level: float
    loglik: tuple[float, float]  # (null log-lik, model log-lik)
    lr_test: TestStatistic
    wald_test: TestStatistic
    score_test: TestStatistic
    concordance: float           # Harrell's C-statistic
    n_events: int
    n_observations: int
    n_iter: int                  # Newton-Raphson iterations
    converged: bool
    ties: str                    # "efron" or "breslow"
    variance_type: str           # "naive", "robust" or "cluster"
    n_clusters: int | None
    strata_labels: tuple[str, ...]
    baseline_hazard: tuple[BaselineHazard, ...]
    loglik_history: tuple[float, ...]


@dataclass(frozen=True)
class FrailtyParams:
    """Gamma frailty Cox model parameters.

    Matches the layout of R's coxph(... + frailty(g, distribution="gamma")).
    """

    names: tuple[str, ...]
    column_terms: tuple[tuple[str, str | None], ...]
    coefficients: NDArray
    hazard_ratios: NDArray
    standard_errors: NDArray     # from the inverse penalized information
    z_statistics: NDArray
    p_values: NDArray
    ci_lower: NDArray
    ci_upper: NDArray
    conf_level: float
    var_matrix: NDArray
    theta: float                 # frailty variance
    cluster_labels: tuple[str, ...]
    log_frailty: NDArray         # (K,) b̂_c
    frailty: NDArray             # (K,) exp(b̂_c)
    log_frailty_se: NDArray      # (K,)
    loglik_penalized: float      # penalized partial log-likelihood at θ̂
    loglik_integrated: float     # integrated (marginal) log-likelihood at θ̂
    loglik_cox: float            # Cox partial log-likelihood without frailty
    theta_test: TestStatistic    # LR test of θ = 0 (boundary corrected)
    n_events: int
    n_observations: int
    n_clusters: int
    n_iter: int                  # inner iterations of the final fit
    n_outer_iter: int            # θ search evaluations
    converged: bool
    ties: str
    strata_labels: tuple[str, ...]
    loglik_history: tuple[float, ...]


@dataclass(frozen=True)
class FineGrayParams:
    """Fine-Gray subdistribution hazard model parameters.

    Matches the output of R's cmprsk::crr() (with Efron ties by default).
    """

    names: tuple[str, ...]
    column_terms: tuple[tuple[str, str | None], ...]
    coefficients: NDArray        # (p,) log subdistribution hazard ratios
    hazard_ratios: NDArray       # (p,) exp(coef)
    standard_errors: NDArray     # (p,) robust, IPCW-aware
    naive_standard_errors: NDArray
    var_matrix: NDArray
    z_statistics: NDArray
    p_values: NDArray
    ci_lower: NDArray
    ci_upper: NDArray
    conf_level: float
    loglik: tuple[float, float]  # pseudo log-likelihood (null, model)
    wald_test: TestStatistic
    n_events: int                # events of interest
    n_competing: int
    n_censored: int
    n_observations: int
    n_iter: int
    converged: bool
    ties: str
    censoring_groups: tuple[str, ...]
    n_clusters: int | None
    loglik_history: tuple[float, ...]


@dataclass(frozen=True)
class PHTestParams:
    """Proportional-hazards test parameters.

    Matches the layout of R's survival::cox.zph().
    """

    names: tuple[str, ...]
    statistics: NDArray          # (p,) per-covariate chi-squared
    df: NDArray                  # (p,) 1 each
    p_values: NDArray            # (p,)
    global_test: TestStatistic   # df = p
    transform: str
    event_times: NDArray         # (d,) time of each event
    transformed_times: NDArray   # (d,) g(t) used in the test
    scaled_residuals: NDArray    # (d, p β̂ + d·V·r_k
    n_events: int
