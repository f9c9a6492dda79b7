"""
Cox Proportional Hazards model via Newton-Raphson.

Implements Efron's and Breslow's methods for tied event times, strata
(separate baseline hazards, one shared β) and naive / robust / cluster
variance, matching R's survival::coxph().

Algorithm:
    Initialize β = 0
    For iteration 1..max_iter:
        Compute: partial log-likelihood L(β), score U(β), information I(β)
        β_new = β + I(β)^{-1} @ U(β), halving the step if L decreases
        Converged when |ΔL| / (|L| + 0.1) <= tol

Stratified fits sum U and I over each stratum's own risk sets.

References:
    Cox, D. R. (1972). Regression models and life-tables. JRSS-B, 34(2), 187-220.
    Efron, B. (1977). The efficiency of Cox's likelihood function for
        censored data. JASA, 72(359), 557-565.
    R Core Team. survival::coxph, coxph.fit
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pystatsurv.core.exceptions import InvalidDataError
from pystatsurv.survival._common import BaselineHazard, CoxParams, TestStatistic
from pystatsurv.survival._newton import newton_raphson
from pystatsurv.survival._riskset import (
    RiskSetBlock,
    block_terms,
    build_risk_sets,
    concordance_index,
    hazard_increments,
    partial_likelihood,
    score_residuals,
)
from pystatsurv.survival._variance import (
    check_separation,
    invert_information,
    sandwich_variance,
)
from pystatsurv.survival.options import FitOptions
from pystatsurv.survival.terms import ModelDesign


def cox_fit(
    design: ModelDesign,
    options: FitOptions,
) -> tuple[CoxParams, list[str]]:
    """Fit Cox proportional hazards model.

    Parameters
    ----------
    design : ModelDesign
        Resolved model (linear terms, optional strata and cluster).
    options : FitOptions
        Ties, tolerance, iteration bound, confidence level, robust flag,
        deadline and cancel signal.

    Returns
    -------
    (CoxParams, notes)
        notes are non-fatal diagnostic messages for the caller to surface.

    Raises
    ------
    InvalidDataError
        No events of interest in the data.
    NonConvergenceError
        Iteration bound exceeded or singular information.
    """
    if design.n_events == 0:
        raise InvalidDataError(
            "regression requires at least one event; all observations are censored"
        )

    ties = options.ties
    X = design.X
    p = design.p
    notes: list[str] = []

    blocks = build_risk_sets(design.time, design.event, design.strata)

    def objective(beta: NDArray) -> tuple[float, NDArray, NDArray]:
        return partial_likelihood(beta, X, blocks, ties)

    beta0 = np.zeros(p, dtype=np.float64)
    null_loglik, null_score, null_info = objective(beta0)
    null_var = invert_information(null_info, beta0, 0)

    nr = newton_raphson(
        objective,
        beta0,
        tol=options.tol,
        max_iter=options.max_iter,
        deadline=options.deadline,
        cancel=options.cancel,
    )
    if nr.n_halvings > 0:
        notes.append(
            f"step-halving was applied {nr.n_halvings} time(s) to keep the "
            f"partial likelihood increasing"
        )

    beta = nr.beta
    check_separation(nr.information, null_info, beta, nr.n_iter)
    naive_var = invert_information(nr.information, beta, nr.n_iter)

    terms = block_terms(beta, X, blocks, ties)

    robust_se = None
    n_clusters = None
    if design.cluster is not None or options.robust:
        resid = score_residuals(beta, X, blocks, ties, terms)
        var_matrix = sandwich_variance(naive_var, resid, design.cluster)
        robust_se = np.sqrt(np.maximum(np.diag(var_matrix), 0.0))
        if design.cluster is not None:
            variance_type = "cluster"
            n_clusters = len(design.cluster_labels)
        else:
            variance_type = "robust"
            n_clusters = design.n
    else:
        var_matrix = naive_var
        variance_type = "naive"

    se = np.sqrt(np.maximum(np.diag(var_matrix), 0.0))
    naive_se = np.sqrt(np.maximum(np.diag(naive_var), 0.0))

    # Wald z-statistics and p-values
    z = np.where(se > 0, beta / se, 0.0)
    p_values = 2.0 * stats.norm.sf(np.abs(z))

    q = stats.norm.ppf((1.0 + options.conf_level) / 2.0)
    ci_lower = np.exp(beta - q * se)
    ci_upper = np.exp(beta + q * se)

    lr_stat = max(2.0 * (nr.loglik - null_loglik), 0.0)
    wald_stat = float(beta @ np.linalg.solve(var_matrix, beta)) if p > 0 else 0.0
    score_stat = float(null_score @ null_var @ null_score)

    eta = X @ beta
    concordance = concordance_index(eta, design.time, design.event, design.strata)

    baseline = _baseline_hazard(
        blocks, hazard_increments(beta, X, blocks, ties, terms), design.strata_labels
    )

    params = CoxParams(
        names=design.names,
        column_terms=design.column_terms,
        coefficients=beta,
        hazard_ratios=np.exp(beta),
        standard_errors=se,
        naive_standard_errors=naive_se,
        robust_standard_errors=robust_se,
        var_matrix=var_matrix,
        naive_var_matrix=naive_var,
        information=nr.information,
        z_statistics=z,
        p_values=p_values,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        conf_level=options.conf_level,
        loglik=(null_loglik, nr.loglik),
        lr_test=_chi2(lr_stat, p),
        wald_test=_chi2(wald_stat, p),
        score_test=_chi2(score_stat, p),
        concordance=concordance,
        n_events=design.n_events,
        n_observations=design.n,
        n_iter=nr.n_iter,
        converged=True,
        ties=ties,
        variance_type=variance_type,
        n_clusters=n_clusters,
        strata_labels=design.strata_labels,
        baseline_hazard=baseline,
        loglik_history=nr.loglik_history,
    )
    return params, notes


def _chi2(statistic: float, df: int) -> TestStatistic:
    return TestStatistic(
        statistic=float(statistic),
        df=int(df),
        p_value=float(stats.chi2.sf(statistic, df)),
    )


def _baseline_hazard(
    blocks: list[RiskSetBlock],
    increments: NDArray,
    strata_labels: tuple[str, ...],
) -> tuple[BaselineHazard, ...]:
    """Cumulative baseline hazard per stratum at x = 0."""
    block_strata = np.array([blk.stratum for blk in blocks], dtype=np.intp)
    block_times = np.array([blk.time for blk in blocks], dtype=np.float64)
    n_strata = max(len(strata_labels), 1)

    out = []
    for s in range(n_strata):
        sel = block_strata == s
        out.append(
            BaselineHazard(
                stratum=strata_labels[s] if strata_labels else None,
                time=block_times[sel],
                cumulative_hazard=np.cumsum(increments[sel]),
            )
        )
    return tuple(out)


def cox_residuals(
    design: ModelDesign,
    beta: NDArray,
    ties: str,
) -> tuple[list[RiskSetBlock], NDArray]:
    """Risk sets and per-observation score residuals at ``beta``."""
    blocks = build_risk_sets(design.time, design.event, design.strata)
    return blocks, score_residuals(beta, design.X, blocks, ties)
