"""
Fine-Gray subdistribution hazard regression for competing risks.

Subjects with a competing event stay in the risk set after their event
time, down-weighted by inverse probability of censoring weights (IPCW):

    w_i(t) = G(t-) / G(X_i-)    for a competing event at X_i < t
    w_i(t) = 1                  while X_i >= t

where G is the Kaplan-Meier estimate of the censoring distribution
(computed separately per censoring group when strata are given). The
weighted pseudo partial likelihood is maximized with the Cox
Newton-Raphson machinery and the same tie handling.

Variance is robust by construction and accounts for the estimated
weights (Fine & Gray 1999, Section 3):

    V = H^{-1} Σ_i (η_i + ψ_i)(η_i + ψ_i)ᵀ H^{-1}

with η_i the weighted score residuals and ψ_i the censoring-martingale
correction

    ψ_i = Σ_u q(u)/π(u) · (dN_i^c(u) - I(X_i >= u) dΛ^c(u))
    q(u) = Σ_{competing j: X_j <= u} Σ_{t_s > u} w_j(t_s) r_j (Z_j a_s - am_s)

over the censoring times u of subject i's censoring group, π(u) the number
at risk in that group and a_s, am_s the block coefficients of the fit.

References:
    Fine, J. P. & Gray, R. J. (1999). A proportional hazards model for the
        subdistribution of a competing risk. JASA, 94(446), 496-509.
    R Core Team. cmprsk::crr
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pystatsurv.core.exceptions import InvalidDataError
from pystatsurv.survival._common import FineGrayParams, KMParams, TestStatistic
from pystatsurv.survival._km import kaplan_meier_fit
from pystatsurv.survival._newton import newton_raphson
from pystatsurv.survival._riskset import (
    BlockTerms,
    RiskSetBlock,
    block_terms,
    partial_likelihood,
    score_residuals,
)
from pystatsurv.survival._variance import (
    check_separation,
    invert_information,
    sandwich_variance,
)
from pystatsurv.survival.design import CENSORED, COMPETING, EVENT
from pystatsurv.survival.options import FitOptions
from pystatsurv.survival.terms import ModelDesign


def _left_limit(km: KMParams, t: NDArray) -> NDArray:
    """G(t-) for a censoring KM curve."""
    t = np.asarray(t, dtype=np.float64)
    idx = np.searchsorted(km.time, t, side="left") - 1
    out = np.ones(t.shape, dtype=np.float64)
    ok = idx >= 0
    out[ok] = km.survival[idx[ok]]
    return out


def censoring_curves(
    time: NDArray,
    status: NDArray,
    groups: NDArray,
    n_groups: int,
) -> list[KMParams]:
    """Kaplan-Meier estimate of the censoring distribution per group."""
    curves = []
    for g in range(n_groups):
        mask = groups == g
        curves.append(
            kaplan_meier_fit(
                time[mask],
                (status[mask] == CENSORED).astype(np.float64),
                conf_level=0.95,
                conf_type="log-log",
            )
        )
    return curves


def build_weighted_risk_sets(
    time: NDArray,
    status: NDArray,
    groups: NDArray,
    curves: list[KMParams],
) -> list[RiskSetBlock]:
    """Subdistribution risk sets, one block per distinct event time."""
    comp = np.flatnonzero(status == COMPETING)
    comp_g = groups[comp]
    comp_denom = np.ones(len(comp), dtype=np.float64)
    for g, km in enumerate(curves):
        sel = comp_g == g
        comp_denom[sel] = _left_limit(km, time[comp[sel]])

    is_event = status == EVENT
    blocks: list[RiskSetBlock] = []
    for t in np.unique(time[is_event]):
        regular = np.flatnonzero(time >= t)
        deaths = np.flatnonzero((time == t) & is_event)
        before = time[comp] < t
        if not np.any(before):
            blocks.append(
                RiskSetBlock(time=float(t), stratum=0, risk=regular, deaths=deaths)
            )
            continue
        idx = comp[before]
        g_t = np.array([_left_limit(curves[g], np.array([t]))[0] for g in range(len(curves))])
        w = g_t[comp_g[before]] / comp_denom[before]
        blocks.append(
            RiskSetBlock(
                time=float(t),
                stratum=0,
                risk=np.concatenate([regular, idx]),
                deaths=deaths,
                weight=np.concatenate([np.ones(len(regular)), w]),
            )
        )
    return blocks


def censoring_correction(
    time: NDArray,
    status: NDArray,
    X: NDArray,
    groups: NDArray,
    curves: list[KMParams],
    blocks: list[RiskSetBlock],
    terms: BlockTerms,
) -> NDArray:
    """ψ_i: influence of the estimated censoring weights on the score."""
    n, p = X.shape
    psi = np.zeros((n, p), dtype=np.float64)
    r = terms.risk_exp
    block_times = np.array([blk.time for blk in blocks], dtype=np.float64)

    for g, km in enumerate(curves):
        in_g = groups == g
        cens_times = np.unique(time[in_g & (status == CENSORED)])
        comp = np.flatnonzero(in_g & (status == COMPETING))
        if len(cens_times) == 0 or len(comp) == 0:
            continue

        comp = comp[np.argsort(time[comp], kind="stable")]
        c = r[comp] / _left_limit(km, time[comp])
        cz = np.cumsum(X[comp] * c[:, np.newaxis], axis=0)    # Σ_{X_j <= u} c_j Z_j
        cs = np.cumsum(c)

        # Suffix sums over blocks with t_s > u
        g_t = _left_limit(km, block_times)
        suffix_a = np.cumsum((g_t * terms.a)[::-1])[::-1]
        suffix_am = np.cumsum((g_t[:, np.newaxis] * terms.am)[::-1], axis=0)[::-1]

        g_time = time[in_g]
        for u in cens_times:
            k = np.searchsorted(time[comp], u, side="right")
            s = np.searchsorted(block_times, u, side="right")
            if k == 0 or s == len(blocks):
                continue
            q = cz[k - 1] * suffix_a[s] - cs[k - 1] * suffix_am[s]
            pi = float(np.sum(g_time >= u))
            censored_at_u = in_g & (time == u) & (status == CENSORED)
            d_lambda = np.sum(censored_at_u) / pi
            psi[censored_at_u] += q / pi
            psi[in_g & (time >= u)] -= (q / pi) * d_lambda

    return psi


def fine_gray_fit(
    design: ModelDesign,
    options: FitOptions,
) -> tuple[FineGrayParams, list[str]]:
    """Fit the Fine-Gray model for event code 1 against competing code 2.

    Parameters
    ----------
    design : ModelDesign
        Resolved model; stratum terms define censoring groups, a cluster
        term aggregates the robust variance by cluster.
    options : FitOptions

    Returns
    -------
    (FineGrayParams, notes)
    """
    if design.n_events == 0:
        raise InvalidDataError(
            "competing-risks regression requires at least one event of interest"
        )

    ties = options.ties
    X = design.X
    p = design.p
    status = design.status
    notes: list[str] = []

    groups = design.strata_codes()
    n_groups = design.n_strata
    curves = censoring_curves(design.time, status, groups, n_groups)
    blocks = build_weighted_risk_sets(design.time, status, groups, curves)

    def objective(beta: NDArray) -> tuple[float, NDArray, NDArray]:
        return partial_likelihood(beta, X, blocks, ties)

    beta0 = np.zeros(p, dtype=np.float64)
    null_loglik, _, null_info = objective(beta0)
    invert_information(null_info, beta0, 0)

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
            f"pseudo partial likelihood increasing"
        )

    beta = nr.beta
    check_separation(nr.information, null_info, beta, nr.n_iter)
    naive_var = invert_information(nr.information, beta, nr.n_iter)

    terms = block_terms(beta, X, blocks, ties)
    eta = score_residuals(beta, X, blocks, ties, terms)
    psi = censoring_correction(design.time, status, X, groups, curves, blocks, terms)
    var_matrix = sandwich_variance(naive_var, eta + psi, design.cluster)

    se = np.sqrt(np.maximum(np.diag(var_matrix), 0.0))
    naive_se = np.sqrt(np.maximum(np.diag(naive_var), 0.0))
    z = np.where(se > 0, beta / se, 0.0)
    p_values = 2.0 * stats.norm.sf(np.abs(z))
    q = stats.norm.ppf((1.0 + options.conf_level) / 2.0)

    wald = float(beta @ np.linalg.solve(var_matrix, beta)) if p > 0 else 0.0

    params = FineGrayParams(
        names=design.names,
        column_terms=design.column_terms,
        coefficients=beta,
        hazard_ratios=np.exp(beta),
        standard_errors=se,
        naive_standard_errors=naive_se,
        var_matrix=var_matrix,
        z_statistics=z,
        p_values=p_values,
        ci_lower=np.exp(beta - q * se),
        ci_upper=np.exp(beta + q * se),
        conf_level=options.conf_level,
        loglik=(null_loglik, nr.loglik),
        wald_test=TestStatistic(
            statistic=wald, df=p, p_value=float(stats.chi2.sf(wald, p))
        ),
        n_events=design.n_events,
        n_competing=int(np.sum(status == COMPETING)),
        n_censored=int(np.sum(status == CENSORED)),
        n_observations=design.n,
        n_iter=nr.n_iter,
        converged=True,
        ties=ties,
        censoring_groups=design.strata_labels,
        n_clusters=None if design.cluster is None else len(design.cluster_labels),
        loglik_history=nr.loglik_history,
    )
    return params, notes
