"""
Shared gamma frailty Cox model via penalized partial likelihood.

Each cluster c carries a multiplicative random effect z_c = exp(b_c) with
a gamma distribution of mean 1 and variance θ. For fixed θ the log-frailties
are estimated jointly with β by maximizing the penalized partial likelihood

    PPL(β, b) = PL(β, b) - (1/θ) Σ_c (exp(b_c) - b_c)

over the augmented design [X | Z] (Z the cluster indicator matrix), using
the same Newton-Raphson machinery as the Cox model. θ itself maximizes the
integrated (marginal) log-likelihood, with ν = 1/θ and D_c the events in
cluster c:

    ℓ_I(θ) = PL(β̂, b̂) + Σ_c [ ν b̂_c + log Γ(ν + D_c) - log Γ(ν)
                               + ν log ν - (ν + D_c) log(ν + D_c) + D_c ]

which tends to the ordinary Cox partial likelihood as θ → 0. The outer
search is a bounded scalar maximization over log θ.

References:
    Therneau, T. M., Grambsch, P. M. & Pankratz, V. S. (2003). Penalized
        survival models and frailty. J. Comp. Graph. Stat., 12(1), 156-175.
    R Core Team. survival::frailty.gamma
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import optimize, stats

from pystatsurv.core.exceptions import NonConvergenceError
from pystatsurv.survival._common import FrailtyParams, TestStatistic
from pystatsurv.survival._cox import cox_fit
from pystatsurv.survival._newton import NewtonResult, newton_raphson
from pystatsurv.survival._riskset import build_risk_sets, loglik_only, partial_likelihood
from pystatsurv.survival._variance import invert_information
from pystatsurv.survival.options import FitOptions
from pystatsurv.survival.terms import ModelDesign

# Search interval for θ
THETA_MIN = 1e-5
THETA_MAX = 1e2
LOG_THETA_TOL = 1e-3


def _cluster_terms(nu: float, events: NDArray, log_frailty: NDArray) -> float:
    """Σ_c of the gamma marginal correction, computed without cancellation."""
    total = 0.0
    for d, b in zip(events, log_frailty):
        # log Γ(ν + d) - log Γ(ν) = Σ_{k<d} log(ν + k)
        lgamma_ratio = np.sum(np.log(nu + np.arange(d)))
        total += (
            nu * b
            + lgamma_ratio
            - nu * np.log1p(d / nu)
            - d * np.log(nu + d)
            + d
        )
    return float(total)


def frailty_fit(
    design: ModelDesign,
    options: FitOptions,
) -> tuple[FrailtyParams, list[str]]:
    """Fit a Cox model with a shared gamma frailty per cluster.

    Parameters
    ----------
    design : ModelDesign
        Resolved model with a frailty term.
    options : FitOptions
        Inner Newton-Raphson settings; ``outer_max_iter`` bounds the θ
        search.

    Returns
    -------
    (FrailtyParams, notes)

    Raises
    ------
    NonConvergenceError
        Inner or outer iteration bound exceeded, or singular information.
    """
    # Cox fit without frailty: reference likelihood, warm start, and the
    # data checks (no events, collinearity, separation)
    cox, notes = cox_fit(design, options)
    loglik_cox = cox.loglik[1]

    n, p = design.n, design.p
    codes = design.frailty
    K = len(design.frailty_labels)
    Z = np.zeros((n, K), dtype=np.float64)
    Z[np.arange(n), codes] = 1.0
    Xa = np.hstack([design.X, Z])

    ties = options.ties
    blocks = build_risk_sets(design.time, design.event, design.strata)
    events = np.bincount(codes, weights=design.event, minlength=K).astype(np.int64)

    state: dict[str, object] = {
        "gamma": np.concatenate([cox.coefficients, np.zeros(K)]),
        "n_eval": 0,
    }

    def inner(theta: float) -> NewtonResult:
        def objective(g: NDArray) -> tuple[float, NDArray, NDArray]:
            ll, U, H = partial_likelihood(g, Xa, blocks, ties)
            b = g[p:]
            eb = np.exp(b)
            U[p:] -= (eb - 1.0) / theta
            H[p:, p:] += np.diag(eb / theta)
            return ll - np.sum(eb - b) / theta, U, H

        nr = newton_raphson(
            objective,
            state["gamma"],
            tol=options.tol,
            max_iter=options.max_iter,
            deadline=options.deadline,
            cancel=options.cancel,
        )
        state["gamma"] = nr.beta
        return nr

    def integrated(nr: NewtonResult, theta: float) -> float:
        pl = loglik_only(nr.beta, Xa, blocks, ties)
        return pl + _cluster_terms(1.0 / theta, events, nr.beta[p:])

    def negative_integrated(log_theta: float) -> float:
        state["n_eval"] += 1
        theta = float(np.exp(log_theta))
        return -integrated(inner(theta), theta)

    res = optimize.minimize_scalar(
        negative_integrated,
        bounds=(np.log(THETA_MIN), np.log(THETA_MAX)),
        method="bounded",
        options={"maxiter": options.outer_max_iter, "xatol": LOG_THETA_TOL},
    )
    if not res.success:
        raise NonConvergenceError(
            f"frailty variance search did not converge in "
            f"{options.outer_max_iter} evaluations: {res.message}",
            int(state["n_eval"]),
            last_coefficients=np.array(state["gamma"], copy=True),
            diagnostic="max_iterations",
        )

    theta = float(np.exp(res.x))
    if theta <= THETA_MIN * 1.01:
        notes.append(
            f"frailty variance is at the lower search bound ({THETA_MIN:g}); "
            f"there is no evidence of within-cluster correlation"
        )
    elif theta >= THETA_MAX * 0.99:
        notes.append(
            f"frailty variance is at the upper search bound ({THETA_MAX:g})"
        )

    nr = inner(theta)
    loglik_integrated = integrated(nr, theta)

    V = invert_information(nr.information, nr.beta, nr.n_iter)
    beta = nr.beta[:p]
    b = nr.beta[p:]
    var_beta = V[:p, :p]
    se = np.sqrt(np.maximum(np.diag(var_beta), 0.0))
    b_se = np.sqrt(np.maximum(np.diag(V)[p:], 0.0))

    z = np.where(se > 0, beta / se, 0.0)
    p_values = 2.0 * stats.norm.sf(np.abs(z))
    q = stats.norm.ppf((1.0 + options.conf_level) / 2.0)

    # θ = 0 lies on the boundary: 50:50 mixture of χ²(0) and χ²(1)
    lr = max(2.0 * (loglik_integrated - loglik_cox), 0.0)
    theta_p = 1.0 if lr == 0.0 else float(0.5 * stats.chi2.sf(lr, 1))

    params = FrailtyParams(
        names=design.names,
        column_terms=design.column_terms,
        coefficients=beta,
        hazard_ratios=np.exp(beta),
        standard_errors=se,
        z_statistics=z,
        p_values=p_values,
        ci_lower=np.exp(beta - q * se),
        ci_upper=np.exp(beta + q * se),
        conf_level=options.conf_level,
        var_matrix=var_beta,
        theta=theta,
        cluster_labels=design.frailty_labels,
        log_frailty=b,
        frailty=np.exp(b),
        log_frailty_se=b_se,
        loglik_penalized=nr.loglik,
        loglik_integrated=loglik_integrated,
        loglik_cox=loglik_cox,
        theta_test=TestStatistic(statistic=lr, df=1, p_value=theta_p),
        n_events=design.n_events,
        n_observations=n,
        n_clusters=K,
        n_iter=nr.n_iter,
        n_outer_iter=int(state["n_eval"]),
        converged=True,
        ties=ties,
        strata_labels=design.strata_labels,
        loglik_history=nr.loglik_history,
    )
    return params, notes
