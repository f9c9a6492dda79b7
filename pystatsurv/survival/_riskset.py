"""
Risk-set bookkeeping and the weighted partial likelihood.

Shared by the Cox, frailty and Fine-Gray estimators. Each distinct event
time within a stratum becomes one RiskSetBlock holding the indices of the
subjects at risk (with optional case weights) and of the subjects who had
the event at that time. Risk sets are derived from the data, never stored
on the dataset itself.

Efron's partial likelihood for a block with d tied events:

    L_j(β) = Σ_{i ∈ D_j} η_i - Σ_{k=0}^{d-1} log(S0_j - (k/d)·D0_j)

    where S0_j = Σ_{l ∈ R_j} w_l exp(η_l) and D0_j = Σ_{i ∈ D_j} exp(η_i).

Breslow's approximation is the same expression with every fraction k/d
replaced by zero.

References:
    Efron, B. (1977). The efficiency of Cox's likelihood function for
        censored data. JASA, 72(359), 557-565.
    Therneau, T. M. & Grambsch, P. M. (2000). Modeling Survival Data:
        Extending the Cox Model. Springer. Ch. 3 and 7.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True, eq=False)
class RiskSetBlock:
    """Risk set at one distinct event time within one stratum.

    Attributes
    ----------
    time : float
        The event time.
    stratum : int
        Stratum code.
    risk : NDArray
        Indices of subjects at risk just before ``time``.
    deaths : NDArray
        Indices of subjects with the event at ``time`` (subset of risk).
    weight : NDArray or None
        Case weights aligned with ``risk``; None means all ones. Subjects
        in ``deaths`` always carry weight one.
    """

    time: float
    stratum: int
    risk: NDArray
    deaths: NDArray
    weight: NDArray | None = None

    @property
    def n_deaths(self) -> int:
        return len(self.deaths)


class BlockTerms(NamedTuple):
    """Per-block coefficients of the (Efron-weighted) risk-set sums.

    With den_k = S0 - f_k·D0 and m_k = (S1 - f_k·D1) / den_k:

        a    = Σ_k 1/den_k              am  = Σ_k m_k/den_k
        b    = Σ_k (1-f_k)/den_k        bm  = Σ_k (1-f_k)·m_k/den_k
        mbar = mean_k m_k

    ``a`` and friends are on the centered scale exp(η - shift).
    """

    a: NDArray       # (m,)
    am: NDArray      # (m, p)
    b: NDArray       # (m,)
    bm: NDArray      # (m, p)
    mbar: NDArray    # (m, p)
    risk_exp: NDArray  # (n,) exp(η - shift)
    shift: float


def build_risk_sets(
    time: NDArray,
    event: NDArray,
    strata: NDArray | None = None,
) -> list[RiskSetBlock]:
    """One block per (stratum, distinct event time), ordered by stratum
    then ascending time.

    Parameters
    ----------
    time : NDArray
        (n,) observed times.
    event : NDArray
        (n,) event-of-interest indicator (1 = event).
    strata : NDArray or None
        (n,) integer stratum codes.
    """
    n = len(time)
    if strata is None:
        strata = np.zeros(n, dtype=np.intp)

    blocks: list[RiskSetBlock] = []
    for s in np.unique(strata):
        idx = np.flatnonzero(strata == s)
        order = idx[np.argsort(time[idx], kind="stable")]
        t_sorted = time[order]
        is_event = event[order] == 1
        for t in np.unique(t_sorted[is_event]):
            start = np.searchsorted(t_sorted, t, side="left")
            risk = order[start:]
            at_t = (t_sorted[start:] == t) & is_event[start:]
            blocks.append(
                RiskSetBlock(
                    time=float(t),
                    stratum=int(s),
                    risk=risk,
                    deaths=risk[at_t],
                )
            )
    return blocks


def _fractions(d: int, ties: str) -> NDArray:
    if ties == "efron" and d > 1:
        return np.arange(d) / d
    return np.zeros(d)


def _centered_exp(beta: NDArray, X: NDArray) -> tuple[NDArray, NDArray, float]:
    eta = X @ beta
    # Center eta for numerical stability (cancels in the partial likelihood)
    shift = float(np.max(eta)) if len(eta) > 0 else 0.0
    eta_c = eta - shift
    return eta_c, np.exp(eta_c), shift


def partial_likelihood(
    beta: NDArray,
    X: NDArray,
    blocks: list[RiskSetBlock],
    ties: str = "efron",
) -> tuple[float, NDArray, NDArray]:
    """Log partial likelihood, score vector and observed information.

    Returns
    -------
    (loglik, score, information)
        loglik : float
        score : (p,) gradient of the log partial likelihood
        information : (p, p) negative Hessian
    """
    p = X.shape[1]
    eta_c, r, _ = _centered_exp(beta, X)

    loglik = 0.0
    score = np.zeros(p, dtype=np.float64)
    info = np.zeros((p, p), dtype=np.float64)

    for blk in blocks:
        w = r[blk.risk] if blk.weight is None else r[blk.risk] * blk.weight
        Xr = X[blk.risk]
        S0 = np.sum(w)
        S1 = Xr.T @ w
        S2 = (Xr * w[:, np.newaxis]).T @ Xr

        Xd = X[blk.deaths]
        rd = r[blk.deaths]
        D0 = np.sum(rd)
        D1 = Xd.T @ rd
        D2 = (Xd * rd[:, np.newaxis]).T @ Xd

        loglik += np.sum(eta_c[blk.deaths])
        score += np.sum(Xd, axis=0)

        for f in _fractions(blk.n_deaths, ties):
            den = S0 - f * D0
            mean = (S1 - f * D1) / den
            loglik -= np.log(den)
            score -= mean
            info += (S2 - f * D2) / den - np.outer(mean, mean)

    return float(loglik), score, info


def loglik_only(
    beta: NDArray,
    X: NDArray,
    blocks: list[RiskSetBlock],
    ties: str = "efron",
) -> float:
    """Log partial likelihood without derivatives."""
    eta_c, r, _ = _centered_exp(beta, X)
    loglik = 0.0
    for blk in blocks:
        w = r[blk.risk] if blk.weight is None else r[blk.risk] * blk.weight
        S0 = np.sum(w)
        D0 = np.sum(r[blk.deaths])
        dens = S0 - _fractions(blk.n_deaths, ties) * D0
        loglik += np.sum(eta_c[blk.deaths]) - np.sum(np.log(dens))
    return float(loglik)


def block_terms(
    beta: NDArray,
    X: NDArray,
    blocks: list[RiskSetBlock],
    ties: str = "efron",
) -> BlockTerms:
    """Per-block hazard and mean coefficients at ``beta``."""
    m, p = len(blocks), X.shape[1]
    _, r, shift = _centered_exp(beta, X)

    a = np.zeros(m)
    b = np.zeros(m)
    am = np.zeros((m, p))
    bm = np.zeros((m, p))
    mbar = np.zeros((m, p))

    for k, blk in enumerate(blocks):
        w = r[blk.risk] if blk.weight is None else r[blk.risk] * blk.weight
        S0 = np.sum(w)
        S1 = X[blk.risk].T @ w
        rd = r[blk.deaths]
        D0 = np.sum(rd)
        D1 = X[blk.deaths].T @ rd

        f = _fractions(blk.n_deaths, ties)
        dens = S0 - f * D0                                   # (d,)
        means = (S1[np.newaxis, :] - f[:, np.newaxis] * D1) / dens[:, np.newaxis]
        a[k] = np.sum(1.0 / dens)
        b[k] = np.sum((1.0 - f) / dens)
        am[k] = np.sum(means / dens[:, np.newaxis], axis=0)
        bm[k] = np.sum(means * ((1.0 - f) / dens)[:, np.newaxis], axis=0)
        mbar[k] = np.mean(means, axis=0)

    return BlockTerms(a=a, am=am, b=b, bm=bm, mbar=mbar, risk_exp=r, shift=shift)


def score_residuals(
    beta: NDArray,
    X: NDArray,
    blocks: list[RiskSetBlock],
    ties: str = "efron",
    terms: BlockTerms | None = None,
) -> NDArray:
    """Per-observation score residuals; rows sum to the score vector.

    For a subject at risk in a block, each Efron term contributes
    -w_i·r_i·(x_i - m_k)/den_k, where the weight of a tied death in term
    k is (1 - f_k). Each death additionally contributes x_i - mean_k m_k.
    """
    if terms is None:
        terms = block_terms(beta, X, blocks, ties)
    n, p = X.shape
    r = terms.risk_exp
    resid = np.zeros((n, p), dtype=np.float64)

    for k, blk in enumerate(blocks):
        w = r[blk.risk] if blk.weight is None else r[blk.risk] * blk.weight
        resid[blk.risk] -= w[:, np.newaxis] * (
            X[blk.risk] * terms.a[k] - terms.am[k]
        )
        d = blk.deaths
        rd = r[d][:, np.newaxis]
        resid[d] += rd * (
            X[d] * (terms.a[k] - terms.b[k]) - (terms.am[k] - terms.bm[k])
        )
        resid[d] += X[d] - terms.mbar[k]

    return resid


def schoenfeld_residuals(
    beta: NDArray,
    X: NDArray,
    blocks: list[RiskSetBlock],
    ties: str = "efron",
    terms: BlockTerms | None = None,
) -> tuple[NDArray, NDArray, NDArray]:
    """Schoenfeld residuals, one row per event.

    Returns
    -------
    (times, strata, residuals)
        times : (d,) event time of each row
        strata : (d,) stratum code of each row
        residuals : (d, p) x_i minus the risk-set weighted mean at the
            event time (averaged over the Efron terms for tied events)
    """
    if terms is None:
        terms = block_terms(beta, X, blocks, ties)
    times, strata, rows = [], [], []
    for k, blk in enumerate(blocks):
        times.append(np.full(blk.n_deaths, blk.time))
        strata.append(np.full(blk.n_deaths, blk.stratum))
        rows.append(X[blk.deaths] - terms.mbar[k])
    if not rows:
        return np.zeros(0), np.zeros(0, dtype=np.intp), np.zeros((0, X.shape[1]))
    return np.concatenate(times), np.concatenate(strata), np.vstack(rows)


def hazard_increments(
    beta: NDArray,
    X: NDArray,
    blocks: list[RiskSetBlock],
    ties: str = "efron",
    terms: BlockTerms | None = None,
) -> NDArray:
    """Baseline hazard jump at each block, evaluated at x = 0.

    Breslow: d / S0. Efron: Σ_k 1 / (S0 - f_k·D0).
    """
    if terms is None:
        terms = block_terms(beta, X, blocks, ties)
    return terms.a * np.exp(-terms.shift)


def concordance_index(
    eta: NDArray,
    time: NDArray,
    event: NDArray,
    strata: NDArray | None = None,
) -> float:
    """Harrell's concordance statistic (C-statistic).

    C = P(η_i > η_j | T_i < T_j, event_i = 1), pairs compared within strata.
    Ties in η count one half.
    """
    n = len(time)
    if strata is None:
        strata = np.zeros(n, dtype=np.intp)

    concordant = 0.0
    discordant = 0.0
    tied_risk = 0.0

    for i in np.flatnonzero(event == 1):
        comparable = (time > time[i]) & (strata == strata[i])
        if not np.any(comparable):
            continue
        others = eta[comparable]
        concordant += np.sum(eta[i] > others)
        discordant += np.sum(eta[i] < others)
        tied_risk += np.sum(eta[i] == others)

    total = concordant + discordant + tied_risk
    if total == 0:
        return 0.5
    return float((concordant + 0.5 * tied_risk) / total)
