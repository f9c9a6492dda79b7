"""
Log-rank test (G-rho family) for comparing survival curves across groups.

Matches R's survival::survdiff(Surv(time, event) ~ group [+ strata(s)], rho):
- Standard log-rank test (rho=0): Mantel-Haenszel / Cochran-Mantel
- G-rho family (rho>0): Fleming-Harrington weighted variant
  When rho=1, gives the Peto & Peto modification of the Gehan-Wilcoxon test.
- Stratified test: O, E and V are accumulated within each stratum and
  summed before forming the statistic.

Algorithm:
    1. Sort all observations by time
    2. At each distinct event time t_j:
       - n_kj = number at risk in group k at t_j
       - d_kj = observed events in group k at t_j
       - N_j = total at risk, D_j = total events
       - Expected events in group k: E_kj = n_kj * D_j / N_j
       - Weight w_j = S_hat(t_j-)^rho (pooled KM just before t_j)
    3. Test statistic: (O - E)^T V^- (O - E) with V^- a generalized
       inverse; df is the rank of V

References:
    Harrington, D. P. & Fleming, T. R. (1982). A class of rank test
        procedures for censored survival data. Biometrika, 69(3), 553-566.
    R Core Team. survival::survdiff
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pystatsurv.core.exceptions import ValidationError
from pystatsurv.survival._common import LogRankParams

# Relative eigenvalue cutoff for the rank of V
_RANK_TOL = 1e-9


def logrank_test(
    time: NDArray,
    event: NDArray,
    group: NDArray,
    rho: float = 0.0,
    strata: NDArray | None = None,
) -> LogRankParams:
    """Compute log-rank test (G-rho family).

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) event indicator (1=event, 0=censored).
    group : NDArray
        (n,) group labels.
    rho : float
        G-rho weight parameter: rho=0 is standard log-rank,
        rho=1 is Peto & Peto / Gehan-Wilcoxon.
    strata : NDArray or None
        (n,) stratum labels for a stratified test.

    Returns
    -------
    LogRankParams
    """
    n = len(time)

    unique_groups, group_idx = np.unique(group, return_inverse=True)
    n_groups = len(unique_groups)

    if n_groups < 2:
        raise ValidationError(
            f"Need at least 2 groups for log-rank test, got {n_groups}"
        )

    if strata is None:
        strata_idx = np.zeros(n, dtype=np.intp)
    else:
        _, strata_idx = np.unique(strata, return_inverse=True)
    n_strata = int(strata_idx.max()) + 1

    observed = np.zeros(n_groups, dtype=np.float64)
    expected = np.zeros(n_groups, dtype=np.float64)
    V = np.zeros((n_groups, n_groups), dtype=np.float64)

    for s in range(n_strata):
        mask = strata_idx == s
        o_s, e_s, v_s = _stratum_terms(
            time[mask], event[mask], group_idx[mask], n_groups, rho
        )
        observed += o_s
        expected += e_s
        V += v_s

    # --- Chi-squared statistic ---
    # Σ(O_k - E_k) = 0 so V has rank at most n_groups - 1. A group with
    # nobody at risk at any event time drops the rank further; the
    # generalized inverse over the non-null eigenspace handles both.
    oe_diff = observed - expected
    eigval, eigvec = np.linalg.eigh(V)
    scale = float(eigval.max()) if eigval.size else 0.0
    keep = eigval > _RANK_TOL * scale if scale > 0 else np.zeros(n_groups, dtype=bool)
    df = int(keep.sum())

    if df == 0:
        statistic = 0.0
        p_value = 1.0
    else:
        proj = eigvec[:, keep].T @ oe_diff
        statistic = float(np.sum(proj ** 2 / eigval[keep]))
        p_value = float(stats.chi2.sf(statistic, df))

    n_per_group = np.bincount(group_idx, minlength=n_groups).astype(np.float64)

    return LogRankParams(
        statistic=statistic,
        df=df,
        p_value=p_value,
        n_groups=n_groups,
        observed=observed,
        expected=expected,
        variance=V,
        n_per_group=n_per_group,
        rho=rho,
        group_labels=unique_groups,
        n_strata=n_strata,
    )


def _stratum_terms(
    time: NDArray,
    event: NDArray,
    group_idx: NDArray,
    n_groups: int,
    rho: float,
) -> tuple[NDArray, NDArray, NDArray]:
    """Weighted observed, expected and variance within one stratum."""
    n = len(time)
    observed = np.zeros(n_groups, dtype=np.float64)
    expected = np.zeros(n_groups, dtype=np.float64)
    V = np.zeros((n_groups, n_groups), dtype=np.float64)

    is_event = event == 1
    unique_event_times = np.unique(time[is_event])
    m = len(unique_event_times)
    if m == 0:
        return observed, expected, V

    # Per event time × per group
    d_kg = np.zeros((m, n_groups), dtype=np.float64)
    n_kg = np.zeros((m, n_groups), dtype=np.float64)

    for k in range(n_groups):
        in_k = group_idx == k
        t_k = np.sort(time[in_k])
        e_k = np.sort(time[in_k & is_event])
        n_kg[:, k] = len(t_k) - np.searchsorted(t_k, unique_event_times, side="left")
        d_kg[:, k] = (
            np.searchsorted(e_k, unique_event_times, side="right")
            - np.searchsorted(e_k, unique_event_times, side="left")
        )

    D_j = d_kg.sum(axis=1)     # (m,) total events at each time
    N_j = n_kg.sum(axis=1)     # (m,) total at risk at each time

    if rho == 0.0:
        weights = np.ones(m, dtype=np.float64)
    else:
        # S_hat(t_j-) from the pooled Kaplan-Meier estimate
        cum_surv = np.cumprod(1.0 - D_j / N_j)
        s_before = np.ones(m, dtype=np.float64)
        s_before[1:] = cum_surv[:-1]
        weights = s_before ** rho

    observed = weights @ d_kg
    expected = weights @ (n_kg * (D_j / N_j)[:, np.newaxis])

    # V_kl = Σ_j w_j^2 * D_j * (N_j - D_j) / (N_j^2 * (N_j - 1))
    #          * n_kj * (δ_kl * N_j - n_lj)
    valid = N_j > 1
    factor = np.zeros(m, dtype=np.float64)
    factor[valid] = (
        weights[valid] ** 2 * D_j[valid] * (N_j[valid] - D_j[valid])
        / (N_j[valid] ** 2 * (N_j[valid] - 1))
    )
    for j in np.flatnonzero(valid):
        nk = n_kg[j]
        V += factor[j] * (np.diag(nk * N_j[j]) - np.outer(nk, nk))

    return observed, expected, V
