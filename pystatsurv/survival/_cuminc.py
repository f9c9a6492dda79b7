"""
Nonparametric cumulative incidence for competing risks (Aalen-Johansen).

With distinct event times t_j (any cause), n_j at risk, d_j events of any
cause and d_kj events of cause k:

    F_k(t) = Σ_{t_j <= t} S(t_j-) · d_kj / n_j

where S is the all-cause Kaplan-Meier curve. Variance by the delta method
(Marubini & Valsecchi 1995):

    Var F_k(t) = Σ_{t_j <= t} [F_k(t) - F_k(t_j)]² d_j / (n_j (n_j - d_j))
               + Σ_{t_j <= t} S(t_j-)² d_kj (n_j - d_kj) / n_j³
               - 2 Σ_{t_j <= t} [F_k(t) - F_k(t_j)] S(t_j-) d_kj / n_j²

References:
    Marubini, E. & Valsecchi, M. G. (1995). Analysing Survival Data from
        Clinical Trials and Observational Studies. Wiley. Ch. 10.
    R Core Team. cmprsk::cuminc
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pystatsurv.survival._common import CumIncCurve, CumIncParams
from pystatsurv.survival._km import _compute_ci


def cumulative_incidence_fit(
    time: NDArray,
    status: NDArray,
    causes: tuple[int, ...],
    conf_level: float,
    group: NDArray | None = None,
) -> CumIncParams:
    """Aalen-Johansen cumulative incidence per cause (and group).

    Parameters
    ----------
    time : NDArray
        (n,) observed times.
    status : NDArray
        (n,) event codes, 0 = censored.
    causes : tuple of int
        Event codes to report.
    conf_level : float
    group : NDArray or None
        (n,) group labels; one set of curves per group.
    """
    z = stats.norm.ppf((1.0 + conf_level) / 2.0)

    if group is None:
        groups: tuple[str, ...] = ()
        parts = [(None, np.ones(len(time), dtype=bool))]
    else:
        labels = np.array([str(g) for g in group])
        groups = tuple(np.unique(labels).tolist())
        parts = [(g, labels == g) for g in groups]

    curves = []
    for g, mask in parts:
        for cause in causes:
            curves.append(_single_curve(time[mask], status[mask], cause, z, g))

    return CumIncParams(
        curves=tuple(curves),
        causes=tuple(causes),
        groups=groups,
        conf_level=conf_level,
        n_observations=len(time),
    )


def _single_curve(
    time: NDArray,
    status: NDArray,
    cause: int,
    z: float,
    group: str | None,
) -> CumIncCurve:
    any_event = status > 0
    ut = np.unique(time[any_event])
    if len(ut) == 0:
        empty = np.array([], dtype=np.float64)
        return CumIncCurve(cause, group, empty, empty, empty, empty, empty)

    t_sorted = np.sort(time)
    n_j = (len(time) - np.searchsorted(t_sorted, ut, side="left")).astype(np.float64)

    def counts(at: NDArray) -> NDArray:
        at = np.sort(at)
        return (
            np.searchsorted(at, ut, side="right") - np.searchsorted(at, ut, side="left")
        ).astype(np.float64)

    d_j = counts(time[any_event])
    dk_j = counts(time[status == cause])

    surv = np.cumprod(1.0 - d_j / n_j)
    s_before = np.concatenate([[1.0], surv[:-1]])
    F = np.cumsum(s_before * dk_j / n_j)

    # Expand [F(t) - F(t_j)]² and [F(t) - F(t_j)] into cumulative sums
    with np.errstate(divide='ignore', invalid='ignore'):
        a = np.where(n_j > d_j, d_j / (n_j * (n_j - d_j)), 0.0)
    c = s_before * dk_j / n_j ** 2
    first = F ** 2 * np.cumsum(a) - 2.0 * F * np.cumsum(a * F) + np.cumsum(a * F ** 2)
    second = np.cumsum(s_before ** 2 * dk_j * (n_j - dk_j) / n_j ** 3)
    third = F * np.cumsum(c) - np.cumsum(c * F)
    variance = np.maximum(first + second - 2.0 * third, 0.0)

    ci_lower, ci_upper = _compute_ci(F, np.sqrt(variance), z, "log-log")

    return CumIncCurve(
        cause=cause,
        group=group,
        time=ut.astype(np.float64),
        incidence=F,
        variance=variance,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
    )
