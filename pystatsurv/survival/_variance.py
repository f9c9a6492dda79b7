"""
Variance estimators for partial-likelihood fits.

    naive     V = H(β̂)^{-1}
    robust    V = H^{-1} (Σ_i s_i s_iᵀ) H^{-1}      each subject its own cluster
    cluster   V = H^{-1} (Σ_c s_c s_cᵀ) H^{-1}      s_c = Σ_{i ∈ c} s_i

where s_i are the per-observation score residuals. The sandwich adjusts
standard errors only; point estimates are unchanged.

References:
    Lin, D. Y. & Wei, L. J. (1989). The robust inference for the Cox
        proportional hazards model. JASA, 84(408), 1074-1078.
    R Core Team. survival::coxph (robust=TRUE, cluster())
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import linalg

from pystatsurv.core.exceptions import NonConvergenceError

# Reciprocal condition number below which the information is singular
RCOND_LIMIT = 1e-12


def invert_information(
    information: NDArray,
    beta: NDArray,
    iterations: int,
) -> NDArray:
    """Naive variance H^{-1}.

    Raises
    ------
    NonConvergenceError
        diagnostic='singular_information' when H is numerically singular.
    """
    p = information.shape[0]
    if p == 0:
        return np.zeros((0, 0))
    cond = np.linalg.cond(information)
    if not np.isfinite(cond) or 1.0 / cond < RCOND_LIMIT:
        raise NonConvergenceError(
            f"information matrix is numerically singular (condition number "
            f"{cond:.3g}); covariates may be collinear",
            iterations,
            last_coefficients=np.array(beta, copy=True),
            diagnostic="singular_information",
        )
    V = np.linalg.inv(information)
    return (V + V.T) / 2.0


def check_separation(
    information: NDArray,
    null_information: NDArray,
    beta: NDArray,
    iterations: int,
    threshold: float = 1e-6,
) -> None:
    """Detect monotone likelihood (perfect separation).

    Under separation the information collapses toward zero as some
    coefficient runs off to infinity. The smallest generalized eigenvalue
    of H(β̂) relative to H(0) measures that collapse.
    """
    if information.shape[0] == 0:
        return
    try:
        eig = linalg.eigh(information, null_information, eigvals_only=True)
    except (linalg.LinAlgError, ValueError):
        # H(0) itself singular: report as collinearity
        raise NonConvergenceError(
            "information matrix at β = 0 is singular; covariates may be "
            "collinear or constant",
            iterations,
            last_coefficients=np.array(beta, copy=True),
            diagnostic="singular_information",
        ) from None
    if np.min(eig) < threshold:
        raise NonConvergenceError(
            f"coefficients are diverging (information ratio {np.min(eig):.3g}); "
            f"covariates may perfectly separate events",
            iterations,
            last_coefficients=np.array(beta, copy=True),
            diagnostic="singular_information",
        )


def aggregate_by_cluster(resid: NDArray, cluster: NDArray | None) -> NDArray:
    """Sum per-observation rows within each cluster code."""
    if cluster is None:
        return resid
    n_clusters = int(np.max(cluster)) + 1
    out = np.zeros((n_clusters, resid.shape[1]), dtype=np.float64)
    np.add.at(out, cluster, resid)
    return out


def sandwich_variance(
    bread: NDArray,
    resid: NDArray,
    cluster: NDArray | None = None,
) -> NDArray:
    """H^{-1} (Σ_c s_c s_cᵀ) H^{-1}.

    Parameters
    ----------
    bread : NDArray
        (p, p) naive variance H^{-1}.
    resid : NDArray
        (n, p) per-observation score residuals.
    cluster : NDArray or None
        (n,) integer cluster codes; None treats each row as a cluster.
    """
    scores = aggregate_by_cluster(resid, cluster)
    meat = scores.T @ scores
    V = bread @ meat @ bread
    return (V + V.T) / 2.0


def dfbeta(resid: NDArray, naive_var: NDArray) -> NDArray:
    """Approximate change in β̂ when each observation is dropped."""
    return resid @ naive_var
