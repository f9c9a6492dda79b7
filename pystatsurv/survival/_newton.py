"""
Newton-Raphson maximization of a (penalized) partial likelihood.

Shared by the Cox, frailty (inner loop) and Fine-Gray estimators. The
objective returns the log-likelihood, score and observed information at a
coefficient vector; the driver iterates

    β ← β + H(β)^{-1} U(β)

halving the step whenever the log-likelihood would decrease, so accepted
iterates are monotone non-decreasing in the objective. Iteration stops
when the relative change in log-likelihood falls below ``tol``; running
past ``max_iter`` is an error, never a silently returned estimate.

References:
    Therneau, T. M. & Grambsch, P. M. (2000). Modeling Survival Data.
        Springer. Section 3.3 (coxph's step-halving Newton-Raphson).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np
from numpy.typing import NDArray

from pystatsurv.core.compute.timing import deadline_passed
from pystatsurv.core.exceptions import FitCancelledError, NonConvergenceError

Objective = Callable[[NDArray], tuple[float, NDArray, NDArray]]

# Largest Newton step on any coordinate (keeps exp(Xβ) finite)
MAX_STEP = 5.0
MAX_HALVINGS = 30


@dataclass(frozen=True)
class NewtonResult:
    """Converged Newton-Raphson state.

    Attributes:
        beta: Coefficients at convergence.
        loglik: Objective value at beta.
        score: Gradient at beta.
        information: Observed information (negative Hessian) at beta.
        n_iter: Number of Newton iterations taken.
        loglik_history: Objective value at the start and after every
            accepted iterate, non-decreasing.
        n_halvings: Total step-halvings performed.
    """
    beta: NDArray
    loglik: float
    score: NDArray
    information: NDArray
    n_iter: int
    loglik_history: tuple[float, ...]
    n_halvings: int


def _check_stop(
    beta: NDArray,
    iteration: int,
    deadline: float | None,
    cancel: Callable[[], bool] | None,
) -> None:
    if deadline_passed(deadline):
        raise FitCancelledError(
            f"fit stopped at deadline after {iteration} iterations",
            iteration,
            last_coefficients=beta.copy(),
            diagnostic="deadline",
        )
    if cancel is not None and cancel():
        raise FitCancelledError(
            f"fit cancelled after {iteration} iterations",
            iteration,
            last_coefficients=beta.copy(),
            diagnostic="cancelled",
        )


def newton_raphson(
    objective: Objective,
    beta0: NDArray,
    *,
    tol: float = 1e-9,
    max_iter: int = 20,
    deadline: float | None = None,
    cancel: Callable[[], bool] | None = None,
) -> NewtonResult:
    """Maximize ``objective`` starting from ``beta0``.

    Args:
        objective: beta -> (loglik, score, information).
        beta0: Starting coefficients.
        tol: Convergence threshold on |Δloglik| / (|loglik| + 0.1).
        max_iter: Iteration bound.
        deadline: Optional time.monotonic() deadline, checked between
            iterations.
        cancel: Optional zero-argument callable, checked between
            iterations.

    Returns:
        NewtonResult

    Raises:
        NonConvergenceError: Iteration bound exceeded
            (diagnostic='max_iterations'), singular information matrix
            ('singular_information'), or a non-finite objective
            ('non_finite').
        FitCancelledError: Deadline passed or cancel() returned True.
    """
    beta = np.asarray(beta0, dtype=np.float64).copy()
    loglik, score, info = objective(beta)
    if not np.isfinite(loglik):
        raise NonConvergenceError(
            "log-likelihood is not finite at the starting values",
            0,
            last_coefficients=beta.copy(),
            diagnostic="non_finite",
        )

    history = [loglik]
    n_halvings = 0
    change = np.inf

    for iteration in range(1, max_iter + 1):
        _check_stop(beta, iteration - 1, deadline, cancel)

        try:
            step = np.linalg.solve(info, score)
        except np.linalg.LinAlgError as e:
            raise NonConvergenceError(
                f"information matrix is singular at iteration {iteration}; "
                f"covariates may be collinear or perfectly separate events",
                iteration - 1,
                last_coefficients=beta.copy(),
                diagnostic="singular_information",
            ) from e
        if not np.all(np.isfinite(step)):
            raise NonConvergenceError(
                f"non-finite Newton step at iteration {iteration}",
                iteration - 1,
                last_coefficients=beta.copy(),
                diagnostic="non_finite",
            )

        max_step = np.max(np.abs(step)) if len(step) > 0 else 0.0
        if max_step > MAX_STEP:
            step = step * (MAX_STEP / max_step)

        candidate = beta + step
        new_loglik, new_score, new_info = objective(candidate)
        halvings = 0
        while not (np.isfinite(new_loglik) and new_loglik >= loglik):
            if halvings >= MAX_HALVINGS:
                # No ascent direction left at machine precision
                candidate = beta
                new_loglik, new_score, new_info = loglik, score, info
                break
            step = step / 2.0
            candidate = beta + step
            new_loglik, new_score, new_info = objective(candidate)
            halvings += 1
        n_halvings += halvings

        change = abs(new_loglik - loglik) / (abs(loglik) + 0.1)
        beta = candidate
        loglik, score, info = new_loglik, new_score, new_info
        history.append(loglik)

        if change <= tol:
            return NewtonResult(
                beta=beta,
                loglik=loglik,
                score=score,
                information=info,
                n_iter=iteration,
                loglik_history=tuple(history),
                n_halvings=n_halvings,
            )

    raise NonConvergenceError(
        f"Newton-Raphson did not converge in {max_iter} iterations "
        f"(relative log-likelihood change {change:.3g}, tolerance {tol:g})",
        max_iter,
        last_coefficients=beta.copy(),
        diagnostic="max_iterations",
        final_change=float(change),
        threshold=tol,
    )
