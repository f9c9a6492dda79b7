"""
FitOptions: explicit per-call configuration for survival regression.

Every setting that would otherwise be an ambient default (tie handling,
tolerances, iteration bounds, confidence level) is a field here. Nothing
is read from module-level state, so concurrent fits cannot interfere.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Literal

from pystatsurv.core.exceptions import ValidationError
from pystatsurv.core.validation import check_in_unit_interval


@dataclass(frozen=True)
class FitOptions:
    """Immutable options for Cox, frailty and Fine-Gray fits.

    Parameters
    ----------
    ties : str
        Tied event time handling: "efron" (default) or "breslow".
    tol : float
        Convergence tolerance on the relative change in log partial
        likelihood between accepted Newton-Raphson iterates.
    max_iter : int
        Newton-Raphson iteration bound. Exceeding it raises
        NonConvergenceError.
    outer_max_iter : int
        Iteration bound for the frailty variance search.
    conf_level : float
        Confidence level for hazard-ratio intervals.
    robust : bool
        Report the sandwich variance even without a cluster term
        (each observation is its own cluster).
    deadline : float or None
        Absolute ``time.monotonic()`` value after which the fit stops.
    cancel : callable or None
        Zero-argument callable; returning True stops the fit.
    """

    ties: Literal["efron", "breslow"] = "efron"
    tol: float = 1e-9
    max_iter: int = 20
    outer_max_iter: int = 30
    conf_level: float = 0.95
    robust: bool = False
    deadline: float | None = None
    cancel: Callable[[], bool] | None = None

    def __post_init__(self) -> None:
        if self.ties not in ("efron", "breslow"):
            raise ValidationError(
                f"ties must be 'efron' or 'breslow', got '{self.ties}'"
            )
        if self.tol <= 0:
            raise ValidationError(f"tol must be positive, got {self.tol}")
        if self.max_iter < 1:
            raise ValidationError(f"max_iter must be >= 1, got {self.max_iter}")
        if self.outer_max_iter < 1:
            raise ValidationError(
                f"outer_max_iter must be >= 1, got {self.outer_max_iter}"
            )
        check_in_unit_interval(self.conf_level, "conf_level")

    def replace(self, **changes) -> FitOptions:
        """Return a copy with the given fields changed."""
        return replace(self, **changes)


DEFAULT_OPTIONS = FitOptions()
