"""
Exception hierarchy for PyStatSurv.

All exceptions inherit from PyStatSurvError to allow catching any
library-specific error. Survival-specific failures (bad data, bad model
specification, non-convergence) are subclasses of the generic categories
here so callers can catch either level.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""

from __future__ import annotations

from typing import Any


class PyStatSurvError(Exception):
    """Base exception for all PyStatSurv errors."""
    pass


class ValidationError(PyStatSurvError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions or
    when multiple arrays have inconsistent shapes.
    """
    pass


class InvalidDataError(ValidationError):
    """
    Survival data violates a dataset invariant.

    Negative or non-finite times, event codes outside the declared domain,
    an empty dataset, covariate vectors of inconsistent length, or a
    regression requested on data without a single event.
    """
    pass


class InvalidModelSpecError(ValidationError):
    """
    The explanatory-term list cannot describe a valid model.

    Unknown covariate names, stratifying variables with fewer than two
    levels, or mutually exclusive terms (cluster-robust variance together
    with a frailty term) requested on one fit.
    """
    pass


class NumericalError(PyStatSurvError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class ConvergenceError(PyStatSurvError):
    """
    Iterative algorithm failed to converge.

    Attributes:
        iterations: Number of iterations completed
        final_change: Final parameter or objective change
        reason: Why convergence failed (e.g., 'max_iterations', 'diverging')
        threshold: The convergence threshold that was not met
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None
    ):
        super().__init__(message)
        self.iterations = iterations
        self.final_change = final_change
        self.reason = reason
        self.threshold = threshold


class NonConvergenceError(ConvergenceError):
    """
    Newton-Raphson fit could not produce a trustworthy estimate.

    Raised instead of returning a misleading coefficient vector: the
    iteration bound was exceeded, the information matrix became numerically
    singular (perfect separation, collinear covariates), or the fit was
    stopped by a deadline or cancellation signal.

    Attributes:
        last_coefficients: The last accepted iterate, for diagnosis
        diagnostic: One of 'max_iterations', 'singular_information',
            'non_finite', 'deadline', 'cancelled'
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        *,
        last_coefficients: Any = None,
        diagnostic: str = "max_iterations",
        final_change: float | None = None,
        threshold: float | None = None
    ):
        super().__init__(
            message,
            iterations=iterations,
            final_change=final_change,
            reason=diagnostic,
            threshold=threshold,
        )
        self.last_coefficients = last_coefficients
        self.diagnostic = diagnostic


class FitCancelledError(NonConvergenceError):
    """A fit was stopped between iterations by a deadline or cancel signal."""
    pass


class UndefinedStatisticWarning(UserWarning):
    """
    A requested statistic is not defined for this data.

    Non-fatal. The statistic is reported as the NOT_REACHED sentinel
    (e.g. median survival when the curve never drops to 0.5).
    """
    pass
