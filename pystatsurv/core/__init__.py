"""
Core infrastructure for PyStatSurv.

This module provides shared abstractions and utilities used by the
survival engine.

Key components:
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing and deadline helpers
"""

from pystatsurv.core.result import Result
from pystatsurv.core.exceptions import (
    PyStatSurvError,
    ValidationError,
    DimensionError,
    InvalidDataError,
    InvalidModelSpecError,
    NumericalError,
    ConvergenceError,
    NonConvergenceError,
    FitCancelledError,
    UndefinedStatisticWarning,
)

__all__ = [
    # Result
    "Result",
    # Exceptions
    "PyStatSurvError",
    "ValidationError",
    "DimensionError",
    "InvalidDataError",
    "InvalidModelSpecError",
    "NumericalError",
    "ConvergenceError",
    "NonConvergenceError",
    "FitCancelledError",
    # Warnings
    "UndefinedStatisticWarning",
]
