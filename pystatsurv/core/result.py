"""
Generic result container for all PyStatSurv computations.

The Result class provides a standardized envelope that every estimator uses.
This enables shared tooling for timing, diagnostics, and reproducibility
while allowing each estimator to define its own parameter structure.

Design decisions:
    - Generic over parameter payload P for type safety
    - info dict for flexible metadata (ties, iterations, loglik history)
    - timing is optional (don't burden unit tests)
    - Immutable (frozen=True) so independent fits never share mutable state
"""

from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope for survival computations.

    Type Parameters:
        P: The estimator-specific parameter payload type

    Attributes:
        params: Estimator-specific parameters (curve, coefficients, tests)
        info: Structured metadata (method, ties, iterations, diagnostics)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the code path that produced this result
        warnings: Non-fatal issues encountered during computation

    Examples:
        >>> # Closed-form estimator (no convergence notion)
        >>> Result(
        ...     params=KMParams(...),
        ...     info={'method': 'Kaplan-Meier'},
        ...     timing={'total_seconds': 0.01},
        ...     backend_name='cpu_km'
        ... )

        >>> # Iterative estimator
        >>> Result(
        ...     params=CoxParams(...),
        ...     info={'method': 'Cox PH', 'ties': 'efron', 'n_iter': 4},
        ...     timing={'total_seconds': 0.05, 'newton_raphson': 0.04},
        ...     backend_name='cpu_cox'
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)
