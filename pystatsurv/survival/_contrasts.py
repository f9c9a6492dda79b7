"""
Contrast coding for categorical covariates.

Translates a factor (array of labels) into numeric covariate columns.
Each generated column remembers its identity as (term, level) so that
results from different models can be lined up by covariate level.

Key concepts:
    - Treatment coding: k-1 indicator columns (reference = first level)
    - Deviation coding: k-1 columns summing to zero (reference = last level)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pystatsurv.core.exceptions import InvalidDataError

CODINGS = ("treatment", "deviation")


@dataclass(frozen=True)
class EncodedFactor:
    """
    Numeric encoding of one factor.

    Attributes:
        term: factor name
        X: (n, k-1) float64 coded columns
        levels: the k-1 coded level names, in column order
        reference: the reference level absent from the columns
        coding: 'treatment' or 'deviation'
    """
    term: str
    X: NDArray[np.floating[Any]]
    levels: tuple[str, ...]
    reference: str
    coding: str

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column_label(self.term, level) for level in self.levels)


def column_label(term: str, level: str | None) -> str:
    """Column name for a factor level, e.g. ``sex[male]``."""
    if level is None:
        return term
    return f"{term}[{level}]"


def factor_levels(factor: NDArray, reference: str | None = None) -> list[str]:
    """Sorted level labels, with ``reference`` moved to the front if given."""
    levels = sorted(set(str(v) for v in factor))
    if reference is not None:
        reference = str(reference)
        if reference not in levels:
            raise InvalidDataError(
                f"reference level {reference!r} not among levels {levels}"
            )
        levels.remove(reference)
        levels.insert(0, reference)
    return levels


def encode_factor(
    term: str,
    factor: NDArray,
    *,
    coding: str = "treatment",
    reference: str | None = None,
) -> EncodedFactor:
    """
    Encode a single factor.

    Args:
        term: factor name (used for column labels)
        factor: 1D array of group labels (strings or integers)
        coding: 'treatment' (default) or 'deviation'
        reference: level to use as reference (treatment: baseline,
            deviation: the level coded -1). Defaults to the first sorted
            level for treatment and the last for deviation.

    Returns:
        EncodedFactor
    """
    if coding not in CODINGS:
        raise InvalidDataError(
            f"coding must be one of {CODINGS}, got {coding!r}"
        )

    factor_str = np.array([str(v) for v in np.asarray(factor).ravel()])
    levels = factor_levels(factor_str, reference)
    if len(levels) < 2:
        raise InvalidDataError(
            f"factor {term!r}: need at least 2 levels to encode, got {levels}"
        )

    if coding == "deviation" and reference is None:
        levels = [levels[-1]] + levels[:-1]

    ref = levels[0]
    coded = levels[1:]
    X = np.zeros((len(factor_str), len(coded)), dtype=np.float64)

    for j, level in enumerate(coded):
        X[factor_str == level, j] = 1.0
        if coding == "deviation":
            X[factor_str == ref, j] = -1.0

    return EncodedFactor(
        term=term,
        X=X,
        levels=tuple(coded),
        reference=ref,
        coding=coding,
    )
