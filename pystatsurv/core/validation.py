"""
Input validation utilities for PyStatSurv.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - No silent type coercion (except np.asarray on array-likes)
    - No default handling of edge cases
    - Clear, actionable error messages with actual values
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray
from typing import Any

from pystatsurv.core.exceptions import (
    DimensionError,
    InvalidDataError,
    ValidationError,
)


def check_array(
    array: ArrayLike,
    name: str,
) -> NDArray[np.floating[Any]]:
    """
    Validate and convert input to a float64 numpy array.

    Rejects inputs that result in object dtype (indicating mixed types or
    non-numeric data) and non-numeric dtypes.

    Args:
        array: Input to validate
        name: Parameter name for error messages

    Returns:
        numpy.ndarray with floating dtype

    Raises:
        InvalidDataError: If input cannot be converted to numeric array
    """
    try:
        result = np.asarray(array)
    except (ValueError, TypeError) as e:
        raise InvalidDataError(f"{name}: cannot convert to array: {e}") from e

    if result.dtype == object:
        raise InvalidDataError(
            f"{name}: converted to object dtype, indicating mixed types or non-numeric data"
        )

    if result.dtype == np.bool_:
        result = result.astype(np.float64)

    if not np.issubdtype(result.dtype, np.number):
        raise InvalidDataError(
            f"{name}: non-numeric dtype {result.dtype}, expected numeric data"
        )

    if not np.issubdtype(result.dtype, np.floating):
        result = result.astype(np.float64)

    return result.astype(np.float64, copy=False)


def check_finite(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify array contains no NaN or Inf values.

    Raises:
        InvalidDataError: If array contains non-finite values
    """
    if not np.all(np.isfinite(array)):
        n_nan = int(np.sum(np.isnan(array)))
        n_inf = int(np.sum(np.isinf(array)))
        raise InvalidDataError(
            f"{name}: contains non-finite values ({n_nan} NaN, {n_inf} Inf)"
        )


def check_ndim(array: NDArray, ndim: int, name: str) -> None:
    """
    Verify array has exactly the specified number of dimensions.

    Raises:
        DimensionError: If array has wrong number of dimensions
    """
    if array.ndim != ndim:
        raise DimensionError(
            f"{name}: expected {ndim}D array, got {array.ndim}D with shape {array.shape}"
        )


def check_1d(array: NDArray, name: str) -> None:
    """Verify array is 1-dimensional."""
    check_ndim(array, 1, name)


def check_2d(array: NDArray, name: str) -> None:
    """Verify array is 2-dimensional."""
    check_ndim(array, 2, name)


def check_consistent_length(
    *arrays: NDArray,
    names: tuple[str, ...]
) -> None:
    """
    Verify all arrays have the same length (first dimension).

    Raises:
        ValueError: If number of names doesn't match number of arrays
        DimensionError: If arrays have inconsistent lengths
    """
    if len(arrays) != len(names):
        raise ValueError(
            f"Number of arrays ({len(arrays)}) must match number of names ({len(names)})"
        )

    if len(arrays) < 2:
        return

    lengths = [arr.shape[0] for arr in arrays]
    if len(set(lengths)) > 1:
        details = ", ".join(f"{name}={length}" for name, length in zip(names, lengths))
        raise DimensionError(f"Inconsistent lengths: {details}")


def check_non_empty(array: NDArray, name: str) -> None:
    """
    Verify array has at least one observation.

    Raises:
        InvalidDataError: If the first dimension is zero
    """
    if array.shape[0] == 0:
        raise InvalidDataError(f"{name}: dataset must contain at least one observation")


def check_non_negative(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify every value is >= 0.

    Raises:
        InvalidDataError: If any value is negative, reporting the first offender
    """
    negative = np.flatnonzero(array < 0)
    if len(negative) > 0:
        first = int(negative[0])
        raise InvalidDataError(
            f"{name}: must be non-negative, got {array[first]} at index {first} "
            f"({len(negative)} negative values)"
        )


def check_codes(
    array: NDArray[np.floating[Any]],
    allowed: tuple[int, ...],
    name: str,
) -> NDArray[np.int64]:
    """
    Verify an integer-coded array only takes values in ``allowed``.

    Args:
        array: Codes (float or int dtype)
        allowed: Permitted integer codes
        name: Parameter name for error messages

    Returns:
        The codes as int64

    Raises:
        InvalidDataError: If any code is non-integral or not in ``allowed``
    """
    unique = np.unique(array)
    bad = unique[~np.isin(unique, np.asarray(allowed, dtype=np.float64))]
    if len(bad) > 0:
        raise InvalidDataError(
            f"{name}: codes must be in {list(allowed)}, "
            f"got unexpected values {bad.tolist()}"
        )
    return array.astype(np.int64)


def check_in_unit_interval(value: float, name: str) -> None:
    """
    Verify a scalar lies strictly inside (0, 1).

    Raises:
        ValidationError: If the value is outside the open interval
    """
    if not 0.0 < value < 1.0:
        raise ValidationError(f"{name} must be in (0, 1), got {value}")
