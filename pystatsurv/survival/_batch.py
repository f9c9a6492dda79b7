"""
Batch fitting: one model per item, failures isolated per item.

Fits share only the immutable dataset, so they can run on a thread pool
without locking. Results are returned in input order regardless of the
order in which workers finish.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Sequence, TypeVar

import numpy as np

from pystatsurv.core.exceptions import (
    NumericalError,
    PyStatSurvError,
    ValidationError,
)
from pystatsurv.survival.solution import BatchEntry

S = TypeVar('S')

# Errors that mark one item as failed instead of aborting the batch
ISOLATED_ERRORS = (PyStatSurvError, np.linalg.LinAlgError, FloatingPointError)


def _run_one(name: str, fit_one: Callable[[str], S]) -> BatchEntry:
    try:
        return BatchEntry(name=name, solution=fit_one(name), error=None)
    except ISOLATED_ERRORS as exc:
        error = exc
        if not isinstance(exc, PyStatSurvError):
            error = NumericalError(f"{type(exc).__name__}: {exc}")
            error.__cause__ = exc
        return BatchEntry(name=name, solution=None, error=error)


def run_batch(
    names: Sequence[str],
    fit_one: Callable[[str], S],
    max_workers: int = 1,
) -> list[BatchEntry]:
    """Apply ``fit_one`` to every name.

    Parameters
    ----------
    names : sequence of str
        Items to fit, in output order.
    fit_one : callable
        ``fit_one(name) -> solution``; may raise.
    max_workers : int
        1 runs sequentially; larger values use a ThreadPoolExecutor.

    Returns
    -------
    list of BatchEntry
        One entry per name, in input order.
    """
    if max_workers < 1:
        raise ValidationError(f"max_workers must be >= 1, got {max_workers}")
    names = list(names)

    if max_workers == 1 or len(names) <= 1:
        return [_run_one(name, fit_one) for name in names]

    entries: list[BatchEntry | None] = [None] * len(names)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(_run_one, name, fit_one): i
            for i, name in enumerate(names)
        }
        for future in as_completed(futures):
            entries[futures[future]] = future.result()
    return entries
