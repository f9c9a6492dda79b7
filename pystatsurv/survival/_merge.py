"""
Result composition: line up coefficients from several fits.

Rows are keyed by covariate identity ``(term, level)`` so a factor level
lines up across models even when the models cover different covariates.
The join is an outer join; a model without a row contributes NaN. Each
numeric column is tagged with its source model, e.g. ``"multivariable: HR"``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from pystatsurv.core.exceptions import ValidationError
from pystatsurv.survival._contrasts import column_label
from pystatsurv.survival.solution import (
    CompetingRisksSolution,
    UnivariableSweep,
    _RegressionSolution,
)

if TYPE_CHECKING:
    import pandas as pd

Key = tuple[str, 'str | None']

STATISTICS = ("lower", "upper", "p")


@dataclass(frozen=True)
class ResultTable:
    """Merged coefficient table.

    Attributes
    ----------
    keys : tuple of (term, level)
        Row identities in display order.
    labels : tuple of str
        Row labels, ``term`` or ``term[level]``.
    columns : tuple of str
        ``"<model>: <statistic>"`` column names.
    values : NDArray
        (rows, columns) numbers; NaN where a model has no such row.
    models : tuple of str
        Model labels in column order.
    references : frozenset of (term, level)
        Rows that are factor reference levels.
    errors : dict
        Failed batch items, ``"<model>: <item>" -> message``.
    """

    keys: tuple[Key, ...]
    labels: tuple[str, ...]
    columns: tuple[str, ...]
    values: NDArray
    models: tuple[str, ...]
    references: frozenset
    errors: dict[str, str]

    def __len__(self) -> int:
        return len(self.keys)

    def column(self, name: str) -> NDArray:
        if name not in self.columns:
            raise KeyError(f"no column {name!r}; columns are {list(self.columns)}")
        return self.values[:, self.columns.index(name)]

    def row(self, term: str, level: str | None = None) -> dict[str, float]:
        key = (term, level)
        if key not in self.keys:
            raise KeyError(f"no row for {column_label(term, level)!r}")
        i = self.keys.index(key)
        return {c: float(v) for c, v in zip(self.columns, self.values[i])}

    def to_records(self) -> list[dict[str, Any]]:
        """One dict per row: identity fields followed by every column."""
        records = []
        for i, (term, level) in enumerate(self.keys):
            rec: dict[str, Any] = {
                'term': term,
                'level': level,
                'label': self.labels[i],
                'reference': (term, level) in self.references,
            }
            rec.update(
                {c: float(v) for c, v in zip(self.columns, self.values[i])}
            )
            records.append(rec)
        return records

    def to_frame(self) -> pd.DataFrame:
        """pandas DataFrame indexed by row label (requires pandas)."""
        import pandas as pd
        df = pd.DataFrame(self.values, columns=list(self.columns))
        df.insert(0, 'term', [k[0] for k in self.keys])
        df.insert(1, 'level', [k[1] for k in self.keys])
        df.index = pd.Index(self.labels, name='covariate')
        return df

    def __repr__(self) -> str:
        return (
            f"ResultTable(rows={len(self.keys)}, models={list(self.models)})"
        )


def _ratio_name(solution: _RegressionSolution) -> str:
    return "SHR" if isinstance(solution, CompetingRisksSolution) else "HR"


def _normalize(items: tuple[Any, ...]) -> list[tuple[str, Any]]:
    labelled = []
    for i, item in enumerate(items, start=1):
        if isinstance(item, tuple) and len(item) == 2 and isinstance(item[0], str):
            label, obj = item
        else:
            label = "univariable" if isinstance(item, UnivariableSweep) else f"model{i}"
            obj = item
        if not isinstance(obj, (_RegressionSolution, UnivariableSweep)):
            raise ValidationError(
                f"cannot merge {type(obj).__name__}; expected a regression "
                f"solution or a univariable sweep"
            )
        labelled.append((label, obj))

    seen = [label for label, _ in labelled]
    duplicated = sorted({x for x in seen if seen.count(x) > 1})
    if duplicated:
        raise ValidationError(f"duplicate model labels: {duplicated}")
    return labelled


def merge_results(*items: Any) -> ResultTable:
    """Merge regression results into one table keyed by (term, level).

    Parameters
    ----------
    *items
        CoxSolution, FrailtySolution, CompetingRisksSolution or
        UnivariableSweep objects, each optionally given as a
        ``(label, result)`` pair. Unlabelled results are named
        ``model1``, ``model2``, ... by position (``univariable`` for a
        sweep).

    Returns
    -------
    ResultTable
        Per model the columns ``HR`` (``SHR`` for Fine-Gray), ``lower``,
        ``upper`` and ``p``. Under treatment coding each factor gets its
        reference level as a row with ratio 1 in the models that use it.
    """
    if not items:
        raise ValidationError("merge_results needs at least one result")
    labelled = _normalize(items)

    keys: list[Key] = []
    index: dict[Key, int] = {}
    references: set[Key] = set()

    def add_key(key: Key) -> None:
        if key not in index:
            index[key] = len(keys)
            keys.append(key)

    # Per model: ratio column name, fitted rows, reference rows
    plans = []
    errors: dict[str, str] = {}
    for label, obj in labelled:
        if isinstance(obj, UnivariableSweep):
            solutions = list(obj.solutions.values())
            for name, err in obj.errors.items():
                errors[f"{label}: {name}"] = str(err)
            ratio = "HR"
        else:
            solutions = [obj]
            ratio = _ratio_name(obj)

        rows: dict[Key, tuple[float, float, float, float]] = {}
        ref_rows: set[Key] = set()
        for sol in solutions:
            dataset = sol.dataset
            for j, (term, level) in enumerate(sol.column_terms):
                if (
                    level is not None
                    and dataset.coding == "treatment"
                    and term in dataset.references
                ):
                    ref_key = (term, dataset.references[term])
                    add_key(ref_key)
                    references.add(ref_key)
                    ref_rows.add(ref_key)
                key = (term, level)
                add_key(key)
                rows[key] = (
                    float(sol.hazard_ratios[j]),
                    float(sol.ci_lower[j]),
                    float(sol.ci_upper[j]),
                    float(sol.p_values[j]),
                )
        plans.append((label, ratio, rows, ref_rows))

    columns: list[str] = []
    values = np.full((len(keys), 4 * len(plans)), np.nan, dtype=np.float64)
    for m, (label, ratio, rows, ref_rows) in enumerate(plans):
        columns.extend(f"{label}: {s}" for s in (ratio,) + STATISTICS)
        base = 4 * m
        for key, stats in rows.items():
            values[index[key], base:base + 4] = stats
        for key in ref_rows:
            values[index[key], base] = 1.0

    return ResultTable(
        keys=tuple(keys),
        labels=tuple(column_label(t, lv) for t, lv in keys),
        columns=tuple(columns),
        values=values,
        models=tuple(label for label, _ in labelled),
        references=frozenset(references),
        errors=errors,
    )
