"""
SurvivalDataset: immutable container for time-to-event data.

Wraps observed times, event codes, a named covariate matrix, and optional
cluster / stratum identifiers. Validates inputs at construction time; all
downstream code trusts clean data. Every transformation (subset, column
selection, event recoding) returns a new dataset; arrays are read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from pystatsurv.core.exceptions import (
    DimensionError,
    InvalidDataError,
    InvalidModelSpecError,
)
from pystatsurv.core.validation import (
    check_1d,
    check_2d,
    check_array,
    check_codes,
    check_consistent_length,
    check_finite,
    check_non_empty,
    check_non_negative,
)
from pystatsurv.survival._contrasts import column_label, encode_factor

if TYPE_CHECKING:
    import pandas as pd


CENSORED = 0
EVENT = 1
COMPETING = 2

EVENT_DOMAINS: dict[str, tuple[int, ...]] = {
    "survival": (CENSORED, EVENT),
    "competing": (CENSORED, EVENT, COMPETING),
}

# Reserved names that address the observation-level identifiers in terms
CLUSTER_KEY = "cluster"
STRATUM_KEY = "stratum"


@dataclass(frozen=True)
class Observation:
    """One subject's record.

    Parameters
    ----------
    time : float
        Observed time (event or censoring), >= 0.
    event : int
        0 = censored, 1 = event (of interest), 2 = competing event.
    covariates : sequence of float
        Covariate values in schema order.
    id : hashable or None
        Subject identifier. Defaults to the row position.
    cluster : hashable or None
        Cluster identifier (robust variance, frailty).
    stratum : hashable or None
        Stratum identifier.
    """

    time: float
    event: int
    covariates: tuple[float, ...] = ()
    id: Any = None
    cluster: Any = None
    stratum: Any = None


def _readonly(arr: NDArray | None) -> NDArray | None:
    if arr is None:
        return None
    arr = np.array(arr, copy=True)
    arr.setflags(write=False)
    return arr


def _labels(values: Any, name: str, n: int) -> NDArray:
    arr = np.asarray(values).ravel()
    if len(arr) != n:
        raise DimensionError(
            f"{name} must have {n} elements to match time, got {len(arr)}"
        )
    if arr.dtype == object and any(v is None for v in arr):
        raise InvalidDataError(f"{name}: missing identifier (None) in labels")
    return arr


@dataclass(frozen=True, eq=False)
class SurvivalDataset:
    """Immutable, validated survival data.

    Construct via ``build_dataset``, ``from_arrays`` or ``from_dataframe``,
    not directly.

    Attributes
    ----------
    time : NDArray
        (n,) observed times.
    event : NDArray
        (n,) int64 event codes in the declared domain.
    X : NDArray
        (n, p) covariate matrix (p may be 0).
    names : tuple of str
        Column names of X.
    column_terms : tuple of (term, level)
        Identity of each column; level is None for numeric covariates.
    references : Mapping[str, str]
        Reference level for each factor term.
    factors : Mapping[str, NDArray]
        Original labels for each factor term.
    ids, cluster, strata : NDArray or None
        Observation-level identifiers.
    event_domain : str
        "survival" ({0, 1}) or "competing" ({0, 1, 2}).
    coding : str
        Contrast coding used for the factor terms.
    """

    time: NDArray
    event: NDArray
    X: NDArray
    names: tuple[str, ...]
    column_terms: tuple[tuple[str, str | None], ...]
    references: Mapping[str, str]
    factors: Mapping[str, NDArray]
    ids: NDArray
    cluster: NDArray | None
    strata: NDArray | None
    event_domain: str
    coding: str = "treatment"

    # ── Construction ────────────────────────────────────────────────

    @classmethod
    def from_arrays(
        cls,
        time,
        event,
        X=None,
        *,
        names: Sequence[str] | None = None,
        factors: Mapping[str, Any] | None = None,
        coding: str = "treatment",
        references: Mapping[str, str] | None = None,
        cluster=None,
        strata=None,
        ids=None,
        event_domain: str = "survival",
    ) -> SurvivalDataset:
        """Create and validate a dataset from arrays.

        Parameters
        ----------
        time : array-like
            Time to event or censoring.
        event : array-like
            Event codes (0/1, or 0/1/2 for event_domain="competing").
        X : array-like or None
            Numeric covariate matrix (n, p) or vector (n,).
        names : sequence of str or None
            Column names for X. Defaults to x0, x1, ...
        factors : mapping or None
            Categorical covariates {name: labels}; each is expanded into
            coded columns appended after X.
        coding : str
            Contrast coding for factors: "treatment" or "deviation".
        references : mapping or None
            Reference level per factor.
        cluster, strata, ids : array-like or None
            Observation-level identifiers.
        event_domain : str
            "survival" or "competing".

        Raises
        ------
        InvalidDataError
            If any dataset invariant is violated.
        """
        if event_domain not in EVENT_DOMAINS:
            raise InvalidDataError(
                f"event_domain must be one of {list(EVENT_DOMAINS)}, "
                f"got {event_domain!r}"
            )

        time_arr = check_array(time, "time").ravel()
        check_non_empty(time_arr, "time")
        check_finite(time_arr, "time")
        check_non_negative(time_arr, "time")
        n = len(time_arr)

        event_arr = check_array(event, "event").ravel()
        check_consistent_length(time_arr, event_arr, names=("time", "event"))
        check_finite(event_arr, "event")
        event_codes = check_codes(event_arr, EVENT_DOMAINS[event_domain], "event")

        if X is None:
            X_arr = np.zeros((n, 0), dtype=np.float64)
        else:
            X_arr = check_array(X, "X")
            if X_arr.ndim == 1:
                X_arr = X_arr.reshape(-1, 1)
            check_2d(X_arr, "X")
            if X_arr.shape[0] != n:
                raise InvalidDataError(
                    f"X must have {n} rows to match time, got {X_arr.shape[0]}"
                )
            check_finite(X_arr, "X")

        p = X_arr.shape[1]
        if names is None:
            col_names = [f"x{j}" for j in range(p)]
        else:
            col_names = [str(nm) for nm in names]
            if len(col_names) != p:
                raise InvalidDataError(
                    f"names must have {p} entries to match X columns, "
                    f"got {len(col_names)}"
                )
        column_terms: list[tuple[str, str | None]] = [(nm, None) for nm in col_names]

        blocks = [X_arr]
        factor_store: dict[str, NDArray] = {}
        reference_store: dict[str, str] = {}
        for term, labels in (factors or {}).items():
            labels_arr = _labels(labels, f"factor {term!r}", n)
            ref = None if references is None else references.get(term)
            encoded = encode_factor(term, labels_arr, coding=coding, reference=ref)
            blocks.append(encoded.X)
            col_names.extend(encoded.column_names)
            column_terms.extend((term, level) for level in encoded.levels)
            factor_store[term] = _readonly(labels_arr)
            reference_store[term] = encoded.reference

        if len(set(col_names)) != len(col_names):
            raise InvalidDataError(f"duplicate covariate names: {col_names}")

        ids_arr = np.arange(n) if ids is None else _labels(ids, "ids", n)
        cluster_arr = None if cluster is None else _labels(cluster, "cluster", n)
        strata_arr = None if strata is None else _labels(strata, "strata", n)

        return cls(
            time=_readonly(time_arr),
            event=_readonly(event_codes),
            X=_readonly(np.hstack(blocks)),
            names=tuple(col_names),
            column_terms=tuple(column_terms),
            references=MappingProxyType(reference_store),
            factors=MappingProxyType(factor_store),
            ids=_readonly(ids_arr),
            cluster=_readonly(cluster_arr),
            strata=_readonly(strata_arr),
            event_domain=event_domain,
            coding=coding,
        )

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        *,
        time: str,
        event: str,
        covariates: Sequence[str] = (),
        factors: Sequence[str] = (),
        cluster: str | None = None,
        strata: str | None = None,
        id: str | None = None,
        coding: str = "treatment",
        references: Mapping[str, str] | None = None,
        event_domain: str = "survival",
    ) -> SurvivalDataset:
        """Create a dataset from named DataFrame columns."""
        missing = [
            c for c in [time, event, *covariates, *factors, cluster, strata, id]
            if c is not None and c not in df.columns
        ]
        if missing:
            raise InvalidDataError(f"columns not found in DataFrame: {missing}")

        X = None
        if covariates:
            X = df[list(covariates)].to_numpy(dtype=np.float64)

        return cls.from_arrays(
            df[time].to_numpy(),
            df[event].to_numpy(),
            X,
            names=list(covariates),
            factors={f: df[f].to_numpy() for f in factors},
            coding=coding,
            references=references,
            cluster=None if cluster is None else df[cluster].to_numpy(),
            strata=None if strata is None else df[strata].to_numpy(),
            ids=None if id is None else df[id].to_numpy(),
            event_domain=event_domain,
        )

    # ── Properties ──────────────────────────────────────────────────

    @property
    def n(self) -> int:
        """Number of observations."""
        return len(self.time)

    def __len__(self) -> int:
        return self.n

    @property
    def p(self) -> int:
        """Number of covariate columns."""
        return self.X.shape[1]

    @property
    def n_events(self) -> int:
        """Number of events of interest (code 1)."""
        return int(np.sum(self.event == EVENT))

    @property
    def n_competing(self) -> int:
        """Number of competing events (code 2)."""
        return int(np.sum(self.event == COMPETING))

    @property
    def n_censored(self) -> int:
        return int(np.sum(self.event == CENSORED))

    @property
    def terms(self) -> tuple[str, ...]:
        """Distinct term names in column order (a factor appears once)."""
        seen: dict[str, None] = {}
        for term, _ in self.column_terms:
            seen.setdefault(term, None)
        return tuple(seen)

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            'n': self.n,
            'p': self.p,
            'n_events': self.n_events,
            'n_competing': self.n_competing,
            'n_censored': self.n_censored,
            'event_domain': self.event_domain,
        }

    # ── Column access ───────────────────────────────────────────────

    def columns_for(self, name: str) -> list[int]:
        """Column indices addressed by a column name or factor term name."""
        if name in self.names:
            return [self.names.index(name)]
        idx = [j for j, (term, _) in enumerate(self.column_terms) if term == name]
        if not idx:
            raise InvalidModelSpecError(
                f"unknown covariate {name!r}; available: {list(self.terms)}"
            )
        return idx

    def labels(self, name: str) -> NDArray:
        """Grouping labels for a name: factor labels, a numeric column,
        or the reserved 'cluster' / 'stratum' identifiers."""
        if name in self.factors:
            return self.factors[name]
        if name in self.names:
            return self.X[:, self.names.index(name)]
        if name == CLUSTER_KEY and self.cluster is not None:
            return self.cluster
        if name == STRATUM_KEY and self.strata is not None:
            return self.strata
        raise InvalidModelSpecError(
            f"unknown grouping variable {name!r}; available: "
            f"{list(self.terms) + self._reserved_available()}"
        )

    def _reserved_available(self) -> list[str]:
        out = []
        if self.cluster is not None:
            out.append(CLUSTER_KEY)
        if self.strata is not None:
            out.append(STRATUM_KEY)
        return out

    def observation(self, i: int) -> Observation:
        """Reconstruct observation ``i``."""
        return Observation(
            time=float(self.time[i]),
            event=int(self.event[i]),
            covariates=tuple(float(v) for v in self.X[i]),
            id=self.ids[i],
            cluster=None if self.cluster is None else self.cluster[i],
            stratum=None if self.strata is None else self.strata[i],
        )

    # ── Transformations (all return new datasets) ───────────────────

    def subset(self, rows) -> SurvivalDataset:
        """Dataset restricted to ``rows`` (boolean mask or integer indices)."""
        rows = np.asarray(rows)
        if rows.dtype == np.bool_:
            if len(rows) != self.n:
                raise DimensionError(
                    f"mask must have {self.n} elements, got {len(rows)}"
                )
            rows = np.flatnonzero(rows)
        if len(rows) == 0:
            raise InvalidDataError("subset selects no observations")

        def take(arr):
            return None if arr is None else _readonly(arr[rows])

        return SurvivalDataset(
            time=take(self.time),
            event=take(self.event),
            X=take(self.X),
            names=self.names,
            column_terms=self.column_terms,
            references=self.references,
            factors=MappingProxyType({k: take(v) for k, v in self.factors.items()}),
            ids=take(self.ids),
            cluster=take(self.cluster),
            strata=take(self.strata),
            event_domain=self.event_domain,
            coding=self.coding,
        )

    def select(self, names: Iterable[str]) -> SurvivalDataset:
        """Dataset keeping only the columns addressed by ``names``."""
        cols: list[int] = []
        for name in names:
            for j in self.columns_for(name):
                if j not in cols:
                    cols.append(j)
        kept_terms = {self.column_terms[j][0] for j in cols}
        return SurvivalDataset(
            time=self.time,
            event=self.event,
            X=_readonly(self.X[:, cols]),
            names=tuple(self.names[j] for j in cols),
            column_terms=tuple(self.column_terms[j] for j in cols),
            references=MappingProxyType(
                {k: v for k, v in self.references.items() if k in kept_terms}
            ),
            factors=MappingProxyType(
                {k: v for k, v in self.factors.items() if k in kept_terms}
            ),
            ids=self.ids,
            cluster=self.cluster,
            strata=self.strata,
            event_domain=self.event_domain,
            coding=self.coding,
        )

    def with_event_of_interest(self, code: int = EVENT) -> SurvivalDataset:
        """Binary-coded copy: ``code`` becomes 1, everything else censored.

        For competing-risks data this yields the cause-specific dataset.
        """
        if code not in EVENT_DOMAINS[self.event_domain] or code == CENSORED:
            raise InvalidDataError(
                f"code must be an event code of domain {self.event_domain!r}, "
                f"got {code}"
            )
        binary = (self.event == code).astype(np.int64)
        return SurvivalDataset(
            time=self.time,
            event=_readonly(binary),
            X=self.X,
            names=self.names,
            column_terms=self.column_terms,
            references=self.references,
            factors=self.factors,
            ids=self.ids,
            cluster=self.cluster,
            strata=self.strata,
            event_domain="survival",
            coding=self.coding,
        )

    def __repr__(self) -> str:
        return (
            f"SurvivalDataset(n={self.n}, events={self.n_events}, "
            f"covariates={list(self.names)})"
        )


def build_dataset(
    observations: Iterable[Observation],
    covariate_names: Sequence[str] | None = None,
    *,
    event_domain: str = "survival",
) -> SurvivalDataset:
    """Validate a collection of Observations into a SurvivalDataset.

    Raises
    ------
    InvalidDataError
        Empty collection, negative time, event code outside the declared
        domain, or covariate vectors of inconsistent length.
    """
    obs = list(observations)
    if len(obs) == 0:
        raise InvalidDataError("dataset must contain at least one observation")

    width = len(obs[0].covariates)
    if covariate_names is not None and len(covariate_names) != width:
        raise InvalidDataError(
            f"covariate schema has {len(covariate_names)} names but the first "
            f"observation has {width} covariates"
        )
    for i, o in enumerate(obs):
        if len(o.covariates) != width:
            raise InvalidDataError(
                f"observation {i}: covariate vector has length "
                f"{len(o.covariates)}, expected {width}"
            )

    def optional_ids(attr: str):
        values = [getattr(o, attr) for o in obs]
        present = [v is not None for v in values]
        if not any(present):
            return None
        if not all(present):
            raise InvalidDataError(
                f"{attr} id given for some observations but not all"
            )
        return np.asarray(values)

    ids = [i if o.id is None else o.id for i, o in enumerate(obs)]
    X = [list(o.covariates) for o in obs] if width > 0 else None

    return SurvivalDataset.from_arrays(
        [o.time for o in obs],
        [o.event for o in obs],
        X,
        names=covariate_names,
        cluster=optional_ids("cluster"),
        strata=optional_ids("stratum"),
        ids=np.asarray(ids),
        event_domain=event_domain,
    )
