"""
Explanatory-term descriptors and model resolution.

A model is described by a list of tagged terms rather than a formula
string:

    Linear("age")      covariate(s) with a coefficient (factors expand)
    Stratum("sex")     separate baseline hazard per level, shared β
    Cluster("family")  cluster-robust (sandwich) variance only
    Frailty("center")  shared gamma random effect per level

``resolve_terms`` checks the combination against a dataset and produces
a ModelDesign. Every specification error is raised there, before any
numerical work begins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Iterable, Mapping

import numpy as np
from numpy.typing import NDArray

from pystatsurv.core.exceptions import InvalidModelSpecError
from pystatsurv.survival.design import EVENT, SurvivalDataset

ROLES = ("linear", "stratum", "cluster", "frailty")


@dataclass(frozen=True)
class Term:
    """Base class for explanatory terms."""

    name: str
    role: ClassVar[str] = ""

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise InvalidModelSpecError(
                f"term name must be a non-empty string, got {self.name!r}"
            )


@dataclass(frozen=True)
class Linear(Term):
    role: ClassVar[str] = "linear"


@dataclass(frozen=True)
class Stratum(Term):
    role: ClassVar[str] = "stratum"


@dataclass(frozen=True)
class Cluster(Term):
    role: ClassVar[str] = "cluster"


@dataclass(frozen=True)
class Frailty(Term):
    role: ClassVar[str] = "frailty"


_BY_ROLE: dict[str, type[Term]] = {
    "linear": Linear,
    "stratum": Stratum,
    "cluster": Cluster,
    "frailty": Frailty,
}


def as_term(entry: Any) -> Term:
    """Coerce an entry to a Term.

    Accepts a Term, a bare string (linear), a ``(name, role)`` pair, or a
    mapping ``{"name": ..., "role": ...}``.
    """
    if isinstance(entry, Term):
        return entry
    if isinstance(entry, str):
        return Linear(entry)
    if isinstance(entry, Mapping):
        name, role = entry.get("name"), entry.get("role", "linear")
    elif isinstance(entry, tuple) and len(entry) == 2:
        name, role = entry
    else:
        raise InvalidModelSpecError(f"cannot interpret {entry!r} as a model term")
    if role not in _BY_ROLE:
        raise InvalidModelSpecError(
            f"term role must be one of {ROLES}, got {role!r}"
        )
    return _BY_ROLE[role](name)


@dataclass(frozen=True, eq=False)
class ModelDesign:
    """Resolved model: arrays ready for estimation.

    Attributes
    ----------
    dataset : SurvivalDataset
        The source dataset (shared, not copied).
    terms : tuple of Term
        The validated term list.
    time : NDArray
        (n,) observed times.
    status : NDArray
        (n,) raw event codes.
    event : NDArray
        (n,) float 0/1 indicator of the event of interest.
    X : NDArray
        (n, p) design matrix of the linear terms.
    names : tuple of str
        Coefficient names.
    column_terms : tuple of (term, level)
        Identity of each coefficient.
    strata, cluster, frailty : NDArray or None
        (n,) integer codes into the matching ``*_labels``.
    """

    dataset: SurvivalDataset
    terms: tuple[Term, ...]
    time: NDArray
    status: NDArray
    event: NDArray
    X: NDArray
    names: tuple[str, ...]
    column_terms: tuple[tuple[str, str | None], ...]
    strata: NDArray | None
    strata_labels: tuple[str, ...]
    cluster: NDArray | None
    cluster_labels: tuple[str, ...]
    frailty: NDArray | None
    frailty_labels: tuple[str, ...]

    @property
    def n(self) -> int:
        return len(self.time)

    @property
    def p(self) -> int:
        return self.X.shape[1]

    @property
    def n_events(self) -> int:
        return int(np.sum(self.event))

    @property
    def n_strata(self) -> int:
        return max(len(self.strata_labels), 1)

    def strata_codes(self) -> NDArray:
        """Stratum codes, all zero when the model is unstratified."""
        if self.strata is None:
            return np.zeros(self.n, dtype=np.intp)
        return self.strata


def _group_codes(labels: NDArray) -> tuple[NDArray, tuple[str, ...]]:
    as_str = np.array([str(v) for v in labels])
    uniq, codes = np.unique(as_str, return_inverse=True)
    return codes.astype(np.intp), tuple(uniq.tolist())


def resolve_terms(
    dataset: SurvivalDataset,
    terms: Iterable[Any],
    *,
    allow_frailty: bool = False,
    robust: bool = False,
) -> ModelDesign:
    """Validate a term list against a dataset.

    Parameters
    ----------
    dataset : SurvivalDataset
    terms : iterable
        Terms or term-like entries (see ``as_term``).
    allow_frailty : bool
        Whether Frailty terms are permitted for this fit.
    robust : bool
        Whether robust variance was requested in the options; counts as a
        cluster-robust request for the frailty exclusivity rule.

    Raises
    ------
    InvalidModelSpecError
        Unknown names, a stratum with fewer than two levels, conflicting
        or duplicated terms, no linear term, or cluster-robust variance
        combined with frailty.
    """
    resolved = tuple(as_term(t) for t in terms)
    if len(resolved) == 0:
        raise InvalidModelSpecError("model needs at least one term")

    by_role: dict[str, list[Term]] = {role: [] for role in ROLES}
    for t in resolved:
        by_role[t.role].append(t)

    linear_names = [t.name for t in by_role["linear"]]
    strata_names = [t.name for t in by_role["stratum"]]
    if len(set(linear_names)) != len(linear_names):
        raise InvalidModelSpecError(f"duplicated linear terms: {linear_names}")
    both = set(linear_names) & set(strata_names)
    if both:
        raise InvalidModelSpecError(
            f"terms used both as linear and stratum: {sorted(both)}"
        )
    if not linear_names:
        raise InvalidModelSpecError("model needs at least one linear term")

    has_cluster = bool(by_role["cluster"]) or robust
    if by_role["frailty"] and has_cluster:
        raise InvalidModelSpecError(
            "cluster-robust variance and a frailty term cannot be combined "
            "on one fit; choose one"
        )
    if by_role["frailty"] and not allow_frailty:
        raise InvalidModelSpecError(
            "frailty terms are fitted with fit_frailty(), not this estimator"
        )
    for role in ("cluster", "frailty"):
        if len(by_role[role]) > 1:
            raise InvalidModelSpecError(
                f"at most one {role} term per model, got "
                f"{[t.name for t in by_role[role]]}"
            )

    cols: list[int] = []
    for name in linear_names:
        cols.extend(dataset.columns_for(name))
    if len(set(cols)) != len(cols):
        raise InvalidModelSpecError(
            f"linear terms {linear_names} address the same column twice"
        )

    strata = None
    strata_labels: tuple[str, ...] = ()
    if strata_names:
        parts = []
        for name in strata_names:
            labels = dataset.labels(name)
            if len(np.unique(np.array([str(v) for v in labels]))) < 2:
                raise InvalidModelSpecError(
                    f"stratum {name!r} has fewer than two levels"
                )
            parts.append(np.array([f"{name}={v}" for v in labels]))
        combined = parts[0]
        for extra in parts[1:]:
            combined = np.char.add(np.char.add(combined, ", "), extra)
        strata, strata_labels = _group_codes(combined)

    cluster = None
    cluster_labels: tuple[str, ...] = ()
    if by_role["cluster"]:
        cluster, cluster_labels = _group_codes(dataset.labels(by_role["cluster"][0].name))

    frailty = None
    frailty_labels: tuple[str, ...] = ()
    if by_role["frailty"]:
        frailty, frailty_labels = _group_codes(dataset.labels(by_role["frailty"][0].name))

    return ModelDesign(
        dataset=dataset,
        terms=resolved,
        time=dataset.time,
        status=dataset.event,
        event=(dataset.event == EVENT).astype(np.float64),
        X=np.ascontiguousarray(dataset.X[:, cols]),
        names=tuple(dataset.names[j] for j in cols),
        column_terms=tuple(dataset.column_terms[j] for j in cols),
        strata=strata,
        strata_labels=strata_labels,
        cluster=cluster,
        cluster_labels=cluster_labels,
        frailty=frailty,
        frailty_labels=frailty_labels,
    )
