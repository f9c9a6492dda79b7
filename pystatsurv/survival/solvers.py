"""
Public API for survival analysis.

    kaplan_meier(dataset[, strata]) → KMSolution | StratifiedKMSolution
    survdiff(dataset, group) → LogRankSolution
    cumulative_incidence(dataset) → CumIncSolution
    coxph(dataset, terms) → CoxSolution
    fit_frailty(dataset, terms, frailty) → FrailtySolution
    fit_competing_risks(dataset, terms) → CompetingRisksSolution
    test_proportional_hazards(cox) → PHTestSolution
    univariable_cox(dataset, names) → UnivariableSweep
    merge_results(*results) → ResultTable

Each function validates its inputs, resolves the model, calls a pure fit
function, and wraps the Result in a Solution. Non-fatal diagnostics are
raised as warnings and also kept in ``Result.warnings``.
"""

from __future__ import annotations

import warnings
from typing import Any, Iterable, Literal, Sequence

import numpy as np

from pystatsurv.core.exceptions import (
    InvalidDataError,
    InvalidModelSpecError,
    UndefinedStatisticWarning,
    ValidationError,
)
from pystatsurv.core.result import Result
from pystatsurv.core.compute.timing import Timer
from pystatsurv.core.validation import check_in_unit_interval
from pystatsurv.survival.design import (
    COMPETING,
    EVENT,
    SurvivalDataset,
    build_dataset,
)
from pystatsurv.survival.options import DEFAULT_OPTIONS, FitOptions
from pystatsurv.survival.terms import Frailty, Linear, as_term, resolve_terms
from pystatsurv.survival._common import is_not_reached
from pystatsurv.survival._km import CONF_TYPES, kaplan_meier_fit, km_quantile
from pystatsurv.survival._logrank import logrank_test
from pystatsurv.survival._cuminc import cumulative_incidence_fit
from pystatsurv.survival._cox import cox_fit
from pystatsurv.survival._frailty import frailty_fit
from pystatsurv.survival._finegray import fine_gray_fit
from pystatsurv.survival._phtest import TRANSFORMS, ph_test
from pystatsurv.survival._batch import run_batch
from pystatsurv.survival._merge import ResultTable, merge_results
from pystatsurv.survival.solution import (
    CompetingRisksSolution,
    CoxSolution,
    CumIncSolution,
    FrailtySolution,
    KMSolution,
    LogRankSolution,
    PHTestSolution,
    StratifiedKMSolution,
    UnivariableSweep,
)

__all__ = [
    "build_dataset",
    "kaplan_meier",
    "survdiff",
    "cumulative_incidence",
    "coxph",
    "fit_frailty",
    "fit_competing_risks",
    "test_proportional_hazards",
    "univariable_cox",
    "merge_results",
    "ResultTable",
]


def _check_dataset(dataset: Any) -> SurvivalDataset:
    if not isinstance(dataset, SurvivalDataset):
        raise ValidationError(
            f"expected a SurvivalDataset, got {type(dataset).__name__}; "
            f"construct one with build_dataset() or SurvivalDataset.from_arrays()"
        )
    return dataset


def _grouping(dataset: SurvivalDataset, spec: Any, what: str) -> tuple[str, np.ndarray]:
    """Resolve a grouping given by name or as an array of labels."""
    if isinstance(spec, str):
        return spec, np.array([str(v) for v in dataset.labels(spec)])
    labels = np.asarray(spec).ravel()
    if len(labels) != dataset.n:
        raise ValidationError(
            f"{what} must have {dataset.n} elements to match the dataset, "
            f"got {len(labels)}"
        )
    return what, np.array([str(v) for v in labels])


def _resolve_options(options: FitOptions | None, overrides: dict[str, Any]) -> FitOptions:
    opts = DEFAULT_OPTIONS if options is None else options
    if not isinstance(opts, FitOptions):
        raise ValidationError(
            f"options must be a FitOptions instance, got {type(opts).__name__}"
        )
    return opts.replace(**overrides) if overrides else opts


def _emit(
    notes: Iterable[str],
    category: type[Warning] = RuntimeWarning,
    stacklevel: int = 3,
) -> tuple[str, ...]:
    # stacklevel 3 points at the caller of a public entry point
    notes = tuple(notes)
    for note in notes:
        warnings.warn(note, category, stacklevel=stacklevel)
    return notes


def _km_result(
    time: np.ndarray,
    event: np.ndarray,
    conf_level: float,
    conf_type: str,
    label: str | None,
) -> Result:
    timer = Timer()
    timer.start()

    params = kaplan_meier_fit(
        time, event,
        conf_level=conf_level,
        conf_type=conf_type,
        label=label,
    )

    timer.stop()

    notes = []
    if is_not_reached(km_quantile(params, 0.5)[0]):
        where = "" if label is None else f" ({label})"
        notes.append(
            f"median survival not reached{where}: the curve never drops to 0.5"
        )

    return Result(
        params=params,
        info={"method": "Kaplan-Meier", "conf_type": conf_type},
        timing=timer.result(),
        backend_name="cpu_km",
        # one frame deeper than the public entry point
        warnings=_emit(notes, UndefinedStatisticWarning, stacklevel=4),
    )


def kaplan_meier(
    dataset: SurvivalDataset,
    strata: Any = None,
    *,
    conf_level: float = 0.95,
    conf_type: Literal["log-log", "log", "plain"] = "log-log",
) -> KMSolution | StratifiedKMSolution:
    """Kaplan-Meier survival curve estimation.

    Matches R's survival::survfit(Surv(time, event) ~ 1, conf.type="log-log").

    Parameters
    ----------
    dataset : SurvivalDataset
        Data with binary event coding (0=censored, 1=event).
    strata : str, array-like or None
        Factor name (or labels) giving one curve per level; the curves
        are compared with a log-rank test.
    conf_level : float
        Confidence level for CI (default 0.95).
    conf_type : str
        CI transformation: "log-log" (default), "log", "plain".

    Returns
    -------
    KMSolution, or StratifiedKMSolution when ``strata`` is given.
    """
    dataset = _check_dataset(dataset)
    if dataset.event_domain != "survival":
        raise InvalidDataError(
            "Kaplan-Meier needs binary event coding; use "
            "dataset.with_event_of_interest(code) for competing-risks data "
            "or cumulative_incidence()"
        )
    check_in_unit_interval(conf_level, "conf_level")
    if conf_type not in CONF_TYPES:
        raise ValidationError(
            f"conf_type must be one of {CONF_TYPES}, got '{conf_type}'"
        )

    time = dataset.time
    event = (dataset.event == EVENT).astype(np.float64)

    if strata is None:
        return KMSolution(_result=_km_result(time, event, conf_level, conf_type, None))

    variable, labels = _grouping(dataset, strata, "strata")
    curves = {}
    for level in np.unique(labels):
        mask = labels == level
        label = f"{variable}={level}"
        curves[label] = KMSolution(
            _result=_km_result(time[mask], event[mask], conf_level, conf_type, label)
        )

    logrank = None
    if len(curves) >= 2:
        logrank = survdiff(dataset, labels)
    return StratifiedKMSolution(curves, logrank, variable)


def survdiff(
    dataset: SurvivalDataset,
    group: Any,
    *,
    rho: float = 0.0,
    strata: Any = None,
) -> LogRankSolution:
    """Log-rank test (and G-rho family).

    Matches R's survival::survdiff().

    Parameters
    ----------
    dataset : SurvivalDataset
    group : str or array-like
        Factor name or group labels (e.g. treatment vs control).
    rho : float
        G-rho weight parameter. rho=0 (default) gives the standard
        log-rank test. rho=1 gives Peto & Peto / Gehan-Wilcoxon.
    strata : str, array-like or None
        Stratifying variable; O, E and V are summed over strata.

    Returns
    -------
    LogRankSolution
    """
    dataset = _check_dataset(dataset)
    if rho < 0:
        raise ValidationError(f"rho must be non-negative, got {rho}")
    _, group_labels = _grouping(dataset, group, "group")
    strata_labels = None
    if strata is not None:
        _, strata_labels = _grouping(dataset, strata, "strata")

    timer = Timer()
    timer.start()

    params = logrank_test(
        dataset.time,
        (dataset.event == EVENT).astype(np.float64),
        group_labels,
        rho=rho,
        strata=strata_labels,
    )

    timer.stop()

    result = Result(
        params=params,
        info={"method": "Log-rank test", "rho": rho},
        timing=timer.result(),
        backend_name="cpu_logrank",
        warnings=(),
    )

    return LogRankSolution(_result=result)


def cumulative_incidence(
    dataset: SurvivalDataset,
    *,
    group: Any = None,
    causes: Sequence[int] | None = None,
    conf_level: float = 0.95,
) -> CumIncSolution:
    """Nonparametric cumulative incidence per cause (Aalen-Johansen).

    Matches R's cmprsk::cuminc().

    Parameters
    ----------
    dataset : SurvivalDataset
        Typically with competing-risks coding (0/1/2).
    group : str, array-like or None
        One set of curves per group level.
    causes : sequence of int or None
        Event codes to report; defaults to every event code of the domain.
    conf_level : float

    Returns
    -------
    CumIncSolution
    """
    dataset = _check_dataset(dataset)
    check_in_unit_interval(conf_level, "conf_level")
    domain_causes = (EVENT, COMPETING) if dataset.event_domain == "competing" else (EVENT,)
    if causes is None:
        causes = domain_causes
    causes = tuple(int(c) for c in causes)
    bad = [c for c in causes if c not in domain_causes]
    if bad:
        raise ValidationError(
            f"causes {bad} are not event codes of the {dataset.event_domain!r} domain"
        )
    group_labels = None
    if group is not None:
        _, group_labels = _grouping(dataset, group, "group")

    timer = Timer()
    timer.start()

    params = cumulative_incidence_fit(
        dataset.time, dataset.event, causes, conf_level, group=group_labels
    )

    timer.stop()

    result = Result(
        params=params,
        info={"method": "Aalen-Johansen cumulative incidence"},
        timing=timer.result(),
        backend_name="cpu_cuminc",
        warnings=(),
    )
    return CumIncSolution(_result=result)


def coxph(
    dataset: SurvivalDataset,
    terms: Iterable[Any],
    options: FitOptions | None = None,
    **overrides: Any,
) -> CoxSolution:
    """Cox proportional hazards model.

    Matches R's survival::coxph(). With competing-risks coding the fit is
    cause-specific: competing events are treated as censored.

    Parameters
    ----------
    dataset : SurvivalDataset
    terms : iterable
        Explanatory terms: Linear / Stratum / Cluster objects, bare names
        (linear), ``(name, role)`` pairs or ``{"name", "role"}`` mappings.
    options : FitOptions or None
        Ties, tolerance, iteration bound, confidence level, robust flag,
        deadline and cancel signal. Defaults to DEFAULT_OPTIONS.
    **overrides
        Individual FitOptions fields, e.g. ``ties="breslow"``.

    Returns
    -------
    CoxSolution

    Raises
    ------
    InvalidModelSpecError
        Invalid term list.
    InvalidDataError
        No events.
    NonConvergenceError
        Iteration bound exceeded or singular information.
    """
    dataset = _check_dataset(dataset)
    opts = _resolve_options(options, overrides)
    design = resolve_terms(dataset, terms, robust=opts.robust)

    timer = Timer()
    timer.start()

    with timer.section('fit'):
        params, notes = cox_fit(design, opts)

    timer.stop()

    result = Result(
        params=params,
        info={
            "method": "Cox PH",
            "ties": opts.ties,
            "n_iter": params.n_iter,
            "variance_type": params.variance_type,
            "loglik_history": params.loglik_history,
        },
        timing=timer.result(),
        backend_name="cpu_cox",
        warnings=_emit(notes),
    )

    return CoxSolution(_result=result, _design=design)


def fit_frailty(
    dataset: SurvivalDataset,
    terms: Iterable[Any],
    frailty: str | Frailty | None = None,
    options: FitOptions | None = None,
    **overrides: Any,
) -> FrailtySolution:
    """Cox model with a shared gamma frailty per cluster.

    Matches R's coxph(Surv(time, status) ~ x + frailty(g)).

    Parameters
    ----------
    dataset : SurvivalDataset
    terms : iterable
        Explanatory terms; may already contain the Frailty term.
    frailty : str, Frailty or None
        Grouping variable of the random effect (e.g. "cluster").
    options : FitOptions or None
        ``outer_max_iter`` bounds the frailty variance search.

    Returns
    -------
    FrailtySolution
    """
    dataset = _check_dataset(dataset)
    opts = _resolve_options(options, overrides)
    resolved = [as_term(t) for t in terms]
    if frailty is not None:
        resolved.append(frailty if isinstance(frailty, Frailty) else Frailty(frailty))
    if not any(isinstance(t, Frailty) for t in resolved):
        raise InvalidModelSpecError(
            "fit_frailty() needs a frailty grouping variable"
        )
    design = resolve_terms(dataset, resolved, allow_frailty=True, robust=opts.robust)

    timer = Timer()
    timer.start()

    with timer.section('fit'):
        params, notes = frailty_fit(design, opts)

    timer.stop()

    result = Result(
        params=params,
        info={
            "method": "Gamma frailty Cox PH",
            "ties": opts.ties,
            "theta": params.theta,
            "n_iter": params.n_iter,
            "n_outer_iter": params.n_outer_iter,
            "loglik_history": params.loglik_history,
        },
        timing=timer.result(),
        backend_name="cpu_frailty",
        warnings=_emit(notes),
    )
    return FrailtySolution(_result=result, _design=design)


def fit_competing_risks(
    dataset: SurvivalDataset,
    terms: Iterable[Any],
    options: FitOptions | None = None,
    **overrides: Any,
) -> CompetingRisksSolution:
    """Fine-Gray subdistribution hazard regression for event code 1.

    Matches R's cmprsk::crr(). Stratum terms define censoring groups
    (separate censoring distributions); a cluster term aggregates the
    robust variance by cluster.

    Returns
    -------
    CompetingRisksSolution
    """
    dataset = _check_dataset(dataset)
    opts = _resolve_options(options, overrides)
    design = resolve_terms(dataset, terms, robust=opts.robust)

    timer = Timer()
    timer.start()

    with timer.section('fit'):
        params, notes = fine_gray_fit(design, opts)

    timer.stop()

    if params.n_competing == 0:
        notes.append(
            "no competing events: the subdistribution model reduces to "
            "the Cox model for the event of interest"
        )

    result = Result(
        params=params,
        info={
            "method": "Fine-Gray",
            "ties": opts.ties,
            "n_iter": params.n_iter,
            "loglik_history": params.loglik_history,
        },
        timing=timer.result(),
        backend_name="cpu_finegray",
        warnings=_emit(notes),
    )
    return CompetingRisksSolution(_result=result, _design=design)


def test_proportional_hazards(
    cox: CoxSolution,
    transform: Literal["km", "identity", "log", "rank"] = "km",
) -> PHTestSolution:
    """Test the proportional-hazards assumption of a Cox fit.

    Matches R's survival::cox.zph(fit, transform) (classic form).

    Parameters
    ----------
    cox : CoxSolution
        A converged Cox model.
    transform : str
        Time transform: "km" (default), "identity", "log" or "rank".

    Returns
    -------
    PHTestSolution
    """
    if not isinstance(cox, CoxSolution):
        raise ValidationError(
            f"expected a CoxSolution, got {type(cox).__name__}"
        )
    if transform not in TRANSFORMS:
        raise ValidationError(
            f"transform must be one of {TRANSFORMS}, got {transform!r}"
        )

    timer = Timer()
    timer.start()

    params = ph_test(
        cox.design, cox.coefficients, cox.naive_var_matrix, cox.ties,
        transform=transform,
    )

    timer.stop()

    result = Result(
        params=params,
        info={"method": "Schoenfeld residual test", "transform": transform},
        timing=timer.result(),
        backend_name="cpu_zph",
        warnings=(),
    )
    return PHTestSolution(_result=result)


# Test collectors must not pick up the public function name
test_proportional_hazards.__test__ = False


def univariable_cox(
    dataset: SurvivalDataset,
    names: Sequence[str] | None = None,
    options: FitOptions | None = None,
    *,
    adjust: Sequence[Any] = (),
    max_workers: int = 1,
    **overrides: Any,
) -> UnivariableSweep:
    """One Cox model per covariate.

    Parameters
    ----------
    dataset : SurvivalDataset
    names : sequence of str or None
        Covariates (or factor terms) to fit one at a time; defaults to
        every term of the dataset.
    options : FitOptions or None
    adjust : sequence
        Extra terms added to every model (e.g. Stratum("center")).
    max_workers : int
        Fits run on a thread pool when greater than 1.

    Returns
    -------
    UnivariableSweep
        One entry per name; a failed fit carries its error instead of a
        solution and does not stop the sweep.
    """
    dataset = _check_dataset(dataset)
    opts = _resolve_options(options, overrides)
    names = list(dataset.terms if names is None else names)
    if not names:
        raise ValidationError("univariable_cox needs at least one covariate")
    extra = [as_term(t) for t in adjust]

    def fit_one(name: str) -> CoxSolution:
        return coxph(dataset, [Linear(name), *extra], opts)

    return UnivariableSweep(run_batch(names, fit_one, max_workers=max_workers))
