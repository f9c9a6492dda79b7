"""
Survival analysis.

Kaplan-Meier curves, log-rank tests, Cox proportional hazards (strata,
robust and cluster variance), proportional-hazards diagnostics, gamma
frailty, and competing risks (cumulative incidence, Fine-Gray), matching
R's survival and cmprsk packages.

Public API:
    build_dataset(observations) -> SurvivalDataset
    kaplan_meier(dataset[, strata]) -> KMSolution | StratifiedKMSolution
    survdiff(dataset, group) -> LogRankSolution
    cumulative_incidence(dataset) -> CumIncSolution
    coxph(dataset, terms) -> CoxSolution
    fit_frailty(dataset, terms, frailty) -> FrailtySolution
    fit_competing_risks(dataset, terms) -> CompetingRisksSolution
    test_proportional_hazards(cox) -> PHTestSolution
    univariable_cox(dataset, names) -> UnivariableSweep
    merge_results(*results) -> ResultTable

Example:
    >>> from pystatsurv.survival import SurvivalDataset, coxph, Stratum
    >>> ds = SurvivalDataset.from_arrays(time, status, X, names=["age", "thickness"],
    ...                                  factors={"sex": sex})
    >>> fit = coxph(ds, ["age", "thickness", Stratum("sex")])
    >>> print(fit.summary())
"""

from pystatsurv.survival.design import (
    CENSORED,
    COMPETING,
    EVENT,
    Observation,
    SurvivalDataset,
    build_dataset,
)
from pystatsurv.survival.terms import (
    Cluster,
    Frailty,
    Linear,
    ModelDesign,
    Stratum,
    Term,
)
from pystatsurv.survival.options import DEFAULT_OPTIONS, FitOptions
from pystatsurv.survival._common import NOT_REACHED, TestStatistic, is_not_reached
from pystatsurv.survival.solvers import (
    coxph,
    cumulative_incidence,
    fit_competing_risks,
    fit_frailty,
    kaplan_meier,
    survdiff,
    test_proportional_hazards,
    univariable_cox,
)
from pystatsurv.survival._merge import ResultTable, merge_results
from pystatsurv.survival.solution import (
    BatchEntry,
    CompetingRisksSolution,
    CoxSolution,
    CumIncSolution,
    FrailtySolution,
    KMSolution,
    LogRankSolution,
    PHTestSolution,
    StratifiedKMSolution,
    SurvivalEstimate,
    UnivariableSweep,
)

__all__ = [
    # Data
    "SurvivalDataset",
    "Observation",
    "build_dataset",
    "CENSORED",
    "EVENT",
    "COMPETING",
    # Terms and options
    "Term",
    "Linear",
    "Stratum",
    "Cluster",
    "Frailty",
    "ModelDesign",
    "FitOptions",
    "DEFAULT_OPTIONS",
    # Estimators
    "kaplan_meier",
    "survdiff",
    "cumulative_incidence",
    "coxph",
    "fit_frailty",
    "fit_competing_risks",
    "test_proportional_hazards",
    "univariable_cox",
    "merge_results",
    # Results
    "KMSolution",
    "StratifiedKMSolution",
    "SurvivalEstimate",
    "LogRankSolution",
    "CumIncSolution",
    "CoxSolution",
    "FrailtySolution",
    "CompetingRisksSolution",
    "PHTestSolution",
    "BatchEntry",
    "UnivariableSweep",
    "ResultTable",
    "TestStatistic",
    "NOT_REACHED",
    "is_not_reached",
]
