"""
Solution wrappers for survival analysis results.

Each Solution wraps a Result[Params] and exposes user-friendly properties
with R-style summary() methods. Regression solutions also keep the
resolved ModelDesign so residuals, diagnostics and predictions can be
computed after the fit.
"""

from __future__ import annotations

import warnings
from typing import Any, Iterator, NamedTuple

import numpy as np
from numpy.typing import NDArray

from pystatsurv.core.exceptions import (
    PyStatSurvError,
    UndefinedStatisticWarning,
    ValidationError,
)
from pystatsurv.core.result import Result
from pystatsurv.survival._common import (
    BaselineHazard,
    CoxParams,
    CumIncCurve,
    CumIncParams,
    FineGrayParams,
    FrailtyParams,
    KMParams,
    LogRankParams,
    PHTestParams,
    is_not_reached,
)
from pystatsurv.survival._km import km_quantile, step_lookup
from pystatsurv.survival._riskset import build_risk_sets, schoenfeld_residuals
from pystatsurv.survival._variance import dfbeta
from pystatsurv.survival._cox import cox_residuals
from pystatsurv.survival.design import SurvivalDataset
from pystatsurv.survival.terms import ModelDesign


def _fmt(value: float, spec: str = ".4g") -> str:
    if is_not_reached(value):
        return "NA"
    return format(value, spec)


def _fmt_p(p: float) -> str:
    return "<2e-16" if p < 2e-16 else f"{p:.3g}"


class SurvivalEstimate(NamedTuple):
    """Survival curve evaluated at requested times."""

    time: Any
    survival: Any
    se: Any
    ci_lower: Any
    ci_upper: Any


class KMSolution:
    """Kaplan-Meier survival curve solution.

    Properties mirror R's survfit() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[KMParams]) -> None:
        self._result = _result

    # -- Properties delegating to KMParams --

    @property
    def params(self) -> KMParams:
        return self._result.params

    @property
    def time(self):
        """Unique event times."""
        return self._result.params.time

    @property
    def survival(self):
        """S(t) at each event time."""
        return self._result.params.survival

    @property
    def n_risk(self):
        """Number at risk just before each event time."""
        return self._result.params.n_risk

    @property
    def n_events(self):
        """Number of events at each event time."""
        return self._result.params.n_events

    @property
    def n_censored(self):
        """Number censored in [t_j, t_{j+1})."""
        return self._result.params.n_censored

    @property
    def variance(self):
        """Greenwood variance of S(t)."""
        return self._result.params.variance

    @property
    def se(self):
        """Greenwood standard error of S(t)."""
        return self._result.params.se

    @property
    def ci_lower(self):
        """Lower confidence bound for S(t)."""
        return self._result.params.ci_lower

    @property
    def ci_upper(self):
        """Upper confidence bound for S(t)."""
        return self._result.params.ci_upper

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    @property
    def conf_type(self) -> str:
        return self._result.params.conf_type

    @property
    def n_observations(self) -> int:
        return self._result.params.n_observations

    @property
    def n_events_total(self) -> int:
        return self._result.params.n_events_total

    @property
    def max_time(self) -> float:
        """Largest observed time (event or censoring)."""
        return self._result.params.max_time

    @property
    def label(self) -> str | None:
        return self._result.params.label

    @property
    def median_survival(self) -> float:
        """Median survival time (smallest t where S(t) <= 0.5).

        NOT_REACHED when the curve never drops to 0.5.
        """
        return km_quantile(self._result.params, 0.5)[0]

    @property
    def median_ci(self) -> tuple[float, float]:
        """Confidence limits for the median from the CI curves."""
        _, lower, upper = km_quantile(self._result.params, 0.5)
        return lower, upper

    def quantile(self, q: float) -> tuple[float, float, float]:
        """Survival-time quantile q (0 < q < 1) with confidence limits.

        Returns (estimate, lower, upper); undefined values are NOT_REACHED.
        """
        if not 0.0 < q < 1.0:
            raise ValidationError(f"q must be in (0, 1), got {q}")
        return km_quantile(self._result.params, q)

    def survival_at(self, times) -> SurvivalEstimate:
        """Step-function lookup of S(t) and its CI (e.g. 5-year survival).

        Times beyond the largest observed time are undefined: NaN with an
        UndefinedStatisticWarning.
        """
        scalar = np.ndim(times) == 0
        t = np.atleast_1d(np.asarray(times, dtype=np.float64))
        if np.any(t < 0):
            raise ValidationError("times must be non-negative")
        surv, se, lower, upper = step_lookup(self._result.params, t)
        beyond = t > self.max_time
        if np.any(beyond):
            warnings.warn(
                f"survival is undefined beyond the largest observed time "
                f"{self.max_time:.4g}; returned NaN for {t[beyond].tolist()}",
                UndefinedStatisticWarning,
                stacklevel=2,
            )
        if scalar:
            return SurvivalEstimate(
                float(t[0]), float(surv[0]), float(se[0]),
                float(lower[0]), float(upper[0]),
            )
        return SurvivalEstimate(t, surv, se, lower, upper)

    def to_records(self) -> list[dict[str, float]]:
        """One dict per event time."""
        return [
            {
                'time': float(self.time[i]),
                'n_risk': float(self.n_risk[i]),
                'n_events': float(self.n_events[i]),
                'survival': float(self.survival[i]),
                'variance': float(self.variance[i]),
                'ci_lower': float(self.ci_lower[i]),
                'ci_upper': float(self.ci_upper[i]),
            }
            for i in range(len(self.time))
        ]

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def summary(self) -> str:
        """R-style summary of Kaplan-Meier fit."""
        lines = []
        lines.append("Call: kaplan_meier()")
        if self.label is not None:
            lines.append(f"  {self.label}")
        lines.append("")
        lines.append(
            f"  n={self.n_observations}, "
            f"events={self.n_events_total}"
        )
        lines.append("")

        lower, upper = self.median_ci
        ci_pct = int(round(self.conf_level * 100))
        lines.append(
            f"  median survival = {_fmt(self.median_survival)} "
            f"({ci_pct}% CI {_fmt(lower)}, {_fmt(upper)})"
        )
        lines.append("")

        lines.append(
            f"  {'time':>8s}  {'n.risk':>8s}  {'n.event':>8s}  "
            f"{'survival':>10s}  {'se':>10s}  "
            f"{f'lower {ci_pct}%':>10s}  {f'upper {ci_pct}%':>10s}"
        )

        # Show up to 20 rows
        m = len(self.time)
        show = min(m, 20)
        for i in range(show):
            lines.append(
                f"  {self.time[i]:8.4g}  {self.n_risk[i]:8.0f}  "
                f"{self.n_events[i]:8.0f}  "
                f"{self.survival[i]:10.6f}  {self.se[i]:10.6f}  "
                f"{self.ci_lower[i]:10.6f}  {self.ci_upper[i]:10.6f}"
            )
        if m > 20:
            lines.append(f"  ... ({m - 20} more rows)")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"KMSolution(n={self.n_observations}, "
            f"events={self.n_events_total}, "
            f"median={_fmt(self.median_survival)})"
        )


class LogRankSolution:
    """Log-rank test solution.

    Properties mirror R's survdiff() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[LogRankParams]) -> None:
        self._result = _result

    @property
    def params(self) -> LogRankParams:
        return self._result.params

    @property
    def statistic(self) -> float:
        return self._result.params.statistic

    @property
    def df(self) -> int:
        return self._result.params.df

    @property
    def p_value(self) -> float:
        return self._result.params.p_value

    @property
    def n_groups(self) -> int:
        return self._result.params.n_groups

    @property
    def observed(self):
        return self._result.params.observed

    @property
    def expected(self):
        return self._result.params.expected

    @property
    def variance(self):
        """Variance-covariance matrix of O - E."""
        return self._result.params.variance

    @property
    def n_per_group(self):
        return self._result.params.n_per_group

    @property
    def rho(self) -> float:
        return self._result.params.rho

    @property
    def group_labels(self):
        return self._result.params.group_labels

    @property
    def n_strata(self) -> int:
        return self._result.params.n_strata

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def summary(self) -> str:
        """R-style summary of log-rank test."""
        lines = []
        lines.append("Call: survdiff()")
        if self.n_strata > 1:
            lines.append(f"  stratified over {self.n_strata} strata")
        lines.append("")

        lines.append(f"  {'':>12s}  {'N':>6s}  {'Observed':>10s}  {'Expected':>10s}  {'(O-E)^2/E':>10s}")
        for i in range(self.n_groups):
            oe = ((self.observed[i] - self.expected[i]) ** 2
                  / self.expected[i]) if self.expected[i] > 0 else 0
            label = str(self.group_labels[i])
            lines.append(
                f"  {label:>12s}  {self.n_per_group[i]:6.0f}  "
                f"{self.observed[i]:10.1f}  {self.expected[i]:10.1f}  "
                f"{oe:10.3f}"
            )

        lines.append("")
        lines.append(
            f"  Chisq= {self.statistic:.4f} on {self.df} degrees of freedom, "
            f"p= {self.p_value:.4g}"
        )

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"LogRankSolution(chisq={self.statistic:.4f}, "
            f"df={self.df}, p={self.p_value:.4g})"
        )


class StratifiedKMSolution:
    """One Kaplan-Meier curve per stratum level plus the log-rank test."""

    __slots__ = ('_curves', '_logrank', '_variable')

    def __init__(
        self,
        curves: dict[str, KMSolution],
        logrank: LogRankSolution | None,
        variable: str,
    ) -> None:
        self._curves = dict(curves)
        self._logrank = logrank
        self._variable = variable

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(self._curves)

    @property
    def variable(self) -> str:
        return self._variable

    @property
    def curves(self) -> dict[str, KMSolution]:
        return dict(self._curves)

    @property
    def logrank(self) -> LogRankSolution | None:
        """Log-rank test across levels; None when only one level has data."""
        return self._logrank

    @property
    def medians(self) -> dict[str, float]:
        return {label: km.median_survival for label, km in self._curves.items()}

    def __getitem__(self, label) -> KMSolution:
        key = str(label)
        if key not in self._curves:
            raise KeyError(f"no curve for {key!r}; levels are {list(self._curves)}")
        return self._curves[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._curves)

    def __len__(self) -> int:
        return len(self._curves)

    def summary(self) -> str:
        lines = [f"Call: kaplan_meier(strata={self._variable!r})", ""]
        lines.append(
            f"  {'':>16s}  {'n':>6s}  {'events':>6s}  {'median':>8s}  "
            f"{'lower':>8s}  {'upper':>8s}"
        )
        for label, km in self._curves.items():
            lower, upper = km.median_ci
            lines.append(
                f"  {label:>16s}  {km.n_observations:6d}  "
                f"{km.n_events_total:6d}  {_fmt(km.median_survival):>8s}  "
                f"{_fmt(lower):>8s}  {_fmt(upper):>8s}"
            )
        if self._logrank is not None:
            lines.append("")
            lines.append(
                f"  Log-rank Chisq= {self._logrank.statistic:.4f} on "
                f"{self._logrank.df} df, p= {self._logrank.p_value:.4g}"
            )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"StratifiedKMSolution(variable={self._variable!r}, "
            f"levels={list(self._curves)})"
        )


class CumIncSolution:
    """Nonparametric cumulative incidence (Aalen-Johansen) solution.

    Properties mirror R's cmprsk::cuminc() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[CumIncParams]) -> None:
        self._result = _result

    @property
    def params(self) -> CumIncParams:
        return self._result.params

    @property
    def causes(self) -> tuple[int, ...]:
        return self._result.params.causes

    @property
    def groups(self) -> tuple[str, ...]:
        return self._result.params.groups

    @property
    def curves(self) -> tuple[CumIncCurve, ...]:
        return self._result.params.curves

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    def curve(self, cause: int = 1, group: Any = None) -> CumIncCurve:
        key = None if group is None else str(group)
        for c in self._result.params.curves:
            if c.cause == cause and c.group == key:
                return c
        raise KeyError(f"no cumulative incidence curve for cause={cause}, group={key}")

    def incidence_at(self, times, cause: int = 1, group: Any = None) -> NDArray:
        """Step-function lookup of F_k(t); zero before the first event."""
        c = self.curve(cause, group)
        t = np.atleast_1d(np.asarray(times, dtype=np.float64))
        idx = np.searchsorted(c.time, t, side="right") - 1
        out = np.zeros(t.shape, dtype=np.float64)
        out[idx >= 0] = c.incidence[idx[idx >= 0]]
        return out

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def summary(self) -> str:
        lines = ["Call: cumulative_incidence()", ""]
        for c in self.curves:
            head = f"  cause {c.cause}" + ("" if c.group is None else f", group {c.group}")
            lines.append(head)
            if len(c.time) == 0:
                lines.append("    (no events)")
                continue
            picks = np.unique(np.linspace(0, len(c.time) - 1, min(len(c.time), 5)).astype(int))
            for i in picks:
                lines.append(
                    f"    t={c.time[i]:8.4g}  F={c.incidence[i]:.4f}  "
                    f"var={c.variance[i]:.3g}"
                )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"CumIncSolution(causes={list(self.causes)}, "
            f"groups={list(self.groups) or None})"
        )


class _RegressionSolution:
    """Shared properties of partial-likelihood regression solutions."""

    __slots__ = ('_result', '_design')

    _ratio_label = "exp(coef)"

    def __init__(self, _result: Result, _design: ModelDesign) -> None:
        self._result = _result
        self._design = _design

    @property
    def params(self):
        return self._result.params

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def design(self) -> ModelDesign:
        return self._design

    @property
    def dataset(self) -> SurvivalDataset:
        return self._design.dataset

    @property
    def names(self) -> tuple[str, ...]:
        return self._result.params.names

    @property
    def column_terms(self) -> tuple[tuple[str, str | None], ...]:
        return self._result.params.column_terms

    @property
    def coefficients(self):
        return self._result.params.coefficients

    @property
    def hazard_ratios(self):
        return self._result.params.hazard_ratios

    @property
    def standard_errors(self):
        return self._result.params.standard_errors

    @property
    def z_statistics(self):
        return self._result.params.z_statistics

    @property
    def p_values(self):
        return self._result.params.p_values

    @property
    def ci_lower(self):
        return self._result.params.ci_lower

    @property
    def ci_upper(self):
        return self._result.params.ci_upper

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    @property
    def var_matrix(self):
        return self._result.params.var_matrix

    @property
    def n_events(self) -> int:
        return self._result.params.n_events

    @property
    def n_observations(self) -> int:
        return self._result.params.n_observations

    @property
    def n_iter(self) -> int:
        return self._result.params.n_iter

    @property
    def converged(self) -> bool:
        return self._result.params.converged

    @property
    def ties(self) -> str:
        return self._result.params.ties

    @property
    def loglik_history(self) -> tuple[float, ...]:
        return self._result.params.loglik_history

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def _coef_lines(self, se_label: str = "se(coef)") -> list[str]:
        lines = [
            f"  {'':>14s}  {'coef':>10s}  {self._ratio_label:>10s}  "
            f"{se_label:>10s}  {'z':>8s}  {'Pr(>|z|)':>10s}"
        ]
        for i, name in enumerate(self.names):
            lines.append(
                f"  {name:>14s}  {self.coefficients[i]:10.6f}  "
                f"{self.hazard_ratios[i]:10.6f}  "
                f"{self.standard_errors[i]:10.6f}  "
                f"{self.z_statistics[i]:8.3f}  {_fmt_p(self.p_values[i]):>10s}"
            )
        ci_pct = int(round(self.conf_level * 100))
        lines.append("")
        lines.append(
            f"  {'':>14s}  {self._ratio_label:>10s}  "
            f"{f'lower .{ci_pct}':>10s}  {f'upper .{ci_pct}':>10s}"
        )
        for i, name in enumerate(self.names):
            lines.append(
                f"  {name:>14s}  {self.hazard_ratios[i]:10.4f}  "
                f"{self.ci_lower[i]:10.4f}  {self.ci_upper[i]:10.4f}"
            )
        return lines


class CoxSolution(_RegressionSolution):
    """Cox proportional hazards solution.

    Properties mirror R's coxph() output.
    """

    __slots__ = ()

    @property
    def params(self) -> CoxParams:
        return self._result.params

    @property
    def naive_standard_errors(self):
        return self._result.params.naive_standard_errors

    @property
    def robust_standard_errors(self):
        """Sandwich standard errors, or None for a naive-variance fit."""
        return self._result.params.robust_standard_errors

    @property
    def naive_var_matrix(self):
        return self._result.params.naive_var_matrix

    @property
    def variance_type(self) -> str:
        return self._result.params.variance_type

    @property
    def loglik(self):
        """(null, model) log partial likelihood."""
        return self._result.params.loglik

    @property
    def lr_test(self):
        return self._result.params.lr_test

    @property
    def wald_test(self):
        return self._result.params.wald_test

    @property
    def score_test(self):
        return self._result.params.score_test

    @property
    def concordance(self) -> float:
        return self._result.params.concordance

    @property
    def n_clusters(self) -> int | None:
        return self._result.params.n_clusters

    @property
    def strata_labels(self) -> tuple[str, ...]:
        return self._result.params.strata_labels

    def baseline_hazard(self, stratum: Any = None) -> BaselineHazard:
        """Cumulative baseline hazard at x = 0 for one stratum."""
        curves = self._result.params.baseline_hazard
        if not self.strata_labels:
            if stratum is not None:
                raise ValidationError("model is not stratified")
            return curves[0]
        if stratum is None:
            raise ValidationError(
                f"model is stratified; choose a stratum from {list(self.strata_labels)}"
            )
        key = str(stratum)
        if key not in self.strata_labels:
            raise ValidationError(
                f"unknown stratum {key!r}; available: {list(self.strata_labels)}"
            )
        return curves[self.strata_labels.index(key)]

    def predict_survival(self, x, times, stratum: Any = None) -> NDArray:
        """S(t | x) = exp(-Λ0(t) exp(xβ)) at the given times.

        Parameters
        ----------
        x : array-like
            (p,) covariate vector or (k, p) matrix in coefficient order.
        times : array-like
            Times at which to evaluate.
        stratum : label or None
            Required for stratified models.

        Returns
        -------
        NDArray
            (len(times),) for a single x, else (k, len(times)).
        """
        x_arr = np.asarray(x, dtype=np.float64)
        single = x_arr.ndim == 1
        x_arr = np.atleast_2d(x_arr)
        p = len(self.coefficients)
        if x_arr.shape[1] != p:
            raise ValidationError(
                f"x must have {p} columns ({list(self.names)}), got {x_arr.shape[1]}"
            )
        t = np.atleast_1d(np.asarray(times, dtype=np.float64))
        bh = self.baseline_hazard(stratum)
        idx = np.searchsorted(bh.time, t, side="right") - 1
        cumhaz = np.zeros(t.shape, dtype=np.float64)
        cumhaz[idx >= 0] = bh.cumulative_hazard[idx[idx >= 0]]
        risk = np.exp(x_arr @ self.coefficients)
        surv = np.exp(-np.outer(risk, cumhaz))
        return surv[0] if single else surv

    def score_residuals(self) -> NDArray:
        """(n, p) per-observation score residuals at the fitted β."""
        _, resid = cox_residuals(self._design, self.coefficients, self.ties)
        return resid

    def dfbeta(self) -> NDArray:
        """(n, p) approximate change in β when each observation is dropped."""
        return dfbeta(self.score_residuals(), self.naive_var_matrix)

    def schoenfeld_residuals(self) -> tuple[NDArray, NDArray]:
        """(event times, (d, p) residuals), sorted by time."""
        blocks = build_risk_sets(self._design.time, self._design.event, self._design.strata)
        times, _, resid = schoenfeld_residuals(
            self.coefficients, self._design.X, blocks, self.ties
        )
        order = np.argsort(times, kind="stable")
        return times[order], resid[order]

    def summary(self) -> str:
        """R-style summary of Cox PH fit."""
        lines = []
        lines.append("Call: coxph()")
        lines.append("")
        lines.append(
            f"  n= {self.n_observations}, "
            f"number of events= {self.n_events}"
        )
        if self.strata_labels:
            lines.append(f"  strata: {', '.join(self.strata_labels)}")
        lines.append("")

        se_label = "se(coef)" if self.variance_type == "naive" else "robust se"
        lines.extend(self._coef_lines(se_label))
        lines.append("")

        lines.append(f"  Concordance= {self.concordance:.3f}")
        p = len(self.coefficients)
        for label, test in (
            ("Likelihood ratio test", self.lr_test),
            ("Wald test", self.wald_test),
            ("Score (logrank) test", self.score_test),
        ):
            lines.append(
                f"  {label:<22s}= {test.statistic:.2f}  on {p} df,   "
                f"p={_fmt_p(test.p_value)}"
            )
        if self.variance_type != "naive":
            lines.append(
                f"  ({self.variance_type} variance, "
                f"{self.n_clusters} clusters)"
            )
        lines.append(f"  ties: {self.ties}, iterations: {self.n_iter}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"CoxSolution(n={self.n_observations}, "
            f"events={self.n_events}, "
            f"p={len(self.coefficients)}, "
            f"concordance={self.concordance:.3f})"
        )


class FrailtySolution(_RegressionSolution):
    """Gamma frailty Cox model solution.

    Properties mirror R's coxph(... + frailty(g)) output.
    """

    __slots__ = ()

    @property
    def params(self) -> FrailtyParams:
        return self._result.params

    @property
    def theta(self) -> float:
        """Frailty variance."""
        return self._result.params.theta

    @property
    def cluster_labels(self) -> tuple[str, ...]:
        return self._result.params.cluster_labels

    @property
    def frailties(self) -> dict[str, float]:
        """Estimated multiplicative frailty exp(b_c) per cluster."""
        p = self._result.params
        return {c: float(v) for c, v in zip(p.cluster_labels, p.frailty)}

    @property
    def log_frailty(self):
        return self._result.params.log_frailty

    @property
    def log_frailty_se(self):
        return self._result.params.log_frailty_se

    @property
    def loglik_integrated(self) -> float:
        return self._result.params.loglik_integrated

    @property
    def loglik_penalized(self) -> float:
        return self._result.params.loglik_penalized

    @property
    def loglik_cox(self) -> float:
        return self._result.params.loglik_cox

    @property
    def theta_test(self):
        """LR test of θ = 0 against the model without frailty."""
        return self._result.params.theta_test

    @property
    def n_clusters(self) -> int:
        return self._result.params.n_clusters

    @property
    def n_outer_iter(self) -> int:
        return self._result.params.n_outer_iter

    def summary(self) -> str:
        lines = ["Call: fit_frailty()", ""]
        lines.append(
            f"  n= {self.n_observations}, number of events= {self.n_events}, "
            f"clusters= {self.n_clusters}"
        )
        lines.append("")
        lines.extend(self._coef_lines())
        lines.append("")
        lines.append(f"  Variance of random effect= {self.theta:.4g}")
        lines.append(
            f"  Integrated loglik= {self.loglik_integrated:.2f}, "
            f"penalized loglik= {self.loglik_penalized:.2f}"
        )
        t = self.theta_test
        lines.append(
            f"  LR test theta=0: Chisq= {t.statistic:.2f} on {t.df} df, "
            f"p={_fmt_p(t.p_value)}"
        )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"FrailtySolution(n={self.n_observations}, "
            f"clusters={self.n_clusters}, theta={self.theta:.4g})"
        )


class CompetingRisksSolution(_RegressionSolution):
    """Fine-Gray subdistribution hazard solution.

    Properties mirror R's cmprsk::crr() output.
    """

    __slots__ = ()

    _ratio_label = "exp(coef)"

    @property
    def params(self) -> FineGrayParams:
        return self._result.params

    @property
    def subdistribution_hazard_ratios(self):
        return self._result.params.hazard_ratios

    @property
    def naive_standard_errors(self):
        return self._result.params.naive_standard_errors

    @property
    def loglik(self):
        """(null, model) pseudo log-likelihood."""
        return self._result.params.loglik

    @property
    def wald_test(self):
        return self._result.params.wald_test

    @property
    def n_competing(self) -> int:
        return self._result.params.n_competing

    @property
    def n_censored(self) -> int:
        return self._result.params.n_censored

    @property
    def censoring_groups(self) -> tuple[str, ...]:
        return self._result.params.censoring_groups

    def summary(self) -> str:
        lines = ["Call: fit_competing_risks()", ""]
        lines.append(
            f"  n= {self.n_observations}, events of interest= {self.n_events}, "
            f"competing= {self.n_competing}, censored= {self.n_censored}"
        )
        if self.censoring_groups:
            lines.append(f"  censoring groups: {', '.join(self.censoring_groups)}")
        lines.append("")
        lines.extend(self._coef_lines())
        lines.append("")
        null_ll, model_ll = self.loglik
        lines.append(
            f"  Pseudo log-likelihood= {model_ll:.2f} (null {null_ll:.2f})"
        )
        w = self.wald_test
        lines.append(
            f"  Wald test= {w.statistic:.2f} on {w.df} df, p={_fmt_p(w.p_value)}"
        )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"CompetingRisksSolution(n={self.n_observations}, "
            f"events={self.n_events}, competing={self.n_competing})"
        )


class PHTestSolution:
    """Proportional-hazards test solution.

    Properties mirror R's cox.zph() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[PHTestParams]) -> None:
        self._result = _result

    @property
    def params(self) -> PHTestParams:
        return self._result.params

    @property
    def names(self) -> tuple[str, ...]:
        return self._result.params.names

    @property
    def statistics(self):
        return self._result.params.statistics

    @property
    def df(self):
        return self._result.params.df

    @property
    def p_values(self):
        return self._result.params.p_values

    @property
    def global_test(self):
        return self._result.params.global_test

    @property
    def transform(self) -> str:
        return self._result.params.transform

    @property
    def event_times(self):
        return self._result.params.event_times

    @property
    def transformed_times(self):
        return self._result.params.transformed_times

    @property
    def scaled_residuals(self):
        """(d, p) scaled Schoenfeld residuals, β̂ + d·V·r_k."""
        return self._result.params.scaled_residuals

    def violations(self, alpha: float = 0.05) -> tuple[str, ...]:
        """Covariates whose test rejects proportional hazards at ``alpha``."""
        return tuple(
            name for name, p in zip(self.names, self.p_values) if p < alpha
        )

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def summary(self) -> str:
        lines = [f"Call: test_proportional_hazards(transform={self.transform!r})", ""]
        lines.append(f"  {'':>14s}  {'chisq':>10s}  {'df':>4s}  {'p':>10s}")
        for i, name in enumerate(self.names):
            lines.append(
                f"  {name:>14s}  {self.statistics[i]:10.4f}  "
                f"{int(self.df[i]):4d}  {_fmt_p(self.p_values[i]):>10s}"
            )
        g = self.global_test
        lines.append(
            f"  {'GLOBAL':>14s}  {g.statistic:10.4f}  {g.df:4d}  "
            f"{_fmt_p(g.p_value):>10s}"
        )
        return "\n".join(lines)

    def __repr__(self) -> str:
        g = self.global_test
        return (
            f"PHTestSolution(transform={self.transform!r}, "
            f"global_chisq={g.statistic:.4f}, p={g.p_value:.4g})"
        )


class BatchEntry(NamedTuple):
    """One item of a batch fit: a solution or the error it raised."""

    name: str
    solution: CoxSolution | None
    error: PyStatSurvError | None

    @property
    def ok(self) -> bool:
        return self.error is None


class UnivariableSweep:
    """Results of one Cox fit per covariate, failures isolated per entry."""

    __slots__ = ('_entries',)

    def __init__(self, entries: list[BatchEntry]) -> None:
        self._entries = tuple(entries)

    @property
    def entries(self) -> tuple[BatchEntry, ...]:
        return self._entries

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(e.name for e in self._entries)

    @property
    def solutions(self) -> dict[str, CoxSolution]:
        return {e.name: e.solution for e in self._entries if e.ok}

    @property
    def errors(self) -> dict[str, PyStatSurvError]:
        return {e.name: e.error for e in self._entries if not e.ok}

    def __getitem__(self, name: str) -> BatchEntry:
        for e in self._entries:
            if e.name == name:
                return e
        raise KeyError(name)

    def __iter__(self) -> Iterator[BatchEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def summary(self) -> str:
        lines = ["Call: univariable_cox()", ""]
        for e in self._entries:
            if not e.ok:
                lines.append(f"  {e.name}: failed ({type(e.error).__name__}: {e.error})")
                continue
            sol = e.solution
            for i, col in enumerate(sol.names):
                lines.append(
                    f"  {col:>16s}  HR={sol.hazard_ratios[i]:.3f} "
                    f"({sol.ci_lower[i]:.3f}-{sol.ci_upper[i]:.3f})  "
                    f"p={_fmt_p(sol.p_values[i])}"
                )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"UnivariableSweep(fits={len(self.solutions)}, "
            f"failures={len(self.errors)})"
        )
