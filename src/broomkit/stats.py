"""Sample statistics for resample workflows.

:func:`calculate` reduces a frame to one named statistic and returns
it as a ``STATISTIC`` model, so the same term/summary views (and the
same aggregation helpers) apply to "mean of x" as to a regression.

:func:`statistic` freezes the arguments into a ``fit_fn`` for
:func:`broomkit.workflow.run`::

    run(df, "bootstrap", 1000, statistic("mean", response="hours"))

Supported statistics
--------------------
One variable: ``mean``, ``median``, ``sum``, ``sd``, ``prop``,
``count``, ``t`` (one-sample, against *mu*), ``z`` (one-proportion,
against *mu*), ``Chisq`` (goodness of fit).

Two variables (*explanatory* given): ``diff in means``,
``diff in medians``, ``diff in props``, ``ratio of means``, ``t``
(Welch), ``z`` (pooled two-proportion), ``Chisq`` (independence),
``slope``, ``correlation``.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import numpy as np
import pandas as pd
from scipy import stats as _sp_stats

from ._compat import DataFrameLike, _as_frame, _require_columns
from .htests import _gof_probabilities, two_groups
from .models import FittedModel, ModelKind, StatisticResult

_ONE_VARIABLE = {"mean", "median", "sum", "sd", "prop", "count", "t", "z", "Chisq"}
_TWO_VARIABLE = {
    "diff in means",
    "diff in medians",
    "diff in props",
    "ratio of means",
    "t",
    "z",
    "Chisq",
    "slope",
    "correlation",
}
_PROPORTION_STATS = {"prop", "count", "diff in props", "z"}

STATISTICS: frozenset[str] = frozenset(_ONE_VARIABLE | _TWO_VARIABLE)
"""Every statistic name :func:`calculate` accepts."""


def _successes(values: pd.Series, success: Any) -> np.ndarray:
    """Indicator array of *success* in *values* (booleans need no *success*)."""
    if success is None:
        if values.dtype == bool:
            return values.to_numpy(dtype=float)
        raise ValueError(
            "success= must name the level counted as a success for "
            "proportion statistics on non-boolean data."
        )
    return (values == success).to_numpy(dtype=float)


def _one_variable(
    df: pd.DataFrame, stat: str, response: str, success: Any, mu: float | None,
    p: Mapping | Sequence[float] | None,
) -> float:
    col = df[response].dropna()
    if stat == "mean":
        return float(np.mean(col.to_numpy(dtype=float)))
    if stat == "median":
        return float(np.median(col.to_numpy(dtype=float)))
    if stat == "sum":
        return float(np.sum(col.to_numpy(dtype=float)))
    if stat == "sd":
        return float(np.std(col.to_numpy(dtype=float), ddof=1))
    if stat == "prop":
        return float(np.mean(_successes(col, success)))
    if stat == "count":
        return float(np.sum(_successes(col, success)))
    if stat == "t":
        x = col.to_numpy(dtype=float)
        centre = 0.0 if mu is None else mu
        return float((np.mean(x) - centre) / (np.std(x, ddof=1) / np.sqrt(len(x))))
    if stat == "z":
        hits = _successes(col, success)
        p0 = 0.5 if mu is None else mu
        return float((np.mean(hits) - p0) / np.sqrt(p0 * (1 - p0) / len(hits)))
    # Chisq goodness of fit
    observed = col.value_counts().sort_index()
    probs = _gof_probabilities(observed.index.tolist(), p)
    expected = probs * observed.sum()
    return float(np.sum((observed.to_numpy() - expected) ** 2 / expected))


def _two_variable(
    df: pd.DataFrame, stat: str, response: str, explanatory: str,
    order: Sequence | None, success: Any,
) -> float:
    if stat == "slope":
        sub = df[[response, explanatory]].dropna()
        x = sub[explanatory].to_numpy(dtype=float)
        y = sub[response].to_numpy(dtype=float)
        return float(np.cov(x, y, ddof=1)[0, 1] / np.var(x, ddof=1))
    if stat == "correlation":
        sub = df[[response, explanatory]].dropna()
        return float(np.corrcoef(sub[explanatory], sub[response])[0, 1])
    if stat == "Chisq":
        table = pd.crosstab(df[response], df[explanatory])
        res = _sp_stats.chi2_contingency(table.to_numpy(), correction=False)
        return float(res.statistic)

    if stat in _PROPORTION_STATS:
        indicator = df[[explanatory]].copy()
        indicator["_hit"] = _successes(df[response], success)
        a, b, _ = two_groups(indicator, "_hit", explanatory, order)
        if stat == "diff in props":
            return float(np.mean(a) - np.mean(b))
        # z, pooled two-proportion
        pooled = (a.sum() + b.sum()) / (a.size + b.size)
        se = np.sqrt(pooled * (1 - pooled) * (1 / a.size + 1 / b.size))
        return float((np.mean(a) - np.mean(b)) / se)

    a, b, _ = two_groups(df.dropna(subset=[response]), response, explanatory, order)
    if stat == "diff in means":
        return float(np.mean(a) - np.mean(b))
    if stat == "diff in medians":
        return float(np.median(a) - np.median(b))
    if stat == "ratio of means":
        return float(np.mean(a) / np.mean(b))
    # Welch t
    se = np.sqrt(np.var(a, ddof=1) / a.size + np.var(b, ddof=1) / b.size)
    return float((np.mean(a) - np.mean(b)) / se)


def calculate(
    data: DataFrameLike,
    stat: str,
    response: str,
    explanatory: str | None = None,
    *,
    order: Sequence | None = None,
    success: Any = None,
    mu: float | None = None,
    p: Mapping | Sequence[float] | None = None,
) -> FittedModel:
    """Compute one sample statistic of *data*.

    Rows missing the response (or explanatory) value are left out, and
    ``nobs`` counts the rows that remain.

    Args:
        data: Input frame.
        stat: Statistic name (see module docstring).
        response: Response column.
        explanatory: Explanatory column for two-variable statistics.
        order: Level order for group differences (first minus second).
        success: Level counted as a success by proportion statistics.
        mu: Null value for the one-sample ``t`` (mean) and ``z``
            (proportion) statistics.
        p: Null probabilities for the goodness-of-fit ``Chisq``.

    Returns:
        A ``STATISTIC`` model.

    Raises:
        ValueError: For an unknown statistic, or one that needs (or
            does not accept) an explanatory variable.
    """
    df = _as_frame(data)
    _require_columns(df, [response, explanatory])
    df = df.dropna(subset=[c for c in (response, explanatory) if c is not None])

    if stat not in STATISTICS:
        raise ValueError(
            f"Unknown statistic {stat!r}.  Available: {', '.join(sorted(STATISTICS))}."
        )
    if explanatory is None:
        if stat not in _ONE_VARIABLE:
            raise ValueError(f"Statistic {stat!r} needs an explanatory variable.")
        value = _one_variable(df, stat, response, success, mu, p)
    else:
        if stat not in _TWO_VARIABLE:
            raise ValueError(
                f"Statistic {stat!r} takes a single variable; drop explanatory="
            )
        value = _two_variable(df, stat, response, explanatory, order, success)

    result = StatisticResult(stat=stat, estimate=value, nobs=int(len(df)))
    return FittedModel(ModelKind.STATISTIC, result)


def statistic(
    stat: str,
    response: str,
    explanatory: str | None = None,
    **kwargs: Any,
) -> Callable[[pd.DataFrame], FittedModel]:
    """Return ``fit_fn(data) -> calculate(data, stat, ...)`` for workflows.

    The result is a :func:`functools.partial`, so it pickles cleanly
    for process-based workers.
    """
    if stat not in STATISTICS:
        raise ValueError(
            f"Unknown statistic {stat!r}.  Available: {', '.join(sorted(STATISTICS))}."
        )
    return functools.partial(
        calculate, stat=stat, response=response, explanatory=explanatory, **kwargs
    )


__all__ = ["STATISTICS", "calculate", "statistic"]
