"""Classical hypothesis tests as kind-tagged models.

Wraps scipy's t, Wilcoxon and chi-squared procedures so that they
return an :class:`~broomkit.models.HTestResult` inside a ``HTEST``
:class:`~broomkit.models.FittedModel`.  The result carries the
fields the tidy views report — statistic, p-value, degrees of freedom,
estimate and confidence interval — under one set of names regardless
of which scipy function produced them.

The formula-style arguments mirror the tutorial usage: a *response*
column and an optional two-level *explanatory* column, with *order*
fixing which level is subtracted from which.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from ._compat import DataFrameLike, _as_frame, _require_columns
from .models import FittedModel, HTestResult, ModelKind

_ALTERNATIVES = {"two-sided", "less", "greater"}


def _check_alternative(alternative: str) -> str:
    alt = alternative.strip().lower().replace("_", "-").replace(".", "-")
    if alt not in _ALTERNATIVES:
        raise ValueError(
            f"alternative must be one of {sorted(_ALTERNATIVES)}, got {alternative!r}."
        )
    return alt


def two_groups(
    df: pd.DataFrame,
    response: str,
    explanatory: str,
    order: Sequence | None = None,
) -> tuple[np.ndarray, np.ndarray, tuple]:
    """Split *response* into two arrays by the levels of *explanatory*.

    Args:
        df: Input frame.
        response: Numeric column to split.
        explanatory: Grouping column.
        order: The two levels, first minus second.  Defaults to the
            sorted unique levels.

    Returns:
        ``(first, second, (level1, level2))``.

    Raises:
        ValueError: If there are not exactly two levels to compare.
    """
    if order is None:
        levels = sorted(df[explanatory].dropna().unique().tolist())
    else:
        levels = list(order)
    if len(levels) != 2:
        raise ValueError(
            f"'{explanatory}' must have exactly two levels to compare "
            f"(pass order=[a, b]), found {levels}."
        )
    first = df.loc[df[explanatory] == levels[0], response].to_numpy(dtype=float)
    second = df.loc[df[explanatory] == levels[1], response].to_numpy(dtype=float)
    if first.size == 0 or second.size == 0:
        raise ValueError(f"Level(s) of '{explanatory}' have no observations: {levels}.")
    return first, second, tuple(levels)


# ------------------------------------------------------------------ #
# t-tests
# ------------------------------------------------------------------ #


def t_test(
    data: DataFrameLike,
    response: str,
    explanatory: str | None = None,
    *,
    mu: float = 0.0,
    order: Sequence | None = None,
    alternative: str = "two-sided",
    equal_var: bool = False,
    conf_level: float = 0.95,
) -> FittedModel:
    """One-sample (``explanatory=None``) or two-sample t-test.

    The two-sample form is Welch's test unless *equal_var* is set.
    """
    df = _as_frame(data)
    _require_columns(df, [response, explanatory])
    alt = _check_alternative(alternative)

    if explanatory is None:
        x = df[response].dropna().to_numpy(dtype=float)
        res = stats.ttest_1samp(x, popmean=mu, alternative=alt)
        ci = res.confidence_interval(confidence_level=conf_level)
        result = HTestResult(
            test="t",
            method="One Sample t-test",
            statistic=float(res.statistic),
            p_value=float(res.pvalue),
            alternative=alt,
            parameter=float(res.df),
            estimate=float(np.mean(x)),
            conf_low=float(ci.low),
            conf_high=float(ci.high),
        )
    else:
        a, b, _ = two_groups(df.dropna(subset=[response]), response, explanatory, order)
        res = stats.ttest_ind(a, b, equal_var=equal_var, alternative=alt)
        ci = res.confidence_interval(confidence_level=conf_level)
        result = HTestResult(
            test="t",
            method="Two Sample t-test" if equal_var else "Welch Two Sample t-test",
            statistic=float(res.statistic),
            p_value=float(res.pvalue),
            alternative=alt,
            parameter=float(res.df),
            estimate=float(np.mean(a) - np.mean(b)),
            estimate1=float(np.mean(a)),
            estimate2=float(np.mean(b)),
            conf_low=float(ci.low),
            conf_high=float(ci.high),
        )

    config = {"mu": mu, "conf_level": conf_level, "alternative": alt}
    return FittedModel(ModelKind.HTEST, result, config=config)


# ------------------------------------------------------------------ #
# Wilcoxon rank tests
# ------------------------------------------------------------------ #


def wilcox_test(
    data: DataFrameLike,
    response: str,
    explanatory: str | None = None,
    *,
    mu: float = 0.0,
    order: Sequence | None = None,
    alternative: str = "two-sided",
) -> FittedModel:
    """Wilcoxon signed-rank (one sample) or rank-sum (two samples) test.

    Rank tests have no per-observation output, so the augmented view
    of the returned model raises ``UnsupportedOperation``.
    """
    df = _as_frame(data)
    _require_columns(df, [response, explanatory])
    alt = _check_alternative(alternative)

    if explanatory is None:
        x = df[response].dropna().to_numpy(dtype=float)
        res = stats.wilcoxon(x - mu, alternative=alt)
        method = "Wilcoxon signed rank test"
    else:
        a, b, _ = two_groups(df.dropna(subset=[response]), response, explanatory, order)
        res = stats.mannwhitneyu(a, b, alternative=alt)
        method = "Wilcoxon rank sum test"

    result = HTestResult(
        test="wilcoxon",
        method=method,
        statistic=float(res.statistic),
        p_value=float(res.pvalue),
        alternative=alt,
    )
    return FittedModel(ModelKind.HTEST, result, config={"mu": mu, "alternative": alt})


# ------------------------------------------------------------------ #
# Chi-squared tests
# ------------------------------------------------------------------ #


def _gof_probabilities(
    levels: list, p: Mapping | Sequence[float] | None
) -> np.ndarray:
    if p is None:
        return np.full(len(levels), 1.0 / len(levels))
    if isinstance(p, Mapping):
        missing = [lv for lv in levels if lv not in p]
        if missing:
            raise ValueError(f"p has no probability for level(s) {missing}.")
        probs = np.array([p[lv] for lv in levels], dtype=float)
    else:
        probs = np.asarray(p, dtype=float)
        if probs.shape != (len(levels),):
            raise ValueError(
                f"p must have one entry per level ({len(levels)}), got {probs.shape[0]}."
            )
    if np.any(probs < 0) or not np.isclose(probs.sum(), 1.0):
        raise ValueError("p must be non-negative and sum to 1.")
    return probs


def chisq_test(
    data: DataFrameLike,
    x: str,
    y: str | None = None,
    *,
    p: Mapping | Sequence[float] | None = None,
    correct: bool = True,
) -> FittedModel:
    """Chi-squared test of independence (*x* by *y*) or goodness of fit (*x* alone).

    Args:
        data: Input frame of categorical observations.
        x: First categorical column.
        y: Second categorical column for the independence test.
        p: Null probabilities per level of *x* for the goodness-of-fit
            test (mapping or sequence in sorted level order); uniform
            when omitted.
        correct: Apply Yates' continuity correction to 2×2 tables.

    Returns:
        A ``HTEST`` model that keeps the observed and expected tables,
        so its augmented view yields one row per cell.
    """
    df = _as_frame(data)
    _require_columns(df, [x, y])

    if y is not None:
        observed = pd.crosstab(df[x], df[y])
        res = stats.chi2_contingency(observed.to_numpy(), correction=correct)
        expected = pd.DataFrame(
            res.expected_freq, index=observed.index, columns=observed.columns
        )
        dof = int(res.dof)
        method = "Pearson's Chi-squared test"
        if correct and dof == 1:
            method += " with Yates' continuity correction"
        result = HTestResult(
            test="chisq_independence",
            method=method,
            statistic=float(res.statistic),
            p_value=float(res.pvalue),
            parameter=float(dof),
            observed=observed,
            expected=expected,
        )
        return FittedModel(ModelKind.HTEST, result, config={"correct": correct})

    observed = df[x].dropna().value_counts().sort_index()
    probs = _gof_probabilities(observed.index.tolist(), p)
    expected = pd.Series(probs * observed.sum(), index=observed.index)
    res = stats.chisquare(observed.to_numpy(), f_exp=expected.to_numpy())
    result = HTestResult(
        test="chisq_gof",
        method="Chi-squared test for given probabilities",
        statistic=float(res.statistic),
        p_value=float(res.pvalue),
        parameter=float(len(observed) - 1),
        observed=observed,
        expected=expected,
    )
    return FittedModel(ModelKind.HTEST, result, config={"p": p})


__all__ = ["chisq_test", "t_test", "two_groups", "wilcox_test"]
