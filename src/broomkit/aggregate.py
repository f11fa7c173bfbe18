"""Aggregation of replicate records: confidence intervals and p-values.

Every function takes a stacked replicate frame (the ``terms`` or
``summaries`` of a :class:`~broomkit._results.ResampleResult`, or any
frame with one row per replicate and term) and reduces the *column*
of interest, grouped by the *by* column when the frame has one.  A
summary frame has no ``term`` column and is aggregated as a single
group.

Confidence intervals
--------------------
* **Percentile** — the ``[(1 − level)/2, (1 + level)/2]`` empirical
  quantiles of the replicate values (linear interpolation, numpy's
  default).
* **Standard error** — ``point ± z·sd`` where ``sd`` is the sample
  standard deviation (ddof=1) of the replicate values and
  ``z = Φ⁻¹((1 + level)/2)``.
* **Bias-corrected** — percentile interval with the quantile levels
  shifted by the median bias of the replicates relative to the point
  estimate::

      z₀ = Φ⁻¹(#{x* < θ̂} / B)
      probs = Φ(2·z₀ ∓ z)

Empirical p-values
------------------
For a null distribution x*₁…x*_B and an observed statistic t::

    right = #{x* ≥ t} / B
    left  = #{x* ≤ t} / B
    two-sided = min(1, 2·min(left, right))

The factor of two folds the more extreme tail onto both sides.  With
``correction=True`` each tail uses the Phipson & Smyth (2010) form
``(b + 1) / (B + 1)``, which treats the observed statistic as one
member of the reference set and can never be zero.
"""

from __future__ import annotations

import warnings
from collections.abc import Callable
from typing import Any

import numpy as np
import pandas as pd
from scipy import stats

from .models import FittedModel

_DIRECTIONS = {
    "greater": "greater",
    "right": "greater",
    "less": "less",
    "left": "less",
    "two-sided": "two-sided",
    "two_sided": "two-sided",
    "two sided": "two-sided",
    "both": "two-sided",
}

_CI_TYPES = ("percentile", "se", "bias-corrected")


def _check_level(level: float) -> None:
    if not 0 < level < 1:
        raise ValueError(f"level must be in (0, 1), got {level}.")


def normalize_direction(direction: str) -> str:
    """Map a direction or its alias to ``greater``/``less``/``two-sided``."""
    key = direction.strip().lower()
    if key not in _DIRECTIONS:
        raise ValueError(
            f"Unknown direction '{direction}'. Choose from: {sorted(_DIRECTIONS)}"
        )
    return _DIRECTIONS[key]


# ------------------------------------------------------------------ #
# Grouping helpers
# ------------------------------------------------------------------ #


def _groups(
    replicates: pd.DataFrame, column: str, by: str | None
) -> list[tuple[Any, np.ndarray]]:
    """Split *column* into ``(group_key, finite values)`` pairs.

    Groups follow first-appearance order, which for term frames is the
    model's term order.
    """
    if column not in replicates.columns:
        raise KeyError(
            f"Column '{column}' not found in the replicate frame. "
            f"Available: {list(replicates.columns)}"
        )
    if by is None or by not in replicates.columns:
        values = replicates[column].to_numpy(dtype=float)
        return [(None, values[~np.isnan(values)])]
    out = []
    for key, sub in replicates.groupby(by, sort=False):
        values = sub[column].to_numpy(dtype=float)
        out.append((key, values[~np.isnan(values)]))
    return out


def _point_lookup(
    point_estimate: Any, column: str, by: str | None
) -> Callable[[Any], float]:
    """Return ``key -> point estimate`` for scalars, frames or models."""
    if point_estimate is None:
        raise ValueError("A point_estimate is required for this interval type.")
    if isinstance(point_estimate, FittedModel):
        from .adapters import term_view

        point_estimate = term_view(point_estimate, conf_int=False)
    if isinstance(point_estimate, pd.DataFrame):
        frame = point_estimate
        if by is not None and by in frame.columns:
            table = dict(zip(frame[by], frame[column].astype(float)))

            def lookup(key: Any) -> float:
                try:
                    return table[key]
                except KeyError:
                    raise KeyError(
                        f"No point estimate for {by}={key!r}."
                    ) from None

            return lookup
        if len(frame) != 1:
            raise ValueError(
                "A point-estimate frame without a grouping column must have one row."
            )
        value = float(frame[column].iloc[0])
        return lambda key: value
    value = float(point_estimate)
    return lambda key: value


def _frame(rows: list[dict[str, Any]], by: str | None, cols: list[str]) -> pd.DataFrame:
    if by is None or all(row.get(by) is None for row in rows):
        for row in rows:
            row.pop(by, None)
        return pd.DataFrame(rows, columns=cols)
    return pd.DataFrame(rows, columns=[by, *cols])


# ------------------------------------------------------------------ #
# Confidence intervals
# ------------------------------------------------------------------ #


def percentile_ci(
    replicates: pd.DataFrame,
    level: float = 0.95,
    *,
    column: str = "estimate",
    by: str | None = "term",
) -> pd.DataFrame:
    """Empirical-quantile interval of *column*, per *by* group.

    Returns:
        Frame with the *by* column (when grouped), ``conf_low`` and
        ``conf_high``.
    """
    _check_level(level)
    lo_q, hi_q = (1 - level) / 2, (1 + level) / 2
    rows = []
    for key, values in _groups(replicates, column, by):
        if values.size == 0:
            lo = hi = np.nan
        else:
            lo, hi = np.quantile(values, [lo_q, hi_q])
        rows.append({by: key, "conf_low": float(lo), "conf_high": float(hi)})
    return _frame(rows, by, ["conf_low", "conf_high"])


def se_ci(
    replicates: pd.DataFrame,
    point_estimate: Any,
    level: float = 0.95,
    *,
    column: str = "estimate",
    by: str | None = "term",
) -> pd.DataFrame:
    """``point ± z·sd`` interval, per *by* group.

    Args:
        replicates: Stacked replicate records.
        point_estimate: Observed statistic as a scalar, a one-row
            frame, a term frame (matched on *by*) or a ``FittedModel``.
        level: Confidence level.
        column: Column holding the replicate statistic.
        by: Grouping column.
    """
    _check_level(level)
    z = stats.norm.ppf((1 + level) / 2)
    point = _point_lookup(point_estimate, column, by)
    rows = []
    for key, values in _groups(replicates, column, by):
        sd = float(np.std(values, ddof=1)) if values.size > 1 else np.nan
        centre = point(key)
        rows.append({by: key, "conf_low": centre - z * sd, "conf_high": centre + z * sd})
    return _frame(rows, by, ["conf_low", "conf_high"])


def bias_corrected_ci(
    replicates: pd.DataFrame,
    point_estimate: Any,
    level: float = 0.95,
    *,
    column: str = "estimate",
    by: str | None = "term",
) -> pd.DataFrame:
    """Bias-corrected percentile interval, per *by* group."""
    _check_level(level)
    z = stats.norm.ppf((1 + level) / 2)
    point = _point_lookup(point_estimate, column, by)
    rows = []
    for key, values in _groups(replicates, column, by):
        if values.size == 0:
            rows.append({by: key, "conf_low": np.nan, "conf_high": np.nan})
            continue
        z0 = stats.norm.ppf(np.mean(values < point(key)))
        probs = stats.norm.cdf([2 * z0 - z, 2 * z0 + z])
        lo, hi = np.quantile(values, probs)
        rows.append({by: key, "conf_low": float(lo), "conf_high": float(hi)})
    return _frame(rows, by, ["conf_low", "conf_high"])


def get_confidence_interval(
    replicates: pd.DataFrame,
    level: float = 0.95,
    type: str = "percentile",
    point_estimate: Any = None,
    *,
    column: str = "estimate",
    by: str | None = "term",
) -> pd.DataFrame:
    """Dispatch to :func:`percentile_ci`, :func:`se_ci` or :func:`bias_corrected_ci`.

    Args:
        replicates: Stacked replicate records.
        level: Confidence level.
        type: ``"percentile"``, ``"se"`` or ``"bias-corrected"``.
        point_estimate: Required for ``"se"`` and ``"bias-corrected"``.
        column: Column holding the replicate statistic.
        by: Grouping column.
    """
    kind = type.strip().lower().replace("_", "-")
    if kind == "percentile":
        return percentile_ci(replicates, level, column=column, by=by)
    if kind == "se":
        return se_ci(replicates, point_estimate, level, column=column, by=by)
    if kind == "bias-corrected":
        return bias_corrected_ci(replicates, point_estimate, level, column=column, by=by)
    raise ValueError(f"Unknown interval type '{type}'. Choose from: {list(_CI_TYPES)}")


# ------------------------------------------------------------------ #
# p-values
# ------------------------------------------------------------------ #


def empirical_p_value(
    null_values: np.ndarray,
    observed: float,
    direction: str = "two-sided",
    *,
    correction: bool = False,
) -> float:
    """Tail probability of *observed* under the *null_values* distribution.

    Args:
        null_values: Replicate statistics under the null; NaNs ignored.
        observed: Observed statistic.
        direction: ``greater``/``right``, ``less``/``left`` or
            ``two-sided``/``both``.
        correction: Use ``(b + 1) / (B + 1)`` tails.

    Returns:
        The p-value, or NaN when the null distribution is empty.
    """
    side = normalize_direction(direction)
    x = np.asarray(null_values, dtype=float)
    x = x[~np.isnan(x)]
    if x.size == 0:
        return float("nan")
    extra = 1 if correction else 0
    right = (np.sum(x >= observed) + extra) / (x.size + extra)
    left = (np.sum(x <= observed) + extra) / (x.size + extra)
    if side == "greater":
        return float(right)
    if side == "less":
        return float(left)
    return float(min(1.0, 2 * min(left, right)))


def get_p_value(
    null: pd.DataFrame,
    observed: Any,
    direction: str = "two-sided",
    *,
    column: str = "estimate",
    by: str | None = "term",
    correction: bool = False,
) -> pd.DataFrame:
    """Empirical p-value of the observed statistic, per *by* group.

    Args:
        null: Stacked null-distribution replicate records.
        observed: Observed statistic as a scalar, a one-row frame, a
            term frame matched on *by*, or a ``FittedModel``.
        direction: Tail(s) to count (see :func:`empirical_p_value`).
        column: Column holding the statistic.
        by: Grouping column.
        correction: Apply the ``+1`` correction.

    Returns:
        Frame with the *by* column (when grouped) and ``p_value``.
    """
    normalize_direction(direction)
    point = _point_lookup(observed, column, by)
    rows = []
    for key, values in _groups(null, column, by):
        p = empirical_p_value(values, point(key), direction, correction=correction)
        if p == 0:
            warnings.warn(
                f"p-value of 0 from {values.size} replicates"
                + ("" if key is None else f" for {by}={key!r}")
                + ": it is bounded by the number of replicates, not exactly zero. "
                "Report it as p < 1/B or pass correction=True.",
                UserWarning,
                stacklevel=2,
            )
        rows.append({by: key, "p_value": p})
    return _frame(rows, by, ["p_value"])


__all__ = [
    "bias_corrected_ci",
    "empirical_p_value",
    "get_confidence_interval",
    "get_p_value",
    "normalize_direction",
    "percentile_ci",
    "se_ci",
]
