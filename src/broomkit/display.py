"""Formatted ASCII tables for tidy views and resample results.

The tables follow the statsmodels summary layout: an 80-column frame
with a centred title, a two-column header panel and a body panel with
one row per term.  They are meant for quick inspection in a terminal
or notebook; the underlying frames are the programmatic interface.
"""

from __future__ import annotations

import textwrap
from typing import Any

import numpy as np
import pandas as pd

from ._results import ResampleResult
from .adapters import summary_view, term_view

_W = 80


def _truncate(name: str, max_len: int) -> str:
    """Truncate *name* to *max_len*, appending ``'...'`` if needed."""
    if len(name) <= max_len:
        return name
    return name[: max_len - 3] + "..."


def _fmt_val(val: object, width: int = 10) -> str:
    """Format a table cell; ``nan`` and ``None`` become ``'N/A'``."""
    if val is None:
        return "N/A"
    if isinstance(val, (bool, np.bool_)):
        return str(bool(val))
    if isinstance(val, (int, np.integer)):
        return str(int(val))
    if isinstance(val, (float, np.floating)):
        if np.isnan(val):
            return "N/A"
        if val != 0 and (abs(val) < 1e-3 or abs(val) >= 10 ** (width - 3)):
            return f"{val:.3e}"
        return f"{val:.4f}"
    return str(val)


def _title(title: str) -> None:
    print("=" * _W)
    for line in textwrap.wrap(title, width=_W - 2):
        print(f"{line:^{_W}}")
    print("=" * _W)


def _pairs(record: dict[str, Any]) -> None:
    """Print ``label: value`` pairs two per line."""
    items = [(f"{k}:", _truncate(_fmt_val(v), 22)) for k, v in record.items()]
    for i in range(0, len(items), 2):
        (ll, lv), *rest = items[i : i + 2]
        left = f"{ll:<18}{lv:>22}"
        right = f"{rest[0][0]:>16} {rest[0][1]:>21}" if rest else ""
        print(f"{left}  {right}".rstrip())


def _as_frame(obj: Any, view: Any, **kwargs: Any) -> pd.DataFrame:
    return obj if isinstance(obj, pd.DataFrame) else view(obj, **kwargs)


def _print_frame(frame: pd.DataFrame, label_col: str | None) -> None:
    """Print *frame* with a left label column and right-aligned numbers."""
    value_cols = [c for c in frame.columns if c != label_col]
    lc = 20 if label_col else 0
    vw = max(10, min(14, (_W - lc) // max(len(value_cols), 1)))
    value_cols = value_cols[: (_W - lc) // vw]
    header = (label_col or "").ljust(lc) + "".join(
        f"{_truncate(str(c), vw - 1):>{vw}}" for c in value_cols
    )
    print(header)
    print("-" * _W)
    for _, row in frame.iterrows():
        label = _truncate(str(row[label_col]), lc - 1) if label_col else ""
        cells = "".join(
            f"{_truncate(_fmt_val(row[c]), vw - 1):>{vw}}" for c in value_cols
        )
        print(label.ljust(lc) + cells)


# ------------------------------------------------------------------ #
# Public printers
# ------------------------------------------------------------------ #


def print_terms_table(
    model: Any,
    *,
    title: str = "Term Estimates",
    conf_level: float = 0.95,
) -> None:
    """Print the term view of *model* (or a term frame) as a table.

    Args:
        model: A fitted model or a frame returned by :func:`term_view`.
        title: Title for the output table.
        conf_level: Interval level when *model* is not a frame.
    """
    frame = _as_frame(model, term_view, conf_level=conf_level)
    _title(title)
    label = "term" if "term" in frame.columns else None
    if label is None and "cluster" in frame.columns:
        label = "cluster"
    _print_frame(frame, label)
    print("=" * _W)
    print()


def print_summary_table(model: Any, *, title: str = "Model Summary") -> None:
    """Print the one-row summary view of *model* as ``label: value`` pairs."""
    frame = _as_frame(model, summary_view)
    _title(title)
    _pairs(frame.iloc[0].to_dict() if len(frame) else {})
    print("=" * _W)
    print()


def print_resample_table(
    result: ResampleResult,
    *,
    level: float = 0.95,
    direction: str | None = None,
    source: str = "terms",
    column: str = "estimate",
    title: str | None = None,
) -> None:
    """Print the observed estimates with percentile intervals (and p-values).

    Args:
        result: Result of :func:`broomkit.run`.
        level: Percentile interval level.
        direction: When given, add an empirical p-value column for
            this direction (needs the observed fit).
        source: ``"terms"`` or ``"summaries"``.
        column: Statistic column to aggregate.
        title: Title; defaults to the strategy name.
    """
    if title is None:
        title = f"{result.strategy.capitalize()} Results"
    _title(title)
    _pairs(
        {
            "Strategy": result.strategy,
            "Replicates": result.n_requested,
            "Completed": result.n_completed,
            "Omitted": result.n_omitted,
        }
    )
    print("-" * _W)

    ci = result.percentile_ci(level, column=column, source=source)
    observed = result.observed_terms if source == "terms" else result.observed_summary
    by = "term" if "term" in ci.columns else None

    table = ci.copy()
    if observed is not None and column in observed.columns:
        if by is not None and by in observed.columns:
            table = observed[[by, column]].merge(table, on=by, how="right")
        else:
            table.insert(0, column, float(observed[column].iloc[0]))
    if direction is not None and observed is not None:
        p = result.p_value(direction, column=column, source=source)
        table = table.merge(p, on=by) if by is not None else table.assign(
            p_value=p["p_value"].to_numpy()
        )
    table = table.rename(
        columns={
            "conf_low": f"[{(1 - level) / 2:.3f}",
            "conf_high": f"{(1 + level) / 2:.3f}]",
        }
    )
    _print_frame(table, by)

    if result.n_omitted:
        print("-" * _W)
        note = (
            f"  [!] {result.n_omitted} replicate(s) failed and were omitted "
            f"from every statistic above."
        )
        print(textwrap.fill(note, width=_W, subsequent_indent=" " * 6))
    print("=" * _W)
    print()


__all__ = ["print_resample_table", "print_summary_table", "print_terms_table"]
