"""Typed result objects for resample workflows.

Frozen dataclasses that provide:

* **Attribute access**, e.g. ``result.terms`` or ``result.n_omitted``.
* **Dict-like access**: ``result["terms"]``, ``result.get("key")`` and
  ``"key" in result``.
* **Serialisation**: ``.to_dict()`` returns a plain ``dict[str, Any]``
  with NumPy scalars made native and frames turned into record lists.

:class:`ReplicateResult` holds the tidy views of a single replicate;
:class:`ResampleResult` stacks them for a whole run and adds the
aggregation helpers from :mod:`broomkit.aggregate` as methods, with
the observed (unresampled) views filled in as point estimates.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar

import numpy as np
import pandas as pd

from . import aggregate
from .errors import ReplicateFailure

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively replace NumPy/pandas values with JSON-friendly ones."""
    if isinstance(obj, pd.DataFrame):
        return _numpy_to_python(obj.to_dict(orient="records"))
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, dict):
        return {k: _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return type(obj)(_numpy_to_python(item) for item in obj)
    return obj


def _failure_records(failures) -> list[dict[str, Any]]:
    return [{"replicate_id": f.replicate_id, "error": repr(f.cause)} for f in failures]


# ------------------------------------------------------------------ #
# Dict-compatibility mixin
# ------------------------------------------------------------------ #


class _DictAccessMixin:
    """Bracket-style access to dataclass fields.

    ``result["key"]`` raises ``KeyError`` for an unknown name, while
    ``result.get("key", default)`` falls back to *default*.  Fields
    listed in ``_SERIALIZERS`` are converted by their function before
    :meth:`to_dict` normalises NumPy values.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {
        "strategy": str,
        "failures": _failure_records,
    }

    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and hasattr(self, key)

    def __getitem__(self, key: str) -> Any:
        if key not in self:
            raise KeyError(key)
        return getattr(self, key)

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self, key, default)

    def _serialise(self, name: str) -> Any:
        value = getattr(self, name)
        convert = self._SERIALIZERS.get(name)
        if convert is not None and value is not None:
            value = convert(value)
        return _numpy_to_python(value)

    def to_dict(self) -> dict[str, Any]:
        """Convert every field (except ``_EXCLUDE_FROM_DICT``) to plain Python."""
        return {
            f.name: self._serialise(f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if f.name not in self._EXCLUDE_FROM_DICT
        }


# ------------------------------------------------------------------ #
# ReplicateResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ReplicateResult(_DictAccessMixin):
    """Tidy views of one successfully fitted replicate.

    Attributes:
        replicate_id: 1-based replicate identifier.
        terms: Term view, or ``None`` if not requested / unsupported.
        summary: One-row summary view, or ``None`` if not requested.
        augmented: Augmented view of the replicate data, or ``None``.
    """

    replicate_id: int
    terms: pd.DataFrame | None = None
    summary: pd.DataFrame | None = None
    augmented: pd.DataFrame | None = None


# ------------------------------------------------------------------ #
# ResampleResult
# ------------------------------------------------------------------ #


def _stack(frames: list[pd.DataFrame | None], ids: list[int]) -> pd.DataFrame | None:
    """Concatenate per-replicate frames with a leading ``replicate`` column."""
    parts = []
    for rid, frame in zip(ids, frames):
        if frame is None:
            continue
        part = frame.copy()
        part.insert(0, "replicate", rid)
        parts.append(part)
    if not parts:
        return None
    return pd.concat(parts, ignore_index=True)


@dataclass(frozen=True)
class ResampleResult(_DictAccessMixin):
    """Outcome of :func:`broomkit.workflow.run`.

    Replicate frames carry a ``replicate`` column and are ordered by
    replicate id.  Failed replicates are omitted from every frame and
    listed in ``failures``; ``n_requested == n_completed + n_omitted``.

    Attributes:
        strategy: Name of the resampling strategy.
        n_requested: Number of replicates requested.
        n_completed: Number of replicates that produced records.
        n_omitted: Number of failed (omitted) replicates.
        failures: One :class:`ReplicateFailure` per omitted replicate.
        terms: Stacked term views, or ``None``.
        summaries: Stacked summary views, or ``None``.
        augmented: Stacked augmented views, or ``None``.
        observed_terms: Term view of the fit on the original data.
        observed_summary: Summary view of the fit on the original data.
    """

    strategy: str
    n_requested: int
    n_completed: int
    n_omitted: int
    failures: tuple[ReplicateFailure, ...] = ()
    terms: pd.DataFrame | None = None
    summaries: pd.DataFrame | None = None
    augmented: pd.DataFrame | None = None
    observed_terms: pd.DataFrame | None = None
    observed_summary: pd.DataFrame | None = None
    random_state: int | None = field(default=None, repr=False)

    @classmethod
    def from_replicates(
        cls,
        strategy: str,
        n_requested: int,
        completed: list[ReplicateResult],
        failures: list[ReplicateFailure],
        *,
        observed_terms: pd.DataFrame | None = None,
        observed_summary: pd.DataFrame | None = None,
        random_state: int | None = None,
    ) -> ResampleResult:
        """Stack replicate results (already sorted by id)."""
        ids = [r.replicate_id for r in completed]
        return cls(
            strategy=strategy,
            n_requested=n_requested,
            n_completed=len(completed),
            n_omitted=len(failures),
            failures=tuple(failures),
            terms=_stack([r.terms for r in completed], ids),
            summaries=_stack([r.summary for r in completed], ids),
            augmented=_stack([r.augmented for r in completed], ids),
            observed_terms=observed_terms,
            observed_summary=observed_summary,
            random_state=random_state,
        )

    # ---- Aggregation -----------------------------------------------

    def _records(self, source: str) -> pd.DataFrame:
        if source not in ("terms", "summaries"):
            raise ValueError(f"source must be 'terms' or 'summaries', got {source!r}.")
        frame = self.terms if source == "terms" else self.summaries
        if frame is None:
            raise ValueError(
                f"No {source} records: include "
                f"{'terms' if source == 'terms' else 'summary'!r} in views=."
            )
        return frame

    def _observed(self, source: str) -> pd.DataFrame | None:
        return self.observed_terms if source == "terms" else self.observed_summary

    def percentile_ci(
        self, level: float = 0.95, *, column: str = "estimate", source: str = "terms"
    ) -> pd.DataFrame:
        """Percentile interval of *column* over the replicates."""
        return aggregate.percentile_ci(self._records(source), level, column=column)

    def se_ci(
        self,
        level: float = 0.95,
        *,
        point_estimate: Any = None,
        column: str = "estimate",
        source: str = "terms",
    ) -> pd.DataFrame:
        """Standard-error interval centred on the observed fit by default."""
        if point_estimate is None:
            point_estimate = self._observed(source)
        return aggregate.se_ci(
            self._records(source), point_estimate, level, column=column
        )

    def get_confidence_interval(
        self,
        level: float = 0.95,
        type: str = "percentile",
        *,
        point_estimate: Any = None,
        column: str = "estimate",
        source: str = "terms",
    ) -> pd.DataFrame:
        """Interval of the requested *type* (see :mod:`broomkit.aggregate`)."""
        if point_estimate is None:
            point_estimate = self._observed(source)
        return aggregate.get_confidence_interval(
            self._records(source), level, type, point_estimate, column=column
        )

    def p_value(
        self,
        direction: str = "two-sided",
        *,
        observed: Any = None,
        column: str = "estimate",
        source: str = "terms",
        correction: bool = False,
    ) -> pd.DataFrame:
        """Empirical p-value of the observed fit against the replicates."""
        if observed is None:
            observed = self._observed(source)
        if observed is None:
            raise ValueError(
                "No observed statistic: pass observed= or run with observed=True."
            )
        return aggregate.get_p_value(
            self._records(source),
            observed,
            direction,
            column=column,
            correction=correction,
        )


__all__ = ["ReplicateResult", "ResampleResult"]
