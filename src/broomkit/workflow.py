"""Resample-and-aggregate workflow orchestration.

:class:`ResampleWorkflow` is a builder: construction resolves the
strategy, the parallel settings and the observed (unresampled) fit;
:meth:`ResampleWorkflow.run` then generates the replicates, fits each
one and tidies it with the adapter views.  :func:`run` is the one-call
convenience wrapper.

Pipeline
--------
1. **Validation** — frame conversion, column checks, view names.
2. **Observed fit** — ``fit_fn(data)`` and its views.  Errors here
   propagate: a workflow whose base model cannot be fitted is a caller
   error, not a replicate failure.
3. **Seeding** — ``SeedSequence(random_state).spawn(R + 1)`` gives a
   planning seed plus one independent stream per replicate, so results
   are identical for any ``n_jobs`` and any scheduling order.
4. **Planning** — strategies that coordinate across replicates
   (unique permutations) prepare one planned value per replicate.
5. **Fan-out** — joblib ``Parallel``; each task builds its replicate,
   fits it, tidies it and drops the replicate data.
6. **Collection** — outcomes are sorted by replicate id; failures are
   counted, logged and summarised in one ``UserWarning``.

Failure semantics
-----------------
Any exception raised by ``fit_fn`` or by a view inside a replicate is
wrapped in :class:`~broomkit.errors.ReplicateFailure` and the replicate
is omitted.  There are no retries.  With ``warnings_as_failures=True``
warnings raised during the fit (e.g. statsmodels
``ConvergenceWarning``) are promoted to errors first; this uses the
process-wide warnings filters, so with thread workers it also affects
warnings raised concurrently by other code.

A per-call ``timeout`` runs the fit on a helper thread and abandons it
when the deadline passes.  Python cannot kill a thread, so an expired
fit keeps running in the background until it returns; its result is
discarded and the replicate counts as failed.
"""

from __future__ import annotations

import concurrent.futures
import logging
import warnings
from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
import pandas as pd
from joblib import Parallel, cpu_count, delayed

from ._compat import DataFrameLike, _as_frame, _require_columns
from ._config import get_n_jobs, get_prefer
from ._results import ReplicateResult, ResampleResult
from .adapters import augmented_view, get_view, resolve_adapter, summary_view, term_view
from .errors import ReplicateFailure
from .models import as_fitted
from .resample import ResampleStrategy, resolve_strategy, spawn_seeds

logger = logging.getLogger(__name__)

FitFn = Callable[[pd.DataFrame], Any]

_VALID_VIEWS = ("terms", "summary", "augmented")


# ------------------------------------------------------------------ #
# Per-replicate task
# ------------------------------------------------------------------ #


def _call_with_timeout(fn: Callable[[], Any], timeout: float | None) -> Any:
    """Run *fn*, raising ``TimeoutError`` if it exceeds *timeout* seconds."""
    if timeout is None:
        return fn()
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        raise TimeoutError(f"fit exceeded the {timeout:g} s timeout") from None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _fit(fit_fn: FitFn, data: pd.DataFrame, warnings_as_failures: bool) -> Any:
    if not warnings_as_failures:
        return fit_fn(data)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        return fit_fn(data)


def _augment(model: Any, data: pd.DataFrame, **options: Any) -> pd.DataFrame:
    """Augmented view of *model*, passing *data* when the model cannot rebuild it."""
    model = as_fitted(model)
    if resolve_adapter(model).can_reconstruct(model):
        return augmented_view(model, **options)
    return augmented_view(model, data, **options)


def _tidy(
    model: Any,
    data: pd.DataFrame,
    views: Sequence[str],
    view_options: dict[str, dict[str, Any]],
) -> dict[str, pd.DataFrame]:
    """Apply the requested views to one fitted model."""
    model = as_fitted(model)
    out: dict[str, pd.DataFrame] = {}
    if "terms" in views:
        out["terms"] = term_view(model, **view_options.get("terms", {}))
    if "summary" in views:
        out["summary"] = summary_view(model)
    if "augmented" in views:
        out["augmented"] = _augment(model, data, **view_options.get("augmented", {}))
    return out


def _run_replicate(
    replicate_id: int,
    seed: np.random.SeedSequence,
    planned: Any,
    data: pd.DataFrame,
    strategy: ResampleStrategy,
    fit_fn: FitFn,
    views: Sequence[str],
    view_options: dict[str, dict[str, Any]],
    timeout: float | None,
    warnings_as_failures: bool,
) -> ReplicateResult | ReplicateFailure:
    """Build, fit and tidy one replicate; never raises."""
    try:
        rep = strategy(data, np.random.default_rng(seed), planned)
        model = _call_with_timeout(
            lambda: _fit(fit_fn, rep, warnings_as_failures), timeout
        )
        tidy = _tidy(model, rep, views, view_options)
    except Exception as exc:
        return ReplicateFailure(replicate_id, exc)
    return ReplicateResult(
        replicate_id=replicate_id,
        terms=tidy.get("terms"),
        summary=tidy.get("summary"),
        augmented=tidy.get("augmented"),
    )


# ------------------------------------------------------------------ #
# Parallel settings
# ------------------------------------------------------------------ #


def _resolve_n_jobs(n_jobs: int | None, n_tasks: int) -> int:
    """Effective worker count, capped at the core count and task count."""
    if n_jobs is None:
        n_jobs = get_n_jobs()
    if n_jobs == 0 or n_jobs < -1:
        raise ValueError(f"n_jobs must be -1 or a positive integer, got {n_jobs}.")
    cores = cpu_count()
    effective = cores if n_jobs == -1 else min(n_jobs, cores)
    return max(1, min(effective, n_tasks))


def _resolve_prefer(prefer: str | None) -> str | None:
    name = get_prefer() if prefer is None else prefer.strip().lower()
    if name not in ("threads", "processes", "auto"):
        raise ValueError(
            f"Unknown prefer '{prefer}'. Choose from: ['auto', 'processes', 'threads']"
        )
    # joblib picks its default backend when prefer is None.
    return None if name == "auto" else name


# ------------------------------------------------------------------ #
# ResampleWorkflow
# ------------------------------------------------------------------ #


class ResampleWorkflow:
    """Builder that resolves the strategy, parallelism and observed fit.

    Construct a workflow, then call :meth:`run` with the replicate
    count.  The workflow is reusable: each :meth:`run` call draws fresh
    replicates from its own ``random_state``.

    Attributes:
        data: The input frame (pandas).
        strategy: The resolved :class:`ResampleStrategy`.
        fit_fn: ``fit_fn(frame) -> fitted model``.
        views: View names applied to each replicate.
        observed_model: The fit on the unresampled data, or ``None``
            when ``observed=False``.
        observed_terms: Term view of ``observed_model`` (if requested).
        observed_summary: Summary view of ``observed_model`` (if
            requested).
    """

    def __init__(
        self,
        data: DataFrameLike,
        fit_fn: FitFn,
        strategy: str | ResampleStrategy = "bootstrap",
        *,
        views: Sequence[str] = ("terms", "summary"),
        observed: bool = True,
        n_jobs: int | None = None,
        prefer: str | None = None,
        timeout: float | None = None,
        warnings_as_failures: bool = False,
        view_options: dict[str, dict[str, Any]] | None = None,
        **strategy_kwargs: Any,
    ) -> None:
        # ---- Validation -------------------------------------------
        self.data = _as_frame(data)
        if len(self.data) == 0:
            raise ValueError("Cannot resample an empty frame.")
        if not callable(fit_fn):
            raise TypeError(f"fit_fn must be callable, got {type(fit_fn).__name__}.")
        views = tuple(views)
        unknown = [v for v in views if v not in _VALID_VIEWS]
        if unknown or not views:
            raise ValueError(
                f"views must be a non-empty subset of {list(_VALID_VIEWS)}, "
                f"got {list(views)}."
            )
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}.")

        self.strategy: ResampleStrategy = resolve_strategy(strategy, **strategy_kwargs)
        self.strategy.validate(self.data)
        self.fit_fn = fit_fn
        self.views = views
        self.view_options = dict(view_options or {})
        self.timeout = timeout
        self.warnings_as_failures = warnings_as_failures
        self._n_jobs = n_jobs
        self._prefer = _resolve_prefer(prefer)

        # ---- Observed fit -----------------------------------------
        self.observed_model = None
        self.observed_terms: pd.DataFrame | None = None
        self.observed_summary: pd.DataFrame | None = None
        if observed:
            self.observed_model = as_fitted(fit_fn(self.data))
            tidy = _tidy(
                self.observed_model,
                self.data,
                [v for v in views if v != "augmented"],
                self.view_options,
            )
            self.observed_terms = tidy.get("terms")
            self.observed_summary = tidy.get("summary")

    def run(
        self,
        n_replicates: int,
        random_state: int | np.random.SeedSequence | None = None,
    ) -> ResampleResult:
        """Generate, fit and tidy *n_replicates* replicates.

        Returns:
            A :class:`ResampleResult`; replicates whose fit or tidy
            step raised are omitted and counted in ``n_omitted``.
        """
        if n_replicates < 1:
            raise ValueError(f"n_replicates must be >= 1, got {n_replicates}.")

        plan_seed, seeds = spawn_seeds(random_state, n_replicates)
        planned = self.strategy.plan(len(self.data), n_replicates, plan_seed)

        tasks = (
            delayed(_run_replicate)(
                i,
                seed,
                item,
                self.data,
                self.strategy,
                self.fit_fn,
                self.views,
                self.view_options,
                self.timeout,
                self.warnings_as_failures,
            )
            for i, (seed, item) in enumerate(zip(seeds, planned), start=1)
        )

        n_jobs = _resolve_n_jobs(self._n_jobs, n_replicates)
        if n_jobs == 1:
            # Sequential path avoids joblib overhead.
            outcomes = [fn(*args, **kwargs) for fn, args, kwargs in tasks]
        else:
            outcomes = Parallel(n_jobs=n_jobs, prefer=self._prefer)(tasks)

        outcomes = sorted(outcomes, key=lambda o: o.replicate_id)
        completed = [o for o in outcomes if isinstance(o, ReplicateResult)]
        failures = [o for o in outcomes if isinstance(o, ReplicateFailure)]

        for failure in failures:
            logger.debug("%s", failure)
        if failures:
            causes = sorted({type(f.cause).__name__ for f in failures})
            warnings.warn(
                f"{len(failures)} of {n_replicates} replicates failed and were "
                f"omitted ({', '.join(causes)}). See result.failures for details.",
                UserWarning,
                stacklevel=2,
            )

        return ResampleResult.from_replicates(
            self.strategy.name,
            n_replicates,
            completed,
            failures,
            observed_terms=self.observed_terms,
            observed_summary=self.observed_summary,
            random_state=random_state if isinstance(random_state, int) else None,
        )


def run(
    data: DataFrameLike,
    strategy: str | ResampleStrategy,
    n_replicates: int,
    fit_fn: FitFn,
    *,
    views: Sequence[str] = ("terms", "summary"),
    observed: bool = True,
    n_jobs: int | None = None,
    prefer: str | None = None,
    timeout: float | None = None,
    random_state: int | np.random.SeedSequence | None = None,
    warnings_as_failures: bool = False,
    view_options: dict[str, dict[str, Any]] | None = None,
    **strategy_kwargs: Any,
) -> ResampleResult:
    """Resample *data*, fit each replicate and collect its tidy views.

    Args:
        data: Input frame (pandas, or polars when installed).
        strategy: ``"bootstrap"``, ``"permute"``, ``"simulate"`` or a
            strategy instance (:class:`~broomkit.resample.Bootstrap`,
            :class:`~broomkit.resample.Permute`,
            :class:`~broomkit.resample.Simulate`).
        n_replicates: Number of replicates R.
        fit_fn: Callable taking a replicate frame and returning a
            fitted model (a :class:`FittedModel` or any object
            :func:`~broomkit.models.as_fitted` accepts).
        views: Any of ``"terms"``, ``"summary"``, ``"augmented"``.
        observed: Also fit the unresampled data (used as the point
            estimate / observed statistic by the aggregation methods).
        n_jobs: Parallel workers; ``-1`` for all cores.  Defaults to
            :func:`broomkit.get_n_jobs`.
        prefer: ``"threads"``, ``"processes"`` or ``"auto"``.
            Defaults to :func:`broomkit.get_prefer`.  Process workers
            need a picklable *fit_fn*.
        timeout: Per-replicate fit timeout in seconds.
        random_state: Seed for reproducibility.
        warnings_as_failures: Treat warnings raised during a fit as
            replicate failures.
        view_options: Per-view keyword arguments, e.g.
            ``{"terms": {"conf_int": False}}``.
        **strategy_kwargs: Strategy arguments when *strategy* is a
            name (``column=``, ``center=``, ``p=``).

    Returns:
        A :class:`ResampleResult`.

    Example::

        result = run(df, "bootstrap", 1000, statistic("mean", "hours"),
                     random_state=0)
        result.percentile_ci(0.95, source="summaries")
    """
    workflow = ResampleWorkflow(
        data,
        fit_fn,
        strategy,
        views=views,
        observed=observed,
        n_jobs=n_jobs,
        prefer=prefer,
        timeout=timeout,
        warnings_as_failures=warnings_as_failures,
        view_options=view_options,
        **strategy_kwargs,
    )
    return workflow.run(n_replicates, random_state=random_state)


# ------------------------------------------------------------------ #
# Grouped fitting
# ------------------------------------------------------------------ #


def fit_by_group(
    data: DataFrameLike,
    by: str | Sequence[str],
    fit_fn: FitFn,
    view: str = "terms",
    **view_kwargs: Any,
) -> pd.DataFrame:
    """Fit *fit_fn* to each group of *data* and stack one view.

    Groups are visited in sorted key order; rows with a missing key are
    dropped (pandas ``groupby`` semantics).  Errors propagate.

    Args:
        data: Input frame.
        by: Grouping column(s); they lead the output frame.
        fit_fn: ``fit_fn(group_frame) -> fitted model``.
        view: ``"terms"``, ``"summary"`` or ``"augmented"``.
        **view_kwargs: Passed to the view function.
    """
    df = _as_frame(data)
    keys = [by] if isinstance(by, str) else list(by)
    _require_columns(df, keys)
    fn = get_view(view)

    frames = []
    for key, group in df.groupby(keys, sort=True):
        key = key if isinstance(key, tuple) else (key,)
        model = fit_fn(group)
        if view == "augmented":
            frame = _augment(model, group, **view_kwargs)
            # The group rows already carry the key columns.
            frame = frame.drop(columns=[k for k in keys if k in frame.columns])
        else:
            frame = fn(model, **view_kwargs)
        for name, value in reversed(list(zip(keys, key))):
            frame.insert(0, name, value)
        frames.append(frame)
    if not frames:
        return pd.DataFrame(columns=keys)
    return pd.concat(frames, ignore_index=True)


__all__ = ["ResampleWorkflow", "fit_by_group", "run"]
