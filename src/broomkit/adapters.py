"""Model adapter protocol, per-family adapters and the three tidy views.

The ``ModelAdapter`` protocol is the interface every model family
implements.  It decouples family-specific extraction (which attribute
holds the standard errors, how fitted values are recomputed for new
data, whether the training data can be recovered) from the public
views, which dispatch through a lookup table keyed by
:class:`~broomkit.models.ModelKind`:

* :func:`term_view` — one row per estimated term.
* :func:`augmented_view` — the input rows plus derived columns.
* :func:`summary_view` — exactly one row of model-level statistics.

Capabilities
~~~~~~~~~~~~
Not every family has every view.  Adapters answer three capability
questions — ``supports_terms``, ``supports_augment`` and
``can_reconstruct`` — and the views consult them *before* doing any
work, raising :class:`~broomkit.errors.UnsupportedOperation` or
:class:`~broomkit.errors.ReconstructionFailure`.  Adapter methods
never use exceptions to signal a missing capability.

Column conventions
~~~~~~~~~~~~~~~~~~
Adapters return every statistic they can compute; which of them reach
the summary view, and which configuration arguments are withheld, is
decided by the tables in :mod:`broomkit._fields`.  Derived augmented
columns are returned without their marker and attached by
:func:`_attach_derived`, which guarantees that user columns are never
overwritten.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import numpy as np
import pandas as pd
from scipy import stats as _sp_stats

from ._compat import DataFrameLike, _as_frame, _require_columns
from ._config import get_column_marker
from ._fields import AUGMENT_COLUMNS, TERM_COLUMNS, summary_fields
from .errors import ReconstructionFailure, UnsupportedOperation
from .models import FittedModel, ModelKind, as_fitted

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------ #
# ModelAdapter protocol
# ------------------------------------------------------------------ #


@runtime_checkable
class ModelAdapter(Protocol):
    """Interface that every model-family adapter implements.

    Attributes:
        kind: The :class:`ModelKind` the adapter handles.
    """

    @property
    def kind(self) -> ModelKind: ...

    # ---- Capabilities ----------------------------------------------

    def supports_terms(self, model: FittedModel) -> bool:
        """Whether the family has named parameters to tabulate."""
        ...

    def supports_augment(self, model: FittedModel) -> bool:
        """Whether the family has per-observation output at all."""
        ...

    def can_reconstruct(self, model: FittedModel) -> bool:
        """Whether the training rows can be recovered from *model*."""
        ...

    # ---- Views -----------------------------------------------------

    def terms(
        self, model: FittedModel, conf_int: bool, conf_level: float
    ) -> pd.DataFrame:
        """Per-term frame in model order."""
        ...

    def reconstruct(self, model: FittedModel) -> pd.DataFrame:
        """Rebuild the training rows (only called when ``can_reconstruct``)."""
        ...

    def augment(
        self, model: FittedModel, data: pd.DataFrame | None, **options: Any
    ) -> tuple[pd.DataFrame, dict[str, np.ndarray]]:
        """Return ``(base_rows, derived_columns)``.

        ``data=None`` means "the training rows"; the adapter then also
        returns in-sample quantities (influence measures, training
        labels) that are undefined for new data.
        """
        ...

    def summary(self, model: FittedModel) -> dict[str, Any]:
        """Every model-level statistic the family can report."""
        ...


# ------------------------------------------------------------------ #
# Shared helpers
# ------------------------------------------------------------------ #


def _align(values: Any, index: pd.Index) -> np.ndarray:
    """Positionally align predictions to *index*.

    statsmodels returns a Series indexed by the rows patsy kept when
    the new data contains missing values; reindex those so dropped
    rows come back as NaN.
    """
    if isinstance(values, pd.Series) and len(values) != len(index):
        return values.reindex(index).to_numpy(dtype=float)
    return np.asarray(values, dtype=float).ravel()


def _complete_rows(frame: pd.DataFrame, columns: Iterable[str]) -> np.ndarray:
    """Positions of the rows of *frame* with no missing value in *columns*."""
    mask = frame[list(columns)].notna().all(axis=1).to_numpy()
    return np.flatnonzero(mask)


def _spread(values: Any, keep: np.ndarray | None, n: int) -> np.ndarray:
    """Place per-row *values* at positions *keep* of an *n*-row column.

    Rows outside *keep* (dropped for missing values) get NaN, so
    derived columns line up with every input row.
    """
    values = np.asarray(values)
    if keep is None or len(keep) == n:
        return values
    out = np.full(n, np.nan)
    out[keep] = values
    return out


def _t_inference(
    estimate: np.ndarray, std_error: np.ndarray, df_resid: float, conf_level: float
) -> dict[str, np.ndarray]:
    """t statistics, two-sided p-values and Wald intervals on *df_resid* df."""
    with np.errstate(divide="ignore", invalid="ignore"):
        statistic = estimate / std_error
    p_value = 2 * _sp_stats.t.sf(np.abs(statistic), df_resid)
    q = _sp_stats.t.ppf(1 - (1 - conf_level) / 2, df_resid)
    return {
        "statistic": statistic,
        "p_value": p_value,
        "conf_low": estimate - q * std_error,
        "conf_high": estimate + q * std_error,
    }


# ------------------------------------------------------------------ #
# statsmodels families (LINEAR, GLM)
# ------------------------------------------------------------------ #
#
# Both wrap a statsmodels results object and share term extraction:
# ``params``, ``bse``, ``tvalues`` (z-values for GLM), ``pvalues`` and
# ``conf_int(alpha)`` are parallel arrays in ``model.exog_names`` order.
#
# Reconstruction returns every row the model was given: the caller's
# frame kept by ``fit_lm``/``fit_glm``, else the formula frame
# (``model.data.frame``, attached by ``from_formula``).  In-sample
# quantities cover only the rows statsmodels kept after missing-value
# handling and are spread back by position.  Models fitted on arrays
# are rebuilt from ``endog``/``exog`` with the constant column dropped.

_CONSTANT_NAMES = frozenset({"const", "Intercept"})


class _StatsmodelsAdapter:
    """Shared term/reconstruction logic for statsmodels results."""

    def supports_terms(self, model: FittedModel) -> bool:
        return True

    def supports_augment(self, model: FittedModel) -> bool:
        return True

    def can_reconstruct(self, model: FittedModel) -> bool:
        return True

    def terms(
        self, model: FittedModel, conf_int: bool, conf_level: float
    ) -> pd.DataFrame:
        res = model.fit
        frame = pd.DataFrame(
            {
                "term": list(res.model.exog_names),
                "estimate": np.asarray(res.params, dtype=float),
                "std_error": np.asarray(res.bse, dtype=float),
                "statistic": np.asarray(res.tvalues, dtype=float),
                "p_value": np.asarray(res.pvalues, dtype=float),
            }
        )
        if conf_int:
            ci = np.asarray(res.conf_int(alpha=1 - conf_level), dtype=float)
            frame["conf_low"] = ci[:, 0]
            frame["conf_high"] = ci[:, 1]
        return frame

    def reconstruct(self, model: FittedModel) -> pd.DataFrame:
        res = model.fit
        frame = getattr(res.model.data, "frame", None)
        if frame is not None:
            if model.data is not None and len(model.data) == len(frame):
                return model.data
            return frame

        columns: dict[str, np.ndarray] = {
            str(res.model.endog_names): np.asarray(res.model.endog, dtype=float)
        }
        exog = np.asarray(res.model.exog, dtype=float)
        for j, name in enumerate(res.model.exog_names):
            if name not in _CONSTANT_NAMES:
                columns[str(name)] = exog[:, j]
        index = getattr(res.model.data, "row_labels", None)
        return pd.DataFrame(columns, index=index)

    def _kept_positions(self, model: FittedModel) -> np.ndarray | None:
        """Positions in the formula frame of the rows statsmodels fitted.

        ``None`` means every reconstructed row was fitted.
        """
        res = model.fit
        frame = getattr(res.model.data, "frame", None)
        fitted = res.fittedvalues
        if frame is None or not isinstance(fitted, pd.Series):
            return None
        if len(fitted) == len(frame):
            return None
        if not frame.index.is_unique:
            raise ReconstructionFailure(
                self.kind.value,
                "rows were dropped for missing values and the index labels "
                "are not unique",
            )
        return frame.index.get_indexer(fitted.index)

    @staticmethod
    def _predict(res: Any, data: pd.DataFrame) -> np.ndarray:
        """Predict on new rows, through the formula when there is one."""
        if getattr(res.model, "formula", None) is not None:
            positional = data.reset_index(drop=True)
            return _align(res.predict(positional), positional.index)
        names = [n for n in res.model.exog_names if n not in _CONSTANT_NAMES]
        _require_columns(data, names)
        exog = np.column_stack(
            [
                np.ones(len(data)) if n in _CONSTANT_NAMES else data[n].to_numpy(float)
                for n in res.model.exog_names
            ]
        )
        return np.asarray(res.predict(exog), dtype=float)

    @staticmethod
    def _response(res: Any, data: pd.DataFrame) -> np.ndarray | None:
        name = str(res.model.endog_names)
        if name in data.columns:
            return data[name].to_numpy(dtype=float)
        return None


@dataclass(frozen=True)
class LinearAdapter(_StatsmodelsAdapter):
    """OLS / WLS results from statsmodels."""

    @property
    def kind(self) -> ModelKind:
        return ModelKind.LINEAR

    def augment(
        self, model: FittedModel, data: pd.DataFrame | None, **options: Any
    ) -> tuple[pd.DataFrame, dict[str, np.ndarray]]:
        res = model.fit
        if data is not None:
            fitted = self._predict(res, data)
            derived = {"fitted": fitted}
            y = self._response(res, data)
            if y is not None:
                derived["resid"] = y - fitted
            return data, derived

        base = self.reconstruct(model)
        keep = self._kept_positions(model)
        derived = {
            "fitted": np.asarray(res.fittedvalues, dtype=float),
            "resid": np.asarray(res.resid, dtype=float),
        }
        try:
            with warnings.catch_warnings():
                # Perfect fits divide by a zero residual variance.
                warnings.filterwarnings("ignore", category=RuntimeWarning)
                infl = res.get_influence()
                derived["hat"] = np.asarray(infl.hat_matrix_diag, dtype=float)
                derived["cooksd"] = np.asarray(infl.cooks_distance[0], dtype=float)
                derived["std_resid"] = np.asarray(
                    infl.resid_studentized_internal, dtype=float
                )
        except Exception as exc:
            logger.debug("Influence measures unavailable: %s", exc)
            for name in ("hat", "cooksd", "std_resid"):
                derived[name] = np.full(int(res.nobs), np.nan)
        n = len(base)
        return base, {k: _spread(v, keep, n) for k, v in derived.items()}

    def summary(self, model: FittedModel) -> dict[str, Any]:
        res = model.fit
        with warnings.catch_warnings():
            # Intercept-only models have an undefined F statistic.
            warnings.filterwarnings("ignore", category=RuntimeWarning)
            return {
                "r_squared": float(res.rsquared),
                "adj_r_squared": float(res.rsquared_adj),
                "sigma": float(np.sqrt(res.scale)),
                "statistic": float(res.fvalue),
                "p_value": float(res.f_pvalue),
                "df": float(res.df_model),
                "log_lik": float(res.llf),
                "aic": float(res.aic),
                "bic": float(res.bic),
                "deviance": float(res.ssr),
                "df_residual": float(res.df_resid),
                "nobs": int(res.nobs),
            }


@dataclass(frozen=True)
class GLMAdapter(_StatsmodelsAdapter):
    """Generalised linear model results from statsmodels.

    Augmented ``.fitted`` values are on the link scale by default
    (``type_predict="response"`` gives the mean scale); ``.resid`` are
    deviance residuals.
    """

    @property
    def kind(self) -> ModelKind:
        return ModelKind.GLM

    def augment(
        self, model: FittedModel, data: pd.DataFrame | None, **options: Any
    ) -> tuple[pd.DataFrame, dict[str, np.ndarray]]:
        type_predict = options.get("type_predict", "link")
        if type_predict not in ("link", "response"):
            raise ValueError(
                f"type_predict must be 'link' or 'response', got {type_predict!r}."
            )
        res = model.fit
        family = res.model.family

        if data is None:
            base = self.reconstruct(model)
            keep = self._kept_positions(model)
            mu = _spread(np.asarray(res.fittedvalues, dtype=float), keep, len(base))
            resid = _spread(
                np.asarray(res.resid_deviance, dtype=float), keep, len(base)
            )
        else:
            base = data
            mu = self._predict(res, data)
            y = self._response(res, data)
            resid = None if y is None else np.asarray(family.resid_dev(y, mu), dtype=float)

        fitted = mu if type_predict == "response" else np.asarray(family.link(mu))
        derived = {"fitted": fitted}
        if resid is not None:
            derived["resid"] = resid
        return base, derived

    def summary(self, model: FittedModel) -> dict[str, Any]:
        res = model.fit
        with warnings.catch_warnings():
            # GLMResults.bic warns about its deviance-based definition.
            warnings.simplefilter("ignore")
            bic = getattr(res, "bic_llf", None)
            if bic is None:
                bic = res.bic
        return {
            "null_deviance": float(res.null_deviance),
            "df_null": float(res.df_resid + res.df_model),
            "log_lik": float(res.llf),
            "aic": float(res.aic),
            "bic": float(bic),
            "deviance": float(res.deviance),
            "df_residual": float(res.df_resid),
            "nobs": int(res.nobs),
            "family": type(res.model.family).__name__.lower(),
        }


# ------------------------------------------------------------------ #
# Nonlinear least squares
# ------------------------------------------------------------------ #
#
# curve_fit returns the parameter covariance; inference uses the t
# distribution on n − p residual degrees of freedom, the same Wald
# construction as OLS.  The Gaussian log-likelihood at the MLE of σ²
# (= RSS / n) gives
#
#   ℓ = −n/2 · [log(2π) + log(RSS / n) + 1]
#
# and AIC/BIC count σ² as an extra parameter (p + 1).


@dataclass(frozen=True)
class NLSAdapter:
    """Nonlinear least-squares fits (:class:`~broomkit.models.NLSFit`)."""

    @property
    def kind(self) -> ModelKind:
        return ModelKind.NLS

    def supports_terms(self, model: FittedModel) -> bool:
        return True

    def supports_augment(self, model: FittedModel) -> bool:
        return True

    def can_reconstruct(self, model: FittedModel) -> bool:
        return True

    def terms(
        self, model: FittedModel, conf_int: bool, conf_level: float
    ) -> pd.DataFrame:
        nls = model.fit
        estimate = nls.params
        std_error = np.sqrt(np.diag(nls.cov))
        df_resid = max(nls.nobs - len(estimate), 1)
        inference = _t_inference(estimate, std_error, df_resid, conf_level)
        frame = pd.DataFrame(
            {
                "term": list(nls.param_names),
                "estimate": estimate,
                "std_error": std_error,
                "statistic": inference["statistic"],
                "p_value": inference["p_value"],
            }
        )
        if conf_int:
            frame["conf_low"] = inference["conf_low"]
            frame["conf_high"] = inference["conf_high"]
        return frame

    def reconstruct(self, model: FittedModel) -> pd.DataFrame:
        if model.data is not None:
            return model.data
        nls = model.fit
        columns: dict[str, np.ndarray] = {}
        xdata = np.atleast_2d(nls.xdata)
        for name, row in zip(nls.x, xdata):
            columns[name] = row
        columns[nls.y] = nls.ydata
        return pd.DataFrame(columns)

    def augment(
        self, model: FittedModel, data: pd.DataFrame | None, **options: Any
    ) -> tuple[pd.DataFrame, dict[str, np.ndarray]]:
        nls = model.fit
        if data is None:
            base = self.reconstruct(model)
            keep = None
            if model.data is not None:
                keep = _complete_rows(base, [*nls.x, nls.y])
            fitted = nls.predict(nls.xdata)
            derived = {"fitted": fitted, "resid": nls.ydata - fitted}
            return base, {k: _spread(v, keep, len(base)) for k, v in derived.items()}

        _require_columns(data, nls.x)
        if len(nls.x) == 1:
            xdata = data[nls.x[0]].to_numpy(dtype=float)
        else:
            xdata = data[list(nls.x)].to_numpy(dtype=float).T
        fitted = nls.predict(xdata)
        derived = {"fitted": fitted}
        if nls.y in data.columns:
            derived["resid"] = data[nls.y].to_numpy(dtype=float) - fitted
        return data, derived

    def summary(self, model: FittedModel) -> dict[str, Any]:
        nls = model.fit
        n = nls.nobs
        k = len(nls.params)
        resid = nls.ydata - nls.predict(nls.xdata)
        rss = float(np.sum(resid**2))
        df_resid = n - k
        with np.errstate(divide="ignore"):
            log_lik = -n / 2 * (np.log(2 * np.pi) + np.log(rss / n) + 1)
        return {
            "sigma": float(np.sqrt(rss / df_resid)) if df_resid > 0 else np.nan,
            "is_conv": bool(nls.converged),
            "n_eval": int(nls.n_eval),
            "log_lik": float(log_lik),
            "aic": float(-2 * log_lik + 2 * (k + 1)),
            "bic": float(-2 * log_lik + np.log(n) * (k + 1)),
            "deviance": rss,
            "df_residual": float(df_resid),
            "nobs": int(n),
        }


# ------------------------------------------------------------------ #
# Smoothing splines
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class SmoothSplineAdapter:
    """Smoothing splines (:class:`~broomkit.models.SplineFit`).

    A spline has basis coefficients but no named parameters, so the
    term view is unsupported.
    """

    @property
    def kind(self) -> ModelKind:
        return ModelKind.SMOOTH_SPLINE

    def supports_terms(self, model: FittedModel) -> bool:
        return False

    def supports_augment(self, model: FittedModel) -> bool:
        return True

    def can_reconstruct(self, model: FittedModel) -> bool:
        return True

    def terms(
        self, model: FittedModel, conf_int: bool, conf_level: float
    ) -> pd.DataFrame:
        raise UnsupportedOperation(self.kind.value, "term_view")

    def reconstruct(self, model: FittedModel) -> pd.DataFrame:
        if model.data is not None:
            return model.data
        fit = model.fit
        return pd.DataFrame({fit.x: fit.xdata, fit.y: fit.ydata})

    def augment(
        self, model: FittedModel, data: pd.DataFrame | None, **options: Any
    ) -> tuple[pd.DataFrame, dict[str, np.ndarray]]:
        fit = model.fit
        base = self.reconstruct(model) if data is None else data
        _require_columns(base, [fit.x])
        x = base[fit.x].to_numpy(dtype=float)
        present = ~np.isnan(x)
        fitted = np.full(len(base), np.nan)
        fitted[present] = fit.spline(x[present])
        derived = {"fitted": fitted}
        if fit.y in base.columns:
            derived["resid"] = base[fit.y].to_numpy(dtype=float) - fitted
        return base, derived

    def summary(self, model: FittedModel) -> dict[str, Any]:
        fit = model.fit
        df = len(fit.spline.get_coeffs())
        rss = float(fit.spline.get_residual())
        n = fit.nobs
        return {
            "df": float(df),
            "n_knots": int(len(fit.spline.get_knots())),
            "smoothing": fit.smoothing,
            "sigma": float(np.sqrt(rss / (n - df))) if n > df else np.nan,
            "deviance": rss,
            "nobs": int(n),
        }


# ------------------------------------------------------------------ #
# k-means
# ------------------------------------------------------------------ #
#
# scikit-learn keeps centres, training labels and the total inertia,
# but not the training points.  Per-cluster within-SS and the total SS
# need the points, so they are NaN unless the model carries its
# training frame (always true for ``fit_kmeans``).


def _kmeans_columns(model: FittedModel) -> list[str]:
    km = model.fit
    if "columns" in model.config:
        return list(model.config["columns"])
    names = getattr(km, "feature_names_in_", None)
    if names is not None:
        return [str(n) for n in names]
    return [f"x{j + 1}" for j in range(km.cluster_centers_.shape[1])]


@dataclass(frozen=True)
class KMeansAdapter:
    """Fitted scikit-learn ``KMeans`` estimators."""

    @property
    def kind(self) -> ModelKind:
        return ModelKind.KMEANS

    def supports_terms(self, model: FittedModel) -> bool:
        return True

    def supports_augment(self, model: FittedModel) -> bool:
        return True

    def can_reconstruct(self, model: FittedModel) -> bool:
        return model.data is not None

    def _training_points(self, model: FittedModel) -> np.ndarray | None:
        if model.data is None:
            return None
        columns = _kmeans_columns(model)
        rows = _complete_rows(model.data, columns)
        return model.data[columns].to_numpy(dtype=float)[rows]

    def terms(
        self, model: FittedModel, conf_int: bool, conf_level: float
    ) -> pd.DataFrame:
        km = model.fit
        k = km.cluster_centers_.shape[0]
        frame = pd.DataFrame(km.cluster_centers_, columns=_kmeans_columns(model))
        frame["size"] = np.bincount(km.labels_, minlength=k)

        points = self._training_points(model)
        if points is None:
            frame["withinss"] = np.nan
        else:
            sq = np.sum((points - km.cluster_centers_[km.labels_]) ** 2, axis=1)
            frame["withinss"] = np.bincount(km.labels_, weights=sq, minlength=k)
        frame["cluster"] = np.arange(k)
        return frame

    def reconstruct(self, model: FittedModel) -> pd.DataFrame:
        return model.data

    def augment(
        self, model: FittedModel, data: pd.DataFrame | None, **options: Any
    ) -> tuple[pd.DataFrame, dict[str, np.ndarray]]:
        km = model.fit
        columns = _kmeans_columns(model)
        if data is None:
            base = self.reconstruct(model)
            keep = _complete_rows(base, columns)
            return base, {"cluster": _spread(km.labels_, keep, len(base))}
        _require_columns(data, columns)
        keep = _complete_rows(data, columns)
        features = data[columns].iloc[keep]
        if getattr(km, "feature_names_in_", None) is None:
            features = features.to_numpy(dtype=float)
        labels = km.predict(features)
        return data, {"cluster": _spread(labels, keep, len(data))}

    def summary(self, model: FittedModel) -> dict[str, Any]:
        km = model.fit
        points = self._training_points(model)
        if points is None:
            totss = np.nan
        else:
            totss = float(np.sum((points - points.mean(axis=0)) ** 2))
        tot_withinss = float(km.inertia_)
        return {
            "totss": totss,
            "tot_withinss": tot_withinss,
            "betweenss": totss - tot_withinss,
            "iter": int(km.n_iter_),
            "n_clusters": int(km.n_clusters),
        }


# ------------------------------------------------------------------ #
# Hypothesis tests
# ------------------------------------------------------------------ #
#
# A test is a single inference, so the term and summary views are the
# same one-row frame.  Only chi-squared tests have a per-observation
# notion (the cells of the contingency table), and their augmented
# view is built from the retained observed/expected tables, ignoring
# any data= argument.


@dataclass(frozen=True)
class HTestAdapter:
    """Classical tests (:class:`~broomkit.models.HTestResult`)."""

    @property
    def kind(self) -> ModelKind:
        return ModelKind.HTEST

    def supports_terms(self, model: FittedModel) -> bool:
        return True

    def supports_augment(self, model: FittedModel) -> bool:
        return bool(model.fit.is_chisq)

    def can_reconstruct(self, model: FittedModel) -> bool:
        return bool(model.fit.is_chisq)

    def _record(self, model: FittedModel) -> dict[str, Any]:
        h = model.fit
        record = {
            "estimate": h.estimate,
            "estimate1": h.estimate1,
            "estimate2": h.estimate2,
            "statistic": h.statistic,
            "p_value": h.p_value,
            "parameter": h.parameter,
            "conf_low": h.conf_low,
            "conf_high": h.conf_high,
            "method": h.method,
            "alternative": h.alternative,
        }
        return {k: v for k, v in record.items() if v is not None}

    def terms(
        self, model: FittedModel, conf_int: bool, conf_level: float
    ) -> pd.DataFrame:
        record = self._record(model)
        if not conf_int:
            record.pop("conf_low", None)
            record.pop("conf_high", None)
        return pd.DataFrame([record])

    def reconstruct(self, model: FittedModel) -> pd.DataFrame:
        observed = model.fit.observed
        if isinstance(observed, pd.DataFrame):
            cells = pd.MultiIndex.from_product([observed.index, observed.columns])
            return cells.to_frame(index=False)
        return observed.index.to_frame(index=False)

    def augment(
        self, model: FittedModel, data: pd.DataFrame | None, **options: Any
    ) -> tuple[pd.DataFrame, dict[str, np.ndarray]]:
        h = model.fit
        base = self.reconstruct(model)
        if isinstance(h.observed, pd.DataFrame):
            obs = h.observed.to_numpy(dtype=float)
            exp = h.expected.to_numpy(dtype=float)
            total = obs.sum()
            row_tot = obs.sum(axis=1, keepdims=True)
            col_tot = obs.sum(axis=0, keepdims=True)
            with np.errstate(divide="ignore", invalid="ignore"):
                resid = (obs - exp) / np.sqrt(exp)
                std_resid = (obs - exp) / np.sqrt(
                    exp * (1 - row_tot / total) * (1 - col_tot / total)
                )
                derived = {
                    "observed": obs,
                    "prop": obs / total,
                    "row_prop": obs / row_tot,
                    "col_prop": obs / col_tot,
                    "expected": exp,
                    "resid": resid,
                    "std_resid": std_resid,
                }
            # Row-major ravel matches the product order of the cell index.
            return base, {k: np.ravel(v) for k, v in derived.items()}

        obs = h.observed.to_numpy(dtype=float)
        exp = h.expected.to_numpy(dtype=float)
        total = obs.sum()
        with np.errstate(divide="ignore", invalid="ignore"):
            derived = {
                "observed": obs,
                "prop": obs / total,
                "expected": exp,
                "resid": (obs - exp) / np.sqrt(exp),
                "std_resid": (obs - exp) / np.sqrt(exp * (1 - exp / total)),
            }
        return base, derived

    def summary(self, model: FittedModel) -> dict[str, Any]:
        return self._record(model)


# ------------------------------------------------------------------ #
# Scalar statistics
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class StatisticAdapter:
    """Scalar sample statistics (:class:`~broomkit.models.StatisticResult`)."""

    @property
    def kind(self) -> ModelKind:
        return ModelKind.STATISTIC

    def supports_terms(self, model: FittedModel) -> bool:
        return True

    def supports_augment(self, model: FittedModel) -> bool:
        return False

    def can_reconstruct(self, model: FittedModel) -> bool:
        return False

    def terms(
        self, model: FittedModel, conf_int: bool, conf_level: float
    ) -> pd.DataFrame:
        s = model.fit
        return pd.DataFrame({"term": [s.stat], "estimate": [s.estimate]})

    def reconstruct(self, model: FittedModel) -> pd.DataFrame:
        raise ReconstructionFailure(self.kind.value)

    def augment(
        self, model: FittedModel, data: pd.DataFrame | None, **options: Any
    ) -> tuple[pd.DataFrame, dict[str, np.ndarray]]:
        raise UnsupportedOperation(self.kind.value, "augmented_view")

    def summary(self, model: FittedModel) -> dict[str, Any]:
        s = model.fit
        return {"stat": s.stat, "estimate": s.estimate, "nobs": s.nobs}


# ------------------------------------------------------------------ #
# Adapter registry
# ------------------------------------------------------------------ #
#
# The registry is a closed table: one adapter per ModelKind.
# ``register_adapter`` exists so that an adapter can be replaced (for
# instance to change a family's term columns), not to add kinds.

_ADAPTERS: dict[ModelKind, ModelAdapter] = {}
"""Lookup table mapping each ModelKind to its adapter instance."""


def register_adapter(kind: ModelKind | str, adapter: ModelAdapter) -> None:
    """Install *adapter* as the handler for *kind*.

    Raises:
        TypeError: If *adapter* does not implement ``ModelAdapter`` or
            handles a different kind.
    """
    kind = ModelKind(kind)
    if not isinstance(adapter, ModelAdapter):
        raise TypeError(f"{adapter!r} does not implement the ModelAdapter protocol.")
    if adapter.kind != kind:
        raise TypeError(
            f"{type(adapter).__name__} handles {adapter.kind.value!r}, "
            f"not {kind.value!r}."
        )
    _ADAPTERS[kind] = adapter


def resolve_adapter(model: FittedModel | ModelKind | str) -> ModelAdapter:
    """Return the adapter registered for *model*'s kind.

    Raises:
        KeyError: If no adapter is registered for the kind.
    """
    kind = model.kind if isinstance(model, FittedModel) else ModelKind(model)
    try:
        return _ADAPTERS[kind]
    except KeyError:
        available = ", ".join(sorted(k.value for k in _ADAPTERS)) or "(none)"
        raise KeyError(
            f"No adapter registered for {kind.value!r}. Available: {available}."
        ) from None


for _adapter in (
    LinearAdapter(),
    GLMAdapter(),
    NLSAdapter(),
    SmoothSplineAdapter(),
    KMeansAdapter(),
    HTestAdapter(),
    StatisticAdapter(),
):
    register_adapter(_adapter.kind, _adapter)
del _adapter


# ------------------------------------------------------------------ #
# Public views
# ------------------------------------------------------------------ #


def _attach_derived(
    base: pd.DataFrame, derived: Mapping[str, np.ndarray]
) -> pd.DataFrame:
    """Append derived columns, prefixing markers until no name collides."""
    marker = get_column_marker()
    out = base.copy()
    taken = {str(c) for c in out.columns}
    for name, values in derived.items():
        column = marker + name
        while column in taken:
            column = marker + column
        out[column] = np.asarray(values)
        taken.add(column)
    return out


def term_view(
    model: Any, conf_int: bool = True, conf_level: float = 0.95
) -> pd.DataFrame:
    """One row per estimated term.

    Args:
        model: A :class:`FittedModel` or any object :func:`as_fitted`
            accepts.
        conf_int: Include ``conf_low``/``conf_high`` where defined.
        conf_level: Confidence level of the interval.

    Raises:
        UnsupportedOperation: For families without named terms.
    """
    if not 0 < conf_level < 1:
        raise ValueError(f"conf_level must be in (0, 1), got {conf_level}.")
    model = as_fitted(model)
    adapter = resolve_adapter(model)
    if not adapter.supports_terms(model):
        raise UnsupportedOperation(model.kind.value, "term_view", "no named terms")
    frame = adapter.terms(model, conf_int, conf_level)
    ordered = [c for c in TERM_COLUMNS if c in frame.columns]
    rest = [c for c in frame.columns if c not in TERM_COLUMNS]
    return frame[ordered + rest].reset_index(drop=True)


def augmented_view(
    model: Any, data: DataFrameLike | None = None, **options: Any
) -> pd.DataFrame:
    """Input rows plus derived per-observation columns.

    Args:
        model: A :class:`FittedModel` or any object :func:`as_fitted`
            accepts.
        data: Rows to augment.  When omitted the training rows are
            reconstructed from the model.
        **options: Family options (``type_predict`` for GLMs).

    Raises:
        UnsupportedOperation: If the family has no per-observation output.
        ReconstructionFailure: If *data* is omitted and the model
            cannot rebuild its training rows.
    """
    model = as_fitted(model)
    adapter = resolve_adapter(model)
    if not adapter.supports_augment(model):
        raise UnsupportedOperation(
            model.kind.value, "augmented_view", "no per-observation output"
        )
    if data is None:
        if not adapter.can_reconstruct(model):
            raise ReconstructionFailure(
                model.kind.value, "the fitted object does not retain its input rows"
            )
        frame = None
    else:
        frame = _as_frame(data)
    base, derived = adapter.augment(model, frame, **options)
    ordered = {k: derived[k] for k in AUGMENT_COLUMNS[model.kind] if k in derived}
    return _attach_derived(base, ordered)


def summary_view(model: Any) -> pd.DataFrame:
    """Exactly one row of model-level statistics.

    Configuration arguments the caller supplied to the fit (see
    ``_fields.CONFIG_FIELDS``) are left out.
    """
    model = as_fitted(model)
    adapter = resolve_adapter(model)
    record = adapter.summary(model)
    columns = [f for f in summary_fields(model.kind, dict(model.config)) if f in record]
    return pd.DataFrame([{c: record[c] for c in columns}], columns=columns)


_VIEWS = {
    "terms": term_view,
    "augmented": augmented_view,
    "summary": summary_view,
}


def get_view(name: str):
    """Return the view function called *name* (``terms``/``augmented``/``summary``)."""
    try:
        return _VIEWS[name]
    except KeyError:
        raise ValueError(
            f"Unknown view {name!r}. Choose from: {sorted(_VIEWS)}"
        ) from None


def tidy_many(
    models: Mapping[Any, Any],
    view: str = "terms",
    *,
    key: str = "model",
    **kwargs: Any,
) -> pd.DataFrame:
    """Stack one view over several models, adding a *key* column first.

    Example::

        fits = {k: fit_kmeans(points, k, random_state=0) for k in range(1, 7)}
        tidy_many(fits, "summary", key="k")
    """
    fn = get_view(view)
    frames = []
    for name, model in models.items():
        frame = fn(model, **kwargs)
        frame.insert(0, key, name)
        frames.append(frame)
    if not frames:
        return pd.DataFrame(columns=[key])
    return pd.concat(frames, ignore_index=True)


__all__ = [
    "GLMAdapter",
    "HTestAdapter",
    "KMeansAdapter",
    "LinearAdapter",
    "ModelAdapter",
    "NLSAdapter",
    "SmoothSplineAdapter",
    "StatisticAdapter",
    "augmented_view",
    "get_view",
    "register_adapter",
    "resolve_adapter",
    "summary_view",
    "term_view",
    "tidy_many",
]
