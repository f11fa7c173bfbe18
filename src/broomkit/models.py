"""Variant-tagged wrapper around opaque fitted-model objects.

Every estimation routine broomkit knows about produces a different
kind of object — a statsmodels results wrapper, a fitted scikit-learn
estimator, a scipy test result, or one of the small containers defined
here for routines that return bare tuples (``curve_fit``) or need
their inputs kept alongside (``UnivariateSpline``).

:class:`FittedModel` pins each of them to exactly one
:class:`ModelKind`.  The set of kinds is closed: the adapter registry
in :mod:`broomkit.adapters` is keyed by ``ModelKind``, so dispatch is a
table lookup rather than open-ended attribute probing.

:func:`as_fitted` is the single place where a raw third-party object is
inspected and tagged.  Everything downstream reads ``model.kind``.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import numpy as np
import pandas as pd


class ModelKind(str, enum.Enum):
    """Model families with a registered adapter."""

    LINEAR = "linear"
    GLM = "glm"
    NLS = "nls"
    SMOOTH_SPLINE = "smooth_spline"
    KMEANS = "kmeans"
    HTEST = "htest"
    STATISTIC = "statistic"

    def __str__(self) -> str:
        return self.value


# ------------------------------------------------------------------ #
# Containers for routines without a results object
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class NLSFit:
    """Result of a nonlinear least-squares fit via ``scipy.optimize.curve_fit``.

    ``curve_fit`` returns bare arrays, so the inputs needed to predict,
    reconstruct and summarise are kept here.  ``n_eval`` is the number of
    model evaluations (``nfev``); ``curve_fit`` reports no iteration count.
    """

    func: Callable[..., np.ndarray]
    params: np.ndarray
    cov: np.ndarray
    param_names: tuple[str, ...]
    x: tuple[str, ...]
    y: str
    xdata: np.ndarray
    ydata: np.ndarray
    n_eval: int
    converged: bool
    message: str = ""

    @property
    def nobs(self) -> int:
        return int(self.ydata.shape[0])

    def predict(self, xdata: np.ndarray) -> np.ndarray:
        return np.asarray(self.func(xdata, *self.params), dtype=float)


@dataclass(frozen=True, eq=False)
class SplineFit:
    """Smoothing spline plus the (unsorted) data it was fitted on."""

    spline: Any
    x: str
    y: str
    xdata: np.ndarray
    ydata: np.ndarray
    smoothing: float

    @property
    def nobs(self) -> int:
        return int(self.ydata.shape[0])


@dataclass(frozen=True, eq=False)
class HTestResult:
    """Uniform record of a classical hypothesis test.

    ``test`` identifies the procedure (``"t"``, ``"wilcoxon"``,
    ``"chisq_independence"``, ``"chisq_gof"``, ``"scipy"``); only the
    chi-squared procedures keep a contingency table and therefore have
    per-cell augmented output.
    """

    test: str
    method: str
    statistic: float
    p_value: float
    alternative: str | None = None
    parameter: float | None = None
    estimate: float | None = None
    estimate1: float | None = None
    estimate2: float | None = None
    conf_low: float | None = None
    conf_high: float | None = None
    observed: pd.DataFrame | pd.Series | None = None
    expected: pd.DataFrame | pd.Series | None = None

    @property
    def is_chisq(self) -> bool:
        return self.test.startswith("chisq") and self.observed is not None


@dataclass(frozen=True)
class StatisticResult:
    """A scalar sample statistic (``mean``, ``diff in means`` ...)."""

    stat: str
    estimate: float
    nobs: int


# ------------------------------------------------------------------ #
# FittedModel
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class FittedModel:
    """An immutable, kind-tagged fitted model.

    Attributes:
        kind: The model family, used for adapter dispatch.
        fit: The opaque object produced by the estimation routine.
        data: The training frame, when the fitting front-end kept it.
            Adapters use it to reconstruct augmented output for
            families whose fit object does not retain its inputs
            (k-means).
        config: Arguments the caller supplied to the fitting call.
            Summary fields listed in ``_fields.CONFIG_FIELDS`` are
            dropped when their name appears here.
    """

    kind: ModelKind
    fit: Any
    data: pd.DataFrame | None = None
    config: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ModelKind(self.kind))
        object.__setattr__(self, "config", MappingProxyType(dict(self.config)))

    def __repr__(self) -> str:
        rows = "None" if self.data is None else f"{len(self.data)} rows"
        return (
            f"FittedModel(kind={self.kind.value!r}, "
            f"fit={type(self.fit).__name__}, data={rows})"
        )


def _is_statsmodels_glm(obj: Any) -> bool:
    from statsmodels.genmod.generalized_linear_model import (
        GLMResults,
        GLMResultsWrapper,
    )

    return isinstance(obj, (GLMResults, GLMResultsWrapper))


def _is_statsmodels_linear(obj: Any) -> bool:
    from statsmodels.regression.linear_model import (
        RegressionResults,
        RegressionResultsWrapper,
    )

    return isinstance(obj, (RegressionResults, RegressionResultsWrapper))


def _is_kmeans(obj: Any) -> bool:
    from sklearn.cluster import KMeans, MiniBatchKMeans

    return isinstance(obj, (KMeans, MiniBatchKMeans))


def _htest_from_scipy(obj: Any) -> HTestResult:
    """Tag a raw scipy test result (anything with ``statistic``/``pvalue``)."""
    parameter = getattr(obj, "df", getattr(obj, "dof", None))
    return HTestResult(
        test="scipy",
        method=type(obj).__name__,
        statistic=float(obj.statistic),
        p_value=float(obj.pvalue),
        parameter=None if parameter is None else float(parameter),
    )


def as_fitted(obj: Any, data: pd.DataFrame | None = None) -> FittedModel:
    """Return *obj* as a :class:`FittedModel`, tagging raw objects by type.

    Accepted inputs:

    * ``FittedModel`` — returned unchanged (``data`` is ignored).
    * statsmodels ``GLMResults`` → ``GLM``; ``RegressionResults``
      (OLS/WLS/GLS) → ``LINEAR``.
    * fitted scikit-learn ``KMeans`` / ``MiniBatchKMeans`` → ``KMEANS``.
    * :class:`NLSFit`, :class:`SplineFit`, :class:`HTestResult`,
      :class:`StatisticResult` → their kinds.
    * any scipy test result exposing ``statistic`` and ``pvalue`` →
      ``HTEST``.

    Args:
        obj: The object to tag.
        data: Optional training frame to keep with the model.

    Raises:
        TypeError: If *obj* is not a recognised model object.
    """
    if isinstance(obj, FittedModel):
        return obj
    if isinstance(obj, NLSFit):
        return FittedModel(ModelKind.NLS, obj, data=data)
    if isinstance(obj, SplineFit):
        return FittedModel(ModelKind.SMOOTH_SPLINE, obj, data=data)
    if isinstance(obj, HTestResult):
        return FittedModel(ModelKind.HTEST, obj, data=data)
    if isinstance(obj, StatisticResult):
        return FittedModel(ModelKind.STATISTIC, obj, data=data)

    # GLM before linear: the GLM check is the more specific one.
    if _is_statsmodels_glm(obj):
        family = type(obj.model.family).__name__.lower()
        return FittedModel(ModelKind.GLM, obj, data=data, config={"family": family})
    if _is_statsmodels_linear(obj):
        return FittedModel(ModelKind.LINEAR, obj, data=data)
    if _is_kmeans(obj):
        if not hasattr(obj, "cluster_centers_"):
            raise TypeError("KMeans estimator must be fitted before tidying.")
        return FittedModel(
            ModelKind.KMEANS, obj, data=data, config={"n_clusters": obj.n_clusters}
        )
    if hasattr(obj, "statistic") and hasattr(obj, "pvalue"):
        return FittedModel(ModelKind.HTEST, _htest_from_scipy(obj), data=data)

    raise TypeError(
        f"Cannot tidy object of type {type(obj).__name__}. Supported kinds: "
        f"{', '.join(k.value for k in ModelKind)}."
    )


__all__ = [
    "FittedModel",
    "HTestResult",
    "ModelKind",
    "NLSFit",
    "SplineFit",
    "StatisticResult",
    "as_fitted",
]
