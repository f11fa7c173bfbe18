"""Fitting front-ends that return kind-tagged models.

Each function is a thin adapter between a pandas frame and one
external estimation routine:

=========================  =======================================  ==================
Function                   Routine                                  Kind
=========================  =======================================  ==================
``fit_lm``                 ``statsmodels.formula.api.ols`` / wls    ``LINEAR``
``fit_glm``                ``statsmodels.formula.api.glm``          ``GLM``
``fit_nls``                ``scipy.optimize.curve_fit``             ``NLS``
``fit_smooth_spline``      ``scipy.interpolate.UnivariateSpline``   ``SMOOTH_SPLINE``
``fit_kmeans``             ``sklearn.cluster.KMeans``               ``KMEANS``
=========================  =======================================  ==================

No statistics are computed here beyond what the routine returns; the
tidy views live in :mod:`broomkit.adapters`.  Errors raised by the
routines are not caught.
"""

from __future__ import annotations

import inspect
import warnings
from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from scipy.interpolate import UnivariateSpline
from scipy.optimize import curve_fit
from sklearn.cluster import KMeans

from ._compat import DataFrameLike, _as_frame, _require_columns
from .models import FittedModel, ModelKind, NLSFit, SplineFit

# ------------------------------------------------------------------ #
# Linear models
# ------------------------------------------------------------------ #


def fit_lm(
    data: DataFrameLike,
    formula: str,
    *,
    weights: str | None = None,
    missing: str = "drop",
) -> FittedModel:
    """Fit a linear model with a patsy formula (``"mpg ~ wt"``).

    Args:
        data: Training frame.
        formula: Model formula.
        weights: Optional column of observation weights; switches the
            fit from OLS to WLS.
        missing: statsmodels missing-value policy (``"drop"``,
            ``"raise"`` or ``"none"``).

    Returns:
        A ``LINEAR`` model that keeps *data* with its own index, so the
        augmented view has one row per input row.
    """
    df = _as_frame(data)
    # statsmodels matches kept rows by label; fit on positions.
    positional = df.reset_index(drop=True)
    if weights is None:
        res = smf.ols(formula, data=positional, missing=missing).fit()
    else:
        _require_columns(df, [weights])
        res = smf.wls(
            formula, data=positional, weights=positional[weights], missing=missing
        ).fit()
    config: dict[str, Any] = {"formula": formula}
    if weights is not None:
        config["weights"] = weights
    return FittedModel(ModelKind.LINEAR, res, data=df, config=config)


# ------------------------------------------------------------------ #
# Generalised linear models
# ------------------------------------------------------------------ #
#
# Families and links are resolved from short names so that callers can
# write ``family="binomial"`` as in the tutorial notebooks.  Passing a
# ``statsmodels.genmod.families.Family`` instance bypasses the lookup.

_GLM_FAMILIES: dict[str, Callable[..., Any]] = {
    "gaussian": sm.families.Gaussian,
    "binomial": sm.families.Binomial,
    "poisson": sm.families.Poisson,
    "gamma": sm.families.Gamma,
    "inverse_gaussian": sm.families.InverseGaussian,
    "negative_binomial": sm.families.NegativeBinomial,
}

_GLM_LINKS: dict[str, Callable[[], Any]] = {
    "identity": sm.families.links.Identity,
    "log": sm.families.links.Log,
    "logit": sm.families.links.Logit,
    "probit": sm.families.links.Probit,
    "cloglog": sm.families.links.CLogLog,
    "inverse": sm.families.links.InversePower,
    "sqrt": sm.families.links.Sqrt,
}


def resolve_glm_family(family: str | Any, link: str | None = None) -> Any:
    """Map a family name (and optional link name) to a statsmodels family.

    Raises:
        ValueError: If either name is unknown.
    """
    if not isinstance(family, str):
        if link is not None:
            raise ValueError("link= cannot be combined with a Family instance.")
        return family

    key = family.strip().lower().replace("-", "_").replace(" ", "_")
    if key not in _GLM_FAMILIES:
        available = ", ".join(sorted(_GLM_FAMILIES))
        raise ValueError(f"Unknown GLM family {family!r}.  Available: {available}.")
    if link is None:
        return _GLM_FAMILIES[key]()

    link_key = link.strip().lower()
    if link_key not in _GLM_LINKS:
        available = ", ".join(sorted(_GLM_LINKS))
        raise ValueError(f"Unknown link {link!r}.  Available: {available}.")
    return _GLM_FAMILIES[key](link=_GLM_LINKS[link_key]())


def fit_glm(
    data: DataFrameLike,
    formula: str,
    family: str | Any = "gaussian",
    *,
    link: str | None = None,
    missing: str = "drop",
) -> FittedModel:
    """Fit a generalised linear model with a patsy formula.

    Args:
        data: Training frame.
        formula: Model formula (``"am ~ wt"``).
        family: Family name (``"binomial"``, ``"poisson"`` ...) or a
            statsmodels ``Family`` instance.
        link: Optional link name (``"logit"``, ``"probit"`` ...).
        missing: statsmodels missing-value policy.

    Returns:
        A ``GLM`` model.  ``family`` is recorded as configuration, so it
        never appears in the summary view.
    """
    df = _as_frame(data)
    fam = resolve_glm_family(family, link)
    positional = df.reset_index(drop=True)
    res = smf.glm(formula, data=positional, family=fam, missing=missing).fit()
    config: dict[str, Any] = {
        "formula": formula,
        "family": type(fam).__name__.lower(),
    }
    if link is not None:
        config["link"] = link
    return FittedModel(ModelKind.GLM, res, data=df, config=config)


# ------------------------------------------------------------------ #
# Nonlinear least squares
# ------------------------------------------------------------------ #


def _x_matrix(df: pd.DataFrame, x: Sequence[str]) -> np.ndarray:
    """Return predictors in ``curve_fit`` layout: 1-D for one column, else ``(k, n)``."""
    if len(x) == 1:
        return df[x[0]].to_numpy(dtype=float)
    return df[list(x)].to_numpy(dtype=float).T


def fit_nls(
    data: DataFrameLike,
    func: Callable[..., np.ndarray],
    x: str | Sequence[str],
    y: str,
    p0: Sequence[float] | None = None,
    *,
    param_names: Sequence[str] | None = None,
    bounds: tuple[Any, Any] | None = None,
    maxfev: int | None = None,
) -> FittedModel:
    """Fit ``y ≈ func(x, *params)`` by nonlinear least squares.

    Rows with missing values in *x* or *y* are left out of the fit; the
    returned model keeps the whole of *data*.

    Args:
        data: Training frame.
        func: Model function ``func(xdata, p1, p2, ...)``.  *xdata* is a
            1-D array for a single predictor, otherwise ``(k, n)``.
        x: Predictor column name(s).
        y: Response column name.
        p0: Starting values (``curve_fit`` uses ones when omitted).
        param_names: Term names; defaults to the parameter names of
            *func* after its first argument.
        bounds: ``(lower, upper)`` bounds, switching ``curve_fit`` to
            the trust-region solver.
        maxfev: Maximum number of function evaluations.

    Raises:
        RuntimeError: If the optimiser does not converge (from scipy).
        ValueError: If *param_names* does not match the parameter count.
    """
    df = _as_frame(data)
    xcols = (x,) if isinstance(x, str) else tuple(x)
    _require_columns(df, [*xcols, y])
    complete = df.dropna(subset=[*xcols, y])

    xdata = _x_matrix(complete, xcols)
    ydata = complete[y].to_numpy(dtype=float)

    kwargs: dict[str, Any] = {}
    if bounds is not None:
        kwargs["bounds"] = bounds
    if maxfev is not None:
        kwargs["maxfev"] = maxfev

    popt, pcov, infodict, mesg, ier = curve_fit(
        func, xdata, ydata, p0=p0, full_output=True, **kwargs
    )

    if param_names is None:
        sig_params = list(inspect.signature(func).parameters)[1:]
        param_names = sig_params[: len(popt)]
        if len(param_names) < len(popt):
            param_names = [f"p{i}" for i in range(len(popt))]
    if len(param_names) != len(popt):
        raise ValueError(
            f"param_names has {len(param_names)} entries but the model "
            f"has {len(popt)} parameters."
        )

    nls = NLSFit(
        func=func,
        params=np.asarray(popt, dtype=float),
        cov=np.asarray(pcov, dtype=float),
        param_names=tuple(param_names),
        x=xcols,
        y=y,
        xdata=xdata,
        ydata=ydata,
        n_eval=int(infodict.get("nfev", 0)),
        converged=int(ier) > 0,
        message=str(mesg),
    )
    config: dict[str, Any] = {}
    if p0 is not None:
        config["p0"] = tuple(p0)
    return FittedModel(ModelKind.NLS, nls, data=df, config=config)


# ------------------------------------------------------------------ #
# Smoothing splines
# ------------------------------------------------------------------ #
#
# FITPACK's smoothing condition is Σ(yᵢ − s(xᵢ))² ≤ S.  When the caller
# does not pick S, it is set to n·σ̂², with σ̂² from the first
# differences of y sorted by x (Rice, 1984):
#
#   σ̂² = Σ(y₍ᵢ₊₁₎ − y₍ᵢ₎)² / (2(n − 1))
#
# which targets a residual sum of squares at the noise level.


def _rice_variance(y_sorted: np.ndarray) -> float:
    d = np.diff(y_sorted)
    return float(np.sum(d**2) / (2 * max(len(y_sorted) - 1, 1)))


def fit_smooth_spline(
    data: DataFrameLike,
    x: str,
    y: str,
    *,
    smoothing: float | None = None,
    k: int = 3,
) -> FittedModel:
    """Fit a cubic (by default) smoothing spline of *y* on *x*.

    Args:
        data: Training frame.
        x: Predictor column.
        y: Response column.
        smoothing: FITPACK smoothing factor ``S``.  Chosen from the
            noise level when omitted (and then reported in the
            summary).
        k: Spline degree, ``1 <= k <= 5``.

    Raises:
        ValueError: If there are not more than *k* complete rows.
    """
    df = _as_frame(data)
    _require_columns(df, [x, y])
    complete = df.dropna(subset=[x, y])
    if len(complete) <= k:
        raise ValueError(
            f"A degree-{k} smoothing spline needs more than {k} complete rows, "
            f"got {len(complete)}."
        )

    xdata = complete[x].to_numpy(dtype=float)
    ydata = complete[y].to_numpy(dtype=float)
    order = np.argsort(xdata, kind="stable")

    s = smoothing
    if s is None:
        s = len(ydata) * _rice_variance(ydata[order])

    with warnings.catch_warnings():
        # FITPACK warns when the smoothing target cannot be met exactly;
        # the spline returned is still the best available.
        warnings.filterwarnings("ignore", category=UserWarning)
        spline = UnivariateSpline(xdata[order], ydata[order], k=k, s=s)

    fit = SplineFit(
        spline=spline, x=x, y=y, xdata=xdata, ydata=ydata, smoothing=float(s)
    )
    config: dict[str, Any] = {"k": k}
    if smoothing is not None:
        config["smoothing"] = smoothing
    return FittedModel(ModelKind.SMOOTH_SPLINE, fit, data=df, config=config)


# ------------------------------------------------------------------ #
# k-means
# ------------------------------------------------------------------ #


def fit_kmeans(
    data: DataFrameLike,
    n_clusters: int,
    columns: Sequence[str] | None = None,
    *,
    n_init: int = 10,
    random_state: int | np.random.RandomState | None = None,
) -> FittedModel:
    """Run k-means on the numeric *columns* of *data*.

    The training frame is kept on the returned model: scikit-learn's
    estimator stores labels and centres but not the points, and the
    augmented and per-cluster views need them.  Rows with a missing
    feature are left out of the fit but stay in the kept frame.

    Args:
        data: Training frame.
        n_clusters: Number of clusters.
        columns: Feature columns; defaults to every numeric column.
        n_init: Number of centroid initialisations.
        random_state: Seed for the initialisations.
    """
    df = _as_frame(data)
    if columns is None:
        columns = list(df.select_dtypes(include="number").columns)
    columns = list(columns)
    if not columns:
        raise ValueError("fit_kmeans needs at least one numeric column.")
    _require_columns(df, columns)
    complete = df.dropna(subset=columns)

    km = KMeans(n_clusters=n_clusters, n_init=n_init, random_state=random_state)
    km.fit(complete[columns])
    return FittedModel(
        ModelKind.KMEANS,
        km,
        data=df,
        config={"n_clusters": n_clusters, "columns": tuple(columns)},
    )


__all__ = [
    "fit_glm",
    "fit_kmeans",
    "fit_lm",
    "fit_nls",
    "fit_smooth_spline",
    "resolve_glm_family",
]
