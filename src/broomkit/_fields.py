"""Per-family column conventions, kept as data rather than logic.

Adapters compute every statistic they can and then project the result
through these tables.  Changing which summary fields a family reports,
or which fitting arguments count as user configuration, is a one-line
edit here — the adapter code does not change.

Naming follows the snake_case form of the broom conventions
(``std_error``, ``p_value``, ``conf_low`` ...).  Derived augmented
columns are listed *without* their reserved marker; the marker is
added at render time from :func:`broomkit._config.get_column_marker`.
"""

from __future__ import annotations

from .models import ModelKind

# ------------------------------------------------------------------ #
# Term view
# ------------------------------------------------------------------ #

TERM_COLUMNS: tuple[str, ...] = (
    "term",
    "estimate",
    "std_error",
    "statistic",
    "p_value",
    "conf_low",
    "conf_high",
)
"""Canonical order of term-view columns.  Families may omit any but ``term``."""

# ------------------------------------------------------------------ #
# Summary view
# ------------------------------------------------------------------ #

SUMMARY_FIELDS: dict[ModelKind, tuple[str, ...]] = {
    ModelKind.LINEAR: (
        "r_squared",
        "adj_r_squared",
        "sigma",
        "statistic",
        "p_value",
        "df",
        "log_lik",
        "aic",
        "bic",
        "deviance",
        "df_residual",
        "nobs",
    ),
    ModelKind.GLM: (
        "null_deviance",
        "df_null",
        "log_lik",
        "aic",
        "bic",
        "deviance",
        "df_residual",
        "nobs",
        "family",
    ),
    ModelKind.NLS: (
        "sigma",
        "is_conv",
        "n_eval",
        "log_lik",
        "aic",
        "bic",
        "deviance",
        "df_residual",
        "nobs",
    ),
    ModelKind.SMOOTH_SPLINE: (
        "df",
        "n_knots",
        "smoothing",
        "sigma",
        "deviance",
        "nobs",
    ),
    ModelKind.KMEANS: (
        "totss",
        "tot_withinss",
        "betweenss",
        "iter",
        "n_clusters",
    ),
    ModelKind.HTEST: (
        "estimate",
        "estimate1",
        "estimate2",
        "statistic",
        "p_value",
        "parameter",
        "conf_low",
        "conf_high",
        "method",
        "alternative",
    ),
    ModelKind.STATISTIC: (
        "stat",
        "estimate",
        "nobs",
    ),
}
"""Summary fields each family may report, in output order."""

CONFIG_FIELDS: dict[ModelKind, frozenset[str]] = {
    ModelKind.LINEAR: frozenset(),
    ModelKind.GLM: frozenset({"family"}),
    ModelKind.NLS: frozenset(),
    ModelKind.SMOOTH_SPLINE: frozenset({"smoothing"}),
    ModelKind.KMEANS: frozenset({"n_clusters"}),
    ModelKind.HTEST: frozenset({"alternative"}),
    ModelKind.STATISTIC: frozenset(),
}
"""Fields dropped from the summary when the user supplied them to the fit.

A field listed here is still reported when the fitting routine chose
it on its own (e.g. an automatically selected smoothing factor), which
is why the exclusion is decided per model from ``FittedModel.config``.
"""

# ------------------------------------------------------------------ #
# Augmented view
# ------------------------------------------------------------------ #

AUGMENT_COLUMNS: dict[ModelKind, tuple[str, ...]] = {
    ModelKind.LINEAR: ("fitted", "resid", "hat", "cooksd", "std_resid"),
    ModelKind.GLM: ("fitted", "resid"),
    ModelKind.NLS: ("fitted", "resid"),
    ModelKind.SMOOTH_SPLINE: ("fitted", "resid"),
    ModelKind.KMEANS: ("cluster",),
    ModelKind.HTEST: (
        "observed",
        "prop",
        "row_prop",
        "col_prop",
        "expected",
        "resid",
        "std_resid",
    ),
    ModelKind.STATISTIC: (),
}
"""Derived columns each family can attach, without the reserved marker."""


def summary_fields(kind: ModelKind, config: dict | None = None) -> list[str]:
    """Return the summary fields to report for a model of *kind*.

    Fields named in ``CONFIG_FIELDS[kind]`` are dropped when they also
    appear in *config* (the arguments the caller passed to the fit).
    """
    supplied = set(config or ())
    excluded = CONFIG_FIELDS.get(kind, frozenset()) & supplied
    return [f for f in SUMMARY_FIELDS[kind] if f not in excluded]
