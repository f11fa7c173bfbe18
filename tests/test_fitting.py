"""Tests for the fitting front-ends."""

import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm

from broomkit.adapters import summary_view
from broomkit.fitting import (
    _rice_variance,
    fit_glm,
    fit_kmeans,
    fit_lm,
    fit_nls,
    fit_smooth_spline,
    resolve_glm_family,
)
from broomkit.models import FittedModel, ModelKind, NLSFit, SplineFit

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _make_cars(n=32, seed=42):
    rng = np.random.default_rng(seed)
    wt = rng.uniform(1.5, 5.5, n)
    hp = rng.uniform(50, 330, n)
    mpg = 37 - 5 * wt - 0.02 * hp + rng.standard_normal(n)
    am = (rng.uniform(size=n) < 1 / (1 + np.exp(-(8 - 2.5 * wt)))).astype(int)
    return pd.DataFrame({"mpg": mpg, "wt": wt, "hp": hp, "am": am})


def _exp_model(x, a, b):
    return a * np.exp(b * x)


def _make_growth(n=20, seed=0):
    rng = np.random.default_rng(seed)
    x = np.linspace(1, 10, n)
    y = 3.0 * np.exp(0.2 * x) + rng.standard_normal(n) * 0.1
    return pd.DataFrame({"x": x, "y": y})


# ------------------------------------------------------------------ #
# Linear and GLM
# ------------------------------------------------------------------ #


class TestFitLm:
    def test_returns_linear_model(self):
        model = fit_lm(_make_cars(), "mpg ~ wt")
        assert isinstance(model, FittedModel)
        assert model.kind is ModelKind.LINEAR
        assert model.config["formula"] == "mpg ~ wt"
        assert list(model.fit.params.index) == ["Intercept", "wt"]

    def test_matches_statsmodels_ols(self):
        df = _make_cars()
        model = fit_lm(df, "mpg ~ wt + hp")
        X = sm.add_constant(df[["wt", "hp"]])
        ref = sm.OLS(df["mpg"], X).fit()
        np.testing.assert_allclose(model.fit.params.to_numpy(), ref.params.to_numpy())

    def test_weights_switch_to_wls(self):
        df = _make_cars()
        df["w"] = np.linspace(1, 2, len(df))
        model = fit_lm(df, "mpg ~ wt", weights="w")
        assert model.config["weights"] == "w"
        assert type(model.fit.model).__name__ == "WLS"

    def test_missing_weight_column(self):
        with pytest.raises(KeyError, match="'w'"):
            fit_lm(_make_cars(), "mpg ~ wt", weights="w")

    def test_keeps_caller_frame_with_duplicate_labels(self):
        df = _make_cars(n=10)
        stacked = pd.concat([df, df])
        model = fit_lm(stacked, "mpg ~ wt")
        assert model.data is stacked
        assert model.fit.nobs == 20
        assert model.fit.fittedvalues.index.is_unique

    def test_config_is_read_only(self):
        model = fit_lm(_make_cars(), "mpg ~ wt")
        with pytest.raises(TypeError):
            model.config["formula"] = "mpg ~ hp"


class TestFitGlm:
    def test_binomial_family(self):
        model = fit_glm(_make_cars(), "am ~ wt", "binomial")
        assert model.kind is ModelKind.GLM
        assert model.config["family"] == "binomial"
        assert isinstance(model.fit.model.family, sm.families.Binomial)

    def test_link_recorded(self):
        model = fit_glm(_make_cars(), "am ~ wt", "binomial", link="probit")
        assert model.config["link"] == "probit"
        assert isinstance(model.fit.model.family.link, sm.families.links.Probit)

    def test_family_instance_passthrough(self):
        fam = sm.families.Poisson()
        assert resolve_glm_family(fam) is fam

    def test_unknown_family(self):
        with pytest.raises(ValueError, match="Unknown GLM family"):
            resolve_glm_family("cauchy")

    def test_unknown_link(self):
        with pytest.raises(ValueError, match="Unknown link"):
            resolve_glm_family("binomial", "tanh")

    def test_link_with_instance_rejected(self):
        with pytest.raises(ValueError, match="link="):
            resolve_glm_family(sm.families.Binomial(), "logit")

    def test_family_name_normalised(self):
        fam = resolve_glm_family("Inverse-Gaussian")
        assert isinstance(fam, sm.families.InverseGaussian)


# ------------------------------------------------------------------ #
# Nonlinear least squares
# ------------------------------------------------------------------ #


class TestFitNls:
    def test_recovers_parameters(self):
        model = fit_nls(_make_growth(), _exp_model, "x", "y", p0=(1, 0.1))
        assert model.kind is ModelKind.NLS
        assert isinstance(model.fit, NLSFit)
        np.testing.assert_allclose(model.fit.params, [3.0, 0.2], rtol=0.05)
        assert model.fit.converged

    def test_param_names_from_signature(self):
        model = fit_nls(_make_growth(), _exp_model, "x", "y", p0=(1, 0.1))
        assert model.fit.param_names == ("a", "b")

    def test_explicit_param_names(self):
        model = fit_nls(
            _make_growth(), _exp_model, "x", "y", p0=(1, 0.1), param_names=["A", "k"]
        )
        assert model.fit.param_names == ("A", "k")

    def test_param_name_count_mismatch(self):
        with pytest.raises(ValueError, match="param_names"):
            fit_nls(_make_growth(), _exp_model, "x", "y", p0=(1, 0.1), param_names=["a"])

    def test_p0_recorded_as_config(self):
        model = fit_nls(_make_growth(), _exp_model, "x", "y", p0=(1, 0.1))
        assert model.config["p0"] == (1, 0.1)
        bare = fit_nls(_make_growth(), _exp_model, "x", "y")
        assert "p0" not in bare.config

    def test_missing_rows_left_out_of_fit(self):
        df = _make_growth()
        df.loc[3, "y"] = np.nan
        model = fit_nls(df, _exp_model, "x", "y", p0=(1, 0.1))
        assert model.fit.nobs == 19
        assert model.data is df

    def test_n_eval_counts_function_evaluations(self):
        model = fit_nls(_make_growth(), _exp_model, "x", "y", p0=(1, 0.1))
        assert model.fit.n_eval > 0
        assert "n_eval" in summary_view(model).columns

    def test_two_predictors(self):
        rng = np.random.default_rng(1)
        df = pd.DataFrame({"u": rng.uniform(0, 1, 40), "v": rng.uniform(0, 1, 40)})
        df["y"] = 2 * df["u"] + 0.5 * df["v"] ** 2 + rng.standard_normal(40) * 0.01

        def plane(X, a, b):
            return a * X[0] + b * X[1] ** 2

        model = fit_nls(df, plane, ["u", "v"], "y", p0=(1, 1))
        assert model.fit.xdata.shape == (2, 40)
        np.testing.assert_allclose(model.fit.params, [2.0, 0.5], atol=0.05)


# ------------------------------------------------------------------ #
# Smoothing splines
# ------------------------------------------------------------------ #


class TestFitSmoothSpline:
    def test_automatic_smoothing(self):
        rng = np.random.default_rng(3)
        x = rng.uniform(0, 10, 60)
        df = pd.DataFrame({"x": x, "y": np.sin(x) + rng.standard_normal(60) * 0.2})
        model = fit_smooth_spline(df, "x", "y")
        assert model.kind is ModelKind.SMOOTH_SPLINE
        assert isinstance(model.fit, SplineFit)
        assert "smoothing" not in model.config
        assert model.fit.smoothing > 0

    def test_user_smoothing_recorded(self):
        df = pd.DataFrame({"x": np.arange(10.0), "y": np.arange(10.0) ** 2})
        model = fit_smooth_spline(df, "x", "y", smoothing=2.5)
        assert model.config["smoothing"] == 2.5
        assert model.fit.smoothing == 2.5

    def test_keeps_original_row_order(self):
        df = pd.DataFrame({"x": [3.0, 1.0, 2.0, 5.0, 4.0], "y": [9.0, 1.0, 4.0, 25.0, 16.0]})
        model = fit_smooth_spline(df, "x", "y", k=2)
        np.testing.assert_array_equal(model.fit.xdata, df["x"].to_numpy())

    def test_too_few_rows(self):
        df = pd.DataFrame({"x": [1.0, 2.0, 3.0], "y": [1.0, 2.0, 3.0]})
        with pytest.raises(ValueError, match="more than 3 complete rows"):
            fit_smooth_spline(df, "x", "y")

    def test_rice_variance(self):
        # Differences are all 1 → Σd² = 4, n − 1 = 4 → 4 / 8
        assert _rice_variance(np.array([0.0, 1.0, 2.0, 3.0, 4.0])) == pytest.approx(0.5)


# ------------------------------------------------------------------ #
# k-means
# ------------------------------------------------------------------ #


class TestFitKmeans:
    def test_numeric_columns_default(self):
        df = _make_cars()
        df["label"] = "car"
        model = fit_kmeans(df, 3, random_state=0)
        assert model.kind is ModelKind.KMEANS
        assert model.config["columns"] == ("mpg", "wt", "hp", "am")
        assert model.config["n_clusters"] == 3

    def test_keeps_training_frame(self):
        df = _make_cars()
        df.loc[0, "wt"] = np.nan
        model = fit_kmeans(df, 2, ["mpg", "wt"], random_state=0)
        assert len(model.data) == 32
        assert len(model.fit.labels_) == 31

    def test_no_numeric_columns(self):
        with pytest.raises(ValueError, match="numeric"):
            fit_kmeans(pd.DataFrame({"a": ["x", "y"]}), 2)
