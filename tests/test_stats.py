"""Tests for calculate() and statistic()."""

import pickle

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from broomkit.models import FittedModel, ModelKind
from broomkit.stats import STATISTICS, calculate, statistic


def _make_gss(n=80, seed=11):
    rng = np.random.default_rng(seed)
    college = rng.choice(["degree", "no degree"], size=n)
    hours = np.where(college == "degree", 42.0, 39.0) + rng.standard_normal(n) * 4
    age = rng.uniform(20, 65, n)
    party = rng.choice(["dem", "ind", "rep"], size=n)
    return pd.DataFrame(
        {"hours": hours, "age": age, "college": college, "party": party,
         "employed": rng.uniform(size=n) < 0.7}
    )


def _value(model):
    return model.fit.estimate


class TestOneVariable:
    @pytest.mark.parametrize(
        "stat, ref",
        [
            ("mean", np.mean),
            ("median", np.median),
            ("sum", np.sum),
            ("sd", lambda x: np.std(x, ddof=1)),
        ],
    )
    def test_numeric_summaries(self, stat, ref):
        df = _make_gss()
        model = calculate(df, stat, "hours")
        assert isinstance(model, FittedModel)
        assert model.kind is ModelKind.STATISTIC
        assert _value(model) == pytest.approx(ref(df["hours"].to_numpy()))

    def test_prop_with_success(self):
        df = _make_gss()
        value = _value(calculate(df, "prop", "college", success="degree"))
        assert value == pytest.approx((df["college"] == "degree").mean())

    def test_prop_of_boolean(self):
        df = _make_gss()
        assert _value(calculate(df, "prop", "employed")) == pytest.approx(df["employed"].mean())

    def test_count(self):
        df = _make_gss()
        value = _value(calculate(df, "count", "party", success="ind"))
        assert value == (df["party"] == "ind").sum()

    def test_prop_needs_success_for_strings(self):
        with pytest.raises(ValueError, match="success="):
            calculate(_make_gss(), "prop", "college")

    def test_t_matches_scipy(self):
        df = _make_gss()
        value = _value(calculate(df, "t", "hours", mu=40))
        assert value == pytest.approx(stats.ttest_1samp(df["hours"], 40).statistic)

    def test_z_one_proportion(self):
        df = _make_gss()
        p_hat = (df["college"] == "degree").mean()
        expected = (p_hat - 0.5) / np.sqrt(0.25 / len(df))
        assert _value(calculate(df, "z", "college", success="degree")) == pytest.approx(expected)

    def test_chisq_goodness_of_fit(self):
        df = _make_gss()
        counts = df["party"].value_counts().sort_index().to_numpy()
        value = _value(calculate(df, "Chisq", "party"))
        assert value == pytest.approx(stats.chisquare(counts).statistic)

    def test_missing_values_ignored(self):
        df = _make_gss()
        df.loc[0, "hours"] = np.nan
        model = calculate(df, "mean", "hours")
        assert _value(model) == pytest.approx(df["hours"].mean())
        assert model.fit.nobs == 79

    def test_nobs_counts_complete_pairs(self):
        df = _make_gss()
        df.loc[0, "hours"] = np.nan
        df.loc[1, "age"] = np.nan
        df.loc[2, ["hours", "age"]] = np.nan
        model = calculate(df, "slope", "hours", "age")
        assert model.fit.nobs == 77
        # Only the response matters for one-variable statistics.
        assert calculate(df, "sd", "age").fit.nobs == 78

    def test_prop_skips_missing_levels(self):
        df = _make_gss()
        df["college"] = df["college"].astype(object)
        df.loc[:9, "college"] = None
        value = _value(calculate(df, "prop", "college", success="degree"))
        rest = df["college"].iloc[10:]
        assert value == pytest.approx((rest == "degree").mean())


class TestTwoVariables:
    def test_diff_in_means_order(self):
        df = _make_gss()
        a = df.loc[df["college"] == "degree", "hours"].mean()
        b = df.loc[df["college"] == "no degree", "hours"].mean()
        value = _value(
            calculate(df, "diff in means", "hours", "college", order=["degree", "no degree"])
        )
        assert value == pytest.approx(a - b)

    def test_diff_in_medians(self):
        df = _make_gss()
        a = df.loc[df["college"] == "degree", "hours"].median()
        b = df.loc[df["college"] == "no degree", "hours"].median()
        value = _value(calculate(df, "diff in medians", "hours", "college"))
        assert value == pytest.approx(a - b)

    def test_ratio_of_means(self):
        df = _make_gss()
        a = df.loc[df["college"] == "degree", "hours"].mean()
        b = df.loc[df["college"] == "no degree", "hours"].mean()
        assert _value(calculate(df, "ratio of means", "hours", "college")) == pytest.approx(a / b)

    def test_diff_in_props(self):
        df = _make_gss()
        a = df.loc[df["college"] == "degree", "employed"].mean()
        b = df.loc[df["college"] == "no degree", "employed"].mean()
        value = _value(calculate(df, "diff in props", "employed", "college"))
        assert value == pytest.approx(a - b)

    def test_welch_t_matches_scipy(self):
        df = _make_gss()
        a = df.loc[df["college"] == "degree", "hours"]
        b = df.loc[df["college"] == "no degree", "hours"]
        value = _value(calculate(df, "t", "hours", "college"))
        assert value == pytest.approx(stats.ttest_ind(a, b, equal_var=False).statistic)

    def test_pooled_z(self):
        df = _make_gss()
        a = df.loc[df["college"] == "degree", "employed"].to_numpy(float)
        b = df.loc[df["college"] == "no degree", "employed"].to_numpy(float)
        pooled = np.concatenate([a, b]).mean()
        se = np.sqrt(pooled * (1 - pooled) * (1 / a.size + 1 / b.size))
        value = _value(calculate(df, "z", "employed", "college"))
        assert value == pytest.approx((a.mean() - b.mean()) / se)

    def test_chisq_independence(self):
        df = _make_gss()
        table = pd.crosstab(df["party"], df["college"]).to_numpy()
        ref = stats.chi2_contingency(table, correction=False).statistic
        assert _value(calculate(df, "Chisq", "party", "college")) == pytest.approx(ref)

    def test_slope_matches_least_squares(self):
        df = _make_gss()
        slope = np.polyfit(df["age"], df["hours"], 1)[0]
        assert _value(calculate(df, "slope", "hours", "age")) == pytest.approx(slope)

    def test_correlation(self):
        df = _make_gss()
        r = np.corrcoef(df["age"], df["hours"])[0, 1]
        assert _value(calculate(df, "correlation", "hours", "age")) == pytest.approx(r)


class TestValidation:
    def test_unknown_statistic(self):
        with pytest.raises(ValueError, match="Unknown statistic"):
            calculate(_make_gss(), "mode", "hours")

    def test_two_variable_statistic_needs_explanatory(self):
        with pytest.raises(ValueError, match="needs an explanatory"):
            calculate(_make_gss(), "diff in means", "hours")

    def test_one_variable_statistic_rejects_explanatory(self):
        with pytest.raises(ValueError, match="single variable"):
            calculate(_make_gss(), "mean", "hours", "college")

    def test_statistics_constant(self):
        assert {"mean", "diff in means", "slope", "Chisq"} <= STATISTICS


class TestStatisticFactory:
    def test_returns_fit_function(self):
        df = _make_gss()
        fit_fn = statistic("mean", "hours")
        assert _value(fit_fn(df)) == pytest.approx(df["hours"].mean())

    def test_passes_options(self):
        df = _make_gss()
        fit_fn = statistic("diff in means", "hours", "college", order=["no degree", "degree"])
        direct = calculate(df, "diff in means", "hours", "college", order=["no degree", "degree"])
        assert _value(fit_fn(df)) == pytest.approx(_value(direct))

    def test_is_picklable(self):
        fit_fn = pickle.loads(pickle.dumps(statistic("median", "hours")))
        assert _value(fit_fn(_make_gss())) == pytest.approx(_make_gss()["hours"].median())

    def test_unknown_statistic_fails_early(self):
        with pytest.raises(ValueError, match="Unknown statistic"):
            statistic("mode", "hours")
