"""Tests for frame conversion and column checks at the API boundary."""

import numpy as np
import pandas as pd
import pytest

from broomkit._compat import _as_frame, _require_columns


def _polars():
    return pytest.importorskip("polars")


class TestAsFrame:
    """pandas passthrough and rejection of non-frames."""

    def test_pandas_is_returned_unchanged(self):
        df = pd.DataFrame({"a": [1, 2, 3]})
        assert _as_frame(df) is df

    def test_rejects_list(self):
        with pytest.raises(TypeError, match="must be a pandas"):
            _as_frame([1, 2, 3])

    def test_error_names_the_argument(self):
        with pytest.raises(TypeError, match="'points'.*got dict"):
            _as_frame({"a": 1}, name="points")


class TestAsFramePolars:
    """Conversion of polars eager and lazy frames."""

    def test_eager_frame(self):
        pl = _polars()
        result = _as_frame(pl.DataFrame({"a": [1, 2, 3], "b": ["x", "y", "z"]}))
        assert isinstance(result, pd.DataFrame)
        assert list(result.columns) == ["a", "b"]
        assert result["b"].tolist() == ["x", "y", "z"]

    def test_lazy_frame_is_collected(self):
        pl = _polars()
        lazy = pl.DataFrame({"a": [1, 2, 3]}).lazy().filter(pl.col("a") > 1)
        result = _as_frame(lazy)
        assert result["a"].tolist() == [2, 3]

    def test_error_mentions_polars_when_installed(self):
        _polars()
        with pytest.raises(TypeError, match="pandas or polars"):
            _as_frame("not a frame")


class TestRequireColumns:
    """Tests for the _require_columns guard."""

    def test_passes_when_present(self):
        _require_columns(pd.DataFrame({"a": [1]}), ["a"])

    def test_none_entries_ignored(self):
        _require_columns(pd.DataFrame({"a": [1]}), ["a", None])

    def test_lists_every_missing_column(self):
        with pytest.raises(KeyError, match=r"\['b', 'c'\]"):
            _require_columns(pd.DataFrame({"a": [1]}), ["a", "b", "c"])


class TestPolarsThroughPublicApi:
    """Public entry points accept polars input."""

    @staticmethod
    def _frame(n=60, seed=42):
        pl = _polars()
        rng = np.random.default_rng(seed)
        x = rng.standard_normal(n)
        return pl.DataFrame({"x": x, "y": 1.5 * x + rng.standard_normal(n) * 0.3})

    def test_fit_lm(self):
        from broomkit import fit_lm, term_view

        terms = term_view(fit_lm(self._frame(), "y ~ x"))
        assert terms["term"].tolist() == ["Intercept", "x"]

    def test_augmented_view_with_polars_data(self):
        from broomkit import augmented_view, fit_lm

        data = self._frame()
        aug = augmented_view(fit_lm(data, "y ~ x"), data)
        assert len(aug) == 60
        assert ".fitted" in aug.columns

    def test_run(self):
        from broomkit import run, statistic

        result = run(self._frame(), "bootstrap", 20, statistic("mean", "y"), random_state=0)
        assert result.n_completed == 20
