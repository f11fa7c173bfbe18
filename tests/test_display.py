"""Tests for the display module."""

import numpy as np
import pandas as pd
import pytest

from broomkit._results import ReplicateResult, ResampleResult
from broomkit.display import (
    _fmt_val,
    _truncate,
    print_resample_table,
    print_summary_table,
    print_terms_table,
)
from broomkit.errors import ReplicateFailure
from broomkit.fitting import fit_lm


def _make_xy(n=30, seed=2):
    rng = np.random.default_rng(seed)
    x = rng.standard_normal(n)
    return pd.DataFrame({"x": x, "y": 1.0 + 2.0 * x + rng.standard_normal(n)})


def _result(with_failure=False):
    terms = [
        pd.DataFrame({"term": ["Intercept", "x"], "estimate": [1.0 + d, 2.0 - d]})
        for d in (0.0, 0.1, -0.1, 0.2)
    ]
    completed = [ReplicateResult(i + 1, terms=t) for i, t in enumerate(terms)]
    failures = [ReplicateFailure(5, RuntimeError("boom"))] if with_failure else []
    return ResampleResult.from_replicates(
        "bootstrap",
        len(completed) + len(failures),
        completed,
        failures,
        observed_terms=pd.DataFrame({"term": ["Intercept", "x"], "estimate": [1.05, 1.95]}),
    )


class TestTruncate:
    def test_short_name_unchanged(self):
        assert _truncate("wt", 10) == "wt"

    def test_long_name_truncated(self):
        result = _truncate("factor(cyl)[T.8]:wt", 12)
        assert len(result) == 12
        assert result.endswith("...")


class TestFmtVal:
    @pytest.mark.parametrize("val", [None, np.nan, float("nan")])
    def test_missing_is_na(self, val):
        assert _fmt_val(val) == "N/A"

    def test_small_float_scientific(self):
        assert _fmt_val(1.23e-6) == "1.230e-06"

    def test_regular_float(self):
        assert _fmt_val(2.5) == "2.5000"

    def test_integers_and_bools(self):
        assert _fmt_val(np.int64(32)) == "32"
        assert _fmt_val(np.bool_(True)) == "True"

    def test_strings_pass_through(self):
        assert _fmt_val("gaussian") == "gaussian"


class TestPrintTermsTable:
    def test_model(self, capsys):
        print_terms_table(fit_lm(_make_xy(), "y ~ x"))
        out = capsys.readouterr().out
        assert "Term Estimates" in out
        assert "Intercept" in out
        assert "std_error" in out

    def test_frame_and_title(self, capsys):
        frame = pd.DataFrame({"term": ["a"], "estimate": [1.0]})
        print_terms_table(frame, title="Custom")
        out = capsys.readouterr().out
        assert "Custom" in out
        assert "1.0000" in out

    def test_lines_fit_width(self, capsys):
        print_terms_table(fit_lm(_make_xy(), "y ~ x"))
        out = capsys.readouterr().out
        assert max(len(line) for line in out.splitlines()) <= 80


class TestPrintSummaryTable:
    def test_prints_pairs(self, capsys):
        print_summary_table(fit_lm(_make_xy(), "y ~ x"))
        out = capsys.readouterr().out
        assert "Model Summary" in out
        assert "r_squared:" in out
        assert "nobs:" in out


class TestPrintResampleTable:
    def test_counts_and_interval_columns(self, capsys):
        print_resample_table(_result())
        out = capsys.readouterr().out
        assert "Bootstrap Results" in out
        assert "Replicates:" in out
        assert "[0.025" in out
        assert "0.975]" in out
        assert "[!]" not in out

    def test_omitted_note(self, capsys):
        print_resample_table(_result(with_failure=True))
        out = capsys.readouterr().out
        assert "1 replicate(s) failed" in out

    def test_p_value_column(self, capsys):
        print_resample_table(_result(), direction="two-sided")
        out = capsys.readouterr().out
        assert "p_value" in out
