"""Tests for the result dataclasses."""

import json

import numpy as np
import pandas as pd
import pytest

from broomkit._results import ReplicateResult, ResampleResult, _numpy_to_python
from broomkit.errors import ReplicateFailure


def _terms(a, b):
    return pd.DataFrame({"term": ["Intercept", "x"], "estimate": [a, b]})


def _summary(r2):
    return pd.DataFrame({"r_squared": [r2], "nobs": [np.int64(20)]})


def _result():
    completed = [
        ReplicateResult(1, terms=_terms(1.0, 2.0), summary=_summary(0.5)),
        ReplicateResult(3, terms=_terms(1.5, 2.5), summary=_summary(0.7)),
    ]
    failures = [ReplicateFailure(2, ValueError("singular matrix"))]
    return ResampleResult.from_replicates(
        "bootstrap",
        3,
        completed,
        failures,
        observed_terms=_terms(1.2, 2.2),
        observed_summary=_summary(0.6),
        random_state=7,
    )


class TestNumpyToPython:
    def test_scalars(self):
        assert type(_numpy_to_python(np.float64(1.5))) is float
        assert type(_numpy_to_python(np.int32(2))) is int
        assert type(_numpy_to_python(np.bool_(True))) is bool

    def test_frame_to_records(self):
        out = _numpy_to_python(_summary(0.1))
        assert out == [{"r_squared": 0.1, "nobs": 20}]

    def test_nested(self):
        out = _numpy_to_python({"a": (np.int64(1), [np.float32(0.5)])})
        assert out == {"a": (1, [0.5])}


class TestFromReplicates:
    def test_counts(self):
        result = _result()
        assert result.n_requested == 3
        assert result.n_completed == 2
        assert result.n_omitted == 1
        assert result.n_completed + result.n_omitted == result.n_requested

    def test_stacked_with_replicate_column(self):
        result = _result()
        assert list(result.terms.columns) == ["replicate", "term", "estimate"]
        assert result.terms["replicate"].tolist() == [1, 1, 3, 3]
        assert result.summaries["replicate"].tolist() == [1, 3]

    def test_views_not_requested_are_none(self):
        assert _result().augmented is None

    def test_failure_recorded(self):
        (failure,) = _result().failures
        assert failure.replicate_id == 2
        assert isinstance(failure.cause, ValueError)


class TestDictAccess:
    def test_getitem(self):
        result = _result()
        assert result["n_omitted"] == 1
        with pytest.raises(KeyError):
            result["nonexistent"]

    def test_get_and_contains(self):
        result = _result()
        assert result.get("strategy") == "bootstrap"
        assert result.get("nonexistent", 0) == 0
        assert "terms" in result
        assert 3 not in result

    def test_to_dict_is_json_serialisable(self):
        d = _result().to_dict()
        assert d["failures"] == [{"replicate_id": 2, "error": "ValueError('singular matrix')"}]
        assert d["terms"][0] == {"replicate": 1, "term": "Intercept", "estimate": 1.0}
        json.dumps(d)

    def test_frozen(self):
        with pytest.raises(AttributeError):
            _result().n_omitted = 0


class TestAggregationMethods:
    def test_percentile_ci_by_term(self):
        ci = _result().percentile_ci(0.5)
        assert list(ci["term"]) == ["Intercept", "x"]
        assert ci["conf_low"].iloc[0] == pytest.approx(np.quantile([1.0, 1.5], 0.25))

    def test_summaries_source(self):
        ci = _result().percentile_ci(0.5, column="r_squared", source="summaries")
        assert list(ci.columns) == ["conf_low", "conf_high"]

    def test_se_ci_centred_on_observed(self):
        ci = _result().se_ci().set_index("term")
        centre = (ci["conf_low"] + ci["conf_high"]) / 2
        np.testing.assert_allclose(centre.to_numpy(), [1.2, 2.2])

    def test_p_value_uses_observed(self):
        p = _result().p_value("greater").set_index("term")["p_value"]
        # Observed 1.2: one of {1.0, 1.5} is >= 1.2
        assert p["Intercept"] == pytest.approx(0.5)

    def test_unknown_source(self):
        with pytest.raises(ValueError, match="source"):
            _result().percentile_ci(source="augmented")

    def test_missing_records(self):
        result = ResampleResult.from_replicates(
            "bootstrap", 1, [ReplicateResult(1, terms=_terms(1.0, 2.0))], []
        )
        with pytest.raises(ValueError, match="views="):
            result.percentile_ci(source="summaries")
        with pytest.raises(ValueError, match="observed="):
            result.p_value()
