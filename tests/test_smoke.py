"""Large-n smoke tests for regression detection.

These check that the views and the resample workflow finish within a
loose time bound on moderately large data (n=10,000), catching
accidental quadratic behaviour in the augment path or the replicate
fan-out.

All tests are marked ``@pytest.mark.slow`` and excluded from the
default ``pytest`` run.  Run them explicitly::

    pytest -m slow
"""

from __future__ import annotations

import time

import numpy as np
import pandas as pd
import pytest

from broomkit import augmented_view, fit_glm, fit_lm, run, statistic

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #

N = 10_000
SEED = 42


def _make_large(n: int = N, seed: int = SEED) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    df = pd.DataFrame({f"x{i + 1}": rng.standard_normal(n) for i in range(5)})
    df["y"] = 2.0 * df["x1"] - 0.5 * df["x2"] + rng.standard_normal(n) * 0.3
    logits = 1.5 * df["x1"] - 0.8 * df["x2"]
    df["z"] = rng.binomial(1, 1 / (1 + np.exp(-logits)))
    return df


# ------------------------------------------------------------------ #
# Smoke tests
# ------------------------------------------------------------------ #


@pytest.mark.slow
class TestAugmentSmoke:
    def test_linear_influence_measures(self) -> None:
        df = _make_large()
        model = fit_lm(df, "y ~ x1 + x2 + x3 + x4 + x5")
        t0 = time.monotonic()
        aug = augmented_view(model)
        elapsed = time.monotonic() - t0
        assert elapsed < 30, f"Linear augment took {elapsed:.1f}s (limit 30s)"
        assert len(aug) == N
        assert aug[".cooksd"].notna().all()

    def test_glm_new_data(self) -> None:
        df = _make_large()
        model = fit_glm(df, "z ~ x1 + x2", "binomial")
        aug = augmented_view(model, df.head(500), type_predict="response")
        assert aug[".fitted"].between(0, 1).all()


@pytest.mark.slow
class TestWorkflowSmoke:
    def test_bootstrap_regression(self) -> None:
        df = _make_large()
        t0 = time.monotonic()
        result = run(
            df, "bootstrap", 50, lambda d: fit_lm(d, "y ~ x1 + x2"),
            n_jobs=2, prefer="threads", random_state=SEED,
        )
        elapsed = time.monotonic() - t0
        assert elapsed < 60, f"Bootstrap smoke test took {elapsed:.1f}s (limit 60s)"
        assert result.n_completed == 50
        ci = result.percentile_ci().set_index("term")
        assert ci.loc["x1", "conf_low"] < 2.0 < ci.loc["x1", "conf_high"]

    def test_permute_statistic_processes(self) -> None:
        df = _make_large()
        t0 = time.monotonic()
        result = run(
            df, "permute", 200, statistic("correlation", "y", "x1"),
            column="y", n_jobs=2, prefer="processes", random_state=SEED,
        )
        elapsed = time.monotonic() - t0
        assert elapsed < 120, f"Permute smoke test took {elapsed:.1f}s (limit 120s)"
        assert result.n_completed == 200
        assert result.p_value("greater", correction=True)["p_value"].iloc[0] < 0.01
