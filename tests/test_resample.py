"""Tests for the resampling strategies."""

import numpy as np
import pandas as pd
import pytest

from broomkit.resample import (
    Bootstrap,
    Permute,
    Replicate,
    ResampleStrategy,
    Simulate,
    _unrank_permutation,
    generate_replicates,
    generate_unique_permutations,
    resolve_strategy,
    spawn_seeds,
)


def _make_frame(n=30, seed=5):
    rng = np.random.default_rng(seed)
    return pd.DataFrame(
        {
            "x": rng.standard_normal(n),
            "y": rng.standard_normal(n) + 2.0,
            "g": rng.choice(["a", "b", "c"], size=n),
        },
        index=np.arange(100, 100 + n),
    )


def _rng(seed=0):
    return np.random.default_rng(seed)


# ------------------------------------------------------------------ #
# Permutation generation
# ------------------------------------------------------------------ #


class TestUnrankPermutation:
    def test_rank_zero_is_identity(self):
        assert _unrank_permutation(0, 5) == [0, 1, 2, 3, 4]

    def test_final_rank_reverses(self):
        # 3! - 1 = 5 is the last lexicographic rank
        assert _unrank_permutation(5, 3) == [2, 1, 0]

    def test_middle_rank(self):
        # digits (1, 0, 0) → pick 1, then 0, then 2
        assert _unrank_permutation(2, 3) == [1, 0, 2]

    def test_ranks_are_a_bijection(self):
        perms = {tuple(_unrank_permutation(k, 5)) for k in range(120)}
        assert len(perms) == 120


class TestGenerateUniquePermutations:
    def test_small_n_distinct_and_no_identity(self):
        result = generate_unique_permutations(5, 119, random_state=3)
        rows = {tuple(r) for r in result}
        assert result.shape == (119, 5)
        assert len(rows) == 119
        assert tuple(range(5)) not in rows

    def test_identity_allowed(self):
        result = generate_unique_permutations(3, 6, random_state=3, exclude_identity=False)
        assert {tuple(r) for r in result} == {
            tuple(_unrank_permutation(k, 3)) for k in range(6)
        }

    def test_too_many_requested(self):
        with pytest.raises(ValueError, match="unique=False"):
            generate_unique_permutations(4, 24, random_state=0)

    def test_large_n_rows_are_permutations(self):
        result = generate_unique_permutations(40, 150, random_state=8)
        assert result.shape == (150, 40)
        for row in result:
            assert sorted(row) == list(range(40))

    def test_large_n_excludes_identity(self):
        result = generate_unique_permutations(12, 400, random_state=8)
        assert not np.any(np.all(result == np.arange(12), axis=1))

    def test_seed_sequence_accepted(self):
        a = generate_unique_permutations(15, 20, random_state=np.random.SeedSequence(4))
        b = generate_unique_permutations(15, 20, random_state=np.random.SeedSequence(4))
        np.testing.assert_array_equal(a, b)


# ------------------------------------------------------------------ #
# Strategies
# ------------------------------------------------------------------ #


class TestBootstrap:
    def test_same_row_count_and_fresh_index(self):
        df = _make_frame()
        out = Bootstrap()(df, _rng())
        assert len(out) == len(df)
        assert list(out.index) == list(range(len(df)))

    def test_rows_come_from_data(self):
        df = _make_frame()
        out = Bootstrap()(df, _rng())
        assert set(out["x"]) <= set(df["x"])

    def test_draws_with_replacement(self):
        out = Bootstrap()(_make_frame(n=50), _rng(1))
        assert out["x"].duplicated().any()

    def test_center_shifts_mean(self):
        df = _make_frame()
        strategy = Bootstrap(center={"y": 0.0})
        shifted = strategy(df, _rng())
        source_means = []
        for seed in range(200):
            source_means.append(strategy(df, _rng(seed))["y"].mean())
        assert np.mean(source_means) == pytest.approx(0.0, abs=0.1)
        assert df["y"].mean() > 1.0
        assert len(shifted) == len(df)

    def test_center_is_read_only(self):
        strategy = Bootstrap(center={"y": 0.0})
        with pytest.raises(TypeError):
            strategy.center["y"] = 1.0

    def test_center_column_validated(self):
        with pytest.raises(KeyError, match="z"):
            Bootstrap(center={"z": 0.0}).validate(_make_frame())


class TestPermute:
    def test_preserves_multiset(self):
        df = _make_frame()
        out = Permute("y")(df, _rng())
        np.testing.assert_allclose(np.sort(out["y"]), np.sort(df["y"]))
        np.testing.assert_array_equal(out["x"].to_numpy(), df["x"].to_numpy())

    def test_planned_permutation_is_used(self):
        df = _make_frame(n=4)
        perm = np.array([3, 2, 1, 0])
        out = Permute("y")(df, _rng(), perm)
        np.testing.assert_array_equal(out["y"].to_numpy(), df["y"].to_numpy()[::-1])

    def test_plan_is_unique(self):
        plan = Permute("y").plan(6, 50, np.random.SeedSequence(0))
        assert len(plan) == 50
        assert len({tuple(p) for p in plan}) == 50

    def test_plan_without_uniqueness(self):
        plan = Permute("y", unique=False).plan(3, 20, np.random.SeedSequence(0))
        assert plan == [None] * 20

    def test_missing_column(self):
        with pytest.raises(KeyError, match="w"):
            Permute("w").validate(_make_frame())


class TestSimulate:
    def test_uniform_over_observed_levels(self):
        df = _make_frame(n=300)
        out = Simulate("g")(df, _rng())
        assert set(out["g"]) == {"a", "b", "c"}
        np.testing.assert_array_equal(out["x"].to_numpy(), df["x"].to_numpy())

    def test_given_probabilities(self):
        df = _make_frame(n=500)
        out = Simulate("g", p={"a": 1.0, "b": 0.0})(df, _rng())
        assert (out["g"] == "a").all()

    def test_invalid_probabilities(self):
        with pytest.raises(ValueError, match="sum to 1"):
            Simulate("g", p={"a": 0.7, "b": 0.7})

    def test_numeric_levels_keep_dtype(self):
        df = pd.DataFrame({"k": [1, 2, 3, 1, 2, 3]})
        out = Simulate("k")(df, _rng())
        assert pd.api.types.is_integer_dtype(out["k"])


class TestResolveStrategy:
    def test_by_name(self):
        assert isinstance(resolve_strategy("bootstrap"), Bootstrap)
        assert resolve_strategy("Permute", column="y") == Permute("y")

    def test_draw_alias(self):
        assert isinstance(resolve_strategy("draw", column="g"), Simulate)

    def test_instance_passthrough(self):
        strategy = Permute("y", unique=False)
        assert resolve_strategy(strategy) is strategy
        assert isinstance(strategy, ResampleStrategy)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown resample strategy"):
            resolve_strategy("jackknife")

    def test_kwargs_with_instance(self):
        with pytest.raises(TypeError, match="strategy name"):
            resolve_strategy(Bootstrap(), center={"y": 0})

    def test_not_a_strategy(self):
        with pytest.raises(TypeError, match="ResampleStrategy"):
            resolve_strategy(42)


# ------------------------------------------------------------------ #
# Replicate generation
# ------------------------------------------------------------------ #


class TestGenerateReplicates:
    def test_ids_are_one_based(self):
        reps = list(generate_replicates(_make_frame(), "bootstrap", 5, random_state=1))
        assert [r.replicate_id for r in reps] == [1, 2, 3, 4, 5]
        assert all(isinstance(r, Replicate) for r in reps)

    def test_reproducible(self):
        a = list(generate_replicates(_make_frame(), "permute", 4, random_state=9, column="y"))
        b = list(generate_replicates(_make_frame(), "permute", 4, random_state=9, column="y"))
        for ra, rb in zip(a, b):
            pd.testing.assert_frame_equal(ra.data, rb.data)

    def test_seeds_differ_per_replicate(self):
        reps = list(generate_replicates(_make_frame(), "bootstrap", 2, random_state=9))
        assert not reps[0].data.equals(reps[1].data)

    def test_rejects_zero_replicates(self):
        with pytest.raises(ValueError, match="n_replicates"):
            next(generate_replicates(_make_frame(), "bootstrap", 0))

    def test_spawn_seeds(self):
        plan_seed, seeds = spawn_seeds(3, 4)
        assert isinstance(plan_seed, np.random.SeedSequence)
        assert len(seeds) == 4
        again = spawn_seeds(3, 4)[1]
        assert seeds[2].generate_state(2).tolist() == again[2].generate_state(2).tolist()
