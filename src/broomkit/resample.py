"""Resampling strategies: bootstrap, permutation and simulation.

Each strategy is a frozen dataclass that maps a dataset to one
replicate dataset of the same row count.  Strategies are pure: all
randomness comes from the :class:`numpy.random.Generator` handed to
them, and the workflow derives one generator per replicate from a
:class:`numpy.random.SeedSequence`, so a replicate's contents depend
only on ``(random_state, replicate_id)`` and never on which worker
ran it.

Three strategies are provided:

1. **Bootstrap** — rows drawn with replacement.  With ``center`` set,
   the named columns are first shifted so their means equal the given
   null values (a point-null bootstrap for the mean).

2. **Permute** — one column shuffled independently of the others,
   realising the null hypothesis of independence between that column
   and the rest.  By default the permutations are *unique* across the
   run and never the identity, using the same Lehmer-code / batch
   generation scheme as exact permutation tests.

3. **Simulate** — a categorical column replaced by draws from a
   specified null distribution; every other column is kept.

Why unique permutations
-----------------------
For small n the reference set of n! orderings is small enough that
independent shuffles repeat.  A repeated permutation adds no
information to the null distribution and, when the identity is drawn,
counts the observed data as a null sample.  Pre-generating the
permutations for the whole run (``Permute.plan``) avoids both.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol, runtime_checkable

import numpy as np
import pandas as pd

from ._compat import DataFrameLike, _as_frame, _require_columns

# ------------------------------------------------------------------ #
# Unique permutation generation
# ------------------------------------------------------------------ #
#
# A permutation of [0, …, n−1] is identified by its lexicographic rank
# k ∈ [0, n!).  Writing k in the factorial number system,
#
#   k = d₁·(n−1)! + d₂·(n−2)! + ··· + dₙ·0!
#
# each digit dᵢ picks the dᵢ-th remaining element from a shrinking
# pool.  Drawing B ranks without replacement therefore yields B
# distinct permutations in O(B·n), without enumerating n!.  The
# identity has rank 0.


def _unrank_permutation(k: int, n: int) -> list[int]:
    """Return the *k*-th lexicographic permutation of ``[0..n-1]``."""
    pool = list(range(n))
    out: list[int] = []
    for i in range(n, 0, -1):
        idx, k = divmod(k, math.factorial(i - 1))
        out.append(pool.pop(idx))
    return out


def generate_unique_permutations(
    n_samples: int,
    n_permutations: int,
    random_state: int | np.random.SeedSequence | None = None,
    exclude_identity: bool = True,
    max_exhaustive: int = 10,
) -> np.ndarray:
    """Pre-generate a matrix of distinct permutation index arrays.

    For ``n_samples <= max_exhaustive`` ranks are sampled without
    replacement and decoded (Lehmer codes).  Larger inputs use one
    vectorised ``Generator.permuted`` call, followed by a
    deduplication pass only when the birthday bound
    ``B(B−1) / (2·n!)`` is non-negligible or the identity must be
    excluded.

    Args:
        n_samples: Length of the array to permute.
        n_permutations: Number of permutations requested.
        random_state: Seed for reproducibility.
        exclude_identity: Never return ``[0, 1, ..., n-1]``.
        max_exhaustive: Threshold for rank-based sampling.

    Returns:
        Integer array of shape ``(n_permutations, n_samples)``.

    Raises:
        ValueError: If fewer than *n_permutations* distinct
            permutations exist.
    """
    rng = np.random.default_rng(random_state)

    if n_samples <= max_exhaustive:
        total = math.factorial(n_samples)
        available = total - 1 if exclude_identity else total
        if n_permutations > available:
            raise ValueError(
                f"Requested {n_permutations} unique permutations but only "
                f"{available} are available for n_samples={n_samples} "
                f"(exclude_identity={exclude_identity}). Use "
                f"Permute(column, unique=False) to allow repeats."
            )
        offset = 1 if exclude_identity else 0
        ranks = rng.choice(total - offset, size=n_permutations, replace=False) + offset
        return np.array(
            [_unrank_permutation(int(k), n_samples) for k in ranks], dtype=np.intp
        )

    batch = np.tile(np.arange(n_samples, dtype=np.intp), (n_permutations, 1))
    rng.permuted(batch, axis=1, out=batch)

    collision_prob = (
        n_permutations * (n_permutations - 1) / (2 * math.factorial(n_samples))
    )
    if collision_prob < 1e-9 and not exclude_identity:
        return batch

    seen: set[tuple[int, ...]] = set()
    if exclude_identity:
        seen.add(tuple(range(n_samples)))
    result = np.empty_like(batch)
    count = 0
    for row in batch:
        key = tuple(row.tolist())
        if key not in seen:
            seen.add(key)
            result[count] = row
            count += 1

    # Redraw to fill the gaps left by collisions and identity hits.
    attempts = 0
    max_attempts = n_permutations * 20 + 1000
    while count < n_permutations and attempts < max_attempts:
        perm = rng.permutation(n_samples)
        key = tuple(perm.tolist())
        if key not in seen:
            seen.add(key)
            result[count] = perm
            count += 1
        attempts += 1
    return result[:count]


# ------------------------------------------------------------------ #
# Strategy protocol
# ------------------------------------------------------------------ #


@runtime_checkable
class ResampleStrategy(Protocol):
    """Interface shared by the resampling strategies.

    ``plan`` runs once per workflow and returns one planned value per
    replicate (``None`` when the strategy needs no coordination across
    replicates); ``__call__`` builds a single replicate.
    """

    @property
    def name(self) -> str: ...

    def validate(self, data: pd.DataFrame) -> None: ...

    def plan(
        self, n_samples: int, n_replicates: int, seed: np.random.SeedSequence
    ) -> Sequence[Any]: ...

    def __call__(
        self, data: pd.DataFrame, rng: np.random.Generator, planned: Any = None
    ) -> pd.DataFrame: ...


# ------------------------------------------------------------------ #
# Bootstrap
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class Bootstrap:
    """Sample rows with replacement.

    Attributes:
        center: Optional ``{column: null_mean}``.  Each named column is
            shifted by ``null_mean − mean(column)`` before sampling, so
            the bootstrap distribution is centred on the null value.
    """

    center: Mapping[str, float] | None = None

    def __post_init__(self) -> None:
        if self.center is not None:
            object.__setattr__(self, "center", MappingProxyType(dict(self.center)))

    @property
    def name(self) -> str:
        return "bootstrap"

    def validate(self, data: pd.DataFrame) -> None:
        if self.center:
            _require_columns(data, list(self.center))

    def plan(
        self, n_samples: int, n_replicates: int, seed: np.random.SeedSequence
    ) -> Sequence[Any]:
        return [None] * n_replicates

    def __call__(
        self, data: pd.DataFrame, rng: np.random.Generator, planned: Any = None
    ) -> pd.DataFrame:
        source = data
        if self.center:
            source = data.copy()
            for column, mu in self.center.items():
                values = source[column].astype(float)
                source[column] = values - values.mean() + mu
        idx = rng.integers(0, len(source), size=len(source))
        return source.iloc[idx].reset_index(drop=True)


# ------------------------------------------------------------------ #
# Permute
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class Permute:
    """Shuffle *column* independently of the remaining columns.

    Attributes:
        column: The column to permute (typically the response).
        unique: Draw distinct, non-identity permutations across the
            run.  Set ``False`` to shuffle each replicate
            independently (required when R ≥ n! for tiny data).
    """

    column: str
    unique: bool = True

    @property
    def name(self) -> str:
        return "permute"

    def validate(self, data: pd.DataFrame) -> None:
        _require_columns(data, [self.column])

    def plan(
        self, n_samples: int, n_replicates: int, seed: np.random.SeedSequence
    ) -> Sequence[Any]:
        if not self.unique:
            return [None] * n_replicates
        perms = generate_unique_permutations(n_samples, n_replicates, random_state=seed)
        planned: list[Any] = list(perms)
        # Medium-n redraws can run out; the remainder shuffles freely.
        planned.extend([None] * (n_replicates - len(planned)))
        return planned

    def __call__(
        self, data: pd.DataFrame, rng: np.random.Generator, planned: Any = None
    ) -> pd.DataFrame:
        perm = rng.permutation(len(data)) if planned is None else planned
        out = data.reset_index(drop=True)
        out[self.column] = data[self.column].to_numpy()[perm]
        return out


# ------------------------------------------------------------------ #
# Simulate
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class Simulate:
    """Replace a categorical *column* with draws from a null distribution.

    Attributes:
        column: The categorical column to redraw.
        p: ``{level: probability}``.  Defaults to uniform over the
            levels observed in the data.
    """

    column: str
    p: Mapping[Any, float] | None = field(default=None)

    def __post_init__(self) -> None:
        if self.p is None:
            return
        probs = np.asarray(list(self.p.values()), dtype=float)
        if np.any(probs < 0) or not np.isclose(probs.sum(), 1.0):
            raise ValueError("Simulate: p must be non-negative and sum to 1.")
        object.__setattr__(self, "p", MappingProxyType(dict(self.p)))

    @property
    def name(self) -> str:
        return "simulate"

    def validate(self, data: pd.DataFrame) -> None:
        _require_columns(data, [self.column])

    def plan(
        self, n_samples: int, n_replicates: int, seed: np.random.SeedSequence
    ) -> Sequence[Any]:
        return [None] * n_replicates

    def _distribution(self, data: pd.DataFrame) -> tuple[list, np.ndarray]:
        if self.p is not None:
            return list(self.p), np.asarray(list(self.p.values()), dtype=float)
        levels = sorted(data[self.column].dropna().unique().tolist())
        return levels, np.full(len(levels), 1.0 / len(levels))

    def __call__(
        self, data: pd.DataFrame, rng: np.random.Generator, planned: Any = None
    ) -> pd.DataFrame:
        levels, probs = self._distribution(data)
        picks = rng.choice(len(levels), size=len(data), p=probs)
        out = data.reset_index(drop=True)
        out[self.column] = pd.Series(
            np.asarray(levels, dtype=object)[picks]
        ).infer_objects()
        return out


# ------------------------------------------------------------------ #
# Resolution
# ------------------------------------------------------------------ #

_STRATEGIES: dict[str, type] = {
    "bootstrap": Bootstrap,
    "permute": Permute,
    "simulate": Simulate,
    "draw": Simulate,
}


def resolve_strategy(
    strategy: str | ResampleStrategy, **kwargs: Any
) -> ResampleStrategy:
    """Return a strategy instance from a name or an existing instance.

    Args:
        strategy: ``"bootstrap"``, ``"permute"``, ``"simulate"`` (alias
            ``"draw"``), or an object implementing
            :class:`ResampleStrategy`.
        **kwargs: Constructor arguments when *strategy* is a name
            (``column=`` for permute/simulate, ``center=``, ``p=``).

    Raises:
        ValueError: If the name is unknown.
        TypeError: If *strategy* is neither a name nor a strategy, or if
            keyword arguments are given alongside an instance.
    """
    if isinstance(strategy, str):
        key = strategy.strip().lower()
        if key not in _STRATEGIES:
            raise ValueError(
                f"Unknown resample strategy '{strategy}'. "
                f"Choose from: {sorted(_STRATEGIES)}"
            )
        return _STRATEGIES[key](**kwargs)
    if not isinstance(strategy, ResampleStrategy):
        raise TypeError(
            f"strategy must be a name or a ResampleStrategy, got "
            f"{type(strategy).__name__}."
        )
    if kwargs:
        raise TypeError("Keyword arguments are only accepted with a strategy name.")
    return strategy


# ------------------------------------------------------------------ #
# Replicates
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class Replicate:
    """One resampled dataset and its 1-based identifier."""

    replicate_id: int
    data: pd.DataFrame


def spawn_seeds(
    random_state: int | np.random.SeedSequence | None, n_replicates: int
) -> tuple[np.random.SeedSequence, list[np.random.SeedSequence]]:
    """Split *random_state* into a planning seed and one seed per replicate."""
    root = (
        random_state
        if isinstance(random_state, np.random.SeedSequence)
        else np.random.SeedSequence(random_state)
    )
    plan_seed, *replicate_seeds = root.spawn(n_replicates + 1)
    return plan_seed, replicate_seeds


def generate_replicates(
    data: DataFrameLike,
    strategy: str | ResampleStrategy,
    n_replicates: int,
    *,
    random_state: int | np.random.SeedSequence | None = None,
    **kwargs: Any,
) -> Iterator[Replicate]:
    """Lazily yield *n_replicates* replicates of *data*.

    The replicates are identical to the ones :func:`broomkit.workflow.run`
    fits for the same arguments.
    """
    df = _as_frame(data)
    if n_replicates < 1:
        raise ValueError(f"n_replicates must be >= 1, got {n_replicates}.")
    strat = resolve_strategy(strategy, **kwargs)
    strat.validate(df)
    plan_seed, seeds = spawn_seeds(random_state, n_replicates)
    planned = strat.plan(len(df), n_replicates, plan_seed)
    for i, (seed, item) in enumerate(zip(seeds, planned), start=1):
        yield Replicate(i, strat(df, np.random.default_rng(seed), item))


__all__ = [
    "Bootstrap",
    "Permute",
    "Replicate",
    "ResampleStrategy",
    "Simulate",
    "generate_replicates",
    "generate_unique_permutations",
    "resolve_strategy",
    "spawn_seeds",
]
