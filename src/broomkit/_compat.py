"""Frame handling at the public boundary.

Adapters, resamplers and aggregators work on pandas only.  Polars is an
optional extra: when it is installed a ``polars.DataFrame`` or
``polars.LazyFrame`` passed to any public function is turned into pandas
here, once, before anything else looks at it.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, TypeAlias

import pandas as pd

if TYPE_CHECKING:
    import polars as pl

    DataFrameLike: TypeAlias = pd.DataFrame | pl.DataFrame | pl.LazyFrame
else:
    DataFrameLike: TypeAlias = pd.DataFrame

try:
    import polars as pl
except ImportError:
    pl = None


def _as_frame(obj: DataFrameLike, *, name: str = "data") -> pd.DataFrame:
    """Return *obj* as a pandas frame.

    pandas frames pass through untouched (same object, no copy).  Lazy
    polars frames are collected first.

    Raises:
        TypeError: If *obj* is neither a pandas nor a polars frame.
    """
    if isinstance(obj, pd.DataFrame):
        return obj
    if pl is not None and isinstance(obj, (pl.DataFrame, pl.LazyFrame)):
        if isinstance(obj, pl.LazyFrame):
            obj = obj.collect()
        return obj.to_pandas()

    accepted = "a pandas or polars DataFrame" if pl is not None else "a pandas DataFrame"
    raise TypeError(f"'{name}' must be {accepted}, got {type(obj).__name__}.")


def _require_columns(
    df: pd.DataFrame, columns: Iterable[str | None], *, name: str = "data"
) -> None:
    """Raise ``KeyError`` naming every entry of *columns* missing from *df*."""
    missing = [c for c in columns if c is not None and c not in df.columns]
    if missing:
        raise KeyError(
            f"Column(s) {missing} not found in '{name}'. "
            f"Available columns: {list(df.columns)}."
        )
