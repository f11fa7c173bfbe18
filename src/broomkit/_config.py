"""Runtime configuration for the broomkit package.

Controls how the resample workflow fans replicates out to workers and
which marker prefixes derived columns in augmented views.

Resolution order for every setting (first match wins):
    1. Programmatic override via the ``set_*`` function.
    2. The matching ``BROOMKIT_*`` environment variable.
    3. The built-in default.

Settings:

* ``n_jobs`` — worker count for :func:`broomkit.workflow.run`.
  ``1`` runs replicates sequentially, ``-1`` uses every core.
  Environment variable: ``BROOMKIT_N_JOBS``.
* ``prefer`` — joblib worker flavour, ``"threads"`` or
  ``"processes"``.  Environment variable: ``BROOMKIT_PREFER``.
* ``column_marker`` — reserved prefix of derived columns
  (``".fitted"``, ``".resid"``, ...).  Programmatic only.

Examples:
    Run every workflow on four threads from the shell::

        export BROOMKIT_N_JOBS=4

    Or programmatically::

        import broomkit
        broomkit.set_n_jobs(4)

    Restore the default::

        broomkit.set_n_jobs(None)
"""

from __future__ import annotations

import os

_VALID_PREFER = {"threads", "processes", "auto"}

_DEFAULT_N_JOBS = 1
_DEFAULT_PREFER = "threads"
_DEFAULT_MARKER = "."

# Sentinels indicating "no programmatic override has been set".
_n_jobs_override: int | None = None
_prefer_override: str | None = None
_marker_override: str | None = None


def get_n_jobs() -> int:
    """Return the active worker count.

    Resolution order:
        1. Value set by :func:`set_n_jobs`.
        2. ``BROOMKIT_N_JOBS`` environment variable (ignored when it is
           not an integer).
        3. ``1`` (sequential).

    Returns:
        A non-zero integer; ``-1`` means "all cores".
    """
    if _n_jobs_override is not None:
        return _n_jobs_override

    env = os.environ.get("BROOMKIT_N_JOBS", "").strip()
    if env:
        try:
            value = int(env)
        except ValueError:
            return _DEFAULT_N_JOBS
        if value != 0:
            return value

    return _DEFAULT_N_JOBS


def set_n_jobs(n_jobs: int | None) -> None:
    """Override the worker count.

    Args:
        n_jobs: Positive worker count, ``-1`` for all cores, or
            ``None`` to restore the default resolution order.

    Raises:
        ValueError: If *n_jobs* is zero or below ``-1``.
    """
    global _n_jobs_override
    if n_jobs is not None and (n_jobs == 0 or n_jobs < -1):
        raise ValueError(
            f"n_jobs must be a positive integer or -1, got {n_jobs!r}."
        )
    _n_jobs_override = n_jobs


def get_prefer() -> str:
    """Return the joblib worker preference (``"threads"`` or ``"processes"``)."""
    if _prefer_override is not None and _prefer_override != "auto":
        return _prefer_override

    env = os.environ.get("BROOMKIT_PREFER", "").strip().lower()
    if env in ("threads", "processes"):
        return env

    return _DEFAULT_PREFER


def set_prefer(name: str) -> None:
    """Override the joblib worker preference.

    Args:
        name: ``"threads"``, ``"processes"``, or ``"auto"``
            (case-insensitive).  ``"auto"`` restores the default
            resolution order.

    Raises:
        ValueError: If *name* is not recognised.
    """
    global _prefer_override
    normalised = name.strip().lower()
    if normalised not in _VALID_PREFER:
        raise ValueError(
            f"Unknown worker preference '{name}'. "
            f"Choose from: {sorted(_VALID_PREFER)}"
        )
    _prefer_override = normalised


def get_column_marker() -> str:
    """Return the reserved prefix used for derived augmented columns."""
    if _marker_override is not None:
        return _marker_override
    return _DEFAULT_MARKER


def set_column_marker(marker: str | None) -> None:
    """Override the derived-column marker (``None`` restores ``"."``).

    Raises:
        ValueError: If *marker* is an empty string.
    """
    global _marker_override
    if marker is not None and not marker:
        raise ValueError("column marker must be a non-empty string.")
    _marker_override = marker
