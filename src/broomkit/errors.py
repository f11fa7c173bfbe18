"""Exception types raised by the adapters and the resample workflow.

Only conditions that broomkit itself detects get a dedicated type.
Errors raised by the underlying estimation routines (statsmodels,
scipy, scikit-learn) pass through unchanged, except inside a resample
replicate, where they are captured as :class:`ReplicateFailure`.

Each type also derives from the closest built-in so callers that
already catch ``NotImplementedError`` / ``ValueError`` /
``RuntimeError`` keep working.
"""

from __future__ import annotations


class BroomkitError(Exception):
    """Base class for all broomkit-specific errors."""


class UnsupportedOperation(BroomkitError, NotImplementedError):
    """A view was requested that the model family does not define.

    Raised, for example, by ``augmented_view`` on a t-test (no
    per-observation semantics) or by ``term_view`` on a smoothing
    spline (no named parameters).
    """

    def __init__(self, kind: str, view: str, reason: str = "") -> None:
        self.kind = kind
        self.view = view
        msg = f"{view} is not supported for model kind {kind!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg + ".")


class ReconstructionFailure(BroomkitError, ValueError):
    """``augmented_view`` needs the training data and the model cannot rebuild it.

    Pass the original frame as ``data=`` to avoid this.
    """

    def __init__(self, kind: str, reason: str = "") -> None:
        self.kind = kind
        msg = (
            f"Cannot reconstruct the input data of a {kind!r} model; "
            f"pass data= explicitly"
        )
        if reason:
            msg += f" ({reason})"
        super().__init__(msg + ".")


class ReplicateFailure(BroomkitError, RuntimeError):
    """A single resample replicate could not be fitted or tidied.

    Instances are collected on :class:`~broomkit._results.ResampleResult`
    rather than raised out of the workflow.

    Attributes:
        replicate_id: 1-based identifier of the failed replicate.
        cause: The underlying exception (``TimeoutError`` when the
            per-call timeout expired).
    """

    def __init__(self, replicate_id: int, cause: BaseException) -> None:
        self.replicate_id = replicate_id
        self.cause = cause
        super().__init__(
            f"Replicate {replicate_id} failed: {type(cause).__name__}: {cause}"
        )

    def __reduce__(self):
        return (type(self), (self.replicate_id, self.cause))


__all__ = [
    "BroomkitError",
    "ReconstructionFailure",
    "ReplicateFailure",
    "UnsupportedOperation",
]
