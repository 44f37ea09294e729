"""Exception taxonomy for composition, reconciliation, and service calls.

Structural errors (invalid input, disallowed edits, unknown ids, bad indices)
are contract violations raised by the model and the reorder controller and
are meant to propagate. Service errors are operational and are recovered by
``fraglab.session.CompositionSession``.
"""
from __future__ import annotations


class FragLabError(Exception):
    """Base class for every error raised by fraglab."""


class InvalidInputError(FragLabError, ValueError):
    """Malformed parameters (non-positive sizes, unknown filler variant)."""


class InvalidOperationError(FragLabError, RuntimeError):
    """A structural edit that the model never allows."""


class NotFoundError(FragLabError, LookupError):
    """An operation referenced a segment that is not in the model."""


class IndexOutOfRangeError(FragLabError, IndexError):
    """A reorder index fell outside the current sequence bounds."""


class ServiceUnavailableError(FragLabError, ConnectionError):
    """The Analysis Service could not be reached."""


class ServiceError(FragLabError, RuntimeError):
    """The Analysis Service answered, but with a failure."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
