"""
Exception hierarchy for rdf-sqlstore.

Construction failures are fatal and raised as StoreInitializationError.
Everything that fails inside a single call is raised as
StoreOperationError after the transaction has been rolled back; the store
stays usable afterwards.
"""

from __future__ import annotations
from typing import Optional


class StoreError(Exception):
    """Base class for every error raised by a quadruple store."""

    def __init__(
        self,
        message: str,
        engine: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.engine = engine
        self.cause = cause


class StoreInitializationError(StoreError):
    """The store could not be constructed (bad descriptor, unreachable database)."""
    pass


class StoreOperationError(StoreError):
    """A read or mutation failed; its transaction was rolled back."""

    @classmethod
    def wrap(cls, action: str, engine: str, error: BaseException) -> "StoreOperationError":
        """Build the caller-facing error for a failed call."""
        return cls(
            f"Cannot {action} {engine.upper()} store because: {error}",
            engine=engine,
            cause=error,
        )


class StoreClosedError(StoreError):
    """Raised when a closed store is used."""
    pass


class OperationCancelledError(StoreError):
    """Raised when a call is cancelled before its transaction began."""
    pass


class QuadrupleParseError(StoreError):
    """A persisted row could not be turned back into a quadruple."""
    pass


class InvalidPatternError(StoreError, ValueError):
    """Object and literal accessors were bound at the same time."""
    pass
