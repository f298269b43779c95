"""Domain exception hierarchy for cursor streams.

Provides typed exceptions for distinct failure categories so callers can
tell a benign cursor timeout apart from a genuine transaction failure
instead of catching bare ``Exception``.
"""

from __future__ import annotations


class CursorStreamError(Exception):
    """Base exception for all cursor stream errors."""


class InvalidArgumentError(CursorStreamError, TypeError):
    """A constructor argument is malformed (store handle, collection, options)."""


class StoreError(CursorStreamError):
    """Base exception for failures reported by a Store Handle."""


class TransactionInactiveError(StoreError):
    """A cursor was advanced after its transaction had already ended."""


class _TransactionReasonError(StoreError):
    def __init__(self, message: str, *, reason: BaseException | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class TransactionAbortedError(_TransactionReasonError):
    """The transaction was aborted (conflict, quota, explicit abort)."""


class TransactionFailedError(_TransactionReasonError):
    """The transaction reported an error."""


class CollectionNotFoundError(StoreError):
    """The named collection does not exist in the store."""
