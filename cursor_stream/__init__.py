"""Backpressure-aware record streams over ordered key-value store cursors."""

from cursor_stream.buffer import RecordBuffer
from cursor_stream.domain.errors import (
    CollectionNotFoundError,
    CursorStreamError,
    InvalidArgumentError,
    StoreError,
    TransactionAbortedError,
    TransactionFailedError,
    TransactionInactiveError,
)
from cursor_stream.domain.models import Direction, KeyRange, Record, StreamOptions, StreamState, normalize_range
from cursor_stream.reader import CursorStream, open_cursor_stream

__all__ = [
    "CollectionNotFoundError",
    "CursorStream",
    "CursorStreamError",
    "Direction",
    "InvalidArgumentError",
    "KeyRange",
    "Record",
    "RecordBuffer",
    "StoreError",
    "StreamOptions",
    "StreamState",
    "TransactionAbortedError",
    "TransactionFailedError",
    "TransactionInactiveError",
    "normalize_range",
    "open_cursor_stream",
]
