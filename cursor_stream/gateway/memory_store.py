"""Gateway: in-process ordered key-value store implementing StoreHandlePort.

Every transaction reads from a snapshot taken when it was opened, so a
cursor reopened after a timeout observes writes made in between. A
transaction ends when it is closed, when ``expire`` is called, or when no
advance has been requested for ``idle_timeout`` seconds.
"""

from __future__ import annotations

import asyncio
import bisect
import itertools
from collections.abc import Iterable
from typing import Any

import structlog

from cursor_stream.domain.errors import (
    CollectionNotFoundError,
    InvalidArgumentError,
    TransactionAbortedError,
    TransactionFailedError,
    TransactionInactiveError,
)
from cursor_stream.domain.models import Direction, KeyRange, Record

logger = structlog.get_logger(__name__)

# (key, insertion sequence, value); the sequence keeps values out of comparisons.
Entry = tuple[Any, int, Any]


class MemoryCursor:
    """Cursor over a precomputed slice of a transaction snapshot."""

    def __init__(self, transaction: MemoryTransaction, entries: list[Entry]) -> None:
        self._transaction = transaction
        self._entries = iter(entries)
        self.advance_calls = 0

    async def advance(self) -> Record | None:
        transaction = self._transaction
        self.advance_calls += 1
        transaction.store.advance_calls += 1
        if not transaction.active:
            raise TransactionInactiveError(f"transaction on {transaction.collection!r} is no longer active")

        transaction._disarm()
        # Completion is delivered on a later loop iteration, like any storage request.
        await asyncio.sleep(0)
        if not transaction.active:
            raise TransactionInactiveError(f"transaction on {transaction.collection!r} ended during advance")

        entry = next(self._entries, None)
        transaction._arm()
        if entry is None:
            return None
        key, _, value = entry
        return Record(key=key, value=value)


class MemoryTransaction:
    """Read-only transaction over one collection snapshot."""

    def __init__(
        self,
        store: MemoryStore,
        collection: str,
        snapshot: tuple[Entry, ...],
        idle_timeout: float | None = None,
    ) -> None:
        self.store = store
        self.collection = collection
        self._snapshot = snapshot
        self._idle_timeout = idle_timeout
        self._active = True
        self._timer: asyncio.TimerHandle | None = None
        self._failure: asyncio.Future[BaseException] | None = None
        self._failure_error: BaseException | None = None
        self.cursors: list[MemoryCursor] = []

    @property
    def active(self) -> bool:
        return self._active

    @property
    def snapshot_keys(self) -> list[Any]:
        return [key for key, _, _ in self._snapshot]

    def open_cursor(self, key_range: KeyRange, direction: Direction) -> MemoryCursor:
        if not self._active:
            raise TransactionInactiveError(f"transaction on {self.collection!r} is no longer active")

        if key_range.is_empty:
            selected: list[Entry] = []
        else:
            selected = [entry for entry in self._snapshot if key_range.contains(entry[0])]

        if direction.is_unique:
            # First record of each key, by insertion order, in both directions.
            selected = [next(group) for _, group in itertools.groupby(selected, key=lambda e: e[0])]
        if not direction.is_forward:
            selected.reverse()

        cursor = MemoryCursor(self, selected)
        self.cursors.append(cursor)
        self._arm()
        return cursor

    def failure(self) -> asyncio.Future[BaseException]:
        if self._failure is None:
            self._failure = asyncio.get_running_loop().create_future()
            if self._failure_error is not None:
                self._failure.set_result(self._failure_error)
        return self._failure

    def abort(self, reason: BaseException | None = None) -> None:
        """Abort the transaction, as on a conflict or quota failure."""
        self._report(TransactionAbortedError(f"transaction on {self.collection!r} aborted", reason=reason))

    def fail(self, error: BaseException) -> None:
        """Report a transaction error."""
        self._report(TransactionFailedError(f"transaction on {self.collection!r} failed: {error}", reason=error))

    def expire(self) -> None:
        """End the transaction as an idle timeout would."""
        if self._active:
            logger.debug("Memory transaction expired", collection=self.collection)
        self._end()

    def close(self) -> None:
        self._end()

    def _report(self, error: BaseException) -> None:
        if not self._active:
            return
        logger.debug("Memory transaction failed", collection=self.collection, error=repr(error))
        self._end()
        self._failure_error = error
        if self._failure is not None and not self._failure.done():
            self._failure.set_result(error)

    def _end(self) -> None:
        self._active = False
        self._disarm()

    def _arm(self) -> None:
        self._disarm()
        if self._idle_timeout is not None and self._active:
            self._timer = asyncio.get_running_loop().call_later(self._idle_timeout, self.expire)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class MemoryStore:
    """Ordered collections of key/value records with snapshot transactions."""

    def __init__(self, *, idle_timeout: float | None = None) -> None:
        if idle_timeout is not None and idle_timeout <= 0:
            raise ValueError("idle_timeout must be > 0")
        self.idle_timeout = idle_timeout
        self._collections: dict[str, list[Entry]] = {}
        self._sequence = itertools.count()
        self.transactions: list[MemoryTransaction] = []
        self.advance_calls = 0

    @property
    def collections(self) -> list[str]:
        return sorted(self._collections)

    @property
    def active_transactions(self) -> list[MemoryTransaction]:
        return [tx for tx in self.transactions if tx.active]

    def create_collection(self, name: str) -> None:
        self._collections.setdefault(name, [])

    def put(self, collection: str, key: Any, value: Any) -> None:
        """Store *value* under *key*, replacing any records with an equal key."""
        entries = self._collections.setdefault(collection, [])
        entries[:] = [entry for entry in entries if entry[0] != key]
        self.add(collection, key, value)

    def add(self, collection: str, key: Any, value: Any) -> None:
        """Store *value* under *key*, keeping existing records with an equal key."""
        if key is None:
            raise InvalidArgumentError("key must not be None")
        entries = self._collections.setdefault(collection, [])
        try:
            bisect.insort(entries, (key, next(self._sequence), value))
        except TypeError as e:
            raise InvalidArgumentError(f"key {key!r} is not comparable with existing keys") from e

    def put_many(self, collection: str, items: Iterable[tuple[Any, Any]]) -> None:
        for key, value in items:
            self.put(collection, key, value)

    def delete(self, collection: str, key: Any) -> int:
        """Remove all records stored under *key*; return how many were removed."""
        entries = self._entries(collection)
        kept = [entry for entry in entries if entry[0] != key]
        removed = len(entries) - len(kept)
        entries[:] = kept
        return removed

    def keys(self, collection: str) -> list[Any]:
        return [key for key, _, _ in self._entries(collection)]

    def transaction(self, collection: str, mode: str = "readonly") -> MemoryTransaction:
        if mode != "readonly":
            raise InvalidArgumentError(f"only readonly transactions are supported, got {mode!r}")
        snapshot = tuple(self._entries(collection))
        transaction = MemoryTransaction(self, collection, snapshot, self.idle_timeout)
        self.transactions.append(transaction)
        return transaction

    def expire_transactions(self) -> int:
        """End every active transaction as a timeout would; return how many ended."""
        active = self.active_transactions
        for transaction in active:
            transaction.expire()
        return len(active)

    def _entries(self, collection: str) -> list[Entry]:
        try:
            return self._collections[collection]
        except KeyError:
            raise CollectionNotFoundError(f"collection {collection!r} does not exist") from None
