"""Shared test fixtures for cursor-stream tests."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

import pytest

from cursor_stream.domain.models import Direction, KeyRange, Record
from cursor_stream.gateway.memory_store import MemoryStore, MemoryTransaction
from cursor_stream.infra.config import StreamSettings


class TimeoutInjectingStore:
    """Wraps a MemoryStore and ends the transaction right after chosen keys are served.

    Each key in *expire_after* fires once, so a reopened cursor is not
    expired again for the same key. Satisfies StoreHandlePort.
    """

    def __init__(self, inner: MemoryStore, expire_after: Iterable[Any] = ()) -> None:
        self.inner = inner
        self.pending = list(expire_after)
        self.opened_ranges: list[KeyRange] = []

    def transaction(self, collection: str, mode: str = "readonly") -> _InjectingTransaction:
        return _InjectingTransaction(self, self.inner.transaction(collection, mode))


class _InjectingTransaction:
    def __init__(self, owner: TimeoutInjectingStore, inner: MemoryTransaction) -> None:
        self.owner = owner
        self.inner = inner

    @property
    def active(self) -> bool:
        return self.inner.active

    def open_cursor(self, key_range: KeyRange, direction: Direction) -> _InjectingCursor:
        self.owner.opened_ranges.append(key_range)
        return _InjectingCursor(self, self.inner.open_cursor(key_range, direction))

    def failure(self) -> asyncio.Future[BaseException]:
        return self.inner.failure()

    def close(self) -> None:
        self.inner.close()


class _InjectingCursor:
    def __init__(self, transaction: _InjectingTransaction, inner) -> None:
        self.transaction = transaction
        self.inner = inner

    async def advance(self) -> Record | None:
        record = await self.inner.advance()
        pending = self.transaction.owner.pending
        if record is not None and record.key in pending:
            pending.remove(record.key)
            self.transaction.inner.expire()
        return record


async def settle(ticks: int = 50) -> None:
    """Let the event loop run pending callbacks without advancing time."""
    for _ in range(ticks):
        await asyncio.sleep(0)


async def collect_keys(stream) -> list[Any]:
    return [record.key async for record in stream]


def make_store(keys: Iterable[Any] = range(1, 6), collection: str = "items", **kwargs: Any) -> MemoryStore:
    """Factory for a MemoryStore holding ``value-<key>`` under each key."""
    store = MemoryStore(**kwargs)
    store.create_collection(collection)
    store.put_many(collection, ((key, f"value-{key}") for key in keys))
    return store


@pytest.fixture
def store() -> MemoryStore:
    """Store whose ``items`` collection holds keys 1..5."""
    return make_store()


@pytest.fixture
def test_settings() -> StreamSettings:
    return StreamSettings(high_water_mark=16, reopen_on_timeout=True)
