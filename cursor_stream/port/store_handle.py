"""Store Handle port: Protocols for read-only transactional cursors."""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from cursor_stream.domain.models import Direction, KeyRange, Record


@runtime_checkable
class CursorPort(Protocol):
    """A directional cursor bound to one transaction."""

    async def advance(self) -> Record | None:
        """Return the next record, or None once the range is exhausted.

        Raises TransactionInactiveError if the owning transaction has ended.
        """
        ...


@runtime_checkable
class TransactionPort(Protocol):
    """A read-only transaction scoped to one collection."""

    @property
    def active(self) -> bool:
        """Return True while cursors of this transaction may be advanced."""
        ...

    def open_cursor(self, key_range: KeyRange, direction: Direction) -> CursorPort:
        """Open a cursor over *key_range* traversed in *direction*."""
        ...

    def failure(self) -> asyncio.Future[BaseException]:
        """Return a future resolved with the abort/error exception if the transaction fails.

        The future never resolves when the transaction simply ends.
        """
        ...

    def close(self) -> None:
        """Release the transaction. No-op once it has ended."""
        ...


@runtime_checkable
class StoreHandlePort(Protocol):
    """Port for opening read-only transactions on named collections."""

    def transaction(self, collection: str, mode: str = "readonly") -> TransactionPort:
        """Open a transaction on *collection*."""
        ...
