"""Bounded record buffer handed to stream consumers."""

from __future__ import annotations

import asyncio
from collections import deque

import structlog

from cursor_stream.domain.models import Record

logger = structlog.get_logger(__name__)


class RecordBuffer:
    """FIFO of records with a high-water mark and terminal end/error signals.

    The producer side calls ``write``/``end``/``fail`` and awaits ``drain``
    whenever ``write`` returns False. The consumer side reads with ``read``
    or ``async for``.
    """

    def __init__(self, high_water_mark: int = 16) -> None:
        if high_water_mark < 1:
            raise ValueError("high_water_mark must be > 0")
        self._high_water_mark = high_water_mark
        self._records: deque[Record] = deque()
        self._ended = False
        self._error: BaseException | None = None
        self._error_delivered = False
        self._readable = asyncio.Event()
        self._drained = asyncio.Event()
        self._drained.set()

    @property
    def high_water_mark(self) -> int:
        return self._high_water_mark

    @property
    def readable_length(self) -> int:
        return len(self._records)

    @property
    def ended(self) -> bool:
        """True once the producer signalled end of stream or failure."""
        return self._ended

    @property
    def errored(self) -> bool:
        return self._error is not None

    @property
    def error(self) -> BaseException | None:
        return self._error

    def write(self, record: Record) -> bool:
        """Append *record*; return False when the producer must wait for drain."""
        if self._ended:
            raise RuntimeError("write after end of stream")
        self._records.append(record)
        self._readable.set()
        if len(self._records) >= self._high_water_mark:
            self._drained.clear()
            return False
        return True

    async def drain(self) -> None:
        """Wait until the buffered length falls below the high-water mark."""
        await self._drained.wait()

    def end(self) -> None:
        """Signal successful end of stream. Ignored after a terminal signal."""
        if self._ended:
            return
        self._ended = True
        self._readable.set()

    def fail(self, error: BaseException) -> None:
        """Signal a fatal error. Ignored after a terminal signal."""
        if self._ended:
            logger.debug("Ignoring error after end of stream", error=repr(error))
            return
        self._ended = True
        self._error = error
        self._readable.set()

    def close(self) -> None:
        """Discard buffered records and end the stream for the consumer."""
        self._records.clear()
        self._ended = True
        self._error_delivered = True
        self._readable.set()
        self._drained.set()

    async def read(self) -> Record | None:
        """Return the next record, or None at end of stream.

        After a failure, records buffered before it are delivered first, then
        the error is raised once.
        """
        while not self._records:
            if self._ended:
                if self._error is not None and not self._error_delivered:
                    self._error_delivered = True
                    raise self._error
                return None
            self._readable.clear()
            await self._readable.wait()

        record = self._records.popleft()
        if len(self._records) < self._high_water_mark:
            self._drained.set()
        return record

    def __aiter__(self) -> RecordBuffer:
        return self

    async def __anext__(self) -> Record:
        record = await self.read()
        if record is None:
            raise StopAsyncIteration
        return record
