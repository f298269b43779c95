"""Cursor stream adapter: iterate a store collection as a backpressured record stream."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Mapping
from typing import Any, TypeVar

import structlog

from cursor_stream.buffer import RecordBuffer
from cursor_stream.domain.errors import InvalidArgumentError, TransactionInactiveError
from cursor_stream.domain.models import KeyRange, Record, StreamOptions, StreamState
from cursor_stream.infra.config import StreamSettings, get_settings
from cursor_stream.port.store_handle import CursorPort, StoreHandlePort, TransactionPort

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CursorStream:
    """Stream the records of one collection, reopening cursors that time out.

    A single driver task owns the cursor. It advances only while the record
    buffer is below its high-water mark and otherwise waits for the consumer
    to drain it. When an advance reports that the transaction has ended, a
    new transaction and cursor are opened past the last emitted key.
    """

    def __init__(
        self,
        store: StoreHandlePort,
        collection: str,
        options: StreamOptions | Mapping[str, Any] | None = None,
        *,
        settings: StreamSettings | None = None,
    ) -> None:
        if not isinstance(store, StoreHandlePort):
            raise InvalidArgumentError(f"store must provide transaction(), got {type(store).__name__}")
        if not isinstance(collection, str):
            raise InvalidArgumentError(f"collection must be a string, got {type(collection).__name__}")
        if not collection:
            raise InvalidArgumentError("collection must not be empty")

        if isinstance(options, StreamOptions):
            self._options = options
        elif options is None or isinstance(options, Mapping):
            self._options = StreamOptions.from_settings(settings or get_settings(), options)
        else:
            raise InvalidArgumentError(f"options must be StreamOptions or a mapping, got {type(options).__name__}")

        self._store = store
        self._collection = collection
        self._buffer = RecordBuffer(self._options.high_water_mark)
        self._state = StreamState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._transaction: TransactionPort | None = None

        self._has_position = False
        self._position: Any = None
        self._cursors_opened = 0
        self._reopens = 0
        self._idle_reopens = 0

        self._log = logger.bind(
            stream_id=uuid.uuid4().hex[:12],
            collection=collection,
            direction=self._options.direction.value,
        )

    @property
    def options(self) -> StreamOptions:
        return self._options

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def position(self) -> Any:
        """Key of the most recently emitted record, or None before the first."""
        return self._position

    @property
    def cursors_opened(self) -> int:
        """Number of cursor generations opened over the stream's lifetime."""
        return self._cursors_opened

    @property
    def reopens(self) -> int:
        return self._reopens

    @property
    def ended(self) -> bool:
        return self._state.is_terminal

    @property
    def errored(self) -> bool:
        return self._state is StreamState.ERRORED

    @property
    def readable_length(self) -> int:
        return self._buffer.readable_length

    def effective_range(self) -> KeyRange:
        """Range the next cursor generation will cover."""
        if not self._has_position:
            return self._options.key_range
        return self._options.key_range.resume_after(self._position, self._options.direction)

    def start(self) -> None:
        """Schedule the driver task on the running loop. Idempotent."""
        if self._task is not None or self._state.is_terminal:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def read(self) -> Record | None:
        """Return the next record, or None at end of stream.

        Raises the fatal error once if the stream failed.
        """
        self.start()
        return await self._buffer.read()

    def __aiter__(self) -> CursorStream:
        self.start()
        return self

    async def __anext__(self) -> Record:
        record = await self.read()
        if record is None:
            raise StopAsyncIteration
        return record

    async def __aenter__(self) -> CursorStream:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop iterating and release the active transaction.

        Buffered records are discarded and the consumer sees end of stream.
        """
        if self._state.is_terminal and self._task is None:
            return
        if not self._state.is_terminal:
            self._set_state(StreamState.CLOSED)
            self._log.info("Cursor stream closed by consumer", position=self._position)
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._release()
        self._buffer.close()

    async def _run(self) -> None:
        try:
            while True:
                try:
                    reopen = await self._pump(self._open_cursor())
                finally:
                    self._release()
                if not reopen:
                    break
            self._finish()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail(exc)

    def _open_cursor(self) -> CursorPort:
        self._set_state(StreamState.OPENING)
        key_range = self.effective_range()
        self._transaction = self._store.transaction(self._collection, "readonly")
        self._cursors_opened += 1
        self._log.debug(
            "Opening cursor",
            generation=self._cursors_opened,
            lower=key_range.lower,
            upper=key_range.upper,
            lower_open=key_range.lower_open,
            upper_open=key_range.upper_open,
        )
        return self._transaction.open_cursor(key_range, self._options.direction)

    async def _pump(self, cursor: CursorPort) -> bool:
        """Advance *cursor* until exhaustion (False) or a recoverable timeout (True)."""
        while True:
            self._set_state(StreamState.ADVANCING)
            try:
                record = await self._watch(cursor.advance())
            except TransactionInactiveError:
                if not self._may_reopen():
                    raise
                self._reopens += 1
                self._idle_reopens += 1
                self._log.info(
                    "Cursor transaction inactive, reopening",
                    generation=self._cursors_opened,
                    position=self._position,
                )
                return True

            if record is None:
                return False

            self._position = record.key
            self._has_position = True
            self._idle_reopens = 0

            self._set_state(StreamState.EMITTING)
            if not self._buffer.write(record):
                self._set_state(StreamState.DRAINING)
                await self._watch(self._buffer.drain())

    def _may_reopen(self) -> bool:
        if not self._options.reopen_on_timeout:
            return False
        max_reopens = self._options.max_reopens
        return max_reopens is None or self._idle_reopens < max_reopens

    async def _watch(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the active transaction fails first."""
        assert self._transaction is not None
        failure = self._transaction.failure()
        waiter = asyncio.ensure_future(awaitable)
        try:
            await asyncio.wait({waiter, failure}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            _discard(waiter)
            raise
        if failure.done():
            _discard(waiter)
            raise failure.result()
        return waiter.result()

    def _release(self) -> None:
        transaction, self._transaction = self._transaction, None
        if transaction is not None:
            transaction.close()

    def _finish(self) -> None:
        self._set_state(StreamState.ENDED)
        self._buffer.end()
        self._log.info(
            "Cursor stream ended",
            cursors_opened=self._cursors_opened,
            reopens=self._reopens,
        )

    def _fail(self, exc: Exception) -> None:
        self._set_state(StreamState.ERRORED)
        self._log.error(
            "Cursor stream failed",
            error=repr(exc),
            error_type=type(exc).__name__,
            generation=self._cursors_opened,
            position=self._position,
        )
        self._buffer.fail(exc)

    def _set_state(self, state: StreamState) -> None:
        if self._state.is_terminal:
            return
        self._state = state


def _discard(task: asyncio.Future[Any]) -> None:
    """Cancel *task*, or mark its outcome retrieved if it already finished."""
    if not task.done():
        task.cancel()
    elif not task.cancelled():
        task.exception()


def open_cursor_stream(
    store: StoreHandlePort,
    collection: str,
    options: StreamOptions | Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> CursorStream:
    """Build a CursorStream and start it on the running loop.

    Keyword arguments are merged into *options* when it is a mapping or None.
    """
    if kwargs:
        if isinstance(options, StreamOptions):
            raise InvalidArgumentError("keyword options cannot be combined with a StreamOptions instance")
        options = {**(options or {}), **kwargs}
    stream = CursorStream(store, collection, options)
    stream.start()
    return stream
