"""RouteStream — one route's content as a lazily pulled byte stream.

A ``RouteStream`` is created per lookup and read once. Nothing happens
at construction time; the first ``read()`` decides what to do based on
the route's payload:

- static payloads (bytes, text, JSON objects) are converted once and
  emitted as a single chunk
- deferred producers are invoked exactly once, in a background pump
  task that feeds a queue; concurrent readers share that task
- streaming sources are forwarded chunk by chunk in arrival order

Failures surface as a ``ProducerFailure`` raised from ``read()`` exactly
once, after which the stream is at end-of-stream. Readers are never
left waiting on a stream that has failed.
"""

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

import anyio

from perch.config import RouterConfig
from perch.content import (
    Content,
    Deferred,
    Streaming,
    chunk_to_bytes,
    classify_result,
    to_bytes,
)
from perch.errors import ProducerFailure

logger = logging.getLogger("perch.stream")

# Queue marker for end-of-stream. Re-queued on receipt so every waiting
# reader wakes up.
_END = object()


class StreamState(Enum):
    """Lifecycle of a RouteStream.

    The first read leaves ``NOT_STARTED``; nothing ever returns to it.
    """

    NOT_STARTED = "not_started"
    IN_FLIGHT = "in_flight"  # Deferred producer invoked, result pending
    STREAMING = "streaming"  # Forwarding chunks from a source
    DONE = "done"
    FAILED = "failed"


class RouteStream:
    """Pull-driven, single-read byte stream over one route's content.

    Usage::

        stream = table.get("feed.xml")
        while (chunk := await stream.read()) is not None:
            await send(chunk)

        # or
        async for chunk in table.get("feed.xml"):
            ...

        body = await table.get("index.html").read_all()
    """

    __slots__ = ("_config", "_content", "_pump", "_queue", "_state", "error", "path")

    def __init__(
        self,
        content: Content,
        *,
        path: str | None = None,
        config: RouterConfig | None = None,
    ) -> None:
        self._content = content
        self._config = config or RouterConfig()
        self._state = StreamState.NOT_STARTED
        self._queue: asyncio.Queue[Any] | None = None
        self._pump: asyncio.Task[None] | None = None
        self.path = path
        self.error: ProducerFailure | None = None

    def __repr__(self) -> str:
        return (
            f"RouteStream(path={self.path!r}, state={self._state.value}, "
            f"modified={self.modified})"
        )

    @property
    def modified(self) -> bool:
        """The route's modified flag, fixed when the stream was created."""
        return self._content.modified

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def started(self) -> bool:
        """Whether the first pull has happened (and any producer was invoked)."""
        return self._state is not StreamState.NOT_STARTED

    # -- Pulling --

    async def read(self) -> bytes | None:
        """Pull the next chunk. Returns ``None`` at end-of-stream.

        Raises ``ProducerFailure`` once if the producer or source fails;
        every read after that returns ``None``.
        """
        if self._state is StreamState.NOT_STARTED:
            payload = self._content.payload
            if not isinstance(payload, (Deferred, Streaming)):
                return self._read_static()
            self._start_pump(payload)

        if self._queue is None:
            # Static payload, already emitted.
            return None

        item = await self._queue.get()
        if item is _END:
            self._queue.put_nowait(_END)
            return None
        if isinstance(item, ProducerFailure):
            raise item
        return item

    async def read_all(self) -> bytes:
        """Drain the stream and return the joined chunks."""
        return b"".join([chunk async for chunk in self])

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read()
        if chunk is None:
            raise StopAsyncIteration
        return chunk

    # -- Internals --

    def _read_static(self) -> bytes | None:
        """First and only pull of a static payload."""
        try:
            chunk = to_bytes(self._content.payload, sort_keys=self._config.json_sort_keys)
        except (TypeError, ValueError) as exc:
            self._state = StreamState.FAILED
            raise self._fail(exc) from exc
        self._state = StreamState.DONE
        return chunk

    def _start_pump(self, payload: Deferred | Streaming) -> None:
        """First pull of a producer or source.

        The state leaves ``NOT_STARTED`` before anything is awaited, so
        overlapping reads never start a second pump.
        """
        if isinstance(payload, Deferred):
            self._state = StreamState.IN_FLIGHT
        else:
            self._state = StreamState.STREAMING
        self._queue = asyncio.Queue()
        self._pump = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        """Pump task: invoke the producer once and feed the queue."""
        assert self._queue is not None
        payload = self._content.payload
        try:
            match payload:
                case Deferred():
                    result = classify_result(await payload.call())
                    if isinstance(result, Streaming):
                        self._state = StreamState.STREAMING
                        await self._forward(result.source)
                    else:
                        chunk = to_bytes(result, sort_keys=self._config.json_sort_keys)
                        if chunk is not None:
                            self._queue.put_nowait(chunk)
                case Streaming(source=source):
                    await self._forward(source)
        except asyncio.CancelledError as exc:
            # A cancelled producer awaitable is a rejection. Cancellation of
            # the pump task itself still propagates.
            self._record_failure(exc)
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
        except Exception as exc:
            self._record_failure(exc)
        else:
            self._state = StreamState.DONE
        finally:
            self._queue.put_nowait(_END)

    async def _forward(self, source: Any) -> None:
        """Push every chunk of *source* onto the queue, in arrival order."""
        if hasattr(source, "__aiter__"):
            async for chunk in source:
                self._emit(chunk)
        elif callable(getattr(source, "read", None)):
            read = source.read
            size = self._config.chunk_size
            while True:
                if inspect.iscoroutinefunction(read):
                    block = await read(size)
                else:
                    block = await anyio.to_thread.run_sync(read, size)
                if not block:
                    break
                self._emit(block)
        else:
            # Blocking iterators advance on a worker thread, one item per hop
            iterator = iter(source)
            while True:
                chunk = await anyio.to_thread.run_sync(next, iterator, _END)
                if chunk is _END:
                    break
                self._emit(chunk)

    def _emit(self, chunk: Any) -> None:
        assert self._queue is not None
        data = chunk_to_bytes(chunk, sort_keys=self._config.json_sort_keys)
        if data is not None:
            self._queue.put_nowait(data)

    def _record_failure(self, exc: BaseException) -> None:
        assert self._queue is not None
        self._state = StreamState.FAILED
        self._queue.put_nowait(self._fail(exc))

    def _fail(self, exc: BaseException) -> ProducerFailure:
        failure = ProducerFailure(f"{type(exc).__name__}: {exc}", path=self.path)
        failure.__cause__ = exc
        self.error = failure
        logger.warning("Content producer failed for %r: %s", self.path, exc)
        return failure
