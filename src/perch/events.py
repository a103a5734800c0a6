"""Route change events — synchronous notifications plus an async channel.

``RouteTable`` emits a ``RouteEvent`` after every ``set`` and ``remove``,
once the table write has completed. Listeners registered with
``RouteTable.subscribe()`` are called inline. Cache and invalidation
layers that live in async code can use a ``RouteEventBus`` instead::

    bus = RouteEventBus()
    bus.attach(table)

    async for event in bus.subscribe():
        if event.kind is RouteEventKind.REMOVE:
            cache.evict(event.path)

Free-threading safety:
    - RouteEvent is a frozen dataclass (immutable, safe to share)
    - RouteEventBus uses a Lock to protect the subscriber set
    - Each subscriber gets its own asyncio.Queue (no shared mutable state)
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from perch.routing.table import RouteTable


class RouteEventKind(Enum):
    UPDATE = "update"
    REMOVE = "remove"


@dataclass(frozen=True, slots=True)
class RouteEvent:
    """A single route table change. ``path`` is always normalized."""

    kind: RouteEventKind
    path: str


Listener: TypeAlias = Callable[[RouteEvent], object]


class RouteEventBus:
    """Async broadcast channel for route table events.

    Each call to ``subscribe()`` returns an async iterator backed by its
    own ``asyncio.Queue``. When ``emit()`` is called, the event is placed
    into every active subscriber's queue.
    """

    __slots__ = ("_lock", "_maxsize", "_subscribers")

    def __init__(self, maxsize: int = 256) -> None:
        self._subscribers: set[asyncio.Queue[RouteEvent | None]] = set()
        self._lock = threading.Lock()
        self._maxsize = maxsize

    @classmethod
    def for_table(cls, table: "RouteTable") -> "RouteEventBus":
        """A bus sized by the table's config, already attached to it."""
        bus = cls(maxsize=table.config.event_queue_size)
        bus.attach(table)
        return bus

    def attach(self, table: "RouteTable") -> Callable[[], None]:
        """Forward every event from *table*. Returns a detach callable."""
        return table.subscribe(self.emit)

    def emit(self, event: RouteEvent) -> None:
        """Broadcast an event to all active subscribers."""
        with self._lock:
            subscribers = set(self._subscribers)
        for queue in subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Drop event for slow consumers rather than blocking the table
                pass

    async def subscribe(self) -> AsyncIterator[RouteEvent]:
        """Subscribe to route events.

        Returns an async iterator that yields events as they are emitted.
        The subscription is automatically cleaned up when the iterator exits.
        """
        queue: asyncio.Queue[RouteEvent | None] = asyncio.Queue(maxsize=self._maxsize)
        with self._lock:
            self._subscribers.add(queue)
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
        finally:
            with self._lock:
                self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def close(self) -> None:
        """Signal all subscribers to stop.

        Puts ``None`` into every queue, which causes the async iterator
        to break cleanly. A full queue loses its oldest event to make room.
        """
        with self._lock:
            for queue in self._subscribers:
                try:
                    queue.put_nowait(None)
                except asyncio.QueueFull:
                    # Make room for the sentinel by dropping the oldest event
                    queue.get_nowait()
                    queue.put_nowait(None)
            self._subscribers.clear()
