"""The route table — normalized paths mapped to content descriptors.

Entries are written by ``set`` and tombstoned by ``remove``. Every
lookup builds a new ``RouteStream``, so two reads of the same route never
share producer state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from perch.config import RouterConfig
from perch.content import Content, Convention, coerce_content
from perch.errors import InvalidArgument
from perch.events import Listener, RouteEvent, RouteEventKind
from perch.routing.paths import normalize
from perch.stream import RouteStream

logger = logging.getLogger("perch.router")


def _require_path(path: Any) -> None:
    if not isinstance(path, str):
        msg = f"path must be a string, got {type(path).__name__}"
        raise InvalidArgument(msg)


class RouteTable:
    """Mutable map from normalized path to route content.

    Usage::

        table = RouteTable()
        table.set("/", "<h1>Home</h1>").set("feed.json", load_feed)

        stream = table.get("index.html")
        if stream is None:
            ...  # 404
        body = await stream.read_all()

    ``set`` and ``remove`` return the table so calls chain. Both notify
    listeners synchronously, after the entry has been written.
    """

    __slots__ = ("_config", "_listeners", "_routes")

    def __init__(self, config: RouterConfig | None = None) -> None:
        self._config = config or RouterConfig()
        # None marks a removed entry
        self._routes: dict[str, Content | None] = {}
        self._listeners: list[Listener] = []

    @property
    def config(self) -> RouterConfig:
        return self._config

    def __len__(self) -> int:
        return sum(1 for content in self._routes.values() if content is not None)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str):
            return False
        return self._routes.get(self.format(path)) is not None

    # -- Lookup --

    def list(self) -> list[str]:
        """Return every active route path, in no particular order."""
        return [path for path, content in self._routes.items() if content is not None]

    def format(self, path: str | None = None) -> str:
        """Normalize *path* the way every other table method does."""
        return normalize(path, index_name=self._config.index_name)

    def get(self, path: str) -> RouteStream | None:
        """Return a fresh stream for *path*, or ``None`` if no route exists."""
        _require_path(path)
        key = self.format(path)
        content = self._routes.get(key)
        if content is None:
            return None
        return RouteStream(content, path=key, config=self._config)

    def is_modified(self, path: str) -> bool:
        """The stored modified flag; ``False`` for missing routes."""
        _require_path(path)
        content = self._routes.get(self.format(path))
        return content.modified if content is not None else False

    # -- Mutation --

    def set(
        self,
        path: str,
        data: Any,
        *,
        convention: Convention = Convention.DIRECT,
    ) -> RouteTable:
        """Register *data* at *path*, replacing any existing route.

        *data* may be a raw payload (bytes, text, a JSON-serializable
        object, a producer function, or a streaming source) or a
        descriptor: a ``Content``, a dict with a ``"data"`` key, or any
        object with a ``data`` attribute. Raw payloads are marked modified.

        *convention* says how a producer function reports its value. It
        is ignored for other payloads.
        """
        _require_path(path)
        if data is None:
            msg = "data is required"
            raise InvalidArgument(msg)

        content = coerce_content(data, convention)
        key = self.format(path)
        self._routes[key] = content
        logger.debug("Route set: %s (%s)", key, type(content.payload).__name__)

        self._emit(RouteEvent(RouteEventKind.UPDATE, key))
        return self

    def remove(self, path: str) -> RouteTable:
        """Remove the route at *path*. Removing a missing route is a no-op
        apart from the ``remove`` event, which always fires."""
        _require_path(path)
        key = self.format(path)
        self._routes[key] = None
        logger.debug("Route removed: %s", key)

        self._emit(RouteEvent(RouteEventKind.REMOVE, key))
        return self

    # -- Notifications --

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with every ``RouteEvent``. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on(
        self,
        kind: RouteEventKind | str,
        listener: Callable[[str], object],
    ) -> Callable[[], None]:
        """Call *listener* with the path of every event of one kind.

        ``kind`` is a ``RouteEventKind`` or its value (``"update"``,
        ``"remove"``)::

            table.on("remove", cache.evict)
        """
        wanted = RouteEventKind(kind)

        def dispatch(event: RouteEvent) -> None:
            if event.kind is wanted:
                listener(event.path)

        return self.subscribe(dispatch)

    def _emit(self, event: RouteEvent) -> None:
        for listener in tuple(self._listeners):
            listener(event)
