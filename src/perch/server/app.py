"""RouteApp — an ASGI application serving a RouteTable.

Usage::

    table = RouteTable()
    table.set("/", "<h1>Hello</h1>")
    app = RouteApp(table)

    # uvicorn module:app, pounce module:app, ...
"""

import logging
import mimetypes

from perch._internal.asgi import HTTPScope, Receive, Scope, Send
from perch.routing.table import RouteTable
from perch.server.sender import send_plain, send_route

logger = logging.getLogger("perch.server")

_ALLOWED = ("GET", "HEAD")


def guess_content_type(path: str, default: str = "application/octet-stream") -> str:
    """Content type for a normalized route path, with a charset for text."""
    guessed, _ = mimetypes.guess_type(path)
    if guessed is None:
        return default
    if guessed.startswith("text/") or guessed in ("application/json", "application/javascript"):
        return f"{guessed}; charset=utf-8"
    return guessed


class RouteApp:
    """Serve every route in a table over ASGI.

    ``GET`` streams the route, ``HEAD`` sends its headers, anything else
    is ``405``. Unknown paths are ``404``. The table can change while the
    app is running; each request looks its path up afresh.
    """

    __slots__ = ("_table",)

    def __init__(self, table: RouteTable) -> None:
        self._table = table

    @property
    def table(self) -> RouteTable:
        return self._table

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        if scope["type"] != "http":
            return

        http = HTTPScope.from_scope(scope)

        if http.method not in _ALLOWED:
            await send_plain(
                405,
                "Method Not Allowed",
                send,
                headers=(("Allow", ", ".join(_ALLOWED)),),
            )
            return

        path = self._table.format(http.route_target)
        stream = self._table.get(path)
        if stream is None:
            logger.debug("No route for %s", path)
            await send_plain(404, "Not Found", send)
            return

        await send_route(
            stream,
            send,
            content_type=guess_content_type(path, self._table.config.default_content_type),
            head=http.method == "HEAD",
        )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Acknowledge startup and shutdown; the table needs no setup."""
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif msg_type == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return
