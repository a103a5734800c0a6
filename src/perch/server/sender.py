"""ASGI response sending — translates route streams to ASGI messages.

Handles short fixed-body responses (errors) and chunked streaming of
route content.
"""

import logging

from perch._internal.asgi import Send
from perch.errors import ProducerFailure
from perch.stream import RouteStream

logger = logging.getLogger("perch.server")


async def send_plain(
    status: int,
    detail: str,
    send: Send,
    *,
    headers: tuple[tuple[str, str], ...] = (),
) -> None:
    """Send a short ``text/plain`` response with a known length."""
    body = detail.encode("utf-8")
    raw_headers: list[tuple[bytes, bytes]] = [
        (b"content-type", b"text/plain; charset=utf-8"),
        (b"content-length", str(len(body)).encode("latin-1")),
    ]
    for name, value in headers:
        raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))

    await send(
        {
            "type": "http.response.start",
            "status": status,
            "headers": raw_headers,
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": body,
        }
    )


async def send_route(
    stream: RouteStream,
    send: Send,
    *,
    content_type: str,
    head: bool = False,
) -> None:
    """Stream a route's content via chunked transfer encoding.

    The first chunk is pulled before headers go out, so a producer that
    fails immediately becomes a ``500``. Later failures are logged and
    the body is closed early. ``HEAD`` requests never pull the stream.
    """
    raw_headers: list[tuple[bytes, bytes]] = [
        (b"content-type", content_type.encode("latin-1")),
        (b"x-perch-modified", b"1" if stream.modified else b"0"),
    ]

    if head:
        await send({"type": "http.response.start", "status": 200, "headers": raw_headers})
        await send({"type": "http.response.body", "body": b"", "more_body": False})
        return

    try:
        first = await stream.read()
    except ProducerFailure as exc:
        logger.error("Route %r failed before first chunk: %s", stream.path, exc)
        await send_plain(500, "Internal Server Error", send)
        return

    # No content-length — chunked transfer encoding signals body boundaries
    raw_headers.append((b"transfer-encoding", b"chunked"))
    await send({"type": "http.response.start", "status": 200, "headers": raw_headers})

    chunk = first
    try:
        while chunk is not None:
            if chunk:
                await send({"type": "http.response.body", "body": chunk, "more_body": True})
            chunk = await stream.read()
    except ProducerFailure:
        # Headers are already out; all we can do is end the body.
        logger.exception("Route %r failed mid-stream", stream.path)

    # Close the stream
    await send({"type": "http.response.body", "body": b"", "more_body": False})
