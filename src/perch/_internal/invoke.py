"""Invoke helpers — call sync or async producers uniformly.

Route producers can be ``def`` or ``async def``, and may either return
their value or hand it to a completion callback. Any code that calls a
user-provided producer goes through this module so the sync/async and
return/callback handling lives in exactly one place.

Usage::

    from perch._internal.invoke import invoke, invoke_with_callback

    value = await invoke(producer)
    value = await invoke_with_callback(legacy_producer)
"""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from perch.errors import ProducerFailure


async def invoke(producer: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a producer and await the result if it's awaitable.

    Works with both sync and async callables::

        # sync — returns immediately, no await needed
        def sitemap():
            return render_sitemap()

        # async — returns coroutine, awaited automatically
        async def feed():
            posts = await load_posts()
            return render_feed(posts)
    """
    result = producer(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


async def invoke_with_callback(producer: Callable[[Callable[..., None]], Any]) -> Any:
    """Call a completion-style producer and await the value it reports.

    The producer receives a ``done(error, value=None)`` callback. A
    truthy error rejects the result; otherwise ``value`` is
    returned. Only the first call to ``done`` counts. ``done`` may be
    called from any thread, before or after the producer returns::

        def legacy(done):
            done(None, b"<html></html>")
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[Any] = loop.create_future()

    def settle(error: Any, value: Any) -> None:
        if future.done():
            return
        if not error:
            future.set_result(value)
        elif isinstance(error, BaseException):
            future.set_exception(error)
        else:
            future.set_exception(ProducerFailure(str(error)))

    def done(error: Any = None, value: Any = None) -> None:
        loop.call_soon_threadsafe(settle, error, value)

    result = producer(done)
    if inspect.isawaitable(result):
        await result
    return await future
