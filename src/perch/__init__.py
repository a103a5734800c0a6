"""Perch — an in-memory route table with lazily streamed content.

Map paths to static data, producer functions, or streaming sources, and
read each route back as a single-use byte stream.

Basic usage::

    from perch import RouteTable

    table = RouteTable()
    table.set("/", "<h1>Hello</h1>")
    table.set("feed.json", load_feed)  # invoked on first read

    stream = table.get("/")
    body = await stream.read_all()

Serving over ASGI::

    from perch.server import RouteApp
    app = RouteApp(table)
"""

__version__ = "0.1.0"
__all__ = [
    "ConfigurationError",
    "Content",
    "Convention",
    "InvalidArgument",
    "PerchError",
    "ProducerFailure",
    "RouteEvent",
    "RouteEventBus",
    "RouteEventKind",
    "RouteStream",
    "RouteTable",
    "RouterConfig",
    "StreamState",
    "normalize",
]


# Public name -> defining module
_LAZY_IMPORTS: dict[str, str] = {
    "ConfigurationError": "perch.errors",
    "Content": "perch.content",
    "Convention": "perch.content",
    "InvalidArgument": "perch.errors",
    "PerchError": "perch.errors",
    "ProducerFailure": "perch.errors",
    "RouteEvent": "perch.events",
    "RouteEventBus": "perch.events",
    "RouteEventKind": "perch.events",
    "RouteStream": "perch.stream",
    "RouteTable": "perch.routing.table",
    "RouterConfig": "perch.config",
    "StreamState": "perch.stream",
    "normalize": "perch.routing.paths",
}


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import perch`` fast while providing a clean top-level API.
    """
    module_name = _LAZY_IMPORTS.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)

    from importlib import import_module

    return getattr(import_module(module_name), name)
