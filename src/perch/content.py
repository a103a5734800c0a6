"""Content descriptors and the payload variant.

A route's raw data is classified exactly once, when it is registered,
into one of a closed set of payload shapes:

- ``Bytes``: raw binary data, emitted unchanged
- ``Text``: a string, emitted as UTF-8
- ``Object``: a JSON-serializable value, emitted as compact JSON
- ``Deferred``: a producer function, invoked lazily on first read
- ``Streaming``: an async iterable, iterator, or binary reader
- ``Opaque``: anything else, which emits no data at all

Every conversion and dispatch site matches on these types instead of
probing the raw value again.
"""

import dataclasses
import json
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

from perch._internal.invoke import invoke, invoke_with_callback


class Convention(Enum):
    """How a producer function reports its value.

    Chosen by the caller at registration time, never inferred::

        table.set("feed.xml", render_feed)                     # DIRECT
        table.set("legacy.js", build, convention=Convention.CALLBACK)
    """

    DIRECT = "direct"  # fn() -> value | Awaitable[value]
    CALLBACK = "callback"  # fn(done) where done(error, value=None); falsy error means success


# -- Payload variants --


@dataclass(frozen=True, slots=True)
class Bytes:
    value: bytes


@dataclass(frozen=True, slots=True)
class Text:
    value: str


@dataclass(frozen=True, slots=True)
class Object:
    """A value serialized to JSON on read (dict, list, tuple, dataclass)."""

    value: Any


@dataclass(frozen=True, slots=True)
class Deferred:
    """A producer function normalized to ``call() -> Awaitable``.

    ``call`` is safe to await no matter how ``func`` was written.
    """

    func: Callable[..., Any]
    convention: Convention = Convention.DIRECT

    async def call(self) -> Any:
        match self.convention:
            case Convention.CALLBACK:
                return await invoke_with_callback(self.func)
            case _:
                return await invoke(self.func)


@dataclass(frozen=True, slots=True)
class Streaming:
    """An existing source of chunks, forwarded as they arrive."""

    source: Any


@dataclass(frozen=True, slots=True)
class Opaque:
    """An unsupported value. Reads produce end-of-stream only."""

    value: Any


Payload: TypeAlias = Bytes | Text | Object | Deferred | Streaming | Opaque

_VARIANTS = (Bytes, Text, Object, Deferred, Streaming, Opaque)


def is_streaming_source(value: Any) -> bool:
    """Whether *value* yields chunks over time rather than being one."""
    if isinstance(value, (str, bytes, bytearray, memoryview, dict, list, tuple)):
        return False
    if hasattr(value, "__aiter__"):
        return True
    if callable(getattr(value, "read", None)):
        return True
    return isinstance(value, Iterator)


def classify(value: Any, convention: Convention = Convention.DIRECT) -> Payload:
    """Resolve a raw route value into its payload variant.

    Already-classified payloads are returned unchanged.
    """
    return _classify(value, convention, allow_deferred=True)


def classify_result(value: Any) -> Payload:
    """Classify the value a producer function resolved to.

    A producer may resolve to a stream, but a function it returns is not
    invoked again: it degrades to ``Opaque``.
    """
    return _classify(value, Convention.DIRECT, allow_deferred=False)


def _classify(value: Any, convention: Convention, *, allow_deferred: bool) -> Payload:
    if isinstance(value, _VARIANTS):
        return value
    match value:
        case bytes():
            return Bytes(value)
        case bytearray() | memoryview():
            return Bytes(bytes(value))
        case str():
            return Text(value)
        case dict() | list() | tuple():
            return Object(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return Object(value)
    if is_streaming_source(value):
        return Streaming(value)
    if allow_deferred and callable(value):
        return Deferred(value, convention)
    return Opaque(value)


def dumps(value: Any, *, sort_keys: bool = False) -> str:
    """Canonical compact JSON, matching what browsers' ``JSON.stringify`` emits."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, sort_keys=sort_keys)


def to_bytes(payload: Payload, *, sort_keys: bool = False) -> bytes | None:
    """Convert a terminal payload to a single chunk.

    Returns ``None`` for shapes that carry no data (``Opaque``, and the
    non-terminal ``Deferred``/``Streaming`` variants).
    """
    match payload:
        case Bytes(value=value):
            return value
        case Text(value=value):
            return value.encode("utf-8")
        case Object(value=value):
            return dumps(value, sort_keys=sort_keys).encode("utf-8")
        case _:
            return None


def chunk_to_bytes(chunk: Any, *, sort_keys: bool = False) -> bytes | None:
    """Convert one chunk received from a streaming source."""
    if isinstance(chunk, bytes):
        return chunk
    return to_bytes(classify_result(chunk), sort_keys=sort_keys)


# -- Descriptor --


@dataclass(frozen=True, slots=True)
class Content:
    """A route's content descriptor: the payload plus its modified flag.

    ``data`` is the raw value as registered; ``payload`` is its classified
    form, computed once here::

        Content(b"<html></html>")
        Content(render_feed, modified=False)
        Content(legacy_build, convention=Convention.CALLBACK)
    """

    data: Any
    modified: bool = True
    convention: Convention = Convention.DIRECT
    payload: Payload = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", classify(self.data, self.convention))


def coerce_content(data: Any, convention: Convention = Convention.DIRECT) -> Content:
    """Build a descriptor from whatever ``RouteTable.set`` was given.

    Accepted shapes, in order:

    - a ``Content``: used as-is
    - a mapping with a non-``None`` ``"data"`` key
    - an object with a non-``None`` ``data`` attribute
    - anything else: the raw payload, with ``modified=True``
    """
    if isinstance(data, Content):
        return data
    if isinstance(data, dict) and data.get("data") is not None:
        modified = data.get("modified")
        return Content(
            data["data"],
            modified=True if modified is None else bool(modified),
            convention=data.get("convention") or convention,
        )
    inner = getattr(data, "data", None)
    if inner is not None and not isinstance(data, (str, bytes, bytearray, memoryview)):
        modified = getattr(data, "modified", None)
        return Content(
            inner,
            modified=True if modified is None else bool(modified),
            convention=getattr(data, "convention", None) or convention,
        )
    return Content(data, convention=convention)
