"""Typed ASGI definitions.

Replaces the standard Scope = MutableMapping[str, Any] with a typed
dataclass for internal use. Users never see these.
"""

from collections.abc import Awaitable, Callable, MutableMapping
from dataclasses import dataclass
from typing import Any, TypeAlias

# Raw ASGI types (as defined by the ASGI 3.0 protocol)
Scope: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[MutableMapping[str, Any]]]
Send: TypeAlias = Callable[[MutableMapping[str, Any]], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class HTTPScope:
    """The parts of an HTTP scope the route server reads."""

    method: str
    path: str
    query_string: bytes
    root_path: str

    @classmethod
    def from_scope(cls, scope: Scope) -> "HTTPScope":
        """Parse raw ASGI scope into typed object."""
        return cls(
            method=scope["method"].upper(),
            path=scope["path"],
            query_string=scope.get("query_string", b""),
            root_path=scope.get("root_path", ""),
        )

    @property
    def route_path(self) -> str:
        """Path relative to the mount point, as the route table expects it."""
        if self.root_path and self.path.startswith(self.root_path):
            return self.path[len(self.root_path) :]
        return self.path

    @property
    def route_target(self) -> str:
        """Route path plus query string, ready for normalization."""
        if self.query_string:
            return f"{self.route_path}?{self.query_string.decode('latin-1')}"
        return self.route_path
