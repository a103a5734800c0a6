"""Perch exception hierarchy.

Shared across the route table, content streams, and the ASGI server so
every module raises and catches the same types.
"""


class PerchError(Exception):
    """Base for all perch-specific errors."""


class ConfigurationError(PerchError):
    """Raised when router configuration is invalid."""


class InvalidArgument(PerchError, TypeError):  # noqa: N818 — mirrors TypeError usage
    """A route table method was called with a bad argument.

    Raised synchronously for non-string paths and for ``None`` data.
    Subclasses ``TypeError`` so callers that catch the builtin keep working.
    """


class ProducerFailure(PerchError):  # noqa: N818 — reads as an event, not a bug
    """A route's content producer failed while a stream was being read.

    The underlying exception (a rejected producer function or a failing
    streaming source) is chained as ``__cause__``.
    """

    def __init__(self, detail: str = "Content producer failed", *, path: str | None = None) -> None:
        self.detail = detail
        self.path = path
        super().__init__(detail)

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.detail}"
        return self.detail
