"""Router configuration.

RouterConfig is a frozen dataclass — immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from dataclasses import dataclass

from perch.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class RouterConfig:
    """Router configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = RouterConfig(index_name="index.htm", chunk_size=8192)
    """

    # Paths
    index_name: str = "index.html"  # Appended to empty paths and paths ending in "/"

    # Content
    chunk_size: int = 64 * 1024  # Block size when reading binary file-like sources
    json_sort_keys: bool = False

    # Events
    event_queue_size: int = 256  # Per-subscriber queue bound for RouteEventBus

    # Serving
    default_content_type: str = "application/octet-stream"

    def __post_init__(self) -> None:
        if not self.index_name or "/" in self.index_name:
            msg = f"index_name must be a plain file name, got {self.index_name!r}"
            raise ConfigurationError(msg)
        if self.chunk_size <= 0:
            msg = f"chunk_size must be positive, got {self.chunk_size}"
            raise ConfigurationError(msg)
        if self.event_queue_size <= 0:
            msg = f"event_queue_size must be positive, got {self.event_queue_size}"
            raise ConfigurationError(msg)
