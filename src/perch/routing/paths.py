"""Route path normalization.

Every path the route table accepts goes through ``normalize`` first, so
``"/about/"``, ``"about\\"`` and ``"about/?ref=nav"`` all name the same
entry: ``"about/index.html"``.
"""

from perch.errors import InvalidArgument

INDEX_NAME = "index.html"


def normalize(path: str | None = None, *, index_name: str = INDEX_NAME) -> str:
    """Normalize a route path.

    Steps, in order:

    1. ``None`` becomes ``""``
    2. non-strings raise ``InvalidArgument``
    3. backslashes become forward slashes
    4. the query string (from the first ``?``) is dropped
    5. leading slashes are stripped
    6. empty paths and paths ending in ``/`` get *index_name* appended

    Examples::

        normalize("/")           -> "index.html"
        normalize("a\\\\b?x=1")    -> "a/b"
        normalize("/blog/")      -> "blog/index.html"

    The result is a fixed point: ``normalize(normalize(p)) == normalize(p)``.
    """
    if path is None:
        path = ""
    if not isinstance(path, str):
        msg = f"path must be a string, got {type(path).__name__}"
        raise InvalidArgument(msg)

    path = path.replace("\\", "/").split("?", 1)[0].lstrip("/")

    if not path or path.endswith("/"):
        path += index_name
    return path
