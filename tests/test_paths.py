"""Tests for perch.routing.paths — route path normalization."""

import pytest

from perch.errors import InvalidArgument
from perch.routing.paths import normalize


class TestNormalize:
    @pytest.mark.parametrize("path", ["", "/", "//", None])
    def test_root_becomes_index(self, path: str | None) -> None:
        assert normalize(path) == "index.html"

    def test_no_argument(self) -> None:
        assert normalize() == "index.html"

    def test_strips_leading_slashes(self) -> None:
        assert normalize("///about.html") == "about.html"

    def test_backslashes_become_slashes(self) -> None:
        assert normalize("a\\b") == "a/b"

    def test_strips_query_string(self) -> None:
        assert normalize("feed.xml?page=2&sort=new") == "feed.xml"

    def test_backslash_and_query(self) -> None:
        assert normalize("a\\b?x=1") == "a/b"

    def test_trailing_slash_gets_index(self) -> None:
        assert normalize("/blog/") == "blog/index.html"

    def test_query_after_trailing_slash(self) -> None:
        assert normalize("blog/?ref=nav") == "blog/index.html"

    def test_leading_backslash(self) -> None:
        assert normalize("\\docs\\intro.html") == "docs/intro.html"

    def test_custom_index_name(self) -> None:
        assert normalize("docs/", index_name="README.md") == "docs/README.md"

    def test_plain_path_unchanged(self) -> None:
        assert normalize("css/site.css") == "css/site.css"

    @pytest.mark.parametrize("path", [123, b"/bytes", ["a"], 1.5])
    def test_non_string_rejected(self, path: object) -> None:
        with pytest.raises(InvalidArgument, match="path must be a string"):
            normalize(path)  # type: ignore[arg-type]

    def test_invalid_argument_is_type_error(self) -> None:
        with pytest.raises(TypeError):
            normalize(42)  # type: ignore[arg-type]

    @pytest.mark.parametrize(
        "path",
        [
            "",
            "/",
            "a\\b?x=1",
            "\\/x",
            "/\\?",
            "blog/",
            "//a//b//",
            "?only-query",
            "a?b?c",
            "\\\\server\\share\\",
            "index.html",
        ],
    )
    def test_idempotent(self, path: str) -> None:
        once = normalize(path)
        assert normalize(once) == once
