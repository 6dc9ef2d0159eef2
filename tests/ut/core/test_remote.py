"""go-get=1 元数据发现测试"""

from __future__ import annotations

import pytest

from gobottle.core.dep.remote import ImportMeta, fetch_import_meta, parse_import_meta
from gobottle.core.exceptions import DependencyError

URL = "https://example.org/r?go-get=1"


def _page(*metas: str) -> bytes:
    body = "".join(metas)
    return f"<html><head>{body}</head><body>go get example.org/r</body></html>".encode()


class TestParseImportMeta:
    def test_double_quoted(self) -> None:
        body = _page('<meta name="go-import" content="example.org/r git https://git.example.org/r.git">')
        assert parse_import_meta(body, URL) == ImportMeta(
            "example.org/r", "git", "https://git.example.org/r.git",
        )

    def test_single_quoted_with_extra_attrs(self) -> None:
        body = _page("<meta charset='utf-8' name='go-import' content='example.org/r git https://h/r'/>")
        meta = parse_import_meta(body, URL)
        assert meta.vcs == "git"
        assert meta.repo == "https://h/r"

    def test_other_meta_tags_ignored(self) -> None:
        body = _page(
            '<meta name="go-source" content="example.org/r _ _ _">',
            '<meta name="go-import" content="example.org/r git https://h/r">',
        )
        assert parse_import_meta(body, URL).prefix == "example.org/r"

    def test_missing_tag(self) -> None:
        with pytest.raises(DependencyError, match="未找到"):
            parse_import_meta(_page('<meta name="description" content="x">'), URL)

    def test_multiple_tags(self) -> None:
        body = _page(
            '<meta name="go-import" content="example.org/r git https://h/r">',
            '<meta name="go-import" content="example.org/r mod https://proxy">',
        )
        with pytest.raises(DependencyError, match="期望 1 个"):
            parse_import_meta(body, URL)

    @pytest.mark.parametrize("content", ["example.org/r git", "a b c d", ""])
    def test_malformed_content(self, content: str) -> None:
        body = _page(f'<meta name="go-import" content="{content}">')
        with pytest.raises(DependencyError, match="格式错误"):
            parse_import_meta(body, URL)


class TestFetchImportMeta:
    def test_requests_discovery_url(self) -> None:
        seen: list[tuple[str, float]] = []

        def http_get(url: str, timeout: float) -> tuple[int, bytes]:
            seen.append((url, timeout))
            return 200, _page('<meta name="go-import" content="example.org/r git https://h/r">')

        meta = fetch_import_meta("example.org/r", http_get=http_get, timeout=5)
        assert meta.repo == "https://h/r"
        assert seen == [("https://example.org/r?go-get=1", 5)]

    def test_non_200_status(self) -> None:
        with pytest.raises(DependencyError, match="返回状态 404"):
            fetch_import_meta("example.org/r", http_get=lambda url, t: (404, b""))
