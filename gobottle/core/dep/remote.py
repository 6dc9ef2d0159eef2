"""远程导入路径发现 (go-get=1 协议)

对裸导入路径发起 GET https://<import path>?go-get=1，从响应中解析唯一的
<meta name="go-import" content="<前缀> <vcs> <仓库地址>"> 标签。

参考: https://golang.org/cmd/go/#hdr-Remote_import_paths
"""

from __future__ import annotations

import logging
import re
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Callable

from gobottle.core.exceptions import DependencyError
from gobottle.utils.net import validate_url_scheme

logger = logging.getLogger(__name__)

# (url, timeout) -> (status, body)
HttpGet = Callable[[str, float], tuple[int, bytes]]

_META_TAG_RE = re.compile(
    rb"""<meta\s[^>]*name\s*=\s*("go-import"|'go-import'|go-import)[^>]*>""",
    re.IGNORECASE,
)
_META_CONTENT_RE = re.compile(
    rb"""content\s*=\s*("[^"]*"|'[^']*')""",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ImportMeta:
    """go-import 元数据"""

    prefix: str
    vcs: str
    repo: str


def urllib_get(url: str, timeout: float) -> tuple[int, bytes]:
    """默认 HTTP 实现：非 2xx 状态以 (status, b"") 返回，网络错误抛 DependencyError"""
    validate_url_scheme(url, context="go-import discovery")
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:  # nosec B310
            return resp.status, resp.read()
    except urllib.error.HTTPError as e:
        return e.code, b""
    except (urllib.error.URLError, OSError) as e:
        raise DependencyError(f"resolver: 请求 {url} 失败: {e}") from e


def parse_import_meta(body: bytes, url: str) -> ImportMeta:
    """从响应正文中解析唯一的 go-import 标签"""
    tags = _META_TAG_RE.findall(body)
    if not tags:
        raise DependencyError(f'resolver: 响应中未找到 "go-import" meta 标签: {url}')
    if len(tags) > 1:
        raise DependencyError(f'resolver: 响应中有 {len(tags)} 个 "go-import" meta 标签，期望 1 个: {url}')

    tag = _META_TAG_RE.search(body).group(0)  # type: ignore[union-attr]
    content = _META_CONTENT_RE.search(tag)
    parts = content.group(1)[1:-1].decode("utf-8", "replace").split() if content else []
    if len(parts) != 3:
        raise DependencyError(f'resolver: "go-import" meta 的 content 格式错误 (需要 3 段): {url}')
    return ImportMeta(prefix=parts[0], vcs=parts[1], repo=parts[2])


def fetch_import_meta(
    import_path: str,
    *,
    http_get: HttpGet | None = None,
    timeout: float = 30.0,
) -> ImportMeta:
    """请求并解析某个导入路径的 go-import 元数据"""
    url = f"https://{import_path}?go-get=1"
    status, body = (http_get or urllib_get)(url, timeout)
    if status != 200:
        raise DependencyError(f'resolver: "{url}" 返回状态 {status}，期望 200')
    meta = parse_import_meta(body, url)
    logger.debug("go-import %s -> %s %s %s", import_path, meta.prefix, meta.vcs, meta.repo)
    return meta
