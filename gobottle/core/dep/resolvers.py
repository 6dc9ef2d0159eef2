"""依赖解析器

每个解析器把一个依赖拉取到 <workspace>/src/<import path>，签名统一为
(来源定位, 导入路径, 工作空间) -> ResolveResult，返回三态之一:
  - SUCCESS:          已拉取/同步
  - ALREADY_RESOLVED: 目标已存在，保持不动
  - FAILED(detail):   拉取失败，detail 内嵌外部工具输出

ResolverRegistry 把传输协议标签映射到解析器，每次构建新建一份，
git 的同目标互斥状态随之隔离在单次构建内。
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from gobottle.core.dep.remote import HttpGet, fetch_import_meta
from gobottle.core.exceptions import BottleError, ExecutionError
from gobottle.core.models import (
    PROTOCOL_GIT,
    PROTOCOL_GO_GET,
    PROTOCOL_PATH,
    ResolveResult,
)
from gobottle.utils.shell import CommandExecutor, get_executor, tab_output

if TYPE_CHECKING:
    from gobottle.services.workspace import WorkspaceMaterializer

logger = logging.getLogger(__name__)

ResolverFunc = Callable[[str, str, Path], ResolveResult]


class ResolverRegistry:
    """传输协议 -> 解析器 的注册表"""

    def __init__(self, resolvers: dict[str, ResolverFunc] | None = None) -> None:
        self._resolvers: dict[str, ResolverFunc] = dict(resolvers or {})

    def register(self, protocol: str, resolver: ResolverFunc) -> None:
        self._resolvers[protocol] = resolver

    def get(self, protocol: str) -> ResolverFunc | None:
        return self._resolvers.get(protocol)

    def __contains__(self, protocol: object) -> bool:
        return protocol in self._resolvers

    @property
    def protocols(self) -> list[str]:
        return list(self._resolvers)


# =========================================================================
# path
# =========================================================================


class PathResolver:
    """本地目录来源：rsync 镜像到工作空间，可重复执行

    始终返回 SUCCESS（而非 ALREADY_RESOLVED），以便重新读取其清单；
    结果中带上本次同步有变化的文件，导入改写只作用于这些文件。
    """

    def __init__(self, materializer: WorkspaceMaterializer) -> None:
        self.materializer = materializer

    def __call__(self, src: str, import_path: str, workspace: Path) -> ResolveResult:
        dest = Path(workspace) / "src" / import_path
        try:
            changes = self.materializer.sync(src, dest, delete=True)
        except (ExecutionError, OSError) as e:
            return ResolveResult.failed(f"resolver: 复制包失败 ({src}):\n\n\t{e}")
        logger.debug("path 已同步: %s -> %s (%d 个变化)", src, dest, len(changes))
        return ResolveResult.success(changed=tuple(p.as_posix() for p in changes))


# =========================================================================
# git
# =========================================================================


class GitResolver:
    """git 来源：目标不存在时 clone

    同一目标目录的并发解析被串行化：后到者等待先到者完成，
    随后看到目录已存在而返回 ALREADY_RESOLVED；不同目标互不阻塞。

    已存在的检出不会被更新到指定版本（清单中没有版本字段）。
    """

    def __init__(self, executor: CommandExecutor | None = None, git_bin: str = "git") -> None:
        self._executor = executor
        self.git_bin = git_bin
        self._cond = threading.Condition()
        self._inflight: set[Path] = set()

    def __call__(self, src: str, import_path: str, workspace: Path) -> ResolveResult:
        dest = Path(workspace) / "src" / import_path

        with self._cond:
            while dest in self._inflight:
                self._cond.wait()
            self._inflight.add(dest)
        try:
            return self._clone(src, import_path, dest)
        finally:
            with self._cond:
                self._inflight.discard(dest)
                self._cond.notify_all()

    def _clone(self, src: str, import_path: str, dest: Path) -> ResolveResult:
        if dest.exists():
            if not (dest / ".git").exists():
                return ResolveResult.failed(
                    f'解析 {import_path} 时发现目录 "{dest}" 已存在但不是 Git 仓库'
                )
            return ResolveResult.already_resolved()

        logger.info("git clone %s -> %s", src, dest)
        r = (self._executor or get_executor()).execute([self.git_bin, "clone", src, str(dest)])
        if not r.success:
            return ResolveResult.failed(
                f"resolver: git clone 失败 ({src}):\n\n\t{tab_output(r.output)}\n"
            )
        return ResolveResult.success()


# =========================================================================
# go-get (远程导入路径)
# =========================================================================


class RemoteImportResolver:
    """裸导入路径来源：先用 go-get=1 协议发现仓库，再交给 git 解析器"""

    def __init__(
        self,
        git: GitResolver,
        http_get: HttpGet | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.git = git
        self.http_get = http_get
        self.timeout = timeout

    def __call__(self, src: str, import_path: str, workspace: Path) -> ResolveResult:
        if (Path(workspace) / "src" / import_path).exists():
            return ResolveResult.already_resolved()

        try:
            meta = fetch_import_meta(src, http_get=self.http_get, timeout=self.timeout)
            if meta.prefix != src:
                if not src.startswith(meta.prefix + "/"):
                    return ResolveResult.failed(
                        f'resolver: "{src}" 的 go-import 前缀 "{meta.prefix}" 不是它的上级路径'
                    )
                parent = fetch_import_meta(meta.prefix, http_get=self.http_get, timeout=self.timeout)
                if parent != meta:
                    return ResolveResult.failed(
                        f'resolver: "{src}" 的 go-import 元数据与其前缀 "{meta.prefix}" 不一致'
                    )
        except BottleError as e:
            return ResolveResult.failed(str(e))

        if meta.vcs != "git":
            return ResolveResult.failed(
                f'resolver: 解析远程导入 "{src}" 时遇到未知 VCS "{meta.vcs}"'
            )
        return self.git(meta.repo, meta.prefix, workspace)


def build_default_registry(
    materializer: WorkspaceMaterializer | None = None,
    executor: CommandExecutor | None = None,
    *,
    git_bin: str = "git",
    http_get: HttpGet | None = None,
    http_timeout: float = 30.0,
) -> ResolverRegistry:
    """构造内置解析器注册表（path / git / go-get）"""
    if materializer is None:
        from gobottle.services.workspace import WorkspaceMaterializer
        materializer = WorkspaceMaterializer(executor)
    git = GitResolver(executor, git_bin=git_bin)
    return ResolverRegistry({
        PROTOCOL_PATH: PathResolver(materializer),
        PROTOCOL_GIT: git,
        PROTOCOL_GO_GET: RemoteImportResolver(git, http_get=http_get, timeout=http_timeout),
    })
