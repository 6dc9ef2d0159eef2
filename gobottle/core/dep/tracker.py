"""依赖追踪器 - 依赖图的核心状态机

由根配置构造，resolve_all() 把依赖图推进到不动点，install_all() 编译需要安装的包。
单次构建一个实例，用完即弃。

并发模型:
  - 每个待解析依赖一个线程池任务，结果通过 Future 回传；
  - 追踪器自身的状态只在调用 resolve_all() 的线程中修改，工作线程从不触碰；
  - 结果按派发顺序而非完成顺序摄入，保证传递依赖的发现顺序可复现。
"""

from __future__ import annotations

import logging
import os
import posixpath
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path

from gobottle.core.config import Config, get_config
from gobottle.core.dep.resolvers import ResolverRegistry, build_default_registry
from gobottle.core.discovery import discover_package
from gobottle.core.exceptions import ConflictError, DependencyError, ResolverError
from gobottle.core.models import (
    GIT_HOSTING_PREFIXES,
    PROTOCOL_GIT,
    PROTOCOL_GO_GET,
    PROTOCOL_PATH,
    Dependency,
    DependencySpec,
    PackageConfig,
    ResolveResult,
    ResolveStatus,
)
from gobottle.services.workspace import WorkspaceMaterializer, go_sources
from gobottle.utils.shell import CommandExecutor, get_executor, gopath_env, tab_output

logger = logging.getLogger(__name__)


def parse_import_prefix(import_path: str) -> str:
    """截取导入路径的前三段作为仓库前缀 (github.com/a/b/cmd/x -> github.com/a/b)"""
    parts = import_path.split("/")
    if len(parts) >= 3:
        return "/".join(parts[:3])
    # 段数不足时原样返回，由后续 clone 报错
    return import_path


def normalize_dependency(
    import_path: str, spec: DependencySpec, project: Path,
) -> tuple[Dependency, str]:
    """把一条依赖声明规范化为 (Dependency, 导入路径)

    优先级: path > git > 已知托管前缀 > go-get
    """
    if spec.path:
        repo = os.path.abspath(os.path.join(project, spec.path))
        return Dependency(PROTOCOL_PATH, repo), import_path
    if spec.git:
        return Dependency(PROTOCOL_GIT, spec.git), import_path
    if import_path.startswith(GIT_HOSTING_PREFIXES):
        prefix = parse_import_prefix(import_path)
        return Dependency(PROTOCOL_GIT, f"https://{prefix}.git"), prefix
    return Dependency(PROTOCOL_GO_GET, import_path), import_path


class DependencyTracker:
    """依赖图追踪器"""

    def __init__(
        self,
        root: PackageConfig,
        *,
        resolvers: ResolverRegistry | None = None,
        config: Config | None = None,
        executor: CommandExecutor | None = None,
        materializer: WorkspaceMaterializer | None = None,
    ) -> None:
        self.root = root
        self.config = config or get_config()
        self._executor = executor
        self.materializer = materializer or WorkspaceMaterializer(
            executor, rsync_bin=self.config.rsync_bin,
        )
        self.resolvers = resolvers if resolvers is not None else build_default_registry(
            self.materializer,
            executor,
            git_bin=self.config.git_bin,
            http_timeout=self.config.http_timeout,
        )

        self.used_imports: set[str] = set()
        self.updated_imports: set[str] = set()  # 不含 ALREADY_RESOLVED 的依赖
        self.canonical_paths: dict[Dependency, str] = {}

        # dict 保持插入顺序，安装顺序即摄入顺序
        self.install_packages: dict[str, None] = {}
        self.package_prefixes: dict[str, str] = {}  # github.com/a/b/cmd/x -> github.com/a/b

        self.resolved: set[Dependency] = set()
        self.unresolved: list[Dependency] = []

        self.needs_fallback: list[str] = []
        self.renames: dict[str, dict[str, str]] = {}  # 包导入路径 -> {声明路径: 规范路径}
        self.loaded: list[str] = []  # 按摄入顺序记录的导入路径

        dep = Dependency(PROTOCOL_PATH, str(root.root))
        self.canonical_paths[dep] = root.name
        self.used_imports.add(root.name)
        self.add_package(root, root.name)

    @property
    def workspace(self) -> Path:
        return self.root.workspace

    @property
    def executor(self) -> CommandExecutor:
        return self._executor or get_executor()

    # ------------------------------------------------------------------
    # 解析
    # ------------------------------------------------------------------

    def _dispatch(self, pool: ThreadPoolExecutor, pending: list[tuple[Dependency, Future]]) -> None:
        """为队列中每个尚未派发的依赖提交一个解析任务，并清空队列"""
        for dep in self.unresolved:
            if dep in self.resolved:
                continue
            self.resolved.add(dep)

            if dep.protocol not in self.resolvers:
                raise DependencyError(
                    f'没有可处理协议 "{dep.protocol}" 的解析器 '
                    f"(已注册: {', '.join(self.resolvers.protocols) or '无'})"
                )
            resolver = self.resolvers.get(dep.protocol)

            import_path = self.canonical_paths[dep]
            logger.debug(
                "派发 [%s] %s -> %s", dep.protocol, dep.repository, import_path,
                extra={"dependency": f"[{dep.protocol}] {dep.repository}", "import_path": import_path},
            )
            pending.append((dep, pool.submit(resolver, dep.repository, import_path, self.workspace)))
        self.unresolved = []

    def _ingest(self, dep: Dependency, result: ResolveResult) -> None:
        if result.status is ResolveStatus.ALREADY_RESOLVED:
            logger.debug(
                "已存在，跳过: %s", self.canonical_paths[dep],
                extra={"import_path": self.canonical_paths[dep]},
            )
            return
        if not result.ok:
            raise ResolverError(dep, result.detail)
        self.load_package(dep, result.changed)

    def resolve_all(self) -> None:
        """把依赖图推进到不动点，然后对非托管包做一次批量 go get 回退

        出错时立即抛出，仍在运行的解析任务不再等待。
        """
        start = time.monotonic()
        pool = ThreadPoolExecutor(
            max_workers=max(1, self.config.max_workers),
            thread_name_prefix="gobottle-resolve",
        )
        pending: list[tuple[Dependency, Future]] = []
        try:
            while self.unresolved or pending:
                self._dispatch(pool, pending)
                if not pending:
                    continue

                # 至少等待队首的一个结果
                dep, future = pending.pop(0)
                self._ingest(dep, future.result())

                # 再按顺序摄入已经完成的结果，遇到未完成的即停，不跳序
                while pending and pending[0][1].done():
                    dep, future = pending.pop(0)
                    self._ingest(dep, future.result())
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        self._fetch_fallbacks()
        logger.debug("resolve_all 耗时 %.2f 秒", time.monotonic() - start)

    def _fetch_fallbacks(self) -> None:
        """用 go get -d 拉取非托管包的依赖，不再扩展依赖图"""
        for import_path in self.needs_fallback:
            logger.info("go get -d %s", import_path)
            r = self.executor.execute(
                [self.config.go_bin, "get", "-d", import_path],
                cwd=str(self.workspace),
                env=gopath_env(self.workspace),
            )
            if not r.success:
                raise DependencyError(
                    f'用 "go get" 拉取 "{import_path}" 的依赖失败:\n\n\t{tab_output(r.output)}\n'
                )

    # ------------------------------------------------------------------
    # 摄入
    # ------------------------------------------------------------------

    def load_package(self, dep: Dependency, changed: tuple[str, ...] | None = None) -> None:
        """读取刚解析完成的包的配置，并登记其依赖

        changed 为本次落盘有变化的文件（相对包目录），导入改写只作用于它们；
        未变化的文件已在之前的构建中改写过。None 表示整个包都是新拉取的。
        """
        import_path = self.canonical_paths[dep]
        self.updated_imports.add(import_path)

        dest = self.workspace / "src" / import_path
        cfg = discover_package(dest, gopath=str(self.workspace), config=self.config)

        # path 依赖的相对路径要相对于原始源码目录而非工作空间副本解析
        if dep.protocol == PROTOCOL_PATH:
            cfg = replace(cfg, project=Path(dep.repository))

        logger.info("已解析: %s", import_path, extra={"import_path": import_path})
        self.loaded.append(import_path)
        renames = self.add_package(cfg, import_path)
        if renames:
            files = go_sources(dest) if changed is None else [dest / p for p in changed]
            self.materializer.rename_imports(files, renames)

    def add_package(self, cfg: PackageConfig, import_path: str) -> dict[str, str]:
        """登记一个包声明的全部依赖，返回该包需要的导入路径重映射"""
        if cfg.missing and not (cfg.root / "vendor").exists():
            self.needs_fallback.append(cfg.import_path + "/...")

        renames: dict[str, str] = {}
        for declared, spec in cfg.dependencies.items():
            package_path = declared
            dep, dep_import = normalize_dependency(declared, spec, cfg.project)

            # 同一来源已登记过：沿用首次登记的规范路径
            canonical = self.canonical_paths.get(dep)
            if canonical is not None:
                if canonical != dep_import:
                    renames[dep_import] = canonical
                if spec.install:
                    target = canonical + package_path[len(dep_import):]
                    self.install_packages[target] = None
                    self.package_prefixes.setdefault(target, canonical)
                continue

            if dep_import in self.used_imports:
                raise ConflictError(
                    dep_import,
                    f"导入路径冲突: '{dep_import}' 已被另一个依赖占用 "
                    f"(在 {cfg.name} 中声明为 [{dep.protocol}] {dep.repository})，"
                    "请为其中一个依赖改用不同的导入路径",
                )

            self.unresolved.append(dep)
            self.canonical_paths[dep] = dep_import
            self.used_imports.add(dep_import)
            if spec.install:
                self.install_packages[package_path] = None
                self.package_prefixes[package_path] = dep_import

        if renames:
            self.renames[import_path] = renames
        return renames

    # ------------------------------------------------------------------
    # 安装
    # ------------------------------------------------------------------

    def install_all(self) -> list[Path]:
        """把本次有更新的待安装包编译到 <workspace>/bin/<base name>，返回生成的文件"""
        start = time.monotonic()
        bin_dir = self.workspace / "bin"
        bin_dir.mkdir(parents=True, exist_ok=True)

        built: list[Path] = []
        for package_path in self.install_packages:
            if self.package_prefixes.get(package_path) not in self.updated_imports:
                logger.debug("未变化，跳过安装: %s", package_path)
                continue
            exe_path = bin_dir / posixpath.basename(package_path)
            logger.info("go build -o %s %s", exe_path, package_path)
            r = self.executor.execute(
                [self.config.go_bin, "build", "-o", str(exe_path), package_path],
                cwd=str(self.workspace),
                env=gopath_env(self.workspace),
            )
            if not r.success:
                raise DependencyError(
                    f'编译依赖 "{package_path}" 失败:\n\n\t{tab_output(r.output)}\n'
                )
            built.append(exe_path)

        logger.debug("install_all 耗时 %.2f 秒", time.monotonic() - start)
        return built
