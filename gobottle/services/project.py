"""项目级流程 - sync / build / exec / which

职责:
- 发现根包、锁定工作空间、解析并安装依赖、把根包同步进工作空间
- 在工作空间中执行 go install 并导出产物
- 在工作空间中运行任意工具，并把改动同步回源码目录
"""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
from pathlib import Path

from gobottle.core.config import Config, get_config
from gobottle.core.dep.tracker import DependencyTracker
from gobottle.core.discovery import discover_package
from gobottle.core.exceptions import DependencyError, ExecutionError, ValidationError
from gobottle.core.models import PackageConfig
from gobottle.services.workspace import WorkspaceLock, WorkspaceMaterializer
from gobottle.utils.shell import (
    CommandExecutor,
    get_executor,
    gopath_env,
    run_attached,
    tab_output,
)

logger = logging.getLogger(__name__)


def package_dir(cfg: PackageConfig) -> Path:
    """根包在工作空间中的位置"""
    return cfg.workspace / "src" / cfg.name


def forward_renames(tracker: DependencyTracker, cfg: PackageConfig) -> dict[str, str]:
    return tracker.renames.get(cfg.name, {})


def sync_project(
    start_dir: str | Path,
    *,
    config: Config | None = None,
    executor: CommandExecutor | None = None,
) -> tuple[PackageConfig, DependencyTracker]:
    """准备工作空间: 解析依赖、安装、同步根包，返回 (根配置, 追踪器)"""
    cfg_tool = config or get_config()
    cfg = discover_package(start_dir, search_parents=True, config=cfg_tool)
    logger.info("项目: [%s] %s -> %s", cfg.name, cfg.project, cfg.workspace)

    materializer = WorkspaceMaterializer(executor, rsync_bin=cfg_tool.rsync_bin)
    with WorkspaceLock(cfg.workspace, timeout=cfg_tool.lock_timeout):
        tracker = DependencyTracker(
            cfg, config=cfg_tool, executor=executor, materializer=materializer,
        )
        tracker.resolve_all()
        tracker.install_all()

        # 根包本身也按 path 依赖的方式镜像进工作空间
        dest = package_dir(cfg)
        changes = materializer.sync(cfg.root, dest, delete=True)
        materializer.rename_imports([dest / p for p in changes], forward_renames(tracker, cfg))

    return cfg, tracker


def _bin_source(bin_dir: Path, name: str, path: str) -> Path:
    """[[bin]] 条目对应的已编译文件：path 有目录时以目录名命名"""
    bindir = posixpath.dirname(path)
    if bindir and bindir != ".":
        return bin_dir / posixpath.basename(bindir)
    return bin_dir / name


def build_project(
    cfg: PackageConfig,
    pwd: str | Path,
    *,
    outfile: str = "",
    outdir: str = "",
    ldflags: str = "",
    config: Config | None = None,
    executor: CommandExecutor | None = None,
) -> list[Path]:
    """在工作空间中 go install 根包，并按 -o / --out-dir 导出产物"""
    cfg_tool = config or get_config()
    target = package_dir(cfg)

    args = [cfg_tool.go_bin, "install"]
    if ldflags:
        args += ["-ldflags", ldflags]
    args.append("." if (target / "vendor").exists() else "./...")

    r = (executor or get_executor()).execute(args, cwd=str(target), env=gopath_env(cfg.workspace))
    if not r.success:
        output = r.output.replace(str(target), ".")
        raise ExecutionError(f"构建失败:\n\n\t{tab_output(output)}\n")

    bin_dir = cfg.workspace / "bin"
    copied: list[Path] = []
    if outfile:
        dest = Path(outfile) if os.path.isabs(outfile) else Path(pwd) / outfile
        dest.parent.mkdir(parents=True, exist_ok=True)
        if cfg.bin:
            src = _bin_source(bin_dir, cfg.bin[0].name, cfg.bin[0].path)
        elif (bin_dir / cfg.name).is_file():
            src = bin_dir / cfg.name
        else:
            raise DependencyError("没有可写出到文件的构建产物")
        shutil.copy2(src, dest)
        copied.append(dest)
    elif outdir:
        out = Path(outdir) if os.path.isabs(outdir) else Path(pwd) / outdir
        out.mkdir(parents=True, exist_ok=True)
        for entry in cfg.bin:
            dest = out / entry.name
            shutil.copy2(_bin_source(bin_dir, entry.name, entry.path), dest)
            copied.append(dest)

    for path in copied:
        logger.info("已导出: %s", path)
    return copied


def exec_tool(
    cfg: PackageConfig,
    tracker: DependencyTracker,
    tool: str,
    args: list[str],
    *,
    materializer: WorkspaceMaterializer | None = None,
) -> int:
    """在工作空间中运行工具；成功后把改动同步回源码目录

    回写时先对变化的文件做反向导入改写，同步后再恢复工作空间中的正向改写，
    使源码目录中的导入路径始终保持声明时的写法。
    """
    workdir = package_dir(cfg)
    rc = run_attached([tool, *args], cwd=str(workdir), env=gopath_env(cfg.workspace))
    if rc != 0 or cfg.missing:
        return rc

    materializer = materializer or tracker.materializer
    renames = forward_renames(tracker, cfg)
    backnames = {new: old for old, new in renames.items()}

    changes = materializer.sync(workdir, cfg.root, delete=False, dry_run=True)
    files = [workdir / p for p in changes]
    materializer.rename_imports(files, backnames)
    try:
        materializer.sync(workdir, cfg.root, delete=False)
    finally:
        materializer.rename_imports(files, renames)
    return rc


def which(path: str | Path, *, root: bool = False, config: Config | None = None) -> str:
    """返回包含 path 的包: "[name] <项目目录>"（root=True 时给出包源码根目录）"""
    target = Path(path)
    if not target.exists():
        raise ValidationError(f"文件不存在: '{target}'")
    if target.is_file():
        target = target.parent
    elif not target.is_dir():
        raise ValidationError(f"'{target}' 既不是普通文件也不是目录")

    cfg = discover_package(target, search_parents=True, config=config)
    location = cfg.root if root else cfg.project
    return f"[{cfg.name}] {location}"
