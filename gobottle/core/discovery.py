"""包发现

从给定目录出发定位最近的 Bottle.toml 并构造 PackageConfig；
没有清单但位于 GOPATH/src 之下的目录，按其相对位置合成一个
missing=True 的配置（非托管包）。

根项目与依赖图中每个被拉取的包都走同一个 discover_package。
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from gobottle.core.config import Config, get_config
from gobottle.core.exceptions import ConfigError
from gobottle.core.manifest import load_manifest
from gobottle.core.models import PackageConfig, PackageMeta

logger = logging.getLogger(__name__)

# 向上查找的层数上限，超过即视为死循环
MAX_PARENT_WALK = 100


def _is_subdir(path: Path, parent: Path) -> bool:
    try:
        path.resolve().relative_to(parent.resolve())
    except ValueError:
        return False
    return True


def find_nearest_config(
    start: Path, manifest_name: str, gopath: str = "",
) -> tuple[Path | None, Path | None]:
    """从 start 开始逐级向上查找清单文件

    返回 (包根目录, 清单路径)：
      - 找到清单: (清单所在目录, 清单路径)
      - 未找到但 start 位于 GOPATH/src 下: (start, None)
      - 都不满足: (None, None)
    """
    current = Path(os.path.abspath(start))
    for _ in range(MAX_PARENT_WALK):
        candidate = current / manifest_name
        if candidate.is_file():
            return current, candidate
        if current.parent == current:
            break
        current = current.parent
    else:
        raise ConfigError(f"查找 {manifest_name} 超过 {MAX_PARENT_WALK} 层，疑似死循环: {start}")

    if gopath and _is_subdir(Path(start), Path(gopath) / "src"):
        return Path(start), None
    return None, None


def discover_package(
    start: str | Path,
    *,
    search_parents: bool = False,
    gopath: str | None = None,
    config: Config | None = None,
) -> PackageConfig:
    """定位并加载 start 所属包的配置

    Args:
        start: 起始目录
        search_parents: 为 True 时向上查找最近的清单；否则只看 start 本身
        gopath: 合成非托管包配置时使用的 GOPATH（默认读取环境变量）
        config: 工具配置（默认全局配置）
    """
    cfg_tool = config or get_config()
    if gopath is None:
        gopath = os.environ.get("GOPATH", "")
    start = Path(start)

    if search_parents:
        pkgroot, cfgpath = find_nearest_config(start, cfg_tool.manifest_name, gopath)
    else:
        pkgroot = start
        candidate = start / cfg_tool.manifest_name
        cfgpath = candidate if candidate.is_file() else None

    if pkgroot is None:
        raise ConfigError(
            f"无法确定包根目录: '{os.path.abspath(start)}' "
            f"及其上级目录中没有 {cfg_tool.manifest_name}，且不在 GOPATH 之下"
        )
    if not pkgroot.is_dir():
        raise ConfigError(f"目录不存在: {pkgroot}")

    project = Path(os.path.abspath(pkgroot))

    if cfgpath is not None:
        meta, deps, bins = load_manifest(cfgpath)
        missing, import_path = False, ""
    else:
        src_root = Path(gopath) / "src" if gopath else None
        if src_root is None or not _is_subdir(project, src_root):
            raise ConfigError(
                f"'{project}' 没有 {cfg_tool.manifest_name}，且不在 GOPATH/src 之下"
            )
        import_path = project.resolve().relative_to(src_root.resolve()).as_posix()
        if import_path == ".":
            raise ConfigError(f"'{project}' 是 GOPATH/src 本身，不是一个包")
        meta = PackageMeta(name=import_path.rsplit("/", 1)[-1])
        deps, bins, missing = {}, (), True
        logger.debug("未找到清单，按非托管包处理: %s", import_path)

    root = str(project / meta.root) if meta.root else str(project)
    meta = replace(meta, root=os.path.abspath(root))

    return PackageConfig(
        package=meta,
        project=project,
        workspace=cfg_tool.workspace_for(meta.name),
        dependencies=deps,
        bin=bins,
        missing=missing,
        import_path=import_path,
    )
