"""Bottle.toml 清单解析

把 TOML 文档转换为 PackageConfig 所需的字段；路径补全由发现阶段完成。
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from gobottle.core.exceptions import ConfigError
from gobottle.core.models import BinTarget, DependencySpec, PackageMeta

logger = logging.getLogger(__name__)


def _str_list(value: Any, key: str, path: Path) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{path}: '{key}' 必须是字符串列表")
    return tuple(value)


def _expect(value: Any, kind: type, key: str, path: Path) -> Any:
    if not isinstance(value, kind):
        raise ConfigError(f"{path}: '{key}' 类型错误，期望 {kind.__name__}")
    return value


def load_manifest(
    path: Path,
) -> tuple[PackageMeta, dict[str, DependencySpec], tuple[BinTarget, ...]]:
    """读取并校验清单文件，返回 (package, dependencies, bin)"""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"清单格式错误 {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"无法读取清单 {path}: {e}") from e

    pkg = _expect(data.get("package", {}), dict, "package", path)
    name = pkg.get("name", "")
    if not name or not isinstance(name, str):
        raise ConfigError(f"{path}: 缺少必填字段 package.name")

    meta = PackageMeta(
        name=name,
        version=str(pkg.get("version", "")),
        authors=_str_list(pkg.get("authors"), "package.authors", path),
        repository=_expect(pkg.get("repository", ""), str, "package.repository", path),
        license=_expect(pkg.get("license", ""), str, "package.license", path),
        publish=_expect(pkg.get("publish", False), bool, "package.publish", path),
        exclude=_str_list(pkg.get("exclude"), "package.exclude", path),
        root=_expect(pkg.get("root", ""), str, "package.root", path),
    )

    deps: dict[str, DependencySpec] = {}
    for import_path, info in _expect(data.get("dependencies", {}), dict, "dependencies", path).items():
        key = f"dependencies.{import_path}"
        info = _expect(info, dict, key, path)
        deps[import_path] = DependencySpec(
            install=_expect(info.get("install", False), bool, f"{key}.install", path),
            path=_expect(info.get("path", ""), str, f"{key}.path", path),
            git=_expect(info.get("git", ""), str, f"{key}.git", path),
        )

    bins: list[BinTarget] = []
    for entry in _expect(data.get("bin", []), list, "bin", path):
        entry = _expect(entry, dict, "bin", path)
        bin_name = entry.get("name", "")
        if not bin_name or not isinstance(bin_name, str):
            raise ConfigError(f"{path}: [[bin]] 条目缺少 name")
        bins.append(BinTarget(
            name=bin_name,
            path=_expect(entry.get("path", ""), str, "bin.path", path),
        ))

    logger.debug("已解析清单 %s: %s (%d 个依赖)", path, name, len(deps))
    return meta, deps, tuple(bins)
