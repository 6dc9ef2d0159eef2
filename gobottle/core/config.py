"""集中配置管理

工具级设置（工作空间位置、并发度、锁超时、外部程序路径）集中在 Config，
支持从 YAML 文件加载 + 编程式覆盖。项目级依赖声明见 Bottle.toml，
由 gobottle.core.manifest 解析。
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from gobottle.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.config/gobottle/config.yml"
CONFIG_ENV_VAR = "GOBOTTLE_CONFIG"


@dataclass
class Config:
    """gobottle 全局配置"""

    # 清单与工作空间
    manifest_name: str = "Bottle.toml"
    workspace_dir: str = ""  # 为空时使用 <tmp>/bottle

    # 解析
    max_workers: int = 8
    lock_timeout: float = 3.0  # 秒
    http_timeout: float = 30.0  # 秒

    # 外部程序
    go_bin: str = "go"
    git_bin: str = "git"
    rsync_bin: str = "rsync"

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_PATH) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(Path(path).expanduser())
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def workspace_for(self, package_name: str) -> Path:
        """计算某个项目专属的 GOPATH 工作空间目录"""
        base = Path(self.workspace_dir).expanduser() if self.workspace_dir else (
            Path(tempfile.gettempdir()) / "bottle"
        )
        return base / package_name


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "") -> Config:
    """从文件初始化全局配置

    路径优先级: 参数 > GOBOTTLE_CONFIG 环境变量 > ~/.config/gobottle/config.yml
    """
    global _current  # noqa: PLW0603
    path = path or os.getenv(CONFIG_ENV_VAR, "") or DEFAULT_CONFIG_PATH
    _current = Config.from_file(path)
    logger.debug("配置已加载: %s", path)
    return _current
