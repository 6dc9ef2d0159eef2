"""核心数据模型

PackageConfig 描述一个已发现的包（每个包一份，创建后不可变），
Dependency 是 (传输协议, 来源定位) 二元组，作为依赖图的节点和字典键。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path

# 传输协议标签
PROTOCOL_PATH = "path"
PROTOCOL_GIT = "git"
PROTOCOL_GO_GET = "go-get"

# 可直接推断为 git 仓库的托管前缀
GIT_HOSTING_PREFIXES = ("github.com", "bitbucket.org")


# =========================================================================
# 清单模型 (Bottle.toml)
# =========================================================================


@dataclass(frozen=True)
class PackageMeta:
    """[package] 段"""

    name: str
    version: str = ""
    authors: tuple[str, ...] = ()
    repository: str = ""
    license: str = ""
    publish: bool = False
    exclude: tuple[str, ...] = ()
    root: str = ""  # 包源码根目录的绝对路径（发现阶段补全）


@dataclass(frozen=True)
class DependencySpec:
    """[dependencies.<import path>] 段"""

    install: bool = False  # 解析后是否需要编译安装到 <workspace>/bin
    path: str = ""         # 本地路径（相对于声明它的项目目录）
    git: str = ""          # git 仓库地址


@dataclass(frozen=True)
class BinTarget:
    """[[bin]] 条目"""

    name: str
    path: str = ""


@dataclass(frozen=True)
class PackageConfig:
    """单个包的配置

    missing=True 表示该目录没有 Bottle.toml，配置由发现阶段按其在
    GOPATH/src 下的相对位置合成，import_path 即该相对路径。
    """

    package: PackageMeta
    project: Path                 # Bottle.toml 所在目录 / 项目根
    workspace: Path               # 该项目的 GOPATH
    dependencies: dict[str, DependencySpec] = field(default_factory=dict)
    bin: tuple[BinTarget, ...] = ()
    missing: bool = False
    import_path: str = ""

    @property
    def name(self) -> str:
        return self.package.name

    @property
    def root(self) -> Path:
        return Path(self.package.root) if self.package.root else self.project


# =========================================================================
# 依赖图模型
# =========================================================================


@dataclass(frozen=True)
class Dependency:
    """依赖图节点：结构相等，可作字典键

    protocol:   "path" / "git" / "go-get"
    repository: 绝对路径 / clone 地址 / 裸导入路径
    """

    protocol: str
    repository: str


class ResolveStatus(enum.Enum):
    SUCCESS = "success"
    ALREADY_RESOLVED = "already_resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class ResolveResult:
    """解析器的三态返回值"""

    status: ResolveStatus
    detail: str = ""
    # 本次落盘有变化的文件（相对包目录）；None 表示全部文件都是新的
    changed: tuple[str, ...] | None = None

    @classmethod
    def success(cls, changed: tuple[str, ...] | None = None) -> ResolveResult:
        return cls(ResolveStatus.SUCCESS, changed=changed)

    @classmethod
    def already_resolved(cls) -> ResolveResult:
        return cls(ResolveStatus.ALREADY_RESOLVED)

    @classmethod
    def failed(cls, detail: str) -> ResolveResult:
        return cls(ResolveStatus.FAILED, detail)

    @property
    def ok(self) -> bool:
        return self.status is not ResolveStatus.FAILED
