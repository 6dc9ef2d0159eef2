"""依赖解析模块

拆分说明:
- remote.py: go-get=1 元数据发现
- resolvers.py: 解析器注册表 + path / git / go-get 解析器
- tracker.py: 依赖图追踪器（并发解析到不动点 + 安装）
"""

from gobottle.core.dep.resolvers import (
    GitResolver,
    PathResolver,
    RemoteImportResolver,
    ResolverRegistry,
    build_default_registry,
)
from gobottle.core.dep.tracker import DependencyTracker

__all__ = [
    "DependencyTracker",
    "ResolverRegistry",
    "PathResolver",
    "GitResolver",
    "RemoteImportResolver",
    "build_default_registry",
]
