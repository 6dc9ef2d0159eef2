"""统一异常体系

所有业务异常继承 BottleError，替代散落的 ValueError / RuntimeError。
CLI 层可据此输出友好提示。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gobottle.core.models import Dependency


class BottleError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(BottleError):
    """清单文件缺失、内容无效，或无法确定包根目录"""

    code = "CONFIG_ERROR"


class DependencyError(BottleError):
    """依赖解析、回退拉取或安装失败"""

    code = "DEPENDENCY_ERROR"


class ConflictError(DependencyError):
    """两个不同的依赖声明占用了同一个导入路径"""

    code = "IMPORT_CONFLICT"

    def __init__(self, import_path: str, message: str = "") -> None:
        super().__init__(message or f"导入路径冲突: '{import_path}' 已被另一个依赖占用")
        self.import_path = import_path


class ResolverError(DependencyError):
    """解析器返回失败（clone / 元数据发现 / 同步出错）"""

    code = "RESOLVER_ERROR"

    def __init__(self, dependency: Dependency, detail: str) -> None:
        super().__init__(
            f"解析依赖失败 [{dependency.protocol}] {dependency.repository}:\n\n\t{detail}"
        )
        self.dependency = dependency
        self.detail = detail


class ExecutionError(BottleError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"


class ValidationError(BottleError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class LockTimeoutError(BottleError):
    """等待工作空间锁超时"""

    code = "LOCK_TIMEOUT"
