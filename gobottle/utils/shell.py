"""Shell 命令执行工具 - 统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，方便测试替换。
git / rsync / go 的所有调用都经过这里，约定: 退出码 0 为成功，
否则以合并后的 stdout/stderr 作为错误详情。
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Protocol

from gobottle.core.exceptions import ExecutionError

logger = logging.getLogger(__name__)


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """合并后的输出，用于错误提示"""
        return self.stdout + self.stderr


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议 - 抽象子进程调用

    测试时可注入 mock 实现，无需 patch subprocess。
    """

    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """执行命令并返回结果"""
        ...


# =========================================================================
# 默认实现: 本地执行器
# =========================================================================

class LocalExecutor:
    """本地命令执行器（默认实现）"""

    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        logger.debug("执行: %s (cwd=%s)", " ".join(cmd), cwd)
        try:
            r = subprocess.run(
                cmd, capture_output=True, text=True,
                cwd=cwd, env=env, check=False, timeout=timeout,
            )
        except FileNotFoundError as e:
            # 程序不存在时按失败结果返回，保持调用方只看退出码的约定
            return CommandResult(returncode=127, stdout="", stderr=str(e))
        return CommandResult(
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )


# =========================================================================
# 全局默认执行器（可替换）
# =========================================================================

_default_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    """获取全局默认命令执行器"""
    return _default_executor


def set_executor(executor: CommandExecutor) -> None:
    """替换全局默认命令执行器（用于测试）"""
    global _default_executor  # noqa: PLW0603
    _default_executor = executor


# =========================================================================
# 便捷函数
# =========================================================================

def tab_output(output: str) -> str:
    """将多行输出缩进一级，嵌入错误信息时更易读"""
    return "\n\t".join(output.rstrip("\n").split("\n"))


def gopath_env(workspace: str | os.PathLike[str]) -> dict[str, str]:
    """继承当前环境并把 GOPATH 指向工作空间"""
    return {**os.environ, "GOPATH": str(workspace)}


def run_attached(
    cmd: list[str], *, cwd: str = ".",
    env: dict[str, str] | None = None,
) -> int:
    """执行命令并直接继承当前进程的 stdin/stdout/stderr，返回退出码"""
    logger.info("  exec: %s (cwd=%s)", " ".join(cmd), cwd)
    try:
        return subprocess.run(cmd, cwd=cwd, env=env, check=False).returncode
    except FileNotFoundError as e:
        raise ExecutionError(f"找不到可执行程序: {cmd[0]} ({e})") from e
