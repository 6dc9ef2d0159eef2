"""测试共享 fixture - 清单生成 + 可编程的假命令执行器

FakeExecutor 记录每次调用，并按程序名分派给测试提供的处理函数，
从而无需真实的 git / rsync / go 即可驱动解析流程。
"""

from __future__ import annotations

import json
import os
import shutil
import threading
from pathlib import Path
from typing import Callable

import pytest

from gobottle.core.config import Config
from gobottle.utils.shell import CommandResult

Handler = Callable[[list[str], str, "dict[str, str] | None"], "CommandResult | None"]


class FakeExecutor:
    """记录调用的命令执行器，默认全部成功"""

    def __init__(self, handlers: dict[str, Handler] | None = None) -> None:
        self.calls: list[list[str]] = []
        self.cwds: list[str] = []
        self.envs: list[dict[str, str] | None] = []
        self.handlers = handlers or {}
        self._lock = threading.Lock()

    def execute(self, cmd, *, cwd=".", env=None, timeout=None):  # noqa: ANN001
        with self._lock:
            self.calls.append(list(cmd))
            self.cwds.append(cwd)
            self.envs.append(env)
        handler = self.handlers.get(cmd[0])
        if handler is not None:
            result = handler(list(cmd), cwd, env)
            if result is not None:
                return result
        return CommandResult(returncode=0, stdout="", stderr="")

    def commands(self, program: str) -> list[list[str]]:
        return [c for c in self.calls if c[0] == program]


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return json.dumps(value)


def write_manifest(
    directory: Path,
    name: str,
    deps: dict[str, dict] | None = None,
    bins: list[dict] | None = None,
    **package: object,
) -> Path:
    """在 directory 下生成 Bottle.toml"""
    directory.mkdir(parents=True, exist_ok=True)
    lines = ["[package]", f"name = {_toml_value(name)}"]
    lines += [f"{k} = {_toml_value(v)}" for k, v in package.items()]
    lines.append("")
    for dep, info in (deps or {}).items():
        lines.append(f"[dependencies.{_toml_value(dep)}]")
        lines += [f"{k} = {_toml_value(v)}" for k, v in info.items()]
        lines.append("")
    for entry in bins or []:
        lines.append("[[bin]]")
        lines += [f"{k} = {_toml_value(v)}" for k, v in entry.items()]
        lines.append("")
    path = directory / "Bottle.toml"
    path.write_text("\n".join(lines), encoding="utf-8")
    return path


def fake_rsync(cmd: list[str], cwd: str, env: dict[str, str] | None) -> CommandResult:
    """用 copytree 模拟 rsync 镜像（排除隐藏文件和备份），按 --out-format=/%f 输出文件列表"""
    src, dest = cmd[-2].rstrip("/"), cmd[-1]
    ignore = shutil.ignore_patterns(".*", "*.orig")
    lines = []
    for dirpath, dirnames, filenames in os.walk(src):
        dirnames[:] = sorted(set(dirnames) - ignore(dirpath, dirnames))
        rel = os.path.relpath(dirpath, src)
        for f in sorted(set(filenames) - ignore(dirpath, filenames)):
            lines.append("/" + (f if rel == "." else f"{rel}/{f}"))
    if "--dry-run" not in cmd:
        shutil.copytree(src, dest, dirs_exist_ok=True, ignore=ignore)
    return CommandResult(returncode=0, stdout="".join(line + "\n" for line in lines), stderr="")


def update_rsync(cmd: list[str], cwd: str, env: dict[str, str] | None) -> CommandResult:
    """模拟 rsync -rum（不带 -t）：只复制目标缺失或比目标新的文件，复制出的文件取当前时间"""
    src, dest = Path(cmd[-2].rstrip("/")), Path(cmd[-1])
    ignore = shutil.ignore_patterns(".*", "*.orig")
    lines = []
    for dirpath, dirnames, filenames in os.walk(src):
        dirnames[:] = sorted(set(dirnames) - ignore(dirpath, dirnames))
        for f in sorted(set(filenames) - ignore(dirpath, filenames)):
            rel = (Path(dirpath) / f).relative_to(src)
            target = dest / rel
            if target.exists() and (src / rel).stat().st_mtime_ns <= target.stat().st_mtime_ns:
                continue
            lines.append("/" + rel.as_posix())
            if "--dry-run" not in cmd:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(src / rel, target)
    return CommandResult(returncode=0, stdout="".join(line + "\n" for line in lines), stderr="")


@pytest.fixture()
def tool_config(tmp_path: Path) -> Config:
    """工作空间落在 tmp_path/ws 下的工具配置"""
    return Config(workspace_dir=str(tmp_path / "ws"), lock_timeout=0.5)


@pytest.fixture()
def fake_executor_cls() -> type[FakeExecutor]:
    return FakeExecutor


@pytest.fixture()
def manifest() -> Callable[..., Path]:
    return write_manifest


@pytest.fixture()
def rsync_handler() -> Handler:
    return fake_rsync


@pytest.fixture()
def update_rsync_handler() -> Handler:
    return update_rsync
