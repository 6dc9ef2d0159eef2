"""工作空间物化 - 目录镜像 + 导入路径改写

职责:
- 把包源码镜像到 <workspace>/src/<import path>（rsync，增量 + 删除，排除隐藏文件）
- 导入路径被重映射时，原地改写 .go 文件头部的 import 声明
- 工作空间文件锁，防止多个进程同时改动同一个 GOPATH

文件改动不是跨文件事务：中途失败后工作空间应视为不可信，重新生成而不是继续使用。
"""

from __future__ import annotations

import fcntl
import logging
import os
import re
import shutil
import time
from pathlib import Path
from typing import IO

from gobottle.core.exceptions import ExecutionError, LockTimeoutError
from gobottle.utils.shell import CommandExecutor, get_executor, tab_output

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".orig"

# 顶层声明开始后不会再出现 import，扫描到此为止
_DECL_PREFIXES = ("func ", "type ", "const ", "var ")

# import 声明的引号形式（单行 / 分组 / 点导入 / 匿名导入）
_IMPORT_FORMS = ('import "', 'import . "', 'import _ "', '\t"', '\t. "', '\t_ "')


# =========================================================================
# 目录镜像
# =========================================================================


class WorkspaceMaterializer:
    """把包源码同步进工作空间，并按需改写导入路径"""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        rsync_bin: str = "rsync",
    ) -> None:
        self._executor = executor
        self.rsync_bin = rsync_bin

    @property
    def executor(self) -> CommandExecutor:
        return self._executor or get_executor()

    def sync(
        self,
        src: str | Path,
        dest: str | Path,
        *,
        delete: bool = True,
        dry_run: bool = False,
    ) -> list[Path]:
        """镜像 src 到 dest，返回发生变化的文件（相对路径）

        delete=True 时目标中多余的文件会被删除；dry_run=True 只列出变化不落盘。
        失败抛 ExecutionError，错误信息内嵌 rsync 输出。
        """
        src_abs = Path(os.path.abspath(src))
        dest_path = Path(dest)
        if not dry_run:
            dest_path.mkdir(parents=True, exist_ok=True)

        args = [
            self.rsync_bin, "-rum",
            "--exclude", ".*",
            "--exclude", f"*{BACKUP_SUFFIX}",
            "--out-format=/%f",
        ]
        if delete:
            args.append("--delete")
        if dry_run:
            args.append("--dry-run")
        args += [f"{src_abs}/", str(dest_path)]

        r = self.executor.execute(args)
        if not r.success:
            raise ExecutionError(
                f"rsync 同步失败 {src_abs} -> {dest_path}:\n\n\t{tab_output(r.output)}\n"
            )

        changed: list[Path] = []
        for line in r.stdout.splitlines():
            line = line.strip()
            if not line or line.startswith("deleting "):
                continue
            try:
                rel = Path(line).relative_to(src_abs)
            except ValueError:
                rel = Path(line.lstrip("/"))
            if str(rel) in ("", "."):
                continue
            changed.append(rel)
        logger.debug("同步 %s -> %s: %d 个变化", src_abs, dest_path, len(changed))
        return changed

    def rename_imports(self, files: list[Path], imports: dict[str, str]) -> int:
        """对 .go 文件应用导入路径重映射，返回改写的文件数"""
        if not imports:
            return 0
        replacer = ImportReplacer(imports)
        count = 0
        for path in files:
            if path.suffix != ".go" or not path.is_file():
                continue
            replace_in_file(path, replacer)
            count += 1
        logger.debug("导入路径改写: %d 个文件 (%s)", count, imports)
        return count


def go_sources(root: Path) -> list[Path]:
    """列出目录下所有 .go 文件（跳过隐藏目录）"""
    result: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        result.extend(Path(dirpath) / f for f in sorted(filenames) if f.endswith(".go"))
    return result


# =========================================================================
# 导入路径改写
# =========================================================================


class ImportReplacer:
    """固定替换表：同时替换所有规则，最长匹配优先"""

    def __init__(self, imports: dict[str, str]) -> None:
        self.table: dict[str, str] = {}
        for old, new in imports.items():
            for form in _IMPORT_FORMS:
                self.table[form + old] = form + new
        keys = sorted(self.table, key=len, reverse=True)
        self._pattern = re.compile("|".join(re.escape(k) for k in keys))

    def __call__(self, line: str) -> str:
        return self._pattern.sub(lambda m: self.table[m.group(0)], line)


def _rewrite_header(src: IO[str], dest: IO[str], replacer: ImportReplacer) -> None:
    for line in src:
        if line.startswith(_DECL_PREFIXES):
            dest.write(line)
            break
        dest.write(replacer(line))
    # 声明之后的内容原样写出
    shutil.copyfileobj(src, dest)


def replace_in_file(path: Path, replacer: ImportReplacer) -> None:
    """原地改写单个文件

    先把原文件改名为 <file>.orig，流式写出新文件并落盘后才删除备份；
    任何一步失败都从备份恢复原文件再抛出异常。
    """
    backup = path.with_name(path.name + BACKUP_SUFFIX)
    os.replace(path, backup)
    restore = True
    try:
        with open(backup, encoding="utf-8", errors="surrogateescape", newline="") as src, \
                open(path, "w", encoding="utf-8", errors="surrogateescape", newline="") as dest:
            _rewrite_header(src, dest, replacer)
            dest.flush()
            os.fsync(dest.fileno())
        shutil.copymode(backup, path)
        restore = False
    finally:
        if restore:
            os.replace(backup, path)
        else:
            backup.unlink()


# =========================================================================
# 工作空间锁
# =========================================================================


class WorkspaceLock:
    """<workspace>/.workspace.lock 上的排他文件锁

    在 timeout 秒内轮询获取，超时抛 LockTimeoutError。
    """

    def __init__(self, workspace: Path, timeout: float = 3.0, poll_interval: float = 0.05) -> None:
        self.lock_path = Path(workspace) / ".workspace.lock"
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._file: IO[str] | None = None

    def acquire(self) -> None:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        f = open(self.lock_path, "a", encoding="utf-8")
        deadline = time.monotonic() + self.timeout
        try:
            while True:
                try:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise LockTimeoutError(
                            f"等待工作空间锁超时 ({self.timeout:g} 秒): {self.lock_path}"
                        ) from None
                    time.sleep(self.poll_interval)
        except BaseException:
            f.close()
            raise
        self._file = f
        logger.debug("已锁定工作空间: %s", self.lock_path)

    def release(self) -> None:
        if self._file is None:
            return
        fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        self._file.close()
        self._file = None

    def __enter__(self) -> WorkspaceLock:
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
