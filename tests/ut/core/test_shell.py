"""shell.py 执行器与辅助函数单元测试"""

from __future__ import annotations

import pytest

from gobottle.core.exceptions import ExecutionError
from gobottle.utils.shell import (
    CommandResult,
    LocalExecutor,
    get_executor,
    gopath_env,
    run_attached,
    set_executor,
    tab_output,
)


class TestLocalExecutor:
    def test_success(self, tmp_path) -> None:
        r = LocalExecutor().execute(["echo", "hello"], cwd=str(tmp_path))
        assert r.success
        assert "hello" in r.stdout

    def test_failure_keeps_output(self, tmp_path) -> None:
        r = LocalExecutor().execute(["sh", "-c", "echo out; echo err >&2; exit 3"], cwd=str(tmp_path))
        assert r.returncode == 3
        assert r.output == "out\nerr\n"

    def test_missing_program(self, tmp_path) -> None:
        r = LocalExecutor().execute(["definitely-not-a-real-program"], cwd=str(tmp_path))
        assert r.returncode == 127
        assert not r.success

    def test_env_passed(self, tmp_path) -> None:
        r = LocalExecutor().execute(["env"], cwd=str(tmp_path), env=gopath_env(tmp_path))
        assert f"GOPATH={tmp_path}" in r.stdout


class TestHelpers:
    def test_tab_output(self) -> None:
        assert tab_output("a\nb\n") == "a\n\tb"

    def test_gopath_env_inherits(self, monkeypatch) -> None:
        monkeypatch.setenv("GOBOTTLE_TEST_VAR", "42")
        env = gopath_env("/ws")
        assert env["GOPATH"] == "/ws"
        assert env["GOBOTTLE_TEST_VAR"] == "42"

    def test_set_executor(self) -> None:
        class Stub:
            def execute(self, cmd, *, cwd=".", env=None, timeout=None):  # noqa: ANN001
                return CommandResult(0, "stub", "")

        previous = get_executor()
        try:
            set_executor(Stub())
            assert get_executor().execute(["x"]).stdout == "stub"
        finally:
            set_executor(previous)


class TestRunAttached:
    def test_returns_exit_code(self, tmp_path) -> None:
        assert run_attached(["sh", "-c", "exit 4"], cwd=str(tmp_path)) == 4

    def test_missing_program(self, tmp_path) -> None:
        with pytest.raises(ExecutionError, match="找不到可执行程序"):
            run_attached(["definitely-not-a-real-program"], cwd=str(tmp_path))
