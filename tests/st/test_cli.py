"""命令行接口测试（CliRunner + 假执行器）"""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from gobottle import __version__
from gobottle.cli import main
from gobottle.services import project as project_mod
from gobottle.utils.logger import reset_logging
from gobottle.utils.shell import get_executor, set_executor


@pytest.fixture()
def runner(tmp_path: Path, monkeypatch) -> CliRunner:  # noqa: ANN001
    cfg = tmp_path / "config.yml"
    cfg.write_text(f"workspace_dir: {tmp_path / 'ws'}\nlock_timeout: 0.5\n")
    monkeypatch.setenv("GOBOTTLE_CONFIG", str(cfg))
    monkeypatch.delenv("GOPATH", raising=False)
    yield CliRunner()
    reset_logging()


@pytest.fixture()
def fake_executor(fake_executor_cls, rsync_handler):  # noqa: ANN001
    ex = fake_executor_cls({"rsync": rsync_handler})
    previous = get_executor()
    set_executor(ex)
    yield ex
    set_executor(previous)


class TestCli:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_which(self, runner: CliRunner, tmp_path: Path, manifest) -> None:
        manifest(tmp_path / "proj", "myapp")
        result = runner.invoke(main, ["which", str(tmp_path / "proj" / "Bottle.toml")])
        assert result.exit_code == 0
        assert result.output.strip() == f"[myapp] {tmp_path / 'proj'}"

    def test_which_missing_path(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["which", str(tmp_path / "nope")])
        assert result.exit_code == 1
        assert "文件不存在" in result.output

    def test_build_exports_binary(self, runner: CliRunner, tmp_path: Path, manifest, fake_executor, monkeypatch) -> None:
        manifest(tmp_path / "proj", "myapp")
        (tmp_path / "proj" / "main.go").write_text("package main\n")

        def go_install(cmd, cwd, env):  # noqa: ANN001
            bin_dir = Path(env["GOPATH"]) / "bin"
            bin_dir.mkdir(parents=True, exist_ok=True)
            (bin_dir / "myapp").write_text("ELF")

        fake_executor.handlers["go"] = go_install
        monkeypatch.chdir(tmp_path / "proj")
        result = runner.invoke(main, ["build", "-o", "dist/app"])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "proj" / "dist" / "app").read_text() == "ELF"
        assert fake_executor.commands("go") == [["go", "install", "./..."]]

    def test_exec_propagates_exit_code(self, runner: CliRunner, tmp_path: Path, manifest, fake_executor, monkeypatch) -> None:
        manifest(tmp_path / "proj", "myapp")
        monkeypatch.chdir(tmp_path / "proj")
        monkeypatch.setattr(project_mod, "run_attached", lambda cmd, cwd=".", env=None: 2)
        result = runner.invoke(main, ["exec", "go", "vet", "./..."])
        assert result.exit_code == 2

    def test_bad_manifest_is_friendly_error(self, runner: CliRunner, tmp_path: Path, monkeypatch) -> None:
        (tmp_path / "proj").mkdir()
        (tmp_path / "proj" / "Bottle.toml").write_text("[package\n")
        monkeypatch.chdir(tmp_path / "proj")
        result = runner.invoke(main, ["build"])
        assert result.exit_code == 1
        assert "清单格式错误" in result.output
