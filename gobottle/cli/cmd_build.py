"""CLI - 构建与工具执行命令"""

from __future__ import annotations

import os

import click

from gobottle.core.config import get_config


def register(group: click.Group) -> None:
    group.add_command(build)
    group.add_command(exec_cmd)


@click.command()
@click.option("-o", "outfile", default="", help="把产物写到指定文件")
@click.option("--out-dir", "outdir", default="", help="把所有 [[bin]] 产物写到指定目录（-o 优先）")
@click.option("--ldflags", default="", help='传给每次 "go tool link" 调用的参数')
def build(outfile: str, outdir: str, ldflags: str) -> None:
    """编译当前项目"""
    from gobottle.services.project import build_project, sync_project

    pwd = os.getcwd()
    cfg, _ = sync_project(pwd, config=get_config())
    for path in build_project(cfg, pwd, outfile=outfile, outdir=outdir, ldflags=ldflags):
        click.echo(f"已导出: {path}")


@click.command(name="exec", context_settings={"ignore_unknown_options": True})
@click.argument("tool")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def exec_cmd(tool: str, args: tuple[str, ...]) -> None:
    """在虚拟 GOPATH 中执行工具"""
    from gobottle.services.project import exec_tool, sync_project

    cfg, tracker = sync_project(os.getcwd(), config=get_config())
    rc = exec_tool(cfg, tracker, tool, list(args))
    if rc != 0:
        raise SystemExit(rc)
