"""CLI - 查找文件所属项目"""

from __future__ import annotations

import click

from gobottle.core.config import get_config


def register(group: click.Group) -> None:
    group.add_command(which_cmd)


@click.command(name="which")
@click.argument("path", type=click.Path())
@click.option("--root", is_flag=True, help="输出包源码根目录而非项目目录")
def which_cmd(path: str, root: bool) -> None:
    """查找包含目标文件的项目

    输出示例: [myproject] /path/to/project
    """
    from gobottle.services.project import which

    click.echo(which(path, root=root, config=get_config()))
