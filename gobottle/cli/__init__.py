"""gobottle 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os
from typing import Any

import click

from gobottle import __version__
from gobottle.core.config import init_config
from gobottle.core.exceptions import BottleError
from gobottle.utils.logger import setup_logging


class BottleGroup(click.Group):
    """把业务异常转换为友好的错误输出（退出码 1）"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except BottleError as e:
            raise click.ClickException(str(e)) from e


@click.group(cls=BottleGroup)
@click.version_option(version=__version__)
@click.option("--config", "config_path", default="", help="工具配置文件 (YAML)")
@click.option("--verbose", "-v", is_flag=True, help="输出调试日志")
def main(config_path: str, verbose: bool) -> None:
    """gobottle - 不侵入项目结构的 Go 构建工具"""
    setup_logging(
        level="DEBUG" if verbose else os.getenv("GOBOTTLE_LOG_LEVEL", "WARNING"),
        json_output=os.getenv("GOBOTTLE_LOG_JSON", "") == "1",
    )
    init_config(config_path)


# 注册各领域子命令
from gobottle.cli.cmd_build import register as _reg_build  # noqa: E402
from gobottle.cli.cmd_which import register as _reg_which  # noqa: E402

_reg_build(main)
_reg_which(main)
