"""scalar 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
全局选项 -C / -c 在分派子命令之前处理，得到的 RepoContext 存放在 ctx.obj 中。
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import click

from scalar.core.config import init_config
from scalar.core.exceptions import ScalarError
from scalar.core.models import RepoContext
from scalar.services.container import get_container
from scalar.utils.logger import setup_logging

# 子命令别名
ALIASES = {"config": "reconfigure"}


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


class CommandFailed(click.ClickException):
    """以 ``error: ...`` 形式输出并以非零状态退出"""

    def show(self, file: Any = None) -> None:
        click.echo(f"error: {self.format_message()}", err=True)


class ScalarGroup(click.Group):
    """支持命令别名，并把 ScalarError 转为 CommandFailed"""

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        return super().get_command(ctx, ALIASES.get(cmd_name, cmd_name))

    def resolve_command(
        self, ctx: click.Context, args: list[str],
    ) -> tuple[str | None, click.Command | None, list[str]]:
        _, cmd, rest = super().resolve_command(ctx, args)
        return cmd.name if cmd else None, cmd, rest

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except ScalarError as e:
            raise CommandFailed(str(e)) from e


def build_context(directories: tuple[str, ...], parameters: tuple[str, ...]) -> RepoContext:
    """处理 -C / -c 与无人值守模式，返回本进程的基础上下文"""
    for d in directories:
        try:
            os.chdir(d)
        except OSError as e:
            raise CommandFailed(f"could not change to '{d}': {e.strerror}") from e

    ctx = RepoContext(cwd=Path.cwd())
    for p in parameters:
        ctx.push_parameter(p)

    container = _svc()
    if container.unattended:
        for key, value in (("GIT_ASKPASS", ""), ("GIT_TERMINAL_PROMPT", "false")):
            if key not in container.environ:
                ctx.env[key] = value
        ctx.push_parameter("credential.interactive=false")
    return ctx


@click.group(cls=ScalarGroup)
@click.option("-C", "directories", multiple=True, metavar="<directory>",
              help="先切换到该目录再执行（可多次指定，按顺序生效）")
@click.option("-c", "parameters", multiple=True, metavar="<key>=<value>",
              help="为本次执行的所有 git 调用注入配置（可多次指定）")
@click.pass_context
def main(ctx: click.Context, directories: tuple[str, ...], parameters: tuple[str, ...]) -> None:
    """scalar - 大型仓库 enlistment 管理工具"""
    level = os.getenv("SCALAR_LOG_LEVEL", "WARNING")
    setup_logging(
        level=level,
        json_output=os.getenv("SCALAR_LOG_JSON", "") == "1",
        operator=level.upper() in ("WARNING", "ERROR", "CRITICAL"),
    )
    init_config()
    ctx.obj = build_context(directories, parameters)


# 注册各领域子命令
from scalar.cli.cmd_enlistment import register as _reg_enlistment  # noqa: E402
from scalar.cli.cmd_maintenance import register as _reg_maintenance  # noqa: E402
from scalar.cli.cmd_misc import register as _reg_misc  # noqa: E402

_reg_enlistment(main)
_reg_maintenance(main)
_reg_misc(main)
