"""CLI — 杂项命令（cache-server、版本、帮助）"""

from __future__ import annotations

import click

from scalar import __version__
from scalar.cli import CommandFailed, _svc
from scalar.core.exceptions import UsageError
from scalar.core.models import RepoContext

DEFAULT_REMOTE_MARKER = "(default)"
CACHE_SERVER_KEY = "gvfs.cache-server"


def register(group: click.Group) -> None:
    group.add_command(cache_server)
    group.add_command(version)
    group.add_command(help_cmd)


# ---- cache-server ----

@click.command(name="cache-server")
@click.option("--get", "get_", is_flag=True, help="显示当前配置的 cache server")
@click.option("--set", "set_", default=None, metavar="<url>", help="设置 cache server")
@click.option("--list", "list_", is_flag=False, flag_value=DEFAULT_REMOTE_MARKER,
              default=None, metavar="[<remote>]", help="列出远端提供的全部 cache server")
@click.argument("enlistment", required=False)
@click.pass_obj
def cache_server(
    ctx: RepoContext, get_: bool, set_: str | None, list_: str | None, enlistment: str | None,
) -> None:
    """查询或设置 enlistment 使用的 cache server"""
    if get_ + (set_ is not None) + (list_ is not None) > 1:
        raise UsageError("--get/--set/--list are mutually exclusive")

    svc = _svc()
    found = svc.locator.locate(ctx, [enlistment] if enlistment else [])
    repo = found.context

    if list_ is not None:
        remote = None if list_ == DEFAULT_REMOTE_MARKER else list_
        url = svc.cache_servers.resolve_remote(repo, remote)
        for server in svc.cache_servers.list_cache_servers(repo, url):
            click.echo(f"#{server.index}: {server.url}")
    elif set_ is not None:
        if not svc.git_config.set(repo, CACHE_SERVER_KEY, set_):
            raise CommandFailed(f"could not configure {CACHE_SERVER_KEY}={set_}")
    else:
        current = svc.git_config.get(repo, CACHE_SERVER_KEY)
        click.echo(f"Using cache server: {current or '(undefined)'}")


# ---- version / help ----

@click.command()
@click.option("-v", "--verbose", is_flag=True, help="兼容旧参数，不影响输出")
@click.option("--build-options", is_flag=True, help="同时显示 git 构建选项")
@click.pass_obj
def version(ctx: RepoContext, verbose: bool, build_options: bool) -> None:
    """显示 scalar 与 git 的版本信息（输出到 stderr）"""
    lines = [f"scalar version {__version__}"]
    args = ["version", "--build-options"] if build_options else ["version"]
    r = _svc().runner.capture(ctx, *args)
    if r.success and r.stdout.strip():
        lines.append(r.stdout.rstrip())
    click.echo("\n".join(lines), err=True)


@click.command(name="help")
@click.pass_obj
def help_cmd(ctx: RepoContext) -> None:
    """显示 scalar 手册（git help scalar）"""
    rc = _svc().runner.run(ctx, "help", "scalar")
    if rc != 0:
        raise click.exceptions.Exit(rc)
