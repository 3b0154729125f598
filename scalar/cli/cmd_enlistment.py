"""CLI — enlistment 生命周期命令（clone / list / register / unregister / delete / reconfigure）"""

from __future__ import annotations

import click

from scalar.cli import CommandFailed, _svc
from scalar.core.exceptions import UsageError
from scalar.core.models import CloneRequest, RepoContext


def register(group: click.Group) -> None:
    group.add_command(clone)
    group.add_command(list_enlistments)
    group.add_command(register_cmd)
    group.add_command(unregister_cmd)
    group.add_command(delete)
    group.add_command(reconfigure)


# ---- clone ----

@click.command()
@click.argument("url")
@click.argument("enlistment", required=False)
@click.option("-b", "--branch", default=None, metavar="<branch>", help="clone 后检出的分支")
@click.option("--full-clone", is_flag=True, help="创建完整工作区（不启用稀疏检出）")
@click.option("--single-branch", is_flag=True, help="只下载要检出的分支的元数据")
@click.option("--src/--no-src", default=True, help="在 src 子目录中创建仓库")
@click.option("--cache-server-url", default=None, metavar="<url>", help="cache server 地址")
@click.option("--local-cache-path", default=None, metavar="<path>", help="覆盖本地共享对象缓存路径")
@click.option("--no-fetch-commits-and-trees", "_unused", is_flag=True, hidden=True)
@click.pass_obj
def clone(
    ctx: RepoContext, url: str, enlistment: str | None, branch: str | None,
    full_clone: bool, single_branch: bool, src: bool,
    cache_server_url: str | None, local_cache_path: str | None, _unused: bool,
) -> None:
    """创建新的 enlistment"""
    request = CloneRequest(
        url=url, enlistment=enlistment, branch=branch,
        full_clone=full_clone, single_branch=single_branch, src=src,
        cache_server_url=cache_server_url, local_cache_path=local_cache_path,
        show_progress=click.get_text_stream("stderr").isatty(),
    )
    _svc().clone.clone(ctx, request)


# ---- list ----

@click.command(name="list")
@click.pass_obj
def list_enlistments(ctx: RepoContext) -> None:
    """列出已注册的 enlistment"""
    for path in _svc().registration.list_enlistments(ctx):
        click.echo(path)


# ---- register / unregister ----

@click.command(name="register")
@click.argument("enlistment", required=False)
@click.pass_obj
def register_cmd(ctx: RepoContext, enlistment: str | None) -> None:
    """注册 enlistment 并应用推荐配置"""
    svc = _svc()
    found = svc.locator.locate(ctx, [enlistment] if enlistment else [])
    svc.registration.register(found)


@click.command(name="unregister")
@click.argument("enlistment", required=False)
@click.pass_obj
def unregister_cmd(ctx: RepoContext, enlistment: str | None) -> None:
    """注销 enlistment（工作区已被删除时只清理注册记录）"""
    svc = _svc()
    if enlistment:
        removed = svc.maintenance.unregister_forgiving(ctx, enlistment)
        if removed is not None:
            if not removed:
                raise CommandFailed(f"could not unregister '{enlistment}'")
            return
    found = svc.locator.locate(ctx, [enlistment] if enlistment else [])
    svc.registration.unregister(found)


# ---- delete ----

@click.command()
@click.argument("enlistment")
@click.pass_obj
def delete(ctx: RepoContext, enlistment: str) -> None:
    """注销并删除 enlistment"""
    svc = _svc()
    found = svc.locator.locate(ctx, [enlistment])
    svc.maintenance.delete(found, ctx.cwd)


# ---- reconfigure ----

@click.command()
@click.option("-a", "--all", "all_", is_flag=True, help="重配置全部已注册的 enlistment")
@click.argument("enlistment", required=False)
@click.pass_obj
def reconfigure(ctx: RepoContext, all_: bool, enlistment: str | None) -> None:
    """按推荐配置重新收敛（强制模式）"""
    if all_ and enlistment:
        raise UsageError("--all or <enlistment>, but not both")
    svc = _svc()
    if not all_:
        found = svc.locator.locate(ctx, [enlistment] if enlistment else [])
        svc.reconciler.reconcile(found.context, reconfigure=True)
        return

    report = svc.fleet.reconfigure_all(ctx)
    if not report.success:
        raise CommandFailed(
            f"{len(report.failed)} of {len(report.items)} enlistment(s) could not be reconfigured",
        )
