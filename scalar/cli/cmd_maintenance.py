"""CLI — 维护命令（run / diagnose）"""

from __future__ import annotations

import click

from scalar.cli import _svc
from scalar.core.models import RepoContext
from scalar.services.maintenance import check_task, task_usage


def register(group: click.Group) -> None:
    group.add_command(run)
    group.add_command(diagnose)


@click.command(epilog=task_usage())
@click.argument("task")
@click.argument("enlistment", required=False)
@click.pass_obj
def run(ctx: RepoContext, task: str, enlistment: str | None) -> None:
    """执行维护任务（config / commit-graph / fetch / loose-objects / pack-files / all）"""
    check_task(task)
    svc = _svc()
    found = svc.locator.locate(ctx, [enlistment] if enlistment else [])
    svc.maintenance.run_task(found, task)


@click.command()
@click.argument("enlistment", required=False)
@click.pass_obj
def diagnose(ctx: RepoContext, enlistment: str | None) -> None:
    """在 <enlistment>/.scalarDiagnostics 下生成诊断包"""
    svc = _svc()
    found = svc.locator.locate(ctx, [enlistment] if enlistment else [])
    svc.maintenance.diagnose(found)
