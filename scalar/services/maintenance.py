"""enlistment 维护类操作

- run_task: 单个维护任务或 all（先注册，再依次执行全部任务，遇错即停）
- diagnose: 诊断包生成（不重试）
- delete: 注销 + 停止 fsmonitor + 删除整棵目录
- unregister_forgiving: 工作区已被误删时仍可清理注册记录
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from scalar.core.exceptions import EnlistmentError, RegistrationError, UsageError
from scalar.core.models import Enlistment, RepoContext, RetryPolicy
from scalar.services.fsmonitor import FsMonitorCoordinator
from scalar.services.registration import EnlistmentRegistration
from scalar.utils.paths import absolute_path, is_inside

logger = logging.getLogger(__name__)

# 命令行任务名 -> git maintenance 任务名；None 表示执行注册
TASKS: dict[str, str | None] = {
    "config": None,
    "commit-graph": "commit-graph",
    "fetch": "prefetch",
    "loose-objects": "loose-objects",
    "pack-files": "incremental-repack",
}
ALL_TASKS = "all"

DIAGNOSTICS_DIR = ".scalarDiagnostics"


def task_usage() -> str:
    lines = ["scalar run <task> [<enlistment>]", "Tasks:"]
    lines += [f"\t{name}" for name in TASKS]
    return "\n".join(lines)


def check_task(task: str) -> None:
    if task != ALL_TASKS and task not in TASKS:
        raise UsageError(f"no such task: '{task}'\n{task_usage()}")


class MaintenanceService:
    """run / diagnose / delete / unregister"""

    def __init__(
        self,
        registration: EnlistmentRegistration,
        fsmonitor: FsMonitorCoordinator,
    ) -> None:
        self.registration = registration
        self.runner = registration.runner
        self.fsmonitor = fsmonitor

    # ---- run ----

    def _maintenance_run(self, ctx: RepoContext, task: str) -> None:
        self.runner.check(ctx, "maintenance", "run", "--task", task)

    def run_task(self, enlistment: Enlistment, task: str) -> None:
        """执行单个任务；all 为注册后依次执行全部任务

        异常:
            UsageError: 未知任务
            RegistrationError / GitCommandError: 任务失败
        """
        check_task(task)
        ctx = enlistment.context
        if task == ALL_TASKS:
            self.registration.register(enlistment)
            for name, git_task in TASKS.items():
                if git_task is None:
                    continue
                logger.info("maintenance 任务: %s", name)
                self._maintenance_run(ctx, git_task)
            return

        git_task = TASKS[task]
        if git_task is None:
            self.registration.register(enlistment)
        else:
            self._maintenance_run(ctx, git_task)

    # ---- diagnose ----

    def diagnose(self, enlistment: Enlistment) -> Path:
        """在 <root>/.scalarDiagnostics 下生成诊断包，失败不重试"""
        target = enlistment.root / DIAGNOSTICS_DIR
        self.runner.check(
            enlistment.context,
            "diagnose", "--mode=all", "-s", "%Y%m%d_%H%M%S", "-o", str(target),
            policy=RetryPolicy.once(),
        )
        return target

    # ---- delete ----

    def delete(self, enlistment: Enlistment, cwd: str | Path) -> None:
        """删除 enlistment；当前目录位于其中时拒绝执行"""
        if is_inside(absolute_path(cwd), enlistment.root):
            raise EnlistmentError("refusing to delete current working directory")
        try:
            self.registration.unregister(enlistment)
        except RegistrationError as e:
            raise RegistrationError(f"failed to unregister repository: {e}") from e

        # 守护进程持有工作区内的文件，删除前先停掉
        self.fsmonitor.ensure_stopped(enlistment.context)

        try:
            shutil.rmtree(enlistment.root)
        except OSError as e:
            raise EnlistmentError(f"failed to delete enlistment directory: {e}") from e
        logger.info("enlistment 已删除: %s", enlistment.root)

    # ---- unregister ----

    def unregister_forgiving(self, ctx: RepoContext, arg: str) -> bool | None:
        """工作区已不存在时直接清理注册记录

        返回 None 表示目录仍是仓库，调用方应走正常注销流程；
        否则返回清理是否成功（两个候选路径任一成功即可）。
        """
        base = absolute_path(arg, ctx.cwd)
        src = base / "src"
        if (src / ".git").is_dir() or (base / ".git").is_dir():
            return None
        removed_src = self.registration.remove_deleted(ctx, src)
        removed_base = self.registration.remove_deleted(ctx, base)
        if not (removed_src or removed_base):
            logger.error("could not remove registration for '%s'", arg)
        return removed_src or removed_base

