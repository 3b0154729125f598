"""enlistment 注册管理

全局配置中的两个多值键记录受管仓库：
- scalar.repo: 每个已注册的工作区路径
- maintenance.repo: 由 ``git maintenance start/unregister`` 维护

全局配置是跨进程共享的，写入前若未设置锁等待时间则先注入一个。
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scalar.services.config_reconciler import ConfigReconciler
    from scalar.services.fsmonitor import FsMonitorCoordinator

from scalar.core.exceptions import ConfigurationError, GitCommandError, RegistrationError
from scalar.core.models import Enlistment, RepoContext
from scalar.services.git import GitConfig

logger = logging.getLogger(__name__)

REGISTRY_KEY = "scalar.repo"
MAINTENANCE_KEY = "maintenance.repo"
LOCK_TIMEOUT_KEY = "core.configWriteLockTimeoutMS"


class EnlistmentRegistration:
    """注册 / 注销 / 列出 enlistment"""

    def __init__(
        self,
        config: GitConfig,
        reconciler: ConfigReconciler,
        fsmonitor: FsMonitorCoordinator,
        *,
        lock_timeout_ms: int = 150,
    ) -> None:
        self.config = config
        self.runner = config.runner
        self.reconciler = reconciler
        self.fsmonitor = fsmonitor
        self.lock_timeout_ms = lock_timeout_ms

    def ensure_lock_timeout(self, ctx: RepoContext) -> None:
        """未配置写锁等待时间时，为本上下文后续的 git 调用注入默认值"""
        if self.config.get(ctx, LOCK_TIMEOUT_KEY) is None:
            ctx.push_parameter(f"{LOCK_TIMEOUT_KEY}={self.lock_timeout_ms}")

    # ---- 全局记录 ----

    def list_enlistments(self, ctx: RepoContext) -> list[str]:
        return self.config.get_all(ctx, REGISTRY_KEY, scope="global") or []

    def is_registered(self, ctx: RepoContext, worktree: str | Path) -> bool:
        return self.config.has_value(ctx, REGISTRY_KEY, str(worktree), scope="global")

    def add(self, ctx: RepoContext, worktree: str | Path) -> bool:
        """添加记录；已存在则什么也不做"""
        self.ensure_lock_timeout(ctx)
        if self.is_registered(ctx, worktree):
            return True
        return self.config.add(ctx, REGISTRY_KEY, str(worktree), scope="global")

    def remove(self, ctx: RepoContext, worktree: str | Path) -> bool:
        """删除记录；本来就不存在则什么也不做"""
        self.ensure_lock_timeout(ctx)
        if not self.is_registered(ctx, worktree):
            return True
        return self.config.unset(ctx, REGISTRY_KEY, str(worktree), scope="global")

    def remove_deleted(self, ctx: RepoContext, path: str | Path) -> bool:
        """目录已不存在时清理两项全局记录

        记录可能以原始路径或规范路径写入，两种形式都尝试删除。
        """
        ok = True
        for value in dict.fromkeys((str(path), os.path.realpath(str(path)))):
            for key in (REGISTRY_KEY, MAINTENANCE_KEY):
                ok = self.config.unset(ctx, key, value, scope="global") and ok
        return ok

    # ---- 定时维护 ----

    def toggle_maintenance(self, ctx: RepoContext, enable: bool) -> bool:
        self.ensure_lock_timeout(ctx)
        if enable:
            return self.runner.run(ctx, "maintenance", "start") == 0
        return self.runner.run(ctx, "maintenance", "unregister", "--force") == 0

    # ---- 组合操作 ----

    def register(self, enlistment: Enlistment, *, reconfigure: bool = False) -> None:
        """注册：全局记录 + 推荐配置 + 定时维护 + fsmonitor

        定时维护只是优化，开启失败仅告警。
        """
        ctx = enlistment.context
        if not self.add(ctx, enlistment.worktree):
            raise RegistrationError("could not add enlistment")
        try:
            self.reconciler.reconcile(ctx, reconfigure=reconfigure)
        except ConfigurationError as e:
            raise RegistrationError(f"could not set recommended config: {e}") from e
        if not self.toggle_maintenance(ctx, True):
            logger.warning("could not turn on maintenance")
        try:
            self.fsmonitor.ensure_running(ctx)
        except GitCommandError as e:
            raise RegistrationError(str(e)) from e
        logger.info("enlistment 已注册: %s", enlistment.worktree)

    def unregister(self, enlistment: Enlistment) -> None:
        """注销：关闭定时维护并删除全局记录，两步都会尝试"""
        ctx = enlistment.context
        errors: list[str] = []
        if not self.toggle_maintenance(ctx, False):
            errors.append("could not turn off maintenance")
        if not self.remove(ctx, enlistment.worktree):
            errors.append("could not remove enlistment")
        if errors:
            raise RegistrationError("; ".join(errors))
        logger.info("enlistment 已注销: %s", enlistment.worktree)
