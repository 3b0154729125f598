"""服务容器 — 统一依赖注入，CLI 通过容器获取服务而非直接构造

依赖关系图（→ 表示依赖）:
  config        → runner
  fsmonitor     → runner
  reconciler    → config, fsmonitor
  registration  → config, reconciler, fsmonitor
  clone         → config, reconciler, cache_servers, cache_keys, registration
  fleet         → runner, reconciler, registration
  maintenance   → registration, fsmonitor

用法:
    container = ServiceContainer()
    enlistment = container.locator.locate(ctx, args)
    container.registration.register(enlistment)

    # 测试中注入 fake 执行器
    container = ServiceContainer(executor=FakeExecutor())
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scalar.core.config import Config
    from scalar.services.cache_key import CacheKeyDeriver
    from scalar.services.cache_server import CacheServerClient
    from scalar.services.clone import CloneOrchestrator
    from scalar.services.config_reconciler import ConfigReconciler
    from scalar.services.fleet import FleetReconfigurer
    from scalar.services.fsmonitor import FsMonitorCoordinator
    from scalar.services.git import GitConfig, GitRunner
    from scalar.services.locator import EnlistmentLocator
    from scalar.services.maintenance import MaintenanceService
    from scalar.services.registration import EnlistmentRegistration
    from scalar.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器 — 同一容器内的服务共享 GitRunner 与配置"""

    def __init__(
        self,
        config: Config | None = None,
        *,
        executor: CommandExecutor | None = None,
        environ: Mapping[str, str] | None = None,
        platform: str | None = None,
        notify: Callable[[str], None] | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from scalar.core.config import get_config
            config = get_config()
        self._config = config
        self._executor = executor
        self._environ = environ
        self._platform = platform
        self._notify = notify

    @property
    def config(self) -> Config:
        return self._config

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    @property
    def unattended(self) -> bool:
        return self._config.is_unattended(dict(self.environ))

    # ---- git 基础设施 ----

    @property
    def runner(self) -> GitRunner:
        if "runner" not in self._instances:
            from scalar.core.models import RetryPolicy
            from scalar.services.git import GitRunner
            self._instances["runner"] = GitRunner(
                self._executor,
                git=self._config.git_executable,
                policy=RetryPolicy(attempts=self._config.git_retries),
                max_output=self._config.max_output_bytes,
            )
        return self._instances["runner"]  # type: ignore[return-value]

    @property
    def git_config(self) -> GitConfig:
        if "git_config" not in self._instances:
            from scalar.services.git import GitConfig
            self._instances["git_config"] = GitConfig(self.runner)
        return self._instances["git_config"]  # type: ignore[return-value]

    @property
    def fsmonitor(self) -> FsMonitorCoordinator:
        if "fsmonitor" not in self._instances:
            from scalar.services.fsmonitor import FsMonitorCoordinator
            self._instances["fsmonitor"] = FsMonitorCoordinator(
                self.runner, platform=self._platform,
            )
        return self._instances["fsmonitor"]  # type: ignore[return-value]

    # ---- 服务层 ----

    @property
    def reconciler(self) -> ConfigReconciler:
        if "reconciler" not in self._instances:
            from scalar.services.config_reconciler import ConfigReconciler, recommended_config
            self._instances["reconciler"] = ConfigReconciler(
                self.git_config, self.fsmonitor,
                table=recommended_config(self._platform),
            )
        return self._instances["reconciler"]  # type: ignore[return-value]

    @property
    def locator(self) -> EnlistmentLocator:
        if "locator" not in self._instances:
            from scalar.services.locator import EnlistmentLocator
            self._instances["locator"] = EnlistmentLocator(self.runner)
        return self._instances["locator"]  # type: ignore[return-value]

    @property
    def cache_keys(self) -> CacheKeyDeriver:
        if "cache_keys" not in self._instances:
            from scalar.services.cache_key import CacheKeyDeriver
            self._instances["cache_keys"] = CacheKeyDeriver(
                self.runner,
                environ=self._environ,
                skip_info_env=self._config.skip_vsts_info_env,
                allow_http_env=self._config.allow_http_env,
            )
        return self._instances["cache_keys"]  # type: ignore[return-value]

    @property
    def cache_servers(self) -> CacheServerClient:
        if "cache_servers" not in self._instances:
            from scalar.services.cache_server import CacheServerClient
            self._instances["cache_servers"] = CacheServerClient(
                self.runner,
                environ=self._environ,
                allow_http_env=self._config.allow_http_env,
            )
        return self._instances["cache_servers"]  # type: ignore[return-value]

    @property
    def registration(self) -> EnlistmentRegistration:
        if "registration" not in self._instances:
            from scalar.services.registration import EnlistmentRegistration
            self._instances["registration"] = EnlistmentRegistration(
                self.git_config, self.reconciler, self.fsmonitor,
                lock_timeout_ms=self._config.config_lock_timeout_ms,
            )
        return self._instances["registration"]  # type: ignore[return-value]

    @property
    def clone(self) -> CloneOrchestrator:
        if "clone" not in self._instances:
            from scalar.services.clone import CloneOrchestrator
            self._instances["clone"] = CloneOrchestrator(
                self.git_config, self.reconciler, self.cache_servers,
                self.cache_keys, self.registration,
                unattended=self.unattended,
                platform=self._platform,
                environ=self._environ,
                notify=self._notify,
            )
        return self._instances["clone"]  # type: ignore[return-value]

    @property
    def fleet(self) -> FleetReconfigurer:
        if "fleet" not in self._instances:
            from scalar.services.fleet import FleetReconfigurer
            self._instances["fleet"] = FleetReconfigurer(
                self.runner, self.reconciler, self.registration,
            )
        return self._instances["fleet"]  # type: ignore[return-value]

    @property
    def maintenance(self) -> MaintenanceService:
        if "maintenance" not in self._instances:
            from scalar.services.maintenance import MaintenanceService
            self._instances["maintenance"] = MaintenanceService(
                self.registration, self.fsmonitor,
            )
        return self._instances["maintenance"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def set_container(container: ServiceContainer) -> None:
    """替换全局容器（CLI 入口 / 测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = container


def reset_container() -> None:
    """重置全局容器（仅用于测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
