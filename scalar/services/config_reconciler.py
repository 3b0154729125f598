"""推荐配置收敛

对每个配置项按策略处理：
- reconfigure 且为必需项: 强制写入推荐值
- 当前未设置: 首次写入推荐值
- 其他: 保持不动（操作者或之前的运行已配置）

在逐项处理之前，先把已废弃的 core.usebuiltinfsmonitor 迁移到 core.fsmonitor。
log.excludeDecoration 是多值键，缺失时以追加方式写入一个默认模式。

任一项失败即中止并报告该键，已写入的项不回滚。
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scalar.services.fsmonitor import FsMonitorCoordinator

from scalar.core.exceptions import ConfigurationError, GitCommandError
from scalar.core.models import ConfigEntry, RepoContext
from scalar.services.git import GitConfig

logger = logging.getLogger(__name__)

_REQUIRED: tuple[tuple[str, str], ...] = (
    ("am.keepCR", "true"),
    ("core.FSCache", "true"),
    ("core.multiPackIndex", "true"),
    ("core.preloadIndex", "true"),
    ("core.untrackedCache", "true"),
    ("core.logAllRefUpdates", "true"),
    ("credential.https://dev.azure.com.useHttpPath", "true"),
    ("credential.validate", "false"),  # 仅 Windows 凭据管理器识别
    ("gc.auto", "0"),
    ("gui.GCWarning", "false"),
    ("index.skipHash", "false"),
    ("index.threads", "true"),
    ("index.version", "4"),
    ("merge.stat", "false"),
    ("merge.renames", "true"),
    ("pack.useBitmaps", "false"),
    ("pack.useSparse", "true"),
    ("receive.autoGC", "false"),
    ("feature.manyFiles", "false"),
    ("feature.experimental", "false"),
    ("fetch.unpackLimit", "1"),
    ("fetch.writeCommitGraph", "false"),
)

_OPTIONAL: tuple[tuple[str, str], ...] = (
    ("status.aheadBehind", "false"),
    ("commitGraph.generationVersion", "1"),
    ("core.autoCRLF", "false"),
    ("core.safeCRLF", "false"),
    ("fetch.showForcedUpdates", "false"),
    ("core.configWriteLockTimeoutMS", "150"),
)

LEGACY_FSMONITOR_KEY = "core.usebuiltinfsmonitor"
FSMONITOR_KEY = "core.fsmonitor"
LOG_EXCLUDE_KEY = "log.excludeDecoration"
LOG_EXCLUDE_DEFAULT = "refs/prefetch/*"


def recommended_config(platform: str | None = None) -> list[ConfigEntry]:
    """按平台生成有序的推荐配置表"""
    platform = platform or sys.platform
    table = [ConfigEntry(k, v, True) for k, v in _REQUIRED]
    if platform == "win32":
        table.append(ConfigEntry("http.sslBackend", "schannel", True))
    table += [ConfigEntry(k, v) for k, v in _OPTIONAL]
    return table


RECOMMENDED_CONFIG: tuple[ConfigEntry, ...] = tuple(recommended_config())


class ConfigReconciler:
    """把仓库配置收敛到推荐基线（幂等）"""

    def __init__(
        self,
        config: GitConfig,
        fsmonitor: FsMonitorCoordinator | None = None,
        *,
        table: Sequence[ConfigEntry] | None = None,
    ) -> None:
        self.config = config
        self.fsmonitor = fsmonitor
        self.table = tuple(table) if table is not None else RECOMMENDED_CONFIG

    def _current(self, ctx: RepoContext, key: str) -> str | None:
        try:
            return self.config.get(ctx, key)
        except GitCommandError as e:
            raise ConfigurationError(key) from e

    def apply(self, ctx: RepoContext, entry: ConfigEntry, reconfigure: bool) -> bool:
        """处理单个配置项，返回是否写入；写入失败抛 ConfigurationError"""
        if not (reconfigure and entry.overwrite_on_reconfigure) and (
            self._current(ctx, entry.key) is not None
        ):
            logger.debug("%s: exists", entry.key)
            return False
        logger.debug("%s: created", entry.key)
        if not self.config.set(ctx, entry.key, entry.value):
            raise ConfigurationError(entry.key, entry.value)
        return True

    def migrate_legacy_fsmonitor(self, ctx: RepoContext) -> None:
        """core.usebuiltinfsmonitor -> core.fsmonitor，一次性且不可逆"""
        legacy = self._current(ctx, LEGACY_FSMONITOR_KEY)
        if legacy is None:
            return
        if self._current(ctx, FSMONITOR_KEY) is None and not self.config.set(
            ctx, FSMONITOR_KEY, legacy,
        ):
            raise ConfigurationError(FSMONITOR_KEY, legacy)
        if not self.config.unset(ctx, LEGACY_FSMONITOR_KEY):
            raise ConfigurationError("core.useBuiltinFSMonitor", "NULL")
        logger.info("已迁移 %s=%s 到 %s", LEGACY_FSMONITOR_KEY, legacy, FSMONITOR_KEY)

    def reconcile(
        self,
        ctx: RepoContext,
        reconfigure: bool = False,
        table: Sequence[ConfigEntry] | None = None,
    ) -> None:
        """按顺序收敛整张配置表

        参数:
            ctx: 目标仓库上下文
            reconfigure: True 为批量重配置模式，必需项强制覆盖
            table: 覆盖默认推荐表（测试用）

        异常:
            ConfigurationError: 某一项写入失败，message 中包含键名
        """
        self.migrate_legacy_fsmonitor(ctx)

        for entry in self.table if table is None else table:
            self.apply(ctx, entry, reconfigure)

        if self.fsmonitor is not None and self.fsmonitor.is_supported(ctx):
            self.apply(ctx, ConfigEntry(FSMONITOR_KEY, "true"), reconfigure)

        if self._current(ctx, LOG_EXCLUDE_KEY) is None:
            logger.debug("%s: created", LOG_EXCLUDE_KEY)
            if not self.config.add(ctx, LOG_EXCLUDE_KEY, LOG_EXCLUDE_DEFAULT):
                raise ConfigurationError(LOG_EXCLUDE_KEY, LOG_EXCLUDE_DEFAULT)
        else:
            logger.debug("%s: exists", LOG_EXCLUDE_KEY)
