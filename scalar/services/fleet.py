"""批量重配置 - 逐个处理全局注册的 enlistment

每个 enlistment 相互独立：单个失败只记录并告警，不中断循环；
目录已被删除的记录会被自动清理，视为已处理而非失败。
每次迭代使用独立的 RepoContext，不修改调用方上下文。
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scalar.services.config_reconciler import ConfigReconciler
    from scalar.services.registration import EnlistmentRegistration

from scalar.core.exceptions import ConfigurationError
from scalar.core.models import FleetItemResult, FleetItemStatus, FleetReport, RepoContext
from scalar.services.git import GitRunner

logger = logging.getLogger(__name__)

REMEDIATION = (
    "to unregister this repository from Scalar, run\n"
    '\tgit config --global --unset --fixed-value scalar.repo "{path}"'
)


class Discovery(str, Enum):
    DISCOVERED = "discovered"
    INVALID_OWNERSHIP = "invalid_ownership"
    INVALID_FORMAT = "invalid_format"
    NOT_FOUND = "not_found"


# git 仓库发现失败时的诊断信息 -> 分类
_DISCOVERY_MARKERS: tuple[tuple[str, Discovery], ...] = (
    ("dubious ownership", Discovery.INVALID_OWNERSHIP),
    ("invalid gitfile format", Discovery.INVALID_FORMAT),
    ("unknown repository format", Discovery.INVALID_FORMAT),
    ("unknown repository extension", Discovery.INVALID_FORMAT),
    ("expected git repo version", Discovery.INVALID_FORMAT),
)


def classify_discovery_error(stderr: str) -> Discovery:
    text = stderr.lower()
    for marker, kind in _DISCOVERY_MARKERS:
        if marker in text:
            return kind
    return Discovery.NOT_FOUND


class FleetReconfigurer:
    """reconfigure --all 执行器"""

    def __init__(
        self,
        runner: GitRunner,
        reconciler: ConfigReconciler,
        registration: EnlistmentRegistration,
    ) -> None:
        self.runner = runner
        self.reconciler = reconciler
        self.registration = registration

    def discover(self, ctx: RepoContext) -> tuple[Discovery, Path | None, Path | None]:
        """在 ctx.cwd 下发现仓库，返回 (分类, git 目录, common 目录)"""
        r = self.runner.capture(ctx, "rev-parse", "--absolute-git-dir", "--git-common-dir")
        lines = r.stdout.splitlines()
        if not r.success or len(lines) < 2:
            return classify_discovery_error(r.stderr), None, None
        git_dir = Path(lines[0])
        common = Path(lines[1])
        if not common.is_absolute():
            common = Path(ctx.cwd) / common
        return Discovery.DISCOVERED, git_dir, common

    def reconfigure_all(self, ctx: RepoContext) -> FleetReport:
        """逐个重配置全部已注册 enlistment，返回汇总（全部尝试后才返回）"""
        report = FleetReport()
        for path in self.registration.list_enlistments(ctx):
            item = self.reconfigure_one(ctx, path)
            if not item.ok:
                logger.warning(REMEDIATION.format(path=path))
            report.items.append(item)
        logger.info(
            "reconfigure 汇总: %d 个, %d 失败", len(report.items), len(report.failed),
        )
        return report

    def reconfigure_one(self, base: RepoContext, path: str) -> FleetItemResult:
        """处理单个记录，不抛异常"""
        target = Path(path)
        if not target.exists():
            return self._remove_stale(base, path)
        if not target.is_dir() or not os.access(target, os.X_OK):
            logger.warning("could not switch to '%s'", path)
            return FleetItemResult(path, FleetItemStatus.FAILED, "could not switch to directory")

        lookup = base.derive(cwd=target)
        kind, git_dir, _common = self.discover(lookup)
        if kind is Discovery.INVALID_OWNERSHIP:
            logger.warning("repository at '%s' has different owner", path)
            return FleetItemResult(path, FleetItemStatus.FAILED, "different owner")
        if kind is Discovery.INVALID_FORMAT:
            logger.warning("repository at '%s' has a format issue", path)
            return FleetItemResult(path, FleetItemStatus.FAILED, "format issue")
        if kind is Discovery.NOT_FOUND:
            logger.warning("repository not found in '%s'", path)
            return FleetItemResult(path, FleetItemStatus.FAILED, "repository not found")

        ctx = base.derive(cwd=target, git_dir=git_dir, work_tree=target)
        try:
            self.reconciler.reconcile(ctx, reconfigure=True)
        except ConfigurationError as e:
            logger.warning("could not reconfigure '%s': %s", path, e)
            return FleetItemResult(path, FleetItemStatus.FAILED, str(e))
        if not self.registration.toggle_maintenance(ctx, True):
            logger.warning("could not turn on maintenance for '%s'", path)
        return FleetItemResult(path, FleetItemStatus.RECONFIGURED)

    def _remove_stale(self, ctx: RepoContext, path: str) -> FleetItemResult:
        if self.registration.remove_deleted(ctx.derive(), path):
            logger.warning("removed stale scalar.repo '%s'", path)
            return FleetItemResult(path, FleetItemStatus.STALE_REMOVED)
        logger.error("could not remove stale scalar.repo '%s'", path)
        return FleetItemResult(path, FleetItemStatus.FAILED, "could not remove stale record")
