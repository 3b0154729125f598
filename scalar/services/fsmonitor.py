"""文件系统监视守护进程协调

支持判定依赖两个独立信号：
1. 平台提供守护进程的 IPC 通道（Windows / macOS）
2. 仓库设置探测结果为 OK（不是远程文件系统、虚拟仓库等）

不支持时 ensure_running / ensure_stopped 均为空操作；
支持时只在当前状态与期望不一致时才发出 start / stop，避免重复重启。
"""

from __future__ import annotations

import logging
import sys
from enum import Enum

from scalar.core.exceptions import GitCommandError
from scalar.core.models import RepoContext
from scalar.services.git import GitRunner

logger = logging.getLogger(__name__)

_IPC_PLATFORMS = frozenset(("win32", "darwin"))


class FsMonitorReason(str, Enum):
    OK = "ok"
    UNSUPPORTED_PLATFORM = "unsupported platform"
    BARE = "bare repository"
    VIRTUAL = "virtual repository"
    REMOTE = "remote filesystem"
    INCOMPATIBLE = "incompatible"


# `git fsmonitor--daemon status` 在仓库不兼容时输出的原因描述
_REASON_MARKERS = (
    ("bare repositor", FsMonitorReason.BARE),
    ("virtual repositor", FsMonitorReason.VIRTUAL),
    ("remote", FsMonitorReason.REMOTE),
    ("not supported", FsMonitorReason.UNSUPPORTED_PLATFORM),
    ("incompatible", FsMonitorReason.INCOMPATIBLE),
)


class FsMonitorCoordinator:
    """按需启动 / 停止 fsmonitor 守护进程"""

    def __init__(self, runner: GitRunner, *, platform: str | None = None) -> None:
        self.runner = runner
        self.platform = platform or sys.platform

    def ipc_supported(self) -> bool:
        return self.platform in _IPC_PLATFORMS

    def reason(self, ctx: RepoContext) -> FsMonitorReason:
        """设置探测：解析 status 输出中的不兼容原因"""
        if not self.ipc_supported():
            return FsMonitorReason.UNSUPPORTED_PLATFORM
        r = self.runner.capture(ctx, "fsmonitor--daemon", "status")
        text = f"{r.stdout}\n{r.stderr}".lower()
        if r.success or ("incompatible" not in text and "not supported" not in text):
            return FsMonitorReason.OK
        for marker, reason in _REASON_MARKERS:
            if marker in text:
                return reason
        return FsMonitorReason.INCOMPATIBLE

    def is_supported(self, ctx: RepoContext) -> bool:
        return self.ipc_supported() and self.reason(ctx) is FsMonitorReason.OK

    def is_listening(self, ctx: RepoContext) -> bool:
        return self.runner.capture(ctx, "fsmonitor--daemon", "status").success

    def ensure_running(self, ctx: RepoContext) -> None:
        if not self.is_supported(ctx) or self.is_listening(ctx):
            return
        logger.info("启动 fsmonitor 守护进程: %s", ctx.cwd)
        rc = self.runner.run(ctx, "fsmonitor--daemon", "start")
        if rc != 0:
            raise GitCommandError("could not start the FSMonitor daemon", returncode=rc)

    def ensure_stopped(self, ctx: RepoContext) -> None:
        if not self.is_supported(ctx) or not self.is_listening(ctx):
            return
        logger.info("停止 fsmonitor 守护进程: %s", ctx.cwd)
        rc = self.runner.run(ctx, "fsmonitor--daemon", "stop")
        if rc != 0:
            raise GitCommandError("failed to stop the FSMonitor daemon", returncode=rc)
