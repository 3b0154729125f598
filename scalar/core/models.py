"""核心数据模型

所有核心数据类集中定义，服务层统一从此处导入。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

# =========================================================================
# 执行上下文
# =========================================================================


@dataclass
class RepoContext:
    """一次 git 调用所针对的仓库上下文

    显式传递给每个服务操作，替代进程级的“当前仓库”。
    parameters 对应 ``git -c key=value``，按顺序注入每次调用。
    """

    cwd: Path
    git_dir: Path | None = None
    work_tree: Path | None = None
    parameters: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    def push_parameter(self, parameter: str) -> None:
        if parameter not in self.parameters:
            self.parameters.append(parameter)

    def derive(self, **changes: object) -> RepoContext:
        """复制出独立上下文，parameters / env 不与原对象共享"""
        ctx = replace(
            self,
            parameters=list(self.parameters),
            env=dict(self.env),
        )
        return replace(ctx, **changes)  # type: ignore[arg-type]

    def git_options(self) -> list[str]:
        """放在 git 子命令之前的全局选项"""
        opts: list[str] = []
        for p in self.parameters:
            opts += ["-c", p]
        if self.git_dir is not None:
            opts.append(f"--git-dir={self.git_dir}")
        if self.work_tree is not None:
            opts.append(f"--work-tree={self.work_tree}")
        return opts


@dataclass(frozen=True)
class RetryPolicy:
    """外部命令的重试策略：失败后整体重新执行，直到次数用尽"""

    attempts: int = 3

    @classmethod
    def once(cls) -> RetryPolicy:
        return cls(attempts=1)


# =========================================================================
# enlistment 领域模型
# =========================================================================


@dataclass
class Enlistment:
    """一个受管的工作副本

    root 为 enlistment 根目录；uses_src 时工作区位于 root/src，否则与 root 相同。
    """

    root: Path
    worktree: Path
    uses_src: bool
    context: RepoContext

    def __post_init__(self) -> None:
        expected = self.root / "src" if self.uses_src else self.root
        if self.worktree != expected:
            raise ValueError(
                f"worktree {self.worktree} 与 root {self.root} 不一致 (uses_src={self.uses_src})"
            )


@dataclass(frozen=True)
class ConfigEntry:
    """推荐配置表中的一项

    overwrite_on_reconfigure=True 为“必需项”，reconfigure 时强制覆盖；
    否则为“可选项”，仅在未设置时写入。
    """

    key: str
    value: str
    overwrite_on_reconfigure: bool = False


@dataclass(frozen=True)
class CacheServerDescriptor:
    """gvfs/config 返回的单个 cache server"""

    index: int
    url: str
    is_global_default: bool = False


@dataclass(frozen=True)
class NegotiationResult:
    """加速协议协商结果"""

    supported: bool
    cache_server_url: str | None = None


@dataclass
class CloneRequest:
    """clone 命令的全部输入"""

    url: str
    enlistment: str | None = None
    branch: str | None = None
    full_clone: bool = False
    single_branch: bool = False
    src: bool = True
    cache_server_url: str | None = None
    local_cache_path: str | None = None
    show_progress: bool = False


# =========================================================================
# 批量重配置结果
# =========================================================================


class FleetItemStatus(str, Enum):
    RECONFIGURED = "reconfigured"
    STALE_REMOVED = "stale_removed"
    FAILED = "failed"


@dataclass
class FleetItemResult:
    """单个已注册 enlistment 的处理结果"""

    path: str
    status: FleetItemStatus
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status != FleetItemStatus.FAILED


@dataclass
class FleetReport:
    """reconfigure --all 汇总"""

    items: list[FleetItemResult] = field(default_factory=list)

    @property
    def failed(self) -> list[FleetItemResult]:
        return [i for i in self.items if not i.ok]

    @property
    def success(self) -> bool:
        return not self.failed
