"""git 命令执行与配置读写

职责：
- GitRunner: 带重试地执行 git 子命令（失败即整体重跑，不区分失败原因）
- GitConfig: 基于 ``git config`` 的配置存储读写

被重试的命令必须可安全重复执行（幂等或自然收敛）。
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from scalar.core.exceptions import GitCommandError
from scalar.core.models import RepoContext, RetryPolicy
from scalar.utils.shell import DEFAULT_MAX_OUTPUT, CommandExecutor, CommandResult, get_executor

logger = logging.getLogger(__name__)

# git config 的返回码：键不存在 / 要删除的值不存在
CONFIG_KEY_MISSING = 1
CONFIG_NOTHING_SET = 5


class GitRunner:
    """git 子命令执行器"""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        *,
        git: str = "git",
        policy: RetryPolicy | None = None,
        max_output: int = DEFAULT_MAX_OUTPUT,
    ) -> None:
        self._executor = executor or get_executor()
        self.git = git
        self.policy = policy or RetryPolicy()
        self.max_output = max_output

    def _argv(self, ctx: RepoContext, args: tuple[str, ...]) -> list[str]:
        return [self.git, *ctx.git_options(), *args]

    def _env(self, ctx: RepoContext) -> dict[str, str] | None:
        if not ctx.env:
            return None
        return {**os.environ, **ctx.env}

    def run(self, ctx: RepoContext, *args: str, policy: RetryPolicy | None = None) -> int:
        """执行 git 命令，非零退出时整体重试，返回最后一次的退出码"""
        attempts = max(1, (policy or self.policy).attempts)
        argv = self._argv(ctx, args)
        returncode = 1
        for attempt in range(1, attempts + 1):
            r = self._executor.execute(
                argv, cwd=ctx.cwd, env=self._env(ctx), capture=False,
            )
            returncode = r.returncode
            if returncode == 0:
                break
            logger.info(
                "git %s 失败 (rc=%d, 第 %d/%d 次)",
                " ".join(args), returncode, attempt, attempts,
            )
        return returncode

    def check(self, ctx: RepoContext, *args: str, policy: RetryPolicy | None = None) -> None:
        """run 的严格版本：最终失败抛 GitCommandError"""
        rc = self.run(ctx, *args, policy=policy)
        if rc != 0:
            raise GitCommandError(f"git {' '.join(args)} 失败 (rc={rc})", args, rc)

    def capture(self, ctx: RepoContext, *args: str) -> CommandResult:
        """执行一次查询类命令并捕获输出（有字节上限，不重试）"""
        return self._executor.execute(
            self._argv(ctx, args), cwd=ctx.cwd, env=self._env(ctx),
            capture=True, max_output=self.max_output,
        )

    def git_path(self, ctx: RepoContext, name: str) -> Path:
        """仓库内部文件的路径，如 objects/info/alternates"""
        r = self.capture(ctx, "rev-parse", "--git-path", name)
        if not r.success:
            raise GitCommandError(f"无法解析 git 路径 {name}: {r.stderr.strip()}", returncode=r.returncode)
        p = Path(r.stdout.strip())
        return p if p.is_absolute() else Path(ctx.cwd) / p


class GitConfig:
    """git 配置存储读写

    scope="global" 对应 ``git config --global``，否则作用于 ctx 所指的仓库。
    读操作不重试；写操作经 GitRunner.run 重试（重复写同一值是收敛的）。
    """

    def __init__(self, runner: GitRunner) -> None:
        self.runner = runner

    @staticmethod
    def _scope(scope: str | None) -> list[str]:
        return [f"--{scope}"] if scope else []

    def get_all(self, ctx: RepoContext, key: str, *, scope: str | None = None) -> list[str] | None:
        """返回键的全部值；键不存在返回 None"""
        r = self.runner.capture(ctx, "config", *self._scope(scope), "--get-all", key)
        if r.returncode == CONFIG_KEY_MISSING:
            return None
        if not r.success:
            raise GitCommandError(
                f"读取配置 {key} 失败: {r.stderr.strip()}", returncode=r.returncode,
            )
        return r.stdout.splitlines()

    def get(self, ctx: RepoContext, key: str, *, scope: str | None = None) -> str | None:
        """返回键的最后一个值（与 git 的“后者优先”一致）"""
        values = self.get_all(ctx, key, scope=scope)
        return values[-1] if values else None

    def has_value(self, ctx: RepoContext, key: str, value: str, *, scope: str | None = None) -> bool:
        """多值键中是否存在与 value 完全相等的一项"""
        r = self.runner.capture(
            ctx, "config", *self._scope(scope), "--get", "--fixed-value", key, value,
        )
        return r.success

    def set(self, ctx: RepoContext, key: str, value: str, *, scope: str | None = None) -> bool:
        return self.runner.run(ctx, "config", *self._scope(scope), key, value) == 0

    def add(self, ctx: RepoContext, key: str, value: str, *, scope: str | None = None) -> bool:
        """追加一个值（多值键）"""
        return self.runner.run(
            ctx, "config", *self._scope(scope), "--add", "--no-fixed-value", key, value,
        ) == 0

    def unset(
        self, ctx: RepoContext, key: str, value: str | None = None, *, scope: str | None = None,
    ) -> bool:
        """删除键（给定 value 时只删除完全相等的那一项）；本来就不存在也算成功"""
        args = ["config", *self._scope(scope)]
        if value is None:
            args += ["--unset-all", key]
        else:
            args += ["--unset", "--fixed-value", key, value]
        r = self.runner.capture(ctx, *args)
        return r.returncode in (0, CONFIG_NOTHING_SET)
