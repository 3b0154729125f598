"""enlistment 定位

从显式参数或当前目录确定 enlistment 根目录与工作区：
若 <path>/src 本身是非裸仓库工作区，则 <path> 为根、<path>/src 为工作区；
否则 <path> 既是根也是工作区。最终由 git 自身的仓库发现确认工作区存在。
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from pathlib import Path

from scalar.core.exceptions import EnlistmentError, UsageError
from scalar.core.models import Enlistment, RepoContext
from scalar.services.git import GitRunner
from scalar.utils.paths import absolute_path, is_nonbare_repository_dir, trim_trailing_separators

logger = logging.getLogger(__name__)


class EnlistmentLocator:
    """enlistment 定位器"""

    def __init__(self, runner: GitRunner) -> None:
        self.runner = runner

    def locate(self, ctx: RepoContext, args: Sequence[str] = ()) -> Enlistment:
        """定位 enlistment

        参数:
            ctx: 调用方上下文（cwd 为当前目录，parameters 为 -c 注入项）
            args: 位置参数，至多一个 enlistment 路径

        异常:
            UsageError: 位置参数多于一个
            EnlistmentError: 路径不存在或找不到工作区
        """
        if len(args) > 1:
            raise UsageError(f"too many arguments: {' '.join(args)}")

        if args:
            path = absolute_path(args[0], ctx.cwd)
            if not path.is_dir():
                raise EnlistmentError(f"'{path}' does not exist")
        else:
            path = absolute_path(ctx.cwd)

        # 记录与比较都使用规范路径（解析符号链接）
        path = Path(os.path.realpath(trim_trailing_separators(str(path))))
        src = path / "src"
        uses_src = is_nonbare_repository_dir(src)
        search = ctx.derive(cwd=src if uses_src else path)

        toplevel = self._discover_worktree(search)
        if uses_src:
            root, worktree = path, src
        else:
            root = worktree = toplevel
        logger.debug("enlistment: root=%s worktree=%s", root, worktree)
        return Enlistment(
            root=root, worktree=worktree, uses_src=uses_src,
            context=ctx.derive(cwd=worktree),
        )

    def _discover_worktree(self, ctx: RepoContext) -> Path:
        r = self.runner.capture(ctx, "rev-parse", "--show-toplevel")
        toplevel = r.stdout.strip()
        if not r.success or not toplevel:
            raise EnlistmentError("Scalar enlistments require a worktree")
        return Path(toplevel)
