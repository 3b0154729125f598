"""enlistment 创建编排 - 12 步线性流程（加速协议 / 部分克隆 二选一）

步骤顺序：
1. resolve_target      - 确定 enlistment 路径，已存在则失败
2. layout              - 工作区子目录与本地缓存根目录
3. init                - 以选定的默认分支初始化仓库
4. guard_cache_root    - 缓存根目录不得位于新工作区内（唯一会主动清理的步骤）
5. default_branch      - 远端默认分支，失败时退回本地 HEAD
6. remote              - 远端 URL、fetch refspec、凭据路径设置
7. negotiate           - 加速协议（共享对象缓存）或部分克隆
8. sparse_checkout     - 非完整克隆时启用 cone 模式
9. baseline_config     - 推荐配置（首次模式）
10. fetch              - 部分克隆失败时退回完整 fetch 一次；加速协议失败直接报错
11. checkout           - 设置分支跟踪并检出
12. register           - 注册 enlistment

除第 4 步外，任何一步失败都只报告错误，半成品目录保留供排查。
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scalar.services.cache_key import CacheKeyDeriver
    from scalar.services.cache_server import CacheServerClient
    from scalar.services.config_reconciler import ConfigReconciler
    from scalar.services.registration import EnlistmentRegistration

from scalar.core.exceptions import CloneError, ConfigurationError, EnlistmentError, RegistrationError
from scalar.core.models import CloneRequest, Enlistment, RepoContext
from scalar.services.git import GitConfig
from scalar.utils.paths import absolute_path, default_cache_root, is_inside

logger = logging.getLogger(__name__)

_SEPARATORS = "/\\"


def _notify_stderr(message: str) -> None:
    """面向操作者的提示写到 stderr"""
    print(message, file=sys.stderr)


def derive_enlistment_name(url: str) -> str:
    """去掉末尾分隔符和 .git 后缀，取最后一段路径"""
    trimmed = url.rstrip(_SEPARATORS)
    if trimmed.endswith(".git"):
        trimmed = trimmed[: -len(".git")]
    cut = max(trimmed.rfind("/"), trimmed.rfind("\\"))
    if cut < 0 or not trimmed[cut + 1:]:
        raise EnlistmentError(f"cannot deduce worktree name from '{url}'")
    return trimmed[cut + 1:]


def parse_symref_head(output: str) -> tuple[str | None, str | None]:
    """解析 ``ls-remote --symref <url> HEAD`` 的输出

    返回 (分支名, 错误信息)；两者都为 None 表示输出里没有 symref 行。
    """
    for line in output.splitlines():
        if not line.startswith("ref: ") or not line.endswith("\tHEAD"):
            continue
        target = line[len("ref: "):-len("\tHEAD")]
        if target.startswith("refs/heads/"):
            return target[len("refs/heads/"):], None
        return None, f"remote HEAD is not a branch: '{target}'"
    return None, None


@dataclass
class ClonePlan:
    """clone 过程中逐步填充的状态"""

    request: CloneRequest
    root: Path | None = None
    worktree: Path | None = None
    cache_root: Path | None = None
    branch: str | None = None
    ctx: RepoContext | None = None
    accelerated: bool = False
    cache_server_url: str | None = None


class CloneOrchestrator:
    """enlistment 创建编排器"""

    def __init__(
        self,
        config: GitConfig,
        reconciler: ConfigReconciler,
        cache_servers: CacheServerClient,
        cache_keys: CacheKeyDeriver,
        registration: EnlistmentRegistration,
        *,
        unattended: bool = False,
        platform: str | None = None,
        environ: Mapping[str, str] | None = None,
        notify: Callable[[str], None] | None = None,
    ) -> None:
        self.config = config
        self.runner = config.runner
        self.reconciler = reconciler
        self.cache_servers = cache_servers
        self.cache_keys = cache_keys
        self.registration = registration
        self.unattended = unattended
        self.platform = platform
        self.environ = environ
        self.notify = notify or _notify_stderr

    def clone(self, ctx: RepoContext, request: CloneRequest) -> Enlistment:
        """按 12 步创建 enlistment，返回注册完成的 Enlistment

        异常:
            EnlistmentError: 目标目录已存在 / 无法推导名称
            CloneError: 其余任一步骤失败
        """
        plan = ClonePlan(request=request)
        self.resolve_target(ctx, plan)
        self.layout(ctx, plan)
        self.init(ctx, plan)
        self.guard_cache_root(plan)
        self.default_branch(plan)
        self.remote(plan)
        self.negotiate(plan)
        self.sparse_checkout(plan)
        self.baseline_config(plan)
        self.fetch(plan)
        self.checkout(plan)
        return self.register(plan)

    # ---- 步骤实现 ----

    def resolve_target(self, ctx: RepoContext, plan: ClonePlan) -> None:
        """步骤1: 确定 enlistment 路径"""
        req = plan.request
        name = req.enlistment or derive_enlistment_name(req.url)
        root = Path(os.path.realpath(absolute_path(name, ctx.cwd)))
        if root.is_dir():
            raise EnlistmentError(f"directory '{name}' exists already")
        plan.root = root
        logger.info("[Step 1] enlistment: %s", root)

    def layout(self, ctx: RepoContext, plan: ClonePlan) -> None:
        """步骤2: 工作区子目录与本地缓存根目录"""
        assert plan.root is not None
        req = plan.request
        plan.worktree = plan.root / "src" if req.src else plan.root
        if req.local_cache_path:
            plan.cache_root = absolute_path(req.local_cache_path, ctx.cwd)
        else:
            plan.cache_root = default_cache_root(
                plan.root, unattended=self.unattended,
                platform=self.platform, environ=self.environ,
            )
        if plan.cache_root is None:
            raise CloneError("could not determine local cache root")
        logger.info("[Step 2] worktree=%s cache=%s", plan.worktree, plan.cache_root)

    def init(self, ctx: RepoContext, plan: ClonePlan) -> None:
        """步骤3: 初始化仓库"""
        assert plan.worktree is not None
        branch = plan.request.branch or self.config.get(ctx, "init.defaultBranch") or "master"
        rc = self.runner.run(
            ctx, "-c", f"init.defaultBranch={branch}", "init", "--", str(plan.worktree),
        )
        if rc != 0:
            raise CloneError(f"could not initialize '{plan.worktree}'")
        plan.ctx = ctx.derive(cwd=plan.worktree)
        logger.info("[Step 3] 已初始化: %s (默认分支 %s)", plan.worktree, branch)

    def guard_cache_root(self, plan: ClonePlan) -> None:
        """步骤4: 缓存根目录不能在新工作区内，否则清理刚创建的目录并失败"""
        assert plan.ctx is not None and plan.root is not None
        assert plan.worktree is not None and plan.cache_root is not None
        ignore_case = (self.config.get(plan.ctx, "core.ignoreCase") or "").lower() == "true"
        if not is_inside(plan.cache_root, plan.worktree, ignore_case=ignore_case):
            return
        message = "'--local-cache-path' cannot be inside the src folder"
        try:
            shutil.rmtree(plan.root)
        except OSError as e:
            raise CloneError(f"{message};\nCould not remove '{plan.root}': {e}") from e
        raise CloneError(message)

    def default_branch(self, plan: ClonePlan) -> None:
        """步骤5: 远端默认分支；查询失败时退回本地 HEAD"""
        assert plan.ctx is not None
        if plan.request.branch:
            plan.branch = plan.request.branch
            return
        url = plan.request.url
        r = self.runner.capture(plan.ctx, "ls-remote", "--symref", url, "HEAD")
        if r.success:
            branch, error = parse_symref_head(r.stdout)
            if error:
                raise CloneError(f"{error}\nfailed to get default branch for '{url}'")
            if branch:
                plan.branch = branch
                logger.info("[Step 5] 远端默认分支: %s", branch)
                return

        logger.warning("failed to get default branch name from remote; using local default")
        r = self.runner.capture(plan.ctx, "symbolic-ref", "--short", "HEAD")
        if not r.success or not r.stdout.strip():
            raise CloneError(f"failed to get default branch for '{url}'")
        plan.branch = r.stdout.strip()
        logger.info("[Step 5] 本地默认分支: %s", plan.branch)

    def remote(self, plan: ClonePlan) -> None:
        """步骤6: 远端与 refspec"""
        assert plan.ctx is not None and plan.branch is not None
        ref = plan.branch if plan.request.single_branch else "*"
        if not (
            self.config.set(plan.ctx, "remote.origin.url", plan.request.url)
            and self.config.set(
                plan.ctx, "remote.origin.fetch", f"+refs/heads/{ref}:refs/remotes/origin/{ref}",
            )
        ):
            raise CloneError(f"could not configure remote in '{plan.worktree}'")
        if not self.config.set(plan.ctx, "credential.https://dev.azure.com.useHttpPath", "true"):
            raise CloneError("could not configure credential.useHttpPath")
        logger.info("[Step 6] remote.origin 已配置 (refspec %s)", ref)

    def negotiate(self, plan: ClonePlan) -> None:
        """步骤7: 加速协议或部分克隆"""
        assert plan.ctx is not None
        req = plan.request
        if req.cache_server_url:
            plan.accelerated = True
            plan.cache_server_url = req.cache_server_url
        else:
            result = self.cache_servers.negotiate(plan.ctx, req.url)
            plan.accelerated = result.supported
            plan.cache_server_url = result.cache_server_url

        if plan.accelerated:
            self.init_shared_object_cache(plan)
            if not all(
                self.config.set(plan.ctx, k, v)
                for k, v in (
                    ("core.useGVFSHelper", "true"),
                    ("core.gvfs", "150"),
                    ("http.version", "HTTP/1.1"),
                )
            ):
                raise CloneError("could not turn on GVFS helper")
            if plan.cache_server_url:
                if not self.config.set(plan.ctx, "gvfs.cache-server", plan.cache_server_url):
                    raise CloneError("could not configure cache server")
                self.notify(f"Cache server URL: {plan.cache_server_url}")
            logger.info("[Step 7] 使用加速协议")
            return

        if not all(
            self.config.set(plan.ctx, k, v)
            for k, v in (
                ("core.useGVFSHelper", "false"),
                ("remote.origin.promisor", "true"),
                ("remote.origin.partialCloneFilter", "blob:none"),
            )
        ):
            raise CloneError(f"could not configure partial clone in '{plan.worktree}'")
        logger.info("[Step 7] 使用部分克隆 (blob:none)")

    def init_shared_object_cache(self, plan: ClonePlan) -> Path:
        """<cache_root>/<cache_key> 作为共享对象目录，并写入 alternates"""
        assert plan.ctx is not None and plan.cache_root is not None
        key = self.cache_keys.derive(plan.ctx, plan.request.url)
        shared = plan.cache_root / key
        if not self.config.set(plan.ctx, "gvfs.sharedCache", str(shared)):
            raise CloneError("could not configure shared cache")
        try:
            (shared / "pack").mkdir(parents=True, exist_ok=True)
            alternates = self.runner.git_path(plan.ctx, "objects/info/alternates")
            alternates.parent.mkdir(parents=True, exist_ok=True)
            alternates.write_text(f"{shared}\n", encoding="utf-8")
        except OSError as e:
            raise CloneError(f"could not initialize '{shared / 'pack'}': {e}") from e
        logger.info("共享对象缓存: %s", shared)
        return shared

    def sparse_checkout(self, plan: ClonePlan) -> None:
        """步骤8: cone 模式稀疏检出"""
        assert plan.ctx is not None
        if plan.request.full_clone:
            return
        if self.runner.run(plan.ctx, "sparse-checkout", "init", "--cone") != 0:
            raise CloneError("could not initialize sparse checkout")

    def baseline_config(self, plan: ClonePlan) -> None:
        """步骤9: 推荐配置（首次模式）"""
        assert plan.ctx is not None
        try:
            self.reconciler.reconcile(plan.ctx, reconfigure=False)
        except ConfigurationError as e:
            raise CloneError(f"could not configure '{plan.worktree}': {e}") from e

    def _fetch(self, plan: ClonePlan) -> int:
        progress = "--progress" if plan.request.show_progress else "--no-progress"
        return self.runner.run(plan.ctx, "fetch", "--quiet", progress, "origin")  # type: ignore[arg-type]

    def fetch(self, plan: ClonePlan) -> None:
        """步骤10: fetch；部分克隆失败时清除过滤配置并完整 fetch 一次"""
        assert plan.ctx is not None
        if self._fetch(plan) == 0:
            return
        if plan.accelerated:
            raise CloneError("failed to prefetch commits and trees")

        logger.warning("partial clone failed; attempting full clone")
        if not (
            self.config.unset(plan.ctx, "remote.origin.promisor")
            and self.config.unset(plan.ctx, "remote.origin.partialCloneFilter")
        ):
            raise CloneError("could not configure for full clone")
        if self._fetch(plan) != 0:
            raise CloneError(f"failed to fetch from '{plan.request.url}'")

    def checkout(self, plan: ClonePlan) -> None:
        """步骤11: 分支跟踪与检出"""
        assert plan.ctx is not None and plan.branch is not None
        b = plan.branch
        if not (
            self.config.set(plan.ctx, f"branch.{b}.remote", "origin")
            and self.config.set(plan.ctx, f"branch.{b}.merge", f"refs/heads/{b}")
        ):
            raise CloneError(f"could not configure branch '{b}'")
        if self.runner.run(plan.ctx, "checkout", "-f", "-t", f"origin/{b}") != 0:
            raise CloneError(f"could not checkout 'origin/{b}'")
        logger.info("[Step 11] 已检出 %s", b)

    def register(self, plan: ClonePlan) -> Enlistment:
        """步骤12: 注册（强制模式收敛推荐配置）"""
        assert plan.ctx is not None and plan.root is not None and plan.worktree is not None
        enlistment = Enlistment(
            root=plan.root, worktree=plan.worktree,
            uses_src=plan.request.src, context=plan.ctx,
        )
        try:
            self.registration.register(enlistment, reconfigure=True)
        except RegistrationError as e:
            raise CloneError(str(e)) from e
        return enlistment
