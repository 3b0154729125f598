"""共享对象缓存分区键推导

优先使用远端报告的仓库标识（id_<id>）；取不到时对小写化的 URL 求摘要（url_<hex>）。
大小写不同的同一 URL 必须得到相同的键。推导本身从不失败。
"""

from __future__ import annotations

import hashlib
import logging
import os
from collections.abc import Mapping

from scalar.core.config import env_bool
from scalar.core.models import RepoContext
from scalar.services.git import GitRunner
from scalar.utils.json_events import JsonParseError, JsonType, find_first, iter_json_events
from scalar.utils.net import can_url_support_gvfs

logger = logging.getLogger(__name__)

REPOSITORY_ID_PATH = ".repository.id"
# 与既有缓存目录保持兼容的摘要算法
PREFERRED_HASH = "sha1"
FALLBACK_HASH = "sha256"


def hash_cache_key(url: str, algorithm: str = PREFERRED_HASH) -> str:
    """url_<hex>，对小写化的 URL 字节求摘要"""
    h = hashlib.new(algorithm)
    h.update(url.lower().encode("utf-8"))
    return f"url_{h.hexdigest()}"


class CacheKeyDeriver:
    """缓存键推导器（需在仓库内执行：gvfs-helper 依赖 git 目录）"""

    def __init__(
        self,
        runner: GitRunner,
        *,
        environ: Mapping[str, str] | None = None,
        skip_info_env: str = "SCALAR_TEST_SKIP_VSTS_INFO",
        allow_http_env: str = "GIT_TEST_ALLOW_GVFS_VIA_HTTP",
    ) -> None:
        self.runner = runner
        self._environ = environ
        self.skip_info_env = skip_info_env
        self.allow_http_env = allow_http_env

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def derive(self, ctx: RepoContext, url: str) -> str:
        """返回 id_<远端标识> 或 url_<摘要>"""
        repo_id = self.query_repository_id(ctx, url)
        if repo_id:
            return f"id_{repo_id}"
        return hash_cache_key(url, self._hash_algorithm(ctx))

    def query_repository_id(self, ctx: RepoContext, url: str) -> str | None:
        """向 vsts/info 端点查询仓库标识，任何失败都返回 None"""
        env = dict(self.environ)
        if env_bool(self.skip_info_env, env):
            return None
        if not can_url_support_gvfs(url, allow_http=env_bool(self.allow_http_env, env)):
            return None

        r = self.runner.capture(ctx, "gvfs-helper", "--remote", url, "endpoint", "vsts/info")
        if not r.success:
            logger.debug("vsts/info 查询失败 (rc=%d): %s", r.returncode, r.stderr.strip())
            return None
        if r.truncated:
            logger.warning("vsts/info output exceeded %d bytes", self.runner.max_output)
            return None
        try:
            ev = find_first(
                iter_json_events(r.stdout),
                lambda e: e.type is JsonType.STRING
                and e.path.lower() == REPOSITORY_ID_PATH,
            )
        except JsonParseError as e:
            logger.warning("JSON parse error (%s): %s", r.stdout.strip(), e)
            return None
        return ev.value if ev is not None else None

    def _hash_algorithm(self, ctx: RepoContext) -> str:
        try:
            hashlib.new(PREFERRED_HASH)
            return PREFERRED_HASH
        except ValueError:
            pass
        # 运行时禁用了 sha1（如 FIPS 模式），退回仓库自身的对象格式
        r = self.runner.capture(ctx, "rev-parse", "--show-object-format")
        fmt = r.stdout.strip() if r.success else ""
        return fmt if fmt in hashlib.algorithms_available else FALLBACK_HASH
