"""cache server 发现协议

通过 ``git gvfs-helper --remote <url> config`` 获取 JSON 文档，
在事件流上按结构匹配：

    .CacheServers[N].Url            字符串
    .CacheServers[N].GlobalDefault  布尔 true（协议保证至多一个）

每个操作都是“找到即停”的搜索，代价与首个匹配的位置成正比。
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Iterator, Mapping

from scalar.core.config import env_bool
from scalar.core.exceptions import ProtocolError
from scalar.core.models import CacheServerDescriptor, NegotiationResult, RepoContext
from scalar.services.git import GitRunner
from scalar.utils.json_events import JsonEvent, JsonParseError, JsonType, find_first, iter_json_events
from scalar.utils.net import can_url_support_gvfs

logger = logging.getLogger(__name__)

DEFAULT_REMOTE = "origin"

_ENTRY_RE = re.compile(r"^\.CacheServers\[(\d+)\]\.(Url|GlobalDefault)$", re.IGNORECASE)


def _entry_field(ev: JsonEvent) -> tuple[int, str] | None:
    """(N, 字段名小写)，路径不是 .CacheServers[N].<Url|GlobalDefault> 时返回 None"""
    m = _ENTRY_RE.match(ev.path)
    if not m:
        return None
    return int(m.group(1)), m.group(2).lower()


def iter_cache_server_urls(events: Iterable[JsonEvent]) -> Iterator[tuple[int, str]]:
    """按文档顺序产出每个 (N, .CacheServers[N].Url)"""
    for ev in events:
        if ev.type is not JsonType.STRING:
            continue
        field = _entry_field(ev)
        if field and field[1] == "url":
            yield field[0], ev.value


def _is_default_marker(ev: JsonEvent) -> bool:
    if ev.type is not JsonType.TRUE:
        return False
    field = _entry_field(ev)
    return field is not None and field[1] == "globaldefault"


def select_default(document: str) -> int | None:
    """GlobalDefault 为 true 的条目下标；遇到第一个即停止"""
    ev = find_first(iter_json_events(document), _is_default_marker)
    if ev is None:
        return None
    return _entry_field(ev)[0]  # type: ignore[index]


def resolve_url(document: str, index: int) -> str | None:
    """.CacheServers[index].Url 的值"""
    key = f".CacheServers[{index}].Url".lower()
    ev = find_first(
        iter_json_events(document),
        lambda e: e.type is JsonType.STRING and e.path.lower() == key,
    )
    return ev.value if ev is not None else None


class CacheServerClient:
    """cache server 查询客户端（需在仓库内执行：gvfs-helper 依赖 git 目录）"""

    def __init__(
        self,
        runner: GitRunner,
        *,
        environ: Mapping[str, str] | None = None,
        allow_http_env: str = "GIT_TEST_ALLOW_GVFS_VIA_HTTP",
    ) -> None:
        self.runner = runner
        self._environ = environ
        self.allow_http_env = allow_http_env

    def supports_protocol(self, url: str) -> bool:
        environ = os.environ if self._environ is None else self._environ
        return can_url_support_gvfs(
            url, allow_http=env_bool(self.allow_http_env, dict(environ)),
        )

    def query_config(self, ctx: RepoContext, url: str) -> str | None:
        """调用 gvfs/config 端点，失败返回 None

        异常:
            ProtocolError: 输出超过捕获上限（文档不完整）
        """
        r = self.runner.capture(ctx, "gvfs-helper", "--remote", url, "config")
        if not r.success:
            logger.debug("gvfs/config 查询失败 (rc=%d): %s", r.returncode, r.stderr.strip())
            return None
        if r.truncated:
            raise ProtocolError(f"gvfs/config output exceeded {self.runner.max_output} bytes")
        return r.stdout

    def list_cache_servers(self, ctx: RepoContext, url: str) -> list[CacheServerDescriptor]:
        """列出全部 cache server（操作者显式请求，失败需报错）

        异常:
            ProtocolError: 端点不可达、输出过大或 JSON 无法解析
        """
        if not self.supports_protocol(url):
            return []
        document = self.query_config(ctx, url)
        if document is None:
            raise ProtocolError("Could not access gvfs/config endpoint")
        try:
            default = select_default(document)
            return [
                CacheServerDescriptor(index=i, url=u, is_global_default=i == default)
                for i, u in iter_cache_server_urls(iter_json_events(document))
            ]
        except JsonParseError as e:
            raise ProtocolError(f"JSON parse error: {e}") from e

    def negotiate(self, ctx: RepoContext, url: str) -> NegotiationResult:
        """判断是否可走加速协议并给出默认 cache server

        端点不可用或返回异常时静默退回“不加速”；
        没有条目标记 GlobalDefault 时取第 0 项。
        """
        if not self.supports_protocol(url):
            return NegotiationResult(supported=False)
        try:
            document = self.query_config(ctx, url)
        except ProtocolError as e:
            logger.warning("%s, 不使用加速协议", e)
            return NegotiationResult(supported=False)
        if document is None:
            return NegotiationResult(supported=False)
        try:
            index = select_default(document)
            server_url = resolve_url(document, 0 if index is None else index)
        except JsonParseError as e:
            logger.warning("gvfs/config 返回无法解析的 JSON，不使用加速协议: %s", e)
            return NegotiationResult(supported=False)
        return NegotiationResult(supported=True, cache_server_url=server_url)

    def resolve_remote(self, ctx: RepoContext, remote: str | None) -> str:
        """--list 参数解析：含 / 的视为 URL，否则视为远端名（默认 origin）

        异常:
            ProtocolError: 远端不存在或没有 URL
        """
        if remote and "/" in remote:
            return remote
        name = remote or DEFAULT_REMOTE
        r = self.runner.capture(ctx, "remote", "get-url", name)
        url = r.stdout.strip()
        if not r.success:
            raise ProtocolError(f"no such remote: '{name}'")
        if not url:
            raise ProtocolError(f"remote '{name}' has no URLs")
        return url
