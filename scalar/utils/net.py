"""网络工具 — 加速协议的 URL 校验"""

from __future__ import annotations


def can_url_support_gvfs(url: str, *, allow_http: bool = False) -> bool:
    """gvfs 协议只走 https://；测试环境可放开 http://"""
    return url.startswith("https://") or (allow_http and url.startswith("http://"))
