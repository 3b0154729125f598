"""路径工具 — enlistment 目录推导与缓存根目录"""

from __future__ import annotations

import ntpath
import os
import sys
from collections.abc import Mapping
from pathlib import Path

_SEPARATORS = "/\\" if sys.platform == "win32" else "/"


def trim_trailing_separators(path: str) -> str:
    """去掉末尾的路径分隔符（保留根目录本身）"""
    trimmed = path.rstrip(_SEPARATORS)
    return trimmed or path[:1]


def absolute_path(path: str | Path, base: str | Path | None = None) -> Path:
    """相对路径按 base（默认当前目录）补全；不要求路径存在"""
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = Path(base or os.getcwd()) / p
    return Path(os.path.normpath(p))


def is_inside(path: str | Path, directory: str | Path, *, ignore_case: bool = False) -> bool:
    """path 等于 directory 或位于其下"""
    a = os.path.normpath(str(absolute_path(path)))
    b = os.path.normpath(str(absolute_path(directory)))
    if ignore_case:
        a, b = a.lower(), b.lower()
    return a == b or a.startswith(b.rstrip(os.sep) + os.sep)


def is_nonbare_repository_dir(path: Path) -> bool:
    """path 下的 .git 是有效的仓库目录或 gitfile"""
    dot_git = path / ".git"
    if dot_git.is_dir():
        return (dot_git / "HEAD").is_file() and (dot_git / "objects").is_dir()
    if dot_git.is_file():
        try:
            head = dot_git.read_text(encoding="utf-8", errors="replace")[:512]
        except OSError:
            return False
        return head.startswith("gitdir: ")
    return False


def default_cache_root(
    enlistment_root: Path,
    *,
    unattended: bool = False,
    platform: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> Path | None:
    """本地共享对象缓存的默认根目录，无法确定时返回 None

    - 无人值守: enlistment 上一级目录下的 .scalarCache
    - Windows: 盘符根目录下的 .scalarCache
    - macOS: $HOME/.scalarCache
    - 其他: $XDG_CACHE_HOME/scalar 或 $HOME/.cache/scalar
    """
    platform = platform or sys.platform
    env = os.environ if environ is None else environ

    if unattended:
        return enlistment_root.parent / ".scalarCache"

    if platform == "win32":
        drive, _ = ntpath.splitdrive(str(enlistment_root))
        return Path(f"{drive}\\.scalarCache") if drive else Path("/.scalarCache")
    if platform == "darwin":
        home = env.get("HOME")
        return Path(home) / ".scalarCache" if home else None

    xdg = env.get("XDG_CACHE_HOME")
    if xdg:
        return Path(xdg) / "scalar"
    home = env.get("HOME")
    if home:
        return Path(home) / ".cache" / "scalar"
    return None
