"""集中配置管理

scalar 自身的运行参数（不是 git 配置），支持从 YAML 文件加载 + 编程式覆盖。
git 配置由 ConfigReconciler 通过 git 命令维护，不在这里。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from scalar.core.exceptions import SettingsError
from scalar.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset(("1", "true", "yes", "on"))


@dataclass
class Config:
    """scalar 全局配置"""

    # git
    git_executable: str = "git"
    git_retries: int = 3
    config_lock_timeout_ms: int = 150

    # 子进程输出上限（字节），超出部分读取后丢弃
    max_output_bytes: int = 64 * 1024

    # 环境变量名
    unattended_env: str = "Scalar_UNATTENDED"
    skip_vsts_info_env: str = "SCALAR_TEST_SKIP_VSTS_INFO"
    allow_http_env: str = "GIT_TEST_ALLOW_GVFS_VIA_HTTP"

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认

        异常:
            SettingsError: 文件无法读取、过大或不是合法 YAML
        """
        path = path or default_config_path()
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError, OSError) as e:
            raise SettingsError(f"invalid settings file {path}: {e}") from e
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def is_unattended(self, environ: dict[str, str] | None = None) -> bool:
        return env_bool(self.unattended_env, environ)


def env_bool(name: str, environ: dict[str, str] | None = None) -> bool:
    """按 git 的规则解析布尔型环境变量，未设置视为 False"""
    env = os.environ if environ is None else environ
    return env.get(name, "").strip().lower() in _TRUE_VALUES


def default_config_path() -> Path:
    """$SCALAR_CONFIG > $XDG_CONFIG_HOME/scalar/config.yml > ~/.config/scalar/config.yml"""
    explicit = os.environ.get("SCALAR_CONFIG")
    if explicit:
        return Path(explicit)
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "scalar" / "config.yml"


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str | Path | None = None) -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.debug("配置已加载: %s", path or default_config_path())
    return _current
