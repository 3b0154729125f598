"""统一异常体系

所有业务异常继承 ScalarError，替代散落的 ValueError / RuntimeError。
CLI 层据此输出 ``error: ...`` 提示并以非零状态退出。
"""

from __future__ import annotations

from collections.abc import Sequence


class ScalarError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class UsageError(ScalarError):
    """命令行参数不合法或有歧义"""

    code = "USAGE_ERROR"


class EnlistmentError(ScalarError):
    """enlistment 路径缺失、已存在或找不到工作区"""

    code = "ENLISTMENT_ERROR"


class GitCommandError(ScalarError):
    """外部 git 命令在重试后仍然失败"""

    code = "GIT_COMMAND_ERROR"

    def __init__(
        self, message: str, args: Sequence[str] = (), returncode: int = 1,
    ) -> None:
        super().__init__(message)
        self.git_args = list(args)
        self.returncode = returncode


class ConfigurationError(ScalarError):
    """配置项写入失败"""

    code = "CONFIGURATION_ERROR"

    def __init__(self, key: str, value: str | None = None) -> None:
        super().__init__(f"could not configure {key}={value}")
        self.key = key
        self.value = value


class ProtocolError(ScalarError):
    """gvfs-helper 不可达或返回的 JSON 无法解析"""

    code = "PROTOCOL_ERROR"


class CloneError(ScalarError):
    """clone 流程中某一步失败"""

    code = "CLONE_ERROR"


class RegistrationError(ScalarError):
    """注册 / 注销 enlistment 失败"""

    code = "REGISTRATION_ERROR"


class SettingsError(ScalarError):
    """scalar 自身的配置文件无法读取或格式错误"""

    code = "SETTINGS_ERROR"
