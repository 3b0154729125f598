"""Shell 命令执行工具 — 统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，方便测试替换和跨平台适配。
"""

from __future__ import annotations

import logging
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Protocol

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT = 64 * 1024
_CHUNK = 8192


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str = ""
    stderr: str = ""
    truncated: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议 — 抽象子进程调用

    capture=False 时子进程直接继承终端输出（进度条等），结果中 stdout/stderr 为空。
    测试时可注入 fake 实现，无需 patch subprocess。
    """

    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str | Path = ".",
        env: dict[str, str] | None = None,
        capture: bool = True,
        max_output: int = DEFAULT_MAX_OUTPUT,
    ) -> CommandResult:
        """执行命令并返回结果"""
        ...


# =========================================================================
# 默认实现: 本地执行器
# =========================================================================

def _read_bounded(stream: IO[bytes] | None, limit: int) -> tuple[bytes, bool]:
    """读取至多 limit 字节，超出部分继续读出并丢弃，避免子进程阻塞在管道上"""
    if stream is None:
        return b"", False
    kept = bytearray()
    truncated = False
    for chunk in iter(lambda: stream.read(_CHUNK), b""):
        room = limit - len(kept)
        if room > 0:
            kept += chunk[:room]
        if len(chunk) > room:
            truncated = True
    return bytes(kept), truncated


class LocalExecutor:
    """本地子进程执行器（默认实现）

    子进程句柄在 with 块内持有，任何退出路径都会等待子进程结束。
    stderr 在后台线程中读取，与 stdout 同时排空，子进程不会阻塞在任一管道上。
    """

    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str | Path = ".",
        env: dict[str, str] | None = None,
        capture: bool = True,
        max_output: int = DEFAULT_MAX_OUTPUT,
    ) -> CommandResult:
        logger.debug("exec: %s (cwd=%s)", " ".join(cmd), cwd)
        if not capture:
            r = subprocess.run(cmd, cwd=str(cwd), env=env, check=False)
            return CommandResult(returncode=r.returncode)

        stderr_box: list[tuple[bytes, bool]] = []
        with subprocess.Popen(
            cmd, cwd=str(cwd), env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE, stderr=subprocess.PIPE,
        ) as proc:
            reader = threading.Thread(
                target=lambda: stderr_box.append(_read_bounded(proc.stderr, max_output)),
                daemon=True,
            )
            reader.start()
            out, out_cut = _read_bounded(proc.stdout, max_output)
            reader.join()
            returncode = proc.wait()

        err, err_cut = stderr_box[0] if stderr_box else (b"", False)
        return CommandResult(
            returncode=returncode,
            stdout=out.decode("utf-8", errors="replace"),
            stderr=err.decode("utf-8", errors="replace"),
            truncated=out_cut or err_cut,
        )


# =========================================================================
# 全局默认执行器（可替换）
# =========================================================================

_default_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    """获取全局默认命令执行器"""
    return _default_executor


def set_executor(executor: CommandExecutor) -> None:
    """替换全局默认命令执行器（用于测试）"""
    global _default_executor  # noqa: PLW0603
    _default_executor = executor
