"""单元测试共享 fixture — 以内存实现替代真实 git

FakeGit 实现 CommandExecutor 协议：
- ``git config`` 读写落在内存字典（按 --global / 工作目录区分作用域）
- ``git init <dir>`` 会真实创建目录（clone 的清理步骤依赖它）
- 其他子命令按 ``on()`` 注册的规则返回脚本化结果，未匹配时返回成功
所有调用都记录在 ``calls`` 中，便于断言执行顺序与参数。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from scalar.core.models import RepoContext
from scalar.services.git import GitConfig, GitRunner
from scalar.utils.shell import DEFAULT_MAX_OUTPUT, CommandResult


@dataclass
class Call:
    args: list[str]
    argv: list[str]
    cwd: str
    parameters: list[str]
    env: dict[str, str] | None
    capture: bool


@dataclass
class _Rule:
    prefix: tuple[str, ...]
    result: CommandResult
    times: int | None = None
    cwd: str | None = None


def _split_global_options(argv: list[str]) -> tuple[list[str], list[str]]:
    """去掉 git 可执行文件和子命令前的全局选项，返回 (-c 参数, 子命令参数)"""
    rest = list(argv[1:])
    parameters: list[str] = []
    while rest:
        if rest[0] == "-c" and len(rest) > 1:
            parameters.append(rest[1])
            rest = rest[2:]
        elif rest[0].startswith(("--git-dir=", "--work-tree=")):
            rest = rest[1:]
        else:
            break
    return parameters, rest


@dataclass
class FakeGit:
    global_config: dict[str, list[str]] = field(default_factory=dict)
    local_config: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    calls: list[Call] = field(default_factory=list)
    rules: list[_Rule] = field(default_factory=list)

    # ---- 脚本化 ----

    def on(
        self, *prefix: str, rc: int = 0, stdout: str = "", stderr: str = "",
        times: int | None = None, cwd: str | Path | None = None, truncated: bool = False,
    ) -> FakeGit:
        """子命令参数以 prefix 开头（且工作目录匹配）时返回给定结果；后注册的规则优先"""
        self.rules.append(_Rule(
            prefix, CommandResult(rc, stdout, stderr, truncated), times,
            None if cwd is None else str(cwd),
        ))
        return self

    def local(self, cwd: str | Path) -> dict[str, list[str]]:
        return self.local_config.setdefault(str(cwd), {})

    def invocations(self, *prefix: str) -> list[Call]:
        return [c for c in self.calls if tuple(c.args[: len(prefix)]) == prefix]

    def commands(self) -> list[str]:
        return [" ".join(c.args) for c in self.calls]

    # ---- CommandExecutor ----

    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str | Path = ".",
        env: dict[str, str] | None = None,
        capture: bool = True,
        max_output: int = DEFAULT_MAX_OUTPUT,
    ) -> CommandResult:
        parameters, args = _split_global_options(cmd)
        self.calls.append(Call(args, list(cmd), str(cwd), parameters, env, capture))
        for rule in reversed(self.rules):
            if tuple(args[: len(rule.prefix)]) != rule.prefix:
                continue
            if rule.cwd is not None and rule.cwd != str(cwd):
                continue
            if rule.times is not None:
                if rule.times <= 0:
                    continue
                rule.times -= 1
            return rule.result
        if args and args[0] == "config":
            return self._config(args[1:], str(cwd))
        if args and args[0] == "init":
            (Path(cwd) / args[-1] / ".git" / "objects").mkdir(parents=True, exist_ok=True)
        return CommandResult(0)

    def _config(self, args: list[str], cwd: str) -> CommandResult:
        store = self.local(cwd)
        if args and args[0] == "--global":
            store = self.global_config
            args = args[1:]
        flags = [a for a in args if a.startswith("--")]
        operands = [a for a in args if not a.startswith("--")]
        key = operands[0].lower()
        values = store.get(key)

        if "--get-all" in flags:
            if not values:
                return CommandResult(1)
            return CommandResult(0, "".join(f"{v}\n" for v in values))
        if "--get" in flags:
            if not values:
                return CommandResult(1)
            if "--fixed-value" in flags:
                return CommandResult(0 if operands[1] in values else 1, f"{operands[1]}\n")
            return CommandResult(0, f"{values[-1]}\n")
        if "--unset-all" in flags:
            if not values:
                return CommandResult(5)
            del store[key]
            return CommandResult(0)
        if "--unset" in flags:
            if not values or operands[1] not in values:
                return CommandResult(5)
            values.remove(operands[1])
            if not values:
                del store[key]
            return CommandResult(0)
        if "--add" in flags:
            store.setdefault(key, []).append(operands[1])
            return CommandResult(0)
        store[key] = [operands[1]]
        return CommandResult(0)


@pytest.fixture()
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture()
def runner(fake_git: FakeGit) -> GitRunner:
    return GitRunner(fake_git)


@pytest.fixture()
def git_config(runner: GitRunner) -> GitConfig:
    return GitConfig(runner)


@pytest.fixture()
def ctx(tmp_path: Path) -> RepoContext:
    return RepoContext(cwd=tmp_path)


def _make_repo(path: Path) -> Path:
    (path / ".git" / "objects").mkdir(parents=True)
    (path / ".git" / "HEAD").write_text("ref: refs/heads/main\n", encoding="utf-8")
    return path


@pytest.fixture()
def make_repo():
    """创建最小的非裸仓库目录结构（.git/HEAD + .git/objects）"""
    return _make_repo
