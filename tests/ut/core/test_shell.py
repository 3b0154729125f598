"""LocalExecutor 单元测试"""

from __future__ import annotations

import os
import sys

from scalar.utils.shell import DEFAULT_MAX_OUTPUT, LocalExecutor, get_executor, set_executor


class TestLocalExecutor:
    def test_capture_stdout(self, tmp_path) -> None:
        r = LocalExecutor().execute(["echo", "hello"], cwd=tmp_path)
        assert r.success
        assert r.stdout.strip() == "hello"
        assert not r.truncated

    def test_failure_returncode(self, tmp_path) -> None:
        r = LocalExecutor().execute(["false"], cwd=tmp_path)
        assert r.returncode != 0
        assert not r.success

    def test_output_capped(self, tmp_path) -> None:
        cmd = [sys.executable, "-c", "import sys; sys.stdout.write('x' * 100000)"]
        r = LocalExecutor().execute(cmd, cwd=tmp_path, max_output=1000)
        assert r.success
        assert len(r.stdout) == 1000
        assert r.truncated

    def test_large_stderr_does_not_block(self, tmp_path) -> None:
        # stderr 远超管道缓冲区时 stdout 仍能读完，stderr 按上限截断
        cmd = [sys.executable, "-c", "import sys; sys.stderr.write('x' * 300000); print('ok')"]
        r = LocalExecutor().execute(cmd, cwd=tmp_path)
        assert r.success
        assert r.stdout.strip() == "ok"
        assert len(r.stderr) == DEFAULT_MAX_OUTPUT
        assert r.truncated

    def test_env_passed(self, tmp_path) -> None:
        env = {**os.environ, "MY_TEST_VAR": "42"}
        r = LocalExecutor().execute(["env"], cwd=tmp_path, env=env)
        assert "MY_TEST_VAR=42" in r.stdout

    def test_inherit_output(self, tmp_path) -> None:
        r = LocalExecutor().execute(["true"], cwd=tmp_path, capture=False)
        assert r.success
        assert r.stdout == ""


class TestDefaultExecutor:
    def test_replace(self) -> None:
        original = get_executor()
        try:
            marker = LocalExecutor()
            set_executor(marker)
            assert get_executor() is marker
        finally:
            set_executor(original)
