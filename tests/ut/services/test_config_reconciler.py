"""ConfigReconciler 单元测试"""

from __future__ import annotations

import pytest

from scalar.core.exceptions import ConfigurationError
from scalar.core.models import ConfigEntry
from scalar.services.config_reconciler import (
    LOG_EXCLUDE_DEFAULT,
    ConfigReconciler,
    recommended_config,
)
from scalar.services.fsmonitor import FsMonitorCoordinator

TABLE = [
    ConfigEntry("gc.auto", "0", True),
    ConfigEntry("status.aheadBehind", "false"),
]


@pytest.fixture()
def reconciler(git_config) -> ConfigReconciler:
    return ConfigReconciler(git_config, table=TABLE)


def _writes(fake_git) -> list[str]:
    """写类 config 调用（不含读取）"""
    return [
        " ".join(c.args) for c in fake_git.invocations("config")
        if not {"--get", "--get-all"} & set(c.args)
    ]


class TestRecommendedConfig:
    def test_windows_adds_ssl_backend(self) -> None:
        keys = [e.key for e in recommended_config("win32")]
        assert "http.sslBackend" in keys
        assert "http.sslBackend" not in [e.key for e in recommended_config("linux")]

    def test_required_before_optional(self) -> None:
        table = recommended_config("linux")
        flags = [e.overwrite_on_reconfigure for e in table]
        assert flags == sorted(flags, reverse=True)
        assert ConfigEntry("core.configWriteLockTimeoutMS", "150") in table


class TestReconcile:
    def test_first_run_writes_missing(self, fake_git, reconciler, ctx) -> None:
        reconciler.reconcile(ctx)
        store = fake_git.local(ctx.cwd)
        assert store["gc.auto"] == ["0"]
        assert store["status.aheadbehind"] == ["false"]
        assert store["log.excludedecoration"] == [LOG_EXCLUDE_DEFAULT]

    def test_idempotent(self, fake_git, reconciler, ctx) -> None:
        reconciler.reconcile(ctx)
        fake_git.calls.clear()
        reconciler.reconcile(ctx)
        assert _writes(fake_git) == []

    def test_first_run_keeps_operator_values(self, fake_git, reconciler, ctx) -> None:
        fake_git.local(ctx.cwd)["gc.auto"] = ["7"]
        reconciler.reconcile(ctx)
        assert fake_git.local(ctx.cwd)["gc.auto"] == ["7"]

    def test_reconfigure_forces_required_only(self, fake_git, reconciler, ctx) -> None:
        store = fake_git.local(ctx.cwd)
        store["gc.auto"] = ["7"]
        store["status.aheadbehind"] = ["true"]
        reconciler.reconcile(ctx, reconfigure=True)
        assert store["gc.auto"] == ["0"]
        assert store["status.aheadbehind"] == ["true"]

    def test_log_exclude_not_duplicated(self, fake_git, reconciler, ctx) -> None:
        fake_git.local(ctx.cwd)["log.excludedecoration"] = ["refs/custom/*"]
        reconciler.reconcile(ctx, reconfigure=True)
        assert fake_git.local(ctx.cwd)["log.excludedecoration"] == ["refs/custom/*"]

    def test_failure_names_key(self, fake_git, reconciler, ctx) -> None:
        fake_git.on("config", "status.aheadBehind", rc=1)
        with pytest.raises(ConfigurationError) as exc:
            reconciler.reconcile(ctx)
        assert exc.value.key == "status.aheadBehind"
        # 已写入的项不回滚
        assert fake_git.local(ctx.cwd)["gc.auto"] == ["0"]


class TestLegacyFsmonitor:
    def test_migrates_value(self, fake_git, reconciler, ctx) -> None:
        fake_git.local(ctx.cwd)["core.usebuiltinfsmonitor"] = ["true"]
        reconciler.reconcile(ctx)
        store = fake_git.local(ctx.cwd)
        assert store["core.fsmonitor"] == ["true"]
        assert "core.usebuiltinfsmonitor" not in store

    def test_existing_fsmonitor_wins(self, fake_git, reconciler, ctx) -> None:
        store = fake_git.local(ctx.cwd)
        store["core.usebuiltinfsmonitor"] = ["true"]
        store["core.fsmonitor"] = ["/usr/bin/hook"]
        reconciler.reconcile(ctx)
        assert store["core.fsmonitor"] == ["/usr/bin/hook"]
        assert "core.usebuiltinfsmonitor" not in store


class TestFsmonitorEntry:
    def test_added_when_supported(self, fake_git, runner, git_config, ctx) -> None:
        fsmonitor = FsMonitorCoordinator(runner, platform="darwin")
        ConfigReconciler(git_config, fsmonitor, table=TABLE).reconcile(ctx)
        assert fake_git.local(ctx.cwd)["core.fsmonitor"] == ["true"]

    def test_skipped_on_unsupported_platform(self, fake_git, runner, git_config, ctx) -> None:
        fsmonitor = FsMonitorCoordinator(runner, platform="linux")
        ConfigReconciler(git_config, fsmonitor, table=TABLE).reconcile(ctx)
        assert "core.fsmonitor" not in fake_git.local(ctx.cwd)
        assert fake_git.invocations("fsmonitor--daemon") == []
