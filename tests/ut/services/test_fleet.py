"""FleetReconfigurer 单元测试"""

from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

from scalar.core.models import ConfigEntry, FleetItemStatus, RepoContext
from scalar.services.config_reconciler import ConfigReconciler
from scalar.services.fleet import Discovery, FleetReconfigurer, classify_discovery_error
from scalar.services.fsmonitor import FsMonitorCoordinator
from scalar.services.registration import EnlistmentRegistration


@pytest.fixture()
def base(tmp_path: Path) -> Path:
    return Path(os.path.realpath(tmp_path))


@pytest.fixture()
def fleet(runner, git_config) -> FleetReconfigurer:
    fsm = FsMonitorCoordinator(runner, platform="linux")
    reconciler = ConfigReconciler(git_config, fsm, table=[ConfigEntry("gc.auto", "0", True)])
    registration = EnlistmentRegistration(git_config, reconciler, fsm)
    return FleetReconfigurer(runner, reconciler, registration)


def _repo(fake_git, path: Path) -> str:
    path.mkdir(parents=True, exist_ok=True)
    fake_git.on(
        "rev-parse", "--absolute-git-dir",
        stdout=f"{path / '.git'}\n.git\n", cwd=path,
    )
    return str(path)


class TestClassify:
    @pytest.mark.parametrize(("stderr", "kind"), [
        ("fatal: detected dubious ownership in repository at '/x'", Discovery.INVALID_OWNERSHIP),
        ("fatal: invalid gitfile format: /x/.git", Discovery.INVALID_FORMAT),
        ("fatal: expected git repo version <= 1, found 2", Discovery.INVALID_FORMAT),
        ("fatal: not a git repository (or any of the parent directories): .git", Discovery.NOT_FOUND),
        ("", Discovery.NOT_FOUND),
    ])
    def test_classify(self, stderr: str, kind: Discovery) -> None:
        assert classify_discovery_error(stderr) is kind


class TestReconfigureAll:
    def test_stale_record_does_not_stop_the_fleet(self, fake_git, fleet, base: Path) -> None:
        first = _repo(fake_git, base / "one")
        stale = str(base / "gone")
        third = _repo(fake_git, base / "three")
        fake_git.global_config["scalar.repo"] = [first, stale, third]
        fake_git.global_config["maintenance.repo"] = [first, stale, third]

        report = fleet.reconfigure_all(RepoContext(cwd=base))

        assert report.success
        assert [i.status for i in report.items] == [
            FleetItemStatus.RECONFIGURED,
            FleetItemStatus.STALE_REMOVED,
            FleetItemStatus.RECONFIGURED,
        ]
        assert fake_git.global_config["scalar.repo"] == [first, third]
        assert fake_git.global_config["maintenance.repo"] == [first, third]
        assert fake_git.local(first)["gc.auto"] == ["0"]
        assert fake_git.local(third)["gc.auto"] == ["0"]
        assert len(fake_git.invocations("maintenance", "start")) == 2

    def test_stale_record_through_symlink(self, fake_git, fleet, base: Path) -> None:
        real = base / "real"
        (real / "enl" / "src").mkdir(parents=True)
        link = base / "link"
        link.symlink_to(real)
        # 记录保存的是非规范路径，删除 enlistment 后仍须被清理
        stored = str(link / "enl" / "src")
        assert os.path.realpath(stored) != stored
        fake_git.global_config["scalar.repo"] = [stored]
        fake_git.global_config["maintenance.repo"] = [stored]
        shutil.rmtree(real / "enl")

        report = fleet.reconfigure_all(RepoContext(cwd=base))

        assert [i.status for i in report.items] == [FleetItemStatus.STALE_REMOVED]
        assert "scalar.repo" not in fake_git.global_config
        assert "maintenance.repo" not in fake_git.global_config

    def test_reconfigure_forces_required(self, fake_git, fleet, base: Path) -> None:
        repo = _repo(fake_git, base / "r")
        fake_git.global_config["scalar.repo"] = [repo]
        fake_git.local(repo)["gc.auto"] = ["9"]
        fleet.reconfigure_all(RepoContext(cwd=base))
        assert fake_git.local(repo)["gc.auto"] == ["0"]

    def test_contexts_are_isolated(self, fake_git, fleet, base: Path) -> None:
        a = _repo(fake_git, base / "a")
        b = _repo(fake_git, base / "b")
        fake_git.global_config["scalar.repo"] = [a, b]
        caller = RepoContext(cwd=base, parameters=["user.name=x"])
        fleet.reconfigure_all(caller)
        assert caller.parameters == ["user.name=x"]
        assert caller.git_dir is None
        discover = fake_git.invocations("rev-parse", "--absolute-git-dir")
        assert [c.cwd for c in discover] == [a, b]

    def test_failures_reported_with_remediation(
        self, fake_git, fleet, base: Path, caplog: pytest.LogCaptureFixture,
    ) -> None:
        owned = base / "owned"
        owned.mkdir()
        fake_git.on(
            "rev-parse", "--absolute-git-dir", rc=128, cwd=owned,
            stderr="fatal: detected dubious ownership in repository",
        )
        ok = _repo(fake_git, base / "ok")
        plain = base / "plain"
        plain.mkdir()
        fake_git.on("rev-parse", "--absolute-git-dir", rc=128, cwd=plain, stderr="fatal: not a git repository")
        fake_git.global_config["scalar.repo"] = [str(owned), ok, str(plain)]

        with caplog.at_level("WARNING"):
            report = fleet.reconfigure_all(RepoContext(cwd=base))

        assert not report.success
        assert [i.path for i in report.failed] == [str(owned), str(plain)]
        assert report.items[1].status is FleetItemStatus.RECONFIGURED
        assert "different owner" in caplog.text
        assert "repository not found" in caplog.text
        assert f'git config --global --unset --fixed-value scalar.repo "{owned}"' in caplog.text
        # 失败项不会被应用任何配置
        assert "gc.auto" not in fake_git.local(owned)

    def test_file_instead_of_directory(self, fake_git, fleet, base: Path) -> None:
        f = base / "file"
        f.write_text("x", encoding="utf-8")
        fake_git.global_config["scalar.repo"] = [str(f)]
        report = fleet.reconfigure_all(RepoContext(cwd=base))
        assert report.items[0].status is FleetItemStatus.FAILED
        assert fake_git.invocations("rev-parse") == []

    def test_reconcile_failure_fails_item(self, fake_git, fleet, base: Path) -> None:
        repo = _repo(fake_git, base / "r")
        fake_git.global_config["scalar.repo"] = [repo]
        fake_git.on("config", "gc.auto", rc=1)
        report = fleet.reconfigure_all(RepoContext(cwd=base))
        assert report.items[0].status is FleetItemStatus.FAILED
        assert fake_git.invocations("maintenance") == []

    def test_maintenance_failure_only_warns(self, fake_git, fleet, base: Path) -> None:
        repo = _repo(fake_git, base / "r")
        fake_git.global_config["scalar.repo"] = [repo]
        fake_git.on("maintenance", "start", rc=1)
        assert fleet.reconfigure_all(RepoContext(cwd=base)).success

    def test_stale_removal_failure(self, fake_git, fleet, base: Path) -> None:
        stale = str(base / "gone")
        fake_git.global_config["scalar.repo"] = [stale]
        fake_git.on("config", "--global", "--unset", rc=4)
        report = fleet.reconfigure_all(RepoContext(cwd=base))
        assert report.items[0].status is FleetItemStatus.FAILED

    def test_empty_registry(self, fake_git, fleet, base: Path) -> None:
        report = fleet.reconfigure_all(RepoContext(cwd=base))
        assert report.items == []
        assert report.success
