"""EnlistmentLocator 单元测试"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from scalar.core.exceptions import EnlistmentError, UsageError
from scalar.core.models import RepoContext
from scalar.services.locator import EnlistmentLocator


@pytest.fixture()
def locator(runner) -> EnlistmentLocator:
    return EnlistmentLocator(runner)


@pytest.fixture()
def base(tmp_path: Path) -> Path:
    return Path(os.path.realpath(tmp_path))


class TestLocate:
    def test_src_layout(self, fake_git, locator, make_repo, base: Path) -> None:
        root = base / "enlist"
        make_repo(root / "src")
        fake_git.on("rev-parse", "--show-toplevel", stdout=f"{root / 'src'}\n")
        e = locator.locate(RepoContext(cwd=base), ["enlist"])
        assert e.uses_src
        assert e.root == root
        assert e.worktree == root / "src"
        assert e.context.cwd == root / "src"
        assert fake_git.calls[0].cwd == str(root / "src")

    def test_plain_layout_uses_toplevel(self, fake_git, locator, make_repo, base: Path) -> None:
        repo = make_repo(base / "repo")
        (repo / "sub").mkdir()
        fake_git.on("rev-parse", "--show-toplevel", stdout=f"{repo}\n")
        e = locator.locate(RepoContext(cwd=repo / "sub"))
        assert not e.uses_src
        assert e.root == e.worktree == repo

    def test_trailing_separator(self, fake_git, locator, make_repo, base: Path) -> None:
        make_repo(base / "e" / "src")
        fake_git.on("rev-parse", "--show-toplevel", stdout=f"{base / 'e' / 'src'}\n")
        e = locator.locate(RepoContext(cwd=base), [f"{base / 'e'}/"])
        assert e.root == base / "e"

    def test_context_parameters_carried(self, fake_git, locator, make_repo, base: Path) -> None:
        repo = make_repo(base / "repo")
        fake_git.on("rev-parse", "--show-toplevel", stdout=f"{repo}\n")
        start = RepoContext(cwd=repo, parameters=["a.b=c"])
        e = locator.locate(start)
        assert e.context.parameters == ["a.b=c"]
        assert e.context is not start

    def test_symlinked_path_is_canonical(self, fake_git, locator, make_repo, base: Path) -> None:
        real = base / "real"
        make_repo(real / "enl" / "src")
        (base / "link").symlink_to(real)
        fake_git.on("rev-parse", "--show-toplevel", stdout=f"{real / 'enl' / 'src'}\n")
        e = locator.locate(RepoContext(cwd=base / "link"), ["enl"])
        assert e.root == real / "enl"
        assert e.worktree == real / "enl" / "src"
        assert e.context.cwd == real / "enl" / "src"


class TestLocateErrors:
    def test_too_many_arguments(self, locator, ctx) -> None:
        with pytest.raises(UsageError):
            locator.locate(ctx, ["a", "b"])

    def test_missing_path(self, locator, ctx) -> None:
        with pytest.raises(EnlistmentError, match="does not exist"):
            locator.locate(ctx, ["nowhere"])

    def test_no_worktree(self, fake_git, locator, ctx) -> None:
        fake_git.on("rev-parse", "--show-toplevel", rc=128, stderr="fatal: not a git repository")
        with pytest.raises(EnlistmentError, match="require a worktree"):
            locator.locate(ctx)
