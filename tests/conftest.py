"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest

from danglescan.git.repository import Repository, open_repository


class GitRepo:
    """A throwaway repository driven through the git CLI."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._counter = 0

    def git(self, *args: str, input: str | None = None, check: bool = True) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=self.path,
            input=input,
            capture_output=True,
            text=True,
            check=check,
        )
        return result.stdout.strip()

    @property
    def handle(self) -> Repository:
        return open_repository(self.path)

    def commit(self, message: str, content: str | None = None) -> str:
        """Commit a change to a file on the current branch and return its id."""
        self._counter += 1
        (self.path / "file.txt").write_text(content or f"change {self._counter}\n")
        self.git("add", "file.txt")
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD")

    def orphan_commit(
        self,
        message: str,
        content: str = "AWS_SECRET_ACCESS_KEY=wJalrXUtnFEMI/K7MDENG/bPxRfiCYEXAMPLEKEY\n",
        parent: str | None = None,
    ) -> str:
        """Write a commit that no ref, HEAD or reflog points at."""
        blob = self.git("hash-object", "-w", "--stdin", input=content)
        tree = self.git("mktree", input=f"100644 blob {blob}\tsecret.env\n")
        args = ["commit-tree", tree, "-m", message]
        if parent:
            args += ["-p", parent]
        return self.git(*args)

    def expire_reflogs(self) -> None:
        self.git("reflog", "expire", "--expire=now", "--all")

    def ref_target(self, name: str) -> str | None:
        target = self.git("rev-parse", "--verify", "--quiet", name, check=False)
        return target or None


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path_factory):
    """Keep user git config and DANGLESCAN_* variables out of the tests."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Committer")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "committer@example.com")
    for name in list(os.environ):
        if name.startswith("DANGLESCAN_"):
            monkeypatch.delenv(name)


@pytest.fixture
def git_repo(tmp_path) -> GitRepo:
    """An empty repository with no commits."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    path = tmp_path / "repo"
    path.mkdir()
    repo = GitRepo(path)
    repo.git("init", "-q")
    repo.git("symbolic-ref", "HEAD", "refs/heads/main")
    repo.git("config", "commit.gpgsign", "false")
    repo.git("config", "core.logAllRefUpdates", "true")
    return repo


@pytest.fixture
def repo_with_history(git_repo: GitRepo) -> GitRepo:
    """A repository with three commits on main."""
    git_repo.commit("first")
    git_repo.commit("second")
    git_repo.commit("third")
    return git_repo
