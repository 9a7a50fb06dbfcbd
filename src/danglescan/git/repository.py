"""Repository acquisition: open a local repository or clone a remote one."""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from danglescan.errors import RepositoryAcquisitionError
from danglescan.utils.git import GitError, run_git

logger = logging.getLogger(__name__)

CLONE_TIMEOUT = 1800


@dataclass(frozen=True)
class Repository:
    """Handle to an opened repository.

    Attributes:
        directory: Directory handed to scanners (work tree root, or the git
            dir itself for bare repositories).
        git_dir: Absolute path of the per-worktree git directory.
        common_dir: Absolute path of the shared git directory (objects, refs).
        bare: Whether the repository has no work tree.
    """

    directory: Path
    git_dir: Path
    common_dir: Path
    bare: bool = False

    def git(self, *args: str, **kwargs):
        """Run a git command against this repository."""
        return run_git(self.directory, *args, **kwargs)


def open_repository(path: Path) -> Repository:
    """
    Open an existing repository at ``path``.

    Raises:
        RepositoryAcquisitionError: If ``path`` is missing or not a git repository.
    """
    path = Path(path).expanduser()
    if not path.is_dir():
        raise RepositoryAcquisitionError(f"Repository path not found: {path}")

    try:
        result = run_git(
            path,
            "rev-parse",
            "--is-bare-repository",
            "--absolute-git-dir",
            "--git-common-dir",
            timeout=30,
        )
    except GitError as e:
        raise RepositoryAcquisitionError(f"Not a git repository: {path} ({e})") from e

    lines = result.stdout.decode("utf-8", errors="replace").splitlines()
    if len(lines) < 3:
        raise RepositoryAcquisitionError(f"Unexpected git rev-parse output for {path}")

    bare = lines[0].strip() == "true"
    git_dir = Path(lines[1].strip())
    common_dir = Path(lines[2].strip())
    if not common_dir.is_absolute():
        common_dir = (path / common_dir).resolve()

    if bare:
        directory = git_dir
    else:
        try:
            toplevel = run_git(path, "rev-parse", "--show-toplevel", timeout=30)
        except GitError as e:
            raise RepositoryAcquisitionError(f"Cannot resolve work tree of {path}: {e}") from e
        directory = Path(toplevel.stdout.decode("utf-8", errors="replace").strip())

    return Repository(directory=directory, git_dir=git_dir, common_dir=common_dir, bare=bare)


def clone_repository(url: str, destination: Path) -> Repository:
    """
    Clone ``url`` into ``destination`` and open the result.

    Raises:
        RepositoryAcquisitionError: If the clone fails.
    """
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        run_git(
            destination.parent,
            "clone",
            "--quiet",
            "--no-checkout",
            url,
            str(destination),
            timeout=CLONE_TIMEOUT,
        )
    except GitError as e:
        raise RepositoryAcquisitionError(f"Failed to clone {url}: {e}") from e
    return open_repository(destination)


@contextmanager
def acquire_repository(
    repo_url: str | None = None,
    repo_path: Path | None = None,
    clone_dir: Path | None = None,
) -> Iterator[Repository]:
    """
    Yield a repository handle from exactly one of ``repo_url`` or ``repo_path``.

    A remote is cloned into ``clone_dir`` when given, otherwise into a
    temporary directory that is removed when the block exits.

    Raises:
        RepositoryAcquisitionError: If both or neither source is given, or
            the repository cannot be opened or cloned.
    """
    if (repo_url is None) == (repo_path is None):
        raise RepositoryAcquisitionError("Exactly one of repo_url or repo_path is required")

    if repo_path is not None:
        repo = open_repository(repo_path)
        logger.info("Using existing repo: %s", repo.directory)
        yield repo
    elif clone_dir is not None:
        repo = clone_repository(repo_url, clone_dir)
        logger.info("Cloned repo: %s into %s", repo_url, repo.directory)
        yield repo
    else:
        with tempfile.TemporaryDirectory(prefix="danglescan-") as tmp:
            repo = clone_repository(repo_url, Path(tmp) / "repo")
            logger.info("Cloned repo: %s", repo_url)
            yield repo
