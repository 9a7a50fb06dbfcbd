"""Commit reachability from every ref tip.

The frontier is every ref (tags peeled to their commit), the HEAD of every
worktree, and every id recorded in a reflog. Reflog entries count because git
itself protects them from garbage collection. Traversal follows parent links
only.
"""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING

from danglescan.errors import RepositoryReadError
from danglescan.git.objects import ObjectDatabase
from danglescan.utils.git import GitError

if TYPE_CHECKING:
    from danglescan.git.repository import Repository

logger = logging.getLogger(__name__)

FOR_EACH_REF_FORMAT = "%(objectname) %(objecttype) %(*objectname) %(*objecttype)"


def _is_null_id(sha: str) -> bool:
    return not sha.strip("0")


def _ref_tips(repo: Repository) -> set[str]:
    result = repo.git("for-each-ref", f"--format={FOR_EACH_REF_FORMAT}")
    tips: set[str] = set()
    for line in result.stdout.decode("ascii", errors="replace").splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[1] == "commit":
            tips.add(parts[0])
        elif len(parts) == 4 and parts[3] == "commit":
            # annotated tag peeled to its commit
            tips.add(parts[2])
    return tips


def _head_tip(repo: Repository) -> str | None:
    result = repo.git("rev-parse", "--verify", "--quiet", "HEAD^{commit}", check=False)
    if result.returncode != 0:
        # unborn branch
        return None
    return result.stdout.decode("ascii", errors="replace").strip() or None


def _worktree_head_tips(repo: Repository) -> set[str]:
    result = repo.git("worktree", "list", "--porcelain")
    tips: set[str] = set()
    for line in result.stdout.decode("utf-8", errors="replace").splitlines():
        if line.startswith("HEAD "):
            sha = line[len("HEAD ") :].strip()
            if sha and not _is_null_id(sha):
                tips.add(sha)
    return tips


def _reflog_files(repo: Repository) -> list[Path]:
    common = Path(repo.common_dir)
    bases = [Path(repo.git_dir), common]
    worktrees = common / "worktrees"
    if worktrees.is_dir():
        bases.extend(sorted(p for p in worktrees.iterdir() if p.is_dir()))

    files: list[Path] = []
    for base in dict.fromkeys(p.resolve() for p in bases):
        logs = base / "logs"
        if logs.is_dir():
            files.extend(p for p in sorted(logs.rglob("*")) if p.is_file())
    return files


def _reflog_tips(repo: Repository) -> set[str]:
    tips: set[str] = set()
    for path in _reflog_files(repo):
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise RepositoryReadError(f"Cannot read reflog {path}: {e}") from e
        for line in content.splitlines():
            fields = line.split(" ", 2)
            if len(fields) < 2:
                continue
            for sha in fields[:2]:
                if not _is_null_id(sha):
                    tips.add(sha)
    return tips


def list_ref_tips(repo: Repository, include_reflogs: bool = True) -> set[str]:
    """
    Collect the traversal frontier of ``repo``.

    Parameters:
        repo: Repository to inspect.
        include_reflogs: Also treat every reflog entry as a tip.

    Returns:
        Commit ids of all ref tips. Reflog ids are not verified to exist.

    Raises:
        RepositoryReadError: If refs or reflogs cannot be read.
    """
    try:
        tips = _ref_tips(repo)
        head = _head_tip(repo)
        tips |= _worktree_head_tips(repo)
    except GitError as e:
        raise RepositoryReadError(f"Cannot list refs: {e}") from e
    if head:
        tips.add(head)
    if include_reflogs:
        tips |= _reflog_tips(repo)
    return tips


def find_reachable_commits(
    repo: Repository,
    odb: ObjectDatabase | None = None,
    include_reflogs: bool = True,
) -> set[str]:
    """
    Return every commit id reachable from the ref tips of ``repo``.

    Commit headers for the whole store are loaded in one batch and the walk
    runs in memory. Tips and parents missing from the store (expired reflog
    entries, shallow boundaries) end the walk along that edge.

    Raises:
        RepositoryReadError: If the object database cannot be read. No
            partial result is returned.
    """
    odb = odb or ObjectDatabase(repo)
    tips = list_ref_tips(repo, include_reflogs=include_reflogs)

    try:
        graph = odb.read_commits(odb.commit_ids())
    except GitError as e:
        raise RepositoryReadError(f"Cannot read commit graph: {e}") from e

    reachable: set[str] = set()
    queue = deque(sorted(sha for sha in tips if sha in graph))
    while queue:
        sha = queue.popleft()
        if sha in reachable:
            continue
        reachable.add(sha)
        for parent in graph[sha].parents:
            if parent in graph and parent not in reachable:
                queue.append(parent)

    logger.debug(
        "Walked %d reachable commits from %d tips (%d commits in store)",
        len(reachable),
        len(tips),
        len(graph),
    )
    return reachable
