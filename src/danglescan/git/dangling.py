"""Dangling commit discovery.

A commit is dangling when it is present in the object store but not
reachable from any ref tip, HEAD, or reflog entry. Trees, blobs and tags are
never classified on their own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from danglescan.errors import ObjectEnumerationError
from danglescan.git.objects import Commit, ObjectDatabase
from danglescan.git.reachability import find_reachable_commits
from danglescan.utils.git import GitError

if TYPE_CHECKING:
    from danglescan.git.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class DanglingObjects:
    """Result of a discovery pass.

    Attributes:
        commits: Dangling commits, ordered by object id.
        total_commits: Number of commit objects found in the store.
        reachable_commits: Number of those reachable from a ref tip.
    """

    commits: list[Commit] = field(default_factory=list)
    total_commits: int = 0
    reachable_commits: int = 0

    @property
    def count(self) -> int:
        return len(self.commits)

    @property
    def shas(self) -> set[str]:
        return {c.sha for c in self.commits}

    def __bool__(self) -> bool:
        return bool(self.commits)


def find_dangling_objects(
    repo: Repository,
    reachable: set[str] | None = None,
    odb: ObjectDatabase | None = None,
    include_reflogs: bool = True,
) -> DanglingObjects:
    """
    Classify every commit in the object store as reachable or dangling.

    Parameters:
        repo: Repository to inspect.
        reachable: Precomputed reachable set; walked fresh when None.
        odb: Object database reader to share with the walker.
        include_reflogs: Count reflog entries as ref tips when walking.

    Returns:
        DanglingObjects with the dangling commits in object-id order.

    Raises:
        RepositoryReadError: If the reachability walk fails.
        ObjectEnumerationError: If the store cannot be fully enumerated.
    """
    odb = odb or ObjectDatabase(repo)
    if reachable is None:
        reachable = find_reachable_commits(repo, odb=odb, include_reflogs=include_reflogs)

    try:
        commit_ids = odb.commit_ids()
        dangling_ids = [sha for sha in commit_ids if sha not in reachable]
        commits = odb.read_commits(dangling_ids)
    except GitError as e:
        raise ObjectEnumerationError(f"Cannot enumerate object store: {e}") from e

    missing = [sha for sha in dangling_ids if sha not in commits]
    if missing:
        raise ObjectEnumerationError(
            f"{len(missing)} enumerated commit(s) could not be read, e.g. {missing[0]}"
        )

    result = DanglingObjects(
        commits=[commits[sha] for sha in dangling_ids],
        total_commits=len(commit_ids),
        reachable_commits=len(commit_ids) - len(dangling_ids),
    )
    logger.info("Found %d dangling commits", result.count)
    for commit in result.commits:
        logger.debug("Dangling commit: %s %s", commit.sha, commit.summary)
    return result
