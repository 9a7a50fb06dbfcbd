"""Ephemeral refs that make dangling commits visible to ref-based tools.

Each dangling commit gets ``refs/dangling/<commit id>``. Creation refuses to
overwrite an existing ref, removal only deletes a ref that still points at
the commit it was created for, and the manager is a context manager so that
cleanup runs on every exit path of the enclosing block.

Example:
    with EphemeralRefManager(repo) as refs:
        exposure = refs.expose_all(dangling.commits)
        run_scanner(repo.directory)
    print(refs.cleanup_report.removed)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from danglescan.errors import RefCreationError, RefRemovalError
from danglescan.git.objects import Commit
from danglescan.utils.git import GitError

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType

    from danglescan.git.repository import Repository

logger = logging.getLogger(__name__)

REF_NAMESPACE = "refs/dangling/"
REFLOG_MESSAGE = "danglescan: expose dangling commit"

_OBJECT_ID = re.compile(r"[0-9a-f]{40}([0-9a-f]{24})?")


def ref_name_for(sha: str) -> str:
    """Return the ephemeral ref name for a commit id."""
    return f"{REF_NAMESPACE}{sha}"


class CleanupPolicy(Enum):
    """What happens to ephemeral refs once the scan is over."""

    REMOVE_ALL = "remove-all"
    RETAIN = "retain"


@dataclass
class ExposureReport:
    """Outcome of exposing a batch of dangling commits."""

    created: list[str] = field(default_factory=list)
    failures: list[RefCreationError] = field(default_factory=list)


@dataclass
class CleanupReport:
    """Outcome of a cleanup pass.

    ``retained`` refs now belong to the caller and are never touched again.
    """

    policy: CleanupPolicy = CleanupPolicy.REMOVE_ALL
    removed: list[str] = field(default_factory=list)
    retained: list[str] = field(default_factory=list)
    failures: list[RefRemovalError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _delete_ref(repo: Repository, name: str, sha: str | None) -> RefRemovalError | None:
    args = ["update-ref", "-d", name]
    if sha:
        args.append(sha)
    try:
        repo.git(*args, timeout=30)
    except GitError as e:
        return RefRemovalError(name, e.stderr or str(e))
    return None


class EphemeralRefManager:
    """Creates, tracks and removes the ephemeral refs of one run.

    The registry maps each created ref name to the commit id it targets. It
    only ever holds refs this instance created.
    """

    def __init__(
        self,
        repo: Repository,
        policy: CleanupPolicy = CleanupPolicy.REMOVE_ALL,
    ) -> None:
        self.repo = repo
        self.policy = policy
        self._registry: dict[str, str] = {}
        self._cleanup_report: CleanupReport | None = None

    @property
    def registry(self) -> dict[str, str]:
        """Snapshot of the refs currently owned by this manager."""
        return dict(self._registry)

    @property
    def cleanup_report(self) -> CleanupReport | None:
        return self._cleanup_report

    def expose(self, commit: Commit | str) -> str:
        """
        Create the ephemeral ref for ``commit`` and register it.

        Returns:
            The created ref name.

        Raises:
            RefCreationError: If the ref already exists, the id is malformed,
                cleanup has already run, or git refuses the update.
        """
        sha = commit.sha if isinstance(commit, Commit) else commit
        name = ref_name_for(sha)

        if self._cleanup_report is not None:
            raise RefCreationError(name, sha, "manager has already been cleaned up")
        if not _OBJECT_ID.fullmatch(sha):
            raise RefCreationError(name, sha, "not a full lowercase object id")
        if name in self._registry:
            raise RefCreationError(name, sha, "ref already exposed in this run")

        try:
            # empty old value: git refuses if the ref already exists
            self.repo.git("update-ref", "-m", REFLOG_MESSAGE, name, sha, "", timeout=30)
        except GitError as e:
            raise RefCreationError(name, sha, e.stderr or str(e)) from e

        self._registry[name] = sha
        logger.debug("Created ref %s", name)
        return name

    def expose_all(self, commits: Iterable[Commit | str]) -> ExposureReport:
        """Expose every commit, collecting failures instead of stopping."""
        report = ExposureReport()
        for commit in commits:
            try:
                report.created.append(self.expose(commit))
            except RefCreationError as e:
                logger.warning("Failed to create ref for dangling commit %s: %s", e.commit_sha, e.reason)
                report.failures.append(e)
        logger.info("Created %d refs for dangling commits", len(report.created))
        return report

    def cleanup(self, policy: CleanupPolicy | None = None) -> CleanupReport:
        """
        Remove or hand over every registered ref, draining the registry.

        Runs once; later calls return the first report. Removal failures are
        collected in the report and never raised.
        """
        if self._cleanup_report is not None:
            return self._cleanup_report

        policy = policy or self.policy
        report = CleanupReport(policy=policy)
        entries = list(self._registry.items())
        self._registry.clear()

        if policy is CleanupPolicy.RETAIN:
            report.retained = [name for name, _ in entries]
            if report.retained:
                logger.info("Keeping %d refs for dangling commits", len(report.retained))
        else:
            for name, sha in entries:
                error = _delete_ref(self.repo, name, sha)
                if error is None:
                    report.removed.append(name)
                else:
                    logger.error("Failed to remove created ref %s: %s", name, error.reason)
                    report.failures.append(error)
            if entries:
                logger.info("Removed %d of %d created refs", len(report.removed), len(entries))

        self._cleanup_report = report
        return report

    def __enter__(self) -> EphemeralRefManager:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()


def list_ephemeral_refs(repo: Repository) -> dict[str, str]:
    """Return every ref under the reserved namespace, mapped to its target."""
    result = repo.git("for-each-ref", "--format=%(refname) %(objectname)", REF_NAMESPACE.rstrip("/"))
    refs: dict[str, str] = {}
    for line in result.stdout.decode("utf-8", errors="replace").splitlines():
        name, _, sha = line.partition(" ")
        if name.startswith(REF_NAMESPACE):
            refs[name] = sha.strip()
    return refs


def prune_ephemeral_refs(repo: Repository) -> CleanupReport:
    """
    Remove refs left under the reserved namespace by earlier runs.

    Raises:
        GitError: If the existing refs cannot be listed.
    """
    report = CleanupReport(policy=CleanupPolicy.REMOVE_ALL)
    for name, sha in list_ephemeral_refs(repo).items():
        error = _delete_ref(repo, name, sha)
        if error is None:
            report.removed.append(name)
        else:
            logger.error("Failed to remove ref %s: %s", name, error.reason)
            report.failures.append(error)
    return report
