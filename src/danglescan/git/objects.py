"""Read access to the git object database.

Objects are enumerated with ``git cat-file --batch-all-objects``, which
covers loose objects, packfiles and alternates in one pass. Commit headers
are read in bulk through ``git cat-file --batch``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from danglescan.utils.git import GitError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from danglescan.git.repository import Repository

BATCH_CHECK_FORMAT = "%(objectname) %(objecttype)"
OBJECT_TYPES = frozenset({"commit", "tree", "blob", "tag"})


@dataclass(frozen=True)
class Commit:
    """A commit object, reduced to what reachability and reporting need."""

    sha: str
    parents: tuple[str, ...] = ()
    tree: str | None = None
    author: str | None = None
    committer: str | None = None
    summary: str = ""

    @property
    def short_sha(self) -> str:
        return self.sha[:12]


@dataclass
class ObjectDatabase:
    """Bulk reader over a repository's object store."""

    repo: Repository
    timeout: int | None = 600
    _objects: list[tuple[str, str]] | None = field(default=None, repr=False)
    _commits: dict[str, Commit] = field(default_factory=dict, repr=False)

    def iter_objects(self) -> list[tuple[str, str]]:
        """
        Enumerate every object physically present in the store.

        The listing is read once per instance and reused afterwards.

        Returns:
            (object id, object type) pairs, sorted by object id.

        Raises:
            GitError: If git cannot list the store or prints malformed output.
        """
        if self._objects is not None:
            return self._objects

        result = self.repo.git(
            "cat-file",
            "--batch-all-objects",
            f"--batch-check={BATCH_CHECK_FORMAT}",
            timeout=self.timeout,
        )
        objects: list[tuple[str, str]] = []
        for raw in result.stdout.decode("ascii", errors="replace").splitlines():
            if not raw.strip():
                continue
            parts = raw.split()
            if len(parts) != 2 or parts[1] not in OBJECT_TYPES:
                raise GitError(f"Unexpected cat-file output line: {raw!r}")
            objects.append((parts[0], parts[1]))
        self._objects = objects
        return objects

    def commit_ids(self) -> list[str]:
        """Return the id of every commit object in the store, sorted."""
        return [sha for sha, kind in self.iter_objects() if kind == "commit"]

    def read_commits(self, shas: Iterable[str]) -> dict[str, Commit]:
        """
        Read commit headers for ``shas``.

        Ids that are missing from the store or are not commits are left out
        of the result. Results are cached on the instance.

        Raises:
            GitError: If git fails or the batch output cannot be parsed.
        """
        shas = list(shas)
        wanted = [sha for sha in dict.fromkeys(shas) if sha not in self._commits]
        if wanted:
            payload = ("\n".join(wanted) + "\n").encode("ascii")
            result = self.repo.git("cat-file", "--batch", input=payload, timeout=self.timeout)
            for commit in parse_batch_output(result.stdout):
                self._commits[commit.sha] = commit
        return {sha: self._commits[sha] for sha in shas if sha in self._commits}


def parse_batch_output(data: bytes) -> list[Commit]:
    """Parse ``git cat-file --batch`` output, keeping only commit objects."""
    commits: list[Commit] = []
    pos = 0
    while pos < len(data):
        end = data.find(b"\n", pos)
        if end == -1:
            raise GitError("Truncated cat-file --batch header")
        header = data[pos:end].decode("ascii", errors="replace").split()
        pos = end + 1
        if len(header) == 2 and header[1] in ("missing", "ambiguous"):
            continue
        if len(header) != 3:
            raise GitError(f"Unexpected cat-file --batch header: {' '.join(header)!r}")

        sha, kind, size_text = header
        size = int(size_text)
        body = data[pos : pos + size]
        if len(body) != size:
            raise GitError(f"Truncated object body for {sha}")
        pos += size + 1
        if kind == "commit":
            commits.append(parse_commit(sha, body))
    return commits


def parse_commit(sha: str, body: bytes) -> Commit:
    """Parse a raw commit payload into a Commit."""
    head, _, message = body.partition(b"\n\n")
    parents: list[str] = []
    tree = author = committer = None

    for line in head.split(b"\n"):
        # continuation of a multi-line header such as gpgsig
        if not line or line.startswith(b" "):
            continue
        key, _, value = line.partition(b" ")
        text = value.decode("utf-8", errors="replace")
        if key == b"tree":
            tree = text
        elif key == b"parent":
            parents.append(text)
        elif key == b"author":
            author = text
        elif key == b"committer":
            committer = text

    summary = message.decode("utf-8", errors="replace").strip().split("\n", 1)[0]
    return Commit(
        sha=sha,
        parents=tuple(parents),
        tree=tree,
        author=author,
        committer=committer,
        summary=summary,
    )
