"""Git object discovery and ephemeral ref management."""

from danglescan.git.dangling import DanglingObjects, find_dangling_objects
from danglescan.git.objects import Commit, ObjectDatabase
from danglescan.git.reachability import find_reachable_commits, list_ref_tips
from danglescan.git.refs import (
    REF_NAMESPACE,
    CleanupPolicy,
    CleanupReport,
    EphemeralRefManager,
    ExposureReport,
    list_ephemeral_refs,
    prune_ephemeral_refs,
    ref_name_for,
)
from danglescan.git.repository import (
    Repository,
    acquire_repository,
    clone_repository,
    open_repository,
)

__all__ = [
    "REF_NAMESPACE",
    "CleanupPolicy",
    "CleanupReport",
    "Commit",
    "DanglingObjects",
    "EphemeralRefManager",
    "ExposureReport",
    "ObjectDatabase",
    "Repository",
    "acquire_repository",
    "clone_repository",
    "find_dangling_objects",
    "find_reachable_commits",
    "list_ephemeral_refs",
    "list_ref_tips",
    "open_repository",
    "prune_ephemeral_refs",
    "ref_name_for",
]
