"""Utility modules for danglescan."""

from danglescan.utils.git import GitError, run_git

__all__ = [
    "GitError",
    "run_git",
]
