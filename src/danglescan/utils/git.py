"""Thin wrapper around the git executable.

Every repository read and write in danglescan goes through ``run_git`` so
that errors, timeouts and a missing git binary surface the same way.
"""

from __future__ import annotations

import logging
import subprocess  # nosec B404
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120


class GitError(Exception):
    """Error executing git command."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


def run_git(
    cwd: Path,
    *args: str,
    input: bytes | None = None,
    timeout: int | None = DEFAULT_TIMEOUT,
    check: bool = True,
) -> subprocess.CompletedProcess[bytes]:
    """
    Run a git command inside ``cwd`` and return the completed process.

    Output is kept as bytes; callers decode what they need. Commit payloads
    are not guaranteed to be UTF-8.

    Parameters:
        cwd: Directory to run git in (work tree or git dir).
        *args: Arguments passed after ``git``.
        input: Optional bytes fed to stdin.
        timeout: Seconds before the command is abandoned.
        check: Raise GitError on a non-zero exit code.

    Returns:
        The completed process with ``stdout``/``stderr`` as bytes.

    Raises:
        GitError: If git is missing, times out, or (with ``check``) fails.
    """
    command = ["git", *args]
    logger.debug("Running %s in %s", " ".join(command), cwd)
    try:
        result = subprocess.run(  # nosec B603, B607
            command,
            cwd=str(cwd),
            input=input,
            capture_output=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise GitError("git executable not found") from e
    except subprocess.TimeoutExpired as e:
        raise GitError(f"git {args[0] if args else ''} timed out after {timeout}s") from e
    except OSError as e:
        raise GitError(f"Failed to run git: {e}") from e

    if check and result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise GitError(
            f"git {' '.join(args[:2])} failed: {stderr or f'exit code {result.returncode}'}",
            returncode=result.returncode,
            stderr=stderr,
        )
    return result
