"""Exception hierarchy for danglescan.

Fatal errors abort a run before refs are created:
- RepositoryAcquisitionError, RepositoryReadError, ObjectEnumerationError
- UnknownScannerError, ConfigError

Per-item errors are collected and reported alongside the result:
- RefCreationError (one dangling commit could not be exposed)
- RefRemovalError (one ephemeral ref could not be removed)

ScannerExecutionError is the external tool's own failure. It is raised only
after ephemeral refs have been cleaned up.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from danglescan.orchestrator import RunReport


class DanglescanError(Exception):
    """Base exception for danglescan."""

    pass


class ConfigError(DanglescanError):
    """Invalid or unreadable configuration."""

    pass


class RepositoryAcquisitionError(DanglescanError):
    """Repository could not be cloned or opened."""

    pass


class RepositoryReadError(DanglescanError):
    """Object database could not be read while walking reachability."""

    pass


class ObjectEnumerationError(DanglescanError):
    """Object store could not be fully enumerated."""

    pass


class RefCreationError(DanglescanError):
    """An ephemeral ref could not be created for a dangling commit."""

    def __init__(self, ref_name: str, commit_sha: str, reason: str) -> None:
        self.ref_name = ref_name
        self.commit_sha = commit_sha
        self.reason = reason
        super().__init__(f"Failed to create {ref_name}: {reason}")


class RefRemovalError(DanglescanError):
    """An ephemeral ref could not be removed during cleanup."""

    def __init__(self, ref_name: str, reason: str) -> None:
        self.ref_name = ref_name
        self.reason = reason
        super().__init__(f"Failed to remove {ref_name}: {reason}")


class UnknownScannerError(ConfigError):
    """Scanner name does not match any supported scanner."""

    def __init__(self, name: str, supported: list[str]) -> None:
        self.name = name
        self.supported = supported
        super().__init__(
            f"Unknown scanner '{name}'. Supported: {', '.join(supported)}"
        )


class ScannerExecutionError(DanglescanError):
    """The external scanner could not run or exited abnormally.

    ``report`` carries the run's bookkeeping (refs created, cleanup outcome)
    when the error surfaced from a full orchestrated run.
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        self.report: RunReport | None = None
        super().__init__(message)
