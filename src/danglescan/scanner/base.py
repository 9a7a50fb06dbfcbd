"""Base classes for external scanner backends."""

from __future__ import annotations

import logging
import shutil
import subprocess  # nosec B404
import time
from abc import ABC, abstractmethod
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from danglescan.errors import ScannerExecutionError

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20


@dataclass
class ScanResult:
    """Outcome of one scanner invocation that ran to completion.

    Attributes:
        scanner_name: Scanner identifier (e.g. "gitleaks").
        command: Full command line that was executed.
        exit_code: Process exit code.
        findings_detected: The exit code is the scanner's "secrets found" code.
        output_path: File the report was written to, or None for stdout.
        stderr: Captured diagnostic output of the scanner.
        duration_ms: Wall-clock duration of the invocation.
    """

    scanner_name: str
    command: list[str] = field(default_factory=list)
    exit_code: int = 0
    findings_detected: bool = False
    output_path: Path | None = None
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def _stderr_tail(stderr: str) -> str:
    lines = stderr.strip().splitlines()
    return "\n".join(lines[-STDERR_TAIL_LINES:])


class ScannerBackend(ABC):
    """Abstract interface for external secret scanners.

    Implementations provide a name, a description and the command line; the
    base class locates the binary, runs it against a repository directory
    and classifies its exit status.
    """

    binary_name: ClassVar[str]
    version_args: ClassVar[tuple[str, ...]] = ("--version",)
    # exit codes meaning "ran fine, secrets found"
    findings_exit_codes: ClassVar[frozenset[int]] = frozenset()
    # whether the process stdout is the report and goes to the output file
    stdout_is_report: ClassVar[bool] = True

    def __init__(
        self,
        binary: Path | str | None = None,
        timeout: int | None = None,
    ) -> None:
        """
        Create a scanner backend.

        Parameters:
            binary: Explicit path to the scanner executable; looked up on
                PATH when None.
            timeout: Seconds before the scan is abandoned; no limit when None.
        """
        self._binary = Path(binary) if binary else None
        self.timeout = timeout

    @property
    @abstractmethod
    def name(self) -> str:
        """Return scanner identifier."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Return a human-readable description."""
        ...

    @abstractmethod
    def build_command(
        self,
        binary: Path,
        directory: Path,
        output_path: Path | None,
        args: Sequence[str],
    ) -> list[str]:
        """Build the command line that scans ``directory``."""
        ...

    def find_binary(self) -> Path:
        """
        Locate the scanner executable.

        Raises:
            ScannerExecutionError: If the binary cannot be found.
        """
        if self._binary is not None:
            if self._binary.exists():
                return self._binary.absolute()
            found = shutil.which(str(self._binary))
            if found:
                return Path(found)
            raise ScannerExecutionError(f"{self.name} binary not found at {self._binary}")

        found = shutil.which(self.binary_name)
        if not found:
            raise ScannerExecutionError(
                f"{self.name} not found. Install {self.binary_name} or pass its path explicitly"
            )
        return Path(found)

    def is_installed(self) -> bool:
        try:
            self.find_binary()
            return True
        except ScannerExecutionError:
            return False

    def get_version(self) -> str | None:
        """Return the scanner's reported version, or None if unavailable."""
        try:
            binary = self.find_binary()
            result = subprocess.run(  # nosec B603
                [str(binary), *self.version_args],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (ScannerExecutionError, subprocess.TimeoutExpired, OSError):
            return None
        if result.returncode != 0:
            return None
        text = (result.stdout or result.stderr).strip()
        if not text:
            return None
        return text.splitlines()[0].split()[-1].lstrip("v")

    def scan(
        self,
        directory: Path,
        output_path: Path | None = None,
        args: Sequence[str] = (),
    ) -> ScanResult:
        """
        Run the scanner over the repository at ``directory``.

        Parameters:
            directory: Repository directory to scan.
            output_path: File to receive the report; stdout when None.
            args: Extra arguments passed through to the scanner unchanged.

        Returns:
            ScanResult for a scan that completed, with or without findings.

        Raises:
            ScannerExecutionError: If the binary is missing, cannot start,
                times out, or exits with a code that is neither success nor
                the scanner's findings code.
        """
        binary = self.find_binary()
        if output_path is not None:
            # relative to the caller, not to the scanned directory
            output_path = Path(output_path).absolute()
        command = self.build_command(binary, Path(directory), output_path, list(args))
        logger.debug("Running scanner: %s", " ".join(command))

        start_time = time.time()
        try:
            with ExitStack() as stack:
                stdout = None
                if output_path is not None and self.stdout_is_report:
                    stdout = stack.enter_context(open(output_path, "wb"))
                result = subprocess.run(  # nosec B603
                    command,
                    cwd=str(directory),
                    stdout=stdout,
                    stderr=subprocess.PIPE,
                    timeout=self.timeout,
                )
        except subprocess.TimeoutExpired as e:
            raise ScannerExecutionError(f"{self.name} timed out after {self.timeout}s") from e
        except OSError as e:
            raise ScannerExecutionError(f"Failed to run {self.name}: {e}") from e

        duration_ms = int((time.time() - start_time) * 1000)
        stderr = (result.stderr or b"").decode("utf-8", errors="replace")
        if stderr.strip():
            logger.debug("%s stderr:\n%s", self.name, stderr.strip())

        if result.returncode != 0 and result.returncode not in self.findings_exit_codes:
            tail = _stderr_tail(stderr)
            message = f"{self.name} exited with code {result.returncode}"
            raise ScannerExecutionError(
                f"{message}: {tail}" if tail else message,
                exit_code=result.returncode,
                stderr=stderr,
            )

        return ScanResult(
            scanner_name=self.name,
            command=command,
            exit_code=result.returncode,
            findings_detected=result.returncode in self.findings_exit_codes,
            output_path=output_path,
            stderr=stderr,
            duration_ms=duration_ms,
        )
