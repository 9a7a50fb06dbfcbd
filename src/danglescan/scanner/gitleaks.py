"""Gitleaks scanner integration.

Gitleaks walks ``git log --all``, so refs under ``refs/dangling/`` are picked
up without extra options. Gitleaks also exits 1 on fatal errors, so leaks are
reported with a distinct ``--exit-code``.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from danglescan.scanner.base import ScannerBackend

if TYPE_CHECKING:
    from collections.abc import Sequence

LEAKS_EXIT_CODE = 3


class GitleaksScanner(ScannerBackend):
    """Gitleaks ``detect`` over the repository history.

    With an output file the JSON report is written by gitleaks itself;
    without one, findings are printed to stdout with ``--verbose``.
    """

    binary_name: ClassVar[str] = "gitleaks"
    version_args: ClassVar[tuple[str, ...]] = ("version",)
    findings_exit_codes: ClassVar[frozenset[int]] = frozenset({LEAKS_EXIT_CODE})
    stdout_is_report: ClassVar[bool] = False

    @property
    def name(self) -> str:
        return "gitleaks"

    @property
    def description(self) -> str:
        return "Gitleaks secret scanner (git history, 150+ rules)"

    def build_command(
        self,
        binary: Path,
        directory: Path,
        output_path: Path | None,
        args: Sequence[str],
    ) -> list[str]:
        command = [
            str(binary),
            "detect",
            "--source",
            str(directory),
            "--no-banner",
            "--exit-code",
            str(LEAKS_EXIT_CODE),
        ]
        if output_path is not None:
            command += ["--report-format", "json", "--report-path", str(output_path)]
        else:
            command.append("--verbose")
        return command + list(args)
