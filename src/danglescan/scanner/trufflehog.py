"""Trufflehog scanner integration.

``trufflehog git`` on a ``file://`` URL scans every ref of the local
repository. ``--fail`` makes it exit with 183 when secrets are found so the
result can tell findings apart from a clean run.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from danglescan.scanner.base import ScannerBackend

if TYPE_CHECKING:
    from collections.abc import Sequence


class TrufflehogScanner(ScannerBackend):
    """Trufflehog git source scanner; the JSON report is its stdout."""

    binary_name: ClassVar[str] = "trufflehog"
    findings_exit_codes: ClassVar[frozenset[int]] = frozenset({183})

    @property
    def name(self) -> str:
        return "trufflehog"

    @property
    def description(self) -> str:
        return "Trufflehog secret scanner (800+ detectors, optional verification)"

    def build_command(
        self,
        binary: Path,
        directory: Path,
        output_path: Path | None,
        args: Sequence[str],
    ) -> list[str]:
        return [
            str(binary),
            "git",
            Path(directory).resolve().as_uri(),
            "--json",
            "--no-update",
            "--fail",
            *args,
        ]
