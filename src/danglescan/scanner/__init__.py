"""External secret scanners.

This module provides the closed set of supported scanner backends:
- GitleaksScanner: gitleaks ``detect`` over the full history
- TrufflehogScanner: trufflehog ``git`` source over a local repository

Scanners are selected by a case-insensitive name through ``ScannerKind``.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from danglescan.errors import UnknownScannerError
from danglescan.scanner.base import ScannerBackend, ScanResult
from danglescan.scanner.gitleaks import GitleaksScanner
from danglescan.scanner.trufflehog import TrufflehogScanner


class ScannerKind(Enum):
    """Supported scanners."""

    GITLEAKS = "gitleaks"
    TRUFFLEHOG = "trufflehog"

    @classmethod
    def from_name(cls, name: str) -> ScannerKind:
        """
        Resolve a scanner name, ignoring case and surrounding whitespace.

        Raises:
            UnknownScannerError: If no scanner has that name.
        """
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise UnknownScannerError(name, [k.value for k in cls]) from None


_BACKENDS: dict[ScannerKind, type[ScannerBackend]] = {
    ScannerKind.GITLEAKS: GitleaksScanner,
    ScannerKind.TRUFFLEHOG: TrufflehogScanner,
}


def get_scanner(
    kind: ScannerKind | str,
    binary: Path | str | None = None,
    timeout: int | None = None,
) -> ScannerBackend:
    """Factory to create a scanner backend.

    Args:
        kind: Scanner kind or its name.
        binary: Optional explicit path to the scanner executable.
        timeout: Optional scan timeout in seconds.

    Raises:
        UnknownScannerError: If ``kind`` names no supported scanner.
    """
    if isinstance(kind, str):
        kind = ScannerKind.from_name(kind)
    return _BACKENDS[kind](binary=binary, timeout=timeout)


__all__ = [
    "GitleaksScanner",
    "ScanResult",
    "ScannerBackend",
    "ScannerKind",
    "TrufflehogScanner",
    "get_scanner",
]
