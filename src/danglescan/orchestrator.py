"""Scan orchestrator - one run from discovery to cleanup.

A run:
1. Resolves the scanner (an unknown name fails before anything else)
2. Acquires the repository (clone or open)
3. Discovers dangling commits
4. Exposes each one through an ephemeral ref, collecting failures
5. Runs the scanner against the repository directory
6. Cleans up the ephemeral refs on every exit path, unless retained

Discovery and acquisition failures are fatal and happen before any ref
exists. Ref failures are collected in the RunReport. A scanner failure is
raised only after cleanup has run.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from danglescan.config import ScanConfig
from danglescan.errors import RefCreationError, RefRemovalError, ScannerExecutionError
from danglescan.git.dangling import DanglingObjects, find_dangling_objects
from danglescan.git.objects import Commit
from danglescan.git.refs import CleanupReport, EphemeralRefManager
from danglescan.git.repository import acquire_repository
from danglescan.scanner import ScannerBackend, ScanResult, get_scanner

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


@dataclass
class RunReport:
    """Everything one run produced.

    The scan outcome and the ref bookkeeping are independent: a scan can
    succeed while some refs failed to be created or removed.
    """

    dangling_commits: list[Commit] = field(default_factory=list)
    refs_created: list[str] = field(default_factory=list)
    exposure_failures: list[RefCreationError] = field(default_factory=list)
    cleanup: CleanupReport | None = None
    scan: ScanResult | None = None

    @property
    def removal_failures(self) -> list[RefRemovalError]:
        return self.cleanup.failures if self.cleanup else []

    @property
    def retained_refs(self) -> list[str]:
        return self.cleanup.retained if self.cleanup else []

    @property
    def warnings(self) -> list[str]:
        """Human-readable messages for every recoverable error."""
        return [str(e) for e in (*self.exposure_failures, *self.removal_failures)]

    @property
    def exit_code(self) -> int:
        """The scanner's exit code; 0 when no scan ran."""
        return self.scan.exit_code if self.scan else 0

    @property
    def ok(self) -> bool:
        """True when the scan completed cleanly with no findings."""
        return self.scan is not None and self.scan.ok


class _Terminated(SystemExit):
    pass


@contextmanager
def terminate_on_signals() -> Iterator[None]:
    """
    Turn SIGTERM/SIGHUP into SystemExit for the duration of the block.

    This lets ``finally`` and ``__exit__`` handlers run when the process is
    asked to stop. Only installed from the main thread.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        logger.warning("Received signal %d, cleaning up", signum)
        raise _Terminated(128 + signum)

    previous = {}
    for sig in TERMINATION_SIGNALS:
        previous[sig] = signal.signal(sig, _handler)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def discover_dangling(config: ScanConfig) -> DanglingObjects:
    """
    Find the dangling commits of the configured repository.

    No refs are created and no scanner is resolved, so an invalid scanner
    setting does not affect listing.
    """
    with acquire_repository(
        repo_url=config.repo_url,
        repo_path=config.repo_path,
        clone_dir=config.clone_dir,
    ) as repo:
        return find_dangling_objects(repo, include_reflogs=config.include_reflogs)


class ScanOrchestrator:
    """Runs discovery, ref exposure, the scanner and cleanup in order.

    Example:
        config = ScanConfig(repo_path=Path("."), scanner="gitleaks")
        report = ScanOrchestrator(config).run()
        print(f"{len(report.dangling_commits)} dangling commits scanned")
    """

    def __init__(self, config: ScanConfig, scanner: ScannerBackend | None = None) -> None:
        """
        Prepare a run.

        Parameters:
            config: Immutable run configuration.
            scanner: Scanner backend to use instead of ``config.scanner``.

        Raises:
            UnknownScannerError: If ``config.scanner`` names no scanner.
        """
        self.config = config
        self.scanner = scanner or get_scanner(
            config.scanner,
            binary=config.scanner_binary,
            timeout=config.scanner_timeout,
        )

    def discover(self) -> DanglingObjects:
        """Find dangling commits without touching any ref."""
        return discover_dangling(self.config)

    def run(self) -> RunReport:
        """
        Execute one full scan run.

        Returns:
            RunReport with the scan result and all recoverable errors.

        Raises:
            RepositoryAcquisitionError: If the repository cannot be opened or cloned.
            RepositoryReadError: If reachability cannot be computed.
            ObjectEnumerationError: If the object store cannot be enumerated.
            ScannerExecutionError: If the scanner fails; ``report`` is attached
                and cleanup has already run.
        """
        config = self.config
        report = RunReport()

        with acquire_repository(
            repo_url=config.repo_url,
            repo_path=config.repo_path,
            clone_dir=config.clone_dir,
        ) as repo:
            dangling = find_dangling_objects(repo, include_reflogs=config.include_reflogs)
            report.dangling_commits = list(dangling.commits)

            if config.keep_refs and config.repo_url and config.clone_dir is None:
                logger.warning(
                    "Refs are kept in a temporary clone that is removed after the scan; "
                    "set a clone directory to keep them"
                )

            refs = EphemeralRefManager(repo, policy=config.cleanup_policy)
            try:
                with terminate_on_signals(), refs:
                    exposure = refs.expose_all(dangling.commits)
                    report.refs_created = exposure.created
                    report.exposure_failures = exposure.failures

                    logger.info("Running %s on %s", self.scanner.name, repo.directory)
                    report.scan = self.scanner.scan(
                        repo.directory,
                        output_path=config.output_path,
                        args=config.scanner_arguments,
                    )
            except ScannerExecutionError as e:
                e.report = report
                raise
            finally:
                report.cleanup = refs.cleanup_report

        return report
