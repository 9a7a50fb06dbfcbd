"""Tests for CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from danglescan import __version__
from danglescan.cli import app
from danglescan.errors import RefRemovalError, RepositoryAcquisitionError, ScannerExecutionError
from danglescan.git.refs import CleanupPolicy, CleanupReport, list_ephemeral_refs
from danglescan.orchestrator import RunReport
from danglescan.scanner import ScanResult

runner = CliRunner()


def _patch_orchestrator(monkeypatch, outcome):
    """Replace ScanOrchestrator; ``outcome`` is a RunReport or an exception."""
    configs: list[object] = []

    class DummyOrchestrator:
        def __init__(self, config):
            configs.append(config)

        def run(self):
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome

    monkeypatch.setattr("danglescan.cli.ScanOrchestrator", DummyOrchestrator)
    return configs


def _report(exit_code: int = 0, cleanup: CleanupReport | None = None) -> RunReport:
    return RunReport(
        refs_created=["refs/dangling/" + "a" * 40],
        cleanup=cleanup or CleanupReport(removed=["refs/dangling/" + "a" * 40]),
        scan=ScanResult(
            scanner_name="gitleaks",
            exit_code=exit_code,
            findings_detected=exit_code == 3,
        ),
    )


def test_version() -> None:
    """Test version command."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_scan_requires_repository(tmp_path, monkeypatch) -> None:
    """Neither --repo-url nor --repo-path is a configuration error."""
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["scan"])
    assert result.exit_code == 2
    assert "repo_url or repo_path" in result.output


def test_scan_rejects_both_sources(tmp_path, monkeypatch) -> None:
    """--repo-url and --repo-path are mutually exclusive."""
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["scan", "-r", "https://example.com/x.git", "-p", str(tmp_path)])
    assert result.exit_code == 2
    assert "mutually exclusive" in result.output


def test_scan_unknown_scanner(tmp_path, monkeypatch) -> None:
    """An unknown scanner exits with the configuration error code."""
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["scan", "-p", str(tmp_path), "-s", "semgrep"])
    assert result.exit_code == 2
    assert "Unknown scanner" in result.output


def test_scan_builds_config_from_options(tmp_path, monkeypatch) -> None:
    """CLI options end up in the immutable ScanConfig."""
    monkeypatch.chdir(tmp_path)
    configs = _patch_orchestrator(monkeypatch, _report())

    result = runner.invoke(
        app,
        [
            "scan",
            "-p",
            str(tmp_path),
            "-s",
            "TruffleHog",
            "-o",
            str(tmp_path / "out.json"),
            "-c",
            "th.yaml",
            "--scanner-args=--only-verified --concurrency 2",
            "-k",
        ],
    )

    assert result.exit_code == 0, result.output
    config = configs[0]
    assert config.scanner == "TruffleHog"
    assert config.keep_refs is True
    assert config.output_path == tmp_path / "out.json"
    assert config.scanner_arguments == [
        "--only-verified",
        "--concurrency",
        "2",
        f"--config={Path.cwd() / 'th.yaml'}",
    ]


def test_scan_uses_config_file(tmp_path, monkeypatch) -> None:
    """Values from danglescan.toml apply when no option overrides them."""
    monkeypatch.chdir(tmp_path)
    config_file = tmp_path / "danglescan.toml"
    config_file.write_text('scanner = "trufflehog"\nkeep_refs = true\n')
    configs = _patch_orchestrator(monkeypatch, _report())

    result = runner.invoke(app, ["scan", "-p", str(tmp_path), "--config", str(config_file)])

    assert result.exit_code == 0, result.output
    assert configs[0].scanner == "trufflehog"
    assert configs[0].keep_refs is True


def test_scan_relative_paths_follow_working_directory(tmp_path, monkeypatch) -> None:
    """Relative -o and -c are taken from where the command runs, not the repo."""
    repo = tmp_path / "repo"
    work = tmp_path / "work"
    repo.mkdir()
    work.mkdir()
    monkeypatch.chdir(work)
    configs = _patch_orchestrator(monkeypatch, _report())

    result = runner.invoke(
        app, ["scan", "-p", "../repo", "-o", "report.json", "-c", "rules.toml"]
    )

    assert result.exit_code == 0, result.output
    config = configs[0]
    assert config.output_path == Path.cwd() / "report.json"
    assert config.scanner_arguments == [f"--config={Path.cwd() / 'rules.toml'}"]


def test_scan_findings_exit_code(tmp_path, monkeypatch) -> None:
    """The scanner's findings exit code becomes the CLI exit code."""
    monkeypatch.chdir(tmp_path)
    _patch_orchestrator(monkeypatch, _report(exit_code=3))

    result = runner.invoke(app, ["scan", "-p", str(tmp_path)])

    assert result.exit_code == 3
    assert "reported findings" in result.output


def test_scan_removal_failure_is_a_warning(tmp_path, monkeypatch) -> None:
    """Refs that failed to clean up are reported without failing the run."""
    monkeypatch.chdir(tmp_path)
    cleanup = CleanupReport(
        policy=CleanupPolicy.REMOVE_ALL,
        failures=[RefRemovalError("refs/dangling/" + "a" * 40, "lock held")],
    )
    _patch_orchestrator(monkeypatch, _report(cleanup=cleanup))

    result = runner.invoke(app, ["scan", "-p", str(tmp_path)])

    assert result.exit_code == 0
    assert "lock held" in result.output
    assert "danglescan prune" in result.output


def test_scan_scanner_error(tmp_path, monkeypatch) -> None:
    """Scanner failures exit with the scanner's exit code."""
    monkeypatch.chdir(tmp_path)
    error = ScannerExecutionError("gitleaks exited with code 126", exit_code=126)
    error.report = _report()
    _patch_orchestrator(monkeypatch, error)

    result = runner.invoke(app, ["scan", "-p", str(tmp_path)])

    assert result.exit_code == 126
    assert "exited with code 126" in result.output


def test_scan_repository_error(tmp_path, monkeypatch) -> None:
    """Fatal run errors exit with code 1."""
    monkeypatch.chdir(tmp_path)
    _patch_orchestrator(monkeypatch, RepositoryAcquisitionError("Not a git repository"))

    result = runner.invoke(app, ["scan", "-p", str(tmp_path)])

    assert result.exit_code == 1
    assert "Not a git repository" in result.output


def test_list_json(repo_with_history) -> None:
    """list --json prints dangling commits."""
    orphan = repo_with_history.orphan_commit("secret commit")

    result = runner.invoke(app, ["-q", "list", "-p", str(repo_with_history.path), "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert [c["sha"] for c in payload["dangling"]] == [orphan]
    assert payload["total_commits"] == 4
    assert list_ephemeral_refs(repo_with_history.handle) == {}


def test_list_table(repo_with_history) -> None:
    """list renders a table of dangling commits."""
    orphan = repo_with_history.orphan_commit("secret commit")

    result = runner.invoke(app, ["-q", "list", "-p", str(repo_with_history.path)])

    assert result.exit_code == 0
    assert orphan[:12] in result.stdout


def test_list_nothing_dangling(repo_with_history) -> None:
    result = runner.invoke(app, ["-q", "list", "-p", str(repo_with_history.path)])
    assert result.exit_code == 0
    assert "No dangling commits" in result.stdout


def test_list_ignores_scanner_setting(repo_with_history, monkeypatch) -> None:
    """list never resolves a scanner, so an unknown one does not break it."""
    orphan = repo_with_history.orphan_commit("secret commit")
    monkeypatch.setenv("DANGLESCAN_SCANNER", "nosuchscanner")

    result = runner.invoke(app, ["-q", "list", "-p", str(repo_with_history.path), "--json"])

    assert result.exit_code == 0, result.output
    assert [c["sha"] for c in json.loads(result.stdout)["dangling"]] == [orphan]


def test_prune(repo_with_history) -> None:
    """prune removes leftover refs under refs/dangling/."""
    orphan = repo_with_history.orphan_commit("kept from an earlier run")
    repo_with_history.git("update-ref", f"refs/dangling/{orphan}", orphan)

    result = runner.invoke(app, ["-q", "prune", "-p", str(repo_with_history.path)])

    assert result.exit_code == 0
    assert "Removed 1 ref(s)" in result.stdout
    assert list_ephemeral_refs(repo_with_history.handle) == {}


def test_prune_not_a_repository(tmp_path) -> None:
    result = runner.invoke(app, ["prune", "-p", str(tmp_path / "missing")])
    assert result.exit_code == 1
    assert "not found" in result.output.lower()
