"""Command-line interface for danglescan."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from danglescan.config import ScanConfig, load_config
from danglescan.errors import ConfigError, DanglescanError, ScannerExecutionError
from danglescan.git.refs import prune_ephemeral_refs
from danglescan.git.repository import open_repository
from danglescan.orchestrator import RunReport, ScanOrchestrator, discover_dangling
from danglescan.utils.git import GitError

app = typer.Typer(
    name="danglescan",
    help="Scan all commits of a git repository, dangling ones included, for secrets.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True, soft_wrap=True)

EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _fail(message: str, code: int = EXIT_ERROR) -> typer.Exit:
    err_console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(code=code)


def _print_summary(report: RunReport) -> None:
    err_console.print(
        f"[bold]Dangling commits:[/bold] {len(report.dangling_commits)}  "
        f"[bold]refs created:[/bold] {len(report.refs_created)}"
    )
    for failure in report.exposure_failures:
        err_console.print(f"[yellow]Warning:[/yellow] {escape(str(failure))}")
    if report.cleanup is not None:
        for failure in report.cleanup.failures:
            err_console.print(f"[yellow]Warning:[/yellow] {escape(str(failure))}")
        if report.cleanup.retained:
            err_console.print(
                f"[dim]Kept {len(report.cleanup.retained)} ref(s) under refs/dangling/[/dim]"
            )
        if report.cleanup.failures:
            err_console.print(
                f"[yellow]{len(report.cleanup.failures)} ref(s) could not be removed.[/yellow] "
                "Run 'danglescan prune' to remove leftover refs."
            )
    if report.scan is not None:
        if report.scan.findings_detected:
            err_console.print(f"[red]{report.scan.scanner_name} reported findings[/red]")
        else:
            err_console.print(f"[green]{report.scan.scanner_name} found no secrets[/green]")


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug logging")
    ] = False,
    quiet: Annotated[
        bool, typer.Option("--quiet", "-q", help="Only show warnings and errors")
    ] = False,
) -> None:
    """Find dangling commits and scan the whole history with gitleaks or trufflehog."""
    _configure_logging(verbose, quiet)


@app.command()
def scan(
    repo_url: Annotated[
        Optional[str],
        typer.Option("--repo-url", "-r", help="URL of the git repository to scan"),
    ] = None,
    repo_path: Annotated[
        Optional[Path],
        typer.Option("--repo-path", "-p", help="Path to the git repository to scan"),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the scanner report to this file ('-' for stdout)"),
    ] = None,
    scanner: Annotated[
        Optional[str],
        typer.Option("--scanner", "-s", help="Scanner to use (gitleaks, trufflehog)"),
    ] = None,
    scanner_config: Annotated[
        Optional[Path],
        typer.Option("--scanner-config", "-c", help="Path to the scanner config file"),
    ] = None,
    scanner_args: Annotated[
        Optional[str],
        typer.Option("--scanner-args", help="Additional arguments to pass to the scanner"),
    ] = None,
    scanner_binary: Annotated[
        Optional[Path],
        typer.Option("--scanner-binary", help="Path to the scanner executable"),
    ] = None,
    timeout: Annotated[
        Optional[int],
        typer.Option("--timeout", help="Abort the scanner after this many seconds"),
    ] = None,
    keep_refs: Annotated[
        bool,
        typer.Option("--keep-refs", "-k", help="Keep refs created for dangling commits"),
    ] = False,
    no_reflogs: Annotated[
        bool,
        typer.Option("--no-reflogs", help="Do not treat reflog entries as reachable"),
    ] = False,
    clone_dir: Annotated[
        Optional[Path],
        typer.Option("--clone-dir", help="Clone --repo-url here instead of a temporary directory"),
    ] = None,
    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", help="Path to danglescan.toml (auto-detected if not specified)"),
    ] = None,
) -> None:
    """Scan all commits of a git repository, including dangling ones.

    \b
    Exit codes:
      0 - Scan completed, no secrets found
      1 - Run error (repository, refs or scanner failure)
      2 - Invalid configuration or unknown scanner
      3 - Secrets found (gitleaks)
      183 - Secrets found (trufflehog)

    \b
    Examples:
      danglescan scan -p .                        # gitleaks over a local repo
      danglescan scan -r https://host/repo.git -s trufflehog
      danglescan scan -p . -o report.json -k      # keep the refs afterwards
    """
    try:
        file_config = load_config(config_file)
        config = ScanConfig.from_sources(
            file_config,
            repo_url=repo_url,
            repo_path=repo_path,
            output_path=output,
            scanner=scanner,
            scanner_config=scanner_config,
            scanner_args=scanner_args,
            scanner_binary=scanner_binary,
            scanner_timeout=timeout,
            keep_refs=keep_refs or None,
            include_reflogs=False if no_reflogs else None,
            clone_dir=clone_dir,
        )
        orchestrator = ScanOrchestrator(config)
    except ConfigError as e:
        raise _fail(str(e), EXIT_CONFIG_ERROR) from e

    try:
        report = orchestrator.run()
    except ScannerExecutionError as e:
        if e.report is not None:
            _print_summary(e.report)
        raise _fail(str(e), e.exit_code or EXIT_ERROR) from e
    except DanglescanError as e:
        raise _fail(str(e)) from e

    _print_summary(report)
    if report.exit_code != 0:
        raise typer.Exit(code=report.exit_code)


@app.command(name="list")
def list_dangling(
    repo_url: Annotated[
        Optional[str],
        typer.Option("--repo-url", "-r", help="URL of the git repository to inspect"),
    ] = None,
    repo_path: Annotated[
        Optional[Path],
        typer.Option("--repo-path", "-p", help="Path to the git repository to inspect"),
    ] = None,
    reflogs: Annotated[
        bool,
        typer.Option("--reflogs/--no-reflogs", help="Treat reflog entries as reachable"),
    ] = True,
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON")
    ] = False,
) -> None:
    """List dangling commits without creating any refs."""
    try:
        config = ScanConfig.from_sources(
            repo_url=repo_url,
            repo_path=repo_path,
            include_reflogs=reflogs,
        )
        dangling = discover_dangling(config)
    except ConfigError as e:
        raise _fail(str(e), EXIT_CONFIG_ERROR) from e
    except DanglescanError as e:
        raise _fail(str(e)) from e

    if json_output:
        payload = {
            "total_commits": dangling.total_commits,
            "reachable_commits": dangling.reachable_commits,
            "dangling": [
                {
                    "sha": c.sha,
                    "parents": list(c.parents),
                    "author": c.author,
                    "summary": c.summary,
                }
                for c in dangling.commits
            ],
        }
        print(json.dumps(payload, indent=2))
        return

    if not dangling:
        console.print("[green]No dangling commits.[/green]")
        return

    table = Table(title=f"{dangling.count} dangling commit(s)")
    table.add_column("Commit", style="cyan", no_wrap=True)
    table.add_column("Author")
    table.add_column("Summary")
    for commit in dangling.commits:
        author = (commit.author or "").split(" <", 1)[0]
        table.add_row(commit.short_sha, author, commit.summary)
    console.print(table)


@app.command()
def prune(
    repo_path: Annotated[
        Path,
        typer.Option("--repo-path", "-p", help="Path to the git repository"),
    ] = Path("."),
) -> None:
    """Remove refs under refs/dangling/ left by earlier runs."""
    try:
        repo = open_repository(repo_path)
        report = prune_ephemeral_refs(repo)
    except DanglescanError as e:
        raise _fail(str(e)) from e
    except GitError as e:
        raise _fail(f"Cannot list refs: {e}") from e

    for failure in report.failures:
        err_console.print(f"[yellow]Warning:[/yellow] {escape(str(failure))}")
    console.print(f"Removed {len(report.removed)} ref(s) under refs/dangling/")
    if report.failures:
        raise typer.Exit(code=EXIT_ERROR)


@app.command()
def version() -> None:
    """Show danglescan version."""
    from danglescan import __version__

    console.print(f"danglescan [bold green]{__version__}[/bold green]")


if __name__ == "__main__":
    app()
