"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from danglescan.config import (
    ConfigNotFoundError,
    FileConfig,
    ScanConfig,
    find_config,
    load_config,
)
from danglescan.errors import ConfigError
from danglescan.git.refs import CleanupPolicy


class TestScanConfig:
    """Tests for ScanConfig."""

    def test_defaults(self, tmp_path):
        config = ScanConfig(repo_path=tmp_path)

        assert config.scanner == "gitleaks"
        assert config.scanner_args == ()
        assert config.keep_refs is False
        assert config.include_reflogs is True
        assert config.output_path is None
        assert config.cleanup_policy is CleanupPolicy.REMOVE_ALL

    def test_requires_a_repository_source(self):
        with pytest.raises(ValidationError, match="one of repo_url or repo_path"):
            ScanConfig()

    def test_sources_are_mutually_exclusive(self, tmp_path):
        with pytest.raises(ValidationError, match="mutually exclusive"):
            ScanConfig(repo_url="https://example.com/repo.git", repo_path=tmp_path)

    def test_is_frozen(self, tmp_path):
        config = ScanConfig(repo_path=tmp_path)
        with pytest.raises(ValidationError):
            config.keep_refs = True

    def test_scanner_args_are_shell_split(self, tmp_path):
        config = ScanConfig(repo_path=tmp_path, scanner_args='--log-opts "--since 2020" -v')
        assert config.scanner_args == ("--log-opts", "--since 2020", "-v")

    def test_scanner_config_is_appended(self, tmp_path):
        config = ScanConfig(
            repo_path=tmp_path,
            scanner_args="--redact",
            scanner_config=tmp_path / "gitleaks.toml",
        )
        assert config.scanner_arguments == ["--redact", f"--config={tmp_path / 'gitleaks.toml'}"]

    def test_relative_paths_are_made_absolute(self, tmp_path, monkeypatch):
        work = tmp_path / "work"
        work.mkdir()
        monkeypatch.chdir(work)

        config = ScanConfig(
            repo_path=tmp_path,
            output_path=Path("report.json"),
            scanner_config=Path("rules.toml"),
            scanner_binary=Path("bin/gitleaks"),
        )

        assert config.output_path == Path.cwd() / "report.json"
        assert config.scanner_config == Path.cwd() / "rules.toml"
        assert config.scanner_binary == Path.cwd() / "bin" / "gitleaks"

    def test_bare_binary_name_is_kept_for_path_lookup(self, tmp_path):
        config = ScanConfig(repo_path=tmp_path, scanner_binary=Path("gitleaks"))
        assert config.scanner_binary == Path("gitleaks")

    def test_dash_output_means_stdout(self, tmp_path):
        assert ScanConfig(repo_path=tmp_path, output_path="-").output_path is None

    def test_keep_refs_selects_retain_policy(self, tmp_path):
        config = ScanConfig(repo_path=tmp_path, keep_refs=True)
        assert config.cleanup_policy is CleanupPolicy.RETAIN

    def test_reads_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DANGLESCAN_SCANNER", "trufflehog")
        monkeypatch.setenv("DANGLESCAN_SCANNER_ARGS", "--only-verified --no-verification")

        config = ScanConfig(repo_path=tmp_path)

        assert config.scanner == "trufflehog"
        assert config.scanner_args == ("--only-verified", "--no-verification")

    def test_from_sources_overrides_file_values(self, tmp_path):
        file_config = FileConfig(scanner="trufflehog", keep_refs=True)

        config = ScanConfig.from_sources(
            file_config, repo_path=tmp_path, scanner="gitleaks", keep_refs=None
        )

        assert config.scanner == "gitleaks"
        assert config.keep_refs is True

    def test_from_sources_wraps_validation_errors(self):
        with pytest.raises(ConfigError, match="repo_url or repo_path"):
            ScanConfig.from_sources(FileConfig())


class TestLoadConfig:
    """Tests for config file discovery and parsing."""

    def test_danglescan_toml(self, tmp_path):
        path = tmp_path / "danglescan.toml"
        path.write_text('scanner = "trufflehog"\nscanner_args = "--only-verified"\n')

        config = load_config(path)

        assert config.scanner == "trufflehog"
        assert config.scanner_args == ("--only-verified",)

    def test_danglescan_table_in_own_file(self, tmp_path):
        path = tmp_path / "danglescan.toml"
        path.write_text("[danglescan]\nkeep_refs = true\n")
        assert load_config(path).keep_refs is True

    def test_pyproject_tool_section(self, tmp_path):
        path = tmp_path / "pyproject.toml"
        path.write_text('[project]\nname = "x"\n\n[tool.danglescan]\nscanner = "gitleaks"\n')
        assert load_config(path).scanner == "gitleaks"

    def test_file_paths_are_relative_to_the_config_file(self, tmp_path, monkeypatch):
        project = tmp_path / "project"
        project.mkdir()
        path = project / "danglescan.toml"
        path.write_text('scanner_config = "rules.toml"\noutput_path = "out/report.json"\n')
        monkeypatch.chdir(tmp_path)

        config = load_config(path)

        assert config.scanner_config == project / "rules.toml"
        assert config.output_path == project / "out" / "report.json"

    def test_unknown_key_is_an_error(self, tmp_path):
        path = tmp_path / "danglescan.toml"
        path.write_text("scaner = 'gitleaks'\n")
        with pytest.raises(ConfigError, match="scaner"):
            load_config(path)

    def test_invalid_toml_is_an_error(self, tmp_path):
        path = tmp_path / "danglescan.toml"
        path.write_text("scanner = \n")
        with pytest.raises(ConfigError, match="TOML syntax error"):
            load_config(path)

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_find_config_walks_up(self, tmp_path, monkeypatch):
        (tmp_path / "danglescan.toml").write_text('scanner = "trufflehog"\n')
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)

        assert find_config() == (tmp_path / "danglescan.toml").resolve()
        assert load_config().scanner == "trufflehog"

    def test_pyproject_without_section_is_skipped(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "x"\n')
        (tmp_path / "sub").mkdir()
        assert find_config(tmp_path / "sub") is None
