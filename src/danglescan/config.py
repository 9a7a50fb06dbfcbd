"""Configuration for danglescan.

A run is described by one immutable ``ScanConfig`` built at the process
boundary. Defaults can live in ``danglescan.toml`` or in ``pyproject.toml``:

    [tool.danglescan]
    scanner = "trufflehog"
    scanner_config = "trufflehog.yaml"
    scanner_args = "--only-verified"
    keep_refs = false

Precedence is CLI options, then the config file, then ``DANGLESCAN_*``
environment variables, then built-in defaults.
"""

from __future__ import annotations

import shlex
import tomllib
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from danglescan.errors import ConfigError
from danglescan.git.refs import CleanupPolicy

CONFIG_FILENAME = "danglescan.toml"
PYPROJECT_FILENAME = "pyproject.toml"
DEFAULT_SCANNER = "gitleaks"


class ConfigNotFoundError(ConfigError):
    """Config file does not exist."""

    pass


def _absolute(path: Path, base: Path | None = None) -> Path:
    path = path.expanduser()
    if base is not None and not path.is_absolute():
        path = base / path
    return path.absolute()


def _split_args(value: Any) -> Any:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(shlex.split(value))
    return value


class FileConfig(BaseModel):
    """Defaults read from a config file. Every field is optional."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    output_path: Path | None = None
    scanner: str | None = None
    scanner_config: Path | None = None
    scanner_args: tuple[str, ...] | None = None
    scanner_binary: Path | None = None
    scanner_timeout: int | None = None
    keep_refs: bool | None = None
    include_reflogs: bool | None = None
    clone_dir: Path | None = None

    @field_validator("scanner_args", mode="before")
    @classmethod
    def _parse_args(cls, value: Any) -> Any:
        return None if value is None else _split_args(value)

    def relative_to(self, base: Path) -> FileConfig:
        """Return a copy with relative paths anchored at ``base``."""
        update: dict[str, Path] = {}
        for name in ("output_path", "scanner_config", "clone_dir"):
            value = getattr(self, name)
            if value is not None and str(value) != "-":
                update[name] = _absolute(value, base)
        if self.scanner_binary is not None and len(self.scanner_binary.parts) > 1:
            update["scanner_binary"] = _absolute(self.scanner_binary, base)
        return self.model_copy(update=update)


class ScanConfig(BaseSettings):
    """Immutable description of one scan run.

    Attributes:
        repo_url: Remote repository to clone (exclusive with repo_path).
        repo_path: Local repository to open (exclusive with repo_url).
        output_path: Report destination; stdout when None or "-".
        scanner: Scanner name, matched case-insensitively.
        scanner_config: Scanner config file, passed as ``--config=<path>``.
        scanner_args: Extra scanner arguments, shell-split when given as text.
        scanner_binary: Explicit scanner executable; looked up on PATH otherwise.
        scanner_timeout: Seconds before the scanner is abandoned.
        keep_refs: Retain the refs created for dangling commits.
        include_reflogs: Count reflog entries as ref tips.
        clone_dir: Where to clone repo_url; a temporary directory otherwise.
    """

    model_config = SettingsConfigDict(env_prefix="DANGLESCAN_", frozen=True, extra="forbid")

    repo_url: str | None = None
    repo_path: Path | None = None
    output_path: Path | None = None
    scanner: str = DEFAULT_SCANNER
    scanner_config: Path | None = None
    scanner_args: Annotated[tuple[str, ...], NoDecode] = ()
    scanner_binary: Path | None = None
    scanner_timeout: int | None = None
    keep_refs: bool = False
    include_reflogs: bool = True
    clone_dir: Path | None = None

    @field_validator("scanner_args", mode="before")
    @classmethod
    def _parse_args(cls, value: Any) -> Any:
        return _split_args(value)

    @field_validator("repo_url", "output_path", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip() in ("", "-"):
            return None
        if isinstance(value, Path) and str(value) == "-":
            return None
        return value

    @field_validator("output_path", "scanner_config", "clone_dir")
    @classmethod
    def _absolute_path(cls, value: Path | None) -> Path | None:
        # the scanner runs inside the repository directory
        return None if value is None else _absolute(value)

    @field_validator("scanner_binary")
    @classmethod
    def _absolute_binary(cls, value: Path | None) -> Path | None:
        # a bare name is looked up on PATH
        if value is None or len(value.parts) == 1:
            return value
        return _absolute(value)

    @model_validator(mode="after")
    def _one_repository_source(self) -> ScanConfig:
        if self.repo_url is None and self.repo_path is None:
            raise ValueError("one of repo_url or repo_path is required")
        if self.repo_url is not None and self.repo_path is not None:
            raise ValueError("repo_url and repo_path are mutually exclusive")
        return self

    @property
    def scanner_arguments(self) -> list[str]:
        """Scanner arguments with the config file option appended."""
        args = list(self.scanner_args)
        if self.scanner_config is not None:
            args.append(f"--config={self.scanner_config}")
        return args

    @property
    def cleanup_policy(self) -> CleanupPolicy:
        return CleanupPolicy.RETAIN if self.keep_refs else CleanupPolicy.REMOVE_ALL

    @classmethod
    def from_sources(cls, file_config: FileConfig | None = None, **overrides: Any) -> ScanConfig:
        """
        Build a config from file defaults and CLI overrides.

        ``None`` overrides are ignored so that file values and environment
        variables can fill them.

        Raises:
            ConfigError: If the merged values are invalid.
        """
        values: dict[str, Any] = {}
        if file_config is not None:
            values.update(file_config.model_dump(exclude_none=True))
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigError(_format_validation_error(e)) from e


def _format_validation_error(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        message = item["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return "Invalid configuration: " + "; ".join(messages)


def _has_tool_section(pyproject: Path) -> bool:
    try:
        with open(pyproject, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return False
    return "danglescan" in data.get("tool", {})


def find_config(start: Path | None = None) -> Path | None:
    """
    Search ``start`` and its parents for a danglescan config file.

    ``danglescan.toml`` wins over a ``pyproject.toml`` in the same directory;
    a ``pyproject.toml`` only counts when it has a ``[tool.danglescan]`` table.
    """
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        pyproject = directory / PYPROJECT_FILENAME
        if pyproject.is_file() and _has_tool_section(pyproject):
            return pyproject
    return None


def load_config(path: Path | None = None) -> FileConfig:
    """
    Load file defaults from ``path``, or from the discovered config file.

    Returns an empty FileConfig when no path is given and none is found.

    Raises:
        ConfigNotFoundError: If an explicit ``path`` does not exist.
        ConfigError: If the file is not valid TOML or has unknown keys.
    """
    if path is None:
        path = find_config()
        if path is None:
            return FileConfig()
    elif not path.is_file():
        raise ConfigNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"TOML syntax error in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if path.name == PYPROJECT_FILENAME:
        data = data.get("tool", {}).get("danglescan", {})
    elif "danglescan" in data and isinstance(data["danglescan"], dict):
        data = data["danglescan"]

    try:
        file_config = FileConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{path}: {_format_validation_error(e)}") from e
    return file_config.relative_to(path.parent)
