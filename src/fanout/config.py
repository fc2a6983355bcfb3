"""Configuration loading and validation for fanout."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from pytimeparse2 import parse as parse_duration_seconds

from fanout.dispatcher import DEFAULT_SHUTDOWN_GRACE
from fanout.logging import parse_log_level
from fanout.models import UnknownCommandError
from fanout.template import HostParameters

__all__ = [
    "DEFAULT_TIMEOUT",
    "ConfigError",
    "Configuration",
    "ConfigurationError",
    "parse_duration",
]

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class ConfigError:
    """A single problem found while loading the configuration."""

    path: str  # Dotted path to the invalid value, "root" for the document itself
    message: str


@dataclass
class Configuration:
    """Parsed and validated configuration from YAML file."""

    commands: dict[str, str] = field(default_factory=dict)  # command id -> template
    hosts: list[str] = field(default_factory=list)
    user: str = "root"
    ssh_private_key: Path | None = None
    root_directory: str | None = None
    home_directory: str | None = None
    source_directory: Path | None = None
    variables: dict[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT  # Seconds, per host
    shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE
    max_workers: int | None = None  # None = one worker per host
    log_level: int = logging.INFO
    log_file: Path | None = None
    source_path: Path | None = None

    @classmethod
    def from_yaml(cls, path: Path) -> Configuration:
        """Load and validate configuration from YAML file.

        Args:
            path: Path to config.yaml

        Returns:
            Validated Configuration instance

        Raises:
            ConfigurationError: If the file is missing, is not valid YAML, or
                fails schema validation
        """
        try:
            with path.open() as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(
                [ConfigError(path=str(path), message=f"Configuration file not found: {path}")]
            ) from None
        except yaml.YAMLError as e:
            error_msg = str(e)
            mark = getattr(e, "problem_mark", None)
            problem = getattr(e, "problem", None)
            if mark is not None and problem is not None:
                error_msg = f"YAML syntax error at line {mark.line + 1}, column {mark.column + 1}: {problem}"
            raise ConfigurationError([ConfigError(path=str(path), message=error_msg)]) from e

        config = cls.from_dict(data if data is not None else {})
        config.source_path = path
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Configuration:
        """Validate an already parsed document and build a Configuration.

        Raises:
            ConfigurationError: With every problem found, not just the first
        """
        errors: list[ConfigError] = []

        validator = jsonschema.Draft7Validator(_load_schema())
        for error in validator.iter_errors(data):
            path_parts = list(error.absolute_path)
            path_str = ".".join(str(p) for p in path_parts) if path_parts else "root"
            errors.append(ConfigError(path=path_str, message=error.message))

        if errors:
            raise ConfigurationError(errors)

        timeout = _parse_field(data, "timeout", DEFAULT_TIMEOUT, parse_duration, errors)
        shutdown_grace = _parse_field(data, "shutdown_grace", DEFAULT_SHUTDOWN_GRACE, parse_duration, errors)
        log_level = _parse_field(data, "log_level", logging.INFO, parse_log_level, errors)

        if errors:
            raise ConfigurationError(errors)

        return cls(
            commands=dict(data.get("commands", {})),
            hosts=list(data.get("hosts", [])),
            user=data.get("user", "root"),
            ssh_private_key=_optional_path(data.get("ssh_private_key")),
            root_directory=data.get("root_directory"),
            home_directory=data.get("home_directory"),
            source_directory=_optional_path(data.get("source_directory")),
            variables={key: str(value) for key, value in data.get("variables", {}).items()},
            timeout=timeout,
            shutdown_grace=shutdown_grace,
            max_workers=data.get("max_workers"),
            log_level=log_level,
            log_file=_optional_path(data.get("log_file")),
        )

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the default config file path."""
        return Path.home() / ".config" / "fanout" / "config.yaml"

    def get_command(self, command_id: str) -> str:
        """Look up a command template by id.

        Raises:
            UnknownCommandError: If no command with that id is configured
        """
        try:
            return self.commands[command_id]
        except KeyError:
            raise UnknownCommandError(command_id, list(self.commands)) from None

    def host_parameters(self) -> HostParameters:
        """Settings shared by every host, as the dispatcher consumes them."""
        return HostParameters(
            user_id=self.user,
            root_directory=self.root_directory,
            home_directory=self.home_directory,
            ssh_private_key=self.ssh_private_key,
            source_directory=self.source_directory,
            extra=dict(self.variables),
        )


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    def __init__(self, errors: list[ConfigError]) -> None:
        self.errors = errors
        messages = [f"{e.path}: {e.message}" for e in errors]
        super().__init__("Configuration validation failed:\n" + "\n".join(messages))


def parse_duration(value: str | float) -> float:
    """Parse a duration in seconds from a number or a string like "90s" or "5m".

    Raises:
        ValueError: If the value is not a positive duration
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value}")
    if isinstance(value, int | float):
        seconds = float(value)
    else:
        parsed = parse_duration_seconds(value.strip())
        if parsed is None:
            raise ValueError(f"Invalid duration format: {value}")
        # pytimeparse2 returns int, float, or timedelta
        seconds = parsed.total_seconds() if isinstance(parsed, timedelta) else float(parsed)
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value}")
    return seconds


def _parse_field(data: dict[str, Any], key: str, default: Any, parser: Any, errors: list[ConfigError]) -> Any:
    if key not in data:
        return default
    try:
        return parser(data[key])
    except ValueError as e:
        errors.append(ConfigError(path=key, message=str(e)))
        return default


def _optional_path(value: str | None) -> Path | None:
    return Path(value).expanduser() if value else None


def _load_schema() -> dict[str, Any]:
    """Load the config schema from package resources."""
    schema_path = Path(__file__).parent / "schemas" / "config-schema.yaml"
    with schema_path.open() as f:
        return yaml.safe_load(f)
