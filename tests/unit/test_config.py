"""Tests for configuration loading and validation."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from fanout.config import Configuration, ConfigurationError, parse_duration
from fanout.models import UnknownCommandError
from fanout.template import HostParameters

FULL_CONFIG = """
log_level: debug
log_file: /tmp/fanout/run.log
timeout: 5m
shutdown_grace: 10
max_workers: 4
user: deploy
ssh_private_key: /keys/id_rsa
root_directory: /opt/app
home_directory: /var/lib/app
source_directory: /src/app
hosts:
  - db1
  - db2
variables:
  port: 2222
commands:
  uptime: ssh -p ${port} ${hostUserId}@${hostName} uptime
  copy: scp -r ${sourceDirectory} ${hostUserId}@${hostName}:${rootDirectory}
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(content)
    return path


class TestFromYaml:
    def test_full_config(self, tmp_path: Path) -> None:
        path = _write(tmp_path, FULL_CONFIG)

        config = Configuration.from_yaml(path)

        assert config.log_level == logging.DEBUG
        assert config.log_file == Path("/tmp/fanout/run.log")
        assert config.timeout == 300
        assert config.shutdown_grace == 10
        assert config.max_workers == 4
        assert config.user == "deploy"
        assert config.ssh_private_key == Path("/keys/id_rsa")
        assert config.hosts == ["db1", "db2"]
        assert config.variables == {"port": "2222"}
        assert set(config.commands) == {"uptime", "copy"}
        assert config.source_path == path

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config = Configuration.from_yaml(_write(tmp_path, ""))

        assert config.commands == {}
        assert config.hosts == []
        assert config.user == "root"
        assert config.timeout == 60
        assert config.max_workers is None
        assert config.log_level == logging.INFO

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            Configuration.from_yaml(tmp_path / "missing.yaml")

    def test_yaml_syntax_error_reports_line(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "hosts:\n  - a\n  b: [\n")

        with pytest.raises(ConfigurationError) as exc_info:
            Configuration.from_yaml(path)

        assert "line" in exc_info.value.errors[0].message

    def test_schema_errors_are_all_collected(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "max_workers: 0\nhosts: db1\nunknown_key: 1\n")

        with pytest.raises(ConfigurationError) as exc_info:
            Configuration.from_yaml(path)

        paths = {error.path for error in exc_info.value.errors}
        assert {"max_workers", "hosts", "root"} <= paths

    def test_invalid_duration(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Configuration.from_yaml(_write(tmp_path, "timeout: soon\n"))

        assert exc_info.value.errors[0].path == "timeout"

    def test_invalid_log_level_rejected_by_schema(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Configuration.from_yaml(_write(tmp_path, "log_level: LOUD\n"))

        assert exc_info.value.errors[0].path == "log_level"


class TestCommands:
    def test_get_command(self, tmp_path: Path) -> None:
        config = Configuration.from_yaml(_write(tmp_path, FULL_CONFIG))

        assert config.get_command("uptime") == "ssh -p ${port} ${hostUserId}@${hostName} uptime"

    def test_unknown_command(self) -> None:
        config = Configuration(commands={"start": "x", "stop": "y"})

        with pytest.raises(UnknownCommandError) as exc_info:
            config.get_command("restart")

        assert "restart" in str(exc_info.value)
        assert "start, stop" in str(exc_info.value)

    def test_host_parameters(self, tmp_path: Path) -> None:
        config = Configuration.from_yaml(_write(tmp_path, FULL_CONFIG))

        assert config.host_parameters() == HostParameters(
            user_id="deploy",
            root_directory="/opt/app",
            home_directory="/var/lib/app",
            ssh_private_key=Path("/keys/id_rsa"),
            source_directory=Path("/src/app"),
            extra={"port": "2222"},
        )


class TestParseDuration:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(30, 30.0), (1.5, 1.5), ("45", 45.0), ("90s", 90.0), ("5m", 300.0), ("1h", 3600.0)],
    )
    def test_valid(self, value: str | float, expected: float) -> None:
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "soon", 0, -1, True])
    def test_invalid(self, value: str | float) -> None:
        with pytest.raises(ValueError):
            parse_duration(value)


def test_default_config_path() -> None:
    assert Configuration.get_default_config_path() == Path.home() / ".config" / "fanout" / "config.yaml"
