"""Shared test fixtures for fanout tests."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from fanout.listeners import CapturingListener
from fanout.template import HostParameters


@pytest.fixture(scope="session", autouse=True)
def configure_test_logging() -> None:
    """Keep library loggers quiet while letting fanout's own logs through."""
    logging.getLogger().setLevel(logging.WARNING)
    logging.getLogger("fanout").setLevel(logging.DEBUG)
    logging.getLogger("tests").setLevel(logging.DEBUG)


@pytest.fixture
def mock_logger() -> MagicMock:
    """A stand-in for a structlog BoundLogger that records every call."""
    return MagicMock()


@pytest.fixture
def capture() -> CapturingListener:
    return CapturingListener()


@pytest.fixture
def params() -> HostParameters:
    return HostParameters(user_id="root", root_directory="/opt/app", home_directory="/var/app")


@pytest.fixture
def python_command() -> Callable[[str], str]:
    """Build a command template that runs a Python snippet with this interpreter.

    The snippet is double-quoted as a single argument, so it must only use
    single quotes itself. Template placeholders inside it are resolved per host.
    """

    def build(code: str) -> str:
        return f'"{sys.executable}" -c "{code}"'

    return build
