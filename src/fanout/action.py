"""Running a configured command against a set of hosts."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from fanout.config import Configuration
from fanout.dispatcher import BatchDispatcher, StateCallback
from fanout.listeners import LoggingListener, OutputListener
from fanout.logging import get_logger
from fanout.models import BatchResult

__all__ = ["CommandAction"]


class CommandAction:
    """Looks up a command template by id and runs it on every host.

    This is the entry point for callers that work with command ids rather
    than raw templates, such as the CLI.
    """

    def __init__(
        self,
        config: Configuration,
        listener: OutputListener | None = None,
        *,
        on_state: StateCallback | None = None,
        logger: structlog.stdlib.BoundLogger | Any | None = None,
    ) -> None:
        self._config = config
        self._logger = logger if logger is not None else get_logger("fanout.action")
        self._listener = listener if listener is not None else LoggingListener()
        self._on_state = on_state

    async def run(
        self,
        command_id: str,
        hosts: Iterable[str] | None = None,
        errors: list[str] | None = None,
        timeout: float | None = None,
    ) -> BatchResult:
        """Run the command named command_id.

        Args:
            command_id: Key of the template in the configured commands
            hosts: Target hosts, defaults to the configured host list
            errors: Caller-owned accumulator, every failure message is
                appended to it
            timeout: Per-host timeout in seconds, defaults to the configured one

        Raises:
            UnknownCommandError: If command_id is not configured
            ValueError: If there are no hosts to run on
        """
        template = self._config.get_command(command_id)
        return await self.run_template(template, hosts, errors, timeout, command_id=command_id)

    async def run_template(
        self,
        template: str,
        hosts: Iterable[str] | None = None,
        errors: list[str] | None = None,
        timeout: float | None = None,
        *,
        command_id: str | None = None,
    ) -> BatchResult:
        """Run a raw template with the configured host parameters."""
        targets = list(hosts) if hosts is not None else list(self._config.hosts)
        if not targets:
            raise ValueError("No hosts given and none configured")

        dispatcher = BatchDispatcher(
            self._listener,
            max_workers=self._config.max_workers,
            shutdown_grace=self._config.shutdown_grace,
            on_state=self._on_state,
            logger=self._logger,
        )
        self._logger.info("Running command", command_id=command_id or "<adhoc>", hosts=targets)
        result = await dispatcher.run_batch(
            template,
            targets,
            self._config.host_parameters(),
            timeout if timeout is not None else self._config.timeout,
        )

        if errors is not None:
            errors.extend(result.errors)
        return result
