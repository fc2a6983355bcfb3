"""Listeners that receive process output as it is produced."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol

import structlog

from fanout.logging import get_logger
from fanout.models import OutputEvent, OutputType

__all__ = [
    "CapturingListener",
    "ListenerChain",
    "LoggingListener",
    "OutputListener",
    "notify",
]


class OutputListener(Protocol):
    """Receives every line a child process writes, one call per line.

    The two readers of a process and the processes of a whole batch all
    deliver to the same listener, so implementations must not assume a
    single caller.
    """

    def on_output(self, stream: OutputType, host: str, line: str) -> None:
        """Handle one line of output from host."""
        ...


class LoggingListener:
    """Logs stdout at info and stderr at warning level, then forwards to a delegate."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | Any | None = None,
        delegate: OutputListener | None = None,
    ) -> None:
        self._logger = logger if logger is not None else get_logger("fanout.output")
        self._delegate = delegate

    def on_output(self, stream: OutputType, host: str, line: str) -> None:
        if stream == OutputType.STDERR:
            self._logger.warning(f"ERROR from {host}: {line}", host=host, stream=stream.value)
        else:
            self._logger.info(f"From {host}: {line}", host=host, stream=stream.value)

        if self._delegate is not None:
            self._delegate.on_output(stream, host, line)


class ListenerChain:
    """Dispatches every event to each listener in order."""

    def __init__(self, listeners: Iterable[OutputListener] = ()) -> None:
        self._listeners: tuple[OutputListener, ...] = tuple(listeners)

    @property
    def listeners(self) -> tuple[OutputListener, ...]:
        return self._listeners

    def on_output(self, stream: OutputType, host: str, line: str) -> None:
        for listener in self._listeners:
            listener.on_output(stream, host, line)


class CapturingListener:
    """Keeps every event in arrival order."""

    def __init__(self) -> None:
        self.events: list[OutputEvent] = []

    def on_output(self, stream: OutputType, host: str, line: str) -> None:
        self.events.append(OutputEvent(stream=stream, host=host, line=line))

    def lines(self, host: str, stream: OutputType | None = None) -> list[str]:
        """Lines received from host, optionally restricted to one stream."""
        return [
            event.line
            for event in self.events
            if event.host == host and (stream is None or event.stream == stream)
        ]

    @property
    def hosts(self) -> set[str]:
        return {event.host for event in self.events}


def notify(
    listener: OutputListener,
    event: OutputEvent,
    logger: structlog.stdlib.BoundLogger | Any,
) -> None:
    """Deliver event to listener, logging and absorbing anything it raises.

    A misbehaving listener must not stop a reader from draining the rest
    of the stream, otherwise the child can block on a full pipe.
    """
    try:
        listener.on_output(event.stream, event.host, event.line)
    except Exception:
        logger.exception("Output listener failed", host=event.host, stream=event.stream.value)
