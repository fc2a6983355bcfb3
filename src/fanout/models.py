"""Core types and dataclasses for fanout."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

__all__ = [
    "BatchResult",
    "ExecutionError",
    "HostTask",
    "LaunchError",
    "NonZeroExitError",
    "OutputEvent",
    "OutputType",
    "TaskResult",
    "TaskState",
    "TaskTimeoutError",
    "UnknownCommandError",
]


class OutputType(StrEnum):
    """Which stream of a child process a line came from."""

    STDOUT = "stdout"
    STDERR = "stderr"


class TaskState(StrEnum):
    """Lifecycle of a single host task.

    PENDING -> RUNNING -> one of the terminal states. Exactly one terminal
    state is reached per task.
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    LAUNCH_ERROR = "launch_error"

    @property
    def is_terminal(self) -> bool:
        return self not in (TaskState.PENDING, TaskState.RUNNING)


@dataclass(frozen=True)
class OutputEvent:
    """A single line of process output, forwarded to listeners and never stored."""

    stream: OutputType
    host: str
    line: str


@dataclass(frozen=True)
class HostTask:
    """A host name and the fully resolved argument vector to run for it."""

    host: str
    args: tuple[str, ...]


@dataclass(frozen=True)
class TaskResult:
    """Terminal outcome of one host task."""

    host: str
    state: TaskState
    exit_code: int | None = None
    message: str | None = None  # None unless the task failed

    @property
    def success(self) -> bool:
        return self.state == TaskState.SUCCEEDED


@dataclass
class BatchResult:
    """Outcome of a batch: one TaskResult per host.

    The order of results follows the order hosts were submitted in, which
    says nothing about the order in which they finished.
    """

    results: dict[str, TaskResult] = field(default_factory=dict)

    @property
    def failures(self) -> list[TaskResult]:
        return [result for result in self.results.values() if not result.success]

    @property
    def errors(self) -> list[str]:
        """One message per failing host."""
        return [result.message or f"Task on {result.host} failed" for result in self.failures]

    @property
    def error_text(self) -> str:
        """All failure messages joined with "; ". Empty means every host succeeded."""
        return "; ".join(self.errors)

    @property
    def success(self) -> bool:
        return not self.failures


class ExecutionError(Exception):
    """Base class for errors tied to a single host's command."""

    def __init__(self, host: str, message: str) -> None:
        self.host = host
        super().__init__(message)


class LaunchError(ExecutionError):
    """Raised when the child process could not be created."""

    def __init__(self, host: str, reason: str) -> None:
        self.reason = reason
        super().__init__(host, f"Could not launch process on {host}: {reason}")


class NonZeroExitError(ExecutionError):
    """The process ran but exited with a non-zero status."""

    def __init__(self, host: str, exit_code: int) -> None:
        self.exit_code = exit_code
        super().__init__(
            host,
            f"Process on {host} exited with code {exit_code}. Please check the logs for details.",
        )


class TaskTimeoutError(ExecutionError):
    """The task did not finish within the batch timeout."""

    def __init__(self, host: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(host, f"Process on {host} did not complete within {timeout:g} seconds")


class UnknownCommandError(KeyError):
    """Raised when a command id is not present in the command store."""

    def __init__(self, command_id: str, known: list[str]) -> None:
        self.command_id = command_id
        self.known = known
        super().__init__(command_id)

    def __str__(self) -> str:
        available = ", ".join(sorted(self.known)) or "none"
        return f"Unknown command '{self.command_id}' (available: {available})"
