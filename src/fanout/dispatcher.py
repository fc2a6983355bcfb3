"""Running one command template on many hosts at once."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from fanout.listeners import LoggingListener, OutputListener
from fanout.logging import get_logger
from fanout.models import (
    BatchResult,
    HostTask,
    LaunchError,
    NonZeroExitError,
    TaskResult,
    TaskState,
    TaskTimeoutError,
)
from fanout.runner import ProcessRunner
from fanout.template import HostParameters, build_variables, resolve
from fanout.tokenizer import tokenize

__all__ = [
    "DEFAULT_SHUTDOWN_GRACE",
    "BatchDispatcher",
    "StateCallback",
]

DEFAULT_SHUTDOWN_GRACE = 60.0

StateCallback = Callable[[str, TaskState], None]  # (host, state) -> None


class BatchDispatcher:
    """Runs one process per host concurrently and aggregates the failures.

    Every host gets its own worker; ``max_workers`` caps how many run at
    the same time for very large host sets. The timeout is applied to each
    task and counts from the moment the batch is submitted, so a task still
    queued for a worker slot when it expires is reported as timed out too.

    Timed-out tasks are cancelled, which terminates their process. The
    batch never fails fast: a failing host does not affect its siblings.
    """

    def __init__(
        self,
        listener: OutputListener | None = None,
        *,
        runner: ProcessRunner | None = None,
        max_workers: int | None = None,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
        on_state: StateCallback | None = None,
        logger: structlog.stdlib.BoundLogger | Any | None = None,
    ) -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self._logger = logger if logger is not None else get_logger("fanout.dispatcher")
        self._listener = listener if listener is not None else LoggingListener()
        self._runner = runner if runner is not None else ProcessRunner(logger=self._logger)
        self._max_workers = max_workers
        self._shutdown_grace = shutdown_grace
        self._on_state = on_state
        self.states: dict[str, TaskState] = {}

    def build_tasks(self, template: str, hosts: Iterable[str], params: HostParameters) -> list[HostTask]:
        """Resolve and tokenize template once per host.

        Hosts are a set: a name given twice yields a single task.
        """
        tasks: list[HostTask] = []
        for host in dict.fromkeys(hosts):
            command = resolve(template, build_variables(host, params))
            args = tokenize(command)
            self._logger.debug("Command to execute", host=host, args=args)
            tasks.append(HostTask(host=host, args=tuple(args)))
        return tasks

    async def execute_batch(
        self,
        template: str,
        hosts: Iterable[str],
        params: HostParameters,
        timeout: float,
    ) -> str:
        """Run template on every host and return the combined error text.

        An empty string means every host's command exited with status 0
        within the timeout.
        """
        result = await self.run_batch(template, hosts, params, timeout)
        return result.error_text

    async def run_batch(
        self,
        template: str,
        hosts: Iterable[str],
        params: HostParameters,
        timeout: float,
    ) -> BatchResult:
        """Run template on every host and return the per-host results."""
        return await self.run_tasks(self.build_tasks(template, hosts, params), timeout)

    async def run_tasks(self, tasks: list[HostTask], timeout: float) -> BatchResult:
        """Run already built tasks concurrently, waiting at most timeout seconds for each.

        Raises:
            ValueError: If there are no tasks or timeout is not positive
        """
        if not tasks:
            raise ValueError("A batch needs at least one host")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        self.states = {}
        for task in tasks:
            self._set_state(task.host, TaskState.PENDING)

        pool_size = min(self._max_workers or len(tasks), len(tasks))
        workers = asyncio.Semaphore(pool_size)
        self._logger.info("Starting batch", hosts=len(tasks), workers=pool_size, timeout=timeout)

        futures = {
            task.host: asyncio.create_task(self._run_task(task, workers), name=f"fanout-{task.host}")
            for task in tasks
        }
        try:
            _, pending = await asyncio.wait(futures.values(), timeout=timeout)
        except asyncio.CancelledError:
            self._logger.warning("Batch cancelled, stopping tasks", hosts=len(tasks))
            unfinished = {future for future in futures.values() if not future.done()}
            if unfinished:
                await self._shutdown(unfinished)
            raise

        batch = BatchResult()
        for host, future in futures.items():
            if future in pending:
                result = TaskResult(
                    host=host,
                    state=TaskState.TIMED_OUT,
                    message=str(TaskTimeoutError(host, timeout)),
                )
                self._set_state(host, TaskState.TIMED_OUT)
                self._logger.warning("Task timed out", host=host, timeout=timeout)
            else:
                result = future.result()
            batch.results[host] = result

        if pending:
            await self._shutdown(pending)

        if batch.success:
            self._logger.info("Batch completed", hosts=len(tasks))
        else:
            self._logger.warning("Batch completed with failures", hosts=len(tasks), failed=len(batch.failures))
        return batch

    async def _run_task(self, task: HostTask, workers: asyncio.Semaphore) -> TaskResult:
        async with workers:
            self._set_state(task.host, TaskState.RUNNING)
            try:
                exit_code = await self._runner.run(task.host, task.args, self._listener)
            except LaunchError as e:
                return self._finish(task.host, TaskState.LAUNCH_ERROR, message=str(e))
            except Exception as e:
                self._logger.exception("Unexpected error while running task", host=task.host)
                return self._finish(task.host, TaskState.FAILED, message=f"Unexpected error on {task.host}: {e}")

        if exit_code != 0:
            error = NonZeroExitError(task.host, exit_code)
            return self._finish(task.host, TaskState.FAILED, exit_code=exit_code, message=str(error))
        return self._finish(task.host, TaskState.SUCCEEDED, exit_code=exit_code)

    def _finish(
        self,
        host: str,
        state: TaskState,
        exit_code: int | None = None,
        message: str | None = None,
    ) -> TaskResult:
        self._set_state(host, state)
        if message is not None:
            self._logger.warning("Task failed", host=host, state=state.value, error=message)
        return TaskResult(host=host, state=state, exit_code=exit_code, message=message)

    def _set_state(self, host: str, state: TaskState) -> None:
        current = self.states.get(host)
        # The first terminal state wins, a late finish after a timeout is ignored
        if current is not None and current.is_terminal:
            return
        self.states[host] = state
        if self._on_state is None:
            return
        try:
            self._on_state(host, state)
        except Exception:
            self._logger.exception("State callback failed", host=host, state=state.value)

    async def _shutdown(self, pending: set[asyncio.Task[TaskResult]]) -> None:
        """Cancel abandoned tasks and give them shutdown_grace seconds to clean up."""
        for future in pending:
            future.cancel()
        _, still_running = await asyncio.wait(pending, timeout=self._shutdown_grace)
        if still_running:
            self._logger.warning(
                "Tasks still running after shutdown grace period",
                tasks=sorted(future.get_name() for future in still_running),
                grace=self._shutdown_grace,
            )
