"""Launching a single external process and streaming its output."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Sequence
from typing import Any

import structlog

from fanout.listeners import OutputListener, notify
from fanout.logging import get_logger
from fanout.models import LaunchError, OutputEvent, OutputType

__all__ = [
    "STREAM_LIMIT",
    "LocalProcess",
    "ProcessRunner",
]

# Longest output line delivered in one piece, in bytes
STREAM_LIMIT = 1024 * 1024

EXIT_POLL_INTERVAL = 0.1


class LocalProcess:
    """Process wrapper for a local asyncio subprocess."""

    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = proc

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    async def stdout(self) -> AsyncIterator[str]:
        """Iterate over stdout lines as they arrive."""
        async for line in _read_lines(self._proc.stdout):
            yield line

    async def stderr(self) -> AsyncIterator[str]:
        """Iterate over stderr lines as they arrive."""
        async for line in _read_lines(self._proc.stderr):
            yield line

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit status.

        Returns as soon as the process itself has exited, even when a
        descendant it left behind still holds its stdout or stderr open.
        """
        waiter = asyncio.ensure_future(self._proc.wait())
        try:
            while not waiter.done():
                if self._proc.returncode is not None:
                    return self._proc.returncode
                await asyncio.wait({waiter}, timeout=EXIT_POLL_INTERVAL)
            return waiter.result()
        finally:
            waiter.cancel()

    async def terminate(self, timeout: float) -> None:
        """Send SIGTERM, then SIGKILL if the process outlives timeout seconds."""
        if self._proc.returncode is not None:
            return
        try:
            self._proc.terminate()
            await asyncio.wait_for(self.wait(), timeout=timeout)
        except ProcessLookupError:
            return
        except TimeoutError:
            try:
                self._proc.kill()
            except ProcessLookupError:
                return
            await self.wait()


async def _read_lines(stream: asyncio.StreamReader | None) -> AsyncIterator[str]:
    """Yield decoded lines; a line over STREAM_LIMIT bytes arrives in several pieces."""
    if stream is None:
        return
    continued = False
    while True:
        try:
            raw = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            raw = e.partial
            if not raw:
                break
        except asyncio.LimitOverrunError as e:
            piece = await stream.readexactly(min(e.consumed, STREAM_LIMIT))
            yield piece.decode(errors="replace")
            continued = True
            continue
        line = raw.decode(errors="replace").rstrip("\r\n")
        # Only the terminator was left of an over-long line
        if line or not continued:
            yield line
        continued = False


class ProcessRunner:
    """Runs one argument vector as a child process and reports its output.

    stdout and stderr are read concurrently while the process runs, so
    lines reach the listener as soon as they are written. Each stream keeps
    its own order; the two streams are not ordered relative to each other.

    Once the process has exited its readers get ``drain_timeout`` seconds to
    deliver the remaining output. A pipe still held open after that, for
    example by a daemon the command started, is abandoned.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | Any | None = None,
        terminate_timeout: float = 5.0,
        drain_timeout: float = 2.0,
    ) -> None:
        self._logger = logger if logger is not None else get_logger("fanout.runner")
        self._terminate_timeout = terminate_timeout
        self._drain_timeout = drain_timeout

    async def start(self, host: str, args: Sequence[str]) -> LocalProcess:
        """Create the child process.

        Cancellation during creation kills a child that was already created.

        Raises:
            LaunchError: If the argument vector is empty or the executable
                cannot be started
        """
        if not args:
            raise LaunchError(host, "empty command")
        creation = asyncio.ensure_future(
            asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        )
        try:
            proc = await asyncio.shield(creation)
        except OSError as e:
            raise LaunchError(host, f"{args[0]}: {e.strerror or e}") from e
        except asyncio.CancelledError:
            creation.add_done_callback(lambda done: self._kill_orphan(host, done))
            raise
        self._logger.debug("Process started", host=host, pid=proc.pid, executable=args[0])
        return LocalProcess(proc)

    def _kill_orphan(self, host: str, creation: asyncio.Future[asyncio.subprocess.Process]) -> None:
        if creation.cancelled() or creation.exception() is not None:
            return
        proc = creation.result()
        self._logger.warning("Killing process started during cancellation", host=host, pid=proc.pid)
        with contextlib.suppress(ProcessLookupError):
            proc.kill()

    async def run(self, host: str, args: Sequence[str], listener: OutputListener) -> int:
        """Run args for host, stream its output to listener and return the exit status.

        If the calling task is cancelled the process is terminated before the
        cancellation propagates.

        Raises:
            LaunchError: If the process could not be created
        """
        process = await self.start(host, args)

        readers = [
            asyncio.create_task(self._pump(process.stdout(), OutputType.STDOUT, host, listener)),
            asyncio.create_task(self._pump(process.stderr(), OutputType.STDERR, host, listener)),
        ]

        try:
            exit_code = await process.wait()
            _, lingering = await asyncio.wait(readers, timeout=self._drain_timeout)
        except asyncio.CancelledError:
            self._logger.warning("Terminating process", host=host, pid=process.pid)
            for reader in readers:
                reader.cancel()
            await asyncio.shield(process.terminate(self._terminate_timeout))
            await asyncio.gather(*readers, return_exceptions=True)
            raise

        if lingering:
            self._logger.warning(
                "Output still open after process exit, no longer reading it",
                host=host,
                pid=process.pid,
                drain_timeout=self._drain_timeout,
            )
            for reader in lingering:
                reader.cancel()
            await asyncio.gather(*lingering, return_exceptions=True)

        self._logger.debug("Process exited", host=host, pid=process.pid, exit_code=exit_code)
        return exit_code

    async def _pump(
        self,
        lines: AsyncIterator[str],
        stream: OutputType,
        host: str,
        listener: OutputListener,
    ) -> None:
        try:
            async for line in lines:
                notify(listener, OutputEvent(stream=stream, host=host, line=line), self._logger)
        except OSError as e:
            self._logger.warning("Stopped reading output", host=host, stream=stream.value, error=str(e))
