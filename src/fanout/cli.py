"""CLI entry point for fanout using Typer."""

from __future__ import annotations

import asyncio
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from fanout.action import CommandAction
from fanout.config import Configuration, ConfigurationError, parse_duration
from fanout.logging import configure_logging, parse_log_level
from fanout.models import BatchResult, TaskState, UnknownCommandError

app = typer.Typer(
    name="fanout",
    help="Run a command template on many hosts at once",
    no_args_is_help=True,
)

console = Console()

STATE_STYLES = {
    TaskState.PENDING: "dim",
    TaskState.RUNNING: "yellow",
    TaskState.SUCCEEDED: "green",
    TaskState.FAILED: "red",
    TaskState.TIMED_OUT: "red",
    TaskState.LAUNCH_ERROR: "bold red",
}

HostsOption = Annotated[
    list[str] | None,
    typer.Option("--host", "-H", help="Target host, repeat for several (default: hosts from config)"),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config file (default: ~/.config/fanout/config.yaml)"),
]
TimeoutOption = Annotated[
    str | None,
    typer.Option("--timeout", "-t", help='Per-host timeout, e.g. "30", "90s", "5m"'),
]
UserOption = Annotated[str | None, typer.Option("--user", "-u", help="Remote user id (${hostUserId})")]
KeyOption = Annotated[Path | None, typer.Option("--key", "-i", help="SSH private key (${sshPrivateKey})")]
LogLevelOption = Annotated[str | None, typer.Option("--log-level", "-l", help="DEBUG, INFO, WARNING, ERROR")]


def _version_callback(value: bool) -> None:
    """Print version and exit if --version flag is provided."""
    if value:
        try:
            console.print(f"fanout {version('fanout')}")
        except PackageNotFoundError:
            console.print("[bold red]Error:[/bold red] Cannot determine fanout version")
            sys.exit(1)
        raise typer.Exit()


@app.callback()
def main(
    version_flag: Annotated[
        bool,
        typer.Option("--version", "-v", callback=_version_callback, is_eager=True, help="Show version and exit"),
    ] = False,
) -> None:
    """fanout: parallel command execution across hosts."""


def _load_configuration(config_path: Path | None, required: bool = True) -> Configuration:
    """Load the configuration, exiting with a readable report on failure.

    When not required, a missing default config file yields an empty
    Configuration; an explicitly given path must always exist.
    """
    path = config_path or Configuration.get_default_config_path()
    if not required and config_path is None and not path.exists():
        return Configuration()

    try:
        return Configuration.from_yaml(path)
    except ConfigurationError as e:
        console.print("[bold red]Configuration error:[/bold red]")
        for error in e.errors:
            console.print(f"  {error.path}: {error.message}")
        sys.exit(1)


def _apply_overrides(
    cfg: Configuration,
    user: str | None,
    key: Path | None,
    log_level: str | None,
) -> None:
    if user:
        cfg.user = user
    if key:
        key_path = key.expanduser()
        if not key_path.exists():
            console.print(f"[bold red]Error:[/bold red] SSH key not found: {key_path}")
            sys.exit(1)
        cfg.ssh_private_key = key_path
    if log_level:
        try:
            cfg.log_level = parse_log_level(log_level)
        except ValueError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            sys.exit(1)


def _parse_timeout(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


def _print_summary(result: BatchResult) -> None:
    table = Table(title="Results")
    table.add_column("Host", style="bold")
    table.add_column("State")
    table.add_column("Exit code", justify="right")
    table.add_column("Message")
    for task in result.results.values():
        style = STATE_STYLES.get(task.state, "white")
        table.add_row(
            escape(task.host),
            f"[{style}]{task.state.value}[/]",
            "" if task.exit_code is None else str(task.exit_code),
            escape(task.message or ""),
        )
    console.print(table)


def _on_state(host: str, state: TaskState) -> None:
    if state.is_terminal:
        style = STATE_STYLES.get(state, "white")
        console.print(f"[bold]{escape(host)}[/bold] [{style}]{state.value}[/]")


def _execute(
    cfg: Configuration,
    template: str | None,
    command_id: str | None,
    hosts: list[str] | None,
    timeout: float | None,
) -> int:
    """Run one batch and return the process exit code: 0=success, 1=failure, 130=SIGINT."""
    configure_logging(cfg.log_level, cfg.log_file)
    action = CommandAction(cfg, on_state=_on_state)

    try:
        if command_id is not None:
            coro = action.run(command_id, hosts or None, timeout=timeout)
        else:
            coro = action.run_template(template or "", hosts or None, timeout=timeout)
        result = asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130
    except (UnknownCommandError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1

    _print_summary(result)
    if not result.success:
        console.print(f"[bold red]Failed:[/bold red] {escape(result.error_text)}")
        return 1
    return 0


@app.command()
def run(
    command_id: Annotated[str, typer.Argument(help="Id of a command defined in the config file")],
    host: HostsOption = None,
    config: ConfigOption = None,
    timeout: TimeoutOption = None,
    user: UserOption = None,
    key: KeyOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Run a configured command on every host."""
    cfg = _load_configuration(config)
    _apply_overrides(cfg, user, key, log_level)
    sys.exit(_execute(cfg, None, command_id, host, _parse_timeout(timeout)))


@app.command(name="exec")
def exec_template(
    template: Annotated[str, typer.Argument(help="Command template, e.g. 'ssh ${hostUserId}@${hostName} uptime'")],
    host: HostsOption = None,
    config: ConfigOption = None,
    timeout: TimeoutOption = None,
    user: UserOption = None,
    key: KeyOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Run an ad-hoc command template on every host."""
    cfg = _load_configuration(config, required=False)
    _apply_overrides(cfg, user, key, log_level)
    sys.exit(_execute(cfg, template, None, host, _parse_timeout(timeout)))


@app.command()
def commands(config: ConfigOption = None) -> None:
    """List the commands defined in the config file."""
    cfg = _load_configuration(config)
    if not cfg.commands:
        console.print("No commands configured")
        return

    table = Table(title="Commands")
    table.add_column("Id", style="bold cyan")
    table.add_column("Template")
    for command_id, template in sorted(cfg.commands.items()):
        table.add_row(command_id, template)
    console.print(table)


if __name__ == "__main__":
    app()
