"""CLI entry point for deploykeeper.

Commands:
- deploykeeper init: Write a starter deploykeeper.yaml
- deploykeeper validate: Check compose file and container presence
- deploykeeper status: Show container status
- deploykeeper start/stop/restart [NAME]: Container lifecycle (all when NAME omitted)
- deploykeeper update [NAME]: Pull and recreate one service or the whole stack
- deploykeeper app run: Run the configured process under supervision
"""

from __future__ import annotations

import sys
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from deploykeeper import __version__
from deploykeeper.core.config import (
    DEFAULT_CONFIG_PATH,
    Settings,
    build_container_supervisor,
    build_process_supervisor,
    load_settings,
)
from deploykeeper.core.containers import ContainerSupervisor
from deploykeeper.core.errors import DeployKeeperError, ProcessStartError
from deploykeeper.core.log_setup import setup_logging
from deploykeeper.core.models import ContainerStatus, UpdateOutcome

console = Console()

STATUS_STYLES = {
    ContainerStatus.RUNNING: "green",
    ContainerStatus.STOPPED: "red",
    ContainerStatus.DEAD: "red",
    ContainerStatus.PAUSED: "yellow",
    ContainerStatus.RESTARTING: "yellow",
    ContainerStatus.CREATED: "cyan",
    ContainerStatus.REMOVING: "yellow",
    ContainerStatus.UNKNOWN: "dim",
}

STARTER_CONFIG = """# deploykeeper configuration
# Environment variables override these values:
#   APP_WORKING_DIR, APP_START_COMMAND, DOCKER_COMPOSE_FILE, DOCKER_CONTAINERS

# Single-process workload (used by `deploykeeper app run`)
app:
  working_dir: .
  command: ["python", "-m", "app"]
  stop_timeout: 10
  health_interval: 5

# Compose-managed containers
docker:
  compose_file: ./docker-compose.yml
  containers:
    - web
  compose_timeout: 600

logging:
  level: INFO
"""


def _load(ctx: click.Context) -> Settings:
    """Load settings once per invocation and configure logging from them."""
    settings = ctx.obj.get("settings")
    if settings is None:
        try:
            settings = load_settings(ctx.obj["config_path"])
        except DeployKeeperError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        level = "DEBUG" if ctx.obj["verbose"] else settings.logging.level
        setup_logging(level)
        ctx.obj["settings"] = settings
    return settings


def _containers(ctx: click.Context) -> ContainerSupervisor:
    try:
        return build_container_supervisor(_load(ctx))
    except DeployKeeperError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _run_cancellable(fn: Callable[[threading.Event], UpdateOutcome]) -> UpdateOutcome:
    """Run an update on a worker thread so Ctrl-C can cancel the compose tool."""
    cancel = threading.Event()
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(fn, cancel)
        try:
            while not future.done():
                wait([future], timeout=0.2)
        except KeyboardInterrupt:
            console.print("[yellow]Cancelling update...[/yellow]")
            cancel.set()
        return future.result()


def _print_outcome(outcome: UpdateOutcome, title: str) -> None:
    if outcome.output.strip():
        console.print(Panel(outcome.output.strip(), title="Output"))
    if outcome.success:
        console.print(f"[green]{title} succeeded[/green]")
        return

    if outcome.timed_out:
        reason = "timed out"
    elif outcome.cancelled:
        reason = "cancelled"
    else:
        reason = "failed"
    console.print(f"[red]{title} {reason}[/red]")
    if outcome.error:
        console.print(Panel(outcome.error.strip(), title="Error", border_style="red"))


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help=f"Config file (default: ./{DEFAULT_CONFIG_PATH} if present)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """deploykeeper - lifecycle supervisor for local deployments."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def init(force: bool) -> None:
    """Write a starter deploykeeper.yaml in the current directory."""
    config_path = Path.cwd() / DEFAULT_CONFIG_PATH
    if config_path.exists() and not force:
        console.print(f"[yellow]{DEFAULT_CONFIG_PATH} already exists[/yellow]")
        return
    config_path.write_text(STARTER_CONFIG)
    console.print(Panel(f"[green]Created {config_path}[/green]", title="deploykeeper initialized"))


@main.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check the compose file and warn about containers not created yet."""
    supervisor = _containers(ctx)
    try:
        supervisor.validate()
    except DeployKeeperError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print("[green]Configuration is valid[/green]")


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the status of every configured container."""
    supervisor = _containers(ctx)
    infos = supervisor.get_all_status()

    table = Table(title="Containers")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Image", style="dim")
    for info in infos:
        style = STATUS_STYLES.get(info.status, "")
        table.add_row(info.name, f"[{style}]{info.status}[/{style}]" if style else str(info.status), info.image)
    console.print(table)

    missing = len(supervisor.container_names) - len(infos)
    if missing:
        console.print(f"[yellow]{missing} container(s) could not be inspected (see log)[/yellow]")


def _lifecycle_command(action: str) -> click.Command:
    @click.argument("name", required=False)
    @click.pass_context
    def command(ctx: click.Context, name: str | None) -> None:
        supervisor = _containers(ctx)
        try:
            if name:
                getattr(supervisor, action)(name)
            else:
                getattr(supervisor, f"{action}_all_containers")()
        except DeployKeeperError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        target = name or "all containers"
        console.print(f"[green]{action.capitalize()} completed:[/green] {target}")

    command.__doc__ = (
        f"{action.capitalize()} container NAME, or every configured container "
        "(stopping at the first failure)."
    )
    return main.command(name=action)(command)


start = _lifecycle_command("start")
stop = _lifecycle_command("stop")
restart = _lifecycle_command("restart")


@main.command()
@click.argument("name", required=False)
@click.option("--timeout", type=float, default=None, help="Per-step timeout in seconds")
@click.pass_context
def update(ctx: click.Context, name: str | None, timeout: float | None) -> None:
    """Pull and recreate service NAME, or run down/pull/up for the whole stack."""
    supervisor = _containers(ctx)
    if timeout is not None:
        supervisor.compose.timeout = timeout

    if name:
        outcome = _run_cancellable(lambda cancel: supervisor.update(name, cancel=cancel))
        _print_outcome(outcome, f"Update of '{name}'")
    else:
        outcome = _run_cancellable(lambda cancel: supervisor.update_all(cancel=cancel))
        _print_outcome(outcome, "Stack update")

    if not outcome.success:
        sys.exit(1)


@main.group()
def app() -> None:
    """Single-process workload commands."""
    pass


@app.command(name="run")
@click.option("--interval", type=float, default=None, help="Health check interval in seconds")
@click.pass_context
def app_run(ctx: click.Context, interval: float | None) -> None:
    """Start the configured process and supervise it until Ctrl-C.

    Exits non-zero if the process fails to start or dies on its own.
    """
    settings = _load(ctx)
    try:
        supervisor = build_process_supervisor(settings)
    except DeployKeeperError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    interval = interval or settings.app.health_interval

    with supervisor:
        try:
            supervisor.start()
        except ProcessStartError as e:
            console.print(f"[red]Failed to start '{supervisor.name}'[/red]")
            if e.stdout:
                console.print(Panel(e.stdout, title="stdout"))
            if e.stderr:
                console.print(Panel(e.stderr, title="stderr", border_style="red"))
            if not e.stdout and not e.stderr:
                console.print(str(e))
            sys.exit(1)
        except DeployKeeperError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

        console.print(f"[green]'{supervisor.name}' running[/green] (PID {supervisor.pid})")
        try:
            while supervisor.health_check():
                time.sleep(interval)
        except KeyboardInterrupt:
            console.print(f"\n[yellow]Stopping '{supervisor.name}'...[/yellow]")
            return

        _, stderr = supervisor.recent_output()
        console.print(f"[red]'{supervisor.name}' exited unexpectedly[/red]")
        if stderr:
            console.print(Panel(stderr, title="stderr (tail)", border_style="red"))
        sys.exit(1)


if __name__ == "__main__":
    main()
