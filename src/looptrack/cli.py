"""looptrack CLI entry point."""

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from looptrack import __version__
from looptrack.config import (
    CLOUD_DIR_ENV,
    LooptrackConfig,
    ensure_config_dir,
    get_config_path,
    get_default_config,
    get_nested_value,
    load_config,
    save_config,
    set_nested_value,
)
from looptrack.errors import ConfigError
from looptrack.identity import Identity, default_machine_id, load_identity, save_identity
from looptrack.report import daily_breakdown, machine_breakdown, summarize
from looptrack.sources.ccusage import CcusageSource
from looptrack.storage.records import RecordStore
from looptrack.sync.daemon import SyncDaemon
from looptrack.sync.engine import SyncEngine
from looptrack.utils.logging import LOG_FILE, setup_logging

console = Console()


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str, detail: str | None = None) -> None:
    console.print(f"[red]✗[/red] {message}")
    if detail:
        console.print(f"  [dim]{detail}[/dim]")


def print_warning(message: str) -> None:
    console.print(f"[yellow]⚠[/yellow] {message}")


def print_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


def format_cost(amount: float) -> str:
    return f"${amount:,.2f}"


@dataclass
class AppContext:
    """Objects every command needs, built once per invocation."""
    config: LooptrackConfig
    config_path: Path

    @property
    def store(self) -> RecordStore:
        return RecordStore(self.config.data_path)

    def engine(self) -> SyncEngine:
        return SyncEngine(self.store, CcusageSource(self.config.source))

    def identity(self) -> Identity | None:
        return load_identity(self.config.identity_path)

    def require_identity(self) -> Identity:
        identity = self.identity()
        if identity is None:
            print_error("This machine has no identity yet", "Run: looptrack init")
            sys.exit(1)
        return identity

    def shared_dir(self, identity: Identity) -> Path | None:
        override = os.getenv(CLOUD_DIR_ENV)
        if override:
            return Path(override).expanduser()
        return identity.cloud_path


pass_app = click.make_pass_decorator(AppContext)


@click.group()
@click.version_option(version=__version__, prog_name="looptrack")
@click.option(
    "--config", "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="LOOPTRACK_CONFIG",
    help="Config file (default ~/.looptrack/looptrack.yaml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, config_file: Path | None, verbose: bool) -> None:
    """looptrack: coding-assistant usage across all your machines.

    Each machine keeps its own usage file and shares it through a
    cloud-synced folder.
    """
    config_path = config_file or get_config_path()
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        print_error("Could not load configuration", str(e))
        sys.exit(1)

    level = "DEBUG" if verbose else cfg.logging.level
    setup_logging(level=level, log_dir=cfg.log_path, console=cfg.logging.console)
    ctx.obj = AppContext(config=cfg, config_path=config_path)


@main.command()
@click.option("--machine-id", help="Identifier for this machine")
@click.option("--cloud-dir", type=click.Path(file_okay=False), help="Cloud-synced folder to share usage through")
@pass_app
def init(app: AppContext, machine_id: str | None, cloud_dir: str | None) -> None:
    """Initialize looptrack on this machine."""
    console.print("[bold]Initializing looptrack...[/bold]")

    config_dir = ensure_config_dir(app.config, app.config_path.parent)
    console.print(f"  ✅ {config_dir}")

    if app.config_path.exists():
        console.print(f"  [dim]Config exists: {app.config_path}[/dim]")
    else:
        save_config(app.config, app.config_path)
        console.print(f"  ✅ Created: {app.config_path}")

    identity = app.identity()
    if identity is None:
        if machine_id is None:
            console.print("First time setup: Please identify this machine.")
            machine_id = click.prompt("Enter machine identifier", default=default_machine_id())
        try:
            identity = Identity(machine_id=machine_id.strip(), cloud_dir=cloud_dir)
        except ValueError as e:
            print_error(f"Invalid machine identifier: {machine_id}", str(e))
            sys.exit(1)
        save_identity(identity, app.config.identity_path)
        console.print(f"  ✅ Machine ID set to: [cyan]{identity.machine_id}[/cyan]")

        if app.store.migrate_legacy(identity.machine_id):
            console.print(f"  ✅ Migrated usage.json to usage-{identity.machine_id}.json")
    else:
        console.print(f"  [dim]Machine ID: {identity.machine_id}[/dim]")
        if machine_id and machine_id != identity.machine_id:
            print_warning(
                f"Identity already set to {identity.machine_id}; "
                f"ignoring --machine-id {machine_id}"
            )
        if cloud_dir:
            identity.cloud_dir = cloud_dir
            save_identity(identity, app.config.identity_path)
            console.print(f"  ✅ Cloud folder: {cloud_dir}")

    console.print("\n[green]✅ looptrack initialized.[/green]")
    console.print("\nNext: [cyan]looptrack sync[/cyan]")


@main.command()
@click.option("--no-exchange", is_flag=True, help="Skip pushing to / pulling from the cloud folder")
@pass_app
def sync(app: AppContext, no_exchange: bool) -> None:
    """Pull new usage from ccusage and share it."""
    identity = app.require_identity()
    engine = app.engine()
    shared_dir = None if no_exchange else app.shared_dir(identity)

    with console.status(f"[cyan]Syncing usage data for {identity.machine_id}...[/cyan]", spinner="dots"):
        result = engine.run_full_cycle(identity.machine_id, shared_dir)

    if not result.report.source_available:
        print_warning("No data to sync. Is ccusage available and is there usage to report?")
    print_success(result.report.summary())
    if result.report.skipped_sessions:
        print_warning(f"Skipped {result.report.skipped_sessions} malformed session(s); see the log")

    if result.exchange is not None:
        _print_exchange(result.exchange)
        if not result.exchange.ok:
            sys.exit(1)
    elif not no_exchange:
        print_info("No cloud folder set; usage stays on this machine")


@main.command()
@pass_app
def exchange(app: AppContext) -> None:
    """Push this machine's usage to the cloud folder and pull the others."""
    identity = app.require_identity()
    shared_dir = app.shared_dir(identity)
    if shared_dir is None:
        print_error("No cloud folder configured", "Run: looptrack cloud set <folder>")
        sys.exit(1)

    result = app.engine().run_exchange_cycle(app.config.data_path, shared_dir, identity.machine_id)
    _print_exchange(result)
    if not result.ok:
        sys.exit(1)


def _print_exchange(result) -> None:
    if result.ok:
        print_success(f"Cloud sync: {result.summary()}")
    else:
        print_error(f"Cloud sync: {result.summary()}")
        for err in result.errors:
            console.print(f"  [dim]{err}[/dim]")
    for name, reason in result.pull.skipped.items():
        print_warning(f"Skipped {name}: {reason}")


@main.command()
@pass_app
def status(app: AppContext) -> None:
    """Show identity, folders and known machines."""
    identity = app.identity()
    view = app.engine().aggregate_all()

    console.print(Panel.fit("[bold]looptrack Status[/bold]", border_style="cyan"))
    if identity:
        console.print(f"\n[cyan]Machine:[/cyan] {identity.machine_id}")
        shared_dir = app.shared_dir(identity)
        console.print(f"[cyan]Cloud folder:[/cyan] {shared_dir or '[dim]not set[/dim]'}")
    else:
        console.print("\n[cyan]Machine:[/cyan] [yellow]not initialized[/yellow]")
    console.print(f"[cyan]Data folder:[/cyan] {app.config.data_path}")
    console.print(f"[cyan]Machines:[/cyan] {', '.join(view.machines) or 'none'}")
    console.print(f"[cyan]Sessions:[/cyan] {len(view.records)}")
    console.print(f"[cyan]Last sync:[/cyan] {view.last_sync or 'never'}")
    for warning in view.warnings:
        print_warning(warning)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@pass_app
def summary(app: AppContext, as_json: bool) -> None:
    """Totals across all machines."""
    result = summarize(app.engine().aggregate_all())

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    console.print(Panel.fit("[bold]Usage Summary[/bold]", border_style="green"))
    console.print(f"\n  Sessions: {result.total_sessions:,}")
    console.print(f"  Cost: {format_cost(result.total_cost)}")
    console.print(f"  Input tokens: {result.total_input_tokens:,}")
    console.print(f"  Output tokens: {result.total_output_tokens:,}")
    console.print(f"  Projects: {len(result.projects)}")
    console.print(f"  Machines: {', '.join(result.machines) or 'none'}")
    console.print(f"  Last sync: {result.last_sync or 'never'}")


@main.command()
@click.option("--limit", "-n", default=14, type=int, help="Number of days")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@pass_app
def daily(app: AppContext, limit: int, as_json: bool) -> None:
    """Per-day usage, newest first."""
    days = daily_breakdown(app.engine().aggregate_all())[:limit]

    if as_json:
        click.echo(json.dumps([d.to_dict() for d in days], indent=2))
        return

    if not days:
        console.print("[yellow]No usage recorded yet[/yellow]")
        return

    table = Table(title="Daily Usage")
    table.add_column("Date", width=12)
    table.add_column("Sessions", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Top project", width=30)

    for day in days:
        top = max(day.projects.values(), key=lambda p: p.cost, default=None)
        table.add_row(
            day.date,
            str(day.sessions),
            format_cost(day.total_cost),
            top.name[:28] if top else "",
        )

    console.print(table)


@main.command()
@pass_app
def machines(app: AppContext) -> None:
    """Sessions and cost per machine."""
    identity = app.identity()
    current = identity.machine_id if identity else None
    rows = machine_breakdown(app.engine().aggregate_all())

    if not rows:
        console.print("[yellow]No machines found[/yellow]")
        return

    table = Table(title="Machines")
    table.add_column("Machine", width=24)
    table.add_column("Sessions", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")

    for row in rows:
        name = f"{row.machine_id} [green]●[/green]" if row.machine_id == current else row.machine_id
        table.add_row(name, str(row.sessions), f"{row.total_tokens:,}", format_cost(row.total_cost))

    console.print(table)


@main.command()
@click.option("--interval", type=float, help="Seconds between full cycles")
@click.option("--once", is_flag=True, help="Run a single cycle and exit")
@pass_app
def watch(app: AppContext, interval: float | None, once: bool) -> None:
    """Keep syncing on a timer and pull peer updates as they arrive."""
    identity = app.require_identity()
    watch_config = app.config.watch.model_copy()
    if interval is not None:
        watch_config.interval = interval

    daemon = SyncDaemon(
        app.engine(),
        identity.machine_id,
        shared_dir=app.shared_dir(identity),
        config=watch_config,
    )
    daemon.install_signal_handlers()

    console.print(f"[bold green]Watching usage for {identity.machine_id}[/bold green]")
    console.print(f"  Interval: {watch_config.interval:.0f}s")
    console.print(f"  Cloud folder: {daemon.shared_dir or 'none'}")
    daemon.run(max_cycles=1 if once else None)

    if daemon.last_result is not None:
        print_success(daemon.last_result.report.summary())


@main.group()
def cloud() -> None:
    """Cloud folder settings."""


@cloud.command("set")
@click.argument("folder", type=click.Path(file_okay=False))
@pass_app
def cloud_set(app: AppContext, folder: str) -> None:
    """Share usage through FOLDER (e.g. a Dropbox or iCloud folder)."""
    identity = app.require_identity()
    identity.cloud_dir = str(Path(folder).expanduser())
    save_identity(identity, app.config.identity_path)
    print_success(f"Cloud folder set to {identity.cloud_dir}")


@cloud.command("clear")
@pass_app
def cloud_clear(app: AppContext) -> None:
    """Stop sharing through a cloud folder."""
    identity = app.require_identity()
    identity.cloud_dir = None
    save_identity(identity, app.config.identity_path)
    print_success("Cloud folder cleared")


@main.group(invoke_without_command=True)
@click.pass_context
def config(ctx) -> None:
    """Configuration management.

    Without subcommand, shows current configuration.
    """
    if ctx.invoked_subcommand is None:
        ctx.invoke(config_show)


@config.command("show")
@pass_app
def config_show(app: AppContext) -> None:
    """Show current configuration."""
    cfg = app.config

    console.print(Panel.fit("[bold]looptrack Configuration[/bold]", border_style="cyan"))

    console.print(f"\n[cyan]Version:[/cyan] {cfg.version}")
    console.print(f"[cyan]Data folder:[/cyan] {cfg.data_path}")
    console.print(f"[cyan]Identity file:[/cyan] {cfg.identity_path}")

    console.print(f"\n[cyan]Source:[/cyan]")
    console.print(f"  Command: {' '.join(cfg.source.command)}")
    console.print(f"  Timeout: {cfg.source.timeout}s")
    console.print(f"  Enabled: {'✅' if cfg.source.enabled else '❌'}")

    console.print(f"\n[cyan]Watch:[/cyan]")
    console.print(f"  Interval: {cfg.watch.interval:.0f}s")
    console.print(f"  React to peers: {'✅' if cfg.watch.enabled else '❌'}")

    console.print(f"\n[cyan]Logging:[/cyan] {cfg.logging.level} → {cfg.log_path}")

    console.print(f"\n[dim]Config file: {app.config_path}[/dim]")


@config.command("set")
@click.argument("key")
@click.argument("value")
@pass_app
def config_set(app: AppContext, key: str, value: str) -> None:
    """Set a configuration value.

    Examples:
        looptrack config set watch.interval 600
        looptrack config set logging.level DEBUG
        looptrack config set source.timeout 300
    """
    cfg = app.config

    try:
        set_nested_value(cfg, key, value)
        save_config(cfg, app.config_path)
        print_success(f"Set {key} = {value}")
    except KeyError as e:
        print_error(f"Invalid config key: {key}", str(e))
        sys.exit(1)
    except ValueError as e:
        print_error(f"Invalid value for {key}", str(e))
        sys.exit(1)


@config.command("get")
@click.argument("key")
@pass_app
def config_get(app: AppContext, key: str) -> None:
    """Get a configuration value.

    Examples:
        looptrack config get watch.interval
        looptrack config get source.command
    """
    value = get_nested_value(app.config, key)

    if value is None:
        print_error(f"Key not found: {key}")
        sys.exit(1)
    console.print(f"{key} = {value}")


@config.command("reset")
@pass_app
def config_reset(app: AppContext) -> None:
    """Overwrite the config file with defaults."""
    save_config(get_default_config(), app.config_path)
    print_success(f"Reset {app.config_path}")


@main.command()
@click.option("--lines", "-n", default=50, type=int, help="Number of lines")
@pass_app
def logs(app: AppContext, lines: int) -> None:
    """Show recent log lines."""
    log_file = app.config.log_path / LOG_FILE

    if not log_file.exists():
        console.print("[yellow]No log file found.[/yellow]")
        return

    with open(log_file, encoding="utf-8") as f:
        tail = f.readlines()[-lines:]

    console.print("[bold]Recent Logs[/bold]")
    for line in tail:
        console.print(line.rstrip(), markup=False)


if __name__ == "__main__":
    main()
