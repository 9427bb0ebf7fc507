"""CLI entry point for stakepool."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from stakepool import __version__
from stakepool.engine.models import BPS, RATE_SCALE
from stakepool.errors import LedgerError

if TYPE_CHECKING:
    from stakepool.config import Settings
    from stakepool.scenario import Scenario

console = Console()

scenario_argument = click.argument(
    "scenario_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
data_dir_option = click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Audit database directory (default: ~/.stakepool)",
)


@click.group()
@click.version_option(version=__version__, prog_name="stakepool")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: ~/.stakepool/config.toml)",
)
@click.option("--log-level", default=None, help="Override the configured log level")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """stakepool - pooled liquid-staking ledger and rebalancer."""
    from stakepool.config import load_settings
    from stakepool.observability import setup_logger

    try:
        settings = load_settings(config_path)
    except LedgerError as e:
        _fail(e)
    setup_logger(
        log_level or settings.logging.level,
        settings.logging.log_dir,
        json_logs=settings.logging.json_logs,
    )
    ctx.obj = settings


def _fail(error: LedgerError) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    raise SystemExit(1)


def _load(scenario_file: Path, settings: Settings) -> Scenario:
    from stakepool.scenario import load_scenario

    try:
        return load_scenario(scenario_file, settings)
    except LedgerError as e:
        _fail(e)


def _fmt_rate(rate: int) -> str:
    whole, frac = divmod(rate, RATE_SCALE)
    return f"{whole}.{frac:09d}"


def _fmt_bps(bps: int) -> str:
    return f"{bps * 100 / BPS:.2f}%"


@main.command()
def version() -> None:
    """Show the installed version."""
    console.print(f"stakepool {__version__}")


@main.command()
@data_dir_option
def init(data_dir: Path | None) -> None:
    """Create the stakepool data directory and audit database."""
    from stakepool.storage.database import Database

    db = Database(data_dir)
    db.ensure_tables()
    console.print(f"[green]stakepool initialized at {db.data_dir}[/green]")
    console.print(f"  Database: {db.db_path}")
    console.print(f"  Config:   {db.data_dir / 'config.toml'}")


@main.command()
@scenario_argument
@click.pass_obj
def rate(settings: Settings, scenario_file: Path) -> None:
    """Show vault balances and the exchange rate."""
    snap = _load(scenario_file, settings).vault.snapshot()

    table = Table(title="Vault")
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Pooled balance", str(snap.pooled_balance))
    table.add_row("Delegated capital", str(snap.delegated_capital))
    table.add_row("Accrued rewards", str(snap.accrued_rewards))
    table.add_row("Total value", str(snap.total_value))
    table.add_row("Receipt supply", str(snap.receipt_supply))
    table.add_row("Exchange rate", _fmt_rate(snap.exchange_rate))
    table.add_row("Paused", "yes" if snap.paused else "no")
    console.print(table)


@main.command()
@scenario_argument
@click.pass_obj
def workers(settings: Settings, scenario_file: Path) -> None:
    """List registered workers."""
    scenario = _load(scenario_file, settings)
    records = scenario.registry.all_workers()

    if not records:
        console.print("[dim]No workers registered.[/dim]")
        return

    table = Table(title="Workers")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Score", justify="right")
    table.add_column("Uptime", justify="right")
    table.add_column("Stake", justify="right")
    table.add_column("Commission", justify="right")
    table.add_column("Active", style="green")

    for record in records:
        table.add_row(
            record.worker_id,
            escape(record.name),
            str(record.performance_score),
            f"{record.uptime_percent}%",
            str(record.total_stake),
            _fmt_bps(record.commission_rate_bps),
            "yes" if record.active else "[red]no[/red]",
        )

    console.print(table)
    stats = scenario.registry.stats()
    console.print(
        f"\nTotal: {stats.total_workers} workers | "
        f"Active: {stats.active_workers} | "
        f"Stake: {stats.total_stake} | "
        f"Avg score: {stats.average_performance}"
    )


@main.command()
@scenario_argument
@click.pass_obj
def preview(settings: Settings, scenario_file: Path) -> None:
    """Show target allocation and drift for every active worker."""
    scenario = _load(scenario_file, settings)
    targets = scenario.engine.preview_allocation(
        scenario.strategy, scenario.vault, scenario.registry
    )

    if not targets:
        console.print("[dim]No active workers.[/dim]")
        return

    threshold = scenario.strategy.max_deviation_bps
    table = Table(title="Allocation Preview")
    table.add_column("Worker", style="cyan")
    table.add_column("Target", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Deviation", justify="right")
    table.add_column("Allocation", justify="right", style="green")

    for t in targets:
        deviation = _fmt_bps(t.deviation_bps)
        if t.deviation_bps > threshold:
            deviation = f"[yellow]{deviation}[/yellow]"
        table.add_row(
            t.worker,
            _fmt_bps(t.target_bps),
            _fmt_bps(t.current_bps),
            deviation,
            str(t.allocation_amount),
        )

    console.print(table)
    due = scenario.engine.should_rebalance(scenario.strategy, scenario.vault, scenario.registry)
    console.print(f"\nRebalance due: {'[bold]yes[/bold]' if due else 'no'}")


@main.command()
@scenario_argument
@data_dir_option
@click.option("--record", is_flag=True, help="Persist audit records of the simulation")
@click.pass_obj
def rebalance(
    settings: Settings, scenario_file: Path, data_dir: Path | None, record: bool
) -> None:
    """Simulate one rebalance pass over a scenario and print the operations."""
    scenario = _load(scenario_file, settings)

    if record:
        from stakepool.audit import SqliteAuditSink

        scenario.audit.subscribe(SqliteAuditSink(data_dir))

    engine = scenario.engine
    if not engine.should_rebalance(scenario.strategy, scenario.vault, scenario.registry):
        remaining = engine.cooldown_remaining(scenario.strategy, scenario.vault)
        if remaining:
            console.print(f"[dim]Cooldown active: {remaining} epoch(s) remaining.[/dim]")
        else:
            console.print("[dim]No rebalance needed.[/dim]")
        return

    try:
        operations = engine.execute(scenario.strategy, scenario.vault, scenario.registry)
    except LedgerError as e:
        _fail(e)

    if not operations:
        console.print("[dim]Rebalance ran but no stake could be moved.[/dim]")
        return

    table = Table(title="Rebalance Operations")
    table.add_column("From", style="cyan")
    table.add_column("To", style="green")
    table.add_column("Amount", justify="right")

    for op in operations:
        table.add_row(op.from_worker, op.to_worker, str(op.amount))

    console.print(table)
    console.print(f"\n[green]{len(operations)} operation(s)[/green]")


@main.command()
@data_dir_option
@click.option("--limit", default=20, help="Number of entries to show")
@click.option("--kind", default=None, help="Only show records of this kind")
def audit(data_dir: Path | None, limit: int, kind: str | None) -> None:
    """Show recent persisted audit records."""
    from stakepool.audit import AuditStore

    store = AuditStore(data_dir)
    rows = store.recent(limit=limit, kind=kind)

    if not rows:
        console.print("[dim]No audit records yet.[/dim]")
        return

    table = Table(title="Audit Trail")
    table.add_column("Seq", justify="right")
    table.add_column("Kind", style="cyan")
    table.add_column("Subject")
    table.add_column("Epoch", justify="right")
    table.add_column("Recorded")

    for row in rows:
        table.add_row(
            str(row.seq), row.kind, row.subject, str(row.epoch), row.recorded_at[:19]
        )

    console.print(table)
