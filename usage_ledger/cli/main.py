"""
CLI interface for Usage Ledger.

Provides command-line access to the stored usage telemetry.
"""

import csv
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from usage_ledger.config.loader import LedgerConfig, load_ledger_config
from usage_ledger.storage import (
    LedgerError,
    LedgerWarning,
    UsageLedger,
    UsageRepository,
    recompute_all_costs,
)

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

EXPORT_COLUMNS = [
    "id", "timestamp", "api_key", "model", "source", "input_tokens",
    "output_tokens", "total_tokens", "is_failure", "duration_ms",
    "cost_usd", "prompt_text", "completion_text",
]


class _State:
    directory: Optional[str] = None
    config_path: Optional[str] = None


state = _State()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    directory: Optional[str] = typer.Option(
        None,
        "--dir",
        "-d",
        help="Storage directory (overrides the config file)"
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging"
    )
):
    """Usage Ledger CLI."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )
    state.directory = directory
    state.config_path = config
    if ctx.invoked_subcommand is None:
        console.print("Usage Ledger - Use --help to see available commands")


def _open_ledger() -> UsageLedger:
    """Load config and initialize the ledger for one command."""
    config = load_ledger_config(state.config_path) if state.config_path else LedgerConfig()
    directory = Path(state.directory).expanduser() if state.directory else config.storage.path

    ledger = UsageLedger(pricing=config.pricing_table())
    ledger.initialize(directory)
    for warning in ledger.startup_warnings:
        console.print(f"[yellow]Warning:[/] {warning}")
    return ledger


def _run(command) -> None:
    """Run a command against an open ledger and exit with its status."""
    try:
        ledger = _open_ledger()
    except (LedgerError, ValueError, FileNotFoundError, yaml.YAMLError) as e:
        console.print(f"[red]Error opening usage database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    try:
        command(ledger.repository())
    except (LedgerError, LedgerWarning) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    finally:
        ledger.shutdown()
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: float) -> str:
    """Format currency with enough precision for per-request costs."""
    return f"${amount:,.4f}"


@app.command()
def init():
    """Initialize the usage database."""
    def command(repository: UsageRepository):
        console.print(f"[green]✓[/] Usage database ready at {repository.handle.db_path}")

    _run(command)


@app.command()
def activity(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of records to show"),
    offset: int = typer.Option(0, "--offset", help="Number of records to skip"),
    model: str = typer.Option("", "--model", "-m", help="Only show this model"),
    status: str = typer.Option("", "--status", "-s", help="'success' or 'failure'")
):
    """Show recent requests, newest first."""
    def command(repository: UsageRepository):
        records = repository.recent_activity(limit, offset, model, status)
        if not records:
            console.print("[dim]No usage records found.[/]")
            return

        table = Table(title="Recent Activity")
        table.add_column("Time (UTC)")
        table.add_column("Model")
        table.add_column("Source")
        table.add_column("Tokens", justify="right")
        table.add_column("Duration", justify="right")
        table.add_column("Cost", justify="right")
        table.add_column("Status")
        for record in records:
            table.add_row(
                record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                record.model,
                record.source,
                f"{record.total_tokens:,}",
                f"{record.duration_ms} ms",
                _format_currency(record.cost_usd),
                "[red]failure[/]" if record.is_failure else "[green]success[/]"
            )
        console.print(table)

    _run(command)


@app.command()
def trends(
    granularity: str = typer.Option("day", "--granularity", "-g", help="'hour' or 'day'"),
    limit: int = typer.Option(14, "--limit", "-n", help="Number of buckets to show")
):
    """Show requests, tokens and cost per hour or day."""
    def command(repository: UsageRepository):
        buckets = repository.usage_trends(granularity, limit)
        if not buckets:
            console.print("[dim]No usage records found.[/]")
            return

        table = Table(title=f"Usage by {granularity}")
        table.add_column("Bucket")
        table.add_column("Requests", justify="right")
        table.add_column("Failures", justify="right")
        table.add_column("Tokens", justify="right")
        table.add_column("Cost", justify="right")
        for bucket in buckets:
            table.add_row(
                bucket.bucket,
                str(bucket.requests),
                str(bucket.failures),
                f"{bucket.tokens:,}",
                _format_currency(bucket.cost)
            )
        console.print(table)

    _run(command)


@app.command()
def stats():
    """Show all-time totals, per-model totals and rolling costs."""
    def command(repository: UsageRepository):
        totals = repository.global_stats()
        costs = repository.period_costs()

        console.print("\n[bold]Usage Summary[/bold]")
        console.print("-" * 40)
        console.print(f"Total requests: {totals.total_requests:,}")
        console.print(f"Successful: {totals.success_count:,}")
        console.print(f"Failed: {totals.failure_count:,}")
        console.print(f"Total tokens: {totals.total_tokens:,}")
        console.print(f"Cost (24h): {_format_currency(costs.last_24h)}")
        console.print(f"Cost (7d): {_format_currency(costs.last_7d)}")
        console.print(f"Cost (all time): {_format_currency(costs.all_time)}")

        models = repository.per_model_stats()
        if models:
            table = Table(title="By Model")
            table.add_column("Model")
            table.add_column("Requests", justify="right")
            table.add_column("Tokens", justify="right")
            for model in models:
                table.add_row(model.model, f"{model.total_requests:,}", f"{model.total_tokens:,}")
            console.print(table)

    _run(command)


@app.command()
def export(
    output: str = typer.Argument(..., help="CSV file to write"),
    model: str = typer.Option("", "--model", "-m", help="Only export this model"),
    status: str = typer.Option("", "--status", "-s", help="'success' or 'failure'")
):
    """Export every matching request to CSV, newest first."""
    def command(repository: UsageRepository):
        records = repository.all_activity(model, status)
        with open(output, 'w', encoding='utf-8', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=EXPORT_COLUMNS)
            writer.writeheader()
            for record in records:
                row = asdict(record)
                row["timestamp"] = record.timestamp.strftime("%Y-%m-%d %H:%M:%S")
                writer.writerow({column: row[column] for column in EXPORT_COLUMNS})
        console.print(f"[green]✓[/] Exported {len(records)} records to {output}")

    _run(command)


@app.command()
def backfill():
    """Recompute every stored cost with the current pricing."""
    def command(repository: UsageRepository):
        report = recompute_all_costs(repository.handle, repository.pricing)
        console.print(f"[green]✓[/] Recomputed {report.updated} of {report.scanned} records")
        for row_id, message in report.failures:
            console.print(f"[yellow]Skipped record {row_id}:[/] {message}")

    _run(command)


if __name__ == "__main__":
    app()
