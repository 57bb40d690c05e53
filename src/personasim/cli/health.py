"""Health CLI commands."""

from __future__ import annotations

import anyio
import click
from rich.table import Table

from personasim.cli.ui import console, format_health
from personasim.config import get_settings
from personasim.factory import build_simulator
from personasim.models import HealthStatus


@click.command()
@click.option("--probe", is_flag=True, help="Also check that the upstream completion service answers")
def health(probe: bool) -> None:
    """Show pipeline health (circuit breaker, cache, error counts)."""
    try:
        simulator = build_simulator(get_settings())
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc

    async def _run() -> HealthStatus:
        return await simulator.health_check(probe_upstream=probe)

    status = anyio.run(_run)
    console.print(f"Status: {format_health(status.status.value)}")

    table = Table(title="Health Details", show_lines=False)
    table.add_column("Check", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Circuit breaker open", str(status.circuit_breaker_open))
    table.add_row("Recent failures", str(status.recent_failures))
    table.add_row(
        "Last failure",
        status.last_failure_time.isoformat(timespec="seconds") if status.last_failure_time else "-",
    )
    for key, value in status.details.items():
        table.add_row(key, str(value))
    console.print(table)


def register(cli: click.Group) -> None:
    cli.add_command(health)
