"""Conversation analytics CLI commands."""

from __future__ import annotations

from typing import Any

import anyio
import click
from rich.table import Table

from personasim.cli.ui import console
from personasim.config import get_settings
from personasim.factory import build_simulator


@click.command()
@click.argument("conversation_id")
def analytics(conversation_id: str) -> None:
    """Show persona consistency analytics and cost metrics for a conversation."""
    try:
        simulator = build_simulator(get_settings())
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc

    async def _run() -> dict[str, Any]:
        result: dict[str, Any] = {
            "persona": await simulator.get_persona_analytics(conversation_id),
            "summary": await simulator.conversations.summarize(conversation_id),
        }
        tracker = simulator.metrics_tracker
        if tracker is not None:
            result["metrics"] = await tracker.get(conversation_id)
            result["cost"] = await tracker.check_cost_threshold(conversation_id)
            result["recommendations"] = await tracker.optimization_recommendations(conversation_id)
        return result

    data = anyio.run(_run)
    persona = data["persona"]

    if persona.event_count == 0 and data["summary"] is None:
        console.print(f"[yellow]No data recorded for conversation {conversation_id}[/yellow]")
        return

    table = Table(title=f"Conversation {conversation_id}", show_lines=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Consistency score", str(persona.consistency_score))
    table.add_row("Behavior events", str(persona.event_count))
    table.add_row("Patterns", ", ".join(persona.behavior_trends) or "-")

    summary = data["summary"]
    if summary is not None:
        table.add_row("Sentiment", summary.sentiment)
        table.add_row("Issue status", summary.issue_status)

    metrics = data.get("metrics")
    if metrics is not None:
        table.add_row("Requests", str(metrics.request_count))
        table.add_row("Tokens", str(metrics.total_tokens_used))
        table.add_row("Average latency", f"{metrics.average_response_time:.2f}s")
    cost = data.get("cost")
    if cost is not None:
        table.add_row("Cost (USD)", f"{cost.current_cost:.4f} / {cost.threshold:.2f}")
    console.print(table)

    for recommendation in [*persona.recommendations, *data.get("recommendations", [])]:
        console.print(f"- {recommendation}")


def register(cli: click.Group) -> None:
    cli.add_command(analytics)
