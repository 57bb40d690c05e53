"""Shared CLI UI helpers (Rich formatting)."""

from __future__ import annotations

from typing import Iterable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from personasim.models import Completion, ConsistencyViolation, HealthState, PersonaTraits
from personasim.service import CustomerReply

console = Console()

_SEVERITY_COLORS = {"low": "yellow", "medium": "dark_orange", "high": "red"}
_HEALTH_COLORS = {
    HealthState.HEALTHY.value: "green",
    HealthState.DEGRADED.value: "yellow",
    HealthState.UNHEALTHY.value: "red",
}


def format_health(status: str) -> str:
    color = _HEALTH_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def format_severity(severity: str) -> str:
    color = _SEVERITY_COLORS.get(severity, "white")
    return f"[{color}]{severity}[/{color}]"


def render_reply(reply: CustomerReply) -> None:
    border = "cyan" if reply.source == "ai" else "yellow"
    subtitle = f"{reply.model} · {reply.tokens_used} tokens · {reply.response_time:.2f}s"
    if reply.cached:
        subtitle += " · cached"
    console.print(Panel(reply.content, title=f"Customer ({reply.source})", subtitle=subtitle, border_style=border))

    if reply.quality_score is not None:
        console.print(f"Quality score: [bold]{reply.quality_score}[/bold]")
    if reply.consistency is not None:
        state = "consistent" if reply.consistency.is_consistent else "inconsistent"
        console.print(f"Consistency: [bold]{reply.consistency.updated_score}[/bold] ({state})")
        render_violations(reply.consistency.violations)


def render_violations(violations: Iterable[ConsistencyViolation]) -> None:
    violations = list(violations)
    if not violations:
        return
    table = Table(title="Consistency Violations", show_lines=False)
    table.add_column("Type", style="cyan")
    table.add_column("Severity")
    table.add_column("Description", style="white")
    for violation in violations:
        table.add_row(violation.type.value, format_severity(violation.severity), violation.description)
    console.print(table)


def render_completions(completions: Iterable[Completion]) -> None:
    for index, completion in enumerate(completions):
        console.print(
            Panel(
                completion.content,
                title=f"Variation {index}",
                subtitle=f"{completion.model} · {completion.tokens_used} tokens",
                border_style="magenta",
            )
        )


def render_personas_table(personas: dict[str, PersonaTraits]) -> None:
    table = Table(title="Preset Personas", show_lines=False)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Name", style="white", no_wrap=True)
    table.add_column("Traits")
    for key, persona in personas.items():
        table.add_row(
            key,
            persona.name,
            f"{persona.tech_level}, {persona.communication_style}, "
            f"{persona.patience} patience, {persona.emotional_state}",
        )
    console.print(table)
