"""Persona preset CLI commands."""

from __future__ import annotations

import click

from personasim.cli.ui import console, render_personas_table
from personasim.prompts import PRESET_PERSONAS, SCENARIO_TEMPLATES


@click.command()
@click.option("--scenarios", is_flag=True, help="Also list scenario templates")
def personas(scenarios: bool) -> None:
    """List preset personas (and optionally scenario templates)."""
    render_personas_table(PRESET_PERSONAS)
    if scenarios:
        for key, scenario in SCENARIO_TEMPLATES.items():
            objectives = ", ".join(scenario.learning_objectives)
            console.print(f"[cyan]{key}[/cyan] {scenario.type}/{scenario.complexity}: {objectives}")


def register(cli: click.Group) -> None:
    cli.add_command(personas)
