"""Reply generation CLI commands."""

from __future__ import annotations

from uuid import uuid4

import anyio
import click

from personasim.cli.ui import console, render_completions, render_reply
from personasim.config import get_settings
from personasim.factory import build_simulator
from personasim.models import Completion, GenerationOptions, TicketContext
from personasim.prompts import PRESET_PERSONAS, SCENARIO_TEMPLATES, get_preset_persona
from personasim.service import CustomerReply, CustomerRequest

_PERSONA_CHOICE = click.Choice(sorted(PRESET_PERSONAS))
_SCENARIO_CHOICE = click.Choice(sorted(SCENARIO_TEMPLATES))


def _options(temperature: float | None, max_tokens: int | None, model: str | None, no_cache: bool) -> GenerationOptions:
    return GenerationOptions(
        temperature=temperature,
        max_tokens=max_tokens,
        model=model,
        use_cache=not no_cache,
    )


@click.command()
@click.argument("message")
@click.option("--conversation-id", default=None, help="Conversation to continue (default: new)")
@click.option("--persona", "persona_key", type=_PERSONA_CHOICE, default=None, help="Preset persona")
@click.option("--scenario", "scenario_key", type=_SCENARIO_CHOICE, default=None, help="Scenario template")
@click.option("--issue", default=None, help="Ticket description for the customer's issue")
@click.option("--temperature", type=click.FloatRange(0.0, 2.0), default=None)
@click.option("--max-tokens", type=click.IntRange(min=1), default=None)
@click.option("--model", default=None, help="Override the primary model")
@click.option("--no-cache", is_flag=True, help="Bypass the completion cache")
@click.option("--json", "as_json", is_flag=True, help="Print the reply as JSON")
def generate(
    message: str,
    conversation_id: str | None,
    persona_key: str | None,
    scenario_key: str | None,
    issue: str | None,
    temperature: float | None,
    max_tokens: int | None,
    model: str | None,
    no_cache: bool,
    as_json: bool,
) -> None:
    """Generate the customer's reply to a trainee MESSAGE."""
    conversation_id = conversation_id or uuid4().hex
    ticket = TicketContext(id=f"ticket-{conversation_id[:8]}", description=issue) if issue else None
    request = CustomerRequest(
        conversation_id=conversation_id,
        user_message=message,
        persona=get_preset_persona(persona_key) if persona_key else None,
        ticket=ticket,
        scenario=SCENARIO_TEMPLATES[scenario_key] if scenario_key else None,
        options=_options(temperature, max_tokens, model, no_cache),
    )

    try:
        simulator = build_simulator(get_settings())
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc

    async def _run() -> CustomerReply:
        return await simulator.generate_customer_response(request)

    reply = anyio.run(_run)
    if as_json:
        click.echo(reply.model_dump_json(indent=2))
        return
    console.print(f"[dim]conversation {conversation_id}[/dim]")
    render_reply(reply)


@click.command()
@click.argument("message")
@click.option("--persona", "persona_key", type=_PERSONA_CHOICE, default="confused-user", show_default=True)
@click.option("--count", "-n", type=click.IntRange(1, 10), default=3, show_default=True)
@click.option("--conversation-id", default=None)
def variations(message: str, persona_key: str, count: int, conversation_id: str | None) -> None:
    """Generate COUNT unscored reply variations with nudged persona traits."""
    conversation_id = conversation_id or uuid4().hex
    persona = get_preset_persona(persona_key)
    try:
        simulator = build_simulator(get_settings())
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc

    async def _run() -> list[Completion]:
        return await simulator.generate_variations(conversation_id, message, persona, count)

    completions = anyio.run(_run)
    if not completions:
        raise click.ClickException("All variations failed")
    render_completions(completions)


def register(cli: click.Group) -> None:
    cli.add_command(generate)
    cli.add_command(variations)
