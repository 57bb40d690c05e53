"""personasim command-line interface.

Commands live in submodules under `personasim.cli.*`; each exposes `register(cli)`.
"""

from __future__ import annotations

import click

from personasim.app_version import get_app_version
from personasim.observability import init_observability


@click.group()
@click.version_option(version=get_app_version(), prog_name="personasim")
def cli() -> None:
    """personasim - persona-consistent customer replies for support training."""
    init_observability()


def _register_commands() -> None:
    from personasim.cli import conversations, generate, health, personas

    conversations.register(cli)
    generate.register(cli)
    health.register(cli)
    personas.register(cli)


_register_commands()


if __name__ == "__main__":
    cli()
