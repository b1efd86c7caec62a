#!/usr/bin/env python3
"""regenconf CLI - cooperative configuration regeneration for self-hosted servers."""

import typer
from rich.console import Console

from regenconf.cli_hook_commands import register_hook_commands
from regenconf.cli_regen_commands import register_regen_commands
from regenconf.core.logger import get_logger

app = typer.Typer(
    name="regenconf",
    help="""regenconf - regenerate system configuration from per-service hooks

Quick start:
  regenconf hooks                 # List registered hooks
  regenconf regen --dry-run       # See what would change
  regenconf regen                 # Apply and reload services

More commands: regenconf --help
""",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

# Attach modular subcommands
register_regen_commands(app, console)
register_hook_commands(app, console)


def main():
    app()


if __name__ == "__main__":
    main()
