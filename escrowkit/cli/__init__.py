"""
escrowkit/cli/__init__.py

escrowkit CLI: root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    escrowkit = "escrowkit.cli:cli"

Adding a new command:
    1. Create escrowkit/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

import logging

import click

from escrowkit.cli.quote import quote_command
from escrowkit.cli.verify import verify_command


@click.group()
@click.version_option(package_name="escrowkit")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity for escrowkit.* loggers.",
)
def cli(log_level: str) -> None:
    """
    escrowkit: escrow ledger and fee tooling.

    \b
    Commands:
      verify    Verify a signed escrow event ledger.
      quote     Show what a deposit costs and what a claim pays.

    \b
    Quick start:
      escrowkit verify .escrowkit/events.jsonl
      escrowkit verify events.jsonl --format json
      escrowkit quote 1000 --fee-config client_covers_all
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(verify_command)
cli.add_command(quote_command)
