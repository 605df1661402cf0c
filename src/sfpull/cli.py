from __future__ import annotations

import logging
from typing import cast

import click
from click import Command

from . import __version__
from .command_extract import extract_cmd
from .command_fields import fields_cmd
from .command_objects import objects_cmd
from .env_loader import load_env_files
from .logging_config import configure_logging, level_for_verbosity

_logger = logging.getLogger(__name__)


@click.group(
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=True,
)
@click.version_option(__version__, "--version", prog_name="sfpull")
@click.option("-v", "--verbose", "verbosity", count=True, help="-v for INFO logs, -vv for DEBUG.")
@click.pass_context
def cli(ctx: click.Context, verbosity: int) -> None:
    """sfpull CLI: incremental Salesforce extracts. Use subcommands like 'objects' or 'extract'."""
    configure_logging(level_for_verbosity(verbosity))
    load_env_files()
    _logger.debug("CLI start, version=%s", __version__)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(cast(Command, objects_cmd))
cli.add_command(cast(Command, fields_cmd))
cli.add_command(cast(Command, extract_cmd))
