from __future__ import annotations

import click

from . import cli_common
from .exceptions import SalesforceError


@click.command("objects")
@click.option(
    "--all",
    "show_all",
    is_flag=True,
    help="Show all sObjects (default: only queryable).",
)
def objects_cmd(show_all: bool) -> None:
    """List sObjects (queryable by default)."""
    with cli_common.open_connection() as conn:
        try:
            names = conn.object_names(only_queryable=not show_all)
        except SalesforceError as e:
            raise click.ClickException(str(e)) from e

    for n in sorted(names):
        click.echo(n)
