from __future__ import annotations

import click

from . import cli_common
from .exceptions import SalesforceError


@click.command("fields")
@click.argument("object_name")
@click.option(
    "--updatable-only",
    is_flag=True,
    help="Only the Id plus fields that can be written (no calculated/read-only fields).",
)
@click.option(
    "--external-keys",
    is_flag=True,
    help="Also list Target:IdField/Relationship names usable for upsert by external key.",
)
def fields_cmd(object_name: str, updatable_only: bool, external_keys: bool) -> None:
    """List the field names of OBJECT_NAME."""
    with cli_common.open_connection() as conn:
        try:
            names = conn.field_names(
                object_name,
                exclude_non_updatable=updatable_only,
                include_external_keys=external_keys,
            )
        except SalesforceError as e:
            raise click.ClickException(str(e)) from e

    for n in names:
        click.echo(n)
