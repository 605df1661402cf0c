from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional

import click
from tqdm import tqdm

from . import cli_common
from .connection import RecordValue
from .cursor import is_soql
from .exceptions import ConfigurationError, SalesforceError
from .records import raw_children, value_at
from .utils import split_csv_option, write_csv, write_csv_stream
from .window import FetchMode, FetchWindow, parse_mode

_logger = logging.getLogger(__name__)

_DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]

DELETED_DATE_COLUMN = "DeletedDate"


def _limited(values: Iterator[RecordValue], limit: Optional[int]) -> Iterator[RecordValue]:
    if limit is None:
        return values
    return itertools.islice(values, limit)


def _row(value: RecordValue, columns: List[str]) -> Dict[str, Optional[str]]:
    row = {c: value_at(value.record, c) for c in columns}
    if value.deleted_at is not None:
        row[DELETED_DATE_COLUMN] = value.deleted_at.isoformat()
    return row


def _columns_from(value: RecordValue) -> List[str]:
    return [f.name for f in raw_children(value.record)]


def _window_for(
    mode: FetchMode, start: Optional[datetime], end: Optional[datetime]
) -> Optional[FetchWindow]:
    """Validated window for updated/deleted modes; checked before logging in."""
    if not mode.needs_window:
        if start is not None or end is not None:
            raise click.UsageError("--start/--end only apply to --mode updated or deleted.")
        return None
    if start is None:
        raise click.UsageError(f"--start is required with --mode {mode.value}.")
    try:
        return FetchWindow(start, end or datetime.now(timezone.utc))
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


@click.command("extract")
@click.argument("target")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in FetchMode]),
    default=FetchMode.ALL.value,
    show_default=True,
    help="all: run the query; updated/deleted: records changed in [--start, --end).",
)
@click.option("--start", type=click.DateTime(formats=_DATE_FORMATS), help="Window start (UTC).")
@click.option(
    "--end", type=click.DateTime(formats=_DATE_FORMATS), help="Window end (UTC); default: now."
)
@click.option("--fields", help="Comma-separated fields; dotted paths like Owner.Name allowed.")
@click.option("--where", help="Optional SOQL WHERE clause (without the 'WHERE').")
@click.option(
    "--object",
    "object_name",
    help="Object name, needed in updated/deleted modes when TARGET is a query.",
)
@click.option("--query-all", is_flag=True, help="Include archived and deleted rows.")
@click.option(
    "--out",
    default="-",
    type=click.Path(dir_okay=False, allow_dash=True),
    help="Output CSV file; '-' for stdout.",
)
@click.option("--limit", type=int, help="Stop after this many records.")
@click.option("--progress/--no-progress", default=True, help="Show a progress bar on stderr.")
def extract_cmd(
    target: str,
    mode: str,
    start: Optional[datetime],
    end: Optional[datetime],
    fields: Optional[str],
    where: Optional[str],
    object_name: Optional[str],
    query_all: bool,
    out: str,
    limit: Optional[int],
    progress: bool,
) -> None:
    """Extract records of TARGET (an object name or a SOQL query) to CSV."""
    fetch_mode = parse_mode(mode)
    columns = split_csv_option(fields)
    if where and is_soql(target):
        raise click.UsageError("--where only applies when TARGET is an object name.")
    window = _window_for(fetch_mode, start, end)

    with cli_common.open_connection(query_all=query_all) as conn:
        try:
            conn.set_window(fetch_mode, window=window)
            conn.fetch(target, fields=columns or None, condition=where, object_name=object_name)

            values = _limited(conn.iter_records(), limit)
            first = next(values, None)
            if first is None:
                click.echo("No records found.", err=True)
                return
            if not columns:
                columns = _columns_from(first)
            header = list(columns)
            if fetch_mode is FetchMode.DELETED_SINCE:
                header.append(DELETED_DATE_COLUMN)

            rows: Iterable[Dict[str, Optional[str]]] = (
                _row(v, columns) for v in itertools.chain([first], values)
            )
            rows = tqdm(rows, desc="Extracting", unit="rec", disable=not progress)

            if out == "-":
                n = write_csv_stream(click.get_text_stream("stdout"), rows, header)
            else:
                n = write_csv(out, rows, header)
        except SalesforceError as e:
            raise click.ClickException(str(e)) from e

    _logger.info("Wrote %d rows to %s", n, out)
    if out != "-":
        click.echo(f"Wrote {n} rows -> {out}", err=True)
