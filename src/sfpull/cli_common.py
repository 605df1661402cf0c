from __future__ import annotations

import click

from .config import SessionConfig
from .connection import SalesforceConnection
from .exceptions import AuthError, MissingCredentialsError, SalesforceError

_MISSING_HELP = (
    "Set these environment variables (or create a .env file), e.g.:\n"
    "  SF_LOGIN_URL=https://login.salesforce.com  # or your My Domain URL\n"
    "  SF_USERNAME=...\n"
    "  SF_PASSWORD=...              # password followed by the security token\n"
    "  SF_API_VERSION=60.0          # optional\n"
)


def open_connection(*, query_all: bool = False) -> SalesforceConnection:
    """Build a connection from the environment and log in, with friendly errors."""
    try:
        cfg = SessionConfig.from_env()
        if query_all:
            cfg.query_all = True
        conn = SalesforceConnection(cfg)
        try:
            conn.connect()
        except SalesforceError:
            conn.close()
            raise
    except MissingCredentialsError as e:
        needed = ", ".join(e.missing)
        raise click.ClickException(f"Missing Salesforce settings: {needed}\n\n{_MISSING_HELP}") from e
    except AuthError as e:
        raise click.ClickException(str(e)) from e
    except SalesforceError as e:
        raise click.ClickException(f"Connection failed: {e}") from e
    return conn
