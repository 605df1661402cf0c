from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

import requests

from .api import LoginResult, SalesforceAPI
from .batching import DEFAULT_BATCH_LIMIT
from .config import SessionConfig
from .cursor import QueryCursor
from .exceptions import (
    AuthError,
    CloseError,
    ConfigurationError,
    QueryError,
    SalesforceConnectionError,
    SalesforceFault,
    WriteError,
)
from .metadata import FieldDescriptor, FieldMetadataResolver, names
from .reconcile import DeletionIndex, ReconcileStep, iter_deleted, next_deleted
from .records import Record, ResultSet, value_at
from .window import FetchMode, FetchWindow

_logger = logging.getLogger(__name__)

# Login faults reported to the user as "invalid credentials or access restricted"
AUTH_FAULT_CODES = frozenset(
    {
        "FUNCTIONALITY_NOT_ENABLED",
        "INVALID_CLIENT",
        "INVALID_LOGIN",
        "LOGIN_DURING_RESTRICTED_DOMAIN",
        "LOGIN_DURING_RESTRICTED_TIME",
        "ORG_LOCKED",
        "PASSWORD_LOCKOUT",
        "SERVER_UNAVAILABLE",
        "TRIAL_EXPIRED",
        "UNSUPPORTED_CLIENT",
    }
)


@dataclass(frozen=True)
class RecordValue:
    """A record handed to the caller, with its position in the current page."""

    index: int
    record: Optional[Record]
    deleted_at: Optional[datetime] = None
    index_changed: bool = False
    all_processed: bool = False


def _from_step(step: ReconcileStep) -> RecordValue:
    return RecordValue(
        index=step.index,
        record=step.record,
        deleted_at=step.deleted_at,
        index_changed=step.index_changed,
        all_processed=step.exhausted,
    )


class SalesforceConnection:
    """One Salesforce session: connect, fetch, walk pages, write, close.

    Not thread safe; one caller at a time. Once closed, a connection
    refuses every further call.
    """

    def __init__(
        self,
        cfg: SessionConfig,
        api: Optional[SalesforceAPI] = None,
        *,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
    ) -> None:
        cfg.validate()
        self.cfg = cfg
        self.api = api or SalesforceAPI(cfg)
        self.resolver = FieldMetadataResolver(self.api)
        self.cursor = QueryCursor(
            self.api, self.resolver, query_all=cfg.query_all, batch_limit=batch_limit
        )
        self.login_result: Optional[LoginResult] = None
        self.mode = FetchMode.ALL
        self.window: Optional[FetchWindow] = None
        self.result: Optional[ResultSet] = None
        self._closed = False
        _logger.debug("New connection for %s at %s", cfg.username, cfg.login_url)

    # --------------------------- Lifecycle ---------------------------

    def connect(self) -> LoginResult:
        self._ensure_open()
        _logger.info("Logging in to %s as %s", self.cfg.login_url, self.cfg.username)
        try:
            self.login_result = self.api.login(
                self.cfg.login_url, self.cfg.username or "", self.cfg.password or ""
            )
        except SalesforceFault as e:
            if e.code in AUTH_FAULT_CODES:
                raise AuthError(e.code) from e
            raise SalesforceConnectionError(f"Unable to connect: {e}") from e
        except requests.RequestException as e:
            raise SalesforceConnectionError(f"Unable to connect: {e}") from e

        info = self.login_result.user_info
        _logger.debug("Session id: %s...", self.login_result.session_id[:12])
        _logger.debug("Server URL: %s", self.login_result.server_url)
        _logger.debug(
            "User %s <%s>, language=%s, organization=%s",
            info.get("userFullName"),
            info.get("userEmail"),
            info.get("userLanguage"),
            info.get("organizationName"),
        )
        _logger.info("Connected to %s", self.login_result.instance_url)
        return self.login_result

    @property
    def connected(self) -> bool:
        return not self._closed and self.login_result is not None

    @property
    def server_timestamp(self) -> Optional[datetime]:
        return self.login_result.server_timestamp if self.login_result else None

    def close(self) -> None:
        if self._closed:
            return
        try:
            self.cursor.reset()
            self.result = None
            self.api.close()
        except (SalesforceFault, requests.RequestException, OSError) as e:
            raise CloseError(f"Error closing the connection: {e}") from e
        finally:
            self._closed = True
            self.login_result = None
        _logger.info("Connection closed")

    def __enter__(self) -> SalesforceConnection:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # --------------------------- Fetching ----------------------------

    def set_window(
        self,
        mode: Union[FetchMode, str],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        window: Optional[FetchWindow] = None,
    ) -> None:
        """Pick the fetch mode; updated/deleted modes validate their window here.

        A ready-made ``window`` may be passed instead of ``start``/``end``.
        """
        mode = FetchMode(mode)
        if not mode.needs_window:
            window = None
        elif window is None:
            if start is None or end is None:
                raise ConfigurationError("Start date and end date are both required.")
            window = FetchWindow(start, end)
        self.mode = mode
        self.window = window

    def fetch(
        self,
        query_or_object: str,
        *,
        fields: Optional[Sequence[str]] = None,
        condition: Optional[str] = None,
        object_name: Optional[str] = None,
    ) -> ResultSet:
        self._ensure_connected()
        self.result = self.cursor.execute(
            self.mode,
            query_or_object,
            self.window,
            fields=fields,
            condition=condition,
            object_name=object_name,
        )
        return self.result

    @property
    def has_more(self) -> bool:
        return self.result is not None and not self.result.done

    def advance(self) -> ResultSet:
        """Replace the current page with the next one."""
        self._ensure_connected()
        if self.result is None:
            raise QueryError("Nothing fetched yet; call fetch() first.")
        self.result = self.cursor.advance(self.result)
        return self.result

    def record(self, index: int) -> RecordValue:
        """Record at ``index`` of the current page.

        In deleted-since mode the record is paired with its deletion date,
        or the next deleted record of the page is returned instead.
        """
        if self.result is None:
            raise QueryError("Nothing fetched yet; call fetch() first.")
        records = self.result.records
        deletion_index = self._deletion_index()
        if deletion_index is not None:
            return _from_step(next_deleted(records, index, deletion_index))
        return RecordValue(index=index, record=records[index])

    def iter_records(self) -> Iterator[RecordValue]:
        """Every record of the fetch, advancing through the pages."""
        if self.result is None:
            raise QueryError("Nothing fetched yet; call fetch() first.")
        for page in self.cursor.pages(self.result):
            self.result = page
            deletion_index = self._deletion_index()
            if deletion_index is not None:
                for step in iter_deleted(page.records, deletion_index):
                    yield _from_step(step)
                continue
            for index, record in enumerate(page.records):
                if record is not None:
                    yield RecordValue(index=index, record=record)

    def _deletion_index(self) -> Optional[DeletionIndex]:
        # Mode of the fetch that produced the current page
        if self.cursor.mode is FetchMode.DELETED_SINCE:
            return self.cursor.deletion_index
        return None

    @staticmethod
    def value(record: Optional[Record], path: str) -> Optional[str]:
        return value_at(record, path)

    # --------------------------- Schema ------------------------------

    def object_names(self, only_queryable: bool = True) -> List[str]:
        self._ensure_connected()
        return self.resolver.object_names(only_queryable)

    def object_fields(
        self, object_name: str, exclude_non_updatable: bool = False
    ) -> List[FieldDescriptor]:
        self._ensure_connected()
        return self.resolver.fields(object_name, exclude_non_updatable)

    def field_names(
        self,
        object_name: str,
        exclude_non_updatable: bool = False,
        include_external_keys: bool = False,
    ) -> List[str]:
        """Field names; with external keys, also ``Target:IdField/Relationship`` entries."""
        fields = self.object_fields(object_name, exclude_non_updatable)
        if not include_external_keys:
            return names(fields, exclude_non_updatable)
        return [ref.render() for ref in self.resolver.expand(fields, exclude_non_updatable)]

    # --------------------------- Writes ------------------------------

    def insert(self, records: Sequence[Optional[Dict[str, Any]]]) -> List[Any]:
        batch = [r for r in records if r is not None]
        return self._write("insert", self.api.create, batch, all_or_none=self._all_or_none)

    def update(self, records: Sequence[Dict[str, Any]]) -> List[Any]:
        return self._write("update", self.api.update, list(records), all_or_none=self._all_or_none)

    def upsert(
        self, object_name: str, key_field: str, records: Sequence[Dict[str, Any]]
    ) -> List[Any]:
        return self._write(
            "upsert",
            self.api.upsert,
            object_name,
            key_field,
            list(records),
            all_or_none=self._all_or_none,
        )

    def delete(self, ids: Sequence[str]) -> List[Any]:
        return self._write("delete", self.api.delete, list(ids), all_or_none=self._all_or_none)

    @property
    def _all_or_none(self) -> bool:
        return self.cfg.rollback_all_changes_on_error

    def _write(self, what: str, fn: Callable[..., List[Any]], *args: Any, **kwargs: Any) -> List[Any]:
        self._ensure_connected()
        try:
            results = fn(*args, **kwargs)
        except (SalesforceFault, requests.RequestException) as e:
            raise WriteError(f"Error during {what}: {e}") from e
        _logger.debug("%s returned %d results", what, len(results))
        return results

    # --------------------------- Guards ------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise SalesforceConnectionError("Connection is closed.")

    def _ensure_connected(self) -> None:
        self._ensure_open()
        if self.login_result is None:
            raise SalesforceConnectionError("Not connected; call connect() first.")
