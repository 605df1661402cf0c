from __future__ import annotations

import logging
import re
from typing import Any, Callable, Iterator, Optional, Sequence, Union

import requests

from .batching import DEFAULT_BATCH_LIMIT, BatchedIdFetcher
from .exceptions import ConfigurationError, NotDoneError, QueryError, SalesforceFault
from .metadata import FieldMetadataResolver
from .reconcile import DeletionIndex
from .records import ResultSet
from .window import FetchMode, FetchWindow

_logger = logging.getLogger(__name__)

_SOQL_RE = re.compile(r"^\s*select\s", re.IGNORECASE)


def is_soql(text: str) -> bool:
    """True for an explicit query, False for a bare object name."""
    return bool(_SOQL_RE.match(text or ""))


def build_soql(object_name: str, fields: Sequence[str], condition: Optional[str] = None) -> str:
    soql = f"SELECT {', '.join(fields)} FROM {object_name}"
    if condition:
        soql += f" WHERE {condition}"
    return soql


class QueryCursor:
    """Runs one fetch at a time and walks its server-side cursor.

    Pages replace each other: a caller must be done with a page before
    advancing. The deletion index of a deleted-since fetch lives until the
    next execute() or reset().
    """

    def __init__(
        self,
        api,
        resolver: Optional[FieldMetadataResolver] = None,
        *,
        query_all: bool = False,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
    ) -> None:
        self.api = api
        self.resolver = resolver or FieldMetadataResolver(api)
        self.fetcher = BatchedIdFetcher(api, batch_limit)
        self.query_all = query_all
        self.mode = FetchMode.ALL
        self.soql: Optional[str] = None
        self.deletion_index: Optional[DeletionIndex] = None

    def reset(self) -> None:
        self.soql = None
        self.deletion_index = None

    def execute(
        self,
        mode: Union[FetchMode, str],
        query_or_object: str,
        window: Optional[FetchWindow] = None,
        *,
        fields: Optional[Sequence[str]] = None,
        condition: Optional[str] = None,
        object_name: Optional[str] = None,
    ) -> ResultSet:
        """Run a fetch and return its first (or only) page.

        ``query_or_object`` is either an explicit SOQL query, used verbatim,
        or an object name, which is validated against its describe and
        turned into ``SELECT <fields> FROM <object>``.
        """
        mode = FetchMode(mode)
        if mode.needs_window and window is None:
            raise ConfigurationError(f"Fetch mode {mode.value!r} requires a time window.")

        self.reset()
        self.mode = mode

        if is_soql(query_or_object):
            if condition:
                raise ConfigurationError(
                    "A condition only applies to an object name; put it in the query instead."
                )
            soql = query_or_object.strip()
            obj = object_name
            field_list = list(fields or [])
            if mode.needs_window and not obj:
                raise ConfigurationError(
                    f"Fetch mode {mode.value!r} with an explicit query needs object_name."
                )
            if mode is FetchMode.UPDATED_SINCE and not field_list:
                raise ConfigurationError("Updated-since fetch with an explicit query needs fields.")
        else:
            obj = (query_or_object or "").strip()
            if not obj:
                raise ConfigurationError("Either a query or an object name is required.")
            described = self.resolver.describe(obj, mode)
            field_list = list(fields) if fields else [f.name for f in described]
            soql = build_soql(obj, field_list, condition)

        self.soql = soql
        _logger.debug("Fetch mode=%s object=%s soql=%s", mode.value, obj, soql)

        if mode is FetchMode.UPDATED_SINCE:
            ids = self._call("getUpdated", self.api.get_updated, obj, window.start, window.end)
            _logger.info("%d %s records updated in window", len(ids), obj)
            return ResultSet.of(self.fetcher.fetch(ids, field_list, obj))

        if mode is FetchMode.DELETED_SINCE:
            markers = self._call("getDeleted", self.api.get_deleted, obj, window.start, window.end)
            _logger.info("%d %s records deleted in window", len(markers), obj)
            if not markers:
                return ResultSet.empty()
            self.deletion_index = DeletionIndex.from_markers(markers)
            return ResultSet.from_json(self._call("queryAll", self.api.query_all, soql))

        if self.query_all:
            page = self._call("queryAll", self.api.query_all, soql)
        else:
            page = self._call("query", self.api.query, soql)
        result = ResultSet.from_json(page)
        _logger.info("Query returned %d of %d records", len(result), result.total_size)
        return result

    def advance(self, result: ResultSet) -> ResultSet:
        """Next page of ``result``; raises NotDoneError once the cursor is done."""
        if result.done:
            raise NotDoneError("The query is done; there are no more pages.")
        if not result.locator:
            raise QueryError("Result set is not done but carries no continuation locator.")
        page = ResultSet.from_json(self._call("queryMore", self.api.query_more, result.locator))
        _logger.debug("Advanced to a page of %d records (done=%s)", len(page), page.done)
        return page

    def pages(self, first: ResultSet) -> Iterator[ResultSet]:
        current = first
        yield current
        while not current.done:
            current = self.advance(current)
            yield current

    def _call(self, what: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except (SalesforceFault, requests.RequestException) as e:
            _logger.error("%s failed: %s", what, e)
            raise QueryError(f"{what} failed: {e}") from e
