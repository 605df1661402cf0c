from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Sequence

import requests

from .exceptions import QueryError, SalesforceFault
from .records import Record

_logger = logging.getLogger(__name__)

DEFAULT_BATCH_LIMIT = 2000


def chunked(items: Sequence[str], size: int) -> Iterator[List[str]]:
    """Contiguous chunks of at most ``size``; the final partial chunk is yielded once."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    chunk: List[str] = []
    for item in items:
        chunk.append(item)
        if len(chunk) == size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


class BatchedIdFetcher:
    """Materialise records for a list of ids, respecting the per-call id limit."""

    def __init__(self, api, batch_limit: int = DEFAULT_BATCH_LIMIT) -> None:
        if batch_limit < 1:
            raise ValueError(f"batch_limit must be >= 1, got {batch_limit}")
        self.api = api
        self.batch_limit = batch_limit

    def fetch(
        self, ids: Sequence[str], fields: Sequence[str], object_name: str
    ) -> List[Optional[Record]]:
        """Records in the order of ``ids``; ids the service no longer has come back as None."""
        if not ids:
            return []

        out: List[Optional[Record]] = []
        n_batches = (len(ids) + self.batch_limit - 1) // self.batch_limit
        for n, chunk in enumerate(chunked(ids, self.batch_limit), start=1):
            _logger.debug(
                "Retrieving %s batch %d/%d (%d ids)", object_name, n, n_batches, len(chunk)
            )
            try:
                rows = self.api.retrieve(fields, object_name, chunk)
            except (SalesforceFault, requests.RequestException) as e:
                raise QueryError(
                    f"Retrieving {object_name} failed at batch {n}/{n_batches}: {e}"
                ) from e
            if len(rows) != len(chunk):
                raise QueryError(
                    f"Retrieve returned {len(rows)} records for {len(chunk)} ids "
                    f"(batch {n}/{n_batches})"
                )
            out.extend(Record.from_json(r) if r is not None else None for r in rows)

        _logger.info("Retrieved %d %s records in %d batches", len(out), object_name, n_batches)
        return out
