"""
Pairing of query results with deletion markers.

The deleted-records call and the query-all call are independent, so the
records of a page carry no positional relation to the markers. Each step
looks at the record at ``index`` and, when it is not a deleted one, scans
forward until it finds one or runs out of records.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional, Sequence, Tuple

from .records import Record, raw_children


class DeletionIndex(dict):
    """Record id -> deletion timestamp for one deleted-since fetch."""

    @classmethod
    def from_markers(cls, markers: Iterable[Tuple[str, datetime]]) -> DeletionIndex:
        return cls(markers)


@dataclass(frozen=True)
class ReconcileStep:
    record: Optional[Record]
    deleted_at: Optional[datetime]
    index: int
    index_changed: bool
    exhausted: bool

    @property
    def next_index(self) -> int:
        return self.index + 1


def next_deleted(
    records: Sequence[Optional[Record]], index: int, deletion_index: DeletionIndex
) -> ReconcileStep:
    """Emit the deleted record at ``index`` or the next one found by a forward scan.

    ``exhausted`` is true once the scan has reached the last record; callers
    must stop asking for more records of this fetch when they see it.
    """
    last = len(records) - 1
    record = records[index]
    if record is None:
        return ReconcileStep(None, None, index, False, index >= last)

    if record.id in deletion_index:
        return ReconcileStep(record, deletion_index[record.id], index, False, index >= last)

    if index >= last:
        return ReconcileStep(None, None, index, False, True)

    while record is not None and index < last and record.id not in deletion_index:
        index += 1
        record = records[index]

    # Confirm at the scanned position before emitting. Requiring visible fields
    # replaces a child lookup by record index, which could run past the end of
    # a record with fewer fields than its page position.
    if record is not None and raw_children(record) and record.id in deletion_index:
        return ReconcileStep(record, deletion_index[record.id], index, True, index >= last)
    return ReconcileStep(None, None, index, True, index >= last)


def iter_deleted(
    records: Sequence[Optional[Record]], deletion_index: DeletionIndex
) -> Iterator[ReconcileStep]:
    """Every step of one page that carries a deleted record, in page order."""
    index = 0
    while index < len(records):
        step = next_deleted(records, index, deletion_index)
        if step.record is not None:
            yield step
        if step.exhausted:
            break
        index = step.next_index
