"""
Tree-shaped record representation and dotted-path field access.

A :class:`Record` is an ordered tuple of named :class:`Field` values. A value
is a scalar, ``None``, a nested :class:`Record` (reference fields such as
``Owner``) or a nested :class:`ResultSet` (sub-query results such as
``Contacts``). Records are immutable; this module only reads them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

# Namespace of the service's own bookkeeping fields on every record
SOBJECT_NS = "urn:sobject.partner.soap.sforce.com"
RESERVED_FIELD_NAMES = frozenset({"type", "fieldsToNull"})


@dataclass(frozen=True)
class Field:
    name: str
    value: Any = None
    namespace: str = ""

    @property
    def reserved(self) -> bool:
        return self.namespace == SOBJECT_NS and self.name in RESERVED_FIELD_NAMES


@dataclass(frozen=True)
class Record:
    fields: Tuple[Field, ...] = ()

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> Record:
        """Build a record from a REST record dict (``attributes`` block included)."""
        fields: List[Field] = []
        attrs = data.get("attributes")
        if isinstance(attrs, Mapping) and attrs.get("type"):
            fields.append(Field("type", attrs["type"], SOBJECT_NS))
        for name, value in data.items():
            if name == "attributes":
                continue
            fields.append(Field(name, _parse_value(value)))
        return cls(tuple(fields))

    @property
    def type(self) -> Optional[str]:
        for f in self.fields:
            if f.reserved and f.name == "type":
                return f.value
        return None

    @property
    def id(self) -> Optional[str]:
        return self.get("Id")

    def get(self, name: str, default: Any = None) -> Any:
        for f in raw_children(self):
            if f.name == name:
                return f.value
        return default


@dataclass(frozen=True)
class ResultSet:
    """One page of query results plus the cursor needed to continue."""

    records: Tuple[Optional[Record], ...] = ()
    total_size: int = 0
    locator: Optional[str] = None
    done: bool = True

    @classmethod
    def from_json(cls, page: Mapping[str, Any]) -> ResultSet:
        records = tuple(
            Record.from_json(r) if r is not None else None for r in page.get("records") or []
        )
        locator = page.get("nextRecordsUrl") or None
        return cls(
            records=records,
            total_size=int(page.get("totalSize", len(records))),
            locator=locator,
            done=bool(page.get("done", locator is None)),
        )

    @classmethod
    def of(cls, records: Sequence[Optional[Record]]) -> ResultSet:
        """A single, fully materialised page."""
        return cls(records=tuple(records), total_size=len(records), locator=None, done=True)

    @classmethod
    def empty(cls) -> ResultSet:
        return cls()

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Optional[Record]]:
        return iter(self.records)


def _is_result_set(value: Mapping[str, Any]) -> bool:
    return "records" in value and ("totalSize" in value or "done" in value)


def _parse_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        if _is_result_set(value):
            return ResultSet.from_json(value)
        return Record.from_json(value)
    return value


def raw_children(record: Optional[Record]) -> Tuple[Field, ...]:
    """Visible fields of ``record``, without the reserved bookkeeping fields."""
    if record is None:
        return ()
    return tuple(f for f in record.fields if not f.reserved)


def record_to_dict(record: Record) -> Dict[str, Any]:
    """Flatten a record into a JSON-ready field map."""
    out: Dict[str, Any] = {}
    for f in raw_children(record):
        value = f.value
        if isinstance(value, Record):
            out[f.name] = record_to_dict(value)
        elif isinstance(value, ResultSet):
            out[f.name] = [record_to_dict(r) for r in value.records if r is not None]
        else:
            out[f.name] = value
    return out


def render_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, ResultSet):
        return json.dumps(
            [record_to_dict(r) for r in value.records if r is not None], ensure_ascii=False
        )
    if isinstance(value, Record):
        return json.dumps(record_to_dict(value), ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def field_at(record: Optional[Record], path: str) -> Optional[Field]:
    """Walk ``path`` one segment at a time; None when a segment does not match."""
    if record is None:
        return None
    segments = path.split(".")
    last = len(segments) - 1
    current = record
    for index, segment in enumerate(segments):
        match = next((f for f in raw_children(current) if f.name == segment), None)
        if match is None:
            return None
        if index == last:
            return match
        if not isinstance(match.value, Record):
            return None
        current = match.value
    return None


def value_at(record: Optional[Record], path: str) -> Optional[str]:
    """String value at a dotted path such as ``Account.Owner.Name``."""
    found = field_at(record, path)
    if found is None:
        return None
    return render_value(found.value)
