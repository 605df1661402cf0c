from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import requests

from .exceptions import (
    ConfigurationError,
    ObjectNotQueryable,
    ObjectNotReplicable,
    SalesforceFault,
    SchemaError,
)
from .window import FetchMode

_logger = logging.getLogger(__name__)


class FieldKind(enum.Enum):
    IDENTIFIER = "id"
    REFERENCE = "reference"
    SCALAR = "scalar"


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    kind: FieldKind = FieldKind.SCALAR
    updatable: bool = False
    calculated: bool = False
    id_lookup: bool = False
    reference_to: Tuple[str, ...] = ()
    relationship_name: Optional[str] = None

    @classmethod
    def from_json(cls, d: Mapping[str, Any]) -> FieldDescriptor:
        sf_type = d.get("type")
        if sf_type == "id":
            kind = FieldKind.IDENTIFIER
        elif sf_type == "reference":
            kind = FieldKind.REFERENCE
        else:
            kind = FieldKind.SCALAR
        return cls(
            name=d["name"],
            kind=kind,
            updatable=bool(d.get("updateable", False)),
            calculated=bool(d.get("calculated", False)),
            id_lookup=bool(d.get("idLookup", False)),
            reference_to=tuple(d.get("referenceTo") or ()),
            relationship_name=d.get("relationshipName") or None,
        )

    @property
    def is_identifier(self) -> bool:
        return self.kind is FieldKind.IDENTIFIER

    @property
    def is_reference(self) -> bool:
        return self.kind is FieldKind.REFERENCE

    @property
    def writable(self) -> bool:
        """Kept when non-updatable fields are excluded: the Id, or a plain updatable field."""
        return self.is_identifier or (not self.calculated and self.updatable)


@dataclass(frozen=True)
class ObjectDescriptor:
    name: str
    queryable: bool
    replicateable: bool
    fields: Tuple[FieldDescriptor, ...]

    @classmethod
    def from_json(cls, d: Mapping[str, Any]) -> ObjectDescriptor:
        fields = tuple(FieldDescriptor.from_json(f) for f in d.get("fields", []))
        ids = [f.name for f in fields if f.is_identifier]
        if len(ids) > 1:
            raise SchemaError(d.get("name", "?"), f"More than one identifier field: {ids}")
        return cls(
            name=d.get("name", ""),
            queryable=bool(d.get("queryable", False)),
            replicateable=bool(d.get("replicateable", False)),
            fields=fields,
        )


# ----------------------------------------------------------------------
# Field references used when building write payloads
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class PlainField:
    name: str

    def render(self) -> str:
        return self.name


@dataclass(frozen=True)
class ExternalKeyRef:
    """Link to a parent through one of its id-lookup fields.

    Wire form: ``Target:ExternalIdField/RelationshipName``.
    """

    target: str
    id_field: str
    relationship: str

    def render(self) -> str:
        return f"{self.target}:{self.id_field}/{self.relationship}"


FieldRef = Union[PlainField, ExternalKeyRef]


def parse_field_ref(text: str) -> FieldRef:
    """Parse ``Name`` or ``Target:IdField[/Relationship]``.

    Without a relationship part the id field name doubles as the relationship.
    """
    if ":" not in text:
        return PlainField(text)
    target, rest = text.split(":", 1)
    if not target:
        raise ConfigurationError(f"Unable to find the object type in {text!r}")
    if "/" in rest and not rest.startswith("/"):
        id_field, relationship = rest.split("/", 1)
    else:
        id_field = relationship = rest
    if not id_field:
        raise ConfigurationError(f"Missing external id field in {text!r}")
    return ExternalKeyRef(target, id_field, relationship)


def field_element(ref: Union[FieldRef, str], value: Any) -> Dict[str, Any]:
    """One payload entry; an external key becomes a nested parent stub."""
    if isinstance(ref, str):
        ref = parse_field_ref(ref)
    if isinstance(ref, ExternalKeyRef):
        return {ref.relationship: {"attributes": {"type": ref.target}, ref.id_field: value}}
    return {ref.name: value}


def build_sobject(
    object_type: str, values: Iterable[Tuple[Union[FieldRef, str], Any]]
) -> Dict[str, Any]:
    """Assemble a write payload record from (field reference, value) pairs."""
    out: Dict[str, Any] = {"attributes": {"type": object_type}}
    for ref, value in values:
        out.update(field_element(ref, value))
    return out


def names(fields: Sequence[FieldDescriptor], exclude_non_updatable: bool = False) -> List[str]:
    return [f.name for f in fields if not exclude_non_updatable or f.writable]


# ----------------------------------------------------------------------
# Resolver
# ----------------------------------------------------------------------
class FieldMetadataResolver:
    """Schema lookups on top of the describe endpoints."""

    def __init__(self, api) -> None:
        self.api = api

    def describe_object(self, object_name: str) -> ObjectDescriptor:
        try:
            raw = self.api.describe_object(object_name)
        except (SalesforceFault, requests.RequestException) as e:
            raise SchemaError(object_name, f"Error getting fields of {object_name!r}: {e}") from e
        if not raw:
            raise SchemaError(object_name, f"Error getting object {object_name!r}")
        return ObjectDescriptor.from_json(raw)

    def describe(self, object_name: str, mode: FetchMode = FetchMode.ALL) -> List[FieldDescriptor]:
        """Fields of a queryable object; replicable too for updated/deleted fetches."""
        desc = self.describe_object(object_name)
        if not desc.queryable:
            raise ObjectNotQueryable(object_name)
        if mode.needs_window and not desc.replicateable:
            raise ObjectNotReplicable(object_name)
        return list(desc.fields)

    def fields(self, object_name: str, exclude_non_updatable: bool = False) -> List[FieldDescriptor]:
        return [
            f for f in self.describe(object_name) if not exclude_non_updatable or f.writable
        ]

    def object_names(self, only_queryable: bool = True) -> List[str]:
        try:
            sobjects = self.api.describe_global()
        except (SalesforceFault, requests.RequestException) as e:
            raise SchemaError("*", f"Error getting the list of objects: {e}") from e
        return [s["name"] for s in sobjects if not only_queryable or s.get("queryable")]

    def expand(
        self, fields: Sequence[FieldDescriptor], exclude_non_updatable: bool = False
    ) -> List[FieldRef]:
        """Every field name, plus an ExternalKeyRef per id-lookup field of each reference target.

        Targets are described at most once per call, so self-referencing
        objects (Account.ParentId -> Account) cost one describe.
        """
        visited: Dict[str, List[FieldDescriptor]] = {}
        out: List[FieldRef] = []
        for field in fields:
            if exclude_non_updatable and not field.writable:
                continue
            out.append(PlainField(field.name))
            if not field.is_reference or not field.reference_to:
                continue
            if not field.relationship_name:
                continue

            # polymorphic lookups resolve against their first target only
            target = field.reference_to[0]
            if target not in visited:
                _logger.debug("Describing %s for reference %s", target, field.name)
                visited[target] = self.fields(target, exclude_non_updatable)
            for tf in visited[target]:
                if tf.id_lookup and not tf.is_identifier:
                    out.append(ExternalKeyRef(target, tf.name, field.relationship_name))
        return out
