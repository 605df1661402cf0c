"""Tests for sfpull.metadata (field classification and external keys)."""

from unittest.mock import MagicMock

import pytest
from sf_fixtures import field_desc, object_desc

from sfpull.exceptions import (
    ConfigurationError,
    ObjectNotQueryable,
    ObjectNotReplicable,
    SalesforceFault,
    SchemaError,
)
from sfpull.metadata import (
    ExternalKeyRef,
    FieldDescriptor,
    FieldKind,
    FieldMetadataResolver,
    ObjectDescriptor,
    PlainField,
    build_sobject,
    field_element,
    names,
    parse_field_ref,
)
from sfpull.window import FetchMode

CONTACT = object_desc(
    "Contact",
    [
        field_desc("Id", "id"),
        field_desc("LastName"),
        field_desc("Full_Name__c", calculated=True, updateable=False),
        field_desc("CreatedDate", "datetime", updateable=False),
        field_desc(
            "AccountId",
            "reference",
            referenceTo=["Account"],
            relationshipName="Account",
        ),
    ],
)

ACCOUNT = object_desc(
    "Account",
    [
        field_desc("Id", "id"),
        field_desc("Name"),
        field_desc("External_Id__c", idLookup=True),
        field_desc("Legacy_Key__c", idLookup=True),
        field_desc("AutoNumber__c", idLookup=True, updateable=False),
        field_desc(
            "ParentId",
            "reference",
            referenceTo=["Account"],
            relationshipName="Parent",
        ),
    ],
)


def make_resolver(*descs):
    by_name = {d["name"]: d for d in descs}
    api = MagicMock()
    api.describe_object.side_effect = lambda name: by_name[name]
    return FieldMetadataResolver(api), api


class TestFieldDescriptor:
    """Tests for FieldDescriptor.from_json and its predicates."""

    def test_kinds(self):
        """id/reference/other map onto the three kinds."""
        assert FieldDescriptor.from_json(field_desc("Id", "id")).kind is FieldKind.IDENTIFIER
        assert (
            FieldDescriptor.from_json(field_desc("OwnerId", "reference")).kind
            is FieldKind.REFERENCE
        )
        assert FieldDescriptor.from_json(field_desc("Name")).kind is FieldKind.SCALAR

    def test_writable(self):
        """Writable: the Id, or a non-calculated updatable field."""
        assert FieldDescriptor("Id", FieldKind.IDENTIFIER).writable
        assert FieldDescriptor("Name", updatable=True).writable
        assert not FieldDescriptor("Formula", updatable=True, calculated=True).writable
        assert not FieldDescriptor("CreatedDate", updatable=False).writable

    def test_single_identifier_enforced(self):
        """An object may have only one identifier field."""
        bad = object_desc("Weird", [field_desc("Id", "id"), field_desc("Id2", "id")])

        with pytest.raises(SchemaError):
            ObjectDescriptor.from_json(bad)


class TestNames:
    """Tests for names()."""

    def test_all_names(self):
        """Without exclusion every field is listed in order."""
        fields = ObjectDescriptor.from_json(CONTACT).fields

        assert names(fields) == ["Id", "LastName", "Full_Name__c", "CreatedDate", "AccountId"]

    def test_exclude_non_updatable(self):
        """Calculated and read-only fields drop out; the Id stays."""
        fields = ObjectDescriptor.from_json(CONTACT).fields

        assert names(fields, exclude_non_updatable=True) == ["Id", "LastName", "AccountId"]


class TestFieldRefs:
    """Tests for parse_field_ref, render and payload builders."""

    def test_plain(self):
        """A name without a colon is a plain field."""
        assert parse_field_ref("Name") == PlainField("Name")

    def test_external_key_round_trip(self):
        """Target:IdField/Relationship parses and renders back."""
        ref = parse_field_ref("Account:External_Id__c/Account")

        assert ref == ExternalKeyRef("Account", "External_Id__c", "Account")
        assert ref.render() == "Account:External_Id__c/Account"

    def test_external_key_without_relationship(self):
        """Without a relationship part the id field doubles as one."""
        assert parse_field_ref("Account:Ext__c") == ExternalKeyRef("Account", "Ext__c", "Ext__c")

    def test_missing_type(self):
        """A leading colon has no object type."""
        with pytest.raises(ConfigurationError):
            parse_field_ref(":Ext__c/Account")

    def test_field_element_plain(self):
        """A plain field is a single key."""
        assert field_element("Name", "Acme") == {"Name": "Acme"}

    def test_field_element_external_key(self):
        """An external key becomes a typed parent stub under the relationship name."""
        element = field_element("Account:External_Id__c/Account", "EXT-1")

        assert element == {
            "Account": {"attributes": {"type": "Account"}, "External_Id__c": "EXT-1"}
        }

    def test_build_sobject(self):
        """A payload record mixes plain fields and external keys."""
        rec = build_sobject(
            "Contact",
            [
                ("LastName", "Lee"),
                (ExternalKeyRef("Account", "External_Id__c", "Account"), "EXT-1"),
            ],
        )

        assert rec == {
            "attributes": {"type": "Contact"},
            "LastName": "Lee",
            "Account": {"attributes": {"type": "Account"}, "External_Id__c": "EXT-1"},
        }


class TestResolverDescribe:
    """Tests for FieldMetadataResolver.describe."""

    def test_returns_fields(self):
        """Queryable objects return their fields in order."""
        resolver, _ = make_resolver(CONTACT)

        fields = resolver.describe("Contact")

        assert [f.name for f in fields][:2] == ["Id", "LastName"]

    def test_not_queryable(self):
        """Non-queryable objects are rejected."""
        resolver, _ = make_resolver(dict(CONTACT, queryable=False))

        with pytest.raises(ObjectNotQueryable):
            resolver.describe("Contact")

    def test_not_replicable_only_matters_for_windowed_modes(self):
        """Replication support is only required for updated/deleted fetches."""
        resolver, _ = make_resolver(dict(CONTACT, replicateable=False))

        assert resolver.describe("Contact", FetchMode.ALL)
        with pytest.raises(ObjectNotReplicable):
            resolver.describe("Contact", FetchMode.UPDATED_SINCE)
        with pytest.raises(ObjectNotReplicable):
            resolver.describe("Contact", FetchMode.DELETED_SINCE)

    def test_describe_fault_is_schema_error(self):
        """A describe fault surfaces as SchemaError."""
        api = MagicMock()
        api.describe_object.side_effect = SalesforceFault("NOT_FOUND", "no such object")

        with pytest.raises(SchemaError, match="Nope"):
            FieldMetadataResolver(api).describe("Nope")

    def test_object_names(self):
        """Global describe is filtered to queryable objects by default."""
        api = MagicMock()
        api.describe_global.return_value = [
            {"name": "Account", "queryable": True},
            {"name": "AuditTrail", "queryable": False},
        ]
        resolver = FieldMetadataResolver(api)

        assert resolver.object_names() == ["Account"]
        assert resolver.object_names(only_queryable=False) == ["Account", "AuditTrail"]


class TestResolverExpand:
    """Tests for FieldMetadataResolver.expand."""

    def test_two_lookup_fields_give_two_refs(self):
        """A reference to an object with two updatable id-lookup fields yields two refs."""
        resolver, _ = make_resolver(CONTACT, ACCOUNT)
        fields = resolver.fields("Contact", exclude_non_updatable=True)

        refs = resolver.expand(fields, exclude_non_updatable=True)

        ext = [r.render() for r in refs if isinstance(r, ExternalKeyRef)]
        assert ext == [
            "Account:External_Id__c/Account",
            "Account:Legacy_Key__c/Account",
        ]
        assert [r.render() for r in refs if isinstance(r, PlainField)] == [
            "Id",
            "LastName",
            "AccountId",
        ]

    def test_identifier_never_becomes_external_key(self):
        """The target's Id is id-lookup but is not listed."""
        resolver, _ = make_resolver(CONTACT, ACCOUNT)

        refs = resolver.expand(resolver.describe("Contact"))

        assert "Account:Id/Account" not in [r.render() for r in refs]

    def test_without_exclusion_read_only_lookups_are_kept(self):
        """Read-only id-lookup fields of the target count when nothing is excluded."""
        resolver, _ = make_resolver(CONTACT, ACCOUNT)

        refs = [r.render() for r in resolver.expand(resolver.describe("Contact"))]

        assert "Account:AutoNumber__c/Account" in refs

    def test_ref_follows_field_order(self):
        """External keys follow right after their reference field."""
        resolver, _ = make_resolver(CONTACT, ACCOUNT)

        refs = [r.render() for r in resolver.expand(resolver.fields("Contact", True), True)]

        assert refs.index("AccountId") + 1 == refs.index("Account:External_Id__c/Account")

    def test_self_reference_described_once(self):
        """A self-referencing object is described only once per call."""
        resolver, api = make_resolver(ACCOUNT)
        fields = resolver.describe("Account")
        api.describe_object.reset_mock()

        refs = resolver.expand(fields)

        assert api.describe_object.call_count == 1
        assert "Account:External_Id__c/Parent" in [r.render() for r in refs]

    def test_reference_without_relationship_name_skipped(self):
        """References lacking a relationship name produce no external keys."""
        orphan = object_desc(
            "Note",
            [field_desc("Id", "id"), field_desc("ParentId", "reference", referenceTo=["Account"])],
        )
        resolver, api = make_resolver(orphan, ACCOUNT)

        refs = resolver.expand(resolver.describe("Note"))

        assert [r.render() for r in refs] == ["Id", "ParentId"]
