"""
Tests for the state address scheme.
"""

import hashlib

import pytest

from gridledger.addressing import (
    ADDRESS_LENGTH,
    NAMESPACE_PREFIXES,
    Namespace,
    compute_address,
    compute_agent_address,
    compute_organization_address,
    compute_product_address,
    compute_schema_address,
    is_valid_address,
    namespace_of,
    parse_namespace,
    referenced_addresses,
    required_access,
)
from gridledger.protocol.payload import build_action


def test_product_address_layout():
    """Product address = prefix + leading hex of sha512(product_id)."""
    expected = "621dee02" + hashlib.sha512(b"723382885088").hexdigest()[:62]
    assert compute_product_address("723382885088") == expected
    assert len(expected) == ADDRESS_LENGTH


def test_identity_subspaces():
    digest = hashlib.sha512(b"acme").hexdigest()
    assert compute_organization_address("acme") == "cad11d01" + digest[:62]
    assert compute_agent_address("acme") == "cad11d00" + digest[:62]


def test_schema_address():
    assert compute_schema_address("gs1_product").startswith("621dee01")


def test_address_is_deterministic():
    assert compute_address(Namespace.PRODUCT, "x") == compute_address("product", "x")
    assert compute_address("621dee02", "x") == compute_product_address("x")


def test_distinct_identifiers_give_distinct_addresses():
    assert compute_product_address("a") != compute_product_address("b")


def test_registry_is_immutable():
    with pytest.raises(TypeError):
        NAMESPACE_PREFIXES[Namespace.PRODUCT] = "000000"


def test_parse_namespace_unknown():
    with pytest.raises(ValueError):
        parse_namespace("track_and_trace")


def test_namespace_of():
    assert namespace_of(compute_product_address("x")) is Namespace.PRODUCT
    assert namespace_of(compute_agent_address("x")) is Namespace.IDENTITY
    with pytest.raises(ValueError):
        namespace_of("ff" * 35)
    with pytest.raises(ValueError):
        namespace_of("621dee02")


def test_is_valid_address():
    assert is_valid_address(compute_schema_address("gs1_product"))
    assert not is_valid_address(compute_schema_address("gs1_product").upper())
    assert not is_valid_address("ab" * 35)


class TestReferencedAddresses:
    """Test per-action address references."""

    def test_product_create(self, weight):
        action = build_action("PRODUCT_CREATE", {
            "product_id": "723382885088", "product_type": "GS1", "owner": "acme", "properties": [weight],
        })
        refs = referenced_addresses(action, "ab" * 32)
        assert refs[Namespace.PRODUCT] == [compute_product_address("723382885088")]
        assert refs[Namespace.SCHEMA] == [compute_schema_address("gs1_product")]
        assert refs[Namespace.IDENTITY] == [
            compute_agent_address("ab" * 32),
            compute_organization_address("acme"),
        ]

    def test_product_delete(self):
        action = build_action("PRODUCT_DELETE", {"product_id": "1", "product_type": "GS1"})
        refs = referenced_addresses(action, "ab" * 32)
        assert set(refs) == {Namespace.IDENTITY, Namespace.PRODUCT}

    def test_agent_create_deduplicates_signer(self):
        """An agent creating itself references its own address once."""
        action = build_action("AGENT_CREATE", {"org_id": "acme", "public_key": "ab" * 32})
        refs = referenced_addresses(action, "ab" * 32)
        assert refs[Namespace.IDENTITY] == [
            compute_agent_address("ab" * 32),
            compute_organization_address("acme"),
        ]


class TestRequiredAccess:
    """Test the addresses handlers read and write."""

    def test_product(self):
        action = build_action("PRODUCT_UPDATE", {"product_id": "1", "product_type": "GS1", "properties": []})
        reads, writes = required_access(action)
        assert reads == writes == {compute_product_address("1")}

    def test_agent_create_reads_organization(self):
        action = build_action("AGENT_CREATE", {"org_id": "acme", "public_key": "ab" * 32})
        reads, writes = required_access(action)
        assert reads == {compute_agent_address("ab" * 32), compute_organization_address("acme")}
        assert writes == {compute_agent_address("ab" * 32)}

    def test_organization(self):
        action = build_action("ORGANIZATION_DELETE", {"org_id": "acme"})
        assert required_access(action) == (
            {compute_organization_address("acme")},
            {compute_organization_address("acme")},
        )
