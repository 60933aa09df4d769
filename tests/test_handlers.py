"""
Tests for ledger-side validation and state application.
"""

import dataclasses

import pytest

from gridledger.addressing import (
    compute_agent_address,
    compute_organization_address,
    compute_product_address,
)
from gridledger.crypto.core import sha512_hex
from gridledger.errors import AuthorizationError, InvalidTransaction
from gridledger.handlers import (
    InMemoryState,
    NativeStateAccessor,
    SandboxStateAccessor,
    TransactionProcessor,
    validate_and_apply,
)
from gridledger.handlers.state import load_records
from gridledger.ledger.batch import build_batch_list
from gridledger.ledger.transaction import Transaction, build_transaction
from gridledger.protocol.payload import Payload, build_payload
from gridledger.protocol.product import ProductCreateAction, ProductType
from gridledger.protocol.schema import DataType, build_property_value
from gridledger.protocol.state import Agent, Organization, Product, decode_records, encode_records

PRODUCT_ADDRESS = compute_product_address("723382885088")


def apply_payloads(state, signer, *payloads, processor=None):
    processor = processor or TransactionProcessor()
    batch = build_batch_list(payloads, signer).batches[0]
    processor.apply_batch(batch, state)
    return processor


def stored(state, address, record_cls):
    return decode_records(record_cls, state.get(address))


class TestProductHandler:
    """Test product create, update and delete."""

    def test_create(self, create_payload, signer, weight):
        state = InMemoryState()
        apply_payloads(state, signer, create_payload())
        assert stored(state, PRODUCT_ADDRESS, Product) == [
            Product("723382885088", ProductType.GS1, "acme", (weight,)),
        ]

    def test_create_writes_only_the_product_address(self, create_payload, signer):
        state = InMemoryState()
        apply_payloads(state, signer, create_payload())
        assert list(state.as_dict()) == [PRODUCT_ADDRESS]

    def test_duplicate_create_rejected(self, create_payload, signer):
        state = InMemoryState()
        apply_payloads(state, signer, create_payload())
        with pytest.raises(InvalidTransaction, match="Product already exists"):
            apply_payloads(state, signer, create_payload())

    def test_zero_timestamp_rejected(self, create_payload, signer):
        state = InMemoryState()
        with pytest.raises(InvalidTransaction, match="Timestamp is not set"):
            apply_payloads(state, signer, create_payload(timestamp=0))
        assert len(state) == 0

    @pytest.mark.parametrize("product_id,owner,message", [
        ("", "acme", "product_id cannot be empty string"),
        ("723382885088", "", "Owner cannot be empty string"),
    ])
    def test_empty_identifiers_rejected(self, signer, product_id, owner, message):
        """Payloads that bypass the builders are still rejected by the ledger."""
        action = ProductCreateAction(
            product_id=product_id, product_type=ProductType.GS1, owner=owner, properties=(),
        )
        with pytest.raises(InvalidTransaction, match=message):
            apply_payloads(InMemoryState(), signer, Payload(action=action, timestamp=1))

    def test_update_merges_properties(self, create_payload, signer, weight):
        state = InMemoryState()
        apply_payloads(state, signer, create_payload())

        heavier = build_property_value("weight", DataType.NUMBER, number_value=750)
        colour = build_property_value("colour", DataType.STRING, string_value="red")
        update = build_payload("PRODUCT_UPDATE", {
            "product_id": "723382885088", "product_type": "GS1", "properties": [heavier, colour],
        }, timestamp=2)
        apply_payloads(state, signer, update)

        (product,) = stored(state, PRODUCT_ADDRESS, Product)
        assert product.properties == (heavier, colour)
        assert product.owner == "acme"

    def test_update_missing_product_rejected(self, signer):
        update = build_payload("PRODUCT_UPDATE", {
            "product_id": "404", "product_type": "GS1", "properties": [],
        }, timestamp=2)
        with pytest.raises(InvalidTransaction, match="Product does not exist: 404"):
            apply_payloads(InMemoryState(), signer, update)

    def test_delete_removes_state_entry(self, create_payload, signer):
        state = InMemoryState()
        apply_payloads(state, signer, create_payload())
        delete = build_payload("PRODUCT_DELETE", {"product_id": "723382885088", "product_type": "GS1"}, timestamp=3)
        apply_payloads(state, signer, delete)
        assert PRODUCT_ADDRESS not in state

    def test_delete_keeps_colliding_records(self, create_payload, signer, weight):
        """Deleting one record leaves others stored at the same address."""
        other = Product("other", ProductType.GS1, "acme", ())
        existing = Product("723382885088", ProductType.GS1, "acme", (weight,))
        state = InMemoryState({PRODUCT_ADDRESS: encode_records([existing, other])})

        delete = build_payload("PRODUCT_DELETE", {"product_id": "723382885088", "product_type": "GS1"}, timestamp=3)
        apply_payloads(state, signer, delete)
        assert stored(state, PRODUCT_ADDRESS, Product) == [other]


class TestPikeHandler:
    """Test organization and agent rules."""

    def _org(self, **fields):
        fields.setdefault("org_id", "acme")
        return build_payload("ORGANIZATION_CREATE", {"name": "Acme", **fields}, timestamp=1)

    def test_organization_lifecycle(self, signer):
        state = InMemoryState()
        address = compute_organization_address("acme")
        apply_payloads(state, signer, self._org(address="1 Main St"))

        update = build_payload("ORGANIZATION_UPDATE", {"org_id": "acme", "name": "Acme Corp"}, timestamp=2)
        apply_payloads(state, signer, update)
        assert stored(state, address, Organization) == [Organization("acme", "Acme Corp", "1 Main St", ())]

        apply_payloads(state, signer, build_payload("ORGANIZATION_DELETE", {"org_id": "acme"}, timestamp=3))
        assert address not in state

    def test_duplicate_organization_rejected(self, signer):
        state = InMemoryState()
        apply_payloads(state, signer, self._org())
        with pytest.raises(InvalidTransaction, match="Organization already exists"):
            apply_payloads(state, signer, self._org())

    def test_update_missing_organization_rejected(self, signer):
        update = build_payload("ORGANIZATION_UPDATE", {"org_id": "acme"}, timestamp=2)
        with pytest.raises(InvalidTransaction, match="Organization does not exist"):
            apply_payloads(InMemoryState(), signer, update)

    def test_agent_requires_organization(self, signer):
        agent = build_payload("AGENT_CREATE", {"org_id": "acme", "public_key": "ab" * 32}, timestamp=1)
        with pytest.raises(InvalidTransaction, match="Organization does not exist: acme"):
            apply_payloads(InMemoryState(), signer, agent)

    def test_agent_lifecycle(self, signer):
        state = InMemoryState()
        key = "ab" * 32
        apply_payloads(
            state, signer,
            self._org(),
            build_payload("AGENT_CREATE", {"org_id": "acme", "public_key": key, "roles": ["admin"]}, timestamp=1),
        )
        assert stored(state, compute_agent_address(key), Agent) == [Agent(key, "acme", True, ("admin",), ())]

        deactivate = build_payload("AGENT_UPDATE", {"org_id": "acme", "public_key": key, "active": False}, timestamp=2)
        apply_payloads(state, signer, deactivate)
        assert stored(state, compute_agent_address(key), Agent)[0].active is False

        apply_payloads(state, signer, build_payload("AGENT_DELETE", {"public_key": key}, timestamp=3))
        assert compute_agent_address(key) not in state

    def test_agent_update_wrong_organization_rejected(self, signer):
        state = InMemoryState()
        key = "ab" * 32
        apply_payloads(
            state, signer,
            self._org(),
            build_payload("AGENT_CREATE", {"org_id": "acme", "public_key": key}, timestamp=1),
        )
        moved = build_payload("AGENT_UPDATE", {"org_id": "globex", "public_key": key}, timestamp=2)
        with pytest.raises(InvalidTransaction, match="belongs to acme"):
            apply_payloads(state, signer, moved)

    def test_delete_missing_agent_rejected(self, signer):
        delete = build_payload("AGENT_DELETE", {"public_key": "cd" * 32}, timestamp=1)
        with pytest.raises(InvalidTransaction, match="Agent does not exist"):
            apply_payloads(InMemoryState(), signer, delete)


class TestBatchAtomicity:
    """A batch applies all of its transactions or none."""

    def test_failing_second_transaction_leaves_state_untouched(self, create_payload, signer):
        state = InMemoryState()
        processor = TransactionProcessor()
        with pytest.raises(InvalidTransaction, match="Product already exists"):
            apply_payloads(state, signer, create_payload(), create_payload(), processor=processor)

        assert len(state) == 0
        stats = processor.get_stats()
        assert stats["transactions_applied"] == 1
        assert stats["transactions_rejected"] == 1
        assert stats["batches_rejected"] == 1
        assert stats["batches_committed"] == 0

    def test_later_transactions_see_earlier_effects(self, signer):
        state = InMemoryState()
        apply_payloads(
            state, signer,
            build_payload("ORGANIZATION_CREATE", {"org_id": "acme", "name": "Acme"}, timestamp=1),
            build_payload("AGENT_CREATE", {"org_id": "acme", "public_key": signer.public_key}, timestamp=1),
        )
        assert compute_agent_address(signer.public_key) in state

    def test_tampered_batch_rejected(self, create_payload, signer):
        batch = build_batch_list([create_payload()], signer).batches[0]
        tampered = dataclasses.replace(batch, transactions=batch.transactions * 2)
        processor = TransactionProcessor()
        with pytest.raises(InvalidTransaction, match="failed verification"):
            processor.apply_batch(tampered, InMemoryState())
        assert processor.stats["batches_rejected"] == 1

    def test_reset_stats(self, create_payload, signer):
        processor = apply_payloads(InMemoryState(), signer, create_payload())
        processor.reset_stats()
        assert set(processor.get_stats().values()) == {0}


class TestTransactionProcessor:
    """Test per-transaction checks and both state adapters."""

    def _txn(self, payload, signer):
        return build_transaction(payload, signer, ["identity", "schema", "product"], ["product"])

    @pytest.mark.parametrize("accessor_cls", [NativeStateAccessor, SandboxStateAccessor])
    def test_adapters_produce_identical_state(self, create_payload, signer, accessor_cls):
        txn = self._txn(create_payload(), signer)
        reference = InMemoryState()
        TransactionProcessor().apply(txn, reference)

        state = InMemoryState()
        TransactionProcessor(accessor_cls=accessor_cls).apply(txn, state)
        assert state.as_dict() == reference.as_dict()

    def test_tampered_payload_rejected(self, create_payload, signer):
        txn = self._txn(create_payload(), signer)
        tampered = dataclasses.replace(txn, payload=txn.payload.replace(b"acme", b"evil"))
        with pytest.raises(InvalidTransaction, match="signature or payload hash"):
            TransactionProcessor().apply(tampered, InMemoryState())

    def test_unsupported_family_version_rejected(self, create_payload, signer):
        txn = self._txn(create_payload(), signer)
        header = dataclasses.replace(txn.header, family_version="2.0")
        with pytest.raises(InvalidTransaction, match="Unsupported grid_product version"):
            TransactionProcessor().apply(dataclasses.replace(txn, header=header), InMemoryState())

    def test_undeclared_write_is_invalid(self, create_payload, signer):
        """A handler writing outside the declared outputs fails the transaction."""
        txn = self._txn(create_payload(), signer)
        header = dataclasses.replace(txn.header, outputs=())
        forged = dataclasses.replace(txn, header=header, header_signature=signer.sign(header.to_bytes()))
        with pytest.raises(InvalidTransaction, match="undeclared output address"):
            TransactionProcessor().apply(forged, InMemoryState())

    def test_undecodable_payload_rejected(self, create_payload, signer):
        """A correctly signed payload that does not decode is an invalid transaction."""
        txn = self._txn(create_payload(), signer)
        data = b'{"action":"PRODUCT_DELETE","product_delete":{"product_id":"\\ud800","product_type":"GS1"},"timestamp":1}'
        header = dataclasses.replace(txn.header, payload_sha512=sha512_hex(data))
        forged = Transaction(header=header, header_signature=signer.sign(header.to_bytes()), payload=data)

        processor = TransactionProcessor()
        with pytest.raises(InvalidTransaction, match="Cannot decode payload"):
            processor.apply(forged, InMemoryState())
        assert processor.get_stats()["transactions_rejected"] == 1

    def test_corrupt_state_rejected(self, create_payload, signer):
        state = InMemoryState({PRODUCT_ADDRESS: b"not a container"})
        with pytest.raises(InvalidTransaction, match="Cannot decode Product state"):
            TransactionProcessor().apply(self._txn(create_payload(), signer), state)


class TestStateAccessor:
    """Test address scoping."""

    def test_undeclared_read(self):
        accessor = SandboxStateAccessor(InMemoryState(), inputs=[], outputs=[])
        with pytest.raises(AuthorizationError):
            accessor.get(PRODUCT_ADDRESS)

    def test_undeclared_delete(self):
        accessor = NativeStateAccessor(InMemoryState(), inputs=[PRODUCT_ADDRESS], outputs=[])
        with pytest.raises(AuthorizationError):
            accessor.delete(PRODUCT_ADDRESS)

    def test_native_round_trip(self):
        state = InMemoryState()
        accessor = NativeStateAccessor(state, inputs=[PRODUCT_ADDRESS], outputs=[PRODUCT_ADDRESS])
        assert accessor.get(PRODUCT_ADDRESS) is None
        accessor.set(PRODUCT_ADDRESS, b"data")
        assert accessor.get(PRODUCT_ADDRESS) == b"data"
        accessor.delete(PRODUCT_ADDRESS)
        assert PRODUCT_ADDRESS not in state

    def test_validate_and_apply_propagates_authorization_error(self, create_payload):
        accessor = SandboxStateAccessor(InMemoryState(), inputs=[PRODUCT_ADDRESS], outputs=[])
        with pytest.raises(AuthorizationError):
            validate_and_apply(create_payload(), accessor)

    def test_load_records_missing_entry(self):
        accessor = SandboxStateAccessor(InMemoryState(), inputs=[PRODUCT_ADDRESS], outputs=[])
        assert load_records(accessor, PRODUCT_ADDRESS, Product) == []
