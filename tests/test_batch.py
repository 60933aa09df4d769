"""
Tests for batch construction and the batch list envelope.
"""

import base64
import dataclasses
import json

import pytest

from gridledger.addressing import compute_organization_address
from gridledger.crypto.signing import Signer
from gridledger.errors import BuildError, DecodeError, SigningError
from gridledger.ledger.batch import BatchList, BatchListBuilder, build_batch_list
from gridledger.protocol.codec import decode_payload, encode_payload
from gridledger.protocol.payload import build_payload

PRODUCT_INPUTS = ["identity", "schema", "product"]
PRODUCT_OUTPUTS = ["product"]


class TestBatchListBuilder:
    """Test fail-fast batch accumulation."""

    def test_preserves_call_order(self, create_payload, signer):
        """[p1, p2, p3] becomes one batch holding [t1, t2, t3]."""
        payloads = [create_payload(product_id=str(i)) for i in (1, 2, 3)]
        builder = BatchListBuilder(signer)
        for payload in payloads:
            builder.add_transaction(encode_payload(payload), PRODUCT_INPUTS, PRODUCT_OUTPUTS)
        batch_list = builder.create_batch_list()

        assert len(batch_list.batches) == 1
        batch = batch_list.batches[0]
        assert [decode_payload(t.payload) for t in batch.transactions] == payloads
        assert batch.header.transaction_ids == tuple(t.id for t in batch.transactions)

    def test_chaining(self, create_payload, signer):
        batch_list = (
            BatchListBuilder(signer)
            .add_transaction(encode_payload(create_payload()), PRODUCT_INPUTS, PRODUCT_OUTPUTS)
            .create_batch_list()
        )
        assert len(batch_list.batches[0].transactions) == 1

    def test_batcher_is_batch_signer(self, create_payload, signer):
        batch_list = BatchListBuilder(signer).add_transaction(
            encode_payload(create_payload()), PRODUCT_INPUTS, PRODUCT_OUTPUTS,
        ).create_batch_list()
        batch = batch_list.batches[0]
        assert batch.header.signer_public_key == signer.public_key
        assert batch.transactions[0].header.batcher_public_key == signer.public_key

    def test_empty_batch_fails(self, signer):
        with pytest.raises(BuildError, match="at least one transaction"):
            BatchListBuilder(signer).create_batch_list()

    def test_missing_signer_fails(self):
        with pytest.raises(SigningError):
            BatchListBuilder(None)

    def test_malformed_payload_bytes(self, signer):
        with pytest.raises(BuildError, match="Malformed payload bytes"):
            BatchListBuilder(signer).add_transaction(b"\x0a\x03abc", PRODUCT_INPUTS, PRODUCT_OUTPUTS)

    def test_failure_poisons_builder(self, create_payload, signer):
        """After a failed add, no partial batch can be produced."""
        builder = BatchListBuilder(signer)
        builder.add_transaction(encode_payload(create_payload()), PRODUCT_INPUTS, PRODUCT_OUTPUTS)
        with pytest.raises(BuildError):
            builder.add_transaction(encode_payload(create_payload()), PRODUCT_INPUTS, ["schema"])

        with pytest.raises(BuildError, match="after a failed add_transaction"):
            builder.create_batch_list()
        with pytest.raises(BuildError, match="already failed"):
            builder.add_transaction(encode_payload(create_payload()), PRODUCT_INPUTS, PRODUCT_OUTPUTS)


class TestBatchVerify:
    """Test batch integrity checks."""

    def _batch(self, create_payload, signer, count=2):
        builder = BatchListBuilder(signer)
        for i in range(count):
            builder.add_transaction(
                encode_payload(create_payload(product_id=str(i))), PRODUCT_INPUTS, PRODUCT_OUTPUTS,
            )
        return builder.create_batch_list().batches[0]

    def test_valid(self, create_payload, signer):
        assert self._batch(create_payload, signer).verify()

    def test_reordered_transactions_fail(self, create_payload, signer):
        batch = self._batch(create_payload, signer)
        reordered = dataclasses.replace(batch, transactions=tuple(reversed(batch.transactions)))
        assert not reordered.verify()

    def test_dropped_transaction_fails(self, create_payload, signer):
        batch = self._batch(create_payload, signer)
        assert not dataclasses.replace(batch, transactions=batch.transactions[:1]).verify()

    def test_forged_header_signature_fails(self, create_payload, signer):
        batch = self._batch(create_payload, signer)
        forged = Signer.generate().sign(batch.header.to_bytes())
        assert not dataclasses.replace(batch, header_signature=forged).verify()


class TestBatchListEnvelope:
    """Test the transport envelope."""

    def test_round_trip(self, create_payload, signer):
        batch_list = build_batch_list([create_payload()], signer)
        decoded = BatchList.from_bytes(batch_list.to_bytes())
        assert decoded == batch_list
        assert decoded.batches[0].verify()

    def test_envelope_layout(self, create_payload, signer):
        batch_list = build_batch_list([create_payload()], signer)
        obj = json.loads(batch_list.to_bytes())
        assert list(obj) == ["batches"]
        batch = obj["batches"][0]
        assert set(batch) == {"header", "header_signature", "transactions"}
        assert set(batch["transactions"][0]) == {"header", "header_signature", "payload"}
        header = json.loads(base64.b64decode(batch["header"]))
        assert header["signer_public_key"] == signer.public_key
        assert batch_list.batch_ids == [batch["header_signature"]]

    def test_garbage_envelope(self):
        with pytest.raises(DecodeError):
            BatchList.from_bytes(b'{"batches": 3}')

    def test_lone_surrogate_in_envelope(self):
        with pytest.raises(DecodeError, match="not valid UTF-8 JSON"):
            BatchList.from_bytes(b'{"batches":[{"header":"\\ud800"}]}')

    def test_non_canonical_envelope(self, create_payload, signer):
        obj = json.loads(build_batch_list([create_payload()], signer).to_bytes())
        with pytest.raises(DecodeError, match="not canonically encoded"):
            BatchList.from_bytes(json.dumps(obj, indent=2).encode())


class TestBuildBatchList:
    """Test namespace selection per family."""

    def test_product_namespaces(self, create_payload, signer):
        txn = build_batch_list([create_payload()], signer).batches[0].transactions[0]
        assert all(a.startswith("621dee02") for a in txn.header.outputs)
        assert sorted(a[:8] for a in txn.header.inputs) == ["621dee01", "621dee02", "cad11d00", "cad11d01"]

    def test_mixed_families(self, create_payload, signer):
        org = build_payload("ORGANIZATION_CREATE", {"org_id": "acme", "name": "Acme"}, timestamp=1)
        batch = build_batch_list([org, create_payload()], signer).batches[0]
        assert [t.header.family_name for t in batch.transactions] == ["pike", "grid_product"]
        assert compute_organization_address("acme") in batch.transactions[0].header.outputs

    def test_identity_only_outputs(self, signer):
        agent = build_payload("AGENT_CREATE", {"org_id": "acme", "public_key": signer.public_key}, timestamp=1)
        txn = build_batch_list([agent], signer).batches[0].transactions[0]
        assert all(a.startswith("cad11d") for a in txn.header.outputs)
