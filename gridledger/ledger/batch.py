"""
Batches and batch lists.

A batch is the atomic unit the ledger commits: all of its transactions apply
or none do. The batch header lists the transaction ids in order and is signed,
so reordering, dropping or adding a transaction invalidates the batch.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from gridledger.addressing import Namespace
from gridledger.crypto.core import (
    PUBLIC_KEY_HEX_LENGTH,
    SIGNATURE_HEX_LENGTH,
    canonical_bytes,
    ed25519_verify_hex,
    is_hex,
)
from gridledger.crypto.signing import Signer
from gridledger.errors import BuildError, DecodeError, SigningError
from gridledger.ledger.transaction import MAX_PAYLOAD_SIZE, Transaction, b64decode_field, build_transaction
from gridledger.protocol.actions import PIKE_FAMILY, PRODUCT_FAMILY
from gridledger.protocol.codec import decode_payload, encode_payload, parse_canonical_json
from gridledger.protocol.payload import Payload

logger = logging.getLogger(__name__)

# Namespaces declared per family when building from payloads
FAMILY_NAMESPACES: Dict[str, Tuple[Tuple[Namespace, ...], Tuple[Namespace, ...]]] = {
    PRODUCT_FAMILY: (
        (Namespace.IDENTITY, Namespace.SCHEMA, Namespace.PRODUCT),
        (Namespace.PRODUCT,),
    ),
    PIKE_FAMILY: (
        (Namespace.IDENTITY,),
        (Namespace.IDENTITY,),
    ),
}


@dataclass(frozen=True)
class BatchHeader:
    signer_public_key: str
    transaction_ids: Tuple[str, ...]

    def to_bytes(self) -> bytes:
        return canonical_bytes({
            "signer_public_key": self.signer_public_key,
            "transaction_ids": list(self.transaction_ids),
        })

    @classmethod
    def from_bytes(cls, data: bytes) -> "BatchHeader":
        obj = parse_canonical_json(data, "Batch header")
        if not isinstance(obj, dict) or set(obj) != {"signer_public_key", "transaction_ids"}:
            raise DecodeError("Batch header must have exactly signer_public_key and transaction_ids")
        if not is_hex(obj["signer_public_key"], PUBLIC_KEY_HEX_LENGTH):
            raise DecodeError("Batch header signer_public_key is malformed")
        ids = obj["transaction_ids"]
        if not isinstance(ids, list) or not all(is_hex(i, SIGNATURE_HEX_LENGTH) for i in ids):
            raise DecodeError("Batch header transaction_ids must be a list of transaction ids")

        header = cls(signer_public_key=obj["signer_public_key"], transaction_ids=tuple(ids))
        if header.to_bytes() != bytes(data):
            raise DecodeError("Batch header bytes are not canonically encoded")
        return header


@dataclass(frozen=True)
class Batch:
    header: BatchHeader
    header_signature: str
    transactions: Tuple[Transaction, ...]

    @property
    def id(self) -> str:
        return self.header_signature

    def verify(self) -> bool:
        """
        True if the batch is structurally valid and every signature checks out:
        non-empty, ids match the transactions in order, each transaction was
        batched by this signer and verifies, and the batch header signature
        is valid.
        """
        if not self.transactions:
            return False
        if self.header.transaction_ids != tuple(t.id for t in self.transactions):
            return False
        for transaction in self.transactions:
            if transaction.header.batcher_public_key != self.header.signer_public_key:
                return False
            if not transaction.verify():
                return False
        return ed25519_verify_hex(
            self.header.to_bytes(), self.header_signature, self.header.signer_public_key
        )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "header": base64.b64encode(self.header.to_bytes()).decode("ascii"),
            "header_signature": self.header_signature,
            "transactions": [t.to_wire() for t in self.transactions],
        }

    @classmethod
    def from_wire(cls, obj: Any) -> "Batch":
        if not isinstance(obj, dict) or set(obj) != {"header", "header_signature", "transactions"}:
            raise DecodeError("Batch must have exactly header, header_signature and transactions")
        if not is_hex(obj["header_signature"], SIGNATURE_HEX_LENGTH):
            raise DecodeError("Batch header_signature must be 128 hex characters")
        if not isinstance(obj["transactions"], list):
            raise DecodeError("Batch transactions must be a list")
        return cls(
            header=BatchHeader.from_bytes(b64decode_field(obj["header"], "batch header")),
            header_signature=obj["header_signature"],
            transactions=tuple(Transaction.from_wire(t) for t in obj["transactions"]),
        )


@dataclass(frozen=True)
class BatchList:
    """Transport container: the body posted to the REST gateway."""

    batches: Tuple[Batch, ...]

    @property
    def batch_ids(self) -> List[str]:
        return [batch.id for batch in self.batches]

    def to_bytes(self) -> bytes:
        return canonical_bytes({"batches": [batch.to_wire() for batch in self.batches]})

    @classmethod
    def from_bytes(cls, data: bytes) -> "BatchList":
        """
        Decode a batch list envelope.

        Raises:
            DecodeError: Malformed or non-canonical envelope
        """
        obj = parse_canonical_json(data, "Batch list")
        if not isinstance(obj, dict) or set(obj) != {"batches"} or not isinstance(obj["batches"], list):
            raise DecodeError("Batch list must be an object with a 'batches' list")
        batch_list = cls(batches=tuple(Batch.from_wire(b) for b in obj["batches"]))
        if batch_list.to_bytes() != bytes(data):
            raise DecodeError("Batch list bytes are not canonically encoded")
        return batch_list


class BatchListBuilder:
    """
    Accumulates transactions in call order and seals them into one batch.

    Usage:
        builder = BatchListBuilder(signer)
        builder.add_transaction(payload_bytes, ["identity", "schema", "product"], ["product"])
        batch_list = builder.create_batch_list()

    A failed add_transaction() discards everything accumulated so far and
    makes create_batch_list() raise; no partial batch is ever produced.
    """

    def __init__(self, signer: Optional[Signer], max_payload_size: int = MAX_PAYLOAD_SIZE):
        if signer is None:
            raise SigningError("No signer available to sign the batch")
        self.signer = signer
        self.max_payload_size = max_payload_size
        self._transactions: List[Transaction] = []
        self._failure: Optional[BaseException] = None

    def add_transaction(
        self,
        payload_bytes: bytes,
        input_namespaces: Iterable[Union[str, Namespace]],
        output_namespaces: Iterable[Union[str, Namespace]],
        dependencies: Sequence[str] = (),
    ) -> "BatchListBuilder":
        """
        Add one transaction for an encoded payload.

        Returns:
            self, for chaining

        Raises:
            BuildError: Malformed payload bytes or invalid declaration
            SigningError: Signing failed
        """
        if self._failure is not None:
            raise BuildError("Batch construction already failed") from self._failure

        try:
            try:
                payload = decode_payload(payload_bytes)
            except DecodeError as err:
                raise BuildError(f"Malformed payload bytes: {err}") from err

            transaction = build_transaction(
                payload,
                self.signer,
                input_namespaces,
                output_namespaces,
                dependencies=dependencies,
                batcher_public_key=self.signer.public_key,
                max_payload_size=self.max_payload_size,
            )
        except (BuildError, SigningError) as err:
            self._failure = err
            self._transactions.clear()
            logger.warning("Batch construction aborted: %s", err)
            raise

        self._transactions.append(transaction)
        return self

    def create_batch_list(self) -> BatchList:
        """
        Seal the accumulated transactions into a signed batch.

        Raises:
            BuildError: Nothing was added, or an earlier add failed
        """
        if self._failure is not None:
            raise BuildError("Cannot create a batch after a failed add_transaction") from self._failure
        if not self._transactions:
            raise BuildError("A batch must contain at least one transaction")

        transactions = tuple(self._transactions)
        header = BatchHeader(
            signer_public_key=self.signer.public_key,
            transaction_ids=tuple(t.id for t in transactions),
        )
        batch = Batch(
            header=header,
            header_signature=self.signer.sign(header.to_bytes()),
            transactions=transactions,
        )
        logger.info("Created batch %s with %d transaction(s)", batch.id[:16], len(transactions))
        return BatchList(batches=(batch,))


def build_batch_list(
    payloads: Iterable[Payload],
    signer: Signer,
    max_payload_size: int = MAX_PAYLOAD_SIZE,
) -> BatchList:
    """
    Build one batch from payloads, declaring each family's namespaces.

    Product payloads read identity, schema and product state and write
    product state; identity payloads read and write identity state.
    """
    builder = BatchListBuilder(signer, max_payload_size=max_payload_size)
    for payload in payloads:
        inputs, outputs = FAMILY_NAMESPACES[payload.family]
        builder.add_transaction(encode_payload(payload), inputs, outputs)
    return builder.create_batch_list()
