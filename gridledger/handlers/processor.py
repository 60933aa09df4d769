"""
Transaction processor: routes signed transactions to their family handler.

Validation Steps (per transaction):
    1. Header signature and payload hash are verified
    2. Payload bytes are decoded (structural checks only)
    3. Family handler validates the action and applies it through a
       StateAccessor narrowed to the header's inputs and outputs

A batch is applied against a snapshot and committed only if every
transaction in it succeeds.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Type

from gridledger.errors import AuthorizationError, DecodeError, InvalidTransaction
from gridledger.handlers.memory import InMemoryState
from gridledger.handlers.pike import apply_pike_payload
from gridledger.handlers.product import apply_product_payload
from gridledger.handlers.state import StateAccessor, accessor_for
from gridledger.ledger.batch import Batch
from gridledger.ledger.transaction import Transaction
from gridledger.protocol.actions import FAMILY_VERSIONS, PIKE_FAMILY, PRODUCT_FAMILY
from gridledger.protocol.codec import decode_payload
from gridledger.protocol.payload import Payload

logger = logging.getLogger(__name__)

FAMILY_HANDLERS: Dict[str, Callable[[Payload, StateAccessor], None]] = {
    PRODUCT_FAMILY: apply_product_payload,
    PIKE_FAMILY: apply_pike_payload,
}


def validate_and_apply(payload: Payload, state_accessor: StateAccessor) -> None:
    """
    Validate a decoded payload and apply its effects.

    Args:
        payload: Decoded payload
        state_accessor: State view scoped to the transaction's addresses

    Raises:
        InvalidTransaction: The payload breaks a ledger rule
        AuthorizationError: The handler touched an undeclared address
    """
    FAMILY_HANDLERS[payload.family](payload, state_accessor)


class TransactionProcessor:
    """
    Applies transactions and keeps processing statistics.

    Attributes:
        accessor_cls: Adapter to wrap contexts with (default: chosen per context)
        stats: Processing statistics
    """

    def __init__(self, accessor_cls: Optional[Type[StateAccessor]] = None):
        self.accessor_cls = accessor_cls
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "transactions_applied": 0,
            "transactions_rejected": 0,
            "batches_committed": 0,
            "batches_rejected": 0,
        }

    def get_stats(self) -> Dict[str, int]:
        """Get processing statistics."""
        return self.stats.copy()

    def reset_stats(self) -> None:
        self.stats = self._empty_stats()

    def _accessor(self, context: Any, transaction: Transaction) -> StateAccessor:
        inputs, outputs = transaction.header.inputs, transaction.header.outputs
        if self.accessor_cls is not None:
            return self.accessor_cls(context, inputs, outputs)
        return accessor_for(context, inputs, outputs)

    def apply(self, transaction: Transaction, context: Any) -> None:
        """
        Verify, decode and apply one transaction.

        Raises:
            InvalidTransaction: Any reason the transaction cannot be applied
        """
        try:
            self._apply(transaction, context)
        except InvalidTransaction as err:
            self.stats["transactions_rejected"] += 1
            logger.info("Rejected transaction %s: %s", transaction.id[:16], err.message)
            raise
        self.stats["transactions_applied"] += 1

    def _apply(self, transaction: Transaction, context: Any) -> None:
        header = transaction.header
        if header.family_name not in FAMILY_HANDLERS:
            raise InvalidTransaction(f"Unknown transaction family: {header.family_name}")
        if header.family_version != FAMILY_VERSIONS[header.family_name]:
            raise InvalidTransaction(
                f"Unsupported {header.family_name} version: {header.family_version}"
            )
        if not transaction.verify():
            raise InvalidTransaction("Transaction signature or payload hash is invalid")

        try:
            payload = decode_payload(transaction.payload)
        except DecodeError as err:
            raise InvalidTransaction(f"Cannot decode payload: {err}") from err

        if payload.family != header.family_name:
            raise InvalidTransaction(
                f"{payload.action_type.value} cannot be processed by the {header.family_name} family"
            )

        try:
            validate_and_apply(payload, self._accessor(context, transaction))
        except AuthorizationError as err:
            raise InvalidTransaction(str(err)) from err

    def apply_batch(self, batch: Batch, state: InMemoryState) -> None:
        """
        Apply every transaction of a batch in order, all or nothing.

        Raises:
            InvalidTransaction: The batch or one of its transactions is invalid;
                state is left untouched
        """
        if not batch.verify():
            self.stats["batches_rejected"] += 1
            raise InvalidTransaction(f"Batch {batch.id[:16]} failed verification")

        pending = state.snapshot()
        try:
            for transaction in batch.transactions:
                self.apply(transaction, pending)
        except InvalidTransaction:
            self.stats["batches_rejected"] += 1
            logger.warning("Batch %s rejected; state unchanged", batch.id[:16])
            raise

        state.commit(pending)
        self.stats["batches_committed"] += 1
        logger.info("Committed batch %s (%d transactions)", batch.id[:16], len(batch.transactions))
