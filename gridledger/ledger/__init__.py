"""
Signed ledger units: transactions, batches and batch lists.
"""

from gridledger.ledger.batch import (
    Batch,
    BatchHeader,
    BatchList,
    BatchListBuilder,
    build_batch_list,
)
from gridledger.ledger.transaction import (
    MAX_PAYLOAD_SIZE,
    Transaction,
    TransactionHeader,
    build_transaction,
)

__all__ = [
    "Batch",
    "BatchHeader",
    "BatchList",
    "BatchListBuilder",
    "MAX_PAYLOAD_SIZE",
    "Transaction",
    "TransactionHeader",
    "build_batch_list",
    "build_transaction",
]
