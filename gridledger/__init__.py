"""
gridledger

Client and ledger-side core for submitting product, organization and agent
actions to a shared ledger: canonical payload encoding, namespace addressing,
signed transactions and batches, and the validation/apply logic run when a
transaction is processed.
"""

__version__ = "0.3.0"
