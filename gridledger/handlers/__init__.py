"""
Ledger-side validation and state application.
"""

from gridledger.handlers.memory import InMemoryState
from gridledger.handlers.processor import TransactionProcessor, validate_and_apply
from gridledger.handlers.state import (
    NativeStateAccessor,
    SandboxStateAccessor,
    StateAccessor,
)

__all__ = [
    "InMemoryState",
    "NativeStateAccessor",
    "SandboxStateAccessor",
    "StateAccessor",
    "TransactionProcessor",
    "validate_and_apply",
]
