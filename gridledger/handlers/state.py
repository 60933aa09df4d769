"""
State access for ledger-side handlers.

Handlers never talk to a runtime directly. They go through a StateAccessor
that only lets them read the transaction's declared inputs and write its
declared outputs. Two adapters cover the two runtimes a handler can run in:

    NativeStateAccessor   validator context: get_state / set_state / delete_state
    SandboxStateAccessor  contract context:  get_state_entries / set_state_entries /
                                             delete_state_entries
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from gridledger.errors import AuthorizationError, DecodeError, InvalidTransaction
from gridledger.protocol.state import decode_records, encode_records


class StateAccessor(ABC):
    """
    Address-scoped view of ledger state.

    Subclasses implement the _get/_set/_delete primitives; the public methods
    enforce the declared inputs and outputs.
    """

    def __init__(self, inputs: Iterable[str], outputs: Iterable[str]):
        self.inputs = frozenset(inputs)
        self.outputs = frozenset(outputs)

    def get(self, address: str) -> Optional[bytes]:
        """Bytes stored at address, or None if the entry does not exist."""
        if address not in self.inputs:
            raise AuthorizationError(f"Read of undeclared input address {address}")
        return self._get(address)

    def set(self, address: str, data: bytes) -> None:
        if address not in self.outputs:
            raise AuthorizationError(f"Write to undeclared output address {address}")
        self._set(address, bytes(data))

    def delete(self, address: str) -> None:
        if address not in self.outputs:
            raise AuthorizationError(f"Delete of undeclared output address {address}")
        self._delete(address)

    @abstractmethod
    def _get(self, address: str) -> Optional[bytes]:
        ...

    @abstractmethod
    def _set(self, address: str, data: bytes) -> None:
        ...

    @abstractmethod
    def _delete(self, address: str) -> None:
        ...


class NativeStateAccessor(StateAccessor):
    """
    Adapter for the native validator context.

    The context returns a list of entries from get_state(); each entry is an
    object with ``address`` and ``data`` attributes or an (address, data) pair.
    """

    def __init__(self, context: Any, inputs: Iterable[str], outputs: Iterable[str]):
        super().__init__(inputs, outputs)
        self.context = context

    def _get(self, address: str) -> Optional[bytes]:
        for entry in self.context.get_state([address]):
            entry_address, data = _unpack_entry(entry)
            if entry_address == address:
                return data
        return None

    def _set(self, address: str, data: bytes) -> None:
        self.context.set_state({address: data})

    def _delete(self, address: str) -> None:
        self.context.delete_state([address])


class SandboxStateAccessor(StateAccessor):
    """Adapter for the sandboxed smart-contract context."""

    def __init__(self, context: Any, inputs: Iterable[str], outputs: Iterable[str]):
        super().__init__(inputs, outputs)
        self.context = context

    def _get(self, address: str) -> Optional[bytes]:
        entries: Dict[str, bytes] = dict(self.context.get_state_entries([address]))
        return entries.get(address)

    def _set(self, address: str, data: bytes) -> None:
        self.context.set_state_entries([(address, data)])

    def _delete(self, address: str) -> None:
        self.context.delete_state_entries([address])


def _unpack_entry(entry: Any):
    if isinstance(entry, (tuple, list)):
        return entry[0], entry[1]
    return entry.address, entry.data


def accessor_for(context: Any, inputs: List[str], outputs: List[str]) -> StateAccessor:
    """Pick the adapter matching the context's state API."""
    if hasattr(context, "get_state_entries"):
        return SandboxStateAccessor(context, inputs, outputs)
    if hasattr(context, "get_state"):
        return NativeStateAccessor(context, inputs, outputs)
    raise TypeError(f"Unsupported state context: {type(context).__name__}")


def load_records(accessor: StateAccessor, address: str, record_cls: type) -> List[Any]:
    """
    Records of record_cls stored at address (empty if the entry is absent).

    Raises:
        InvalidTransaction: If the stored bytes are not a valid container
    """
    data = accessor.get(address)
    if not data:
        return []
    try:
        return decode_records(record_cls, data)
    except DecodeError as err:
        raise InvalidTransaction(f"Cannot decode {record_cls.__name__} state at {address}: {err}") from err


def store_records(accessor: StateAccessor, address: str, records: List[Any]) -> None:
    """Write the container back; an empty container deletes the entry."""
    if records:
        accessor.set(address, encode_records(records))
    else:
        accessor.delete(address)


def find_record(records: List[Any], record_id: str) -> Optional[Any]:
    for record in records:
        if record.record_id == record_id:
            return record
    return None
