"""
In-memory ledger state for local rehearsal of batch application.

Exposes both context APIs (validator and contract style) over one dict so
handlers can be exercised through either adapter.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple


class StateEntry(NamedTuple):
    address: str
    data: bytes


class InMemoryState:
    def __init__(self, entries: Optional[Mapping[str, bytes]] = None):
        self._entries: Dict[str, bytes] = dict(entries or {})

    def __contains__(self, address: str) -> bool:
        return address in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, address: str) -> Optional[bytes]:
        return self._entries.get(address)

    def as_dict(self) -> Dict[str, bytes]:
        return dict(self._entries)

    def snapshot(self) -> "InMemoryState":
        """Independent copy; changes to it reach this state only via commit()."""
        return InMemoryState(self._entries)

    def commit(self, snapshot: "InMemoryState") -> None:
        self._entries = dict(snapshot._entries)

    # Validator context API

    def get_state(self, addresses: Iterable[str]) -> List[StateEntry]:
        return [StateEntry(a, self._entries[a]) for a in addresses if a in self._entries]

    def set_state(self, entries: Mapping[str, bytes]) -> List[str]:
        self._entries.update(entries)
        return list(entries)

    def delete_state(self, addresses: Iterable[str]) -> List[str]:
        return [a for a in addresses if self._entries.pop(a, None) is not None]

    # Contract context API

    def get_state_entries(self, addresses: Iterable[str]) -> List[Tuple[str, bytes]]:
        return [(a, self._entries[a]) for a in addresses if a in self._entries]

    def set_state_entries(self, entries: Iterable[Tuple[str, bytes]]) -> None:
        for address, data in entries:
            self._entries[address] = data

    def delete_state_entries(self, addresses: Iterable[str]) -> None:
        for address in addresses:
            self._entries.pop(address, None)
