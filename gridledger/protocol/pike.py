"""
Identity (pike) actions: organizations and the agents acting for them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, List, Tuple

from gridledger.errors import BuildError
from gridledger.protocol.actions import (
    Action,
    ActionType,
    as_bool,
    as_str,
    as_str_tuple,
)


@dataclass(frozen=True)
class KeyValueEntry:
    key: str
    value: str


def as_metadata(name: str, value: Any) -> Tuple[KeyValueEntry, ...]:
    """
    Accept metadata as a mapping (insertion order kept), or a sequence of
    KeyValueEntry objects or (key, value) pairs.
    """
    if isinstance(value, Mapping):
        value = list(value.items())
    if not isinstance(value, (list, tuple)):
        raise BuildError(f"Field '{name}' must be a mapping or list, got {type(value).__name__}")

    entries = []
    for index, item in enumerate(value):
        if isinstance(item, KeyValueEntry):
            key, entry_value = item.key, item.value
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            key, entry_value = item
        else:
            raise BuildError(f"Field '{name}[{index}]' must be a key/value pair")
        entries.append(
            KeyValueEntry(
                key=as_str(f"{name}[{index}].key", key),
                value=as_str(f"{name}[{index}].value", entry_value),
            )
        )
    return tuple(entries)


@dataclass(frozen=True)
class OrganizationCreateAction(Action):
    action_type: ClassVar[ActionType] = ActionType.ORGANIZATION_CREATE
    required: ClassVar[Tuple[str, ...]] = ("org_id", "name")
    converters: ClassVar = {
        "org_id": as_str,
        "name": as_str,
        "address": as_str,
        "metadata": as_metadata,
    }

    org_id: str
    name: str
    address: str = ""
    metadata: Tuple[KeyValueEntry, ...] = ()

    def build_issues(self) -> List[str]:
        issues = []
        if not self.org_id:
            issues.append("org_id cannot be empty string")
        if not self.name:
            issues.append("name cannot be empty string")
        return issues


@dataclass(frozen=True)
class OrganizationUpdateAction(Action):
    """Empty name/address leave the stored values unchanged."""
    action_type: ClassVar[ActionType] = ActionType.ORGANIZATION_UPDATE
    required: ClassVar[Tuple[str, ...]] = ("org_id",)
    converters: ClassVar = {
        "org_id": as_str,
        "name": as_str,
        "address": as_str,
        "metadata": as_metadata,
    }

    org_id: str
    name: str = ""
    address: str = ""
    metadata: Tuple[KeyValueEntry, ...] = ()

    def build_issues(self) -> List[str]:
        if not self.org_id:
            return ["org_id cannot be empty string"]
        return []


@dataclass(frozen=True)
class OrganizationDeleteAction(Action):
    action_type: ClassVar[ActionType] = ActionType.ORGANIZATION_DELETE
    required: ClassVar[Tuple[str, ...]] = ("org_id",)
    converters: ClassVar = {"org_id": as_str}

    org_id: str

    def build_issues(self) -> List[str]:
        if not self.org_id:
            return ["org_id cannot be empty string"]
        return []


@dataclass(frozen=True)
class AgentCreateAction(Action):
    action_type: ClassVar[ActionType] = ActionType.AGENT_CREATE
    required: ClassVar[Tuple[str, ...]] = ("org_id", "public_key")
    converters: ClassVar = {
        "org_id": as_str,
        "public_key": as_str,
        "active": as_bool,
        "roles": as_str_tuple,
        "metadata": as_metadata,
    }

    org_id: str
    public_key: str
    active: bool = True
    roles: Tuple[str, ...] = ()
    metadata: Tuple[KeyValueEntry, ...] = ()

    def build_issues(self) -> List[str]:
        issues = []
        if not self.org_id:
            issues.append("org_id cannot be empty string")
        if not self.public_key:
            issues.append("public_key cannot be empty string")
        return issues


@dataclass(frozen=True)
class AgentUpdateAction(Action):
    action_type: ClassVar[ActionType] = ActionType.AGENT_UPDATE
    required: ClassVar[Tuple[str, ...]] = ("org_id", "public_key")
    converters: ClassVar = {
        "org_id": as_str,
        "public_key": as_str,
        "active": as_bool,
        "roles": as_str_tuple,
        "metadata": as_metadata,
    }

    org_id: str
    public_key: str
    active: bool = True
    roles: Tuple[str, ...] = ()
    metadata: Tuple[KeyValueEntry, ...] = ()

    def build_issues(self) -> List[str]:
        issues = []
        if not self.org_id:
            issues.append("org_id cannot be empty string")
        if not self.public_key:
            issues.append("public_key cannot be empty string")
        return issues


@dataclass(frozen=True)
class AgentDeleteAction(Action):
    action_type: ClassVar[ActionType] = ActionType.AGENT_DELETE
    required: ClassVar[Tuple[str, ...]] = ("public_key",)
    converters: ClassVar = {"public_key": as_str}

    public_key: str

    def build_issues(self) -> List[str]:
        if not self.public_key:
            return ["public_key cannot be empty string"]
        return []
