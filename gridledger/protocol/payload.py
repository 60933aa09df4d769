"""
Payloads: one action plus the time it was created.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional, Type, Union

from gridledger.errors import BuildError
from gridledger.protocol.actions import Action, ActionType, parse_action_type
from gridledger.protocol.pike import (
    AgentCreateAction,
    AgentDeleteAction,
    AgentUpdateAction,
    OrganizationCreateAction,
    OrganizationDeleteAction,
    OrganizationUpdateAction,
)
from gridledger.protocol.product import (
    ProductCreateAction,
    ProductDeleteAction,
    ProductUpdateAction,
)

U64_MAX = 2 ** 64 - 1

ACTION_CLASSES: Mapping[ActionType, Type[Action]] = MappingProxyType({
    cls.action_type: cls
    for cls in (
        ProductCreateAction,
        ProductUpdateAction,
        ProductDeleteAction,
        OrganizationCreateAction,
        OrganizationUpdateAction,
        OrganizationDeleteAction,
        AgentCreateAction,
        AgentUpdateAction,
        AgentDeleteAction,
    )
})


@dataclass(frozen=True)
class Payload:
    """
    An action and its creation timestamp (seconds since the UNIX epoch).

    A zero timestamp can be represented so that the ledger-side check can
    reject it; payloads built through build_payload() default to the
    current time.
    """
    action: Action
    timestamp: int

    @property
    def action_type(self) -> ActionType:
        return self.action.action_type

    @property
    def family(self) -> str:
        return self.action.action_type.family

    @classmethod
    def of(cls, action: Action, timestamp: Optional[int] = None) -> "Payload":
        """Wrap an already built action, defaulting the timestamp to now."""
        if not isinstance(action, Action) or type(action) not in ACTION_CLASSES.values():
            raise BuildError(f"Expected a built action, got {type(action).__name__}")
        if timestamp is None:
            timestamp = int(time.time())
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise BuildError(f"timestamp must be an int, got {type(timestamp).__name__}")
        if not 0 <= timestamp <= U64_MAX:
            raise BuildError(f"timestamp {timestamp} does not fit in an unsigned 64-bit int")
        return cls(action=action, timestamp=timestamp)


def build_action(action_type: Union[str, ActionType], fields: Mapping[str, Any]) -> Action:
    """
    Build an action of the given kind from a field mapping.

    Raises:
        BuildError: Unknown action type or invalid fields
    """
    action_cls = ACTION_CLASSES[parse_action_type(action_type)]
    return action_cls.from_fields(fields)


def build_payload(
    action_type: Union[str, ActionType],
    fields: Mapping[str, Any],
    timestamp: Optional[int] = None,
) -> Payload:
    """
    Build a payload in one pass.

    Args:
        action_type: ActionType member or tag, e.g. "PRODUCT_CREATE"
        fields: Action fields
        timestamp: Seconds since the epoch (default: now)

    Raises:
        BuildError: If the action or timestamp is invalid
    """
    return Payload.of(build_action(action_type, fields), timestamp)
