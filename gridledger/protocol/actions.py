"""
Action tags and the shared field handling for domain actions.

Every action is a frozen dataclass. Building one goes through
``Action.from_fields``: required fields explicit, optional fields taken from
the same mapping, all checks done in one pass before the object exists.
"""

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Tuple

from gridledger.errors import BuildError
from gridledger.protocol.schema import PropertyValue, is_utf8_text, property_value_issues

PRODUCT_FAMILY = "grid_product"
PIKE_FAMILY = "pike"

FAMILY_VERSIONS: Mapping[str, str] = {
    PRODUCT_FAMILY: "1.0",
    PIKE_FAMILY: "0.1",
}


class ActionType(str, Enum):
    """
    Action tags. Values are written to the wire and must never change;
    new actions are added, old ones are never renumbered or renamed.
    """
    PRODUCT_CREATE = "PRODUCT_CREATE"
    PRODUCT_UPDATE = "PRODUCT_UPDATE"
    PRODUCT_DELETE = "PRODUCT_DELETE"
    ORGANIZATION_CREATE = "ORGANIZATION_CREATE"
    ORGANIZATION_UPDATE = "ORGANIZATION_UPDATE"
    ORGANIZATION_DELETE = "ORGANIZATION_DELETE"
    AGENT_CREATE = "AGENT_CREATE"
    AGENT_UPDATE = "AGENT_UPDATE"
    AGENT_DELETE = "AGENT_DELETE"

    @property
    def family(self) -> str:
        """Transaction family that handles this action."""
        if self.value.startswith("PRODUCT_"):
            return PRODUCT_FAMILY
        return PIKE_FAMILY

    @property
    def payload_key(self) -> str:
        """Key holding the action body in an encoded payload."""
        return self.value.lower()


def parse_action_type(action_type: Any) -> ActionType:
    if isinstance(action_type, ActionType):
        return action_type
    if isinstance(action_type, str):
        try:
            return ActionType(action_type.upper())
        except ValueError:
            pass
    raise BuildError(f"Unknown action type: {action_type!r}")


# ---------------------------------------------------------------------------
# Field converters: type checks only, never emptiness. Shared with the codec.
# ---------------------------------------------------------------------------

def as_str(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise BuildError(f"Field '{name}' must be a str, got {type(value).__name__}")
    if not is_utf8_text(value):
        raise BuildError(f"Field '{name}' is not valid UTF-8 text")
    return value


def as_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise BuildError(f"Field '{name}' must be a bool, got {type(value).__name__}")
    return value


def as_str_tuple(name: str, value: Any) -> Tuple[str, ...]:
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        raise BuildError(f"Field '{name}' must be a list of str, got {type(value).__name__}")
    return tuple(as_str(f"{name}[{i}]", item) for i, item in enumerate(value))


def as_property_values(name: str, value: Any) -> Tuple[PropertyValue, ...]:
    if not isinstance(value, (list, tuple)):
        raise BuildError(
            f"Field '{name}' must be a list of property values, got {type(value).__name__}"
        )
    for index, item in enumerate(value):
        issues = property_value_issues(item)
        if issues:
            raise BuildError(f"Field '{name}[{index}]': " + "; ".join(issues))
    return tuple(value)


class Action:
    """
    Base class for domain actions.

    Subclasses are frozen dataclasses declaring:
        action_type: Wire tag
        required: Field names that must be supplied
        converters: Field name -> converter(name, value)
    """
    action_type: ClassVar[ActionType]
    required: ClassVar[Tuple[str, ...]] = ()
    converters: ClassVar[Dict[str, Callable[[str, Any], Any]]] = {}

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in dataclasses.fields(cls))

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any], semantic: bool = True) -> "Action":
        """
        Build the action from a field mapping.

        Args:
            fields: Field values; None means "not supplied"
            semantic: Also apply the build rules of build_issues()

        Raises:
            BuildError: Unknown, missing or mistyped fields, or a failed build rule
        """
        label = cls.action_type.value
        if not isinstance(fields, Mapping):
            raise BuildError(f"Fields for {label} must be a mapping, got {type(fields).__name__}")

        unknown = sorted(set(fields) - set(cls.field_names()))
        if unknown:
            raise BuildError(f"Unknown field(s) for {label}: {', '.join(unknown)}")

        missing = [name for name in cls.required if fields.get(name) is None]
        if missing:
            raise BuildError(f"Missing required field(s) for {label}: {', '.join(missing)}")

        kwargs = {
            name: cls.converters[name](name, value)
            for name, value in fields.items()
            if value is not None
        }
        action = cls(**kwargs)

        if semantic:
            issues = action.build_issues()
            if issues:
                raise BuildError(f"Failed to build {label} action: " + "; ".join(issues))
        return action

    def build_issues(self) -> List[str]:
        """Build-time rules beyond field types. Empty when the action is buildable."""
        return []
