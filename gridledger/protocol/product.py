"""Product actions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, List, Tuple

from gridledger.errors import BuildError
from gridledger.protocol.actions import (
    Action,
    ActionType,
    as_property_values,
    as_str,
)
from gridledger.protocol.schema import PropertyValue


class ProductType(str, Enum):
    GS1 = "GS1"

    @property
    def schema_name(self) -> str:
        """Name of the schema products of this type are described by."""
        return f"{self.value.lower()}_product"


def parse_product_type(product_type: Any) -> ProductType:
    """Resolve a product type from its enum member or a case-insensitive name."""
    if isinstance(product_type, ProductType):
        return product_type
    if isinstance(product_type, str):
        try:
            return ProductType(product_type.upper())
        except ValueError:
            pass
    raise BuildError(f"Invalid product_type for value: {product_type!r}")


def as_product_type(name: str, value: Any) -> ProductType:
    return parse_product_type(value)


@dataclass(frozen=True)
class ProductCreateAction(Action):
    action_type: ClassVar[ActionType] = ActionType.PRODUCT_CREATE
    required: ClassVar[Tuple[str, ...]] = ("product_id", "product_type", "owner", "properties")
    converters: ClassVar = {
        "product_id": as_str,
        "product_type": as_product_type,
        "owner": as_str,
        "properties": as_property_values,
    }

    product_id: str
    product_type: ProductType
    owner: str
    properties: Tuple[PropertyValue, ...] = ()

    def build_issues(self) -> List[str]:
        issues = []
        if not self.product_id:
            issues.append("product_id cannot be empty string")
        if not self.owner:
            issues.append("owner cannot be empty string")
        return issues


@dataclass(frozen=True)
class ProductUpdateAction(Action):
    action_type: ClassVar[ActionType] = ActionType.PRODUCT_UPDATE
    required: ClassVar[Tuple[str, ...]] = ("product_id", "product_type", "properties")
    converters: ClassVar = {
        "product_id": as_str,
        "product_type": as_product_type,
        "properties": as_property_values,
    }

    product_id: str
    product_type: ProductType
    properties: Tuple[PropertyValue, ...] = ()

    def build_issues(self) -> List[str]:
        if not self.product_id:
            return ["product_id cannot be empty string"]
        return []


@dataclass(frozen=True)
class ProductDeleteAction(Action):
    action_type: ClassVar[ActionType] = ActionType.PRODUCT_DELETE
    required: ClassVar[Tuple[str, ...]] = ("product_id", "product_type")
    converters: ClassVar = {
        "product_id": as_str,
        "product_type": as_product_type,
    }

    product_id: str
    product_type: ProductType

    def build_issues(self) -> List[str]:
        if not self.product_id:
            return ["product_id cannot be empty string"]
        return []
