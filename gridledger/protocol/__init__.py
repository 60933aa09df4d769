"""
Domain data model and payload codec.
"""

from gridledger.protocol.actions import Action, ActionType
from gridledger.protocol.codec import decode_payload, encode_payload
from gridledger.protocol.payload import Payload, build_action, build_payload
from gridledger.protocol.pike import (
    AgentCreateAction,
    AgentDeleteAction,
    AgentUpdateAction,
    KeyValueEntry,
    OrganizationCreateAction,
    OrganizationDeleteAction,
    OrganizationUpdateAction,
)
from gridledger.protocol.product import (
    ProductCreateAction,
    ProductDeleteAction,
    ProductType,
    ProductUpdateAction,
)
from gridledger.protocol.schema import (
    DataType,
    LatLong,
    PropertyValue,
    build_lat_long,
    build_property_value,
)

__all__ = [
    "Action",
    "ActionType",
    "AgentCreateAction",
    "AgentDeleteAction",
    "AgentUpdateAction",
    "DataType",
    "KeyValueEntry",
    "LatLong",
    "OrganizationCreateAction",
    "OrganizationDeleteAction",
    "OrganizationUpdateAction",
    "Payload",
    "ProductCreateAction",
    "ProductDeleteAction",
    "ProductType",
    "ProductUpdateAction",
    "PropertyValue",
    "build_action",
    "build_lat_long",
    "build_payload",
    "build_property_value",
    "decode_payload",
    "encode_payload",
]
