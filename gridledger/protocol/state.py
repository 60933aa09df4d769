"""
Ledger state records and their containers.

Each state address holds a container: a canonical JSON list of records sorted
by id. Distinct ids whose addresses collide share one container.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Iterable, List, Tuple, Type, TypeVar

from gridledger.crypto.core import canonical_bytes
from gridledger.errors import BuildError, DecodeError
from gridledger.protocol.actions import as_bool, as_property_values, as_str, as_str_tuple
from gridledger.protocol.codec import (
    metadata_from_wire,
    metadata_to_wire,
    parse_canonical_json,
    property_value_from_wire,
    property_value_to_wire,
)
from gridledger.protocol.pike import KeyValueEntry, as_metadata
from gridledger.protocol.product import ProductType, as_product_type
from gridledger.protocol.schema import PropertyValue


@dataclass(frozen=True)
class Product:
    product_id: str
    product_type: ProductType
    owner: str
    properties: Tuple[PropertyValue, ...] = ()

    @property
    def record_id(self) -> str:
        return self.product_id


@dataclass(frozen=True)
class Organization:
    org_id: str
    name: str
    address: str = ""
    metadata: Tuple[KeyValueEntry, ...] = ()

    @property
    def record_id(self) -> str:
        return self.org_id


@dataclass(frozen=True)
class Agent:
    public_key: str
    org_id: str
    active: bool = True
    roles: Tuple[str, ...] = ()
    metadata: Tuple[KeyValueEntry, ...] = ()

    @property
    def record_id(self) -> str:
        return self.public_key


Record = TypeVar("Record", Product, Organization, Agent)

_CONVERTERS: Dict[str, Callable[[str, Any], Any]] = {
    "product_id": as_str,
    "product_type": as_product_type,
    "owner": as_str,
    "properties": as_property_values,
    "org_id": as_str,
    "name": as_str,
    "address": as_str,
    "metadata": as_metadata,
    "public_key": as_str,
    "active": as_bool,
    "roles": as_str_tuple,
}

_CONTAINER_KEYS: Dict[type, str] = {
    Product: "products",
    Organization: "organizations",
    Agent: "agents",
}


def _record_to_wire(record: Any) -> Dict[str, Any]:
    wire: Dict[str, Any] = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if f.name == "properties":
            value = [property_value_to_wire(pv) for pv in value]
        elif f.name == "metadata":
            value = metadata_to_wire(value)
        elif f.name == "roles":
            value = list(value)
        elif isinstance(value, ProductType):
            value = value.value
        wire[f.name] = value
    return wire


def _record_from_wire(record_cls: Type[Record], obj: Any, where: str) -> Record:
    names = {f.name for f in fields(record_cls)}
    if not isinstance(obj, dict) or set(obj) != names:
        raise DecodeError(f"{where} is not a valid {record_cls.__name__} record")

    values = dict(obj)
    if "properties" in values:
        if not isinstance(values["properties"], list):
            raise DecodeError(f"{where}.properties must be a list")
        values["properties"] = [
            property_value_from_wire(item, f"{where}.properties[{index}]")
            for index, item in enumerate(values["properties"])
        ]
    if "metadata" in values:
        values["metadata"] = metadata_from_wire(values["metadata"], f"{where}.metadata")

    try:
        kwargs = {name: _CONVERTERS[name](name, value) for name, value in values.items()}
    except BuildError as err:
        raise DecodeError(f"{where}: {err}") from err
    return record_cls(**kwargs)


def encode_records(records: Iterable[Record]) -> bytes:
    """
    Encode records of one kind as a container, sorted by id.

    Raises:
        ValueError: If records are of mixed kinds or ids repeat
    """
    records = sorted(records, key=lambda r: r.record_id)
    kinds = {type(r) for r in records}
    if len(kinds) != 1:
        raise ValueError("A container holds records of exactly one kind")
    ids = [r.record_id for r in records]
    if len(ids) != len(set(ids)):
        raise ValueError("Duplicate record ids in container")

    key = _CONTAINER_KEYS[kinds.pop()]
    return canonical_bytes({key: [_record_to_wire(r) for r in records]})


def decode_records(record_cls: Type[Record], data: bytes) -> List[Record]:
    """
    Decode a container of record_cls records.

    Raises:
        DecodeError: If the bytes are not a container of that kind
    """
    key = _CONTAINER_KEYS[record_cls]
    obj = parse_canonical_json(data, f"{record_cls.__name__} container")
    if not isinstance(obj, dict) or set(obj) != {key} or not isinstance(obj[key], list):
        raise DecodeError(f"State entry is not a {record_cls.__name__} container")
    return [
        _record_from_wire(record_cls, item, f"{key}[{index}]")
        for index, item in enumerate(obj[key])
    ]
