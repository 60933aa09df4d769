"""
Canonical payload codec.

A payload is encoded as canonical JSON (sorted keys, no whitespace, UTF-8):

    {"action": "PRODUCT_CREATE",
     "product_create": {"owner": ..., "product_id": ..., ...},
     "timestamp": 1700000000}

Bytes values are base64 (standard alphabet, padded). Property values carry
only their populated value field. Decoding is the exact inverse and rejects
any input that does not re-encode to the same bytes, so every logical payload
has exactly one byte representation.

Decoding checks structure only (shapes, types, property value exclusivity).
Ledger rules such as non-empty identifiers are left to the handlers.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Tuple

from gridledger.crypto.core import canonical_bytes
from gridledger.errors import BuildError, DecodeError
from gridledger.protocol.actions import Action, ActionType
from gridledger.protocol.payload import ACTION_CLASSES, U64_MAX, Payload
from gridledger.protocol.pike import KeyValueEntry
from gridledger.protocol.schema import (
    VALUE_FIELDS,
    DataType,
    LatLong,
    PropertyValue,
    property_value_issues,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wire forms of nested values
# ---------------------------------------------------------------------------

def property_value_to_wire(property_value: PropertyValue) -> Dict[str, Any]:
    field_name = VALUE_FIELDS[property_value.data_type]
    value = property_value.value

    if property_value.data_type is DataType.BYTES:
        value = base64.b64encode(value).decode("ascii")
    elif property_value.data_type is DataType.STRUCT:
        value = [property_value_to_wire(child) for child in value]
    elif property_value.data_type is DataType.LAT_LONG:
        value = {"latitude": value.latitude, "longitude": value.longitude}

    return {
        "name": property_value.name,
        "data_type": property_value.data_type.value,
        field_name: value,
    }


def _expect_dict(obj: Any, where: str) -> Dict[str, Any]:
    if not isinstance(obj, dict):
        raise DecodeError(f"{where} must be an object, got {type(obj).__name__}")
    return obj


def _expect_keys(obj: Dict[str, Any], expected: set, where: str) -> None:
    if set(obj) != expected:
        missing = sorted(expected - set(obj))
        extra = sorted(set(obj) - expected)
        raise DecodeError(f"{where} has missing keys {missing} / unexpected keys {extra}")


def property_value_from_wire(obj: Any, where: str = "property") -> PropertyValue:
    obj = _expect_dict(obj, where)
    try:
        data_type = DataType(obj.get("data_type"))
    except ValueError as err:
        raise DecodeError(f"{where} has invalid data_type {obj.get('data_type')!r}") from err

    field_name = VALUE_FIELDS[data_type]
    _expect_keys(obj, {"name", "data_type", field_name}, where)
    value = obj[field_name]

    if data_type is DataType.BYTES:
        if not isinstance(value, str):
            raise DecodeError(f"{where}.bytes_value must be base64 text")
        try:
            value = base64.b64decode(value.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as err:
            raise DecodeError(f"{where}.bytes_value is not valid base64") from err
    elif data_type is DataType.STRUCT:
        if not isinstance(value, list):
            raise DecodeError(f"{where}.struct_values must be a list")
        value = tuple(
            property_value_from_wire(child, f"{where}.struct_values[{index}]")
            for index, child in enumerate(value)
        )
    elif data_type is DataType.LAT_LONG:
        lat_long = _expect_dict(value, f"{where}.lat_long_value")
        _expect_keys(lat_long, {"latitude", "longitude"}, f"{where}.lat_long_value")
        value = LatLong(latitude=lat_long["latitude"], longitude=lat_long["longitude"])

    property_value = PropertyValue(name=obj["name"], data_type=data_type, **{field_name: value})
    issues = property_value_issues(property_value)
    if issues:
        raise DecodeError(f"{where}: " + "; ".join(issues))
    return property_value


def metadata_to_wire(metadata: Tuple[KeyValueEntry, ...]) -> List[Dict[str, str]]:
    return [{"key": entry.key, "value": entry.value} for entry in metadata]


def metadata_from_wire(obj: Any, where: str = "metadata") -> List[Tuple[Any, Any]]:
    if not isinstance(obj, list):
        raise DecodeError(f"{where} must be a list")
    pairs = []
    for index, entry in enumerate(obj):
        entry = _expect_dict(entry, f"{where}[{index}]")
        _expect_keys(entry, {"key", "value"}, f"{where}[{index}]")
        pairs.append((entry["key"], entry["value"]))
    return pairs


def _to_wire(value: Any) -> Any:
    if isinstance(value, PropertyValue):
        return property_value_to_wire(value)
    if isinstance(value, KeyValueEntry):
        return {"key": value.key, "value": value.value}
    if isinstance(value, tuple):
        return [_to_wire(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    return value


def action_to_wire(action: Action) -> Dict[str, Any]:
    return {name: _to_wire(getattr(action, name)) for name in action.field_names()}


def action_from_wire(action_type: ActionType, obj: Any) -> Action:
    action_cls = ACTION_CLASSES[action_type]
    where = action_type.payload_key
    obj = _expect_dict(obj, where)
    _expect_keys(obj, set(action_cls.field_names()), where)

    fields = dict(obj)
    if "properties" in fields:
        if not isinstance(fields["properties"], list):
            raise DecodeError(f"{where}.properties must be a list")
        fields["properties"] = [
            property_value_from_wire(item, f"{where}.properties[{index}]")
            for index, item in enumerate(fields["properties"])
        ]
    if "metadata" in fields:
        fields["metadata"] = metadata_from_wire(fields["metadata"], f"{where}.metadata")

    if any(value is None for value in fields.values()):
        raise DecodeError(f"{where} contains null values")

    try:
        return action_cls.from_fields(fields, semantic=False)
    except BuildError as err:
        raise DecodeError(f"Invalid {where}: {err}") from err


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

def payload_to_wire(payload: Payload) -> Dict[str, Any]:
    action_type = payload.action_type
    return {
        "action": action_type.value,
        action_type.payload_key: action_to_wire(payload.action),
        "timestamp": payload.timestamp,
    }


def encode_payload(payload: Payload) -> bytes:
    """
    Encode a payload to its canonical bytes.

    The same logical payload always yields the same bytes.

    Raises:
        BuildError: If a string in the payload has no UTF-8 form
    """
    try:
        return canonical_bytes(payload_to_wire(payload))
    except UnicodeEncodeError as err:
        raise BuildError(f"Payload text is not valid UTF-8: {err}") from err


def parse_canonical_json(data: bytes, what: str) -> Any:
    """
    Parse UTF-8 JSON bytes.

    Raises:
        DecodeError: If the bytes are not UTF-8 JSON, or a JSON unicode escape
            decodes to a lone surrogate
    """
    if not isinstance(data, (bytes, bytearray)):
        raise DecodeError(f"{what} must be bytes, got {type(data).__name__}")
    try:
        obj = json.loads(bytes(data).decode("utf-8"))
        json.dumps(obj, ensure_ascii=False).encode("utf-8")
    except (UnicodeDecodeError, ValueError) as err:
        raise DecodeError(f"{what} is not valid UTF-8 JSON: {err}") from err
    return obj


def decode_payload(data: bytes) -> Payload:
    """
    Decode canonical payload bytes.

    Returns:
        The Payload; decode_payload(encode_payload(p)) == p

    Raises:
        DecodeError: Malformed, structurally invalid or non-canonical bytes
    """
    obj = _expect_dict(parse_canonical_json(data, "Payload"), "Payload")

    try:
        action_type = ActionType(obj.get("action"))
    except ValueError as err:
        raise DecodeError(f"Unknown payload action {obj.get('action')!r}") from err

    _expect_keys(obj, {"action", action_type.payload_key, "timestamp"}, "Payload")

    timestamp = obj["timestamp"]
    if isinstance(timestamp, bool) or not isinstance(timestamp, int) or not 0 <= timestamp <= U64_MAX:
        raise DecodeError(f"Payload timestamp must be an unsigned 64-bit int, got {timestamp!r}")

    payload = Payload(
        action=action_from_wire(action_type, obj[action_type.payload_key]),
        timestamp=timestamp,
    )

    if encode_payload(payload) != bytes(data):
        raise DecodeError("Payload bytes are not canonically encoded")

    logger.debug("Decoded %s payload (%d bytes)", action_type.value, len(data))
    return payload

