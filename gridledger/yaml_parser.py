"""
Product YAML files.

A product file is a YAML list of products:

    - product_id: "723382885088"
      product_type: GS1
      owner: acme
      properties:
        - name: weight
          data_type: NUMBER
          number_value: 500
        - name: location
          data_type: LAT_LONG
          lat_long_value: "44977753,-93265015"

``owner`` is only read for creates and ``properties`` is not read for deletes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from gridledger.errors import BuildError, YamlParseError
from gridledger.protocol.actions import PRODUCT_FAMILY, ActionType, parse_action_type
from gridledger.protocol.payload import Payload, build_payload
from gridledger.protocol.product import parse_product_type
from gridledger.protocol.schema import (
    I64_MIN,
    I64_MAX,
    U32_MAX,
    DataType,
    LatLong,
    PropertyValue,
    build_lat_long,
    build_property_value,
    parse_data_type,
)

logger = logging.getLogger(__name__)


def _value(mapping: Mapping, key: str, kind: type, expected: str) -> Any:
    value = mapping.get(key)
    if value is None:
        return None
    # bool is an int subclass; YAML true/false never counts as a number
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise YamlParseError(f"Value of {key} has an invalid format. Expected is a yaml {expected}.")
    return value


def parse_value_as_string(mapping: Mapping, key: str) -> Optional[str]:
    return _value(mapping, key, str, "string")


def parse_value_as_boolean(mapping: Mapping, key: str) -> Optional[bool]:
    return _value(mapping, key, bool, "boolean (true/false)")


def parse_value_as_sequence(mapping: Mapping, key: str) -> Optional[list]:
    return _value(mapping, key, list, "list")


def parse_value_as_i64(mapping: Mapping, key: str) -> Optional[int]:
    value = _value(mapping, key, int, "integer")
    if value is not None and not I64_MIN <= value <= I64_MAX:
        raise YamlParseError(f"Failed to parse value of {key} to 64 bit integer")
    return value


def parse_value_as_u32(mapping: Mapping, key: str) -> Optional[int]:
    value = _value(mapping, key, int, "integer")
    if value is not None and not 0 <= value <= U32_MAX:
        raise YamlParseError(f"Failed to parse value of {key} to 32 bit integer")
    return value


def parse_value_as_bytes(mapping: Mapping, key: str) -> Optional[bytes]:
    """
    Bytes are written in YAML as an integer and stored as the ASCII digits of
    that integer: ``bytes_value: 42`` becomes ``b"42"``.
    """
    value = parse_value_as_i64(mapping, key)
    if value is None:
        return None
    return str(value).encode("ascii")


def parse_value_as_lat_long(mapping: Mapping, key: str) -> Optional[LatLong]:
    """Parse ``"latitude,longitude"`` in millionths of a degree."""
    value = parse_value_as_string(mapping, key)
    if value is None:
        return None

    parts = value.split(",")
    if len(parts) != 2:
        raise YamlParseError(f"Value of {key} must be 'latitude,longitude', got {value!r}")
    try:
        latitude = int(parts[0].strip())
    except ValueError as err:
        raise YamlParseError(f"Failed to parse the Latitude value for LatLong: {key}") from err
    try:
        longitude = int(parts[1].strip())
    except ValueError as err:
        raise YamlParseError(f"Failed to parse the Longitude value for LatLong: {key}") from err

    try:
        return build_lat_long(latitude, longitude)
    except BuildError as err:
        raise YamlParseError(str(err)) from err


_VALUE_PARSERS = {
    DataType.BYTES: ("bytes_value", parse_value_as_bytes),
    DataType.BOOLEAN: ("boolean_value", parse_value_as_boolean),
    DataType.NUMBER: ("number_value", parse_value_as_i64),
    DataType.STRING: ("string_value", parse_value_as_string),
    DataType.ENUM: ("enum_value", parse_value_as_u32),
    DataType.LAT_LONG: ("lat_long_value", parse_value_as_lat_long),
}


def _require(value: Any, message: str) -> Any:
    if value is None:
        raise YamlParseError(message)
    return value


def parse_properties(properties: List[Any]) -> List[PropertyValue]:
    values = []
    for item in properties:
        if not isinstance(item, dict):
            raise YamlParseError("Failed to parse schema property definition.")
        values.append(parse_property_value(item))
    return values


def parse_property_value(prop: Mapping) -> PropertyValue:
    """
    Parse one property mapping into a PropertyValue.

    Raises:
        YamlParseError: Missing or malformed keys
    """
    data_type_name = _require(
        parse_value_as_string(prop, "data_type"),
        "Missing `data_type` field for property definition.",
    )
    try:
        data_type = parse_data_type(data_type_name)
    except BuildError as err:
        raise YamlParseError(f"Invalid data type for PropertyDefinition: {data_type_name}") from err

    name = _require(
        parse_value_as_string(prop, "name"),
        "Missing `name` field for product property value.",
    )

    if data_type is DataType.STRUCT:
        field_name = "struct_values"
        children = _require(
            parse_value_as_sequence(prop, field_name),
            "Missing `struct_values` field for property value with type STRUCT.",
        )
        value: Any = parse_properties(children)
    else:
        field_name, parser = _VALUE_PARSERS[data_type]
        value = _require(
            parser(prop, field_name),
            f"Missing `{field_name}` field for property value with type {data_type.value}.",
        )

    try:
        return build_property_value(name, data_type, **{field_name: value})
    except BuildError as err:
        raise YamlParseError(str(err)) from err


def _product_fields(product: Mapping, action_type: ActionType) -> Dict[str, Any]:
    product_id = _require(
        parse_value_as_string(product, "product_id"),
        "Missing `product_id` field for Product.",
    )
    product_type_name = _require(
        parse_value_as_string(product, "product_type"),
        "Missing `product_type` field for property definition.",
    )
    try:
        product_type = parse_product_type(product_type_name)
    except BuildError as err:
        raise YamlParseError(str(err)) from err

    fields: Dict[str, Any] = {"product_id": product_id, "product_type": product_type}

    if action_type is ActionType.PRODUCT_CREATE:
        fields["owner"] = _require(
            parse_value_as_string(product, "owner"),
            "Missing `owner` field for Product.",
        )
    if action_type in (ActionType.PRODUCT_CREATE, ActionType.PRODUCT_UPDATE):
        properties = _require(
            parse_value_as_sequence(product, "properties"),
            "Product is missing `properties` field.",
        )
        fields["properties"] = parse_properties(properties)
    return fields


def load_yaml_file(path: Union[str, Path]) -> Any:
    """
    Read and parse a YAML file with safe_load.

    Raises:
        YamlParseError: If the file is missing or is not valid YAML
    """
    path = Path(path)
    if not path.exists():
        raise YamlParseError(f"YAML file not found at: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise YamlParseError(f"Error parsing YAML file: {path}") from err
    except OSError as err:
        raise YamlParseError(f"Unable to read YAML file {path}: {err}") from err


def parse_product_yaml(
    path: Union[str, Path],
    action_type: Union[str, ActionType],
    timestamp: Optional[int] = None,
) -> List[Payload]:
    """
    Build one product payload per entry of a YAML product file.

    Args:
        path: YAML file path
        action_type: PRODUCT_CREATE, PRODUCT_UPDATE or PRODUCT_DELETE
        timestamp: Payload timestamp (default: now)

    Returns:
        Payloads in file order

    Raises:
        YamlParseError: Malformed file or entries
        BuildError: An entry parses but does not make a valid action
    """
    action_type = parse_action_type(action_type)
    if action_type.family != PRODUCT_FAMILY:
        raise BuildError(f"Not a product action: {action_type.value}")

    products = load_yaml_file(path)
    if not isinstance(products, list):
        raise YamlParseError(f"Malformed product file: expected a yaml list of products in {path}")

    payloads = []
    for index, product in enumerate(products):
        if not isinstance(product, dict):
            raise YamlParseError(f"Malformed product entry at index {index} in {path}")
        payloads.append(build_payload(action_type, _product_fields(product, action_type), timestamp))

    logger.info("Parsed %d %s payload(s) from %s", len(payloads), action_type.value, path)
    return payloads
