"""
Typed property values attached to tracked entities.

A PropertyValue carries exactly one populated value field, selected by its
data type. Struct values nest further PropertyValues as an owned tree.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from gridledger.errors import BuildError

I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1
U32_MAX = 2 ** 32 - 1

# Millionths of a degree
LATITUDE_MAX = 90_000_000
LONGITUDE_MAX = 180_000_000


class DataType(str, Enum):
    """Property value data types. Values are stable wire tags."""
    BYTES = "BYTES"
    BOOLEAN = "BOOLEAN"
    NUMBER = "NUMBER"
    STRING = "STRING"
    ENUM = "ENUM"
    STRUCT = "STRUCT"
    LAT_LONG = "LAT_LONG"


VALUE_FIELDS: Dict[DataType, str] = {
    DataType.BYTES: "bytes_value",
    DataType.BOOLEAN: "boolean_value",
    DataType.NUMBER: "number_value",
    DataType.STRING: "string_value",
    DataType.ENUM: "enum_value",
    DataType.STRUCT: "struct_values",
    DataType.LAT_LONG: "lat_long_value",
}


@dataclass(frozen=True)
class LatLong:
    """A position in millionths of a degree."""
    latitude: int
    longitude: int


@dataclass(frozen=True)
class PropertyValue:
    """
    A named, typed value.

    Attributes:
        name: Property name
        data_type: Selects which value field is populated
        bytes_value .. lat_long_value: Exactly one is not None
    """
    name: str
    data_type: DataType
    bytes_value: Optional[bytes] = None
    boolean_value: Optional[bool] = None
    number_value: Optional[int] = None
    string_value: Optional[str] = None
    enum_value: Optional[int] = None
    struct_values: Optional[Tuple["PropertyValue", ...]] = None
    lat_long_value: Optional[LatLong] = None

    @property
    def value(self) -> Any:
        """The populated value field."""
        return getattr(self, VALUE_FIELDS[self.data_type])


def is_utf8_text(value: str) -> bool:
    """False for strings holding lone surrogates, which have no UTF-8 form."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def parse_data_type(data_type: Union[str, DataType]) -> DataType:
    """
    Resolve a data type from its enum member or a case-insensitive name.

    Accepts "string", "boolean", "bytes", "number", "enum", "struct",
    "lat_long" in any case.
    """
    if isinstance(data_type, DataType):
        return data_type
    if isinstance(data_type, str):
        try:
            return DataType(data_type.upper())
        except ValueError:
            pass
    raise BuildError(f"Invalid data type for property value: {data_type!r}")


def lat_long_issues(lat_long: Any) -> List[str]:
    if not isinstance(lat_long, LatLong):
        return [f"lat_long_value must be a LatLong, got {type(lat_long).__name__}"]
    issues = []
    for label, value, bound in (
        ("latitude", lat_long.latitude, LATITUDE_MAX),
        ("longitude", lat_long.longitude, LONGITUDE_MAX),
    ):
        if isinstance(value, bool) or not isinstance(value, int):
            issues.append(f"{label} must be an int, got {type(value).__name__}")
        elif not -bound <= value <= bound:
            issues.append(f"{label} {value} is out of range [-{bound}, {bound}]")
    return issues


def _value_issues(data_type: DataType, value: Any) -> List[str]:
    field_name = VALUE_FIELDS[data_type]
    type_name = type(value).__name__

    if data_type is DataType.BYTES:
        if not isinstance(value, bytes):
            return [f"{field_name} must be bytes, got {type_name}"]
    elif data_type is DataType.BOOLEAN:
        if not isinstance(value, bool):
            return [f"{field_name} must be a bool, got {type_name}"]
    elif data_type is DataType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, int):
            return [f"{field_name} must be an int, got {type_name}"]
        if not I64_MIN <= value <= I64_MAX:
            return [f"{field_name} {value} does not fit in 64 bits"]
    elif data_type is DataType.STRING:
        if not isinstance(value, str):
            return [f"{field_name} must be a str, got {type_name}"]
        if not is_utf8_text(value):
            return [f"{field_name} is not valid UTF-8 text"]
    elif data_type is DataType.ENUM:
        if isinstance(value, bool) or not isinstance(value, int):
            return [f"{field_name} must be an int, got {type_name}"]
        if not 0 <= value <= U32_MAX:
            return [f"{field_name} {value} does not fit in an unsigned 32-bit int"]
    elif data_type is DataType.STRUCT:
        if not isinstance(value, tuple):
            return [f"{field_name} must be a sequence of property values, got {type_name}"]
        issues = []
        for index, child in enumerate(value):
            for issue in property_value_issues(child):
                issues.append(f"{field_name}[{index}]: {issue}")
        return issues
    elif data_type is DataType.LAT_LONG:
        return lat_long_issues(value)
    return []


def property_value_issues(property_value: Any) -> List[str]:
    """
    Structural problems with a PropertyValue; empty when it is well formed.

    Checks the name, that only the value field matching the data type is
    populated, and the type and range of that value (recursively for structs).
    """
    if not isinstance(property_value, PropertyValue):
        return [f"expected a PropertyValue, got {type(property_value).__name__}"]

    issues: List[str] = []
    if not isinstance(property_value.name, str) or not property_value.name:
        issues.append("name must be a non-empty string")
    elif not is_utf8_text(property_value.name):
        issues.append("name is not valid UTF-8 text")
    if not isinstance(property_value.data_type, DataType):
        issues.append(f"invalid data_type {property_value.data_type!r}")
        return issues

    expected = VALUE_FIELDS[property_value.data_type]
    for data_type, field_name in VALUE_FIELDS.items():
        value = getattr(property_value, field_name)
        if field_name == expected:
            if value is None:
                issues.append(
                    f"missing {field_name} for property value with type {data_type.value}"
                )
            else:
                issues.extend(_value_issues(data_type, value))
        elif value is not None:
            issues.append(
                f"{field_name} is set but data_type is {property_value.data_type.value}"
            )
    return issues


def build_lat_long(latitude: int, longitude: int) -> LatLong:
    """Build a LatLong, rejecting out-of-range coordinates."""
    lat_long = LatLong(latitude=latitude, longitude=longitude)
    issues = lat_long_issues(lat_long)
    if issues:
        raise BuildError("Failed to build LatLong: " + "; ".join(issues))
    return lat_long


def build_property_value(name: str, data_type: Union[str, DataType], **values: Any) -> PropertyValue:
    """
    Build a PropertyValue in one validated pass.

    Args:
        name: Property name
        data_type: DataType member or case-insensitive name
        **values: Value fields keyed by name (bytes_value, number_value, ...);
            exactly the field matching data_type must be supplied

    Returns:
        The immutable PropertyValue

    Raises:
        BuildError: Unknown field, missing or mismatched value, bad type or range

    Example:
        build_property_value("weight", DataType.NUMBER, number_value=500)
    """
    data_type = parse_data_type(data_type)

    unknown = sorted(set(values) - set(VALUE_FIELDS.values()))
    if unknown:
        raise BuildError(f"Unknown property value field(s): {', '.join(unknown)}")

    if isinstance(values.get("bytes_value"), bytearray):
        values["bytes_value"] = bytes(values["bytes_value"])
    if isinstance(values.get("struct_values"), list):
        values["struct_values"] = tuple(values["struct_values"])

    property_value = PropertyValue(name=name, data_type=data_type, **values)
    issues = property_value_issues(property_value)
    if issues:
        raise BuildError(f"Failed to build property value {name!r}: " + "; ".join(issues))
    return property_value
