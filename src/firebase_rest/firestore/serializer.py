from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import math
import re
from typing import TYPE_CHECKING, Any, Mapping

from firebase_rest.errors import InvalidArgumentError
from firebase_rest.firestore.path import relative_name
from firebase_rest.firestore.reference import DocumentReference

if TYPE_CHECKING:
    from firebase_rest.firestore.client import Firestore


LOGGER = logging.getLogger(__name__)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_TIMESTAMP_PATTERN = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<fraction>\d+))?(?P<zone>Z|[+-]\d{2}:\d{2})$"
)


class _Unset:
    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90 <= self.latitude <= 90:
            raise InvalidArgumentError(f"latitude must be within [-90, 90]: {self.latitude}")
        if not -180 <= self.longitude <= 180:
            raise InvalidArgumentError(f"longitude must be within [-180, 180]: {self.longitude}")


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp; digits past microseconds are dropped."""
    match = _TIMESTAMP_PATTERN.match(text.strip())
    if match is None:
        raise InvalidArgumentError(f"Invalid timestamp: {text}")
    fraction = (match.group("fraction") or "")[:6].ljust(6, "0")
    zone = match.group("zone")
    if zone == "Z":
        zone = "+00:00"
    parsed = datetime.fromisoformat(f"{match.group('base')}.{fraction}{zone}")
    return parsed.astimezone(timezone.utc)


def _encode_double(value: float) -> Any:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


def encode_value(value: Any) -> dict[str, Any]:
    """Convert a Python value into the typed wire representation."""
    if value is UNSET:
        raise InvalidArgumentError("Cannot encode an unset value")
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        if INT64_MIN <= value <= INT64_MAX:
            return {"integerValue": str(value)}
        return {"doubleValue": float(value)}
    if isinstance(value, float):
        return {"doubleValue": _encode_double(value)}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {"bytesValue": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, datetime):
        return {"timestampValue": format_timestamp(value)}
    if isinstance(value, GeoPoint):
        return {"geoPointValue": {"latitude": value.latitude, "longitude": value.longitude}}
    if isinstance(value, DocumentReference):
        return {"referenceValue": value.qualified_path}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise InvalidArgumentError(f"Unsupported Firestore value type: {type(value).__name__}")


def encode_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    return {str(key): encode_value(value) for key, value in data.items()}


def decode_value(value: Mapping[str, Any], firestore: "Firestore | None" = None) -> Any:
    """Convert a typed wire value back into a Python value.

    Reference values become DocumentReference objects bound to ``firestore``
    (or stay resource names when no store is given). Unknown type tags are
    returned untouched.
    """

    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "bytesValue" in value:
        return base64.b64decode(value["bytesValue"])
    if "timestampValue" in value:
        return parse_timestamp(value["timestampValue"])
    if "geoPointValue" in value:
        point = value["geoPointValue"] or {}
        return GeoPoint(float(point.get("latitude", 0.0)), float(point.get("longitude", 0.0)))
    if "referenceValue" in value:
        name = value["referenceValue"]
        if firestore is None:
            return name
        return firestore.doc(relative_name(name, firestore.base_path))
    if "arrayValue" in value:
        items = (value["arrayValue"] or {}).get("values") or []
        return [decode_value(item, firestore) for item in items]
    if "mapValue" in value:
        return decode_fields((value["mapValue"] or {}).get("fields"), firestore)

    LOGGER.warning("Unknown Firestore value type passed through: keys=%s", sorted(value))
    return dict(value)


def decode_fields(fields: Mapping[str, Any] | None, firestore: "Firestore | None" = None) -> dict[str, Any]:
    if not fields:
        return {}
    return {key: decode_value(value, firestore) for key, value in fields.items()}
