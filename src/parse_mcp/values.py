"""
Special Parse field values.

Parse REST payloads embed typed values as JSON objects tagged with "__type"
(Pointer, GeoPoint, File, Relation) or "__op" (Increment, Add, Delete, ...).
Incoming tool arguments are decoded into the dataclasses below once, and the
Parse client encodes them back to the REST wire shape.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class InvalidValueError(ValueError):
    """Raised when a tagged value is missing required parts."""


@dataclass(frozen=True)
class Pointer:
    class_name: str
    object_id: str

    def to_json(self) -> Dict[str, Any]:
        return {"__type": "Pointer", "className": self.class_name, "objectId": self.object_id}


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def to_json(self) -> Dict[str, Any]:
        return {"__type": "GeoPoint", "latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class FileRef:
    name: str
    url: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        data = {"__type": "File", "name": self.name}
        if self.url is not None:
            data["url"] = self.url
        return data


@dataclass(frozen=True)
class Relation:
    class_name: str

    def to_json(self) -> Dict[str, Any]:
        return {"__type": "Relation", "className": self.class_name}


@dataclass(frozen=True)
class Operation:
    """A field operation such as Increment, Add, AddUnique, Remove or Delete."""
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return {"__op": self.kind, **encode_value(self.payload)}


SPECIAL_TYPES = (Pointer, GeoPoint, FileRef, Relation, Operation)


def _require(raw: Dict[str, Any], key: str, type_name: str) -> Any:
    value = raw.get(key)
    if value is None or value == "":
        raise InvalidValueError(f"{type_name} value is missing '{key}'")
    return value


def _coordinate(raw: Dict[str, Any], key: str, bound: float) -> float:
    value = _require(raw, key, "GeoPoint")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidValueError(f"GeoPoint {key} must be a number")
    if not -bound <= value <= bound:
        raise InvalidValueError(f"GeoPoint {key} must be between {-bound} and {bound}")
    return float(value)


def decode_value(raw: Any) -> Any:
    """
    Decode a Parse JSON value into a special value when it is tagged.

    Args:
        raw: Any JSON-compatible value

    Returns:
        A Pointer, GeoPoint, FileRef, Relation or Operation for tagged objects,
        otherwise the value unchanged
    """
    if not isinstance(raw, dict):
        return raw

    if "__op" in raw:
        payload = {k: v for k, v in raw.items() if k != "__op"}
        kind = raw["__op"]
        if kind == "Increment" and "amount" not in payload:
            payload["amount"] = 1
        return Operation(kind=kind, payload=payload)

    type_tag = raw.get("__type")
    if type_tag == "Pointer":
        return Pointer(
            class_name=_require(raw, "className", "Pointer"),
            object_id=_require(raw, "objectId", "Pointer"),
        )
    if type_tag == "GeoPoint":
        return GeoPoint(
            latitude=_coordinate(raw, "latitude", 90.0),
            longitude=_coordinate(raw, "longitude", 180.0),
        )
    if type_tag == "File":
        return FileRef(name=_require(raw, "name", "File"), url=raw.get("url"))
    if type_tag == "Relation":
        return Relation(class_name=_require(raw, "className", "Relation"))
    return raw


def encode_value(value: Any) -> Any:
    """Inverse of decode_value; also walks lists and plain dicts."""
    if isinstance(value, SPECIAL_TYPES):
        return value.to_json()
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Decode every top-level field of an object payload."""
    if not isinstance(data, dict):
        raise InvalidValueError("Object data must be a JSON object")
    return {key: decode_value(value) for key, value in data.items()}


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: encode_value(value) for key, value in data.items()}
