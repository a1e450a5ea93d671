# JSON-Cadence payload decoding
# Flow REST returns event payloads and script results as base64 JSON-Cadence:
#   {"type":"Event","value":{"id":"A.x.C.E","fields":[{"name":"id","value":{"type":"UInt64","value":"1"}}]}}

import base64
import binascii
import json
from typing import Any, Callable, Dict, Union

from .models import DecodedEvent, RawEvent


class DecodeError(ValueError):
    """Raised when a payload is not base64 JSON-Cadence with a composite/fields root."""
    pass


INT_TYPES = {
    "Int", "Int8", "Int16", "Int32", "Int64", "Int128", "Int256",
    "UInt", "UInt8", "UInt16", "UInt32", "UInt64", "UInt128", "UInt256",
    "Word8", "Word16", "Word32", "Word64", "Word128", "Word256",
}
FIX_TYPES = {"Fix64", "UFix64"}
TEXT_TYPES = {"String", "Character", "Address"}
COMPOSITE_TYPES = {"Struct", "Resource", "Event", "Contract", "Enum"}


def _as_int(v: Any) -> int:
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"bad integer value {v!r}") from e


def _as_float(v: Any) -> float:
    try:
        return float(v)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"bad fixed-point value {v!r}") from e


def type_id(v: Any) -> str:
    """Type identifier carried by a Type value, a {typeID} / {staticType:{typeID}} wrapper, or a bare string."""
    if isinstance(v, str):
        return v.strip()
    if isinstance(v, dict):
        if isinstance(v.get("staticType"), (dict, str)):
            return type_id(v["staticType"])
        if isinstance(v.get("typeID"), str):
            return v["typeID"].strip()
        if isinstance(v.get("value"), dict):
            return type_id(v["value"])
    return ""


def _composite(v: Any) -> Dict[str, Any]:
    if not isinstance(v, dict) or not isinstance(v.get("fields"), list):
        raise DecodeError("composite value without a fields list")
    out: Dict[str, Any] = {}
    for f in v["fields"]:
        if not isinstance(f, dict) or not isinstance(f.get("name"), str) or "value" not in f:
            raise DecodeError(f"malformed field entry: {f!r}")
        out[f["name"]] = decode_value(f["value"])
    return out


def _dictionary(v: Any) -> Dict[Any, Any]:
    if not isinstance(v, list):
        raise DecodeError("dictionary value is not a list of entries")
    out: Dict[Any, Any] = {}
    for kv in v:
        if not isinstance(kv, dict) or "key" not in kv or "value" not in kv:
            raise DecodeError(f"malformed dictionary entry: {kv!r}")
        key = decode_value(kv["key"])
        out[key if isinstance(key, (str, int, float, bool)) else json.dumps(key, sort_keys=True)] = decode_value(kv["value"])
    return out


def _array(v: Any) -> list:
    if not isinstance(v, list):
        raise DecodeError("array value is not a list")
    return [decode_value(x) for x in v]


def _bool(v: Any) -> bool:
    if not isinstance(v, bool):
        raise DecodeError(f"bad Bool value {v!r}")
    return v


def _path(v: Any) -> str:
    if isinstance(v, dict):
        return f"/{v.get('domain', '')}/{v.get('identifier', '')}"
    return str(v)


_DECODERS: Dict[str, Callable[[Any], Any]] = {
    "Bool": _bool,
    "Optional": lambda v: None if v is None else decode_value(v),
    "Void": lambda v: None,
    "Type": type_id,
    "Array": _array,
    "Dictionary": _dictionary,
    "Path": _path,
}


def decode_value(node: Any) -> Any:
    """Convert one JSON-Cadence {type, value} node into a native value."""
    if not isinstance(node, dict) or "type" not in node:
        raise DecodeError(f"not a typed value: {node!r}")
    t = node["type"]
    v = node.get("value")
    if t in INT_TYPES:
        return _as_int(v)
    if t in FIX_TYPES:
        return _as_float(v)
    if t in TEXT_TYPES:
        if not isinstance(v, str):
            raise DecodeError(f"{t} value is not a string: {v!r}")
        return v
    if t in COMPOSITE_TYPES:
        return _composite(v)
    fn = _DECODERS.get(t)
    if fn is not None:
        return fn(v)
    # Capability and future tags pass through untouched
    return v


def _load_json_b64(payload: Union[str, bytes]) -> Any:
    if isinstance(payload, str):
        try:
            payload = payload.encode("ascii")
        except UnicodeEncodeError as e:
            raise DecodeError("payload is not base64: non-ascii characters") from e
    if not isinstance(payload, (bytes, bytearray)) or not payload:
        raise DecodeError("payload is not a non-empty base64 string")
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"payload is not base64: {e}") from e
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"payload is not JSON: {e}") from e
    except RecursionError as e:
        raise DecodeError("payload is nested too deeply") from e


def decode_payload(payload_b64: Union[str, bytes]) -> Dict[str, Any]:
    """base64 JSON-Cadence composite -> {field name: native value}. Raises DecodeError."""
    doc = _load_json_b64(payload_b64)
    if not isinstance(doc, dict):
        raise DecodeError("payload root is not an object")
    try:
        return _composite(doc.get("value"))
    except RecursionError as e:
        raise DecodeError("payload is nested too deeply") from e


def decode_result(payload_b64: Union[str, bytes]) -> Any:
    """Decode a script result (any JSON-Cadence value, not only composites)."""
    doc = _load_json_b64(payload_b64)
    try:
        return decode_value(doc)
    except RecursionError as e:
        raise DecodeError("script result is nested too deeply") from e


def decode_event(event: Union[RawEvent, DecodedEvent]) -> DecodedEvent:
    if isinstance(event, DecodedEvent):
        return event
    if event.payload:
        return DecodedEvent(raw=event, fields=decode_payload(event.payload))
    if isinstance(event.data, dict):
        return DecodedEvent(raw=event, fields=dict(event.data))
    raise DecodeError(f"event {event.type} in tx {event.transaction_id} has neither payload nor data")


def encode_argument(cadence_type: str, value: Any) -> str:
    """One base64 JSON-Cadence script argument, e.g. encode_argument("Address", "0x01")."""
    if cadence_type in INT_TYPES or cadence_type in FIX_TYPES:
        value = str(value)
    node = {"type": cadence_type, "value": value}
    return base64.b64encode(json.dumps(node, separators=(",", ":")).encode("utf-8")).decode("ascii")
