# Address unwrapping
# Different contract versions nest Optional<Address> differently; each shape is
# one (predicate, extractor) matcher, tried in order. Append new shapes at the end.

import re
from typing import Any, Callable, Optional, Tuple

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{16}$")
MAX_SCAN_DEPTH = 8

Matcher = Tuple[str, Callable[[Any], bool], Callable[[Any], Optional[str]]]


def is_flow_address(s: Any) -> bool:
    return isinstance(s, str) and bool(ADDRESS_RE.match(s))


def _inner(v: Any) -> Any:
    return v.get("value") if isinstance(v, dict) else getattr(v, "value", None)


def _explicit_address(v: Any) -> Any:
    if isinstance(v, dict):
        return v.get("address")
    return getattr(v, "address", None)


def _scan(v: Any, depth: int = 0) -> Optional[str]:
    if depth > MAX_SCAN_DEPTH:
        return None
    if is_flow_address(v):
        return v
    children = v.values() if isinstance(v, dict) else v if isinstance(v, (list, tuple)) else ()
    for child in children:
        hit = _scan(child, depth + 1)
        if hit:
            return hit
    return None


MATCHERS: Tuple[Matcher, ...] = (
    # "0xabc…"
    ("plain", lambda v: isinstance(v, str), lambda v: v),
    # {"type":"Address","value":"0xabc…"}
    ("value", lambda v: isinstance(_inner(v), str), _inner),
    # {"type":"Optional","value":{"type":"Address","value":"0xabc…"}}
    ("value.value", lambda v: isinstance(_inner(_inner(v)), str), lambda v: _inner(_inner(v))),
    # {"address":"0xabc…"} or an object with .address
    ("address", lambda v: isinstance(_explicit_address(v), str), _explicit_address),
    # anything else: first canonical address found in nested values
    ("scan", lambda v: v is not None, _scan),
)


def unwrap_address(value: Any) -> Optional[str]:
    """Canonical address string for a polymorphic wire value, or None when no shape matches."""
    for _name, matches, extract in MATCHERS:
        try:
            if matches(value):
                hit = extract(value)
                if hit:
                    return hit
        except (AttributeError, TypeError):
            continue
    return None
