from __future__ import annotations

import math
from typing import Any, Dict, Set

from .errors import NotSerializableError


MARKER_KEY = "__databox_type"
NIL = "nil"
EMPTY_TABLE = "empty_table"
EMPTY_LIST = "empty_list"

_DECODED = {
    NIL: lambda: None,
    EMPTY_TABLE: dict,
    EMPTY_LIST: list,
}


def _placeholder(kind: str) -> Dict[str, str]:
    return {MARKER_KEY: kind}


def is_placeholder(value: Any) -> bool:
    """True if `value` is a tagged placeholder mapping produced by `encode`."""
    return (
        isinstance(value, dict)
        and len(value) == 1
        and value.get(MARKER_KEY) in _DECODED
    )


def encode(value: Any) -> Any:
    """Replace None and empty containers with tagged placeholders, at any depth.

    - None          -> {"__databox_type": "nil"}
    - empty dict    -> {"__databox_type": "empty_table"}
    - empty list    -> {"__databox_type": "empty_list"}
    - other scalars are returned unchanged; tuples are encoded as lists.
    """
    if value is None:
        return _placeholder(NIL)
    if isinstance(value, dict):
        result = {k: encode(v) for k, v in value.items()}
        # Checked on the encoded result, after the entries were enumerated
        if not result:
            return _placeholder(EMPTY_TABLE)
        return result
    if isinstance(value, (list, tuple)):
        items = [encode(v) for v in value]
        if not items:
            return _placeholder(EMPTY_LIST)
        return items
    return value


def decode_node(value: Any) -> Any:
    """Decode a single placeholder without descending into children."""
    if is_placeholder(value):
        return _DECODED[value[MARKER_KEY]]()
    return value


def decode(value: Any) -> Any:
    """Inverse of `encode`."""
    if is_placeholder(value):
        return decode_node(value)
    if isinstance(value, dict):
        return {k: decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode(v) for v in value]
    return value


def check_serializable(value: Any) -> None:
    """Raise NotSerializableError unless `value` is a storable tree value.

    Allowed: None, bool, int, finite float, UTF-8 encodable str, dicts with str
    keys, lists and tuples.
    The reserved marker key may not appear as a mapping key at any depth.
    """
    _check(value, set())


def _check_text(text: str) -> None:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        raise NotSerializableError("Cannot serialize strings that are not valid UTF-8") from None


def _check(value: Any, active: Set[int]) -> None:
    if value is None or isinstance(value, (bool, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise NotSerializableError(f"Cannot serialize non-finite float {value!r}")
        return
    if isinstance(value, str):
        _check_text(value)
        return
    if isinstance(value, (dict, list, tuple)):
        if id(value) in active:
            raise NotSerializableError("Cannot serialize self-referencing values")
        active.add(id(value))
        try:
            if isinstance(value, dict):
                for k, v in value.items():
                    if not isinstance(k, str):
                        raise NotSerializableError(
                            f"Key error: keys must be strings, got {type(k).__name__}"
                        )
                    if k == MARKER_KEY:
                        raise NotSerializableError(f"Key error: {MARKER_KEY!r} is reserved")
                    try:
                        _check_text(k)
                    except NotSerializableError as ex:
                        raise NotSerializableError(f"Key error: {ex.reason}") from None
                    try:
                        _check(v, active)
                    except NotSerializableError as ex:
                        raise NotSerializableError(f"Value error: {ex.reason}") from None
            else:
                for v in value:
                    _check(v, active)
        finally:
            active.discard(id(value))
        return
    raise NotSerializableError(f"Cannot serialize {type(value).__name__} values")


__all__ = [
    "check_serializable",
    "MARKER_KEY",
    "NIL",
    "EMPTY_TABLE",
    "EMPTY_LIST",
    "encode",
    "decode",
    "decode_node",
    "is_placeholder",
]
