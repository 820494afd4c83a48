"""
AgentProof Canonical JSON Encoding

Turns a structured record into exactly one byte sequence, regardless of the
order in which its fields were inserted. Proof hashes and signatures are
always computed over this encoding, so producer and verifier agree byte for
byte.

Keys are sorted at every nesting level, never just at the top: a top-level
sort (or an allow-list of top-level keys) lets nested payloads encode
differently on each side.
"""

import json
import math
from typing import Any, Dict, List

# Largest magnitude at which every integer is exactly representable as a float.
_MAX_SAFE_FLOAT_INT = 2 ** 53

_PASSTHROUGH = (str, bool, int, type(None))

# Containers nested deeper than this are rejected with ValueError
MAX_NESTING_DEPTH = 128


def canonicalize(obj: Any) -> bytes:
    """
    Encode an object as canonical JSON.

    - object keys sorted by code point, at every level
    - array order preserved; tuples encode as arrays
    - no whitespace between tokens
    - UTF-8, non-ASCII characters emitted as-is (no \\u escapes)
    - integral floats emitted as integers (1.0 -> 1); NaN and Infinity rejected

    Raises:
        ValueError: non-string keys, non-finite numbers, nesting deeper than
            MAX_NESTING_DEPTH, or values that have no JSON representation
    """
    return json.dumps(
        _normalize(obj),
        separators=(',', ':'),
        ensure_ascii=False,
        allow_nan=False,
    ).encode('utf-8')


def canonicalize_str(obj: Any) -> str:
    return canonicalize(obj).decode('utf-8')


def _normalize(value: Any, depth: int = 0) -> Any:
    if isinstance(value, _PASSTHROUGH):
        return value
    if isinstance(value, float):
        return _normalize_float(value)
    if isinstance(value, (dict, list, tuple)) and depth >= MAX_NESTING_DEPTH:
        raise ValueError(f"Cannot canonicalize: nesting deeper than {MAX_NESTING_DEPTH} levels")
    if isinstance(value, dict):
        return _sorted_object(value, depth + 1)
    if isinstance(value, (list, tuple)):
        return [_normalize(item, depth + 1) for item in value]
    raise ValueError(f"Cannot canonicalize value of type {type(value).__name__}")


def _normalize_float(value: float) -> Any:
    if not math.isfinite(value):
        raise ValueError(f"Cannot canonicalize non-finite number: {value!r}")
    if value.is_integer() and abs(value) < _MAX_SAFE_FLOAT_INT:
        return int(value)
    return value


def _sorted_object(obj: Dict[Any, Any], depth: int) -> Dict[str, Any]:
    bad_keys: List[Any] = [k for k in obj if not isinstance(k, str)]
    if bad_keys:
        raise ValueError(f"Object keys must be strings, got {bad_keys[0]!r}")
    # json.dumps keeps insertion order, so build the dict already sorted
    return {key: _normalize(obj[key], depth) for key in sorted(obj)}
