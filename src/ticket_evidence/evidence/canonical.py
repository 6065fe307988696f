"""
ticket-evidence — canonical JSON serializer

File: src/ticket_evidence/evidence/canonical.py
Last updated: 2026-10-18

Purpose
- Produce one deterministic text encoding for any JSON-compatible value. Every structured-data
  hash in the subsystem (the manifest self-hash first of all) is computed over this encoding.

What should be included in this file
- Key ordering by UTF-16 code units, compact separators, ECMAScript number rendering.
- Strict type acceptance: unsupported values raise instead of being stringified.

Functional requirements
- Same logical value → same bytes, independent of mapping insertion order.
- Non-finite floats encode as ``null``; ``None``-valued keys are kept.
- Output agrees byte-for-byte with a ``JSON.stringify``-based canonicalizer that sorts keys.

Non-functional requirements
- No timestamps, no environment lookups, no iteration-order leakage.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from typing import Final

from ticket_evidence.utils.hashing import sha256_bytes

CANONICALIZER_ID: Final[str] = "canonical-json/v1"

_LONE_SURROGATE_RE: Final[re.Pattern[str]] = re.compile("[\ud800-\udfff]")
_MAX_PLAIN_INTEGER: Final[int] = 10**21

__all__ = [
    "CANONICALIZER_ID",
    "canonical_json",
    "canonical_json_bytes",
    "canonical_sha256",
]


def canonical_json(value: object) -> str:
    """Return the canonical JSON text for ``value``."""

    parts: list[str] = []
    _encode(value, parts)
    return "".join(parts)


def canonical_json_bytes(value: object) -> bytes:
    """Return the UTF-8 bytes of :func:`canonical_json`."""

    return canonical_json(value).encode("utf-8")


def canonical_sha256(value: object) -> str:
    """Return the SHA-256 hex digest of the canonical encoding of ``value``."""

    return sha256_bytes(canonical_json_bytes(value))


def _encode(value: object, out: list[str]) -> None:
    if value is None:
        out.append("null")
    elif value is True:
        out.append("true")
    elif value is False:
        out.append("false")
    elif isinstance(value, str):
        out.append(_encode_string(value))
    elif isinstance(value, int):
        out.append(_encode_int(value))
    elif isinstance(value, float):
        out.append(_encode_float(value))
    elif isinstance(value, Mapping):
        _encode_mapping(value, out)
    elif isinstance(value, (list, tuple)):
        out.append("[")
        for index, item in enumerate(value):
            if index:
                out.append(",")
            _encode(item, out)
        out.append("]")
    else:
        raise TypeError(f"value of type {type(value).__name__} is not canonical-JSON serializable")


def _encode_mapping(value: Mapping[object, object], out: list[str]) -> None:
    for key in value:
        if not isinstance(key, str):
            raise TypeError(f"object keys must be strings, got {type(key).__name__}")
    keys = sorted(value, key=_utf16_sort_key)
    out.append("{")
    for index, key in enumerate(keys):
        if index:
            out.append(",")
        out.append(_encode_string(key))
        out.append(":")
        _encode(value[key], out)
    out.append("}")


def _utf16_sort_key(key: object) -> bytes:
    # Big-endian UTF-16 byte order equals code-unit order.
    return str(key).encode("utf-16-be", "surrogatepass")


def _encode_string(text: str) -> str:
    encoded = json.dumps(text, ensure_ascii=False)
    return _LONE_SURROGATE_RE.sub(lambda match: f"\\u{ord(match.group()):04x}", encoded)


def _encode_int(value: int) -> str:
    if -_MAX_PLAIN_INTEGER < value < _MAX_PLAIN_INTEGER:
        return str(value)
    return _encode_float(float(value))


def _encode_float(value: float) -> str:
    if not math.isfinite(value):
        return "null"
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    digits, point = _shortest_digits(abs(value))
    count = len(digits)

    if count <= point <= 21:
        return sign + digits + "0" * (point - count)
    if 0 < point <= 21:
        return sign + digits[:point] + "." + digits[point:]
    if -6 < point <= 0:
        return sign + "0." + "0" * (-point) + digits

    exponent = point - 1
    exponent_text = f"e+{exponent}" if exponent >= 0 else f"e-{-exponent}"
    if count == 1:
        return sign + digits + exponent_text
    return sign + digits[0] + "." + digits[1:] + exponent_text


def _shortest_digits(value: float) -> tuple[str, int]:
    """Return ``(digits, point)`` with ``value == 0.<digits> * 10**point``."""

    mantissa, _, exponent_text = repr(value).partition("e")
    exponent = int(exponent_text) if exponent_text else 0
    integer_part, _, fraction_part = mantissa.partition(".")
    combined = integer_part + fraction_part
    stripped = combined.lstrip("0")
    point = len(integer_part) + exponent - (len(combined) - len(stripped))
    return stripped.rstrip("0"), point
