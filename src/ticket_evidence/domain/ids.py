"""
ticket-evidence — run identifiers

File: src/ticket_evidence/domain/ids.py
Last updated: 2026-10-18

Purpose
- Mint and check the ids that name run directories.

What should be included in this file
- ``run-<ULID>`` ids for normal execution runs.
- ``gr_<ticket prefix>_<base36 ms>_<hex>`` ids for gate-rejection runs.
- ``validate_run_id``, the single check every writer applies before touching disk.

Functional requirements
- Clock and randomness are injectable so ids are reproducible in tests.
- A valid run id is one safe path segment of at least ``MIN_RUN_ID_LENGTH`` characters.
"""

from __future__ import annotations

import re
import secrets
import string
import time
from collections.abc import Callable
from typing import Final

from ticket_evidence.constants import MIN_RUN_ID_LENGTH

CROCKFORD_BASE32_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
RUN_ID_PREFIX: Final[str] = "run"
REJECTION_RUN_ID_PREFIX: Final[str] = "gr"

_ULID_TIME_BITS: Final[int] = 48
_ULID_ENTROPY_BYTES: Final[int] = 10
_REJECTION_ENTROPY_BYTES: Final[int] = 2
_TICKET_PREFIX_CHARS: Final[int] = 8
_BASE36_DIGITS: Final[str] = string.digits + string.ascii_lowercase

_SEGMENT: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.-]*")
_TICKET_UNSAFE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9_-]+")

RandBytes = Callable[[int], bytes]


def generate_ulid(*, timestamp_ms: int | None = None, randbytes: RandBytes | None = None) -> str:
    """26-character Crockford Base32 ULID: 48 bits of milliseconds then 80 random bits."""

    moment = _checked_millis(timestamp_ms)
    entropy = int.from_bytes(_draw(randbytes, _ULID_ENTROPY_BYTES), "big")
    value = (moment << (_ULID_ENTROPY_BYTES * 8)) | entropy
    symbols = []
    for _ in range(ULID_LENGTH):
        value, index = divmod(value, 32)
        symbols.append(CROCKFORD_BASE32_ALPHABET[index])
    return "".join(reversed(symbols))


def generate_run_id(*, timestamp_ms: int | None = None, randbytes: RandBytes | None = None) -> str:
    return f"{RUN_ID_PREFIX}-{generate_ulid(timestamp_ms=timestamp_ms, randbytes=randbytes)}"


def generate_rejection_run_id(
    ticket_id: str,
    *,
    timestamp_ms: int | None = None,
    randbytes: RandBytes | None = None,
) -> str:
    """Rejection run id; the hex suffix separates rejections of one ticket in one millisecond."""

    ticket = _TICKET_UNSAFE.sub("_", ticket_id or "")[:_TICKET_PREFIX_CHARS] or "ticket"
    stamp = to_base36(_checked_millis(timestamp_ms))
    suffix = _draw(randbytes, _REJECTION_ENTROPY_BYTES).hex()
    run_id = "_".join((REJECTION_RUN_ID_PREFIX, ticket, stamp, suffix))
    validate_run_id(run_id)
    return run_id


def validate_run_id(run_id: str) -> None:
    if not isinstance(run_id, str):
        raise ValueError(f"run_id must be a string, got {type(run_id).__name__}")
    if len(run_id) < MIN_RUN_ID_LENGTH:
        raise ValueError(f"run_id must be at least {MIN_RUN_ID_LENGTH} characters")
    if ".." in run_id or not _SEGMENT.fullmatch(run_id):
        raise ValueError(f"run_id must be a single safe path segment (got {run_id!r})")


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    digits = ""
    while True:
        value, remainder = divmod(value, 36)
        digits = _BASE36_DIGITS[remainder] + digits
        if not value:
            return digits


def _checked_millis(timestamp_ms: int | None) -> int:
    moment = time.time_ns() // 1_000_000 if timestamp_ms is None else timestamp_ms
    if isinstance(moment, bool) or not isinstance(moment, int):
        raise ValueError(f"timestamp_ms must be an int, got {type(moment).__name__}")
    ceiling = (1 << _ULID_TIME_BITS) - 1
    if not 0 <= moment <= ceiling:
        raise ValueError(f"timestamp_ms out of range: expected 0..{ceiling}, got {moment}")
    return moment


def _draw(randbytes: RandBytes | None, count: int) -> bytes:
    drawn = (randbytes or secrets.token_bytes)(count)
    if not isinstance(drawn, (bytes, bytearray, memoryview)):
        raise ValueError("randbytes must return a bytes-like object")
    if len(drawn) != count:
        raise ValueError(f"randbytes must return exactly {count} bytes")
    return bytes(drawn)


__all__ = [
    "CROCKFORD_BASE32_ALPHABET",
    "REJECTION_RUN_ID_PREFIX",
    "RUN_ID_PREFIX",
    "ULID_LENGTH",
    "generate_rejection_run_id",
    "generate_run_id",
    "generate_ulid",
    "to_base36",
    "validate_run_id",
]
