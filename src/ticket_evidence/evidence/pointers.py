"""
ticket-evidence — raw evidence pointers

File: src/ticket_evidence/evidence/pointers.py
Last updated: 2026-10-18

Purpose
- Build and validate pointers to evidence stored outside the inline record:
  ``evidence_store/<yyyy-mm-dd>/<36-char id>_<kind>.bin``.

What should be included in this file
- A validator that returns a stable code instead of raising.
- A builder that always re-validates its own output.
- Kind sanitization for filenames (filesystem safety only, never a policy decision).

Functional requirements
- Reject absolute paths, ``~``, backslashes, NUL, ``.``/``..`` segments, a wrong root, and a wrong
  segment count. Traversal attempts report ``EVIDENCE_PATH_TRAVERSAL``; every other shape
  failure reports ``EVIDENCE_INVALID_POINTER``.

Non-functional requirements
- Pure functions; the only entropy source is the injectable ``id_factory``.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import PurePosixPath
from typing import Final

from ticket_evidence.constants import EVIDENCE_STORE_ROOT
from ticket_evidence.domain.codes import EvidenceErrorCode
from ticket_evidence.domain.errors import RawPointerError
from ticket_evidence.utils.timestamps import parse_utc_timestamp

POINTER_PREFIX: Final[str] = f"{EVIDENCE_STORE_ROOT}/"
MAX_KIND_SEGMENT_LENGTH: Final[int] = 64

_DATE_SEGMENT_RE: Final[re.Pattern[str]] = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_FILE_SEGMENT_RE: Final[re.Pattern[str]] = re.compile(r"^[0-9a-fA-F-]{36}_[a-z0-9_]+\.bin$")
_KIND_UNSAFE_RE: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9_]+")

IdFactory = Callable[[], object]

__all__ = [
    "POINTER_PREFIX",
    "PointerValidation",
    "build_raw_pointer",
    "pointer_relative_path",
    "sanitize_kind_for_filename",
    "validate_raw_pointer",
]


@dataclass(frozen=True, slots=True)
class PointerValidation:
    """Outcome of :func:`validate_raw_pointer`."""

    ok: bool
    code: EvidenceErrorCode | None = None

    def __bool__(self) -> bool:
        return self.ok


_OK: Final[PointerValidation] = PointerValidation(ok=True)


def validate_raw_pointer(pointer: object) -> PointerValidation:
    """Validate ``pointer`` and return a stable rejection code on failure."""

    if not isinstance(pointer, str) or not pointer:
        return _reject(EvidenceErrorCode.INVALID_POINTER)
    if pointer.startswith(("/", "~")):
        return _reject(EvidenceErrorCode.INVALID_POINTER)
    if "\\" in pointer or "\x00" in pointer:
        return _reject(EvidenceErrorCode.INVALID_POINTER)
    if any(segment in {".", ".."} for segment in pointer.split("/")):
        return _reject(EvidenceErrorCode.PATH_TRAVERSAL)
    if not pointer.startswith(POINTER_PREFIX):
        return _reject(EvidenceErrorCode.INVALID_POINTER)

    segments = pointer[len(POINTER_PREFIX) :].split("/")
    if len(segments) != 2:
        return _reject(EvidenceErrorCode.INVALID_POINTER)

    date_segment, file_segment = segments
    if not _is_calendar_date(date_segment):
        return _reject(EvidenceErrorCode.INVALID_POINTER)
    if _FILE_SEGMENT_RE.fullmatch(file_segment) is None:
        return _reject(EvidenceErrorCode.INVALID_POINTER)
    return _OK


def build_raw_pointer(
    retrieved_at: str | datetime,
    kind: str,
    *,
    id_factory: IdFactory = uuid.uuid4,
) -> str:
    """Build a fresh pointer for evidence of ``kind`` captured at ``retrieved_at``."""

    try:
        captured = parse_utc_timestamp(retrieved_at)
    except ValueError as exc:
        raise RawPointerError(f"retrieved_at is not a timestamp: {retrieved_at!r}") from exc

    opaque_id = str(id_factory()).lower()
    pointer = (
        f"{POINTER_PREFIX}{captured.date().isoformat()}/"
        f"{opaque_id}_{sanitize_kind_for_filename(kind)}.bin"
    )
    validation = validate_raw_pointer(pointer)
    if not validation.ok:
        raise RawPointerError(
            f"builder produced an invalid pointer: {pointer!r}", code=validation.code
        )
    return pointer


def pointer_relative_path(pointer: str) -> PurePosixPath:
    """Return the path of ``pointer`` relative to the ``evidence_store`` directory."""

    validation = validate_raw_pointer(pointer)
    if not validation.ok:
        raise RawPointerError(f"rejected raw pointer {pointer!r}", code=validation.code)
    return PurePosixPath(pointer[len(POINTER_PREFIX) :])


def sanitize_kind_for_filename(kind: object) -> str:
    """Lowercase, collapse unsafe runs to ``_``, trim, and cap a kind for use in filenames."""

    raw = str(kind if kind is not None else "").strip().lower()
    cleaned = _KIND_UNSAFE_RE.sub("_", raw).strip("_")
    return (cleaned or "unknown")[:MAX_KIND_SEGMENT_LENGTH]


def _is_calendar_date(segment: str) -> bool:
    if _DATE_SEGMENT_RE.fullmatch(segment) is None:
        return False
    try:
        date.fromisoformat(segment)
    except ValueError:
        return False
    return True


def _reject(code: EvidenceErrorCode) -> PointerValidation:
    return PointerValidation(ok=False, code=code)
