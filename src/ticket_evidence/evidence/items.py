"""
ticket-evidence — evidence item model and validator

File: src/ticket_evidence/evidence/items.py
Last updated: 2026-10-18

Purpose
- Define ``EvidenceItem`` and enforce every structural and storage-state invariant before an item
  may be written anywhere.

What should be included in this file
- ``validate_evidence_item``: exhaustive check returning a stable code.
- ``assert_evidence_item``: the same check, raising ``InvalidEvidenceItemError``.
- An immutable dataclass that validates itself on construction.

Functional requirements
- ``storage=inline``  ⇒ inline text, no pointer, ``hash_scope=stored``.
- ``storage=raw``     ⇒ no inline text, a valid pointer, ``hash_scope=stored``.
- ``storage=omitted`` ⇒ neither inline text nor pointer, ``stored_bytes == 0``.
- ``truncated`` only with raw storage and a diagnostic (group B) kind; truncating any other
  kind reports ``EVIDENCE_INVALID_TRUNCATION``.
- Group C kinds report ``EVIDENCE_FORBIDDEN_KIND``.

Non-functional requirements
- Never raise from the validating entry point, whatever the input shape.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Final

from ticket_evidence.domain.codes import EvidenceErrorCode, EvidenceGroup, HashScope, StorageMode
from ticket_evidence.domain.errors import InvalidEvidenceItemError
from ticket_evidence.evidence.classification import classify_kind
from ticket_evidence.evidence.pointers import validate_raw_pointer
from ticket_evidence.utils.timestamps import parse_utc_timestamp

REQUIRED_ITEM_KEYS: Final[tuple[str, ...]] = (
    "kind",
    "source",
    "retrieved_at",
    "storage",
    "bytes",
    "stored_bytes",
    "truncated",
    "hash",
    "hash_scope",
    "metadata",
    "inline",
    "raw_pointer",
)

_STORAGE_VALUES: Final[frozenset[str]] = frozenset(item.value for item in StorageMode)
_HASH_SCOPE_VALUES: Final[frozenset[str]] = frozenset(item.value for item in HashScope)

__all__ = [
    "EvidenceItem",
    "ItemValidation",
    "REQUIRED_ITEM_KEYS",
    "assert_evidence_item",
    "validate_evidence_item",
]


@dataclass(frozen=True, slots=True)
class ItemValidation:
    """Outcome of :func:`validate_evidence_item`.

    ``code`` is the value callers branch on; ``reason`` names the offending field for humans.
    """

    ok: bool
    code: EvidenceErrorCode | None = None
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.ok


_VALID: Final[ItemValidation] = ItemValidation(ok=True)


def validate_evidence_item(item: object) -> ItemValidation:
    """Check ``item`` (a mapping or ``EvidenceItem``) against every evidence-item invariant."""

    if isinstance(item, EvidenceItem):
        item = item.to_dict()
    if not isinstance(item, Mapping):
        return _invalid("item", "must be an object")

    for key in REQUIRED_ITEM_KEYS:
        if key not in item:
            return _invalid(key, "is required")

    kind = item["kind"]
    if not _is_non_empty_str(kind):
        return _invalid("kind", "must be a non-empty string")
    if not _is_non_empty_str(item["source"]):
        return _invalid("source", "must be a non-empty string")

    group = classify_kind(kind)
    if group is EvidenceGroup.C:
        return ItemValidation(
            ok=False, code=EvidenceErrorCode.FORBIDDEN_KIND, reason="kind is never persisted"
        )

    try:
        parse_utc_timestamp(item["retrieved_at"])
    except ValueError:
        return _invalid("retrieved_at", "must be an ISO-8601 timestamp with offset")

    storage = item["storage"]
    if not isinstance(storage, str) or storage not in _STORAGE_VALUES:
        return _invalid("storage", "must be inline, raw, or omitted")

    original_bytes = item["bytes"]
    if original_bytes is not None and not _is_non_negative_int(original_bytes):
        return _invalid("bytes", "must be null or a non-negative integer")

    stored_bytes = item["stored_bytes"]
    if not _is_non_negative_int(stored_bytes):
        return _invalid("stored_bytes", "must be a non-negative integer")
    if original_bytes is not None and stored_bytes > original_bytes:
        return _invalid("stored_bytes", "must not exceed bytes")

    truncated = item["truncated"]
    if not isinstance(truncated, bool):
        return _invalid("truncated", "must be a boolean")
    if truncated and storage != StorageMode.RAW:
        return _invalid("truncated", "truncation requires raw storage")
    if truncated and group is not EvidenceGroup.B:
        return ItemValidation(
            ok=False,
            code=EvidenceErrorCode.INVALID_TRUNCATION,
            reason=f"kind {kind!r} is group {group.value} and must not be truncated",
        )

    digest = item["hash"]
    if digest is not None and not _is_non_empty_str(digest):
        return _invalid("hash", "must be null or a non-empty string")

    hash_scope = item["hash_scope"]
    if not isinstance(hash_scope, str) or hash_scope not in _HASH_SCOPE_VALUES:
        return _invalid("hash_scope", "must be original, stored, prefix, or unknown")

    if not isinstance(item["metadata"], Mapping):
        return _invalid("metadata", "must be an object")

    inline = item["inline"]
    if inline is not None and not isinstance(inline, str):
        return _invalid("inline", "must be null or a string")

    raw_pointer = item["raw_pointer"]
    if raw_pointer is not None and not isinstance(raw_pointer, str):
        return _invalid("raw_pointer", "must be null or a string")
    if isinstance(raw_pointer, str):
        pointer_check = validate_raw_pointer(raw_pointer)
        if not pointer_check.ok:
            return ItemValidation(ok=False, code=pointer_check.code, reason="raw_pointer rejected")

    shape_failure = _check_storage_shape(storage, inline, raw_pointer, hash_scope, stored_bytes)
    if shape_failure is not None:
        return shape_failure

    code = item.get("code")
    if code is not None and not _is_non_empty_str(code):
        return _invalid("code", "must be absent, null, or a non-empty string")

    return _VALID


def assert_evidence_item(item: object) -> None:
    """Validate ``item`` and raise ``InvalidEvidenceItemError`` carrying the stable code."""

    result = validate_evidence_item(item)
    if not result.ok:
        code = result.code or EvidenceErrorCode.INVALID_ITEM
        raise InvalidEvidenceItemError(result.reason or "", code=code.value)


@dataclass(frozen=True, slots=True)
class EvidenceItem:
    """One captured, classified, validated piece of tool/LLM output.

    Instances validate on construction and are never mutated afterwards.
    """

    kind: str
    source: str
    retrieved_at: str
    storage: StorageMode
    bytes: int | None
    stored_bytes: int
    truncated: bool
    hash: str | None
    hash_scope: HashScope
    metadata: Mapping[str, Any] = field(default_factory=dict)
    inline: str | None = None
    raw_pointer: str | None = None
    code: str | None = None

    def __post_init__(self) -> None:
        assert_evidence_item(self._as_payload())
        object.__setattr__(self, "storage", StorageMode(self.storage))
        object.__setattr__(self, "hash_scope", HashScope(self.hash_scope))
        object.__setattr__(
            self, "metadata", MappingProxyType(copy.deepcopy(dict(self.metadata)))
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> EvidenceItem:
        assert_evidence_item(payload)
        return cls(
            kind=str(payload["kind"]),
            source=str(payload["source"]),
            retrieved_at=str(payload["retrieved_at"]),
            storage=StorageMode(str(payload["storage"])),
            bytes=payload["bytes"],  # type: ignore[arg-type]
            stored_bytes=payload["stored_bytes"],  # type: ignore[arg-type]
            truncated=bool(payload["truncated"]),
            hash=payload["hash"],  # type: ignore[arg-type]
            hash_scope=HashScope(str(payload["hash_scope"])),
            metadata=payload["metadata"],  # type: ignore[arg-type]
            inline=payload["inline"],  # type: ignore[arg-type]
            raw_pointer=payload["raw_pointer"],  # type: ignore[arg-type]
            code=payload.get("code"),  # type: ignore[arg-type]
        )

    def to_dict(self) -> dict[str, Any]:
        payload = self._as_payload()
        payload["storage"] = str(self.storage)
        payload["hash_scope"] = str(self.hash_scope)
        payload["metadata"] = copy.deepcopy(dict(self.metadata))
        return payload

    def _as_payload(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "source": self.source,
            "retrieved_at": self.retrieved_at,
            "storage": self.storage,
            "bytes": self.bytes,
            "stored_bytes": self.stored_bytes,
            "truncated": self.truncated,
            "hash": self.hash,
            "hash_scope": self.hash_scope,
            "metadata": self.metadata,
            "inline": self.inline,
            "raw_pointer": self.raw_pointer,
            "code": self.code,
        }


def _check_storage_shape(
    storage: str,
    inline: object,
    raw_pointer: object,
    hash_scope: str,
    stored_bytes: int,
) -> ItemValidation | None:
    if storage == StorageMode.INLINE:
        if not isinstance(inline, str) or raw_pointer is not None:
            return _invalid("storage", "inline storage needs inline text and no raw_pointer")
        if hash_scope != HashScope.STORED:
            return _invalid("hash_scope", "inline storage must hash the stored bytes")
    elif storage == StorageMode.RAW:
        if inline is not None:
            return _invalid("storage", "raw storage must not carry inline text")
        if not isinstance(raw_pointer, str) or not raw_pointer:
            return _invalid("storage", "raw storage needs a raw_pointer")
        if hash_scope != HashScope.STORED:
            return _invalid("hash_scope", "raw storage must hash the stored bytes")
    elif inline is not None or raw_pointer is not None:
        return _invalid("storage", "omitted storage must not carry inline text or raw_pointer")
    elif stored_bytes != 0:
        return _invalid("stored_bytes", "omitted storage must have stored_bytes == 0")
    return None


def _is_non_empty_str(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_non_negative_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _invalid(field_name: str, message: str) -> ItemValidation:
    return ItemValidation(
        ok=False, code=EvidenceErrorCode.INVALID_ITEM, reason=f"{field_name} {message}"
    )
