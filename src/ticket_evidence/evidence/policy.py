"""
ticket-evidence — evidence policy, attach helper, and item selection

File: src/ticket_evidence/evidence/policy.py
Last updated: 2026-10-18

Purpose
- Decide, for one evidence candidate, whether it is stored inline, written raw to the evidence
  store, or omitted; then persist it and return a validated ``EvidenceItem``.

What should be included in this file
- ``EvidencePolicy.apply``: pure storage decision driven by ``EvidenceLimits`` and the classifier.
- ``attach_evidence``: policy + store + validation in one call.
- ``select_first_n``: the fixed keep-first-N quota strategy.

Functional requirements
- Group A is never truncated; when it exceeds the raw ceiling it is omitted with
  ``EVIDENCE_RAW_TOO_LARGE`` and the hash of the original bytes.
- Group B is head-truncated to the raw ceiling.
- Group C raises ``ForbiddenEvidenceKindError``; it is never silently dropped.
- A failed raw write degrades to ``storage=omitted`` with ``EVIDENCE_WRITE_FAILED``.

Non-functional requirements
- ``apply`` performs no IO and reads the clock only when ``retrieved_at`` is missing.
"""

from __future__ import annotations

import base64
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Final, TypeVar

from ticket_evidence.config.limits import DEFAULT_EVIDENCE_LIMITS, EvidenceLimits
from ticket_evidence.domain.codes import EvidenceCode, EvidenceGroup, HashScope, StorageMode
from ticket_evidence.evidence.classification import ensure_persistable
from ticket_evidence.evidence.items import EvidenceItem
from ticket_evidence.evidence.pointers import sanitize_kind_for_filename
from ticket_evidence.observability.logging import get_logger
from ticket_evidence.utils.hashing import sha256_tag
from ticket_evidence.utils.timestamps import Clock, format_utc_timestamp, utc_now

if TYPE_CHECKING:
    from ticket_evidence.evidence.store import EvidenceStore

EvidenceData = bytes | bytearray | memoryview | str
TRUNCATE_POLICY_HEAD: Final[str] = "head"

_T = TypeVar("_T")

__all__ = [
    "AppliedEvidence",
    "EvidenceData",
    "EvidencePolicy",
    "TRUNCATE_POLICY_HEAD",
    "attach_evidence",
    "select_first_n",
]


@dataclass(frozen=True, slots=True)
class AppliedEvidence:
    """Policy decision: item fields plus the bytes still to be persisted (raw storage only)."""

    kind: str
    source: str
    retrieved_at: str
    storage: StorageMode
    code: str | None
    bytes: int | None
    stored_bytes: int
    truncated: bool
    hash: str | None
    hash_scope: HashScope
    inline: str | None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    raw_bytes: bytes | None = None

    def to_item(
        self, *, raw_pointer: str | None = None, stored_bytes: int | None = None
    ) -> EvidenceItem:
        return EvidenceItem(
            kind=self.kind,
            source=self.source,
            retrieved_at=self.retrieved_at,
            storage=self.storage,
            bytes=self.bytes,
            stored_bytes=self.stored_bytes if stored_bytes is None else stored_bytes,
            truncated=self.truncated,
            hash=self.hash,
            hash_scope=self.hash_scope,
            metadata=self.metadata,
            inline=self.inline,
            raw_pointer=raw_pointer,
            code=self.code,
        )

    def omitted(self, code: str) -> AppliedEvidence:
        """Return the same decision degraded to ``storage=omitted`` with ``code``."""

        return AppliedEvidence(
            kind=self.kind,
            source=self.source,
            retrieved_at=self.retrieved_at,
            storage=StorageMode.OMITTED,
            code=code,
            bytes=self.bytes,
            stored_bytes=0,
            truncated=False,
            hash=self.hash,
            hash_scope=self.hash_scope,
            inline=None,
            metadata=self.metadata,
            raw_bytes=None,
        )


class EvidencePolicy:
    """Storage decision for evidence candidates under a fixed set of limits."""

    def __init__(
        self, limits: EvidenceLimits = DEFAULT_EVIDENCE_LIMITS, *, clock: Clock = utc_now
    ) -> None:
        self._limits = limits
        self._clock = clock

    @property
    def limits(self) -> EvidenceLimits:
        return self._limits

    def apply(
        self,
        *,
        kind: str,
        source: str,
        data: EvidenceData | None,
        retrieved_at: str | datetime | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> AppliedEvidence:
        group = ensure_persistable(kind)
        captured_at = retrieved_at if retrieved_at is not None else self._clock()
        timestamp = format_utc_timestamp(captured_at)

        base_metadata: dict[str, Any] = dict(metadata or {})
        base_metadata.setdefault("original_kind", kind)
        base_metadata.setdefault("kind_sanitized", sanitize_kind_for_filename(kind))

        payload = _to_bytes(data)
        if payload is None:
            return AppliedEvidence(
                kind=kind,
                source=source,
                retrieved_at=timestamp,
                storage=StorageMode.OMITTED,
                code=None,
                bytes=None,
                stored_bytes=0,
                truncated=False,
                hash=None,
                hash_scope=HashScope.UNKNOWN,
                inline=None,
                metadata={**base_metadata, "bytes_unavailable": True},
            )

        original_bytes = len(payload)
        inline_limit = self._limits.inline_limit_bytes
        raw_limit = self._limits.raw_limit_bytes

        if original_bytes <= inline_limit:
            return AppliedEvidence(
                kind=kind,
                source=source,
                retrieved_at=timestamp,
                storage=StorageMode.INLINE,
                code=None,
                bytes=original_bytes,
                stored_bytes=original_bytes,
                truncated=False,
                hash=sha256_tag(payload),
                hash_scope=HashScope.STORED,
                inline=base64.b64encode(payload).decode("ascii"),
                metadata=base_metadata,
            )

        size_metadata = {
            **base_metadata,
            "original_bytes": original_bytes,
            "inline_limit_bytes": inline_limit,
            "raw_limit_bytes": raw_limit,
        }

        if group is EvidenceGroup.A:
            if original_bytes > raw_limit:
                # Never store a partial semantic payload.
                return AppliedEvidence(
                    kind=kind,
                    source=source,
                    retrieved_at=timestamp,
                    storage=StorageMode.OMITTED,
                    code=EvidenceCode.RAW_TOO_LARGE.value,
                    bytes=original_bytes,
                    stored_bytes=0,
                    truncated=False,
                    hash=sha256_tag(payload),
                    hash_scope=HashScope.ORIGINAL,
                    inline=None,
                    metadata={**size_metadata, "reason": "RAW_TOO_LARGE"},
                )
            return AppliedEvidence(
                kind=kind,
                source=source,
                retrieved_at=timestamp,
                storage=StorageMode.RAW,
                code=EvidenceCode.INLINE_TOO_LARGE.value,
                bytes=original_bytes,
                stored_bytes=original_bytes,
                truncated=False,
                hash=sha256_tag(payload),
                hash_scope=HashScope.STORED,
                inline=None,
                metadata={**size_metadata, "reason": "INLINE_TOO_LARGE"},
                raw_bytes=payload,
            )

        truncated = original_bytes > raw_limit
        kept = payload[:raw_limit] if truncated else payload
        return AppliedEvidence(
            kind=kind,
            source=source,
            retrieved_at=timestamp,
            storage=StorageMode.RAW,
            code=EvidenceCode.INLINE_TOO_LARGE.value,
            bytes=original_bytes,
            stored_bytes=len(kept),
            truncated=truncated,
            hash=sha256_tag(kept),
            hash_scope=HashScope.STORED,
            inline=None,
            metadata={
                **size_metadata,
                "truncate_policy": TRUNCATE_POLICY_HEAD if truncated else None,
                "kept_bytes": len(kept),
            },
            raw_bytes=kept,
        )


def attach_evidence(
    *,
    kind: str,
    source: str,
    data: EvidenceData | None,
    store: EvidenceStore,
    retrieved_at: str | datetime | None = None,
    metadata: Mapping[str, Any] | None = None,
    policy: EvidencePolicy | None = None,
    logger: Any | None = None,
) -> EvidenceItem:
    """Apply the policy, persist raw bytes through ``store``, and return a validated item."""

    log = logger or get_logger(__name__)
    active_policy = policy or EvidencePolicy()
    applied = active_policy.apply(
        kind=kind, source=source, data=data, retrieved_at=retrieved_at, metadata=metadata
    )

    if applied.storage is not StorageMode.RAW:
        return applied.to_item()

    if not applied.raw_bytes:
        return applied.omitted(EvidenceCode.WRITE_FAILED.value).to_item()

    result = store.write(kind=kind, retrieved_at=applied.retrieved_at, data=applied.raw_bytes)
    if not result.ok or result.raw_pointer is None:
        log.warning(
            "raw_evidence_write_failed",
            kind=kind,
            source=source,
            code=result.code,
        )
        return applied.omitted(EvidenceCode.WRITE_FAILED.value).to_item()

    return applied.to_item(raw_pointer=result.raw_pointer, stored_bytes=result.stored_bytes)


def select_first_n(items: Iterable[_T], max_items: int) -> tuple[tuple[_T, ...], tuple[_T, ...]]:
    """Split ``items`` into (kept, dropped) keeping the first ``max_items`` in iteration order."""

    if isinstance(max_items, bool) or not isinstance(max_items, int) or max_items < 0:
        raise ValueError("max_items must be a non-negative integer")
    materialized: Sequence[_T] = tuple(items)
    return tuple(materialized[:max_items]), tuple(materialized[max_items:])


def _to_bytes(data: EvidenceData | None) -> bytes | None:
    if data is None:
        return None
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    raise TypeError(f"unsupported evidence data type: {type(data).__name__}")
