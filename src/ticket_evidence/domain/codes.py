"""
ticket-evidence — stable code vocabularies

File: src/ticket_evidence/domain/codes.py
Last updated: 2026-10-18

Purpose
- Single source of truth for every closed vocabulary the evidence subsystem emits or accepts.

What should be included in this file
- Pointer/item error codes, evidence decision codes, storage modes and hash scopes.
- Classification groups.
- Integrity reasons (verifier side) and runtime reasons (guard/system rejections).

Functional requirements
- Values are wire-stable: they appear in persisted reports and manifests.
- Membership tests never raise on foreign input.

Non-functional requirements
- No runtime configuration; changing a member is a contract change.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final


class EvidenceErrorCode(StrEnum):
    """Rejection codes for pointers and evidence items."""

    PATH_TRAVERSAL = "EVIDENCE_PATH_TRAVERSAL"
    INVALID_POINTER = "EVIDENCE_INVALID_POINTER"
    WRITE_FAILED = "EVIDENCE_WRITE_FAILED"
    INVALID_ITEM = "EVIDENCE_INVALID_ITEM"
    INVALID_TRUNCATION = "EVIDENCE_INVALID_TRUNCATION"
    FORBIDDEN_KIND = "EVIDENCE_FORBIDDEN_KIND"


class EvidenceCode(StrEnum):
    """Decision codes attached to stored/omitted evidence items."""

    INLINE_TOO_LARGE = "EVIDENCE_INLINE_TOO_LARGE"
    RAW_TOO_LARGE = "EVIDENCE_RAW_TOO_LARGE"
    REDACTED = "EVIDENCE_REDACTED"
    WRITE_FAILED = "EVIDENCE_WRITE_FAILED"


class StorageMode(StrEnum):
    INLINE = "inline"
    RAW = "raw"
    OMITTED = "omitted"


class HashScope(StrEnum):
    ORIGINAL = "original"
    STORED = "stored"
    PREFIX = "prefix"
    UNKNOWN = "unknown"


class EvidenceGroup(StrEnum):
    """Governance bucket for an evidence kind."""

    A = "A"  # semantic, never truncated
    B = "B"  # diagnostic, head truncation allowed
    C = "C"  # sensitive, never persisted


class IntegrityReason(StrEnum):
    ARTIFACT_SHA_MISMATCH = "artifact_sha_mismatch"
    ARTIFACT_MISSING = "artifact_missing"
    MANIFEST_SCHEMA_INVALID = "manifest_schema_invalid"
    MODE_SNAPSHOT_REF_NOT_LISTED = "mode_snapshot_ref_not_listed"
    DETAILS_REF_NOT_LISTED = "details_ref_not_listed"
    RAW_POINTER_NOT_LISTED = "raw_pointer_not_listed"
    MANIFEST_SELF_INTEGRITY_FAILED = "manifest_self_integrity_failed"
    DUPLICATE_ARTIFACT_PATH = "duplicate_artifact_path"
    DUPLICATE_CHECK_NAME = "duplicate_check_name"


class RuntimeReason(StrEnum):
    """Allow-listed stable codes for system rejection evidence."""

    LEASE_OWNER_MISMATCH = "lease_owner_mismatch"
    UNKNOWN_TOOL = "unknown_tool"
    READINESS_BLOCKED = "readiness_blocked"


_INTEGRITY_VALUES: Final[frozenset[str]] = frozenset(item.value for item in IntegrityReason)
_RUNTIME_VALUES: Final[frozenset[str]] = frozenset(item.value for item in RuntimeReason)


def is_integrity_reason(code: object) -> bool:
    return isinstance(code, str) and code in _INTEGRITY_VALUES


def is_runtime_reason(code: object) -> bool:
    return isinstance(code, str) and code in _RUNTIME_VALUES


def is_evidence_reason(code: object) -> bool:
    """Return ``True`` when ``code`` may appear in a manifest check's reason codes."""

    return is_integrity_reason(code) or is_runtime_reason(code)


__all__ = [
    "EvidenceCode",
    "EvidenceErrorCode",
    "EvidenceGroup",
    "HashScope",
    "IntegrityReason",
    "RuntimeReason",
    "StorageMode",
    "is_evidence_reason",
    "is_integrity_reason",
    "is_runtime_reason",
]
