"""Evidence kind classification.

The kind → group table is fixed governance. It is deliberately not configurable so a deployment
cannot drift into truncating semantic content or persisting sensitive material.
"""

from __future__ import annotations

from typing import Final

from ticket_evidence.domain.codes import EvidenceGroup
from ticket_evidence.domain.errors import ForbiddenEvidenceKindError

SEMANTIC_KINDS: Final[frozenset[str]] = frozenset(
    {"llm_output", "tool_output", "final_reply", "structured_result_json"}
)
DIAGNOSTIC_KINDS: Final[frozenset[str]] = frozenset(
    {"probe_log", "stderr", "http_body_preview", "trace"}
)
SENSITIVE_KINDS: Final[frozenset[str]] = frozenset({"secrets", "credentials", "pii_raw"})

# Unknown kinds are treated as semantic: when in doubt, never truncate.
UNKNOWN_KIND_GROUP: Final[EvidenceGroup] = EvidenceGroup.A

__all__ = [
    "DIAGNOSTIC_KINDS",
    "SEMANTIC_KINDS",
    "SENSITIVE_KINDS",
    "UNKNOWN_KIND_GROUP",
    "classify_kind",
    "ensure_persistable",
    "is_known_kind",
]


def classify_kind(kind: object) -> EvidenceGroup:
    """Map an evidence kind to its governance group."""

    normalized = str(kind if kind is not None else "").strip()
    if normalized in SENSITIVE_KINDS:
        return EvidenceGroup.C
    if normalized in SEMANTIC_KINDS:
        return EvidenceGroup.A
    if normalized in DIAGNOSTIC_KINDS:
        return EvidenceGroup.B
    return UNKNOWN_KIND_GROUP


def is_known_kind(kind: object) -> bool:
    normalized = str(kind if kind is not None else "").strip()
    return any(normalized in group for group in (SEMANTIC_KINDS, DIAGNOSTIC_KINDS, SENSITIVE_KINDS))


def ensure_persistable(kind: str) -> EvidenceGroup:
    """Return the group for ``kind``; raise ``ForbiddenEvidenceKindError`` for group C."""

    group = classify_kind(kind)
    if group is EvidenceGroup.C:
        raise ForbiddenEvidenceKindError(str(kind))
    return group
