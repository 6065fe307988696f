"""
ticket-evidence — evidence capture primitives

File: src/ticket_evidence/evidence/__init__.py
Last updated: 2026-10-18

Purpose
- Canonical serialization, classification, raw pointers, evidence items, storage policy and store.

Non-functional requirements
- Everything except ``EvidenceStore`` and ``attach_evidence`` is free of IO.
"""

from ticket_evidence.evidence.canonical import (
    CANONICALIZER_ID,
    canonical_json,
    canonical_json_bytes,
    canonical_sha256,
)
from ticket_evidence.evidence.classification import (
    DIAGNOSTIC_KINDS,
    SEMANTIC_KINDS,
    SENSITIVE_KINDS,
    classify_kind,
    ensure_persistable,
    is_known_kind,
)
from ticket_evidence.evidence.items import (
    EvidenceItem,
    ItemValidation,
    assert_evidence_item,
    validate_evidence_item,
)
from ticket_evidence.evidence.pointers import (
    POINTER_PREFIX,
    PointerValidation,
    build_raw_pointer,
    pointer_relative_path,
    sanitize_kind_for_filename,
    validate_raw_pointer,
)
from ticket_evidence.evidence.policy import (
    AppliedEvidence,
    EvidencePolicy,
    attach_evidence,
    select_first_n,
)
from ticket_evidence.evidence.store import EvidenceStore, StoreWriteResult

__all__ = [
    "AppliedEvidence",
    "CANONICALIZER_ID",
    "DIAGNOSTIC_KINDS",
    "EvidenceItem",
    "EvidencePolicy",
    "EvidenceStore",
    "ItemValidation",
    "POINTER_PREFIX",
    "PointerValidation",
    "SEMANTIC_KINDS",
    "SENSITIVE_KINDS",
    "StoreWriteResult",
    "assert_evidence_item",
    "attach_evidence",
    "build_raw_pointer",
    "canonical_json",
    "canonical_json_bytes",
    "canonical_sha256",
    "classify_kind",
    "ensure_persistable",
    "is_known_kind",
    "pointer_relative_path",
    "sanitize_kind_for_filename",
    "select_first_n",
    "validate_evidence_item",
    "validate_raw_pointer",
]
