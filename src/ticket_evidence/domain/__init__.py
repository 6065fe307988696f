"""
ticket-evidence — domain vocabulary

File: src/ticket_evidence/domain/__init__.py
Last updated: 2026-10-18

Purpose
- Stable codes, exception types, and identifiers shared by every evidence component.

Non-functional requirements
- Domain layer stays free of IO side effects.
"""

from ticket_evidence.domain.codes import (
    EvidenceCode,
    EvidenceErrorCode,
    EvidenceGroup,
    HashScope,
    IntegrityReason,
    RuntimeReason,
    StorageMode,
    is_evidence_reason,
    is_integrity_reason,
    is_runtime_reason,
)
from ticket_evidence.domain.errors import (
    EvidenceError,
    EvidenceWriteError,
    ForbiddenEvidenceKindError,
    InvalidEvidenceItemError,
    RawPointerError,
    RunReportError,
    UnsupportedStableCodeError,
)
from ticket_evidence.domain.ids import (
    generate_rejection_run_id,
    generate_run_id,
    validate_run_id,
)

__all__ = [
    "EvidenceCode",
    "EvidenceError",
    "EvidenceErrorCode",
    "EvidenceGroup",
    "EvidenceWriteError",
    "ForbiddenEvidenceKindError",
    "HashScope",
    "IntegrityReason",
    "InvalidEvidenceItemError",
    "RawPointerError",
    "RunReportError",
    "RuntimeReason",
    "StorageMode",
    "UnsupportedStableCodeError",
    "generate_rejection_run_id",
    "generate_run_id",
    "is_evidence_reason",
    "is_integrity_reason",
    "is_runtime_reason",
    "validate_run_id",
]
