"""Security helpers for evidence persistence."""

from ticket_evidence.security.redaction import (
    REDACTED_VALUE,
    is_sensitive_key,
    redact_structure,
    redact_text,
    scan_for_secrets,
)

__all__ = [
    "REDACTED_VALUE",
    "is_sensitive_key",
    "redact_structure",
    "redact_text",
    "scan_for_secrets",
]
