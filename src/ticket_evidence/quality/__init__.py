"""Quality utilities: repository guardrails for evidence integrity."""

from ticket_evidence.quality.manifest_write_audit import (
    DEFAULT_ALLOWLIST,
    DEFAULT_EXCLUDE,
    DEFAULT_ROOTS,
    AuditResult,
    Finding,
    format_json,
    format_text,
    run_manifest_write_audit,
    scan_source,
)

__all__ = [
    "AuditResult",
    "DEFAULT_ALLOWLIST",
    "DEFAULT_EXCLUDE",
    "DEFAULT_ROOTS",
    "Finding",
    "format_json",
    "format_text",
    "run_manifest_write_audit",
    "scan_source",
]
