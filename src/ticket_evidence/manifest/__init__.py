"""
ticket-evidence — evidence manifests

File: src/ticket_evidence/manifest/__init__.py
Last updated: 2026-10-18

Purpose
- Manifest document model, the run evidence writer and the run-directory verifier.
"""

from ticket_evidence.manifest.model import (
    ManifestArtifact,
    ManifestCheck,
    ManifestValidation,
    compute_manifest_self_hash,
    normalize_artifacts,
    normalize_checks,
    validate_manifest_document,
)
from ticket_evidence.manifest.verifier import IntegrityReport, verify_run_directory
from ticket_evidence.manifest.writer import (
    MANIFEST_FILENAME,
    RunEvidencePaths,
    RunEvidenceWriter,
    write_run_evidence,
)

__all__ = [
    "IntegrityReport",
    "MANIFEST_FILENAME",
    "ManifestArtifact",
    "ManifestCheck",
    "ManifestValidation",
    "RunEvidencePaths",
    "RunEvidenceWriter",
    "compute_manifest_self_hash",
    "normalize_artifacts",
    "normalize_checks",
    "validate_manifest_document",
    "verify_run_directory",
    "write_run_evidence",
]
