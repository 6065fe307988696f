"""Stable constants shared across the evidence subsystem."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
RUN_REPORT_VERSION: Final[str] = "v1"
MANIFEST_VERSION: Final[str] = "v1"

# Run-directory filenames. The manifest filename itself is owned by ``manifest.writer``.
RUN_REPORT_FILENAME: Final[str] = "run_report_v1.json"
MANIFEST_SELF_HASH_FILENAME: Final[str] = "manifest_self_hash_v1.json"

# Artifact kinds recorded in manifests.
RUN_REPORT_KIND: Final[str] = "run_report_v1"
MANIFEST_KIND: Final[str] = "evidence_manifest_v1"
MANIFEST_SELF_HASH_KIND: Final[str] = "manifest_self_hash_v1"
RAW_EVIDENCE_KIND: Final[str] = "raw_evidence"

SELF_HASH_ALGORITHM: Final[str] = "sha256-canonical-json"

# Raw evidence lives below this single directory name inside the sandbox root.
EVIDENCE_STORE_ROOT: Final[str] = "evidence_store"

# Default runtime paths (relative to the config file unless overridden).
RUNS_DIR: Final[PurePosixPath] = PurePosixPath("runs")
SANDBOX_DIR: Final[PurePosixPath] = PurePosixPath("sandbox")
LOGS_DIR: Final[PurePosixPath] = PurePosixPath("logs")

MIN_RUN_ID_LENGTH: Final[int] = 8

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "EVIDENCE_STORE_ROOT",
    "LOGS_DIR",
    "MANIFEST_KIND",
    "MANIFEST_SELF_HASH_FILENAME",
    "MANIFEST_SELF_HASH_KIND",
    "MANIFEST_VERSION",
    "MIN_RUN_ID_LENGTH",
    "RAW_EVIDENCE_KIND",
    "RUNS_DIR",
    "RUN_REPORT_FILENAME",
    "RUN_REPORT_KIND",
    "RUN_REPORT_VERSION",
    "SANDBOX_DIR",
    "SELF_HASH_ALGORITHM",
]
