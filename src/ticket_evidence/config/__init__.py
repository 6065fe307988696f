"""
ticket-evidence config package public API.

File: src/ticket_evidence/config/__init__.py
Last updated: 2026-10-18

Purpose
- Export config loading/validation entrypoints, the limits bundle and public error types.

Functional requirements
- Support loading from ``evidence.toml`` + ``EVIDENCE_`` env overrides.
- Fail fast with clear structured validation/load errors.

Non-functional requirements
- Keep import-time surface small and deterministic.
"""

from ticket_evidence.config.limits import (
    DEFAULT_EVIDENCE_LIMITS,
    LIMIT_ENV_KEYS,
    MAX_ITEMS_STRATEGY,
    EvidenceLimits,
    limits_from_config,
    limits_from_env,
)
from ticket_evidence.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
    normalize_paths,
)
from ticket_evidence.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    EvidenceConfig,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_EVIDENCE_LIMITS",
    "ENV_PREFIX",
    "EvidenceConfig",
    "EvidenceLimits",
    "LIMIT_ENV_KEYS",
    "MAX_ITEMS_STRATEGY",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "limits_from_config",
    "limits_from_env",
    "load_config",
    "merge_config",
    "normalize_paths",
    "redact_config",
    "validate_config",
]
