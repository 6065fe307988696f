"""
ticket-evidence — evidence.toml schema

File: src/ticket_evidence/config/schema.py
Last updated: 2026-10-18

Purpose
- Own the built-in defaults and the strict shape of ``evidence.toml``.

What should be included in this file
- A declarative field table (section, key, value kind) driving validation.
- Structured issues (dotted path + message) and the error that carries them.
- Deep-merge and ``<redacted>`` rendering used by the loader and the CLI.

Functional requirements
- Unknown keys are rejected; keys that look like credentials get a dedicated message because
  evidence config must never hold secret values.
- ``limits.max_items_strategy`` is rejected: the selection strategy is not configurable.
- A schema version mismatch explains which side needs upgrading.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from ticket_evidence.config.limits import (
    DEFAULT_INLINE_LIMIT_BYTES,
    DEFAULT_MAX_ITEMS_PER_REPORT,
    DEFAULT_RAW_LIMIT_BYTES,
    DEFAULT_RETENTION_DAYS,
)
from ticket_evidence.constants import CONFIG_SCHEMA_VERSION, LOGS_DIR, RUNS_DIR, SANDBOX_DIR

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
REDACTED_CONFIG_VALUE: Final[str] = "<redacted>"

_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "apikey", "private", "credential", "credentials"}
)
_SECRET_PHRASES: Final[tuple[str, ...]] = ("api_key", "access_token", "private_key")
_WORD_SPLIT: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")
_CAMEL_HUMP: Final[re.Pattern[str]] = re.compile(r"([a-z0-9])([A-Z])")


class LimitsConfig(TypedDict):
    inline_limit_bytes: int
    raw_limit_bytes: int
    max_items_per_report: int
    retention_days: int


class PathsConfig(TypedDict):
    runs_root: str
    sandbox_root: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool
    redact_secrets: bool


class EvidenceConfig(TypedDict):
    meta: dict[str, int]
    limits: LimitsConfig
    paths: PathsConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[EvidenceConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "limits": {
        "inline_limit_bytes": DEFAULT_INLINE_LIMIT_BYTES,
        "raw_limit_bytes": DEFAULT_RAW_LIMIT_BYTES,
        "max_items_per_report": DEFAULT_MAX_ITEMS_PER_REPORT,
        "retention_days": DEFAULT_RETENTION_DAYS,
    },
    "paths": {
        "runs_root": RUNS_DIR.as_posix(),
        "sandbox_root": SANDBOX_DIR.as_posix(),
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": LOGS_DIR.as_posix(),
        "log_to_stdout": False,
        "redact_secrets": True,
    },
}

# Path-valued fields; the loader resolves them against the config file directory.
PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = (
    ("paths", "runs_root"),
    ("paths", "sandbox_root"),
    ("observability", "log_dir"),
)

# Keys accepted only to explain why they are refused.
_FIXED_KEYS: Final[Mapping[tuple[str, str], str]] = {
    ("limits", "max_items_strategy"): (
        "selection strategy is fixed (keep_first_n) and cannot be configured"
    ),
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """``config`` is the normalized payload, present only when ``issues`` is empty."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised by ``assert_valid_config``; ``issues`` keeps the structured detail."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- <root>: invalid"))


_Check = Callable[[object], tuple[Any, str | None]]


def _non_negative_int(value: object) -> tuple[Any, str | None]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None, f"expected integer, got {type(value).__name__}"
    if value < 0:
        return None, "must be >= 0"
    return value, None


def _flag(value: object) -> tuple[Any, str | None]:
    if isinstance(value, bool):
        return value, None
    return None, f"expected boolean, got {type(value).__name__}"


def _path_text(value: object) -> tuple[Any, str | None]:
    if not isinstance(value, str):
        return None, f"expected string, got {type(value).__name__}"
    text = value.strip()
    if not text:
        return None, "must not be empty"
    if "\x00" in text:
        return None, "must not contain NUL bytes"
    return text, None


def _log_level(value: object) -> tuple[Any, str | None]:
    text, problem = _path_text(value)
    if problem is not None:
        return None, problem
    if text not in LOG_LEVELS:
        return None, f"invalid value {text!r}; expected one of: {', '.join(sorted(LOG_LEVELS))}"
    return text, None


def _schema_version(value: object) -> tuple[Any, str | None]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None, f"expected integer, got {type(value).__name__}"
    if value != CONFIG_SCHEMA_VERSION:
        return None, migration_guidance(value)
    return value, None


_FIELDS: Final[Mapping[str, Mapping[str, _Check]]] = {
    "meta": {"schema_version": _schema_version},
    "limits": {
        "inline_limit_bytes": _non_negative_int,
        "raw_limit_bytes": _non_negative_int,
        "max_items_per_report": _non_negative_int,
        "retention_days": _non_negative_int,
    },
    "paths": {"runs_root": _path_text, "sandbox_root": _path_text},
    "observability": {
        "log_level": _log_level,
        "log_dir": _path_text,
        "log_to_stdout": _flag,
        "redact_secrets": _flag,
    },
}


def default_config() -> EvidenceConfig:
    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is older than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade evidence.toml to the current schema"
        )
    if found_version > CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is newer than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade the ticket-evidence runtime"
        )
    return "schema version is current"


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check ``config`` against the field table; issues come out sorted by path."""

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(
            ConfigValidationIssue("<root>", f"expected object, got {type(config).__name__}")
        )
        return ConfigValidationResult(config=None, issues=tuple(issues))

    normalized: dict[str, Any] = {}
    for name in sorted(set(config) | set(_FIELDS), key=str):
        if name not in _FIELDS:
            issues.append(ConfigValidationIssue(str(name), _unknown_key_message(str(name))))
            continue
        if name not in config:
            issues.append(ConfigValidationIssue(name, "missing required field"))
            continue
        section = config[name]
        if not isinstance(section, Mapping):
            issues.append(
                ConfigValidationIssue(name, f"expected object, got {type(section).__name__}")
            )
            continue
        normalized[name] = _validate_section(name, section, issues)

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; nested mappings merge, others replace."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key in sorted(overlay, key=str):
        incoming = overlay[key]
        current = merged.get(key)
        if isinstance(incoming, Mapping):
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, incoming)
        else:
            merged[key] = copy.deepcopy(incoming)
    return merged


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Key-sorted copy with credential-looking keys replaced by ``<redacted>``."""

    if not isinstance(config, Mapping):
        return {}
    return {
        str(key): REDACTED_CONFIG_VALUE if looks_like_secret_key(str(key)) else _redact(value)
        for key, value in sorted(config.items(), key=lambda item: str(item[0]))
    }


def looks_like_secret_key(key: str) -> bool:
    normalized = _WORD_SPLIT.sub("_", _CAMEL_HUMP.sub(r"\1_\2", key.strip()).lower()).strip("_")
    if any(phrase in normalized for phrase in _SECRET_PHRASES):
        return True
    return any(word in _SECRET_WORDS for word in normalized.split("_"))


def _validate_section(
    name: str, section: Mapping[object, object], issues: list[ConfigValidationIssue]
) -> dict[str, Any]:
    fields = _FIELDS[name]
    out: dict[str, Any] = {}
    for key in sorted(set(section) | set(fields), key=str):
        path = f"{name}.{key}"
        if not isinstance(key, str):
            issues.append(ConfigValidationIssue(name, "object keys must be strings"))
        elif (name, key) in _FIXED_KEYS:
            issues.append(ConfigValidationIssue(path, _FIXED_KEYS[(name, key)]))
        elif key not in fields:
            issues.append(ConfigValidationIssue(path, _unknown_key_message(key)))
        elif key not in section:
            issues.append(ConfigValidationIssue(path, "missing required field"))
        else:
            value, problem = fields[key](section[key])
            if problem is None:
                out[key] = value
            else:
                issues.append(ConfigValidationIssue(path, problem))
    return out


def _unknown_key_message(key: str) -> str:
    if looks_like_secret_key(key):
        return "embedded secret values are forbidden in evidence config"
    return "unknown field"


def _redact(value: object) -> object:
    if isinstance(value, Mapping):
        return redact_config(value)
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


__all__ = [
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "EvidenceConfig",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "REDACTED_CONFIG_VALUE",
    "assert_valid_config",
    "default_config",
    "looks_like_secret_key",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
