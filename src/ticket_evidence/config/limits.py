"""
ticket-evidence — evidence limits.

File: src/ticket_evidence/config/limits.py
Last updated: 2026-10-18

Purpose
- Provide the one immutable limits bundle consulted by the evidence policy, the report builder and
  the retention sweep.

What should be included in this file
- ``EvidenceLimits`` with inline/raw ceilings, items-per-report cap and retention window.
- Environment overrides with fall-back-to-default coercion.
- The fixed item-selection strategy as a module constant.

Functional requirements
- Invalid, non-numeric or negative environment values never raise; they fall back to the default.
- Fractional numeric values are floored.

Non-functional requirements
- The selection strategy is not a field and cannot be overridden from the environment.
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

MAX_ITEMS_STRATEGY: Final[str] = "keep_first_n"

DEFAULT_INLINE_LIMIT_BYTES: Final[int] = 64
DEFAULT_RAW_LIMIT_BYTES: Final[int] = 128
DEFAULT_MAX_ITEMS_PER_REPORT: Final[int] = 50
DEFAULT_RETENTION_DAYS: Final[int] = 7

LIMIT_ENV_KEYS: Final[Mapping[str, str]] = {
    "inline_limit_bytes": "EVIDENCE_INLINE_LIMIT_BYTES",
    "raw_limit_bytes": "EVIDENCE_RAW_LIMIT_BYTES",
    "max_items_per_report": "EVIDENCE_MAX_ITEMS_PER_REPORT",
    "retention_days": "EVIDENCE_RETENTION_DAYS",
}


@dataclass(frozen=True, slots=True)
class EvidenceLimits:
    """Size, count and age ceilings for persisted evidence."""

    inline_limit_bytes: int = DEFAULT_INLINE_LIMIT_BYTES
    raw_limit_bytes: int = DEFAULT_RAW_LIMIT_BYTES
    max_items_per_report: int = DEFAULT_MAX_ITEMS_PER_REPORT
    retention_days: int = DEFAULT_RETENTION_DAYS

    def __post_init__(self) -> None:
        for name in LIMIT_ENV_KEYS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{name} must be an integer")
            if value < 0:
                raise ValueError(f"{name} must be >= 0")

    @property
    def max_items_strategy(self) -> str:
        return MAX_ITEMS_STRATEGY

    def to_dict(self) -> dict[str, Any]:
        return {
            "inline_limit_bytes": self.inline_limit_bytes,
            "raw_limit_bytes": self.raw_limit_bytes,
            "max_items_per_report": self.max_items_per_report,
            "max_items_strategy": MAX_ITEMS_STRATEGY,
            "retention_days": self.retention_days,
        }


DEFAULT_EVIDENCE_LIMITS: Final[EvidenceLimits] = EvidenceLimits()


def limits_from_env(
    environ: Mapping[str, str] | None = None,
    *,
    base: EvidenceLimits = DEFAULT_EVIDENCE_LIMITS,
) -> EvidenceLimits:
    """Overlay ``EVIDENCE_*`` environment values onto ``base``."""

    env_map = os.environ if environ is None else environ
    values = {
        name: clamp_non_negative_int(env_map.get(env_key), getattr(base, name))
        for name, env_key in LIMIT_ENV_KEYS.items()
    }
    return EvidenceLimits(**values)


def limits_from_config(config: Mapping[str, object]) -> EvidenceLimits:
    """Build limits from a validated config mapping (see ``config.loader.load_config``)."""

    section = config.get("limits")
    if not isinstance(section, Mapping):
        return DEFAULT_EVIDENCE_LIMITS
    values = {
        name: clamp_non_negative_int(section.get(name), getattr(DEFAULT_EVIDENCE_LIMITS, name))
        for name in LIMIT_ENV_KEYS
    }
    return EvidenceLimits(**values)


def clamp_non_negative_int(value: object, fallback: int) -> int:
    """Coerce ``value`` to a non-negative int, returning ``fallback`` when that is impossible."""

    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value if value >= 0 else fallback
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return fallback
    if not math.isfinite(parsed):
        return fallback
    floored = math.floor(parsed)
    return floored if floored >= 0 else fallback


__all__ = [
    "DEFAULT_EVIDENCE_LIMITS",
    "DEFAULT_INLINE_LIMIT_BYTES",
    "DEFAULT_MAX_ITEMS_PER_REPORT",
    "DEFAULT_RAW_LIMIT_BYTES",
    "DEFAULT_RETENTION_DAYS",
    "EvidenceLimits",
    "LIMIT_ENV_KEYS",
    "MAX_ITEMS_STRATEGY",
    "clamp_non_negative_int",
    "limits_from_config",
    "limits_from_env",
]
