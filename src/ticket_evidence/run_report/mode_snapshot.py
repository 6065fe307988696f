"""Mode snapshot: the orchestrator feature flags and readiness summary in force for a run.

Rejection emitters fall back to :func:`minimal_mode_snapshot` when the caller has no richer
snapshot, so every rejected run still records the planned environment.
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Final

from ticket_evidence.utils.timestamps import format_utc_timestamp

MODE_ENV_KEYS: Final[Mapping[str, str]] = {
    "NO_MCP": "NO_MCP",
    "enableToolDerivation": "ENABLE_TOOL_DERIVATION",
    "toolOnlyMode": "TOOL_ONLY_MODE",
    "enableTicketSchemaValidation": "ENABLE_TICKET_SCHEMA_VALIDATION",
}

_MAX_LISTED_DEPS: Final[int] = 10

__all__ = [
    "MODE_ENV_KEYS",
    "minimal_mode_snapshot",
    "resolve_planned_env",
    "summarize_readiness",
]


def resolve_planned_env(environ: Mapping[str, str] | None = None) -> dict[str, bool]:
    env_map = os.environ if environ is None else environ
    return {
        name: str(env_map.get(env_key, "")).strip().lower() in {"true", "1"}
        for name, env_key in MODE_ENV_KEYS.items()
    }


def summarize_readiness(
    missing_dep_keys: Sequence[str] = (),
    unavailable_dep_keys: Sequence[str] = (),
) -> dict[str, Any]:
    """Low-cardinality readiness summary: sorted, de-duplicated, capped dependency lists."""

    missing = sorted(set(missing_dep_keys))
    unavailable = sorted(set(unavailable_dep_keys))
    summary: dict[str, Any] = {
        "deps_ready": not missing,
        "missing_dep_codes": missing[:_MAX_LISTED_DEPS],
        "total_missing": len(missing),
        "providers_unavailable": unavailable[:_MAX_LISTED_DEPS],
    }
    return summary


def minimal_mode_snapshot(
    environ: Mapping[str, str] | None = None,
    *,
    as_of: str | datetime,
) -> dict[str, Any]:
    return {
        "as_of": format_utc_timestamp(as_of),
        "env": resolve_planned_env(environ),
        "cutover": {
            "cutover_until_ms": None,
            "env_source": None,
            "policy_mode": "post_cutover",
            "metrics": {"counters": [], "counters_by_source": []},
            "gate": {
                "ok": True,
                "mode": "post_cutover",
                "counts": {"canonical_missing": 0, "cutover_violation": 0, "legacy_read": 0},
                "reasons": [],
            },
        },
        "readiness_summary": summarize_readiness(),
    }
