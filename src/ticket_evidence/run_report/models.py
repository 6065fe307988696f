"""
ticket-evidence — run report models

File: src/ticket_evidence/run_report/models.py
Last updated: 2026-10-18

Purpose
- Immutable value objects for one ticket execution: attempt events, step reports, the evidence
  quota record and the terminal run report.

What should be included in this file
- ``AttemptEvent``, ``ArtifactRef``, ``StepReport``, ``EvidenceQuota``, ``RunReport``.
- Deterministic ``to_dict`` renderings used for the persisted ``run_report_v1.json``.
- ``create_step_report`` factory resolving the side-effect table.

Functional requirements
- Step reports and attempt events keep execution order.
- Artifact references are run-directory-relative POSIX paths that never traverse upwards.

Non-functional requirements
- No IO, no clock reads.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Final

from ticket_evidence.constants import RUN_REPORT_VERSION
from ticket_evidence.domain.errors import RunReportError
from ticket_evidence.evidence.items import EvidenceItem
from ticket_evidence.run_report.stable_codes import RunStatus
from ticket_evidence.utils.timestamps import format_utc_timestamp

RETRY_POLICY_ID: Final[str] = "v1_default"
DEFAULT_MAX_ATTEMPTS: Final[int] = 1
SYSTEM_REJECT_TOOL: Final[str] = "SYSTEM_REJECT"


class SideEffect(StrEnum):
    READ = "read"
    WRITE = "write"
    UNKNOWN = "unknown"


class AttemptEventType(StrEnum):
    RUN_START = "RUN_START"
    RUN_END = "RUN_END"
    STEP_START = "STEP_START"
    STEP_END = "STEP_END"


TOOL_SIDE_EFFECTS: Final[Mapping[str, SideEffect]] = {
    "memory": SideEffect.WRITE,
    "web_search": SideEffect.READ,
    "filesystem": SideEffect.WRITE,
}

Timestamp = str | datetime


def side_effect_for_tool(tool_name: str) -> SideEffect:
    return TOOL_SIDE_EFFECTS.get(tool_name, SideEffect.UNKNOWN)


@dataclass(frozen=True, slots=True)
class AttemptEvent:
    """One append-only entry in the run/step attempt log."""

    at: str
    type: AttemptEventType
    step_index: int | None = None
    tool_name: str | None = None
    status: RunStatus | None = None
    code: str | None = None
    message: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "at", _timestamp(self.at, "attempt_event.at"))
        try:
            object.__setattr__(self, "type", AttemptEventType(self.type))
        except ValueError as exc:
            raise RunReportError(f"invalid attempt event type: {self.type!r}") from exc
        if self.status is not None:
            object.__setattr__(self, "status", RunStatus(self.status))

    def to_dict(self) -> dict[str, Any]:
        return {
            "at": self.at,
            "type": str(self.type),
            "step_index": self.step_index,
            "tool_name": self.tool_name,
            "status": None if self.status is None else str(self.status),
            "code": self.code,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """A run-directory file a step produced (debug payloads, snapshots)."""

    kind: str
    path: str

    def __post_init__(self) -> None:
        if not isinstance(self.kind, str) or not self.kind.strip():
            raise RunReportError("artifact ref kind must be a non-empty string")
        if not is_safe_relative_path(self.path):
            raise RunReportError(f"artifact ref path must be run-relative: {self.path!r}")

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "path": self.path}


@dataclass(frozen=True, slots=True)
class StepReport:
    step_index: int
    tool_name: str
    side_effect: SideEffect
    status: RunStatus
    code: str | None
    started_at: str
    ended_at: str
    duration_ms: int
    result_summary: str = ""
    evidence_items: tuple[EvidenceItem, ...] = ()
    artifact_refs: tuple[ArtifactRef, ...] = ()
    attempt_events: tuple[AttemptEvent, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.step_index, bool) or not isinstance(self.step_index, int):
            raise RunReportError("step_index must be an integer")
        object.__setattr__(self, "status", RunStatus(self.status))
        object.__setattr__(self, "side_effect", SideEffect(self.side_effect))
        object.__setattr__(self, "started_at", _timestamp(self.started_at, "started_at"))
        object.__setattr__(self, "ended_at", _timestamp(self.ended_at, "ended_at"))
        _require_duration(self.duration_ms)
        object.__setattr__(self, "evidence_items", tuple(self.evidence_items))
        object.__setattr__(self, "artifact_refs", tuple(self.artifact_refs))
        object.__setattr__(self, "attempt_events", tuple(self.attempt_events))
        for item in self.evidence_items:
            if not isinstance(item, EvidenceItem):
                raise RunReportError("evidence_items must contain EvidenceItem instances")

    def with_evidence_items(self, items: Sequence[EvidenceItem]) -> StepReport:
        return StepReport(
            step_index=self.step_index,
            tool_name=self.tool_name,
            side_effect=self.side_effect,
            status=self.status,
            code=self.code,
            started_at=self.started_at,
            ended_at=self.ended_at,
            duration_ms=self.duration_ms,
            result_summary=self.result_summary,
            evidence_items=tuple(items),
            artifact_refs=self.artifact_refs,
            attempt_events=self.attempt_events,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "step_index": self.step_index,
            "tool_name": self.tool_name,
            "side_effect": str(self.side_effect),
            "status": str(self.status),
            "code": self.code,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_ms": self.duration_ms,
            "result_summary": self.result_summary,
            "evidence_items": [item.to_dict() for item in self.evidence_items],
            "artifact_refs": [ref.to_dict() for ref in self.artifact_refs],
        }
        if self.attempt_events:
            payload["attempt_events"] = [event.to_dict() for event in self.attempt_events]
        return payload


def create_step_report(
    *,
    step_index: int,
    tool_name: str,
    status: RunStatus | str,
    started_at: Timestamp,
    ended_at: Timestamp,
    duration_ms: int,
    code: str | None = None,
    result_summary: str = "",
    evidence_items: Sequence[EvidenceItem] = (),
    artifact_refs: Sequence[ArtifactRef] = (),
    attempt_events: Sequence[AttemptEvent] = (),
) -> StepReport:
    """Build a ``StepReport``, deriving ``side_effect`` from the fixed tool table."""

    return StepReport(
        step_index=step_index,
        tool_name=tool_name,
        side_effect=side_effect_for_tool(tool_name),
        status=RunStatus(status),
        code=code,
        started_at=_timestamp(started_at, "started_at"),
        ended_at=_timestamp(ended_at, "ended_at"),
        duration_ms=duration_ms,
        result_summary=result_summary,
        evidence_items=tuple(evidence_items),
        artifact_refs=tuple(artifact_refs),
        attempt_events=tuple(attempt_events),
    )


@dataclass(frozen=True, slots=True)
class EvidenceQuota:
    max_items: int
    strategy: str
    kept: int
    dropped: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_items": self.max_items,
            "strategy": self.strategy,
            "kept": self.kept,
            "dropped": self.dropped,
        }


@dataclass(frozen=True, slots=True)
class RunReport:
    """Terminal, immutable record of one ticket execution."""

    ticket_id: str
    terminal_status: RunStatus
    primary_failure_code: str | None
    started_at: str
    ended_at: str
    duration_ms: int
    step_reports: tuple[StepReport, ...]
    attempt_events: tuple[AttemptEvent, ...]
    evidence_quota: EvidenceQuota
    mode_snapshot: Mapping[str, Any] | None = None
    version: str = RUN_REPORT_VERSION
    retry_policy_id: str = RETRY_POLICY_ID
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.mode_snapshot is None:
            return
        if not isinstance(self.mode_snapshot, Mapping):
            raise RunReportError("mode_snapshot must be an object")
        frozen = MappingProxyType(copy.deepcopy(dict(self.mode_snapshot)))
        object.__setattr__(self, "mode_snapshot", frozen)

    def iter_evidence_items(self) -> Iterator[EvidenceItem]:
        for step in self.step_reports:
            yield from step.evidence_items

    def raw_pointers(self) -> tuple[str, ...]:
        """Raw pointers referenced by this report, in execution order, without duplicates."""

        seen: dict[str, None] = {}
        for item in self.iter_evidence_items():
            if item.raw_pointer is not None:
                seen.setdefault(item.raw_pointer, None)
        return tuple(seen)

    def artifact_refs(self) -> tuple[ArtifactRef, ...]:
        return tuple(ref for step in self.step_reports for ref in step.artifact_refs)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "version": self.version,
            "ticket_id": self.ticket_id,
            "retry_policy_id": self.retry_policy_id,
            "max_attempts": self.max_attempts,
            "terminal_status": str(self.terminal_status),
            "primary_failure_code": self.primary_failure_code,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_ms": self.duration_ms,
            "step_reports": [step.to_dict() for step in self.step_reports],
            "attempt_events": [event.to_dict() for event in self.attempt_events],
            "evidence_quota": self.evidence_quota.to_dict(),
        }
        if self.mode_snapshot is not None:
            payload["mode_snapshot"] = copy.deepcopy(dict(self.mode_snapshot))
        return payload


def is_safe_relative_path(value: object) -> bool:
    """True for a non-empty, relative POSIX path without ``.``/``..`` segments or backslashes."""

    if not isinstance(value, str) or not value or "\\" in value or "\x00" in value:
        return False
    if value.startswith(("/", "~")):
        return False
    return all(part not in {"", ".", ".."} for part in value.split("/"))


def _timestamp(value: Timestamp, label: str) -> str:
    try:
        return format_utc_timestamp(value)
    except ValueError as exc:
        raise RunReportError(f"{label} must be an ISO-8601 timestamp with offset") from exc


def _require_duration(value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise RunReportError("duration_ms must be a non-negative integer")


__all__ = [
    "ArtifactRef",
    "AttemptEvent",
    "AttemptEventType",
    "DEFAULT_MAX_ATTEMPTS",
    "EvidenceQuota",
    "RETRY_POLICY_ID",
    "RunReport",
    "SYSTEM_REJECT_TOOL",
    "SideEffect",
    "StepReport",
    "TOOL_SIDE_EFFECTS",
    "Timestamp",
    "create_step_report",
    "is_safe_relative_path",
    "side_effect_for_tool",
]
