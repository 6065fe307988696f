"""
ticket-evidence — run report builder

File: src/ticket_evidence/run_report/builder.py
Last updated: 2026-10-18

Purpose
- Aggregate step outcomes and attempt events of one ticket execution into a terminal
  ``RunReport``.

What should be included in this file
- ``build_run_report``: the pure functional form.
- ``RunReportBuilder``: mutable assembly object used while a run is executing.
- Keep-first-N evidence quota enforcement across all steps in execution order.

Functional requirements
- ``primary_failure_code`` is non-null iff the terminal status is not ``ok``.
- Step reports and attempt events keep the order in which they were produced.
- Evidence beyond ``max_items`` is dropped from later steps first and counted in the quota.

Non-functional requirements
- No IO and no clock reads; every timestamp is passed in.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from ticket_evidence.config.limits import DEFAULT_EVIDENCE_LIMITS, MAX_ITEMS_STRATEGY
from ticket_evidence.domain.errors import RunReportError
from ticket_evidence.evidence.policy import select_first_n
from ticket_evidence.run_report.models import (
    AttemptEvent,
    AttemptEventType,
    EvidenceQuota,
    RunReport,
    StepReport,
    Timestamp,
)
from ticket_evidence.run_report.stable_codes import RunStatus, select_overall_code, worst_status
from ticket_evidence.utils.timestamps import format_utc_timestamp, parse_utc_timestamp

__all__ = ["RunReportBuilder", "build_run_report"]


def build_run_report(
    *,
    ticket_id: str,
    terminal_status: RunStatus | str,
    primary_failure_code: str | None,
    started_at: Timestamp,
    ended_at: Timestamp,
    duration_ms: int,
    step_reports: Sequence[StepReport] = (),
    attempt_events: Sequence[AttemptEvent | Mapping[str, Any]] = (),
    max_items: int = DEFAULT_EVIDENCE_LIMITS.max_items_per_report,
    mode_snapshot: Mapping[str, Any] | None = None,
) -> RunReport:
    """Assemble a terminal report; raises ``RunReportError`` on contract violations."""

    if not isinstance(ticket_id, str) or not ticket_id.strip():
        raise RunReportError("ticket_id must be a non-empty string")

    try:
        status = RunStatus(terminal_status)
    except ValueError as exc:
        raise RunReportError(f"unsupported terminal status: {terminal_status!r}") from exc

    if status is RunStatus.OK and primary_failure_code is not None:
        raise RunReportError("primary_failure_code must be null for an ok run")
    if status is not RunStatus.OK and not primary_failure_code:
        raise RunReportError(f"primary_failure_code is required for a {status} run")

    if isinstance(duration_ms, bool) or not isinstance(duration_ms, int) or duration_ms < 0:
        raise RunReportError("duration_ms must be a non-negative integer")
    if isinstance(max_items, bool) or not isinstance(max_items, int) or max_items < 0:
        raise RunReportError("max_items must be a non-negative integer")

    try:
        started = parse_utc_timestamp(started_at)
        ended = parse_utc_timestamp(ended_at)
    except ValueError as exc:
        raise RunReportError(str(exc)) from exc
    if ended < started:
        raise RunReportError("ended_at must not precede started_at")

    for step in step_reports:
        if not isinstance(step, StepReport):
            raise RunReportError("step_reports must contain StepReport instances")
    events = tuple(_coerce_event(event) for event in attempt_events)

    capped_steps, quota = _apply_quota(tuple(step_reports), max_items)

    return RunReport(
        ticket_id=ticket_id,
        terminal_status=status,
        primary_failure_code=primary_failure_code,
        started_at=format_utc_timestamp(started),
        ended_at=format_utc_timestamp(ended),
        duration_ms=duration_ms,
        step_reports=capped_steps,
        attempt_events=events,
        evidence_quota=quota,
        mode_snapshot=mode_snapshot,
    )


def _coerce_event(event: object) -> AttemptEvent:
    if isinstance(event, AttemptEvent):
        return event
    if not isinstance(event, Mapping):
        raise RunReportError("attempt_events must contain AttemptEvent instances or objects")
    try:
        return AttemptEvent(**event)
    except (TypeError, ValueError) as exc:
        raise RunReportError(f"invalid attempt event: {exc}") from exc


def _apply_quota(
    step_reports: tuple[StepReport, ...], max_items: int
) -> tuple[tuple[StepReport, ...], EvidenceQuota]:
    flattened = [
        (position, item)
        for position, step in enumerate(step_reports)
        for item in step.evidence_items
    ]
    kept, dropped = select_first_n(flattened, max_items)

    kept_by_step: dict[int, list[Any]] = {}
    for position, item in kept:
        kept_by_step.setdefault(position, []).append(item)

    capped = tuple(
        step
        if len(kept_by_step.get(position, ())) == len(step.evidence_items)
        else step.with_evidence_items(kept_by_step.get(position, ()))
        for position, step in enumerate(step_reports)
    )
    quota = EvidenceQuota(
        max_items=max_items,
        strategy=MAX_ITEMS_STRATEGY,
        kept=len(kept),
        dropped=len(dropped),
    )
    return capped, quota


class RunReportBuilder:
    """Collect steps and attempt events while a run executes, then freeze them."""

    def __init__(
        self,
        ticket_id: str,
        *,
        max_items: int = DEFAULT_EVIDENCE_LIMITS.max_items_per_report,
        mode_snapshot: Mapping[str, Any] | None = None,
    ) -> None:
        self._ticket_id = ticket_id
        self._max_items = max_items
        self._mode_snapshot = mode_snapshot
        self._steps: list[StepReport] = []
        self._events: list[AttemptEvent] = []
        self._built = False

    @property
    def step_reports(self) -> tuple[StepReport, ...]:
        return tuple(self._steps)

    @property
    def attempt_events(self) -> tuple[AttemptEvent, ...]:
        return tuple(self._events)

    def record_event(
        self,
        event_type: AttemptEventType | str,
        *,
        at: Timestamp,
        step_index: int | None = None,
        tool_name: str | None = None,
        status: RunStatus | str | None = None,
        code: str | None = None,
        message: str | None = None,
    ) -> AttemptEvent:
        self._ensure_open()
        event = AttemptEvent(
            at=format_utc_timestamp(at),
            type=AttemptEventType(event_type),
            step_index=step_index,
            tool_name=tool_name,
            status=None if status is None else RunStatus(status),
            code=code,
            message=message,
        )
        self._events.append(event)
        return event

    def add_step(self, step: StepReport, *, record_events: bool = True) -> None:
        """Append ``step``; optionally log its STEP_START/STEP_END attempt events."""

        self._ensure_open()
        if any(existing.step_index == step.step_index for existing in self._steps):
            raise RunReportError(f"duplicate step_index {step.step_index}")
        if record_events:
            self.record_event(
                AttemptEventType.STEP_START,
                at=step.started_at,
                step_index=step.step_index,
                tool_name=step.tool_name,
            )
        self._steps.append(step)
        if record_events:
            self.record_event(
                AttemptEventType.STEP_END,
                at=step.ended_at,
                step_index=step.step_index,
                tool_name=step.tool_name,
                status=step.status,
                code=step.code,
            )

    def build(
        self,
        *,
        started_at: Timestamp,
        ended_at: Timestamp,
        terminal_status: RunStatus | str | None = None,
        primary_failure_code: str | None = None,
    ) -> RunReport:
        """Freeze the report.

        Without an explicit ``terminal_status`` the worst step status wins and the primary
        failure code is selected from the steps.
        """

        self._ensure_open()
        if terminal_status is None:
            status = worst_status(step.status for step in self._steps)
            code = select_overall_code(self._steps, status)
        else:
            status = RunStatus(terminal_status)
            code = primary_failure_code

        started = parse_utc_timestamp(started_at)
        ended = parse_utc_timestamp(ended_at)
        duration_ms = max(0, int((ended - started).total_seconds() * 1000))

        report = build_run_report(
            ticket_id=self._ticket_id,
            terminal_status=status,
            primary_failure_code=code,
            started_at=started,
            ended_at=ended,
            duration_ms=duration_ms,
            step_reports=self._steps,
            attempt_events=self._events,
            max_items=self._max_items,
            mode_snapshot=self._mode_snapshot,
        )
        self._built = True
        return report

    def _ensure_open(self) -> None:
        if self._built:
            raise RunReportError("run report already built; a corrected run needs a new run id")
