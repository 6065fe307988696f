"""
ticket-evidence — run reports

File: src/ticket_evidence/run_report/__init__.py
Last updated: 2026-10-18

Purpose
- Step/attempt/run models, the report builder, stable run codes and the mode snapshot.
"""

from ticket_evidence.run_report.builder import RunReportBuilder, build_run_report
from ticket_evidence.run_report.mode_snapshot import minimal_mode_snapshot, summarize_readiness
from ticket_evidence.run_report.models import (
    DEFAULT_MAX_ATTEMPTS,
    RETRY_POLICY_ID,
    SYSTEM_REJECT_TOOL,
    TOOL_SIDE_EFFECTS,
    ArtifactRef,
    AttemptEvent,
    AttemptEventType,
    EvidenceQuota,
    RunReport,
    SideEffect,
    StepReport,
    create_step_report,
)
from ticket_evidence.run_report.stable_codes import (
    CODE_TO_STATUS,
    RunCode,
    RunStatus,
    map_gateway_error_code,
    select_overall_code,
    worst_status,
)

__all__ = [
    "ArtifactRef",
    "AttemptEvent",
    "AttemptEventType",
    "CODE_TO_STATUS",
    "DEFAULT_MAX_ATTEMPTS",
    "EvidenceQuota",
    "RETRY_POLICY_ID",
    "RunCode",
    "RunReport",
    "RunReportBuilder",
    "RunStatus",
    "SYSTEM_REJECT_TOOL",
    "SideEffect",
    "StepReport",
    "TOOL_SIDE_EFFECTS",
    "build_run_report",
    "create_step_report",
    "map_gateway_error_code",
    "minimal_mode_snapshot",
    "select_overall_code",
    "summarize_readiness",
    "worst_status",
]
