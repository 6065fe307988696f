"""
ticket-evidence — unit tests for run report models and the mode snapshot

File: tests/unit/run_report/test_report_models.py
Last updated: 2026-10-18

Purpose
- Pin the persisted shape of steps, attempt events and the terminal report.

What this test file should cover
- Side-effect table resolution.
- Artifact reference path safety.
- Raw pointer de-duplication in execution order.
- Planned-env parsing and readiness summaries.
"""

from __future__ import annotations

import pytest

from ticket_evidence.domain.codes import HashScope, StorageMode
from ticket_evidence.domain.errors import RunReportError
from ticket_evidence.evidence.items import EvidenceItem
from ticket_evidence.run_report.builder import build_run_report
from ticket_evidence.run_report.mode_snapshot import (
    minimal_mode_snapshot,
    resolve_planned_env,
    summarize_readiness,
)
from ticket_evidence.run_report.models import (
    ArtifactRef,
    AttemptEvent,
    SideEffect,
    create_step_report,
    is_safe_relative_path,
)

T0 = "2026-03-01T10:00:00Z"
T1 = "2026-03-01T10:00:01.500000Z"
POINTER_A = "evidence_store/2026-03-01/aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa_stderr.bin"
POINTER_B = "evidence_store/2026-03-01/bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb_trace.bin"


def _raw_item(pointer: str) -> EvidenceItem:
    return EvidenceItem(
        kind="stderr",
        source="tool:filesystem",
        retrieved_at=T0,
        storage=StorageMode.RAW,
        bytes=10,
        stored_bytes=10,
        truncated=False,
        hash="sha256:" + "1" * 64,
        hash_scope=HashScope.STORED,
        raw_pointer=pointer,
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    ("tool", "side_effect"),
    [
        ("memory", SideEffect.WRITE),
        ("web_search", SideEffect.READ),
        ("filesystem", SideEffect.WRITE),
        ("calculator", SideEffect.UNKNOWN),
    ],
)
def test_create_step_report_resolves_side_effect(tool: str, side_effect: SideEffect) -> None:
    step = create_step_report(
        step_index=0, tool_name=tool, status="ok", started_at=T0, ended_at=T1, duration_ms=1500
    )

    assert step.side_effect is side_effect
    assert step.to_dict()["side_effect"] == side_effect.value
    assert step.started_at == "2026-03-01T10:00:00.000000Z"


@pytest.mark.unit
def test_step_report_rejects_bad_fields() -> None:
    with pytest.raises(RunReportError):
        create_step_report(
            step_index=0, tool_name="x", status="ok", started_at=T0, ended_at=T1, duration_ms=-1
        )
    with pytest.raises(RunReportError):
        create_step_report(
            step_index=0,
            tool_name="x",
            status="ok",
            started_at="not-a-time",
            ended_at=T1,
            duration_ms=1,
        )
    with pytest.raises(ValueError):
        create_step_report(
            step_index=0, tool_name="x", status="maybe", started_at=T0, ended_at=T1, duration_ms=1
        )


@pytest.mark.unit
@pytest.mark.parametrize(
    ("path", "safe"),
    [
        ("debug/lease_debug_v1.json", True),
        ("tool_debug_v1.json", True),
        ("../outside.json", False),
        ("a/./b.json", False),
        ("/abs.json", False),
        ("~/home.json", False),
        ("a\\b.json", False),
        ("a//b.json", False),
        ("", False),
        (None, False),
    ],
)
def test_is_safe_relative_path(path: object, safe: bool) -> None:
    assert is_safe_relative_path(path) is safe


@pytest.mark.unit
def test_artifact_ref_rejects_traversal() -> None:
    assert ArtifactRef(kind="lease_debug_v1", path="lease_debug_v1.json").to_dict() == {
        "kind": "lease_debug_v1",
        "path": "lease_debug_v1.json",
    }
    with pytest.raises(RunReportError):
        ArtifactRef(kind="x", path="../escape.json")
    with pytest.raises(RunReportError):
        ArtifactRef(kind=" ", path="ok.json")


@pytest.mark.unit
def test_attempt_event_normalizes_fields() -> None:
    event = AttemptEvent(
        at=T0,
        type="STEP_END",  # type: ignore[arg-type]
        step_index=1,
        status="error",  # type: ignore[arg-type]
        code="X",
    )

    assert event.to_dict() == {
        "at": "2026-03-01T10:00:00.000000Z",
        "type": "STEP_END",
        "step_index": 1,
        "tool_name": None,
        "status": "error",
        "code": "X",
        "message": None,
    }
    with pytest.raises(RunReportError):
        AttemptEvent(at=T0, type="RETRY")  # type: ignore[arg-type]


@pytest.mark.unit
def test_run_report_to_dict_and_raw_pointers() -> None:
    first = create_step_report(
        step_index=0,
        tool_name="filesystem",
        status="ok",
        started_at=T0,
        ended_at=T0,
        duration_ms=0,
        evidence_items=[_raw_item(POINTER_B), _raw_item(POINTER_A)],
        artifact_refs=[ArtifactRef(kind="tool_debug_v1", path="tool_debug_v1.json")],
    )
    second = create_step_report(
        step_index=1,
        tool_name="memory",
        status="ok",
        started_at=T0,
        ended_at=T1,
        duration_ms=1500,
        evidence_items=[_raw_item(POINTER_B)],
    )

    report = build_run_report(
        ticket_id="T-1",
        terminal_status="ok",
        primary_failure_code=None,
        started_at=T0,
        ended_at=T1,
        duration_ms=1500,
        step_reports=[first, second],
    )

    assert report.raw_pointers() == (POINTER_B, POINTER_A)
    assert [ref.path for ref in report.artifact_refs()] == ["tool_debug_v1.json"]
    payload = report.to_dict()
    assert list(payload) == [
        "version",
        "ticket_id",
        "retry_policy_id",
        "max_attempts",
        "terminal_status",
        "primary_failure_code",
        "started_at",
        "ended_at",
        "duration_ms",
        "step_reports",
        "attempt_events",
        "evidence_quota",
    ]
    assert payload["version"] == "v1"
    assert payload["retry_policy_id"] == "v1_default"
    assert payload["max_attempts"] == 1
    assert "attempt_events" not in payload["step_reports"][0]


@pytest.mark.unit
def test_resolve_planned_env() -> None:
    env = resolve_planned_env(
        {"NO_MCP": "TRUE", "TOOL_ONLY_MODE": "1", "ENABLE_TOOL_DERIVATION": "yes"}
    )

    assert env == {
        "NO_MCP": True,
        "enableToolDerivation": False,
        "toolOnlyMode": True,
        "enableTicketSchemaValidation": False,
    }


@pytest.mark.unit
def test_summarize_readiness_caps_and_sorts() -> None:
    missing = [f"dep_{index:02d}" for index in range(12, 0, -1)] + ["dep_01"]

    summary = summarize_readiness(missing, ["provider_b", "provider_a"])

    assert summary["deps_ready"] is False
    assert summary["total_missing"] == 12
    assert summary["missing_dep_codes"] == [f"dep_{index:02d}" for index in range(1, 11)]
    assert summary["providers_unavailable"] == ["provider_a", "provider_b"]
    assert summarize_readiness()["deps_ready"] is True


@pytest.mark.unit
def test_minimal_mode_snapshot_shape() -> None:
    snapshot = minimal_mode_snapshot({}, as_of=T0)

    assert snapshot["as_of"] == "2026-03-01T10:00:00.000000Z"
    assert set(snapshot) == {"as_of", "env", "cutover", "readiness_summary"}
    assert snapshot["cutover"]["policy_mode"] == "post_cutover"
    assert snapshot["readiness_summary"]["deps_ready"] is True
