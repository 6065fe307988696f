"""
ticket-evidence — unit tests for the run evidence writer

File: tests/unit/manifest/test_writer.py
Last updated: 2026-10-18

Purpose
- Validate that writing a run report always seals the run directory with a manifest and a
  self-hash, and that every failure surfaces as ``EvidenceWriteError`` with a stable code.

What this test file should cover
- Directory layout, artifact kinds, check ordering and the default ``as_of``.
- Raw evidence materialization from a store, including a store rooted at the run directory.
- Refusals: invalid run ids, re-sealing, unmaterialized raw files, hash mismatches, invalid checks.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from ticket_evidence.domain.codes import IntegrityReason
from ticket_evidence.domain.errors import EvidenceWriteError
from ticket_evidence.evidence.policy import attach_evidence
from ticket_evidence.evidence.store import EvidenceStore
from ticket_evidence.manifest.model import ManifestCheck, compute_manifest_self_hash
from ticket_evidence.manifest.verifier import verify_run_directory
from ticket_evidence.manifest.writer import (
    MANIFEST_FILENAME,
    RunEvidenceWriter,
    dump_json_document,
    write_run_evidence,
)
from ticket_evidence.run_report.builder import build_run_report
from ticket_evidence.run_report.models import RunReport, create_step_report
from ticket_evidence.utils.hashing import sha256_file

T0 = "2026-03-01T10:00:00Z"
T1 = "2026-03-01T10:00:02Z"
RUN_ID = "run-01TESTRUN0000000000000000"


def _report(store: EvidenceStore | None = None, *, data: bytes = b"e" * 300) -> RunReport:
    items = []
    if store is not None:
        items.append(
            attach_evidence(
                kind="stderr", source="tool:filesystem", data=data, store=store, retrieved_at=T0
            )
        )
    step = create_step_report(
        step_index=0,
        tool_name="filesystem",
        status="error",
        code="TOOL_EXEC_FAILED",
        started_at=T0,
        ended_at=T1,
        duration_ms=2000,
        evidence_items=items,
    )
    return build_run_report(
        ticket_id="T-1",
        terminal_status="error",
        primary_failure_code="TOOL_EXEC_FAILED",
        started_at=T0,
        ended_at=T1,
        duration_ms=2000,
        step_reports=[step],
    )


def _read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.mark.unit
def test_write_seals_run_directory(tmp_path: Path) -> None:
    store = EvidenceStore(tmp_path / "sandbox")
    report = _report(store)
    run_dir = tmp_path / "runs" / RUN_ID

    paths = write_run_evidence(run_dir, RUN_ID, report, store=store)

    assert paths.report_path == run_dir / "run_report_v1.json"
    assert paths.manifest_path == run_dir / MANIFEST_FILENAME
    assert paths.self_hash_path == run_dir / "manifest_self_hash_v1.json"
    assert paths.artifact_count == 4

    manifest = _read_json(paths.manifest_path)
    assert manifest["run_id"] == RUN_ID
    assert manifest["as_of"] == "2026-03-01T10:00:02.000000Z"
    assert manifest["mode_snapshot_ref"] == "run_report_v1.json"
    pointer = report.raw_pointers()[0]
    assert [(item["kind"], item["path"]) for item in manifest["artifacts"]] == [
        ("evidence_manifest_v1", MANIFEST_FILENAME),
        ("manifest_self_hash_v1", "manifest_self_hash_v1.json"),
        ("raw_evidence", pointer),
        ("run_report_v1", "run_report_v1.json"),
    ]
    assert manifest["checks"] == [
        {"name": "manifest_schema_valid", "ok": True, "reason_codes": []},
        {
            "name": "manifest_self_integrity_ok",
            "ok": True,
            "reason_codes": [],
            "details_ref": "manifest_self_hash_v1.json",
        },
    ]

    self_hash_doc = _read_json(paths.self_hash_path)
    assert self_hash_doc == {"algorithm": "sha256-canonical-json", "value": paths.self_hash}
    assert compute_manifest_self_hash(manifest) == paths.self_hash

    persisted_report = _read_json(paths.report_path)
    assert persisted_report["run_id"] == RUN_ID
    assert persisted_report["terminal_status"] == "error"
    assert (run_dir / pointer).read_bytes() == b"e" * 128
    assert verify_run_directory(run_dir).is_valid


@pytest.mark.unit
def test_listed_hashes_match_bytes_on_disk(tmp_path: Path) -> None:
    store = EvidenceStore(tmp_path / "sandbox")
    run_dir = tmp_path / RUN_ID

    paths = write_run_evidence(run_dir, RUN_ID, _report(store), store=store)

    for artifact in _read_json(paths.manifest_path)["artifacts"]:
        if artifact["kind"] == "evidence_manifest_v1":
            assert artifact["sha256"] is None
            continue
        assert sha256_file(run_dir / artifact["path"]) == artifact["sha256"]


@pytest.mark.unit
def test_extra_artifacts_and_custom_checks(tmp_path: Path) -> None:
    run_dir = tmp_path / RUN_ID
    run_dir.mkdir()
    (run_dir / "lease_debug_v1.json").write_text(dump_json_document({"a": 1}), encoding="utf-8")
    (run_dir / "notes.json").write_text("{}\n", encoding="utf-8")

    paths = write_run_evidence(
        run_dir,
        RUN_ID,
        _report(),
        artifact_kinds={"lease_debug_v1.json": "lease_debug_v1"},
        checks=[
            ManifestCheck(
                name="guard_rejection",
                ok=False,
                reason_codes=("lease_owner_mismatch",),
                details_ref="lease_debug_v1.json",
            ),
            {"name": "manifest_schema_valid", "ok": False, "reason_codes": []},
        ],
        as_of="2026-03-02T00:00:00+02:00",
    )

    manifest = _read_json(paths.manifest_path)
    kinds = {item["path"]: item["kind"] for item in manifest["artifacts"]}
    assert kinds["lease_debug_v1.json"] == "lease_debug_v1"
    assert kinds["notes.json"] == "notes"
    assert manifest["as_of"] == "2026-03-01T22:00:00.000000Z"
    checks = {item["name"]: item for item in manifest["checks"]}
    assert checks["guard_rejection"]["reason_codes"] == ["lease_owner_mismatch"]
    assert checks["manifest_schema_valid"]["ok"] is True
    assert verify_run_directory(run_dir).is_valid


@pytest.mark.unit
def test_store_rooted_at_run_directory(tmp_path: Path) -> None:
    run_dir = tmp_path / RUN_ID
    store = EvidenceStore(run_dir)
    report = _report(store)

    write_run_evidence(run_dir, RUN_ID, report, store=store)

    assert verify_run_directory(run_dir).is_valid


@pytest.mark.unit
@pytest.mark.parametrize("run_id", ["short", "../escape-run", "run/with/slash"])
def test_invalid_run_ids_are_refused(tmp_path: Path, run_id: str) -> None:
    with pytest.raises(EvidenceWriteError):
        write_run_evidence(tmp_path / "x", run_id, _report())
    with pytest.raises(EvidenceWriteError):
        RunEvidenceWriter(tmp_path).run_dir_for(run_id)


@pytest.mark.unit
def test_run_directory_is_write_once(tmp_path: Path) -> None:
    writer = RunEvidenceWriter(tmp_path / "runs")
    writer.write(RUN_ID, _report())

    with pytest.raises(EvidenceWriteError, match="already sealed"):
        writer.write(RUN_ID, _report())


@pytest.mark.unit
def test_report_already_present_is_refused(tmp_path: Path) -> None:
    run_dir = tmp_path / RUN_ID
    run_dir.mkdir()
    (run_dir / "run_report_v1.json").write_text("{}", encoding="utf-8")

    with pytest.raises(EvidenceWriteError, match="already written"):
        write_run_evidence(run_dir, RUN_ID, _report())


@pytest.mark.unit
def test_unmaterialized_raw_evidence_without_store_is_refused(tmp_path: Path) -> None:
    report = _report(EvidenceStore(tmp_path / "sandbox"))

    with pytest.raises(EvidenceWriteError, match="not materialized"):
        write_run_evidence(tmp_path / RUN_ID, RUN_ID, report)


@pytest.mark.unit
def test_store_bytes_changed_after_attach_is_detected(tmp_path: Path) -> None:
    store = EvidenceStore(tmp_path / "sandbox")
    report = _report(store)
    store.resolve(report.raw_pointers()[0]).write_bytes(b"tampered")

    with pytest.raises(EvidenceWriteError) as excinfo:
        write_run_evidence(tmp_path / RUN_ID, RUN_ID, report, store=store)

    assert excinfo.value.code == IntegrityReason.ARTIFACT_SHA_MISMATCH.value


@pytest.mark.unit
def test_invalid_manifest_is_recorded_then_raised(tmp_path: Path) -> None:
    run_dir = tmp_path / RUN_ID

    with pytest.raises(EvidenceWriteError) as excinfo:
        write_run_evidence(
            run_dir,
            RUN_ID,
            _report(),
            checks=[{"name": "custom", "ok": False, "reason_codes": ["not_a_reason"]}],
        )

    assert excinfo.value.code == IntegrityReason.MANIFEST_SCHEMA_INVALID.value
    manifest = _read_json(run_dir / MANIFEST_FILENAME)
    checks = {item["name"]: item for item in manifest["checks"]}
    assert checks["manifest_schema_valid"] == {
        "name": "manifest_schema_valid",
        "ok": False,
        "reason_codes": ["manifest_schema_invalid"],
    }
    assert verify_run_directory(run_dir).reason_codes == ("manifest_schema_invalid",)


@pytest.mark.unit
def test_rejected_seal_keeps_a_matching_self_hash(tmp_path: Path) -> None:
    run_dir = tmp_path / RUN_ID

    with pytest.raises(EvidenceWriteError) as excinfo:
        write_run_evidence(
            run_dir,
            RUN_ID,
            _report(),
            checks=[ManifestCheck(name="extra", ok=True, details_ref="missing.json")],
        )

    assert excinfo.value.code == IntegrityReason.MANIFEST_SCHEMA_INVALID.value
    manifest = _read_json(run_dir / MANIFEST_FILENAME)
    stored = _read_json(run_dir / "manifest_self_hash_v1.json")
    assert stored["value"] == compute_manifest_self_hash(manifest)
    checks = {item["name"]: item for item in manifest["checks"]}
    assert checks["manifest_schema_valid"]["ok"] is False
    assert checks["manifest_schema_valid"]["reason_codes"] == ["details_ref_not_listed"]

    report = verify_run_directory(run_dir)
    assert report.reason_codes == ("details_ref_not_listed",)
    assert "self_hash_mismatch" not in report.errors
