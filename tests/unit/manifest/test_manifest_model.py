"""
ticket-evidence — unit tests for the manifest document model

File: tests/unit/manifest/test_manifest_model.py
Last updated: 2026-10-18

Purpose
- Pin normalization order, structural validation reason codes, and self-hash exclusions.

What this test file should cover
- First-wins de-duplication and (kind, path) ordering.
- Each cross-field rule mapped to its integrity reason.
- Property: the self-hash ignores self-hash entries and the manifest's own sha256.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ticket_evidence.manifest.model import (
    ManifestArtifact,
    ManifestCheck,
    compute_manifest_self_hash,
    normalize_artifacts,
    normalize_checks,
    validate_manifest_document,
)
from ticket_evidence.manifest.writer import MANIFEST_FILENAME

T0 = "2026-03-01T10:00:00.000000Z"
SHA_A = "a" * 64
SHA_B = "b" * 64


def _manifest_entry(sha256: str | None = None) -> dict[str, Any]:
    return {
        "kind": "evidence_manifest_v1",
        "path": MANIFEST_FILENAME,
        "sha256": sha256,
        "bytes": None,
    }


def _document(**overrides: Any) -> dict[str, Any]:
    document: dict[str, Any] = {
        "version": "v1",
        "run_id": "run-0001",
        "as_of": T0,
        "mode_snapshot_ref": "run_report_v1.json",
        "artifacts": [
            _manifest_entry(),
            {"kind": "run_report_v1", "path": "run_report_v1.json", "sha256": SHA_A, "bytes": 10},
        ],
        "checks": [{"name": "manifest_schema_valid", "ok": True, "reason_codes": []}],
    }
    document.update(overrides)
    return document


@pytest.mark.unit
def test_normalize_artifacts_dedupes_by_path_and_sorts() -> None:
    normalized = normalize_artifacts(
        [
            {"kind": "z_kind", "path": "b.json", "sha256": SHA_A, "bytes": 1},
            ManifestArtifact(kind="a_kind", path="c.json", sha256=SHA_B, bytes=2),
            {"kind": "other", "path": "b.json", "sha256": SHA_B, "bytes": 9},
            {"kind": "a_kind", "path": "a.json", "sha256": SHA_A, "bytes": 3},
            {"kind": "", "path": "skipped.json"},
        ]
    )

    assert [(item["kind"], item["path"]) for item in normalized] == [
        ("a_kind", "a.json"),
        ("a_kind", "c.json"),
        ("z_kind", "b.json"),
    ]
    assert normalized[2]["bytes"] == 1


@pytest.mark.unit
def test_normalize_artifacts_uses_code_point_order() -> None:
    normalized = normalize_artifacts(
        [
            {"kind": "k", "path": "b.json", "sha256": SHA_A, "bytes": 1},
            {"kind": "k", "path": "B.json", "sha256": SHA_A, "bytes": 1},
            {"kind": "k", "path": "_.json", "sha256": SHA_A, "bytes": 1},
        ]
    )

    assert [item["path"] for item in normalized] == ["B.json", "_.json", "b.json"]


@pytest.mark.unit
def test_normalize_checks_canonicalizes_reasons() -> None:
    normalized = normalize_checks(
        [
            {"name": "zeta", "ok": 1, "reason_codes": ["b", "a", "b", ""]},
            ManifestCheck(name="alpha", ok=False, reason_codes=("x",), details_ref="d.json"),
            {"name": "zeta", "ok": False, "reason_codes": []},
            {"name": "", "ok": True},
        ]
    )

    assert normalized == [
        {"name": "alpha", "ok": False, "reason_codes": ["x"], "details_ref": "d.json"},
        {"name": "zeta", "ok": True, "reason_codes": ["a", "b"]},
    ]


@pytest.mark.unit
def test_valid_document() -> None:
    result = validate_manifest_document(_document())

    assert result.ok
    assert result.errors == ()
    assert result.reason_codes == ()


@pytest.mark.unit
@pytest.mark.parametrize(
    ("document", "reason"),
    [
        (_document(mode_snapshot_ref="missing.json"), "mode_snapshot_ref_not_listed"),
        (
            _document(
                artifacts=[
                    *_document()["artifacts"],
                    {"kind": "x", "path": "run_report_v1.json", "sha256": SHA_B, "bytes": 1},
                ]
            ),
            "duplicate_artifact_path",
        ),
        (
            _document(
                checks=[
                    {"name": "c", "ok": True, "reason_codes": []},
                    {"name": "c", "ok": False, "reason_codes": []},
                ]
            ),
            "duplicate_check_name",
        ),
        (
            _document(
                checks=[{"name": "c", "ok": False, "reason_codes": [], "details_ref": "x.json"}]
            ),
            "details_ref_not_listed",
        ),
        (
            _document(checks=[{"name": "c", "ok": False, "reason_codes": ["made_up"]}]),
            "manifest_schema_invalid",
        ),
        (_document(version="v2"), "manifest_schema_invalid"),
        (_document(run_id="short"), "manifest_schema_invalid"),
        (_document(as_of="yesterday"), "manifest_schema_invalid"),
        (_document(extra=True), "manifest_schema_invalid"),
        (
            _document(
                artifacts=[
                    _manifest_entry(SHA_A),
                    _document()["artifacts"][1],
                ]
            ),
            "manifest_schema_invalid",
        ),
        (
            _document(
                artifacts=[
                    *_document()["artifacts"],
                    {"kind": "dbg", "path": "../escape.json", "sha256": SHA_A, "bytes": 1},
                ]
            ),
            "manifest_schema_invalid",
        ),
        (_document(artifacts=[_document()["artifacts"][1]]), "manifest_schema_invalid"),
        ("not a document", "manifest_schema_invalid"),
    ],
)
def test_invalid_documents_map_to_reason_codes(document: object, reason: str) -> None:
    result = validate_manifest_document(document)

    assert not result.ok
    assert reason in result.reason_codes


@pytest.mark.unit
def test_runtime_reason_codes_are_accepted_in_checks() -> None:
    document = _document(
        checks=[{"name": "system_rejection", "ok": False, "reason_codes": ["unknown_tool"]}]
    )

    assert validate_manifest_document(document).ok


@pytest.mark.unit
def test_self_hash_does_not_mutate_input() -> None:
    document = _document()
    document["artifacts"][0]["sha256"] = SHA_B
    snapshot = copy.deepcopy(document)

    compute_manifest_self_hash(document)

    assert document == snapshot


_artifact_strategy = st.fixed_dictionaries(
    {
        "kind": st.sampled_from(["run_report_v1", "raw_evidence", "tool_debug_v1"]),
        "path": st.text(alphabet="abcdefgh_/", min_size=1, max_size=12),
        "sha256": st.sampled_from([SHA_A, SHA_B]),
        "bytes": st.integers(min_value=0, max_value=10_000),
    }
)


@pytest.mark.unit
@settings(max_examples=100, derandomize=True, deadline=None)
@given(
    artifacts=st.lists(_artifact_strategy, max_size=6),
    self_hash_sha=st.sampled_from([SHA_A, SHA_B]),
    manifest_sha=st.one_of(st.none(), st.sampled_from([SHA_A, SHA_B])),
)
def test_property_self_hash_ignores_its_own_entries(
    artifacts: list[dict[str, Any]], self_hash_sha: str, manifest_sha: str | None
) -> None:
    placeholder = _document(
        artifacts=[
            _manifest_entry(),
            *artifacts,
        ]
    )
    sealed = copy.deepcopy(placeholder)
    sealed["artifacts"][0]["sha256"] = manifest_sha
    sealed["artifacts"].append(
        {"kind": "manifest_self_hash_v1", "path": "self.json", "sha256": self_hash_sha, "bytes": 7}
    )

    assert compute_manifest_self_hash(sealed) == compute_manifest_self_hash(placeholder)
    assert compute_manifest_self_hash(sealed) == compute_manifest_self_hash(sealed)


@pytest.mark.unit
def test_self_hash_changes_when_content_changes() -> None:
    base = _document()
    changed = _document(as_of="2026-03-01T10:00:01.000000Z")

    assert compute_manifest_self_hash(base) != compute_manifest_self_hash(changed)
