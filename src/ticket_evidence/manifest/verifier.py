"""Independent verification of a sealed run directory.

Reads only what is on disk: the manifest, the self-hash file and every listed artifact. Extra
files that the manifest does not list are tolerated; anything listed must match byte for byte.
A manifest or run report whose shape cannot be walked is reported as ``manifest_schema_invalid``.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ticket_evidence.constants import (
    MANIFEST_KIND,
    MANIFEST_SELF_HASH_FILENAME,
    MANIFEST_SELF_HASH_KIND,
    RUN_REPORT_FILENAME,
    SELF_HASH_ALGORITHM,
)
from ticket_evidence.domain.codes import IntegrityReason
from ticket_evidence.manifest.model import compute_manifest_self_hash, validate_manifest_document
from ticket_evidence.manifest.writer import MANIFEST_FILENAME
from ticket_evidence.utils.hashing import file_digest, is_sha256_hex, relative_posix_to_local

__all__ = ["IntegrityReport", "verify_run_directory"]


@dataclass(frozen=True, slots=True)
class IntegrityReport:
    """Deterministic verification outcome for one run directory."""

    run_dir: Path
    run_id: str | None
    reason_codes: tuple[str, ...]
    missing_paths: tuple[str, ...] = ()
    hash_mismatches: tuple[str, ...] = ()
    unlisted_raw_pointers: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.reason_codes

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_dir": str(self.run_dir),
            "run_id": self.run_id,
            "ok": self.is_valid,
            "reason_codes": list(self.reason_codes),
            "missing_paths": list(self.missing_paths),
            "hash_mismatches": list(self.hash_mismatches),
            "unlisted_raw_pointers": list(self.unlisted_raw_pointers),
            "errors": list(self.errors),
        }


def verify_run_directory(run_dir: str | os.PathLike[str]) -> IntegrityReport:
    """Verify manifest structure, self-hash, listed artifacts and raw pointer coverage.

    Raises ``NotADirectoryError`` when ``run_dir`` is not a directory; every other problem is
    reported through ``IntegrityReport.reason_codes``.
    """

    root = Path(run_dir).expanduser().resolve(strict=True)
    if not root.is_dir():
        raise NotADirectoryError(f"{root} is not a directory")

    reasons: set[str] = set()
    errors: list[str] = []

    manifest = _load_json_object(root / MANIFEST_FILENAME)
    if manifest is None:
        errors.append("manifest_unreadable")
        reasons.add(IntegrityReason.ARTIFACT_MISSING.value)
        reasons.add(IntegrityReason.MANIFEST_SCHEMA_INVALID.value)
        return IntegrityReport(
            run_dir=root,
            run_id=None,
            reason_codes=tuple(sorted(reasons)),
            missing_paths=(MANIFEST_FILENAME,),
            errors=tuple(errors),
        )

    run_id = manifest.get("run_id") if isinstance(manifest.get("run_id"), str) else None

    validation = validate_manifest_document(manifest)
    if not validation.ok:
        reasons.update(validation.reason_codes)
        errors.extend(validation.errors)
    if _count_kind(manifest, MANIFEST_SELF_HASH_KIND) != 1:
        errors.append("self_hash_artifact_not_listed")
        reasons.add(IntegrityReason.MANIFEST_SCHEMA_INVALID.value)

    if not _self_hash_matches(root, manifest, errors):
        reasons.add(IntegrityReason.MANIFEST_SELF_INTEGRITY_FAILED.value)

    missing, mismatched, listed = _check_artifacts(root, manifest)
    if missing:
        reasons.add(IntegrityReason.ARTIFACT_MISSING.value)
    if mismatched:
        reasons.add(IntegrityReason.ARTIFACT_SHA_MISMATCH.value)

    report_errors: list[str] = []
    unlisted = _unlisted_raw_pointers(root, listed, report_errors)
    if unlisted:
        reasons.add(IntegrityReason.RAW_POINTER_NOT_LISTED.value)
    if report_errors:
        errors.extend(report_errors)
        reasons.add(IntegrityReason.MANIFEST_SCHEMA_INVALID.value)

    return IntegrityReport(
        run_dir=root,
        run_id=run_id,
        reason_codes=tuple(sorted(reasons)),
        missing_paths=tuple(missing),
        hash_mismatches=tuple(mismatched),
        unlisted_raw_pointers=tuple(unlisted),
        errors=tuple(errors),
    )


def _load_json_object(path: Path) -> dict[str, Any] | None:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def _self_hash_matches(root: Path, manifest: Mapping[str, Any], errors: list[str]) -> bool:
    self_hash_doc = _load_json_object(root / MANIFEST_SELF_HASH_FILENAME)
    if self_hash_doc is None:
        errors.append("self_hash_unreadable")
        return False
    if self_hash_doc.get("algorithm") != SELF_HASH_ALGORITHM:
        errors.append("self_hash_algorithm_unsupported")
        return False
    expected = self_hash_doc.get("value")
    if not is_sha256_hex(expected):
        errors.append("self_hash_value_invalid")
        return False
    try:
        actual = compute_manifest_self_hash(manifest)
    except (TypeError, ValueError) as exc:
        errors.append(f"self_hash_uncomputable:{exc}")
        return False
    if actual != expected:
        errors.append("self_hash_mismatch")
        return False
    return True


def _check_artifacts(
    root: Path, manifest: Mapping[str, Any]
) -> tuple[list[str], list[str], set[str]]:
    missing: list[str] = []
    mismatched: list[str] = []
    listed: set[str] = set()

    artifacts = manifest.get("artifacts")
    if not isinstance(artifacts, list):
        return missing, mismatched, listed

    for artifact in artifacts:
        if not isinstance(artifact, Mapping) or not isinstance(artifact.get("path"), str):
            continue
        rel_path = artifact["path"]
        listed.add(rel_path)
        try:
            target = relative_posix_to_local(root, rel_path)
        except ValueError:
            mismatched.append(rel_path)
            continue
        if not target.is_file() or target.is_symlink():
            missing.append(rel_path)
            continue
        if artifact.get("kind") == MANIFEST_KIND:
            continue
        try:
            digest = file_digest(target)
        except OSError:
            missing.append(rel_path)
            continue
        if digest.sha256 != artifact.get("sha256") or digest.bytes != artifact.get("bytes"):
            mismatched.append(rel_path)

    return sorted(missing), sorted(mismatched), listed


def _unlisted_raw_pointers(root: Path, listed: set[str], errors: list[str]) -> list[str]:
    report = _load_json_object(root / RUN_REPORT_FILENAME)
    if report is None:
        return []
    steps = report.get("step_reports", [])
    if not isinstance(steps, list):
        errors.append("run_report_step_reports_not_list")
        return []
    pointers: set[str] = set()
    for index, step in enumerate(steps):
        if not isinstance(step, Mapping):
            errors.append(f"run_report_step_not_object:{index}")
            continue
        items = step.get("evidence_items", [])
        if not isinstance(items, list):
            errors.append(f"run_report_evidence_items_not_list:{index}")
            continue
        for item in items:
            if not isinstance(item, Mapping):
                errors.append(f"run_report_evidence_item_not_object:{index}")
                continue
            if isinstance(item.get("raw_pointer"), str):
                pointers.add(item["raw_pointer"])
    return sorted(pointer for pointer in pointers if pointer not in listed)


def _count_kind(manifest: Mapping[str, Any], kind: str) -> int:
    artifacts = manifest.get("artifacts")
    if not isinstance(artifacts, list):
        return 0
    return sum(
        1
        for artifact in artifacts
        if isinstance(artifact, Mapping) and artifact.get("kind") == kind
    )
