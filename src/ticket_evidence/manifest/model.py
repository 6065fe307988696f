"""
ticket-evidence — evidence manifest document model

File: src/ticket_evidence/manifest/model.py
Last updated: 2026-10-18

Purpose
- Pure (no IO) helpers for the ``evidence_manifest_v1`` document: normalization, structural
  validation and the self-hash computation shared by the writer and every verifier.

What should be included in this file
- ``ManifestArtifact`` / ``ManifestCheck`` value objects.
- ``normalize_artifacts`` / ``normalize_checks`` deterministic ordering rules.
- ``validate_manifest_document`` returning stable integrity reason codes.
- ``compute_manifest_self_hash`` (manifest entry hash nulled, self-hash entries removed).

Functional requirements
- Artifacts are de-duplicated by path (first wins) and sorted by ``(kind, path)``.
- Checks are de-duplicated by name (first wins), sorted by name, reason codes sorted and unique.
- Only the manifest's own artifact entry may carry a null ``sha256``.
- Self-hash computation is idempotent with respect to stray self-hash entries.

Non-functional requirements
- Ordering uses plain code-point comparison so independent implementations agree.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Final

from ticket_evidence.constants import (
    MANIFEST_KIND,
    MANIFEST_SELF_HASH_KIND,
    MANIFEST_VERSION,
    MIN_RUN_ID_LENGTH,
    RUN_REPORT_FILENAME,
    RUN_REPORT_KIND,
)
from ticket_evidence.domain.codes import IntegrityReason, is_evidence_reason
from ticket_evidence.evidence.canonical import canonical_sha256
from ticket_evidence.run_report.models import is_safe_relative_path
from ticket_evidence.utils.timestamps import parse_utc_timestamp

DEFAULT_MODE_SNAPSHOT_REF: Final[str] = RUN_REPORT_FILENAME
SELF_INTEGRITY_CHECK: Final[str] = "manifest_self_integrity_ok"
SCHEMA_VALID_CHECK: Final[str] = "manifest_schema_valid"

_SHA256_HEX_RE: Final[re.Pattern[str]] = re.compile(r"^[a-f0-9]{64}$")
_DOCUMENT_KEYS: Final[frozenset[str]] = frozenset(
    {"version", "run_id", "as_of", "mode_snapshot_ref", "artifacts", "checks"}
)
_ARTIFACT_KEYS: Final[frozenset[str]] = frozenset({"kind", "path", "sha256", "bytes"})
_CHECK_REQUIRED_KEYS: Final[frozenset[str]] = frozenset({"name", "ok", "reason_codes"})
_CHECK_KEYS: Final[frozenset[str]] = _CHECK_REQUIRED_KEYS | {"details_ref"}

_ERROR_PREFIX_REASONS: Final[tuple[tuple[str, IntegrityReason], ...]] = (
    ("duplicate_artifact_path", IntegrityReason.DUPLICATE_ARTIFACT_PATH),
    ("duplicate_check_name", IntegrityReason.DUPLICATE_CHECK_NAME),
    ("mode_snapshot_ref_not_listed", IntegrityReason.MODE_SNAPSHOT_REF_NOT_LISTED),
    ("details_ref_not_listed", IntegrityReason.DETAILS_REF_NOT_LISTED),
)

__all__ = [
    "DEFAULT_MODE_SNAPSHOT_REF",
    "ManifestArtifact",
    "ManifestCheck",
    "ManifestValidation",
    "SCHEMA_VALID_CHECK",
    "SELF_INTEGRITY_CHECK",
    "compute_manifest_self_hash",
    "normalize_artifacts",
    "normalize_checks",
    "validate_manifest_document",
]


@dataclass(frozen=True, slots=True)
class ManifestArtifact:
    kind: str
    path: str
    sha256: str | None
    bytes: int | None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "path": self.path, "sha256": self.sha256, "bytes": self.bytes}


@dataclass(frozen=True, slots=True)
class ManifestCheck:
    """A named pass/fail assertion recorded in the manifest."""

    name: str
    ok: bool
    reason_codes: tuple[str, ...] = ()
    details_ref: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "ok": self.ok,
            "reason_codes": sorted(set(self.reason_codes)),
        }
        if self.details_ref:
            payload["details_ref"] = self.details_ref
        return payload


@dataclass(frozen=True, slots=True)
class ManifestValidation:
    ok: bool
    errors: tuple[str, ...] = ()
    reason_codes: tuple[str, ...] = ()


def normalize_artifacts(
    artifacts: Iterable[ManifestArtifact | Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """De-duplicate by path (first wins) and sort by ``(kind, path)``."""

    by_path: dict[str, dict[str, Any]] = {}
    for artifact in artifacts:
        entry = artifact.to_dict() if isinstance(artifact, ManifestArtifact) else dict(artifact)
        kind = entry.get("kind")
        path = entry.get("path")
        if not isinstance(kind, str) or not kind or not isinstance(path, str) or not path:
            continue
        by_path.setdefault(
            path,
            {
                "kind": kind,
                "path": path,
                "sha256": entry.get("sha256"),
                "bytes": entry.get("bytes"),
            },
        )
    return sorted(by_path.values(), key=lambda item: (item["kind"], item["path"]))


def normalize_checks(checks: Iterable[ManifestCheck | Mapping[str, Any]]) -> list[dict[str, Any]]:
    """De-duplicate by name (first wins), sort by name, and canonicalize reason codes."""

    by_name: dict[str, dict[str, Any]] = {}
    for check in checks:
        entry = check.to_dict() if isinstance(check, ManifestCheck) else dict(check)
        name = entry.get("name")
        if not isinstance(name, str) or not name:
            continue
        raw_reasons = entry.get("reason_codes") or ()
        reasons = sorted({str(reason) for reason in raw_reasons if reason})
        normalized: dict[str, Any] = {
            "name": name,
            "ok": bool(entry.get("ok")),
            "reason_codes": reasons,
        }
        details_ref = entry.get("details_ref")
        if isinstance(details_ref, str) and details_ref:
            normalized["details_ref"] = details_ref
        by_name.setdefault(name, normalized)
    return [by_name[name] for name in sorted(by_name)]


def compute_manifest_self_hash(document: Mapping[str, Any]) -> str:
    """Hash ``document`` with self-hash entries removed and the manifest's own sha256 nulled.

    The input is never mutated; calling this on a manifest that already lists its self-hash
    artifact yields the same digest as on the placeholder manifest.
    """

    material = copy.deepcopy(dict(document))
    artifacts = material.get("artifacts")
    kept: list[Any] = []
    if isinstance(artifacts, list):
        for artifact in artifacts:
            if isinstance(artifact, Mapping) and artifact.get("kind") == MANIFEST_SELF_HASH_KIND:
                continue
            if isinstance(artifact, dict) and artifact.get("kind") == MANIFEST_KIND:
                artifact["sha256"] = None
            kept.append(artifact)
    material["artifacts"] = kept
    return canonical_sha256(material)


def validate_manifest_document(document: object) -> ManifestValidation:
    """Structural and cross-field validation; never raises on malformed input."""

    if not isinstance(document, Mapping):
        return ManifestValidation(
            ok=False,
            errors=("manifest_not_object",),
            reason_codes=(IntegrityReason.MANIFEST_SCHEMA_INVALID.value,),
        )

    errors: list[str] = []
    missing = sorted(_DOCUMENT_KEYS - set(document))
    errors.extend(f"missing_field:{key}" for key in missing)
    errors.extend(f"unknown_field:{key}" for key in sorted(set(document) - _DOCUMENT_KEYS))

    if "version" in document and document["version"] != MANIFEST_VERSION:
        errors.append("version_unsupported")
    run_id = document.get("run_id")
    if "run_id" in document and (not isinstance(run_id, str) or len(run_id) < MIN_RUN_ID_LENGTH):
        errors.append("run_id_invalid")
    if "as_of" in document and not _is_timestamp(document["as_of"]):
        errors.append("as_of_invalid")

    raw_artifacts = document.get("artifacts")
    if "artifacts" in document and not isinstance(raw_artifacts, list):
        errors.append("artifacts_not_list")
        raw_artifacts = []
    raw_checks = document.get("checks")
    if "checks" in document and not isinstance(raw_checks, list):
        errors.append("checks_not_list")
        raw_checks = []

    artifacts_by_path = _validate_artifacts(raw_artifacts or [], errors)
    _validate_mode_snapshot_ref(document.get("mode_snapshot_ref"), artifacts_by_path, errors)
    _validate_checks(raw_checks or [], artifacts_by_path, errors)

    return ManifestValidation(
        ok=not errors,
        errors=tuple(errors),
        reason_codes=_reason_codes_for(errors),
    )


def _validate_artifacts(
    artifacts: list[Any], errors: list[str]
) -> dict[str, Mapping[str, Any]]:
    by_path: dict[str, Mapping[str, Any]] = {}
    manifest_entries = 0
    self_hash_entries = 0

    for index, artifact in enumerate(artifacts):
        if not isinstance(artifact, Mapping):
            errors.append(f"artifact_not_object:{index}")
            continue
        if set(artifact) != _ARTIFACT_KEYS:
            errors.append(f"artifact_fields_invalid:{index}")

        kind = artifact.get("kind")
        path = artifact.get("path")
        if not isinstance(kind, str) or not kind:
            errors.append(f"artifact_kind_invalid:{index}")
            kind = ""
        if not is_safe_relative_path(path):
            errors.append(f"artifact_path_invalid:{index}")
        elif path in by_path:
            errors.append(f"duplicate_artifact_path:{path}")
        else:
            by_path[path] = artifact

        sha = artifact.get("sha256")
        size = artifact.get("bytes")
        if kind == MANIFEST_KIND:
            manifest_entries += 1
            if sha is not None:
                errors.append("evidence_manifest_sha256_must_be_null")
            if size is not None and not _is_non_negative_int(size):
                errors.append(f"artifact_bytes_invalid:{kind}")
            continue

        if kind == MANIFEST_SELF_HASH_KIND:
            self_hash_entries += 1
        if sha is None:
            errors.append(f"artifact_sha256_null_not_allowed:{kind}")
        elif not isinstance(sha, str) or _SHA256_HEX_RE.fullmatch(sha) is None:
            errors.append(f"artifact_sha256_invalid:{kind}")
        if not _is_non_negative_int(size):
            errors.append(f"artifact_bytes_invalid:{kind}")

    if manifest_entries != 1:
        errors.append("manifest_entry_count_invalid")
    if self_hash_entries > 1:
        errors.append("self_hash_entry_count_invalid")
    return by_path


def _validate_mode_snapshot_ref(
    mode_ref: object,
    artifacts_by_path: Mapping[str, Mapping[str, Any]],
    errors: list[str],
) -> None:
    if not isinstance(mode_ref, str) or mode_ref not in artifacts_by_path:
        errors.append("mode_snapshot_ref_not_listed")
        return
    if artifacts_by_path[mode_ref].get("kind") != RUN_REPORT_KIND:
        errors.append("mode_snapshot_ref_not_run_report_v1")


def _validate_checks(
    checks: list[Any],
    artifacts_by_path: Mapping[str, Mapping[str, Any]],
    errors: list[str],
) -> None:
    names: set[str] = set()
    for index, check in enumerate(checks):
        if not isinstance(check, Mapping):
            errors.append(f"check_not_object:{index}")
            continue
        keys = set(check)
        if not _CHECK_REQUIRED_KEYS <= keys or not keys <= _CHECK_KEYS:
            errors.append(f"check_fields_invalid:{index}")

        name = check.get("name")
        if not isinstance(name, str) or not name:
            errors.append(f"check_name_invalid:{index}")
            continue
        if name in names:
            errors.append(f"duplicate_check_name:{name}")
        names.add(name)

        if not isinstance(check.get("ok"), bool):
            errors.append(f"check_ok_invalid:{name}")

        details_ref = check.get("details_ref")
        if details_ref is not None:
            if not isinstance(details_ref, str) or not details_ref:
                errors.append(f"check_details_ref_invalid:{name}")
            elif details_ref not in artifacts_by_path:
                errors.append(f"details_ref_not_listed:{name}")

        reasons = check.get("reason_codes")
        if not isinstance(reasons, list):
            errors.append(f"check_reason_codes_invalid:{name}")
            continue
        for reason in reasons:
            if not is_evidence_reason(reason):
                errors.append(f"unknown_reason_code:{name}:{reason}")


def _reason_codes_for(errors: Iterable[str]) -> tuple[str, ...]:
    reasons: set[str] = set()
    for error in errors:
        for prefix, reason in _ERROR_PREFIX_REASONS:
            if error.startswith(prefix):
                reasons.add(reason.value)
                break
        else:
            reasons.add(IntegrityReason.MANIFEST_SCHEMA_INVALID.value)
    return tuple(sorted(reasons))


def _is_timestamp(value: object) -> bool:
    try:
        parse_utc_timestamp(value)
    except ValueError:
        return False
    return True


def _is_non_negative_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
