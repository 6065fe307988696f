"""
ticket-evidence — run evidence writer (report + manifest + self-hash)

File: src/ticket_evidence/manifest/writer.py
Last updated: 2026-10-18

Purpose
- The only code path allowed to write ``evidence_manifest_v1.json``. Writing a run report always
  emits the manifest and its self-hash in the same call.

Run directory layout
- ``<run_dir>/run_report_v1.json`` (write-once)
- ``<run_dir>/evidence_store/<yyyy-mm-dd>/<id>_<kind>.bin`` (raw evidence referenced by the report)
- ``<run_dir>/<extra>.json`` (debug payloads written by rejection emitters before this call)
- ``<run_dir>/evidence_manifest_v1.json``
- ``<run_dir>/manifest_self_hash_v1.json``

Write order
1. Report (exclusive create, so a run id is never written twice).
2. Raw evidence copied out of the ``EvidenceStore`` and re-hashed.
3. File enumeration and per-file sha256/bytes.
4. Structural validation of the document as sealed; a failure adds a failing
   ``manifest_schema_valid`` check before hashing.
5. Placeholder manifest (own entry ``sha256=null``, ``bytes=null``).
6. Self-hash over the canonical manifest with the two documented exclusions.
7. Self-hash file, then the final manifest listing the self-hash artifact.
8. Re-read both files and confirm every recorded digest against the bytes on disk.

Failure semantics
- Any ``OSError`` is wrapped in ``EvidenceWriteError`` (``EVIDENCE_WRITE_FAILED``) and propagates.
- Partial directories are left in place; a retry must use a new run id.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Final

from ticket_evidence.constants import (
    MANIFEST_KIND,
    MANIFEST_SELF_HASH_FILENAME,
    MANIFEST_SELF_HASH_KIND,
    MANIFEST_VERSION,
    RAW_EVIDENCE_KIND,
    RUN_REPORT_FILENAME,
    RUN_REPORT_KIND,
    SELF_HASH_ALGORITHM,
)
from ticket_evidence.domain.codes import EvidenceErrorCode, IntegrityReason, StorageMode
from ticket_evidence.domain.errors import EvidenceWriteError, RawPointerError
from ticket_evidence.domain.ids import validate_run_id
from ticket_evidence.evidence.items import EvidenceItem
from ticket_evidence.evidence.pointers import validate_raw_pointer
from ticket_evidence.evidence.store import EvidenceStore
from ticket_evidence.manifest.model import (
    DEFAULT_MODE_SNAPSHOT_REF,
    SCHEMA_VALID_CHECK,
    SELF_INTEGRITY_CHECK,
    ManifestCheck,
    compute_manifest_self_hash,
    normalize_artifacts,
    normalize_checks,
    validate_manifest_document,
)
from ticket_evidence.observability.logging import get_logger
from ticket_evidence.run_report.models import RunReport
from ticket_evidence.utils.fs import atomic_write, write_exclusive
from ticket_evidence.utils.hashing import (
    SHA256_TAG_PREFIX,
    file_digest,
    iter_regular_files,
    relative_posix_to_local,
    sha256_bytes,
)
from ticket_evidence.utils.timestamps import format_utc_timestamp

MANIFEST_FILENAME: Final[str] = "evidence_manifest_v1.json"

_RESERVED_FILENAMES: Final[frozenset[str]] = frozenset(
    {MANIFEST_FILENAME, MANIFEST_SELF_HASH_FILENAME}
)
_JSON_SUFFIX: Final[str] = ".json"

__all__ = [
    "MANIFEST_FILENAME",
    "RunEvidencePaths",
    "RunEvidenceWriter",
    "compute_manifest_self_hash",
    "dump_json_document",
    "write_run_evidence",
]


@dataclass(frozen=True, slots=True)
class RunEvidencePaths:
    """Where one run's evidence landed, plus the digest recorded in the self-hash file."""

    run_id: str
    run_dir: Path
    report_path: Path
    manifest_path: Path
    self_hash_path: Path
    self_hash: str
    artifact_count: int


def dump_json_document(payload: Mapping[str, Any]) -> str:
    """Stable on-disk JSON rendering shared by every file in a run directory."""

    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False) + "\n"


def write_run_evidence(
    run_dir: str | os.PathLike[str],
    run_id: str,
    report: RunReport,
    *,
    store: EvidenceStore | None = None,
    checks: Iterable[ManifestCheck | Mapping[str, Any]] = (),
    artifact_kinds: Mapping[str, str] | None = None,
    as_of: str | datetime | None = None,
    logger: Any | None = None,
) -> RunEvidencePaths:
    """Persist ``report`` into ``run_dir`` and seal the directory with manifest + self-hash.

    ``artifact_kinds`` maps run-relative paths of files already present in ``run_dir`` to their
    manifest kind; unmapped files take their file stem as kind.
    """

    log = logger or get_logger(__name__)
    try:
        validate_run_id(run_id)
    except ValueError as exc:
        raise EvidenceWriteError(str(exc)) from exc

    root = Path(run_dir)
    manifest_path = root / MANIFEST_FILENAME
    self_hash_path = root / MANIFEST_SELF_HASH_FILENAME
    report_path = root / RUN_REPORT_FILENAME
    effective_as_of = format_utc_timestamp(as_of if as_of is not None else report.ended_at)

    try:
        root.mkdir(parents=True, exist_ok=True)
        if manifest_path.exists() or self_hash_path.exists():
            raise EvidenceWriteError(f"run directory is already sealed: {root}")

        report_payload = {**report.to_dict(), "run_id": run_id}
        try:
            write_exclusive(report_path, dump_json_document(report_payload))
        except FileExistsError as exc:
            raise EvidenceWriteError(f"run report already written for run {run_id!r}") from exc

        raw_paths = _materialize_raw_evidence(root, report, store)

        kinds = {RUN_REPORT_FILENAME: RUN_REPORT_KIND}
        kinds.update({path: RAW_EVIDENCE_KIND for path in raw_paths})
        if artifact_kinds:
            kinds.update(artifact_kinds)
        artifacts = _enumerate_artifacts(root, kinds)
        artifacts.append(
            {"kind": MANIFEST_KIND, "path": MANIFEST_FILENAME, "sha256": None, "bytes": None}
        )

        all_checks: list[ManifestCheck | Mapping[str, Any]] = [
            ManifestCheck(
                name=SELF_INTEGRITY_CHECK, ok=True, details_ref=MANIFEST_SELF_HASH_FILENAME
            ),
            ManifestCheck(name=SCHEMA_VALID_CHECK, ok=True),
        ]
        all_checks.extend(
            check
            for check in checks
            if _check_name(check) not in {SELF_INTEGRITY_CHECK, SCHEMA_VALID_CHECK}
        )

        document: dict[str, Any] = {
            "version": MANIFEST_VERSION,
            "run_id": run_id,
            "as_of": effective_as_of,
            "mode_snapshot_ref": DEFAULT_MODE_SNAPSHOT_REF,
            "artifacts": normalize_artifacts(artifacts),
            "checks": normalize_checks(all_checks),
        }

        # Validated as it will be sealed; the failing schema check must be in place before
        # hashing so the self-hash still matches what lands on disk.
        validation = validate_manifest_document(
            {
                **document,
                "artifacts": normalize_artifacts(
                    [*document["artifacts"], _self_hash_artifact("0" * 64, 0)]
                ),
            }
        )
        if not validation.ok:
            document["checks"] = normalize_checks(
                [
                    ManifestCheck(
                        name=SCHEMA_VALID_CHECK,
                        ok=False,
                        reason_codes=validation.reason_codes,
                    ),
                    *document["checks"],
                ]
            )

        # Placeholder pass: the manifest cannot know its own digest yet.
        atomic_write(manifest_path, dump_json_document(document))

        self_hash = compute_manifest_self_hash(document)
        write_exclusive(
            self_hash_path,
            dump_json_document({"algorithm": SELF_HASH_ALGORITHM, "value": self_hash}),
        )
        self_hash_digest = file_digest(self_hash_path)
        document["artifacts"] = normalize_artifacts(
            [
                *document["artifacts"],
                _self_hash_artifact(self_hash_digest.sha256, self_hash_digest.bytes),
            ]
        )

        atomic_write(manifest_path, dump_json_document(document))
        if not validation.ok:
            log.error(
                "evidence_manifest_invalid",
                run_id=run_id,
                errors=list(validation.errors),
            )
            raise EvidenceWriteError(
                "manifest failed validation: " + "|".join(validation.errors),
                code=IntegrityReason.MANIFEST_SCHEMA_INVALID.value,
            )

        _confirm_on_disk(root, manifest_path, self_hash_path)
    except OSError as exc:
        log.error("run_evidence_write_failed", run_id=run_id, run_dir=str(root), error=str(exc))
        raise EvidenceWriteError(
            f"failed writing evidence for run {run_id!r}: {exc}",
            code=EvidenceErrorCode.WRITE_FAILED.value,
        ) from exc

    log.info(
        "run_evidence_written",
        run_id=run_id,
        run_dir=str(root),
        terminal_status=str(report.terminal_status),
        artifact_count=len(document["artifacts"]),
    )
    return RunEvidencePaths(
        run_id=run_id,
        run_dir=root,
        report_path=report_path,
        manifest_path=manifest_path,
        self_hash_path=self_hash_path,
        self_hash=self_hash,
        artifact_count=len(document["artifacts"]),
    )


class RunEvidenceWriter:
    """Writer bound to a runs root: each run id owns ``<runs_root>/<run_id>/``."""

    def __init__(
        self,
        runs_root: str | os.PathLike[str],
        *,
        store: EvidenceStore | None = None,
        logger: Any | None = None,
    ) -> None:
        self._runs_root = Path(runs_root)
        self._store = store
        self._log = logger or get_logger(__name__)

    @property
    def runs_root(self) -> Path:
        return self._runs_root

    def run_dir_for(self, run_id: str) -> Path:
        try:
            validate_run_id(run_id)
        except ValueError as exc:
            raise EvidenceWriteError(str(exc)) from exc
        return self._runs_root / run_id

    def write(
        self,
        run_id: str,
        report: RunReport,
        *,
        checks: Iterable[ManifestCheck | Mapping[str, Any]] = (),
        artifact_kinds: Mapping[str, str] | None = None,
        as_of: str | datetime | None = None,
    ) -> RunEvidencePaths:
        return write_run_evidence(
            self.run_dir_for(run_id),
            run_id,
            report,
            store=self._store,
            checks=checks,
            artifact_kinds=artifact_kinds,
            as_of=as_of,
            logger=self._log,
        )


def _materialize_raw_evidence(
    root: Path, report: RunReport, store: EvidenceStore | None
) -> list[str]:
    """Copy each raw item into ``root`` at its pointer path; return the run-relative paths."""

    paths: list[str] = []
    seen: set[str] = set()
    for item in report.iter_evidence_items():
        if item.storage is not StorageMode.RAW or item.raw_pointer is None:
            continue
        pointer = item.raw_pointer
        if pointer in seen:
            continue
        seen.add(pointer)
        if not validate_raw_pointer(pointer).ok:
            raise EvidenceWriteError(f"invalid raw pointer in report: {pointer!r}")

        target = relative_posix_to_local(root, pointer)
        if store is None:
            if not target.is_file():
                raise EvidenceWriteError(
                    f"raw evidence {pointer!r} is not materialized and no store was given"
                )
            _check_item_hash(item, target.read_bytes())
        else:
            try:
                source = store.resolve(pointer)
            except RawPointerError as exc:
                raise EvidenceWriteError(str(exc), code=exc.code) from exc
            data = source.read_bytes()
            _check_item_hash(item, data)
            # A store rooted at the run directory already holds the file in place.
            if not (target.is_file() and target.resolve() == source):
                target.parent.mkdir(parents=True, exist_ok=True)
                write_exclusive(target, data)
        paths.append(pointer)
    return paths


def _check_item_hash(item: EvidenceItem, data: bytes) -> None:
    if item.hash is None or not item.hash.startswith(SHA256_TAG_PREFIX):
        return
    if item.hash[len(SHA256_TAG_PREFIX) :] != sha256_bytes(data):
        raise EvidenceWriteError(
            f"raw evidence {item.raw_pointer!r} does not match its recorded hash",
            code=IntegrityReason.ARTIFACT_SHA_MISMATCH.value,
        )


def _enumerate_artifacts(root: Path, kinds: Mapping[str, str]) -> list[dict[str, Any]]:
    artifacts: list[dict[str, Any]] = []
    for relative, absolute in iter_regular_files(root):
        if relative in _RESERVED_FILENAMES:
            continue
        digest = file_digest(absolute)
        artifacts.append(
            {
                "kind": kinds.get(relative) or _default_kind(relative),
                "path": relative,
                "sha256": digest.sha256,
                "bytes": digest.bytes,
            }
        )
    return artifacts


def _default_kind(relative: str) -> str:
    name = relative.rsplit("/", 1)[-1]
    return name[: -len(_JSON_SUFFIX)] if name.endswith(_JSON_SUFFIX) else name


def _check_name(check: ManifestCheck | Mapping[str, Any]) -> object:
    return check.name if isinstance(check, ManifestCheck) else check.get("name")


def _self_hash_artifact(sha256: str, size: int) -> dict[str, Any]:
    return {
        "kind": MANIFEST_SELF_HASH_KIND,
        "path": MANIFEST_SELF_HASH_FILENAME,
        "sha256": sha256,
        "bytes": size,
    }


def _confirm_on_disk(root: Path, manifest_path: Path, self_hash_path: Path) -> None:
    """Re-read the sealed files and compare every recorded digest with the bytes on disk."""

    manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    self_hash_doc = json.loads(self_hash_path.read_text(encoding="utf-8"))
    if compute_manifest_self_hash(manifest) != self_hash_doc.get("value"):
        raise EvidenceWriteError(
            "manifest self-hash does not match the manifest on disk",
            code=IntegrityReason.MANIFEST_SELF_INTEGRITY_FAILED.value,
        )

    for artifact in manifest["artifacts"]:
        if artifact["kind"] == MANIFEST_KIND:
            continue
        target = relative_posix_to_local(root, artifact["path"])
        if not target.is_file():
            raise EvidenceWriteError(
                f"listed artifact is missing: {artifact['path']}",
                code=IntegrityReason.ARTIFACT_MISSING.value,
            )
        digest = file_digest(target)
        if digest.sha256 != artifact["sha256"] or digest.bytes != artifact["bytes"]:
            raise EvidenceWriteError(
                f"artifact bytes changed during write: {artifact['path']}",
                code=IntegrityReason.ARTIFACT_SHA_MISMATCH.value,
            )
