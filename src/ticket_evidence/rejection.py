"""
ticket-evidence — guard/system rejection evidence

File: src/ticket_evidence/rejection.py
Last updated: 2026-10-18

Purpose
- Emit a minimal, fully sealed evidence bundle when a request is rejected before normal
  execution evidence exists (lease ownership mismatch, unknown tool, readiness gate).

What should be included in this file
- ``emit_system_rejection_evidence``: the shared path (details file, one SYSTEM_REJECT step,
  run report, manifest check) delegating to the run evidence writer.
- ``emit_guard_rejection_evidence``: ``lease_owner_mismatch`` with a schema-locked lease payload.
- ``emit_tool_fail_evidence``: ``unknown_tool`` with a ``tool_debug_v1`` payload.
- ``emit_readiness_blocked_evidence``: ``readiness_blocked`` with readiness and dependency payloads.

Functional requirements
- Unknown stable codes fail closed with ``UnsupportedStableCodeError``; nothing is written.
- Sensitive tokens are only ever persisted as sha256 digests.
- Rejected runs are sealed by the same writer as successful runs.

Non-functional requirements
- Clock and entropy are injectable so evidence run ids are reproducible in tests.
"""

from __future__ import annotations

import hashlib
import os
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from ticket_evidence.domain.codes import RuntimeReason, is_runtime_reason
from ticket_evidence.domain.errors import EvidenceWriteError, UnsupportedStableCodeError
from ticket_evidence.domain.ids import generate_rejection_run_id, to_base36
from ticket_evidence.manifest.model import ManifestCheck
from ticket_evidence.manifest.writer import dump_json_document, write_run_evidence
from ticket_evidence.observability.logging import correlation_scope, get_logger
from ticket_evidence.run_report.builder import build_run_report
from ticket_evidence.run_report.mode_snapshot import minimal_mode_snapshot, summarize_readiness
from ticket_evidence.run_report.models import SYSTEM_REJECT_TOOL, ArtifactRef, create_step_report
from ticket_evidence.run_report.stable_codes import RunStatus
from ticket_evidence.security.redaction import redact_structure, redact_text
from ticket_evidence.utils.fs import write_exclusive
from ticket_evidence.utils.timestamps import Clock, format_utc_timestamp, utc_now

SYSTEM_REJECTION_CHECK: Final[str] = "system_rejection_evidence_ok"
GUARD_REJECTION_CHECK: Final[str] = "guard_rejection_evidence_ok"
LEASE_DEBUG_KIND: Final[str] = "lease_debug_v1"
TOOL_DEBUG_KIND: Final[str] = "tool_debug_v1"
READINESS_DEBUG_KIND: Final[str] = "readiness_debug_v1"
DEP_SNAPSHOT_KIND: Final[str] = "dep_snapshot_v1"
DEFAULT_GATEWAY_PHASE: Final[str] = "fill_validation"
READINESS_PROBE_CONTEXT: Final[str] = "fill_readiness_gate"
DEFAULT_DEP_CODE: Final[str] = "DEP_UNAVAILABLE"

_DETAILS_KIND_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9][a-z0-9_]*$")
_HTTP_FIELDS: Final[tuple[str, ...]] = ("method", "path", "status")

_RandBytes = Callable[[int], bytes]

__all__ = [
    "ExtraArtifact",
    "GUARD_REJECTION_CHECK",
    "RejectionEvidence",
    "SYSTEM_REJECTION_CHECK",
    "build_lease_debug_payload",
    "emit_guard_rejection_evidence",
    "emit_readiness_blocked_evidence",
    "emit_system_rejection_evidence",
    "emit_tool_fail_evidence",
    "reduce_http_context",
]


@dataclass(frozen=True, slots=True)
class ExtraArtifact:
    """Additional JSON artifact written next to the details payload."""

    kind: str
    payload: Mapping[str, Any]

    @property
    def filename(self) -> str:
        return f"{self.kind}.json"


@dataclass(frozen=True, slots=True)
class RejectionEvidence:
    evidence_run_id: str
    run_dir: Path
    details_path: Path

    @property
    def details_ref(self) -> str:
        return self.details_path.name


def emit_system_rejection_evidence(
    *,
    runs_root: str | os.PathLike[str],
    ticket_id: str,
    stable_code: str,
    details_kind: str,
    details_payload: Mapping[str, Any],
    ticket_kind: str | None = None,
    http: Mapping[str, Any] | None = None,
    extra_artifacts: Sequence[ExtraArtifact] = (),
    mode_snapshot: Mapping[str, Any] | None = None,
    check_name: str = SYSTEM_REJECTION_CHECK,
    clock: Clock = utc_now,
    randbytes: _RandBytes | None = None,
    environ: Mapping[str, str] | None = None,
    logger: Any | None = None,
) -> RejectionEvidence:
    """Write and seal ``<runs_root>/<evidence_run_id>/`` for one rejected request."""

    log = logger or get_logger(__name__)
    if not isinstance(ticket_id, str) or not ticket_id:
        raise ValueError("ticket_id is required")
    if not is_runtime_reason(stable_code):
        raise UnsupportedStableCodeError(str(stable_code), emitter="system_rejection")
    if not isinstance(details_kind, str) or _DETAILS_KIND_RE.fullmatch(details_kind) is None:
        raise ValueError(f"details_kind must match {_DETAILS_KIND_RE.pattern}")
    if not isinstance(details_payload, Mapping):
        raise ValueError("details_payload must be a mapping")
    for extra in extra_artifacts:
        if _DETAILS_KIND_RE.fullmatch(extra.kind) is None or extra.kind == details_kind:
            raise ValueError(f"invalid extra artifact kind: {extra.kind!r}")

    now = clock()
    timestamp_ms = int(now.timestamp() * 1000)
    evidence_run_id = generate_rejection_run_id(
        ticket_id, timestamp_ms=timestamp_ms, randbytes=randbytes
    )
    run_dir = Path(runs_root) / evidence_run_id
    details_filename = f"{details_kind}.json"
    details_path = run_dir / details_filename

    with correlation_scope(ticket_id=ticket_id, evidence_run_id=evidence_run_id):
        try:
            run_dir.mkdir(parents=True, exist_ok=False)
            write_exclusive(details_path, dump_json_document(_redacted(details_payload)))
            for extra in extra_artifacts:
                write_exclusive(
                    run_dir / extra.filename, dump_json_document(_redacted(extra.payload))
                )
        except OSError as exc:
            log.error("rejection_evidence_write_failed", stable_code=stable_code, error=str(exc))
            raise EvidenceWriteError(f"failed writing rejection details: {exc}") from exc

        at = format_utc_timestamp(now)
        step = create_step_report(
            step_index=1,
            tool_name=SYSTEM_REJECT_TOOL,
            status=RunStatus.ERROR,
            code=stable_code,
            started_at=at,
            ended_at=at,
            duration_ms=0,
            result_summary=f"system_reject:{stable_code}",
            artifact_refs=[ArtifactRef(kind=details_kind, path=details_filename)],
        )
        snapshot = (
            dict(mode_snapshot)
            if mode_snapshot is not None
            else minimal_mode_snapshot(environ, as_of=now)
        )
        report = build_run_report(
            ticket_id=ticket_id,
            terminal_status=RunStatus.ERROR,
            primary_failure_code=stable_code,
            started_at=at,
            ended_at=at,
            duration_ms=0,
            step_reports=[step],
            mode_snapshot=snapshot,
        )

        artifact_kinds = {details_filename: details_kind}
        artifact_kinds.update({extra.filename: extra.kind for extra in extra_artifacts})
        write_run_evidence(
            run_dir,
            evidence_run_id,
            report,
            checks=[
                ManifestCheck(
                    name=check_name,
                    ok=False,
                    reason_codes=(stable_code,),
                    details_ref=details_filename,
                )
            ],
            artifact_kinds=artifact_kinds,
            as_of=at,
            logger=log,
        )

        log.info(
            "rejection_evidence_emitted",
            stable_code=stable_code,
            ticket_kind=ticket_kind,
            details_kind=details_kind,
            http=reduce_http_context(http),
        )

    return RejectionEvidence(
        evidence_run_id=evidence_run_id, run_dir=run_dir, details_path=details_path
    )


def build_lease_debug_payload(
    ticket_id: str,
    *,
    lease_expected: Mapping[str, Any] | None,
    lease_provided: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Exactly four keys; the provided lease token is reduced to its sha256 hex digest."""

    expected = lease_expected or {}
    provided = lease_provided or {}
    token = provided.get("lease_token")
    return {
        "ticket_id": ticket_id,
        "lease_owner_expected": _optional_text(expected.get("lease_owner")),
        "lease_owner_provided": _optional_text(provided.get("lease_owner")),
        "lease_token_hash": (
            hashlib.sha256(str(token).encode("utf-8")).hexdigest() if token else None
        ),
    }


def emit_guard_rejection_evidence(
    *,
    runs_root: str | os.PathLike[str],
    ticket_id: str,
    stable_code: str,
    ticket_kind: str | None = None,
    http: Mapping[str, Any] | None = None,
    lease_expected: Mapping[str, Any] | None = None,
    lease_provided: Mapping[str, Any] | None = None,
    mode_snapshot: Mapping[str, Any] | None = None,
    clock: Clock = utc_now,
    randbytes: _RandBytes | None = None,
    logger: Any | None = None,
) -> RejectionEvidence:
    if stable_code != RuntimeReason.LEASE_OWNER_MISMATCH:
        raise UnsupportedStableCodeError(str(stable_code), emitter="guard_rejection")
    return emit_system_rejection_evidence(
        runs_root=runs_root,
        ticket_id=ticket_id,
        stable_code=stable_code,
        details_kind=LEASE_DEBUG_KIND,
        details_payload=build_lease_debug_payload(
            ticket_id, lease_expected=lease_expected, lease_provided=lease_provided
        ),
        ticket_kind=ticket_kind,
        http=http,
        mode_snapshot=mode_snapshot,
        check_name=GUARD_REJECTION_CHECK,
        clock=clock,
        randbytes=randbytes,
        logger=logger,
    )


def emit_tool_fail_evidence(
    *,
    runs_root: str | os.PathLike[str],
    ticket_id: str,
    tool_name: str,
    error_type: str,
    message: str,
    args_shape: Mapping[str, str] | None = None,
    stack: str | None = None,
    gateway_phase: str | None = DEFAULT_GATEWAY_PHASE,
    mode_snapshot: Mapping[str, Any] | None = None,
    clock: Clock = utc_now,
    randbytes: _RandBytes | None = None,
    logger: Any | None = None,
) -> RejectionEvidence:
    """Fill-path tool validation failure (``unknown_tool``)."""

    if not isinstance(tool_name, str):
        raise ValueError("tool_name must be a string")
    if not isinstance(error_type, str) or not error_type:
        raise ValueError("error_type is required")
    if not isinstance(message, str) or not message:
        raise ValueError("message is required")

    payload: dict[str, Any] = {
        "version": "v1",
        "ticket_id": ticket_id,
        "tool_name": tool_name,
        "error_type": error_type,
        "message": message,
    }
    if args_shape:
        payload["args_shape"] = dict(args_shape)
    if stack:
        payload["stack"] = stack
    if gateway_phase:
        payload["gateway_phase"] = gateway_phase

    return emit_system_rejection_evidence(
        runs_root=runs_root,
        ticket_id=ticket_id,
        stable_code=RuntimeReason.UNKNOWN_TOOL.value,
        details_kind=TOOL_DEBUG_KIND,
        details_payload=payload,
        mode_snapshot=mode_snapshot,
        clock=clock,
        randbytes=randbytes,
        logger=logger,
    )


def emit_readiness_blocked_evidence(
    *,
    runs_root: str | os.PathLike[str],
    ticket_id: str,
    dep_states: Mapping[str, Mapping[str, Any]],
    ticket_kind: str | None = None,
    http: Mapping[str, Any] | None = None,
    mode_snapshot: Mapping[str, Any] | None = None,
    clock: Clock = utc_now,
    randbytes: _RandBytes | None = None,
    logger: Any | None = None,
) -> RejectionEvidence:
    """Readiness gate rejection.

    ``dep_states`` maps dependency keys to ``{"ready": bool, "code": str?, "required": bool?}``;
    dependencies are required unless ``required`` is explicitly false.
    """

    if not isinstance(dep_states, Mapping):
        raise ValueError("dep_states must be a mapping")

    now = clock()
    as_of = format_utc_timestamp(now)
    missing_keys: list[str] = []
    missing_codes: list[str] = []
    degraded = False
    deps: dict[str, dict[str, Any]] = {}
    for key in sorted(dep_states):
        state = dep_states[key] if isinstance(dep_states[key], Mapping) else {}
        ready = state.get("ready") is True
        required = state.get("required", True) is not False
        code = state.get("code")
        deps[str(key)] = {
            "ready": ready,
            "required": required,
            "code": str(code) if code else None,
        }
        if ready:
            continue
        if required:
            missing_keys.append(str(key))
            missing_codes.append(str(code) if code else DEFAULT_DEP_CODE)
        else:
            degraded = True

    readiness_debug = {
        "version": "v1",
        "ticket_id": ticket_id,
        "as_of": as_of,
        "degraded": degraded,
        "missing_required_dep_keys": missing_keys,
        "missing_dep_codes": missing_codes,
    }
    dep_snapshot = {
        "version": "v1",
        "snapshot_id": f"dep_{to_base36(int(now.timestamp() * 1000))}",
        "as_of": as_of,
        "probe_context": READINESS_PROBE_CONTEXT,
        "deps": deps,
    }
    snapshot = mode_snapshot
    if snapshot is None:
        fallback = minimal_mode_snapshot(as_of=now)
        fallback["readiness_summary"] = summarize_readiness(missing_keys)
        snapshot = fallback

    return emit_system_rejection_evidence(
        runs_root=runs_root,
        ticket_id=ticket_id,
        stable_code=RuntimeReason.READINESS_BLOCKED.value,
        details_kind=READINESS_DEBUG_KIND,
        details_payload=readiness_debug,
        ticket_kind=ticket_kind,
        http=http,
        extra_artifacts=[ExtraArtifact(kind=DEP_SNAPSHOT_KIND, payload=dep_snapshot)],
        mode_snapshot=snapshot,
        clock=lambda: now,
        randbytes=randbytes,
        logger=logger,
    )


def reduce_http_context(http: Mapping[str, Any] | None) -> dict[str, Any]:
    """Keep only method/path/status; headers and bodies never leave the request handler."""

    if not http:
        return {}
    reduced: dict[str, Any] = {}
    for name in _HTTP_FIELDS:
        value = http.get(name)
        if value is None:
            continue
        reduced[name] = redact_text(value) if isinstance(value, str) else value
    return reduced


def _redacted(payload: Mapping[str, Any]) -> dict[str, Any]:
    redacted = redact_structure(dict(payload))
    if not isinstance(redacted, dict):
        raise TypeError("redacted payload must remain a mapping")
    return redacted


def _optional_text(value: object) -> str | None:
    return str(value) if value else None
