"""Exception hierarchy for the evidence subsystem.

Every exception carries a stable ``code`` so callers branch on cause, never on message text.
"""

from __future__ import annotations

from ticket_evidence.domain.codes import EvidenceErrorCode


class EvidenceError(ValueError):
    """Base class for evidence failures with a stable code."""

    default_code: str = EvidenceErrorCode.INVALID_ITEM.value

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        self.code = code if code is not None else self.default_code
        rendered = f"{self.code}: {message}" if message else self.code
        super().__init__(rendered)


class RawPointerError(EvidenceError):
    """Raised when a raw pointer cannot be built or resolved safely."""

    default_code = EvidenceErrorCode.INVALID_POINTER.value


class InvalidEvidenceItemError(EvidenceError):
    """Raised by the assert entry point when an evidence item breaks an invariant."""

    default_code = EvidenceErrorCode.INVALID_ITEM.value


class ForbiddenEvidenceKindError(EvidenceError):
    """Raised on any attempt to persist a group-C (sensitive) evidence kind."""

    default_code = EvidenceErrorCode.FORBIDDEN_KIND.value

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"evidence kind {kind!r} must never be persisted")


class EvidenceWriteError(EvidenceError):
    """Raised when persisting a report, manifest, or self-hash fails."""

    default_code = EvidenceErrorCode.WRITE_FAILED.value


class UnsupportedStableCodeError(EvidenceError):
    """Raised when a rejection emitter receives a code outside its allow-list."""

    default_code = "UNSUPPORTED_STABLE_CODE"

    def __init__(self, stable_code: str, *, emitter: str) -> None:
        self.stable_code = stable_code
        self.emitter = emitter
        super().__init__(f"{emitter} does not accept stable code {stable_code!r}")


class RunReportError(EvidenceError):
    """Raised when run-report inputs violate the report contract."""

    default_code = "RUN_REPORT_INVALID"


__all__ = [
    "EvidenceError",
    "EvidenceWriteError",
    "ForbiddenEvidenceKindError",
    "InvalidEvidenceItemError",
    "RawPointerError",
    "RunReportError",
    "UnsupportedStableCodeError",
]
