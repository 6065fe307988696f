"""
ticket-evidence — run status vocabulary and stable run codes

File: src/ticket_evidence/run_report/stable_codes.py
Last updated: 2026-10-18

Purpose
- Single mapping point from gateway/service/runner errors to stable run codes, and from run
  codes to terminal statuses.

What should be included in this file
- ``RunStatus`` (ok / error / blocked) and ``RunCode``.
- ``CODE_TO_STATUS`` rule table and gateway error-code aliases.
- Worst-status and overall-code selection over step reports.

Functional requirements
- Blocked codes: the request was not allowed to execute (invalid input, missing capability,
  exhausted budget). Error codes: execution was attempted and failed, timeouts included.
- Unknown gateway codes map to ``TOOL_EXEC_FAILED``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from enum import StrEnum
from typing import Final, Protocol


class RunStatus(StrEnum):
    OK = "ok"
    ERROR = "error"
    BLOCKED = "blocked"


class RunCode(StrEnum):
    # blocked
    INVALID_TOOL_STEP = "INVALID_TOOL_STEP"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    INVALID_TOOL_ARGS = "INVALID_TOOL_ARGS"
    INVALID_BUDGET = "INVALID_BUDGET"
    MCP_REQUIRED_UNAVAILABLE = "MCP_REQUIRED_UNAVAILABLE"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    INVALID_EVIDENCE_CANDIDATE = "INVALID_EVIDENCE_CANDIDATE"
    # error
    RUN_TIMEOUT = "RUN_TIMEOUT"
    TOOL_TIMEOUT = "TOOL_TIMEOUT"
    TOOL_EXEC_FAILED = "TOOL_EXEC_FAILED"
    TOOL_UNAVAILABLE = "TOOL_UNAVAILABLE"


CODE_TO_STATUS: Final[Mapping[RunCode, RunStatus]] = {
    RunCode.INVALID_TOOL_STEP: RunStatus.BLOCKED,
    RunCode.UNKNOWN_TOOL: RunStatus.BLOCKED,
    RunCode.INVALID_TOOL_ARGS: RunStatus.BLOCKED,
    RunCode.INVALID_BUDGET: RunStatus.BLOCKED,
    RunCode.MCP_REQUIRED_UNAVAILABLE: RunStatus.BLOCKED,
    RunCode.BUDGET_EXCEEDED: RunStatus.BLOCKED,
    RunCode.INVALID_EVIDENCE_CANDIDATE: RunStatus.BLOCKED,
    RunCode.RUN_TIMEOUT: RunStatus.ERROR,
    RunCode.TOOL_TIMEOUT: RunStatus.ERROR,
    RunCode.TOOL_EXEC_FAILED: RunStatus.ERROR,
    RunCode.TOOL_UNAVAILABLE: RunStatus.ERROR,
}

RETRYABLE_CODES: Final[frozenset[RunCode]] = frozenset(
    {RunCode.TOOL_TIMEOUT, RunCode.TOOL_UNAVAILABLE}
)

GATEWAY_ERROR_CODE_MAPPING: Final[Mapping[str, RunCode]] = {
    "timeout": RunCode.TOOL_TIMEOUT,
    "TIMEOUT": RunCode.TOOL_TIMEOUT,
    "request_timeout": RunCode.TOOL_TIMEOUT,
    "execution_timeout": RunCode.TOOL_TIMEOUT,
    "unavailable": RunCode.TOOL_UNAVAILABLE,
    "UNAVAILABLE": RunCode.TOOL_UNAVAILABLE,
    "service_unavailable": RunCode.TOOL_UNAVAILABLE,
    "not_available": RunCode.TOOL_UNAVAILABLE,
    "error": RunCode.TOOL_EXEC_FAILED,
    "ERROR": RunCode.TOOL_EXEC_FAILED,
    "execution_error": RunCode.TOOL_EXEC_FAILED,
    "internal_error": RunCode.TOOL_EXEC_FAILED,
}

_STATUS_SEVERITY: Final[Mapping[RunStatus, int]] = {
    RunStatus.OK: 0,
    RunStatus.ERROR: 1,
    RunStatus.BLOCKED: 2,
}

_RUN_CODE_VALUES: Final[frozenset[str]] = frozenset(item.value for item in RunCode)


class _HasStatusAndCode(Protocol):
    @property
    def status(self) -> RunStatus: ...

    @property
    def code(self) -> str | None: ...


def is_stable_run_code(code: object) -> bool:
    return isinstance(code, str) and code in _RUN_CODE_VALUES


def status_for_code(code: str | RunCode) -> RunStatus:
    """Return the terminal status a stable run code implies."""

    if not is_stable_run_code(code):
        raise ValueError(f"not a stable run code: {code!r}")
    return CODE_TO_STATUS[RunCode(code)]


def map_gateway_error_code(gateway_code: object) -> RunCode:
    """Map a gateway/remote error code string onto a stable run code."""

    if not isinstance(gateway_code, str):
        return RunCode.TOOL_EXEC_FAILED
    if is_stable_run_code(gateway_code):
        return RunCode(gateway_code)
    return GATEWAY_ERROR_CODE_MAPPING.get(gateway_code, RunCode.TOOL_EXEC_FAILED)


def map_exception_to_stable_code(error: BaseException | str) -> RunCode:
    """Best-effort mapping of a raised error (or bare code string) onto a stable run code."""

    if isinstance(error, str):
        return map_gateway_error_code(error)

    code = getattr(error, "code", None)
    if isinstance(code, str):
        return map_gateway_error_code(code)

    if isinstance(error, TimeoutError) or "timeout" in str(error).lower():
        return RunCode.TOOL_TIMEOUT
    if isinstance(error, ConnectionError):
        return RunCode.TOOL_UNAVAILABLE
    return RunCode.TOOL_EXEC_FAILED


def worst_status(statuses: Iterable[RunStatus | str]) -> RunStatus:
    """Return the most severe status (blocked > error > ok); ``ok`` for an empty input."""

    worst = RunStatus.OK
    for raw in statuses:
        status = RunStatus(raw)
        if _STATUS_SEVERITY[status] > _STATUS_SEVERITY[worst]:
            worst = status
    return worst


def select_overall_code(
    step_reports: Sequence[_HasStatusAndCode], overall_status: RunStatus | str
) -> str | None:
    """Pick the run's primary failure code.

    ``None`` for an ``ok`` run; otherwise the code of the first step whose status equals the
    overall status, falling back to the first step that carries any code.
    """

    if RunStatus(overall_status) is RunStatus.OK:
        return None
    for step in step_reports:
        if step.status == overall_status and step.code:
            return step.code
    for step in step_reports:
        if step.code:
            return step.code
    return None


__all__ = [
    "CODE_TO_STATUS",
    "GATEWAY_ERROR_CODE_MAPPING",
    "RETRYABLE_CODES",
    "RunCode",
    "RunStatus",
    "is_stable_run_code",
    "map_exception_to_stable_code",
    "map_gateway_error_code",
    "select_overall_code",
    "status_for_code",
    "worst_status",
]
