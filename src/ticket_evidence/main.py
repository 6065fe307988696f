"""
ticket-evidence — process entrypoint

File: src/ticket_evidence/main.py
Last updated: 2026-10-18

Purpose
- Turn whatever the CLI router returns or raises into one of the documented exit codes.

Functional requirements
- Config and input problems (anywhere in the exception chain) exit with ``CONFIG_ERROR``.
- Unexpected failures exit with ``INTERNAL_ERROR`` and print the traceback.
"""

from __future__ import annotations

import sys
import traceback
from collections.abc import Iterator, Sequence
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    VERIFICATION_REJECTED = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 4


_INPUT_ERRORS: tuple[type[BaseException], ...] = (
    FileNotFoundError,
    NotADirectoryError,
    PermissionError,
    ValueError,
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return an ``ExitCode`` value; never raises."""

    from ticket_evidence.ui.cli import run_cli

    try:
        outcome: object = run_cli(argv)
    except SystemExit as exc:
        outcome = exc.code
    except Exception as exc:  # noqa: BLE001 - process boundary.
        code = _classify(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return int(code)
    return _coerce(outcome)


def _coerce(outcome: object) -> int:
    if outcome is None:
        return int(ExitCode.SUCCESS)
    if isinstance(outcome, int) and not isinstance(outcome, bool):
        try:
            return int(ExitCode(outcome))
        except ValueError:
            return int(ExitCode.INTERNAL_ERROR)
    text = str(outcome).strip()
    if text:
        print(text, file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _classify(exc: BaseException) -> ExitCode:
    # ConfigLoadError and ConfigValidationError are ValueError subclasses.
    if any(isinstance(link, _INPUT_ERRORS) for link in _chain(exc)):
        return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in seen:
        seen.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif not link.__suppress_context__:
            link = link.__context__
        else:
            link = None


__all__ = ["ExitCode", "cli_entrypoint"]
