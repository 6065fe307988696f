"""
ticket-evidence — command router

File: src/ticket_evidence/ui/cli.py
Last updated: 2026-10-18

Purpose
- ``ticket-evidence verify|sweep|config``: operator access to sealed run directories.

Functional requirements
- ``verify`` exits 1 when any run fails verification and 2 when a path is not a run directory.
- ``sweep`` reads the runs root and retention window from config; flags override both.
- Config problems exit 2 with a one-line ``error:`` prefix on stderr.
- ``--json`` output is one compact, key-sorted object per invocation.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ticket_evidence.config import (
    ConfigLoadError,
    ConfigValidationError,
    limits_from_config,
    load_config,
    redact_config,
)
from ticket_evidence.manifest.verifier import IntegrityReport, verify_run_directory
from ticket_evidence.observability.logging import setup_logging, shutdown_logging
from ticket_evidence.retention import sweep_expired_runs

_USAGE_ERROR = 2

_DESCRIPTION = """\
ticket-evidence: sealed run directories for ticket execution.

examples:
  ticket-evidence verify runs/<run_id>   check a sealed run directory
  ticket-evidence sweep --dry-run        preview retention deletions
  ticket-evidence config                 show the effective config
"""


class CLIError(RuntimeError):
    """A handled failure; ``run_cli`` prints it and exits with ``exit_code``."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


def run_cli(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(None if argv is None else list(argv))
    handler: Callable[[argparse.Namespace], int] = args.handler
    try:
        return handler(args)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code


def build_parser() -> argparse.ArgumentParser:
    shared = argparse.ArgumentParser(add_help=False)
    shared.add_argument(
        "--config",
        dest="config_path",
        metavar="PATH",
        help="evidence TOML config (default: ./evidence.toml when present)",
    )
    shared.add_argument("--json", action="store_true", help="emit machine-readable JSON")

    parser = argparse.ArgumentParser(
        prog="ticket-evidence",
        description=_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    verify = commands.add_parser(
        "verify", parents=[shared], help="check manifest, self-hash and artifact digests"
    )
    verify.add_argument("run_dirs", nargs="+", metavar="RUN_DIR")
    verify.set_defaults(handler=_verify)

    sweep = commands.add_parser(
        "sweep", parents=[shared], help="delete runs older than the retention window"
    )
    sweep.add_argument("--runs-root", help="override paths.runs_root (relative to cwd)")
    sweep.add_argument(
        "--retention-days", type=int, help="override limits.retention_days (0 disables)"
    )
    sweep.add_argument("--dry-run", action="store_true", help="report without deleting")
    sweep.set_defaults(handler=_sweep)

    show = commands.add_parser("config", parents=[shared], help="print the redacted config")
    show.set_defaults(handler=_show_config)
    return parser


def _verify(args: argparse.Namespace) -> int:
    reports: list[IntegrityReport] = []
    for run_dir in args.run_dirs:
        try:
            reports.append(verify_run_directory(run_dir))
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise CLIError(f"not a run directory: {run_dir}", _USAGE_ERROR) from exc
    ok = all(report.is_valid for report in reports)

    if args.json:
        _print_json(command="verify", ok=ok, runs=[report.to_dict() for report in reports])
    else:
        for report in reports:
            _print_report(report)
    return 0 if ok else 1


def _print_report(report: IntegrityReport) -> None:
    if report.is_valid:
        print(f"OK   {report.run_dir}")
        return
    print(f"FAIL {report.run_dir}: {', '.join(report.reason_codes)}")
    details = (
        ("missing", report.missing_paths),
        ("mismatch", report.hash_mismatches),
        ("unlisted raw pointer", report.unlisted_raw_pointers),
    )
    for label, entries in details:
        for entry in entries:
            print(f"  {label}: {entry}")


def _sweep(args: argparse.Namespace) -> int:
    runs_root_flag = None if args.runs_root is None else Path(args.runs_root).resolve().as_posix()
    config = _config_for(
        args,
        {"paths.runs_root": runs_root_flag, "limits.retention_days": args.retention_days},
    )
    runs_root = Path(config["paths"]["runs_root"])
    stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%S%fZ")

    handle = setup_logging(config["observability"], run_id=f"sweep-{stamp}")
    try:
        result = sweep_expired_runs(
            runs_root,
            retention_days=limits_from_config(config).retention_days,
            dry_run=args.dry_run,
        )
    finally:
        shutdown_logging(handle)

    if args.json:
        _print_json(command="sweep", **result.to_dict())
    elif result.disabled:
        print(f"retention disabled (retention_days=0); nothing removed under {runs_root}")
    else:
        verb = "would remove" if result.dry_run else "removed"
        print(f"{verb} {len(result.removed)} run(s) under {runs_root}; kept {len(result.kept)}")
        for removed in result.removed:
            print(f"  {removed.name}")
    return 0


def _show_config(args: argparse.Namespace) -> int:
    redacted = redact_config(_config_for(args))
    if args.json:
        _print_json(command="config", config=redacted)
    else:
        print(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


def _config_for(
    args: argparse.Namespace, overrides: Mapping[str, object] | None = None
) -> dict[str, Any]:
    try:
        return load_config(args.config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), _USAGE_ERROR) from exc


def _print_json(**payload: object) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


__all__ = ["CLIError", "build_parser", "run_cli"]
