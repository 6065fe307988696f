"""
ticket-evidence — verify sealed run directories

File: scripts/verify_evidence.py
Last updated: 2026-10-18

Purpose
- Check every run under a runs root (or a single ``--run-id``) against its manifest self-hash and
  listed artifact digests, for CI jobs that archive run evidence.

Functional requirements
- Exit ``0`` when every scoped run verifies, ``1`` otherwise (including scan failures).
- ``--json`` prints one key-sorted object: runs_root, run_id, ok, valid_count, invalid_count, rows.
- Symlinked entries under the runs root are not followed.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

SRC_PATH = Path(__file__).resolve().parents[1] / "src"
if SRC_PATH.is_dir() and str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from ticket_evidence.manifest.verifier import verify_run_directory  # noqa: E402


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Verify sealed run directories (manifest, self-hash, artifact digests)."
    )
    parser.add_argument("--path", type=Path, default=Path("runs"), help="Runs root.")
    parser.add_argument("--run-id", default=None, help="Verify only this run.")
    parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON.")
    return parser


def collect(runs_root: Path, run_id: str | None) -> dict[str, Any]:
    if run_id is not None:
        run_dirs = [runs_root / run_id]
    elif runs_root.is_dir():
        run_dirs = sorted(
            (entry for entry in runs_root.iterdir() if entry.is_dir() and not entry.is_symlink()),
            key=lambda entry: entry.name,
        )
    else:
        run_dirs = []

    rows = [verify_run_directory(run_dir).to_dict() for run_dir in run_dirs]
    invalid = [row for row in rows if not row["ok"]]
    return {
        "runs_root": runs_root.as_posix(),
        "run_id": run_id,
        "ok": not invalid,
        "valid_count": len(rows) - len(invalid),
        "invalid_count": len(invalid),
        "rows": rows,
    }


def _print_text(report: dict[str, Any]) -> None:
    print(f"runs_root: {report['runs_root']}")
    print(f"run_id: {report['run_id']}")
    print(f"ok: {report['ok']}")
    print(f"counts: valid={report['valid_count']} invalid={report['invalid_count']}")
    failing = [row for row in report["rows"] if not row["ok"]]
    if failing:
        print("failing_runs:")
    for row in failing:
        label = row.get("run_id") or row.get("run_dir")
        print(f"  - {label}: {','.join(row.get('reason_codes', ()))}")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    runs_root = args.path.expanduser().resolve()

    try:
        report = collect(runs_root, args.run_id)
    except (OSError, ValueError) as exc:
        failure = {"runs_root": runs_root.as_posix(), "run_id": args.run_id, "error": str(exc)}
        if args.json:
            print(json.dumps(failure, sort_keys=True, separators=(",", ":")))
        else:
            print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    else:
        _print_text(report)
    return 0 if report["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
