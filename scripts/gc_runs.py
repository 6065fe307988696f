"""
ticket-evidence — expired run sweep

File: scripts/gc_runs.py
Last updated: 2026-10-18

Purpose
- Scheduled-job wrapper around ``ticket_evidence.retention.sweep_expired_runs``.

Functional requirements
- A relative ``--runs-root`` resolves against ``--repo-root`` (default: this checkout).
- Without ``--retention-days`` the window comes from ``EVIDENCE_RETENTION_DAYS`` or the default.
- ``--dry-run`` lists what would be removed and removes nothing.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

REPO_ROOT = Path(__file__).resolve().parents[1]
if (REPO_ROOT / "src").is_dir() and str(REPO_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(REPO_ROOT / "src"))

from ticket_evidence.config.limits import limits_from_env  # noqa: E402
from ticket_evidence.retention import sweep_expired_runs  # noqa: E402

_TEXT_FIELDS = ("runs_root", "retention_days", "dry_run", "disabled", "kept_count")


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Delete expired run directories without touching anything outside runs root."
    )
    parser.add_argument("--repo-root", type=Path, default=REPO_ROOT)
    parser.add_argument("--runs-root", type=Path, default=Path("runs"))
    parser.add_argument(
        "--retention-days",
        type=int,
        default=None,
        help="Retention window in days; 0 disables the sweep.",
    )
    parser.add_argument("--dry-run", action="store_true", help="Delete nothing.")
    parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    runs_root = args.runs_root.expanduser()
    if not runs_root.is_absolute():
        runs_root = args.repo_root.expanduser() / runs_root
    runs_root = runs_root.resolve()
    if args.retention_days is None:
        retention_days = limits_from_env().retention_days
    else:
        retention_days = args.retention_days

    try:
        result = sweep_expired_runs(runs_root, retention_days=retention_days, dry_run=args.dry_run)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    summary = result.to_dict()
    if args.json:
        print(json.dumps(summary, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
        return 0
    for field in _TEXT_FIELDS:
        print(f"{field}: {summary[field]}")
    print(f"removed_count: {summary['removed_count']}")
    for removed in summary["removed_paths"]:
        print(f"  - {removed}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
