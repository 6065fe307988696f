"""
ticket-evidence — manifest write gate

File: scripts/manifest_write_gate.py
Last updated: 2026-10-18

Purpose
- CI entrypoint for the rule that only the run evidence writer may create the manifest file.

Functional requirements
- Exit ``0`` with no findings, ``1`` with findings, ``2`` when the scan itself fails.
- ``--root``/``--paths`` are aliases of the audit module's ``--repo-root``/``--roots``.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

SRC_PATH = Path(__file__).resolve().parents[1] / "src"
if SRC_PATH.is_dir() and str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from ticket_evidence.quality import manifest_write_audit as audit  # noqa: E402


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fail when code outside the run evidence writer writes the manifest."
    )
    parser.add_argument("--root", "--repo-root", dest="repo_root", default=".")
    parser.add_argument(
        "--paths", "--roots", dest="paths", nargs="+", default=list(audit.DEFAULT_ROOTS)
    )
    parser.add_argument("--exclude", nargs="*", default=list(audit.DEFAULT_EXCLUDE))
    parser.add_argument(
        "--allowlist",
        nargs="+",
        default=list(audit.DEFAULT_ALLOWLIST),
        help="Relative paths allowed to write the manifest.",
    )
    parser.add_argument(
        "--format", dest="output_format", choices=("text", "json"), default="text"
    )
    return parser


def _render(result: audit.AuditResult) -> str:
    header = (
        f"manifest-write-gate roots={','.join(result.roots) or '.'} "
        f"exclude={','.join(result.exclude) or '-'} "
        f"scanned_files={len(result.scanned_files)} findings={result.error_count}"
    )
    # Reuse the audit's finding lines; only the header differs.
    finding_lines = audit.format_text(result).splitlines()[1:]
    return "\n".join([header, *finding_lines]) + "\n"


def main(argv: Sequence[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    try:
        result = audit.run_manifest_write_audit(
            repo_root=Path(args.repo_root).resolve(),
            roots=tuple(args.paths),
            exclude=tuple(args.exclude),
            allowlist=tuple(args.allowlist),
        )
    except Exception as exc:  # noqa: BLE001 - gate boundary
        print(f"manifest-write-gate crashed: {exc}", file=sys.stderr)
        return 2

    sys.stdout.write(audit.format_json(result) if args.output_format == "json" else _render(result))
    return 1 if result.error_count else 0


if __name__ == "__main__":
    raise SystemExit(main())
