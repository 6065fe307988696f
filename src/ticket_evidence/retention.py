"""Retention sweep for sealed run directories.

Deletes whole run directories only; a surviving directory always keeps its manifest,
self-hash and every artifact they describe.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from ticket_evidence.manifest.writer import MANIFEST_FILENAME
from ticket_evidence.observability.logging import get_logger
from ticket_evidence.utils.fs import safe_delete
from ticket_evidence.utils.timestamps import parse_utc_timestamp, utc_now

__all__ = ["SweepResult", "run_directory_age_reference", "sweep_expired_runs"]


@dataclass(frozen=True, slots=True)
class SweepResult:
    runs_root: Path
    retention_days: int
    dry_run: bool
    cutoff: datetime | None
    removed: tuple[Path, ...] = ()
    kept: tuple[Path, ...] = ()

    @property
    def disabled(self) -> bool:
        return self.cutoff is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "runs_root": self.runs_root.as_posix(),
            "retention_days": self.retention_days,
            "dry_run": self.dry_run,
            "disabled": self.disabled,
            "cutoff": None if self.cutoff is None else self.cutoff.isoformat(),
            "removed_count": len(self.removed),
            "removed_paths": [path.as_posix() for path in self.removed],
            "kept_count": len(self.kept),
        }


def run_directory_age_reference(run_dir: Path) -> datetime:
    """Return the manifest ``as_of`` timestamp, falling back to the directory mtime."""

    manifest_path = run_dir / MANIFEST_FILENAME
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        return parse_utc_timestamp(manifest["as_of"])
    except (OSError, ValueError, KeyError, TypeError):
        return datetime.fromtimestamp(run_dir.stat().st_mtime, tz=UTC)


def sweep_expired_runs(
    runs_root: str | os.PathLike[str],
    *,
    retention_days: int,
    now: datetime | None = None,
    dry_run: bool = False,
    logger: Any | None = None,
) -> SweepResult:
    """
    Delete run directories older than ``retention_days``.

    Safety rules:
    - Never delete anything outside ``runs_root``.
    - Never follow symlinked run directories.
    - ``retention_days == 0`` disables the sweep.
    """

    log = logger or get_logger(__name__)
    if isinstance(retention_days, bool) or not isinstance(retention_days, int):
        raise ValueError("retention_days must be an integer")
    if retention_days < 0:
        raise ValueError("retention_days must be >= 0")

    root = Path(runs_root)
    if retention_days == 0:
        log.info("retention_sweep_disabled", runs_root=str(root))
        return SweepResult(runs_root=root, retention_days=0, dry_run=dry_run, cutoff=None)

    reference_now = parse_utc_timestamp(now if now is not None else utc_now())
    cutoff = reference_now - timedelta(days=retention_days)
    if not root.is_dir():
        return SweepResult(
            runs_root=root, retention_days=retention_days, dry_run=dry_run, cutoff=cutoff
        )

    removed: list[Path] = []
    kept: list[Path] = []
    for run_dir in sorted(root.iterdir(), key=lambda path: path.name):
        if run_dir.is_symlink() or not run_dir.is_dir():
            continue
        if run_directory_age_reference(run_dir) > cutoff:
            kept.append(run_dir)
            continue
        if not dry_run:
            safe_delete(run_dir, root)
        removed.append(run_dir)

    log.info(
        "retention_sweep_completed",
        runs_root=str(root),
        retention_days=retention_days,
        dry_run=dry_run,
        removed_count=len(removed),
        kept_count=len(kept),
    )
    return SweepResult(
        runs_root=root,
        retention_days=retention_days,
        dry_run=dry_run,
        cutoff=cutoff,
        removed=tuple(removed),
        kept=tuple(kept),
    )
