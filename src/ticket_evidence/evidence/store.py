"""
ticket-evidence — raw evidence store

File: src/ticket_evidence/evidence/store.py
Last updated: 2026-10-18

Purpose
- Persist raw evidence bytes below one injected sandbox root and hand back validated pointers.

What should be included in this file
- ``EvidenceStore`` with ``write`` (fresh pointer), ``write_at_pointer`` (explicit pointer),
  ``read`` and ``resolve``.
- Realpath containment checks, run before any directory is created, so a symlinked date
  directory cannot redirect a write.

Functional requirements
- Every caller-supplied pointer passes ``validate_raw_pointer`` before touching the filesystem.
- Writes are exclusive-create: an existing blob is never replaced. ``stored_bytes`` reflects the
  size actually on disk.
- Write failures are returned as ``StoreWriteResult(ok=False, code=...)``, never raised.

Non-functional requirements
- The store root is passed in explicitly; it is never derived from the working directory.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from ticket_evidence.constants import EVIDENCE_STORE_ROOT
from ticket_evidence.domain.codes import EvidenceErrorCode
from ticket_evidence.domain.errors import RawPointerError
from ticket_evidence.evidence.pointers import (
    IdFactory,
    build_raw_pointer,
    pointer_relative_path,
    validate_raw_pointer,
)
from ticket_evidence.observability.logging import get_logger
from ticket_evidence.utils.fs import write_exclusive

__all__ = ["EvidenceStore", "StoreWriteResult"]


@dataclass(frozen=True, slots=True)
class StoreWriteResult:
    ok: bool
    raw_pointer: str | None = None
    stored_bytes: int = 0
    code: EvidenceErrorCode | None = None


class EvidenceStore:
    """Write-once raw evidence files under ``<sandbox_root>/evidence_store/``."""

    def __init__(
        self,
        sandbox_root: str | os.PathLike[str],
        *,
        id_factory: IdFactory = uuid.uuid4,
        logger: Any | None = None,
    ) -> None:
        self._sandbox_root = Path(sandbox_root)
        self._id_factory = id_factory
        self._log = logger or get_logger(__name__)

    @property
    def sandbox_root(self) -> Path:
        return self._sandbox_root

    @property
    def store_root(self) -> Path:
        return self._sandbox_root / EVIDENCE_STORE_ROOT

    def write(self, *, kind: str, retrieved_at: str | datetime, data: bytes) -> StoreWriteResult:
        """Write ``data`` at a freshly built pointer for ``kind``."""

        try:
            pointer = build_raw_pointer(retrieved_at, kind, id_factory=self._id_factory)
        except RawPointerError as exc:
            self._log.warning("raw_pointer_build_failed", kind=kind, code=exc.code)
            return StoreWriteResult(ok=False, code=EvidenceErrorCode.WRITE_FAILED)
        return self.write_at_pointer(pointer, data)

    def write_at_pointer(self, pointer: str, data: bytes) -> StoreWriteResult:
        validation = validate_raw_pointer(pointer)
        if not validation.ok:
            return StoreWriteResult(ok=False, code=validation.code)

        try:
            target = self._prepare_target(pointer)
        except RawPointerError as exc:
            self._log.warning("raw_pointer_escapes_store", raw_pointer=pointer, code=exc.code)
            return StoreWriteResult(ok=False, code=EvidenceErrorCode.PATH_TRAVERSAL)
        except OSError as exc:
            self._log.warning("raw_evidence_write_failed", raw_pointer=pointer, error=str(exc))
            return StoreWriteResult(ok=False, code=EvidenceErrorCode.WRITE_FAILED)

        try:
            write_exclusive(target, bytes(data))
            stored_bytes = target.stat().st_size
        except FileExistsError:
            self._log.warning("raw_evidence_already_present", raw_pointer=pointer)
            return StoreWriteResult(ok=False, code=EvidenceErrorCode.WRITE_FAILED)
        except OSError as exc:
            self._log.warning("raw_evidence_write_failed", raw_pointer=pointer, error=str(exc))
            return StoreWriteResult(ok=False, code=EvidenceErrorCode.WRITE_FAILED)

        self._log.debug("raw_evidence_written", raw_pointer=pointer, stored_bytes=stored_bytes)
        return StoreWriteResult(ok=True, raw_pointer=pointer, stored_bytes=stored_bytes)

    def resolve(self, pointer: str) -> Path:
        """Return the on-disk path for ``pointer``; raise ``RawPointerError`` if it escapes."""

        relative = pointer_relative_path(pointer)
        candidate = self.store_root.joinpath(*relative.parts)
        root_real = Path(os.path.realpath(self.store_root))
        target_real = Path(os.path.realpath(candidate))
        if not _is_under(target_real, root_real):
            raise RawPointerError(
                f"raw pointer resolves outside the store: {pointer!r}",
                code=EvidenceErrorCode.PATH_TRAVERSAL.value,
            )
        return target_real

    def read(self, pointer: str) -> bytes:
        return self.resolve(pointer).read_bytes()

    def _prepare_target(self, pointer: str) -> Path:
        relative = pointer_relative_path(pointer)
        candidate = self.store_root.joinpath(*relative.parts)
        self._contained(candidate, pointer)
        candidate.parent.mkdir(parents=True, exist_ok=True)
        # Checked again once the directories exist in case one was swapped for a link.
        return self._contained(candidate, pointer)

    def _contained(self, candidate: Path, pointer: str) -> Path:
        root_real = Path(os.path.realpath(self.store_root))
        target_real = Path(os.path.realpath(candidate.parent)) / candidate.name
        if not _is_under(target_real, root_real):
            raise RawPointerError(
                f"raw pointer resolves outside the store: {pointer!r}",
                code=EvidenceErrorCode.PATH_TRAVERSAL.value,
            )
        return target_real


def _is_under(child: Path, root: Path) -> bool:
    try:
        relative = child.relative_to(root)
    except ValueError:
        return False
    return relative != Path(".")
