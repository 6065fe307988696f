"""
ticket-evidence — durable file writes and contained deletion

File: src/ticket_evidence/utils/fs.py
Last updated: 2026-10-18

Purpose
- Write primitives for sealed run directories: replace-in-place (``atomic_write``), write-once
  (``write_exclusive``), and the retention sweep's ``safe_delete``.

Functional requirements
- Readers never observe a partially written file.
- ``write_exclusive`` raises ``FileExistsError`` instead of overwriting.
- ``safe_delete`` refuses the root itself and anything that resolves outside it; a symlink is
  removed as a link and its target is left alone.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

_EXCLUSIVE_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0)


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Write through a synced sibling temp file, then ``os.replace`` it over ``path``.

    The parent directory must already exist.
    """

    target = Path(path)
    directory = target.parent.resolve(strict=True)
    if not directory.is_dir():
        raise NotADirectoryError(f"{directory} is not a directory")

    fd, staging = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=directory)
    try:
        _write_synced(fd, _encode(data, encoding))
        os.replace(staging, target)
    except BaseException:
        Path(staging).unlink(missing_ok=True)
        raise
    _sync_directory(directory)


def write_exclusive(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    target = Path(path)
    _write_synced(os.open(target, _EXCLUSIVE_FLAGS, 0o644), _encode(data, encoding))
    _sync_directory(target.parent)


def is_within(child: PathLike, parent: PathLike) -> bool:
    """True when ``child`` resolves inside the existing directory ``parent``."""

    anchor = Path(parent)
    if not anchor.is_dir():
        return False
    return Path(child).resolve().is_relative_to(anchor.resolve())


def safe_delete(path: PathLike, root: PathLike) -> None:
    boundary = Path(root).resolve(strict=True)
    if not boundary.is_dir():
        raise NotADirectoryError(f"{boundary} is not a directory")

    target = Path(path)
    # Resolve the parent only, so a symlinked entry is judged by where it sits, not where it points.
    location = target.parent.resolve(strict=True) / target.name
    if location == boundary or not location.is_relative_to(boundary):
        raise ValueError(f"refusing to delete path outside root: {target}")

    if target.is_symlink():
        target.unlink()
    elif not target.resolve(strict=True).is_relative_to(boundary):
        raise ValueError(f"refusing to delete path outside root: {target}")
    elif target.is_dir():
        shutil.rmtree(target)
    else:
        target.unlink()


def _encode(data: bytes | str, encoding: str) -> bytes:
    return data if isinstance(data, bytes) else data.encode(encoding)


def _write_synced(fd: int, payload: bytes) -> None:
    with os.fdopen(fd, "wb") as stream:
        stream.write(payload)
        stream.flush()
        os.fsync(stream.fileno())


def _sync_directory(directory: Path) -> None:
    # Directory fsync is unsupported on Windows and on some network filesystems.
    if os.name == "nt":
        return
    try:
        dir_fd = os.open(directory, os.O_RDONLY | getattr(os, "O_DIRECTORY", 0))
    except OSError:
        return
    try:
        with contextlib.suppress(OSError):
            os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


__all__ = ["atomic_write", "is_within", "safe_delete", "write_exclusive"]
