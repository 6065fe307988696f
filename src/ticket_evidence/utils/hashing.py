"""
ticket-evidence — digests and run-directory walking

File: src/ticket_evidence/utils/hashing.py
Last updated: 2026-10-18

Purpose
- SHA-256 over bytes, text and files, plus the ordered file walk the manifest writer and the
  verifier share.

Functional requirements
- ``iter_regular_files`` yields regular files only, in relative POSIX path order, and never
  descends through symlinks.
- ``relative_posix_to_local`` accepts only plain relative POSIX paths (no ``.``/``..``/empty
  segments, no backslashes, no leading slash).
"""

from __future__ import annotations

import hashlib
import os
import re
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterator

PathLike = str | os.PathLike[str]

SHA256_TAG_PREFIX: Final[str] = "sha256:"
DEFAULT_CHUNK_SIZE: Final[int] = 1 << 20

_HEX_DIGEST: Final[re.Pattern[str]] = re.compile(r"[0-9a-f]{64}")
_UNSAFE_SEGMENTS: Final[frozenset[str]] = frozenset({"", ".", ".."})


@dataclass(frozen=True, slots=True)
class FileDigest:
    sha256: str
    bytes: int


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    return hashlib.sha256(text.encode(encoding)).hexdigest()


def sha256_tag(data: bytes) -> str:
    """``sha256:<hex>``, the tagged form stored on evidence items."""

    return SHA256_TAG_PREFIX + sha256_bytes(data)


def file_digest(path: PathLike, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> FileDigest:
    """Digest and byte count of ``path``, read once in ``chunk_size`` blocks."""

    if chunk_size < 1:
        raise ValueError("chunk_size must be > 0")
    hasher = hashlib.sha256()
    size = 0
    with open(path, "rb") as stream:
        for block in iter(lambda: stream.read(chunk_size), b""):
            hasher.update(block)
            size += len(block)
    return FileDigest(sha256=hasher.hexdigest(), bytes=size)


def sha256_file(path: PathLike, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    return file_digest(path, chunk_size=chunk_size).sha256


def is_sha256_hex(value: object) -> bool:
    return isinstance(value, str) and _HEX_DIGEST.fullmatch(value) is not None


def iter_regular_files(directory: PathLike) -> Iterator[tuple[str, Path]]:
    """Yield ``(relative_posix_path, path)`` pairs sorted by relative path."""

    base = Path(directory).resolve(strict=True)
    if not base.is_dir():
        raise NotADirectoryError(f"{base} is not a directory")

    found: list[tuple[str, Path]] = []
    # os.walk with followlinks=False lists symlinked directories but never enters them.
    for folder, _subdirs, names in os.walk(base, followlinks=False):
        for name in names:
            candidate = Path(folder, name)
            try:
                regular = stat.S_ISREG(candidate.lstat().st_mode)
            except FileNotFoundError:
                continue
            if regular:
                found.append((candidate.relative_to(base).as_posix(), candidate))
    found.sort(key=lambda pair: pair[0])
    yield from found


def relative_posix_to_local(root: Path, relative_posix_path: str) -> Path:
    """Join a manifest path onto ``root``; raise ``ValueError`` for anything that could escape."""

    text = relative_posix_path
    if not isinstance(text, str) or not text:
        raise ValueError("relative path cannot be empty")
    if "\\" in text or text.startswith("/"):
        raise ValueError(f"relative path must be a relative POSIX path: {text!r}")
    segments = text.split("/")
    if _UNSAFE_SEGMENTS.intersection(segments):
        raise ValueError(f"relative path is not safe: {text!r}")
    return root.joinpath(*segments)


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "FileDigest",
    "SHA256_TAG_PREFIX",
    "file_digest",
    "is_sha256_hex",
    "iter_regular_files",
    "relative_posix_to_local",
    "sha256_bytes",
    "sha256_file",
    "sha256_tag",
    "sha256_text",
]
