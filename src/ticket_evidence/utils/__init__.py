"""Utility exports for filesystem and hashing helpers."""

from ticket_evidence.utils.fs import atomic_write, is_within, safe_delete, write_exclusive
from ticket_evidence.utils.hashing import (
    FileDigest,
    file_digest,
    is_sha256_hex,
    iter_regular_files,
    sha256_bytes,
    sha256_file,
    sha256_tag,
    sha256_text,
)

__all__ = [
    "FileDigest",
    "atomic_write",
    "file_digest",
    "is_sha256_hex",
    "is_within",
    "iter_regular_files",
    "safe_delete",
    "sha256_bytes",
    "sha256_file",
    "sha256_tag",
    "sha256_text",
    "write_exclusive",
]
