"""
ticket-evidence — unit tests for filesystem and hashing helpers

File: tests/unit/utils/test_fs_and_hashing.py
Last updated: 2026-10-18

Purpose
- Cover the primitives the manifest writer and verifier rely on: atomic and exclusive writes,
  contained deletion, regular-file enumeration, and relative path mapping.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

import pytest

from ticket_evidence.utils.fs import atomic_write, is_within, safe_delete, write_exclusive
from ticket_evidence.utils.hashing import (
    file_digest,
    is_sha256_hex,
    iter_regular_files,
    relative_posix_to_local,
    sha256_bytes,
    sha256_file,
    sha256_tag,
    sha256_text,
)


@pytest.mark.unit
def test_sha256_helpers_agree() -> None:
    expected = hashlib.sha256(b"abc").hexdigest()

    assert sha256_bytes(b"abc") == expected
    assert sha256_text("abc") == expected
    assert sha256_tag(b"abc") == f"sha256:{expected}"
    assert is_sha256_hex(expected)
    assert not is_sha256_hex(expected.upper())
    assert not is_sha256_hex(f"sha256:{expected}")
    assert not is_sha256_hex(None)


@pytest.mark.unit
def test_file_digest_reports_size_and_hash(tmp_path: Path) -> None:
    target = tmp_path / "blob.bin"
    target.write_bytes(b"x" * 10)

    digest = file_digest(target, chunk_size=3)

    assert digest.bytes == 10
    assert digest.sha256 == sha256_bytes(b"x" * 10)
    assert sha256_file(target) == digest.sha256
    with pytest.raises(ValueError):
        file_digest(target, chunk_size=0)


@pytest.mark.unit
def test_atomic_write_replaces_content_without_leaving_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "report.json"

    atomic_write(target, "first")
    atomic_write(target, b"second")

    assert target.read_bytes() == b"second"
    assert [path.name for path in tmp_path.iterdir()] == ["report.json"]


@pytest.mark.unit
def test_atomic_write_requires_existing_parent(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        atomic_write(tmp_path / "missing" / "file.txt", "x")


@pytest.mark.unit
def test_write_exclusive_refuses_to_overwrite(tmp_path: Path) -> None:
    target = tmp_path / "sealed.json"
    write_exclusive(target, "{}")

    with pytest.raises(FileExistsError):
        write_exclusive(target, "{\"tampered\":true}")
    assert target.read_text(encoding="utf-8") == "{}"


@pytest.mark.unit
def test_is_within(tmp_path: Path) -> None:
    inner = tmp_path / "runs" / "run-1"
    inner.mkdir(parents=True)

    assert is_within(inner, tmp_path)
    assert not is_within(tmp_path.parent, tmp_path)
    assert not is_within(inner, tmp_path / "does-not-exist")


@pytest.mark.unit
def test_safe_delete_is_contained(tmp_path: Path) -> None:
    root = tmp_path / "runs"
    victim = root / "run-old"
    (victim / "nested").mkdir(parents=True)
    (victim / "nested" / "f.txt").write_text("x", encoding="utf-8")
    outside = tmp_path / "keep.txt"
    outside.write_text("keep", encoding="utf-8")

    with pytest.raises(ValueError):
        safe_delete(root, root)
    with pytest.raises(ValueError):
        safe_delete(outside, root)

    safe_delete(victim, root)

    assert not victim.exists()
    assert outside.exists()


@pytest.mark.unit
@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_safe_delete_unlinks_symlinks_without_following(tmp_path: Path) -> None:
    root = tmp_path / "runs"
    root.mkdir()
    target_dir = tmp_path / "precious"
    target_dir.mkdir()
    (target_dir / "data.txt").write_text("x", encoding="utf-8")
    link = root / "run-link"
    link.symlink_to(target_dir, target_is_directory=True)

    safe_delete(link, root)

    assert not link.exists()
    assert (target_dir / "data.txt").exists()


@pytest.mark.unit
def test_iter_regular_files_lists_nested_files(tmp_path: Path) -> None:
    (tmp_path / "b").mkdir()
    (tmp_path / "b" / "inner.txt").write_text("1", encoding="utf-8")
    (tmp_path / "a.txt").write_text("2", encoding="utf-8")
    if hasattr(os, "symlink"):
        (tmp_path / "link.txt").symlink_to(tmp_path / "a.txt")

    listed = dict(iter_regular_files(tmp_path))

    assert sorted(listed) == ["a.txt", "b/inner.txt"]
    assert listed["b/inner.txt"].read_text(encoding="utf-8") == "1"


@pytest.mark.unit
def test_iter_regular_files_requires_directory(tmp_path: Path) -> None:
    file_path = tmp_path / "f.txt"
    file_path.write_text("x", encoding="utf-8")

    with pytest.raises(NotADirectoryError):
        list(iter_regular_files(file_path))


@pytest.mark.unit
def test_relative_posix_to_local(tmp_path: Path) -> None:
    assert relative_posix_to_local(tmp_path, "a/b.json") == tmp_path / "a" / "b.json"


@pytest.mark.unit
@pytest.mark.parametrize("unsafe", ["", "/etc/passwd", "a\\b", "a/../b", "./a", "a//b"])
def test_relative_posix_to_local_rejects_unsafe_paths(tmp_path: Path, unsafe: str) -> None:
    with pytest.raises(ValueError):
        relative_posix_to_local(tmp_path, unsafe)
