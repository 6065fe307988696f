"""Unit tests for the raw evidence store."""

from __future__ import annotations

import os
import uuid

import pytest

from ticket_evidence.domain.codes import EvidenceErrorCode
from ticket_evidence.domain.errors import RawPointerError
from ticket_evidence.evidence.store import EvidenceStore

FIXED_ID = uuid.UUID("12345678-1234-5678-1234-567812345678")


@pytest.mark.unit
def test_write_places_bytes_under_store_root(tmp_path) -> None:
    store = EvidenceStore(tmp_path, id_factory=lambda: FIXED_ID)

    result = store.write(kind="stderr", retrieved_at="2026-03-01T10:00:00Z", data=b"boom")

    assert result.ok
    assert result.raw_pointer == f"evidence_store/2026-03-01/{FIXED_ID}_stderr.bin"
    assert result.stored_bytes == 4
    on_disk = tmp_path / "evidence_store" / "2026-03-01" / f"{FIXED_ID}_stderr.bin"
    assert on_disk.read_bytes() == b"boom"
    assert store.read(result.raw_pointer) == b"boom"
    assert store.resolve(result.raw_pointer) == on_disk.resolve()


@pytest.mark.unit
def test_write_at_pointer_rejects_invalid_pointers(tmp_path) -> None:
    store = EvidenceStore(tmp_path)

    traversal = store.write_at_pointer("evidence_store/../escape.bin", b"x")
    malformed = store.write_at_pointer("evidence_store/2026-03-01/nope.bin", b"x")

    assert not traversal.ok
    assert traversal.code is EvidenceErrorCode.PATH_TRAVERSAL
    assert not malformed.ok
    assert malformed.code is EvidenceErrorCode.INVALID_POINTER
    assert not (tmp_path / "escape.bin").exists()


@pytest.mark.unit
def test_write_reports_failure_when_id_factory_misbehaves(tmp_path) -> None:
    store = EvidenceStore(tmp_path, id_factory=lambda: "not-an-id")

    result = store.write(kind="trace", retrieved_at="2026-03-01T10:00:00Z", data=b"x")

    assert not result.ok
    assert result.code is EvidenceErrorCode.WRITE_FAILED


@pytest.mark.unit
@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_symlinked_date_directory_cannot_redirect_writes(tmp_path) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    store = EvidenceStore(tmp_path / "sandbox", id_factory=lambda: FIXED_ID)
    store.store_root.mkdir(parents=True)
    (store.store_root / "2026-03-01").symlink_to(outside, target_is_directory=True)

    result = store.write(kind="stderr", retrieved_at="2026-03-01T10:00:00Z", data=b"x")

    assert not result.ok
    assert result.code is EvidenceErrorCode.PATH_TRAVERSAL
    assert list(outside.iterdir()) == []

    with pytest.raises(RawPointerError):
        store.resolve(f"evidence_store/2026-03-01/{FIXED_ID}_stderr.bin")


@pytest.mark.unit
def test_existing_blob_is_never_replaced(tmp_path) -> None:
    store = EvidenceStore(tmp_path, id_factory=lambda: FIXED_ID)
    first = store.write(kind="stderr", retrieved_at="2026-03-01T10:00:00Z", data=b"first")

    second = store.write_at_pointer(first.raw_pointer, b"second")

    assert first.ok
    assert not second.ok
    assert second.code is EvidenceErrorCode.WRITE_FAILED
    assert store.read(first.raw_pointer) == b"first"


@pytest.mark.unit
@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_escaping_date_directory_is_refused_before_anything_is_created(tmp_path) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    store = EvidenceStore(tmp_path / "sandbox", id_factory=lambda: FIXED_ID)
    store.store_root.mkdir(parents=True)
    (store.store_root / "2026-03-01").symlink_to(outside / "deep", target_is_directory=True)

    result = store.write(kind="stderr", retrieved_at="2026-03-01T10:00:00Z", data=b"x")

    assert not result.ok
    assert result.code is EvidenceErrorCode.PATH_TRAVERSAL
    assert not (outside / "deep").exists()
