"""
ticket-evidence — unit tests for the manifest write audit

File: tests/unit/quality/test_manifest_write_audit.py
Last updated: 2026-10-18

Purpose
- Verify that writing the evidence manifest anywhere but the run evidence writer is detected,
  and that reading it never is.

What this test file should cover
- Filename literal detection and direct/indirect write call detection.
- Allowlist and default test exclusion.
- Deterministic ordering, JSON output and exit codes.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ticket_evidence.manifest.writer import MANIFEST_FILENAME
from ticket_evidence.quality.manifest_write_audit import (
    main,
    run_manifest_write_audit,
    scan_source,
)


def _write(root: Path, rel_path: str, text: str) -> None:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _kinds(text: str) -> list[str]:
    return [finding.kind for finding in scan_source(text, rel_path="src/pkg/mod.py")]


@pytest.mark.unit
def test_filename_literal_is_flagged() -> None:
    findings = scan_source(f'TARGET = "{MANIFEST_FILENAME}"\n', rel_path="src/pkg/mod.py")

    assert [(item.kind, item.line, item.col) for item in findings] == [
        ("manifest_filename_literal", 1, 9)
    ]


@pytest.mark.unit
@pytest.mark.parametrize(
    "source",
    [
        "(run_dir / MANIFEST_FILENAME).write_text('{}')\n",
        "(run_dir / writer.MANIFEST_FILENAME).write_bytes(b'{}')\n",
        "path = run_dir / MANIFEST_FILENAME\natomic_write(path, '{}')\n",
        "target: Path = run_dir / MANIFEST_FILENAME\nwrite_exclusive(target, '{}')\n",
        "path = run_dir / MANIFEST_FILENAME\nwith open(path, 'w') as fh:\n    fh.write('{}')\n",
        "path = run_dir / MANIFEST_FILENAME\nwith path.open(mode='a') as fh:\n    pass\n",
        "os.replace(tmp, run_dir / MANIFEST_FILENAME)\n",
        "shutil.copy2(src, run_dir / MANIFEST_FILENAME)\n",
    ],
)
def test_direct_writes_are_flagged(source: str) -> None:
    assert _kinds(source) == ["direct_manifest_write"]


@pytest.mark.unit
@pytest.mark.parametrize(
    "source",
    [
        "data = json.loads((run_dir / MANIFEST_FILENAME).read_text())\n",
        "path = run_dir / MANIFEST_FILENAME\nwith open(path) as fh:\n    fh.read()\n",
        "path = run_dir / MANIFEST_FILENAME\nwith path.open('rb') as fh:\n    fh.read()\n",
        "(run_dir / 'notes.json').write_text('{}')\n",
    ],
)
def test_reads_and_unrelated_writes_are_not_flagged(source: str) -> None:
    assert _kinds(source) == []


@pytest.mark.unit
def test_unparseable_source_is_reported() -> None:
    assert _kinds("def broken(:\n") == ["syntax_error"]


@pytest.mark.unit
def test_audit_respects_allowlist_and_test_exclusion(tmp_path: Path) -> None:
    violation = "(run_dir / MANIFEST_FILENAME).write_text('{}')\n"
    _write(tmp_path, "src/ticket_evidence/manifest/writer.py", violation)
    _write(tmp_path, "tests/unit/test_fixture.py", violation)
    _write(tmp_path, "scripts/rogue.py", violation)
    _write(tmp_path, "src/ticket_evidence/other.py", f'NAME = "{MANIFEST_FILENAME}"\n')
    _write(tmp_path, "src/ticket_evidence/__pycache__/cached.py", violation)

    result = run_manifest_write_audit(repo_root=tmp_path)

    assert [(item.path, item.kind) for item in result.findings] == [
        ("scripts/rogue.py", "direct_manifest_write"),
        ("src/ticket_evidence/other.py", "manifest_filename_literal"),
    ]
    assert result.scanned_files == (
        "scripts/rogue.py",
        "src/ticket_evidence/manifest/writer.py",
        "src/ticket_evidence/other.py",
    )
    assert result.summary()["error_count"] == 2


@pytest.mark.unit
def test_main_exit_codes_and_json_output(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _write(tmp_path, "src/clean.py", "VALUE = 1\n")

    assert main(["--repo-root", str(tmp_path), "--format", "json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["summary"]["error_count"] == 0
    assert payload["scanned_files"] == ["src/clean.py"]

    _write(tmp_path, "src/dirty.py", "(root / MANIFEST_FILENAME).touch()\n")
    assert main(["--repo-root", str(tmp_path)]) == 1
    assert "src/dirty.py:1:0 [direct_manifest_write]" in capsys.readouterr().out
