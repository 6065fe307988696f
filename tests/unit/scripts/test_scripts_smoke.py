"""
ticket-evidence — script subprocess smoke tests

File: tests/unit/scripts/test_scripts_smoke.py
Last updated: 2026-10-18

Purpose
- Keep script entrypoints executable and deterministic at a smoke-test level.
- Verify `--help`, `--json` output structure, and `--dry-run` non-destructive safety behavior.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from ticket_evidence.manifest.writer import MANIFEST_FILENAME, write_run_evidence
from ticket_evidence.run_report.builder import build_run_report

REPO_ROOT = Path(__file__).resolve().parents[3]
SRC_PATH = REPO_ROOT / "src"
RUN_ID = "run-01SMOKE000000000000000000"


def _run_script(*args: str) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    return subprocess.run(
        [sys.executable, *args],
        cwd=REPO_ROOT,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


def _render_failure(label: str, completed: subprocess.CompletedProcess[str]) -> str:
    return (
        f"{label} failed with exit code {completed.returncode}\n"
        f"stdout:\n{completed.stdout}\n"
        f"stderr:\n{completed.stderr}\n"
    )


def _seal_run(runs_root: Path) -> Path:
    report = build_run_report(
        ticket_id="T-smoke",
        terminal_status="ok",
        primary_failure_code=None,
        started_at="2020-01-01T00:00:00Z",
        ended_at="2020-01-01T00:00:01Z",
        duration_ms=1000,
    )
    run_dir = runs_root / RUN_ID
    write_run_evidence(run_dir, RUN_ID, report)
    return run_dir


@pytest.mark.unit
def test_manifest_write_gate_help_smoke() -> None:
    result = _run_script("scripts/manifest_write_gate.py", "--help")

    assert result.returncode == 0, _render_failure("manifest_write_gate --help", result)
    lowered_output = result.stdout.lower()
    assert "usage" in lowered_output
    assert "--format" in lowered_output
    assert "--allowlist" in lowered_output


@pytest.mark.unit
def test_verify_evidence_json_smoke_has_expected_top_level_keys(tmp_path: Path) -> None:
    _seal_run(tmp_path)

    result = _run_script("scripts/verify_evidence.py", "--path", str(tmp_path), "--json")

    assert result.returncode == 0, _render_failure("verify_evidence --json", result)
    payload = json.loads(result.stdout)
    assert {"runs_root", "run_id", "ok", "valid_count", "invalid_count", "rows"} <= set(payload)
    assert payload["ok"] is True
    assert payload["valid_count"] == 1
    assert payload["rows"][0]["run_id"] == RUN_ID


@pytest.mark.unit
def test_verify_evidence_reports_tampered_run(tmp_path: Path) -> None:
    run_dir = _seal_run(tmp_path)
    (run_dir / MANIFEST_FILENAME).unlink()

    result = _run_script(
        "scripts/verify_evidence.py", "--path", str(tmp_path), "--run-id", RUN_ID
    )

    assert result.returncode == 1, _render_failure("verify_evidence", result)
    assert "artifact_missing" in result.stdout


@pytest.mark.unit
def test_gc_runs_dry_run_is_non_destructive(tmp_path: Path) -> None:
    run_dir = _seal_run(tmp_path)

    result = _run_script(
        "scripts/gc_runs.py",
        "--runs-root",
        str(tmp_path),
        "--retention-days",
        "1",
        "--dry-run",
        "--json",
    )

    assert result.returncode == 0, _render_failure("gc_runs --dry-run", result)
    payload = json.loads(result.stdout)
    assert payload["dry_run"] is True
    assert payload["removed_count"] == 1
    assert payload["removed_paths"] == [run_dir.resolve().as_posix()]
    assert (run_dir / MANIFEST_FILENAME).is_file()


@pytest.mark.unit
def test_gc_runs_deletes_expired_runs(tmp_path: Path) -> None:
    run_dir = _seal_run(tmp_path)

    result = _run_script(
        "scripts/gc_runs.py", "--runs-root", str(tmp_path), "--retention-days", "1"
    )

    assert result.returncode == 0, _render_failure("gc_runs", result)
    assert "removed_count: 1" in result.stdout
    assert not run_dir.exists()
