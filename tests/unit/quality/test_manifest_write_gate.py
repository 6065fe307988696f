"""
ticket-evidence — unit tests for the manifest write gate wrapper

File: tests/unit/quality/test_manifest_write_gate.py
Last updated: 2026-10-18

Purpose
- Verify deterministic wrapper exit codes and output for `scripts/manifest_write_gate.py`.
"""

from __future__ import annotations

import importlib.util
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import ModuleType

import pytest

REPO_ROOT = Path(__file__).resolve().parents[3]
SCRIPT_PATH = REPO_ROOT / "scripts" / "manifest_write_gate.py"


def _write(root: Path, rel_path: str, text: str) -> None:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _load_gate_module() -> ModuleType:
    spec = importlib.util.spec_from_file_location("manifest_write_gate", SCRIPT_PATH)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.unit
def test_gate_returns_zero_for_clean_tree(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _write(tmp_path, "src/pkg/clean.py", "VALUE = 1\n")
    gate_module = _load_gate_module()

    exit_code = gate_module.main(["--root", str(tmp_path)])

    assert exit_code == 0
    assert "findings=0" in capsys.readouterr().out


@pytest.mark.unit
def test_gate_returns_one_when_findings_exist(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _write(tmp_path, "scripts/rogue.py", "(out / MANIFEST_FILENAME).write_text('{}')\n")
    gate_module = _load_gate_module()

    exit_code = gate_module.main(["--root", str(tmp_path), "--paths", "scripts"])

    output = capsys.readouterr().out
    assert exit_code == 1
    assert "manifest-write-gate roots=scripts exclude=tests" in output
    assert "ERROR scripts/rogue.py:1:0 [direct_manifest_write]" in output


@pytest.mark.unit
def test_gate_allowlist_override(tmp_path: Path) -> None:
    _write(tmp_path, "scripts/sealer.py", "(out / MANIFEST_FILENAME).write_text('{}')\n")
    gate_module = _load_gate_module()

    exit_code = gate_module.main(
        ["--root", str(tmp_path), "--paths", "scripts", "--allowlist", "scripts/sealer.py"]
    )

    assert exit_code == 0
