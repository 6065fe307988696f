"""
ticket-evidence — unit tests for config loader

File: tests/unit/config/test_config_loader.py
Last updated: 2026-10-18

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Limit env values that are invalid keep the previously resolved value.
- Path normalization relative to the config file.
- Schema rejections (unknown keys, embedded secrets, configurable selection strategy).
- Redacted effective config dumping.

Non-functional requirements
- Deterministic output across repeated loads; never reads the real process environment.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ticket_evidence.config import (
    ConfigLoadError,
    ConfigValidationError,
    default_config,
    dump_effective_config,
    limits_from_config,
    load_config,
    redact_config,
    validate_config,
)


def _write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.mark.unit
def test_defaults_when_no_file_is_present(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config["limits"] == {
        "inline_limit_bytes": 64,
        "max_items_per_report": 50,
        "raw_limit_bytes": 128,
        "retention_days": 7,
    }
    assert config["paths"]["runs_root"] == (tmp_path.resolve() / "runs").as_posix()
    assert config["observability"]["log_level"] == "INFO"


@pytest.mark.unit
def test_loader_precedence_file_env_cli(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "evidence.toml",
        """
[limits]
inline_limit_bytes = 10
raw_limit_bytes = 20
retention_days = 3

[observability]
log_level = "DEBUG"
""".strip(),
    )

    config = load_config(
        config_path,
        environ={
            "EVIDENCE_RAW_LIMIT_BYTES": "200",
            "EVIDENCE_RETENTION_DAYS": "5",
            "EVIDENCE_LOG_LEVEL": "WARNING",
        },
        cli_overrides={"limits.retention_days": 9, "paths.runs_root": None},
    )

    assert config["limits"]["inline_limit_bytes"] == 10
    assert config["limits"]["raw_limit_bytes"] == 200
    assert config["limits"]["retention_days"] == 9
    assert config["observability"]["log_level"] == "WARNING"
    assert config["limits"]["max_items_per_report"] == 50


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["-4", "abc", "", "inf", "nan"])
def test_invalid_env_limit_keeps_prior_value(tmp_path: Path, raw: str) -> None:
    config_path = _write_config(tmp_path / "evidence.toml", "[limits]\nretention_days = 3\n")

    config = load_config(config_path, environ={"EVIDENCE_RETENTION_DAYS": raw})

    assert config["limits"]["retention_days"] == 3


@pytest.mark.unit
def test_fractional_env_limit_is_floored(tmp_path: Path) -> None:
    config = load_config(
        _write_config(tmp_path / "evidence.toml", ""),
        environ={"EVIDENCE_INLINE_LIMIT_BYTES": "12.9"},
    )

    assert limits_from_config(config).inline_limit_bytes == 12


@pytest.mark.unit
def test_bool_env_binding_is_strict(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "evidence.toml", "")

    assert load_config(config_path, environ={"EVIDENCE_LOG_TO_STDOUT": "yes"})[
        "observability"
    ]["log_to_stdout"]
    with pytest.raises(ConfigLoadError, match="must be a boolean"):
        load_config(config_path, environ={"EVIDENCE_LOG_TO_STDOUT": "sometimes"})


@pytest.mark.unit
def test_paths_are_normalized_relative_to_config_file(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "conf" / "evidence.toml",
        '[paths]\nruns_root = "../data/runs"\nsandbox_root = "/abs/sandbox"\n',
    )

    config = load_config(config_path, environ={})

    assert config["paths"]["runs_root"] == (tmp_path.resolve() / "data" / "runs").as_posix()
    assert config["paths"]["sandbox_root"] == "/abs/sandbox"
    assert config["observability"]["log_dir"] == (
        tmp_path.resolve() / "conf" / "logs"
    ).as_posix()


@pytest.mark.unit
def test_explicit_missing_file_fails(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="not found"):
        load_config(tmp_path / "absent.toml", environ={})


@pytest.mark.unit
def test_invalid_toml_fails(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "evidence.toml", "[limits\n")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


@pytest.mark.unit
@pytest.mark.parametrize(
    ("body", "issue_path"),
    [
        ('[limits]\nmax_items_strategy = "keep_last_n"\n', "limits.max_items_strategy"),
        ("[limits]\nraw_limit_bytes = -1\n", "limits.raw_limit_bytes"),
        ('[paths]\napi_key = "sk-live"\n', "paths.api_key"),
        ("[unknown]\nx = 1\n", "unknown"),
        ("[meta]\nschema_version = 2\n", "meta.schema_version"),
        ('[observability]\nlog_level = "TRACE"\n', "observability.log_level"),
    ],
)
def test_schema_rejections(tmp_path: Path, body: str, issue_path: str) -> None:
    config_path = _write_config(tmp_path / "evidence.toml", body)

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(config_path, environ={})

    assert issue_path in {issue.path for issue in excinfo.value.issues}


@pytest.mark.unit
def test_embedded_secret_keys_get_a_specific_message() -> None:
    config = default_config()
    config["paths"]["client_secret"] = "shh"  # type: ignore[typeddict-unknown-key]

    result = validate_config(config)

    assert not result.is_valid
    assert any("secret" in issue.message for issue in result.issues)


@pytest.mark.unit
def test_redaction_and_dump_are_deterministic(tmp_path: Path) -> None:
    config = load_config(_write_config(tmp_path / "evidence.toml", ""), environ={})

    first = dump_effective_config(config)
    second = dump_effective_config(load_config(tmp_path / "evidence.toml", environ={}))

    assert first == second
    assert json.loads(first)["limits"]["retention_days"] == 7
    assert redact_config({"nested": {"access_token": "abc", "keep": 1}}) == {
        "nested": {"access_token": "<redacted>", "keep": 1}
    }
    assert redact_config("not a mapping") == {}
