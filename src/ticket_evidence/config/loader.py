"""
ticket-evidence — evidence.toml loader

File: src/ticket_evidence/config/loader.py
Last updated: 2026-10-18

Purpose
- Produce the effective config by layering built-in defaults, ``evidence.toml``, ``EVIDENCE_*``
  environment variables and CLI overrides, in that order of increasing priority.

What should be included in this file
- TOML parsing through ``tomllib`` with load errors raised as ``ConfigLoadError``.
- The fixed environment bindings and their value parsers.
- Resolution of path-valued fields against the directory holding the config file.
- A redacted, key-sorted JSON rendering for ``ticket-evidence config``.

Functional requirements
- The file layer is validated on its own before overrides apply, so file mistakes are reported
  against the file.
- A limit variable that does not parse as a non-negative number keeps the value resolved so far.
- A boolean variable that does not parse is a load error.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from ticket_evidence.config.limits import LIMIT_ENV_KEYS, clamp_non_negative_int
from ticket_evidence.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "evidence.toml"
ENV_PREFIX: Final[str] = "EVIDENCE_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

# parser(raw, current, variable) -> value to store
_EnvParser = Callable[[str, object, str], object]


class ConfigLoadError(ValueError):
    """Config could not be read, or an override could not be coerced."""


def _parse_text(raw: str, current: object, variable: str) -> object:
    return raw.strip()


def _parse_limit(raw: str, current: object, variable: str) -> object:
    return clamp_non_negative_int(raw, current if isinstance(current, int) else 0)


def _parse_flag(raw: str, current: object, variable: str) -> object:
    word = raw.strip().lower()
    if word in _TRUTHY:
        return True
    if word in _FALSY:
        return False
    raise ConfigLoadError(f"{variable} must be a boolean (true/false/1/0/yes/no/on/off)")


_ENV_FIELDS: Final[tuple[tuple[str, str, str, _EnvParser], ...]] = (
    *((env, "limits", name, _parse_limit) for name, env in sorted(LIMIT_ENV_KEYS.items())),
    (f"{ENV_PREFIX}RUNS_ROOT", "paths", "runs_root", _parse_text),
    (f"{ENV_PREFIX}SANDBOX_ROOT", "paths", "sandbox_root", _parse_text),
    (f"{ENV_PREFIX}LOG_LEVEL", "observability", "log_level", _parse_text),
    (f"{ENV_PREFIX}LOG_DIR", "observability", "log_dir", _parse_text),
    (f"{ENV_PREFIX}LOG_TO_STDOUT", "observability", "log_to_stdout", _parse_flag),
)


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config with path fields made absolute.

    ``config_path`` defaults to ``./evidence.toml``; a missing default file is fine, a missing
    explicit one is not. ``cli_overrides`` maps dotted keys (``"limits.retention_days"``) to
    values, and ``None`` values are skipped.
    """

    if config_path is None:
        source = (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
        from_file = _read_toml(source) if source.exists() else {}
    else:
        source = Path(config_path).expanduser().resolve()
        if not source.exists():
            raise ConfigLoadError(f"config file not found: {source}")
        from_file = _read_toml(source)

    layered = assert_valid_config(merge_config(default_config(), from_file))
    layered = merge_config(layered, _env_layer(layered, os.environ if environ is None else environ))
    layered = merge_config(layered, _cli_layer(cli_overrides or {}))
    return normalize_paths(assert_valid_config(layered), base_dir=source.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Copy of ``config`` with every path field expanded and anchored at ``base_dir``."""

    resolved = merge_config({}, config)
    for section, key in PATH_FIELDS:
        block = resolved.get(section)
        if isinstance(block, dict) and isinstance(block.get(key), str):
            block[key] = _anchor(block[key], base_dir)
    return resolved


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(
        redact_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(config: Mapping[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, dict[str, object]] = {}
    for variable, section, key, parse in _ENV_FIELDS:
        raw = environ.get(variable)
        if raw is None:
            continue
        current = config.get(section, {}).get(key)
        layer.setdefault(section, {})[key] = parse(raw, current, variable)
    return layer


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted in sorted(overrides):
        value = overrides[dotted]
        if value is None:
            continue
        *parents, leaf = [part for part in dotted.split(".") if part] or [""]
        if not leaf:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        node = layer
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value
    return layer


def _anchor(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
]
