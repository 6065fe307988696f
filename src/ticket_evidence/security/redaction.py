"""
ticket-evidence — secret redaction

File: src/ticket_evidence/security/redaction.py
Last updated: 2026-10-18

Purpose
- Strip credentials from free text and nested payloads before they reach run reports, rejection
  details or the run log.

What should be included in this file
- Key classification: a value stored under a credential-looking key is replaced wholesale.
- Text rules: each rule is one regex; when it defines a ``secret`` group only that span is
  replaced, so ``password=...`` keeps its key name.

Functional requirements
- Redaction is idempotent: the replacement marker never matches a rule.
- Keys ending in ``_hash``/``_sha256`` hold digests, not secrets, and are kept.
- Reference cycles are cut with the marker instead of recursing.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final, NamedTuple

REDACTED_VALUE: Final[str] = "***REDACTED***"

DEFAULT_SENSITIVE_KEY_DENYLIST: Final[frozenset[str]] = frozenset(
    {
        "access_token",
        "api_key",
        "apikey",
        "authorization",
        "bearer_token",
        "client_secret",
        "cookie",
        "credential",
        "credentials",
        "lease_token",
        "passwd",
        "password",
        "private_key",
        "refresh_token",
        "secret",
        "set_cookie",
        "token",
    }
)

_SENSITIVE_ENDINGS: Final[tuple[str, ...]] = ("_api_key", "_password", "_secret", "_token")
_SENSITIVE_BEGINNINGS: Final[tuple[str, ...]] = ("api_key_", "password_", "secret_")
_DIGEST_ENDINGS: Final[tuple[str, ...]] = ("_hash", "_sha256")

_KEY_HUMP: Final[re.Pattern[str]] = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_KEY_SEPARATORS: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")


class _Rule(NamedTuple):
    name: str
    pattern: re.Pattern[str]


_RULES: Final[tuple[_Rule, ...]] = (
    _Rule(
        "private_key_block",
        re.compile(
            r"-----BEGIN(?: [A-Z0-9]+)* PRIVATE KEY-----"
            r"[\s\S]+?"
            r"-----END(?: [A-Z0-9]+)* PRIVATE KEY-----"
        ),
    ),
    _Rule(
        "authorization_bearer",
        re.compile(r"(?i)\bbearer\s+(?P<secret>[A-Za-z0-9\-._~+/=]{8,})"),
    ),
    _Rule(
        "explicit_secret_assignment",
        re.compile(
            r"(?i)\b(?:password|passwd|secret|api[_-]?key|client[_-]?secret|access[_-]?token"
            r"|refresh[_-]?token|lease[_-]?token)\b\s*[:=]\s*[\"']?"
            r"(?P<secret>[A-Za-z0-9._~+/=-]{6,})"
        ),
    ),
    _Rule("openai_api_key", re.compile(r"\bsk-[A-Za-z0-9_-]{20,255}\b")),
    _Rule("aws_access_key", re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b")),
    _Rule("github_token", re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,255}\b")),
    _Rule("jwt", re.compile(r"\beyJ[\w-]{8,}\.[\w-]{8,}\.[\w-]{8,}\b", re.ASCII)),
)


@dataclass(frozen=True, slots=True)
class SecretFinding:
    rule: str
    start: int
    end: int


def _secret_span(match: re.Match[str]) -> tuple[int, int]:
    return match.span("secret") if "secret" in match.re.groupindex else match.span()


def scan_for_secrets(text: str) -> tuple[SecretFinding, ...]:
    """Every rule hit in ``text`` as ``(rule, start, end)``, ordered by position."""

    _require_text(text)
    found = [
        SecretFinding(rule.name, *_secret_span(match))
        for rule in _RULES
        for match in rule.pattern.finditer(text)
    ]
    return tuple(sorted(found, key=lambda item: (item.start, item.end, item.rule)))


def redact_text(text: str, *, replacement: str = REDACTED_VALUE) -> str:
    _require_text(text)

    def substitute(match: re.Match[str]) -> str:
        start, end = _secret_span(match)
        offset = match.start()
        whole = match.group()
        return whole[: start - offset] + replacement + whole[end - offset :]

    for rule in _RULES:
        text = rule.pattern.sub(substitute, text)
    return text


def is_sensitive_key(key: str) -> bool:
    words = _KEY_SEPARATORS.sub("_", _KEY_HUMP.sub("_", key.strip()).lower()).strip("_")
    if not words or words.endswith(_DIGEST_ENDINGS):
        return False
    return (
        words in DEFAULT_SENSITIVE_KEY_DENYLIST
        or words.endswith(_SENSITIVE_ENDINGS)
        or words.startswith(_SENSITIVE_BEGINNINGS)
    )


def redact_structure(value: object, *, replacement: str = REDACTED_VALUE) -> object:
    """Deep copy of ``value`` with secret keys masked and every string run through the rules.

    Mappings come back as key-sorted dicts, tuples stay tuples, and unknown objects are rendered
    with ``str`` first.
    """

    active: set[int] = set()

    def walk(node: object) -> object:
        if node is None or isinstance(node, (bool, int, float)):
            return node
        if isinstance(node, str):
            return redact_text(node, replacement=replacement)
        if not isinstance(node, (Mapping, list, tuple)):
            return redact_text(str(node), replacement=replacement)
        if id(node) in active:
            return replacement
        active.add(id(node))
        try:
            if isinstance(node, Mapping):
                return {
                    key: replacement
                    if isinstance(key, str) and is_sensitive_key(key)
                    else walk(node[key])
                    for key in sorted(node, key=str)
                }
            items = [walk(item) for item in node]
            return tuple(items) if isinstance(node, tuple) else items
        finally:
            active.discard(id(node))

    return walk(value)


def _require_text(text: object) -> None:
    if not isinstance(text, str):
        raise TypeError(f"text must be a string, got {type(text).__name__}")


__all__ = [
    "DEFAULT_SENSITIVE_KEY_DENYLIST",
    "REDACTED_VALUE",
    "SecretFinding",
    "is_sensitive_key",
    "redact_structure",
    "redact_text",
    "scan_for_secrets",
]
