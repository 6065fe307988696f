"""
ticket-evidence — manifest write guardrail

File: src/ticket_evidence/quality/manifest_write_audit.py
Last updated: 2026-10-18

Purpose
- Keep the run evidence writer the single path that writes the evidence manifest, so no run
  report can ever be left without its manifest and self-hash.

What should be included in this file
- Token scan for the manifest filename spelled out as a string literal outside the writer.
- AST scan for direct write calls (``open(..., "w")``, ``write_text``, ``write_bytes``,
  ``atomic_write``, ``write_exclusive``, ``os.replace``, ``shutil.copy*``) whose target mentions
  ``MANIFEST_FILENAME``, directly or through a local name bound to such a path.
- Deterministic finding ordering, text/JSON formatters and a CLI entrypoint.

Functional requirements
- Exit code `0` when no findings exist.
- Exit code `1` when findings exist.
- Exit code `2` for internal scanner/runtime failures.

Non-functional requirements
- Offline only.
- Reading the manifest (verifiers, retention) is never flagged.
"""

from __future__ import annotations

import argparse
import ast
import io
import json
import os
import sys
import tokenize
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Final

from ticket_evidence.manifest.writer import MANIFEST_FILENAME

DEFAULT_ROOTS: tuple[str, ...] = ("src", "scripts")
DEFAULT_EXCLUDE: tuple[str, ...] = ("tests",)
DEFAULT_ALLOWLIST: tuple[str, ...] = ("src/ticket_evidence/manifest/writer.py",)

MANIFEST_SYMBOL: Final[str] = "MANIFEST_FILENAME"

_ALWAYS_IGNORED_DIRS: Final[frozenset[str]] = frozenset(
    {
        ".venv",
        "__pycache__",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        ".hypothesis",
        ".tox",
        ".nox",
        ".cache",
    }
)
_WRITE_FUNCTIONS: Final[frozenset[str]] = frozenset(
    {
        "atomic_write",
        "write_exclusive",
        "replace",
        "rename",
        "copy",
        "copy2",
        "copyfile",
        "move",
        "symlink_to",
        "hardlink_to",
    }
)
_WRITE_METHODS: Final[frozenset[str]] = frozenset({"write_text", "write_bytes", "touch"})
_WRITE_MODE_CHARS: Final[frozenset[str]] = frozenset("wax+")


@dataclass(frozen=True, slots=True)
class Finding:
    kind: str
    path: str
    line: int
    col: int
    snippet: str
    reason: str

    def sort_key(self) -> tuple[str, int, int, str]:
        return (self.path, self.line, self.col, self.kind)

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "path": self.path,
            "line": self.line,
            "col": self.col,
            "snippet": self.snippet,
            "reason": self.reason,
        }


@dataclass(frozen=True, slots=True)
class AuditResult:
    findings: tuple[Finding, ...]
    scanned_files: tuple[str, ...]
    roots: tuple[str, ...]
    exclude: tuple[str, ...]

    @property
    def error_count(self) -> int:
        return len(self.findings)

    def summary(self) -> dict[str, object]:
        return {
            "error_count": self.error_count,
            "scanned_files": len(self.scanned_files),
            "roots": list(self.roots),
            "exclude": list(self.exclude),
        }

    def to_dict(self) -> dict[str, object]:
        return {
            "summary": self.summary(),
            "findings": [item.to_dict() for item in self.findings],
            "scanned_files": list(self.scanned_files),
        }


def run_manifest_write_audit(
    *,
    repo_root: Path | None = None,
    roots: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
    allowlist: Sequence[str] = DEFAULT_ALLOWLIST,
) -> AuditResult:
    root = (repo_root or Path.cwd()).resolve()
    normalized_roots = _normalize_inputs(DEFAULT_ROOTS if roots is None else roots)
    normalized_exclude = _normalize_inputs(DEFAULT_EXCLUDE if exclude is None else exclude)
    allowed = frozenset(_normalize_inputs(allowlist))

    findings: list[Finding] = []
    scanned: list[str] = []
    for rel_path in _collect_python_files(root, roots=normalized_roots, exclude=normalized_exclude):
        scanned.append(rel_path)
        if rel_path in allowed:
            continue
        text = (root / rel_path).read_text(encoding="utf-8", errors="replace")
        findings.extend(scan_source(text, rel_path=rel_path))

    return AuditResult(
        findings=tuple(sorted(set(findings), key=lambda item: item.sort_key())),
        scanned_files=tuple(sorted(scanned)),
        roots=normalized_roots,
        exclude=normalized_exclude,
    )


def scan_source(text: str, *, rel_path: str) -> list[Finding]:
    """Return guardrail findings for one Python source text."""

    lines = text.splitlines()
    findings = list(_scan_string_literals(text, rel_path=rel_path, lines=lines))
    try:
        module = ast.parse(text, filename=rel_path)
    except SyntaxError as exc:
        findings.append(
            Finding(
                kind="syntax_error",
                path=rel_path,
                line=exc.lineno or 1,
                col=(exc.offset or 1) - 1,
                snippet=_line_text(lines, exc.lineno or 1),
                reason="file could not be parsed; manifest writes cannot be ruled out",
            )
        )
        return findings

    visitor = _WriteCallVisitor(rel_path=rel_path, lines=lines)
    visitor.visit(module)
    findings.extend(visitor.findings)
    return findings


def format_text(result: AuditResult) -> str:
    lines = [
        "manifest-write-audit "
        f"roots={','.join(result.roots) or '.'} "
        f"scanned_files={len(result.scanned_files)} "
        f"errors={result.error_count}"
    ]
    for finding in result.findings:
        snippet = finding.snippet.strip() or "<blank>"
        lines.append(
            f"ERROR {finding.path}:{finding.line}:{finding.col} "
            f"[{finding.kind}] {finding.reason} :: {snippet}"
        )
    return "\n".join(lines) + "\n"


def format_json(result: AuditResult) -> str:
    return json.dumps(result.to_dict(), sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        result = run_manifest_write_audit(
            repo_root=Path(args.repo_root).resolve(),
            roots=args.roots,
            exclude=args.exclude,
            allowlist=tuple(args.allowlist),
        )
    except Exception as exc:  # noqa: BLE001
        sys.stderr.write(f"manifest-write-audit crashed: {exc}\n")
        return 2

    sys.stdout.write(format_json(result) if args.output_format == "json" else format_text(result))
    return 1 if result.error_count else 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Forbid evidence manifest writes outside the run evidence writer."
    )
    parser.add_argument("--repo-root", default=".", help="Repository root to scan.")
    parser.add_argument(
        "--roots",
        nargs="+",
        default=list(DEFAULT_ROOTS),
        help="Root paths to scan (default: src scripts).",
    )
    parser.add_argument(
        "--exclude",
        nargs="*",
        default=list(DEFAULT_EXCLUDE),
        help="Relative paths to exclude (default: tests).",
    )
    parser.add_argument(
        "--allowlist",
        nargs="+",
        default=list(DEFAULT_ALLOWLIST),
        help="Files allowed to write the manifest.",
    )
    parser.add_argument(
        "--format",
        dest="output_format",
        choices=("text", "json"),
        default="text",
        help="Output format.",
    )
    return parser


def _scan_string_literals(
    text: str, *, rel_path: str, lines: Sequence[str]
) -> Iterator[Finding]:
    try:
        tokens = list(tokenize.generate_tokens(io.StringIO(text).readline))
    except (tokenize.TokenError, SyntaxError):
        return
    for token in tokens:
        if token.type != tokenize.STRING or MANIFEST_FILENAME not in token.string:
            continue
        line, col = token.start
        yield Finding(
            kind="manifest_filename_literal",
            path=rel_path,
            line=line,
            col=col,
            snippet=_line_text(lines, line),
            reason=f"use {MANIFEST_SYMBOL} from the manifest writer instead of the literal",
        )


class _WriteCallVisitor(ast.NodeVisitor):
    """Flags write calls whose target derives from ``MANIFEST_FILENAME``."""

    def __init__(self, *, rel_path: str, lines: Sequence[str]) -> None:
        self._rel_path = rel_path
        self._lines = lines
        self._tainted: set[str] = set()
        self.findings: list[Finding] = []

    def visit_Assign(self, node: ast.Assign) -> None:
        if self._mentions_manifest(node.value):
            for target in node.targets:
                if isinstance(target, ast.Name):
                    self._tainted.add(target.id)
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if (
            node.value is not None
            and isinstance(node.target, ast.Name)
            and self._mentions_manifest(node.value)
        ):
            self._tainted.add(node.target.id)
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        name = _call_name(func)
        if name in _WRITE_FUNCTIONS and any(self._mentions_manifest(arg) for arg in node.args):
            self._report(node, f"{name}() targets the manifest file")
        elif (
            isinstance(func, ast.Attribute)
            and func.attr in _WRITE_METHODS
            and self._mentions_manifest(func.value)
        ):
            self._report(node, f".{func.attr}() writes the manifest file")
        elif name == "open":
            self._check_open(node)
        self.generic_visit(node)

    def _check_open(self, node: ast.Call) -> None:
        if _call_name(node.func) != "open" or not _opens_for_write(node):
            return
        target: ast.expr | None
        if isinstance(node.func, ast.Attribute) and not _is_module_open(node.func):
            target = node.func.value
        else:
            target = node.args[0] if node.args else None
        if target is not None and self._mentions_manifest(target):
            self._report(node, "open() for writing targets the manifest file")

    def _mentions_manifest(self, node: ast.AST) -> bool:
        for child in ast.walk(node):
            if isinstance(child, ast.Name) and (
                child.id == MANIFEST_SYMBOL or child.id in self._tainted
            ):
                return True
            if isinstance(child, ast.Attribute) and child.attr == MANIFEST_SYMBOL:
                return True
        return False

    def _report(self, node: ast.Call, reason: str) -> None:
        finding = Finding(
            kind="direct_manifest_write",
            path=self._rel_path,
            line=node.lineno,
            col=node.col_offset,
            snippet=_line_text(self._lines, node.lineno),
            reason=f"{reason}; go through write_run_evidence",
        )
        if finding not in self.findings:
            self.findings.append(finding)


def _call_name(func: ast.expr) -> str:
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return ""


def _is_module_open(func: ast.Attribute) -> bool:
    return isinstance(func.value, ast.Name) and func.value.id in {"io", "os", "builtins", "codecs"}


def _opens_for_write(node: ast.Call) -> bool:
    mode_node: ast.expr | None = None
    for keyword in node.keywords:
        if keyword.arg == "mode":
            mode_node = keyword.value
    if mode_node is None:
        is_method = isinstance(node.func, ast.Attribute) and not _is_module_open(node.func)
        positional_index = 0 if is_method else 1
        if len(node.args) > positional_index:
            mode_node = node.args[positional_index]
    if mode_node is None:
        return False
    if isinstance(mode_node, ast.Constant) and isinstance(mode_node.value, str):
        return any(char in _WRITE_MODE_CHARS for char in mode_node.value)
    # Non-literal modes (os.open flags, variables) are treated as writes.
    return True


def _collect_python_files(
    repo_root: Path, *, roots: Sequence[str], exclude: Sequence[str]
) -> list[str]:
    discovered: set[str] = set()
    for root in roots:
        base = repo_root if root == "" else repo_root / root
        if not base.exists():
            continue
        if base.is_file():
            rel = _relative_posix(base, repo_root)
            if rel is not None and rel.endswith(".py") and not _is_excluded(rel, exclude):
                discovered.add(rel)
            continue
        for dirpath, dirnames, filenames in os.walk(base):
            current_dir = Path(dirpath)
            rel_dir = _relative_posix(current_dir, repo_root)
            if rel_dir is None:
                continue
            dirnames[:] = [
                name
                for name in sorted(dirnames)
                if name not in _ALWAYS_IGNORED_DIRS
                and not _is_excluded(f"{rel_dir}/{name}" if rel_dir else name, exclude)
            ]
            for filename in sorted(filenames):
                if not filename.endswith(".py"):
                    continue
                rel_file = _relative_posix(current_dir / filename, repo_root)
                if rel_file is None or _is_excluded(rel_file, exclude):
                    continue
                discovered.add(rel_file)
    return sorted(discovered)


def _is_excluded(rel_path: str, exclude: Sequence[str]) -> bool:
    return any(
        excluded and (rel_path == excluded or rel_path.startswith(f"{excluded}/"))
        for excluded in exclude
    )


def _relative_posix(path: Path, repo_root: Path) -> str | None:
    try:
        relative = path.resolve(strict=False).relative_to(repo_root)
    except ValueError:
        return None
    return relative.as_posix()


def _normalize_inputs(values: Sequence[str]) -> tuple[str, ...]:
    normalized: list[str] = []
    for value in values:
        raw = value.strip().replace("\\", "/")
        parts = [part for part in PurePosixPath(raw).parts if part not in {"", ".", "/"}]
        candidate = PurePosixPath(*parts).as_posix() if parts else ""
        if candidate not in normalized:
            normalized.append(candidate)
    return tuple(normalized)


def _line_text(lines: Sequence[str], line: int) -> str:
    if 1 <= line <= len(lines):
        return lines[line - 1]
    return ""


if __name__ == "__main__":
    raise SystemExit(main())
