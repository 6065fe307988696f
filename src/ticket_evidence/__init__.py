"""
ticket-evidence — package root

File: src/ticket_evidence/__init__.py
Last updated: 2026-10-18

Purpose
- Evidence capture and run-report integrity for ticket execution: bounded evidence items,
  content-addressed raw payloads, sealed run directories and their verification.

What should be included in this file
- Version export and a small public API surface.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).

Non-functional requirements
- Submodules are imported lazily by callers; only lightweight names are re-exported here.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
