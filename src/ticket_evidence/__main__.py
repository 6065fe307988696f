"""Module entrypoint for ``python -m ticket_evidence``."""

from __future__ import annotations

from ticket_evidence.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
