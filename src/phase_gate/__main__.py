"""Module entrypoint for ``python -m phase_gate``."""

from __future__ import annotations

from phase_gate.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
