"""Punto de entrada: python -m pasos_tool."""

from __future__ import annotations

from pasos_tool.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
