"""Main entry point for running taskpilot as a module.

Usage:
    python -m taskpilot --help
    python -m taskpilot run ../project 1:0
    python -m taskpilot list
"""

from __future__ import annotations

from .cli import app

if __name__ == "__main__":
    app()
