"""CLI application setup using Typer.

Provides the command-line interface for Latchkey operations.
"""

from latchkey.cli.main import app

__all__ = ["app"]
