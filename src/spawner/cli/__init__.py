"""
CLI layer for the spawner.

Typer application that handles terminal transport only: reading payloads
from stdin, writing World JSON to stdout and single-line errors to stderr.

Entry point::

    spawner --help
"""

from spawner.cli.app import app

__all__ = ["app"]
