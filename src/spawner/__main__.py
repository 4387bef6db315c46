"""Allow ``python -m spawner``."""

from spawner.cli.app import app

app()
