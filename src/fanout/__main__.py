"""Allow running as ``python -m fanout``."""

from fanout.cli import app

app()
