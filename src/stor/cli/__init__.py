"""CLI entrypoints for stor."""

from stor.cli.main import app, run_cli

__all__ = ["app", "run_cli"]
