"""CLI commands module."""

from . import config, run

__all__ = ["run", "config"]
