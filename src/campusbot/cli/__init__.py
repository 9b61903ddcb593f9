"""Command-line interface for CampusBot."""

from campusbot.cli.main import app, cli

__all__ = ["app", "cli"]
