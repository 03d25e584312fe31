"""CLI command modules for vsixsync."""

from cli.commands.extensions import ignore_workspace, list_extensions
from cli.commands.sources import sources_app

__all__ = ["ignore_workspace", "list_extensions", "sources_app"]
