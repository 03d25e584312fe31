"""Schemas module for configuration and persisted state.

Provides Pydantic models and enums for:
- Extension sources (file, forgejo, github, marketplace)
- Managed extension state and restart modes
"""

from .source import (
    ConfiguredSource,
    FileSystemSource,
    ForgejoSource,
    GitHubSource,
    LiteralGitHubSource,
    MarketplaceSource,
    Source,
    SourceConfigError,
    parse_source,
    parse_sources,
)
from .state import (
    ExtensionState,
    InstalledManifest,
    ManagerMode,
    RestartAction,
    RestartMode,
)

__all__ = [
    # Sources
    "ConfiguredSource",
    "FileSystemSource",
    "ForgejoSource",
    "GitHubSource",
    "LiteralGitHubSource",
    "MarketplaceSource",
    "Source",
    "SourceConfigError",
    "parse_source",
    "parse_sources",
    # State
    "ExtensionState",
    "InstalledManifest",
    "ManagerMode",
    "RestartAction",
    "RestartMode",
]
