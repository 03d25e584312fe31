"""Orchestrator for vsixsync runs.

Provides:
- Config: configuration loading from vsixsync.toml and the environment
- ExtensionRunner: install, update, uninstall and adopt under the main lock
"""

from orchestrator.config import Config, ConfigError, load_config
from orchestrator.runner import AdoptionCandidate, ExtensionRunner, RunReport

__all__ = [
    "AdoptionCandidate",
    "Config",
    "ConfigError",
    "ExtensionRunner",
    "RunReport",
    "load_config",
]
