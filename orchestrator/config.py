"""Configuration management for vsixsync.

Loads configuration from:
1. vsixsync.toml (or vsixsync.yaml) in the current or a parent directory
2. Environment variables (overrides), including a ``.env`` file

Example vsixsync.toml::

    extensions = ["acme.tool", "vsx:acme.other@1.2.0", "-gh:acme/linter", "web"]
    restart_mode = "auto"

    [groups]
    web = ["esbenp.prettier-vscode", "dbaeumer.vscode-eslint"]

    [sources.vsx]
    type = "marketplace"
    serviceUrl = "https://open-vsx.org/vscode/gallery"
    throttle = 500

    [sources.gh]
    type = "github"
    token = "env:GITHUB_TOKEN"
    fallback = "vsx"
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import yaml
from dotenv import load_dotenv

from schemas.source import Source, SourceConfigError, parse_sources
from schemas.state import RestartMode

# Load .env file if present
load_dotenv()

CONFIG_FILENAMES = ("vsixsync.toml", "vsixsync.yaml", "vsixsync.yml")


class ConfigError(Exception):
    """Raised when the configuration is invalid."""

    pass


def _default_user_data_dir() -> Path:
    """User data directory of the editor for this platform."""
    portable = os.getenv("VSCODE_PORTABLE")
    if portable:
        return Path(portable) / "user-data"
    if sys.platform == "win32":
        return Path(os.getenv("APPDATA", Path.home() / "AppData" / "Roaming")) / "Code"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Code"
    return Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config")) / "Code"


def _path_or_none(value: str) -> Path | None:
    return Path(value).expanduser() if value else None


@dataclass
class EditorConfig:
    """Editor installation configuration."""

    cli: str = "code"
    user_data_dir: str = ""  # default: per-platform editor data directory
    extensions_dir: str = ""  # default: ~/.vscode/extensions
    app_root: str = ""  # editor install root, for builtin extensions
    version: str = ""  # default: asked from the editor command line
    target_platform: str = ""  # default: detected, e.g. linux-x64
    self_id: str = ""  # extension id never reported as installed

    def resolved_user_data_dir(self) -> Path:
        return _path_or_none(self.user_data_dir) or _default_user_data_dir()

    def resolved_extensions_dir(self) -> Path:
        portable = os.getenv("VSCODE_PORTABLE")
        if self.extensions_dir:
            return Path(self.extensions_dir).expanduser()
        if portable:
            return Path(portable) / "extensions"
        return Path.home() / ".vscode" / "extensions"

    def resolved_app_root(self) -> Path | None:
        return _path_or_none(self.app_root)


@dataclass
class StorageConfig:
    """Where vsixsync keeps its manifests, aliases and locks."""

    dir: str = ""  # default: <user data>/User/globalStorage/vsixsync
    workspace_dir: str = ".vscode/vsixsync"  # relative to the workspace
    temporary_dir: str = ""  # default: system temporary directory


@dataclass
class LockConfig:
    """Main lock configuration."""

    timeout: float = 30.0
    retry_interval: float = 0.3
    stale: float = 600.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"


@dataclass
class Config:
    """Main configuration container.

    ``extensions`` is None when nothing is configured, which turns every
    command into a no-op.
    """

    extensions: list[Any] | None = None
    groups: dict[str, list[Any]] = field(default_factory=dict)
    sources: dict[str, Source] = field(default_factory=dict)
    restart_mode: RestartMode = RestartMode.AUTO
    editor: EditorConfig = field(default_factory=EditorConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: Path | None = None) -> "Config":
        """Create Config from dictionary.

        Raises:
            ConfigError: If a section has the wrong shape.
        """
        extensions = data.get("extensions")
        if extensions is not None and not isinstance(extensions, list):
            raise ConfigError("'extensions' must be a list")

        groups = data.get("groups") or {}
        if not isinstance(groups, dict):
            raise ConfigError("'groups' must be a table")
        for name, entries in groups.items():
            if not isinstance(entries, list):
                raise ConfigError(f"Group '{name}' must be a list")

        try:
            sources = parse_sources(data.get("sources"))
        except SourceConfigError as e:
            raise ConfigError(str(e)) from e

        try:
            restart_mode = RestartMode(data.get("restart_mode", RestartMode.AUTO.value))
        except ValueError as e:
            raise ConfigError(f"Invalid restart_mode: {data.get('restart_mode')!r}") from e

        try:
            return cls(
                extensions=extensions,
                groups=groups,
                sources=sources,
                restart_mode=restart_mode,
                editor=EditorConfig(**data.get("editor", {})),
                storage=StorageConfig(**data.get("storage", {})),
                lock=LockConfig(**data.get("lock", {})),
                logging=LoggingConfig(**data.get("logging", {})),
                path=path,
            )
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def global_storage_dir(self) -> Path:
        if self.storage.dir:
            return Path(self.storage.dir).expanduser()
        return self.editor.resolved_user_data_dir() / "User" / "globalStorage" / "vsixsync"

    def workspace_storage_dir(self, workspace: Path) -> Path:
        return workspace / self.storage.workspace_dir


def find_config_file(start: Path | None = None) -> Path | None:
    """Find vsixsync.toml (or .yaml) in current or parent directories.

    Returns:
        Path to the config file or None if not found.
    """
    current = start or Path.cwd()

    for directory in [current, *current.parents]:
        for filename in CONFIG_FILENAMES:
            config_path = directory / filename
            if config_path.exists():
                return config_path

    return None


def _read_file(path: Path) -> dict[str, Any]:
    try:
        if path.suffix in (".yaml", ".yml"):
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            with open(path, "rb") as f:
                data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a table")
    return data


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Optional explicit path to the config file.

    Returns:
        Config object with merged settings.

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    # Start with defaults
    config_data: dict[str, Any] = {}

    if config_path is None:
        env_path = os.getenv("VSIXSYNC_CONFIG")
        config_path = Path(env_path) if env_path else find_config_file()

    path = Path(config_path) if config_path is not None else None
    if path is not None:
        if path.exists():
            config_data = _read_file(path)
        else:
            raise ConfigError(f"Config file not found: {path}")

    # Apply environment variable overrides
    restart_mode = os.getenv("VSIXSYNC_RESTART_MODE")
    if restart_mode:
        config_data["restart_mode"] = restart_mode

    env_overrides = {
        "editor": {"cli": os.getenv("VSIXSYNC_EDITOR_CLI")},
        "storage": {"dir": os.getenv("VSIXSYNC_STORAGE_DIR")},
        "logging": {"level": os.getenv("VSIXSYNC_LOG_LEVEL")},
    }

    # Merge env overrides (only non-None values)
    for section, values in env_overrides.items():
        if section not in config_data:
            config_data[section] = {}
        for key, value in values.items():
            if value is not None:
                config_data[section][key] = value

    return Config.from_dict(config_data, path=path)
