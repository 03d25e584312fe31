"""Managed extension state schemas.

The manifest records which extensions this tool installed, at which version,
and on behalf of which scope. One manifest file exists per scope.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ManagerMode(str, Enum):
    """Scope an extension is managed for."""

    GLOBAL = "global"
    WORKSPACE = "workspace"


class RestartMode(str, Enum):
    """What to do with the editor once a commit needs a reload or restart."""

    AUTO = "auto"
    NONE = "none"
    RELOAD_WINDOWS = "reload-windows"
    RESTART_APP = "restart-app"
    RESTART_HOST = "restart-host"


class RestartAction(str, Enum):
    """Lifecycle action requested from the host."""

    RELOAD_WINDOW = "reload-window"
    RESTART_APP = "restart-app"
    RESTART_EXTENSION_HOST = "restart-extension-host"


class ExtensionState(BaseModel):
    """State of one managed extension."""

    model_config = ConfigDict(frozen=True)

    version: str = Field(..., description="Installed version (semver)")
    mode: ManagerMode = Field(ManagerMode.GLOBAL, description="Owning scope")


class InstalledManifest(BaseModel):
    """On-disk manifest: ``{"installed": {id: {version, mode}}}``."""

    installed: dict[str, ExtensionState] = Field(default_factory=dict)

    @classmethod
    def from_data(cls, data: Any) -> "InstalledManifest":
        """Build a manifest from decoded JSON.

        Older files stored a bare ``{id: version}`` mapping, or used plain
        version strings under ``installed``; both are read as global entries.
        """
        if not isinstance(data, dict):
            return cls()

        raw = data.get("installed")
        if not isinstance(raw, dict):
            raw = {k: v for k, v in data.items() if isinstance(v, str)}

        installed: dict[str, ExtensionState] = {}
        for ext_id, entry in raw.items():
            if isinstance(entry, str):
                installed[ext_id] = ExtensionState(version=entry, mode=ManagerMode.GLOBAL)
            else:
                installed[ext_id] = ExtensionState.model_validate(entry)
        return cls(installed=installed)

    def to_data(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return self.model_dump(mode="json")
