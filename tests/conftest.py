"""Shared fixtures: a recording host and ``.vsix`` builders."""

import json
import zipfile
from pathlib import Path

import pytest

from extensions.editor import ExtensionList, InstalledExtension
from extensions.host import HostResult
from extensions.vsix import extract_extension_name


def make_vsix(path: Path, publisher: str, name: str, version: str = "1.0.0") -> Path:
    """Write a minimal package declaring ``publisher.name``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr(
            "extension/package.json",
            json.dumps({"publisher": publisher, "name": name, "version": version}),
        )
    return path


class FakeHost:
    """In-memory editor recording every call."""

    def __init__(self, enabled=None, disabled=None, builtin_disabled=None, can_toggle=False):
        self.extensions = ExtensionList(
            enabled={i: InstalledExtension(i, v) for i, v in (enabled or {}).items()},
            disabled={i: InstalledExtension(i, v) for i, v in (disabled or {}).items()},
            builtin_disabled={
                i: InstalledExtension(i, "1.0.0", builtin=True) for i in (builtin_disabled or [])
            },
        )
        self.can_toggle = can_toggle
        self.calls: list[tuple[str, str]] = []
        self.fail_install: set[str] = set()
        self.fail_uninstall: set[str] = set()

    def list_installed(self) -> ExtensionList:
        return ExtensionList(
            enabled=dict(self.extensions.enabled),
            disabled=dict(self.extensions.disabled),
            builtin_disabled=dict(self.extensions.builtin_disabled),
        )

    def install(self, target):
        self.calls.append(("install", str(target)))
        if str(target) in self.fail_install:
            return HostResult.failure("install failed")

        if isinstance(target, Path):
            extension_id = extract_extension_name(target)
            version = target.stem.rsplit("-", 1)[-1]
        else:
            extension_id, _, version = str(target).partition("@")
        self.extensions.enabled[extension_id] = InstalledExtension(extension_id, version or "1.0.0")
        return HostResult.success()

    def uninstall(self, extension_id):
        self.calls.append(("uninstall", extension_id))
        if extension_id in self.fail_uninstall:
            return HostResult.failure("uninstall failed")
        self.extensions.enabled.pop(extension_id, None)
        self.extensions.disabled.pop(extension_id, None)
        return HostResult.success()

    def enable(self, extension_id):
        self.calls.append(("enable", extension_id))
        return HostResult.success()

    def disable(self, extension_id):
        self.calls.append(("disable", extension_id))
        return HostResult.success()

    def supports_individual_toggle(self) -> bool:
        return self.can_toggle

    def reload_window(self):
        self.calls.append(("reload_window", ""))
        return HostResult.success()

    def restart_app(self):
        self.calls.append(("restart_app", ""))
        return HostResult.success()

    def restart_extension_host(self):
        self.calls.append(("restart_extension_host", ""))
        return HostResult.success()

    def version(self) -> str:
        return "1.90.0"

    def called(self, name: str) -> list[str]:
        return [arg for call, arg in self.calls if call == name]


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def global_storage(tmp_path: Path) -> Path:
    return tmp_path / "User" / "globalStorage" / "vsixsync"
