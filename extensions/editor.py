"""Scan the editor's own extension state from disk."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from extensions.statedb import read_disabled

logger = logging.getLogger(__name__)

OBSOLETE_FILE = ".obsolete"

_VERSIONED_DIR_RE = re.compile(r"^(.*?)-\d+\.\d+\.\d+(?:-[a-z0-9]+-[a-z0-9]+)?$")


class EditorScanError(Exception):
    """Raised when the extension folder cannot be read."""

    pass


@dataclass
class InstalledExtension:
    """An extension present in the editor."""

    id: str
    version: str
    builtin: bool = False


@dataclass
class ExtensionList:
    """Snapshot of the editor's extensions.

    Attributes:
        enabled: User extensions currently enabled.
        disabled: User extensions currently disabled.
        builtin_disabled: Builtin extensions the user disabled.
    """

    enabled: dict[str, InstalledExtension] = field(default_factory=dict)
    disabled: dict[str, InstalledExtension] = field(default_factory=dict)
    builtin_disabled: dict[str, InstalledExtension] = field(default_factory=dict)


def _read_package(package_path: Path) -> tuple[str, str] | None:
    try:
        pkg = json.loads(package_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise EditorScanError(f"Cannot read the extension: {package_path}: {e}") from e

    publisher = pkg.get("publisher") if isinstance(pkg, dict) else None
    name = pkg.get("name") if isinstance(pkg, dict) else None
    if not publisher or not name:
        return None
    return f"{publisher}.{name}", str(pkg.get("version") or "0.0.0")


def _read_obsolete(extensions_dir: Path) -> dict:
    obsolete_path = extensions_dir / OBSOLETE_FILE
    if not obsolete_path.exists():
        return {}
    try:
        data = json.loads(obsolete_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise EditorScanError(f"Cannot read the file {obsolete_path}: {e}") from e
    return data if isinstance(data, dict) else {}


def list_user_extensions(extensions_dir: Path, exclude: str | None = None) -> dict[str, InstalledExtension]:
    """Extensions installed in the user extension folder.

    Folders marked obsolete and folders without a ``-X.Y.Z`` suffix are
    skipped.
    """
    installed: dict[str, InstalledExtension] = {}
    if not extensions_dir.is_dir():
        return installed

    obsolete = _read_obsolete(extensions_dir)

    for package_path in sorted(extensions_dir.glob("*/package.json")):
        folder = package_path.parent.name
        if obsolete.get(folder) or not _VERSIONED_DIR_RE.match(folder):
            continue

        identity = _read_package(package_path)
        if identity is None:
            continue
        id_, version = identity
        if obsolete.get(id_) or id_ == exclude:
            continue

        installed[id_] = InstalledExtension(id=id_, version=version)
    return installed


def list_builtin_extensions(app_root: Path | None) -> dict[str, InstalledExtension]:
    builtins: dict[str, InstalledExtension] = {}
    if app_root is None:
        return builtins

    builtin_dir = app_root / "extensions"
    if not builtin_dir.is_dir():
        return builtins

    for package_path in sorted(builtin_dir.glob("*/package.json")):
        identity = _read_package(package_path)
        if identity is not None:
            id_, version = identity
            builtins[id_] = InstalledExtension(id=id_, version=version, builtin=True)
    return builtins


def scan_editor_extensions(
    extensions_dir: Path,
    state_db: Path,
    app_root: Path | None = None,
    exclude: str | None = None,
) -> ExtensionList:
    """Build the editor snapshot from its folders and settings store.

    Args:
        extensions_dir: User extension folder (``~/.vscode/extensions``).
        state_db: Global ``state.vscdb`` holding the disabled list.
        app_root: Editor installation root, for builtin extensions.
        exclude: Extension id never reported (the tool's own id).

    Raises:
        EditorScanError: If a manifest cannot be read.
    """
    disabled_ids = set(read_disabled(state_db))
    result = ExtensionList()

    for id_, ext in list_user_extensions(extensions_dir, exclude=exclude).items():
        if id_ in disabled_ids:
            result.disabled[id_] = ext
        else:
            result.enabled[id_] = ext

    for id_, ext in list_builtin_extensions(app_root).items():
        if id_ in disabled_ids:
            result.builtin_disabled[id_] = ext

    logger.debug(
        "Editor extensions: %d enabled, %d disabled, %d builtin disabled",
        len(result.enabled),
        len(result.disabled),
        len(result.builtin_disabled),
    )
    return result
