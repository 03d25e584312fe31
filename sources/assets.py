"""Release asset names and asset selection.

Asset file names follow ``name[-platform][-X.Y.Z].vsix``. The platform is
``universal`` or ``<os>-<arch>`` with os in alpine/darwin/linux/win32.
"""

from __future__ import annotations

import platform as _platform
import re
from dataclasses import dataclass
from typing import Generic, Iterable, TypeVar

from sources import versions

ASSET_SUFFIX = ".vsix"
UNIVERSAL = "universal"
KNOWN_OS = ("alpine", "darwin", "linux", "win32")

_VERSION_RE = re.compile(r"^(.*?)-(\d+\.\d+\.\d+)")
_PLATFORM_RE = re.compile(r"^(.*?)-((?:alpine|darwin|linux|win32)-[a-z][a-z\d]+|universal)")

_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "armhf",
    "armv8l": "arm64",
}

RefT = TypeVar("RefT")


@dataclass(frozen=True)
class AssetName:
    """Parsed asset file name."""

    name: str
    platform: str | None = None
    version: str | None = None

    @property
    def is_universal(self) -> bool:
        return self.platform is None or self.platform == UNIVERSAL


def parse_asset_name(asset_name: str) -> AssetName | None:
    """Parse an asset file name.

    Returns:
        The parsed name, or None if the file is not a ``.vsix``.
    """
    if not asset_name.endswith(ASSET_SUFFIX):
        return None

    left = asset_name[: -len(ASSET_SUFFIX)]
    version = None

    match = _VERSION_RE.match(left)
    if match:
        left = match.group(1)
        version = match.group(2)

    match = _PLATFORM_RE.match(left)
    if match:
        return AssetName(name=match.group(1), platform=match.group(2), version=version)

    return AssetName(name=left, version=version)


def detect_target_platform() -> str:
    """Editor target platform for the running machine, e.g. ``linux-x64``."""
    system = _platform.system().lower()
    machine = _platform.machine().lower()
    arch = _ARCH_ALIASES.get(machine, machine or "x64")

    if system == "windows":
        return f"win32-{arch}"
    if system == "darwin":
        return f"darwin-{arch}"
    if system == "linux":
        libc, _ = _platform.libc_ver()
        if not libc:
            return f"alpine-{arch}"
        return f"linux-{arch}"
    return UNIVERSAL


def is_compatible_platform(asset_platform: str | None, target_platform: str) -> bool:
    """Check that an asset can run on the target platform."""
    return asset_platform is None or asset_platform in (UNIVERSAL, target_platform)


@dataclass(frozen=True)
class AssetCandidate(Generic[RefT]):
    """A downloadable or local asset with its parsed name and version."""

    name: str
    version: str
    platform: str | None
    ref: RefT

    @property
    def is_universal(self) -> bool:
        return self.platform is None or self.platform == UNIVERSAL


def select_asset(
    candidates: Iterable[AssetCandidate[RefT]],
    target_platform: str,
    target_name: str | None = None,
    target_version: str | None = None,
) -> AssetCandidate[RefT] | None:
    """Pick the best asset.

    Assets built for another platform are ignored. When ``target_name`` is
    not given, the first compatible candidate fixes the name. With a target
    version only exact matches count, otherwise the highest version wins. At
    equal versions a universal asset beats a platform-specific one.

    Args:
        candidates: Assets in listing order.
        target_platform: Platform of the running editor.
        target_name: Required asset name.
        target_version: Required version.

    Returns:
        The selected candidate, or None.
    """
    name = target_name
    best: AssetCandidate[RefT] | None = None

    for candidate in candidates:
        if not is_compatible_platform(candidate.platform, target_platform):
            continue
        if not versions.is_valid(candidate.version):
            continue
        if name is None:
            name = candidate.name
        elif candidate.name != name:
            continue

        if target_version and not versions.eq(candidate.version, target_version):
            continue

        if best is None:
            best = candidate
            continue

        order = versions.compare(candidate.version, best.version)
        if order > 0:
            best = candidate
        elif order == 0 and candidate.is_universal and not best.is_universal:
            best = candidate

    return best
