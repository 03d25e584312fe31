"""Filesystem source: a directory of ``.vsix`` files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from schemas.source import FileSystemSource
from sources.assets import ASSET_SUFFIX, AssetCandidate, parse_asset_name, select_asset
from sources.base import SearchFileResult, SourceResolver

if TYPE_CHECKING:
    from extensions.metadata import Metadata

logger = logging.getLogger(__name__)


class FileSystemResolver(SourceResolver[FileSystemSource]):
    """Look for ``name[-platform]-version.vsix`` files.

    Besides the root, a ``<publisher>`` and a ``<publisher.name>``
    subdirectory are searched, so both flat and sorted layouts work::

        root/
        ├── acme.tool-1.0.0.vsix
        ├── acme/
        │   └── acme.tool-linux-x64-1.1.0.vsix
        └── acme.tool/
            └── acme.tool-1.2.0.vsix
    """

    def search(self, metadata: Metadata, source: FileSystemSource) -> SearchFileResult | None:
        root = Path(source.path).expanduser()
        if not root.is_dir():
            logger.info("Source directory not found: %s", root)
            return None

        asset_name = metadata.target_name or metadata.full_name
        candidates = list(self._candidates(self._search_dirs(root, metadata.full_name), asset_name))

        best = select_asset(
            candidates,
            target_platform=self.context.target_platform,
            target_name=asset_name,
            target_version=metadata.target_version,
        )
        if best is None:
            return None

        logger.info("Found %s", best.ref)
        return SearchFileResult(full_name=metadata.full_name, version=best.version, file=best.ref)

    def _search_dirs(self, root: Path, full_name: str) -> list[Path]:
        dirs = [root]
        if "." in full_name:
            publisher = full_name.split(".", 1)[0]
            for sub in (root / publisher, root / full_name):
                if sub.is_dir():
                    dirs.append(sub)
        return dirs

    def _candidates(self, dirs: list[Path], asset_name: str) -> Iterator[AssetCandidate[Path]]:
        for directory in dirs:
            for path in sorted(directory.glob(f"*{ASSET_SUFFIX}")):
                if path.is_symlink() or not path.is_file():
                    continue
                parsed = parse_asset_name(path.name)
                if parsed is None or parsed.name != asset_name or not parsed.version:
                    continue
                yield AssetCandidate(
                    name=parsed.name,
                    version=parsed.version,
                    platform=parsed.platform,
                    ref=path,
                )
