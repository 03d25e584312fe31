"""Marketplace (extension gallery) resolver.

Talks to galleries implementing the ``extensionquery`` protocol, such as
the Visual Studio Marketplace or Open VSX.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

import httpx

from schemas.source import MarketplaceSource
from sources import versions
from sources.assets import AssetCandidate, is_compatible_platform, select_asset
from sources.base import SearchDownloadResult, SourceError, SourceResolver
from sources.download import download_file

if TYPE_CHECKING:
    from extensions.metadata import Metadata

logger = logging.getLogger(__name__)

PAGE_SIZE = 24
MAX_PAGES = 10

ENGINE_PROPERTY = "Microsoft.VisualStudio.Code.Engine"
VSIX_ASSET_TYPE = "Microsoft.VisualStudio.Services.VSIXPackage"

# Filter types
FILTER_SEARCH_TEXT = 10
FILTER_TARGET = 8
FILTER_EXCLUDE_WITH_FLAGS = 12
UNPUBLISHED = 0x1000

# Query flags: versions, files, version properties, asset uri,
# statistics, latest version only off, exclude non-validated
QUERY_FLAGS = 0x200 | 0x100 | 0x80 | 0x20 | 0x10 | 0x4 | 0x2


class MarketplaceError(SourceError):
    """Raised when the gallery answers with an unusable response."""

    pass


def _dicts(value: Any) -> list[dict[str, Any]]:
    """The dict entries of a JSON list; anything else counts as empty."""
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


@dataclass
class GalleryVersion:
    """One published version of a gallery extension."""

    version: str
    target_platform: str | None
    files: list[dict[str, Any]]
    properties: list[dict[str, Any]]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GalleryVersion:
        """Create from API response."""
        version = data.get("version")
        target_platform = data.get("targetPlatform")
        return cls(
            version=version if isinstance(version, str) else "",
            target_platform=target_platform if isinstance(target_platform, str) else None,
            files=_dicts(data.get("files")),
            properties=_dicts(data.get("properties")),
        )

    @property
    def engine(self) -> str | None:
        for prop in self.properties:
            if prop.get("key") == ENGINE_PROPERTY and isinstance(prop.get("value"), str):
                return prop["value"]
        return None

    def package_url(self) -> str | None:
        for entry in self.files:
            if entry.get("assetType") == VSIX_ASSET_TYPE and isinstance(entry.get("source"), str):
                return entry["source"]
        return None


class MarketplaceResolver(SourceResolver[MarketplaceSource]):
    """Resolve ``publisher.name`` against an extension gallery.

    Example:
        >>> resolver = MarketplaceResolver(context)
        >>> result = resolver.search(metadata, MarketplaceSource())
    """

    def search(self, metadata: Metadata, source: MarketplaceSource) -> SearchDownloadResult | None:
        full_name = metadata.full_name
        if "." not in full_name:
            logger.warning("Marketplace extensions are named publisher.name: %s", full_name)
            return None
        publisher, name = full_name.split(".", 1)

        extension = self.find_extension(publisher, name, source)
        if extension is None:
            logger.info("Extension %s not found in %s", full_name, source.service_url)
            return None

        raw_versions = extension.get("versions") or []
        if not isinstance(raw_versions, list):
            raise MarketplaceError(f"Malformed version list for {full_name}")
        gallery_versions = [GalleryVersion.from_dict(v) for v in _dicts(raw_versions)]
        chosen = self.select_version(gallery_versions, metadata.target_version)
        if chosen is None:
            return None

        url = chosen.package_url() or self.fallback_package_url(publisher, name, chosen.version, source)
        target_path = self.context.temporary_dir / f"{full_name}-{chosen.version}.vsix"

        if metadata.target_version:
            logger.info("Using requested version %s of %s", chosen.version, full_name)
        else:
            logger.info(
                "Found %s version %s (%s)",
                full_name,
                chosen.version,
                chosen.target_platform or "universal",
            )

        return SearchDownloadResult(
            full_name=full_name,
            version=chosen.version,
            download=partial(download_file, self.context.client, url, target_path),
        )

    def select_version(
        self,
        gallery_versions: list[GalleryVersion],
        target_version: str | None,
    ) -> GalleryVersion | None:
        """Pick the best version compatible with the running editor.

        A requested version is taken as is, without the engine check.
        Otherwise the highest engine-compatible version wins.
        """
        candidates: list[AssetCandidate[GalleryVersion]] = []
        min_engine: versions.SemVer | None = None
        min_engine_text: str | None = None

        for entry in gallery_versions:
            if not entry.version:
                continue
            if not is_compatible_platform(entry.target_platform, self.context.target_platform):
                continue

            if not target_version and not versions.satisfies_minimum(self.context.host_version, entry.engine):
                required = versions.min_version(entry.engine)
                if required is not None and (min_engine is None or required < min_engine):
                    min_engine = required
                    min_engine_text = entry.engine
                continue

            candidates.append(
                AssetCandidate(
                    name="",
                    version=entry.version,
                    platform=entry.target_platform,
                    ref=entry,
                )
            )

        best = select_asset(
            candidates,
            target_platform=self.context.target_platform,
            target_name="",
            target_version=target_version,
        )
        if best is None:
            if min_engine_text:
                logger.warning(
                    "The extension requires an editor with the minimum version of %r (running %s)",
                    min_engine_text,
                    self.context.host_version,
                )
            return None
        return best.ref

    def find_extension(
        self,
        publisher: str,
        name: str,
        source: MarketplaceSource,
    ) -> dict[str, Any] | None:
        """Page through the query results looking for an exact match.

        The publisher matches either its machine name or its display name.
        """
        for page in range(1, MAX_PAGES + 1):
            extensions = self.query(f"{publisher} {name}", page, source)

            for extension in extensions:
                if extension.get("extensionName") != name:
                    continue
                owner = extension.get("publisher")
                if not isinstance(owner, dict):
                    continue
                if publisher in (owner.get("publisherName"), owner.get("displayName")):
                    return extension

            if len(extensions) < PAGE_SIZE:
                break
        return None

    def query(self, text: str, page: int, source: MarketplaceSource) -> list[dict[str, Any]]:
        """Run one ``extensionquery`` page.

        Raises:
            MarketplaceError: If the request fails or the answer is malformed.
        """
        self.context.throttle.wait(source.service_url, source.throttle)

        payload = {
            "filters": [
                {
                    "criteria": [
                        {"filterType": FILTER_SEARCH_TEXT, "value": text},
                        {"filterType": FILTER_TARGET, "value": "Microsoft.VisualStudio.Code"},
                        {"filterType": FILTER_EXCLUDE_WITH_FLAGS, "value": str(UNPUBLISHED)},
                    ],
                    "pageNumber": page,
                    "pageSize": PAGE_SIZE,
                    "sortBy": 0,
                    "sortOrder": 0,
                }
            ],
            "assetTypes": [VSIX_ASSET_TYPE],
            "flags": QUERY_FLAGS,
        }
        url = f"{source.service_url.rstrip('/')}/extensionquery"

        try:
            response = self.context.client.post(
                url,
                json=payload,
                headers={"Accept": "application/json;api-version=3.0-preview.1"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise MarketplaceError(
                f"Marketplace query failed ({e.response.status_code}): {url}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise MarketplaceError(f"Marketplace query failed: {e}") from e

        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            return []
        if not isinstance(results, list) or not isinstance(results[0], dict):
            raise MarketplaceError(f"Malformed marketplace answer: {url}")
        extensions = results[0].get("extensions") or []
        if not isinstance(extensions, list):
            raise MarketplaceError(f"Malformed marketplace answer: {url}")
        return _dicts(extensions)

    @staticmethod
    def fallback_package_url(publisher: str, name: str, version: str, source: MarketplaceSource) -> str:
        return (
            f"{source.service_url.rstrip('/')}/publishers/{publisher}"
            f"/vsextensions/{name}/{version}/vspackage"
        )
