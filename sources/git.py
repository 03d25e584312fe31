"""Release-based resolvers shared by the git forges.

A forge exposes a list of releases, newest first, each with downloadable
assets. A release is either tagged with a version (``v1.2.3``, the assets
then inherit that version) or untagged, in which case every asset must
carry its own version in its file name.
"""

from __future__ import annotations

import logging
import re
from abc import abstractmethod
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, Iterator, TypeVar

import httpx

from sources import versions
from sources.assets import AssetCandidate, is_compatible_platform, parse_asset_name, select_asset
from sources.base import SearchDownloadResult, SourceError, SourceResolver
from sources.download import download_file

if TYPE_CHECKING:
    from extensions.metadata import Metadata

logger = logging.getLogger(__name__)

GitSourceT = TypeVar("GitSourceT")

# "v1.2.3", "1.2.3", "v1.2.3-beta.1"
TAGGED_RELEASE_RE = re.compile(r"^v?(\d+\.\d+\.\d+)(?:-.*)?$")


def release_version(release: dict[str, Any]) -> str | None:
    """Version carried by a release name or tag, if any."""
    for key in ("name", "tag_name"):
        value = release.get(key)
        if isinstance(value, str):
            match = TAGGED_RELEASE_RE.match(value.strip())
            if match:
                return match.group(1)
    return None


class GitReleaseResolver(SourceResolver[GitSourceT], Generic[GitSourceT]):
    """Common release walk; subclasses supply URLs and headers."""

    @abstractmethod
    def releases_url(self, repository: str, source: GitSourceT) -> str:
        """URL listing the releases of ``repository``."""
        ...

    @abstractmethod
    def headers(self, source: GitSourceT) -> dict[str, str]:
        """Headers for API requests."""
        ...

    def download_headers(self, source: GitSourceT) -> dict[str, str]:
        return self.headers(source)

    def asset_url(self, asset: dict[str, Any], source: GitSourceT) -> str | None:
        url = asset.get("browser_download_url")
        return url if isinstance(url, str) else None

    def search(self, metadata: Metadata, source: GitSourceT) -> SearchDownloadResult | None:
        releases = self.fetch_releases(metadata.full_name, source)

        best = select_asset(
            self.iter_candidates(releases, metadata, source),
            target_platform=self.context.target_platform,
            target_name=metadata.target_name,
            target_version=metadata.target_version,
        )
        if best is None:
            logger.info("No matching release asset for %s", metadata.full_name)
            return None

        url = self.asset_url(best.ref, source)
        if url is None:
            raise SourceError(f"Asset {best.name} has no download URL")
        target_path = self.context.temporary_dir / f"{best.name}-{best.version}.vsix"
        logger.info(
            "Found %s version %s (%s)",
            best.name,
            best.version,
            best.platform or "universal",
        )

        return SearchDownloadResult(
            full_name=None,
            version=best.version,
            download=partial(self._download, url, target_path, self.download_headers(source)),
        )

    def fetch_releases(self, repository: str, source: GitSourceT) -> list[dict[str, Any]]:
        """Fetch the release list.

        Raises:
            SourceError: If the API call fails.
        """
        url = self.releases_url(repository, source)
        try:
            response = self.context.client.get(url, headers=self.headers(source))
            response.raise_for_status()
            releases = response.json()
        except httpx.HTTPStatusError as e:
            raise SourceError(
                f"Release listing failed ({e.response.status_code}): {url}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise SourceError(f"Release listing failed: {e}") from e

        if not isinstance(releases, list):
            raise SourceError(f"Malformed release listing: {url}")
        return [release for release in releases if isinstance(release, dict)]

    def iter_candidates(
        self,
        releases: list[dict[str, Any]],
        metadata: Metadata,
        source: GitSourceT,
    ) -> Iterator[AssetCandidate[dict[str, Any]]]:
        """Yield the assets worth considering, walking releases newest first.

        The walk stops after the first tagged release holding a compatible
        asset, unless a specific version is requested. Assets without a
        download URL are skipped.
        """
        target_platform = self.context.target_platform

        for release in releases:
            listed = release.get("assets")
            assets = [
                asset
                for asset in (listed if isinstance(listed, list) else [])
                if isinstance(asset, dict)
                and isinstance(asset.get("name"), str)
                and self.asset_url(asset, source) is not None
            ]
            tagged = release_version(release)

            if tagged is not None:
                if metadata.target_version and not versions.eq(tagged, metadata.target_version):
                    continue

                found = False
                for asset in assets:
                    parsed = parse_asset_name(asset["name"])
                    if parsed is None:
                        continue
                    if metadata.target_name and parsed.name != metadata.target_name:
                        continue
                    if not is_compatible_platform(parsed.platform, target_platform):
                        continue
                    found = True
                    yield AssetCandidate(
                        name=parsed.name,
                        version=tagged,
                        platform=parsed.platform,
                        ref=asset,
                    )

                if found:
                    return
            else:
                for asset in assets:
                    parsed = parse_asset_name(asset["name"])
                    if parsed is None or not parsed.version:
                        continue
                    yield AssetCandidate(
                        name=parsed.name,
                        version=parsed.version,
                        platform=parsed.platform,
                        ref=asset,
                    )

    def _download(self, url: str, target_path: Path, headers: dict[str, str]) -> Path:
        return download_file(self.context.client, url, target_path, headers=headers)


def repository_path(full_name: str, owner: str | None) -> str:
    """``owner/name`` path of a repository.

    A configured owner is prefixed to bare names; ``owner/name`` requests
    are used as given.
    """
    if owner and "/" not in full_name:
        return f"{owner}/{full_name}"
    return full_name
