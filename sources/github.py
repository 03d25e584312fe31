"""GitHub releases."""

from __future__ import annotations

from typing import Any, Union

from schemas.source import GITHUB_API_URL, GitHubSource, LiteralGitHubSource, resolve_token
from sources.git import GitReleaseResolver, repository_path

AnyGitHubSource = Union[GitHubSource, LiteralGitHubSource]


class GitHubResolver(GitReleaseResolver[AnyGitHubSource]):
    """Resolve extensions from GitHub (or GitHub Enterprise) releases.

    The bare ``"github"`` source talks to the public API with no owner and
    no token, so requests name the repository as ``owner/repo``.

    Example:
        >>> resolver = GitHubResolver(context)
        >>> result = resolver.search(metadata, GitHubSource(owner="acme"))
    """

    def releases_url(self, repository: str, source: AnyGitHubSource) -> str:
        if isinstance(source, GitHubSource):
            base = (source.service_url or GITHUB_API_URL).rstrip("/")
            repository = repository_path(repository, source.owner)
        else:
            base = GITHUB_API_URL
        return f"{base}/repos/{repository}/releases"

    def _token(self, source: AnyGitHubSource) -> str | None:
        if isinstance(source, GitHubSource):
            return resolve_token(source.token)
        return None

    def headers(self, source: AnyGitHubSource) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        token = self._token(source)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def download_headers(self, source: AnyGitHubSource) -> dict[str, str]:
        headers = {"Accept": "application/octet-stream"}
        token = self._token(source)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def asset_url(self, asset: dict[str, Any], source: AnyGitHubSource) -> str | None:
        # Assets of private repositories are only served through the API URL
        if self._token(source) and isinstance(asset.get("url"), str):
            return asset["url"]
        return super().asset_url(asset, source)
