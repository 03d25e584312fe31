"""Forgejo / Gitea releases."""

from __future__ import annotations

from schemas.source import ForgejoSource, resolve_token
from sources.git import GitReleaseResolver, repository_path


class ForgejoResolver(GitReleaseResolver[ForgejoSource]):
    """Resolve extensions from a Forgejo instance (``/api/v1`` service URL)."""

    def releases_url(self, repository: str, source: ForgejoSource) -> str:
        base = source.service_url.rstrip("/")
        return f"{base}/repos/{repository_path(repository, source.owner)}/releases"

    def headers(self, source: ForgejoSource) -> dict[str, str]:
        token = resolve_token(source.token)
        if token:
            return {"Authorization": f"token {token}"}
        return {}
