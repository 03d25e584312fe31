"""Source dispatch: route a request to its resolver and follow fallbacks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from extensions.aliases import AliasTable, resolve_extension_name
from extensions.vsix import VsixError, extract_extension_name
from schemas.source import (
    FileSystemSource,
    ForgejoSource,
    GitHubSource,
    LiteralGitHubSource,
    MarketplaceSource,
    Source,
    is_git_source,
)
from sources.base import (
    ResolverContext,
    SearchDownloadResult,
    SearchFileResult,
    SearchResult,
    SourceError,
    SourceResolver,
)
from sources.filesystem import FileSystemResolver
from sources.forgejo import ForgejoResolver
from sources.github import GitHubResolver
from sources.marketplace import MarketplaceResolver

if TYPE_CHECKING:
    from extensions.metadata import Metadata

logger = logging.getLogger(__name__)


class SourceDispatcher:
    """Resolve requests across the configured sources.

    Example:
        >>> dispatcher = SourceDispatcher(context, sources, aliases)
        >>> result = dispatcher.search(metadata, sources["vsx"])
        >>> local = dispatcher.materialize(result, metadata, sources["vsx"])
    """

    def __init__(
        self,
        context: ResolverContext,
        sources: dict[str, Source],
        aliases: AliasTable,
    ):
        self.context = context
        self.sources = sources
        self.aliases = aliases
        self._resolvers: dict[type, SourceResolver] = {
            FileSystemSource: FileSystemResolver(context),
            ForgejoSource: ForgejoResolver(context),
            GitHubSource: GitHubResolver(context),
            LiteralGitHubSource: GitHubResolver(context),
            MarketplaceSource: MarketplaceResolver(context),
        }

    def resolver_for(self, source: Source) -> SourceResolver:
        return self._resolvers[type(source)]

    def search(self, metadata: Metadata, source: Source) -> SearchResult | None:
        """Find the best artifact, following ``fallback`` on failure.

        Any resolver error is logged and treated like "not found". Fallback
        chains must be acyclic; a name already visited ends the chain.
        """
        visited: set[str] = set()
        current: Source | None = source

        while current is not None:
            try:
                result = self.resolver_for(current).search(metadata, current)
            except SourceError as e:
                logger.error("Search for %s failed: %s", metadata.full_name, e)
                result = None
            except Exception:
                logger.exception("Resolver error while searching %s", metadata.full_name)
                result = None

            if result is not None:
                return result

            fallback = current.fallback
            if not fallback:
                return None
            if fallback in visited:
                logger.warning("Source fallback cycle at %r, stopping", fallback)
                return None
            visited.add(fallback)

            current = self.sources.get(fallback)
            if current is None:
                logger.warning("Unknown fallback source: %s", fallback)
                return None
            logger.info("Searching extension: %s:%s", fallback, metadata.full_name)

        return None

    def materialize(
        self,
        result: SearchResult,
        metadata: Metadata,
        source: Source,
    ) -> SearchFileResult:
        """Turn a search result into a local file with a known identity.

        Deferred downloads run here. When the resolver could not name the
        extension, the identity is read from the package and remembered in
        the alias table.

        Raises:
            SourceError: If the download fails or the package has no identity.
        """
        if isinstance(result, SearchDownloadResult):
            path = result.download()
            local = SearchFileResult(
                full_name=result.full_name,
                version=result.version,
                file=path,
                unlink=path,
            )
        else:
            local = result

        if local.full_name is None:
            known = self.aliases.get(metadata) if is_git_source(source) else None
            if known:
                local = local.with_name(known)
            else:
                try:
                    full_name = extract_extension_name(local.file)
                except VsixError as e:
                    raise SourceError(str(e)) from e
                local = local.with_name(full_name)
                if is_git_source(source):
                    self.aliases.set(metadata, full_name)

        return local

    def resolve_name(self, metadata: Metadata, source: Source) -> str:
        return resolve_extension_name(metadata, source, self.aliases)
