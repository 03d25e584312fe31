"""Extension sources: resolvers, dispatch and download helpers."""

from sources.base import (
    ResolverContext,
    SearchDownloadResult,
    SearchFileResult,
    SearchResult,
    SourceError,
    DownloadError,
)
from sources.dispatch import SourceDispatcher
from sources.throttle import RequestThrottle

__all__ = [
    "DownloadError",
    "RequestThrottle",
    "ResolverContext",
    "SearchDownloadResult",
    "SearchFileResult",
    "SearchResult",
    "SourceDispatcher",
    "SourceError",
]
