"""Base types shared by the source resolvers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Generic, TypeVar, Union

import httpx

from sources.throttle import RequestThrottle

if TYPE_CHECKING:
    from extensions.metadata import Metadata

logger = logging.getLogger(__name__)

USER_AGENT = "vsixsync/0.1"

SourceT = TypeVar("SourceT")


class SourceError(Exception):
    """Raised when a source cannot be queried."""

    pass


class DownloadError(SourceError):
    """Raised when an asset cannot be downloaded."""

    pass


@dataclass
class SearchFileResult:
    """An artifact already on disk.

    Attributes:
        full_name: Canonical ``publisher.name``, None until known.
        version: Version of the artifact.
        file: Path of the ``.vsix`` file.
        unlink: File to delete once installed (temporary downloads).
    """

    full_name: str | None
    version: str
    file: Path
    unlink: Path | None = None

    def with_name(self, full_name: str) -> SearchFileResult:
        return replace(self, full_name=full_name)


@dataclass
class SearchDownloadResult:
    """A deferred fetch; ``download()`` returns the local file."""

    full_name: str | None
    version: str
    download: Callable[[], Path] = field(repr=False)


SearchResult = Union[SearchFileResult, SearchDownloadResult]


@dataclass
class ResolverContext:
    """Run-wide settings handed to every resolver.

    Attributes:
        temporary_dir: Where downloads are written.
        target_platform: Platform of the running editor (``linux-x64``...).
        host_version: Version of the running editor, for engine checks.
        throttle: Per-service request throttle for this run.
        client: HTTP client used for API calls and downloads.
    """

    temporary_dir: Path
    target_platform: str
    host_version: str
    throttle: RequestThrottle = field(default_factory=RequestThrottle)
    client: httpx.Client = field(
        default_factory=lambda: httpx.Client(
            timeout=60.0,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
    )

    def close(self) -> None:
        self.client.close()


class SourceResolver(ABC, Generic[SourceT]):
    """Turns an extension request into a candidate artifact."""

    def __init__(self, context: ResolverContext):
        self.context = context

    @abstractmethod
    def search(self, metadata: Metadata, source: SourceT) -> SearchResult | None:
        """Find the best artifact for ``metadata`` in ``source``.

        Returns:
            A file or download result, or None when nothing matches.

        Raises:
            SourceError: If the source cannot be queried.
        """
        ...
