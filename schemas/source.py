"""Source schemas.

A source tells the dispatcher where to look for an extension. Sources are
configured as a named table; each entry is one of the variants below and
may name another entry as its ``fallback``.
"""

import logging
import os
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
DEFAULT_MARKETPLACE_URL = "https://marketplace.visualstudio.com/_apis/public/gallery"
DEFAULT_MARKETPLACE_ITEM_URL = "https://marketplace.visualstudio.com/items"

# The bare string accepted in place of a source table entry
LITERAL_GITHUB = "github"


class SourceConfigError(ValueError):
    """Raised when a source entry cannot be parsed."""

    pass


class _SourceBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    fallback: str | None = Field(None, description="Name of the source to try next")


class FileSystemSource(_SourceBase):
    """Directory holding ``.vsix`` files."""

    type: Literal["file"] = "file"
    path: str = Field(..., description="Root directory, '~' is expanded")


class ForgejoSource(_SourceBase):
    """Forgejo/Gitea instance exposing the releases API."""

    type: Literal["forgejo"] = "forgejo"
    service_url: str = Field(..., alias="serviceUrl", description="API base, e.g. https://codeberg.org/api/v1")
    owner: str | None = None
    token: str | None = Field(None, description="Token or 'env:VARIABLE'")


class GitHubSource(_SourceBase):
    """GitHub (or GitHub Enterprise) releases."""

    type: Literal["github"] = "github"
    service_url: str | None = Field(None, alias="serviceUrl")
    owner: str | None = None
    token: str | None = Field(None, description="Token or 'env:VARIABLE'")


class MarketplaceSource(_SourceBase):
    """Extension gallery speaking the ``extensionquery`` protocol."""

    type: Literal["marketplace"] = "marketplace"
    service_url: str = Field(DEFAULT_MARKETPLACE_URL, alias="serviceUrl")
    item_url: str = Field(DEFAULT_MARKETPLACE_ITEM_URL, alias="itemUrl")
    throttle: int = Field(0, ge=0, description="Minimum delay between requests, in ms")


class LiteralGitHubSource(BaseModel):
    """The bare ``"github"`` source: public GitHub, no owner, no fallback."""

    model_config = ConfigDict(frozen=True)

    type: Literal["github-literal"] = "github-literal"

    @property
    def fallback(self) -> None:
        return None

    def __str__(self) -> str:
        return LITERAL_GITHUB


ConfiguredSource = Annotated[
    Union[FileSystemSource, ForgejoSource, GitHubSource, MarketplaceSource],
    Field(discriminator="type"),
]

Source = Union[
    FileSystemSource,
    ForgejoSource,
    GitHubSource,
    MarketplaceSource,
    LiteralGitHubSource,
]

GitSource = Union[ForgejoSource, GitHubSource, LiteralGitHubSource]

_source_adapter: TypeAdapter[Any] = TypeAdapter(ConfiguredSource)


def is_git_source(source: Source) -> bool:
    """Check if a source only learns the extension id after download."""
    return isinstance(source, (ForgejoSource, GitHubSource, LiteralGitHubSource))


def resolve_token(token: str | None) -> str | None:
    """Resolve a token, following ``env:NAME`` references."""
    if not token:
        return None
    if token.startswith("env:"):
        return os.environ.get(token[4:]) or None
    return token


def parse_source(data: Any) -> Source:
    """Parse one source table entry.

    Args:
        data: The literal ``"github"`` or a mapping with a ``type`` key.
            The deprecated ``{kind: "marketplace"}`` form is accepted.

    Returns:
        The parsed source variant.

    Raises:
        SourceConfigError: If the entry is not a valid source.
    """
    if data == LITERAL_GITHUB:
        return LiteralGitHubSource()

    if not isinstance(data, dict):
        raise SourceConfigError(f"Invalid source: {data!r}")

    if data.get("kind") == "marketplace" and "type" not in data:
        logger.warning(
            "The source property 'kind' is deprecated, use 'type' instead"
        )
        data = {
            "type": "marketplace",
            "serviceUrl": data.get("serviceUrl", data.get("service_url", DEFAULT_MARKETPLACE_URL)),
            "itemUrl": data.get("itemUrl", data.get("item_url", DEFAULT_MARKETPLACE_ITEM_URL)),
            "throttle": 0,
        }

    try:
        return _source_adapter.validate_python(data)
    except ValidationError as e:
        raise SourceConfigError(f"Invalid source {data!r}: {e}") from e


def parse_sources(data: dict[str, Any] | None) -> dict[str, Source]:
    """Parse the named source table.

    Args:
        data: Mapping of source name to source entry.

    Returns:
        Mapping of source name to parsed source.
    """
    sources: dict[str, Source] = {}
    for name, entry in (data or {}).items():
        sources[name] = parse_source(entry)
    return sources
