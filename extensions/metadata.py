"""Extension requests.

A configured entry is parsed into one or more :class:`Metadata`
alternatives. Accepted string forms::

    publisher.name                  extension, installed by the editor
    publisher.name@1.2.3            pinned version
    source:publisher.name           extension resolved through a source
    source:owner/repo!asset-name    git release, asset named differently
    -publisher.name                 installed but disabled
    a.b || src:a.b                  alternatives, first success wins
    my-group                        group of entries

The object form ``{"id": "..." | [...], "enabled": false}`` is accepted as
well; a list of ids is a list of alternatives.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_SOURCED_RE = re.compile(r"^([^:]*):(.*?)(?:!([^@!]+))?(?:@(\d+\.\d+\.\d+))?$")
_PLAIN_RE = re.compile(r"^(.*?)(?:@(\d+\.\d+\.\d+))?$")


class MetadataKind(str, enum.Enum):
    EXTENSION = "extension"
    GROUP = "group"


@dataclass(frozen=True)
class Metadata:
    """One extension (or group) request.

    Attributes:
        kind: Extension or group.
        full_name: ``publisher.name`` for extensions, the repository for git
            sources, the group name for groups.
        enabled: Whether the extension should be enabled once installed.
        source: Name of the source to resolve through, None to let the
            editor install it from its own gallery.
        target_name: Asset name when it differs from ``full_name``.
        target_version: Pinned version.
    """

    kind: MetadataKind
    full_name: str
    enabled: bool = True
    source: str | None = None
    target_name: str | None = None
    target_version: str | None = None

    @property
    def is_group(self) -> bool:
        return self.kind is MetadataKind.GROUP

    def __str__(self) -> str:
        text = f"{self.source}:{self.full_name}" if self.source else self.full_name
        if self.target_name:
            text += f"!{self.target_name}"
        if self.target_version:
            text += f"@{self.target_version}"
        return text if self.enabled else f"-{text}"


def parse_metadata(data: Any) -> list[Metadata]:
    """Parse one configured entry into its alternatives.

    Args:
        data: A request string, an ``{"id", "enabled"}`` mapping, or a list
            of request strings.

    Returns:
        The alternatives, in order. Empty when the entry is unusable.
    """
    result: list[Metadata] = []

    if isinstance(data, list):
        for item in data:
            if isinstance(item, str):
                _parse_string(item, None, result)
    elif isinstance(data, str):
        _parse_string(data, None, result)
    elif isinstance(data, dict):
        ids = data.get("id")
        enabled = data.get("enabled")
        enabled = enabled if isinstance(enabled, bool) else True

        if isinstance(ids, list):
            for item in ids:
                if isinstance(item, str):
                    _parse_string(item, enabled, result)
        elif isinstance(ids, str) and ids:
            _parse_string(ids, enabled, result)
    elif data:
        logger.warning("Ignoring invalid extension entry: %r", data)

    return result


def _parse_string(data: str, enabled: bool | None, result: list[Metadata]) -> None:
    data = data.strip()
    if not data:
        return

    if enabled is None:
        if data.startswith("-"):
            enabled = False
            data = data[1:].strip()
        else:
            enabled = True

        alternatives = data.split("||")
        if len(alternatives) > 1:
            for alternative in alternatives:
                _parse_string(alternative.strip(), enabled, result)
            return

    if ":" in data:
        match = _SOURCED_RE.match(data)
        if match:
            source, full_name, target_name, version = match.groups()
            result.append(
                Metadata(
                    kind=MetadataKind.EXTENSION,
                    full_name=full_name,
                    enabled=enabled,
                    source=source,
                    target_name=target_name,
                    target_version=version,
                )
            )
    elif "." in data:
        match = _PLAIN_RE.match(data)
        if match:
            full_name, version = match.groups()
            result.append(
                Metadata(
                    kind=MetadataKind.EXTENSION,
                    full_name=full_name,
                    enabled=enabled,
                    target_version=version,
                )
            )
    else:
        result.append(Metadata(kind=MetadataKind.GROUP, full_name=data, enabled=enabled))
