"""Alias table: request fingerprints to canonical extension ids.

Git release sources only learn the real ``publisher.name`` of an extension
after downloading it. The alias table remembers that identity so later runs
can recognize the extension without downloading it again.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from schemas.source import Source, is_git_source

if TYPE_CHECKING:
    from extensions.metadata import Metadata

logger = logging.getLogger(__name__)

ALIASES_FILE = "aliases.json"


def alias_key(metadata: Metadata) -> str:
    """Fingerprint of a request: ``source:full_name[!target_name]``."""
    key = f"{metadata.source}:{metadata.full_name}"
    if metadata.target_name:
        key += f"!{metadata.target_name}"
    return key


class AliasTable:
    """Persistent alias mapping.

    Writes are whole-file and last-writer-wins; callers hold the main lock.

    Example:
        >>> aliases = AliasTable.load(storage_dir / "aliases.json")
        >>> aliases.set(metadata, "acme.tool")
        >>> aliases.save()
    """

    def __init__(self, path: Path | None = None, entries: dict[str, str] | None = None):
        self.path = path
        self._entries: dict[str, str] = dict(entries or {})
        self.dirty = False

    @classmethod
    def load(cls, path: Path) -> AliasTable:
        """Load the table; a missing or malformed file gives an empty table."""
        entries: dict[str, str] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable alias file %s: %s", path, e)
                data = {}
            if isinstance(data, dict):
                entries = {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}
        return cls(path, entries)

    def get(self, metadata: Metadata) -> str | None:
        return self._entries.get(alias_key(metadata))

    def set(self, metadata: Metadata, full_name: str) -> None:
        key = alias_key(metadata)
        if self._entries.get(key) != full_name:
            logger.debug("Alias %s -> %s", key, full_name)
            self._entries[key] = full_name
            self.dirty = True

    def __contains__(self, metadata: Metadata) -> bool:
        return alias_key(metadata) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> dict[str, str]:
        return dict(self._entries)

    def save(self) -> None:
        """Write the table if it changed."""
        if not self.dirty or self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._entries, indent=2, sort_keys=True), encoding="utf-8")
        self.dirty = False


def resolve_extension_name(metadata: Metadata, source: Source, aliases: AliasTable) -> str:
    """Canonical id of a request.

    Git sources go through the alias table; other sources already request
    extensions by their ``publisher.name``.
    """
    if is_git_source(source):
        return aliases.get(metadata) or metadata.full_name
    return metadata.full_name
