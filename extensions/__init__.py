"""Managed editor extensions.

This package holds the reconciliation side of vsixsync:
- metadata: parsing of configured extension requests
- manager: the session engine diffing owned and desired extensions
- host: the editor collaborator (command line driven by default)
- lock: the cross-process lock serializing runs
- aliases: identities learned from git release downloads

Global state is stored in <user data>/User/globalStorage/vsixsync/ by default.
"""

from extensions.aliases import AliasTable, alias_key, resolve_extension_name
from extensions.host import EditorCLIHost, Host, HostError, HostResult
from extensions.lock import FileLock, LockError, LockTimeoutError
from extensions.manager import (
    ExtensionManager,
    ManifestError,
    SessionError,
    resolve_restart_action,
)
from extensions.metadata import Metadata, MetadataKind, parse_metadata
from extensions.statedb import StateDBError

__all__ = [
    "AliasTable",
    "EditorCLIHost",
    "ExtensionManager",
    "FileLock",
    "Host",
    "HostError",
    "HostResult",
    "LockError",
    "LockTimeoutError",
    "ManifestError",
    "Metadata",
    "MetadataKind",
    "SessionError",
    "StateDBError",
    "alias_key",
    "parse_metadata",
    "resolve_extension_name",
    "resolve_restart_action",
]
