"""Reconciliation engine for managed extensions.

The manager tracks which extensions this tool owns ("current") and, during a
session, which ones it should own once the run completes ("next"). Saving
the session applies the difference through the :class:`Host`: extensions
that disappeared are uninstalled and, when the editor cannot toggle one
extension at a time, the whole disabled list is written to the editor's
settings store in one batch.

A workspace run manages two partitions of the same table: the workspace
partition and the global one. Every workspace mutation is mirrored into the
global partition, where workspace-owned extensions are recorded as disabled,
so that a later global run does not consider them orphaned.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator

from pydantic import ValidationError

from extensions.editor import ExtensionList, InstalledExtension
from extensions.host import Host, HostResult
from extensions.statedb import StateDBError, read_disabled, write_disabled
from schemas.state import (
    ExtensionState,
    InstalledManifest,
    ManagerMode,
    RestartAction,
    RestartMode,
)

logger = logging.getLogger(__name__)

MANIFEST_FILE = "extensions.json"
STATE_DB_FILE = "state.vscdb"

SessionFilter = Callable[[ExtensionState], bool]


class ManifestError(Exception):
    """Raised when a manifest cannot be read or written."""

    pass


class SessionError(Exception):
    """Raised when a session operation is used outside a session."""

    pass


@dataclass
class Partition:
    """Managed state of one scope.

    Attributes:
        scope: Global or workspace.
        storage_dir: Directory holding ``extensions.json``.
        current: Extensions owned as of the last commit.
        next: Extensions to own after this session, None outside a session.
        next_disabled: Ids to disable at commit.
        force_update_disabled: Rewrite the disabled list even if no id was
            queued (an extension must be re-enabled).
        first_run: No manifest existed when loading.
        can_toggle: The host can enable/disable extensions one by one.
    """

    scope: ManagerMode
    storage_dir: Path
    current: dict[str, ExtensionState] = field(default_factory=dict)
    next: dict[str, ExtensionState] | None = None
    next_disabled: list[str] | None = None
    force_update_disabled: bool = False
    first_run: bool = False
    can_toggle: bool = False

    @property
    def manifest_path(self) -> Path:
        return self.storage_dir / MANIFEST_FILE

    @property
    def state_db(self) -> Path:
        return self.storage_dir.parent / STATE_DB_FILE

    @property
    def in_session(self) -> bool:
        return self.next is not None

    def load(self) -> None:
        """Read the manifest; a missing file means first run.

        Raises:
            ManifestError: If the file exists but cannot be read.
        """
        self.next = None
        self.next_disabled = None
        self.force_update_disabled = False

        if not self.manifest_path.exists():
            self.current = {}
            self.first_run = True
            return

        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
            manifest = InstalledManifest.from_data(data)
        except (OSError, ValueError, ValidationError) as e:
            raise ManifestError(f"Cannot read the file {self.manifest_path}: {e}") from e

        self.current = dict(manifest.installed)
        self.first_run = False

    def write(self) -> None:
        """Persist ``current``.

        Raises:
            ManifestError: If the file cannot be written.
        """
        manifest = InstalledManifest(installed=self.current)
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = self.manifest_path.with_suffix(".json.tmp")
            tmp_path.write_text(json.dumps(manifest.to_data(), indent=2), encoding="utf-8")
            tmp_path.replace(self.manifest_path)
        except OSError as e:
            raise ManifestError(f"Cannot write the file {self.manifest_path}: {e}") from e


def resolve_restart_action(mode: RestartMode, restart: bool, reload: bool) -> RestartAction | None:
    """Map the restart policy and the commit outcome to a host action."""
    if mode is RestartMode.AUTO:
        if restart:
            return RestartAction.RESTART_APP
        if reload:
            return RestartAction.RELOAD_WINDOW
        return None
    if mode is RestartMode.NONE or not (restart or reload):
        return None
    if mode is RestartMode.RELOAD_WINDOWS:
        return RestartAction.RELOAD_WINDOW
    if mode is RestartMode.RESTART_APP:
        return RestartAction.RESTART_APP
    return RestartAction.RESTART_EXTENSION_HOST


@dataclass
class _DisabledWrite:
    partition: Partition
    ids: list[str]


class ExtensionManager:
    """Session-based reconciliation against a host.

    Example:
        >>> manager = ExtensionManager(host, global_storage)
        >>> manager.load()
        >>> manager.start_session()
        >>> manager.add_installed("acme.tool", "1.0.0", True, ManagerMode.GLOBAL)
        >>> manager.save(RestartMode.AUTO)

    Args:
        host: The editor.
        global_storage: Storage directory of the global scope.
        workspace_storage: Storage directory of the workspace scope; when
            given, the manager runs in workspace scope.
    """

    def __init__(
        self,
        host: Host,
        global_storage: Path,
        workspace_storage: Path | None = None,
    ):
        self.host = host
        self.scope = ManagerMode.WORKSPACE if workspace_storage is not None else ManagerMode.GLOBAL

        self.partitions: dict[ManagerMode, Partition] = {
            ManagerMode.GLOBAL: Partition(ManagerMode.GLOBAL, Path(global_storage)),
        }
        if workspace_storage is not None:
            self.partitions[ManagerMode.WORKSPACE] = Partition(ManagerMode.WORKSPACE, Path(workspace_storage))

        self._editor = ExtensionList()
        self.last_action: RestartAction | None = None

        logger.debug("storage: %s", self.primary.storage_dir)

    @property
    def primary(self) -> Partition:
        return self.partitions[self.scope]

    @property
    def mirror(self) -> Partition | None:
        """The global partition during a workspace run."""
        if self.scope is ManagerMode.WORKSPACE:
            return self.partitions[ManagerMode.GLOBAL]
        return None

    def _partitions(self) -> Iterator[Partition]:
        yield self.primary
        if self.mirror is not None:
            yield self.mirror

    def _require_session(self) -> Partition:
        if not self.primary.in_session:
            raise SessionError("No session is open; call start_session() first")
        return self.primary

    def _log_failure(self, action: str, extension_id: str, result: HostResult) -> bool:
        if not result.ok:
            logger.error("Failed to %s %s: %s", action, extension_id, result.error)
        return result.ok

    # Loading

    def load(self) -> None:
        """Read the manifests and snapshot the editor's extensions.

        Raises:
            ManifestError: If a manifest cannot be read.
            HostError: If the editor cannot be listed.
        """
        for partition in self._partitions():
            try:
                partition.storage_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ManifestError(f"Cannot create {partition.storage_dir}: {e}") from e
            partition.load()

        self._editor = self.host.list_installed()

    # Session

    def start_session(self, filter: SessionFilter | None = None) -> None:
        """Open a session.

        Args:
            filter: Selects the current entries carried into ``next``. Without
                a filter ``next`` starts empty.
        """
        primary = self.primary
        primary.can_toggle = self.host.supports_individual_toggle()
        primary.next = {}
        primary.next_disabled = []
        primary.force_update_disabled = False

        if filter is not None:
            primary.next = {k: v for k, v in primary.current.items() if filter(v)}

        mirror = self.mirror
        if mirror is not None:
            mirror.can_toggle = False
            # The global entries are owned by global runs
            mirror.next = dict(mirror.current)
            mirror.next_disabled = []
            mirror.force_update_disabled = False

    def add_installed(self, extension_id: str, version: str, enabled: bool, mode: ManagerMode) -> None:
        """Record an extension as owned after this session."""
        primary = self._require_session()
        primary.next[extension_id] = ExtensionState(version=version, mode=mode)

        if not enabled:
            primary.next_disabled.append(extension_id)
            if primary.can_toggle and extension_id in self._editor.enabled:
                self._log_failure("disable", extension_id, self.host.disable(extension_id))

        mirror = self.mirror
        if mirror is not None:
            mirror.next[extension_id] = ExtensionState(version=version, mode=mode)
            if mode is ManagerMode.WORKSPACE or not enabled:
                mirror.next_disabled.append(extension_id)

    def set_installed(self, extension_id: str, version: str, mode: ManagerMode) -> None:
        """Update the recorded version of an extension."""
        primary = self.primary
        if not primary.in_session:
            return
        primary.next[extension_id] = ExtensionState(version=version, mode=mode)

        mirror = self.mirror
        if mirror is not None:
            mirror.next[extension_id] = ExtensionState(version=version, mode=mode)

    def enable(self, extension_id: str, mode: ManagerMode) -> None:
        """Make sure an extension ends up enabled."""
        primary = self._require_session()
        logger.debug("enable %s (disabled in editor: %s)", extension_id, extension_id in self._editor.disabled)

        if extension_id in self._editor.disabled:
            if primary.can_toggle:
                self._log_failure("enable", extension_id, self.host.enable(extension_id))
            else:
                primary.force_update_disabled = True

        mirror = self.mirror
        if mirror is not None and mode is ManagerMode.WORKSPACE:
            mirror.next_disabled.append(extension_id)

    def disable(self, extension_id: str, mode: ManagerMode) -> None:
        """Make sure an extension ends up disabled."""
        primary = self._require_session()
        logger.debug("disable %s (enabled in editor: %s)", extension_id, extension_id in self._editor.enabled)

        primary.next_disabled.append(extension_id)
        if primary.can_toggle and extension_id in self._editor.enabled:
            self._log_failure("disable", extension_id, self.host.disable(extension_id))

        mirror = self.mirror
        if mirror is not None:
            mirror.next_disabled.append(extension_id)

    # Queries

    def is_managed(self, extension_id: str, mode: ManagerMode) -> bool:
        state = self.primary.current.get(extension_id)
        return state is not None and state.mode is mode

    def owner(self, extension_id: str) -> ManagerMode | None:
        """Scope owning an extension, looking at the global table too."""
        for partition in self._partitions():
            state = partition.current.get(extension_id)
            if state is not None:
                return state.mode
        return None

    def get_current_version(self, extension_id: str) -> str | None:
        state = self.primary.current.get(extension_id)
        return state.version if state else None

    def list_installed(self) -> list[str]:
        return list(self.primary.current)

    def is_first_run(self) -> bool:
        return self.primary.first_run

    def is_installed_in_editor(self, extension_id: str) -> bool:
        return extension_id in self._editor.enabled or extension_id in self._editor.disabled

    def get_enabled_in_editor(self, extension_id: str) -> InstalledExtension | None:
        return self._editor.enabled.get(extension_id)

    def get_disabled_in_editor(self, extension_id: str) -> InstalledExtension | None:
        return self._editor.disabled.get(extension_id)

    # Commit

    def save(self, restart_mode: RestartMode | str = RestartMode.AUTO) -> RestartAction | None:
        """Commit the session.

        Uninstalls the extensions no longer owned (see
        :meth:`pending_removals`), writes the batched disabled lists,
        persists the manifests and finally asks the host for the reload or
        restart the changes need.

        Returns:
            The lifecycle action requested from the host, if any.

        Raises:
            StateDBError: If a disabled list cannot be written. No manifest
                is written in that case.
            ManifestError: If a manifest cannot be written.
        """
        restart_mode = RestartMode(restart_mode)
        restart = False
        reload = False

        if self.primary.in_session:
            reload = self._uninstall_removed(self.pending_removals())

        writes = [w for w in (self._plan_disabled(p) for p in self._partitions()) if w is not None]

        for write in writes:
            write_disabled(write.partition.state_db, write.ids)
        if writes:
            restart = True

        for partition in self._partitions():
            if partition.in_session:
                partition.current = partition.next
                partition.next = None
                partition.next_disabled = None
                partition.force_update_disabled = False
            partition.write()

        action = resolve_restart_action(restart_mode, restart, reload)
        self.last_action = action
        if action is not None:
            self._perform(action)
        return action

    def pending_removals(self) -> list[str]:
        """Ids the open session will uninstall at commit.

        A global session drops every entry missing from ``next``. A
        workspace session retires the workspace-owned entries it no longer
        wants; the global table still records them as workspace-owned.
        """
        primary = self.primary
        if not primary.in_session:
            return []
        removed = [i for i in primary.current if i not in primary.next]

        mirror = self.mirror
        if mirror is None:
            return removed
        retired = []
        for extension_id in removed:
            state = mirror.next.get(extension_id)
            if state is not None and state.mode is ManagerMode.WORKSPACE:
                retired.append(extension_id)
        return retired

    def _uninstall_removed(self, removed: list[str]) -> bool:
        mirror = self.mirror
        if mirror is not None and removed:
            for extension_id in removed:
                mirror.next.pop(extension_id, None)
            # Drop the retired ids from the global disabled list
            mirror.force_update_disabled = True

        reload = False
        for extension_id in removed:
            logger.info("uninstall: %s", extension_id)
            if self._log_failure("uninstall", extension_id, self.host.uninstall(extension_id)):
                reload = True
        return reload

    def _plan_disabled(self, partition: Partition) -> _DisabledWrite | None:
        """Disabled list to write for a partition, None when nothing changes."""
        if not partition.in_session or partition.can_toggle:
            return None
        if not (partition.force_update_disabled or partition.next_disabled):
            return None

        ids: list[str] = []
        ids.extend(self._editor.builtin_disabled)
        # Extensions the user disabled and this tool does not own stay disabled
        ids.extend(i for i in self._editor.disabled if i not in partition.current)
        if partition.scope is ManagerMode.GLOBAL:
            ids.extend(i for i, s in partition.next.items() if s.mode is ManagerMode.WORKSPACE)
        ids.extend(partition.next_disabled)
        ids = list(dict.fromkeys(ids))

        try:
            existing = set(read_disabled(partition.state_db))
        except StateDBError as e:
            logger.warning("%s", e)
            existing = set()

        if set(ids) == existing:
            logger.debug("Disabled list of %s unchanged", partition.state_db)
            return None
        return _DisabledWrite(partition, ids)

    def _perform(self, action: RestartAction) -> None:
        if action is RestartAction.RESTART_APP:
            result = self.host.restart_app()
        elif action is RestartAction.RELOAD_WINDOW:
            result = self.host.reload_window()
        else:
            result = self.host.restart_extension_host()
        self._log_failure(action.value, "the editor", result)
