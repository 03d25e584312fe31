"""Runner orchestrating install, update, uninstall and adopt runs."""

from __future__ import annotations

import logging
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator

from rich.console import Console

from extensions.aliases import AliasTable
from extensions.host import EditorCLIHost, Host, HostError
from extensions.lock import FileLock, LockError
from extensions.manager import ExtensionManager, ManifestError, SessionError
from extensions.metadata import Metadata, parse_metadata
from extensions.statedb import StateDBError
from orchestrator.config import Config
from schemas.source import LITERAL_GITHUB, LiteralGitHubSource, Source
from schemas.state import ExtensionState, ManagerMode, RestartAction, RestartMode
from sources import versions
from sources.assets import detect_target_platform
from sources.base import ResolverContext, SearchFileResult, SearchResult, SourceError
from sources.dispatch import SourceDispatcher
from sources.throttle import RequestThrottle

logger = logging.getLogger(__name__)

# Errors that abort the whole run rather than one request
FATAL_ERRORS = (HostError, LockError, ManifestError, SessionError, StateDBError)

ALIASES_FILE = "aliases.json"
IGNORE_FILE = "ignore"


@dataclass
class AdoptionCandidate:
    """An installed extension that the configuration lists but nobody owns."""

    id: str
    version: str
    enabled: bool


@dataclass
class RunReport:
    """What a run did."""

    installed: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    unmanaged: list[str] = field(default_factory=list)
    owned_elsewhere: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    adopted: list[str] = field(default_factory=list)
    action: RestartAction | None = None
    skipped: bool = False


class ExtensionRunner:
    """Runs one reconciliation under the main lock.

    Example:
        >>> runner = ExtensionRunner(load_config())
        >>> report = runner.install()

    Args:
        config: Application configuration.
        host: Editor collaborator, built from ``config.editor`` by default.
        workspace: Workspace directory for a workspace-scoped run.
        context: Resolver context, built from the configuration by default.
        console: Rich console for progress output.
    """

    def __init__(
        self,
        config: Config,
        host: Host | None = None,
        workspace: Path | None = None,
        context: ResolverContext | None = None,
        console: Console | None = None,
    ) -> None:
        self.config = config
        self.console = console
        self.global_storage = config.global_storage_dir()
        self.workspace = workspace
        self.workspace_storage = config.workspace_storage_dir(workspace) if workspace else None
        self.mode = ManagerMode.WORKSPACE if workspace else ManagerMode.GLOBAL

        self.host = host or self._build_host()
        self._context = context
        self._owns_temporary_dir = False

        self.manager = ExtensionManager(self.host, self.global_storage, self.workspace_storage)
        self.aliases = AliasTable(self.global_storage / ALIASES_FILE)
        self._dispatcher: SourceDispatcher | None = None
        self._report = RunReport()

    def _build_host(self) -> EditorCLIHost:
        editor = self.config.editor
        return EditorCLIHost(
            cli=editor.cli,
            extensions_dir=editor.resolved_extensions_dir(),
            state_db=self.global_storage.parent / "state.vscdb",
            app_root=editor.resolved_app_root(),
            user_data_dir=Path(editor.user_data_dir).expanduser() if editor.user_data_dir else None,
            editor_version=editor.version or None,
            self_id=editor.self_id or None,
        )

    # Context

    @property
    def context(self) -> ResolverContext:
        if self._context is None:
            self._context = self._build_context()
        return self._context

    def _build_context(self) -> ResolverContext:
        if self.config.storage.temporary_dir:
            temporary_dir = Path(self.config.storage.temporary_dir).expanduser()
            temporary_dir.mkdir(parents=True, exist_ok=True)
        else:
            temporary_dir = Path(tempfile.mkdtemp(prefix="vsixsync-"))
            self._owns_temporary_dir = True

        try:
            host_version = self.config.editor.version or self.host.version()
        except HostError as e:
            logger.warning("%s; engine compatibility is not checked", e)
            host_version = ""

        return ResolverContext(
            temporary_dir=temporary_dir,
            target_platform=self.config.editor.target_platform or detect_target_platform(),
            host_version=host_version,
            throttle=RequestThrottle(),
        )

    @property
    def dispatcher(self) -> SourceDispatcher:
        if self._dispatcher is None:
            self._dispatcher = SourceDispatcher(self.context, self.config.sources, self.aliases)
        return self._dispatcher

    def _close_context(self) -> None:
        if self._context is None:
            return
        self._context.close()
        if self._owns_temporary_dir:
            shutil.rmtree(self._context.temporary_dir, ignore_errors=True)
        self._context = None
        self._dispatcher = None

    # Helpers

    def _print(self, message: str) -> None:
        if self.console is not None:
            self.console.print(message)

    def is_ignored_workspace(self) -> bool:
        return self.workspace_storage is not None and (self.workspace_storage / IGNORE_FILE).exists()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        lock_config = self.config.lock
        lock = FileLock.main(
            self.global_storage,
            timeout=lock_config.timeout,
            retry_interval=lock_config.retry_interval,
            stale=lock_config.stale,
        )
        with lock:
            try:
                yield
            finally:
                self._close_context()

    def _restart_mode(self, restart_mode: RestartMode | str | None) -> RestartMode:
        return RestartMode(restart_mode) if restart_mode else self.config.restart_mode

    def _get_source(self, name: str) -> Source | None:
        source = self.config.sources.get(name)
        if source is None and name == LITERAL_GITHUB:
            return LiteralGitHubSource()
        return source

    def _should_run(self) -> bool:
        if self.config.extensions is None:
            logger.info("No extensions configured")
            return False
        if self.is_ignored_workspace():
            logger.info("Workspace %s is ignored", self.workspace)
            self._report.skipped = True
            return False
        return True

    # Install / update

    def install(self, restart_mode: RestartMode | str | None = None, update: bool = False) -> RunReport:
        """Install the configured extensions.

        Entries are processed in configuration order. For each entry the
        alternatives are tried in turn until one succeeds.
        """
        self._report = RunReport()
        if not self._should_run():
            return self._report

        with self._locked():
            self.manager.load()
            self.aliases = AliasTable.load(self.global_storage / ALIASES_FILE)
            self._dispatcher = None

            # Entries owned by the other scope are carried over untouched
            self.manager.start_session(lambda state: state.mode is not self.mode)

            for entry in self.config.extensions or []:
                self._install_entry(entry, update, frozenset())

            self._report.removed = self.manager.pending_removals()
            self._report.action = self.manager.save(self._restart_mode(restart_mode))
            self.aliases.save()

        return self._report

    def update(self, restart_mode: RestartMode | str | None = None) -> RunReport:
        """Install the configured extensions, replacing outdated ones."""
        return self.install(restart_mode, update=True)

    def _install_entry(self, data: Any, update: bool, visited: frozenset[str]) -> None:
        for metadata in parse_metadata(data):
            try:
                if metadata.is_group:
                    done = self._install_group(metadata, update, visited)
                elif metadata.source:
                    done = self._install_with_source(metadata, update)
                else:
                    done = self._install_without_source(metadata)
            except SourceError as e:
                logger.error("Cannot install %s: %s", metadata, e)
                done = False
            except FATAL_ERRORS:
                raise
            except Exception:
                logger.exception("Unexpected error while installing %s", metadata)
                done = False

            if done:
                return

        if data:
            self._report.failed.append(str(data))

    def _install_group(self, metadata: Metadata, update: bool, visited: frozenset[str]) -> bool:
        name = metadata.full_name
        logger.info("installing group: %s", name)

        if name in visited:
            logger.warning("Group %r includes itself, skipping", name)
            return True

        entries = self.config.groups.get(name)
        if entries is None:
            logger.info('group "%s" not found', name)
            return False

        for entry in entries:
            self._install_entry(entry, update, visited | {name})
        return True

    def _reconfirm(self, extension_id: str, metadata: Metadata) -> str | None:
        """Carry a managed extension into the session and fix its state.

        Extensions owned by the other scope are reported and left as they
        are; the session already carries them.

        Returns:
            The managed version, or None when this scope does not manage it.
        """
        if not self.manager.is_managed(extension_id, self.mode):
            owner = self.manager.owner(extension_id)
            if owner is not None:
                logger.info("%s is managed in %s scope, skipping", extension_id, owner.value)
                self._report.owned_elsewhere.append(extension_id)
            else:
                logger.info("%s is already installed (unmanaged)", extension_id)
                self._report.unmanaged.append(extension_id)
            return None

        current_version = self.manager.get_current_version(extension_id)
        self.manager.set_installed(extension_id, current_version, self.mode)
        if metadata.enabled:
            self.manager.enable(extension_id, self.mode)
        else:
            self.manager.disable(extension_id, self.mode)
        return current_version

    def _install_without_source(self, metadata: Metadata) -> bool:
        extension_id = metadata.full_name
        logger.info("installing extension: %s", extension_id)

        if self.manager.is_installed_in_editor(extension_id):
            if self._reconfirm(extension_id, metadata) is not None:
                self._report.unchanged.append(extension_id)
            return True

        target = extension_id
        if metadata.target_version:
            target = f"{extension_id}@{metadata.target_version}"

        result = self.host.install(target)
        if not result.ok:
            logger.error("Failed to install %s: %s", target, result.error)
            return False

        # The editor picks the version; it is unknown here
        self.manager.add_installed(extension_id, metadata.target_version or "0.0.0", metadata.enabled, self.mode)
        self._report.installed.append(extension_id)
        self._print(f"[green]+[/green] {extension_id}")
        return True

    def _install_with_source(self, metadata: Metadata, update: bool) -> bool:
        logger.info("installing extension: %s:%s", metadata.source, metadata.full_name)

        source = self._get_source(metadata.source)
        if source is None:
            logger.warning('source "%s" not found', metadata.source)
            return False

        extension_id = self.dispatcher.resolve_name(metadata, source)

        if self.manager.is_installed_in_editor(extension_id):
            current_version = self._reconfirm(extension_id, metadata)
            if current_version is not None:
                if update:
                    self._update_managed(extension_id, current_version, metadata, source)
                else:
                    logger.info("%s already installed", extension_id)
                    self._report.unchanged.append(extension_id)
            return True

        result = self.dispatcher.search(metadata, source)
        if result is None:
            logger.info("%s not found", metadata)
            return False

        local = self.dispatcher.materialize(result, metadata, source)
        try:
            if self.manager.is_installed_in_editor(local.full_name) and local.full_name != extension_id:
                # Identity learned from the download: re-check ownership
                current_version = self._reconfirm(local.full_name, metadata)
                if current_version is None:
                    return True
                if update and versions.gt(local.version, current_version):
                    self._install_update(local, current_version)
                else:
                    self._report.unchanged.append(local.full_name)
                return True

            if not self._install_file(local):
                return False
        finally:
            self._cleanup(local)

        self.manager.add_installed(local.full_name, local.version, metadata.enabled, self.mode)
        logger.info("installed version: %s", local.version)
        self._report.installed.append(local.full_name)
        self._print(f"[green]+[/green] {local.full_name} {local.version}")
        return True

    def _update_managed(self, extension_id: str, current_version: str, metadata: Metadata, source: Source) -> None:
        result = self.dispatcher.search(metadata, source)
        if result is None or not versions.gt(result.version, current_version):
            logger.info("%s: no newer version found", extension_id)
            self._report.unchanged.append(extension_id)
            return

        local = self.dispatcher.materialize(result, metadata, source)
        try:
            self._install_update(local, current_version)
        finally:
            self._cleanup(local)

    def _install_update(self, local: SearchFileResult, current_version: str) -> None:
        if not self._install_file(local):
            self._report.failed.append(local.full_name)
            return

        self.manager.set_installed(local.full_name, local.version, self.mode)
        logger.info("%s updated to version: %s", local.full_name, local.version)
        self._report.updated.append(local.full_name)
        self._print(f"[cyan]↑[/cyan] {local.full_name} {current_version} -> {local.version}")

    def _install_file(self, local: SearchFileResult) -> bool:
        result = self.host.install(local.file)
        if not result.ok:
            logger.error("Failed to install %s: %s", local.file.name, result.error)
        return result.ok

    def _cleanup(self, local: SearchFileResult) -> None:
        if local.unlink is None:
            return
        try:
            local.unlink.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove %s: %s", local.unlink, e)

    # Uninstall

    def uninstall(self, restart_mode: RestartMode | str | None = None) -> RunReport:
        """Remove every extension this tool manages in the current scope."""
        self._report = RunReport()
        if self.is_ignored_workspace():
            self._report.skipped = True
            return self._report

        with self._locked():
            self.manager.load()
            self.manager.start_session()
            self._report.removed = self.manager.pending_removals()
            self._report.action = self.manager.save(self._restart_mode(restart_mode))

        return self._report

    # Adopt

    def find_adoption_candidates(self) -> list[AdoptionCandidate]:
        """Configured extensions installed in the editor but not managed."""
        self.manager.load()
        self.aliases = AliasTable.load(self.global_storage / ALIASES_FILE)
        self._dispatcher = None

        candidates: dict[str, AdoptionCandidate] = {}
        for entry in self.config.extensions or []:
            self._adopt_entry(entry, candidates, frozenset())
        return list(candidates.values())

    def adopt(self, confirm: Callable[[list[AdoptionCandidate]], bool] | None = None) -> RunReport:
        """Start managing configured extensions installed by other means.

        Args:
            confirm: Called with the candidates; returning False aborts.
        """
        self._report = RunReport()
        if not self._should_run():
            return self._report

        with self._locked():
            candidates = self.find_adoption_candidates()
            if not candidates:
                logger.info("No unmanaged extensions")
                return self._report

            if confirm is not None and not confirm(candidates):
                return self._report

            self.manager.start_session(lambda state: True)
            for candidate in candidates:
                self.manager.add_installed(candidate.id, candidate.version, candidate.enabled, self.mode)
                self._report.adopted.append(candidate.id)

            self._report.action = self.manager.save(RestartMode.NONE)

        return self._report

    def _adopt_entry(self, data: Any, candidates: dict[str, AdoptionCandidate], visited: frozenset[str]) -> None:
        for metadata in parse_metadata(data):
            if metadata.is_group:
                name = metadata.full_name
                entries = self.config.groups.get(name)
                if entries is None or name in visited:
                    continue
                for entry in entries:
                    self._adopt_entry(entry, candidates, visited | {name})
                return

            if metadata.source:
                source = self._get_source(metadata.source)
                if source is None:
                    logger.info('source "%s" not found', metadata.source)
                    continue
                extension_id = self.dispatcher.resolve_name(metadata, source)
            else:
                extension_id = metadata.full_name

            enabled = self.manager.get_enabled_in_editor(extension_id)
            installed = enabled or self.manager.get_disabled_in_editor(extension_id)
            if installed is None:
                continue

            if self.manager.owner(extension_id) is None and extension_id not in candidates:
                logger.info("found adoption candidate: %s", metadata)
                candidates[extension_id] = AdoptionCandidate(
                    id=extension_id,
                    version=installed.version,
                    enabled=enabled is not None,
                )
            return

    # Listing

    def search(self, request: Any) -> list[tuple[Metadata, SearchResult | None]]:
        """Resolve a request against its sources without installing it.

        Returns:
            One ``(metadata, result)`` pair per sourced alternative.
        """
        self.aliases = AliasTable.load(self.global_storage / ALIASES_FILE)
        self._dispatcher = None

        found: list[tuple[Metadata, SearchResult | None]] = []
        try:
            for metadata in parse_metadata(request):
                if metadata.is_group or not metadata.source:
                    continue
                source = self._get_source(metadata.source)
                if source is None:
                    logger.warning('source "%s" not found', metadata.source)
                    found.append((metadata, None))
                    continue
                found.append((metadata, self.dispatcher.search(metadata, source)))
        finally:
            self._close_context()
        return found

    def list_managed(self) -> dict[str, ExtensionState]:
        """Managed extensions of the current scope, read without locking."""
        partition = self.manager.primary
        partition.load()
        return dict(sorted(partition.current.items()))
