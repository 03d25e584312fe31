"""The editor as seen by the state manager.

The manager never talks to the editor directly; it goes through a
:class:`Host`. Mutating calls return a :class:`HostResult` instead of
raising so the caller decides whether a failure is fatal.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from extensions.editor import EditorScanError, ExtensionList, scan_editor_extensions
from extensions.statedb import StateDBError

logger = logging.getLogger(__name__)


class HostError(Exception):
    """Raised when the editor cannot be queried at all."""

    pass


@dataclass(frozen=True)
class HostResult:
    """Outcome of a host call."""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> HostResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> HostResult:
        return cls(ok=False, error=error)


@runtime_checkable
class Host(Protocol):
    """Operations the editor must offer."""

    def list_installed(self) -> ExtensionList: ...

    def install(self, target: str | Path) -> HostResult: ...

    def uninstall(self, extension_id: str) -> HostResult: ...

    def enable(self, extension_id: str) -> HostResult: ...

    def disable(self, extension_id: str) -> HostResult: ...

    def supports_individual_toggle(self) -> bool: ...

    def reload_window(self) -> HostResult: ...

    def restart_app(self) -> HostResult: ...

    def restart_extension_host(self) -> HostResult: ...

    def version(self) -> str: ...


class EditorCLIHost:
    """Drive the editor through its command line.

    The command line can install and uninstall extensions but cannot toggle
    one extension nor restart a running editor; restart requests are logged
    for the user instead.

    Example:
        >>> host = EditorCLIHost("code", extensions_dir, state_db)
        >>> host.install(Path("/tmp/acme.tool-1.0.0.vsix"))
    """

    def __init__(
        self,
        cli: str,
        extensions_dir: Path,
        state_db: Path,
        app_root: Path | None = None,
        user_data_dir: Path | None = None,
        editor_version: str | None = None,
        self_id: str | None = None,
        timeout: float = 300.0,
    ):
        self.cli = cli
        self.extensions_dir = extensions_dir
        self.state_db = state_db
        self.app_root = app_root
        self.user_data_dir = user_data_dir
        self.timeout = timeout
        self.self_id = self_id
        self._version = editor_version
        self.pending_action: str | None = None

    def _command(self, *args: str) -> list[str]:
        executable = shutil.which(self.cli) or self.cli
        command = [executable]
        if self.user_data_dir is not None:
            command += ["--user-data-dir", str(self.user_data_dir)]
        command += ["--extensions-dir", str(self.extensions_dir)]
        command += list(args)
        return command

    def _run(self, args: Sequence[str]) -> HostResult:
        command = self._command(*args)
        logger.debug("Running %s", " ".join(command))
        try:
            subprocess.run(
                command,
                check=True,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            return HostResult.failure(f"Editor command not found: {self.cli}")
        except subprocess.TimeoutExpired:
            return HostResult.failure(f"Editor command timed out: {' '.join(args)}")
        except subprocess.CalledProcessError as e:
            message = (e.stderr or e.stdout or "").strip() or f"exit status {e.returncode}"
            return HostResult.failure(message)
        return HostResult.success()

    def list_installed(self) -> ExtensionList:
        try:
            return scan_editor_extensions(
                self.extensions_dir,
                self.state_db,
                app_root=self.app_root,
                exclude=self.self_id,
            )
        except (EditorScanError, StateDBError) as e:
            raise HostError(str(e)) from e

    def install(self, target: str | Path) -> HostResult:
        return self._run(["--install-extension", str(target), "--force"])

    def uninstall(self, extension_id: str) -> HostResult:
        return self._run(["--uninstall-extension", extension_id])

    def enable(self, extension_id: str) -> HostResult:
        return HostResult.failure("The editor command line cannot enable a single extension")

    def disable(self, extension_id: str) -> HostResult:
        return HostResult.failure("The editor command line cannot disable a single extension")

    def supports_individual_toggle(self) -> bool:
        return False

    def _request(self, action: str) -> HostResult:
        self.pending_action = action
        logger.warning("Please %s the editor to apply the extension changes", action)
        return HostResult.success()

    def reload_window(self) -> HostResult:
        return self._request("reload the windows of")

    def restart_app(self) -> HostResult:
        return self._request("restart")

    def restart_extension_host(self) -> HostResult:
        return self._request("restart the extension host of")

    def version(self) -> str:
        if self._version:
            return self._version

        try:
            completed = subprocess.run(
                [shutil.which(self.cli) or self.cli, "--version"],
                check=True,
                capture_output=True,
                text=True,
                timeout=60,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise HostError(f"Cannot query the editor version: {e}") from e

        lines = completed.stdout.strip().splitlines()
        self._version = lines[0].strip() if lines else "0.0.0"
        return self._version
