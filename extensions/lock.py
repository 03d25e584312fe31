"""Cross-process lock.

The lock is a directory: ``mkdir`` is atomic on every platform we care
about, so whoever creates it owns it. The owner writes ``owner.json`` with
its pid, a millisecond timestamp and the host name. A lock whose owner
record is older than the staleness threshold is considered abandoned and
reclaimed.
"""

from __future__ import annotations

import atexit
import json
import logging
import os
import shutil
import signal
import socket
import threading
import time
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

OWNER_FILE = "owner.json"
MAIN_LOCK = "main"


class LockError(Exception):
    """Raised when the lock cannot be created or removed."""

    pass


class LockTimeoutError(LockError):
    """Raised when another process holds the lock past the timeout."""

    pass


class FileLock:
    """Directory-based advisory lock.

    Example:
        >>> with FileLock.main(storage_dir):
        ...     reconcile()

    Args:
        name: Lock name, the directory is ``<base_dir>/locks/<name>.lock``.
        base_dir: Storage directory.
        timeout: Seconds to wait before giving up.
        retry_interval: Seconds between two attempts.
        stale: Age in seconds after which a lock is reclaimed.
    """

    def __init__(
        self,
        name: str,
        base_dir: Path,
        timeout: float = 30.0,
        retry_interval: float = 0.3,
        stale: float = 60.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = name
        self.locks_dir = Path(base_dir) / "locks"
        self.lock_dir = self.locks_dir / f"{name}.lock"
        self.owner_file = self.lock_dir / OWNER_FILE
        self.timeout = timeout
        self.retry_interval = retry_interval
        self.stale = stale
        self._clock = clock
        self._sleep = sleep
        self._acquired = False
        self._cleanup_installed = False
        self._previous_handlers: dict[int, Any] = {}

    @classmethod
    def main(cls, base_dir: Path, **kwargs: Any) -> FileLock:
        """The lock guarding a whole reconciliation run."""
        kwargs.setdefault("stale", 600.0)
        return cls(MAIN_LOCK, base_dir, **kwargs)

    @property
    def acquired(self) -> bool:
        return self._acquired

    def acquire(self) -> FileLock:
        """Take the lock, waiting for the current owner if needed.

        Returns:
            The lock itself.

        Raises:
            LockTimeoutError: If the lock is still held after ``timeout``.
            LockError: If the lock directory cannot be created or cleaned.
        """
        try:
            self.locks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LockError(f"Cannot create {self.locks_dir}: {e}") from e

        start = self._clock()

        while True:
            try:
                self.lock_dir.mkdir()
            except FileExistsError:
                if self.is_stale():
                    logger.warning("Removing stale lock %s", self.lock_dir)
                    self._remove()
                    continue

                if self._clock() - start > self.timeout:
                    raise LockTimeoutError(f"Timeout acquiring lock at {self.lock_dir}")

                self._sleep(self.retry_interval)
                continue
            except OSError as e:
                raise LockError(f"Cannot create {self.lock_dir}: {e}") from e

            owner = {
                "pid": os.getpid(),
                "ts": int(self._clock() * 1000),
                "host": socket.gethostname(),
            }
            try:
                self.owner_file.write_text(json.dumps(owner), encoding="utf-8")
            except OSError as e:
                self._remove()
                raise LockError(f"Cannot write {self.owner_file}: {e}") from e

            self._acquired = True
            self._install_cleanup()
            logger.debug("Acquired lock %s", self.lock_dir)
            return self

    def release(self) -> None:
        """Delete the lock directory; no-op when not held."""
        if not self._acquired:
            return
        self._remove()
        self._acquired = False
        self._uninstall_cleanup()
        logger.debug("Released lock %s", self.lock_dir)

    def is_stale(self) -> bool:
        """Check whether the current lock is abandoned.

        The owner timestamp is used when readable, else the directory
        modification time. A vanished lock counts as stale.
        """
        try:
            owner = json.loads(self.owner_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            try:
                mtime = self.lock_dir.stat().st_mtime
            except FileNotFoundError:
                return True
            except OSError:
                return False
            return self._clock() - mtime > self.stale

        if isinstance(owner, dict) and isinstance(owner.get("ts"), (int, float)):
            return self._clock() * 1000 - owner["ts"] > self.stale * 1000
        return False

    def _remove(self) -> None:
        try:
            shutil.rmtree(self.lock_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise LockError(f"Cannot remove {self.lock_dir}: {e}") from e

    def _install_cleanup(self) -> None:
        if self._cleanup_installed:
            return

        atexit.register(self._on_exit)

        # Signal handlers can only be set from the main thread
        if threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGINT, signal.SIGTERM):
                try:
                    self._previous_handlers[signum] = signal.signal(signum, self._on_signal)
                except (ValueError, OSError) as e:
                    logger.debug("Cannot install handler for signal %s: %s", signum, e)

        self._cleanup_installed = True

    def _uninstall_cleanup(self) -> None:
        if not self._cleanup_installed:
            return

        atexit.unregister(self._on_exit)
        for signum, previous in self._previous_handlers.items():
            try:
                if signal.getsignal(signum) == self._on_signal:
                    signal.signal(signum, previous)
            except ValueError as e:
                logger.debug("Cannot restore handler for signal %s: %s", signum, e)
        self._previous_handlers.clear()
        self._cleanup_installed = False

    def _on_exit(self) -> None:
        try:
            self.release()
        except LockError as e:
            logger.warning("Failed to release lock on exit: %s", e)

    def _on_signal(self, signum: int, frame: Any) -> None:
        previous = self._previous_handlers.get(signum)
        self._on_exit()

        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_IGN:
            return
        elif signum == signal.SIGINT:
            raise KeyboardInterrupt
        else:
            raise SystemExit(128 + signum)

    def __enter__(self) -> FileLock:
        return self.acquire()

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.release()
