"""Editor settings store (``state.vscdb``).

The editor keeps its global enable/disable flags in a SQLite key/value
table. The disabled list lives under ``extensionsIdentifiers/disabled`` as a
JSON array of ``{"id": ...}`` objects.
"""

import json
import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

DISABLED_KEY = "extensionsIdentifiers/disabled"

_CREATE_TABLE = "CREATE TABLE IF NOT EXISTS ItemTable (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)"


class StateDBError(Exception):
    """Raised when the settings store cannot be read or written."""

    pass


def read_disabled(db_path: Path) -> list[str]:
    """Ids in the disabled list; empty when the store or key is absent.

    Raises:
        StateDBError: If the store exists but cannot be read.
    """
    if not db_path.exists():
        return []

    try:
        with closing(sqlite3.connect(db_path)) as conn:
            row = conn.execute(
                "SELECT value FROM ItemTable WHERE key = ?", (DISABLED_KEY,)
            ).fetchone()
    except sqlite3.OperationalError as e:
        if "no such table" in str(e):
            return []
        raise StateDBError(f"Cannot read the database {db_path}: {e}") from e
    except sqlite3.Error as e:
        raise StateDBError(f"Cannot read the database {db_path}: {e}") from e

    if row is None or row[0] is None:
        return []

    value = row[0]
    if isinstance(value, bytes):
        value = value.decode("utf-8")

    try:
        items = json.loads(value)
    except ValueError:
        logger.warning("Ignoring malformed %s in %s", DISABLED_KEY, db_path)
        return []

    ids: list[str] = []
    for item in items if isinstance(items, list) else []:
        if isinstance(item, dict) and isinstance(item.get("id"), str):
            ids.append(item["id"])
    return ids


def write_disabled(db_path: Path, ids: Iterable[str]) -> None:
    """Replace the disabled list.

    Raises:
        StateDBError: If the store cannot be written.
    """
    value = json.dumps([{"id": id_} for id_ in ids])
    logger.debug("%s in %s: %s", DISABLED_KEY, db_path, value)

    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(sqlite3.connect(db_path)) as conn:
            with conn:
                conn.execute(_CREATE_TABLE)
                conn.execute(
                    "INSERT OR REPLACE INTO ItemTable (key, value) VALUES (?, ?)",
                    (DISABLED_KEY, value),
                )
    except (sqlite3.Error, OSError) as e:
        raise StateDBError(f"Cannot write the database {db_path}: {e}") from e
