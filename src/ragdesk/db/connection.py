"""Open the project database: SQLite with the sqlite-vec extension loaded.

Every connection is configured the same way: ``sqlite3.Row`` rows, foreign
keys enforced, WAL journaling and a busy timeout so a CLI turn waits for a
concurrent ingestion instead of failing on a locked database.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import sqlite_vec

from ragdesk.errors import StorageError

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_MS = 5000

_PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}",
)


def _load_vec_extension(conn: sqlite3.Connection) -> None:
    conn.enable_load_extension(True)
    try:
        sqlite_vec.load(conn)
    finally:
        conn.enable_load_extension(False)


class Database:
    """Handle on a ragdesk project database file.

    Usable directly (``Database(path).connect()``, caller closes) or as a
    context manager that closes the connection on exit.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Return a configured connection, creating the file if missing.

        Raises:
            StorageError: The file could not be opened or configured.
        """
        conn: sqlite3.Connection | None = None
        try:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            _load_vec_extension(conn)
            for pragma in _PRAGMAS:
                conn.execute(pragma)
        except sqlite3.Error as exc:
            if conn is not None:
                conn.close()
            logger.error("Could not open database %s: %s", self.db_path, exc)
            raise StorageError(f"Could not open database {self.db_path}: {exc}") from exc
        logger.debug("Opened database %s", self.db_path)
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
