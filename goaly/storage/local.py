"""SQLite key/value store for Goaly's local state.

Goaly persists a handful of JSON documents (goals, settings, remote ids,
one base snapshot per remote document), so the schema is a single
``kv_store`` table. Connections are opened per operation.
"""

import contextlib
import logging
import sqlite3
import tempfile
from pathlib import Path
from typing import List, Optional

from goaly.core.dates import to_iso, utc_now
from goaly.utils import get_goaly_home

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class LocalStore:
    """Persistent string key/value storage backed by SQLite."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = self._resolve_db_path(Path(db_path) if db_path else None)
        self._init_db()

    def _resolve_db_path(self, db_path: Optional[Path]) -> Path:
        """Resolve the database path, falling back to temp dir if home is not writable."""
        if db_path is not None:
            db_path.expanduser().parent.mkdir(parents=True, exist_ok=True)
            return db_path.expanduser().resolve()

        default_path = get_goaly_home() / "goaly.db"
        try:
            default_path.parent.mkdir(parents=True, exist_ok=True)
            return default_path
        except (OSError, PermissionError) as e:
            fallback_dir = Path(tempfile.gettempdir()) / ".goaly"
            fallback_dir.mkdir(parents=True, exist_ok=True)
            logger.warning(
                f"Cannot write to {default_path.parent} ({e}), " f"falling back to {fallback_dir}"
            )
            return fallback_dir / "goaly.db"

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Context manager that handles transactions AND closes connection.

        - Transaction commit on success
        - Transaction rollback on exception
        - Connection close in all cases
        """
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    def get_item(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = excluded.updated_at
                """,
                (key, value, to_iso(utc_now())),
            )

    def remove_item(self, key: str) -> bool:
        """Delete ``key``. Returns True if something was removed."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys, optionally limited to those starting with ``prefix``."""
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (escaped + "%",),
            ).fetchall()
        return [row["key"] for row in rows]

    def close(self):
        """Connections are per-operation; nothing to release."""
        pass
