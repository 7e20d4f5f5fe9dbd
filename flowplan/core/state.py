"""SQLite persistence for engine stores.

Each in-memory store (workflows, headers, node configurations) is written as
one JSON document under its store key. Writes only happen when a caller asks
for them; nothing here watches the in-memory state.
"""

import json
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel

STORE_WORKFLOW = "workflow"
STORE_HEADERS = "headers"
STORE_NODE_CONFIGS = "node_configs"


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class _SafeJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime and Pydantic models."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json", by_alias=True)
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def _safe_json_dumps(obj: Any) -> str:
    """Serialize object to JSON string, handling datetime and Pydantic models."""
    return json.dumps(obj, cls=_SafeJSONEncoder)


class Database:
    """SQLite key/document store for persisted engine state."""

    SCHEMA = """
    -- One JSON document per store key
    CREATE TABLE IF NOT EXISTS stores (
        key TEXT PRIMARY KEY,
        data JSON NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """

    def __init__(self, db_path: str | Path = ".flowplan/state.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema and enable WAL mode."""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(self.SCHEMA)

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections.

        Uses a 30-second busy timeout so a second process (CLI next to the
        studio server) waits instead of failing with "database is locked".
        """
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 30000")
        try:
            yield conn
            conn.commit()
        except sqlite3.OperationalError as e:
            conn.rollback()
            if "database is locked" in str(e):
                raise sqlite3.OperationalError(
                    f"Database locked after 30s timeout. Check for long-running transactions: {e}"
                ) from e
            raise
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Explicit transaction context for atomic multi-store writes."""
        with self._connect() as conn:
            yield conn

    # --- Store documents ---

    def save_store(
        self, key: str, data: dict[str, Any], conn: sqlite3.Connection | None = None
    ) -> None:
        """Insert or replace the document stored under ``key``."""
        sql = """
            INSERT INTO stores (key, data, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                data = excluded.data,
                updated_at = excluded.updated_at
        """
        params = (key, _safe_json_dumps(data), _utc_now().isoformat())
        if conn is not None:
            conn.execute(sql, params)
            return
        with self._connect() as own:
            own.execute(sql, params)

    def load_store(self, key: str) -> dict[str, Any] | None:
        """Return the document stored under ``key``, or None."""
        with self._connect() as conn:
            row = conn.execute("SELECT data FROM stores WHERE key = ?", (key,)).fetchone()
        return json.loads(row["data"]) if row else None

    def delete_store(self, key: str) -> bool:
        with self._connect() as conn:
            result = conn.execute("DELETE FROM stores WHERE key = ?", (key,))
            return result.rowcount > 0

    def list_stores(self) -> list[dict[str, Any]]:
        """Store keys with their last write time, most recent first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key, updated_at FROM stores ORDER BY updated_at DESC"
            ).fetchall()
        return [{"key": r["key"], "updated_at": r["updated_at"]} for r in rows]
