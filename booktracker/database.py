import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from booktracker.config import settings

logger = logging.getLogger(__name__)


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the snapshot database."""
    conn = sqlite3.connect(db_file or settings.db_file)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Creates the snapshot table if it does not exist."""
    conn = get_db_connection(db_file)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS snapshots (
                user_id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_snapshots_updated_at ON snapshots(updated_at)")
        conn.commit()
    finally:
        conn.close()


def snapshot_exists(user_id: str, db_file: Optional[str] = None) -> bool:
    conn = get_db_connection(db_file)
    try:
        row = conn.execute("SELECT 1 FROM snapshots WHERE user_id = ?", (user_id,)).fetchone()
        return row is not None
    finally:
        conn.close()


def get_snapshot(user_id: str, db_file: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Return ``{"data", "version", "updated_at"}`` for ``user_id``, or None."""
    conn = get_db_connection(db_file)
    try:
        row = conn.execute(
            "SELECT data, version, updated_at FROM snapshots WHERE user_id = ?", (user_id,)
        ).fetchone()
    finally:
        conn.close()
    if row is None:
        return None
    return {"data": json.loads(row["data"]), "version": row["version"], "updated_at": row["updated_at"]}


def save_snapshot(user_id: str, data: Dict[str, Any], db_file: Optional[str] = None) -> Dict[str, Any]:
    """Replace the user's snapshot (last write wins) and bump its version."""
    updated_at = datetime.now(timezone.utc).isoformat()
    payload = json.dumps(data, ensure_ascii=False)
    conn = get_db_connection(db_file)
    try:
        conn.execute(
            """
            INSERT INTO snapshots (user_id, data, version, updated_at) VALUES (?, ?, 1, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                data = excluded.data,
                version = snapshots.version + 1,
                updated_at = excluded.updated_at
            """,
            (user_id, payload, updated_at),
        )
        conn.commit()
        version = conn.execute("SELECT version FROM snapshots WHERE user_id = ?", (user_id,)).fetchone()[0]
    finally:
        conn.close()
    logger.debug(f"Stored snapshot v{version} for {user_id}")
    return {"version": version, "updated_at": updated_at}


def delete_snapshot(user_id: str, db_file: Optional[str] = None) -> bool:
    conn = get_db_connection(db_file)
    try:
        cursor = conn.execute("DELETE FROM snapshots WHERE user_id = ?", (user_id,))
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    create_tables(db_file)
