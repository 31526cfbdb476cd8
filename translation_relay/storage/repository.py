"""
Repository pattern for relay record access.

Keeps the durable mapping from original messages to mirrored translations.
"""

from datetime import datetime, timedelta
from typing import Optional

from .db import get_connection
from .models import RelayRecord, RelayState

DEFAULT_DB_PATH = ".data/relay.db"

_COLUMNS = """
    original_message_id, mirrored_message_id, broadcaster_id,
    original_text, rendered_text, detected_source_language,
    state, updated_at
"""


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the relay_record table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS relay_record (
                original_message_id TEXT PRIMARY KEY,
                mirrored_message_id TEXT NOT NULL,
                broadcaster_id TEXT NOT NULL,
                original_text TEXT NOT NULL,
                rendered_text TEXT NOT NULL,
                detected_source_language TEXT,
                state TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


class RelayRepository:
    """Relay State Store backed by SQLite.

    Every operation opens its own connection and touches a single row, which
    is all the atomicity the orchestrator relies on.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def _fetch(self, original_message_id: str) -> Optional[RelayRecord]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM relay_record WHERE original_message_id = ?",
                (str(original_message_id),)
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return RelayRecord(
                mirrored_message_id=row[1],
                broadcaster_id=row[2],
                original_text=row[3],
                rendered_text=row[4],
                detected_source_language=row[5],
                state=RelayState(row[6]),
                updated_at=datetime.fromisoformat(row[7])
            )
        finally:
            conn.close()

    def lookup(self, original_message_id: str) -> Optional[RelayRecord]:
        """Return the live record for a message, or None.

        Tombstoned (REMOVED) records are not returned.
        """
        record = self._fetch(original_message_id)
        if record is None or record.state != RelayState.MIRRORED:
            return None
        return record

    def state_of(self, original_message_id: str) -> RelayState:
        """Return the relay state of a message; UNTRANSLATED when unknown."""
        record = self._fetch(original_message_id)
        if record is None:
            return RelayState.UNTRANSLATED
        return record.state

    def upsert(self, original_message_id: str, record: RelayRecord) -> None:
        """Insert or replace the record for a message."""
        updated_at = record.updated_at or datetime.now()
        conn = get_connection(self.db_path)
        try:
            conn.execute(f"""
                INSERT OR REPLACE INTO relay_record ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                str(original_message_id),
                str(record.mirrored_message_id),
                str(record.broadcaster_id),
                record.original_text,
                record.rendered_text,
                record.detected_source_language,
                record.state.value,
                updated_at.isoformat()
            ))
            conn.commit()
        finally:
            conn.close()

    def remove(self, original_message_id: str) -> None:
        """Tombstone the record so later edits of the message are ignored."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                UPDATE relay_record
                SET state = ?, updated_at = ?
                WHERE original_message_id = ?
            """, (
                RelayState.REMOVED.value,
                datetime.now().isoformat(),
                str(original_message_id)
            ))
            conn.commit()
        finally:
            conn.close()

    def purge_removed(self, older_than_days: int = 30) -> int:
        """Delete tombstones older than the given age.

        Returns:
            Number of rows deleted
        """
        cutoff = (datetime.now() - timedelta(days=older_than_days)).isoformat()
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM relay_record WHERE state = ? AND updated_at < ?",
                (RelayState.REMOVED.value, cutoff)
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def count_by_state(self) -> dict:
        """Count records per relay state."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT state, COUNT(*) FROM relay_record GROUP BY state"
            )
            counts = {state: 0 for state in RelayState}
            for state_value, count in cursor.fetchall():
                counts[RelayState(state_value)] = count
            return counts
        finally:
            conn.close()
