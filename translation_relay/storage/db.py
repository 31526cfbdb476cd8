"""
Database connection management.

Provides the SQLite connection backing the relay record store.
"""

import sqlite3
from pathlib import Path


def get_connection(db_path: str = ".data/relay.db") -> sqlite3.Connection:
    """Create and return a SQLite connection, creating the parent directory.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode = WAL")
    return conn
