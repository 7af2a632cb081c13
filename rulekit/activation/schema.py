from __future__ import annotations

import sqlite3
from pathlib import Path


def ensure_schema(db_path: str | Path) -> sqlite3.Connection:
    """Create/open the activation SQLite database and ensure all tables exist.

    Creates: rule_embeddings (one vector per rule and model) and rules_fts
    (FTS5 over rule descriptions).
    ``":memory:"`` opens a private in-memory database.
    """
    if str(db_path) == ":memory:":
        conn = sqlite3.connect(":memory:")
    else:
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path))
        conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = sqlite3.Row

    conn.execute("""
        CREATE TABLE IF NOT EXISTS rule_embeddings (
            name TEXT NOT NULL,
            model TEXT NOT NULL,
            hash TEXT NOT NULL,
            embedding BLOB NOT NULL,
            updated_at INTEGER NOT NULL,
            PRIMARY KEY (name, model)
        )
    """)

    _ensure_fts(conn)

    conn.commit()
    return conn


def has_fts(conn: sqlite3.Connection) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='rules_fts'"
    ).fetchone()
    return row is not None


def _ensure_fts(conn: sqlite3.Connection) -> None:
    """Create FTS5 virtual table if not present."""
    if has_fts(conn):
        return
    try:
        conn.execute("""
            CREATE VIRTUAL TABLE rules_fts USING fts5(
                description,
                name UNINDEXED
            )
        """)
    except sqlite3.OperationalError:
        # FTS5 may not be available in all SQLite builds
        pass
