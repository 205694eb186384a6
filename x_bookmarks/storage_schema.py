from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

SCHEMA_VERSION = 1


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def initialize_sqlite(conn: sqlite3.Connection) -> None:
    """Configure the connection and apply pending migrations; safe to call on every open."""
    _configure_connection(conn)
    _apply_migrations(conn)


def _configure_connection(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA busy_timeout = 5000")

    # WAL is best-effort (e.g., in-memory DBs won't use it).
    try:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
    except sqlite3.DatabaseError:
        pass


_MIGRATIONS: dict[int, str] = {
    1: """
CREATE TABLE IF NOT EXISTS extractions (
  extraction_id INTEGER PRIMARY KEY AUTOINCREMENT,
  created_at TEXT NOT NULL,
  page_url TEXT,
  performance_json TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS extraction_records (
  extraction_id INTEGER NOT NULL,
  position INTEGER NOT NULL,
  identity TEXT NOT NULL,
  source_quality TEXT NOT NULL,
  record_json TEXT NOT NULL,
  PRIMARY KEY (extraction_id, position),
  FOREIGN KEY (extraction_id) REFERENCES extractions(extraction_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_extraction_records_identity
  ON extraction_records(identity);

CREATE TABLE IF NOT EXISTS manual_bookmarks (
  identity TEXT PRIMARY KEY,
  record_json TEXT NOT NULL,
  saved_at TEXT NOT NULL,
  tags_json TEXT NOT NULL,
  notes TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS analyses (
  analysis_id INTEGER PRIMARY KEY AUTOINCREMENT,
  created_at TEXT NOT NULL,
  provider TEXT NOT NULL,
  analysis_json TEXT NOT NULL
);
""".strip()
}


def _apply_migrations(conn: sqlite3.Connection) -> None:
    with conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
        )

    rows = conn.execute("SELECT version FROM schema_migrations").fetchall()
    applied: set[int] = {int(r[0]) for r in rows}

    for version in range(1, SCHEMA_VERSION + 1):
        if version in applied:
            continue

        script = _MIGRATIONS.get(version)
        if not script:
            raise RuntimeError(f"Missing migration script for version={version}")

        with conn:
            conn.executescript(script)
            conn.execute(
                "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                (version, _utc_now_iso()),
            )
