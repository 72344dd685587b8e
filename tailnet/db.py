"""SQLite connection and schema helpers for Tailnet Discovery.

Usage::

    from tailnet.db import connect, init_db
    conn = connect("data/services.db")
    init_db(conn)              # idempotent — safe to call multiple times

Connections are handed to :class:`tailnet.registry.RegistryStore`, which owns
them; nothing in this module keeps a process-wide handle.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path


def connect(path: str | Path) -> sqlite3.Connection:
    """Open a SQLite connection (WAL mode, FK enabled) usable from any thread.

    Callers are responsible for serialising access; the registry store does
    so with its own lock.
    """
    path = Path(path)
    if str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create all tables (idempotent — safe to run multiple times)."""
    conn.executescript(_SCHEMA_SQL)
    conn.commit()


_SCHEMA_SQL = """
-- ───────── Hosts ─────────

CREATE TABLE IF NOT EXISTS hosts (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    name       TEXT NOT NULL,
    address    TEXT NOT NULL UNIQUE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_hosts_name ON hosts(name);

-- ───────── Services ─────────

CREATE TABLE IF NOT EXISTS services (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    address    TEXT NOT NULL,
    port       INTEGER NOT NULL CHECK (port > 0),
    name       TEXT NOT NULL,
    host_name  TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (address) REFERENCES hosts(address) ON DELETE CASCADE
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_services_endpoint ON services(address, port);
CREATE INDEX IF NOT EXISTS idx_services_order ON services(host_name, address, port);
"""
