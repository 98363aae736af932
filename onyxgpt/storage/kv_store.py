"""
Key-value store: the persistent, string-valued scope shared by the telemetry
log, the settings record and the custom trigger list.

Table: kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)
One connection per operation; DB_PATH from env (default ./data/onyxgpt.db).
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from onyxgpt.storage.db import connect


def init_db() -> None:
    """
    Create the kv table and set PRAGMAs.
    Idempotent; called at app startup and before every operation.
    """
    conn = connect()
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA busy_timeout=3000")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
    finally:
        conn.close()


def read_value(conn: sqlite3.Connection, key: str) -> Optional[str]:
    row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
    if row is None:
        return None
    return row["value"]


def write_value(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        "INSERT INTO kv (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value),
    )


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """
    Yield a connection inside a write-locked transaction (BEGIN IMMEDIATE).

    Use for read-modify-write sequences so another writer sharing the file
    cannot interleave between the read and the write.
    """
    init_db()
    conn = connect()
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


def get_item(key: str) -> Optional[str]:
    """Return the stored string for key, or None when absent."""
    init_db()
    conn = connect()
    try:
        return read_value(conn, key)
    finally:
        conn.close()


def set_item(key: str, value: str) -> None:
    with transaction() as conn:
        write_value(conn, key, value)
