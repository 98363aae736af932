"""
Database helpers for the local SQLite file backing the key-value store.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from onyxgpt.config import get_settings


def db_path() -> str:
    return get_settings().db_path


def connect() -> sqlite3.Connection:
    """
    Open a connection to DB_PATH.

    Autocommit mode (isolation_level=None) so callers control transactions
    explicitly with BEGIN IMMEDIATE / COMMIT.
    """
    path = db_path()
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=5.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    return conn
