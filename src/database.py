"""
SQLite access shared by the job store and the scraper state.
Both the agent and the control surface open the same file.
"""

from __future__ import annotations

import contextlib
import os
import sqlite3
from pathlib import Path
from typing import Iterator, Union

PathLike = Union[str, Path]


@contextlib.contextmanager
def connect(db_path: PathLike) -> Iterator[sqlite3.Connection]:
    """Open an autocommit connection with the schema in place; always closed on exit."""
    _ensure_dir(db_path)
    # isolation_level=None gives autocommit mode; transactions are explicit.
    conn = sqlite3.connect(str(db_path), timeout=30.0, isolation_level=None)
    try:
        _apply_pragmas(conn)
        _ensure_schema(conn)
        yield conn
    finally:
        conn.close()


def _ensure_dir(db_path: PathLike) -> None:
    d = os.path.dirname(os.path.abspath(str(db_path))) or "."
    os.makedirs(d, exist_ok=True)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=30000;")
    conn.execute("PRAGMA temp_store=MEMORY;")


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
          id INTEGER PRIMARY KEY,
          site_id TEXT NOT NULL UNIQUE,
          title TEXT NOT NULL,
          company TEXT NOT NULL,
          link TEXT NOT NULL,
          apply_link TEXT NOT NULL,
          posted_date TEXT NOT NULL DEFAULT '',
          status TEXT NOT NULL DEFAULT 'new',
          created_at TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS scraper_state (
          id TEXT PRIMARY KEY,
          last_run_at TEXT NOT NULL,
          last_success_at TEXT,
          error_count INTEGER NOT NULL DEFAULT 0,
          is_running INTEGER NOT NULL DEFAULT 0,
          owner_pid INTEGER
        );
        """
    )
