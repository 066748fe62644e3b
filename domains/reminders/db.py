"""SQLite connection helpers shared by the reminder stores."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import StoreError


def connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with WAL mode and dict-like rows."""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        conn = sqlite3.connect(
            db_path,
            check_same_thread=False,  # APScheduler jobs and Discord events share it
            timeout=10.0
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
    except sqlite3.Error as e:
        raise StoreError(f"Failed to open database {db_path}: {e}") from e
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection, action: str) -> Iterator[sqlite3.Connection]:
    """Commit on success, roll back and raise StoreError on database failure."""
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise StoreError(f"Failed to {action}: {e}") from e


@contextmanager
def reading(action: str) -> Iterator[None]:
    """Translate database failures on read paths into StoreError."""
    try:
        yield
    except sqlite3.Error as e:
        raise StoreError(f"Failed to {action}: {e}") from e
