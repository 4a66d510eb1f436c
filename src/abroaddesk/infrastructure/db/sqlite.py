from __future__ import annotations

import sqlite3
from pathlib import Path

DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_SQLITE_BUSY_TIMEOUT_MS = 30_000

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


def _configure_connection(conn: sqlite3.Connection, busy_timeout_ms: int) -> None:
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")


def get_connection(
    db_path: Path,
    *,
    connect_timeout_seconds: float = DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS,
    busy_timeout_ms: int = DEFAULT_SQLITE_BUSY_TIMEOUT_MS,
) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=connect_timeout_seconds)
    conn.row_factory = sqlite3.Row
    _configure_connection(conn, busy_timeout_ms)
    return conn


def initialize_schema(
    db_path: Path,
    schema_path: Path = SCHEMA_PATH,
    *,
    connect_timeout_seconds: float = DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS,
    busy_timeout_ms: int = DEFAULT_SQLITE_BUSY_TIMEOUT_MS,
) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with get_connection(
        db_path,
        connect_timeout_seconds=connect_timeout_seconds,
        busy_timeout_ms=busy_timeout_ms,
    ) as conn:
        conn.executescript(schema_path.read_text(encoding="utf-8"))
        conn.commit()
