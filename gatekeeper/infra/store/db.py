from __future__ import annotations

import sqlite3
from pathlib import Path


def getIdentityDbPath(dataDir: str) -> str:
    """
    Возвращает путь к файлу БД identity/репозиториев в указанном каталоге.
    """
    return str(Path(dataDir) / "gatekeeper.sqlite3")


def openIdentityDb(dbPath: str) -> sqlite3.Connection:
    """
    Открывает/создаёт SQLite БД с нужными PRAGMA/timeout.
    Соединение в autocommit: каждая одиночная запись фиксируется сразу,
    многооператорные записи идут через SqliteEngine.transaction().
    """
    if dbPath != ":memory:":
        Path(dbPath).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(dbPath, timeout=5.0, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn
