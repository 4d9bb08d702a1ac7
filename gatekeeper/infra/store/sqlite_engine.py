from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator

from gatekeeper.domain.ports.store_errors import StoreError


class SqliteEngine:
    """
    Назначение/ответственность:
        Тонкая обёртка над sqlite3.Connection с единым API для SQL-операций.
    Ограничения:
        Соединение должно быть открыто в autocommit (isolation_level=None),
        иначе явный BEGIN в transaction() конфликтует с неявными транзакциями.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.RLock()

    def execute(self, sql: str, params: tuple | dict | None = None) -> sqlite3.Cursor:
        with self._lock:
            if params is None:
                return self.conn.execute(sql)
            return self.conn.execute(sql, params)

    def fetchone(self, sql: str, params: tuple | dict | None = None) -> sqlite3.Row | None:
        with self._lock:
            return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple | dict | None = None) -> list[sqlite3.Row]:
        with self._lock:
            return self.execute(sql, params).fetchall()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        # Одно соединение на процесс: транзакции разных потоков сериализуются.
        with self._lock:
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                yield
                self.conn.execute("COMMIT")
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise


@contextmanager
def translate_errors(action: str) -> Iterator[None]:
    """
    Назначение:
        Переводит sqlite3.Error в StoreError порта хранилища.
    """
    try:
        yield
    except sqlite3.Error as exc:
        raise StoreError(f"{action} failed: {exc}") from exc
