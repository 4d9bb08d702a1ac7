from __future__ import annotations

from gatekeeper.infra.store.sqlite_engine import SqliteEngine

SCHEMA_VERSION = 1


def ensure_schema(engine: SqliteEngine) -> int:
    """
    Назначение:
        Создать meta и таблицы identities/repositories, применить миграции.
    """
    with engine.transaction():
        _create_meta(engine)
        current_version = _get_schema_version(engine) or 0

        if current_version == 0:
            _create_tables(engine)
            _set_schema_version(engine, SCHEMA_VERSION)
            return SCHEMA_VERSION

        return current_version


def _create_meta(engine: SqliteEngine) -> None:
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT
        )
        """
    )


def _get_schema_version(engine: SqliteEngine) -> int | None:
    row = engine.fetchone("SELECT value FROM meta WHERE key='schema_version'")
    if row is None:
        return None
    try:
        return int(row[0])
    except (TypeError, ValueError):
        return None


def _set_schema_version(engine: SqliteEngine, version: int) -> None:
    engine.execute(
        """
        INSERT INTO meta(key, value)
        VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        ("schema_version", str(version)),
    )


def _create_tables(engine: SqliteEngine) -> None:
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS identities (
            name TEXT PRIMARY KEY,
            keys TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS repositories (
            name TEXT PRIMARY KEY,
            users TEXT NOT NULL DEFAULT '[]',
            version INTEGER NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS repository_users (
            repository TEXT NOT NULL REFERENCES repositories(name) ON DELETE CASCADE,
            identity TEXT NOT NULL,
            PRIMARY KEY (repository, identity)
        )
        """
    )
    engine.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_repository_users_identity
        ON repository_users(identity)
        """
    )
