from __future__ import annotations

import json
from typing import Iterable

from gatekeeper.domain.models import RepositoryAccess
from gatekeeper.domain.ports.repository_access import RepositoryAccessStoreProtocol
from gatekeeper.domain.ports.store_errors import RecordNotFoundError, StaleRecordError
from gatekeeper.infra.store.sqlite_engine import SqliteEngine, translate_errors

COLLECTION = "repositories"


class SqliteRepositoryAccessStore(RepositoryAccessStoreProtocol):
    """
    Назначение/ответственность:
        SQLite реализация доступа к полю users репозиториев.
    Инварианты/гарантии:
        - users хранится отсортированным JSON-массивом без дубликатов.
        - repository_users - индекс членства для find_all_referencing, пишется в той же транзакции.
        - version растёт на 1 при каждом изменении users.
    """

    def __init__(self, engine: SqliteEngine):
        self.engine = engine

    def find_by_name(self, repository_name: str) -> RepositoryAccess:
        with translate_errors(f"find {COLLECTION}/{repository_name}"):
            row = self.engine.fetchone(
                "SELECT name, users, version FROM repositories WHERE name = ?",
                (repository_name,),
            )
        if row is None:
            raise RecordNotFoundError(COLLECTION, repository_name)
        return _row_to_access(row)

    def find_all_referencing(self, identity_name: str) -> list[RepositoryAccess]:
        with translate_errors(f"find {COLLECTION} referencing {identity_name}"):
            rows = self.engine.fetchall(
                """
                SELECT r.name, r.users, r.version
                FROM repositories r
                JOIN repository_users ru ON ru.repository = r.name
                WHERE ru.identity = ?
                ORDER BY r.name
                """,
                (identity_name,),
            )
        return [_row_to_access(row) for row in rows]

    def put_repository(self, repository_name: str, users: Iterable[str]) -> RepositoryAccess:
        """
        Назначение:
            Создать или перезаписать список доступа репозитория (для операторов и тестов).
        """
        members = _normalize_users(users)
        with translate_errors(f"put {COLLECTION}/{repository_name}"):
            with self.engine.transaction():
                self.engine.execute(
                    """
                    INSERT INTO repositories(name, users, version)
                    VALUES (?, ?, 0)
                    ON CONFLICT(name) DO UPDATE SET
                        users = excluded.users,
                        version = repositories.version + 1,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (repository_name, json.dumps(members)),
                )
                self._replace_members(repository_name, members)
                row = self.engine.fetchone(
                    "SELECT name, users, version FROM repositories WHERE name = ?",
                    (repository_name,),
                )
        return _row_to_access(row)

    def update_users_field(
        self,
        repository_name: str,
        users: Iterable[str],
        expected_version: int | None = None,
    ) -> RepositoryAccess:
        members = _normalize_users(users)
        with translate_errors(f"update {COLLECTION}/{repository_name}"):
            with self.engine.transaction():
                if expected_version is None:
                    cur = self.engine.execute(
                        """
                        UPDATE repositories
                        SET users = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP
                        WHERE name = ?
                        """,
                        (json.dumps(members), repository_name),
                    )
                else:
                    cur = self.engine.execute(
                        """
                        UPDATE repositories
                        SET users = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP
                        WHERE name = ? AND version = ?
                        """,
                        (json.dumps(members), repository_name, expected_version),
                    )
                if cur.rowcount == 0:
                    exists = self.engine.fetchone("SELECT 1 FROM repositories WHERE name = ?", (repository_name,))
                    if exists is None:
                        raise RecordNotFoundError(COLLECTION, repository_name)
                    raise StaleRecordError(COLLECTION, repository_name, expected_version or 0)
                self._replace_members(repository_name, members)
                row = self.engine.fetchone(
                    "SELECT name, users, version FROM repositories WHERE name = ?",
                    (repository_name,),
                )
        return _row_to_access(row)

    def _replace_members(self, repository_name: str, members: list[str]) -> None:
        self.engine.execute("DELETE FROM repository_users WHERE repository = ?", (repository_name,))
        for identity_name in members:
            self.engine.execute(
                "INSERT INTO repository_users(repository, identity) VALUES (?, ?)",
                (repository_name, identity_name),
            )


def _normalize_users(users: Iterable[str]) -> list[str]:
    return sorted(set(users))


def _row_to_access(row) -> RepositoryAccess:
    return RepositoryAccess(
        name=row["name"],
        users=frozenset(json.loads(row["users"] or "[]")),
        version=int(row["version"]),
    )
