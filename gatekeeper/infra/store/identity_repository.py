from __future__ import annotations

import json
import sqlite3

from gatekeeper.domain.models import Identity
from gatekeeper.domain.ports.identity_store import IdentityStoreProtocol
from gatekeeper.domain.ports.store_errors import DuplicateRecordError, RecordNotFoundError, StoreError
from gatekeeper.infra.store.sqlite_engine import SqliteEngine, translate_errors

COLLECTION = "identities"


class SqliteIdentityStore(IdentityStoreProtocol):
    """
    Назначение/ответственность:
        SQLite реализация коллекции identities. Ключи хранятся JSON-массивом в порядке вставки.
    """

    def __init__(self, engine: SqliteEngine):
        self.engine = engine

    def insert(self, identity: Identity) -> None:
        try:
            self.engine.execute(
                "INSERT INTO identities(name, keys) VALUES (?, ?)",
                (identity.name, _dump_keys(identity.keys)),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(COLLECTION, identity.name) from exc
        except sqlite3.Error as exc:
            raise StoreError(f"insert {COLLECTION}/{identity.name} failed: {exc}") from exc

    def find_by_name(self, name: str) -> Identity:
        with translate_errors(f"find {COLLECTION}/{name}"):
            row = self.engine.fetchone("SELECT name, keys FROM identities WHERE name = ?", (name,))
        if row is None:
            raise RecordNotFoundError(COLLECTION, name)
        return _row_to_identity(row)

    def update_by_name(self, name: str, identity: Identity) -> None:
        with translate_errors(f"update {COLLECTION}/{name}"):
            cur = self.engine.execute(
                "UPDATE identities SET keys = ?, updated_at = CURRENT_TIMESTAMP WHERE name = ?",
                (_dump_keys(identity.keys), name),
            )
        if cur.rowcount == 0:
            raise RecordNotFoundError(COLLECTION, name)

    def delete_by_name(self, name: str) -> None:
        with translate_errors(f"delete {COLLECTION}/{name}"):
            cur = self.engine.execute("DELETE FROM identities WHERE name = ?", (name,))
        if cur.rowcount == 0:
            raise RecordNotFoundError(COLLECTION, name)

    def list_all(self) -> list[Identity]:
        with translate_errors(f"list {COLLECTION}"):
            rows = self.engine.fetchall("SELECT name, keys FROM identities ORDER BY name")
        return [_row_to_identity(row) for row in rows]


def _dump_keys(keys: tuple[str, ...]) -> str:
    return json.dumps(list(keys), ensure_ascii=False)


def _row_to_identity(row) -> Identity:
    return Identity(name=row["name"], keys=tuple(json.loads(row["keys"] or "[]")))
