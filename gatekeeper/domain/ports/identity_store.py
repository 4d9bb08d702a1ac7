from __future__ import annotations

from typing import Protocol

from gatekeeper.domain.models import Identity


class IdentityStoreProtocol(Protocol):
    """
    Назначение/ответственность:
        Типизированный CRUD над коллекцией identity, ключ - имя. Без политики.
    Ошибки/исключения:
        - RecordNotFoundError: записи нет (find/update/delete).
        - DuplicateRecordError: имя уже занято (insert).
        - StoreError: хранилище недоступно или отклонило операцию.
    """

    def insert(self, identity: Identity) -> None: ...

    def find_by_name(self, name: str) -> Identity: ...

    def update_by_name(self, name: str, identity: Identity) -> None: ...

    def delete_by_name(self, name: str) -> None: ...

    def list_all(self) -> list[Identity]: ...
