from __future__ import annotations

from typing import Iterable, Protocol

from gatekeeper.domain.models import RepositoryAccess


class RepositoryAccessStoreProtocol(Protocol):
    """
    Назначение/ответственность:
        Доступ к полю users записей репозиториев. Жизненный цикл самих репозиториев вне зоны ответственности.
    Ошибки/исключения:
        - RecordNotFoundError: репозитория нет.
        - StaleRecordError: expected_version не совпал с текущей версией.
        - StoreError: хранилище недоступно.
    """

    def find_all_referencing(self, identity_name: str) -> list[RepositoryAccess]: ...

    def update_users_field(
        self,
        repository_name: str,
        users: Iterable[str],
        expected_version: int | None = None,
    ) -> RepositoryAccess: ...
