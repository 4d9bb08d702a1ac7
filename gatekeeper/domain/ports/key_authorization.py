from __future__ import annotations

from typing import Protocol, Sequence


class KeyPropagationError(Exception):
    """
    Назначение:
        Внешний механизм не смог применить добавление/удаление ключа.
    """


class KeyAuthorizationGatewayProtocol(Protocol):
    """
    Назначение/ответственность:
        Выдача/отзыв транспортного доступа для пары (ключ, identity).
    Ограничения:
        Best-effort зеркало: источником истины остаётся хранилище identity.
        Ошибки выражаются через KeyPropagationError.
    """

    def add(self, key: str, identity_name: str) -> None: ...

    def remove(self, key: str, identity_name: str) -> None: ...

    def bulk_add(self, keys: Sequence[str], identity_name: str) -> None: ...

    def bulk_remove(self, keys: Sequence[str], identity_name: str) -> None: ...
