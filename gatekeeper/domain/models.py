from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class OperationStep(str, Enum):
    """
    Назначение:
        Шаг многошаговой операции (saga), на котором возникла ошибка.
    Порядок:
        VALIDATE -> STORE_READ -> STORE_INSERT/STORE_UPDATE -> GUARD -> REVOKE -> STORE_DELETE -> GATEWAY
    """

    VALIDATE = "validate"
    STORE_READ = "store_read"
    STORE_INSERT = "store_insert"
    STORE_UPDATE = "store_update"
    GUARD = "guard"
    REVOKE = "revoke"
    STORE_DELETE = "store_delete"
    GATEWAY = "gateway"


@dataclass(frozen=True)
class Identity:
    """
    Назначение:
        Аутентифицируемый субъект: имя + упорядоченный список ключей.
    Инварианты/гарантии:
        - name неизменяем после создания.
        - keys хранит порядок вставки, дубликаты не схлопываются.
    """

    name: str
    keys: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "keys", tuple(self.keys))

    def with_key(self, key: str) -> "Identity":
        return Identity(name=self.name, keys=self.keys + (key,))

    def without_key(self, key: str) -> "Identity":
        """
        Убирает первое вхождение key; ValueError, если ключа нет.
        """
        keys = list(self.keys)
        keys.remove(key)
        return Identity(name=self.name, keys=tuple(keys))


@dataclass(frozen=True)
class RepositoryAccess:
    """
    Назначение:
        Список доступа одного репозитория (только поле users).
    Инварианты/гарантии:
        - users является множеством, порядок не важен.
        - version увеличивается хранилищем при каждом изменении users.
    """

    name: str
    users: frozenset[str] = field(default_factory=frozenset)
    version: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "users", frozenset(self.users))

    def without_user(self, identity_name: str) -> frozenset[str]:
        return self.users - {identity_name}


@dataclass(frozen=True)
class RevocationVerdict:
    """
    Назначение:
        Результат guard-фазы: какие репозитории ссылаются на identity и какие блокируют удаление.
    """

    identity: str
    affected: tuple[RepositoryAccess, ...]
    blocking: tuple[str, ...]

    @property
    def allowed(self) -> bool:
        return not self.blocking

    @classmethod
    def from_repositories(cls, identity: str, repositories: Iterable[RepositoryAccess]) -> "RevocationVerdict":
        affected = tuple(sorted(repositories, key=lambda r: r.name))
        blocking = tuple(r.name for r in affected if len(r.users) <= 1)
        return cls(identity=identity, affected=affected, blocking=blocking)
