from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from gatekeeper.domain.error_codes import ErrorCode
from gatekeeper.domain.models import OperationStep


@dataclass(eq=False)
class IdentityError(Exception):
    """
    Назначение:
        Базовая ошибка операций жизненного цикла identity.
    Инварианты/гарантии:
        - Несёт контекст: операция, имя identity, шаг saga, исходная причина.
        - code однозначно различает validation/not-found/conflict/storage/gateway.
    """

    operation: str
    name: str
    step: OperationStep
    message: str
    cause: BaseException | None = None
    details: dict[str, Any] = field(default_factory=dict)

    error_code: ClassVar[ErrorCode]

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def code(self) -> ErrorCode:
        return self.error_code

    def __str__(self) -> str:
        text = f"{self.operation}({self.name}) failed at {self.step.value}: {self.message}"
        if self.cause is not None:
            text += f" ({self.cause})"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "operation": self.operation,
            "name": self.name,
            "step": self.step.value,
            "message": self.message,
            "cause": str(self.cause) if self.cause is not None else None,
            "details": self.details or {},
        }


class ValidationError(IdentityError):
    """Имя identity не соответствует грамматике; изменений не было."""

    error_code = ErrorCode.VALIDATION_ERROR


class NotFoundError(IdentityError):
    """Identity (или ключ identity) не найден; изменений не было."""

    error_code = ErrorCode.NOT_FOUND


class ConflictError(IdentityError):
    """
    Удаление оставило бы репозиторий без пользователей,
    либо репозиторий изменился конкурентно между guard и записью.
    """

    error_code = ErrorCode.CONFLICT


class StorageError(IdentityError):
    """Хранилище недоступно или отклонило чтение/запись."""

    error_code = ErrorCode.STORAGE_ERROR


class GatewayError(IdentityError):
    """Внешний механизм авторизации ключей не применил изменение; откат не выполняется."""

    error_code = ErrorCode.GATEWAY_ERROR


__all__ = [
    "IdentityError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "GatewayError",
]
