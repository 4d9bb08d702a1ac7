from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from gatekeeper.domain.models import Identity, RevocationVerdict


@runtime_checkable
class IdentityLifecycleServiceProtocol(Protocol):
    """
    Назначение:
        Контракт операций над identity, доступных вызывающим (CLI, management API).
    """

    def create_identity(self, name: str, keys: Sequence[str] = ()) -> Identity: ...

    def remove_identity(self, name: str) -> RevocationVerdict: ...

    def add_key(self, name: str, key: str) -> Identity: ...

    def remove_key(self, name: str, key: str) -> Identity: ...

    def get_identity(self, name: str) -> Identity: ...

    def list_identities(self) -> list[Identity]: ...

    def evaluate_removal(self, name: str) -> RevocationVerdict: ...


__all__ = ["IdentityLifecycleServiceProtocol"]
