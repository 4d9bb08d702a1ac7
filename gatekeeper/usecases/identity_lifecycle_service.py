from __future__ import annotations

import logging
from typing import Callable, Sequence

from gatekeeper.common.sanitize import shortKey, shortKeys
from gatekeeper.domain.exceptions import GatewayError, NotFoundError, StorageError, ValidationError
from gatekeeper.domain.models import Identity, OperationStep, RevocationVerdict
from gatekeeper.domain.ports.identity_store import IdentityStoreProtocol
from gatekeeper.domain.ports.key_authorization import KeyAuthorizationGatewayProtocol, KeyPropagationError
from gatekeeper.domain.ports.repository_access import RepositoryAccessStoreProtocol
from gatekeeper.domain.ports.store_errors import DuplicateRecordError, RecordNotFoundError, StoreError
from gatekeeper.domain.validation import is_valid_identity_name, is_valid_key_material
from gatekeeper.infra.logging.setup import logEvent
from gatekeeper.usecases.access_revocation import AccessRevocationCoordinator


class IdentityLifecycleService:
    """
    Назначение/ответственность:
        Единственный writer записей identity: создание, удаление, добавление/удаление ключей
        и распространение изменений набора ключей в gateway.
    Порядок шагов (saga, без распределённой транзакции):
        create:     validate -> store insert -> gateway bulk_add
        remove:     store read -> guard -> revoke (репозитории) -> store delete -> gateway bulk_remove
        add_key:    store read -> store update -> gateway add
        remove_key: store read -> store update -> gateway remove
    Компенсации:
        Нет. Ошибка на шаге N оставляет зафиксированными шаги 1..N-1;
        ошибка несёт step, по которому вызывающий решает, что повторить.
        Хранилище - источник истины, gateway - best-effort зеркало.
    """

    def __init__(
        self,
        identities: IdentityStoreProtocol,
        repositories: RepositoryAccessStoreProtocol,
        gateway: KeyAuthorizationGatewayProtocol,
        logger: logging.Logger | None = None,
        run_id: str = "-",
    ):
        self.identities = identities
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)
        self.run_id = run_id
        self.revocation = AccessRevocationCoordinator(repositories, logger=self.logger, run_id=run_id)

    def create_identity(self, name: str, keys: Sequence[str] = ()) -> Identity:
        operation = "create_identity"
        if not is_valid_identity_name(name):
            raise ValidationError(
                operation=operation,
                name=str(name),
                step=OperationStep.VALIDATE,
                message="identity name is not valid",
            )
        self._check_keys(operation, name, keys)
        identity = Identity(name=name, keys=tuple(keys))
        try:
            self.identities.insert(identity)
        except DuplicateRecordError as exc:
            raise StorageError(
                operation=operation,
                name=name,
                step=OperationStep.STORE_INSERT,
                message="identity already exists",
                cause=exc,
            ) from exc
        except StoreError as exc:
            raise StorageError(
                operation=operation,
                name=name,
                step=OperationStep.STORE_INSERT,
                message="could not insert identity",
                cause=exc,
            ) from exc
        logEvent(self.logger, logging.INFO, self.run_id, "identity", f"created {name} keys={len(identity.keys)}")

        self._propagate(operation, name, lambda: self.gateway.bulk_add(list(identity.keys), name))
        logEvent(self.logger, logging.DEBUG, self.run_id, "gateway", f"added {shortKeys(identity.keys)} for {name}")
        return identity

    def remove_identity(self, name: str) -> RevocationVerdict:
        operation = "remove_identity"
        identity = self._load(operation, name)

        verdict = self.revocation.revoke(name)

        try:
            self.identities.delete_by_name(name)
        except RecordNotFoundError as exc:
            raise NotFoundError(
                operation=operation,
                name=name,
                step=OperationStep.STORE_DELETE,
                message="identity disappeared before deletion",
                cause=exc,
                details={"revoked": [r.name for r in verdict.affected]},
            ) from exc
        except StoreError as exc:
            raise StorageError(
                operation=operation,
                name=name,
                step=OperationStep.STORE_DELETE,
                message="could not delete identity",
                cause=exc,
                details={"revoked": [r.name for r in verdict.affected]},
            ) from exc
        logEvent(
            self.logger,
            logging.INFO,
            self.run_id,
            "identity",
            f"removed {name} repositories={len(verdict.affected)}",
        )

        self._propagate(operation, name, lambda: self.gateway.bulk_remove(list(identity.keys), name))
        return verdict

    def add_key(self, name: str, key: str) -> Identity:
        operation = "add_key"
        self._check_keys(operation, name, [key])
        identity = self._load(operation, name).with_key(key)
        self._save(operation, identity)
        logEvent(self.logger, logging.INFO, self.run_id, "identity", f"key {shortKey(key)} added to {name}")

        self._propagate(operation, name, lambda: self.gateway.add(key, name))
        return identity

    def remove_key(self, name: str, key: str) -> Identity:
        operation = "remove_key"
        current = self._load(operation, name)
        try:
            identity = current.without_key(key)
        except ValueError as exc:
            raise NotFoundError(
                operation=operation,
                name=name,
                step=OperationStep.STORE_READ,
                message=f"key {shortKey(key)} not found",
                cause=exc,
            ) from exc
        self._save(operation, identity)
        logEvent(self.logger, logging.INFO, self.run_id, "identity", f"key {shortKey(key)} removed from {name}")

        self._propagate(operation, name, lambda: self.gateway.remove(key, name))
        return identity

    def get_identity(self, name: str) -> Identity:
        return self._load("get_identity", name)

    def list_identities(self) -> list[Identity]:
        try:
            return self.identities.list_all()
        except StoreError as exc:
            raise StorageError(
                operation="list_identities",
                name="*",
                step=OperationStep.STORE_READ,
                message="could not list identities",
                cause=exc,
            ) from exc

    def evaluate_removal(self, name: str) -> RevocationVerdict:
        self._load("evaluate_removal", name)
        return self.revocation.evaluate(name)

    def _load(self, operation: str, name: str) -> Identity:
        try:
            return self.identities.find_by_name(name)
        except RecordNotFoundError as exc:
            raise NotFoundError(
                operation=operation,
                name=name,
                step=OperationStep.STORE_READ,
                message=f'identity "{name}" not found',
                cause=exc,
            ) from exc
        except StoreError as exc:
            raise StorageError(
                operation=operation,
                name=name,
                step=OperationStep.STORE_READ,
                message="could not read identity",
                cause=exc,
            ) from exc

    def _save(self, operation: str, identity: Identity) -> None:
        try:
            self.identities.update_by_name(identity.name, identity)
        except RecordNotFoundError as exc:
            raise NotFoundError(
                operation=operation,
                name=identity.name,
                step=OperationStep.STORE_UPDATE,
                message="identity disappeared before update",
                cause=exc,
            ) from exc
        except StoreError as exc:
            raise StorageError(
                operation=operation,
                name=identity.name,
                step=OperationStep.STORE_UPDATE,
                message="could not update identity",
                cause=exc,
            ) from exc

    def _check_keys(self, operation: str, name: str, keys: Sequence[str]) -> None:
        # Ключ должен лечь ровно в одну строку authorized_keys.
        invalid = [index for index, key in enumerate(keys) if not is_valid_key_material(key)]
        if invalid:
            raise ValidationError(
                operation=operation,
                name=str(name),
                step=OperationStep.VALIDATE,
                message="key material is not valid",
                details={"keys": invalid},
            )

    def _propagate(self, operation: str, name: str, call: Callable[[], None]) -> None:
        try:
            call()
        except KeyPropagationError as exc:
            logEvent(self.logger, logging.ERROR, self.run_id, "gateway", f"{operation} {name}: {exc}")
            raise GatewayError(
                operation=operation,
                name=name,
                step=OperationStep.GATEWAY,
                message="key authorization was not applied",
                cause=exc,
            ) from exc
