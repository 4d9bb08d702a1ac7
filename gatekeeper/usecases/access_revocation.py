from __future__ import annotations

import logging

from gatekeeper.domain.exceptions import ConflictError, StorageError
from gatekeeper.domain.models import OperationStep, RevocationVerdict
from gatekeeper.domain.ports.repository_access import RepositoryAccessStoreProtocol
from gatekeeper.domain.ports.store_errors import RecordNotFoundError, StaleRecordError, StoreError
from gatekeeper.infra.logging.setup import logEvent

OPERATION = "remove_identity"


class AccessRevocationCoordinator:
    """
    Назначение/ответственность:
        Отзыв доступа identity ко всем репозиториям без нарушения инварианта
        "у каждого репозитория остаётся хотя бы один пользователь".
    Алгоритм:
        1) read: все репозитории, в users которых есть name.
        2) guard: если хоть у одного ровно один пользователь - ConflictError, записей нет.
        3) mutate: для каждого репозитория условная запись users - {name}
           с версией, прочитанной на шаге 1.
    Ограничения:
        - Уже обновлённые на шаге 3 репозитории не откатываются при ошибке.
        - Конкурентное изменение репозитория между шагами 1 и 3 (StaleRecordError) даёт
          ConflictError, только если ещё ни один репозиторий не изменён; иначе StorageError
          с details.revoked. Повторов внутри нет.
    """

    def __init__(
        self,
        repositories: RepositoryAccessStoreProtocol,
        logger: logging.Logger | None = None,
        run_id: str = "-",
    ):
        self.repositories = repositories
        self.logger = logger or logging.getLogger(__name__)
        self.run_id = run_id

    def evaluate(self, name: str) -> RevocationVerdict:
        """
        Назначение:
            Guard-фаза без побочных эффектов: повторный вызов без изменений даёт тот же вердикт.
        """
        try:
            repositories = self.repositories.find_all_referencing(name)
        except StoreError as exc:
            raise StorageError(
                operation=OPERATION,
                name=name,
                step=OperationStep.GUARD,
                message="could not list repositories referencing identity",
                cause=exc,
            ) from exc
        return RevocationVerdict.from_repositories(name, repositories)

    def revoke(self, name: str) -> RevocationVerdict:
        verdict = self.evaluate(name)
        if not verdict.allowed:
            logEvent(
                self.logger,
                logging.WARNING,
                self.run_id,
                "revocation",
                f"removal of {name} blocked: sole user of {', '.join(verdict.blocking)}",
            )
            raise ConflictError(
                operation=OPERATION,
                name=name,
                step=OperationStep.GUARD,
                message="identity is the only one with access to at least one of its repositories",
                details={"repositories": list(verdict.blocking)},
            )

        revoked: list[str] = []
        for repository in verdict.affected:
            try:
                self.repositories.update_users_field(
                    repository.name,
                    repository.without_user(name),
                    expected_version=repository.version,
                )
            except RecordNotFoundError:
                logEvent(
                    self.logger,
                    logging.WARNING,
                    self.run_id,
                    "revocation",
                    f"repository {repository.name} disappeared before revoking {name}, skipped",
                )
                continue
            except StaleRecordError as exc:
                if revoked:
                    # Часть репозиториев уже изменена.
                    raise StorageError(
                        operation=OPERATION,
                        name=name,
                        step=OperationStep.REVOKE,
                        message=f"repository {repository.name} was modified concurrently after partial revocation",
                        cause=exc,
                        details={"repository": repository.name, "revoked": list(revoked)},
                    ) from exc
                raise ConflictError(
                    operation=OPERATION,
                    name=name,
                    step=OperationStep.REVOKE,
                    message=f"repository {repository.name} was modified concurrently",
                    cause=exc,
                    details={"repository": repository.name, "revoked": list(revoked)},
                ) from exc
            except StoreError as exc:
                raise StorageError(
                    operation=OPERATION,
                    name=name,
                    step=OperationStep.REVOKE,
                    message=f"could not update users of repository {repository.name}",
                    cause=exc,
                    details={"repository": repository.name, "revoked": list(revoked)},
                ) from exc
            revoked.append(repository.name)
            logEvent(self.logger, logging.INFO, self.run_id, "revocation", f"revoked {name} from {repository.name}")
        return verdict
