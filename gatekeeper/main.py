from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Callable

import typer

from gatekeeper.common.run_id import generate_run_id
from gatekeeper.config import Settings, load_settings
from gatekeeper.domain.exceptions import GatewayError, IdentityError
from gatekeeper.infra.keys.authorized_keys_gateway import AuthorizedKeysGateway
from gatekeeper.infra.keys.filesystem import OsFilesystem
from gatekeeper.infra.logging.setup import closeCommandLogger, createCommandLogger, logEvent
from gatekeeper.infra.store.db import getIdentityDbPath, openIdentityDb
from gatekeeper.infra.store.identity_repository import SqliteIdentityStore
from gatekeeper.infra.store.repository_access_repository import SqliteRepositoryAccessStore
from gatekeeper.infra.store.schema import ensure_schema
from gatekeeper.infra.store.sqlite_engine import SqliteEngine
from gatekeeper.usecases.identity_lifecycle_service import IdentityLifecycleService
from gatekeeper.usecases.ports import IdentityLifecycleServiceProtocol

app = typer.Typer(no_args_is_help=True, add_completion=False)
userApp = typer.Typer(no_args_is_help=True)


def ensureDir(path: str) -> None:
    """
    Назначение:
        Создаёт каталог, если он отсутствует.
    """
    Path(path).mkdir(parents=True, exist_ok=True)


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    """
    Назначение:
        Печатает сводку параметров запуска.
    """
    typer.echo(
        f"run_id={runId} command={command} "
        f"data_dir={settings.data_dir} authorized_keys={settings.authorized_keys_path} "
        f"bin_path={settings.bin_path} sources={sources} log_level={settings.log_level}"
    )


def buildLifecycleService(
    engine: SqliteEngine,
    settings: Settings,
    logger: logging.Logger,
    runId: str,
) -> IdentityLifecycleServiceProtocol:
    """
    Назначение:
        Сборка сервиса: SQLite-хранилища + gateway authorized_keys поверх реальной ФС.
    """
    gateway = AuthorizedKeysGateway(
        filesystem=OsFilesystem(),
        keys_path=settings.authorized_keys_path,
        bin_path=settings.bin_path,
    )
    return IdentityLifecycleService(
        identities=SqliteIdentityStore(engine),
        repositories=SqliteRepositoryAccessStore(engine),
        gateway=gateway,
        logger=logger,
        run_id=runId,
    )


def runWithService(
    ctx: typer.Context,
    commandName: str,
    runner: Callable[[IdentityLifecycleServiceProtocol], int],
) -> None:
    """
    Назначение:
        Унифицированная обвязка выполнения команд:
        - создаёт логгер + файл лога
        - открывает БД и применяет схему
        - переводит IdentityError в exit code

    Поведение:
        - GatewayError (хранилище изменено, gateway нет) - exit code 1.
        - Прочие ошибки - exit code 2.
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    logger, _logFilePath = createCommandLogger(
        commandName=commandName,
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )

    exitCode = 0
    conn = None
    try:
        logEvent(logger, logging.INFO, runId, "core", "Command started")
        printRunHeader(runId, commandName, settings, sources)

        try:
            conn = openIdentityDb(getIdentityDbPath(settings.data_dir))
            engine = SqliteEngine(conn)
            ensure_schema(engine)
        except (sqlite3.Error, OSError) as exc:
            logEvent(logger, logging.ERROR, runId, "store", f"Failed to open identity DB: {exc}")
            typer.echo("ERROR: failed to open identity DB (see logs)", err=True)
            exitCode = 2
            return

        service = buildLifecycleService(engine, settings, logger, runId)
        try:
            exitCode = runner(service)
        except GatewayError as exc:
            logEvent(logger, logging.ERROR, runId, "gateway", f"{exc.to_dict()}")
            typer.echo(f"ERROR: {exc.code.value}: {exc}", err=True)
            exitCode = 1
        except IdentityError as exc:
            logEvent(logger, logging.ERROR, runId, exc.step.value, f"{exc.to_dict()}")
            typer.echo(f"ERROR: {exc.code.value}: {exc}", err=True)
            exitCode = 2
    finally:
        if conn is not None:
            conn.close()
        logEvent(logger, logging.INFO, runId, "core", f"Command finished exit_code={exitCode}")
        closeCommandLogger(logger)

        if exitCode:
            raise typer.Exit(code=exitCode)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: ERROR|WARN|INFO|DEBUG"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Directory for logs."),
    dataDir: str | None = typer.Option(None, "--data-dir", help="Directory for the identity database."),
    authorizedKeys: str | None = typer.Option(None, "--authorized-keys", help="Path to authorized_keys file"),
    binPath: str | None = typer.Option(None, "--bin-path", help="Command forced for every authorized key"),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - создаёт каталоги log/data
        - сохраняет всё в ctx.obj для подкоманд
    """
    if not runId:
        runId = generate_run_id()

    cliOverrides = {
        "log_level": logLevel,
        "log_dir": logDir,
        "data_dir": dataDir,
        "authorized_keys_path": authorizedKeys,
        "bin_path": binPath,
    }
    loaded = load_settings(config_path=config, cli_overrides=cliOverrides)

    ensureDir(loaded.settings.log_dir)
    ensureDir(loaded.settings.data_dir)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
        "configPath": config,
    }


@userApp.command("create")
def userCreate(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Identity name: letters, digits, '.', '@'"),
    key: list[str] | None = typer.Option(None, "--key", "-k", help="Public key (repeatable)"),
):
    def execute(service: IdentityLifecycleServiceProtocol) -> int:
        identity = service.create_identity(name, key or [])
        typer.echo(f"created name={identity.name} keys={len(identity.keys)}")
        return 0

    runWithService(ctx, "user-create", execute)


@userApp.command("remove")
def userRemove(ctx: typer.Context, name: str = typer.Argument(...)):
    def execute(service: IdentityLifecycleServiceProtocol) -> int:
        verdict = service.remove_identity(name)
        revoked = ",".join(r.name for r in verdict.affected)
        typer.echo(f"removed name={name} revoked_from=[{revoked}]")
        return 0

    runWithService(ctx, "user-remove", execute)


@userApp.command("add-key")
def userAddKey(ctx: typer.Context, name: str = typer.Argument(...), key: str = typer.Argument(...)):
    def execute(service: IdentityLifecycleServiceProtocol) -> int:
        identity = service.add_key(name, key)
        typer.echo(f"key added name={identity.name} keys={len(identity.keys)}")
        return 0

    runWithService(ctx, "user-add-key", execute)


@userApp.command("remove-key")
def userRemoveKey(ctx: typer.Context, name: str = typer.Argument(...), key: str = typer.Argument(...)):
    def execute(service: IdentityLifecycleServiceProtocol) -> int:
        identity = service.remove_key(name, key)
        typer.echo(f"key removed name={identity.name} keys={len(identity.keys)}")
        return 0

    runWithService(ctx, "user-remove-key", execute)


@userApp.command("show")
def userShow(ctx: typer.Context, name: str = typer.Argument(...)):
    def execute(service: IdentityLifecycleServiceProtocol) -> int:
        identity = service.get_identity(name)
        typer.echo(f"name={identity.name} keys={len(identity.keys)}")
        for item in identity.keys:
            typer.echo(f"  {item}")
        return 0

    runWithService(ctx, "user-show", execute)


@userApp.command("list")
def userList(ctx: typer.Context):
    def execute(service: IdentityLifecycleServiceProtocol) -> int:
        for identity in service.list_identities():
            typer.echo(f"{identity.name} keys={len(identity.keys)}")
        return 0

    runWithService(ctx, "user-list", execute)


@userApp.command("check-removal")
def userCheckRemoval(ctx: typer.Context, name: str = typer.Argument(...)):
    def execute(service: IdentityLifecycleServiceProtocol) -> int:
        verdict = service.evaluate_removal(name)
        typer.echo(
            f"name={name} allowed={str(verdict.allowed).lower()} "
            f"repositories=[{','.join(r.name for r in verdict.affected)}] "
            f"blocking=[{','.join(verdict.blocking)}]"
        )
        return 0 if verdict.allowed else 1

    runWithService(ctx, "user-check-removal", execute)


app.add_typer(userApp, name="user")
