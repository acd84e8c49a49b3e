from __future__ import annotations

import dataclasses
import json
import logging
import time
from pathlib import Path
from typing import Callable

import typer

from simpledb.common.run_id import generate_run_id
from simpledb.common.sanitize import maskSecret
from simpledb.common.time import getDurationMs
from simpledb.config import Settings, loadSettings
from simpledb.db import SimpleDb
from simpledb.errors import DbError
from simpledb.infra.logging.setup import closeCommandLogger, createCommandLogger, logEvent

app = typer.Typer(no_args_is_help=True, add_completion=False)


def ensureDir(path: str) -> None:
    """
    Назначение:
        Создаёт каталог, если он отсутствует.
    """
    Path(path).mkdir(parents=True, exist_ok=True)


def requireDbName(settings: Settings) -> None:
    """
    Назначение:
        Проверяет, что задано имя/путь БД.

    Поведение:
        - Если db_name не задан: exit code 2.
    """
    if not settings.db_name:
        typer.echo("ERROR: missing database settings: db_name", err=True)
        raise typer.Exit(code=2)


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    """
    Назначение:
        Печатает безопасную сводку параметров запуска (без секретов).
    """
    typer.echo(
        f"run_id={runId} command={command} driver={settings.driver} "
        f"host={settings.host} port={settings.port} db_name={settings.db_name} "
        f"username={settings.username} password={maskSecret(settings.password)} sources={sources}"
    )


def runWithDb(ctx: typer.Context, commandName: str, runner: Callable[[SimpleDb], int]) -> None:
    """
    Назначение:
        Унифицированная обвязка выполнения команд:
        - создаёт логгер + файл лога
        - проверяет обязательные настройки БД
        - открывает SimpleDb с пулом на одно соединение и гарантирует его закрытие

    Поведение:
        - Нет db_name: exit code 2.
        - Неизвестный драйвер или недопустимые параметры пула: exit code 2.
        - DbError при работе с БД: сообщение в stderr и лог, exit code 1.
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    startMonotonic = time.monotonic()
    logger, logFilePath = createCommandLogger(
        commandName=commandName,
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )

    exitCode: int | None = None
    try:
        logEvent(logger, logging.INFO, runId, "cli", "Command started")
        printRunHeader(runId, commandName, settings, sources)

        try:
            requireDbName(settings)
        except typer.Exit:
            logEvent(logger, logging.ERROR, runId, "config", "Missing database settings")
            exitCode = 2
            return

        try:
            try:
                db = SimpleDb.from_settings(dataclasses.replace(settings, pool_size=1), logger=logger, run_id=runId)
            except ValueError as exc:
                logEvent(logger, logging.ERROR, runId, "config", f"Invalid database settings: {exc}")
                typer.echo(f"ERROR: {exc}", err=True)
                exitCode = 2
                return
            try:
                exitCode = runner(db)
            finally:
                db.close()
        except DbError as exc:
            logEvent(logger, logging.ERROR, runId, "cli", f"{exc.code.value}: {exc.message}")
            typer.echo(f"ERROR: {exc.message}", err=True)
            exitCode = 1

    finally:
        durationMs = getDurationMs(startMonotonic, time.monotonic())
        logEvent(logger, logging.INFO, runId, "cli", f"Command finished: exit_code={exitCode or 0} duration_ms={durationMs}")
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
    host: str | None = typer.Option(None, "--host", help="Database host"),
    port: int | None = typer.Option(None, "--port", help="Database port"),
    username: str | None = typer.Option(None, "--username", help="Database user"),
    password: str | None = typer.Option(None, "--password", help="Database password (avoid; use env/file)"),
    passwordFile: str | None = typer.Option(None, "--password-file", help="Read database password from file"),
    dbName: str | None = typer.Option(None, "--db-name", help="Database name (file path for sqlite)"),
    driver: str | None = typer.Option(None, "--driver", help="Driver: sqlite|postgres"),
    poolSize: int | None = typer.Option(None, "--pool-size", help="Connection pool size"),
    devMode: bool | None = typer.Option(None, "--dev-mode/--no-dev-mode", help="Log every executed statement"),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - создаёт каталог логов
        - сохраняет всё в ctx.obj для подкоманд
    """
    if passwordFile and not password:
        p = Path(passwordFile)
        if not p.exists() or not p.is_file():
            typer.echo(f"ERROR: password-file not found: {passwordFile}", err=True)
            raise typer.Exit(code=2)
        password = p.read_text(encoding="utf-8").strip()

    if not runId:
        runId = generate_run_id()

    cliOverrides = {
        "host": host,
        "port": port,
        "username": username,
        "password": password,
        "db_name": dbName,
        "driver": driver,
        "pool_size": poolSize,
        "dev_mode": devMode,
        "log_level": logLevel,
        "log_dir": logDir,
    }
    loaded = loadSettings(config_path=config, cli_overrides=cliOverrides)

    ensureDir(loaded.settings.log_dir)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
        "configPath": config,
    }


@app.command("check-db")
def checkDb(ctx: typer.Context):
    def execute(db: SimpleDb) -> int:
        db.new_statement().append("SELECT 1").select_long()
        typer.echo("db=ok")
        return 0

    runWithDb(ctx, "check-db", execute)


@app.command("run")
def runStatement(
    ctx: typer.Context,
    sql: str = typer.Argument(..., help="SQL statement with ? placeholders"),
    params: list[str] | None = typer.Argument(None, help="Positional parameters"),
):
    def execute(db: SimpleDb) -> int:
        affected = db.new_statement().append(sql, *(params or [])).execute()
        typer.echo(f"affected={affected}")
        return 0

    runWithDb(ctx, "run", execute)


@app.command("query")
def query(
    ctx: typer.Context,
    sql: str = typer.Argument(..., help="SELECT statement with ? placeholders"),
    params: list[str] | None = typer.Argument(None, help="Positional parameters"),
):
    def execute(db: SimpleDb) -> int:
        rows = db.new_statement().append(sql, *(params or [])).select_rows()
        for row in rows:
            typer.echo(json.dumps(row.to_dict(), default=str, ensure_ascii=False))
        return 0

    runWithDb(ctx, "query", execute)


if __name__ == "__main__":
    app()
