from __future__ import annotations

from typing import Any, Sequence

import psycopg

from simpledb.core.sql_text import toFormatParamstyle
from simpledb.domain.models import ConnectionInfo
from simpledb.errors import DriverError

DEFAULT_PORT = 5432


class PostgresCursor:
    """
    Назначение:
        Обёртка над psycopg.Cursor. lastrowid в psycopg нет: ключи возвращает INSERT ... RETURNING.
    """

    lastrowid = None

    def __init__(self, cursor: psycopg.Cursor):
        self._cursor = cursor

    @property
    def description(self):
        return self._cursor.description

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    def fetchone(self) -> Sequence[Any] | None:
        try:
            return self._cursor.fetchone()
        except psycopg.Error as exc:
            raise DriverError(str(exc)) from exc

    def fetchall(self) -> list[Sequence[Any]]:
        try:
            return self._cursor.fetchall()
        except psycopg.Error as exc:
            raise DriverError(str(exc)) from exc

    def close(self) -> None:
        self._cursor.close()


class PostgresConnection:
    """
    Назначение:
        Обёртка над psycopg.Connection с API DriverConnectionProtocol.
    Ограничения:
        - Плейсхолдеры "?" переводятся в "%s" только при наличии параметров.
    """

    def __init__(self, conn: psycopg.Connection):
        self.conn = conn

    def execute(self, sql: str, params: Sequence[Any]) -> PostgresCursor:
        cursor = self.conn.cursor()
        try:
            if params:
                cursor.execute(toFormatParamstyle(sql), tuple(params))
            else:
                cursor.execute(sql)
        except psycopg.Error as exc:
            cursor.close()
            raise DriverError(str(exc)) from exc
        return PostgresCursor(cursor)

    def set_autocommit(self, enabled: bool) -> None:
        try:
            if self.conn.autocommit != enabled:
                self.conn.autocommit = enabled
        except psycopg.Error as exc:
            raise DriverError(str(exc)) from exc

    def commit(self) -> None:
        try:
            self.conn.commit()
        except psycopg.Error as exc:
            raise DriverError(str(exc)) from exc

    def rollback(self) -> None:
        try:
            self.conn.rollback()
        except psycopg.Error as exc:
            raise DriverError(str(exc)) from exc

    def close(self) -> None:
        try:
            self.conn.close()
        except psycopg.Error as exc:
            raise DriverError(str(exc)) from exc


class PostgresDriver:
    """
    Назначение:
        Драйвер PostgreSQL поверх psycopg.connect.

    Входные данные:
        connect_timeout: int
            Сколько секунд ждать сервер при открытии соединения.

    Ограничения:
        - Соединения открываются в autocommit, транзакция выключает его на время работы.
        - Любая psycopg.Error превращается в DriverError.
    """

    name = "postgres"

    def __init__(self, connect_timeout: int = 10):
        self.connect_timeout = connect_timeout

    def open(self, info: ConnectionInfo) -> PostgresConnection:
        try:
            conn = psycopg.connect(
                host=info.host,
                port=info.port or DEFAULT_PORT,
                user=info.username,
                password=info.password,
                dbname=info.db_name,
                autocommit=True,
                connect_timeout=self.connect_timeout,
            )
        except psycopg.Error as exc:
            raise DriverError(f"Failed to connect to PostgreSQL at {info.host}: {exc}") from exc
        return PostgresConnection(conn)
