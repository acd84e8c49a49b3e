from __future__ import annotations

import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any, Sequence

from simpledb.domain.models import ConnectionInfo
from simpledb.errors import DriverError


def _adaptParam(value: Any) -> Any:
    # datetime раньше date: datetime является подклассом date
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return value


class SqliteCursor:
    """
    Назначение/ответственность:
        Обёртка над sqlite3.Cursor, переводящая ошибки fetch* в DriverError.
    """

    def __init__(self, cursor: sqlite3.Cursor):
        self._cursor = cursor

    @property
    def description(self):
        return self._cursor.description

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    @property
    def lastrowid(self) -> int | None:
        return self._cursor.lastrowid

    def fetchone(self) -> Sequence[Any] | None:
        try:
            return self._cursor.fetchone()
        except sqlite3.Error as exc:
            raise DriverError(str(exc)) from exc

    def fetchall(self) -> list[Sequence[Any]]:
        try:
            return self._cursor.fetchall()
        except sqlite3.Error as exc:
            raise DriverError(str(exc)) from exc

    def close(self) -> None:
        self._cursor.close()


class SqliteConnection:
    """
    Назначение/ответственность:
        Тонкая обёртка над sqlite3.Connection с API DriverConnectionProtocol.
    Ограничения:
        - Соединение открыто с isolation_level=None: sqlite3 не открывает транзакции неявно,
          set_autocommit(False) явно выполняет BEGIN.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.autocommit = True

    def execute(self, sql: str, params: Sequence[Any]) -> SqliteCursor:
        try:
            cursor = self.conn.execute(sql, tuple(_adaptParam(p) for p in params))
        except (sqlite3.Error, sqlite3.Warning) as exc:
            raise DriverError(str(exc)) from exc
        return SqliteCursor(cursor)

    def set_autocommit(self, enabled: bool) -> None:
        try:
            if not enabled and not self.conn.in_transaction:
                self.conn.execute("BEGIN")
        except sqlite3.Error as exc:
            raise DriverError(str(exc)) from exc
        self.autocommit = enabled

    def commit(self) -> None:
        try:
            self.conn.commit()
        except sqlite3.Error as exc:
            raise DriverError(str(exc)) from exc

    def rollback(self) -> None:
        try:
            self.conn.rollback()
        except sqlite3.Error as exc:
            raise DriverError(str(exc)) from exc

    def close(self) -> None:
        try:
            self.conn.close()
        except sqlite3.Error as exc:
            raise DriverError(str(exc)) from exc


class SqliteDriver:
    """
    Назначение:
        Драйвер SQLite. db_name трактуется как путь к файлу БД, host/учётные данные игнорируются.
    """

    name = "sqlite"

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    def open(self, info: ConnectionInfo) -> SqliteConnection:
        dbPath = info.db_name or ""
        if not dbPath:
            raise DriverError("SQLite driver requires db_name (database file path)")
        try:
            if dbPath != ":memory:":
                Path(dbPath).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(dbPath, timeout=self.timeout, check_same_thread=False, isolation_level=None)
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA busy_timeout = 5000")
        except (sqlite3.Error, OSError) as exc:
            raise DriverError(f"Failed to open SQLite database {dbPath}: {exc}") from exc
        return SqliteConnection(conn)
