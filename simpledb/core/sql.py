from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Type, TypeVar

from simpledb.common.sanitize import truncateText
from simpledb.common.time import getDurationMs
from simpledb.core.coercion import coerceValue
from simpledb.core.sql_text import countPlaceholders, expandInClause
from simpledb.domain.models import Row
from simpledb.domain.ports.driver import CursorProtocol
from simpledb.errors import DriverError, InvalidStateError, StatementError
from simpledb.infra.logging.setup import logEvent

if TYPE_CHECKING:
    from simpledb.core.session import Session

T = TypeVar("T")
R = TypeVar("R")


def _columnNames(cursor: CursorProtocol) -> list[str]:
    return [str(col[0]) for col in (cursor.description or [])]


def _toRows(cursor: CursorProtocol, fetched: list) -> list[Row]:
    columns = _columnNames(cursor)
    return [Row(columns, list(values)) for values in fetched]


class Sql:
    """
    Назначение/ответственность:
        Одноразовый построитель параметризованного оператора: копит фрагменты SQL
        и позиционные параметры, затем выполняется ровно одной терминальной операцией.
    Взаимодействия:
        - Соединение берёт через Session.connection() (транзакционное или из пула на время вызова).
        - Типизированные строки строит RowMapper сессии.
    Инварианты/гарантии:
        - Параметры связываются в порядке накопления; число '?' обязано совпадать с числом параметров.
        - Значения IN всегда передаются связанными параметрами.
        - Повторная терминальная операция -> InvalidStateError.
        - Построитель, созданный внутри транзакции, нельзя выполнить после её завершения.
    """

    def __init__(self, session: "Session"):
        self._session = session
        self._fragments: list[str] = []
        self._params: list[Any] = []
        self._executed = False
        self._txEpoch: int | None = session.tx.epoch if session.in_transaction else None

    @property
    def sql(self) -> str:
        return " ".join(self._fragments)

    @property
    def params(self) -> tuple[Any, ...]:
        return tuple(self._params)

    def append(self, fragment: str, *params: Any) -> "Sql":
        self._requireNotExecuted()
        self._fragments.append(fragment.strip())
        self._params.extend(params)
        return self

    def append_in(self, fragment: str, *values: Any) -> "Sql":
        """
        Назначение:
            Добавляет фрагмент с динамическим IN: единственный '?' раскрывается в N плейсхолдеров.

        Входные данные:
            fragment: str
                Например "WHERE id IN (?)".
            values: Any
                Значения IN; один аргумент list/tuple/set раскрывается.

        Поведение:
            - Ноль значений -> StatementError (пустой IN () большинство СУБД отвергает).
            - Во фрагменте не ровно один '?' -> StatementError.
        """
        self._requireNotExecuted()
        if len(values) == 1 and isinstance(values[0], (list, tuple, set, frozenset)):
            values = tuple(values[0])
        try:
            expanded = expandInClause(fragment, len(values))
        except ValueError as exc:
            raise StatementError(str(exc), details={"fragment": fragment, "values": len(values)}) from exc
        return self.append(expanded, *values)

    # Терминальные операции

    def insert(self) -> int:
        """
        Назначение:
            Выполняет INSERT и возвращает сгенерированный ключ.

        Выходные данные:
            int
                Первая колонка RETURNING, иначе lastrowid драйвера, иначе 0.

        Ошибки:
            - MappingError, если ключ не приводится к int (строка уже записана).
        """

        def consume(cursor: CursorProtocol) -> Any:
            if cursor.description:
                row = cursor.fetchone()
                return row[0] if row is not None else None
            return cursor.lastrowid

        key = self._execute("insert", consume)
        return coerceValue(key, int) or 0

    def update(self) -> int:
        return self._execute("update", self._rowcount)

    def delete(self) -> int:
        return self._execute("delete", self._rowcount)

    def execute(self) -> int:
        return self._execute("execute", self._rowcount)

    def select_rows(self, target: Type[T] | None = None) -> list[Any]:
        rows = self._execute("select", lambda cursor: _toRows(cursor, cursor.fetchall()))
        if target is None:
            return rows
        return self._session.options.mapper.map_rows(rows, target)

    def select_row(self, target: Type[T] | None = None) -> Any:
        def consume(cursor: CursorProtocol) -> Row | None:
            values = cursor.fetchone()
            if values is None:
                return None
            return Row(_columnNames(cursor), list(values))

        row = self._execute("select", consume)
        if row is None or target is None:
            return row
        return self._session.options.mapper.map(row, target)

    def select_long(self) -> int | None:
        return coerceValue(self._selectScalar(), int)

    def select_string(self) -> str | None:
        return coerceValue(self._selectScalar(), str)

    def select_boolean(self) -> bool | None:
        return coerceValue(self._selectScalar(), bool)

    def select_datetime(self) -> datetime | None:
        return coerceValue(self._selectScalar(), datetime)

    def select_longs(self) -> list[int | None]:
        values = self._execute("select", lambda cursor: [row[0] for row in cursor.fetchall()])
        return [coerceValue(value, int) for value in values]

    # Внутреннее

    def _selectScalar(self) -> Any:
        def consume(cursor: CursorProtocol) -> Any:
            row = cursor.fetchone()
            if row is None or len(row) == 0:
                return None
            return row[0]

        return self._execute("select", consume)

    @staticmethod
    def _rowcount(cursor: CursorProtocol) -> int:
        return max(cursor.rowcount, 0)

    def _requireNotExecuted(self) -> None:
        if self._executed:
            raise InvalidStateError("Sql builder has already been executed and cannot be reused")

    def _checkReady(self, sql: str) -> None:
        self._requireNotExecuted()
        if self._txEpoch is not None:
            tx = self._session.tx
            if not tx.active or tx.epoch != self._txEpoch:
                raise InvalidStateError("Sql builder belongs to a transaction that has already ended")
        if not sql:
            raise StatementError("Cannot execute an empty statement")
        expected = countPlaceholders(sql)
        if expected != len(self._params):
            raise StatementError(
                f"Statement expects {expected} parameter(s) but {len(self._params)} were given",
                details={"sql": truncateText(sql), "expected": expected, "given": len(self._params)},
            )

    def _execute(self, operation: str, consume: Callable[[CursorProtocol], R]) -> R:
        sql = self.sql
        self._checkReady(sql)
        self._executed = True
        params = self.params
        options = self._session.options
        started = time.monotonic()

        with self._session.connection() as conn:
            try:
                cursor = conn.execute(sql, params)
            except DriverError as exc:
                raise self._statementError(operation, sql, exc) from exc
            try:
                result = consume(cursor)
            except DriverError as exc:
                raise self._statementError(operation, sql, exc) from exc
            finally:
                cursor.close()

        if options.dev_mode:
            logEvent(
                options.logger,
                logging.INFO,
                options.run_id,
                "sql",
                f"{operation}: {truncateText(sql)} params={list(params)!r} "
                f"duration_ms={getDurationMs(started, time.monotonic())}",
            )
        return result

    def _statementError(self, operation: str, sql: str, exc: DriverError) -> StatementError:
        options = self._session.options
        logEvent(options.logger, logging.ERROR, options.run_id, "sql", f"{operation} failed: {exc} sql={truncateText(sql)}")
        return StatementError(
            f"{operation.capitalize()} failed: {exc}",
            details={"sql": truncateText(sql), "params": len(self._params)},
        )
