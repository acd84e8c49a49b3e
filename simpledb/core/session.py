from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterator

from simpledb.common.run_id import generate_run_id
from simpledb.core.mapper import RowMapper, defaultMapper
from simpledb.core.pool import ConnectionPool, PooledConnection
from simpledb.core.transaction import TransactionManager
from simpledb.domain.models import TransactionState
from simpledb.errors import DbError, InvalidStateError
from simpledb.infra.logging.setup import getLibraryLogger, logEvent

if TYPE_CHECKING:
    from simpledb.core.sql import Sql


@dataclass
class ExecutionOptions:
    """
    Назначение:
        Общие для всех сессий одного SimpleDb параметры выполнения.
    """

    logger: logging.Logger = field(default_factory=getLibraryLogger)
    run_id: str = field(default_factory=generate_run_id)
    dev_mode: bool = False
    mapper: RowMapper = field(default_factory=lambda: defaultMapper)


class Session:
    """
    Назначение/ответственность:
        Явный контекст выполнения: держит не более одного соединения и транзакцию на нём.
    Инварианты/гарантии:
        - Пока транзакция ACTIVE, все операторы сессии идут через одно закреплённое соединение.
        - Без транзакции соединение берётся из пула на время одного оператора и возвращается
          на любом пути выхода, включая исключения.
    Ограничения:
        - Сессия не потокобезопасна: один поток (или задача) на сессию.
    """

    def __init__(self, pool: ConnectionPool, options: ExecutionOptions | None = None):
        self.pool = pool
        self.options = options or ExecutionOptions()
        self.tx = TransactionManager(pool, self.options.logger, self.options.run_id)
        self._bound: PooledConnection | None = None

    @property
    def bound_connection(self) -> PooledConnection | None:
        return self._bound

    @property
    def in_transaction(self) -> bool:
        return self.tx.active

    @property
    def transaction_state(self) -> TransactionState:
        return self.tx.state

    @contextmanager
    def connection(self) -> Iterator[PooledConnection]:
        """
        Назначение:
            Выдаёт соединение для одного оператора: привязанное (транзакция) или взятое из пула.
        """
        if self._bound is not None:
            yield self._bound
            return

        conn = self.pool.acquire()
        self._bound = conn
        try:
            yield conn
        finally:
            if not self.tx.active:
                self._bound = None
                self.pool.release(conn)

    def begin(self) -> None:
        """
        Ошибки:
            - InvalidStateError, если транзакция уже активна.
            - ConnectionError/PoolExhausted, если соединение получить не удалось.
        """
        if self.tx.active:
            raise InvalidStateError("Transaction is already active in this session")
        acquired = False
        if self._bound is None:
            self._bound = self.pool.acquire()
            acquired = True
        try:
            self.tx.begin(self._bound)
        except DbError:
            if acquired:
                conn, self._bound = self._bound, None
                self.pool.release(conn)
            raise

    def commit(self) -> None:
        if not self.tx.active:
            raise InvalidStateError("commit() called without an active transaction")
        try:
            self.tx.commit()
        finally:
            self._releaseBound()

    def rollback(self) -> None:
        if not self.tx.active:
            raise InvalidStateError("rollback() called without an active transaction")
        try:
            self.tx.rollback()
        finally:
            self._releaseBound()

    @contextmanager
    def transaction(self) -> Iterator["Session"]:
        self.begin()
        try:
            yield self
        except Exception:
            if self.tx.active:
                try:
                    self.rollback()
                except DbError as exc:
                    logEvent(
                        self.options.logger,
                        logging.ERROR,
                        self.options.run_id,
                        "session",
                        f"Rollback after error failed: {exc}",
                    )
            raise
        else:
            self.commit()

    def new_statement(self) -> "Sql":
        from simpledb.core.sql import Sql

        return Sql(self)

    def _releaseBound(self) -> None:
        conn, self._bound = self._bound, None
        if conn is not None:
            self.pool.release(conn)


class SessionBinding:
    """
    Назначение:
        Привязка потока к его сессии по умолчанию (создаётся лениво при первом обращении).
    """

    def __init__(self, factory: Callable[[], Session]):
        self._factory = factory
        self._local = threading.local()

    def current(self) -> Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._factory()
            self._local.session = session
        return session

    def clear(self) -> None:
        session = getattr(self._local, "session", None)
        if session is not None and session.in_transaction:
            raise InvalidStateError("Cannot clear session binding while a transaction is active")
        self._local.session = None
