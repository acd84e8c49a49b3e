from __future__ import annotations

import logging

from simpledb.core.pool import ConnectionPool, PooledConnection
from simpledb.domain.models import TransactionState
from simpledb.errors import ConnectionError, DriverError, InvalidStateError, StatementError
from simpledb.infra.logging.setup import logEvent


class TransactionManager:
    """
    Назначение/ответственность:
        Жизненный цикл транзакции одной сессии: begin/commit/rollback на закреплённом соединении.
    Инварианты/гарантии:
        - В состоянии ACTIVE соединение закреплено в пуле (pin) и работает с autocommit=False.
        - После commit/rollback autocommit восстановлен, pin снят, состояние снова NONE
          (итог доступен в last_outcome), даже если драйвер вернул ошибку.
        - epoch увеличивается на каждый begin: по нему Sql узнаёт, что его транзакция завершилась.
    Ограничения:
        - Вложенные транзакции не поддерживаются.
        - Возврат соединения в пул делает Session, не этот класс.
    """

    def __init__(self, pool: ConnectionPool, logger: logging.Logger, run_id: str):
        self.pool = pool
        self.logger = logger
        self.run_id = run_id
        self.state = TransactionState.NONE
        self.last_outcome: TransactionState | None = None
        self.connection: PooledConnection | None = None
        self.epoch = 0

    @property
    def active(self) -> bool:
        return self.state is TransactionState.ACTIVE

    def begin(self, conn: PooledConnection) -> None:
        if self.active:
            raise InvalidStateError("Transaction is already active in this session")
        self.pool.pin(conn)
        try:
            conn.raw.set_autocommit(False)
        except DriverError as exc:
            self.pool.unpin(conn)
            raise ConnectionError(f"Failed to begin transaction on connection #{conn.conn_id}: {exc}") from exc
        self.connection = conn
        self.state = TransactionState.ACTIVE
        self.epoch += 1
        logEvent(self.logger, logging.DEBUG, self.run_id, "tx", f"Transaction started on connection #{conn.conn_id}")

    def commit(self) -> PooledConnection:
        """
        Контракт (вход/выход):
            Выход: соединение, на котором шла транзакция (его возвращает в пул вызывающий).
        Ошибки:
            - InvalidStateError, если транзакция не активна.
            - StatementError, если драйвер не смог зафиксировать; изменения при этом откатываются.
        """
        conn = self._requireActive("commit")
        try:
            conn.raw.commit()
        except DriverError as exc:
            self._rollbackAfterFailedCommit(conn)
            self._finish(conn, TransactionState.ROLLED_BACK)
            raise StatementError(f"Commit failed: {exc}", details={"conn_id": conn.conn_id}) from exc
        self._finish(conn, TransactionState.COMMITTED)
        return conn

    def rollback(self) -> PooledConnection:
        conn = self._requireActive("rollback")
        try:
            conn.raw.rollback()
        except DriverError as exc:
            self._finish(conn, TransactionState.ROLLED_BACK)
            raise StatementError(f"Rollback failed: {exc}", details={"conn_id": conn.conn_id}) from exc
        self._finish(conn, TransactionState.ROLLED_BACK)
        return conn

    def _requireActive(self, operation: str) -> PooledConnection:
        if not self.active or self.connection is None:
            raise InvalidStateError(f"{operation}() called without an active transaction")
        return self.connection

    def _rollbackAfterFailedCommit(self, conn: PooledConnection) -> None:
        try:
            conn.raw.rollback()
        except DriverError as exc:
            logEvent(self.logger, logging.ERROR, self.run_id, "tx", f"Rollback after failed commit failed: {exc}")

    def _finish(self, conn: PooledConnection, outcome: TransactionState) -> None:
        try:
            conn.raw.set_autocommit(True)
        except DriverError as exc:
            logEvent(
                self.logger,
                logging.ERROR,
                self.run_id,
                "tx",
                f"Failed to restore autocommit on connection #{conn.conn_id}: {exc}",
            )
        finally:
            self.pool.unpin(conn)
            self.connection = None
            self.last_outcome = outcome
            self.state = TransactionState.NONE
        logEvent(self.logger, logging.DEBUG, self.run_id, "tx", f"Transaction {outcome.value} on connection #{conn.conn_id}")
