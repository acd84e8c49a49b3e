from __future__ import annotations

import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Sequence

from simpledb.common.run_id import generate_run_id
from simpledb.domain.models import ConnectionInfo
from simpledb.domain.ports.driver import CursorProtocol, DriverConnectionProtocol, DriverProtocol
from simpledb.errors import ConnectionError, DriverError, InvalidStateError, PoolExhausted
from simpledb.infra.logging.setup import getLibraryLogger, logEvent

DEFAULT_POOL_SIZE = 100
DEFAULT_ACQUIRE_TIMEOUT = 5.0


@dataclass(eq=False)
class PooledConnection:
    """
    Назначение:
        Эксклюзивный дескриптор одного соединения драйвера внутри пула.
    Инварианты/гарантии:
        - conn_id уникален в пределах пула.
        - В каждый момент принадлежит либо пулу (idle), либо ровно одной сессии.
    """

    conn_id: int
    raw: DriverConnectionProtocol

    def execute(self, sql: str, params: Sequence[Any]) -> CursorProtocol:
        return self.raw.execute(sql, params)


@dataclass(frozen=True)
class PoolStats:
    capacity: int
    idle: int
    checked_out: int
    pinned: int = 0


class ConnectionPool:
    """
    Назначение/ответственность:
        Пул фиксированной ёмкости с блокирующим acquire и release.
    Инварианты/гарантии:
        - Все соединения открываются при создании; размер пула не меняется.
        - Для открытого пула idle + checked_out == capacity после любой операции.
        - Соединение не бывает одновременно выдано двум вызывающим и не бывает в idle дважды.
        - Закреплённое транзакцией (pinned) соединение нельзя вернуть в пул.
    Ограничения:
        - acquire ждёт на Condition и просыпается сразу при release; по таймауту PoolExhausted.
        - Отмены ожидания нет, кроме таймаута и закрытия пула.
    """

    def __init__(
        self,
        driver: DriverProtocol,
        info: ConnectionInfo,
        capacity: int = DEFAULT_POOL_SIZE,
        acquire_timeout: float = DEFAULT_ACQUIRE_TIMEOUT,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
    ):
        if capacity < 1:
            raise ValueError(f"Pool capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.acquire_timeout = acquire_timeout
        self.logger = logger or getLibraryLogger()
        self.run_id = run_id or generate_run_id()

        self._cond = threading.Condition()
        self._idle: deque[PooledConnection] = deque()
        self._checked_out: dict[int, PooledConnection] = {}
        self._pinned: set[int] = set()
        self._closed = False

        opened: list[PooledConnection] = []
        try:
            for index in range(capacity):
                opened.append(PooledConnection(conn_id=index + 1, raw=driver.open(info)))
        except DriverError as exc:
            for conn in opened:
                self._closeConnection(conn)
            logEvent(self.logger, logging.ERROR, self.run_id, "pool", f"Failed to open connection pool: {exc}")
            raise ConnectionError(
                f"Failed to open connection {len(opened) + 1}/{capacity}: {exc}",
                details={"driver": driver.name, "opened": len(opened), "capacity": capacity},
            ) from exc

        self._idle.extend(opened)
        logEvent(
            self.logger,
            logging.INFO,
            self.run_id,
            "pool",
            f"Connection pool opened: driver={driver.name} capacity={capacity} {info.describe()}",
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self, timeout: float | None = None) -> PooledConnection:
        """
        Контракт (вход/выход):
            Вход: timeout в секундах (None -> acquire_timeout пула).
            Выход: PooledConnection, изъятое из idle.
        Ошибки:
            - PoolExhausted, если за timeout не освободилось ни одного соединения.
            - ConnectionError, если пул закрыт (в том числе во время ожидания).
        """
        wait = self.acquire_timeout if timeout is None else timeout
        deadline = time.monotonic() + wait
        with self._cond:
            while True:
                if self._closed:
                    raise ConnectionError("Connection pool is closed")
                if self._idle:
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logEvent(
                        self.logger,
                        logging.WARNING,
                        self.run_id,
                        "pool",
                        f"Pool exhausted: capacity={self.capacity} waited={wait:.3f}s",
                    )
                    raise PoolExhausted(
                        f"No idle connection available within {wait:.3f}s (capacity={self.capacity})",
                        details={"capacity": self.capacity, "timeout": wait},
                    )
                self._cond.wait(remaining)

            conn = self._idle.popleft()
            self._checked_out[conn.conn_id] = conn
            return conn

    def release(self, conn: PooledConnection) -> None:
        """
        Контракт (вход/выход):
            Вход: соединение, ранее выданное этим пулом.
        Ошибки:
            - InvalidStateError при повторном release, чужом соединении или закреплённом соединении.
        Поведение:
            - Если пул уже закрыт, соединение закрывается вместо возврата в idle.
        """
        toClose: PooledConnection | None = None
        with self._cond:
            if self._checked_out.get(conn.conn_id) is not conn:
                raise InvalidStateError(
                    f"Connection #{conn.conn_id} is not checked out from this pool",
                    details={"conn_id": conn.conn_id},
                )
            if conn.conn_id in self._pinned:
                raise InvalidStateError(
                    f"Connection #{conn.conn_id} is pinned by an active transaction",
                    details={"conn_id": conn.conn_id},
                )
            del self._checked_out[conn.conn_id]
            if self._closed:
                toClose = conn
            else:
                self._idle.append(conn)
                self._cond.notify()
        if toClose is not None:
            self._closeConnection(toClose)

    def pin(self, conn: PooledConnection) -> None:
        with self._cond:
            if self._checked_out.get(conn.conn_id) is not conn:
                raise InvalidStateError(f"Cannot pin connection #{conn.conn_id}: not checked out")
            self._pinned.add(conn.conn_id)

    def unpin(self, conn: PooledConnection) -> None:
        with self._cond:
            self._pinned.discard(conn.conn_id)

    def is_pinned(self, conn: PooledConnection) -> bool:
        with self._cond:
            return conn.conn_id in self._pinned

    @contextmanager
    def connection(self, timeout: float | None = None) -> Iterator[PooledConnection]:
        conn = self.acquire(timeout)
        try:
            yield conn
        finally:
            self.release(conn)

    def stats(self) -> PoolStats:
        with self._cond:
            return PoolStats(
                capacity=self.capacity,
                idle=len(self._idle),
                checked_out=len(self._checked_out),
                pinned=len(self._pinned),
            )

    def close(self) -> None:
        """
        Назначение:
            Закрывает idle-соединения и помечает пул закрытым; выданные соединения
            закрываются при возврате. Повторный вызов ничего не делает.
        """
        with self._cond:
            if self._closed:
                return
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            stillOut = len(self._checked_out)
            self._cond.notify_all()

        failed = [conn.conn_id for conn in idle if not self._closeConnection(conn)]
        level = logging.WARNING if stillOut else logging.INFO
        logEvent(self.logger, level, self.run_id, "pool", f"Connection pool closed: checked_out={stillOut}")
        if failed:
            raise ConnectionError(
                f"Failed to close {len(failed)} pooled connection(s)",
                details={"conn_ids": failed},
            )

    def _closeConnection(self, conn: PooledConnection) -> bool:
        try:
            conn.raw.close()
        except DriverError as exc:
            logEvent(self.logger, logging.ERROR, self.run_id, "pool", f"Failed to close connection #{conn.conn_id}: {exc}")
            return False
        return True
