from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

from simpledb.common.run_id import generate_run_id
from simpledb.core.mapper import RowMapper, defaultMapper
from simpledb.core.pool import DEFAULT_ACQUIRE_TIMEOUT, DEFAULT_POOL_SIZE, ConnectionPool, PoolStats
from simpledb.core.session import ExecutionOptions, Session, SessionBinding
from simpledb.core.sql import Sql
from simpledb.core.sql_text import isValidProcedureName
from simpledb.domain.models import ConnectionInfo
from simpledb.domain.ports.driver import DriverProtocol
from simpledb.errors import StatementError
from simpledb.infra.drivers.registry import get_driver
from simpledb.infra.logging.setup import getLibraryLogger, logEvent

if TYPE_CHECKING:
    from simpledb.config import Settings


class SimpleDb:
    """
    Назначение/ответственность:
        Фасад слоя доступа к БД: пул соединений, сессии потоков, транзакции и построители Sql.
    Взаимодействия:
        - Каждый поток по умолчанию работает через свою Session (SessionBinding).
        - Явные сессии для задач/воркеров выдаёт open_session().
    Ограничения:
        - Все соединения пула открываются в конструкторе (pool_size штук).
    """

    def __init__(
        self,
        host: str | None,
        username: str | None,
        password: str | None,
        db_name: str | None,
        *,
        port: int | None = None,
        pool_size: int = DEFAULT_POOL_SIZE,
        driver: str | DriverProtocol = "sqlite",
        acquire_timeout: float = DEFAULT_ACQUIRE_TIMEOUT,
        dev_mode: bool = False,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
        mapper: RowMapper | None = None,
    ):
        self.info = ConnectionInfo(host=host, username=username, password=password, db_name=db_name, port=port)
        self.driver = get_driver(driver) if isinstance(driver, str) else driver
        self.options = ExecutionOptions(
            logger=logger or getLibraryLogger(),
            run_id=run_id or generate_run_id(),
            dev_mode=dev_mode,
            mapper=mapper or defaultMapper,
        )
        self.pool = ConnectionPool(
            self.driver,
            self.info,
            capacity=pool_size,
            acquire_timeout=acquire_timeout,
            logger=self.options.logger,
            run_id=self.options.run_id,
        )
        self._binding = SessionBinding(self.open_session)

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        logger: logging.Logger | None = None,
        run_id: str | None = None,
    ) -> "SimpleDb":
        return cls(
            settings.host,
            settings.username,
            settings.password,
            settings.db_name,
            port=settings.port,
            pool_size=settings.pool_size,
            driver=settings.driver,
            acquire_timeout=settings.acquire_timeout,
            dev_mode=settings.dev_mode,
            logger=logger,
            run_id=run_id,
        )

    @property
    def dev_mode(self) -> bool:
        return self.options.dev_mode

    def set_dev_mode(self, enabled: bool) -> None:
        self.options.dev_mode = enabled

    # Сессии

    def open_session(self) -> Session:
        return Session(self.pool, self.options)

    def session(self) -> Session:
        return self._binding.current()

    def release_session(self) -> None:
        self._binding.clear()

    # Операторы

    def new_statement(self) -> Sql:
        return self.session().new_statement()

    def gen_sql(self) -> Sql:
        return self.new_statement()

    def run(self, sql: str, *params: Any) -> None:
        self.new_statement().append(sql, *params).execute()

    def call_procedure(self, name: str, *params: Any) -> None:
        """
        Назначение:
            Вызывает хранимую процедуру: CALL name(?, ...).

        Поведение:
            - Имя процедуры не параметризуется, поэтому допускается только (схема.)идентификатор,
              иначе StatementError.
        """
        if not isValidProcedureName(name):
            raise StatementError(f"Invalid procedure name: {name!r}", details={"procedure": name})
        placeholders = ", ".join(["?"] * len(params))
        self.new_statement().append(f"CALL {name}({placeholders})", *params).execute()

    # Транзакции текущего потока

    def begin_transaction(self) -> None:
        self.session().begin()

    def commit(self) -> None:
        self.session().commit()

    def rollback(self) -> None:
        self.session().rollback()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        with self.session().transaction() as session:
            yield session

    # Ресурсы

    def stats(self) -> PoolStats:
        return self.pool.stats()

    def close(self) -> None:
        logEvent(self.options.logger, logging.INFO, self.options.run_id, "pool", "Closing SimpleDb")
        self.pool.close()

    def __enter__(self) -> "SimpleDb":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
