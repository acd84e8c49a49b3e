from __future__ import annotations

from typing import Any, Protocol, Sequence

from simpledb.domain.models import ConnectionInfo


class CursorProtocol(Protocol):
    """
    Назначение:
        Результат выполнения одного оператора (подмножество DB-API cursor).
    Инварианты/гарантии:
        - description is None для операторов без результирующего набора.
        - Ошибки fetch* поднимаются как DriverError.
    """

    description: Sequence[Sequence[Any]] | None
    rowcount: int
    lastrowid: int | None

    def fetchone(self) -> Sequence[Any] | None: ...
    def fetchall(self) -> list[Sequence[Any]]: ...
    def close(self) -> None: ...


class DriverConnectionProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт одного живого соединения драйвера.
    Ограничения:
        - SQL всегда приходит с плейсхолдерами '?', перевод в родной paramstyle делает драйвер.
        - Все родные ошибки драйвера поднимаются как DriverError.
    """

    def execute(self, sql: str, params: Sequence[Any]) -> CursorProtocol: ...
    def set_autocommit(self, enabled: bool) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
    def close(self) -> None: ...


class DriverProtocol(Protocol):
    """
    Назначение:
        Фабрика соединений конкретной СУБД.
    """

    name: str

    def open(self, info: ConnectionInfo) -> DriverConnectionProtocol: ...
