from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from simpledb.domain.error_codes import ErrorCode


@dataclass
class DbError(Exception):
    """
    Унифицированная ошибка слоя доступа к БД.
    """

    message: str
    code: ErrorCode = ErrorCode.UNEXPECTED_ERROR
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details or {},
        }


@dataclass
class ConnectionError(DbError):
    """
    Назначение:
        Соединение не удалось открыть/закрыть или пул уже закрыт.
    """

    code: ErrorCode = ErrorCode.CONNECTION_ERROR


@dataclass
class PoolExhausted(ConnectionError):
    """
    Назначение:
        За отведённое время в пуле не освободилось ни одного соединения.
    """

    code: ErrorCode = ErrorCode.POOL_EXHAUSTED


@dataclass
class StatementError(DbError):
    """
    Назначение:
        Некорректный SQL, несовпадение числа параметров или ошибка драйвера при выполнении.
    """

    code: ErrorCode = ErrorCode.STATEMENT_ERROR


@dataclass
class MappingError(DbError):
    """
    Назначение:
        Значение колонки нельзя привести к типу поля либо целевой тип нельзя создать.
    """

    code: ErrorCode = ErrorCode.MAPPING_ERROR


@dataclass
class InvalidStateError(DbError):
    """
    Назначение:
        Ошибка программиста: повторный commit/rollback, повторное использование Sql,
        повторный release соединения и т.п.
    """

    code: ErrorCode = ErrorCode.INVALID_STATE


class DriverError(Exception):
    """
    Назначение:
        Транспортная ошибка драйвера. Поднимается только адаптерами драйверов,
        ядро всегда переводит её в DbError.
    """


__all__ = [
    "DbError",
    "ConnectionError",
    "PoolExhausted",
    "StatementError",
    "MappingError",
    "InvalidStateError",
    "DriverError",
]
