from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping, Sequence

from simpledb.common.sanitize import maskSecret


@dataclass(frozen=True)
class ConnectionInfo:
    """
    Назначение:
        Параметры открытия соединения, передаваемые драйверу.
    Инварианты/гарантии:
        - password не попадает в repr.
    """

    host: str | None = None
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    db_name: str | None = None
    port: int | None = None

    def describe(self) -> str:
        return (
            f"host={self.host} port={self.port} db_name={self.db_name} "
            f"username={self.username} password={maskSecret(self.password)}"
        )


class TransactionState(str, Enum):
    """
    Назначение:
        Состояния транзакции сессии: NONE -> ACTIVE -> (COMMITTED | ROLLED_BACK) -> NONE.
    """

    NONE = "none"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Row(Mapping[str, Any]):
    """
    Назначение/ответственность:
        Одна строка результата: упорядоченное отображение имя колонки -> значение.
    Инварианты/гарантии:
        - Неизменяема после создания.
        - Порядок колонок совпадает с порядком в результате запроса.
        - Равна dict с теми же парами (сравнение Mapping).
    """

    __slots__ = ("_data",)

    def __init__(self, columns: Sequence[str], values: Sequence[Any]):
        if len(columns) != len(values):
            raise ValueError(f"Row has {len(columns)} columns but {len(values)} values")
        self._data: dict[str, Any] = dict(zip(columns, values))

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Row({self._data!r})"

    def first(self) -> Any:
        """Значение первой колонки (None для пустой строки)."""
        for value in self._data.values():
            return value
        return None

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)
