from __future__ import annotations

import types
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union, get_args, get_origin

from simpledb.errors import MappingError

_NUMERIC = (int, float, Decimal)
_TRUE_TEXT = ("true", "1")
_FALSE_TEXT = ("false", "0")


def typeName(declared: Any) -> str:
    return getattr(declared, "__name__", None) or str(declared)


def unwrapOptional(declared: Any) -> Any:
    """
    Назначение:
        Optional[X] / X | None -> X. Прочие Union и типы возвращаются без изменений.
    """
    origin = get_origin(declared)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in get_args(declared) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return declared


def _fail(value: Any, declared: Any, reason: str | None = None) -> MappingError:
    message = f"Cannot convert value of type {type(value).__name__} to {typeName(declared)}"
    if reason:
        message = f"{message}: {reason}"
    return MappingError(message, details={"value_type": type(value).__name__, "declared_type": typeName(declared)})


def _toBool(value: Any, declared: Any) -> bool:
    if isinstance(value, _NUMERIC):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_TEXT:
            return True
        if text in _FALSE_TEXT:
            return False
        raise _fail(value, declared, f"unrecognized boolean text {value!r}")
    raise _fail(value, declared)


def _parseIso(text: str) -> datetime:
    # до Python 3.11 fromisoformat не принимает суффикс Z
    text = text.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _toDatetime(value: Any, declared: Any) -> datetime:
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return _parseIso(value)
        except ValueError as exc:
            raise _fail(value, declared, f"not a timestamp {value!r}") from exc
    raise _fail(value, declared)


def _toDate(value: Any, declared: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        try:
            return _parseIso(value).date()
        except ValueError as exc:
            raise _fail(value, declared, f"not a date {value!r}") from exc
    raise _fail(value, declared)


def coerceValue(value: Any, declared: Any) -> Any:
    """
    Назначение:
        Детерминированное приведение сырого значения колонки к объявленному типу поля.

    Входные данные:
        value: Any
            Значение из Row (int, float, str, bool, datetime, None, ...).
        declared: Any
            Объявленный тип поля (в т.ч. Optional[X]).

    Выходные данные:
        Any
            Приведённое значение.

    Алгоритм:
        - None -> None без приведения.
        - Any/object -> без изменений.
        - bool: bool как есть; число -> != 0; текст 'true'/'false'/'1'/'0'.
        - int/float/Decimal: из любого числа (сужение/расширение).
        - str: str(value), bytes декодируются как UTF-8.
        - datetime: datetime/date/ISO-текст; date: datetime/ISO-текст.
        - Enum: по значению.
        - Совместимое значение (isinstance) -> без изменений.
        - Иначе MappingError с именами обоих типов.
    """
    if value is None:
        return None

    declared = unwrapOptional(declared)
    if declared is Any or declared is object:
        return value

    if declared is bool:
        if isinstance(value, bool):
            return value
        return _toBool(value, declared)

    if declared is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, _NUMERIC):
            try:
                return int(value)
            except (ValueError, OverflowError) as exc:
                raise _fail(value, declared, str(exc)) from exc
        raise _fail(value, declared)

    if declared is float:
        if isinstance(value, _NUMERIC):
            return float(value)
        raise _fail(value, declared)

    if declared is Decimal:
        if isinstance(value, Decimal):
            return value
        if isinstance(value, _NUMERIC):
            try:
                return Decimal(str(value))
            except InvalidOperation as exc:
                raise _fail(value, declared, str(exc)) from exc
        raise _fail(value, declared)

    if declared is str:
        if isinstance(value, str):
            return value
        if isinstance(value, (bytes, bytearray)):
            try:
                return bytes(value).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise _fail(value, declared, str(exc)) from exc
        return str(value)

    if declared is datetime:
        if isinstance(value, datetime):
            return value
        return _toDatetime(value, declared)

    if declared is date:
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        return _toDate(value, declared)

    if isinstance(declared, type) and issubclass(declared, Enum):
        if isinstance(value, declared):
            return value
        try:
            return declared(value)
        except ValueError as exc:
            raise _fail(value, declared, str(exc)) from exc

    checkType = get_origin(declared) or declared
    if isinstance(checkType, type) and isinstance(value, checkType):
        return value

    raise _fail(value, declared)
