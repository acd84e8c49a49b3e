from __future__ import annotations

import re

_QUOTES = ("'", '"', "`")
_PROCEDURE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


def placeholderPositions(sql: str) -> list[int]:
    """
    Назначение:
        Находит позиции плейсхолдеров '?' вне строковых литералов, кавычек идентификаторов и комментариев.

    Входные данные:
        sql: str

    Выходные данные:
        list[int]
            Индексы символов '?' в исходной строке.

    Алгоритм:
        - Литералы '...', "...", `...` пропускаются целиком (удвоенная кавычка внутри литерала допустима).
        - Комментарии '-- ...' до конца строки и '/* ... */' пропускаются.
        - Незакрытый литерал/комментарий поглощает остаток строки.
    """
    positions: list[int] = []
    i = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        if ch in _QUOTES:
            end = sql.find(ch, i + 1)
            while end != -1 and end + 1 < n and sql[end + 1] == ch:
                end = sql.find(ch, end + 2)
            if end == -1:
                break
            i = end + 1
            continue
        if ch == "-" and sql.startswith("--", i):
            end = sql.find("\n", i)
            if end == -1:
                break
            i = end + 1
            continue
        if ch == "/" and sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            if end == -1:
                break
            i = end + 2
            continue
        if ch == "?":
            positions.append(i)
        i += 1
    return positions


def countPlaceholders(sql: str) -> int:
    return len(placeholderPositions(sql))


def expandInClause(fragment: str, count: int) -> str:
    """
    Назначение:
        Заменяет единственный '?' во фрагменте на список из count плейсхолдеров.

    Входные данные:
        fragment: str
            Например "WHERE id IN (?)".
        count: int
            Число значений (> 0).

    Выходные данные:
        str
            Например "WHERE id IN (?, ?, ?)".

    Поведение:
        - ValueError, если плейсхолдеров во фрагменте не ровно один или count < 1.
    """
    if count < 1:
        raise ValueError("IN clause requires at least one value")
    positions = placeholderPositions(fragment)
    if len(positions) != 1:
        raise ValueError(f"IN clause fragment must contain exactly one '?', found {len(positions)}")
    pos = positions[0]
    return fragment[:pos] + ", ".join(["?"] * count) + fragment[pos + 1:]


def toFormatParamstyle(sql: str) -> str:
    """
    Назначение:
        Переводит SQL с плейсхолдерами '?' в paramstyle 'format' (%s) для psycopg.

    Алгоритм:
        - '?' вне литералов -> '%s'.
        - Любой литеральный '%' -> '%%' (psycopg разбирает '%' во всём тексте запроса).
    """
    positions = set(placeholderPositions(sql))
    parts: list[str] = []
    for i, ch in enumerate(sql):
        if i in positions:
            parts.append("%s")
        elif ch == "%":
            parts.append("%%")
        else:
            parts.append(ch)
    return "".join(parts)


def isValidProcedureName(name: str) -> bool:
    return bool(_PROCEDURE_NAME_RE.match(name or ""))
