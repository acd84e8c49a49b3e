from __future__ import annotations


def maskSecret(value: str | None) -> str | None:
    """
    Назначение:
        Маскирует секреты для безопасного вывода в stdout/logs.

    Входные данные:
        value: str | None
            Исходное значение (например, пароль к БД).

    Выходные данные:
        str | None
            Если value задано: возвращает '***', иначе None.
    """
    if value is None:
        return None
    return "***"


def truncateText(value: str | None, limit: int = 500) -> str | None:
    """
    Назначение:
        Ограничивает длину текста (SQL, сообщения драйвера), чтобы не раздувать логи и ошибки.

    Входные данные:
        value: str | None
            Текст для усечения.
        limit: int
            Максимально допустимая длина строки.

    Выходные данные:
        str | None
            Строка, не длиннее limit символов; None, если вход None.
    """
    if value is None:
        return None
    if len(value) <= limit:
        return value
    suffix = "..." if limit > 3 else ""
    head = limit - len(suffix)
    return value[:head] + suffix
