from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Единая таксономия кодов ошибок слоя доступа к БД.
    """

    CONNECTION_ERROR = "CONNECTION_ERROR"
    POOL_EXHAUSTED = "POOL_EXHAUSTED"
    STATEMENT_ERROR = "STATEMENT_ERROR"
    MAPPING_ERROR = "MAPPING_ERROR"
    INVALID_STATE = "INVALID_STATE"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
