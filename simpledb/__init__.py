from simpledb.core.mapper import RowMapper, map_row
from simpledb.core.pool import ConnectionPool, PooledConnection, PoolStats
from simpledb.core.session import Session, SessionBinding
from simpledb.core.sql import Sql
from simpledb.db import SimpleDb
from simpledb.domain.models import ConnectionInfo, Row, TransactionState
from simpledb.errors import (
    ConnectionError,
    DbError,
    InvalidStateError,
    MappingError,
    PoolExhausted,
    StatementError,
)

__version__ = "0.1.0"

__all__ = [
    "SimpleDb",
    "Sql",
    "Session",
    "SessionBinding",
    "ConnectionPool",
    "PooledConnection",
    "PoolStats",
    "RowMapper",
    "map_row",
    "Row",
    "ConnectionInfo",
    "TransactionState",
    "DbError",
    "ConnectionError",
    "PoolExhausted",
    "StatementError",
    "MappingError",
    "InvalidStateError",
]
