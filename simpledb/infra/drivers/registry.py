from __future__ import annotations

from typing import Callable

from simpledb.domain.ports.driver import DriverProtocol


def _make_sqlite_driver() -> DriverProtocol:
    from simpledb.infra.drivers.sqlite_driver import SqliteDriver

    return SqliteDriver()


def _make_postgres_driver() -> DriverProtocol:
    # psycopg ставится extra-зависимостью "postgres", модуль импортируется только по запросу
    from simpledb.infra.drivers.postgres_driver import PostgresDriver

    return PostgresDriver()


_registry: dict[str, Callable[[], DriverProtocol]] = {
    "sqlite": _make_sqlite_driver,
    "postgres": _make_postgres_driver,
    "postgresql": _make_postgres_driver,
}


def get_driver(name: str) -> DriverProtocol:
    """
    Возвращает драйвер по имени или ValueError, если он не зарегистрирован.
    """
    try:
        factory = _registry[(name or "").strip().lower()]
    except KeyError as exc:
        raise ValueError(f"Unsupported driver: {name}") from exc
    return factory()


def list_drivers() -> list[str]:
    return sorted(_registry)
