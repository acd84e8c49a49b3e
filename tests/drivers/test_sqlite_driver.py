from __future__ import annotations

from datetime import date, datetime

import pytest

from simpledb.domain.models import ConnectionInfo
from simpledb.errors import DriverError
from simpledb.infra.drivers.registry import get_driver, list_drivers
from simpledb.infra.drivers.sqlite_driver import SqliteDriver


def test_open_requires_db_name():
    with pytest.raises(DriverError):
        SqliteDriver().open(ConnectionInfo(host="ignored"))


def test_open_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "dir" / "app.db"

    conn = SqliteDriver().open(ConnectionInfo(db_name=str(path)))
    conn.close()

    assert path.exists()


def test_temporal_params_are_stored_as_iso_text(tmp_path):
    conn = SqliteDriver().open(ConnectionInfo(db_name=str(tmp_path / "t.db")))
    conn.execute("CREATE TABLE t (at TEXT, day TEXT)", [])
    conn.execute("INSERT INTO t (at, day) VALUES (?, ?)", [datetime(2024, 5, 6, 7, 8, 9), date(2024, 5, 6)])

    cursor = conn.execute("SELECT at, day FROM t", [])
    assert cursor.fetchone() == ("2024-05-06 07:08:09", "2024-05-06")
    cursor.close()
    conn.close()


def test_sql_errors_become_driver_errors(tmp_path):
    conn = SqliteDriver().open(ConnectionInfo(db_name=str(tmp_path / "t.db")))

    with pytest.raises(DriverError):
        conn.execute("SELEC 1", [])
    conn.close()


def test_disabling_autocommit_opens_transaction(tmp_path):
    conn = SqliteDriver().open(ConnectionInfo(db_name=str(tmp_path / "t.db")))

    conn.set_autocommit(False)
    assert conn.conn.in_transaction
    conn.rollback()
    conn.set_autocommit(True)
    assert not conn.conn.in_transaction
    conn.close()


def test_registry_resolves_known_drivers():
    assert isinstance(get_driver("SQLite"), SqliteDriver)
    assert list_drivers() == ["postgres", "postgresql", "sqlite"]
    with pytest.raises(ValueError):
        get_driver("oracle")
