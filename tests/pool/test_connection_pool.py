from __future__ import annotations

import threading
import time

import pytest

from simpledb.core.pool import ConnectionPool
from simpledb.domain.error_codes import ErrorCode
from simpledb.domain.models import ConnectionInfo
from simpledb.errors import ConnectionError, DriverError, InvalidStateError, PoolExhausted


class DummyCursor:
    description = None
    rowcount = 0
    lastrowid = None

    def fetchone(self):
        return None

    def fetchall(self):
        return []

    def close(self):
        pass


class DummyConnection:
    def __init__(self, index: int) -> None:
        self.index = index
        self.closed = False

    def execute(self, sql, params):
        return DummyCursor()

    def set_autocommit(self, enabled):
        pass

    def commit(self):
        pass

    def rollback(self):
        pass

    def close(self):
        self.closed = True


class DummyDriver:
    name = "dummy"

    def __init__(self, fail_after: int | None = None) -> None:
        self.opened: list[DummyConnection] = []
        self.fail_after = fail_after

    def open(self, info):
        if self.fail_after is not None and len(self.opened) >= self.fail_after:
            raise DriverError("connection refused")
        conn = DummyConnection(len(self.opened) + 1)
        self.opened.append(conn)
        return conn


def _make_pool(capacity: int, **kwargs) -> tuple[ConnectionPool, DummyDriver]:
    driver = DummyDriver()
    pool = ConnectionPool(driver, ConnectionInfo(host="db", db_name="test"), capacity=capacity, **kwargs)
    return pool, driver


def _assert_invariant(pool: ConnectionPool) -> None:
    stats = pool.stats()
    assert stats.idle + stats.checked_out == stats.capacity


@pytest.mark.parametrize("capacity", [1, 2, 5, 17])
def test_pool_opens_full_capacity_eagerly(capacity):
    pool, driver = _make_pool(capacity)

    stats = pool.stats()
    assert len(driver.opened) == capacity
    assert stats.idle == capacity
    assert stats.checked_out == 0


def test_invariant_holds_after_every_acquire_and_release():
    pool, _driver = _make_pool(4)
    held = []
    for _ in range(4):
        held.append(pool.acquire())
        _assert_invariant(pool)
    assert pool.stats().idle == 0

    for conn in held:
        pool.release(conn)
        _assert_invariant(pool)
    assert pool.stats().idle == 4
    assert len({conn.conn_id for conn in held}) == 4


def test_acquire_from_empty_pool_raises_pool_exhausted():
    pool, _driver = _make_pool(1)
    pool.acquire()

    started = time.monotonic()
    with pytest.raises(PoolExhausted) as excinfo:
        pool.acquire(timeout=0.1)

    assert time.monotonic() - started >= 0.09
    assert excinfo.value.code == ErrorCode.POOL_EXHAUSTED
    assert isinstance(excinfo.value, ConnectionError)
    _assert_invariant(pool)


def test_blocked_acquire_wakes_up_on_release():
    pool, _driver = _make_pool(2)
    first = pool.acquire()
    pool.acquire()
    assert pool.stats().idle == 0

    result: dict = {}

    def third_caller():
        started = time.monotonic()
        result["conn"] = pool.acquire(timeout=5.0)
        result["waited"] = time.monotonic() - started

    worker = threading.Thread(target=third_caller)
    worker.start()
    time.sleep(0.1)
    assert "conn" not in result

    released_at = time.monotonic()
    pool.release(first)
    worker.join(timeout=5.0)

    assert result["conn"] is first
    assert time.monotonic() - released_at < 0.5
    assert result["waited"] < 1.0
    _assert_invariant(pool)


def test_double_release_is_rejected():
    pool, _driver = _make_pool(2)
    conn = pool.acquire()
    pool.release(conn)

    with pytest.raises(InvalidStateError):
        pool.release(conn)

    assert pool.stats().idle == 2


def test_connection_from_another_pool_is_rejected():
    pool, _driver = _make_pool(1)
    other, _other_driver = _make_pool(1)
    foreign = other.acquire()

    with pytest.raises(InvalidStateError):
        pool.release(foreign)


def test_pinned_connection_cannot_be_released():
    pool, _driver = _make_pool(1)
    conn = pool.acquire()
    pool.pin(conn)
    assert pool.is_pinned(conn)

    with pytest.raises(InvalidStateError):
        pool.release(conn)
    assert pool.stats().checked_out == 1

    pool.unpin(conn)
    pool.release(conn)
    assert pool.stats().idle == 1


def test_open_failure_closes_already_opened_connections():
    driver = DummyDriver(fail_after=2)

    with pytest.raises(ConnectionError) as excinfo:
        ConnectionPool(driver, ConnectionInfo(db_name="x"), capacity=4)

    assert len(driver.opened) == 2
    assert all(conn.closed for conn in driver.opened)
    assert excinfo.value.details["opened"] == 2


def test_zero_capacity_is_rejected():
    with pytest.raises(ValueError):
        ConnectionPool(DummyDriver(), ConnectionInfo(db_name="x"), capacity=0)


def test_close_closes_idle_and_later_released_connections():
    pool, driver = _make_pool(3)
    held = pool.acquire()

    pool.close()

    assert pool.closed
    assert sum(1 for conn in driver.opened if conn.closed) == 2
    with pytest.raises(ConnectionError):
        pool.acquire(timeout=0.01)

    pool.release(held)
    assert all(conn.closed for conn in driver.opened)
    pool.close()


def test_waiting_acquire_fails_when_pool_is_closed():
    pool, _driver = _make_pool(1)
    pool.acquire()
    errors: list[Exception] = []

    def waiter():
        try:
            pool.acquire(timeout=5.0)
        except ConnectionError as exc:
            errors.append(exc)

    worker = threading.Thread(target=waiter)
    worker.start()
    time.sleep(0.05)
    pool.close()
    worker.join(timeout=5.0)

    assert len(errors) == 1
    assert not isinstance(errors[0], PoolExhausted)


def test_connection_context_manager_releases_on_error():
    pool, _driver = _make_pool(1)

    with pytest.raises(RuntimeError):
        with pool.connection() as conn:
            assert pool.stats().checked_out == 1
            raise RuntimeError("boom")

    assert conn is not None
    assert pool.stats().idle == 1


def test_concurrent_callers_never_share_a_connection():
    pool, _driver = _make_pool(3)
    in_use: set[int] = set()
    guard = threading.Lock()
    violations: list[int] = []

    def worker():
        for _ in range(50):
            conn = pool.acquire(timeout=5.0)
            with guard:
                if conn.conn_id in in_use:
                    violations.append(conn.conn_id)
                in_use.add(conn.conn_id)
            time.sleep(0.0005)
            with guard:
                in_use.discard(conn.conn_id)
            pool.release(conn)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30.0)

    assert violations == []
    assert pool.stats().idle == 3
    assert pool.stats().checked_out == 0
