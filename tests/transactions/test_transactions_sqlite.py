from __future__ import annotations

import threading

import pytest

from simpledb.db import SimpleDb
from simpledb.domain.models import TransactionState
from simpledb.errors import InvalidStateError, PoolExhausted, StatementError


def _make_db(tmp_path, pool_size: int = 3, acquire_timeout: float = 1.0) -> SimpleDb:
    db = SimpleDb(
        None,
        None,
        None,
        str(tmp_path / "tx.db"),
        pool_size=pool_size,
        acquire_timeout=acquire_timeout,
    )
    db.run("CREATE TABLE item (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL)")
    return db


def _count_from_fresh_session(db: SimpleDb) -> int:
    return db.open_session().new_statement().append("SELECT COUNT(*) FROM item").select_long()


def test_rollback_discards_changes_for_other_connections(tmp_path):
    db = _make_db(tmp_path)

    db.begin_transaction()
    db.new_statement().append("INSERT INTO item (name) VALUES (?)", "a").insert()
    db.new_statement().append("INSERT INTO item (name) VALUES (?)", "b").insert()

    assert db.new_statement().append("SELECT COUNT(*) FROM item").select_long() == 2
    assert _count_from_fresh_session(db) == 0
    stats = db.stats()
    assert stats.checked_out == 1
    assert stats.pinned == 1

    db.rollback()

    assert _count_from_fresh_session(db) == 0
    assert db.new_statement().append("SELECT COUNT(*) FROM item").select_long() == 0
    assert db.stats().idle == 3
    assert db.session().tx.last_outcome is TransactionState.ROLLED_BACK
    db.close()


def test_commit_makes_changes_visible_to_fresh_connections(tmp_path):
    db = _make_db(tmp_path)

    db.begin_transaction()
    db.new_statement().append("INSERT INTO item (name) VALUES (?)", "a").insert()
    db.commit()

    assert _count_from_fresh_session(db) == 1
    assert db.stats().idle == 3
    assert db.session().tx.last_outcome is TransactionState.COMMITTED
    db.close()


def test_statements_in_transaction_share_one_connection(tmp_path):
    db = _make_db(tmp_path)
    session = db.session()

    session.begin()
    bound = session.bound_connection
    for name in ("a", "b", "c"):
        session.new_statement().append("INSERT INTO item (name) VALUES (?)", name).insert()
        assert session.bound_connection is bound
        assert db.stats().checked_out == 1
    session.commit()

    assert session.bound_connection is None
    assert session.transaction_state is TransactionState.NONE
    db.close()


def test_commit_or_rollback_without_transaction_is_rejected(tmp_path):
    db = _make_db(tmp_path)

    with pytest.raises(InvalidStateError):
        db.commit()
    with pytest.raises(InvalidStateError):
        db.rollback()

    db.begin_transaction()
    db.commit()
    with pytest.raises(InvalidStateError):
        db.commit()

    assert db.stats().idle == 3
    db.close()


def test_nested_begin_is_rejected(tmp_path):
    db = _make_db(tmp_path)
    db.begin_transaction()

    with pytest.raises(InvalidStateError):
        db.begin_transaction()

    db.rollback()
    assert db.stats().idle == 3
    db.close()


def test_transaction_context_rolls_back_and_reraises(tmp_path):
    db = _make_db(tmp_path)

    with pytest.raises(RuntimeError):
        with db.transaction() as session:
            session.new_statement().append("INSERT INTO item (name) VALUES (?)", "a").insert()
            raise RuntimeError("boom")

    assert _count_from_fresh_session(db) == 0
    assert db.stats().idle == 3

    with db.transaction() as session:
        session.new_statement().append("INSERT INTO item (name) VALUES (?)", "b").insert()

    assert _count_from_fresh_session(db) == 1
    db.close()


def test_statement_error_keeps_transaction_open(tmp_path):
    db = _make_db(tmp_path)
    db.begin_transaction()
    db.new_statement().append("INSERT INTO item (name) VALUES (?)", "a").insert()

    with pytest.raises(StatementError):
        db.new_statement().append("INSERT INTO missing (name) VALUES (?)", "x").insert()

    assert db.session().in_transaction
    assert db.stats().pinned == 1
    db.commit()
    assert _count_from_fresh_session(db) == 1
    db.close()


def test_builder_from_finished_transaction_cannot_run(tmp_path):
    db = _make_db(tmp_path)
    db.begin_transaction()
    stale = db.new_statement().append("INSERT INTO item (name) VALUES (?)", "late")
    db.commit()

    with pytest.raises(InvalidStateError):
        stale.insert()

    assert _count_from_fresh_session(db) == 0
    db.close()


def test_begin_fails_when_pool_is_exhausted(tmp_path):
    db = _make_db(tmp_path, pool_size=1, acquire_timeout=0.1)
    holder = db.open_session()
    holder.begin()

    other = db.open_session()
    with pytest.raises(PoolExhausted):
        other.begin()
    assert not other.in_transaction

    holder.rollback()
    other.begin()
    other.commit()
    assert db.stats().idle == 1
    db.close()


def test_release_session_rejected_during_transaction(tmp_path):
    db = _make_db(tmp_path)
    db.begin_transaction()

    with pytest.raises(InvalidStateError):
        db.release_session()

    db.rollback()
    db.release_session()
    db.close()


def test_each_thread_gets_its_own_session(tmp_path):
    db = _make_db(tmp_path)
    sessions = {}
    errors: list[Exception] = []

    def worker(name: str):
        try:
            sessions[name] = db.session()
            for i in range(5):
                with db.transaction():
                    db.new_statement().append("INSERT INTO item (name) VALUES (?)", f"{name}-{i}").insert()
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(name,)) for name in ("first", "second")]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30.0)

    assert errors == []
    assert sessions["first"] is not sessions["second"]
    assert _count_from_fresh_session(db) == 10
    assert db.stats().idle == 3
    db.close()
