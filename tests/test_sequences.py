from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine, event, select

from app.core.errors import NumberingExhausted
from app.db import sequences
from app.db.models.counters import DocCounter
from app.db.models.orders import SendOrder
from app.db.session import Database
from app.db.sequences import (
    next_number, format_number, max_existing_number,
    PREFIX_SEND_ORDER, PREFIX_RECEIVE_ORDER, PREFIX_PAYMENT,
)


def test_format_number_pads_to_four_digits():
    assert format_number("F", 1) == "F0001"
    assert format_number("P", 12345) == "P12345"


def test_numbers_are_sequential_per_org_and_prefix(database, world):
    with database.transaction() as db:
        got = [next_number(db, "org-a", PREFIX_SEND_ORDER) for _ in range(3)]
        got.append(next_number(db, "org-a", PREFIX_PAYMENT))
        got.append(next_number(db, "org-b", PREFIX_SEND_ORDER))
    assert got == ["F0001", "F0002", "F0003", "P0001", "F0001"]


def test_counter_is_seeded_from_numbers_issued_before_it_existed(database, world):
    with database.transaction() as db:
        for no in ("F0007", "F0003", "IMPORTED-9"):
            db.add(SendOrder(org_id="org-a", order_no=no, factory_id=world.factory_id,
                             process_id=world.process_id))
        db.flush()
        assert max_existing_number(db, "org-a", PREFIX_SEND_ORDER) == 7

        assert next_number(db, "org-a", PREFIX_SEND_ORDER) == "F0008"
        assert next_number(db, "org-a", PREFIX_SEND_ORDER) == "F0009"

    with database.session() as db:
        seq = db.execute(select(DocCounter.seq).where(DocCounter.prefix == PREFIX_SEND_ORDER)).scalar_one()
    assert seq == 9


def test_gives_up_after_repeated_seed_conflicts(database, world, monkeypatch, captured_logs):
    monkeypatch.setattr(sequences, "_bump", lambda db, org_id, prefix: None)
    monkeypatch.setattr(sequences.time, "sleep", lambda s: None)

    with database.transaction() as db:
        db.add(DocCounter(org_id="org-a", prefix=PREFIX_PAYMENT, seq=1))

    with database.session() as db:
        with pytest.raises(NumberingExhausted):
            next_number(db, "org-a", PREFIX_PAYMENT)
        db.rollback()

    conflicts = [r for r in captured_logs() if r["message"] == "doc_counter_seed_conflict"]
    assert len(conflicts) == sequences.MAX_ATTEMPTS
    assert any(r["message"] == "doc_counter_exhausted" for r in captured_logs())


@pytest.fixture
def file_database(settings, tmp_path):
    """A file-backed SQLite database whose transactions take the write lock on BEGIN,
    so concurrent allocators really serialise on the counter row."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'numbers.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _no_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    db = Database(settings, engine=engine)
    db.create_all()
    with db.transaction() as s:
        s.add(DocCounter(org_id="org-a", prefix=PREFIX_RECEIVE_ORDER, seq=0))
    yield db
    db.dispose()


def test_concurrent_allocations_never_collide(file_database):
    def allocate(_):
        with file_database.transaction() as db:
            return next_number(db, "org-a", PREFIX_RECEIVE_ORDER)

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = list(pool.map(allocate, range(40)))

    assert len(set(numbers)) == 40
    assert sorted(numbers) == [format_number(PREFIX_RECEIVE_ORDER, n) for n in range(1, 41)]
