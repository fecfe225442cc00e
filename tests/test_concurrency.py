# Two cashiers selling the last units of one medicine at the same moment.
# On a real server (TEST_DATABASE_URL) the SELECT ... FOR UPDATE row locks
# serialize them; SQLite drops FOR UPDATE, so there each transaction opens
# with BEGIN IMMEDIATE and takes the database write lock up front instead.
import threading

import pytest
from sqlalchemy import event
from sqlalchemy.dialects import mysql, postgresql

from pharmacy_pos.core.errors import InsufficientStockError
from pharmacy_pos.db.session import make_engine, make_session_factory
from pharmacy_pos.models.sale import Sale
from pharmacy_pos.services import stock_ledger
from pharmacy_pos.services.sales import create_sale


@pytest.fixture()
def locking_factory(engine):
    if engine.dialect.name != "sqlite":
        yield make_session_factory(engine)
        return

    eng = make_engine(engine.url.render_as_string(hide_password=False))

    @event.listens_for(eng, "connect")
    def _no_implicit_begin(dbapi_conn, record):
        dbapi_conn.isolation_level = None

    @event.listens_for(eng, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    yield make_session_factory(eng)
    eng.dispose()


@pytest.mark.parametrize("dialect", [mysql.dialect(), postgresql.dialect()],
                         ids=["mysql", "postgresql"])
def test_medicine_lock_query_locks_rows(db, dialect):
    q = stock_ledger.medicine_lock_query(db, business_id=1, ids=[3, 1])
    sql = str(q.statement.compile(dialect=dialect))
    assert "FOR UPDATE" in sql
    assert "ORDER BY" in sql


def test_racing_sales_never_overdraw(locking_factory, ids, stock, db):
    start = threading.Barrier(2)
    outcomes = []
    outcomes_lock = threading.Lock()

    def sell():
        s = locking_factory()
        try:
            start.wait(timeout=10)
            sale = create_sale(s, business_id=ids.business,
                               cashier_id=ids.cashier,
                               items=[{"medicine_id": ids.med_b, "quantity": 3}])
            result = ("sold", sale.id)
        except InsufficientStockError as e:
            result = ("short", e.available)
        except Exception as e:
            result = ("error", repr(e))
        finally:
            s.close()
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=sell) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(kind for kind, _ in outcomes) == ["short", "sold"], outcomes
    assert [v for kind, v in outcomes if kind == "short"] == [2]
    assert stock(ids.med_b) == 2
    assert db.query(Sale).count() == 1
