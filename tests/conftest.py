# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Fresh file-backed SQLite DB per test (tmp_path), or TEST_DATABASE_URL;
#   schema from Base.metadata
# - Separate connections per session, so the database idempotency store
#   really runs on its own transactions
# - Seed two businesses so every test can check tenant isolation
# - Medicines: A (100/60, stock 10), B (50/20, stock 5),
#   C tablets with BOX = 10 and STRIP = 5, other-business D
# ---------------------------------------------------------------------
from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal
from types import SimpleNamespace

import pytest

from pharmacy_pos.db.base import Base
from pharmacy_pos.db.init_db import init_db
from pharmacy_pos.db.session import make_engine, make_session_factory
from pharmacy_pos.models.medicine import Medicine, MedicineUnit
from pharmacy_pos.models.user import Business, User
from pharmacy_pos.services.idempotency import DatabaseIdempotencyStore


# Point TEST_DATABASE_URL at a scratch MySQL/Postgres database to run the
# suite (row locks included) against a real server. Its tables are dropped.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture()
def engine(tmp_path):
    if TEST_DATABASE_URL:
        eng = make_engine(TEST_DATABASE_URL)
        Base.metadata.drop_all(eng)
    else:
        eng = make_engine(f"sqlite:///{tmp_path / 'pos.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def ids(db):
    """Seed catalog + users; returns the ids tests need."""
    biz = Business(code="MAIN", name="Main Pharmacy")
    other = Business(code="OTHER", name="Other Pharmacy")
    db.add_all([biz, other])
    db.flush()

    cashier = User(business_id=biz.id, name="Jane Cashier",
                   email="jane@example.com", role="CASHIER")
    admin = User(business_id=biz.id, name="Alan Admin",
                 email="alan@example.com", role="ADMIN")
    outsider = User(business_id=other.id, name="Olga Other",
                    email="olga@example.com", role="CASHIER")
    db.add_all([cashier, admin, outsider])

    med_a = Medicine(business_id=biz.id, name="Amoxicillin 500mg",
                     unit_price=Decimal("100"), cost_price=Decimal("60"),
                     stock_quantity=10, reorder_level=2)
    med_b = Medicine(business_id=biz.id, name="Paracetamol 1g",
                     unit_price=Decimal("50"), cost_price=Decimal("20"),
                     stock_quantity=5, reorder_level=1)
    med_c = Medicine(business_id=biz.id, name="Cetirizine 10mg",
                     base_unit="tablet",
                     unit_price=Decimal("5"), cost_price=Decimal("2"),
                     stock_quantity=100, reorder_level=10)
    med_c.units = [
        MedicineUnit(unit_type="BOX", label="Box of 10", quantity=10),
        MedicineUnit(unit_type="STRIP", label="Strip", quantity=5),
    ]
    med_d = Medicine(business_id=other.id, name="Other Shop Ibuprofen",
                     unit_price=Decimal("30"), cost_price=Decimal("10"),
                     stock_quantity=50)
    db.add_all([med_a, med_b, med_c, med_d])
    db.commit()

    return SimpleNamespace(
        business=biz.id,
        other_business=other.id,
        cashier=cashier.id,
        admin=admin.id,
        outsider=outsider.id,
        med_a=med_a.id,
        med_b=med_b.id,
        med_c=med_c.id,
        med_d=med_d.id,
    )


@pytest.fixture()
def guard(session_factory):
    return DatabaseIdempotencyStore(session_factory, ttl_seconds=60)


def stock_of(session_factory, medicine_id: int) -> int:
    """Read committed stock on a fresh session."""
    s = session_factory()
    try:
        return s.get(Medicine, medicine_id).stock_quantity
    finally:
        s.close()


@pytest.fixture()
def stock(session_factory):
    return lambda medicine_id: stock_of(session_factory, medicine_id)
