from datetime import datetime, timedelta

import pytest

from pharmacy_pos.core.errors import DuplicateRequestError
from pharmacy_pos.models.idempotency import IdempotencyKey
from pharmacy_pos.services.idempotency import (
    DatabaseIdempotencyStore,
    InMemoryIdempotencyStore,
    derive_request_key,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_memory_store_blocks_in_flight_and_completed_keys():
    clock = FakeClock()
    store = InMemoryIdempotencyStore(ttl_seconds=60, clock=clock)

    store.begin("k", business_id=1)
    with pytest.raises(DuplicateRequestError):
        store.begin("k", business_id=1)

    store.complete("k", business_id=1, sale_id=5)
    clock.now += 59
    with pytest.raises(DuplicateRequestError):
        store.begin("k", business_id=1)


def test_memory_store_key_expires_after_window():
    clock = FakeClock()
    store = InMemoryIdempotencyStore(ttl_seconds=60, clock=clock)
    store.begin("k", business_id=1)
    store.complete("k", business_id=1)

    clock.now += 61
    store.begin("k", business_id=1)  # pruned, claimable again


def test_memory_store_release_and_scope():
    store = InMemoryIdempotencyStore(ttl_seconds=60, clock=FakeClock())
    store.begin("k", business_id=1)
    store.begin("k", business_id=2)
    store.release("k", business_id=1)
    store.begin("k", business_id=1)


def test_db_store_duplicate_and_release(session_factory, db):
    store = DatabaseIdempotencyStore(session_factory, ttl_seconds=60)
    store.begin("abc", business_id=1)
    with pytest.raises(DuplicateRequestError) as ei:
        store.begin("abc", business_id=1)
    assert ei.value.key == "abc"

    store.release("abc", business_id=1)
    store.begin("abc", business_id=1)


def test_db_store_release_keeps_completed_claims(session_factory, db):
    store = DatabaseIdempotencyStore(session_factory, ttl_seconds=60)
    store.begin("abc", business_id=1)
    store.complete("abc", business_id=1, sale_id=42)
    store.release("abc", business_id=1)

    row = db.query(IdempotencyKey).one()
    assert (row.status, row.sale_id) == ("COMPLETED", 42)
    with pytest.raises(DuplicateRequestError):
        store.begin("abc", business_id=1)


def test_db_store_takes_over_expired_claim(session_factory, db):
    store = DatabaseIdempotencyStore(session_factory, ttl_seconds=60)
    store.begin("old", business_id=1)
    row = db.query(IdempotencyKey).one()
    row.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db.commit()

    store.begin("old", business_id=1)
    db.expire_all()
    row = db.query(IdempotencyKey).one()
    assert row.status == "IN_FLIGHT"
    assert row.expires_at > datetime.utcnow()


def test_derived_key_is_stable_within_a_bucket():
    payload = {"items": [{"medicine_id": 1, "quantity": 2}], "discount": "0"}
    same_order = {"discount": "0", "items": [{"quantity": 2, "medicine_id": 1}]}

    k1 = derive_request_key(7, payload, window_seconds=60, now=120.0)
    k2 = derive_request_key(7, same_order, window_seconds=60, now=179.9)
    assert k1 == k2
    assert derive_request_key(7, payload, window_seconds=60, now=180.0) != k1
    assert derive_request_key(8, payload, window_seconds=60, now=120.0) != k1
    assert derive_request_key(
        7, {**payload, "discount": "5"}, window_seconds=60, now=120.0) != k1
