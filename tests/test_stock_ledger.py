import pytest

from pharmacy_pos.core.errors import (
    InsufficientStockError,
    InvalidSaleError,
    MedicineNotFoundError,
)
from pharmacy_pos.models.stock import StockMovement, StockMovementType
from pharmacy_pos.services import stock_ledger
from pharmacy_pos.services.actors import Actor, resolve_actor

ACTOR = Actor(id=None, name="Tester", role="ADMIN")


def test_deduct_returns_snapshot_and_writes_movement(db, ids, stock):
    prev, new, mv = stock_ledger.reserve_and_deduct(
        db, business_id=ids.business, medicine_id=ids.med_a,
        base_quantity=4, actor=ACTOR, reference_type="SALE", reference_id=99)
    db.commit()

    assert (prev, new) == (10, 6)
    assert stock(ids.med_a) == 6
    assert mv.type == StockMovementType.SALE
    assert mv.quantity == -4
    assert (mv.previous_stock, mv.new_stock) == (10, 6)
    assert mv.reference_id == 99


def test_deduct_more_than_available(db, ids, stock):
    with pytest.raises(InsufficientStockError) as ei:
        stock_ledger.reserve_and_deduct(
            db, business_id=ids.business, medicine_id=ids.med_b,
            base_quantity=6, actor=ACTOR)
    db.rollback()

    assert ei.value.details() == {
        "medicine_id": ids.med_b, "available": 5, "requested": 6}
    assert stock(ids.med_b) == 5
    assert db.query(StockMovement).count() == 0


def test_deduct_exact_stock_reaches_zero(db, ids, stock):
    stock_ledger.reserve_and_deduct(db, business_id=ids.business,
                                    medicine_id=ids.med_b, base_quantity=5,
                                    actor=ACTOR)
    db.commit()
    assert stock(ids.med_b) == 0


def test_medicine_of_other_business_is_not_found(db, ids):
    with pytest.raises(MedicineNotFoundError):
        stock_ledger.reserve_and_deduct(
            db, business_id=ids.business, medicine_id=ids.med_d,
            base_quantity=1, actor=ACTOR)


def test_lock_medicines_reports_first_missing_id(db, ids):
    with pytest.raises(MedicineNotFoundError) as ei:
        stock_ledger.lock_medicines(db, business_id=ids.business,
                                    medicine_ids=[ids.med_a, 9999, ids.med_d])
    assert ei.value.medicine_id == ids.med_d


def test_restore_has_no_upper_bound(db, ids, stock):
    prev, new, mv = stock_ledger.restore(
        db, business_id=ids.business, medicine_id=ids.med_a,
        base_quantity=1000, actor=ACTOR)
    db.commit()
    assert (prev, new) == (10, 1010)
    assert mv.quantity == 1000
    assert stock(ids.med_a) == 1010


def test_add_stock_commits_purchase_movement(db, ids, stock):
    mv = stock_ledger.add_stock(db, business_id=ids.business,
                                medicine_id=ids.med_b, quantity=7,
                                actor=ACTOR, reference_id=12)
    assert mv.type == StockMovementType.PURCHASE
    assert mv.reference_type == "PURCHASE_ORDER"
    assert stock(ids.med_b) == 12


def test_add_stock_rejects_non_addition_type(db, ids):
    with pytest.raises(InvalidSaleError):
        stock_ledger.add_stock(db, business_id=ids.business,
                               medicine_id=ids.med_b, quantity=1,
                               actor=ACTOR,
                               movement_type=StockMovementType.LOSS)


def test_loss_cannot_exceed_stock(db, ids, stock):
    with pytest.raises(InsufficientStockError):
        stock_ledger.record_loss(db, business_id=ids.business,
                                 medicine_id=ids.med_b, quantity=9,
                                 actor=ACTOR, reason="expired")
    assert stock(ids.med_b) == 5

    mv = stock_ledger.record_loss(db, business_id=ids.business,
                                  medicine_id=ids.med_b, quantity=2,
                                  actor=ACTOR, reason="broken bottle")
    assert mv.type == StockMovementType.LOSS
    assert mv.quantity == -2
    assert mv.reason == "broken bottle"
    assert stock(ids.med_b) == 3


def test_adjustment_clamps_at_zero_and_records_applied_delta(db, ids, stock):
    mv = stock_ledger.record_adjustment(db, business_id=ids.business,
                                        medicine_id=ids.med_b, quantity=-8,
                                        actor=ACTOR, reason="count")
    assert mv.type == StockMovementType.ADJUSTMENT
    assert mv.quantity == -5
    assert (mv.previous_stock, mv.new_stock) == (5, 0)
    assert stock(ids.med_b) == 0


def test_adjustment_of_zero_rejected(db, ids):
    with pytest.raises(InvalidSaleError):
        stock_ledger.record_adjustment(db, business_id=ids.business,
                                       medicine_id=ids.med_b, quantity=0,
                                       actor=ACTOR)


def test_movements_carry_actor_snapshot(db, ids):
    actor = resolve_actor(db, ids.admin, business_id=ids.business)
    stock_ledger.add_stock(db, business_id=ids.business,
                           medicine_id=ids.med_a, quantity=1, actor=actor,
                           movement_type=StockMovementType.ADDITION)
    [mv] = stock_ledger.list_movements(db, business_id=ids.business,
                                       medicine_id=ids.med_a)
    assert mv.performed_by_name == "Alan Admin"
    assert mv.performed_by_role == "ADMIN"
    assert stock_ledger.list_movements(db, business_id=ids.other_business) == []


def test_unknown_actor_resolves_to_placeholder(db, ids):
    assert resolve_actor(db, 424242, business_id=ids.business).name == "Unknown"
    # a user from another business is not resolved either
    assert resolve_actor(db, ids.outsider, business_id=ids.business).name == "Unknown"
