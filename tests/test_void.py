from decimal import Decimal

import pytest

from pharmacy_pos.core.errors import (
    MedicineNotFoundError,
    SaleNotFoundError,
    VoidNotAllowedError,
)
from pharmacy_pos.models.credit import CreditPayment, CreditSale
from pharmacy_pos.models.medicine import Medicine, MedicineUnit
from pharmacy_pos.models.sale import Sale, SaleItem
from pharmacy_pos.models.stock import StockMovement, StockMovementType
from pharmacy_pos.services.credit_ledger import apply_payment
from pharmacy_pos.services.sale_void import void_sale
from pharmacy_pos.services.sales import create_sale


def _credit_sale(db, ids):
    return create_sale(
        db, business_id=ids.business, cashier_id=ids.cashier,
        items=[{"medicine_id": ids.med_a, "quantity": 3},
               {"medicine_id": ids.med_b, "quantity": 2}],
        payment_method="CREDIT", customer_name="Mary", customer_phone="0700")


def test_void_restores_stock_and_deletes_sale(db, ids, stock):
    sale = create_sale(db, business_id=ids.business, cashier_id=ids.cashier,
                       items=[{"medicine_id": ids.med_a, "quantity": 3},
                              {"medicine_id": ids.med_b, "quantity": 2}])
    res = void_sale(db, business_id=ids.business, sale_id=sale.id,
                    actor_id=ids.admin, reason="wrong customer")

    assert stock(ids.med_a) == 10
    assert stock(ids.med_b) == 5
    assert db.query(Sale).count() == 0
    assert db.query(SaleItem).count() == 0
    assert res.transaction_code == sale.transaction_code
    assert {r["medicine_id"]: r["quantity"] for r in res.restored} == {
        ids.med_a: 3, ids.med_b: 2}


def test_void_keeps_sale_movements_and_adds_compensating_ones(db, ids):
    sale = create_sale(db, business_id=ids.business, cashier_id=ids.cashier,
                       items=[{"medicine_id": ids.med_a, "quantity": 3}])
    void_sale(db, business_id=ids.business, sale_id=sale.id, actor_id=ids.admin)

    movements = (db.query(StockMovement).filter(
        StockMovement.reference_id == sale.id).order_by(StockMovement.id).all())
    assert [(m.type, m.quantity, m.reference_type) for m in movements] == [
        (StockMovementType.SALE, -3, "SALE"),
        (StockMovementType.ADJUSTMENT, 3, "SALE_VOID"),
    ]
    assert movements[1].performed_by_name == "Alan Admin"
    assert sale.transaction_code in movements[1].reason
    assert sum(m.quantity for m in movements) == 0


def test_void_uses_quantity_deducted_at_sale_time(db, ids, stock):
    sale = create_sale(db, business_id=ids.business, cashier_id=ids.cashier,
                       items=[{"medicine_id": ids.med_c, "quantity": 2,
                               "unit_label": "box"}])
    assert stock(ids.med_c) == 80

    # catalog changes the box size after the sale
    box = db.query(MedicineUnit).filter(MedicineUnit.medicine_id == ids.med_c,
                                        MedicineUnit.unit_type == "BOX").one()
    box.quantity = 12
    db.commit()

    void_sale(db, business_id=ids.business, sale_id=sale.id)
    assert stock(ids.med_c) == 100


def test_void_credit_sale_discards_payments(db, ids):
    sale = _credit_sale(db, ids)
    apply_payment(db, business_id=ids.business,
                  credit_sale_id=sale.credit_sale.id, amount="100")

    res = void_sale(db, business_id=ids.business, sale_id=sale.id,
                    allow_paid_credit=True)

    assert res.discarded_credit_payments == Decimal("100")
    assert db.query(CreditSale).count() == 0
    assert db.query(CreditPayment).count() == 0


def test_void_paid_down_credit_sale_can_be_refused(db, ids, stock):
    sale = _credit_sale(db, ids)
    apply_payment(db, business_id=ids.business,
                  credit_sale_id=sale.credit_sale.id, amount="100")

    with pytest.raises(VoidNotAllowedError):
        void_sale(db, business_id=ids.business, sale_id=sale.id,
                  allow_paid_credit=False)

    assert db.query(Sale).count() == 1
    assert db.query(CreditPayment).count() == 1
    assert stock(ids.med_a) == 7


def test_void_unpaid_credit_sale_allowed_even_when_refusing_paid(db, ids):
    sale = _credit_sale(db, ids)
    void_sale(db, business_id=ids.business, sale_id=sale.id,
              allow_paid_credit=False)
    assert db.query(CreditSale).count() == 0


def test_void_unknown_or_foreign_sale(db, ids):
    sale = create_sale(db, business_id=ids.business, cashier_id=ids.cashier,
                       items=[{"medicine_id": ids.med_a, "quantity": 1}])
    with pytest.raises(SaleNotFoundError):
        void_sale(db, business_id=ids.business, sale_id=999)
    with pytest.raises(SaleNotFoundError):
        void_sale(db, business_id=ids.other_business, sale_id=sale.id)
    assert db.query(Sale).count() == 1


def test_void_after_medicine_is_deactivated_puts_stock_back(db, ids, stock):
    sale = create_sale(db, business_id=ids.business, cashier_id=ids.cashier,
                       items=[{"medicine_id": ids.med_a, "quantity": 3}])
    db.get(Medicine, ids.med_a).is_active = False
    db.commit()

    res = void_sale(db, business_id=ids.business, sale_id=sale.id)

    assert stock(ids.med_a) == 10
    assert res.restored[0]["new_stock"] == 10
    assert db.query(Sale).count() == 0


def test_void_is_all_or_nothing(db, ids, stock):
    sale = create_sale(db, business_id=ids.business, cashier_id=ids.cashier,
                       items=[{"medicine_id": ids.med_a, "quantity": 3},
                              {"medicine_id": ids.med_b, "quantity": 2}])
    # second line now points at a medicine row that no longer exists
    db.query(SaleItem).filter(SaleItem.sale_id == sale.id,
                              SaleItem.medicine_id == ids.med_b).update(
                                  {SaleItem.medicine_id: 9999})
    db.commit()
    db.expire_all()

    with pytest.raises(MedicineNotFoundError):
        void_sale(db, business_id=ids.business, sale_id=sale.id)

    # medicine A was restored first and rolled back with the rest
    assert stock(ids.med_a) == 7
    assert db.query(Sale).count() == 1
    assert db.query(StockMovement).filter(
        StockMovement.reference_type == "SALE_VOID").count() == 0
