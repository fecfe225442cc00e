# FILE: pharmacy_pos/services/sales.py
"""
Sale transaction coordinator.

create_sale() validates the cart, prices every line, deducts stock with
locking reads, and persists Sale + SaleItems + StockMovements (+ CreditSale
for CREDIT) as a single commit. Any failure rolls the whole session back and
releases the idempotency claim.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session, selectinload

from pharmacy_pos.core.config import settings
from pharmacy_pos.core.errors import (
    EmptyCartError,
    MissingCustomerInfoError,
    SaleEngineError,
    SaleNotFoundError,
)
from pharmacy_pos.models.credit import CreditSale, CreditStatus
from pharmacy_pos.models.sale import PaymentMethod, Sale, SaleItem
from pharmacy_pos.models.stock import StockMovementType
from pharmacy_pos.services import stock_ledger
from pharmacy_pos.services.actors import resolve_actor
from pharmacy_pos.services.idempotency import IdempotencyGuard, storable_key
from pharmacy_pos.services.numbers import generate_transaction_code
from pharmacy_pos.services.pricing import (
    CatalogSnapshot,
    PricedLine,
    aggregate_totals,
    price_line,
)
from pharmacy_pos.utils.money import ZERO

logger = logging.getLogger(__name__)

SALE_REF = "SALE"


@dataclass
class CartLine:
    medicine_id: int
    quantity: int
    unit_label: Optional[str] = None
    unit_price: Optional[Decimal] = None


def _as_cart_line(raw: Any) -> CartLine:
    if isinstance(raw, CartLine):
        return raw
    if isinstance(raw, dict):
        return CartLine(
            medicine_id=raw["medicine_id"],
            quantity=raw["quantity"],
            unit_label=raw.get("unit_label"),
            unit_price=raw.get("unit_price"),
        )
    # pydantic SaleItemIn or anything attribute-shaped
    return CartLine(
        medicine_id=getattr(raw, "medicine_id"),
        quantity=getattr(raw, "quantity"),
        unit_label=getattr(raw, "unit_label", None),
        unit_price=getattr(raw, "unit_price", None),
    )


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _release_quietly(guard: IdempotencyGuard, key: str, business_id: int) -> None:
    # the sale error must reach the caller, not a store outage
    try:
        guard.release(key, business_id=business_id)
    except Exception:
        logger.exception("Could not release idempotency key business_id=%s",
                         business_id)


def create_sale(
    db: Session,
    *,
    business_id: int,
    cashier_id: int,
    items: Sequence[Any],
    payment_method: PaymentMethod | str = PaymentMethod.CASH,
    discount=ZERO,
    tax=ZERO,
    customer_name: Optional[str] = None,
    customer_phone: Optional[str] = None,
    notes: Optional[str] = None,
    due_date: Optional[date] = None,
    idempotency_key: Optional[str] = None,
    guard: Optional[IdempotencyGuard] = None,
) -> Sale:
    payment_method = PaymentMethod(payment_method or PaymentMethod.CASH)
    customer_name = _clean(customer_name)
    customer_phone = _clean(customer_phone)

    # Input checks first: a rejected cart never claims the key.
    lines = [_as_cart_line(i) for i in (items or [])]
    if not lines:
        raise EmptyCartError()
    if payment_method == PaymentMethod.CREDIT and not (customer_name and customer_phone):
        raise MissingCustomerInfoError()

    claimed = False
    if guard is not None and idempotency_key:
        guard.begin(idempotency_key, business_id=business_id)
        claimed = True

    try:
        sale = _create_sale_tx(
            db,
            business_id=business_id,
            cashier_id=cashier_id,
            lines=lines,
            payment_method=payment_method,
            discount=discount,
            tax=tax,
            customer_name=customer_name,
            customer_phone=customer_phone,
            notes=notes,
            due_date=due_date,
            idempotency_key=idempotency_key,
        )
        db.commit()
    except SaleEngineError as e:
        db.rollback()
        if claimed:
            _release_quietly(guard, idempotency_key, business_id)
        logger.warning("Sale rejected business_id=%s cashier_id=%s: %s",
                       business_id, cashier_id, e.message)
        raise
    except Exception:
        db.rollback()
        if claimed:
            _release_quietly(guard, idempotency_key, business_id)
        logger.exception("Sale failed business_id=%s cashier_id=%s",
                         business_id, cashier_id)
        raise

    if claimed:
        try:
            guard.complete(idempotency_key,
                           business_id=business_id,
                           sale_id=sale.id)
        except Exception:
            # Sale is committed; an unmarked key only weakens duplicate detection.
            logger.exception("Could not mark idempotency key complete sale_id=%s",
                             sale.id)

    logger.info(
        "Sale committed id=%s code=%s business_id=%s items=%s total=%s %s profit=%s method=%s",
        sale.id, sale.transaction_code, business_id, len(sale.items),
        settings.CURRENCY, sale.total, sale.profit, sale.payment_method.value)
    return sale


def _create_sale_tx(
    db: Session,
    *,
    business_id: int,
    cashier_id: int,
    lines: List[CartLine],
    payment_method: PaymentMethod,
    discount,
    tax,
    customer_name: Optional[str],
    customer_phone: Optional[str],
    notes: Optional[str],
    due_date: Optional[date],
    idempotency_key: Optional[str],
) -> Sale:
    cashier = resolve_actor(db, cashier_id, business_id=business_id)

    locked = stock_ledger.lock_medicines(
        db,
        business_id=business_id,
        medicine_ids=[ln.medicine_id for ln in lines],
    )

    # Price every line against the snapshot taken under lock.
    priced: List[PricedLine] = []
    for ln in lines:
        snap = CatalogSnapshot.from_medicine(locked[int(ln.medicine_id)])
        priced.append(
            price_line(snap, ln.quantity, ln.unit_label, ln.unit_price))

    totals = aggregate_totals(priced, discount=discount, tax=tax)

    sale = Sale(
        business_id=business_id,
        transaction_code=generate_transaction_code(db, business_id=business_id),
        cashier_id=cashier_id,
        cashier_name=cashier.name,
        subtotal=totals.subtotal,
        discount=totals.discount,
        tax=totals.tax,
        total=totals.total,
        profit=totals.profit,
        cost_of_goods_sold=totals.cost_of_goods_sold,
        payment_method=payment_method,
        customer_name=customer_name,
        customer_phone=customer_phone,
        notes=notes,
        idempotency_key=(storable_key(idempotency_key)
                         if idempotency_key else None),
    )
    db.add(sale)
    db.flush()

    # Deduct in submitted order; a later failure discards every earlier one.
    for pl in priced:
        stock_ledger.reserve_and_deduct(
            db,
            business_id=business_id,
            medicine_id=pl.medicine_id,
            base_quantity=pl.base_quantity,
            actor=cashier,
            movement_type=StockMovementType.SALE,
            reference_type=SALE_REF,
            reference_id=sale.id,
            medicine=locked[pl.medicine_id],
        )
        sale.items.append(
            SaleItem(
                medicine_id=pl.medicine_id,
                medicine_name=pl.medicine_name,
                quantity=pl.quantity,
                unit_label=pl.unit_label,
                base_quantity=pl.base_quantity,
                unit_price=pl.unit_price,
                unit_cost=pl.unit_cost,
                subtotal=pl.subtotal,
                cost_of_goods_sold=pl.cost,
                profit=pl.profit,
            ))

    if payment_method == PaymentMethod.CREDIT:
        sale.credit_sale = CreditSale(
            business_id=business_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            total_amount=totals.total,
            paid_amount=ZERO,
            balance_amount=totals.total,
            status=CreditStatus.PENDING,
            due_date=due_date,
        )

    db.flush()
    return sale


def get_sale(db: Session, *, business_id: int, sale_id: int) -> Sale:
    sale = (db.query(Sale).options(
        selectinload(Sale.items),
        selectinload(Sale.credit_sale),
    ).filter(
        Sale.id == sale_id,
        Sale.business_id == business_id,
    ).first())
    if not sale:
        raise SaleNotFoundError(sale_id)
    return sale


def sale_result(sale: Sale) -> Dict[str, Any]:
    """Shape returned to callers of create_sale."""
    return {
        "sale_id": sale.id,
        "transaction_code": sale.transaction_code,
        "cashier_id": sale.cashier_id,
        "cashier_name": sale.cashier_name,
        "items": [{
            "medicine_id": it.medicine_id,
            "medicine_name": it.medicine_name,
            "quantity": it.quantity,
            "unit_label": it.unit_label,
            "base_quantity": it.base_quantity,
            "unit_price": it.unit_price,
            "unit_cost": it.unit_cost,
            "subtotal": it.subtotal,
            "cost_of_goods_sold": it.cost_of_goods_sold,
            "profit": it.profit,
        } for it in sale.items],
        "subtotal": sale.subtotal,
        "discount": sale.discount,
        "tax": sale.tax,
        "total": sale.total,
        "profit": sale.profit,
        "cost_of_goods_sold": sale.cost_of_goods_sold,
        "payment_method": sale.payment_method,
        "customer_name": sale.customer_name,
        "customer_phone": sale.customer_phone,
        "credit_sale_id": sale.credit_sale.id if sale.credit_sale else None,
        "created_at": sale.created_at,
    }
