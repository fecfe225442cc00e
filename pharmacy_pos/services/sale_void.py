# FILE: pharmacy_pos/services/sale_void.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from pharmacy_pos.core.config import settings
from pharmacy_pos.core.errors import (
    SaleEngineError,
    SaleNotFoundError,
    VoidNotAllowedError,
)
from pharmacy_pos.models.credit import CreditSale
from pharmacy_pos.models.sale import Sale
from pharmacy_pos.models.stock import StockMovementType
from pharmacy_pos.services import stock_ledger
from pharmacy_pos.services.actors import resolve_actor
from pharmacy_pos.utils.money import ZERO, q2

logger = logging.getLogger(__name__)

VOID_REF = "SALE_VOID"


@dataclass(frozen=True)
class VoidResult:
    sale_id: int
    transaction_code: str
    restored: List[dict]
    discarded_credit_payments: Decimal


def void_sale(
    db: Session,
    *,
    business_id: int,
    sale_id: int,
    actor_id: Optional[int] = None,
    reason: Optional[str] = None,
    allow_paid_credit: Optional[bool] = None,
) -> VoidResult:
    """
    Compensating reversal of a committed sale: put back exactly the base
    quantity each line deducted, write ADJUSTMENT movements referencing the
    sale, then delete the CreditSale (with its payments), the items and the
    sale. One commit; nothing is applied if any step fails.

    Destructive: credit payments already recorded are discarded with the
    CreditSale unless allow_paid_credit is False, in which case the void is
    refused.
    """
    if allow_paid_credit is None:
        allow_paid_credit = settings.VOID_ALLOW_PAID_CREDIT

    try:
        sale = (db.query(Sale).options(
            selectinload(Sale.items),
            selectinload(Sale.credit_sale).selectinload(CreditSale.payments),
        ).filter(
            Sale.id == sale_id,
            Sale.business_id == business_id,
        ).with_for_update().first())
        if not sale:
            raise SaleNotFoundError(sale_id)

        paid = q2(sale.credit_sale.paid_amount) if sale.credit_sale else ZERO
        if paid > 0 and not allow_paid_credit:
            raise VoidNotAllowedError(sale.id, paid)

        actor = resolve_actor(db, actor_id, business_id=business_id)
        note = f"Void of sale {sale.transaction_code}"
        if reason:
            note = f"{note}: {reason}"

        restored = []
        # lock in id order, same as sale creation
        for item in sorted(sale.items, key=lambda i: i.medicine_id):
            previous, new, _ = stock_ledger.restore(
                db,
                business_id=business_id,
                medicine_id=item.medicine_id,
                base_quantity=item.base_quantity,
                actor=actor,
                movement_type=StockMovementType.ADJUSTMENT,
                reference_type=VOID_REF,
                reference_id=sale.id,
                reason=note,
            )
            restored.append({
                "medicine_id": item.medicine_id,
                "quantity": item.base_quantity,
                "previous_stock": previous,
                "new_stock": new,
            })

        result = VoidResult(
            sale_id=sale.id,
            transaction_code=sale.transaction_code,
            restored=restored,
            discarded_credit_payments=paid,
        )

        # cascades to SaleItems, CreditSale and CreditPayments
        db.delete(sale)
        db.commit()
    except SaleEngineError as e:
        db.rollback()
        logger.warning("Void rejected sale_id=%s: %s", sale_id, e.message)
        raise
    except Exception:
        db.rollback()
        logger.exception("Void failed sale_id=%s", sale_id)
        raise

    if paid > 0:
        logger.warning(
            "Voided credit sale %s discarded %s %s of recorded payments",
            result.transaction_code, settings.CURRENCY, paid)
    logger.info("Sale voided id=%s code=%s lines=%s by=%s",
                result.sale_id, result.transaction_code, len(restored),
                actor.name)
    return result
