# FILE: pharmacy_pos/services/credit_ledger.py
"""
Credit sale balances and the payments applied against them.

PENDING --(any payment)--> PARTIAL --(balance reaches 0)--> PAID
PAID is terminal: further payments raise AlreadyPaidError.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from pharmacy_pos.core.config import settings
from pharmacy_pos.core.errors import (
    AlreadyPaidError,
    CreditSaleNotFoundError,
    InvalidPaymentError,
    OverpaymentError,
    SaleEngineError,
)
from pharmacy_pos.models.credit import CreditPayment, CreditSale, CreditStatus
from pharmacy_pos.services.actors import resolve_actor
from pharmacy_pos.utils.money import ZERO, q2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentResult:
    credit_sale_id: int
    payment_id: int
    applied_amount: Decimal
    unapplied_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: CreditStatus


def next_status(balance: Decimal) -> CreditStatus:
    return CreditStatus.PAID if balance <= 0 else CreditStatus.PARTIAL


def is_overdue(cs: CreditSale, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return (cs.status != CreditStatus.PAID and cs.due_date is not None
            and cs.due_date < today)


def _lock_credit_sale(db: Session, *, business_id: int,
                      credit_sale_id: int) -> CreditSale:
    cs = (db.query(CreditSale).filter(
        CreditSale.id == credit_sale_id,
        CreditSale.business_id == business_id,
    ).with_for_update().first())
    if not cs:
        raise CreditSaleNotFoundError(credit_sale_id)
    return cs


def apply_payment(
    db: Session,
    *,
    business_id: int,
    credit_sale_id: int,
    amount,
    method: str = "CASH",
    actor_id: Optional[int] = None,
    notes: Optional[str] = None,
    reject_overpayment: Optional[bool] = None,
) -> PaymentResult:
    """
    Apply min(amount, balance) to the credit sale. With overpayment
    rejection enabled an amount above the balance raises instead.
    """
    if reject_overpayment is None:
        reject_overpayment = settings.CREDIT_REJECT_OVERPAYMENT

    amount = q2(amount)
    if amount <= 0:
        raise InvalidPaymentError(amount)

    try:
        cs = _lock_credit_sale(db,
                               business_id=business_id,
                               credit_sale_id=credit_sale_id)
        if cs.status == CreditStatus.PAID:
            raise AlreadyPaidError(cs.id)

        balance = q2(cs.balance_amount)
        if amount > balance and reject_overpayment:
            raise OverpaymentError(cs.id, balance, amount)
        applied = min(amount, balance)

        actor = resolve_actor(db, actor_id, business_id=business_id)
        pay = CreditPayment(
            credit_sale_id=cs.id,
            business_id=business_id,
            amount=applied,
            method=(method or "CASH").upper(),
            received_by_id=actor.id,
            received_by_name=actor.name,
            notes=notes,
        )
        db.add(pay)

        cs.paid_amount = q2(cs.paid_amount) + applied
        cs.balance_amount = balance - applied
        cs.status = next_status(cs.balance_amount)
        db.flush()

        result = PaymentResult(
            credit_sale_id=cs.id,
            payment_id=pay.id,
            applied_amount=applied,
            unapplied_amount=amount - applied,
            paid_amount=cs.paid_amount,
            balance=cs.balance_amount,
            status=cs.status,
        )
        db.commit()
    except SaleEngineError as e:
        db.rollback()
        logger.warning("Credit payment rejected credit_sale_id=%s: %s",
                       credit_sale_id, e.message)
        raise
    except Exception:
        db.rollback()
        logger.exception("Credit payment failed credit_sale_id=%s",
                         credit_sale_id)
        raise

    if result.unapplied_amount > 0:
        logger.warning(
            "Credit payment clamped credit_sale_id=%s offered=%s applied=%s",
            credit_sale_id, amount, result.applied_amount)
    logger.info("Credit payment credit_sale_id=%s applied=%s balance=%s status=%s",
                credit_sale_id, result.applied_amount, result.balance,
                result.status.value)
    return result


def get_credit_sale(db: Session, *, business_id: int,
                    credit_sale_id: int) -> CreditSale:
    cs = (db.query(CreditSale).options(
        selectinload(CreditSale.payments)).filter(
            CreditSale.id == credit_sale_id,
            CreditSale.business_id == business_id,
        ).first())
    if not cs:
        raise CreditSaleNotFoundError(credit_sale_id)
    return cs


def list_credit_sales(
    db: Session,
    *,
    business_id: int,
    status: Optional[CreditStatus] = None,
    outstanding_only: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> List[CreditSale]:
    q = db.query(CreditSale).filter(CreditSale.business_id == business_id)
    if status is not None:
        q = q.filter(CreditSale.status == status)
    if outstanding_only:
        q = q.filter(CreditSale.balance_amount > ZERO)
    return (q.order_by(CreditSale.created_at.desc(),
                       CreditSale.id.desc()).offset(offset).limit(limit).all())
