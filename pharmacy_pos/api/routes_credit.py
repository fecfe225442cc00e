# FILE: pharmacy_pos/api/routes_credit.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pharmacy_pos.api.deps import Principal, current_principal, get_db, require_roles
from pharmacy_pos.models.credit import CreditStatus
from pharmacy_pos.schemas.credit import (
    CreditPaymentIn,
    CreditSaleDetailOut,
    CreditSaleOut,
    PaymentResultOut,
)
from pharmacy_pos.services.credit_ledger import (
    apply_payment,
    get_credit_sale,
    is_overdue,
    list_credit_sales,
)
from pharmacy_pos.utils.resp import ok

router = APIRouter(prefix="/credit-sales", tags=["credit"])


def _credit_out(cs, detail: bool = False):
    model = CreditSaleDetailOut if detail else CreditSaleOut
    out = model.model_validate(cs)
    out.is_overdue = is_overdue(cs)
    return out


@router.get("")
def list_credit_sales_api(
    status: Optional[CreditStatus] = None,
    outstanding: bool = False,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    p: Principal = Depends(current_principal),
):
    rows = list_credit_sales(db,
                             business_id=p.business_id,
                             status=status,
                             outstanding_only=outstanding,
                             limit=size,
                             offset=(page - 1) * size)
    return ok([_credit_out(cs) for cs in rows])


@router.get("/{credit_sale_id}")
def get_credit_sale_api(
    credit_sale_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(current_principal),
):
    cs = get_credit_sale(db, business_id=p.business_id, credit_sale_id=credit_sale_id)
    return ok(_credit_out(cs, detail=True))


@router.post("/{credit_sale_id}/payments")
def apply_payment_api(
    credit_sale_id: int,
    payload: CreditPaymentIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_roles("ADMIN", "MANAGER", "CASHIER")),
):
    res = apply_payment(db,
                        business_id=p.business_id,
                        credit_sale_id=credit_sale_id,
                        amount=payload.amount,
                        method=payload.method,
                        actor_id=p.user_id,
                        notes=payload.notes)
    return ok(PaymentResultOut.model_validate(res), status_code=201)
