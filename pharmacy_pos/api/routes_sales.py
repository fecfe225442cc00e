# FILE: pharmacy_pos/api/routes_sales.py
from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from pharmacy_pos.api.deps import (
    Principal,
    current_principal,
    get_db,
    get_guard,
    require_roles,
)
from pharmacy_pos.schemas.sale import SaleCreateIn, SaleOut, SaleVoidOut
from pharmacy_pos.services.idempotency import IdempotencyGuard, derive_request_key
from pharmacy_pos.services.sale_void import void_sale
from pharmacy_pos.services.sales import create_sale, get_sale, sale_result
from pharmacy_pos.utils.resp import ok

router = APIRouter(prefix="/sales", tags=["sales"])


@router.post("")
def create_sale_api(
    payload: SaleCreateIn,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    guard: IdempotencyGuard = Depends(get_guard),
    p: Principal = Depends(require_roles("ADMIN", "CASHIER", "PHARMACIST")),
):
    key = idempotency_key or payload.idempotency_key
    if not key:
        key = derive_request_key(p.user_id,
                                 payload.model_dump(mode="json",
                                                    exclude={"idempotency_key"}))

    sale = create_sale(
        db,
        business_id=p.business_id,
        cashier_id=p.user_id,
        items=payload.items,
        payment_method=payload.payment_method,
        discount=payload.discount,
        tax=payload.tax,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        notes=payload.notes,
        due_date=payload.due_date,
        idempotency_key=key,
        guard=guard,
    )
    return ok(SaleOut(**sale_result(sale)), status_code=201)


@router.get("/{sale_id}")
def get_sale_api(
    sale_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(current_principal),
):
    sale = get_sale(db, business_id=p.business_id, sale_id=sale_id)
    return ok(SaleOut(**sale_result(sale)))


@router.delete("/{sale_id}")
def void_sale_api(
    sale_id: int,
    reason: Optional[str] = None,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_roles("ADMIN")),
):
    res = void_sale(db,
                    business_id=p.business_id,
                    sale_id=sale_id,
                    actor_id=p.user_id,
                    reason=reason)
    return ok(SaleVoidOut(**asdict(res)))
