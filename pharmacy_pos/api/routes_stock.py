# FILE: pharmacy_pos/api/routes_stock.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pharmacy_pos.api.deps import Principal, current_principal, get_db, require_roles
from pharmacy_pos.models.stock import StockMovementType
from pharmacy_pos.schemas.stock import (
    StockAdditionIn,
    StockAdjustmentIn,
    StockLossIn,
    StockMovementOut,
)
from pharmacy_pos.services import stock_ledger
from pharmacy_pos.services.actors import resolve_actor
from pharmacy_pos.utils.resp import ok

router = APIRouter(prefix="/stock", tags=["stock"])

STOCK_ROLES = ("ADMIN", "MANAGER", "PHARMACIST")


@router.post("/{medicine_id}/additions")
def add_stock_api(
    medicine_id: int,
    payload: StockAdditionIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_roles(*STOCK_ROLES)),
):
    mv = stock_ledger.add_stock(
        db,
        business_id=p.business_id,
        medicine_id=medicine_id,
        quantity=payload.quantity,
        actor=resolve_actor(db, p.user_id, business_id=p.business_id),
        movement_type=StockMovementType(payload.type),
        reference_id=payload.reference_id,
        reason=payload.reason,
    )
    return ok(StockMovementOut.model_validate(mv), status_code=201)


@router.post("/{medicine_id}/losses")
def record_loss_api(
    medicine_id: int,
    payload: StockLossIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_roles(*STOCK_ROLES)),
):
    mv = stock_ledger.record_loss(
        db,
        business_id=p.business_id,
        medicine_id=medicine_id,
        quantity=payload.quantity,
        actor=resolve_actor(db, p.user_id, business_id=p.business_id),
        reason=payload.reason,
    )
    return ok(StockMovementOut.model_validate(mv), status_code=201)


@router.post("/{medicine_id}/adjustments")
def record_adjustment_api(
    medicine_id: int,
    payload: StockAdjustmentIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_roles(*STOCK_ROLES)),
):
    mv = stock_ledger.record_adjustment(
        db,
        business_id=p.business_id,
        medicine_id=medicine_id,
        quantity=payload.quantity,
        actor=resolve_actor(db, p.user_id, business_id=p.business_id),
        reason=payload.reason,
    )
    return ok(StockMovementOut.model_validate(mv), status_code=201)


@router.get("/movements")
def list_movements_api(
    medicine_id: Optional[int] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    p: Principal = Depends(current_principal),
):
    rows = stock_ledger.list_movements(db,
                                       business_id=p.business_id,
                                       medicine_id=medicine_id,
                                       reference_type=reference_type,
                                       reference_id=reference_id,
                                       limit=limit)
    return ok([StockMovementOut.model_validate(m) for m in rows])
