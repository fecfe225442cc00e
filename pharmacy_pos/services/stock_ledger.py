# FILE: pharmacy_pos/services/stock_ledger.py
"""
Guarded mutations of Medicine.stock_quantity.

Every function here runs inside the caller's transaction: it flushes but
never commits. Each successful mutation adds its StockMovement row to the
same session, so the quantity and the movement log commit (or roll back)
together.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from pharmacy_pos.core.errors import (
    InsufficientStockError,
    InvalidSaleError,
    MedicineNotFoundError,
)
from pharmacy_pos.models.medicine import Medicine
from pharmacy_pos.models.stock import StockMovement, StockMovementType
from pharmacy_pos.services.actors import Actor
from pharmacy_pos.services.pricing import whole_quantity

logger = logging.getLogger(__name__)


def medicine_lock_query(db: Session, *, business_id: int, ids: Iterable[int]):
    """Row-locking query (SELECT ... FOR UPDATE) over medicines of one business."""
    return (db.query(Medicine).options(selectinload(Medicine.units)).filter(
        Medicine.id.in_(list(ids)),
        Medicine.business_id == business_id,
    ).order_by(Medicine.id.asc()).with_for_update())


def lock_medicine(db: Session, *, business_id: int, medicine_id: int,
                  active_only: bool = True) -> Medicine:
    """
    Lock one medicine row of this business. Deductions only touch active
    medicines; restores pass active_only=False so a medicine withdrawn from
    the catalog can still take stock back.
    """
    med = medicine_lock_query(db, business_id=business_id,
                              ids=[medicine_id]).first()
    if not med or (active_only and not med.is_active):
        raise MedicineNotFoundError(medicine_id)
    return med


def lock_medicines(db: Session, *, business_id: int,
                   medicine_ids: Iterable[int]) -> dict:
    """
    Lock every row a cart touches in ascending id order, so two carts that
    share medicines always acquire locks in the same order.
    Returns {id: Medicine}; raises for the first id that is missing.
    """
    ids = sorted({int(i) for i in medicine_ids})
    if not ids:
        return {}
    rows: List[Medicine] = medicine_lock_query(db, business_id=business_id,
                                          ids=ids).all()
    by_id = {m.id: m for m in rows if m.is_active}
    for mid in ids:
        if mid not in by_id:
            raise MedicineNotFoundError(mid)
    return by_id


def create_stock_movement(
    db: Session,
    *,
    business_id: int,
    medicine: Medicine,
    movement_type: StockMovementType,
    qty_delta: int,
    previous_stock: int,
    new_stock: int,
    actor: Actor,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> StockMovement:
    """
    Central creator for StockMovement – always use this so audit is consistent.
    """
    mv = StockMovement(
        business_id=business_id,
        medicine_id=medicine.id,
        medicine_name=medicine.name,
        type=movement_type,
        quantity=qty_delta,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reference_type=reference_type,
        reference_id=reference_id,
        reason=reason,
        performed_by_id=actor.id,
        performed_by_name=actor.name,
        performed_by_role=actor.role or "",
    )
    db.add(mv)
    return mv


def reserve_and_deduct(
    db: Session,
    *,
    business_id: int,
    medicine_id: int,
    base_quantity: int,
    actor: Actor,
    movement_type: StockMovementType = StockMovementType.SALE,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    reason: Optional[str] = None,
    medicine: Optional[Medicine] = None,
) -> Tuple[int, int, StockMovement]:
    """
    Locking read, check, decrement, audit. Returns (previous, new, movement).
    Pass `medicine` when the row is already locked in this transaction.
    """
    qty = whole_quantity(base_quantity)
    med = medicine if medicine is not None else lock_medicine(
        db, business_id=business_id, medicine_id=medicine_id)

    previous = int(med.stock_quantity or 0)
    if previous < qty:
        logger.warning(
            "Insufficient stock business_id=%s medicine_id=%s available=%s requested=%s",
            business_id, med.id, previous, qty)
        raise InsufficientStockError(med.id, previous, qty, med.name)

    new = previous - qty
    med.stock_quantity = new
    mv = create_stock_movement(
        db,
        business_id=business_id,
        medicine=med,
        movement_type=movement_type,
        qty_delta=-qty,
        previous_stock=previous,
        new_stock=new,
        actor=actor,
        reference_type=reference_type,
        reference_id=reference_id,
        reason=reason,
    )
    db.flush()

    if med.is_low_stock:
        logger.warning("Medicine %s (%s) at or below reorder level: %s <= %s",
                       med.id, med.name, new, med.reorder_level)
    return previous, new, mv


def restore(
    db: Session,
    *,
    business_id: int,
    medicine_id: int,
    base_quantity: int,
    actor: Actor,
    movement_type: StockMovementType = StockMovementType.ADJUSTMENT,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> Tuple[int, int, StockMovement]:
    """
    Increment stock (void, returns, receipts). No upper bound is enforced.
    """
    qty = whole_quantity(base_quantity)
    med = lock_medicine(db, business_id=business_id, medicine_id=medicine_id,
                        active_only=False)

    previous = int(med.stock_quantity or 0)
    new = previous + qty
    med.stock_quantity = new
    mv = create_stock_movement(
        db,
        business_id=business_id,
        medicine=med,
        movement_type=movement_type,
        qty_delta=qty,
        previous_stock=previous,
        new_stock=new,
        actor=actor,
        reference_type=reference_type,
        reference_id=reference_id,
        reason=reason,
    )
    db.flush()
    return previous, new, mv


# ---------- stock operations (own transaction) ----------


def _commit(db: Session, mv: StockMovement) -> StockMovement:
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Stock movement commit failed medicine_id=%s",
                         mv.medicine_id)
        raise
    return mv


def add_stock(
    db: Session,
    *,
    business_id: int,
    medicine_id: int,
    quantity: int,
    actor: Actor,
    movement_type: StockMovementType = StockMovementType.PURCHASE,
    reference_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> StockMovement:
    if movement_type not in (StockMovementType.PURCHASE,
                             StockMovementType.ADDITION):
        raise InvalidSaleError("type", movement_type,
                               "Stock additions must be PURCHASE or ADDITION")
    try:
        # receipts go to catalog-active medicines only
        lock_medicine(db, business_id=business_id, medicine_id=medicine_id)
        _, new, mv = restore(
            db,
            business_id=business_id,
            medicine_id=medicine_id,
            base_quantity=quantity,
            actor=actor,
            movement_type=movement_type,
            reference_type="PURCHASE_ORDER" if reference_id else None,
            reference_id=reference_id,
            reason=reason,
        )
    except Exception:
        db.rollback()
        raise
    logger.info("Stock added business_id=%s medicine_id=%s qty=%s new=%s",
                business_id, medicine_id, quantity, new)
    return _commit(db, mv)


def record_loss(
    db: Session,
    *,
    business_id: int,
    medicine_id: int,
    quantity: int,
    actor: Actor,
    reason: Optional[str] = None,
) -> StockMovement:
    """Expired/damaged/stolen stock. Cannot exceed what is on hand."""
    try:
        _, new, mv = reserve_and_deduct(
            db,
            business_id=business_id,
            medicine_id=medicine_id,
            base_quantity=quantity,
            actor=actor,
            movement_type=StockMovementType.LOSS,
            reason=reason,
        )
    except Exception:
        db.rollback()
        raise
    logger.info("Stock loss business_id=%s medicine_id=%s qty=%s new=%s reason=%s",
                business_id, medicine_id, quantity, new, reason)
    return _commit(db, mv)


def record_adjustment(
    db: Session,
    *,
    business_id: int,
    medicine_id: int,
    quantity: int,
    actor: Actor,
    reason: Optional[str] = None,
) -> StockMovement:
    """
    Signed correction after a count. The result is clamped at zero and the
    movement records the change actually applied.
    """
    if quantity is None or int(quantity) == 0:
        raise InvalidSaleError("quantity", quantity,
                               "Adjustment quantity cannot be zero")
    try:
        med = lock_medicine(db, business_id=business_id,
                            medicine_id=medicine_id)
        previous = int(med.stock_quantity or 0)
        new = max(previous + int(quantity), 0)
        med.stock_quantity = new
        mv = create_stock_movement(
            db,
            business_id=business_id,
            medicine=med,
            movement_type=StockMovementType.ADJUSTMENT,
            qty_delta=new - previous,
            previous_stock=previous,
            new_stock=new,
            actor=actor,
            reason=reason,
        )
        db.flush()
    except Exception:
        db.rollback()
        raise
    logger.info("Stock adjustment business_id=%s medicine_id=%s requested=%s applied=%s new=%s",
                business_id, medicine_id, quantity, new - previous, new)
    return _commit(db, mv)


def list_movements(
    db: Session,
    *,
    business_id: int,
    medicine_id: Optional[int] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    limit: int = 100,
) -> List[StockMovement]:
    q = db.query(StockMovement).filter(
        StockMovement.business_id == business_id)
    if medicine_id is not None:
        q = q.filter(StockMovement.medicine_id == medicine_id)
    if reference_type:
        q = q.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        q = q.filter(StockMovement.reference_id == reference_id)
    return (q.order_by(StockMovement.created_at.desc(),
                       StockMovement.id.desc()).limit(limit).all())
