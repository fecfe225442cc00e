# pharmacy_pos/models/stock.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Enum, Text, Index

from pharmacy_pos.db.base import Base


class StockMovementType(str, enum.Enum):
    ADDITION = "ADDITION"
    SALE = "SALE"
    LOSS = "LOSS"
    ADJUSTMENT = "ADJUSTMENT"
    PURCHASE = "PURCHASE"


class StockMovement(Base):
    """
    Append-only audit of every change to Medicine.stock_quantity.
    medicine_id / reference_id are plain columns so history survives
    catalog deletes and voided sales.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        Index("ix_stock_mov_business_medicine", "business_id", "medicine_id"),
        Index("ix_stock_mov_reference", "reference_type", "reference_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, nullable=False, index=True)

    medicine_id = Column(Integer, nullable=False)
    medicine_name = Column(String(255), nullable=False, default="")

    type = Column(Enum(StockMovementType, name="stock_movement_type"), nullable=False)
    quantity = Column(Integer, nullable=False)  # signed, base units
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)

    reference_type = Column(String(30), nullable=True)  # SALE | SALE_VOID | PURCHASE_ORDER
    reference_id = Column(Integer, nullable=True)
    reason = Column(Text, nullable=True)

    performed_by_id = Column(Integer, nullable=True)
    performed_by_name = Column(String(120), nullable=False, default="Unknown")
    performed_by_role = Column(String(30), nullable=False, default="")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
