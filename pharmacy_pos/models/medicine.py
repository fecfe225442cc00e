# pharmacy_pos/models/medicine.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric,
    ForeignKey, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from pharmacy_pos.db.base import Base

Money = Numeric(14, 2)


class Medicine(Base):
    """
    Catalog row. The sale engine reads unit/cost price and mutates
    stock_quantity only through services.stock_ledger.
    """
    __tablename__ = "medicines"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_medicine_stock_non_negative"),
        Index("ix_medicines_business_name", "business_id", "name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    generic_name = Column(String(255), default="")
    manufacturer = Column(String(255), default="")
    base_unit = Column(String(50), nullable=False, default="unit")  # e.g. "tablet"

    unit_price = Column(Money, nullable=False, default=Decimal("0"))
    cost_price = Column(Money, nullable=False, default=Decimal("0"))

    stock_quantity = Column(Integer, nullable=False, default=0)  # base units
    reorder_level = Column(Integer, nullable=False, default=10)

    requires_prescription = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    units = relationship(
        "MedicineUnit",
        back_populates="medicine",
        cascade="all, delete-orphan",
        order_by="MedicineUnit.id",
    )

    @property
    def is_low_stock(self) -> bool:
        return (self.stock_quantity or 0) <= (self.reorder_level or 0)


class MedicineUnit(Base):
    """
    Sellable pack size: quantity base units per one of this unit
    (e.g. BOX / "Box of 10" -> 10 tablets).
    """
    __tablename__ = "medicine_units"
    __table_args__ = (
        UniqueConstraint("medicine_id", "unit_type", name="uq_medicine_unit_type"),
        CheckConstraint("quantity > 0", name="ck_medicine_unit_quantity_positive"),
    )

    id = Column(Integer, primary_key=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id", ondelete="CASCADE"), nullable=False, index=True)

    unit_type = Column(String(30), nullable=False)  # BOX | STRIP | BOTTLE | ...
    label = Column(String(100), default="")
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Money, nullable=True)  # display only; sale lines price by unit_price

    medicine = relationship("Medicine", back_populates="units")
