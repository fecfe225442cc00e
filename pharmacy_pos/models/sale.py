# pharmacy_pos/models/sale.py
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, Enum, Text,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from pharmacy_pos.db.base import Base

Money = Numeric(14, 2)


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    MOBILE_MONEY = "MOBILE_MONEY"
    CREDIT = "CREDIT"


class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (
        UniqueConstraint("business_id", "transaction_code", name="uq_sales_business_txn"),
        Index("ix_sales_business_created", "business_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    transaction_code = Column(String(40), nullable=False)

    cashier_id = Column(Integer, nullable=False, index=True)
    cashier_name = Column(String(120), nullable=False, default="Unknown")

    subtotal = Column(Money, nullable=False, default=Decimal("0"))
    discount = Column(Money, nullable=False, default=Decimal("0"))
    tax = Column(Money, nullable=False, default=Decimal("0"))
    total = Column(Money, nullable=False, default=Decimal("0"))
    profit = Column(Money, nullable=False, default=Decimal("0"))
    cost_of_goods_sold = Column(Money, nullable=False, default=Decimal("0"))

    payment_method = Column(Enum(PaymentMethod, name="sale_payment_method"), nullable=False)
    customer_name = Column(String(120), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    idempotency_key = Column(String(191), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    items = relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    credit_sale = relationship(
        "CreditSale",
        back_populates="sale",
        uselist=False,
        cascade="all, delete-orphan",
    )


class SaleItem(Base):
    """
    Line with a catalog snapshot (name, prices) captured at sale time.
    base_quantity is what was actually deducted; void restores exactly that.
    """
    __tablename__ = "sale_items"

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    medicine_id = Column(Integer, nullable=False, index=True)
    medicine_name = Column(String(255), nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_label = Column(String(50), nullable=True)
    base_quantity = Column(Integer, nullable=False)

    unit_price = Column(Money, nullable=False)
    unit_cost = Column(Money, nullable=False)
    subtotal = Column(Money, nullable=False)
    cost_of_goods_sold = Column(Money, nullable=False)
    profit = Column(Money, nullable=False)

    sale = relationship("Sale", back_populates="items")
