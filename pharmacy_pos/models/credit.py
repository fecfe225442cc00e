# pharmacy_pos/models/credit.py
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, Enum, Text,
    ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from pharmacy_pos.db.base import Base

Money = Numeric(14, 2)


class CreditStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class CreditSale(Base):
    """
    Outstanding balance of a CREDIT sale.
    paid_amount + balance_amount == total_amount at every commit.
    """
    __tablename__ = "credit_sales"
    __table_args__ = (
        CheckConstraint("balance_amount >= 0", name="ck_credit_balance_non_negative"),
        Index("ix_credit_sales_business_status", "business_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, unique=True)

    customer_name = Column(String(120), nullable=False)
    customer_phone = Column(String(50), nullable=False)

    total_amount = Column(Money, nullable=False)
    paid_amount = Column(Money, nullable=False, default=Decimal("0"))
    balance_amount = Column(Money, nullable=False)

    status = Column(Enum(CreditStatus, name="credit_sale_status"), nullable=False, default=CreditStatus.PENDING)
    due_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    sale = relationship("Sale", back_populates="credit_sale")
    payments = relationship(
        "CreditPayment",
        back_populates="credit_sale",
        cascade="all, delete-orphan",
        order_by="CreditPayment.id",
    )


class CreditPayment(Base):
    __tablename__ = "credit_payments"

    id = Column(Integer, primary_key=True, index=True)
    credit_sale_id = Column(Integer, ForeignKey("credit_sales.id", ondelete="CASCADE"), nullable=False, index=True)
    business_id = Column(Integer, nullable=False, index=True)

    amount = Column(Money, nullable=False)
    method = Column(String(30), nullable=False, default="CASH")

    received_by_id = Column(Integer, nullable=True)
    received_by_name = Column(String(120), nullable=False, default="Unknown")
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    credit_sale = relationship("CreditSale", back_populates="payments")
