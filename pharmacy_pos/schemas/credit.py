# FILE: pharmacy_pos/schemas/credit.py
from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from pharmacy_pos.models.credit import CreditStatus


class CreditPaymentIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: str = "CASH"
    notes: Optional[str] = None


class CreditPaymentOut(BaseModel):
    id: int
    amount: Decimal
    method: str
    received_by_id: Optional[int] = None
    received_by_name: str
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreditSaleOut(BaseModel):
    id: int
    sale_id: int
    customer_name: str
    customer_phone: str
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    status: CreditStatus
    due_date: Optional[date] = None
    is_overdue: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreditSaleDetailOut(CreditSaleOut):
    payments: List[CreditPaymentOut] = []


class PaymentResultOut(BaseModel):
    credit_sale_id: int
    payment_id: int
    applied_amount: Decimal
    unapplied_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: CreditStatus

    model_config = ConfigDict(from_attributes=True)
