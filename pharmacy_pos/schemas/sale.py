# FILE: pharmacy_pos/schemas/sale.py
from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from pharmacy_pos.models.sale import PaymentMethod


class SaleItemIn(BaseModel):
    medicine_id: int
    quantity: int = Field(..., gt=0)
    unit_label: Optional[str] = None
    # manual price override; the caller is trusted to authorize it
    unit_price: Optional[Decimal] = Field(None, ge=0)


class SaleCreateIn(BaseModel):
    items: List[SaleItemIn] = []
    payment_method: PaymentMethod = PaymentMethod.CASH
    discount: Decimal = Field(Decimal("0"), ge=0)
    tax: Decimal = Field(Decimal("0"), ge=0)
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    due_date: Optional[date] = None
    idempotency_key: Optional[str] = Field(None, max_length=150)


class SaleItemOut(BaseModel):
    medicine_id: int
    medicine_name: str
    quantity: int
    unit_label: Optional[str] = None
    base_quantity: int
    unit_price: Decimal
    unit_cost: Decimal
    subtotal: Decimal
    cost_of_goods_sold: Decimal
    profit: Decimal

    model_config = ConfigDict(from_attributes=True)


class SaleOut(BaseModel):
    sale_id: int
    transaction_code: str
    cashier_id: int
    cashier_name: str
    items: List[SaleItemOut]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    profit: Decimal
    cost_of_goods_sold: Decimal
    payment_method: PaymentMethod
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    credit_sale_id: Optional[int] = None
    created_at: datetime


class SaleVoidOut(BaseModel):
    sale_id: int
    transaction_code: str
    restored: List[dict]
    discarded_credit_payments: Decimal
