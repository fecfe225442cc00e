# FILE: pharmacy_pos/schemas/stock.py
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, ConfigDict

from pharmacy_pos.models.stock import StockMovementType


class StockAdditionIn(BaseModel):
    quantity: int = Field(..., gt=0)
    type: Literal["PURCHASE", "ADDITION"] = "PURCHASE"
    reference_id: Optional[int] = None
    reason: Optional[str] = None


class StockLossIn(BaseModel):
    quantity: int = Field(..., gt=0)
    reason: Optional[str] = None


class StockAdjustmentIn(BaseModel):
    quantity: int  # signed
    reason: Optional[str] = None


class StockMovementOut(BaseModel):
    id: int
    medicine_id: int
    medicine_name: str
    type: StockMovementType
    quantity: int
    previous_stock: int
    new_stock: int
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    reason: Optional[str] = None
    performed_by_id: Optional[int] = None
    performed_by_name: str
    performed_by_role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
