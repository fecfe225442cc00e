# FILE: pharmacy_pos/services/pricing.py
"""
Line pricing for the sale engine.

Pure functions over a CatalogSnapshot; nothing here touches the session,
so the figures can be checked without a database.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional

from pharmacy_pos.core.errors import InvalidSaleError, InvalidUnitError
from pharmacy_pos.models.medicine import Medicine
from pharmacy_pos.utils.money import d, q2


def _norm(label: Optional[str]) -> str:
    return (label or "").strip().lower()


def whole_quantity(qty, field: str = "quantity") -> int:
    """Positive whole number; fractions are rejected, not truncated."""
    try:
        value = d(qty) if qty is not None and not isinstance(qty, bool) else None
    except ValueError:
        value = None
    if value is None or not value.is_finite() or value <= 0 \
            or value != value.to_integral_value():
        raise InvalidSaleError(field, qty, "Quantity must be a whole number > 0")
    return int(value)


@dataclass(frozen=True)
class CatalogSnapshot:
    medicine_id: int
    name: str
    unit_price: Decimal
    cost_price: Decimal
    stock_quantity: int
    base_unit: str = "unit"
    # normalized unit type/label -> base units per unit
    conversions: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_medicine(cls, med: Medicine) -> "CatalogSnapshot":
        conversions: Dict[str, int] = {}
        for u in med.units or []:
            factor = int(u.quantity or 0)
            if factor <= 0:
                continue
            for key in (u.unit_type, u.label):
                if _norm(key):
                    conversions.setdefault(_norm(key), factor)
        return cls(
            medicine_id=med.id,
            name=med.name,
            unit_price=q2(med.unit_price),
            cost_price=q2(med.cost_price),
            stock_quantity=int(med.stock_quantity or 0),
            base_unit=med.base_unit or "unit",
            conversions=conversions,
        )

    def factor_for(self, unit_label: Optional[str]) -> int:
        """
        Base units per one `unit_label`. No label, or the base unit itself,
        means the quantity is already in base units. Unknown labels fail closed.
        """
        key = _norm(unit_label)
        if not key or key == _norm(self.base_unit):
            return 1
        factor = self.conversions.get(key)
        if factor is None:
            raise InvalidUnitError(self.medicine_id, unit_label)
        return factor


@dataclass(frozen=True)
class PricedLine:
    medicine_id: int
    medicine_name: str
    quantity: int
    unit_label: Optional[str]
    base_quantity: int
    unit_price: Decimal
    unit_cost: Decimal
    subtotal: Decimal
    cost: Decimal
    profit: Decimal


def price_line(
    snap: CatalogSnapshot,
    quantity: int,
    unit_label: Optional[str] = None,
    unit_price_override=None,
) -> PricedLine:
    """
    subtotal = unit_price * quantity   (price is per requested unit)
    cost     = unit_cost * base_quantity
    profit   = subtotal - cost
    """
    quantity = whole_quantity(quantity)

    base_quantity = quantity * snap.factor_for(unit_label)

    if unit_price_override is not None:
        unit_price = q2(unit_price_override)
        if unit_price < 0:
            raise InvalidSaleError("unit_price", unit_price,
                                   "Unit price cannot be negative")
    else:
        unit_price = snap.unit_price

    subtotal = q2(unit_price * quantity)
    cost = q2(snap.cost_price * base_quantity)

    return PricedLine(
        medicine_id=snap.medicine_id,
        medicine_name=snap.name,
        quantity=quantity,
        unit_label=unit_label or None,
        base_quantity=base_quantity,
        unit_price=unit_price,
        unit_cost=snap.cost_price,
        subtotal=subtotal,
        cost=cost,
        profit=subtotal - cost,
    )


@dataclass(frozen=True)
class SaleTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    cost_of_goods_sold: Decimal
    profit: Decimal


def aggregate_totals(lines, discount=0, tax=0) -> SaleTotals:
    """
    total  = subtotal - discount + tax
    profit = sum(line profit) - discount  (discount comes out of margin)
    """
    discount = q2(discount)
    tax = q2(tax)
    if discount < 0:
        raise InvalidSaleError("discount", discount, "Discount cannot be negative")
    if tax < 0:
        raise InvalidSaleError("tax", tax, "Tax cannot be negative")

    subtotal = q2(sum((ln.subtotal for ln in lines), d(0)))
    if discount > subtotal:
        raise InvalidSaleError("discount", discount,
                               f"Discount {discount} exceeds subtotal {subtotal}")

    cogs = q2(sum((ln.cost for ln in lines), d(0)))
    line_profit = q2(sum((ln.profit for ln in lines), d(0)))

    return SaleTotals(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        total=subtotal - discount + tax,
        cost_of_goods_sold=cogs,
        profit=line_profit - discount,
    )
