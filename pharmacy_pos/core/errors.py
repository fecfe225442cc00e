# pharmacy_pos/core/errors.py
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict


class SaleEngineError(Exception):
    """
    User-facing failure of a sale engine operation (4xx).
    Anything that is not a SaleEngineError is an infrastructure fault.
    """
    status_code: int = 400
    code: str = "SALE_ENGINE_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        return {}


# ---------- input validation ----------


class EmptyCartError(SaleEngineError):
    code = "EMPTY_CART"

    def __init__(self) -> None:
        super().__init__("Sale items are required")


class MissingCustomerInfoError(SaleEngineError):
    code = "MISSING_CUSTOMER_INFO"

    def __init__(self) -> None:
        super().__init__("Customer name and phone are required for credit sales")


class InvalidSaleError(SaleEngineError):
    code = "INVALID_SALE"

    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.value = value

    def details(self) -> Dict[str, Any]:
        return {"field": self.field, "value": str(self.value)}


class InvalidUnitError(SaleEngineError):
    code = "INVALID_UNIT"

    def __init__(self, medicine_id: int, unit: str) -> None:
        super().__init__(f"Unit '{unit}' is not defined for medicine {medicine_id}")
        self.medicine_id = medicine_id
        self.unit = unit

    def details(self) -> Dict[str, Any]:
        return {"medicine_id": self.medicine_id, "unit": self.unit}


class InvalidPaymentError(SaleEngineError):
    code = "INVALID_PAYMENT"

    def __init__(self, amount: Decimal) -> None:
        super().__init__("Payment amount must be > 0")
        self.amount = amount

    def details(self) -> Dict[str, Any]:
        return {"amount": str(self.amount)}


# ---------- not found ----------


class MedicineNotFoundError(SaleEngineError):
    status_code = 404
    code = "MEDICINE_NOT_FOUND"

    def __init__(self, medicine_id: int) -> None:
        super().__init__(f"Medicine not found: {medicine_id}")
        self.medicine_id = medicine_id

    def details(self) -> Dict[str, Any]:
        return {"medicine_id": self.medicine_id}


class SaleNotFoundError(SaleEngineError):
    status_code = 404
    code = "SALE_NOT_FOUND"

    def __init__(self, sale_id: int) -> None:
        super().__init__(f"Sale not found: {sale_id}")
        self.sale_id = sale_id

    def details(self) -> Dict[str, Any]:
        return {"sale_id": self.sale_id}


class CreditSaleNotFoundError(SaleEngineError):
    status_code = 404
    code = "CREDIT_SALE_NOT_FOUND"

    def __init__(self, credit_sale_id: int) -> None:
        super().__init__(f"Credit sale not found: {credit_sale_id}")
        self.credit_sale_id = credit_sale_id

    def details(self) -> Dict[str, Any]:
        return {"credit_sale_id": self.credit_sale_id}


# ---------- business-rule conflicts ----------


class InsufficientStockError(SaleEngineError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, medicine_id: int, available: int, requested: int,
                 medicine_name: str = "") -> None:
        label = medicine_name or f"medicine {medicine_id}"
        super().__init__(
            f"Insufficient stock for {label}. "
            f"Available: {available}, requested: {requested}")
        self.medicine_id = medicine_id
        self.available = available
        self.requested = requested

    def details(self) -> Dict[str, Any]:
        return {
            "medicine_id": self.medicine_id,
            "available": self.available,
            "requested": self.requested,
        }


class DuplicateRequestError(SaleEngineError):
    status_code = 409
    code = "DUPLICATE_REQUEST"

    def __init__(self, key: str) -> None:
        super().__init__("This sale was already submitted")
        self.key = key

    def details(self) -> Dict[str, Any]:
        return {"key": self.key}


class AlreadyPaidError(SaleEngineError):
    status_code = 409
    code = "ALREADY_PAID"

    def __init__(self, credit_sale_id: int) -> None:
        super().__init__(f"Credit sale {credit_sale_id} is already fully paid")
        self.credit_sale_id = credit_sale_id

    def details(self) -> Dict[str, Any]:
        return {"credit_sale_id": self.credit_sale_id}


class OverpaymentError(SaleEngineError):
    status_code = 409
    code = "OVERPAYMENT"

    def __init__(self, credit_sale_id: int, balance: Decimal,
                 amount: Decimal) -> None:
        super().__init__(
            f"Payment {amount} exceeds outstanding balance {balance}")
        self.credit_sale_id = credit_sale_id
        self.balance = balance
        self.amount = amount

    def details(self) -> Dict[str, Any]:
        return {
            "credit_sale_id": self.credit_sale_id,
            "balance": str(self.balance),
            "amount": str(self.amount),
        }


class VoidNotAllowedError(SaleEngineError):
    status_code = 409
    code = "VOID_NOT_ALLOWED"

    def __init__(self, sale_id: int, paid_amount: Decimal) -> None:
        super().__init__(
            f"Sale {sale_id} has credit payments of {paid_amount}; "
            "reconcile them before voiding")
        self.sale_id = sale_id
        self.paid_amount = paid_amount

    def details(self) -> Dict[str, Any]:
        return {"sale_id": self.sale_id, "paid_amount": str(self.paid_amount)}
