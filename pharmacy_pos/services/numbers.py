# FILE: pharmacy_pos/services/numbers.py
from __future__ import annotations

import secrets
import string
from datetime import datetime

from sqlalchemy.orm import Session

from pharmacy_pos.models.sale import Sale

_ALPHABET = string.ascii_uppercase + string.digits


def _random_part(n: int = 6) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(n))


def generate_transaction_code(db: Session, *, business_id: int,
                              attempts: int = 5) -> str:
    """
    TXN-YYYYMMDD-XXXXXX, unique per business.
    """
    today_str = datetime.utcnow().strftime("%Y%m%d")
    code = f"TXN-{today_str}-{_random_part()}"
    for _ in range(attempts):
        taken = (db.query(Sale.id).filter(
            Sale.business_id == business_id,
            Sale.transaction_code == code,
        ).first())
        if not taken:
            return code
        code = f"TXN-{today_str}-{_random_part()}"
    # eight characters after repeated collisions
    return f"TXN-{today_str}-{_random_part(8)}"
