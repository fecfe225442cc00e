# Import every model module so relationship() strings resolve on first use.
from pharmacy_pos.models import (  # noqa: F401
    user,
    medicine,
    stock,
    sale,
    credit,
    idempotency,
)
