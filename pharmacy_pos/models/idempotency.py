# pharmacy_pos/models/idempotency.py
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime

from pharmacy_pos.db.base import Base


class IdempotencyKey(Base):
    """
    Shared claim table for sale submissions. One row per business-scoped key;
    rows past expires_at are free to be taken over.
    """
    __tablename__ = "idempotency_keys"

    key = Column(String(191), primary_key=True)
    business_id = Column(Integer, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="IN_FLIGHT")  # IN_FLIGHT | COMPLETED
    sale_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
