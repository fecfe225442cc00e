from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from pharmacy_pos.db.base import Base

COMMON_TABLE_ARGS = {
    "mysql_engine": "InnoDB",
    "mysql_charset": "utf8mb4",
    "mysql_collate": "utf8mb4_unicode_ci",
}


class Business(Base):
    """
    Tenant. Every medicine, sale and ledger row belongs to exactly one business.
    """
    __tablename__ = "businesses"
    __table_args__ = COMMON_TABLE_ARGS

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    users = relationship("User", back_populates="business")


class User(Base):
    __tablename__ = "users"
    __table_args__ = COMMON_TABLE_ARGS

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer,
                         ForeignKey("businesses.id"),
                         nullable=False,
                         index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(191), unique=True, nullable=False)
    role = Column(String(30), nullable=False,
                  default="CASHIER")  # ADMIN | MANAGER | CASHIER | PHARMACIST

    is_active = Column(Boolean, default=True, nullable=False)

    business = relationship("Business", back_populates="users")
