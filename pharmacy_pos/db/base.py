# pharmacy_pos/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All business-scoped tables (medicines, sales, credit, stock) inherit from this."""
    pass
