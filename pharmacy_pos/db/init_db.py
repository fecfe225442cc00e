# pharmacy_pos/db/init_db.py
from sqlalchemy.engine import Engine

from pharmacy_pos.db.base import Base
import pharmacy_pos.models  # noqa: F401  (fills Base.metadata)


def init_db(eng: Engine) -> None:
    Base.metadata.create_all(bind=eng)
