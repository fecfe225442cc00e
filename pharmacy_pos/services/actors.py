# FILE: pharmacy_pos/services/actors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from pharmacy_pos.models.user import User

UNKNOWN_ACTOR = "Unknown"


@dataclass(frozen=True)
class Actor:
    id: Optional[int]
    name: str
    role: str = ""


def _user_display_name(user: User) -> str:
    name = getattr(user, "name", None)
    if name:
        return name
    email = getattr(user, "email", None)
    if email:
        return email
    return f"User #{getattr(user, 'id', 'unknown')}"


def resolve_actor(db: Session, user_id: Optional[int], *,
                  business_id: int) -> Actor:
    """
    Snapshot identity for audit columns. A missing user never aborts the
    operation; it is recorded as "Unknown".
    """
    if user_id is None:
        return Actor(id=None, name=UNKNOWN_ACTOR)
    user = (db.query(User).filter(
        User.id == user_id,
        User.business_id == business_id,
    ).first())
    if not user:
        return Actor(id=user_id, name=UNKNOWN_ACTOR)
    return Actor(id=user.id,
                 name=_user_display_name(user),
                 role=user.role or "")
