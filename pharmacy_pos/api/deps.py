# pharmacy_pos/api/deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from pharmacy_pos.core.config import settings
from pharmacy_pos.db.session import SessionLocal
from pharmacy_pos.services.idempotency import IdempotencyGuard, make_guard


# =========================================================
# DB
# =========================================================
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


_guard: Optional[IdempotencyGuard] = None


def get_guard() -> IdempotencyGuard:
    global _guard
    if _guard is None:
        _guard = make_guard(SessionLocal)
    return _guard


# =========================================================
# AUTH HELPERS
# =========================================================
@dataclass(frozen=True)
class Principal:
    user_id: int
    business_id: int
    role: str = ""


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_token(raw_token: str) -> dict:
    try:
        return jwt.decode(raw_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def current_principal(
    authorization: Optional[str] = Header(None),
) -> Principal:
    """
    Token claims: sub = user id, bid = business id, role.
    Issuing tokens is the auth service's job, not ours.
    """
    raw = _extract_bearer(authorization)
    if not raw:
        raise HTTPException(status_code=401, detail="Missing token")

    payload = _decode_token(raw)
    try:
        user_id = int(payload.get("sub"))
        business_id = int(payload.get("bid"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Missing user or business in token")
    return Principal(user_id=user_id,
                     business_id=business_id,
                     role=str(payload.get("role") or ""))


def require_roles(*roles: str):

    def _dep(p: Principal = Depends(current_principal)) -> Principal:
        if roles and p.role.upper() not in {r.upper() for r in roles}:
            raise HTTPException(status_code=403, detail="Not permitted")
        return p

    return _dep
