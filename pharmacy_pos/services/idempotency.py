# FILE: pharmacy_pos/services/idempotency.py
"""
Duplicate-submission guard for sale creation.

begin(key) claims a key or raises DuplicateRequestError when the key is in
flight or was completed inside the retention window. complete() keeps the
claim until it expires; release() drops it so a failed attempt can be retried.

The guard is advisory: atomicity of the sale itself comes from the database
transaction, not from here.
"""
from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from pharmacy_pos.core.config import settings
from pharmacy_pos.core.errors import DuplicateRequestError
from pharmacy_pos.models.idempotency import IdempotencyKey

logger = logging.getLogger(__name__)

IN_FLIGHT = "IN_FLIGHT"
COMPLETED = "COMPLETED"


def derive_request_key(actor_id: Any, payload: Dict[str, Any],
                       window_seconds: Optional[int] = None,
                       now: Optional[float] = None) -> str:
    """
    Fallback key when the client sends none: actor + payload hash + coarse
    time bucket. Two identical carts from one cashier inside the same bucket
    collide; that is the double-click case this is meant to catch.
    """
    window = int(window_seconds or settings.IDEMPOTENCY_TTL_SECONDS or 60)
    ts = time.time() if now is None else now
    bucket = int(ts // window)
    body = json.dumps(payload, sort_keys=True, default=str,
                      separators=(",", ":"))
    digest = hashlib.sha256(body.encode("utf-8")).hexdigest()[:32]
    return f"auto:{actor_id}:{digest}:{bucket}"


MAX_KEY_LENGTH = 150


def storable_key(key: str) -> str:
    """Client keys longer than MAX_KEY_LENGTH are stored as their SHA-256."""
    if len(key) <= MAX_KEY_LENGTH:
        return key
    return "sha256:" + hashlib.sha256(key.encode("utf-8")).hexdigest()


def scoped_key(business_id: int, key: str) -> str:
    return f"{business_id}:{storable_key(key)}"


class IdempotencyGuard:
    """Interface shared by the in-memory and database stores."""

    def begin(self, key: str, *, business_id: int) -> None:
        raise NotImplementedError

    def complete(self, key: str, *, business_id: int,
                 sale_id: Optional[int] = None) -> None:
        raise NotImplementedError

    def release(self, key: str, *, business_id: int) -> None:
        raise NotImplementedError


class InMemoryIdempotencyStore(IdempotencyGuard):
    """
    Process-local store. Only correct for a single API process.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, clock=time.monotonic):
        self.ttl = int(ttl_seconds or settings.IDEMPOTENCY_TTL_SECONDS)
        self._clock = clock
        self._lock = threading.Lock()
        # scoped key -> (status, expires_at)
        self._keys: Dict[str, Tuple[str, float]] = {}

    def _prune(self, now: float) -> None:
        expired = [k for k, (_, exp) in self._keys.items() if exp <= now]
        for k in expired:
            del self._keys[k]

    def begin(self, key: str, *, business_id: int) -> None:
        sk = scoped_key(business_id, key)
        with self._lock:
            now = self._clock()
            self._prune(now)
            if sk in self._keys:
                logger.warning("Duplicate sale submission key=%s", sk)
                raise DuplicateRequestError(key)
            self._keys[sk] = (IN_FLIGHT, now + self.ttl)

    def complete(self, key: str, *, business_id: int,
                 sale_id: Optional[int] = None) -> None:
        sk = scoped_key(business_id, key)
        with self._lock:
            self._keys[sk] = (COMPLETED, self._clock() + self.ttl)

    def release(self, key: str, *, business_id: int) -> None:
        with self._lock:
            self._keys.pop(scoped_key(business_id, key), None)


class DatabaseIdempotencyStore(IdempotencyGuard):
    """
    Shared store on the idempotency_keys table, so every API instance sees
    the same claims. Each call runs on its own short session and commits
    immediately, independent of the sale transaction.
    """

    def __init__(self, session_factory: sessionmaker,
                 ttl_seconds: Optional[int] = None):
        self.session_factory = session_factory
        self.ttl = int(ttl_seconds or settings.IDEMPOTENCY_TTL_SECONDS)

    def _expiry(self) -> datetime:
        return datetime.utcnow() + timedelta(seconds=self.ttl)

    def _prune(self, db: Session) -> None:
        (db.query(IdempotencyKey).filter(
            IdempotencyKey.expires_at <= datetime.utcnow()).delete(
                synchronize_session=False))

    def begin(self, key: str, *, business_id: int) -> None:
        sk = scoped_key(business_id, key)
        db = self.session_factory()
        try:
            self._prune(db)
            db.add(
                IdempotencyKey(
                    key=sk,
                    business_id=business_id,
                    status=IN_FLIGHT,
                    expires_at=self._expiry(),
                ))
            db.commit()
        except IntegrityError:
            db.rollback()
            # Someone holds it. Take it over only if their claim has lapsed.
            row = (db.query(IdempotencyKey).filter(
                IdempotencyKey.key == sk).with_for_update().first())
            if row is not None and row.expires_at > datetime.utcnow():
                db.rollback()
                logger.warning("Duplicate sale submission key=%s status=%s",
                               sk, row.status)
                raise DuplicateRequestError(key)
            if row is None:
                db.add(
                    IdempotencyKey(key=sk,
                                   business_id=business_id,
                                   status=IN_FLIGHT,
                                   expires_at=self._expiry()))
            else:
                row.status = IN_FLIGHT
                row.sale_id = None
                row.expires_at = self._expiry()
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise DuplicateRequestError(key)
        finally:
            db.close()

    def complete(self, key: str, *, business_id: int,
                 sale_id: Optional[int] = None) -> None:
        sk = scoped_key(business_id, key)
        db = self.session_factory()
        try:
            row = db.get(IdempotencyKey, sk)
            if row is None:
                row = IdempotencyKey(key=sk, business_id=business_id)
                db.add(row)
            row.status = COMPLETED
            row.sale_id = sale_id
            row.expires_at = self._expiry()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def release(self, key: str, *, business_id: int) -> None:
        db = self.session_factory()
        try:
            (db.query(IdempotencyKey).filter(
                IdempotencyKey.key == scoped_key(business_id, key),
                IdempotencyKey.status == IN_FLIGHT,
            ).delete(synchronize_session=False))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def make_guard(session_factory: sessionmaker) -> IdempotencyGuard:
    if (settings.IDEMPOTENCY_BACKEND or "").lower() == "memory":
        return InMemoryIdempotencyStore()
    return DatabaseIdempotencyStore(session_factory)
