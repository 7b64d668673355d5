"""
Login lockout and request throttling.

Attempt counters live in a store so that several API processes can share
them. ``MongoAttemptStore`` is what the API uses; ``MemoryAttemptStore``
keeps everything in the current process.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from pymongo import ReturnDocument

import config
from database import as_utc, utcnow

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class MemoryAttemptStore:
    """Process-local attempt map."""

    max_entries = 100

    def __init__(self, ttl: timedelta = timedelta(minutes=config.LOGIN_LOCKOUT_MINUTES), clock: Clock = utcnow):
        self._entries: Dict[str, dict] = {}
        self.ttl = ttl
        self._clock = clock

    def _live(self, key: str) -> Optional[dict]:
        entry = self._entries.get(key)
        if entry and entry["expiresAt"] <= self._clock():
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Optional[dict]:
        entry = self._live(key)
        return dict(entry) if entry else None

    def increment(self, key: str) -> dict:
        entry = self._live(key) or {"count": 0, "lockUntil": None}
        entry["count"] += 1
        entry["expiresAt"] = _expiry(self._clock() + self.ttl, entry["lockUntil"])
        self._entries[key] = entry
        self._purge()
        return dict(entry)

    def lock(self, key: str, until: datetime):
        self._entries[key] = {"count": 0, "lockUntil": until, "expiresAt": until}

    def delete(self, key: str):
        self._entries.pop(key, None)

    def _purge(self):
        if len(self._entries) <= self.max_entries:
            return
        now = self._clock()
        for k in [k for k, v in self._entries.items() if v["expiresAt"] <= now]:
            del self._entries[k]


class MongoAttemptStore:
    """Attempt counters in a MongoDB collection shared by every API instance.

    Every document carries ``expiresAt``; the TTL index on it removes
    counters that stopped mattering, and reads ignore them until it does.
    """

    def __init__(self, collection, ttl: timedelta = timedelta(minutes=config.LOGIN_LOCKOUT_MINUTES),
                 clock: Clock = utcnow):
        self.collection = collection
        self.ttl = ttl
        self.clock = clock

    def _live(self, key: str) -> Optional[dict]:
        doc = self.collection.find_one({"key": key})
        if doc and doc.get("expiresAt") and as_utc(doc["expiresAt"]) <= self.clock():
            self.collection.delete_one({"_id": doc["_id"]})
            return None
        return doc

    def get(self, key: str) -> Optional[dict]:
        doc = self._live(key)
        if not doc:
            return None
        return {"count": doc.get("count", 0), "lockUntil": as_utc(doc.get("lockUntil"))}

    def increment(self, key: str) -> dict:
        current = self._live(key)
        lock_until = as_utc(current.get("lockUntil")) if current else None
        doc = self.collection.find_one_and_update(
            {"key": key},
            {
                "$inc": {"count": 1},
                "$set": {"expiresAt": _expiry(self.clock() + self.ttl, lock_until)},
                "$setOnInsert": {"lockUntil": None},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return {"count": doc.get("count", 0), "lockUntil": as_utc(doc.get("lockUntil"))}

    def lock(self, key: str, until: datetime):
        self.collection.update_one(
            {"key": key},
            {"$set": {"count": 0, "lockUntil": until, "expiresAt": until}},
            upsert=True,
        )

    def delete(self, key: str):
        self.collection.delete_one({"key": key})


def _expiry(counted_until: datetime, lock_until: Optional[datetime]) -> datetime:
    if lock_until is not None and lock_until > counted_until:
        return lock_until
    return counted_until


class LoginRateLimiter:
    """Locks a key out for ``lockout`` after ``max_attempts`` consecutive failures."""

    def __init__(
        self,
        store,
        max_attempts: int = config.MAX_LOGIN_ATTEMPTS,
        lockout: timedelta = timedelta(minutes=config.LOGIN_LOCKOUT_MINUTES),
        clock: Clock = utcnow,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.lockout = lockout
        self.clock = clock

    def _lock_until(self, key: str) -> Optional[datetime]:
        entry = self.store.get(key)
        return entry.get("lockUntil") if entry else None

    def is_locked_out(self, key: str) -> bool:
        until = self._lock_until(key)
        return until is not None and until > self.clock()

    def remaining_minutes(self, key: str) -> int:
        until = self._lock_until(key)
        if until is None:
            return 0
        seconds = (until - self.clock()).total_seconds()
        if seconds <= 0:
            return 0
        return math.ceil(seconds / 60)

    def record_failure(self, key: str):
        entry = self.store.increment(key)
        if entry["count"] >= self.max_attempts:
            self.store.lock(key, self.clock() + self.lockout)
            logger.warning("Locking out %s for %s after %d failed attempts", key, self.lockout, entry["count"])

    def reset(self, key: str):
        self.store.delete(key)


class RequestRateLimiter:
    """Fixed-window request counter kept in the "rate_limit" collection."""

    def __init__(self, name: str, limit: int, window: timedelta, clock: Clock = utcnow):
        self.name = name
        self.limit = limit
        self.window = window
        self.clock = clock

    def hit(self, collection, client_key: str) -> bool:
        """Count one request; False when the caller is over the limit."""
        now = self.clock()
        key = f"{self.name}:{client_key}"
        doc = collection.find_one({"key": key})
        if not doc or as_utc(doc.get("windowStart")) + self.window <= now:
            collection.update_one(
                {"key": key},
                {"$set": {"count": 1, "windowStart": now, "expiresAt": now + self.window}},
                upsert=True,
            )
            return True
        doc = collection.find_one_and_update(
            {"key": key},
            {"$inc": {"count": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return doc["count"] <= self.limit
