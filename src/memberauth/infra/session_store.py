# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from pymongo.errors import PyMongoError

from memberauth.errors import PersistenceError


class SessionStore(Protocol):
    async def get(self, sid: str, *, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        ...

    async def set(self, sid: str, user: Dict[str, Any], expires_at: datetime) -> None:
        ...

    async def destroy(self, sid: str) -> None:
        ...


def _as_utc(dt: datetime) -> datetime:
    # MongoDB hands back naive datetimes in UTC unless the client is tz_aware.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class MongoSessionStore:
    """Session records in a MongoDB collection.

    Documents look like ``{_id: sid, user: {...}, expires_at: datetime}``.
    A TTL index on ``expires_at`` lets the server reap stale records; reads
    also check the expiry so a record is never served between its expiry
    and the next TTL sweep.
    """

    def __init__(self, collection: Any) -> None:
        self._collection = collection

    async def ensure_indexes(self) -> None:
        try:
            await self._collection.create_index(
                "expires_at", expireAfterSeconds=0, name="expires_at_ttl"
            )
        except PyMongoError as e:
            raise PersistenceError() from e

    async def get(self, sid: str, *, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        try:
            doc = await self._collection.find_one({"_id": sid})
        except PyMongoError as e:
            raise PersistenceError() from e
        if not doc:
            return None

        expires_at = doc.get("expires_at")
        now = now or datetime.now(timezone.utc)
        if not isinstance(expires_at, datetime) or _as_utc(expires_at) <= _as_utc(now):
            return None
        return doc

    async def set(self, sid: str, user: Dict[str, Any], expires_at: datetime) -> None:
        try:
            await self._collection.replace_one(
                {"_id": sid},
                {"_id": sid, "user": user, "expires_at": expires_at},
                upsert=True,
            )
        except PyMongoError as e:
            raise PersistenceError() from e

    async def destroy(self, sid: str) -> None:
        try:
            await self._collection.delete_one({"_id": sid})
        except PyMongoError as e:
            raise PersistenceError() from e
