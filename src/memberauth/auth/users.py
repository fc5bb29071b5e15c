# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from memberauth.errors import DuplicateEmailError, PersistenceError
from memberauth.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserRecord:
    name: str
    email: str
    password_hash: str

    def to_document(self) -> Dict[str, Any]:
        return {"name": self.name, "email": self.email, "password": self.password_hash}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserRecord":
        return cls(
            name=str(doc.get("name") or ""),
            email=str(doc.get("email") or ""),
            password_hash=str(doc.get("password") or ""),
        )


class UserStore:
    """Credential store over the ``users`` collection, keyed by email."""

    def __init__(self, collection: Any) -> None:
        self._collection = collection

    async def ensure_indexes(self) -> None:
        try:
            await self._collection.create_index("email", unique=True, name="email_unique")
        except PyMongoError as e:
            raise PersistenceError() from e

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        try:
            doc = await self._collection.find_one({"email": email})
        except PyMongoError as e:
            raise PersistenceError() from e
        if not doc:
            return None
        return UserRecord.from_document(doc)

    async def exists(self, email: str) -> bool:
        return await self.find_by_email(email) is not None

    async def delete_by_email(self, email: str) -> None:
        try:
            await self._collection.delete_one({"email": email})
        except PyMongoError as e:
            raise PersistenceError() from e

    async def insert(self, user: UserRecord) -> None:
        try:
            await self._collection.insert_one(user.to_document())
        except DuplicateKeyError as e:
            logger.info("duplicate_email_rejected_by_index", email=user.email)
            raise DuplicateEmailError() from e
        except PyMongoError as e:
            raise PersistenceError() from e
