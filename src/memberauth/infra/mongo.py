# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import Any

from pymongo import AsyncMongoClient

from memberauth.auth.users import UserStore
from memberauth.config import SESSIONS_COLLECTION, USERS_COLLECTION, Settings
from memberauth.infra.session_store import MongoSessionStore
from memberauth.logger import get_logger

logger = get_logger(__name__)


def connect(settings: Settings) -> AsyncMongoClient:
    """Create the shared client. The driver connects lazily on first use."""
    return AsyncMongoClient(settings.mongodb_host)


def user_store(database: Any) -> UserStore:
    return UserStore(database[USERS_COLLECTION])


def session_store(database: Any) -> MongoSessionStore:
    return MongoSessionStore(database[SESSIONS_COLLECTION])


async def prepare(users: UserStore, sessions: MongoSessionStore) -> None:
    await users.ensure_indexes()
    await sessions.ensure_indexes()
    logger.info("mongodb_indexes_ready")
