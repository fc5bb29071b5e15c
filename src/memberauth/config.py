# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

SESSION_TTL_SECONDS = 60 * 60
SESSIONS_COLLECTION = "sessions"
USERS_COLLECTION = "users"

_TRUTHY = {"1", "true", "yes", "y"}


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    host: str
    port: int
    reload: bool
    mongodb_host: str
    mongodb_database: str
    session_secret: Optional[str]
    session_cookie_name: str
    session_cookie_secure: bool
    log_debug: bool


def load_settings() -> Settings:
    """Read settings from the environment, after loading a local .env if any."""
    load_dotenv()
    return Settings(
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=_flag("RELOAD"),
        mongodb_host=os.getenv("MONGODB_HOST", "mongodb://localhost:27017"),
        mongodb_database=os.getenv("MONGODB_DATABASE", "memberauth"),
        session_secret=os.getenv("SESSION_SECRET") or os.getenv("NODE_SESSION_SECRET"),
        session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "memberauth.sid"),
        session_cookie_secure=_flag("SESSION_COOKIE_SECURE"),
        log_debug=_flag("LOG_DEBUG"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
