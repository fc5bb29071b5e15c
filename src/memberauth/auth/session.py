# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Server-side sessions behind a signed cookie.

The cookie only carries the session id, signed with the application secret.
The session record itself (user + expiry) lives in the session store, so a
destroyed or expired id never grants access again even if the cookie is
replayed.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from memberauth.config import SESSION_TTL_SECONDS
from memberauth.infra.session_store import SessionStore
from memberauth.logger import get_logger

DEFAULT_COOKIE_NAME = "memberauth.sid"
SESSION_SALT = "memberauth.session.v1"

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionUser:
    name: str
    email: str

    def to_document(self) -> dict:
        return {"name": self.name, "email": self.email}


class SessionManager:
    def __init__(
        self,
        store: SessionStore,
        *,
        secret: Optional[str],
        ttl_seconds: int = SESSION_TTL_SECONDS,
        cookie_name: str = DEFAULT_COOKIE_NAME,
        cookie_secure: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret:
            raise RuntimeError("Missing SESSION_SECRET (or NODE_SESSION_SECRET) in environment")
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.cookie_name = cookie_name
        self.cookie_secure = cookie_secure
        self._clock = clock
        self._serializer = URLSafeTimedSerializer(secret_key=secret, salt=SESSION_SALT)

    def _session_id(self, token: str) -> Optional[str]:
        if not token:
            return None
        try:
            data = self._serializer.loads(token, max_age=self.ttl_seconds)
        except (BadSignature, BadTimeSignature):
            return None
        sid = str((data or {}).get("sid") or "").strip()
        return sid or None

    def cookie_settings(self) -> dict:
        return {"httponly": True, "samesite": "lax", "secure": self.cookie_secure}

    async def load(self, request: Request) -> Optional[SessionUser]:
        sid = self._session_id(request.cookies.get(self.cookie_name, ""))
        if not sid:
            return None
        record = await self.store.get(sid, now=self._clock())
        if not record:
            return None
        user = record.get("user") or {}
        if not user.get("email"):
            return None
        return SessionUser(name=str(user.get("name") or ""), email=str(user.get("email") or ""))

    async def start(self, request: Request, response: Response, user: SessionUser) -> str:
        """Authenticate the client: new record, new id, new cookie."""
        previous = self._session_id(request.cookies.get(self.cookie_name, ""))
        if previous:
            await self.store.destroy(previous)

        sid = secrets.token_urlsafe(32)
        expires_at = self._clock() + timedelta(seconds=self.ttl_seconds)
        await self.store.set(sid, user.to_document(), expires_at)

        response.set_cookie(
            self.cookie_name,
            self._serializer.dumps({"sid": sid}),
            max_age=self.ttl_seconds,
            **self.cookie_settings(),
        )
        logger.debug("session_started", email=user.email)
        return sid

    async def destroy(self, request: Request, response: Response) -> None:
        sid = self._session_id(request.cookies.get(self.cookie_name, ""))
        if sid:
            await self.store.destroy(sid)
        response.delete_cookie(self.cookie_name, **self.cookie_settings())
