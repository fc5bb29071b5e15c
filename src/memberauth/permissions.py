# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from memberauth.auth.session import SessionManager, SessionUser
from memberauth.errors import PersistenceError
from memberauth.logger import get_logger

logger = get_logger(__name__)


def session_manager(request: Request) -> SessionManager:
    return request.app.state.sessions


async def load_user_from_request(request: Request) -> Optional[SessionUser]:
    try:
        return await session_manager(request).load(request)
    except PersistenceError:
        # An unreadable session store means nobody is signed in for this request.
        logger.exception("session_load_failed", path=request.url.path)
        return None


async def current_user_optional(request: Request) -> Optional[SessionUser]:
    # Set by the auth middleware, possibly to None for an anonymous request.
    if hasattr(request.state, "user"):
        return request.state.user
    u = await load_user_from_request(request)
    request.state.user = u
    return u


async def require_user(request: Request) -> SessionUser:
    u = await current_user_optional(request)
    if u:
        return u
    raise HTTPException(status_code=303, headers={"Location": "/"})
