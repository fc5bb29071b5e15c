# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Signup and login pipelines.

Each stage either returns or raises an ``AppError``; the route turns the
error into an inline message. Password hashing runs in the threadpool so a
slow hash does not hold up the event loop.
"""

from __future__ import annotations

import random
from typing import Any, Mapping, Sequence

from starlette.concurrency import run_in_threadpool

from memberauth.auth.passwords import burn_verification, hash_password, verify_password
from memberauth.auth.session import SessionUser
from memberauth.auth.users import UserRecord, UserStore
from memberauth.auth.validation import validate_login, validate_signup
from memberauth.errors import AuthError, DuplicateEmailError
from memberauth.logger import get_logger

MEMBER_IMAGES = ("image1.svg", "image2.svg", "image3.svg")

logger = get_logger(__name__)


async def sign_up(users: UserStore, fields: Mapping[str, Any]) -> SessionUser:
    form = validate_signup(fields)

    if await users.exists(form.email):
        logger.info("signup_rejected", reason="duplicate_email", email=form.email)
        raise DuplicateEmailError()

    password_hash = await run_in_threadpool(hash_password, form.password)
    await users.insert(UserRecord(name=form.name, email=form.email, password_hash=password_hash))

    logger.info("user_signed_up", email=form.email)
    return SessionUser(name=form.name, email=form.email)


async def log_in(users: UserStore, fields: Mapping[str, Any]) -> SessionUser:
    form = validate_login(fields)

    user = await users.find_by_email(form.email)
    if user is None:
        await run_in_threadpool(burn_verification, form.password)
        logger.info("login_failed", email=form.email)
        raise AuthError()

    if not await run_in_threadpool(verify_password, user.password_hash, form.password):
        logger.info("login_failed", email=form.email)
        raise AuthError()

    logger.info("user_logged_in", email=form.email)
    return SessionUser(name=user.name, email=user.email)


def pick_member_image(images: Sequence[str] = MEMBER_IMAGES) -> str:
    return random.choice(images)


async def undo_sign_up(users: UserStore, user: SessionUser) -> None:
    """Remove a user whose signup could not be completed with a session."""
    await users.delete_by_email(user.email)
    logger.info("signup_rolled_back", email=user.email)
