# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Errors surfaced to the user at the request boundary.

Each carries a ``message`` that is safe to render inline on a form.
"""

from __future__ import annotations

GENERIC_LOGIN_ERROR = "Invalid email or password"
DUPLICATE_EMAIL_ERROR = "Email already exists"
DATABASE_ERROR = "Database error"


class AppError(Exception):
    default_message = "Unexpected error"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Bad form input, correctable by the user."""


class AuthError(AppError):
    """Wrong credentials. Wording never says which field was wrong."""

    default_message = GENERIC_LOGIN_ERROR


class DuplicateEmailError(AuthError):
    default_message = DUPLICATE_EMAIL_ERROR


class PersistenceError(AppError):
    """Any database failure. The message never carries driver detail."""

    default_message = DATABASE_ERROR
