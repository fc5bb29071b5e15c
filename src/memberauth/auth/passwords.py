# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_PH = PasswordHasher()

# Verified against when the email is unknown, so a miss costs one hash too.
_DUMMY_HASH = _PH.hash("memberauth-dummy-password")


def hash_password(plain: str) -> str:
    if not plain:
        raise ValueError("Empty password")
    return _PH.hash(plain)


def verify_password(hash_value: str, plain: str) -> bool:
    if not hash_value or not plain:
        return False
    try:
        return _PH.verify(hash_value, plain)
    except (VerificationError, InvalidHashError):
        return False


def burn_verification(plain: str) -> bool:
    """Run a verification that always fails, at the cost of a real one."""
    verify_password(_DUMMY_HASH, plain or "x")
    return False
