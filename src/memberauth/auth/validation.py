# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Schema checks for the signup and login forms.

Only the first violated rule is reported, as a single sentence that can be
shown above the form. Fields are checked in declaration order.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Type, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic import ValidationError as PydanticValidationError

from memberauth.errors import ValidationError

MAX_NAME_LENGTH = 20
MAX_PASSWORD_LENGTH = 20

M = TypeVar("M", bound=BaseModel)


class LoginForm(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: EmailStr
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)


class SignupForm(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    email: EmailStr
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)


def _describe(error: Dict[str, Any]) -> str:
    loc = error.get("loc") or ("value",)
    field = f'"{loc[0]}"'
    kind = error.get("type", "")
    ctx = error.get("ctx") or {}

    if kind == "missing":
        return f"{field} is required"
    if kind == "string_too_short":
        return f"{field} is not allowed to be empty"
    if kind == "string_too_long":
        limit = ctx.get("max_length")
        return f"{field} length must be less than or equal to {limit} characters long"
    if kind == "string_type":
        return f"{field} must be a string"
    if loc[0] == "email":
        if error.get("input") == "":
            return f"{field} is not allowed to be empty"
        return f"{field} must be a valid email"
    return f"{field} is invalid"


def _validate(model: Type[M], fields: Mapping[str, Any]) -> M:
    try:
        return model.model_validate(dict(fields))
    except PydanticValidationError as e:
        first = e.errors(include_url=False)[0]
        raise ValidationError(_describe(first)) from e


def validate_signup(fields: Mapping[str, Any]) -> SignupForm:
    return _validate(SignupForm, fields)


def validate_login(fields: Mapping[str, Any]) -> LoginForm:
    return _validate(LoginForm, fields)
