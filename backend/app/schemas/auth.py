"""Pydantic schemas for authentication endpoints."""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .agent import AgentRead

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"


def validate_password_strength(value: str) -> str:
    if not re.search(r"[a-z]", value) or not re.search(r"[A-Z]", value) or not re.search(
        r"\d", value
    ):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    return value


def _normalize_email(value: str) -> str:
    return value.strip().lower()


class AgentRegisterRequest(BaseModel):
    """Payload used to create a new agent account."""

    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=100)
    full_name: str = Field(..., min_length=2, max_length=255)
    phone_number: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    company_name: Optional[str] = Field(default=None, max_length=255)
    whatsapp_number: str = Field(..., pattern=PHONE_PATTERN)

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: str) -> str:
        normalized = _normalize_email(value)
        if not re.match(EMAIL_PATTERN, normalized):
            raise ValueError("Invalid email format")
        return normalized

    @field_validator("full_name", "company_name")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else value

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        return validate_password_strength(value)


class AgentLoginRequest(BaseModel):
    """Credentials exchanged for a token pair."""

    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: str) -> str:
        return _normalize_email(value)


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=100)

    @field_validator("new_password")
    @classmethod
    def _password(cls, value: str) -> str:
        return validate_password_strength(value)


class TokenResponse(BaseModel):
    """Access and refresh tokens returned upon successful authentication."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResponse(BaseModel):
    agent: AgentRead
    tokens: TokenResponse
