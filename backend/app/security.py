"""Security utilities for password hashing, tokens and agent authentication."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import os
import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from . import models
from .database import get_db

JWT_SECRET_ENV = "JWT_SECRET"
ACCESS_TOKEN_EXPIRE_MINUTES_ENV = "ACCESS_TOKEN_EXPIRE_MINUTES"
REFRESH_TOKEN_EXPIRE_DAYS_ENV = "REFRESH_TOKEN_EXPIRE_DAYS"

PBKDF2_DEFAULT_ITERATIONS = 390_000
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


class SecurityConfigurationError(RuntimeError):
    """Raised when mandatory security settings are missing or invalid."""


class TokenError(ValueError):
    """Raised when a token is malformed, tampered with or expired."""


def _read_env_var(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise SecurityConfigurationError(f"Environment variable '{name}' is required")
    return value


def generate_password_hash(password: str, *, iterations: int = PBKDF2_DEFAULT_ITERATIONS) -> str:
    """Return a PBKDF2-based password hash string."""

    if not password:
        raise ValueError("password must not be empty")
    salt = secrets.token_bytes(16)
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    components = (
        str(iterations),
        base64.urlsafe_b64encode(salt).decode("ascii"),
        base64.urlsafe_b64encode(derived).decode("ascii"),
    )
    return "$".join(components)


def _split_password_hash(stored_hash: str) -> tuple[int, bytes, bytes]:
    try:
        iterations_str, salt_b64, hash_b64 = stored_hash.split("$")
        iterations = int(iterations_str)
        salt = base64.urlsafe_b64decode(salt_b64)
        digest = base64.urlsafe_b64decode(hash_b64)
    except (ValueError, binascii.Error) as exc:  # pragma: no cover
        raise SecurityConfigurationError("Stored password hash is invalid") from exc
    return iterations, salt, digest


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify a password against a stored PBKDF2 hash."""

    iterations, salt, digest = _split_password_hash(stored_hash)
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(candidate, digest)


def generate_temporary_password(length: int = 16) -> str:
    """Return a random password that satisfies the registration policy."""

    while True:
        candidate = secrets.token_urlsafe(length)[:length]
        if (
            any(char.islower() for char in candidate)
            and any(char.isupper() for char in candidate)
            and any(char.isdigit() for char in candidate)
        ):
            return candidate


@lru_cache(maxsize=1)
def _load_jwt_key() -> bytes:
    raw_secret = _read_env_var(JWT_SECRET_ENV)
    try:
        return base64.urlsafe_b64decode(raw_secret)
    except (ValueError, binascii.Error):
        return raw_secret.encode("utf-8")


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _encode_jwt(payload: dict[str, Any], key: bytes) -> str:
    header = {"typ": "JWT", "alg": "HS256"}
    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    signature = hmac.new(key, signing_input, hashlib.sha256).digest()
    signature_b64 = _b64url_encode(signature)
    return f"{header_b64}.{payload_b64}.{signature_b64}"


def _decode_jwt(token: str, key: bytes) -> dict[str, Any]:
    try:
        header_b64, payload_b64, signature_b64 = token.split(".")
        signature = _b64url_decode(signature_b64)
    except (ValueError, binascii.Error) as exc:
        raise TokenError("Invalid token") from exc

    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    expected_signature = hmac.new(key, signing_input, hashlib.sha256).digest()
    if not hmac.compare_digest(signature, expected_signature):
        raise TokenError("Invalid token")

    try:
        payload_data = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    except (ValueError, binascii.Error) as exc:
        raise TokenError("Invalid token") from exc
    if not isinstance(payload_data, dict) or payload_data.get("exp") is None:
        raise TokenError("Invalid token")
    exp = int(payload_data["exp"])
    if datetime.now(timezone.utc) >= datetime.fromtimestamp(exp, tz=timezone.utc):
        raise TokenError("Token expired")
    return payload_data


def _read_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:  # pragma: no cover
        raise SecurityConfigurationError(f"{name} must be an integer") from exc
    if value <= 0:
        raise SecurityConfigurationError(f"{name} must be positive")
    return value


def _resolve_access_token_expiry() -> timedelta:
    return timedelta(minutes=_read_positive_int(ACCESS_TOKEN_EXPIRE_MINUTES_ENV, 30))


def _resolve_refresh_token_expiry() -> timedelta:
    return timedelta(days=_read_positive_int(REFRESH_TOKEN_EXPIRE_DAYS_ENV, 7))


def _create_token(agent: models.Agent, token_type: str, lifetime: timedelta) -> str:
    expiry = datetime.now(timezone.utc) + lifetime
    payload: dict[str, Any] = {
        "sub": agent.id,
        "email": agent.email,
        "typ": token_type,
        "exp": int(expiry.timestamp()),
        "jti": secrets.token_hex(8),
    }
    return _encode_jwt(payload, _load_jwt_key())


def create_access_token(agent: models.Agent) -> str:
    return _create_token(agent, TOKEN_TYPE_ACCESS, _resolve_access_token_expiry())


def create_refresh_token(agent: models.Agent) -> str:
    return _create_token(agent, TOKEN_TYPE_REFRESH, _resolve_refresh_token_expiry())


def create_token_pair(agent: models.Agent) -> dict[str, Any]:
    """Return freshly signed access and refresh tokens for ``agent``."""

    return {
        "access_token": create_access_token(agent),
        "refresh_token": create_refresh_token(agent),
        "token_type": "bearer",
        "expires_in": int(_resolve_access_token_expiry().total_seconds()),
    }


def decode_token(token: str, *, expected_type: str) -> dict[str, Any]:
    """Validate ``token`` and return its claims if it has the expected type."""

    payload = _decode_jwt(token, _load_jwt_key())
    if payload.get("typ") != expected_type:
        raise TokenError("Invalid token type")
    if not isinstance(payload.get("sub"), str):
        raise TokenError("Invalid token")
    return payload


def get_current_agent(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.Agent:
    """Resolve the agent owning the bearer token of the current request."""

    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token, expected_type=TOKEN_TYPE_ACCESS)
    except TokenError as exc:
        raise unauthorized from exc

    agent = db.get(models.Agent, payload["sub"])
    if agent is None:
        raise unauthorized
    if agent.status != models.AgentStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is not active")
    return agent


def require_agent(agent: models.Agent = Depends(get_current_agent)) -> models.Agent:
    """FastAPI dependency that ensures the request is authenticated as an agent."""

    return agent
