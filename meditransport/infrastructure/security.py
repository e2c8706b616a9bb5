"""Password hashing (passlib/bcrypt) and JWT issue / verification (PyJWT)."""

from __future__ import annotations

import datetime as dt
from typing import Any

import jwt
from passlib.context import CryptContext

from meditransport.config import settings
from meditransport.domain.errors import Unauthorized

ACCESS = "access"
REFRESH = "refresh"

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def _secret_for(kind: str) -> str:
    return settings.jwt_refresh_secret if kind == REFRESH else settings.jwt_secret


def _encode(user_id: str, email: str, role: str, kind: str, ttl: dt.timedelta) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "type": kind,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, _secret_for(kind), algorithm=settings.jwt_algorithm)


def create_token_pair(user_id: str, email: str, role: str) -> dict[str, str]:
    return {
        "access_token": _encode(
            user_id,
            email,
            role,
            ACCESS,
            dt.timedelta(minutes=settings.jwt_expires_minutes),
        ),
        "refresh_token": _encode(
            user_id,
            email,
            role,
            REFRESH,
            dt.timedelta(days=settings.jwt_refresh_expires_days),
        ),
    }


def decode_token(token: str, kind: str = ACCESS) -> dict[str, Any]:
    """Verify signature, expiry and token type; raise ``Unauthorized`` otherwise."""
    try:
        payload = jwt.decode(
            token, _secret_for(kind), algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid or expired token")
    if payload.get("type") != kind or not payload.get("sub"):
        raise Unauthorized("Invalid token payload")
    return payload
