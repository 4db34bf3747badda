"""Password hashing, identity tokens and one-time passcodes."""

from __future__ import annotations

import secrets
import time
from typing import Any

from authlib.jose import jwt
from authlib.jose.errors import JoseError
from werkzeug.security import check_password_hash, generate_password_hash

from parking_manager.config import get_settings
from parking_manager.errors import Unauthenticated

JWT_HEADER = {"alg": "HS256", "typ": "JWT"}
REQUIRED_CLAIMS = {name: {"essential": True} for name in ("id", "email", "role", "exp")}


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return check_password_hash(hashed, password)


def generate_otp_code() -> str:
    """Return a 6-digit code drawn uniformly from [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


def issue_token(user_id: int, email: str, role: str, *, now: int | None = None) -> str:
    settings = get_settings()
    issued_at = int(now if now is not None else time.time())
    payload = {
        "id": user_id,
        "email": email,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + settings.jwt_expires_seconds,
    }
    return jwt.encode(JWT_HEADER, payload, settings.jwt_secret).decode("utf-8")


def decode_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry; raise Unauthenticated on any failure."""
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, claims_options=REQUIRED_CLAIMS)
        claims.validate()
    except (JoseError, ValueError) as exc:
        raise Unauthenticated("Invalid or expired token") from exc
    return dict(claims)
