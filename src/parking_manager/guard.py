"""Bearer-token authorization guard with per-operation role declarations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal

from fastapi import Header

from parking_manager.errors import Forbidden, Unauthenticated
from parking_manager.models import ROLE_ADMIN
from parking_manager.security import decode_token

RequiredRole = Literal["any", "admin"]


@dataclass(frozen=True)
class Principal:
    id: int
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def principal_from_header(authorization: str | None) -> Principal:
    if not authorization:
        raise Unauthenticated("Access token required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Access token required")

    claims = decode_token(token.strip())
    try:
        return Principal(id=int(claims["id"]), email=str(claims["email"]), role=str(claims["role"]))
    except (TypeError, ValueError) as exc:
        raise Unauthenticated("Invalid or expired token") from exc


def check_role(principal: Principal, required: RequiredRole) -> Principal:
    if required == "admin" and not principal.is_admin:
        raise Forbidden()
    return principal


def requires_role(required: RequiredRole = "any") -> Callable[..., Principal]:
    """Build a FastAPI dependency resolving the caller and enforcing `required`."""

    def _dependency(authorization: str | None = Header(default=None)) -> Principal:
        return check_role(principal_from_header(authorization), required)

    _dependency.__name__ = f"requires_{required}"
    return _dependency
