"""Registration with OTP email verification, login and user administration."""

from __future__ import annotations

from datetime import timedelta
import logging
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parking_manager.audit import record_action
from parking_manager.config import get_settings
from parking_manager.database import utc_now
from parking_manager.email_sender import EmailSender
from parking_manager.errors import (
    Conflict,
    EmailDeliveryFailed,
    InvalidCredentials,
    InvalidOrExpired,
    NotFound,
    NotVerified,
    ValidationError,
)
from parking_manager.models import ROLE_ADMIN, ROLE_USER, OtpCode, User
from parking_manager.pagination import PageParams, contains_ci, paginate
from parking_manager.security import generate_otp_code, hash_password, issue_token, verify_password

logger = logging.getLogger(__name__)


def register(db: Session, sender: EmailSender, name: str, email: str, password: str) -> User:
    if db.execute(select(User).where(User.email == email)).scalar_one_or_none():
        raise Conflict("Email already exists")

    # Advisory only: registration never creates admins, and existing admins do not block it.
    admin_count = db.execute(select(func.count()).select_from(User).where(User.role == ROLE_ADMIN)).scalar_one()
    if admin_count > 0:
        logger.info("Admin already exists, only user role allowed")

    hashed = hash_password(password)
    otp_code = generate_otp_code()
    expires_at = utc_now() + timedelta(minutes=get_settings().otp_ttl_minutes)

    # Nothing is persisted when the code cannot be delivered.
    try:
        sender.send_otp_email(email, otp_code)
    except EmailDeliveryFailed as exc:
        raise EmailDeliveryFailed("Failed to send OTP email", details=exc.details) from exc

    user = User(name=name, email=email, password=hashed, role=ROLE_USER, is_verified=False)
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Email already exists") from exc
    db.refresh(user)

    db.add(OtpCode(user_id=user.id, otp_code=otp_code, expires_at=expires_at))
    db.commit()
    return user


def verify_otp(db: Session, user_id: int, otp_code: str) -> None:
    otp = db.execute(
        select(OtpCode).where(
            OtpCode.user_id == user_id,
            OtpCode.otp_code == otp_code,
            OtpCode.expires_at > utc_now(),
            OtpCode.is_used.is_(False),
        )
    ).scalars().first()
    if otp is None:
        raise InvalidOrExpired()

    otp.is_used = True
    user = db.get(User, user_id)
    user.is_verified = True
    db.commit()

    record_action(db, user_id, "User verified OTP")


def resend_otp(db: Session, sender: EmailSender, user_id: int) -> None:
    user = db.execute(
        select(User).where(User.id == user_id, User.is_verified.is_(False))
    ).scalar_one_or_none()
    if user is None:
        raise ValidationError("User not found or already verified")

    otp_code = generate_otp_code()
    expires_at = utc_now() + timedelta(minutes=get_settings().otp_resend_ttl_minutes)

    db.execute(delete(OtpCode).where(OtpCode.user_id == user.id))
    db.add(OtpCode(user_id=user.id, otp_code=otp_code, expires_at=expires_at))
    db.commit()

    # The new code stays persisted even if delivery fails.
    try:
        sender.send_otp_email(user.email, otp_code)
    except EmailDeliveryFailed as exc:
        raise EmailDeliveryFailed("Failed to resend OTP email", details=exc.details) from exc

    record_action(db, user.id, "OTP resent")


def login(db: Session, email: str, password: str) -> dict[str, Any]:
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        raise InvalidCredentials()
    if not user.is_verified:
        raise NotVerified()
    if not verify_password(password, user.password):
        raise InvalidCredentials()

    token = issue_token(user.id, user.email, user.role)
    record_action(db, user.id, "User logged in")
    return {"token": token, "user": user.summary()}


def _require_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def get_profile(db: Session, user_id: int) -> dict[str, Any]:
    user = _require_user(db, user_id)
    profile = user.summary()
    record_action(db, user_id, "User profile viewed")
    return profile


def update_profile(
    db: Session,
    user_id: int,
    *,
    name: str | None = None,
    email: str | None = None,
    password: str | None = None,
) -> dict[str, Any]:
    user = _require_user(db, user_id)
    if name:
        user.name = name
    if email:
        user.email = email
    if password:
        user.password = hash_password(password)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Email already exists") from exc

    profile = user.summary()
    record_action(db, user_id, "User profile updated")
    return profile


def list_users(db: Session, actor_id: int, params: PageParams) -> dict[str, Any]:
    stmt = select(User)
    if params.term:
        stmt = stmt.where(or_(contains_ci(User.name, params.term), contains_ci(User.email, params.term)))
    stmt = stmt.order_by(User.id.asc())

    result = paginate(
        db,
        stmt,
        params,
        lambda u: {**u.summary(), "is_verified": u.is_verified},
    )
    record_action(db, actor_id, "Users list viewed")
    return result


def delete_user(db: Session, actor_id: int, user_id: int) -> None:
    user = _require_user(db, user_id)
    db.delete(user)
    db.commit()
    record_action(db, None if actor_id == user_id else actor_id, f"User {user_id} deleted")


def create_admin(db: Session, name: str, email: str, password: str) -> User:
    """Create a verified admin, or promote and re-key an existing account."""
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        user = User(name=name, email=email)
        db.add(user)
    user.name = name
    user.password = hash_password(password)
    user.role = ROLE_ADMIN
    user.is_verified = True
    db.commit()
    db.refresh(user)
    logger.info("Admin account ready: %s", email)
    return user
