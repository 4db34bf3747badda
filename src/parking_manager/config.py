"""Configuration helpers for the parking management backend."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
import os

DEV_JWT_SECRET = "dev-jwt-secret"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_env: str
    log_level: str
    database_url: str
    jwt_secret: str
    jwt_expires_seconds: int
    otp_ttl_minutes: int
    otp_resend_ttl_minutes: int
    email_backend: str
    smtp_host: str | None
    smtp_port: int
    smtp_username: str | None
    smtp_password: str | None
    smtp_use_tls: bool
    mail_from: str
    slot_mutations_require_admin: bool
    approval_max_attempts: int
    rate_limit_enabled: bool
    rate_limit_max_requests: int
    rate_limit_window_seconds: int
    csp_enabled: bool
    trust_forwarded_for: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    smtp_host = os.getenv("SMTP_HOST")
    app_env = os.getenv("APP_ENV", "dev").strip().lower()
    return Settings(
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./parking.db"),
        jwt_secret=os.getenv("JWT_SECRET", DEV_JWT_SECRET),
        jwt_expires_seconds=int(os.getenv("JWT_EXPIRES_SECONDS", "3600")),
        otp_ttl_minutes=int(os.getenv("OTP_TTL_MINUTES", "15")),
        otp_resend_ttl_minutes=int(os.getenv("OTP_RESEND_TTL_MINUTES", "5")),
        email_backend=os.getenv("EMAIL_BACKEND", "smtp" if smtp_host else "memory").lower(),
        smtp_host=smtp_host,
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_username=os.getenv("SMTP_USERNAME"),
        smtp_password=os.getenv("SMTP_PASSWORD"),
        smtp_use_tls=_env_bool("SMTP_USE_TLS", True),
        mail_from=os.getenv("MAIL_FROM", "parking@localhost"),
        slot_mutations_require_admin=_env_bool("SLOT_MUTATIONS_REQUIRE_ADMIN", True),
        approval_max_attempts=max(1, int(os.getenv("APPROVAL_MAX_ATTEMPTS", "3"))),
        # Enabled in prod, off elsewhere unless turned on explicitly.
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", app_env == "prod"),
        rate_limit_max_requests=int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "20")),
        rate_limit_window_seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60")),
        csp_enabled=_env_bool("CSP_ENABLED", True),
        # Honour X-Forwarded-For only behind a proxy that rewrites it.
        trust_forwarded_for=_env_bool("TRUST_FORWARDED_FOR", False),
    )


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.app_env == "prod" and settings.jwt_secret == DEV_JWT_SECRET:
        logging.getLogger(__name__).warning("JWT_SECRET is not set; using the development secret")
