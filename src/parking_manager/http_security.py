"""Per-client throttling of the auth endpoints and response security headers."""

from __future__ import annotations

from collections import deque
import threading
import time

from fastapi import HTTPException, Request, Response

from parking_manager.config import get_settings


def client_ip(req: Request) -> str:
    forwarded = req.headers.get("x-forwarded-for", "") if get_settings().trust_forwarded_for else ""
    if forwarded:
        # First hop is the original client.
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return (req.client.host if req.client else "unknown").strip() or "unknown"


class SlidingWindowRateLimiter:
    """Counts hits per key over the last ``window_seconds``."""

    def __init__(self, max_requests: int, window_seconds: int) -> None:
        self.max_requests = max(1, int(max_requests))
        self.window_seconds = max(1, int(window_seconds))
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> tuple[bool, int]:
        """Return (allowed, retry_after_seconds)."""
        now = time.monotonic()
        cutoff = now - self.window_seconds

        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= self.max_requests:
                retry_after = int(self.window_seconds - (now - hits[0]))
                return False, max(1, retry_after)

            hits.append(now)
            return True, 0


_limiter: SlidingWindowRateLimiter | None = None
_limiter_lock = threading.Lock()


def _get_limiter() -> SlidingWindowRateLimiter:
    global _limiter
    with _limiter_lock:
        if _limiter is None:
            settings = get_settings()
            _limiter = SlidingWindowRateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)
        return _limiter


def reset_rate_limiter(*, max_requests: int | None = None, window_seconds: int | None = None) -> None:
    """Drop recorded hits; explicit limits override the configured ones."""
    global _limiter
    settings = get_settings()
    with _limiter_lock:
        _limiter = SlidingWindowRateLimiter(
            max_requests or settings.rate_limit_max_requests,
            window_seconds or settings.rate_limit_window_seconds,
        )


def enforce_rate_limit(req: Request, *, scope: str = "auth") -> None:
    if not get_settings().rate_limit_enabled:
        return

    allowed, retry_after = _get_limiter().allow(f"{scope}:{client_ip(req)}")
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Too many attempts. Please retry shortly.",
            headers={"Retry-After": str(retry_after)},
        )


def rate_limited_auth(req: Request) -> None:
    """FastAPI dependency guarding credential and OTP endpoints."""
    enforce_rate_limit(req, scope="auth")


def apply_security_headers(req: Request, resp: Response) -> None:
    settings = get_settings()
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "DENY")
    resp.headers.setdefault("Referrer-Policy", "no-referrer")
    resp.headers.setdefault("Cross-Origin-Resource-Policy", "same-origin")

    # JSON-only API; the interactive docs pull their assets from a CDN.
    if settings.csp_enabled and not req.url.path.startswith(("/docs", "/redoc")):
        resp.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")

    # Responses carry tokens and personal data.
    if settings.app_env == "prod":
        resp.headers.setdefault("Cache-Control", "no-store")

    if req.headers.get("x-forwarded-proto", "").lower() == "https":
        resp.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
