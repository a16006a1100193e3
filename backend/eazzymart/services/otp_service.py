# Overview: Service-layer operations for one-time passcodes; email verification codes with expiry.

"""
One-Time Passcodes

WHY: Registration and email changes are confirmed with a 6-digit code
mailed to the address. Codes are short-lived, single-use and kept in
process memory only; a restart simply invalidates outstanding codes.

SECURITY FEATURES:
- Codes drawn from secrets (CSPRNG)
- Constant-time comparison (hmac.compare_digest)
- Evicted on successful verification, once expired, or after
  MAX_OTP_ATTEMPTS wrong guesses
- Never returned in API responses
"""

from __future__ import annotations

import hmac
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..errors import ValidationError
from ..time_utils import utcnow
from .auth_service import normalize_email
from .notification_service import send_otp_email


OTP_LENGTH = 6
DEFAULT_TTL_SECONDS = 300
MAX_OTP_ATTEMPTS = 5


@dataclass
class OtpEntry:
    code: str
    expires_at: datetime
    attempts: int = 0


def generate_code(length: int = OTP_LENGTH) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


class OtpStore:
    """Thread-safe email -> code mapping with expiry."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, max_attempts: int = MAX_OTP_ATTEMPTS):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_attempts = max_attempts
        self._entries: dict[str, OtpEntry] = {}
        self._lock = threading.Lock()

    def issue(self, email: str, *, now: datetime | None = None) -> str:
        """Issue a fresh code; any earlier code for the address is replaced."""
        now = now or utcnow()
        code = generate_code()
        with self._lock:
            self._evict_expired(now)
            self._entries[email] = OtpEntry(code=code, expires_at=now + self.ttl)
        return code

    def verify(self, email: str, code: str, *, now: datetime | None = None) -> bool:
        now = now or utcnow()
        with self._lock:
            entry = self._entries.get(email)
            if entry is None:
                return False
            if entry.expires_at <= now:
                self._entries.pop(email, None)
                return False
            if not hmac.compare_digest(entry.code, str(code or "").strip()):
                entry.attempts += 1
                if entry.attempts >= self.max_attempts:
                    self._entries.pop(email, None)
                return False
            self._entries.pop(email, None)
            return True

    def evict(self, email: str) -> None:
        with self._lock:
            self._entries.pop(email, None)

    def _evict_expired(self, now: datetime) -> None:
        for key in [k for k, v in self._entries.items() if v.expires_at <= now]:
            del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def get_store(app=None) -> OtpStore:
    app = app or current_app._get_current_object()
    store = app.extensions.get("otp_store")
    if store is None:
        store = OtpStore(
            app.config.get("OTP_TTL_SECONDS", DEFAULT_TTL_SECONDS),
            app.config.get("OTP_MAX_ATTEMPTS", MAX_OTP_ATTEMPTS),
        )
        app.extensions["otp_store"] = store
    return store


def send_otp(email: str) -> None:
    """Issue a code for email and mail it (best-effort, asynchronous)."""
    email = normalize_email(email)
    if not email:
        raise ValidationError("Email is required")

    store = get_store()
    code = store.issue(email)
    ttl_minutes = max(1, int(store.ttl.total_seconds() // 60))
    send_otp_email(email, code, ttl_minutes)
    current_app.logger.info("OTP issued for %s", email)


def verify_otp(email: str, code: str) -> bool:
    email = normalize_email(email)
    if not email or not code:
        raise ValidationError("Email and OTP are required")
    return get_store().verify(email, code)
