# lifemate/core/security.py
import re
from datetime import datetime, timezone
from typing import Optional

from passlib.context import CryptContext

from lifemate.core.config import Settings

EMAIL_PATTERN = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
OTP_PATTERN = re.compile(r"^\d{6}$")
_STRONG_PASSWORD = re.compile(r"(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: Optional[str]) -> str:
    return str(email or "").strip().lower()


def password_strength_error(password: Optional[str]) -> Optional[str]:
    """Return a user-facing message when the password is too weak, else None."""
    if not password:
        return "Password is required"
    if len(password) < 6:
        return "Password must be at least 6 characters long"
    if not _STRONG_PASSWORD.search(password):
        return "Password must contain at least one uppercase letter, one lowercase letter, and one number"
    return None


class PasswordHasher:
    """bcrypt hashing with a configurable work factor."""

    def __init__(self, rounds: int = 12):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordHasher":
        return cls(rounds=settings.BCRYPT_ROUNDS)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, plain_password: Optional[str], hashed_password: Optional[str]) -> bool:
        if not plain_password or not hashed_password:
            return False
        try:
            return self._context.verify(plain_password, hashed_password)
        except ValueError:
            # malformed stored hash
            return False
